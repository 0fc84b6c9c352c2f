import logging
import threading
from typing import Any, Dict, List, Optional, Tuple

from .errors import FetchError
from .interfaces import IRosterSource
from .models import DEFAULT_PRIORITY, Identity

logger = logging.getLogger("RosterStore")

ID_KEYS = ('id', '_id')
NAME_KEYS = ('displayName', 'display_name', 'name')
IMAGE_KEYS = ('imageUrl', 'image_url', 'image')
IMAGE_LIST_KEYS = ('images', 'referenceImages', 'reference_images')


def _first(record: Dict[str, Any], keys) -> Optional[Any]:
    for key in keys:
        value = record.get(key)
        if value not in (None, ''):
            return value
    return None


def _record_images(record: Dict[str, Any]) -> List[str]:
    images = []
    single = _first(record, IMAGE_KEYS)
    if single:
        images.append(str(single))
    many = _first(record, IMAGE_LIST_KEYS)
    if isinstance(many, (list, tuple)):
        images.extend(str(img) for img in many if img)
    return images


def unwrap_payload(payload: Any) -> List[Any]:
    """Accept a bare list of records or a {"data": [...]} envelope."""
    if isinstance(payload, dict) and 'data' in payload:
        payload = payload['data']
    if not isinstance(payload, list):
        raise FetchError(f"Roster payload must be a list of records, got {type(payload).__name__}")
    return payload


def parse_records(records: List[Any]) -> Tuple[Identity, ...]:
    """
    Turn raw roster records into Identities.

    Records missing an id or any image are skipped. Records sharing an id are
    merged into one Identity holding all their reference images. The result is
    stably sorted by priority (1 = most critical first).
    """
    merged: Dict[str, Dict[str, Any]] = {}
    for position, record in enumerate(records):
        if not isinstance(record, dict):
            logger.warning(f"Skipping roster record #{position}: not a mapping")
            continue

        name = _first(record, NAME_KEYS)
        identity_id = _first(record, ID_KEYS)
        if identity_id is None:
            identity_id = name
        images = _record_images(record)
        if identity_id is None:
            logger.warning(f"Skipping roster record #{position}: no id or name")
            continue
        if not images:
            logger.warning(f"Skipping roster record '{identity_id}': no reference image")
            continue

        identity_id = str(identity_id)
        try:
            priority = int(record.get('priority', DEFAULT_PRIORITY))
        except (TypeError, ValueError):
            logger.warning(f"Roster record '{identity_id}' has invalid priority, using {DEFAULT_PRIORITY}")
            priority = DEFAULT_PRIORITY

        entry = merged.get(identity_id)
        if entry is None:
            merged[identity_id] = {
                'display_name': str(name) if name is not None else identity_id,
                'images': images,
                'priority': priority,
            }
        else:
            entry['images'].extend(img for img in images if img not in entry['images'])
            entry['priority'] = min(entry['priority'], priority)

    identities = [
        Identity(
            id=identity_id,
            display_name=entry['display_name'],
            reference_images=tuple(entry['images']),
            priority=entry['priority'],
        )
        for identity_id, entry in merged.items()
    ]
    identities.sort(key=lambda identity: identity.priority)
    return tuple(identities)


class RosterStore:
    """Holds the last successfully loaded roster snapshot."""

    def __init__(self, source: IRosterSource):
        self.source = source
        self._snapshot: Tuple[Identity, ...] = ()
        self._loaded = False
        self._revision = 0
        self._lock = threading.Lock()

    @property
    def has_snapshot(self) -> bool:
        return self._loaded

    @property
    def revision(self) -> int:
        """Bumped every time a load changes the snapshot."""
        return self._revision

    def current(self) -> Tuple[Identity, ...]:
        with self._lock:
            return self._snapshot

    def snapshot(self) -> Tuple[int, Tuple[Identity, ...]]:
        """(revision, identities), read together."""
        with self._lock:
            return self._revision, self._snapshot

    def load(self) -> Tuple[Identity, ...]:
        """
        Fetch and parse the roster, then swap it in. On any failure the
        previous snapshot is kept and FetchError is raised.
        """
        try:
            records = unwrap_payload(self.source.fetch_records())
            identities = parse_records(records)
        except FetchError:
            logger.error("Roster fetch failed; keeping previous snapshot")
            raise
        except Exception as e:
            logger.error(f"Roster fetch failed; keeping previous snapshot: {e}")
            raise FetchError(f"Roster source failed: {e}") from e

        with self._lock:
            changed = not self._loaded or identities != self._snapshot
            self._snapshot = identities
            self._loaded = True
            if changed:
                self._revision += 1

        if not identities:
            logger.warning("Roster is empty; every face will be reported as unknown")
        else:
            logger.info(f"Loaded {len(identities)} roster identities (priority-sorted)"
                        f"{'' if changed else ', unchanged'}.")
        return identities
