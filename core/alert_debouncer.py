import threading
from typing import Dict, Iterable


class AlertDebouncer:
    """At most one alert per identity per cooldown window (seconds)."""

    def __init__(self, cooldown: float = 3.0) -> None:
        self.cooldown = cooldown
        self._last_alert: Dict[str, float] = {}
        self._lock = threading.Lock()

    def should_alert(self, identity_id: str, now: float) -> bool:
        with self._lock:
            last = self._last_alert.get(identity_id)
            if last is not None and now < last + self.cooldown:
                return False
            self._last_alert[identity_id] = now
            return True

    def retain(self, identity_ids: Iterable[str]) -> None:
        """Forget identities that left the roster."""
        keep = set(identity_ids)
        with self._lock:
            self._last_alert = {k: v for k, v in self._last_alert.items() if k in keep}

    def reset(self) -> None:
        with self._lock:
            self._last_alert.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._last_alert)
