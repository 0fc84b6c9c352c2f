import json
import logging
import os
import numpy as np
from typing import Dict, Any, List
from core.errors import FetchError
from core.interfaces import IRosterSource
import face_utils

logger = logging.getLogger("JsonRosterSource")


class JsonRosterSource(IRosterSource):
    """
    Roster kept in a local JSON file, e.g. data/active_surveillance_targets.json:

        [{"id": "p1", "name": "John Doe", "image": "images/p1.jpg", "priority": 1}, ...]

    Relative image paths resolve against `image_dir` (default: the file's folder).
    """

    def __init__(self):
        self.path = None
        self.image_dir = None

    def initialize(self, config: Dict[str, Any]) -> None:
        self.path = config.get('path', 'data/active_surveillance_targets.json')
        self.image_dir = config.get('image_dir') or os.path.dirname(os.path.abspath(self.path))

    def fetch_records(self) -> List[Dict[str, Any]]:
        if not os.path.exists(self.path):
            raise FetchError(f"Roster file not found: {self.path}")
        try:
            with open(self.path, 'r', encoding='utf-8') as f:
                records = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise FetchError(f"Cannot read roster file {self.path}: {e}") from e
        logger.info(f"Read roster file {self.path}")
        return records

    def load_image(self, ref: str) -> np.ndarray:
        path = ref if os.path.isabs(ref) else os.path.join(self.image_dir, ref)
        return face_utils.read_image(path)

    def shutdown(self) -> None:
        pass
