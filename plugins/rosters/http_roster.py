import logging
import numpy as np
import requests
from typing import Dict, Any, List
from urllib.parse import urljoin
from core.errors import FetchError
from core.interfaces import IRosterSource
import face_utils

logger = logging.getLogger("HttpRosterSource")


class HttpRosterSource(IRosterSource):
    """
    Roster served over HTTP, e.g. GET /criminalRecords returning
    {"data": [{"name": ..., "image": "<url>"}, ...]}.
    Relative image URLs resolve against the roster URL.
    """

    def __init__(self):
        self.url = None
        self.timeout = 10.0
        self.session = None

    def initialize(self, config: Dict[str, Any]) -> None:
        self.url = config.get('url')
        if not self.url:
            raise ValueError("HttpRosterSource needs a 'url'")
        self.timeout = float(config.get('timeout', 10.0))
        self.session = requests.Session()
        self.session.headers.update(config.get('headers', {}) or {})

    def fetch_records(self) -> List[Dict[str, Any]]:
        try:
            response = self.session.get(self.url, timeout=self.timeout)
            response.raise_for_status()
            payload = response.json()
        except (requests.RequestException, ValueError) as e:
            raise FetchError(f"Error fetching criminal records from {self.url}: {e}") from e
        logger.info(f"Fetched roster from {self.url}")
        return payload

    def load_image(self, ref: str) -> np.ndarray:
        image_url = urljoin(self.url, ref)
        response = self.session.get(image_url, timeout=self.timeout)
        response.raise_for_status()
        return face_utils.decode_image(response.content)

    def shutdown(self) -> None:
        if self.session is not None:
            self.session.close()
            self.session = None
