"""
In-memory plugins for tests: no camera, no model files, no network.

Images are tagged: make_image(tag) fills a small array with `tag`, and the
fake model looks the tag up to decide which faces it "sees".
"""
import itertools
import threading
from typing import Any, Dict, List

import numpy as np

from core.errors import FetchError
from core.interfaces import IFaceModel, IRosterSource, IVideoSource
from core.models import Detection


def make_image(tag: int) -> np.ndarray:
    return np.full((8, 8, 3), tag, dtype=np.uint8)


def image_tag(image: np.ndarray) -> int:
    return int(image[0, 0, 0])


def face(embedding, bbox=(10, 10, 50, 50), score=1.0) -> Detection:
    return Detection(bbox=bbox, embedding=np.asarray(embedding, dtype=np.float64), score=score)


class FakeFaceModel(IFaceModel):
    """
    faces: tag -> list of Detection (or an Exception instance to raise).
    Unknown tags yield no faces. With a gate, calls for `gate_tags` (all
    tags when None) block until the gate is set.
    """

    def __init__(self, faces: Dict[int, Any] = None, gate: threading.Event = None, gate_tags=None):
        self.faces = faces or {}
        self.gate = gate
        self.gate_tags = gate_tags
        self.calls = 0
        self.active = 0
        self.max_active = 0
        self._lock = threading.Lock()

    def initialize(self, config: Dict[str, Any]) -> None:
        self.faces = {int(k): [face(e) for e in v] for k, v in config.get('faces', {}).items()}

    def detect_and_embed(self, image: np.ndarray) -> List[Detection]:
        with self._lock:
            self.calls += 1
            self.active += 1
            self.max_active = max(self.max_active, self.active)
        try:
            tag = image_tag(image)
            if self.gate is not None and (self.gate_tags is None or tag in self.gate_tags):
                self.gate.wait(5.0)
            result = self.faces.get(tag, [])
            if isinstance(result, Exception):
                raise result
            return list(result)
        finally:
            with self._lock:
                self.active -= 1

    def shutdown(self) -> None:
        pass


class FakeRosterSource(IRosterSource):
    """records: list returned by fetch_records (or an Exception to raise). images: ref -> tag."""

    def __init__(self, records=None, images: Dict[str, int] = None):
        self.records = records if records is not None else []
        self.images = images or {}
        self.fetches = 0

    def initialize(self, config: Dict[str, Any]) -> None:
        self.records = config.get('records', [])
        self.images = config.get('images', {})

    def fetch_records(self):
        self.fetches += 1
        if isinstance(self.records, Exception):
            raise self.records
        return self.records

    def load_image(self, ref: str) -> np.ndarray:
        if ref not in self.images:
            raise FetchError(f"no such image: {ref}")
        return make_image(self.images[ref])

    def shutdown(self) -> None:
        pass


class FakeVideoSource(IVideoSource):
    """Yields `frames` once and then ends, or repeats them forever with loop=True."""

    def __init__(self, frames=None, loop=False):
        self.frames = list(frames or [])
        self.loop = loop
        self.reads = 0
        self.released = False
        self._iter = None
        self._reset()

    def _reset(self):
        self._iter = itertools.cycle(self.frames) if self.loop and self.frames else iter(self.frames)

    def initialize(self, config: Dict[str, Any]) -> None:
        self.frames = [make_image(tag) for tag in config.get('tags', [])]
        self.loop = config.get('loop', False)
        self._reset()

    def get_frame(self):
        self.reads += 1
        frame = next(self._iter, None)
        return (frame is not None), frame

    def shutdown(self) -> None:
        self.released = True


class NotAPlugin:
    pass
