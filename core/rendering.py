import threading
from typing import List, Optional, Tuple

import cv2
import numpy as np

from .models import BBox, UNKNOWN_LABEL

MATCH_COLOR = (0, 255, 0)    # BGR green
UNKNOWN_COLOR = (0, 0, 255)  # BGR red


class FrameRenderer:
    """Render sink: draws labelled boxes and keeps the latest frame as JPEG."""

    def __init__(self, jpeg_quality: int = 70):
        self.jpeg_quality = jpeg_quality
        self._lock = threading.Lock()
        self._jpeg: Optional[bytes] = None

    def __call__(self, frame: np.ndarray, annotations: List[Tuple[BBox, str]]) -> None:
        self.render(frame, annotations)

    def render(self, frame: np.ndarray, annotations: List[Tuple[BBox, str]]) -> None:
        canvas = frame.copy()
        for bbox, label in annotations:
            x1, y1, x2, y2 = (int(v) for v in bbox)
            color = UNKNOWN_COLOR if label == UNKNOWN_LABEL else MATCH_COLOR
            cv2.rectangle(canvas, (x1, y1), (x2, y2), color, 2)
            cv2.putText(canvas, label, (x1, max(0, y1 - 10)), cv2.FONT_HERSHEY_SIMPLEX, 0.5, color, 1)

        ret, jpeg = cv2.imencode('.jpg', canvas, [cv2.IMWRITE_JPEG_QUALITY, self.jpeg_quality])
        if ret:
            with self._lock:
                self._jpeg = jpeg.tobytes()

    def get_frame(self) -> Optional[bytes]:
        with self._lock:
            return self._jpeg

    def clear(self) -> None:
        with self._lock:
            self._jpeg = None


def placeholder_frame(text: str = "Initializing Camera...") -> bytes:
    img = np.zeros((480, 640, 3), dtype=np.uint8)
    cv2.putText(img, text, (50, 240), cv2.FONT_HERSHEY_SIMPLEX, 1, (255, 255, 255), 2)
    ret, jpeg = cv2.imencode('.jpg', img)
    return jpeg.tobytes()
