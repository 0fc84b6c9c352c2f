import logging
import os
import sys
import cv2
import numpy as np
from typing import Dict, Any, Tuple, Optional
from core.errors import CameraPermissionError, DeviceUnavailableError
from core.interfaces import IVideoSource

logger = logging.getLogger("WebcamSource")


class WebcamSource(IVideoSource):
    def __init__(self):
        self.cap = None
        self.device_id = 0

    def _check_permission(self) -> None:
        if isinstance(self.device_id, int) and sys.platform.startswith('linux'):
            node = f"/dev/video{self.device_id}"
            if os.path.exists(node) and not os.access(node, os.R_OK | os.W_OK):
                raise CameraPermissionError(f"Permission denied for camera device {node}")

    def initialize(self, config: Dict[str, Any]) -> None:
        self.device_id = config.get('device_id', 0)
        self._check_permission()

        # Use CAP_DSHOW on Windows for faster startup
        backend = cv2.CAP_DSHOW if sys.platform.startswith('win') else cv2.CAP_ANY
        self.cap = cv2.VideoCapture(self.device_id, backend)

        if not self.cap.isOpened():
            self.cap.release()
            self.cap = None
            raise DeviceUnavailableError(f"Failed to open webcam {self.device_id}")

        width = config.get('width', 640)
        height = config.get('height', 480)
        self.cap.set(cv2.CAP_PROP_FRAME_WIDTH, width)
        self.cap.set(cv2.CAP_PROP_FRAME_HEIGHT, height)
        logger.info(f"Webcam Plugin Initialized: Device {self.device_id}")

    def get_frame(self) -> Tuple[bool, Optional[np.ndarray]]:
        if self.cap and self.cap.isOpened():
            ret, frame = self.cap.read()
            return ret, frame
        return False, None

    def shutdown(self) -> None:
        if self.cap and self.cap.isOpened():
            self.cap.release()
        self.cap = None
