from abc import ABC, abstractmethod
from typing import Dict, Any, List, Optional, Tuple
import numpy as np

from .models import Detection


class IPlugin(ABC):
    """Base interface for all plugins."""
    @abstractmethod
    def initialize(self, config: Dict[str, Any]) -> None:
        """Initialize the plugin with configuration."""
        pass

    @abstractmethod
    def shutdown(self) -> None:
        """Cleanup resources."""
        pass


class IVideoSource(IPlugin):
    """Interface for live video input sources (Webcam, IP Cam).

    initialize() acquires the device and may raise CameraPermissionError
    or DeviceUnavailableError.
    """
    @abstractmethod
    def get_frame(self) -> Tuple[bool, Optional[np.ndarray]]:
        """
        Read a frame from the source.
        Returns: (success, frame). (False, None) means the source has ended.
        """
        pass


class IFaceModel(IPlugin):
    """Interface for face detection + recognition backends."""
    @abstractmethod
    def detect_and_embed(self, image: np.ndarray) -> List[Detection]:
        """
        Detect every face in a BGR image and compute its embedding.
        May return an empty list. May raise on bad input.
        """
        pass


class IRosterSource(IPlugin):
    """Interface for sources of the reference roster."""
    @abstractmethod
    def fetch_records(self) -> List[Dict[str, Any]]:
        """
        Fetch raw roster records.
        Raises FetchError on transport failure.
        """
        pass

    @abstractmethod
    def load_image(self, ref: str) -> np.ndarray:
        """Load a reference image (BGR) named by a record."""
        pass
