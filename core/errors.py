class FaceWatchError(Exception):
    """Base class for all pipeline errors."""


class FetchError(FaceWatchError):
    """Roster could not be fetched from its source."""


class CameraPermissionError(FaceWatchError, PermissionError):
    """Access to the camera device was denied."""


class DeviceUnavailableError(FaceWatchError, RuntimeError):
    """Camera device is missing or could not be opened."""


class DetectionError(FaceWatchError):
    """Face capability failed on a single frame. Never fatal."""


class ConfigError(FaceWatchError, ValueError):
    """Invalid configuration or plugin definition."""


class InvalidStateError(FaceWatchError, RuntimeError):
    """Lifecycle call not allowed in the pipeline's current state."""
