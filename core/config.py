import os
from dataclasses import dataclass
from typing import Dict, Any

import yaml

from .errors import ConfigError

DEFAULT_CONFIG_PATH = os.path.join("config", "config.yaml")
CONFIG_ENV_VAR = "FACEWATCH_CONFIG"

DISTANCE_METRICS = ("euclidean", "cosine")


def resolve_config_path(path: str = None) -> str:
    return path or os.environ.get(CONFIG_ENV_VAR) or DEFAULT_CONFIG_PATH


def load_config(path: str = None) -> Dict[str, Any]:
    """Load the YAML system config. Raises ConfigError if missing or malformed."""
    config_path = resolve_config_path(path)
    if not os.path.exists(config_path):
        raise ConfigError(f"Config file not found: {config_path}")

    try:
        with open(config_path, 'r', encoding='utf-8') as f:
            config = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Failed to parse YAML config {config_path}: {e}") from e

    if not isinstance(config, dict):
        raise ConfigError(f"Invalid config format: expected mapping, got {type(config).__name__}")
    return config


@dataclass(frozen=True)
class PipelineSettings:
    frame_interval: float = 0.1     # seconds between sampling ticks
    match_threshold: float = 0.6    # inclusive max distance for a match
    distance_metric: str = "euclidean"
    alert_cooldown: float = 3.0     # seconds between alerts for one identity
    jpeg_quality: int = 70
    detection_log_size: int = 200

    def __post_init__(self):
        if self.frame_interval < 0:
            raise ConfigError("frame_interval must be >= 0")
        if self.match_threshold <= 0:
            raise ConfigError("match_threshold must be > 0")
        if self.distance_metric not in DISTANCE_METRICS:
            raise ConfigError(f"Unknown distance_metric '{self.distance_metric}', "
                              f"expected one of {DISTANCE_METRICS}")
        if self.alert_cooldown < 0:
            raise ConfigError("alert_cooldown must be >= 0")
        if not 1 <= self.jpeg_quality <= 100:
            raise ConfigError("jpeg_quality must be within 1..100")
        if self.detection_log_size < 1:
            raise ConfigError("detection_log_size must be >= 1")

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> "PipelineSettings":
        section = config.get('pipeline') or {}
        if not isinstance(section, dict):
            raise ConfigError("'pipeline' section must be a mapping")

        unknown = set(section) - set(cls.__dataclass_fields__)
        if unknown:
            raise ConfigError(f"Unknown pipeline settings: {sorted(unknown)}")

        try:
            return cls(
                frame_interval=float(section.get('frame_interval', cls.frame_interval)),
                match_threshold=float(section.get('match_threshold', cls.match_threshold)),
                distance_metric=str(section.get('distance_metric', cls.distance_metric)),
                alert_cooldown=float(section.get('alert_cooldown', cls.alert_cooldown)),
                jpeg_quality=int(section.get('jpeg_quality', cls.jpeg_quality)),
                detection_log_size=int(section.get('detection_log_size', cls.detection_log_size)),
            )
        except (TypeError, ValueError) as e:
            if isinstance(e, ConfigError):
                raise
            raise ConfigError(f"Invalid pipeline setting: {e}") from e
