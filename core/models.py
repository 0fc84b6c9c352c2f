import math
from dataclasses import dataclass, field
from typing import Optional, Tuple

import numpy as np

BBox = Tuple[int, int, int, int]  # (x1, y1, x2, y2)

DEFAULT_PRIORITY = 3
UNKNOWN_LABEL = "unknown"


@dataclass(frozen=True)
class Identity:
    """A roster entry. Immutable once loaded for a session."""
    id: str
    display_name: str
    reference_images: Tuple[str, ...]
    priority: int = DEFAULT_PRIORITY


@dataclass
class Detection:
    """One face found in one frame; discarded after the frame's match pass."""
    bbox: BBox
    embedding: np.ndarray
    score: float = 1.0


@dataclass
class MatchResult:
    detection: Detection
    identity: Optional[Identity] = None
    distance: float = field(default=math.inf)

    @property
    def matched(self) -> bool:
        return self.identity is not None

    @property
    def label(self) -> str:
        if self.identity is None:
            return UNKNOWN_LABEL
        return f"{self.identity.display_name} ({self.distance:.2f})"
