import logging
import math
from typing import List, Optional, Set, Tuple

import numpy as np

from .config import DISTANCE_METRICS
from .embedding_index import EmbeddingIndex
from .errors import ConfigError, DetectionError
from .interfaces import IFaceModel
from .models import Identity, MatchResult

logger = logging.getLogger("MatchEngine")


def calculate_distances(references: np.ndarray, embedding: np.ndarray, metric: str = 'euclidean') -> np.ndarray:
    """Distance from one embedding to each row of `references`."""
    if metric == 'euclidean':
        return np.linalg.norm(references - embedding, axis=1)
    elif metric == 'cosine':
        # Cosine distance = 1 - cosine_similarity
        norms = np.linalg.norm(references, axis=1) * np.linalg.norm(embedding)
        return 1.0 - (references @ embedding) / (norms + 1e-8)
    raise ConfigError(f"Unknown distance metric '{metric}'")


class MatchEngine:
    def __init__(self, model: IFaceModel, threshold: float = 0.6, metric: str = 'euclidean'):
        if metric not in DISTANCE_METRICS:
            raise ConfigError(f"Unknown distance metric '{metric}'")
        self.model = model
        self.threshold = threshold
        self.metric = metric
        # (identity id, reference size, live size) already reported
        self._size_mismatches: Set[Tuple[str, int, int]] = set()

    def best_match(self, embedding: np.ndarray, index: EmbeddingIndex) -> Tuple[Optional[Identity], float]:
        """
        Identity with the smallest per-identity minimum distance.

        Ties keep the first identity in index order. A distance equal to the
        threshold still counts as a match.
        """
        if index.is_empty:
            return None, math.inf

        vector = np.asarray(embedding, dtype=np.float64).ravel()
        best_identity = None
        best_distance = math.inf
        for identity, references in index.entries():
            if references.shape[1] != vector.shape[0]:
                key = (identity.id, references.shape[1], vector.shape[0])
                if key not in self._size_mismatches:
                    self._size_mismatches.add(key)
                    logger.warning(f"Embedding size {vector.shape[0]} does not match "
                                   f"'{identity.id}' ({references.shape[1]}), skipping")
                continue
            distance = float(np.min(calculate_distances(references, vector, self.metric)))
            if distance < best_distance:
                best_distance = distance
                best_identity = identity

        if best_identity is None or best_distance > self.threshold:
            return None, best_distance
        return best_identity, best_distance

    def match(self, frame: np.ndarray, index: EmbeddingIndex) -> List[MatchResult]:
        """Detect every face in the frame and label it against the index."""
        try:
            detections = self.model.detect_and_embed(frame)
        except Exception as e:
            raise DetectionError(f"Face detection failed: {e}") from e

        results = []
        for detection in detections:
            identity, distance = self.best_match(detection.embedding, index)
            results.append(MatchResult(detection=detection, identity=identity, distance=distance))
        return results
