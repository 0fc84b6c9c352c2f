import logging
from typing import Callable, Iterable, Iterator, List, Optional, Tuple

import numpy as np

from .interfaces import IFaceModel
from .models import Detection, Identity

logger = logging.getLogger("EmbeddingIndex")

ImageLoader = Callable[[str], np.ndarray]


def _reference_embedding(model: IFaceModel, load_image: ImageLoader,
                         identity: Identity, ref: str) -> Optional[np.ndarray]:
    """Embedding of the most confident face in one reference image, or None."""
    try:
        image = load_image(ref)
        detections: List[Detection] = list(model.detect_and_embed(image))
    except Exception as e:
        logger.warning(f"Skipping reference image {ref} of '{identity.id}': {e}")
        return None

    if not detections:
        logger.warning(f"Skipping reference image {ref} of '{identity.id}': no face detected")
        return None
    if len(detections) > 1:
        logger.info(f"{len(detections)} faces in reference image {ref} of '{identity.id}', "
                    f"using the most confident one")

    best = max(detections, key=lambda d: d.score)
    return np.asarray(best.embedding, dtype=np.float64).ravel()


class EmbeddingIndex:
    """
    Reference embeddings per identity, in roster order.

    Every identity in the index has at least one embedding. Identities whose
    reference images all failed are kept aside in `excluded`.
    """

    def __init__(self, entries: Iterable[Tuple[Identity, np.ndarray]] = (),
                 excluded: Iterable[Identity] = ()):
        self._entries: List[Tuple[Identity, np.ndarray]] = []
        for identity, embeddings in entries:
            matrix = np.atleast_2d(np.asarray(embeddings, dtype=np.float64))
            if matrix.size == 0:
                raise ValueError(f"Identity '{identity.id}' has no embeddings")
            self._entries.append((identity, matrix))
        self.excluded: Tuple[Identity, ...] = tuple(excluded)

    @classmethod
    def build(cls, identities: Iterable[Identity], model: IFaceModel,
              load_image: ImageLoader) -> "EmbeddingIndex":
        """Embed every reference image. Never fails as a whole."""
        entries = []
        excluded = []
        for identity in identities:
            vectors = []
            for ref in identity.reference_images:
                vector = _reference_embedding(model, load_image, identity, ref)
                if vector is not None:
                    vectors.append(vector)

            if not vectors:
                logger.warning(f"Excluding '{identity.id}' from matching: no usable reference face")
                excluded.append(identity)
                continue

            dims = {v.shape[0] for v in vectors}
            if len(dims) > 1:
                logger.warning(f"Excluding '{identity.id}' from matching: "
                               f"inconsistent embedding sizes {sorted(dims)}")
                excluded.append(identity)
                continue

            entries.append((identity, np.vstack(vectors)))

        index = cls(entries, excluded)
        logger.info(f"Built embedding index: {len(index)} identities, "
                    f"{sum(m.shape[0] for _, m in index._entries)} embeddings, "
                    f"{len(excluded)} excluded")
        return index

    def entries(self) -> Iterator[Tuple[Identity, np.ndarray]]:
        return iter(self._entries)

    @property
    def identities(self) -> Tuple[Identity, ...]:
        return tuple(identity for identity, _ in self._entries)

    @property
    def is_empty(self) -> bool:
        return not self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, identity_id: str) -> bool:
        return any(identity.id == identity_id for identity, _ in self._entries)
