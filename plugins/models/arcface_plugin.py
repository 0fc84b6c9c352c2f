import logging
import numpy as np
from typing import Dict, Any, List
from insightface.app import FaceAnalysis
from core.interfaces import IFaceModel
from core.models import Detection

logger = logging.getLogger("ArcFaceModel")


class ArcFaceModel(IFaceModel):
    """
    InsightFace detection + ArcFace recognition (512-d).
    Pair with distance_metric: cosine in the pipeline config.
    """

    def __init__(self):
        self.app = None
        self.det_size = (640, 640)

    def initialize(self, config: Dict[str, Any]) -> None:
        self.det_size = tuple(config.get('det_size', [640, 640]))
        # 'providers' can be configured, e.g., ['CUDAExecutionProvider'] if GPU available
        providers = config.get('providers', ['CPUExecutionProvider'])
        allowed_modules = config.get('allowed_modules', ['detection', 'recognition'])

        self.app = FaceAnalysis(providers=providers, allowed_modules=allowed_modules)
        # ctx_id=0 is GPU 0, -1 is CPU
        ctx_id = 0 if 'CUDAExecutionProvider' in providers else -1

        self.app.prepare(ctx_id=ctx_id, det_size=self.det_size)
        logger.info(f"ArcFace Plugin Initialized (Providers: {providers})")

    def detect_and_embed(self, image: np.ndarray) -> List[Detection]:
        if self.app is None:
            raise RuntimeError("ArcFace model not initialized")

        # 'get' runs detection + recognition; Face objects carry bbox, det_score, embedding
        detections = []
        for face in self.app.get(image):
            if face.embedding is None:
                continue
            x1, y1, x2, y2 = face.bbox.astype(int)
            detections.append(Detection(
                bbox=(int(x1), int(y1), int(x2), int(y2)),
                embedding=np.asarray(face.normed_embedding),
                score=float(face.det_score),
            ))
        return detections

    def shutdown(self) -> None:
        self.app = None
