import dlib
import numpy as np
import os
from typing import Dict, Any, List
from core.interfaces import IFaceModel
from core.models import Detection
import face_utils

DLIB_FACE_CHIP_SIZE = 150


class DlibFaceModel(IFaceModel):
    """HOG detector + 68-point landmarks + ResNet descriptor (128-d, euclidean)."""

    def __init__(self):
        self.detector = None
        self.shape_predictor = None
        self.face_rec_model = None
        self.upsample = 1

    def initialize(self, config: Dict[str, Any]) -> None:
        shape_path = config.get('shape_predictor_path', 'models/shape_predictor_68_face_landmarks.dat')
        rec_path = config.get('recognition_model_path', 'models/dlib_face_recognition_resnet_model_v1.dat')
        self.upsample = int(config.get('upsample', 1))

        if not os.path.exists(shape_path) or not os.path.exists(rec_path):
            raise FileNotFoundError("Dlib model files not found. Check config paths.")

        self.detector = dlib.get_frontal_face_detector()
        self.shape_predictor = dlib.shape_predictor(shape_path)
        self.face_rec_model = dlib.face_recognition_model_v1(rec_path)

    def detect_and_embed(self, image: np.ndarray) -> List[Detection]:
        if self.detector is None:
            raise RuntimeError("Dlib model not initialized")

        img_rgb = face_utils.to_rgb(image)
        img_gray = face_utils.to_gray(image)
        rects, scores, _ = self.detector.run(img_gray, self.upsample, 0)

        detections = []
        for rect, score in zip(rects, scores):
            shape = self.shape_predictor(img_gray, rect)
            face_chip = dlib.get_face_chip(img_rgb, shape, size=DLIB_FACE_CHIP_SIZE)
            embedding = np.array(self.face_rec_model.compute_face_descriptor(face_chip))
            detections.append(Detection(
                bbox=(rect.left(), rect.top(), rect.right(), rect.bottom()),
                embedding=embedding,
                score=float(score),
            ))
        return detections

    def shutdown(self) -> None:
        self.detector = None
        self.shape_predictor = None
        self.face_rec_model = None
