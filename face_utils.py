import cv2
import numpy as np


def _contiguous(img_bgr):
    return np.ascontiguousarray(img_bgr, dtype=np.uint8)


def read_image(image_path):
    """Reads an image file as contiguous BGR uint8"""
    img_bgr = cv2.imread(image_path)
    if img_bgr is None:
        raise ValueError(f"Image not found or cannot be read: {image_path}")
    return _contiguous(img_bgr)


def decode_image(data):
    """Decodes encoded image bytes (jpeg/png) as contiguous BGR uint8"""
    buf = np.frombuffer(data, dtype=np.uint8)
    if buf.size == 0:
        raise ValueError("Empty image data")
    img_bgr = cv2.imdecode(buf, cv2.IMREAD_COLOR)
    if img_bgr is None:
        raise ValueError("Image data cannot be decoded")
    return _contiguous(img_bgr)


def to_rgb(img_bgr):
    img_rgb = cv2.cvtColor(img_bgr, cv2.COLOR_BGR2RGB)
    return _contiguous(img_rgb)


def to_gray(img_bgr):
    if img_bgr.ndim == 2:
        return _contiguous(img_bgr)
    img_gray = cv2.cvtColor(img_bgr, cv2.COLOR_BGR2GRAY)
    return _contiguous(img_gray)
