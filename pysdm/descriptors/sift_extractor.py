"""
SIFT descriptor extractor backed by OpenCV.

Descriptors are computed at the given points only (no keypoint detection),
with a keypoint diameter of 2 * window_half.
"""
import numpy as np
import cv2
from typing import Optional

from .base_extractor import DescriptorExtractor
from ..errors import ExtractionError

SIFT_DESCRIPTOR_DIM = 128


class SiftDescriptorExtractor(DescriptorExtractor):
    """SIFT features around landmark points."""

    descriptor_type = "sift"

    def __init__(self, window_half: int = 16):
        super().__init__(window_half)

    @property
    def descriptor_dim(self) -> int:
        return SIFT_DESCRIPTOR_DIM

    def get_descriptors(self,
                        image: np.ndarray,
                        points: np.ndarray,
                        window_half: Optional[int] = None) -> np.ndarray:
        window_half = self._resolve_window(window_half)
        if image is None or image.ndim != 2:
            raise ExtractionError("SIFT extraction needs a single-channel (grayscale) image")
        if image.dtype != np.uint8:
            image = np.clip(image, 0, 255).astype(np.uint8)

        points = np.asarray(points, dtype=np.float32).reshape(-1, 2)
        keypoints = [cv2.KeyPoint(float(x), float(y), float(2 * window_half)) for x, y in points]

        sift = cv2.SIFT_create()
        keypoints_out, descriptors = sift.compute(image, keypoints)

        if descriptors is None or len(keypoints_out) != len(points):
            raise ExtractionError(
                f"SIFT returned {0 if descriptors is None else len(descriptors)} "
                f"descriptors for {len(points)} points"
            )
        return descriptors.astype(np.float32)
