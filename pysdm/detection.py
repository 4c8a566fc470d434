"""
Face detection step for the per-image loop.

The detector itself is OpenCV's cascade classifier. What this module adds is
an explicit result: Detected(box) or NotDetected(), so the caller decides
what happens to images without a face.
"""

import logging
import numpy as np
import cv2
from dataclasses import dataclass
from pathlib import Path
from typing import Tuple, Union

from . import config

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Detected:
    box: Tuple[int, int, int, int]      # x, y, width, height


@dataclass(frozen=True)
class NotDetected:
    pass


DetectionResult = Union[Detected, NotDetected]


def largest_box(boxes) -> Tuple[int, int, int, int]:
    """Pick the box with the largest area."""
    boxes = np.asarray(boxes).reshape(-1, 4)
    areas = boxes[:, 2] * boxes[:, 3]
    x, y, w, h = boxes[int(np.argmax(areas))]
    return int(x), int(y), int(w), int(h)


class FaceDetector:
    """Wraps cv2.CascadeClassifier and reports the largest face."""

    def __init__(self,
                 cascade_path: str,
                 scale_factor: float = config.DETECTOR_SCALE_FACTOR,
                 min_neighbors: int = config.DETECTOR_MIN_NEIGHBORS,
                 min_size: Tuple[int, int] = config.DETECTOR_MIN_SIZE):
        """
        Args:
            cascade_path: OpenCV cascade XML file, e.g. haarcascade_frontalface_alt2.xml

        Raises:
            FileNotFoundError: The cascade could not be loaded
        """
        self.cascade_path = Path(cascade_path)
        self.scale_factor = scale_factor
        self.min_neighbors = min_neighbors
        self.min_size = tuple(min_size)

        self.classifier = cv2.CascadeClassifier()
        if not self.cascade_path.is_file() or not self.classifier.load(str(self.cascade_path)):
            raise FileNotFoundError(f"Error loading the face detection model: {self.cascade_path}")

    def detect(self, image: np.ndarray) -> DetectionResult:
        faces = self.classifier.detectMultiScale(
            image,
            scaleFactor=self.scale_factor,
            minNeighbors=self.min_neighbors,
            minSize=self.min_size,
        )
        if len(faces) == 0:
            return NotDetected()
        if len(faces) > 1:
            logger.debug(f"{len(faces)} faces detected, using the largest")
        return Detected(largest_box(faces))

    def __call__(self, image: np.ndarray) -> DetectionResult:
        return self.detect(image)
