"""
SDM (Supervised Descent Method) - facial landmark detector

This is the main user-facing API that combines:
- ShapeModel for the mean shape and the regression cascade
- RigidAligner for the initial placement from a face box or landmarks
- CascadedOptimizer for the regression-based refinement

Usage:
    from pysdm import SDM

    # Load model once
    sdm = SDM("models/sdm_lfpw_20lm_5c_hog.txt")

    # Detect landmarks in an image
    shape = sdm.fit_from_box(image, face_box)
    landmarks = sdm.to_landmarks(shape)
"""

import logging
import numpy as np
import cv2
from typing import Callable, Optional

from .core.alignment import RigidAligner
from .core.landmarks import LandmarkCollection
from .core.optimizer import CascadedOptimizer
from .core.shape_model import ShapeModel
from . import config

logger = logging.getLogger(__name__)


def to_grayscale(image: np.ndarray) -> np.ndarray:
    """Convert a BGR or BGRA image to grayscale, pass grayscale through."""
    if image.ndim == 3 and image.shape[2] == 3:
        return cv2.cvtColor(image, cv2.COLOR_BGR2GRAY)
    if image.ndim == 3 and image.shape[2] == 4:
        return cv2.cvtColor(image, cv2.COLOR_BGRA2GRAY)
    if image.ndim == 3 and image.shape[2] == 1:
        return image[:, :, 0]
    return image


class SDM:
    """
    Complete SDM facial landmark detector.

    Owns a loaded ShapeModel plus the aligner and optimizer working on it.
    Fitting calls do not modify the detector and may run concurrently when
    the model's extractors are reentrant.
    """

    def __init__(self, model, adaptive: bool = config.ADAPTIVE_FITTING):
        """
        Initialize the detector.

        Args:
            model: A ShapeModel or the path of a model file
            adaptive: Scale windows and updates with the measured face size
        """
        if not isinstance(model, ShapeModel):
            model = ShapeModel.load(model)
        self.model = model
        self.aligner = RigidAligner(model)
        self.optimizer = CascadedOptimizer(model, adaptive=adaptive)
        logger.debug(f"SDM ready: {model!r}, adaptive={adaptive}")

    def fit_from_box(self,
                     image: np.ndarray,
                     face_box,
                     cancel_event=None,
                     on_stage: Optional[Callable[[int, np.ndarray], None]] = None) -> np.ndarray:
        """
        Fit the model starting from a face box.

        Args:
            image: Input image (grayscale or BGR)
            face_box: Face bounding box (x, y, width, height)
            cancel_event: Optional threading.Event checked between cascade steps
            on_stage: Optional callback(cascade_step, shape) after every step

        Returns:
            shape: Fitted shape (2N, 1)
        """
        shape = self.aligner.align_to_box(self.model.get_mean_shape(), face_box)
        return self.optimizer.optimize(shape, to_grayscale(image), cancel_event, on_stage)

    def fit_from_landmarks(self,
                           image: np.ndarray,
                           correspondences: LandmarkCollection,
                           cancel_event=None,
                           on_stage: Optional[Callable[[int, np.ndarray], None]] = None) -> np.ndarray:
        """
        Fit the model starting from sparse landmark correspondences.

        Raises:
            AlignmentError: The correspondences do not determine a scale
            NotFound: A correspondence name is not part of the model
        """
        shape = self.aligner.align_to_landmarks(self.model.get_mean_shape(), correspondences)
        return self.optimizer.optimize(shape, to_grayscale(image), cancel_event, on_stage)

    def to_landmarks(self, shape: np.ndarray) -> LandmarkCollection:
        return self.model.get_as_landmarks(shape)

    def get_info(self) -> dict:
        """Get detector information."""
        return {
            'model': self.model.get_info(),
            'adaptive': self.optimizer.adaptive,
            'aliases': dict(self.aligner.aliases),
        }


def fit_from_box(model: ShapeModel, image: np.ndarray, box) -> np.ndarray:
    """Align the mean shape to a face box and run the cascade."""
    return SDM(model).fit_from_box(image, box)


def fit_from_landmarks(model: ShapeModel, image: np.ndarray,
                       correspondences: LandmarkCollection) -> np.ndarray:
    """Align the mean shape to correspondences and run the cascade. May raise AlignmentError."""
    return SDM(model).fit_from_landmarks(image, correspondences)


def to_landmarks(model: ShapeModel, shape: np.ndarray) -> LandmarkCollection:
    return model.get_as_landmarks(shape)
