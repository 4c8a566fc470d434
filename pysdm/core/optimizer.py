"""
Cascaded SDM Optimizer - regression-based shape refinement

Runs every cascade step of a ShapeModel once, in order:

    features_k = extractor_k(image, points(shape_k), window_k)
    delta_k    = features_k · R_k[:-1] + R_k[-1]
    shape_k+1  = shape_k + delta_k · S_f          (adaptive)
    shape_k+1  = shape_k + delta_k                (non-adaptive)

In adaptive mode the face size S_f is the distance between the midpoint of
the inner eye corners and the midpoint of the outer mouth corners of the
current shape. The support window of step d (1-based) of D steps follows

    S_p(d) = S_f / (K · (1 + e^(d - D)))

with K = 4 (half of the halved face size), rounded and aligned to the
descriptor cell granularity. Later steps therefore look at smaller windows.
"""

import logging
import numpy as np
from typing import Callable, Optional, Sequence

from .shape_model import ShapeModel
from .. import config
from ..errors import ExtractionError, FittingCancelled, InvalidShape

logger = logging.getLogger(__name__)


def compute_face_size(points: np.ndarray,
                      eye_indices: Sequence[int] = config.EYE_ANCHOR_INDICES,
                      mouth_indices: Sequence[int] = config.MOUTH_ANCHOR_INDICES) -> float:
    """
    Distance between the eye anchor midpoint and the mouth anchor midpoint.

    Args:
        points: Landmark positions (N, 2)
        eye_indices: Pair of landmark indices around the eyes
        mouth_indices: Pair of landmark indices around the mouth
    """
    points = np.asarray(points, dtype=np.float64)
    eye_anchor = (points[eye_indices[0]] + points[eye_indices[1]]) / 2.0
    mouth_anchor = (points[mouth_indices[0]] + points[mouth_indices[1]]) / 2.0
    return float(np.linalg.norm(eye_anchor - mouth_anchor))


def compute_window_half(face_size: float, cascade_step: int, num_cascade_steps: int,
                        cell_granularity: int = config.CELL_GRANULARITY) -> int:
    """
    Half window size for a cascade step.

    Args:
        face_size: Current face size estimate in pixels
        cascade_step: 0-based step index
        num_cascade_steps: Total number of steps
        cell_granularity: Window sizes are multiples of this

    Returns:
        window_half: Positive multiple of cell_granularity
    """
    window_size = face_size / 2.0
    window_half = window_size / 2.0
    decay = 1.0 / (1.0 + np.exp((cascade_step + 1) - num_cascade_steps))
    # round half away from zero
    window_half = int(np.floor(window_half * decay + 0.5))
    # next multiple strictly above, so the window never collapses to zero
    return window_half + cell_granularity - (window_half % cell_granularity)


class CascadedOptimizer:
    """
    Applies the regression cascade of a ShapeModel to an initial shape.

    The optimizer holds no per-image state; one instance may serve any number
    of images as long as the model's extractors are reentrant.
    """

    def __init__(self,
                 model: ShapeModel,
                 adaptive: bool = config.ADAPTIVE_FITTING,
                 eye_indices: Sequence[int] = config.EYE_ANCHOR_INDICES,
                 mouth_indices: Sequence[int] = config.MOUTH_ANCHOR_INDICES,
                 cell_granularity: int = config.CELL_GRANULARITY):
        """
        Initialize the optimizer.

        Args:
            model: Model whose cascade is applied
            adaptive: Scale windows and updates with the measured face size
            eye_indices: Landmark index pair for the eye anchor
            mouth_indices: Landmark index pair for the mouth anchor
            cell_granularity: Alignment of window sizes in pixels
        """
        self.model = model
        self.adaptive = adaptive
        self.eye_indices = tuple(eye_indices)
        self.mouth_indices = tuple(mouth_indices)
        self.cell_granularity = cell_granularity

        if adaptive:
            max_index = max(self.eye_indices + self.mouth_indices)
            if max_index >= model.get_num_landmarks():
                raise ValueError(
                    f"Anchor landmark index {max_index} out of range for a model "
                    f"with {model.get_num_landmarks()} landmarks"
                )

    def _extract_features(self, cascade_step: int, image: np.ndarray,
                          points: np.ndarray, window_half: Optional[int]) -> np.ndarray:
        """Descriptors of all landmarks concatenated into one row, landmark-major."""
        extractor = self.model.get_descriptor_extractor(cascade_step)
        try:
            if window_half is None:
                descriptors = extractor.get_descriptors(image, points)
            else:
                descriptors = extractor.get_descriptors(image, points, window_half)
        except ExtractionError:
            raise
        except Exception as e:
            raise ExtractionError(f"Descriptor extraction failed in cascade step {cascade_step}: {e}") from e

        descriptors = np.asarray(descriptors)
        if descriptors.ndim != 2 or descriptors.shape[0] != len(points):
            raise ExtractionError(
                f"Cascade step {cascade_step}: extractor returned {descriptors.shape}, "
                f"expected one row per landmark ({len(points)})"
            )
        return descriptors.reshape(1, -1).astype(np.float64)

    def step(self, shape: np.ndarray, image: np.ndarray, cascade_step: int) -> np.ndarray:
        """
        Apply a single cascade step.

        Args:
            shape: Current shape (2N, 1)
            image: Grayscale image
            cascade_step: 0-based step index

        Returns:
            shape: Updated shape, a new (2N, 1) array
        """
        num_steps = self.model.get_num_cascade_steps()
        points = self.model.shape_to_points(shape)

        face_size = None
        window_half = None
        if self.adaptive:
            face_size = compute_face_size(points, self.eye_indices, self.mouth_indices)
            if not np.isfinite(face_size):
                raise ExtractionError(
                    f"Cascade step {cascade_step}: face size {face_size} is not finite"
                )
            window_half = compute_window_half(face_size, cascade_step, num_steps, self.cell_granularity)

        features = self._extract_features(cascade_step, image, points, window_half)

        regressor = self.model.get_regressor_data(cascade_step)
        if features.shape[1] != regressor.shape[0] - 1:
            raise ExtractionError(
                f"Cascade step {cascade_step}: {features.shape[1]} features but the regressor "
                f"expects {regressor.shape[0] - 1}"
            )

        delta_shape = features @ regressor[:-1] + regressor[-1]     # (1, 2N)

        if self.adaptive:
            shape = shape + delta_shape.T * face_size
        else:
            shape = shape + delta_shape.T

        if not np.all(np.isfinite(shape)):
            raise ExtractionError(f"Cascade step {cascade_step} produced non-finite landmark positions")

        logger.debug(
            f"Cascade step {cascade_step + 1}/{num_steps}: "
            f"face_size={face_size}, window_half={window_half}, "
            f"mean |update|={np.abs(delta_shape).mean():.4f}"
        )
        return shape

    def optimize(self,
                 shape: np.ndarray,
                 image: np.ndarray,
                 cancel_event=None,
                 on_stage: Optional[Callable[[int, np.ndarray], None]] = None) -> np.ndarray:
        """
        Run the whole cascade.

        Args:
            shape: Initial (aligned) shape (2N, 1); not modified
            image: Grayscale image (H, W)
            cancel_event: Optional threading.Event; checked before every step
            on_stage: Optional callback(cascade_step, shape_copy) after every step

        Returns:
            shape: Refined (2N, 1) float64 shape

        Raises:
            InvalidShape: shape does not have 2N values
            ExtractionError: A step failed; no partial result is returned
            FittingCancelled: cancel_event was set
        """
        shape = np.asarray(shape, dtype=np.float64).reshape(-1, 1).copy()
        if shape.shape[0] != 2 * self.model.get_num_landmarks():
            raise InvalidShape(
                f"Shape has {shape.shape[0]} values, expected {2 * self.model.get_num_landmarks()}"
            )

        for cascade_step in range(self.model.get_num_cascade_steps()):
            if cancel_event is not None and cancel_event.is_set():
                raise FittingCancelled(f"Fitting cancelled before cascade step {cascade_step}")

            shape = self.step(shape, image, cascade_step)

            if on_stage is not None:
                on_stage(cascade_step, shape.copy())

        return shape
