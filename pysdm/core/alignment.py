"""
Rigid alignment - initial placement of the mean shape in the image

Two ways to get a starting shape for the cascade:

- align_to_box: the mean shape is assumed to live in [-0.5, 0.5]^2 and is
  stretched into a face box.
- align_to_landmarks: a scale and translation are estimated from a sparse
  set of named correspondences (e.g. two eye centres) and applied to the
  whole shape.

Scale is estimated per axis as the ratio of standard deviations of the
target and model points. An axis on which the points coincide gives no
usable ratio, so each ratio is classified before use.
"""

import logging
import numpy as np
from dataclasses import dataclass
from typing import Mapping, Optional, Tuple, Union

from .landmarks import LandmarkCollection
from .shape_model import ShapeModel
from .. import config
from ..errors import AlignmentError, InvalidShape

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ValidScale:
    value: float


@dataclass(frozen=True)
class DegenerateScale:
    pass


ScaleEstimate = Union[ValidScale, DegenerateScale]


def box_to_tuple(box) -> Tuple[float, float, float, float]:
    """Accept (x, y, w, h) sequences or objects with x/y/width/height attributes."""
    if all(hasattr(box, attr) for attr in ('x', 'y', 'width', 'height')):
        return float(box.x), float(box.y), float(box.width), float(box.height)
    x, y, width, height = box
    return float(x), float(y), float(width), float(height)


def is_normal(value: float) -> bool:
    """True for finite, non-zero, non-subnormal floats."""
    return bool(np.isfinite(value)) and abs(value) >= np.finfo(np.float64).tiny


def classify_scale(ratio: float) -> ScaleEstimate:
    if is_normal(ratio):
        return ValidScale(float(ratio))
    return DegenerateScale()


def calculate_scale_ratio(model_values: np.ndarray, target_values: np.ndarray) -> float:
    """Ratio of the spread of target values to the spread of model values."""
    model_spread = np.std(model_values)
    target_spread = np.std(target_values)
    with np.errstate(divide='ignore', invalid='ignore'):
        return float(np.float64(target_spread) / np.float64(model_spread))


def calculate_mean_translation(model_values: np.ndarray, target_values: np.ndarray) -> float:
    return float(np.mean(target_values - model_values))


def combine_scales(sx: ScaleEstimate, sy: ScaleEstimate) -> float:
    """
    Pick the isotropic scale from the two per-axis estimates.

    Raises:
        AlignmentError: Neither axis gives a usable scale
    """
    if isinstance(sx, DegenerateScale) and isinstance(sy, DegenerateScale):
        raise AlignmentError("x- and y-scale both not calculable, cannot align the model")
    if isinstance(sx, DegenerateScale):
        return sy.value
    if isinstance(sy, DegenerateScale):
        return sx.value
    return (sx.value + sy.value) / 2.0


def _check_shape(shape: np.ndarray) -> np.ndarray:
    shape = np.asarray(shape)
    if shape.ndim != 2 or shape.shape[1] != 1:
        raise InvalidShape(
            f"The supplied model shape has shape {shape.shape}, expected a column vector (2N, 1)"
        )
    if shape.shape[0] % 2 != 0:
        raise InvalidShape(f"A shape needs an even number of values, got {shape.shape[0]}")
    return shape


def align_to_box(shape: np.ndarray, box) -> np.ndarray:
    """
    Place a shape normalised to [-0.5, 0.5]^2 inside a face box.

    Args:
        shape: Column vector (2N, 1)
        box: Face box (x, y, width, height)

    Returns:
        aligned: New (2N, 1) float64 array, the input is not modified
    """
    shape = _check_shape(shape)
    x, y, width, height = box_to_tuple(box)

    aligned = shape.astype(np.float64, copy=True)
    n = aligned.shape[0] // 2
    aligned[:n] = (aligned[:n] + 0.5) * width + x
    aligned[n:] = (aligned[n:] + 0.5) * height + y
    return aligned


class RigidAligner:
    """Computes initial shapes for a ShapeModel."""

    def __init__(self, model: ShapeModel, aliases: Mapping[str, Tuple[str, str]] = None):
        """
        Args:
            model: Model used to resolve landmark names
            aliases: Correspondence names that resolve to the midpoint of two
                     model landmarks (default: config.LANDMARK_ALIASES)
        """
        self.model = model
        self.aliases = dict(config.LANDMARK_ALIASES if aliases is None else aliases)

    def align_to_box(self, shape: np.ndarray, box) -> np.ndarray:
        return align_to_box(shape, box)

    def resolve_model_point(self, name: str, reference: Optional[np.ndarray] = None) -> np.ndarray:
        """
        Model-space position of a correspondence name.

        Args:
            name: Landmark identifier or alias
            reference: Shape to read positions from; None uses the model's mean shape

        Raises:
            NotFound: Neither the name nor the landmarks of its alias exist
        """
        if name in self.aliases:
            first, second = self.aliases[name]
            p1 = np.array(self.model.get_landmark_as_point(first, reference))
            p2 = np.array(self.model.get_landmark_as_point(second, reference))
            return (p1 + p2) / 2.0
        return np.array(self.model.get_landmark_as_point(name, reference))

    def estimate_transform(self, correspondences: LandmarkCollection,
                           reference: Optional[np.ndarray] = None) -> Tuple[float, float, float]:
        """
        Estimate (s, tx, ty) mapping the model's correspondence points onto the targets.

        Args:
            correspondences: Named target points in image coordinates
            reference: Shape the model points are read from; None uses the mean shape

        Raises:
            AlignmentError: No correspondences, or degenerate geometry on both axes
            NotFound: A correspondence name is unknown to the model
        """
        if reference is not None:
            reference = _check_shape(reference)
        if len(correspondences) == 0:
            raise AlignmentError("No correspondence landmarks given, cannot align the model")

        model_points = np.array([self.resolve_model_point(lm.name, reference) for lm in correspondences],
                                dtype=np.float64)
        target_points = np.array([lm.as_point() for lm in correspondences], dtype=np.float64)

        sx = classify_scale(calculate_scale_ratio(model_points[:, 0], target_points[:, 0]))
        sy = classify_scale(calculate_scale_ratio(model_points[:, 1], target_points[:, 1]))
        s = combine_scales(sx, sy)

        # Translation is measured after scaling: the correspondences' centroid
        # is not the point the shape is scaled about
        scaled = model_points * s
        tx = calculate_mean_translation(scaled[:, 0], target_points[:, 0])
        ty = calculate_mean_translation(scaled[:, 1], target_points[:, 1])

        logger.debug(f"Rigid alignment to {len(correspondences)} landmarks: s={s:.4f}, t=({tx:.2f}, {ty:.2f})")
        return s, tx, ty

    def align_to_landmarks(self, shape: np.ndarray, correspondences: LandmarkCollection) -> np.ndarray:
        """
        Scale and translate a shape so the model's correspondence points match the targets.

        The transform is estimated from the model's mean shape positions of the
        correspondence landmarks and then applied to shape.

        Args:
            shape: Column vector (2N, 1), usually the model's mean shape
            correspondences: Named target points in image coordinates

        Returns:
            aligned: New (2N, 1) float64 array, the input is not modified

        Raises:
            InvalidShape: shape is not a column vector
            AlignmentError: Scale not recoverable on either axis
            NotFound: A correspondence name is unknown to the model
        """
        shape = _check_shape(shape)
        s, tx, ty = self.estimate_transform(correspondences)

        aligned = np.asarray(shape).astype(np.float64, copy=True)
        n = aligned.shape[0] // 2
        aligned[:n] = aligned[:n] * s + tx
        aligned[n:] = aligned[n:] * s + ty
        return aligned
