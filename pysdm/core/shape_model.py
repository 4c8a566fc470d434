"""
SDM Shape Model - mean shape, landmark identifiers and regression cascade

A shape is a column vector of length 2N:

    [x_0, ..., x_{N-1}, y_0, ..., y_{N-1}]^T

where landmark i is named identifiers[i]. The mean shape lives in a
normalised [-0.5, 0.5] x [-0.5, 0.5] frame.

Each cascade step holds a regressor matrix of shape (D+1, 2N): D rows of
weights applied to the stacked descriptors of all landmarks, plus a final
bias row. The step's descriptor extractor computes those D features.

The model is immutable after construction and can be shared by any number
of concurrent fitting calls.
"""

import logging
import numpy as np
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, Optional, Sequence, Tuple

from .landmarks import LandmarkCollection
from ..descriptors import DescriptorExtractor, create_extractor
from ..errors import FormatError, NotFound
from ..models.sdm_model_io import SDMModelLoader, SDMModelWriter

logger = logging.getLogger(__name__)


def _frozen(array: np.ndarray) -> np.ndarray:
    array = np.array(array, copy=True)
    array.setflags(write=False)
    return array


@dataclass(frozen=True, eq=False)
class RegressionStage:
    """
    One cascade step: descriptor extractor plus linear regressor.

    The descriptor type and parameters written to model files are read from
    the extractor itself.
    """
    weights: np.ndarray                     # (D+1, 2N), last row is the bias
    extractor: DescriptorExtractor

    @property
    def descriptor_type(self) -> str:
        return self.extractor.descriptor_type

    @property
    def extractor_parameters(self) -> Dict[str, int]:
        return dict(self.extractor.parameters)

    @property
    def feature_dim(self) -> int:
        """Number of feature rows D (without the bias row)."""
        return self.weights.shape[0] - 1


class ShapeModel:
    """Supervised Descent Method landmark model."""

    def __init__(self,
                 mean_shape: np.ndarray,
                 identifiers: Sequence[str],
                 stages: Sequence[RegressionStage]):
        """
        Args:
            mean_shape: Mean shape, (2N, 1) or (2N,)
            identifiers: N unique landmark names, in shape order
            stages: Cascade steps in execution order

        Raises:
            FormatError: Dimensions of the components do not agree
        """
        identifiers = [str(name) for name in identifiers]
        num_landmarks = len(identifiers)

        if len(set(identifiers)) != num_landmarks:
            raise FormatError("Landmark identifiers must be unique")

        mean_shape = np.asarray(mean_shape)
        if mean_shape.size != 2 * num_landmarks or (mean_shape.ndim == 2 and mean_shape.shape[1] != 1):
            raise FormatError(
                f"Mean shape of shape {mean_shape.shape} does not match "
                f"{num_landmarks} landmarks (expected ({2 * num_landmarks}, 1))"
            )

        for i, stage in enumerate(stages):
            weights = np.asarray(stage.weights)
            if weights.ndim != 2 or weights.shape[1] != 2 * num_landmarks or weights.shape[0] < 1:
                raise FormatError(
                    f"Regressor of cascade step {i} has shape {weights.shape}, "
                    f"expected (D+1, {2 * num_landmarks})"
                )
            feature_dim = stage.extractor.descriptor_dim * num_landmarks
            if weights.shape[0] - 1 != feature_dim:
                raise FormatError(
                    f"Regressor of cascade step {i} has {weights.shape[0] - 1} feature rows but "
                    f"{stage.extractor!r} produces {feature_dim} for {num_landmarks} landmarks"
                )

        self._mean_shape = _frozen(mean_shape.reshape(-1, 1))
        self._identifiers: Tuple[str, ...] = tuple(identifiers)
        self._index = {name: i for i, name in enumerate(identifiers)}
        self._stages: Tuple[RegressionStage, ...] = tuple(
            RegressionStage(weights=_frozen(stage.weights), extractor=stage.extractor)
            for stage in stages
        )

    # ------------------------------------------------------------------
    # Loading and saving
    # ------------------------------------------------------------------

    @classmethod
    def load(cls, model_path) -> "ShapeModel":
        """
        Load a model file and create the descriptor extractor of every step.

        Raises:
            FormatError: Malformed or inconsistent file, unknown descriptor type
            FileNotFoundError: The file does not exist
        """
        loader = SDMModelLoader(str(model_path))

        stages = []
        for stage in loader.stages:
            extractor = create_extractor(stage['descriptor_type'], stage['descriptor_parameters'])
            stages.append(RegressionStage(weights=stage['regressor'], extractor=extractor))

        model = cls(loader.mean_shape, loader.identifiers, stages)
        logger.info(
            f"Loaded SDM model {Path(model_path).name}: {model.get_num_landmarks()} landmarks, "
            f"{model.get_num_cascade_steps()} cascade steps"
        )
        return model

    def save(self, output_path, comment: str = ""):
        """Write the model so that load() reproduces it exactly."""
        stages = [
            {
                'descriptor_type': stage.descriptor_type,
                'descriptor_parameters': stage.extractor_parameters,
                'regressor': stage.weights,
            }
            for stage in self._stages
        ]
        SDMModelWriter(self._identifiers, self._mean_shape, stages).save(output_path, comment)
        logger.info(f"Saved SDM model to {output_path}")

    def with_extractors(self,
                        factory: Callable[[str, Dict[str, int]], DescriptorExtractor] = create_extractor
                        ) -> "ShapeModel":
        """
        Return a copy of this model that owns new descriptor extractors.

        Args:
            factory: Called as factory(descriptor_type, parameters) per step
        """
        stages = [
            RegressionStage(weights=stage.weights,
                            extractor=factory(stage.descriptor_type, stage.extractor_parameters))
            for stage in self._stages
        ]
        return ShapeModel(self._mean_shape, self._identifiers, stages)

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    @property
    def identifiers(self) -> Tuple[str, ...]:
        return self._identifiers

    def get_num_landmarks(self) -> int:
        return len(self._identifiers)

    def get_num_cascade_steps(self) -> int:
        return len(self._stages)

    def get_mean_shape(self) -> np.ndarray:
        """Returns a writable copy of the mean shape, (2N, 1)."""
        return self._mean_shape.copy()

    def get_mean_as_points(self) -> np.ndarray:
        """Mean shape as an (N, 2) array of (x, y)."""
        return self.shape_to_points(self._mean_shape)

    def _stage(self, cascade_step: int) -> RegressionStage:
        if not 0 <= cascade_step < len(self._stages):
            raise IndexError(
                f"Cascade step {cascade_step} out of range [0, {len(self._stages)})"
            )
        return self._stages[cascade_step]

    def get_stage(self, cascade_step: int) -> RegressionStage:
        return self._stage(cascade_step)

    def get_regressor_data(self, cascade_step: int) -> np.ndarray:
        """Read-only regressor matrix (D+1, 2N) of a cascade step."""
        return self._stage(cascade_step).weights

    def get_descriptor_extractor(self, cascade_step: int) -> DescriptorExtractor:
        return self._stage(cascade_step).extractor

    def get_descriptor_type(self, cascade_step: int) -> str:
        return self._stage(cascade_step).descriptor_type

    def get_descriptor_parameters(self, cascade_step: int) -> Dict[str, int]:
        return self._stage(cascade_step).extractor_parameters

    # ------------------------------------------------------------------
    # Shape <-> named landmarks
    # ------------------------------------------------------------------

    def shape_to_points(self, shape: np.ndarray) -> np.ndarray:
        """Convert a (2N, 1) shape to (N, 2) points in identifier order."""
        shape = np.asarray(shape).reshape(-1)
        n = self.get_num_landmarks()
        if shape.size != 2 * n:
            raise ValueError(f"Shape has {shape.size} values, expected {2 * n}")
        return np.stack([shape[:n], shape[n:]], axis=1)

    def get_as_landmarks(self, shape: Optional[np.ndarray] = None) -> LandmarkCollection:
        """
        Get a shape as named landmarks.

        Args:
            shape: Shape vector (2N, 1); None returns the mean shape
        """
        if shape is None:
            shape = self._mean_shape
        return LandmarkCollection.from_points(self._identifiers, self.shape_to_points(shape))

    def get_landmark_as_point(self, identifier: str, shape: Optional[np.ndarray] = None) -> Tuple[float, float]:
        """
        Position of one named landmark.

        Args:
            identifier: Landmark name
            shape: Shape vector (2N, 1); None uses the mean shape

        Raises:
            NotFound: The model has no landmark with this name
        """
        index = self._index.get(identifier)
        if index is None:
            raise NotFound(f"Landmark '{identifier}' is not part of the model")
        if shape is None:
            shape = self._mean_shape
        shape = np.asarray(shape).reshape(-1)
        n = self.get_num_landmarks()
        return float(shape[index]), float(shape[index + n])

    def get_info(self) -> dict:
        """Get model information."""
        return {
            'n_landmarks': self.get_num_landmarks(),
            'n_cascade_steps': self.get_num_cascade_steps(),
            'identifiers': list(self._identifiers),
            'descriptor_types': [stage.descriptor_type for stage in self._stages],
            'regressor_shapes': [stage.weights.shape for stage in self._stages],
        }

    def __repr__(self):
        return (f"ShapeModel({self.get_num_landmarks()} landmarks, "
                f"{self.get_num_cascade_steps()} cascade steps)")
