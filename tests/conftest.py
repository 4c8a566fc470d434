from __future__ import annotations

from typing import List, Optional

import numpy as np
import pytest

from pysdm.core import RegressionStage, ShapeModel
from pysdm.descriptors import DescriptorExtractor

NUM_LANDMARKS = 13
IDENTIFIERS = ["37", "40", "43", "46"] + [f"p{i}" for i in range(4, NUM_LANDMARKS)]


class StubExtractor(DescriptorExtractor):
    """Constant descriptors; remembers the window of every call."""

    descriptor_type = "stub"

    def __init__(self, dim: int = 2, value: float = 0.0, window_half: int = 9):
        super().__init__(window_half)
        self.dim = dim
        self.value = value
        self.windows: List[Optional[int]] = []

    @property
    def descriptor_dim(self) -> int:
        return self.dim

    def get_descriptors(self, image, points, window_half=None):
        self.windows.append(window_half)
        return np.full((len(points), self.dim), self.value, dtype=np.float32)


class FailingExtractor(StubExtractor):
    def get_descriptors(self, image, points, window_half=None):
        raise RuntimeError("extractor exploded")


def make_mean_shape(num_landmarks: int = NUM_LANDMARKS) -> np.ndarray:
    i = np.arange(num_landmarks)
    xs = -0.4 + 0.8 * i / (num_landmarks - 1)
    ys = -0.4 + 0.8 * ((i * 5) % num_landmarks) / (num_landmarks - 1)
    return np.concatenate([xs, ys]).reshape(-1, 1)


def make_stage(bias: np.ndarray, extractor: DescriptorExtractor, num_landmarks: int = NUM_LANDMARKS):
    dim = extractor.descriptor_dim * num_landmarks
    weights = np.zeros((dim + 1, 2 * num_landmarks))
    weights[-1] = np.asarray(bias).reshape(-1)
    return RegressionStage(weights=weights, extractor=extractor)


def stub_factory(descriptor_type, parameters):
    return StubExtractor()


@pytest.fixture
def mean_shape() -> np.ndarray:
    return make_mean_shape()


@pytest.fixture
def bias() -> np.ndarray:
    return np.linspace(-0.01, 0.01, 2 * NUM_LANDMARKS)


@pytest.fixture
def stub_model(mean_shape, bias) -> ShapeModel:
    stages = [make_stage(bias, StubExtractor()) for _ in range(3)]
    return ShapeModel(mean_shape, IDENTIFIERS, stages)


@pytest.fixture
def gray_image() -> np.ndarray:
    rng = np.random.default_rng(0)
    image = rng.integers(0, 256, size=(240, 320), dtype=np.uint8)
    image[60:180, 100:220] //= 2
    return image
