"""
Named landmarks - the boundary representation of a fitted shape.

Inside the fitting engine a shape is a (2N, 1) column vector. Outside of it,
callers deal with named points: correspondence landmarks used for alignment
and the final result written to disk or drawn on an image.
"""

import numpy as np
from typing import Dict, Iterator, Optional, Tuple


class Landmark:
    """A single named point. The z coordinate is carried along but unused."""

    def __init__(self, name: str, x: float, y: float, z: float = 0.0, visible: bool = True):
        self.name = str(name)
        self.position = np.array([x, y, z], dtype=np.float64)
        self.visible = bool(visible)

    @property
    def x(self) -> float:
        return float(self.position[0])

    @property
    def y(self) -> float:
        return float(self.position[1])

    def as_point(self) -> Tuple[float, float]:
        return self.x, self.y

    def __eq__(self, other):
        if not isinstance(other, Landmark):
            return NotImplemented
        return (self.name == other.name and self.visible == other.visible
                and np.array_equal(self.position, other.position))

    def __repr__(self):
        return f"Landmark({self.name!r}, x={self.x:.3f}, y={self.y:.3f}, visible={self.visible})"


class LandmarkCollection:
    """
    Landmarks keyed by unique name, in insertion order.

    Inserting a landmark with a name that is already present replaces it.
    """

    def __init__(self, landmarks=None):
        self._landmarks: Dict[str, Landmark] = {}
        for landmark in landmarks or []:
            self.insert(landmark)

    def insert(self, landmark: Landmark):
        self._landmarks[landmark.name] = landmark

    def get(self, name: str) -> Optional[Landmark]:
        return self._landmarks.get(name)

    def names(self):
        return list(self._landmarks)

    def is_empty(self) -> bool:
        return not self._landmarks

    def to_points(self) -> np.ndarray:
        """Positions as an (n, 2) array in insertion order."""
        if not self._landmarks:
            return np.zeros((0, 2))
        return np.array([lm.as_point() for lm in self._landmarks.values()])

    def __contains__(self, name) -> bool:
        return name in self._landmarks

    def __getitem__(self, name: str) -> Landmark:
        return self._landmarks[name]

    def __iter__(self) -> Iterator[Landmark]:
        return iter(self._landmarks.values())

    def __len__(self) -> int:
        return len(self._landmarks)

    def __eq__(self, other):
        if not isinstance(other, LandmarkCollection):
            return NotImplemented
        return list(self) == list(other)

    def __repr__(self):
        return f"LandmarkCollection({len(self)} landmarks)"

    @classmethod
    def from_points(cls, names, points) -> "LandmarkCollection":
        """Build a collection from parallel sequences of names and (x, y) points."""
        points = np.asarray(points, dtype=np.float64).reshape(-1, 2)
        names = list(names)
        if len(names) != len(points):
            raise ValueError(f"Got {len(names)} names but {len(points)} points")
        return cls(Landmark(name, x, y) for name, (x, y) in zip(names, points))
