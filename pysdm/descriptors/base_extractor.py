"""
Base descriptor extractor interface.

Defines the capability every descriptor extractor (HOG, SIFT, ...) offers to
the cascaded optimizer: features for a set of 2D points in a grayscale image.
"""
import numpy as np
from abc import ABC, abstractmethod
from typing import Dict, Optional


class DescriptorExtractor(ABC):
    """
    Abstract base class for descriptor extractors.

    Implementations must not keep per-call scratch state on the instance:
    the same extractor may be asked for descriptors of different images
    from different threads.
    """

    #: Type tag written to model files
    descriptor_type = "unknown"

    def __init__(self, window_half: int):
        """
        Args:
            window_half: Default half window size in pixels, used when the
                         optimizer does not pass one (non-adaptive fitting)
        """
        if window_half <= 0:
            raise ValueError(f"window_half must be positive, got {window_half}")
        self.window_half = int(window_half)

    @abstractmethod
    def get_descriptors(self,
                        image: np.ndarray,
                        points: np.ndarray,
                        window_half: Optional[int] = None) -> np.ndarray:
        """
        Compute one descriptor per point.

        Args:
            image: Grayscale image (H, W) as uint8
            points: Point positions, shape (n_points, 2) as (x, y)
            window_half: Half size of the support window around each point.
                         None uses the extractor's configured default.

        Returns:
            descriptors: Array of shape (n_points, descriptor_dim), float32
        """

    @property
    @abstractmethod
    def descriptor_dim(self) -> int:
        """Length of the descriptor computed for one point."""

    @property
    def parameters(self) -> Dict[str, int]:
        """Parameters stored in the model file to recreate this extractor."""
        return {'window_half': self.window_half}

    def _resolve_window(self, window_half: Optional[int]) -> int:
        if window_half is None:
            return self.window_half
        window_half = int(window_half)
        if window_half <= 0:
            raise ValueError(f"window_half must be positive, got {window_half}")
        return window_half

    def __repr__(self):
        params = ", ".join(f"{k}={v}" for k, v in self.parameters.items())
        return f"{type(self).__name__}({params})"
