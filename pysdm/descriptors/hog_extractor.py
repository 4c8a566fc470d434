"""
HOG descriptor extractor backed by OpenCV.

For every point a square patch of side 2 * window_half is cut out of the
image around the point (border pixels are replicated for points near the
edge) and described by one HOG block of num_cells x num_cells cells.
The descriptor length therefore does not depend on the window size, which
lets the optimizer shrink the window between cascade stages.
"""
import numpy as np
import cv2
from typing import Dict, Optional

from .base_extractor import DescriptorExtractor
from .. import config
from ..errors import ExtractionError


class HogDescriptorExtractor(DescriptorExtractor):
    """HOG features around landmark points."""

    descriptor_type = "hog"

    def __init__(self,
                 num_cells: int = config.HOG_NUM_CELLS,
                 num_bins: int = config.HOG_NUM_BINS,
                 window_half: int = config.DEFAULT_WINDOW_HALF):
        """
        Args:
            num_cells: Cells per patch side
            num_bins: Orientation bins per cell
            window_half: Default half window size in pixels
        """
        super().__init__(window_half)
        if num_cells <= 0 or num_bins <= 0:
            raise ValueError(f"num_cells and num_bins must be positive, got {num_cells}, {num_bins}")
        self.num_cells = int(num_cells)
        self.num_bins = int(num_bins)

    @property
    def descriptor_dim(self) -> int:
        return self.num_cells * self.num_cells * self.num_bins

    @property
    def parameters(self) -> Dict[str, int]:
        return {
            'num_cells': self.num_cells,
            'num_bins': self.num_bins,
            'window_half': self.window_half,
        }

    def _create_hog(self, window_half: int):
        # Cell size must divide the patch, round the patch up to a multiple
        cell_size = max(1, int(np.ceil(2 * window_half / self.num_cells)))
        patch_size = cell_size * self.num_cells
        hog = cv2.HOGDescriptor(
            (patch_size, patch_size),   # winSize
            (patch_size, patch_size),   # blockSize
            (cell_size, cell_size),     # blockStride
            (cell_size, cell_size),     # cellSize
            self.num_bins
        )
        return hog, patch_size

    def get_descriptors(self,
                        image: np.ndarray,
                        points: np.ndarray,
                        window_half: Optional[int] = None) -> np.ndarray:
        window_half = self._resolve_window(window_half)
        if image is None or image.ndim != 2:
            raise ExtractionError("HOG extraction needs a single-channel (grayscale) image")
        if image.dtype != np.uint8:
            image = np.clip(image, 0, 255).astype(np.uint8)

        points = np.asarray(points, dtype=np.float32).reshape(-1, 2)

        # A new descriptor object per call keeps the extractor reentrant
        hog, patch_size = self._create_hog(window_half)

        descriptors = np.empty((len(points), self.descriptor_dim), dtype=np.float32)
        for i, (x, y) in enumerate(points):
            if not (np.isfinite(x) and np.isfinite(y)):
                raise ExtractionError(f"Point {i} is not finite: ({x}, {y})")
            patch = cv2.getRectSubPix(image, (patch_size, patch_size), (float(x), float(y)))
            features = hog.compute(patch)
            if features is None or features.size != self.descriptor_dim:
                raise ExtractionError(
                    f"HOG returned {0 if features is None else features.size} values "
                    f"for point {i}, expected {self.descriptor_dim}"
                )
            descriptors[i] = features.ravel()

        return descriptors
