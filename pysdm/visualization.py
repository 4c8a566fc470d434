"""
Drawing of shapes, face boxes and named landmarks.

Named landmarks are drawn as a 3x3 pixel symbol in a per-landmark colour so
that neighbouring points stay distinguishable. Symbols and colours come from
fixed registries built when the module is imported.
"""

import numpy as np
import cv2
from types import MappingProxyType
from typing import Tuple

from .core.landmarks import LandmarkCollection
from .core.alignment import box_to_tuple


def _symbol(rows) -> Tuple[bool, ...]:
    return tuple(bool(v) for row in rows for v in row)


# 3x3 masks, row-major, centred on the landmark
LANDMARK_SYMBOLS = MappingProxyType({
    "right.eye.pupil.center": _symbol([[0, 1, 0], [0, 1, 1], [0, 0, 0]]),
    "left.eye.pupil.center": _symbol([[0, 1, 0], [1, 1, 0], [0, 0, 0]]),
    "center.nose.tip": _symbol([[0, 0, 0], [0, 1, 0], [1, 0, 1]]),
    "right.lips.corner": _symbol([[0, 0, 1], [0, 1, 0], [0, 0, 1]]),
    "left.lips.corner": _symbol([[1, 0, 0], [0, 1, 0], [1, 0, 0]]),
    "right.eye.corner_outer": _symbol([[0, 1, 0], [0, 1, 1], [0, 1, 0]]),
    "left.eye.corner_outer": _symbol([[0, 1, 0], [1, 1, 0], [0, 1, 0]]),
    "center.lips.upper.outer": _symbol([[0, 0, 0], [1, 1, 1], [0, 1, 0]]),
    "right.nose.wing.tip": _symbol([[1, 0, 0], [1, 1, 1], [0, 0, 0]]),
    "left.nose.wing.tip": _symbol([[0, 0, 1], [1, 1, 1], [0, 0, 0]]),
    "right.ear.DONTKNOW": _symbol([[0, 1, 1], [0, 1, 0], [0, 1, 1]]),
    "left.ear.DONTKNOW": _symbol([[1, 1, 0], [0, 1, 0], [1, 1, 0]]),
})
UNKNOWN_SYMBOL = _symbol([[1, 0, 1], [0, 1, 0], [1, 0, 1]])

# Colours as (B, G, R) fractions in [0, 1]
LANDMARK_COLORS = MappingProxyType({
    "right.eye.pupil.center": (0.0, 0.0, 1.0),
    "left.eye.pupil.center": (1.0, 0.0, 0.0),
    "center.nose.tip": (0.0, 1.0, 0.0),
    "right.lips.corner": (0.0, 1.0, 1.0),
    "left.lips.corner": (1.0, 0.0, 1.0),
    "right.eye.corner_outer": (0.0, 0.0, 0.48),
    "left.eye.corner_outer": (1.0, 1.0, 0.0),
    "center.lips.upper.outer": (0.63, 0.75, 0.9),
    "right.nose.wing.tip": (0.27, 0.27, 0.67),
    "left.nose.wing.tip": (0.04, 0.78, 0.69),
    "right.ear.DONTKNOW": (1.0, 0.0, 0.52),
    "left.ear.DONTKNOW": (0.0, 0.6, 0.0),
})
UNKNOWN_COLOR = (0.35, 0.35, 0.35)


def get_symbol(name: str) -> Tuple[bool, ...]:
    return LANDMARK_SYMBOLS.get(name, UNKNOWN_SYMBOL)


def get_color(name: str) -> Tuple[float, float, float]:
    return LANDMARK_COLORS.get(name, UNKNOWN_COLOR)


def draw_named_landmarks(image: np.ndarray, landmarks: LandmarkCollection) -> np.ndarray:
    """
    Draw every landmark with its symbol and colour, in place.

    Pixels falling outside the image are skipped.

    Args:
        image: BGR image (H, W, 3), uint8
        landmarks: Landmarks to draw
    """
    height, width = image.shape[:2]
    for landmark in landmarks:
        symbol = get_symbol(landmark.name)
        color = np.round(255.0 * np.array(get_color(landmark.name))).astype(np.uint8)
        cx, cy = int(round(landmark.x)), int(round(landmark.y))
        pos = 0
        for row in range(cy - 1, cy + 2):
            for col in range(cx - 1, cx + 2):
                if symbol[pos] and 0 <= row < height and 0 <= col < width:
                    image[row, col] = color
                pos += 1
    return image


def draw_landmarks(image: np.ndarray,
                   shape: np.ndarray,
                   color: Tuple[int, int, int] = (0, 255, 0),
                   radius: int = 2) -> np.ndarray:
    """
    Draw a (2N, 1) shape as filled circles, in place.

    Args:
        image: BGR image
        shape: Shape vector (2N, 1)
        color: Landmark color (B, G, R)
        radius: Landmark radius in pixels
    """
    shape = np.asarray(shape).reshape(-1)
    n = shape.size // 2
    for x, y in zip(shape[:n], shape[n:]):
        if np.isfinite(x) and np.isfinite(y):
            cv2.circle(image, (int(round(x)), int(round(y))), radius, color, -1)
    return image


def draw_box(image: np.ndarray, box, color: Tuple[int, int, int] = (0, 0, 255)) -> np.ndarray:
    """Draw a face box (x, y, width, height), in place."""
    x, y, width, height = (int(round(v)) for v in box_to_tuple(box))
    cv2.rectangle(image, (x, y), (x + width, y + height), color)
    return image
