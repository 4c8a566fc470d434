"""
Simple landmark text files.

Landmark files hold one landmark per line, "name x y". Face box files hold a
single line "x y width height". Lines starting with # are ignored.
"""

import logging
import math
from pathlib import Path
from typing import Union

from .core.landmarks import Landmark, LandmarkCollection
from .detection import Detected, NotDetected
from .errors import SDMError

logger = logging.getLogger(__name__)


class LandmarkFileError(SDMError):
    """A landmark or face box file could not be parsed."""


def _content_lines(path: Path):
    with open(path, 'r', encoding='utf-8') as f:
        for line_number, line in enumerate(f, start=1):
            stripped = line.strip()
            if stripped and not stripped.startswith('#'):
                yield line_number, stripped


def read_landmarks(path) -> LandmarkCollection:
    """
    Read a landmark file.

    Returns:
        landmarks: Collection in file order; empty if the file does not exist

    Raises:
        LandmarkFileError: A line is not "name x y" with finite coordinates
    """
    path = Path(path)
    landmarks = LandmarkCollection()
    if not path.is_file():
        logger.debug(f"No landmark file {path}")
        return landmarks

    for line_number, line in _content_lines(path):
        tokens = line.split()
        if len(tokens) != 3:
            raise LandmarkFileError(f"{path}:{line_number}: expected 'name x y', got '{line}'")
        name, x, y = tokens
        try:
            x, y = float(x), float(y)
        except ValueError:
            raise LandmarkFileError(f"{path}:{line_number}: invalid coordinates in '{line}'") from None
        if not (math.isfinite(x) and math.isfinite(y)):
            raise LandmarkFileError(f"{path}:{line_number}: coordinates must be finite, got '{line}'")
        landmarks.insert(Landmark(name, x, y))
    return landmarks


def write_landmarks(landmarks: LandmarkCollection, path):
    """Write landmarks as "name x y" lines."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, 'w', encoding='utf-8') as f:
        for landmark in landmarks:
            f.write(f"{landmark.name} {landmark.x!r} {landmark.y!r}\n")


def read_face_box(path) -> Union[Detected, NotDetected]:
    """
    Read a face box file.

    Returns:
        Detected(box), or NotDetected() when the file is missing or empty
    """
    path = Path(path)
    if not path.is_file():
        return NotDetected()

    for line_number, line in _content_lines(path):
        tokens = line.split()
        if len(tokens) != 4:
            raise LandmarkFileError(f"{path}:{line_number}: expected 'x y width height', got '{line}'")
        try:
            x, y, width, height = (int(round(float(t))) for t in tokens)
        except (ValueError, OverflowError):
            raise LandmarkFileError(f"{path}:{line_number}: invalid face box '{line}'") from None
        if width <= 0 or height <= 0:
            return NotDetected()
        return Detected((x, y, width, height))
    return NotDetected()
