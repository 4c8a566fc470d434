"""
pysdm core - shape model, rigid alignment and cascaded optimizer
"""

from .landmarks import Landmark, LandmarkCollection
from .shape_model import ShapeModel, RegressionStage
from .alignment import RigidAligner, align_to_box, ValidScale, DegenerateScale
from .optimizer import CascadedOptimizer, compute_face_size, compute_window_half

__all__ = [
    'Landmark', 'LandmarkCollection',
    'ShapeModel', 'RegressionStage',
    'RigidAligner', 'align_to_box', 'ValidScale', 'DegenerateScale',
    'CascadedOptimizer', 'compute_face_size', 'compute_window_half',
]
