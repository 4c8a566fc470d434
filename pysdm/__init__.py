"""
pysdm - Supervised Descent Method facial landmark detection

Usage:
    from pysdm import SDM, ShapeModel

    model = ShapeModel.load("sdm_model.txt")
    sdm = SDM(model)
    shape = sdm.fit_from_box(image, (x, y, width, height))
    landmarks = sdm.to_landmarks(shape)
"""

from .config import VERSION as __version__
from .core import (Landmark, LandmarkCollection, ShapeModel, RegressionStage,
                   RigidAligner, CascadedOptimizer, align_to_box)
from .descriptors import DescriptorExtractor, create_extractor
from .errors import (SDMError, FormatError, InvalidShape, AlignmentError,
                     NotFound, ExtractionError, FittingCancelled)
from .sdm import SDM, fit_from_box, fit_from_landmarks, to_landmarks

__all__ = [
    'SDM', 'fit_from_box', 'fit_from_landmarks', 'to_landmarks',
    'ShapeModel', 'RegressionStage', 'RigidAligner', 'CascadedOptimizer', 'align_to_box',
    'Landmark', 'LandmarkCollection',
    'DescriptorExtractor', 'create_extractor',
    'SDMError', 'FormatError', 'InvalidShape', 'AlignmentError',
    'NotFound', 'ExtractionError', 'FittingCancelled',
]
