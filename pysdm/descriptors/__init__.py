"""
Descriptor extractors used by the cascade stages.
"""

from .base_extractor import DescriptorExtractor
from .hog_extractor import HogDescriptorExtractor
from .sift_extractor import SiftDescriptorExtractor
from .extractor_selector import create_extractor, EXTRACTOR_TYPES

__all__ = [
    'DescriptorExtractor',
    'HogDescriptorExtractor',
    'SiftDescriptorExtractor',
    'create_extractor',
    'EXTRACTOR_TYPES',
]
