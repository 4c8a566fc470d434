"""
Model file IO for SDM landmark models.
"""

from .sdm_model_io import SDMModelLoader, SDMModelWriter

__all__ = ['SDMModelLoader', 'SDMModelWriter']
