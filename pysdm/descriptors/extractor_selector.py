"""
Descriptor extractor selection by the type tag stored in model files.
"""
import logging
from typing import Dict, Optional

from .base_extractor import DescriptorExtractor
from .hog_extractor import HogDescriptorExtractor
from .sift_extractor import SiftDescriptorExtractor
from ..errors import FormatError

logger = logging.getLogger(__name__)

EXTRACTOR_TYPES = {
    HogDescriptorExtractor.descriptor_type: HogDescriptorExtractor,
    SiftDescriptorExtractor.descriptor_type: SiftDescriptorExtractor,
}


def create_extractor(descriptor_type: str,
                     parameters: Optional[Dict[str, int]] = None) -> DescriptorExtractor:
    """
    Create a new descriptor extractor instance.

    Args:
        descriptor_type: Type tag, e.g. "hog" or "sift" (case insensitive)
        parameters: Constructor keyword arguments (snake_case names)

    Returns:
        extractor: Fresh extractor owned by the caller

    Raises:
        FormatError: Unknown type tag or parameters the extractor does not accept
    """
    extractor_cls = EXTRACTOR_TYPES.get(descriptor_type.lower())
    if extractor_cls is None:
        raise FormatError(
            f"Unknown descriptor type '{descriptor_type}', "
            f"expected one of {sorted(EXTRACTOR_TYPES)}"
        )

    parameters = dict(parameters or {})
    try:
        extractor = extractor_cls(**parameters)
    except (TypeError, ValueError) as e:
        raise FormatError(f"Invalid parameters for descriptor type '{descriptor_type}': {e}") from e

    logger.debug(f"Created {extractor!r}")
    return extractor
