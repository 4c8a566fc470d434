"""
pysdm - Configuration

Module-level settings for landmark fitting, descriptor defaults, batch
processing and logging. Modify these values to adjust behaviour.
"""

import logging
import os
import sys

# ============================================================================
# Application Metadata
# ============================================================================

VERSION = "0.3.0"
APP_NAME = "detect-landmarks"

# ============================================================================
# Fitting Settings
# ============================================================================

# Adaptive mode scales the support window and the shape update with the
# face size measured on the current shape. Models trained on size-normalised
# updates need this on.
ADAPTIVE_FITTING = True

# Descriptor window sizes are aligned to this many pixels (HOG cell layout)
CELL_GRANULARITY = 3

# Landmark indices used to measure the face size during adaptive fitting:
# inner eye corners and outer mouth corners of the 20-point model layout
EYE_ANCHOR_INDICES = (8, 9)
MOUTH_ANCHOR_INDICES = (11, 12)

# Composite correspondence identifiers that the model does not contain
# directly: alias -> pair of model landmarks whose midpoint is used
LANDMARK_ALIASES = {
    "le": ("37", "40"),
    "re": ("46", "43"),
}

# ============================================================================
# Descriptor Defaults
# ============================================================================

# Used when a model file omits a parameter and for non-adaptive fitting
HOG_NUM_CELLS = 3
HOG_NUM_BINS = 9
DEFAULT_WINDOW_HALF = 15

# ============================================================================
# Face Detection Settings
# ============================================================================

DETECTOR_SCALE_FACTOR = 1.1
DETECTOR_MIN_NEIGHBORS = 3
DETECTOR_MIN_SIZE = (30, 30)

# ============================================================================
# Batch Processing
# ============================================================================

# Number of worker threads fitting images in parallel
# Each worker owns its own descriptor extractors
NUM_WORKERS = 4

# Image extensions picked up when the input is a directory
IMAGE_EXTENSIONS = (".png", ".jpg", ".jpeg", ".bmp", ".tif", ".tiff")

# ============================================================================
# Logging Configuration
# ============================================================================

# Logging level: DEBUG, INFO, WARNING, ERROR, CRITICAL
LOG_LEVEL = "INFO"

# Optional log file path (None = console only)
LOG_FILE = None

LOG_FORMAT = '%(asctime)s - %(levelname)s - %(name)s - %(message)s'


def setup_logging(level=None, log_file=None):
    """
    Configure the root logger with a console handler and an optional file handler.

    Args:
        level: Level name or number (default: LOG_LEVEL)
        log_file: Optional path of a log file (default: LOG_FILE)

    Returns:
        The root logger
    """
    if level is None:
        level = LOG_LEVEL
    if isinstance(level, str):
        numeric_level = getattr(logging, level.upper(), None)
        if not isinstance(numeric_level, int):
            raise ValueError(f"Invalid log level: {level}")
        level = numeric_level
    if log_file is None:
        log_file = LOG_FILE

    formatter = logging.Formatter(LOG_FORMAT)

    root_logger = logging.getLogger()
    # Remove existing handlers to prevent duplicate messages
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
    root_logger.setLevel(level)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if log_file:
        log_dir = os.path.dirname(os.path.abspath(log_file))
        os.makedirs(log_dir, exist_ok=True)
        file_handler = logging.FileHandler(log_file, mode='w', encoding='utf-8')
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)

    return root_logger
