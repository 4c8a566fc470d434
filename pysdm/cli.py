"""
detect-landmarks - run an SDM landmark model over images

Usage:
    detect-landmarks -i images/ -m sdm_model.txt -f haarcascade_frontalface_alt2.xml -o out/
    detect-landmarks -i images.lst -m sdm_model.txt -g boxes/ -t rect-face-box -o out/
    detect-landmarks -i frame.png -m sdm_model.txt -g . -t SimpleModelLandmark -o out/
"""

import argparse
import logging
import signal
import sys
import threading

from . import config
from .batch import (BatchProcessor, detector_initializer, face_box_initializer,
                    gather_images, landmark_initializer)
from .core.shape_model import ShapeModel
from .detection import FaceDetector
from .errors import FormatError

logger = logging.getLogger(__name__)

LANDMARK_TYPES = ('rect-face-box', 'SimpleModelLandmark')


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog=config.APP_NAME,
        description='Detect facial landmarks with a Supervised Descent Method model'
    )
    parser.add_argument('-v', '--verbose', nargs='?', const='DEBUG', default=config.LOG_LEVEL,
                        help='Log level: ERROR, WARNING, INFO, DEBUG (default: %(default)s)')
    parser.add_argument('-i', '--input', nargs='+', required=True,
                        help='One or more images, a directory, or a .lst/.txt file listing images')
    parser.add_argument('-m', '--model', required=True, help='SDM model file to load')
    parser.add_argument('-f', '--face-detector',
                        help='OpenCV cascade XML for face detection. Either -f or -g is required')
    parser.add_argument('-g', '--face-initialization',
                        help='Directory with face boxes or landmarks to initialize the model. '
                             'Either -f or -g is required')
    parser.add_argument('-t', '--landmark-type', choices=LANDMARK_TYPES,
                        help='Type of the files given with -g')
    parser.add_argument('-o', '--output', required=True, help='Output directory for images and landmarks')
    parser.add_argument('-j', '--workers', type=int, default=config.NUM_WORKERS,
                        help='Worker threads (default: %(default)s)')
    parser.add_argument('--non-adaptive', action='store_true',
                        help='Use the extractors\' configured window sizes and unscaled updates')
    parser.add_argument('--no-images', action='store_true', help='Only write landmark files')
    parser.add_argument('--log-file', help='Also write the log to this file')
    return parser


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if (args.face_detector is None) == (args.face_initialization is None):
        parser.error("specify either a face-detector (-f) or face-initialization (-g) as input")
    if args.face_initialization is not None and args.landmark_type is None:
        parser.error("-g requires a landmark type (-t)")

    try:
        config.setup_logging(args.verbose, args.log_file)
    except ValueError as e:
        parser.error(str(e))

    logger.info(f"{config.APP_NAME} v{config.VERSION}")

    try:
        model = ShapeModel.load(args.model)
    except (FormatError, FileNotFoundError) as e:
        logger.error(f"Could not load the model: {e}")
        return 1

    if args.face_detector is not None:
        try:
            FaceDetector(args.face_detector)
        except FileNotFoundError as e:
            logger.error(str(e))
            return 1
        initializer = detector_initializer(args.face_detector)
    elif args.landmark_type == 'rect-face-box':
        initializer = face_box_initializer(args.face_initialization)
    else:
        initializer = landmark_initializer(args.face_initialization)

    image_paths = gather_images(args.input)
    if not image_paths:
        logger.error("No input images found")
        return 1
    logger.info(f"Processing {len(image_paths)} images with {args.workers} workers")

    cancel_event = threading.Event()

    def handle_interrupt(signum, frame):
        logger.warning("Interrupted, finishing the current cascade steps and stopping")
        cancel_event.set()

    previous_handler = signal.signal(signal.SIGINT, handle_interrupt)
    try:
        processor = BatchProcessor(model, initializer, args.output,
                                   adaptive=not args.non_adaptive,
                                   num_workers=args.workers,
                                   draw=not args.no_images)
        result = processor.run(image_paths, cancel_event)
    finally:
        signal.signal(signal.SIGINT, previous_handler)

    print(result.summary())
    return 130 if result.cancelled else 0


if __name__ == "__main__":
    sys.exit(main())
