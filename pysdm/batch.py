"""
Batch landmark detection over many images.

Each image goes through: load -> initialise (face box or correspondences)
-> rigid alignment -> cascade -> write landmarks and a result image.
Images are independent, so they are spread over a thread pool. Every worker
thread owns its own copy of the model's descriptor extractors.

Errors from a single image (no face, degenerate correspondences, extraction
failures) are logged and that image is skipped.
"""

import logging
import threading
import time
import numpy as np
import cv2
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, List, Optional, Sequence, Union

from . import config
from .core.landmarks import LandmarkCollection
from .core.shape_model import ShapeModel
from .descriptors import create_extractor
from .detection import Detected, FaceDetector, NotDetected
from .errors import FittingCancelled, SDMError
from .landmark_io import read_face_box, read_landmarks, write_landmarks
from .sdm import SDM, to_grayscale
from .visualization import draw_box, draw_landmarks, draw_named_landmarks

logger = logging.getLogger(__name__)

Initialization = Union[Detected, NotDetected, LandmarkCollection]
Initializer = Callable[[Path, np.ndarray], Initialization]


@dataclass
class BatchResult:
    """Outcome of a batch run, image paths per category."""
    processed: List[Path] = field(default_factory=list)
    skipped: List[Path] = field(default_factory=list)
    failed: List[Path] = field(default_factory=list)
    cancelled: bool = False

    def summary(self) -> str:
        return (f"{len(self.processed)} processed, {len(self.skipped)} skipped, "
                f"{len(self.failed)} failed" + (" (cancelled)" if self.cancelled else ""))


def gather_images(inputs: Sequence[Union[str, Path]]) -> List[Path]:
    """
    Expand the input arguments into a list of image paths.

    One argument may be a directory (all images in it, sorted) or a .lst/.txt
    file listing one image per line. Anything else is taken as image files.
    """
    inputs = [Path(p) for p in inputs]
    if len(inputs) == 1:
        source = inputs[0]
        if source.suffix.lower() in ('.lst', '.txt'):
            with open(source, 'r', encoding='utf-8') as f:
                lines = [line.strip() for line in f]
            return [Path(line) if Path(line).is_absolute() else source.parent / line
                    for line in lines if line and not line.startswith('#')]
        if source.is_dir():
            return sorted(p for p in source.iterdir()
                          if p.suffix.lower() in config.IMAGE_EXTENSIONS)
    return inputs


def detector_initializer(cascade_path, **detector_kwargs) -> Initializer:
    """Initialise from a cascade face detector; one detector per worker thread."""
    local = threading.local()

    def initialize(image_path: Path, image) -> Initialization:
        if not hasattr(local, 'detector'):
            local.detector = FaceDetector(cascade_path, **detector_kwargs)
        return local.detector.detect(to_grayscale(image))

    return initialize


def face_box_initializer(box_directory) -> Initializer:
    """Initialise from "<box_directory>/<image stem>.txt" face box files."""
    box_directory = Path(box_directory)

    def initialize(image_path: Path, image) -> Initialization:
        return read_face_box(box_directory / (image_path.stem + '.txt'))

    return initialize


def landmark_initializer(landmark_directory=None) -> Initializer:
    """
    Initialise from "<image stem>.txt" landmark files.

    Args:
        landmark_directory: Directory of the files; None looks next to the image
    """
    def initialize(image_path: Path, image) -> Initialization:
        directory = image_path.parent if landmark_directory is None else Path(landmark_directory)
        return read_landmarks(directory / (image_path.stem + '.txt'))

    return initialize


class BatchProcessor:
    """Runs the SDM fit over a list of images."""

    def __init__(self,
                 model: ShapeModel,
                 initializer: Initializer,
                 output_dir,
                 adaptive: bool = config.ADAPTIVE_FITTING,
                 num_workers: int = config.NUM_WORKERS,
                 draw: bool = True,
                 extractor_factory=create_extractor):
        """
        Args:
            model: Loaded model, shared read-only by all workers
            initializer: Callable(image_path, image) returning Detected,
                         NotDetected or a LandmarkCollection of correspondences
            output_dir: Directory for landmark files and result images
            adaptive: Adaptive window sizing and update scaling
            num_workers: Worker threads
            draw: Write result images
            extractor_factory: Creates the per-worker descriptor extractors
        """
        self.model = model
        self.initializer = initializer
        self.output_dir = Path(output_dir)
        self.adaptive = adaptive
        self.num_workers = max(1, int(num_workers))
        self.draw = draw
        self.extractor_factory = extractor_factory
        self._local = threading.local()

    def _worker_sdm(self) -> SDM:
        """The calling worker thread's own SDM instance."""
        sdm = getattr(self._local, 'sdm', None)
        if sdm is None:
            sdm = SDM(self.model.with_extractors(self.extractor_factory), adaptive=self.adaptive)
            self._local.sdm = sdm
        return sdm

    def process_image(self, image_path: Path, cancel_event=None) -> Optional[LandmarkCollection]:
        """
        Fit one image and write its outputs.

        Returns:
            landmarks: The fitted landmarks, or None if the image was skipped

        Raises:
            SDMError: Fitting failed for this image
            FileNotFoundError: The image could not be read
        """
        start = time.perf_counter()
        logger.info(f"Starting to process {image_path}")

        image = cv2.imread(str(image_path))
        if image is None:
            raise FileNotFoundError(f"Could not read image {image_path}")
        result_image = image.copy()
        output_image_path = self.output_dir / image_path.name

        initialization = self.initializer(image_path, image)
        sdm = self._worker_sdm()

        if isinstance(initialization, NotDetected):
            logger.info(f"No face found in {image_path.name}, writing the unmodified image")
            if self.draw:
                cv2.imwrite(str(output_image_path), result_image)
            return None

        if isinstance(initialization, LandmarkCollection):
            if initialization.is_empty():
                logger.info(f"No landmark information found for {image_path.name}. Skipping it.")
                return None
            initial_shape = sdm.aligner.align_to_landmarks(sdm.model.get_mean_shape(), initialization)
            if self.draw:
                draw_named_landmarks(result_image, initialization)
        else:
            initial_shape = sdm.aligner.align_to_box(sdm.model.get_mean_shape(), initialization.box)
            if self.draw:
                draw_box(result_image, initialization.box)

        shape = sdm.optimizer.optimize(initial_shape, to_grayscale(image), cancel_event)
        landmarks = sdm.to_landmarks(shape)

        write_landmarks(landmarks, self.output_dir / (image_path.stem + '.txt'))
        if self.draw:
            draw_landmarks(result_image, initial_shape, color=(0, 0, 255))
            draw_landmarks(result_image, shape, color=(0, 255, 0))
            cv2.imwrite(str(output_image_path), result_image)

        elapsed_ms = (time.perf_counter() - start) * 1000.0
        logger.info(f"Finished processing {image_path.name}. Elapsed time: {elapsed_ms:.0f}ms.")
        return landmarks

    def run(self, image_paths: Sequence[Path], cancel_event: Optional[threading.Event] = None) -> BatchResult:
        """
        Process all images, in parallel over num_workers threads.

        Results are collected in input order; processing order is not defined.
        """
        self.output_dir.mkdir(parents=True, exist_ok=True)
        if cancel_event is None:
            cancel_event = threading.Event()

        result = BatchResult()

        def task(image_path: Path):
            if cancel_event.is_set():
                raise FittingCancelled(f"Cancelled before {image_path.name}")
            return self.process_image(image_path, cancel_event)

        with ThreadPoolExecutor(max_workers=self.num_workers) as executor:
            futures = [(Path(p), executor.submit(task, Path(p))) for p in image_paths]
            for image_path, future in futures:
                try:
                    landmarks = future.result()
                except FittingCancelled:
                    result.cancelled = True
                    result.skipped.append(image_path)
                    continue
                except (SDMError, FileNotFoundError) as e:
                    logger.warning(f"{image_path.name}: {e}")
                    result.failed.append(image_path)
                    continue

                if landmarks is None:
                    result.skipped.append(image_path)
                else:
                    result.processed.append(image_path)

        logger.info(f"Batch finished: {result.summary()}")
        return result


def process_images(model: ShapeModel,
                   image_paths: Sequence[Path],
                   output_dir,
                   initializer: Initializer,
                   adaptive: bool = config.ADAPTIVE_FITTING,
                   num_workers: int = config.NUM_WORKERS,
                   cancel_event: Optional[threading.Event] = None,
                   draw: bool = True,
                   extractor_factory=create_extractor) -> BatchResult:
    """Convenience wrapper around BatchProcessor.run()."""
    processor = BatchProcessor(model, initializer, output_dir,
                               adaptive=adaptive, num_workers=num_workers, draw=draw,
                               extractor_factory=extractor_factory)
    return processor.run(image_paths, cancel_event)
