import threading
from pathlib import Path

import cv2
import numpy as np
import pytest

from pysdm.batch import (BatchProcessor, face_box_initializer, gather_images,
                         landmark_initializer, process_images)
from pysdm.core import ShapeModel
from pysdm.descriptors import HogDescriptorExtractor
from pysdm.landmark_io import read_landmarks

from conftest import IDENTIFIERS, make_stage, stub_factory


@pytest.fixture
def image_dir(tmp_path, gray_image) -> Path:
    images = tmp_path / "images"
    images.mkdir()
    for name in ("a.png", "b.png"):
        cv2.imwrite(str(images / name), cv2.cvtColor(gray_image, cv2.COLOR_GRAY2BGR))
    (images / "broken.png").write_bytes(b"not an image")
    (images / "notes.md").write_text("ignored")
    return images


@pytest.fixture
def box_dir(tmp_path) -> Path:
    boxes = tmp_path / "boxes"
    boxes.mkdir()
    (boxes / "a.txt").write_text("100 60 120 120\n")
    (boxes / "broken.txt").write_text("100 60 120 120\n")
    return boxes


def test_gather_images(image_dir, tmp_path):
    assert [p.name for p in gather_images([image_dir])] == ["a.png", "b.png", "broken.png"]

    listing = tmp_path / "images.lst"
    listing.write_text("# frames\nimages/b.png\n\nimages/a.png\n")
    assert gather_images([listing]) == [tmp_path / "images/b.png", tmp_path / "images/a.png"]

    files = [image_dir / "a.png", image_dir / "b.png"]
    assert gather_images(files) == files


def test_batch_with_face_boxes(stub_model, image_dir, box_dir, tmp_path):
    output = tmp_path / "out"
    result = process_images(stub_model, gather_images([image_dir]), output,
                            face_box_initializer(box_dir), num_workers=2,
                            extractor_factory=stub_factory)

    assert result.processed == [image_dir / "a.png"]
    assert result.skipped == [image_dir / "b.png"]
    assert result.failed == [image_dir / "broken.png"]
    assert not result.cancelled

    landmarks = read_landmarks(output / "a.txt")
    assert landmarks.names() == IDENTIFIERS
    assert (output / "a.png").is_file()
    # no face: the image is passed through unchanged
    np.testing.assert_array_equal(cv2.imread(str(output / "b.png")), cv2.imread(str(image_dir / "b.png")))
    assert not (output / "b.txt").exists()


def test_batch_with_landmarks(stub_model, image_dir, tmp_path):
    landmark_dir = tmp_path / "lms"
    landmark_dir.mkdir()
    (landmark_dir / "a.txt").write_text("le 130 100\nre 190 102\n")
    (landmark_dir / "b.txt").write_text("le 130 100\n")

    processor = BatchProcessor(stub_model, landmark_initializer(landmark_dir), tmp_path / "out",
                               num_workers=1, draw=False, extractor_factory=stub_factory)
    result = processor.run([image_dir / "a.png", image_dir / "b.png"])

    assert result.processed == [image_dir / "a.png"]
    assert result.failed == [image_dir / "b.png"]
    assert not (tmp_path / "out" / "a.png").exists()


def test_missing_landmarks_skip_image(stub_model, image_dir, tmp_path):
    processor = BatchProcessor(stub_model, landmark_initializer(), tmp_path / "out",
                               extractor_factory=stub_factory)
    result = processor.run([image_dir / "a.png"])
    assert result.skipped == [image_dir / "a.png"]


def test_cancelled_batch(stub_model, image_dir, box_dir, tmp_path):
    cancel = threading.Event()
    cancel.set()
    result = process_images(stub_model, [image_dir / "a.png", image_dir / "b.png"], tmp_path / "out",
                            face_box_initializer(box_dir), cancel_event=cancel,
                            extractor_factory=stub_factory)
    assert result.cancelled
    assert result.skipped == [image_dir / "a.png", image_dir / "b.png"]
    assert "cancelled" in result.summary()


def test_workers_get_their_own_extractors(stub_model, image_dir, box_dir, tmp_path):
    processor = BatchProcessor(stub_model, face_box_initializer(box_dir), tmp_path / "out",
                               extractor_factory=stub_factory)
    sdm = processor._worker_sdm()
    assert processor._worker_sdm() is sdm
    assert sdm.model.get_descriptor_extractor(0) is not stub_model.get_descriptor_extractor(0)


def test_bad_landmarks_fail_only_their_image(stub_model, image_dir, tmp_path):
    landmark_dir = tmp_path / "lms"
    landmark_dir.mkdir()
    (landmark_dir / "a.txt").write_text("37 inf 100\n46 190 140\n")
    (landmark_dir / "b.txt").write_text("le 130 100\nre 190 102\n")

    result = process_images(stub_model, [image_dir / "a.png", image_dir / "b.png"], tmp_path / "out",
                            landmark_initializer(landmark_dir), num_workers=1,
                            extractor_factory=stub_factory)
    assert result.failed == [image_dir / "a.png"]
    assert result.processed == [image_dir / "b.png"]


def test_batch_with_model_extractors(mean_shape, image_dir, box_dir, tmp_path):
    hog = HogDescriptorExtractor(num_cells=2, num_bins=4, window_half=9)
    model = ShapeModel(mean_shape, IDENTIFIERS, [make_stage(np.zeros(2 * len(IDENTIFIERS)), hog)] * 2)
    model.save(tmp_path / "model.txt")

    result = process_images(ShapeModel.load(tmp_path / "model.txt"), [image_dir / "a.png"],
                            tmp_path / "out", face_box_initializer(box_dir), num_workers=2)
    assert result.processed == [image_dir / "a.png"]
    assert result.failed == []
