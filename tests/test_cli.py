import logging

import cv2
import numpy as np
import pytest

from pysdm import config
from pysdm.cli import main
from pysdm.core import RegressionStage, ShapeModel
from pysdm.descriptors import HogDescriptorExtractor
from pysdm.detection import FaceDetector

from conftest import IDENTIFIERS


@pytest.fixture(autouse=True)
def restore_logging():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    for handler in root.handlers[:]:
        root.removeHandler(handler)
        handler.close()
    for handler in handlers:
        root.addHandler(handler)
    root.setLevel(level)


@pytest.fixture
def model_file(tmp_path, mean_shape):
    hog = HogDescriptorExtractor(num_cells=2, num_bins=4)
    weights = np.zeros((hog.descriptor_dim * len(IDENTIFIERS) + 1, 2 * len(IDENTIFIERS)))
    stage = RegressionStage(weights, hog)
    path = tmp_path / "model.txt"
    ShapeModel(mean_shape, IDENTIFIERS, [stage, stage]).save(path)
    return path


@pytest.fixture
def inputs(tmp_path, gray_image):
    images = tmp_path / "images"
    boxes = tmp_path / "boxes"
    images.mkdir()
    boxes.mkdir()
    cv2.imwrite(str(images / "face.png"), gray_image)
    (boxes / "face.txt").write_text("100 60 120 120\n")
    return images, boxes


def test_fit_with_face_boxes(model_file, inputs, tmp_path, capsys):
    images, boxes = inputs
    output = tmp_path / "out"
    code = main(["-i", str(images), "-m", str(model_file), "-g", str(boxes),
                 "-t", "rect-face-box", "-o", str(output), "-j", "1"])
    assert code == 0
    assert (output / "face.txt").is_file()
    assert (output / "face.png").is_file()
    assert "1 processed" in capsys.readouterr().out


def test_initialization_source_is_required(model_file, inputs, tmp_path):
    images, boxes = inputs
    with pytest.raises(SystemExit):
        main(["-i", str(images), "-m", str(model_file), "-o", str(tmp_path)])
    with pytest.raises(SystemExit):
        main(["-i", str(images), "-m", str(model_file), "-o", str(tmp_path),
              "-f", "cascade.xml", "-g", str(boxes), "-t", "rect-face-box"])
    with pytest.raises(SystemExit):
        main(["-i", str(images), "-m", str(model_file), "-o", str(tmp_path), "-g", str(boxes)])


def test_unloadable_model_fails_startup(inputs, tmp_path):
    images, boxes = inputs
    bad = tmp_path / "bad.txt"
    bad.write_text("numLandmarks two\n")
    for model in (bad, tmp_path / "missing.txt"):
        assert main(["-i", str(images), "-m", str(model), "-g", str(boxes),
                     "-t", "rect-face-box", "-o", str(tmp_path / "out")]) == 1


def test_missing_face_detector(model_file, inputs, tmp_path):
    images, _ = inputs
    assert main(["-i", str(images), "-m", str(model_file), "-f", str(tmp_path / "nope.xml"),
                 "-o", str(tmp_path / "out")]) == 1
    with pytest.raises(FileNotFoundError):
        FaceDetector(tmp_path / "nope.xml")


def test_setup_logging(tmp_path):
    log_file = tmp_path / "logs" / "run.log"
    root = config.setup_logging("debug", str(log_file))
    assert root.level == logging.DEBUG
    assert len(root.handlers) == 2
    logging.getLogger("pysdm.test").debug("hello")
    for handler in root.handlers:
        handler.flush()
    assert "hello" in log_file.read_text()

    with pytest.raises(ValueError):
        config.setup_logging("LOUD")
