import numpy as np
import pytest

from pysdm.core import (Landmark, LandmarkCollection, RigidAligner, ShapeModel,
                        ValidScale, DegenerateScale, align_to_box)
from pysdm.core.alignment import classify_scale, combine_scales, is_normal
from pysdm.errors import AlignmentError, InvalidShape, NotFound

from conftest import IDENTIFIERS


def two_point_model(points):
    points = np.asarray(points, dtype=np.float64)
    shape = np.concatenate([points[:, 0], points[:, 1]]).reshape(-1, 1)
    return ShapeModel(shape, ["a", "b", "c"][:len(points)], [])


def test_box_corner_lands_on_expected_pixel():
    shape = np.array([[-0.4], [0.4], [-0.4], [0.4]])
    aligned = align_to_box(shape, (100, 50, 200, 200))
    assert aligned[0, 0] == pytest.approx(120.0)
    assert aligned[2, 0] == pytest.approx(70.0)
    assert aligned[1, 0] == pytest.approx(280.0)
    assert aligned[3, 0] == pytest.approx(230.0)


def test_box_alignment_is_pure(mean_shape):
    before = mean_shape.copy()
    first = align_to_box(mean_shape, (10, 20, 64, 80))
    second = align_to_box(mean_shape, (10, 20, 64, 80))
    np.testing.assert_array_equal(first, second)
    np.testing.assert_array_equal(mean_shape, before)
    assert first is not mean_shape


def test_box_alignment_accepts_box_objects(mean_shape):
    class Box:
        x, y, width, height = 5, 6, 10, 20

    np.testing.assert_allclose(align_to_box(mean_shape, Box()), align_to_box(mean_shape, (5, 6, 10, 20)))


@pytest.mark.parametrize("bad", [np.zeros(6), np.zeros((6, 2)), np.zeros((5, 1))])
def test_non_column_shapes_are_rejected(bad):
    with pytest.raises(InvalidShape):
        align_to_box(bad, (0, 0, 10, 10))


def test_two_point_example_recovers_scale_and_translation():
    model = two_point_model([(0, 0), (1, 0)])
    aligner = RigidAligner(model)
    targets = LandmarkCollection([Landmark("a", 10, 5), Landmark("b", 12, 5)])

    s, tx, ty = aligner.estimate_transform(targets)
    assert s == pytest.approx(2.0)
    assert tx == pytest.approx(10.0)
    assert ty == pytest.approx(5.0)

    aligned = aligner.align_to_landmarks(model.get_mean_shape(), targets)
    np.testing.assert_allclose(model.shape_to_points(aligned), [[10, 5], [12, 5]])


@pytest.mark.parametrize("s,tx,ty", [(1.0, 0.0, 0.0), (150.0, 320.0, 240.0), (0.25, -3.5, 7.0)])
def test_synthetic_transform_is_recovered(mean_shape, s, tx, ty):
    model = ShapeModel(mean_shape, IDENTIFIERS, [])
    points = model.get_mean_as_points()
    targets = LandmarkCollection(
        Landmark(name, s * x + tx, s * y + ty) for name, (x, y) in zip(IDENTIFIERS[4:9], points[4:9])
    )
    est_s, est_tx, est_ty = RigidAligner(model).estimate_transform(targets)
    assert est_s == pytest.approx(s)
    assert est_tx == pytest.approx(tx)
    assert est_ty == pytest.approx(ty)


def test_coincident_correspondences_fail_and_leave_shape_untouched():
    model = two_point_model([(0, 0), (0, 0)])
    shape = model.get_mean_shape()
    before = shape.copy()
    targets = LandmarkCollection([Landmark("a", 50, 50), Landmark("b", 50, 50)])

    with pytest.raises(AlignmentError):
        RigidAligner(model).align_to_landmarks(shape, targets)
    np.testing.assert_array_equal(shape, before)


def test_empty_correspondences_fail(mean_shape):
    model = ShapeModel(mean_shape, IDENTIFIERS, [])
    with pytest.raises(AlignmentError):
        RigidAligner(model).align_to_landmarks(mean_shape, LandmarkCollection())


def test_unknown_correspondence_name(mean_shape):
    model = ShapeModel(mean_shape, IDENTIFIERS, [])
    targets = LandmarkCollection([Landmark("nose", 1, 2), Landmark("37", 3, 4)])
    with pytest.raises(NotFound):
        RigidAligner(model).align_to_landmarks(mean_shape, targets)


def test_eye_aliases_resolve_to_corner_midpoints(mean_shape):
    model = ShapeModel(mean_shape, IDENTIFIERS, [])
    aligner = RigidAligner(model)
    p37 = np.array(model.get_landmark_as_point("37"))
    p40 = np.array(model.get_landmark_as_point("40"))
    p43 = np.array(model.get_landmark_as_point("43"))
    p46 = np.array(model.get_landmark_as_point("46"))

    np.testing.assert_allclose(aligner.resolve_model_point("le", mean_shape), (p37 + p40) / 2)
    np.testing.assert_allclose(aligner.resolve_model_point("re", mean_shape), (p46 + p43) / 2)

    targets = LandmarkCollection([
        Landmark("le", *((p37 + p40) / 2 * 100 + 50)),
        Landmark("re", *((p46 + p43) / 2 * 100 + 50)),
    ])
    s, tx, ty = aligner.estimate_transform(targets)
    assert s == pytest.approx(100.0)
    assert (tx, ty) == (pytest.approx(50.0), pytest.approx(50.0))


def test_scale_classification():
    assert classify_scale(2.0) == ValidScale(2.0)
    assert classify_scale(float("nan")) == DegenerateScale()
    assert classify_scale(float("inf")) == DegenerateScale()
    assert classify_scale(0.0) == DegenerateScale()
    assert not is_normal(5e-324)

    assert combine_scales(ValidScale(2.0), ValidScale(4.0)) == pytest.approx(3.0)
    assert combine_scales(DegenerateScale(), ValidScale(4.0)) == pytest.approx(4.0)
    assert combine_scales(ValidScale(2.0), DegenerateScale()) == pytest.approx(2.0)
    with pytest.raises(AlignmentError):
        combine_scales(DegenerateScale(), DegenerateScale())


def test_correspondences_are_resolved_on_the_mean_shape(mean_shape):
    model = ShapeModel(mean_shape, IDENTIFIERS, [])
    aligner = RigidAligner(model)
    points = model.get_mean_as_points()
    targets = LandmarkCollection(
        Landmark(name, 80 * x + 40, 80 * y + 30) for name, (x, y) in zip(IDENTIFIERS[:4], points[:4])
    )
    shifted = mean_shape + 0.25

    aligned = aligner.align_to_landmarks(shifted, targets)
    np.testing.assert_allclose(aligned, shifted * 80 + np.vstack([np.full((13, 1), 40.0),
                                                                   np.full((13, 1), 30.0)]))
    assert aligner.estimate_transform(targets) == pytest.approx((80.0, 40.0, 30.0))
    assert aligner.estimate_transform(targets, shifted) != pytest.approx((80.0, 40.0, 30.0))
