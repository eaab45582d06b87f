"""Tests for transform models and fitting."""

import numpy as np
import pytest

from panochain.errors import InputContractViolation, InsufficientCorrespondences, NumericalDegeneracy
from panochain.geometry import (
    ModelKind,
    apply_transform,
    fit_affine,
    fit_model,
    fit_projective,
    fit_similarity,
    is_degenerate_sample,
    is_invertible,
    transformed_extent,
    translation,
)

H_TRUE = np.array([
    [1.02, 0.03, 25.0],
    [-0.01, 0.98, -7.0],
    [2e-5, -1e-5, 1.0]
])


@pytest.fixture
def points():
    rng = np.random.default_rng(3)
    return rng.uniform([0, 0], [640, 480], size=(12, 2))


def test_model_kind_coerce_and_min_points():
    assert ModelKind.coerce('Affine') is ModelKind.AFFINE
    assert ModelKind.coerce(ModelKind.SIMILARITY) is ModelKind.SIMILARITY
    assert [kind.min_points for kind in ModelKind] == [4, 3, 2]
    with pytest.raises(InputContractViolation):
        ModelKind.coerce('perspective')


def test_fit_projective_recovers_homography(points):
    H = fit_projective(points, apply_transform(points, H_TRUE))
    np.testing.assert_allclose(H, H_TRUE, atol=1e-8)


def test_fit_affine_recovers_affine(points):
    A = np.array([[0.9, 0.1, 3.0], [-0.2, 1.1, 8.0], [0.0, 0.0, 1.0]])
    np.testing.assert_allclose(fit_affine(points, apply_transform(points, A)), A, atol=1e-9)


def test_fit_similarity_recovers_rotation_and_scale(points):
    angle, scale = np.deg2rad(10), 1.3
    S = np.array([
        [scale * np.cos(angle), -scale * np.sin(angle), -4.0],
        [scale * np.sin(angle), scale * np.cos(angle), 12.0],
        [0.0, 0.0, 1.0]
    ])
    np.testing.assert_allclose(fit_similarity(points, apply_transform(points, S)), S, atol=1e-9)


def test_fit_model_requires_enough_points(points):
    with pytest.raises(InsufficientCorrespondences):
        fit_model('projective', points[:3], points[:3])
    with pytest.raises(InsufficientCorrespondences):
        fit_model(ModelKind.SIMILARITY, points[:1], points[:1])


def test_collinear_points_are_degenerate_for_affine():
    line = np.column_stack([np.arange(5.0), 2 * np.arange(5.0)])
    with pytest.raises(NumericalDegeneracy):
        fit_affine(line, line + 1)


def test_is_degenerate_sample():
    square = np.array([[0, 0], [10, 0], [10, 10], [0, 10]], dtype=float)
    three_on_a_line = np.array([[0, 0], [5, 0], [10, 0], [0, 10]], dtype=float)

    assert not is_degenerate_sample(ModelKind.PROJECTIVE, square)
    assert is_degenerate_sample(ModelKind.PROJECTIVE, three_on_a_line)
    assert is_degenerate_sample(ModelKind.AFFINE, three_on_a_line[:3])
    assert is_degenerate_sample(ModelKind.SIMILARITY, np.array([[1.0, 1.0], [1.0, 1.0]]))


def test_apply_transform_sends_points_at_infinity_to_inf():
    H = np.array([[1.0, 0.0, 0.0], [0.0, 1.0, 0.0], [-0.01, 0.0, 1.0]])
    result = apply_transform([[100.0, 5.0], [0.0, 5.0]], H)

    assert np.all(np.isinf(result[0]))
    np.testing.assert_allclose(result[1], [0.0, 5.0])


def test_transformed_extent_of_translated_image():
    assert transformed_extent(translation(10, -5), (40, 60)) == (10, 70, -5, 35)


def test_is_invertible():
    assert is_invertible(np.eye(3))
    assert not is_invertible(np.zeros((3, 3)))
    assert not is_invertible(np.full((3, 3), np.nan))


def test_bad_point_shapes_raise():
    with pytest.raises(InputContractViolation):
        apply_transform(np.ones((4, 3)), np.eye(3))
