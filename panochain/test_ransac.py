"""Tests for RANSAC estimation and model fallback."""

import numpy as np
import pytest

from panochain.errors import InputContractViolation
from panochain.geometry import ModelKind, apply_transform, translation
from panochain.ransac import RobustEstimator

H_TRUE = np.array([
    [1.01, 0.02, 30.0],
    [0.01, 0.99, -5.0],
    [1e-5, 2e-5, 1.0]
])


def make_correspondences(n=100, outlier_fraction=0.3, seed=0, T=H_TRUE):
    rng = np.random.default_rng(seed)
    src = rng.uniform([0, 0], [640, 480], size=(n, 2))
    dst = apply_transform(src, T)
    n_outliers = int(n * outlier_fraction)
    dst[:n_outliers] = rng.uniform([0, 0], [640, 480], size=(n_outliers, 2))
    return src, dst, n_outliers


def test_projective_with_outliers():
    src, dst, n_outliers = make_correspondences()

    T, num_inliers = RobustEstimator(random_state=0).estimate(src, dst, ModelKind.PROJECTIVE)

    assert T is not None
    assert num_inliers >= len(src) - n_outliers
    clean = slice(n_outliers, None)
    errors = np.linalg.norm(apply_transform(src[clean], T) - dst[clean], axis=1)
    assert errors.max() < 0.5


def test_too_few_points_returns_no_transform():
    src, dst, _ = make_correspondences(n=3, outlier_fraction=0.0)

    T, num_inliers = RobustEstimator(random_state=0).estimate(src, dst, 'projective')

    assert T is None
    assert num_inliers == 0


def test_three_points_fall_back_to_affine():
    src = np.array([[0.0, 0.0], [100.0, 10.0], [30.0, 80.0]])
    dst = apply_transform(src, translation(12, -4))

    T, num_inliers, kind = RobustEstimator(random_state=0).estimate_with_fallback(src, dst)

    assert kind is ModelKind.AFFINE
    assert num_inliers == 3
    np.testing.assert_allclose(apply_transform(src, T), dst, atol=1e-9)


def test_collinear_points_fall_back_to_similarity():
    src = np.column_stack([np.linspace(0, 100, 10), np.linspace(0, 50, 10)])
    dst = src + [5.0, 7.0]

    T, num_inliers, kind = RobustEstimator(random_state=0).estimate_with_fallback(src, dst)

    assert kind is ModelKind.SIMILARITY
    assert num_inliers == 10
    np.testing.assert_allclose(T, translation(5, 7), atol=1e-9)


def test_every_model_failing_gives_none():
    T, num_inliers, kind = RobustEstimator(random_state=0).estimate_with_fallback(
        [[1.0, 2.0]], [[3.0, 4.0]]
    )
    assert (T, num_inliers, kind) == (None, 0, None)


def test_same_seed_is_reproducible():
    src, dst, _ = make_correspondences(outlier_fraction=0.5, seed=4)

    T1, n1 = RobustEstimator(random_state=7).estimate(src, dst)
    T2, n2 = RobustEstimator(random_state=7).estimate(src, dst)

    assert n1 == n2
    np.testing.assert_array_equal(T1, T2)


def test_trial_budget_bounds_search():
    src, dst, _ = make_correspondences(outlier_fraction=0.6, seed=5)

    T, num_inliers = RobustEstimator(max_trials=1, random_state=0).estimate(src, dst)

    assert T is None or num_inliers >= 4


def test_outlier_free_data_stops_early():
    src, dst, _ = make_correspondences(outlier_fraction=0.0, seed=2)
    estimator = RobustEstimator(max_trials=5000, random_state=0)
    fits = []
    fit = estimator._fit
    estimator._fit = lambda *args: fits.append(args[0]) or fit(*args)

    T, num_inliers = estimator.estimate(src, dst)

    assert T is not None
    assert num_inliers == len(src)
    assert len(fits) < 10


def test_trials_needed_follows_confidence_bound():
    estimator = RobustEstimator(max_trials=5000, confidence=99.9)

    assert estimator._trials_needed(1.0, 4) == 1
    assert estimator._trials_needed(0.5, 4) == 108
    assert estimator._trials_needed(0.0, 4) == 5000
    assert estimator._trials_needed(0.5, 2) < estimator._trials_needed(0.5, 4)


def test_input_contract():
    estimator = RobustEstimator()
    with pytest.raises(InputContractViolation):
        estimator.estimate(np.ones((5, 2)), np.ones((4, 2)))
    with pytest.raises(InputContractViolation):
        estimator.estimate(np.ones((5, 2)), np.ones((5, 2)), 'rigid')
    with pytest.raises(InputContractViolation):
        RobustEstimator(max_distance=0)
    with pytest.raises(InputContractViolation):
        RobustEstimator(confidence=100)
