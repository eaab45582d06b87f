"""Tests for transform chaining, re-centering and per-pair stats."""

import numpy as np
import pytest

from panochain.chain import (
    PairStats,
    PipelineStats,
    build_chain,
    choose_anchor,
    compose_chain,
    recenter_chain,
)
from panochain.errors import InputContractViolation
from panochain.geometry import ModelKind, identity, translation
from panochain.ransac import RobustEstimator

SIZES = [(100, 200)] * 3


def test_compose_chain_is_a_fold():
    locals_ = [identity(), translation(100, 0), translation(100, 10)]

    globals_ = compose_chain(locals_)

    assert len(globals_) == 3
    np.testing.assert_array_equal(globals_[0], identity())
    np.testing.assert_array_equal(globals_[1], translation(100, 0))
    np.testing.assert_array_equal(globals_[2], translation(200, 10))


def test_only_the_first_image_is_identity_before_recentering():
    locals_ = [identity()] + [translation(50, 0)] * 3

    globals_ = compose_chain(locals_)

    assert sum(np.allclose(T, identity()) for T in globals_) == 1


def test_failed_link_contributes_no_motion():
    globals_ = compose_chain([identity(), translation(80, 0), None])

    np.testing.assert_array_equal(globals_[2], globals_[1])


def test_build_chain_recenters_on_middle_image():
    locals_ = [identity(), translation(100, 0), translation(100, 0)]

    globals_, anchor = build_chain(locals_, SIZES)

    assert anchor == 1
    assert len(globals_) == 3
    np.testing.assert_allclose(globals_[0], translation(-100, 0))
    np.testing.assert_allclose(globals_[1], identity())
    np.testing.assert_allclose(globals_[2], translation(100, 0))


def test_anchor_is_median_by_horizontal_center():
    # Images ordered right to left on the panorama
    globals_ = [identity(), translation(-100, 0), translation(-200, 0), translation(-300, 0)]

    assert choose_anchor(globals_, [(100, 200)] * 4) == 2


def test_anchor_inverse_round_trip():
    locals_ = [identity(), translation(90, 3) @ np.diag([1.01, 0.99, 1.0]), translation(110, -2)]
    globals_ = compose_chain(locals_)
    anchor = choose_anchor(globals_, SIZES)

    recentered = recenter_chain(globals_, anchor)

    np.testing.assert_allclose(np.linalg.inv(globals_[anchor]) @ globals_[anchor], identity(),
                               atol=1e-12)
    np.testing.assert_allclose(recentered[anchor], identity(), atol=1e-12)


def test_mismatched_lengths_raise():
    with pytest.raises(InputContractViolation):
        build_chain([identity(), identity()], SIZES)


def test_translation_chain_recovered_from_correspondences():
    """Three images related by pure translations, 60 matches per pair."""
    rng = np.random.default_rng(11)
    shifts = [np.array([180.0, 4.0]), np.array([175.0, -6.0])]

    locals_ = [identity()]
    stats = PipelineStats(len(shifts))
    for pair, shift in enumerate(shifts):
        # Points of image n+1 and their positions in image n
        src = rng.uniform([0, 0], [120, 240], size=(60, 2))
        dst = src + shift + rng.normal(scale=0.1, size=src.shape)

        T, num_inliers = RobustEstimator(random_state=pair).estimate(src, dst, ModelKind.PROJECTIVE)
        assert T is not None and num_inliers >= 50
        locals_.append(T)
        stats.record(PairStats(pair, len(src), num_inliers, ModelKind.PROJECTIVE, T))

    globals_, anchor = build_chain(locals_, [(240, 300)] * 3)

    assert len(globals_) == 3
    assert len(stats) == 2
    assert anchor == 1
    expected = [-shifts[0], np.zeros(2), shifts[1]]
    for T, offset in zip(globals_, expected):
        origin = T @ np.array([0.0, 0.0, 1.0])
        np.testing.assert_allclose(origin[:2] / origin[2], offset, atol=1.0)


def test_pipeline_stats_is_write_once():
    stats = PipelineStats(2)
    stats.record(PairStats(0, 40, 30, ModelKind.AFFINE))

    with pytest.raises(InputContractViolation):
        stats.record(PairStats(0, 40, 31, ModelKind.AFFINE))
    with pytest.raises(InputContractViolation):
        stats.record(PairStats(2, 40, 31, ModelKind.AFFINE))

    assert not stats.complete
    stats.record(PairStats(1, 20, None, None, warning="failed"))
    assert stats.complete
    assert stats.matches == [40, 20]
    assert stats.inliers == [30, None]
    assert stats.mean_inlier_ratio() == pytest.approx(0.75)
    assert stats[1].failed
    assert stats.to_list()[0]['model'] == 'affine'
