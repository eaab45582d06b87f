"""
RANSAC estimation of projective, affine and similarity transforms
using only NumPy.
"""

import logging

import numpy as np

from .errors import InputContractViolation, InsufficientCorrespondences, NumericalDegeneracy
from .geometry import (
    FALLBACK_ORDER,
    ModelKind,
    as_points,
    fit_model,
    is_degenerate_sample,
    is_invertible,
    reprojection_errors,
)

logger = logging.getLogger(__name__)


class RobustEstimator:
    """
    Transform estimation using the RANSAC algorithm.

    Minimal random samples are fitted repeatedly; the model that agrees
    with the most correspondences (reprojection error below max_distance)
    wins and is refined on its inliers.
    """

    def __init__(self, max_distance=3.0, max_trials=5000, confidence=99.9,
                 random_state=None):
        """
        Initialize the robust estimator.

        Args:
            max_distance: Maximum reprojection error (pixels) for an inlier
            max_trials: Upper bound on the number of random trials
            confidence: Desired confidence (percent) that the best sample is outlier-free
            random_state: Seed or numpy Generator for reproducible sampling
        """
        if max_distance <= 0:
            raise InputContractViolation("max_distance must be positive")
        if max_trials < 1:
            raise InputContractViolation("max_trials must be at least 1")
        if not 0 < confidence < 100:
            raise InputContractViolation("confidence must be in the open interval (0, 100)")

        self.max_distance = max_distance
        self.max_trials = int(max_trials)
        self.confidence = confidence
        self.rng = np.random.default_rng(random_state)

    def estimate(self, src_points, dst_points, model_kind=ModelKind.PROJECTIVE):
        """
        Find the transform mapping src_points onto dst_points.

        Args:
            src_points: Source points (N x 2)
            dst_points: Destination points (N x 2)
            model_kind: ModelKind or its name

        Returns:
            T: Transform matrix (3 x 3), or None if no model could be found
            num_inliers: Number of inliers supporting T (0 when T is None)
        """
        kind = ModelKind.coerce(model_kind)
        src_points = as_points(src_points)
        dst_points = as_points(dst_points)

        if len(src_points) != len(dst_points):
            raise InputContractViolation(
                "Source and destination points must have same length"
            )

        sample_size = kind.min_points
        n_points = len(src_points)
        if n_points < sample_size:
            logger.debug("%s needs %d points, got %d", kind.value, sample_size, n_points)
            return None, 0

        best_T = None
        best_inliers = None
        best_num_inliers = 0
        trials_needed = self.max_trials

        trial = 0
        while trial < min(self.max_trials, trials_needed):
            trial += 1

            indices = self.rng.choice(n_points, sample_size, replace=False)
            src_sample = src_points[indices]
            dst_sample = dst_points[indices]

            if is_degenerate_sample(kind, src_sample) or is_degenerate_sample(kind, dst_sample):
                continue

            T = self._fit(kind, src_sample, dst_sample)
            if T is None:
                continue

            inliers = reprojection_errors(src_points, dst_points, T) < self.max_distance
            num_inliers = int(np.sum(inliers))

            if num_inliers > best_num_inliers:
                best_num_inliers = num_inliers
                best_inliers = inliers
                best_T = T
                trials_needed = self._trials_needed(num_inliers / n_points, sample_size)

        logger.debug("%s RANSAC: %d trials, %d/%d inliers",
                     kind.value, trial, best_num_inliers, n_points)

        if best_T is None or best_num_inliers < sample_size:
            return None, 0

        best_T, best_num_inliers = self._refine(kind, src_points, dst_points,
                                                best_T, best_inliers)
        return best_T, best_num_inliers

    def estimate_with_fallback(self, src_points, dst_points, model_kind=ModelKind.PROJECTIVE):
        """
        Estimate a transform, dropping to simpler models on failure.

        Projective falls back to affine, affine to similarity.

        Returns:
            T: Transform matrix or None if every model failed
            num_inliers: Inlier count of the returned model (0 on failure)
            kind: ModelKind that produced T, or None
        """
        kind = ModelKind.coerce(model_kind)
        for candidate in FALLBACK_ORDER[FALLBACK_ORDER.index(kind):]:
            T, num_inliers = self.estimate(src_points, dst_points, candidate)
            if T is not None:
                if candidate is not kind:
                    logger.info("Fell back from %s to %s model", kind.value, candidate.value)
                return T, num_inliers, candidate
        return None, 0, None

    def _fit(self, kind, src_pts, dst_pts):
        try:
            T = fit_model(kind, src_pts, dst_pts)
        except (InsufficientCorrespondences, NumericalDegeneracy):
            return None
        if not is_invertible(T):
            return None
        return T

    def _refine(self, kind, src_points, dst_points, T, inliers):
        """Refit on all inliers; keep the sample model if the refit is worse."""
        num_inliers = int(np.sum(inliers))
        refined = self._fit(kind, src_points[inliers], dst_points[inliers])
        if refined is None:
            return T, num_inliers

        refined_inliers = int(np.sum(
            reprojection_errors(src_points, dst_points, refined) < self.max_distance
        ))
        if refined_inliers < num_inliers:
            return T, num_inliers
        return refined, refined_inliers

    def _trials_needed(self, inlier_ratio, sample_size):
        """Standard RANSAC bound: log(1 - p) / log(1 - w^s)."""
        p = self.confidence / 100.0
        good_sample = inlier_ratio ** sample_size
        if good_sample >= 1.0:
            return 1
        if good_sample <= 0.0:
            return self.max_trials
        with np.errstate(divide='ignore'):
            needed = np.log(1 - p) / np.log(1 - good_sample)
        if not np.isfinite(needed):
            return self.max_trials
        return int(np.ceil(needed))
