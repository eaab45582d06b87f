"""
Non-robust least-squares transform estimation with conditioning checks.
"""

import logging

import numpy as np

from .errors import InputContractViolation, InsufficientCorrespondences, NumericalDegeneracy
from .geometry import (
    ModelKind,
    as_points,
    fit_model,
    identity,
    is_invertible,
    linear_part_health,
)

logger = logging.getLogger(__name__)


class DirectEstimator:
    """
    Direct (all-points) transform fit.

    An affine fit is attempted first and rejected when its linear part is
    near-singular or badly conditioned; a similarity fit is the fallback
    and the identity the last resort. A solver failure (singular system)
    maps straight to the identity. Data problems never raise.
    """

    def __init__(self, min_abs_det=1e-6, max_condition=1e6):
        """
        Args:
            min_abs_det: Smallest acceptable |det| of the affine linear part
            max_condition: Largest acceptable condition number of the linear part
        """
        self.min_abs_det = min_abs_det
        self.max_condition = max_condition

    def estimate(self, src_points, dst_points):
        """Return the transform mapping src_points onto dst_points (3 x 3)."""
        T, _ = self.estimate_with_model(src_points, dst_points)
        return T

    def estimate_with_model(self, src_points, dst_points):
        """
        Same as estimate() but also report the model that was used.

        Returns:
            T: Transform matrix (3 x 3), identity on failure
            kind: ModelKind used, or None when the identity was substituted
        """
        src_points = as_points(src_points)
        dst_points = as_points(dst_points)
        if len(src_points) != len(dst_points):
            raise InputContractViolation(
                "Source and destination points must have same length"
            )

        n = len(src_points)
        if n >= ModelKind.AFFINE.min_points:
            try:
                T = fit_model(ModelKind.AFFINE, src_points, dst_points)
                if self.is_healthy(T):
                    return T, ModelKind.AFFINE
                logger.info("Affine fit is ill-conditioned, trying similarity")
            except (NumericalDegeneracy, np.linalg.LinAlgError) as e:
                logger.info("Affine fit failed: %s", e)
                return identity(), None

        try:
            if n >= ModelKind.SIMILARITY.min_points:
                T = fit_model(ModelKind.SIMILARITY, src_points, dst_points)
                if is_invertible(T):
                    return T, ModelKind.SIMILARITY
                logger.info("Similarity fit is singular")
        except (InsufficientCorrespondences, NumericalDegeneracy, np.linalg.LinAlgError) as e:
            logger.info("Direct fit failed: %s", e)

        return identity(), None

    def is_healthy(self, T):
        """Check determinant and condition number of the 2x2 linear part."""
        det, cond = linear_part_health(T)
        if not np.isfinite(det) or abs(det) < self.min_abs_det:
            return False
        if not np.isfinite(cond) or cond > self.max_condition:
            return False
        return True
