"""
Descriptor matching with a distance threshold, Lowe's ratio test
and a uniqueness (cross-check) constraint.
"""

import logging

import numpy as np
from scipy.spatial.distance import cdist

from .errors import InputContractViolation

logger = logging.getLogger(__name__)

METRICS = ('ssd', 'hamming')


class FeatureMatcher:
    """
    Brute-force descriptor matcher.

    Float descriptors are L2-normalized and compared with the sum of squared
    differences (range 0..4); binary descriptors with the Hamming distance
    (range 0..number of bits). The match threshold is a percentage of that
    range.
    """

    def __init__(self, match_threshold=60.0, max_ratio=0.7, unique=True, metric=None):
        """
        Initialize feature matcher.

        Args:
            match_threshold: Percent (0-100] of the maximum distance above which
                a pair is never a match
            max_ratio: Ratio test threshold; a match is rejected when
                best / second-best distance exceeds it
            unique: Keep only mutual best matches
            metric: 'ssd', 'hamming' or None to pick from the descriptor dtype
        """
        if not 0 < match_threshold <= 100:
            raise InputContractViolation("match_threshold must be in (0, 100]")
        if not 0 < max_ratio <= 1:
            raise InputContractViolation("max_ratio must be in (0, 1]")
        if metric is not None and metric not in METRICS:
            raise InputContractViolation(f"Unknown metric {metric!r}; expected one of {METRICS}")

        self.match_threshold = match_threshold
        self.max_ratio = max_ratio
        self.unique = unique
        self.metric = metric

    def match(self, descriptors1, descriptors2):
        """
        Match features between two sets of descriptors.

        Args:
            descriptors1: Descriptors from first image (N x D)
            descriptors2: Descriptors from second image (M x D)

        Returns:
            Index pairs (K x 2) with column 0 indexing descriptors1 and
            column 1 indexing descriptors2, best matches first
        """
        pairs, _ = self.match_with_distances(descriptors1, descriptors2)
        return pairs

    def match_with_distances(self, descriptors1, descriptors2):
        """Like match(), also returning the distance of every pair."""
        empty = np.zeros((0, 2), dtype=np.intp), np.zeros(0)
        if descriptors1 is None or descriptors2 is None:
            return empty
        if len(descriptors1) == 0 or len(descriptors2) == 0:
            return empty

        desc1 = np.asarray(descriptors1)
        desc2 = np.asarray(descriptors2)
        if desc1.ndim != 2 or desc2.ndim != 2 or desc1.shape[1] != desc2.shape[1]:
            raise InputContractViolation(
                f"Descriptor shapes {desc1.shape} and {desc2.shape} are incompatible"
            )

        metric = self.metric or self._infer_metric(desc1)
        distances, max_distance = self._compute_distance_matrix(desc1, desc2, metric)
        threshold = self.match_threshold / 100.0 * max_distance

        rows = np.arange(len(desc1))
        order = np.argsort(distances, axis=1, kind='stable')
        nearest_idx = order[:, 0]
        nearest_dist = distances[rows, nearest_idx]

        keep = nearest_dist <= threshold

        if distances.shape[1] >= 2:
            second_dist = distances[rows, order[:, 1]]
            with np.errstate(divide='ignore', invalid='ignore'):
                ratio = np.where(second_dist > 0, nearest_dist / second_dist, 1.0)
            keep &= ratio <= self.max_ratio

        if self.unique:
            reverse_best = np.argmin(distances, axis=0)
            keep &= reverse_best[nearest_idx] == rows

        query_idx = rows[keep]
        train_idx = nearest_idx[keep]
        match_dist = nearest_dist[keep]

        order = np.argsort(match_dist, kind='stable')
        pairs = np.column_stack([query_idx[order], train_idx[order]]).astype(np.intp)

        logger.debug("Matched %d of %d descriptors (%s)", len(pairs), len(desc1), metric)
        return pairs, match_dist[order]

    def _infer_metric(self, descriptors):
        return 'hamming' if descriptors.dtype == bool else 'ssd'

    def _compute_distance_matrix(self, desc1, desc2, metric):
        """
        Compute distance matrix between two sets of descriptors.

        Returns:
            distances: N x M matrix
            max_distance: Largest value the metric can take
        """
        if metric == 'hamming':
            n_bits = desc1.shape[1]
            distances = cdist(desc1.astype(bool), desc2.astype(bool), 'hamming') * n_bits
            return distances, float(n_bits)

        desc1 = self._normalize(desc1.astype(np.float64))
        desc2 = self._normalize(desc2.astype(np.float64))
        return cdist(desc1, desc2, 'sqeuclidean'), 4.0

    def _normalize(self, descriptors):
        norms = np.linalg.norm(descriptors, axis=1, keepdims=True)
        return descriptors / np.where(norms > 0, norms, 1.0)


def matched_points(keypoints1, keypoints2, pairs):
    """
    Gather the point locations of a match list.

    Returns:
        points1: (K x 2) locations in the first keypoint set
        points2: (K x 2) locations in the second keypoint set
    """
    pairs = np.asarray(pairs, dtype=np.intp).reshape(-1, 2)
    return keypoints1.points[pairs[:, 0]], keypoints2.points[pairs[:, 1]]
