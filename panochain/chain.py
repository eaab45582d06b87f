"""
Chaining of pairwise transforms into one global frame and
per-pair bookkeeping for a stitching run.
"""

import logging

import numpy as np

from .errors import InputContractViolation
from .geometry import identity, is_invertible, transformed_extent

logger = logging.getLogger(__name__)


def compose_chain(local_transforms):
    """
    Fold pairwise transforms into global ones.

    local_transforms[n] maps image n into image n-1 (local_transforms[0]
    is ignored and treated as the identity). The result maps every image
    into image 0's frame: global[n] = global[n-1] @ local[n].

    Args:
        local_transforms: Sequence of 3x3 matrices, one per image

    Returns:
        List of 3x3 global transforms, same length as the input
    """
    n_images = len(local_transforms)
    global_transforms = [None] * n_images
    if n_images == 0:
        return global_transforms

    global_transforms[0] = identity()
    for n in range(1, n_images):
        local = local_transforms[n]
        if local is None:
            local = identity()
        global_transforms[n] = global_transforms[n - 1] @ np.asarray(local, dtype=np.float64)

    return global_transforms


def choose_anchor(global_transforms, image_sizes):
    """
    Pick the image whose horizontal center is the median of the chain.

    Images are ranked by the midpoint of their projected x-extent and
    the ((N + 1) // 2)-th one (1-based) is returned.
    """
    if len(global_transforms) != len(image_sizes):
        raise InputContractViolation("Need one image size per transform")
    if not global_transforms:
        raise InputContractViolation("Cannot choose an anchor for an empty chain")

    centers = []
    for T, size in zip(global_transforms, image_sizes):
        x_min, x_max, _, _ = transformed_extent(T, size)
        center = (x_min + x_max) / 2.0
        centers.append(center if np.isfinite(center) else 0.0)

    ranking = np.argsort(centers, kind='stable')
    return int(ranking[(len(ranking) + 1) // 2 - 1])


def recenter_chain(global_transforms, anchor_index):
    """Re-express every transform relative to the anchor image's frame."""
    anchor = global_transforms[anchor_index]
    if not is_invertible(anchor):
        logger.warning("Anchor transform %d is not invertible; chain left as is", anchor_index)
        return [np.array(T, dtype=np.float64) for T in global_transforms]

    anchor_inv = np.linalg.inv(anchor)
    return [anchor_inv @ T for T in global_transforms]


def build_chain(local_transforms, image_sizes, recenter=True):
    """
    Compose pairwise transforms and re-center the chain on its middle image.

    Args:
        local_transforms: One 3x3 matrix (or None) per image; entry n maps
            image n into image n-1
        image_sizes: (height, width) of every image
        recenter: Re-anchor on the median image to balance distortion

    Returns:
        global_transforms: List of 3x3 image-to-panorama transforms
        anchor_index: Index of the image whose transform is the identity
    """
    if len(local_transforms) != len(image_sizes):
        raise InputContractViolation(
            f"{len(local_transforms)} transforms for {len(image_sizes)} images"
        )

    global_transforms = compose_chain(local_transforms)
    if not recenter or not global_transforms:
        return global_transforms, 0

    anchor_index = choose_anchor(global_transforms, image_sizes)
    logger.debug("Re-centering chain on image %d", anchor_index)
    return recenter_chain(global_transforms, anchor_index), anchor_index


class PairStats:
    """Outcome of estimating the transform between image n and image n+1."""

    def __init__(self, pair_index, num_matches, num_inliers=None, model=None,
                 transform=None, warning=None):
        self.pair_index = pair_index
        self.num_matches = num_matches
        self.num_inliers = num_inliers
        self.model = model
        self.transform = transform
        self.warning = warning

    @property
    def failed(self):
        return self.model is None

    @property
    def inlier_ratio(self):
        if self.num_inliers is None:
            return None
        return self.num_inliers / max(self.num_matches, 1)

    def to_dict(self):
        return {
            'pair': [self.pair_index, self.pair_index + 1],
            'matches': int(self.num_matches),
            'inliers': None if self.num_inliers is None else int(self.num_inliers),
            'model': None if self.model is None else self.model.value,
            'transform': None if self.transform is None else np.asarray(self.transform).tolist(),
            'warning': self.warning,
        }

    def __repr__(self):
        return (f"PairStats(pair={self.pair_index}, matches={self.num_matches}, "
                f"inliers={self.num_inliers}, model={self.model})")


class PipelineStats:
    """
    Append-only record with one PairStats per adjacent image pair.

    Each pair slot can be written exactly once.
    """

    def __init__(self, num_pairs):
        self._pairs = [None] * num_pairs

    def record(self, pair_stats):
        index = pair_stats.pair_index
        if not 0 <= index < len(self._pairs):
            raise InputContractViolation(f"Pair index {index} out of range")
        if self._pairs[index] is not None:
            raise InputContractViolation(f"Stats for pair {index} already recorded")
        self._pairs[index] = pair_stats

    @property
    def complete(self):
        return all(p is not None for p in self._pairs)

    @property
    def matches(self):
        return [p.num_matches for p in self]

    @property
    def inliers(self):
        return [p.num_inliers for p in self]

    def mean_inlier_ratio(self):
        ratios = [p.inlier_ratio for p in self if p.inlier_ratio is not None]
        if not ratios:
            return None
        return float(np.mean(ratios))

    def __getitem__(self, index):
        return self._pairs[index]

    def __iter__(self):
        return (p for p in self._pairs if p is not None)

    def __len__(self):
        return sum(1 for p in self._pairs if p is not None)

    def to_list(self):
        return [p.to_dict() for p in self]
