"""
Panorama stitching pipeline: features, pairwise transforms, chaining,
canvas sizing and compositing.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from enum import Enum

import numpy as np

from .blending import Compositor
from .canvas import size_canvas
from .chain import PairStats, PipelineStats, build_chain
from .direct import DirectEstimator
from .errors import InputContractViolation
from .features import FeatureDetector, create_detector
from .geometry import ModelKind, identity
from .image_io import to_grayscale
from .matcher import FeatureMatcher, matched_points
from .ransac import RobustEstimator

logger = logging.getLogger(__name__)


class EstimationMethod(str, Enum):
    """How pairwise transforms are estimated."""
    RANSAC = 'ransac'
    DIRECT = 'direct'

    @classmethod
    def coerce(cls, value):
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).lower())
        except ValueError:
            raise InputContractViolation(
                f"Unknown estimation method {value!r}; expected one of {[m.value for m in cls]}"
            ) from None


class StitchResult:
    """Everything a stitching run produces."""

    def __init__(self, panorama, transforms, local_transforms, canvas, stats,
                 anchor_index, image_sizes, method, model):
        self.panorama = panorama
        self.transforms = transforms
        self.local_transforms = local_transforms
        self.canvas = canvas
        self.stats = stats
        self.anchor_index = anchor_index
        self.image_sizes = image_sizes
        self.method = method
        self.model = model

    def metadata(self, detector_name=None, filenames=None):
        """
        Reproducibility record for this run.

        Args:
            detector_name: Name of the feature detector used
            filenames: Ordered input file names

        Returns:
            Dictionary of plain Python values, ready for JSON
        """
        return {
            'method': self.method.value,
            'model': self.model.value if self.method is EstimationMethod.RANSAC else None,
            'detector': detector_name,
            'files': list(filenames) if filenames is not None else None,
            'image_sizes': [list(size) for size in self.image_sizes],
            'anchor_index': self.anchor_index,
            'canvas': self.canvas.to_dict(),
            'pairs': self.stats.to_list(),
            'transforms': [np.asarray(T).tolist() for T in self.transforms],
            'mean_inlier_ratio': self.stats.mean_inlier_ratio(),
        }


class PanoramaStitcher:
    """
    Complete panorama stitching pipeline.

    This class coordinates all components:
    1. Feature detection (pluggable detector)
    2. Feature matching between neighbouring images
    3. Pairwise transform estimation (RANSAC with model fallback, or direct fit)
    4. Chaining into one frame, re-centered on the middle image
    5. Canvas sizing with a guard band
    6. Warping and binary blending
    """

    def __init__(self,
                 detector='sift',
                 method=EstimationMethod.RANSAC,
                 model=ModelKind.PROJECTIVE,
                 detector_params=None,
                 matcher_params=None,
                 ransac_params=None,
                 direct_params=None,
                 canvas_params=None,
                 blending_params=None,
                 min_images=2,
                 max_workers=1):
        """
        Initialize Panorama Stitcher.

        Args:
            detector: Detector name ('sift', 'orb', 'brief') or a FeatureDetector instance
            method: EstimationMethod or its name ('ransac', 'direct')
            model: Highest-order ModelKind tried by RANSAC
            detector_params: Parameters for the detector (when given by name)
            matcher_params: Parameters for FeatureMatcher
            ransac_params: Parameters for RobustEstimator
            direct_params: Parameters for DirectEstimator
            canvas_params: Parameters for size_canvas (guard_factor)
            blending_params: Parameters for Compositor
            min_images: Fewest images accepted by stitch()
            max_workers: Threads used for detection and pairwise estimation
        """
        if isinstance(detector, FeatureDetector):
            self.detector = detector
        elif isinstance(detector, str):
            self.detector = create_detector(detector, **(detector_params or {}))
        else:
            raise InputContractViolation(f"Unsupported detector {detector!r}")

        self.method = EstimationMethod.coerce(method)
        self.model = ModelKind.coerce(model)

        self.matcher = FeatureMatcher(**(matcher_params or {}))

        self.ransac_params = dict(ransac_params or {})
        # Fail fast on bad RANSAC settings; per-pair estimators are built later
        RobustEstimator(**self.ransac_params)

        self.direct_estimator = DirectEstimator(**(direct_params or {}))
        self.canvas_params = dict(canvas_params or {})
        self.compositor = Compositor(**(blending_params or {}))

        if min_images < 1:
            raise InputContractViolation("min_images must be at least 1")
        self.min_images = min_images
        self.max_workers = max(1, int(max_workers))

    def stitch(self, images):
        """
        Stitch an ordered (left to right) list of images.

        Args:
            images: List of images (H x W) or (H x W x C)

        Returns:
            StitchResult
        """
        self._check_images(images)
        image_sizes = [tuple(img.shape[:2]) for img in images]

        logger.info("Stitching %d images (%s)", len(images), self.method.value)

        local_transforms, stats = self.estimate_pairwise(images)
        transforms, anchor_index = build_chain(local_transforms, image_sizes)
        logger.info("Anchored panorama on image %d", anchor_index + 1)

        canvas = size_canvas(transforms, image_sizes, **self.canvas_params)
        logger.info("Canvas: %s", canvas)

        panorama = self.compositor.compose(images, transforms, canvas)

        return StitchResult(panorama, transforms, local_transforms, canvas, stats,
                            anchor_index, image_sizes, self.method, self.model)

    def estimate_pairwise(self, images):
        """
        Estimate the transform of every image into its left neighbour.

        Returns:
            local_transforms: One 3x3 matrix per image (identity for image 0)
            stats: PipelineStats with one entry per adjacent pair
        """
        num_pairs = len(images) - 1
        features = self._map(self._detect, images)

        seeds = self._pair_seeds(num_pairs)
        pair_args = [(n, features[n + 1], features[n], seeds[n]) for n in range(num_pairs)]
        outcomes = self._map(lambda args: self._estimate_pair(*args), pair_args)

        local_transforms = [identity()] + [T for T, _ in outcomes]
        stats = PipelineStats(num_pairs)
        for _, pair_stats in outcomes:
            stats.record(pair_stats)

        return local_transforms, stats

    def _detect(self, image):
        keypoints = self.detector.detect_and_extract(to_grayscale(image))
        logger.info("  Found %d keypoints", len(keypoints))
        return keypoints

    def _estimate_pair(self, pair_index, current, previous, seed):
        """Transform taking image pair_index + 1 into image pair_index."""
        pairs = self.matcher.match(current.descriptors, previous.descriptors)
        src_pts, dst_pts = matched_points(current, previous, pairs)
        num_matches = len(pairs)

        if self.method is EstimationMethod.RANSAC:
            estimator = RobustEstimator(**dict(self.ransac_params, random_state=seed))
            T, num_inliers, kind = estimator.estimate_with_fallback(src_pts, dst_pts, self.model)
        else:
            T, kind = self.direct_estimator.estimate_with_model(src_pts, dst_pts)
            num_inliers = None

        warning = None
        if kind is None:
            warning = (f"Transform estimation failed for image {pair_index + 2}; "
                       f"using identity")
            logger.warning(warning)
            T = identity()
            if self.method is EstimationMethod.RANSAC:
                num_inliers = 0
        else:
            logger.info("  Pair %d-%d: %d matches, %s inliers (%s)",
                        pair_index + 1, pair_index + 2, num_matches,
                        '-' if num_inliers is None else num_inliers, kind.value)

        return T, PairStats(pair_index, num_matches, num_inliers, kind, T, warning)

    def _pair_seeds(self, num_pairs):
        """Independent random streams so pairs can be estimated in any order."""
        seed = self.ransac_params.get('random_state')
        if isinstance(seed, np.random.Generator):
            return [seed] * num_pairs if self.max_workers == 1 else seed.spawn(num_pairs)
        return np.random.SeedSequence(seed).spawn(num_pairs)

    def _map(self, func, items):
        if self.max_workers == 1 or len(items) < 2:
            return [func(item) for item in items]
        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            return list(executor.map(func, items))

    def _check_images(self, images):
        if images is None or len(images) < self.min_images:
            raise InputContractViolation(
                f"Need at least {self.min_images} images to stitch, "
                f"got {0 if images is None else len(images)}"
            )
        for n, image in enumerate(images):
            if not isinstance(image, np.ndarray) or image.ndim not in (2, 3) or image.size == 0:
                raise InputContractViolation(
                    f"Image {n} must be a non-empty (H x W) or (H x W x C) array"
                )
