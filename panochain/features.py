"""
Pluggable feature detection and description.

The pipeline only needs something with a ``name`` and a
``detect_and_extract(gray) -> KeypointSet`` method; the detectors here
wrap scikit-image's SIFT, ORB, and FAST corners with BRIEF descriptors.
"""

import logging

import numpy as np
from skimage.feature import BRIEF, ORB, SIFT, corner_fast, corner_peaks
from skimage.util import img_as_float

from .errors import InputContractViolation

logger = logging.getLogger(__name__)


class KeypointSet:
    """Keypoint locations (x, y), their descriptors and detector responses."""

    def __init__(self, points, descriptors, responses=None):
        self.points = np.asarray(points, dtype=np.float64).reshape(-1, 2)
        self.descriptors = np.asarray(descriptors)
        if responses is None:
            responses = np.zeros(len(self.points))
        self.responses = np.asarray(responses, dtype=np.float64)

        if len(self.descriptors) != len(self.points):
            raise InputContractViolation(
                f"{len(self.points)} keypoints but {len(self.descriptors)} descriptors"
            )

    @classmethod
    def empty(cls, descriptor_size=0, dtype=np.float64):
        return cls(np.zeros((0, 2)), np.zeros((0, descriptor_size), dtype=dtype))

    def __len__(self):
        return len(self.points)

    def __repr__(self):
        return f"KeypointSet(n={len(self)}, descriptor_shape={self.descriptors.shape})"


def normalize_gray(gray):
    """
    Scale a grayscale image to floats in [0, 1].

    Integer images are scaled by their dtype's range (so 8 and 16 bit
    inputs agree). Float images already in [0, 1] are kept; other float
    ranges are rescaled by their own extremes.
    """
    gray = np.asarray(gray)
    if gray.ndim != 2:
        raise InputContractViolation(f"Expected a 2D grayscale image, got shape {gray.shape}")

    gray = img_as_float(gray)
    if gray.size == 0:
        return gray.astype(np.float64)

    low, high = float(gray.min()), float(gray.max())
    if low < 0.0 or high > 1.0:
        logger.debug("Rescaling float image from [%.3g, %.3g] to [0, 1]", low, high)
        span = high - low
        gray = (gray - low) / span if span > 0 else np.zeros_like(gray)
    return gray.astype(np.float64, copy=False)


class FeatureDetector:
    """Base class for detectors used by the stitcher."""

    name = 'base'

    def detect_and_extract(self, gray):
        """
        Detect keypoints in a grayscale image and describe them.

        Args:
            gray: 2D image array

        Returns:
            KeypointSet with (x, y) locations
        """
        raise NotImplementedError

    def __call__(self, gray):
        return self.detect_and_extract(gray)


class _SkimageDetector(FeatureDetector):
    """Shared glue for scikit-image's detector/extractor classes."""

    descriptor_size = 0
    descriptor_dtype = np.float64

    def _create(self):
        raise NotImplementedError

    def _extract(self, gray):
        """Return (row, col) keypoints, descriptors and responses."""
        extractor = self._create()
        extractor.detect_and_extract(gray)
        return (extractor.keypoints, extractor.descriptors,
                getattr(extractor, 'responses', None))

    def detect_and_extract(self, gray):
        gray = normalize_gray(gray)

        # A fresh extractor per call keeps detectors safe to share across threads
        try:
            rows_cols, descriptors, responses = self._extract(gray)
        except RuntimeError as e:
            # scikit-image raises RuntimeError when nothing can be detected
            logger.warning("%s found no features: %s", self.name, e)
            return KeypointSet.empty(self.descriptor_size, self.descriptor_dtype)

        # scikit-image reports (row, col); the pipeline works in (x, y)
        keypoints = KeypointSet(np.asarray(rows_cols)[:, ::-1], descriptors, responses)
        logger.debug("%s: %d keypoints", self.name, len(keypoints))
        return keypoints


class SIFTDetector(_SkimageDetector):
    """SIFT keypoints with 128-bin gradient histograms."""

    name = 'sift'
    descriptor_size = 128
    descriptor_dtype = np.uint8

    def __init__(self, **params):
        """
        Args:
            **params: Forwarded to skimage.feature.SIFT (e.g. n_octaves,
                n_scales, c_dog)
        """
        self.params = params

    def _create(self):
        return SIFT(**self.params)


class ORBDetector(_SkimageDetector):
    """Oriented FAST keypoints with rotated BRIEF binary descriptors."""

    name = 'orb'
    descriptor_size = 256
    descriptor_dtype = bool

    def __init__(self, n_keypoints=2000, fast_threshold=0.05, **params):
        """
        Args:
            n_keypoints: Maximum number of keypoints to keep
            fast_threshold: FAST corner threshold
            **params: Forwarded to skimage.feature.ORB
        """
        self.params = dict(params, n_keypoints=n_keypoints, fast_threshold=fast_threshold)

    def _create(self):
        return ORB(**self.params)


class BRIEFDetector(_SkimageDetector):
    """
    FAST corners described by BRIEF binary strings.

    A single-scale binary detector with a low contrast threshold, useful
    on scenes where ORB finds too few corners. Descriptors are matched
    with the Hamming distance like ORB's.
    """

    name = 'brief'
    descriptor_size = 256
    descriptor_dtype = bool

    def __init__(self, threshold=0.02, n_keypoints=2000, min_distance=3,
                 patch_size=49, sigma=1.0):
        """
        Args:
            threshold: Minimum intensity contrast of a FAST corner ([0, 1] scale)
            n_keypoints: Maximum number of corners kept (strongest first)
            min_distance: Minimum spacing between corners in pixels
            patch_size: Side of the BRIEF sampling patch
            sigma: Gaussian smoothing applied before BRIEF tests
        """
        self.threshold = threshold
        self.n_keypoints = int(n_keypoints)
        self.min_distance = int(min_distance)
        self.patch_size = int(patch_size)
        self.sigma = sigma

    def _extract(self, gray):
        response = corner_fast(gray, n=9, threshold=self.threshold)
        corners = corner_peaks(response, min_distance=self.min_distance,
                               threshold_abs=1e-12, num_peaks=self.n_keypoints)
        if len(corners) == 0:
            raise RuntimeError("FAST found no corners")

        # Same fixed sampling pattern for every image, so descriptors are comparable
        extractor = BRIEF(descriptor_size=self.descriptor_size, patch_size=self.patch_size,
                          sigma=self.sigma, rng=1)
        extractor.extract(gray, corners)
        kept = corners[extractor.mask]
        if len(kept) == 0:
            raise RuntimeError("every FAST corner is too close to the border")

        return kept, extractor.descriptors, response[kept[:, 0], kept[:, 1]]


DETECTORS = {
    'sift': SIFTDetector,
    'orb': ORBDetector,
    'brief': BRIEFDetector,
}


def create_detector(name, **params):
    """Instantiate a detector by name ('sift', 'orb' or 'brief')."""
    try:
        detector_class = DETECTORS[str(name).lower()]
    except KeyError:
        raise InputContractViolation(
            f"Unknown detector {name!r}; expected one of {sorted(DETECTORS)}"
        ) from None
    return detector_class(**params)
