"""
Multi-image panorama assembly with NumPy, SciPy, Pillow and scikit-image.

An ordered (left to right) sequence of overlapping photos is stitched by
estimating a transform between every pair of neighbours, chaining the
transforms into one frame re-centered on the middle image, sizing a
guarded canvas and compositing the warped images.

Main components:
- Feature Matching: Ratio test + uniqueness over SSD or Hamming distances
- Robust estimation: RANSAC with projective -> affine -> similarity fallback
- Direct estimation: Least squares with conditioning checks
- Chaining: Fold of pairwise transforms, re-anchored on the median image
- Compositing: Guarded canvas and binary (last image wins) blending

Example usage:
    from panochain.image_io import read_images, write_image
    from panochain.panorama_stitcher import PanoramaStitcher

    images = read_images(['img1.jpg', 'img2.jpg', 'img3.jpg'])
    stitcher = PanoramaStitcher(detector='sift', method='ransac')
    result = stitcher.stitch(images)
    write_image('output.png', result.panorama)
"""

__version__ = '1.0.0'

from .errors import (
    StitchingError,
    InputContractViolation,
    InsufficientCorrespondences,
    NumericalDegeneracy,
)
from .geometry import ModelKind
from .features import (
    KeypointSet,
    FeatureDetector,
    SIFTDetector,
    ORBDetector,
    BRIEFDetector,
    create_detector,
)
from .matcher import FeatureMatcher
from .ransac import RobustEstimator
from .direct import DirectEstimator
from .chain import build_chain, PipelineStats, PairStats
from .canvas import CanvasSpec, size_canvas
from .blending import Compositor, warp_perspective
from .panorama_stitcher import PanoramaStitcher, EstimationMethod, StitchResult
from .image_io import read_image, write_image, read_images, write_metadata, read_metadata

__all__ = [
    'StitchingError',
    'InputContractViolation',
    'InsufficientCorrespondences',
    'NumericalDegeneracy',
    'ModelKind',
    'KeypointSet',
    'FeatureDetector',
    'SIFTDetector',
    'ORBDetector',
    'BRIEFDetector',
    'create_detector',
    'FeatureMatcher',
    'RobustEstimator',
    'DirectEstimator',
    'build_chain',
    'PipelineStats',
    'PairStats',
    'CanvasSpec',
    'size_canvas',
    'Compositor',
    'warp_perspective',
    'PanoramaStitcher',
    'EstimationMethod',
    'StitchResult',
    'read_image',
    'write_image',
    'read_images',
    'write_metadata',
    'read_metadata',
]
