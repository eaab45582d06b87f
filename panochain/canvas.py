"""
Output canvas sizing for a set of globally aligned images.
"""

import logging
import math

import numpy as np

from .errors import InputContractViolation
from .geometry import transformed_extent, translation

logger = logging.getLogger(__name__)


class CanvasSpec:
    """World-space extent of the panorama and its size in pixels."""

    __slots__ = ('x_min', 'x_max', 'y_min', 'y_max', 'width', 'height')

    def __init__(self, x_min, x_max, y_min, y_max, width, height):
        for name, value in (('x_min', float(x_min)), ('x_max', float(x_max)),
                            ('y_min', float(y_min)), ('y_max', float(y_max)),
                            ('width', int(width)), ('height', int(height))):
            object.__setattr__(self, name, value)

    def __setattr__(self, name, value):
        raise AttributeError("CanvasSpec is immutable")

    @property
    def shape(self):
        """(height, width) of the output raster."""
        return self.height, self.width

    def world_to_canvas(self):
        """Translation taking panorama coordinates to canvas pixel coordinates."""
        return translation(-self.x_min, -self.y_min)

    def to_dict(self):
        return {name: getattr(self, name) for name in self.__slots__}

    def __eq__(self, other):
        if not isinstance(other, CanvasSpec):
            return NotImplemented
        return self.to_dict() == other.to_dict()

    def __repr__(self):
        return (f"CanvasSpec(x=[{self.x_min:.1f}, {self.x_max:.1f}], "
                f"y=[{self.y_min:.1f}, {self.y_max:.1f}], "
                f"size={self.width}x{self.height})")


def size_canvas(global_transforms, image_sizes, guard_factor=3.0):
    """
    Compute the canvas covering every warped image.

    The union of all projected image extents (and the reference frame
    [0, max_w] x [0, max_h]) is clamped to a window guard_factor times the
    largest image, centered on the reference frame, so degenerate
    transforms cannot blow up the canvas.

    Args:
        global_transforms: One 3x3 image-to-panorama transform per image
        image_sizes: (height, width) of every image
        guard_factor: Canvas size limit as a multiple of the largest image

    Returns:
        CanvasSpec
    """
    if len(global_transforms) != len(image_sizes):
        raise InputContractViolation("Need one image size per transform")
    if not image_sizes:
        raise InputContractViolation("Cannot size a canvas for zero images")
    if guard_factor < 1:
        raise InputContractViolation("guard_factor must be at least 1")

    base_h = max(size[0] for size in image_sizes)
    base_w = max(size[1] for size in image_sizes)

    x_min, x_max = 0.0, float(base_w)
    y_min, y_max = 0.0, float(base_h)

    for T, size in zip(global_transforms, image_sizes):
        ex_min, ex_max, ey_min, ey_max = (
            _nan_to(value, fallback) for value, fallback in zip(
                transformed_extent(T, size), (-np.inf, np.inf, -np.inf, np.inf)
            )
        )
        x_min, x_max = min(x_min, ex_min), max(x_max, ex_max)
        y_min, y_max = min(y_min, ey_min), max(y_max, ey_max)

    max_width = math.floor(guard_factor * base_w)
    max_height = math.floor(guard_factor * base_h)

    # Guard window centered on the reference frame
    half_w = guard_factor * base_w / 2.0
    half_h = guard_factor * base_h / 2.0
    clamped = (
        max(x_min, base_w / 2.0 - half_w),
        min(x_max, base_w / 2.0 + half_w),
        max(y_min, base_h / 2.0 - half_h),
        min(y_max, base_h / 2.0 + half_h),
    )
    if clamped != (x_min, x_max, y_min, y_max):
        logger.warning("Panorama extent x=[%.1f, %.1f] y=[%.1f, %.1f] clamped to guard band",
                       x_min, x_max, y_min, y_max)
    x_min, x_max, y_min, y_max = clamped

    width = max(1, min(int(round(x_max - x_min)), max_width))
    height = max(1, min(int(round(y_max - y_min)), max_height))

    return CanvasSpec(x_min, x_max, y_min, y_max, width, height)


def _nan_to(value, fallback):
    # NaN extents come from broken transforms; treat them as unbounded
    return value if not np.isnan(value) else fallback
