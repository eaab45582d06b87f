"""
Warping images into the panorama canvas and binary (mask-gated)
compositing, using NumPy and SciPy only.
"""

import logging

import numpy as np
from scipy.ndimage import map_coordinates

from .errors import InputContractViolation
from .geometry import HOMOGENEOUS_EPS, is_invertible

logger = logging.getLogger(__name__)

INTERPOLATION_ORDERS = {
    'nearest': 0,
    'bilinear': 1,
}


def warp_perspective(image, H, output_shape, interpolation='bilinear'):
    """
    Warp image using a 3x3 transform with backward mapping.

    Args:
        image: Input image (H x W x C) or (H x W)
        H: Transform from image coordinates to output coordinates (3 x 3)
        output_shape: Output image shape (height, width)
        interpolation: 'nearest' or 'bilinear'

    Returns:
        warped: Warped image, same dtype and channel layout as the input
        mask: Boolean (height x width) array, True where the image landed
    """
    try:
        order = INTERPOLATION_ORDERS[interpolation]
    except KeyError:
        raise InputContractViolation(
            f"Unknown interpolation {interpolation!r}; expected one of {sorted(INTERPOLATION_ORDERS)}"
        ) from None

    h, w = output_shape
    src_h, src_w = image.shape[:2]
    squeeze = image.ndim == 2
    if squeeze:
        image = image[:, :, np.newaxis]
    channels = image.shape[2]

    output = np.zeros((h, w, channels), dtype=image.dtype)
    mask = np.zeros((h, w), dtype=bool)

    if not is_invertible(H):
        logger.warning("Transform is not invertible; image skipped")
        return (output[:, :, 0] if squeeze else output), mask

    H_inv = np.linalg.inv(H)

    # Coordinate grid of the output image
    y_coords, x_coords = np.meshgrid(np.arange(h), np.arange(w), indexing='ij')
    coords = np.stack([x_coords.ravel(), y_coords.ravel(), np.ones(h * w)])

    src = H_inv @ coords
    with np.errstate(divide='ignore', invalid='ignore'):
        valid_w = np.abs(src[2]) > HOMOGENEOUS_EPS
        src_x = np.where(valid_w, src[0] / np.where(valid_w, src[2], 1.0), -1.0)
        src_y = np.where(valid_w, src[1] / np.where(valid_w, src[2], 1.0), -1.0)

    # Output pixels whose source falls inside the image (pixel centers at integers)
    inside = (valid_w
              & (src_x >= -0.5) & (src_x < src_w - 0.5)
              & (src_y >= -0.5) & (src_y < src_h - 0.5))
    mask = inside.reshape(h, w)
    if not np.any(mask):
        return (output[:, :, 0] if squeeze else output), mask

    sample_coords = np.stack([src_y[inside], src_x[inside]])
    for c in range(channels):
        values = map_coordinates(image[:, :, c].astype(np.float64), sample_coords,
                                 order=order, mode='nearest')
        output[:, :, c][mask] = _cast(values, image.dtype)

    return (output[:, :, 0] if squeeze else output), mask


def _cast(values, dtype):
    if np.issubdtype(dtype, np.integer):
        info = np.iinfo(dtype)
        return np.clip(np.rint(values), info.min, info.max).astype(dtype)
    if dtype == bool:
        return values >= 0.5
    return values.astype(dtype)


class Compositor:
    """
    Binary alpha blender.

    Images are warped into the canvas one after another; wherever a warped
    image's mask is set it overwrites what is already there, so later images
    win in overlap regions.
    """

    def __init__(self, interpolation='bilinear'):
        """
        Args:
            interpolation: 'nearest' or 'bilinear' resampling
        """
        if interpolation not in INTERPOLATION_ORDERS:
            raise InputContractViolation(
                f"Unknown interpolation {interpolation!r}; expected one of {sorted(INTERPOLATION_ORDERS)}"
            )
        self.interpolation = interpolation

    def compose(self, images, global_transforms, canvas):
        """
        Warp and blend all images into one raster.

        Args:
            images: List of images (H x W) or (H x W x C)
            global_transforms: One image-to-panorama transform per image
            canvas: CanvasSpec describing the output frame

        Returns:
            Panorama of shape (canvas.height, canvas.width[, C]) with the
            first image's dtype
        """
        if len(images) != len(global_transforms):
            raise InputContractViolation(
                f"{len(images)} images but {len(global_transforms)} transforms"
            )
        if not images:
            raise InputContractViolation("No images to compose")

        channels = max(self._channels(img) for img in images)
        dtype = images[0].dtype
        if channels == 1:
            panorama = np.zeros(canvas.shape, dtype=dtype)
        else:
            panorama = np.zeros(canvas.shape + (channels,), dtype=dtype)

        to_canvas = canvas.world_to_canvas()
        for n, (image, T) in enumerate(zip(images, global_transforms)):
            warped, mask = warp_perspective(image, to_canvas @ T, canvas.shape,
                                            self.interpolation)
            if not np.any(mask):
                logger.warning("Image %d does not overlap the canvas", n)
                continue

            pixels = self._match_channels(warped, channels)[mask]
            if pixels.dtype != dtype:
                pixels = _cast(pixels.astype(np.float64), dtype)
            panorama[mask] = pixels
            logger.debug("Blended image %d (%d pixels)", n, int(mask.sum()))

        return panorama

    def _channels(self, image):
        return 1 if image.ndim == 2 else image.shape[2]

    def _match_channels(self, image, channels):
        own = self._channels(image)
        if channels == 1:
            return image if image.ndim == 2 else image[:, :, 0]
        if own == channels:
            return image
        if own == 1:
            gray = image if image.ndim == 2 else image[:, :, 0]
            return np.repeat(gray[:, :, np.newaxis], channels, axis=2)
        raise InputContractViolation(
            f"Cannot blend a {own}-channel image into a {channels}-channel panorama"
        )
