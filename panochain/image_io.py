"""
Image I/O utilities using PIL (Pillow), plus the JSON metadata record
a caller can keep next to a panorama.
"""

import json
import logging
import os

import numpy as np
from PIL import Image

logger = logging.getLogger(__name__)


def read_image(filepath):
    """
    Read image from file.

    Args:
        filepath: Path to image file

    Returns:
        Image as numpy array (H x W x 3) for color or (H x W) for grayscale
    """
    try:
        with Image.open(filepath) as img:
            if img.mode not in ('RGB', 'L'):
                img = img.convert('RGB')
            img_array = np.array(img)
    except (OSError, ValueError) as e:
        raise IOError(f"Failed to read image from {filepath}: {e}") from e

    logger.debug("Read %s with shape %s", filepath, img_array.shape)
    return img_array


def read_images(filepaths):
    """
    Read multiple images.

    Args:
        filepaths: List of image file paths

    Returns:
        List of images as numpy arrays
    """
    return [read_image(filepath) for filepath in filepaths]


def write_image(filepath, image):
    """
    Write image to file.

    Args:
        filepath: Path to save image
        image: Image as numpy array (H x W) or (H x W x 3)
    """
    if image.dtype != np.uint8:
        image = np.clip(image, 0, 255).astype(np.uint8)

    _ensure_parent(filepath)
    try:
        Image.fromarray(image).save(filepath)
    except (OSError, ValueError) as e:
        raise IOError(f"Failed to write image to {filepath}: {e}") from e

    logger.info("Wrote %s (%dx%d)", filepath, image.shape[1], image.shape[0])


def to_grayscale(image):
    """
    Convert image to grayscale if needed (ITU-R 601 luma weights).

    Integer images keep their dtype (luma rounded) so downstream code can
    still tell an 8 bit image from a 16 bit one.
    """
    if image.ndim == 3:
        if image.shape[2] == 1:
            return image[:, :, 0]
        gray = np.dot(image[..., :3].astype(np.float64), [0.299, 0.587, 0.114])
        if np.issubdtype(image.dtype, np.integer):
            info = np.iinfo(image.dtype)
            return np.clip(np.rint(gray), info.min, info.max).astype(image.dtype)
        return gray
    return image


def write_metadata(filepath, metadata):
    """
    Save a stitching metadata record as JSON.

    NumPy arrays and scalars are converted to plain lists and numbers.
    """
    _ensure_parent(filepath)
    try:
        with open(filepath, 'w', encoding='utf-8') as f:
            json.dump(metadata, f, indent=2, default=_to_json)
    except OSError as e:
        raise IOError(f"Failed to write metadata to {filepath}: {e}") from e

    logger.info("Wrote metadata %s", filepath)


def read_metadata(filepath):
    """Load a metadata record written by write_metadata."""
    try:
        with open(filepath, 'r', encoding='utf-8') as f:
            return json.load(f)
    except (OSError, ValueError) as e:
        raise IOError(f"Failed to read metadata from {filepath}: {e}") from e


def _to_json(value):
    if isinstance(value, np.ndarray):
        return value.tolist()
    if isinstance(value, np.generic):
        return value.item()
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def _ensure_parent(filepath):
    directory = os.path.dirname(os.fspath(filepath))
    if directory:
        os.makedirs(directory, exist_ok=True)
