"""Tests for warping and binary compositing."""

import numpy as np
import pytest

from panochain.blending import Compositor, warp_perspective
from panochain.canvas import size_canvas
from panochain.errors import InputContractViolation
from panochain.geometry import identity, translation


@pytest.fixture
def gradient():
    return np.arange(12 * 16, dtype=np.uint8).reshape(12, 16)


@pytest.mark.parametrize('interpolation', ['nearest', 'bilinear'])
def test_identity_warp_keeps_image(gradient, interpolation):
    warped, mask = warp_perspective(gradient, identity(), gradient.shape, interpolation)

    np.testing.assert_array_equal(warped, gradient)
    assert mask.all()


def test_translation_warp_shifts_image(gradient):
    warped, mask = warp_perspective(gradient, translation(3, 2), (14, 19), 'nearest')

    np.testing.assert_array_equal(warped[2:, 3:], gradient)
    assert not mask[:2].any() and not mask[:, :3].any()
    assert mask[2:, 3:].all()


def test_color_warp_keeps_channels():
    image = np.dstack([np.full((5, 6), v, dtype=np.uint8) for v in (10, 20, 30)])

    warped, mask = warp_perspective(image, translation(1, 0), (5, 7))

    assert warped.shape == (5, 7, 3)
    np.testing.assert_array_equal(warped[:, 1:], image)
    assert not mask[:, 0].any()


def test_non_invertible_transform_lands_nowhere(gradient):
    warped, mask = warp_perspective(gradient, np.zeros((3, 3)), gradient.shape)

    assert not mask.any()
    assert not warped.any()


def test_later_image_wins_overlap():
    first = np.full((40, 100), 50, dtype=np.uint8)
    second = np.full((40, 100), 200, dtype=np.uint8)
    transforms = [identity(), translation(50, 0)]
    canvas = size_canvas(transforms, [first.shape, second.shape])

    panorama = Compositor('nearest').compose([first, second], transforms, canvas)

    assert panorama.shape == (40, 150)
    assert (panorama[:, :50] == 50).all()
    assert (panorama[:, 50:] == 200).all()


def test_identical_placement_second_image_covers_first():
    first = np.full((20, 30, 3), 10, dtype=np.uint8)
    second = np.full((20, 30, 3), 240, dtype=np.uint8)
    canvas = size_canvas([identity(), identity()], [(20, 30)] * 2)

    panorama = Compositor().compose([first, second], [identity(), identity()], canvas)

    assert panorama.shape == (20, 30, 3)
    assert (panorama == 240).all()


def test_grayscale_mixed_with_color_is_broadcast():
    gray = np.full((10, 10), 99, dtype=np.uint8)
    color = np.zeros((10, 10, 3), dtype=np.uint8)
    transforms = [identity(), translation(10, 0)]
    canvas = size_canvas(transforms, [(10, 10)] * 2)

    panorama = Compositor('nearest').compose([gray, color], transforms, canvas)

    assert panorama.shape == (10, 20, 3)
    assert (panorama[:, :10] == 99).all()


def test_output_dtype_follows_first_image():
    first = np.full((8, 8), 0.25, dtype=np.float32)
    second = np.full((8, 8), 3, dtype=np.uint8)
    canvas = size_canvas([identity()] * 2, [(8, 8)] * 2)

    panorama = Compositor().compose([first, second], [identity()] * 2, canvas)

    assert panorama.dtype == np.float32
    assert (panorama == 3.0).all()


def test_invalid_arguments_raise(gradient):
    with pytest.raises(InputContractViolation):
        Compositor('bicubic')
    with pytest.raises(InputContractViolation):
        warp_perspective(gradient, identity(), gradient.shape, 'area')
    canvas = size_canvas([identity()], [gradient.shape])
    with pytest.raises(InputContractViolation):
        Compositor().compose([gradient], [identity(), identity()], canvas)
