"""Unit tests for pixel representations."""

import pytest
import numpy as np
from numpy.testing import assert_allclose, assert_array_equal
from PIL import Image

from hdr_exposure_stack.exceptions import InvalidRegion
from hdr_exposure_stack.preprocessing import (
    ByteImage, RadianceChannels, Region, StackKind, shift_plane
)


class TestRegion:
    """Test rectangle helpers."""

    def test_slices(self):
        rows, cols = Region(2, 3, 4, 5).slices()

        assert rows == slice(3, 8)
        assert cols == slice(2, 6)

    def test_fits_in(self):
        assert Region(0, 0, 10, 10).fits_in(10, 10)
        assert not Region(1, 0, 10, 10).fits_in(10, 10)
        assert not Region(0, 0, 0, 5).fits_in(10, 10)
        assert not Region(-1, 0, 2, 2).fits_in(10, 10)


class TestShiftPlane:
    """Test integer translation with zero fill."""

    def test_shift_right_down(self):
        plane = np.arange(1, 10, dtype=np.float32).reshape(3, 3)

        shifted = shift_plane(plane, 1, 1)

        expected = np.array([[0, 0, 0], [0, 1, 2], [0, 4, 5]], dtype=np.float32)
        assert_array_equal(shifted, expected)

    def test_shift_rgb_keeps_channels(self):
        data = np.zeros((3, 3, 3), dtype=np.uint8)
        data[0, 0] = (10, 20, 30)

        shifted = shift_plane(data, 2, 0)

        assert tuple(shifted[0, 2]) == (10, 20, 30)
        assert shifted.dtype == np.uint8

    def test_rejects_fractional_offset(self):
        with pytest.raises(ValueError, match="integers"):
            shift_plane(np.zeros((3, 3)), 0.5, 0)


class TestByteImage:
    """Test the 8-bit representation."""

    def test_kind_and_size(self, byte_pixels):
        image = ByteImage(byte_pixels)

        assert image.kind is StackKind.LDR
        assert image.size == (64, 48)

    def test_owns_its_buffer(self, byte_pixels):
        image = ByteImage(byte_pixels)
        image.set_pixel(0, 0, (0.0, 0.0, 0.0))

        assert byte_pixels[0, 0].any()

    def test_pixel_round_trip(self):
        image = ByteImage(np.zeros((2, 2, 3), dtype=np.uint8))

        image.set_pixel(1, 0, (1.0, 0.5, 0.0))

        assert tuple(image.data[0, 1]) == (255, 128, 0)
        assert image.get_pixel(1, 0) == pytest.approx((1.0, 128 / 255, 0.0))

    def test_write_clips(self):
        image = ByteImage(np.zeros((1, 1, 3), dtype=np.uint8))

        image.write(np.array([[[1.5, -0.2, 0.5]]]))

        assert tuple(image.data[0, 0]) == (255, 0, 128)

    def test_write_where(self, byte_pixels):
        image = ByteImage(byte_pixels)
        where = np.zeros((48, 64), dtype=bool)
        where[5, 7] = True

        image.write(np.zeros((48, 64, 3)), where=where)

        assert tuple(image.data[5, 7]) == (0, 0, 0)
        untouched = ~where
        assert_array_equal(image.data[untouched], byte_pixels[untouched])

    def test_read_region(self, byte_pixels):
        image = ByteImage(byte_pixels)

        patch = image.read(Region(4, 2, 3, 5))

        assert patch.shape == (5, 3, 3)
        assert_allclose(patch, byte_pixels[2:7, 4:7] / 255.0)

    def test_invalid_region(self, byte_pixels):
        with pytest.raises(InvalidRegion):
            ByteImage(byte_pixels).read(Region(60, 0, 10, 10))

    def test_rejects_wrong_dtype(self):
        with pytest.raises(ValueError, match="uint8"):
            ByteImage(np.zeros((2, 2, 3), dtype=np.float32))

    def test_from_pil_and_preview(self, byte_pixels):
        image = ByteImage.from_pil(Image.fromarray(byte_pixels).convert('RGBA'))

        assert_array_equal(image.data, byte_pixels)
        preview = image.to_preview()
        assert preview.size == (64, 48)
        assert_array_equal(np.array(preview), byte_pixels)

    def test_cropped_and_shifted_are_copies(self, byte_pixels):
        image = ByteImage(byte_pixels)

        cropped = image.cropped(Region(0, 0, 10, 10))
        shifted = image.shifted(0, 1)

        assert cropped.size == (10, 10)
        assert_array_equal(shifted.data[1:], byte_pixels[:-1])
        assert not shifted.data[0].any()
        assert_array_equal(image.data, byte_pixels)


class TestRadianceChannels:
    """Test the float radiance representation."""

    def test_normalized_read(self):
        planes = [np.full((2, 3), v, dtype=np.float32) for v in (65535.0, 32767.5, 0.0)]
        radiance = RadianceChannels(*planes)

        assert radiance.kind is StackKind.MDR
        assert radiance.size == (3, 2)
        assert radiance.get_pixel(2, 1) == pytest.approx((1.0, 0.5, 0.0))

    def test_values_above_scale_are_kept(self):
        radiance = RadianceChannels.from_array(np.full((1, 1, 3), 131070.0))

        assert radiance.get_pixel(0, 0) == pytest.approx((2.0, 2.0, 2.0))

    def test_write_converts_to_native(self):
        radiance = RadianceChannels.from_array(np.zeros((2, 2, 3)), scale=100.0)

        radiance.set_pixel(1, 1, (0.5, 0.25, 1.0))

        assert radiance.red[1, 1] == pytest.approx(50.0)
        assert radiance.green[1, 1] == pytest.approx(25.0)
        assert radiance.blue[1, 1] == pytest.approx(100.0)

    def test_plane_shape_mismatch(self):
        with pytest.raises(ValueError, match="differ in shape"):
            RadianceChannels(np.zeros((2, 2)), np.zeros((2, 3)), np.zeros((2, 2)))

    def test_lightness_ceiling(self):
        a = RadianceChannels.from_array(np.full((2, 2, 3), 65535.0 * 1.5))
        b = RadianceChannels.from_array(np.full((2, 2, 3), 65535.0 * 0.5))

        assert a.lightness_ceiling(b) == pytest.approx(1.5)
        assert b.lightness_ceiling(a) == pytest.approx(1.5)

    def test_byte_ceiling_is_fixed(self, byte_pixels):
        image = ByteImage(byte_pixels)

        assert image.lightness_ceiling(image) == 1.0

    def test_shifted_zero_fills(self):
        radiance = RadianceChannels.from_array(np.ones((3, 3, 3)))

        shifted = radiance.shifted(-1, 0)

        assert_array_equal(shifted.red[:, 2], 0.0)
        assert_array_equal(shifted.red[:, :2], 1.0)
