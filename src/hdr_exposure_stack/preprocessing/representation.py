"""Pixel representations shared by every conditioning algorithm.

An exposure arrives either as an 8-bit RGB image (LDR input) or as three
float radiance planes (MDR input, e.g. 16-bit TIFF or raw data decoded to
float). Both are wrapped in a :class:`PixelRepresentation`, which exposes
width/height, per-pixel get/set and bulk region read/write in a normalized
[0, 1] numeric range. Ghost detection and blending are written once against
this interface.
"""

from __future__ import annotations
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Sequence, Tuple
import numpy as np
import logging

from scipy import ndimage
from PIL import Image

from ..exceptions import InvalidRegion
from ..utilities.hsl import max_lightness

logger = logging.getLogger(__name__)


class StackKind(Enum):
    """Input representation kind of an exposure stack."""
    UNKNOWN = 'Unknown'
    LDR = 'LDR'
    MDR = 'MDR'


@dataclass(frozen=True)
class Region:
    """Axis-aligned pixel rectangle.

    Attributes:
        x: Left column
        y: Top row
        width: Number of columns
        height: Number of rows
    """
    x: int
    y: int
    width: int
    height: int

    @classmethod
    def full(cls, width: int, height: int) -> 'Region':
        """Region covering a whole width x height buffer."""
        return cls(0, 0, width, height)

    @property
    def right(self) -> int:
        return self.x + self.width

    @property
    def bottom(self) -> int:
        return self.y + self.height

    @property
    def size(self) -> Tuple[int, int]:
        return (self.width, self.height)

    def slices(self) -> Tuple[slice, slice]:
        """Numpy (rows, cols) slices for this region."""
        return slice(self.y, self.bottom), slice(self.x, self.right)

    def fits_in(self, width: int, height: int) -> bool:
        """Whether the region is non-empty and inside a width x height buffer."""
        return (
            self.width > 0 and self.height > 0
            and self.x >= 0 and self.y >= 0
            and self.right <= width and self.bottom <= height
        )


def shift_plane(array: np.ndarray, dx: int, dy: int) -> np.ndarray:
    """Translate a 2D (or H x W x C) array by an integer pixel offset.

    Content moves by +dx columns and +dy rows. Pixels uncovered by the move
    are zero-filled.

    Args:
        array: Input array, rows first
        dx: Horizontal offset in pixels
        dy: Vertical offset in pixels

    Returns:
        New shifted array with the same dtype and shape
    """
    if int(dx) != dx or int(dy) != dy:
        raise ValueError(f"Shift offsets must be integers, got ({dx}, {dy})")
    offsets = (int(dy), int(dx)) + (0,) * (array.ndim - 2)
    return ndimage.shift(array, offsets, order=0, mode='constant', cval=0, prefilter=False)


class PixelRepresentation(ABC):
    """Uniform view over an image-like buffer.

    Values returned by :meth:`read` are float64 in a normalized range whose
    nominal maximum is :attr:`max_value`. :meth:`write` accepts values in the
    same range and converts them back to the native storage.
    """

    kind: StackKind = StackKind.UNKNOWN
    max_value: float = 1.0

    @property
    @abstractmethod
    def width(self) -> int:
        """Number of columns."""

    @property
    @abstractmethod
    def height(self) -> int:
        """Number of rows."""

    @property
    def size(self) -> Tuple[int, int]:
        return (self.width, self.height)

    @abstractmethod
    def read(self, region: Optional[Region] = None) -> np.ndarray:
        """Return an (h, w, 3) float64 copy of the region, normalized."""

    @abstractmethod
    def write(
        self,
        rgb: np.ndarray,
        region: Optional[Region] = None,
        where: Optional[np.ndarray] = None
    ) -> None:
        """Store normalized (h, w, 3) values into the region.

        Args:
            rgb: Normalized values for the region
            region: Target region (default: whole buffer)
            where: Optional (h, w) boolean array; only True pixels are written
        """

    @abstractmethod
    def cropped(self, region: Region) -> 'PixelRepresentation':
        """Return a new representation holding only ``region``."""

    @abstractmethod
    def shifted(self, dx: int, dy: int) -> 'PixelRepresentation':
        """Return a new representation translated by (dx, dy)."""

    @abstractmethod
    def copy(self) -> 'PixelRepresentation':
        """Deep copy."""

    def get_pixel(self, x: int, y: int) -> Tuple[float, float, float]:
        """Normalized (r, g, b) at column x, row y."""
        value = self.read(Region(x, y, 1, 1))[0, 0]
        return (float(value[0]), float(value[1]), float(value[2]))

    def set_pixel(self, x: int, y: int, rgb: Sequence[float]) -> None:
        """Store a normalized (r, g, b) triplet at column x, row y."""
        value = np.asarray(rgb, dtype=np.float64).reshape(1, 1, 3)
        self.write(value, Region(x, y, 1, 1))

    def lightness_ceiling(self, other: 'PixelRepresentation') -> float:
        """Upper bound for rescaled lightness when blending ``other`` into self."""
        return self.max_value

    def to_preview(self) -> Image.Image:
        """8-bit RGB preview (what a mask-painting view displays)."""
        rgb = np.clip(self.read(), 0.0, 1.0)
        return Image.fromarray(np.rint(rgb * 255.0).astype(np.uint8))

    def _resolve(self, region: Optional[Region]) -> Region:
        if region is None:
            return Region.full(self.width, self.height)
        if not region.fits_in(self.width, self.height):
            raise InvalidRegion(
                f"Region {region} does not fit in {self.width}x{self.height} image"
            )
        return region

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.width}x{self.height})"


class ByteImage(PixelRepresentation):
    """8-bit-per-channel RGB image (LDR input).

    Normalized value = byte / 255. Writes round to the nearest byte and clip
    to [0, 255].

    Example:
        >>> data = np.zeros((480, 640, 3), dtype=np.uint8)
        >>> image = ByteImage(data)
        >>> image.get_pixel(10, 20)
        (0.0, 0.0, 0.0)
    """

    kind = StackKind.LDR

    def __init__(self, data: np.ndarray):
        data = np.asarray(data)
        if data.ndim != 3 or data.shape[2] != 3:
            raise ValueError(f"Expected RGB image with shape (H, W, 3), got {data.shape}")
        if data.dtype != np.uint8:
            raise ValueError(f"Expected uint8 pixel data, got {data.dtype}")
        self.data = np.array(data, order='C')

    @classmethod
    def from_pil(cls, image: Image.Image) -> 'ByteImage':
        """Wrap a decoded Pillow image (converted to RGB)."""
        if image.mode != 'RGB':
            image = image.convert('RGB')
        return cls(np.array(image, dtype=np.uint8))

    @property
    def width(self) -> int:
        return self.data.shape[1]

    @property
    def height(self) -> int:
        return self.data.shape[0]

    def read(self, region: Optional[Region] = None) -> np.ndarray:
        rows, cols = self._resolve(region).slices()
        return self.data[rows, cols].astype(np.float64) / 255.0

    def write(self, rgb, region=None, where=None) -> None:
        rows, cols = self._resolve(region).slices()
        values = np.clip(np.rint(np.asarray(rgb) * 255.0), 0, 255).astype(np.uint8)
        target = self.data[rows, cols]
        if values.shape != target.shape:
            raise ValueError(f"Expected values with shape {target.shape}, got {values.shape}")
        if where is None:
            target[...] = values
        else:
            target[where] = values[where]

    def cropped(self, region: Region) -> 'ByteImage':
        rows, cols = self._resolve(region).slices()
        return ByteImage(self.data[rows, cols].copy())

    def shifted(self, dx: int, dy: int) -> 'ByteImage':
        return ByteImage(shift_plane(self.data, dx, dy))

    def copy(self) -> 'ByteImage':
        return ByteImage(self.data.copy())

    def to_preview(self) -> Image.Image:
        return Image.fromarray(self.data.copy())


class RadianceChannels(PixelRepresentation):
    """Three float32 radiance planes (MDR input).

    Planes hold values in a native scale (65535 for data decoded from 16-bit
    sources); normalized value = native / scale. Values above the nominal
    maximum are kept on read so wide-range radiance is not compressed.

    Example:
        >>> r = g = b = np.full((480, 640), 32768.0, dtype=np.float32)
        >>> radiance = RadianceChannels(r, g, b)
        >>> round(radiance.get_pixel(0, 0)[0], 3)
        0.5
    """

    kind = StackKind.MDR

    def __init__(
        self,
        red: np.ndarray,
        green: np.ndarray,
        blue: np.ndarray,
        scale: float = 65535.0
    ):
        planes = [np.array(p, dtype=np.float32) for p in (red, green, blue)]
        shape = planes[0].shape
        if len(shape) != 2:
            raise ValueError(f"Expected 2D channel planes, got shape {shape}")
        if any(p.shape != shape for p in planes):
            raise ValueError(
                f"Channel planes differ in shape: {[p.shape for p in planes]}"
            )
        if scale <= 0:
            raise ValueError(f"scale must be positive, got {scale}")
        self.red, self.green, self.blue = planes
        self.scale = float(scale)

    @classmethod
    def from_array(cls, rgb: np.ndarray, scale: float = 65535.0) -> 'RadianceChannels':
        """Build from an (H, W, 3) array of native values."""
        rgb = np.asarray(rgb)
        if rgb.ndim != 3 or rgb.shape[2] != 3:
            raise ValueError(f"Expected RGB array with shape (H, W, 3), got {rgb.shape}")
        return cls(rgb[..., 0], rgb[..., 1], rgb[..., 2], scale=scale)

    @property
    def planes(self) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
        return (self.red, self.green, self.blue)

    @property
    def width(self) -> int:
        return self.red.shape[1]

    @property
    def height(self) -> int:
        return self.red.shape[0]

    def read(self, region: Optional[Region] = None) -> np.ndarray:
        rows, cols = self._resolve(region).slices()
        stacked = np.stack([p[rows, cols] for p in self.planes], axis=-1)
        return stacked.astype(np.float64) / self.scale

    def write(self, rgb, region=None, where=None) -> None:
        rows, cols = self._resolve(region).slices()
        values = (np.asarray(rgb, dtype=np.float64) * self.scale).astype(np.float32)
        expected = (rows.stop - rows.start, cols.stop - cols.start, 3)
        if values.shape != expected:
            raise ValueError(f"Expected values with shape {expected}, got {values.shape}")
        for channel, plane in enumerate(self.planes):
            target = plane[rows, cols]
            if where is None:
                target[...] = values[..., channel]
            else:
                target[where] = values[..., channel][where]

    def cropped(self, region: Region) -> 'RadianceChannels':
        rows, cols = self._resolve(region).slices()
        return RadianceChannels(
            *(p[rows, cols].copy() for p in self.planes), scale=self.scale
        )

    def shifted(self, dx: int, dy: int) -> 'RadianceChannels':
        return RadianceChannels(
            *(shift_plane(p, dx, dy) for p in self.planes), scale=self.scale
        )

    def copy(self) -> 'RadianceChannels':
        return RadianceChannels(*(p.copy() for p in self.planes), scale=self.scale)

    def lightness_ceiling(self, other: PixelRepresentation) -> float:
        """Brightest lightness found in either image.

        Wide-range radiance would be over-compressed by a fixed ceiling.
        """
        ceiling = max(max_lightness(self.read()), max_lightness(other.read()))
        logger.debug(f"Max lightness: {ceiling:.4f}")
        return ceiling
