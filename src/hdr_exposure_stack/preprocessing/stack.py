"""Exposure stack: the ordered set of exposures being conditioned for HDR.

This module provides the ExposureItem, AntiGhostMask and ExposureStack
classes. The stack enforces that every exposure shares the same geometry and
the same input kind (LDR or MDR), and owns the crop/shift bookkeeping that
keeps every buffer in lockstep after external alignment.
"""

from __future__ import annotations
from bisect import bisect_left
from dataclasses import dataclass
from typing import Callable, Iterator, List, Optional, Sequence, Tuple
import math
import numpy as np
import logging

from PIL import Image

from ..exceptions import (
    AlignmentError, DimensionMismatch, EmptyStackError, InvalidRegion, KindConflict
)
from .representation import PixelRepresentation, Region, StackKind, shift_plane

logger = logging.getLogger(__name__)

# Exposure time reported by loaders when the file carries no usable metadata
UNKNOWN_EXPOSURE = -1.0

ExposureListener = Callable[[int, float], None]


class AntiGhostMask:
    """Per-exposure opacity buffer for manual anti-ghosting.

    Stored as 8-bit alpha (0 = transparent, 255 = opaque). Opaque pixels mark
    ghost-affected content eligible for replacement.
    """

    def __init__(self, width: int, height: int, alpha: Optional[np.ndarray] = None):
        if alpha is None:
            alpha = np.zeros((height, width), dtype=np.uint8)
        alpha = np.array(alpha, dtype=np.uint8)
        if alpha.shape != (height, width):
            raise ValueError(
                f"Expected mask with shape {(height, width)}, got {alpha.shape}"
            )
        self.alpha = alpha

    @classmethod
    def from_pil(cls, image: Image.Image) -> 'AntiGhostMask':
        """Build a mask from a painted image.

        Uses the alpha band when the image has one, otherwise its grayscale
        intensity.
        """
        if 'A' in image.getbands():
            band = image.getchannel('A')
        else:
            band = image.convert('L')
        alpha = np.array(band, dtype=np.uint8)
        return cls(alpha.shape[1], alpha.shape[0], alpha)

    @property
    def width(self) -> int:
        return self.alpha.shape[1]

    @property
    def height(self) -> int:
        return self.alpha.shape[0]

    @property
    def opacity(self) -> np.ndarray:
        """Opacity normalized to [0, 1]."""
        return self.alpha.astype(np.float64) / 255.0

    def is_transparent(self) -> bool:
        return not np.any(self.alpha)

    def paint(
        self,
        region: Optional[Region] = None,
        opacity: float = 1.0,
        where: Optional[np.ndarray] = None
    ) -> None:
        """Set the opacity of a region (optionally only where ``where`` is True).

        Args:
            region: Region to paint (default: whole mask)
            opacity: Opacity in [0, 1]
            where: Optional boolean array with the region's shape
        """
        if not 0.0 <= opacity <= 1.0:
            raise ValueError(f"opacity must be in [0, 1], got {opacity}")
        region = region or Region.full(self.width, self.height)
        if not region.fits_in(self.width, self.height):
            raise InvalidRegion(
                f"Region {region} does not fit in {self.width}x{self.height} mask"
            )
        rows, cols = region.slices()
        value = int(round(opacity * 255))
        if where is None:
            self.alpha[rows, cols] = value
        else:
            self.alpha[rows, cols][where] = value

    def clear(self) -> None:
        self.alpha[...] = 0

    def cropped(self, region: Region) -> 'AntiGhostMask':
        rows, cols = region.slices()
        return AntiGhostMask(region.width, region.height, self.alpha[rows, cols])

    def shifted(self, dx: int, dy: int) -> 'AntiGhostMask':
        return AntiGhostMask(self.width, self.height, shift_plane(self.alpha, dx, dy))

    def copy(self) -> 'AntiGhostMask':
        return AntiGhostMask(self.width, self.height, self.alpha)

    def __repr__(self) -> str:
        return f"AntiGhostMask({self.width}x{self.height}, opaque={int(np.count_nonzero(self.alpha))})"


@dataclass
class ExposureItem:
    """One decoded exposure delivered by a loader.

    Attributes:
        index: Slot assigned by the loader; the stack is kept sorted by it
        exposure_time: Exposure time in seconds, or UNKNOWN_EXPOSURE (-1)
        representation: Pixel buffer (ByteImage or RadianceChannels)
        valid: False when the loader could not decode the file
        filename: Source file name, used in error messages and reports
        mask: Anti-ghosting mask (created transparent when the item is stacked)
    """
    index: int
    exposure_time: float
    representation: PixelRepresentation
    valid: bool = True
    filename: Optional[str] = None
    mask: Optional[AntiGhostMask] = None

    @property
    def kind(self) -> StackKind:
        return self.representation.kind

    @property
    def size(self) -> Tuple[int, int]:
        return self.representation.size

    @property
    def has_exposure(self) -> bool:
        """Whether the exposure time is a usable calibrated value."""
        t = self.exposure_time
        return t != UNKNOWN_EXPOSURE and math.isfinite(t) and t > 0

    @property
    def ev(self) -> float:
        """Exposure value: log2 of the exposure time."""
        if not self.has_exposure:
            raise ValueError(f"Item {self.label} has no calibrated exposure time")
        return math.log2(self.exposure_time)

    @property
    def label(self) -> str:
        return self.filename or f"#{self.index}"

    def __repr__(self) -> str:
        return (
            f"ExposureItem({self.label}, t={self.exposure_time:g}, "
            f"{self.representation!r})"
        )


class ExposureStack:
    """Ordered collection of exposures sharing one geometry and one kind.

    Items are addressed by position (0..len-1). Positions follow the loader's
    ``index`` order, whatever the delivery order was.

    Example:
        >>> stack = ExposureStack()
        >>> stack.append(ExposureItem(0, 1/250, ByteImage(dark)))
        >>> stack.append(ExposureItem(1, 1/30, ByteImage(bright)))
        >>> stack.crop(Region(10, 10, 600, 400))
        >>> stack.shift(1, dx=-2, dy=3)
    """

    def __init__(self):
        """Initialize an empty stack of unknown kind."""
        self._items: List[ExposureItem] = []
        self._listeners: List[ExposureListener] = []
        self.kind = StackKind.UNKNOWN
        self.width = 0
        self.height = 0

    # ------------------------------------------------------------------
    # Container protocol
    # ------------------------------------------------------------------

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[ExposureItem]:
        return iter(list(self._items))

    def __getitem__(self, position: int) -> ExposureItem:
        return self._items[position]

    def __repr__(self) -> str:
        return (
            f"ExposureStack({len(self)} items, kind={self.kind.value}, "
            f"{self.width}x{self.height})"
        )

    @property
    def size(self) -> Tuple[int, int]:
        return (self.width, self.height)

    @property
    def exposure_times(self) -> np.ndarray:
        return np.array([item.exposure_time for item in self._items], dtype=np.float64)

    @property
    def representations(self) -> List[PixelRepresentation]:
        return [item.representation for item in self._items]

    @property
    def masks(self) -> List[AntiGhostMask]:
        return [item.mask for item in self._items]

    def position_of(self, index: int) -> int:
        """Position of the item carrying loader index ``index``."""
        for position, item in enumerate(self._items):
            if item.index == index:
                return position
        raise KeyError(f"No item with index {index}")

    # ------------------------------------------------------------------
    # Structural mutation
    # ------------------------------------------------------------------

    def append(self, item: ExposureItem) -> int:
        """Insert an item, enforcing the kind and size invariants.

        Args:
            item: Decoded exposure

        Returns:
            Position of the item in the stack

        Raises:
            ValueError: If the item is invalid or its index is already used
            KindConflict: If its kind differs from the stack's kind
            DimensionMismatch: If its size differs from the stack's size
        """
        if not item.valid:
            raise ValueError(f"Cannot stack invalid item {item.label}")

        if self.kind is not StackKind.UNKNOWN and item.kind is not self.kind:
            raise KindConflict(self.kind, item.kind, item.filename)

        if self._items and item.size != self.size:
            raise DimensionMismatch(self.size, item.size, item.filename)

        indices = [existing.index for existing in self._items]
        position = bisect_left(indices, item.index)
        if position < len(indices) and indices[position] == item.index:
            raise ValueError(f"An item with index {item.index} is already stacked")

        if item.mask is None:
            item.mask = AntiGhostMask(*item.size)
        elif (item.mask.width, item.mask.height) != item.size:
            raise DimensionMismatch(item.size, (item.mask.width, item.mask.height), item.filename)

        self._items.insert(position, item)
        self.kind = item.kind
        self.width, self.height = item.size

        logger.info(
            f"Stacked {item.label} at position {position} "
            f"({self.kind.value}, {self.width}x{self.height}, t={item.exposure_time:g})"
        )
        return position

    def remove(self, position: int) -> ExposureItem:
        """Drop an item and its mask.

        The remaining items already share the stack's size, so dimensions are
        unaffected. An emptied stack forgets its kind and size.
        """
        item = self._items.pop(position)
        if not self._items:
            self.kind = StackKind.UNKNOWN
            self.width = self.height = 0
        logger.info(f"Removed {item.label} from position {position}")
        return item

    def crop(self, region: Region) -> None:
        """Crop every item's buffer and mask to ``region``.

        New buffers are staged for all items first and swapped in only once
        every one of them succeeded, so a failure never leaves the stack with
        mixed dimensions.

        Args:
            region: Rectangle in current stack coordinates

        Raises:
            EmptyStackError: If the stack has no items
            InvalidRegion: If the rectangle is empty or out of bounds
        """
        if not self._items:
            raise EmptyStackError("Cannot crop an empty stack")
        if not region.fits_in(self.width, self.height):
            raise InvalidRegion(
                f"Crop region {region} does not fit in {self.width}x{self.height} stack"
            )

        staged = [
            (item.representation.cropped(region), item.mask.cropped(region))
            for item in self._items
        ]

        for item, (representation, mask) in zip(self._items, staged):
            item.representation = representation
            item.mask = mask

        logger.info(
            f"Cropped {len(self._items)} items from {self.width}x{self.height} "
            f"to {region.width}x{region.height} at ({region.x}, {region.y})"
        )
        self.width, self.height = region.size

    def shift(self, position: int, dx: int, dy: int) -> None:
        """Translate one item's buffer and mask by an integer offset.

        Content moves by +dx columns and +dy rows; uncovered pixels become 0
        (black, transparent mask).
        """
        item = self._items[position]
        representation = item.representation.shifted(dx, dy)
        mask = item.mask.shifted(dx, dy)
        item.representation = representation
        item.mask = mask
        logger.debug(f"Shifted {item.label} by ({dx}, {dy})")

    def apply_shifts(self, offsets: Sequence[Tuple[int, int]]) -> None:
        """Apply one (dx, dy) offset per item, as produced by alignment.

        Like ``crop``, shifted buffers are staged for every item before any
        of them is swapped in; a bad offset leaves the stack untouched.

        Raises:
            AlignmentError: If the number of offsets does not match the stack
            ValueError: If an offset is not an integer
        """
        if len(offsets) != len(self._items):
            raise AlignmentError(
                f"Expected {len(self._items)} offsets, got {len(offsets)}"
            )
        staged = [
            (item, item.representation.shifted(dx, dy), item.mask.shifted(dx, dy), (dx, dy))
            for item, (dx, dy) in zip(self._items, offsets)
            if dx != 0 or dy != 0
        ]

        for item, representation, mask, (dx, dy) in staged:
            item.representation = representation
            item.mask = mask
            logger.debug(f"Shifted {item.label} by ({dx}, {dy})")
        logger.info(f"Applied alignment offsets to {len(staged)} of {len(offsets)} items")

    # ------------------------------------------------------------------
    # Exposure times
    # ------------------------------------------------------------------

    def add_listener(self, listener: ExposureListener) -> None:
        """Register ``listener(position, exposure_time)`` for exposure changes."""
        self._listeners.append(listener)

    def remove_listener(self, listener: ExposureListener) -> None:
        self._listeners.remove(listener)

    def set_exposure_time(self, position: int, exposure_time: float) -> None:
        """Store a calibrated exposure time and notify listeners.

        Raises:
            ValueError: If the time is not finite and nonzero
        """
        if not math.isfinite(exposure_time) or exposure_time == 0:
            raise ValueError(
                f"Exposure time must be finite and nonzero, got {exposure_time}"
            )
        self._items[position].exposure_time = float(exposure_time)
        for listener in self._listeners:
            listener(position, float(exposure_time))
