"""Conditioning pipeline for HDR exposure stacks.

This module provides the ConditioningPipeline class that orchestrates the
pre-merge conditioning of an exposure stack: loading (with size/kind
checks), EV calibration, post-alignment shift and crop, manual or automatic
anti-ghosting, and the hand-off to an external fusion function.
"""

from __future__ import annotations
from concurrent.futures import Future
from dataclasses import dataclass
from typing import Any, Callable, Iterable, List, Optional, Sequence, Tuple, Union
import numpy as np
import logging

from PIL import Image

from .config import ConditioningConfig
from .exceptions import AlignmentError, DimensionMismatch, EmptyStackError, KindConflict
from .postprocessing import FusionConfig, FusionInput, HistoryTracker, build_fusion_input
from .preprocessing import (
    AntiGhostMask, ByteImage, ExposureCalibrator, ExposureItem, ExposureStack,
    PixelRepresentation, RadianceChannels, Region,
)
from .processing import Blender, GhostDetector, GhostReport

logger = logging.getLogger(__name__)


Offsets = Sequence[Tuple[int, int]]
Aligner = Callable[[ExposureStack], Offsets]


@dataclass
class LoadError:
    """A file that could not be added to the stack.

    Attributes:
        index: Loader slot of the file
        filename: Source file name, if known
        reason: Human-readable cause
    """
    index: int
    filename: Optional[str]
    reason: str


class ConditioningPipeline:
    """Orchestrates exposure-stack conditioning up to the fusion hand-off.

    Loading tolerates unordered and partial delivery: invalid files and
    size mismatches are recorded in :attr:`load_errors` and skipped, while a
    kind conflict (LDR mixed with MDR) stops the batch. Every conditioning
    step is recorded in :attr:`history`.

    Example:
        >>> pipeline = ConditioningPipeline()
        >>> pipeline.load([
        ...     pipeline.make_item(0, 1/250, dark_pixels, 'IMG_01.jpg'),
        ...     pipeline.make_item(1, 1/30, bright_pixels, 'IMG_02.jpg'),
        ... ])
        >>> pipeline.align(my_aligner)
        >>> pipeline.crop(Region(8, 8, 1000, 660))
        >>> pipeline.auto_antighost(threshold=0.5)
        >>> radiance = pipeline.create_hdr(fuse)
    """

    def __init__(
        self,
        config: Optional[ConditioningConfig] = None,
        fusion_config: Optional[FusionConfig] = None
    ):
        """Initialize the ConditioningPipeline.

        Args:
            config: Conditioning parameters (default: ConditioningConfig())
            fusion_config: Fusion parameters (default: predefined profile 1)
        """
        self.config = config or ConditioningConfig()
        self.fusion_config = fusion_config or FusionConfig.profile(1)

        self.stack = ExposureStack()
        self.calibrator = ExposureCalibrator(ev_bound=self.config.ev_bound)
        self.detector = GhostDetector(
            grid_size=self.config.grid_size,
            ghost_ratio=self.config.ghost_ratio
        )
        self.blender = Blender(max_workers=self.config.max_workers)
        self.history = HistoryTracker()
        self.load_errors: List[LoadError] = []

        logger.info(f"Pipeline initialized with {self.config.to_dict()}, fusion: {self.fusion_config}")

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    def make_item(
        self,
        index: int,
        exposure_time: float,
        pixels: Union[np.ndarray, Image.Image, Sequence[np.ndarray]],
        filename: Optional[str] = None
    ) -> ExposureItem:
        """Wrap decoded pixels in an ExposureItem.

        Args:
            index: Loader slot
            exposure_time: Seconds, or -1 when the file carries no metadata
            pixels: One of:
                - PIL image or (H, W, 3) uint8 array: LDR input
                - (H, W, 3) float array or three (H, W) planes: MDR input in
                  native units (divided by config.radiance_scale)
            filename: Source file name

        Returns:
            ExposureItem ready for :meth:`load`
        """
        representation: PixelRepresentation
        if isinstance(pixels, Image.Image):
            representation = ByteImage.from_pil(pixels)
        elif isinstance(pixels, np.ndarray) and pixels.dtype == np.uint8:
            representation = ByteImage(pixels)
        elif isinstance(pixels, np.ndarray):
            representation = RadianceChannels.from_array(pixels, scale=self.config.radiance_scale)
        elif len(pixels) == 3:
            representation = RadianceChannels(*pixels, scale=self.config.radiance_scale)
        else:
            raise ValueError(
                f"Expected a PIL image, an (H, W, 3) array or three planes, got {type(pixels).__name__}"
            )
        return ExposureItem(index, exposure_time, representation, filename=filename)

    def load(self, items: Iterable[ExposureItem]) -> List[int]:
        """Add a batch of decoded exposures to the stack.

        Items may arrive in any order. Invalid items and size mismatches are
        recorded as load errors and skipped. Once every exposure time is
        known, EVs are normalized.

        Args:
            items: Decoded exposures from the loaders

        Returns:
            Loader indices of the items that were stacked

        Raises:
            KindConflict: If an item's kind differs from the stack's; items
                          after it in the batch are not loaded
        """
        accepted = []
        for item in items:
            if not item.valid:
                self._load_failed(item, "could not be decoded")
                continue
            try:
                self.stack.append(item)
            except DimensionMismatch as e:
                self._load_failed(item, str(e))
                continue
            except KindConflict as e:
                self._load_failed(item, str(e))
                logger.error(f"Load batch stopped: {e}")
                self.history.record(
                    'load', {'accepted': accepted}, 'ConditioningPipeline',
                    notes=f"stopped: {e}"
                )
                raise
            self.calibrator.register_pending(item)
            accepted.append(item.index)

        self.history.record(
            'load', {'accepted': accepted}, 'ConditioningPipeline',
            notes=f"{len(self.stack)} items, {len(self.load_errors)} load errors"
        )

        if self.is_calibrated:
            self.calibrate()
        elif self.calibrator.pending:
            logger.warning(
                f"{len(self.calibrator.pending)} exposures lack metadata: "
                f"{', '.join(self.calibrator.pending)}"
            )
        return accepted

    def _load_failed(self, item: ExposureItem, reason: str) -> None:
        error = LoadError(item.index, item.filename, reason)
        self.load_errors.append(error)
        logger.warning(f"Failed to load {item.label}: {reason}")

    @property
    def loading_error(self) -> bool:
        return bool(self.load_errors)

    @property
    def is_calibrated(self) -> bool:
        """Whether every stacked exposure has a usable exposure time."""
        return len(self.stack) > 0 and all(item.has_exposure for item in self.stack)

    # ------------------------------------------------------------------
    # Calibration
    # ------------------------------------------------------------------

    def calibrate(self) -> Optional[float]:
        """Normalize EVs into the configured bound.

        Returns:
            The EV offset applied, or None if nothing changed
        """
        offset = self.calibrator.normalize_ev(self.stack)
        self.history.record(
            'normalize_ev', {'ev_bound': self.calibrator.ev_bound, 'offset': offset},
            'ExposureCalibrator'
        )
        return offset

    def set_ev(self, position: int, ev: float) -> float:
        """Manually assign an EV to one exposure.

        Returns:
            The new exposure time in seconds
        """
        exposure_time = self.calibrator.set_manual_ev(self.stack, position, ev)
        self.history.record(
            'set_ev', {'position': position, 'ev': ev}, 'ExposureCalibrator'
        )
        return exposure_time

    # ------------------------------------------------------------------
    # Geometry
    # ------------------------------------------------------------------

    def align(self, aligner: Union[Aligner, 'Future[Offsets]']) -> List[Tuple[int, int]]:
        """Run (or wait for) external alignment and apply its offsets.

        Args:
            aligner: Callable ``aligner(stack) -> [(dx, dy), ...]``, or a
                     Future resolving to such a list

        Returns:
            The offsets applied, one per item

        Raises:
            AlignmentError: If alignment failed or its offsets are unusable
        """
        try:
            if isinstance(aligner, Future):
                offsets = aligner.result()
            else:
                offsets = aligner(self.stack)
        except AlignmentError:
            raise
        except Exception as e:
            logger.error(f"Alignment failed: {e}")
            raise AlignmentError(f"Alignment failed: {e}", original_error=e) from e

        try:
            offsets = [(int(dx), int(dy)) for dx, dy in offsets]
        except (TypeError, ValueError) as e:
            raise AlignmentError(f"Alignment returned unusable offsets: {e}", original_error=e) from e

        self.stack.apply_shifts(offsets)
        self.history.record('align', {'offsets': offsets}, 'ExposureStack')
        return offsets

    def shift(self, position: int, dx: int, dy: int) -> None:
        self.stack.shift(position, dx, dy)
        self.history.record('shift', {'position': position, 'dx': dx, 'dy': dy}, 'ExposureStack')

    def crop(self, region: Region) -> None:
        """Crop every exposure and mask to ``region``."""
        self.stack.crop(region)
        self.history.record(
            'crop',
            {'x': region.x, 'y': region.y, 'width': region.width, 'height': region.height},
            'ExposureStack'
        )

    def remove(self, position: int) -> ExposureItem:
        item = self.stack.remove(position)
        self.history.record('remove', {'position': position, 'file': item.label}, 'ExposureStack')
        return item

    # ------------------------------------------------------------------
    # Anti-ghosting
    # ------------------------------------------------------------------

    def mask(self, position: int) -> AntiGhostMask:
        """Anti-ghost mask of the exposure at ``position``, for painting."""
        return self.stack[position].mask

    def preview(self, position: int) -> Image.Image:
        """8-bit preview of the exposure at ``position``."""
        return self.stack[position].representation.to_preview()

    def manual_antighost(self, good_position: int) -> int:
        """Blend the good exposure into the others wherever masks are painted.

        Returns:
            Number of pixels blended
        """
        blended = self.blender.manual_antighost(self.stack, good_position)
        self.history.record(
            'manual_antighost', {'good_position': good_position}, 'Blender',
            notes=f"{blended} pixels blended"
        )
        return blended

    def auto_antighost(self, threshold: float) -> GhostReport:
        """Detect and correct ghost patches automatically.

        Args:
            threshold: Disagreeing-pixel fraction in (0, 1] that flags a patch

        Returns:
            GhostReport of the run
        """
        report = self.blender.auto_antighost(self.stack, threshold, detector=self.detector)
        self.history.record(
            'auto_antighost',
            {
                'threshold': threshold,
                'grid_size': self.detector.grid_size,
                'reference': report.reference,
            },
            'Blender',
            notes=(
                f"{report.flagged_count} patches flagged, "
                f"{report.skipped_patches} skipped"
            )
        )
        return report

    # ------------------------------------------------------------------
    # Fusion
    # ------------------------------------------------------------------

    def set_fusion_config(self, config: FusionConfig) -> None:
        self.fusion_config = config
        logger.info(f"Fusion config set to {config}")

    def use_profile(self, number: int) -> FusionConfig:
        """Select predefined fusion profile ``number`` (1-based)."""
        self.set_fusion_config(FusionConfig.profile(number))
        return self.fusion_config

    def create_hdr(self, fuse: Callable[[FusionInput], Any]) -> Any:
        """Hand the conditioned stack to the fusion function.

        EVs are normalized first (a no-op when already within bounds).

        Args:
            fuse: External fusion callable

        Returns:
            Whatever ``fuse`` returns

        Raises:
            EmptyStackError: If the stack is empty
            UncalibratedExposure: If an exposure time is still unknown
        """
        if len(self.stack) == 0:
            raise EmptyStackError("Cannot create an HDR from an empty stack")
        self.calibrate()
        fusion_input = build_fusion_input(self.stack, self.fusion_config)
        self.history.record('create_hdr', self.fusion_config.to_dict(), 'ConditioningPipeline')
        return fuse(fusion_input)

    def __repr__(self) -> str:
        return (
            f"ConditioningPipeline({self.stack!r}, "
            f"{len(self.load_errors)} load errors, {len(self.history)} steps)"
        )
