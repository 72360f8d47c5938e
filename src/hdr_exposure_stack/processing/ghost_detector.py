"""Automatic ghost detection by hue-variance patch scoring.

This module provides the PatchGrid, GhostReport and GhostDetector classes.
Exposures are split into a fixed G x G grid (G = 40). Each exposure gets a
ghost score, the mean squared deviation of its hue from the stack's
per-pixel mean hue; the highest-scoring exposure becomes the reference, and
every patch where another exposure disagrees with the reference more than
their exposure difference explains is flagged for correction.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Iterator, List, Tuple
import numpy as np
import logging

from ..exceptions import EmptyStackError, UncalibratedExposure
from ..preprocessing.representation import Region
from ..preprocessing.stack import ExposureStack
from ..utilities.decorators import requires_validation
from ..utilities.hsl import average_lightness, rgb_array_to_hsl

logger = logging.getLogger(__name__)

DEFAULT_GRID_SIZE = 40
DEFAULT_GHOST_RATIO = 0.7


@dataclass(frozen=True)
class PatchGrid:
    """Fixed G x G partition of a width x height image.

    Patch size is (width // G) x (height // G). Remainder columns/rows past
    the last full patch belong to no patch and are never scored or corrected.

    Attributes:
        width: Image width
        height: Image height
        grid_size: Number of patches per side (G)
    """
    width: int
    height: int
    grid_size: int = DEFAULT_GRID_SIZE

    def __post_init__(self):
        if self.grid_size <= 0:
            raise ValueError(f"grid_size must be positive, got {self.grid_size}")

    @property
    def patch_width(self) -> int:
        return self.width // self.grid_size

    @property
    def patch_height(self) -> int:
        return self.height // self.grid_size

    @property
    def is_empty(self) -> bool:
        """True when the image is smaller than one pixel per patch."""
        return self.patch_width == 0 or self.patch_height == 0

    @property
    def coverage(self) -> Region:
        """Region covered by the grid (top-left aligned)."""
        return Region(
            0, 0,
            self.patch_width * self.grid_size,
            self.patch_height * self.grid_size
        )

    def region(self, i: int, j: int) -> Region:
        """Pixel region of patch column ``i``, row ``j``."""
        if not (0 <= i < self.grid_size and 0 <= j < self.grid_size):
            raise IndexError(f"Patch ({i}, {j}) outside {self.grid_size}x{self.grid_size} grid")
        return Region(
            i * self.patch_width, j * self.patch_height,
            self.patch_width, self.patch_height
        )

    def patches(self) -> Iterator[Tuple[int, int]]:
        """Iterate (i, j) over every patch, row by row."""
        for j in range(self.grid_size):
            for i in range(self.grid_size):
                yield i, j

    def patch_means(self, values: np.ndarray) -> np.ndarray:
        """Per-patch mean of a per-pixel array.

        Args:
            values: Array of shape (height, width) or larger; only the covered
                    area is used

        Returns:
            (G, G) array indexed [row j, column i]
        """
        cover = self.coverage
        rows, cols = cover.slices()
        tiles = values[rows, cols].reshape(
            self.grid_size, self.patch_height, self.grid_size, self.patch_width
        )
        return tiles.mean(axis=(1, 3))


@dataclass
class GhostReport:
    """Result of one automatic ghost detection run.

    Attributes:
        scores: Ghost score per item (mean squared hue deviation)
        average_lightness: Mean HSL lightness per item
        reference: Position of the reference item (h0)
        scale_factors: average_lightness[h] / average_lightness[h0]
        flags: (G, G) boolean array of flagged patches, indexed [j, i]
        grid: Patch grid used for detection
        threshold: Fraction of disagreeing pixels that flags a patch
        corrected_patches: Patch writes performed by the blender
        skipped_patches: Flagged patches skipped as degenerate
    """
    scores: np.ndarray
    average_lightness: np.ndarray
    reference: int
    scale_factors: np.ndarray
    flags: np.ndarray
    grid: PatchGrid
    threshold: float
    corrected_patches: int = 0
    skipped_patches: int = 0

    @property
    def flagged_count(self) -> int:
        return int(np.count_nonzero(self.flags))

    @property
    def flagged_fraction(self) -> float:
        return self.flagged_count / float(self.grid.grid_size ** 2)

    def flagged_patches(self) -> List[Tuple[int, int]]:
        """(i, j) of every flagged patch, row by row."""
        rows, cols = np.nonzero(self.flags)
        return [(int(i), int(j)) for j, i in zip(rows, cols)]

    def __repr__(self):
        return (
            f"GhostReport(reference={self.reference}, "
            f"flagged={self.flagged_fraction*100:.2f}%, "
            f"corrected={self.corrected_patches}, skipped={self.skipped_patches})"
        )


class GhostDetector:
    """Detect patches affected by motion between exposures.

    Example:
        >>> detector = GhostDetector()
        >>> report = detector.detect(stack, threshold=0.5)
        >>> print(report.reference, report.flagged_patches()[:5])
    """

    def __init__(
        self,
        grid_size: int = DEFAULT_GRID_SIZE,
        ghost_ratio: float = DEFAULT_GHOST_RATIO
    ):
        """Initialize the GhostDetector.

        Args:
            grid_size: Patches per side of the grid (default: 40)
            ghost_ratio: A pixel disagrees when a channel's log difference,
                         corrected for the exposure difference, exceeds
                         ghost_ratio * |deltaEV| (default: 0.7)
        """
        if grid_size <= 0:
            raise ValueError(f"grid_size must be positive, got {grid_size}")
        if ghost_ratio <= 0:
            raise ValueError(f"ghost_ratio must be positive, got {ghost_ratio}")
        self.grid_size = grid_size
        self.ghost_ratio = ghost_ratio

    def ghost_scores(self, images: List[np.ndarray]) -> np.ndarray:
        """Mean squared deviation of each image's hue from the stack mean hue.

        Args:
            images: Normalized (H, W, 3) arrays, one per item

        Returns:
            1D array of scores, one per image
        """
        hues = np.stack(
            [rgb_array_to_hsl(rgb)[0].astype(np.float32) for rgb in images]
        )
        mean_hue = hues.mean(axis=0, dtype=np.float64)
        scores = np.array([
            float(np.mean((mean_hue - hue) ** 2)) for hue in hues
        ])
        for position, score in enumerate(scores):
            logger.debug(f"Ghost score [{position}] = {score:.6g}")
        return scores

    @staticmethod
    @requires_validation(
        "reference exposure is the one with the MAXIMUM hue deviation from the "
        "stack mean; verify against known-good outputs"
    )
    def select_reference(scores: np.ndarray) -> int:
        """Index of the highest ghost score (first one on ties)."""
        return int(np.argmax(scores))

    def flag_patches(
        self,
        reference: np.ndarray,
        other: np.ndarray,
        delta_ev: float,
        threshold: float,
        grid: PatchGrid
    ) -> np.ndarray:
        """Flag patches where ``other`` disagrees with ``reference``.

        For each pixel and channel the log ratio between the two images is
        offset by ``delta_ev`` (natural log of the exposure-time ratio). A
        pixel disagrees when any channel exceeds ghost_ratio * |delta_ev|; a
        patch is flagged when more than ``threshold`` of its pixels disagree.

        Args:
            reference: Normalized (H, W, 3) reference image
            other: Normalized (H, W, 3) image compared against it
            delta_ev: ln(t_reference) - ln(t_other)
            threshold: Disagreeing-pixel fraction that flags a patch
            grid: Patch grid

        Returns:
            (G, G) boolean array indexed [j, i]
        """
        if grid.is_empty:
            return np.zeros((grid.grid_size, grid.grid_size), dtype=bool)

        rows, cols = grid.coverage.slices()
        with np.errstate(divide='ignore', invalid='ignore'):
            log_ref = np.log(reference[rows, cols])
            log_other = np.log(other[rows, cols])
            if delta_ev < 0:
                diff = log_ref - log_other - delta_ev
            else:
                diff = log_other - log_ref + delta_ev
            limit = self.ghost_ratio * abs(delta_ev)
            disagree = np.any(np.abs(diff) > limit, axis=-1)

        fractions = grid.patch_means(disagree.astype(np.float64))
        return fractions > threshold

    def detect(self, stack: ExposureStack, threshold: float) -> GhostReport:
        """Score exposures, pick the reference and flag ghost patches.

        Args:
            stack: Stack with calibrated exposure times
            threshold: User threshold in (0, 1]

        Returns:
            GhostReport describing the reference and the flagged patches

        Raises:
            ValueError: If threshold is outside (0, 1]
            EmptyStackError: If the stack is empty
            UncalibratedExposure: If an exposure time is unknown
        """
        if not 0.0 < threshold <= 1.0:
            raise ValueError(f"threshold must be in (0, 1], got {threshold}")
        if len(stack) == 0:
            raise EmptyStackError("Cannot detect ghosts in an empty stack")
        missing = [item.label for item in stack if not item.has_exposure]
        if missing:
            raise UncalibratedExposure(
                f"Ghost detection needs exposure times, unknown for: {', '.join(missing)}"
            )

        grid = PatchGrid(stack.width, stack.height, self.grid_size)
        images = [rep.read() for rep in stack.representations]
        times = stack.exposure_times

        avg_lightness = np.array([average_lightness(rgb) for rgb in images])
        for position, value in enumerate(avg_lightness):
            logger.debug(f"avgLightness[{position}] = {value:.6g}")

        scores = self.ghost_scores(images)
        h0 = self.select_reference(scores)
        logger.info(f"Reference exposure for anti-ghosting: {stack[h0].label} (position {h0})")

        with np.errstate(divide='ignore', invalid='ignore'):
            scale_factors = avg_lightness / avg_lightness[h0]
        if avg_lightness[h0] <= 0:
            logger.warning("Reference exposure is completely black; no patch can be corrected")

        flags = np.zeros((grid.grid_size, grid.grid_size), dtype=bool)
        if grid.is_empty:
            logger.warning(
                f"Image {stack.width}x{stack.height} is smaller than the "
                f"{grid.grid_size}x{grid.grid_size} patch grid; nothing to flag"
            )
        else:
            for h in range(len(stack)):
                if h == h0:
                    continue
                delta_ev = float(np.log(times[h0]) - np.log(times[h]))
                flags |= self.flag_patches(images[h0], images[h], delta_ev, threshold, grid)

        report = GhostReport(
            scores=scores,
            average_lightness=avg_lightness,
            reference=h0,
            scale_factors=scale_factors,
            flags=flags,
            grid=grid,
            threshold=threshold,
        )
        logger.info(f"Flagged patches: {report.flagged_fraction * 100.0:.2f}%")
        return report
