"""HSL-domain pixel blending for anti-ghosting.

This module provides the Blender class. It writes corrected pixels back into
an ExposureStack in two ways:

- Automatic: every patch flagged by the GhostDetector is replaced, in every
  non-reference exposure, by the reference's pixels with their lightness
  rescaled to the exposure's brightness.
- Manual: a user-chosen "good" exposure is alpha-blended into every other
  exposure wherever either one's anti-ghost mask is painted.

Hue and saturation always come from the source pixel; only lightness is
rescaled, so the copied content matches the target exposure's brightness.
"""

from __future__ import annotations
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Callable, Dict, List, Optional, Tuple
import numpy as np
import logging

from ..exceptions import EmptyStackError
from ..preprocessing.representation import Region
from ..preprocessing.stack import ExposureStack
from ..utilities.hsl import average_lightness, scale_lightness
from .ghost_detector import GhostDetector, GhostReport

logger = logging.getLogger(__name__)


class Blender:
    """Write anti-ghosting corrections into an exposure stack.

    Each exposure is corrected independently, so work is spread over a
    thread pool when ``max_workers > 1``. The reference (or good) exposure
    is only read.

    Example:
        >>> blender = Blender(max_workers=4)
        >>> report = blender.auto_antighost(stack, threshold=0.5)
        >>> print(report.corrected_patches, report.skipped_patches)
        >>> stack[0].mask.paint(Region(100, 80, 50, 50))
        >>> blender.manual_antighost(stack, good_position=0)
    """

    def __init__(self, max_workers: int = 1):
        """Initialize the Blender.

        Args:
            max_workers: Threads used to correct exposures (default: 1,
                         sequential)
        """
        if max_workers < 1:
            raise ValueError(f"max_workers must be >= 1, got {max_workers}")
        self.max_workers = max_workers

    def _run(self, task: Callable[[int], int], positions: List[int]) -> Dict[int, int]:
        """Run ``task(position)`` for each position, returning results by position."""
        if self.max_workers == 1 or len(positions) <= 1:
            return {position: task(position) for position in positions}

        results = {}
        with ThreadPoolExecutor(max_workers=self.max_workers) as ex:
            futures = {ex.submit(task, position): position for position in positions}
            for fut in as_completed(futures):
                results[futures[fut]] = fut.result()
        return results

    def correct_patches(self, stack: ExposureStack, report: GhostReport) -> GhostReport:
        """Overwrite flagged patches with rescaled reference pixels.

        A flagged patch is skipped (for every exposure) when the reference
        patch's average lightness is <= 0 or >= the representation maximum;
        there is no usable content to rescale there.

        Args:
            stack: Stack the report was computed on
            report: Result of GhostDetector.detect

        Returns:
            The same report, with corrected_patches and skipped_patches set
        """
        h0 = report.reference
        reference = stack[h0].representation
        max_value = reference.max_value
        reference_rgb = reference.read()

        plan: List[Tuple[Region, np.ndarray]] = []
        skipped = 0
        for i, j in report.flagged_patches():
            region = report.grid.region(i, j)
            rows, cols = region.slices()
            patch = reference_rgb[rows, cols]
            patch_lightness = average_lightness(patch)
            if patch_lightness <= 0.0 or patch_lightness >= max_value:
                logger.debug(
                    f"Skipping patch ({i}, {j}): reference lightness {patch_lightness:.4f}"
                )
                skipped += 1
                continue
            plan.append((region, patch))

        def correct(position: int) -> int:
            representation = stack[position].representation
            factor = float(report.scale_factors[position])
            for region, patch in plan:
                corrected = scale_lightness(
                    patch, factor, ceiling=max_value, max_value=max_value
                )
                representation.write(corrected, region)
            return len(plan)

        targets = [position for position in range(len(stack)) if position != h0]
        results = self._run(correct, targets)

        report.corrected_patches = sum(results.values())
        report.skipped_patches = skipped
        total = report.grid.grid_size ** 2
        logger.info(
            f"Copied patches: {len(plan) * 100.0 / total:.2f}% "
            f"into {len(targets)} exposures ({skipped} degenerate patches skipped)"
        )
        return report

    def auto_antighost(
        self,
        stack: ExposureStack,
        threshold: float,
        detector: Optional[GhostDetector] = None
    ) -> GhostReport:
        """Detect ghost patches and correct them in one step.

        Args:
            stack: Stack with calibrated exposure times
            threshold: Disagreeing-pixel fraction in (0, 1]
            detector: Detector to use (default: GhostDetector())

        Returns:
            GhostReport with correction counts filled in
        """
        detector = detector or GhostDetector()
        report = detector.detect(stack, threshold)
        return self.correct_patches(stack, report)

    def manual_antighost(self, stack: ExposureStack, good_position: int) -> int:
        """Blend the good exposure into every other exposure under the masks.

        For each other exposure, pixels where both masks are transparent are
        left untouched. Elsewhere alpha is the good mask's opacity when
        nonzero, otherwise the exposure's own mask opacity, and::

            result = (1 - alpha) * pixel + alpha * scaled_good_pixel

        where the good pixel's lightness is multiplied by
        avg_lightness(exposure) / avg_lightness(good) and clamped to the
        representation's lightness ceiling. The resulting RGB components are
        clamped to [0, max_value], so radiance brighter than 1.0 only keeps
        its lightness headroom, not its channel values.

        Args:
            stack: Stack whose masks were painted
            good_position: Position of the ghost-free exposure

        Returns:
            Total number of pixels blended

        Raises:
            EmptyStackError: If the stack is empty
            IndexError: If good_position is out of range
        """
        if len(stack) == 0:
            raise EmptyStackError("Cannot anti-ghost an empty stack")
        if not 0 <= good_position < len(stack):
            raise IndexError(
                f"good_position must be in [0, {len(stack) - 1}], got {good_position}"
            )

        good = stack[good_position]
        good_rgb = good.representation.read()
        good_alpha = good.mask.opacity
        good_lightness = average_lightness(good_rgb)
        if good_lightness <= 0.0:
            logger.warning(f"Good exposure {good.label} is completely black; lightness not rescaled")

        def blend(position: int) -> int:
            item = stack[position]
            item_alpha = item.mask.opacity
            active = (good_alpha > 0) | (item_alpha > 0)
            if not np.any(active):
                return 0

            representation = item.representation
            item_rgb = representation.read()
            if good_lightness > 0.0:
                factor = average_lightness(item_rgb) / good_lightness
            else:
                factor = 1.0
            ceiling = representation.lightness_ceiling(good.representation)
            scaled = scale_lightness(
                good_rgb[active], factor,
                ceiling=ceiling,
                max_value=representation.max_value
            )

            alpha = np.where(good_alpha > 0, good_alpha, item_alpha)[active][:, np.newaxis]
            blended = item_rgb.copy()
            blended[active] = (1.0 - alpha) * item_rgb[active] + alpha * scaled
            representation.write(blended, where=active)

            count = int(np.count_nonzero(active))
            logger.debug(f"Blended {count} pixels of {item.label} (scale factor {factor:.4f})")
            return count

        targets = [position for position in range(len(stack)) if position != good_position]
        results = self._run(blend, targets)
        total = sum(results.values())
        logger.info(f"Manual anti-ghosting from {good.label}: {total} pixels blended")
        return total
