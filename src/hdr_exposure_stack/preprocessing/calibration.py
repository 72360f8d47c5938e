"""Exposure-value calibration for an exposure stack.

This module provides the ExposureCalibrator class, which keeps exposure
times in a bounded EV range and handles manual EV overrides for exposures
that arrived without usable metadata.
"""

from __future__ import annotations
from typing import List, Optional
import math
import numpy as np
import logging

from ..exceptions import UncalibratedExposure
from .stack import ExposureItem, ExposureStack, UNKNOWN_EXPOSURE

logger = logging.getLogger(__name__)


class ExposureCalibrator:
    """Normalize exposure values into [-ev_bound, +ev_bound].

    EV = log2(exposure time). When the brightest EV exceeds the bound, the
    whole set is shifted down so the maximum sits exactly on the bound;
    otherwise, when the darkest EV is below -bound, the set is shifted up so
    the minimum sits exactly on -bound. Relative EV differences never change.

    The calibrator also keeps the record of exposures that were delivered
    without exposure metadata, in the order they were reported.

    Example:
        >>> calibrator = ExposureCalibrator()
        >>> calibrator.register_pending(item_without_exif)
        >>> calibrator.set_manual_ev(stack, 2, ev=-3.0)
        >>> calibrator.normalize_ev(stack)
    """

    def __init__(self, ev_bound: float = 10.0):
        """Initialize the ExposureCalibrator.

        Args:
            ev_bound: Largest absolute EV allowed (default: 10)
        """
        if ev_bound <= 0:
            raise ValueError(f"ev_bound must be positive, got {ev_bound}")
        self.ev_bound = float(ev_bound)
        self._pending: List[str] = []

    @property
    def pending(self) -> List[str]:
        """Labels of exposures still lacking calibration metadata."""
        return list(self._pending)

    def register_pending(self, item: ExposureItem) -> bool:
        """Record ``item`` if it carries the unknown-exposure sentinel.

        Returns:
            True if the item was recorded
        """
        if item.exposure_time != UNKNOWN_EXPOSURE:
            return False
        self._pending.append(item.label)
        logger.warning(f"{item.label} has no exposure metadata; manual EV required")
        return True

    def normalize_ev(self, stack: ExposureStack) -> Optional[float]:
        """Shift every exposure so all EVs fit within the bound.

        Args:
            stack: Stack whose exposure times are all calibrated

        Returns:
            The EV offset that was applied, or None if nothing changed

        Raises:
            UncalibratedExposure: If any item has no usable exposure time
            ValueError: If the shifted times would overflow or underflow
        """
        if len(stack) == 0:
            return None

        missing = [item.label for item in stack if not item.has_exposure]
        if missing:
            raise UncalibratedExposure(
                f"Cannot normalize EV values, exposure time unknown for: {', '.join(missing)}"
            )

        evs = np.log2(stack.exposure_times)
        ev_max = float(evs.max())
        ev_min = float(evs.min())

        if ev_max > self.ev_bound:
            offset = -(ev_max - self.ev_bound)
        elif ev_min < -self.ev_bound:
            offset = -(ev_min + self.ev_bound)
        else:
            logger.debug(f"EV range [{ev_min:.2f}, {ev_max:.2f}] within bounds")
            return None

        logger.info(
            f"EV range [{ev_min:.2f}, {ev_max:.2f}] out of bounds, "
            f"shifting all exposures by {offset:+.2f} EV"
        )
        with np.errstate(over='ignore', under='ignore'):
            times = np.exp2(evs + offset)
        bad = [stack[p].label for p, t in enumerate(times) if not np.isfinite(t) or t == 0]
        if bad:
            raise ValueError(
                f"EV shift of {offset:+.2f} gives exposure times out of range for: {', '.join(bad)}"
            )
        for position, t in enumerate(times):
            stack.set_exposure_time(position, float(t))
        return offset

    def set_manual_ev(self, stack: ExposureStack, position: int, ev: float) -> float:
        """Override one exposure's time with 2**ev.

        If the item still carried the unknown sentinel, the first outstanding
        pending record is cleared (one record per call, in report order).

        Args:
            stack: Stack holding the item
            position: Item position in the stack
            ev: Exposure value to assign

        Returns:
            The new exposure time in seconds

        Raises:
            ValueError: If ev does not give a finite, nonzero exposure time
        """
        if not math.isfinite(ev):
            raise ValueError(f"ev must be finite, got {ev}")
        try:
            exposure_time = 2.0 ** ev
        except OverflowError:
            raise ValueError(f"ev={ev} gives an exposure time out of range")

        item = stack[position]
        was_unknown = item.exposure_time == UNKNOWN_EXPOSURE
        stack.set_exposure_time(position, exposure_time)

        if was_unknown and self._pending:
            cleared = self._pending.pop(0)
            logger.debug(f"Cleared pending calibration record {cleared}")

        logger.info(f"Set EV {ev:+.2f} (t={exposure_time:g}s) for {item.label}")
        return exposure_time
