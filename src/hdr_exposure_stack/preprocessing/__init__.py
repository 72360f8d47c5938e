"""Preprocessing classes for exposure stacks.

This module provides the pixel representations, the exposure stack with its
geometry/kind invariants, and EV calibration.
"""

from .representation import (
    StackKind,
    Region,
    PixelRepresentation,
    ByteImage,
    RadianceChannels,
    shift_plane,
)
from .stack import (
    UNKNOWN_EXPOSURE,
    AntiGhostMask,
    ExposureItem,
    ExposureStack,
)
from .calibration import ExposureCalibrator

__all__ = [
    'StackKind',
    'Region',
    'PixelRepresentation',
    'ByteImage',
    'RadianceChannels',
    'shift_plane',
    'UNKNOWN_EXPOSURE',
    'AntiGhostMask',
    'ExposureItem',
    'ExposureStack',
    'ExposureCalibrator',
]
