"""Utility functions shared by the conditioning components.

This module provides the RGB/HSL conversion used by every algorithm and the
decorator that marks behavior awaiting validation.
"""

from .hsl import (
    rgb_to_hsl,
    hsl_to_rgb,
    rgb_array_to_hsl,
    hsl_to_rgb_array,
    lightness,
    average_lightness,
    max_lightness,
    scale_lightness,
)
from .decorators import requires_validation

__all__ = [
    'rgb_to_hsl',
    'hsl_to_rgb',
    'rgb_array_to_hsl',
    'hsl_to_rgb_array',
    'lightness',
    'average_lightness',
    'max_lightness',
    'scale_lightness',
    'requires_validation',
]
