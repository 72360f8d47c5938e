"""Anti-ghosting: automatic ghost detection and HSL blending."""

from .ghost_detector import (
    DEFAULT_GRID_SIZE,
    DEFAULT_GHOST_RATIO,
    PatchGrid,
    GhostReport,
    GhostDetector,
)
from .blender import Blender

__all__ = [
    'DEFAULT_GRID_SIZE',
    'DEFAULT_GHOST_RATIO',
    'PatchGrid',
    'GhostReport',
    'GhostDetector',
    'Blender',
]
