"""HDR Exposure Stack - pre-merge conditioning and anti-ghosting for HDR fusion.

Validates that bracketed exposures share one geometry and input kind,
normalizes their EV metadata, and removes ghosts (content that moved between
exposures) before the stack is handed to an external fusion stage.

- preprocessing: ByteImage, RadianceChannels, ExposureStack, ExposureCalibrator
- processing: PatchGrid, GhostDetector, Blender
- postprocessing: FusionConfig, FusionInput, HistoryTracker
- pipeline: ConditioningPipeline (high-level orchestrator)
"""

from .config import ConditioningConfig
from .exceptions import (
    HdrStackError,
    DimensionMismatch,
    KindConflict,
    InvalidRegion,
    UncalibratedExposure,
    AlignmentError,
    EmptyStackError,
)
from .preprocessing import (
    StackKind,
    Region,
    PixelRepresentation,
    ByteImage,
    RadianceChannels,
    UNKNOWN_EXPOSURE,
    AntiGhostMask,
    ExposureItem,
    ExposureStack,
    ExposureCalibrator,
)
from .processing import PatchGrid, GhostReport, GhostDetector, Blender
from .postprocessing import (
    FusionConfig,
    PREDEFINED_CONFIGS,
    FusionInput,
    build_fusion_input,
    HistoryTracker,
)
from .pipeline import ConditioningPipeline, LoadError

__version__ = "0.1.0"
__all__ = [
    # Configuration
    "ConditioningConfig",
    # Exceptions
    "HdrStackError",
    "DimensionMismatch",
    "KindConflict",
    "InvalidRegion",
    "UncalibratedExposure",
    "AlignmentError",
    "EmptyStackError",
    # Preprocessing
    "StackKind",
    "Region",
    "PixelRepresentation",
    "ByteImage",
    "RadianceChannels",
    "UNKNOWN_EXPOSURE",
    "AntiGhostMask",
    "ExposureItem",
    "ExposureStack",
    "ExposureCalibrator",
    # Processing
    "PatchGrid",
    "GhostReport",
    "GhostDetector",
    "Blender",
    # Postprocessing
    "FusionConfig",
    "PREDEFINED_CONFIGS",
    "FusionInput",
    "build_fusion_input",
    "HistoryTracker",
    # Pipeline
    "ConditioningPipeline",
    "LoadError",
]
