"""Postprocessing: fusion hand-off and conditioning history."""

from .fusion import (
    WeightingFunction,
    ResponseCurve,
    MergeModel,
    FusionConfig,
    PREDEFINED_CONFIGS,
    FusionInput,
    build_fusion_input,
)
from .history_tracker import ConditioningStep, HistoryTracker

__all__ = [
    'WeightingFunction',
    'ResponseCurve',
    'MergeModel',
    'FusionConfig',
    'PREDEFINED_CONFIGS',
    'FusionInput',
    'build_fusion_input',
    'ConditioningStep',
    'HistoryTracker',
]
