"""Hand-off of a conditioned stack to the external fusion stage.

This module provides FusionConfig (weighting function, response curve and
merge model), the predefined fusion profiles, and FusionInput, the immutable
snapshot passed to the fusion callable. The fusion arithmetic itself lives
outside this package.
"""

from __future__ import annotations
from dataclasses import dataclass, asdict, replace
from typing import Any, Dict, Literal, Tuple
import numpy as np
import logging

from ..exceptions import EmptyStackError, UncalibratedExposure
from ..preprocessing.representation import StackKind
from ..preprocessing.stack import ExposureStack

logger = logging.getLogger(__name__)


WeightingFunction = Literal['triangular', 'gaussian', 'plateau']
ResponseCurve = Literal['linear', 'gamma', 'log', 'robertson']
MergeModel = Literal['debevec', 'robertson']

_WEIGHTS = ('triangular', 'gaussian', 'plateau')
_RESPONSES = ('linear', 'gamma', 'log', 'robertson')
_MODELS = ('debevec', 'robertson')


@dataclass(frozen=True)
class FusionConfig:
    """Parameters of the exposure fusion.

    Attributes:
        weights: Pixel weighting function
        response: Camera response curve (or 'robertson' to recover it)
        model: Merge model
        iterations: Iterations of response recovery (0 = library default)
        anti_ghosting: Whether the fusion should apply its own ghost handling
    """
    weights: WeightingFunction = 'triangular'
    response: ResponseCurve = 'linear'
    model: MergeModel = 'debevec'
    iterations: int = 0
    anti_ghosting: bool = False

    def __post_init__(self):
        if self.weights not in _WEIGHTS:
            raise ValueError(f"Expected weights in {_WEIGHTS}, got '{self.weights}'")
        if self.response not in _RESPONSES:
            raise ValueError(f"Expected response in {_RESPONSES}, got '{self.response}'")
        if self.model not in _MODELS:
            raise ValueError(f"Expected model in {_MODELS}, got '{self.model}'")
        if self.iterations < 0:
            raise ValueError(f"iterations must be >= 0, got {self.iterations}")

    @classmethod
    def profile(cls, number: int) -> 'FusionConfig':
        """Predefined profile ``number`` (1-based, as listed to users).

        Raises:
            ValueError: If no such profile exists
        """
        if not 1 <= number <= len(PREDEFINED_CONFIGS):
            raise ValueError(
                f"Profile must be in [1, {len(PREDEFINED_CONFIGS)}], got {number}"
            )
        return PREDEFINED_CONFIGS[number - 1]

    def with_options(self, **changes) -> 'FusionConfig':
        """Copy with some fields replaced (validated again)."""
        return replace(self, **changes)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def __str__(self) -> str:
        return f"{self.weights}/{self.response}/{self.model}"


PREDEFINED_CONFIGS: Tuple[FusionConfig, ...] = (
    FusionConfig('triangular', 'linear', 'debevec'),
    FusionConfig('triangular', 'gamma', 'debevec'),
    FusionConfig('plateau', 'linear', 'debevec'),
    FusionConfig('plateau', 'gamma', 'debevec'),
    FusionConfig('gaussian', 'linear', 'debevec'),
    FusionConfig('gaussian', 'gamma', 'debevec'),
)


@dataclass(frozen=True)
class FusionInput:
    """Snapshot of a conditioned stack, as handed to ``fuse``.

    Attributes:
        exposure_times: Exposure time per item, in seconds
        images: Normalized (H, W, 3) float64 buffer per item
        width: Shared image width
        height: Shared image height
        kind: LDR or MDR
        config: Fusion parameters
    """
    exposure_times: np.ndarray
    images: Tuple[np.ndarray, ...]
    width: int
    height: int
    kind: StackKind
    config: FusionConfig

    def __len__(self) -> int:
        return len(self.images)

    def __repr__(self) -> str:
        return (
            f"FusionInput({len(self)} x {self.width}x{self.height}, "
            f"kind={self.kind.value}, config={self.config})"
        )


def build_fusion_input(stack: ExposureStack, config: FusionConfig) -> FusionInput:
    """Snapshot ``stack`` for fusion.

    Buffers are copied and marked read-only, so the fusion stage cannot alter
    the stack.

    Raises:
        EmptyStackError: If the stack is empty
        UncalibratedExposure: If an exposure time is unknown
    """
    if len(stack) == 0:
        raise EmptyStackError("Cannot fuse an empty stack")
    missing = [item.label for item in stack if not item.has_exposure]
    if missing:
        raise UncalibratedExposure(
            f"Cannot fuse, exposure time unknown for: {', '.join(missing)}"
        )

    images = []
    for representation in stack.representations:
        rgb = representation.read()
        rgb.setflags(write=False)
        images.append(rgb)
    times = stack.exposure_times
    times.setflags(write=False)

    logger.info(
        f"Handing {len(images)} {stack.kind.value} exposures "
        f"({stack.width}x{stack.height}) to fusion with {config}"
    )
    return FusionInput(
        exposure_times=times,
        images=tuple(images),
        width=stack.width,
        height=stack.height,
        kind=stack.kind,
        config=config,
    )
