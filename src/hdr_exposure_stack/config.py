"""Tunable parameters of the conditioning stage."""

from __future__ import annotations
from dataclasses import dataclass, asdict
from typing import Any, Dict


@dataclass
class ConditioningConfig:
    """Parameters shared by calibration, ghost detection and blending.

    Attributes:
        grid_size: Patches per side of the ghost-detection grid
        ev_bound: Largest absolute EV kept by EV normalization
        ghost_ratio: Fraction of |deltaEV| a log difference may reach before
                     a pixel counts as disagreeing
        max_workers: Threads used to correct exposures (1 = sequential)
        radiance_scale: Native value mapped to 1.0 for radiance planes
    """
    grid_size: int = 40
    ev_bound: float = 10.0
    ghost_ratio: float = 0.7
    max_workers: int = 1
    radiance_scale: float = 65535.0

    def __post_init__(self):
        if self.grid_size <= 0:
            raise ValueError(f"grid_size must be positive, got {self.grid_size}")
        if self.ev_bound <= 0:
            raise ValueError(f"ev_bound must be positive, got {self.ev_bound}")
        if self.ghost_ratio <= 0:
            raise ValueError(f"ghost_ratio must be positive, got {self.ghost_ratio}")
        if self.max_workers < 1:
            raise ValueError(f"max_workers must be >= 1, got {self.max_workers}")
        if self.radiance_scale <= 0:
            raise ValueError(f"radiance_scale must be positive, got {self.radiance_scale}")

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
