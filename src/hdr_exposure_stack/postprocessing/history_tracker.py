"""Conditioning history tracking for reproducibility.

This module provides the HistoryTracker class for recording every
conditioning step applied to an exposure stack (loading, EV calibration,
alignment, crop, anti-ghosting, fusion hand-off), so a result can be
reproduced from its parameters.
"""

from typing import List, Dict, Any, Optional
from dataclasses import dataclass
from datetime import datetime
import json
import logging

import numpy as np

logger = logging.getLogger(__name__)


def _plain(value: Any) -> Any:
    """Convert numpy scalars/arrays and tuples into JSON-friendly values."""
    if isinstance(value, np.generic):
        return value.item()
    if isinstance(value, np.ndarray):
        return value.tolist()
    if isinstance(value, (list, tuple)):
        return [_plain(v) for v in value]
    if isinstance(value, dict):
        return {str(k): _plain(v) for k, v in value.items()}
    return value


@dataclass
class ConditioningStep:
    """Record of a single conditioning step.

    Attributes:
        timestamp: When the step was performed
        operation: Name of the operation (e.g., 'crop', 'auto_antighost')
        parameters: Parameters used, as plain values
        component: Which component performed the operation
        notes: Optional outcome summary
    """
    timestamp: str
    operation: str
    parameters: Dict[str, Any]
    component: str
    notes: Optional[str] = None

    def describe(self, include_timestamp: bool = True) -> str:
        params_str = ', '.join(f"{k}={v}" for k, v in self.parameters.items())
        line = f"{self.component}.{self.operation}({params_str})"
        if self.notes:
            line += f" - {self.notes}"
        if include_timestamp:
            line = f"[{self.timestamp}] {line}"
        return line


class HistoryTracker:
    """Track the conditioning applied to a stack.

    Example:
        >>> tracker = HistoryTracker()
        >>> tracker.record('normalize_ev', {'offset': -5.0}, 'ExposureCalibrator')
        >>> tracker.record('crop', {'x': 10, 'y': 10, 'width': 600, 'height': 400}, 'ExposureStack')
        >>> print(tracker.to_text())
    """

    def __init__(self):
        self.steps: List[ConditioningStep] = []

    def record(
        self,
        operation: str,
        parameters: Dict[str, Any],
        component: str,
        notes: Optional[str] = None
    ) -> ConditioningStep:
        """Record a conditioning step.

        Args:
            operation: Name of the operation
            parameters: Parameters used (copied and converted to plain values)
            component: Component that performed the operation
            notes: Optional outcome summary

        Returns:
            The recorded step
        """
        step = ConditioningStep(
            timestamp=datetime.now().isoformat(timespec='seconds'),
            operation=operation,
            parameters=_plain(dict(parameters)),
            component=component,
            notes=notes
        )
        self.steps.append(step)

        logger.debug(f"Recorded: {step.describe()}")
        return step

    def operations(self) -> List[str]:
        """Names of the recorded operations, in order."""
        return [step.operation for step in self.steps]

    def last(self, operation: str) -> Optional[ConditioningStep]:
        """Most recent step named ``operation``, or None."""
        for step in reversed(self.steps):
            if step.operation == operation:
                return step
        return None

    def to_text(self, include_timestamps: bool = True) -> str:
        """Export history as plain text, one step per line."""
        if not self.steps:
            return "No conditioning history recorded"
        return '\n'.join(step.describe(include_timestamps) for step in self.steps)

    def to_dict(self) -> Dict[str, Any]:
        """Export history as dictionary (JSON-serializable).

        Example:
            >>> history_dict = tracker.to_dict()
            >>> history_dict['total_steps']
            2
        """
        return {
            'steps': [
                {
                    'timestamp': step.timestamp,
                    'operation': step.operation,
                    'parameters': step.parameters,
                    'component': step.component,
                    'notes': step.notes
                }
                for step in self.steps
            ],
            'total_steps': len(self.steps)
        }

    def to_json(self, indent: int = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent)

    def clear(self) -> None:
        self.steps.clear()
        logger.debug("History tracker cleared")

    def merge(self, other: 'HistoryTracker') -> None:
        """Append another tracker's steps to this one."""
        self.steps.extend(other.steps)
        logger.debug(f"Merged {len(other.steps)} steps from another tracker")

    def __len__(self) -> int:
        return len(self.steps)

    def __repr__(self) -> str:
        return f"HistoryTracker({len(self.steps)} steps)"
