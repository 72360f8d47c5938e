"""Decorators for marking behavior that still needs verification.

Some conditioning steps reproduce legacy behavior whose intent has not been
confirmed against known-good outputs. They are marked so every call leaves a
trace in the logs of the module that defines them.
"""

import functools
import logging
from typing import Callable, Any


def requires_validation(
    message: str = "This behavior requires validation before production use",
    level: int = logging.WARNING
):
    """Mark a function as requiring validation.

    Every call is logged at ``level`` on the defining module's logger. The
    wrapper exposes ``validation_message`` and a ``calls`` counter.

    Args:
        message: What needs to be verified
        level: Logging level of the per-call message (default: WARNING)

    Returns:
        Decorated function that logs validation requirements

    Example:
        >>> @requires_validation("threshold chosen empirically")
        ... def pick(scores):
        ...     return max(scores)
        >>> pick([1, 2])
        2
        >>> pick.calls
        1
    """
    def decorator(func: Callable) -> Callable:
        logger = logging.getLogger(func.__module__)

        @functools.wraps(func)
        def wrapper(*args, **kwargs) -> Any:
            wrapper.calls += 1
            logger.log(level, f"{func.__qualname__}: {message}")
            return func(*args, **kwargs)

        wrapper.calls = 0
        wrapper.validation_message = message
        if wrapper.__doc__:
            wrapper.__doc__ += f"\n\n    .. note::\n        **VALIDATION REQUIRED**: {message}\n"
        return wrapper
    return decorator
