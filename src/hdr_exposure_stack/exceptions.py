"""Exception hierarchy for exposure stack conditioning.

Structural errors leave the stack in its last consistent state. None of them
are retried automatically; reloading a file or re-running alignment is up to
the caller.
"""


class HdrStackError(Exception):
    """Base class for all errors raised by hdr_exposure_stack."""
    pass


class DimensionMismatch(HdrStackError, ValueError):
    """An item's width/height differs from the stack's established size."""

    def __init__(self, expected, got, filename=None):
        self.expected = expected
        self.got = got
        self.filename = filename
        name = f" {filename}" if filename else ""
        super().__init__(
            f"The image{name} has an invalid size: expected "
            f"{expected[0]}x{expected[1]}, got {got[0]}x{got[1]}"
        )


class KindConflict(HdrStackError, ValueError):
    """An LDR item arrived after an MDR stack was established, or vice versa."""

    def __init__(self, expected, got, filename=None):
        self.expected = expected
        self.got = got
        self.filename = filename
        name = f" {filename}" if filename else ""
        super().__init__(
            f"The image{name} is {got.value} while the previous ones are {expected.value}"
        )


class InvalidRegion(HdrStackError, ValueError):
    """A crop rectangle is empty or falls outside the stack."""
    pass


class UncalibratedExposure(HdrStackError, ValueError):
    """EV normalization requested while exposure times are still unknown."""
    pass


class AlignmentError(HdrStackError, RuntimeError):
    """The external alignment step failed or returned unusable offsets."""

    def __init__(self, message, original_error=None):
        super().__init__(message)
        self.original_error = original_error


class EmptyStackError(HdrStackError, IndexError):
    """The operation needs at least one item in the stack."""
    pass
