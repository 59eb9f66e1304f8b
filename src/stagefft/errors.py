"""Exception types raised by stageFFT."""


class StageFFTError(Exception):
    """Base class for all stageFFT errors."""


class PreconditionError(StageFFTError, ValueError):
    """An argument violated a transform precondition."""


class LengthMismatchError(PreconditionError):
    """Two signals which must share a length do not."""

    def __init__(self, expected: int, actual: int):
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Signal length mismatch: expected {expected} samples, got {actual}"
        )


class NotPowerOfTwoError(PreconditionError):
    """A length which must be a power of two is not."""

    def __init__(self, length: int):
        self.length = length
        super().__init__(f"Signal length must be a power of two, got {length}")
