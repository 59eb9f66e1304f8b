"""stageFFT: a reference DFT, an iterative FFT and a staged parallel FFT, cross-checked."""

from typing import List

from . import backend
from .errors import (
    LengthMismatchError,
    NotPowerOfTwoError,
    PreconditionError,
    StageFFTError,
)
from .backend import BackendError, Status
from .harness import CheckResult, DifferentialTestHarness
from .iterative import fft, fft_init, fft_step, fft_step_spectrum, ifft
from .parallel import ParallelTransform
from .reference import dft, idft
from .signal import (
    as_signal,
    bit_reversal_permutation,
    constant_signal,
    random_signal,
    residual,
    reverse_bits,
)

__version__ = "0.1.0"

# Load build config if available
try:
    from .build_config import ENABLED_BACKENDS
except ImportError:
    ENABLED_BACKENDS = [cls.name for cls in backend.PLATFORM_CLASSES]


def is_backend_available(platform_name: str) -> bool:
    """Check if a compute platform was enabled at install time and is usable here."""
    if platform_name not in ENABLED_BACKENDS:
        return False
    return platform_name in backend.get_platforms()


def get_available_backends() -> List[str]:
    """Get list of compute platforms usable in this process."""
    return [name for name in backend.get_platforms() if name in ENABLED_BACKENDS]


__all__ = [
    "BackendError",
    "CheckResult",
    "DifferentialTestHarness",
    "LengthMismatchError",
    "NotPowerOfTwoError",
    "ParallelTransform",
    "PreconditionError",
    "StageFFTError",
    "Status",
    "as_signal",
    "bit_reversal_permutation",
    "constant_signal",
    "dft",
    "fft",
    "fft_init",
    "fft_step",
    "fft_step_spectrum",
    "get_available_backends",
    "idft",
    "ifft",
    "is_backend_available",
    "random_signal",
    "residual",
    "reverse_bits",
]
