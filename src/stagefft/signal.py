"""Signal helpers shared by every transform.

A signal is a 1-D complex ``torch.Tensor``. The default dtype is
``torch.complex64``, i.e. two 32-bit floats per sample, which matches the
``float2`` element layout of the compute backend buffers.
"""

import math
from functools import lru_cache
from typing import Sequence, Union

import numpy as np
import torch

from .errors import LengthMismatchError, NotPowerOfTwoError, PreconditionError

DEFAULT_DTYPE = torch.complex64

SignalLike = Union[torch.Tensor, np.ndarray, Sequence[complex]]


def as_signal(values: SignalLike, dtype: torch.dtype = DEFAULT_DTYPE) -> torch.Tensor:
    """Copy ``values`` into a new 1-D complex tensor.

    Parameters
    ----------
    values : torch.Tensor, np.ndarray or sequence of numbers
        The samples, in order.
    dtype : torch.dtype, optional
        Complex dtype of the result, by default torch.complex64.

    Returns
    -------
    torch.Tensor
        A freshly allocated tensor, never a view of ``values``.
    """
    if isinstance(values, torch.Tensor):
        signal = values.detach().to(device="cpu", dtype=dtype, copy=True)
    else:
        signal = torch.tensor(np.asarray(values, dtype=np.complex128), dtype=dtype)

    if signal.dim() != 1:
        raise PreconditionError(
            f"Signal must be 1D, got tensor with shape {tuple(signal.shape)}"
        )

    return signal


def constant_signal(size: int, value: complex = 1, dtype: torch.dtype = DEFAULT_DTYPE):
    """Signal of ``size`` samples all equal to ``value``."""
    return torch.full((size,), complex(value), dtype=dtype)


def random_signal(
    size: int, generator: torch.Generator, dtype: torch.dtype = DEFAULT_DTYPE
) -> torch.Tensor:
    """Signal with real and imaginary parts drawn uniformly from [0, 1).

    The caller owns ``generator``; drawing advances its state so consecutive
    calls with the same generator yield different, reproducible signals.
    """
    real_dtype = torch.float64 if dtype == torch.complex128 else torch.float32
    parts = torch.rand((size, 2), generator=generator, dtype=real_dtype)
    return torch.view_as_complex(parts).to(dtype)


def is_power_of_two(n: int) -> bool:
    return n > 0 and (n & (n - 1)) == 0


def sample_power(n: int) -> int:
    """Return ``m`` such that ``n == 2**m``."""
    if not is_power_of_two(n):
        raise NotPowerOfTwoError(n)
    return n.bit_length() - 1


def check_power_of_two(signal: torch.Tensor) -> int:
    """Return the length of ``signal``, rejecting non power-of-two lengths."""
    n = signal.shape[-1]
    if not is_power_of_two(n):
        raise NotPowerOfTwoError(n)
    return n


def check_same_length(a: torch.Tensor, b: torch.Tensor) -> int:
    if a.shape[-1] != b.shape[-1]:
        raise LengthMismatchError(a.shape[-1], b.shape[-1])
    return a.shape[-1]


def reverse_bits(n: int, max: int) -> int:
    """Reverse the low ``log2(max)`` bits of ``n``.

    Examples
    --------
    >>> reverse_bits(0xAA, 0x100) == 0x55
    True
    """
    if not is_power_of_two(max):
        raise NotPowerOfTwoError(max)

    result = 0

    i = 1
    while i != max:
        result <<= 1
        result |= n & 1
        n >>= 1
        i <<= 1

    return result


@lru_cache(maxsize=None)
def bit_reversal_permutation(size: int) -> tuple:
    """Indices ``reverse_bits(j, size)`` for every ``j`` in ``[0, size)``."""
    if not is_power_of_two(size):
        raise NotPowerOfTwoError(size)
    return tuple(reverse_bits(j, size) for j in range(size))


def _twiddle(index, size: int, sign: float, dtype: torch.dtype) -> torch.Tensor:
    index = torch.as_tensor(index, dtype=torch.float64)
    angle = index * (sign * 2.0 * math.pi / size)
    return torch.polar(torch.ones_like(angle), angle).to(dtype)


def forward_twiddle(k, size: int, dtype: torch.dtype = DEFAULT_DTYPE) -> torch.Tensor:
    """W(k, N) = exp(-2*pi*i*k/N), elementwise over ``k``."""
    return _twiddle(k, size, -1.0, dtype)


def inverse_twiddle(n, size: int, dtype: torch.dtype = DEFAULT_DTYPE) -> torch.Tensor:
    """Q(n, N) = exp(+2*pi*i*n/N), elementwise over ``n``."""
    return _twiddle(n, size, 1.0, dtype)


def residual(a: torch.Tensor, b: torch.Tensor) -> float:
    """RMS magnitude of the elementwise difference of two signals."""
    n = check_same_length(a, b)
    if n == 0:
        return 0.0

    # NOTE: accumulate in double precision so the statistic itself adds no error
    error = a.to(torch.complex128) - b.to(device=a.device, dtype=torch.complex128)
    energy = torch.sum(error * torch.conj(error)).real.item()
    return math.sqrt(energy / n)
