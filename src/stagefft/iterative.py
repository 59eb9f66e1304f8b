"""Iterative radix-2 FFT/IFFT on a single processing unit.

The forward transform is a bit-reversal permutation followed by log2(N)
butterfly stages. Stage ``s`` splits the working tensor into
``transform_count`` consecutive blocks of ``sample_count = N / transform_count``
samples and combines, for every local offset ``p < sample_count / 2``::

    a = y[offset + p]
    b = y[offset + p + sample_count / 2]
    y[offset + p]                    = a + W(p, sample_count) * b
    y[offset + p + sample_count / 2] = a + W(p + sample_count / 2, sample_count) * b

Both outputs evaluate the same twiddle function W at their own index within
the block. This is the direct-form combination of the two half spectra and
the compute backend's ``step`` program reproduces exactly this arithmetic.
"""

import logging

import torch

from .errors import PreconditionError
from .signal import (
    DEFAULT_DTYPE,
    bit_reversal_permutation,
    check_power_of_two,
    forward_twiddle,
    inverse_twiddle,
)

logger = logging.getLogger(__name__)


def fft_init(signal: torch.Tensor) -> torch.Tensor:
    """Return a new tensor with ``y[j] = signal[reverse_bits(j, N)]``.

    Real input is promoted to the default complex dtype, as in :func:`stagefft.reference.dft`.
    """
    if not signal.is_complex():
        signal = signal.to(DEFAULT_DTYPE)

    n = check_power_of_two(signal)
    permutation = torch.tensor(bit_reversal_permutation(n), device=signal.device)
    return signal.index_select(0, permutation)


def fft_step_spectrum(spectrum: torch.Tensor) -> None:
    """Apply one forward butterfly stage to a single block, in place.

    Parameters
    ----------
    spectrum : torch.Tensor
        A block of ``S`` samples holding the spectra of its two halves one
        after the other. On return it holds the spectrum of size ``S``.
    """
    size = spectrum.shape[-1]
    half = size // 2

    sample1 = torch.arange(half, device=spectrum.device)
    sample2 = sample1 + half

    even = spectrum[sample1]
    odd = spectrum[sample2]

    spectrum[sample1] = even + forward_twiddle(sample1, size, spectrum.dtype) * odd
    spectrum[sample2] = even + forward_twiddle(sample2, size, spectrum.dtype) * odd


def fft_step(spectrum: torch.Tensor, transform_count: int, sample_count: int) -> None:
    """Apply :func:`fft_step_spectrum` to each of ``transform_count`` blocks."""
    if transform_count * sample_count != spectrum.shape[-1]:
        raise PreconditionError(
            f"{transform_count} transforms of {sample_count} samples do not cover "
            f"a signal of {spectrum.shape[-1]} samples"
        )

    for transform in range(transform_count):
        offset = transform * sample_count
        fft_step_spectrum(spectrum[offset : offset + sample_count])


def fft(signal: torch.Tensor) -> torch.Tensor:
    """Forward FFT of a power-of-two length signal. The input is not modified."""
    n = check_power_of_two(signal)
    result = fft_init(signal)

    transform_count = n // 2
    while transform_count >= 1:
        sample_count = n // transform_count
        logger.debug("fft stage: %d transforms of %d samples", transform_count, sample_count)

        fft_step(result, transform_count, sample_count)

        transform_count >>= 1

    return result


def ifft_step(spectrum: torch.Tensor) -> None:
    """Inverse counterpart of :func:`fft_step_spectrum`, scaled by one half."""
    size = spectrum.shape[-1]
    half = size // 2

    sample1 = torch.arange(half, device=spectrum.device)
    sample2 = sample1 + half

    even = spectrum[sample1]
    odd = spectrum[sample2]

    spectrum[sample1] = 0.5 * (even + inverse_twiddle(sample1, size, spectrum.dtype) * odd)
    spectrum[sample2] = 0.5 * (even + inverse_twiddle(sample2, size, spectrum.dtype) * odd)


def ifft(spectrum: torch.Tensor) -> torch.Tensor:
    """Inverse FFT of a power-of-two length spectrum.

    The 0.5 factor applied at each of the log2(N) stages accumulates to the
    1/N normalization of :func:`stagefft.reference.idft`.
    """
    n = check_power_of_two(spectrum)
    result = fft_init(spectrum)

    sample_count = 2
    transform_count = n // sample_count
    while sample_count <= n:
        assert transform_count * sample_count == n

        for transform in range(transform_count):
            offset = transform * sample_count
            ifft_step(result[offset : offset + sample_count])

        transform_count >>= 1
        sample_count <<= 1

    return result
