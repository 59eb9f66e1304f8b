"""Direct O(N^2) discrete Fourier transform, the ground truth for every other path."""

import torch

from .signal import DEFAULT_DTYPE, forward_twiddle, inverse_twiddle


def _phase_indices(n: int) -> torch.Tensor:
    """Matrix of ``(k * n) mod N`` for every output/input index pair."""
    k = torch.arange(n, dtype=torch.int64)
    return torch.outer(k, k) % n


def dft(signal: torch.Tensor) -> torch.Tensor:
    """Forward DFT by direct summation, any length.

    ``X[k] = sum_n x[n] * exp(-2*pi*i*k*n/N)``

    Parameters
    ----------
    signal : torch.Tensor
        1D complex tensor of N samples.

    Returns
    -------
    torch.Tensor
        The N-sample spectrum, same dtype as ``signal``.
    """
    if not signal.is_complex():
        signal = signal.to(DEFAULT_DTYPE)

    n = signal.shape[-1]
    if n == 0:
        return signal.clone()

    # NOTE: the phase is reduced modulo N before it becomes an angle so that
    # large k*n products do not lose precision in single-precision signals.
    kernel = forward_twiddle(_phase_indices(n), n, dtype=signal.dtype)
    return kernel.to(signal.device) @ signal


def idft(spectrum: torch.Tensor) -> torch.Tensor:
    """Inverse DFT by direct summation, including the 1/N normalization.

    ``x[n] = sum_k X[k] * exp(+2*pi*i*k*n/N) / N``
    """
    if not spectrum.is_complex():
        spectrum = spectrum.to(DEFAULT_DTYPE)

    n = spectrum.shape[-1]
    if n == 0:
        return spectrum.clone()

    kernel = inverse_twiddle(_phase_indices(n), n, dtype=spectrum.dtype)
    return (kernel.to(spectrum.device) @ spectrum) / n
