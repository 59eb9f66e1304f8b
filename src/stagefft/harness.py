"""Differential tests between the reference, iterative and parallel transforms.

Every ``prop_*`` function returns the residual between two paths that should
agree (or a bool for exact combinatorial properties). The
:class:`DifferentialTestHarness` evaluates them against a tolerance and
records PASS/FAIL results; a disagreement is reported, never raised, so a
single run surfaces every failing property.
"""

import logging
from dataclasses import dataclass
from typing import Callable, List, Optional

import torch

from .errors import LengthMismatchError
from .iterative import fft, fft_init, fft_step, fft_step_spectrum, ifft
from .parallel import ParallelTransform
from .reference import dft, idft
from .signal import (
    DEFAULT_DTYPE,
    as_signal,
    constant_signal,
    random_signal,
    residual,
    reverse_bits,
)

logger = logging.getLogger(__name__)

EPS = 0.01
DEFAULT_STEP_BLOCK_SIZE = 128


def prop_inverse_dft(test_signal: torch.Tensor) -> float:
    return residual(test_signal, idft(dft(test_signal)))


def prop_inverse_fft(test_signal: torch.Tensor) -> float:
    return residual(test_signal, ifft(fft(test_signal)))


def prop_dft_equal_fft(test_signal: torch.Tensor) -> float:
    return residual(dft(test_signal), fft(test_signal))


def prop_idft_equal_ifft(test_signal: torch.Tensor) -> float:
    return residual(idft(test_signal), ifft(test_signal))


def prop_fft_is_decomposed_dft(test_signal: torch.Tensor) -> float:
    """Residual between the DFT and one butterfly stage over the half-length DFTs.

    The signal is split into its even- and odd-indexed samples, each half is
    transformed with :func:`dft`, the two spectra are concatenated and a
    single butterfly stage spanning the whole signal combines them.
    """
    even_spectrum = dft(test_signal[0::2])
    odd_spectrum = dft(test_signal[1::2])

    intermediate_spectrum = torch.cat([even_spectrum, odd_spectrum])
    fft_step_spectrum(intermediate_spectrum)

    return residual(dft(test_signal), intermediate_spectrum)


def prop_reverse_bits(n: int, max: int, correct: int) -> bool:
    return reverse_bits(n, max) == correct


def prop_fftcl_init_equals_fft_init(
    fourier: ParallelTransform, test_signal: torch.Tensor
) -> float:
    if fourier.sample_count != test_signal.shape[-1]:
        raise LengthMismatchError(fourier.sample_count, test_signal.shape[-1])

    expected = fft_init(test_signal)
    actual = fourier.init(test_signal)

    return residual(expected, actual)


def prop_fftcl_step_equals_fft_step(
    fourier: ParallelTransform,
    test_signal: torch.Tensor,
    B: int = DEFAULT_STEP_BLOCK_SIZE,
) -> float:
    """Residual between one device stage and one host stage of half block size ``B``."""
    if fourier.sample_count != test_signal.shape[-1]:
        raise LengthMismatchError(fourier.sample_count, test_signal.shape[-1])

    transform_count = test_signal.shape[-1] // B

    expected = test_signal.clone()
    fft_step(expected, transform_count // 2, 2 * B)

    actual = fourier.step(test_signal, B)

    return residual(expected, actual)


def prop_fftcl_equals_fft(fourier: ParallelTransform, test_signal: torch.Tensor) -> float:
    if fourier.sample_count != test_signal.shape[-1]:
        raise LengthMismatchError(fourier.sample_count, test_signal.shape[-1])

    expected = fft(test_signal)
    actual = fourier.fft(test_signal)

    return residual(expected, actual)


@dataclass
class CheckResult:
    """Outcome of one differential check.

    ``residue`` is None for exact (non floating point) checks.
    """

    name: str
    passed: bool
    residue: Optional[float] = None

    def __str__(self) -> str:
        verdict = "PASS" if self.passed else "FAIL"
        if self.residue is None:
            return f"{self.name}: {verdict}"
        return f"{self.name}: {verdict}: residue={self.residue:.6g}"


class DifferentialTestHarness:
    """Runs the differential checks and collects their results.

    Parameters
    ----------
    sample_power : int, optional
        log2 of the length of the generated test signals, by default 10.
    seed : int, optional
        Seed of the harness-owned random generator, by default 0.
    tolerance : float, optional
        A residual below this value passes, by default 0.01.
    fourier : ParallelTransform, optional
        When given, the backend equivalence checks are run as well. Its
        ``sample_count`` must equal ``2**sample_power``.
    step_block_size : int, optional
        Half block size B of the single-stage backend check, by default 128.
    on_result : callable, optional
        Called with every :class:`CheckResult` as soon as it is recorded.
    """

    def __init__(
        self,
        sample_power: int = 10,
        seed: int = 0,
        tolerance: float = EPS,
        fourier: Optional[ParallelTransform] = None,
        step_block_size: int = DEFAULT_STEP_BLOCK_SIZE,
        on_result: Optional[Callable[[CheckResult], None]] = None,
        dtype: torch.dtype = DEFAULT_DTYPE,
    ):
        if fourier is not None and fourier.sample_count != 1 << sample_power:
            raise LengthMismatchError(1 << sample_power, fourier.sample_count)

        self.sample_power = sample_power
        self.tolerance = tolerance
        self.fourier = fourier
        self.step_block_size = step_block_size
        self.on_result = on_result
        self.dtype = dtype
        self.generator = torch.Generator().manual_seed(seed)
        self.results: List[CheckResult] = []

    @property
    def sample_count(self) -> int:
        return 1 << self.sample_power

    def random_signal(self, size: Optional[int] = None) -> torch.Tensor:
        size = self.sample_count if size is None else size
        return random_signal(size, self.generator, dtype=self.dtype)

    def constant_signal(self, size: Optional[int] = None, value: complex = 1) -> torch.Tensor:
        size = self.sample_count if size is None else size
        return constant_signal(size, value, dtype=self.dtype)

    def _record(self, result: CheckResult) -> CheckResult:
        self.results.append(result)
        logger.debug("%s", result)
        if self.on_result is not None:
            self.on_result(result)
        return result

    def check_residue(self, test_name: str, residue: float) -> CheckResult:
        return self._record(CheckResult(test_name, residue < self.tolerance, residue))

    def check(self, test_name: str, result: bool) -> CheckResult:
        return self._record(CheckResult(test_name, bool(result)))

    def run(self) -> List[CheckResult]:
        """Run the default suite and return the results it recorded."""
        start = len(self.results)
        n = self.sample_count
        i = 1j

        self.check_residue(f"prop_inverse_dft(constant({n}))", prop_inverse_dft(self.constant_signal()))
        self.check_residue(f"prop_inverse_dft(random({n}))", prop_inverse_dft(self.random_signal()))
        self.check_residue("prop_inverse_fft(constant(2))", prop_inverse_fft(self.constant_signal(2)))
        self.check_residue(f"prop_inverse_fft(constant({n}))", prop_inverse_fft(self.constant_signal()))
        self.check_residue(f"prop_inverse_fft(random({n}))", prop_inverse_fft(self.random_signal()))
        self.check_residue(f"prop_dft_equal_fft(constant({n}))", prop_dft_equal_fft(self.constant_signal()))
        self.check_residue("prop_dft_equal_fft(random(4))", prop_dft_equal_fft(self.random_signal(4)))
        self.check_residue(f"prop_dft_equal_fft(random({n}))", prop_dft_equal_fft(self.random_signal()))
        self.check_residue(
            "prop_dft_equal_fft([7,6,5,4,3,2,i,0])",
            prop_dft_equal_fft(as_signal([7, 6, 5, 4, 3, 2, i, 0], self.dtype)),
        )
        self.check_residue(f"prop_idft_equal_ifft(random({n}))", prop_idft_equal_ifft(self.random_signal()))
        self.check_residue(
            "prop_idft_equal_ifft([1.1,i,2.1,3])",
            prop_idft_equal_ifft(as_signal([1.1, i, 2.1, 3], self.dtype)),
        )
        self.check_residue(
            "prop_fft_is_decomposed_dft([7,6,5,4,3,2,i,0])",
            prop_fft_is_decomposed_dft(as_signal([7, 6, 5, 4, 3, 2, i, 0], self.dtype)),
        )
        if n >= 2:
            self.check_residue(
                f"prop_fft_is_decomposed_dft(random({n}))",
                prop_fft_is_decomposed_dft(self.random_signal()),
            )
        self.check("prop_reverse_bits(0xAA, 0x100, 0x55)", prop_reverse_bits(0xAA, 0x100, 0x55))
        self.check("prop_reverse_bits(0xA5, 0x100, 0xA5)", prop_reverse_bits(0xA5, 0x100, 0xA5))

        if self.fourier is not None:
            self._run_backend_checks()

        return self.results[start:]

    def _run_backend_checks(self) -> None:
        n = self.sample_count
        self.check_residue(
            f"prop_fftcl_init_equals_fft_init(random({n}))",
            prop_fftcl_init_equals_fft_init(self.fourier, self.random_signal()),
        )
        if 2 * self.step_block_size <= n:
            self.check_residue(
                f"prop_fftcl_step_equals_fft_step(random({n}), B={self.step_block_size})",
                prop_fftcl_step_equals_fft_step(
                    self.fourier, self.random_signal(), self.step_block_size
                ),
            )
        else:
            logger.warning(
                "Skipping single stage check: 2*B=%d exceeds %d samples",
                2 * self.step_block_size,
                n,
            )
        self.check_residue(
            f"prop_fftcl_equals_fft(random({n}))",
            prop_fftcl_equals_fft(self.fourier, self.random_signal()),
        )

    @property
    def passed(self) -> int:
        return sum(result.passed for result in self.results)

    @property
    def failed(self) -> int:
        return len(self.results) - self.passed

    @property
    def all_passed(self) -> bool:
        return self.failed == 0
