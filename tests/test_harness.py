"""Differential harness tests: every property holds and failures are reported, not raised."""

import torch

import pytest

from stagefft import LengthMismatchError, ParallelTransform
from stagefft.harness import (
    EPS,
    CheckResult,
    DifferentialTestHarness,
    prop_dft_equal_fft,
    prop_fft_is_decomposed_dft,
    prop_fftcl_equals_fft,
    prop_fftcl_init_equals_fft_init,
    prop_fftcl_step_equals_fft_step,
    prop_idft_equal_ifft,
    prop_inverse_dft,
    prop_inverse_fft,
    prop_reverse_bits,
)
from stagefft.reference import dft
from stagefft.signal import as_signal, constant_signal, random_signal, residual

SIGNAL_PROPERTIES = [
    prop_inverse_dft,
    prop_inverse_fft,
    prop_dft_equal_fft,
    prop_idft_equal_ifft,
    prop_fft_is_decomposed_dft,
]


@pytest.fixture(scope="module")
def fourier():
    with ParallelTransform(10) as fourier:
        yield fourier


@pytest.mark.parametrize("prop", SIGNAL_PROPERTIES)
@pytest.mark.parametrize("size", [2, 8, 1024])
def test_signal_properties_hold_for_random_signals(prop, size):
    signal = random_signal(size, torch.Generator().manual_seed(size))

    assert prop(signal) < EPS


@pytest.mark.parametrize("prop", SIGNAL_PROPERTIES)
def test_signal_properties_hold_for_constant_signals(prop):
    assert prop(constant_signal(1024)) < EPS


def test_constant_signal_spectrum():
    assert residual(dft(as_signal([1, 1, 1, 1])), as_signal([4, 0, 0, 0])) < EPS


def test_mixed_signal_dft_equals_fft():
    assert prop_dft_equal_fft(as_signal([7, 6, 5, 4, 3, 2, 1j, 0])) < EPS


def test_reverse_bits_property():
    assert prop_reverse_bits(0xAA, 0x100, 0x55)
    assert prop_reverse_bits(0xA5, 0x100, 0xA5)
    assert not prop_reverse_bits(0xAA, 0x100, 0xAA)


def test_backend_properties(fourier):
    generator = torch.Generator().manual_seed(0)

    assert prop_fftcl_init_equals_fft_init(fourier, random_signal(1024, generator)) < EPS
    assert prop_fftcl_step_equals_fft_step(fourier, random_signal(1024, generator), 128) < EPS
    assert prop_fftcl_equals_fft(fourier, random_signal(1024, generator)) < EPS


def test_backend_properties_reject_length_mismatch(fourier):
    with pytest.raises(LengthMismatchError):
        prop_fftcl_equals_fft(fourier, constant_signal(16))


def test_run_without_backend():
    harness = DifferentialTestHarness(sample_power=6, seed=0)

    results = harness.run()

    assert len(results) == 15
    assert harness.all_passed, [str(r) for r in results if not r.passed]
    assert harness.passed == 15 and harness.failed == 0


def test_run_with_backend(fourier):
    reported = []
    harness = DifferentialTestHarness(sample_power=10, seed=0, fourier=fourier, on_result=reported.append)

    results = harness.run()

    assert len(results) == 18
    assert reported == results
    assert harness.all_passed, [str(r) for r in results if not r.passed]
    assert any(r.name.startswith("prop_fftcl_step_equals_fft_step") for r in results)


def test_run_skips_step_check_for_short_signals():
    with ParallelTransform(4) as fourier:
        harness = DifferentialTestHarness(sample_power=4, fourier=fourier)
        results = harness.run()

    names = [r.name for r in results]
    assert not any("prop_fftcl_step_equals_fft_step" in name for name in names)
    assert any("prop_fftcl_equals_fft" in name for name in names)
    assert harness.all_passed


def test_harness_rejects_mismatched_backend(fourier):
    with pytest.raises(LengthMismatchError):
        DifferentialTestHarness(sample_power=8, fourier=fourier)


def test_failing_check_is_recorded_not_raised():
    harness = DifferentialTestHarness(sample_power=2)

    result = harness.check_residue("too far apart", 0.5)
    harness.check("exact", False)
    harness.check_residue("close enough", 0.001)

    assert not result.passed
    assert harness.failed == 2
    assert harness.passed == 1
    assert not harness.all_passed


def test_same_seed_same_signals():
    a = DifferentialTestHarness(sample_power=5, seed=42)
    b = DifferentialTestHarness(sample_power=5, seed=42)
    c = DifferentialTestHarness(sample_power=5, seed=43)

    first = a.random_signal()
    assert torch.equal(first, b.random_signal())
    assert not torch.equal(first, c.random_signal())
    assert not torch.equal(first, a.random_signal())


def test_check_result_format():
    assert str(CheckResult("prop", True, 0.00125)) == "prop: PASS: residue=0.00125"
    assert str(CheckResult("prop", False, 2.0)) == "prop: FAIL: residue=2"
    assert str(CheckResult("bits", True)) == "bits: PASS"
