"""Tests for the signal helpers: bit reversal, residual and signal construction."""

import math

import numpy as np
import pytest
import torch

from stagefft import LengthMismatchError, NotPowerOfTwoError, PreconditionError
from stagefft.signal import (
    as_signal,
    bit_reversal_permutation,
    check_same_length,
    constant_signal,
    forward_twiddle,
    inverse_twiddle,
    is_power_of_two,
    random_signal,
    residual,
    reverse_bits,
    sample_power,
)

# (n, max, expected)
REVERSE_BITS_CASES = [
    (0xAA, 0x100, 0x55),
    (0xA5, 0x100, 0xA5),
    (0, 0x100, 0),
    (1, 8, 4),
    (3, 8, 6),
    (6, 8, 3),
    (1, 2, 1),
    (0, 1, 0),
    (1, 1024, 512),
]


@pytest.mark.parametrize("n,max,expected", REVERSE_BITS_CASES)
def test_reverse_bits(n, max, expected):
    assert reverse_bits(n, max) == expected


@pytest.mark.parametrize("max", [0, 3, 6, 1000])
def test_reverse_bits_rejects_non_power_of_two_max(max):
    with pytest.raises(NotPowerOfTwoError):
        reverse_bits(5, max)


@pytest.mark.parametrize("size", [1, 2, 4, 8, 256, 1024])
def test_bit_reversal_permutation_is_an_involution(size):
    permutation = bit_reversal_permutation(size)

    assert sorted(permutation) == list(range(size))
    assert all(permutation[permutation[j]] == j for j in range(size))


def test_bit_reversal_permutation_rejects_non_power_of_two():
    with pytest.raises(NotPowerOfTwoError):
        bit_reversal_permutation(12)


@pytest.mark.parametrize("n", [1, 2, 4, 1024, 1 << 20])
def test_power_of_two(n):
    assert is_power_of_two(n)
    assert 1 << sample_power(n) == n


@pytest.mark.parametrize("n", [0, 3, 6, 1000, -4])
def test_not_power_of_two(n):
    assert not is_power_of_two(n)
    with pytest.raises(NotPowerOfTwoError, match="power of two"):
        sample_power(n)


def test_residual_of_identical_signals_is_zero():
    x = as_signal([1, 2j, 3, 4 - 1j])
    assert residual(x, x.clone()) == 0.0


def test_residual_is_rms_of_difference():
    a = as_signal([0, 0, 0, 0])
    b = as_signal([1, -1, 1j, -1j])
    assert residual(a, b) == pytest.approx(1.0)

    c = as_signal([3, 0, 0, 0])
    assert residual(a, c) == pytest.approx(math.sqrt(9 / 4))


def test_residual_rejects_length_mismatch():
    with pytest.raises(LengthMismatchError, match="expected 4 samples, got 3"):
        residual(as_signal([1, 2, 3, 4]), as_signal([1, 2, 3]))

    with pytest.raises(ValueError):
        check_same_length(torch.zeros(2, dtype=torch.complex64), torch.zeros(5))


def test_as_signal_copies_and_converts():
    values = np.array([1.0, 2.0, 3.0])
    signal = as_signal(values)

    assert signal.dtype == torch.complex64
    assert signal.dim() == 1
    assert torch.equal(signal.real, torch.tensor([1.0, 2.0, 3.0]))

    source = torch.ones(4, dtype=torch.complex64)
    copy = as_signal(source)
    copy[0] = 7
    assert source[0] == 1


def test_as_signal_rejects_multidimensional_input():
    with pytest.raises(PreconditionError, match="Signal must be 1D"):
        as_signal(torch.zeros(2, 2))


def test_constant_signal():
    signal = constant_signal(8, 1)
    assert signal.shape == (8,)
    assert torch.all(signal == 1)


def test_random_signal_is_reproducible_with_same_seed():
    a = random_signal(64, torch.Generator().manual_seed(0))
    b = random_signal(64, torch.Generator().manual_seed(0))
    assert torch.equal(a, b)

    generator = torch.Generator().manual_seed(0)
    first = random_signal(64, generator)
    second = random_signal(64, generator)
    assert not torch.equal(first, second)


def test_random_signal_range():
    signal = random_signal(4096, torch.Generator().manual_seed(1))

    assert signal.dtype == torch.complex64
    assert torch.all((signal.real >= 0) & (signal.real < 1))
    assert torch.all((signal.imag >= 0) & (signal.imag < 1))


def test_twiddles_are_conjugate_roots_of_unity():
    k = torch.arange(8)
    w = forward_twiddle(k, 8, torch.complex128)
    q = inverse_twiddle(k, 8, torch.complex128)

    assert torch.allclose(w.abs(), torch.ones(8, dtype=torch.float64))
    assert torch.allclose(w, torch.conj(q))
    assert torch.allclose(w[2], torch.tensor(-1j, dtype=torch.complex128))
