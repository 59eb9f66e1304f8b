"""Tests for the stagefft command line entry point."""

import pytest

from stagefft import cli
from stagefft.config import ENVIRONMENT_VARIABLES


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    for variable in ENVIRONMENT_VARIABLES:
        monkeypatch.delenv(variable, raising=False)


def test_all_checks_pass_without_backend(capsys):
    exit_code = cli.main(["--no-parallel", "--sample-power", "5", "--seed", "7"])

    out = capsys.readouterr().out
    assert exit_code == cli.EXIT_SUCCESS
    assert "prop_inverse_fft(random(32)): PASS: residue=" in out
    assert "prop_reverse_bits(0xAA, 0x100, 0x55): PASS" in out
    assert "FAIL" not in out
    assert out.strip().endswith("15 passed, 0 failed")


def test_all_checks_pass_with_backend(capsys):
    exit_code = cli.main(["--sample-power", "8", "--platform", "TorchScript", "--device", "cpu"])

    out = capsys.readouterr().out
    assert exit_code == cli.EXIT_SUCCESS
    assert "prop_fftcl_equals_fft(random(256)): PASS" in out
    assert "prop_fftcl_step_equals_fft_step(random(256), B=128): PASS" in out
    assert out.strip().endswith("18 passed, 0 failed")


def test_failing_checks_exit_code(capsys):
    # Rounding error alone puts the random signal residuals above this tolerance
    exit_code = cli.main(["--no-parallel", "--sample-power", "3", "--tolerance", "1e-300"])

    out = capsys.readouterr().out
    assert exit_code == cli.EXIT_CHECK_FAILED
    assert "FAIL" in out


def test_backend_error_is_fatal(capsys):
    exit_code = cli.main(["--platform", "OpenGL", "--sample-power", "3"])

    err = capsys.readouterr().err
    assert exit_code == cli.EXIT_FATAL
    assert err.startswith("ERROR: find platform failed with status INVALID_PLATFORM (-32)")


def test_invalid_config_is_fatal(capsys):
    exit_code = cli.main(["--sample-power", "-2"])

    assert exit_code == cli.EXIT_FATAL
    assert "sample_power" in capsys.readouterr().err


def test_environment_is_used(monkeypatch, capsys):
    monkeypatch.setenv("STAGEFFT_SAMPLE_POWER", "4")

    exit_code = cli.main(["--no-parallel"])

    assert exit_code == cli.EXIT_SUCCESS
    assert "random(16)" in capsys.readouterr().out


def test_config_file(tmp_path, capsys):
    path = tmp_path / "harness.yaml"
    path.write_text("sample_power: 3\nparallel: false\n")

    exit_code = cli.main(["--config", str(path)])

    assert exit_code == cli.EXIT_SUCCESS
    assert "random(8)" in capsys.readouterr().out


def test_missing_config_file(tmp_path, capsys):
    exit_code = cli.main(["--config", str(tmp_path / "missing.yaml")])

    assert exit_code == cli.EXIT_FATAL
    assert capsys.readouterr().err.startswith("ERROR:")


def test_list_platforms(capsys):
    exit_code = cli.main(["--list-platforms"])

    assert exit_code == cli.EXIT_SUCCESS
    assert "TorchScript: version=" in capsys.readouterr().out


def test_non_numeric_config_value_is_fatal(tmp_path, capsys):
    path = tmp_path / "harness.yaml"
    path.write_text("sample_power: abc\n")

    exit_code = cli.main(["--config", str(path)])

    assert exit_code == cli.EXIT_FATAL
    assert "sample_power must be an integer" in capsys.readouterr().err
