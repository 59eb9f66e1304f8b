"""Configuration of a differential test run.

Values are resolved with the precedence: command line > environment
variables > YAML file > defaults.
"""

import os
from typing import Any, Optional

import yaml

from .backend import DEFAULT_PLATFORM
from .errors import PreconditionError
from .harness import DEFAULT_STEP_BLOCK_SIZE, EPS
from .signal import is_power_of_two

# Environment variable -> (attribute, parser)
ENVIRONMENT_VARIABLES = {
    "STAGEFFT_SAMPLE_POWER": ("sample_power", int),
    "STAGEFFT_SEED": ("seed", int),
    "STAGEFFT_TOLERANCE": ("tolerance", float),
    "STAGEFFT_PLATFORM": ("platform", str),
    "STAGEFFT_DEVICE": ("device", str),
}


class HarnessConfig:
    """Container for the settings of one harness run.

    Attributes
    ----------
    sample_power : int
        log2 of the test signal length. The default of 10 gives 1024 samples.
    seed : int
        Seed of the random generator producing the test signals.
    tolerance : float
        Residual below which a check passes.
    platform : str
        Name of the compute platform for the backend checks.
    device : str or None
        Device name (or torch device string) on that platform; None picks
        the first device.
    step_block_size : int
        Half block size B of the single-stage backend check.
    parallel : bool
        Whether to run the backend checks at all.
    """

    sample_power: int
    seed: int
    tolerance: float
    platform: str
    device: Optional[str]
    step_block_size: int
    parallel: bool

    def __init__(
        self,
        sample_power: int = 10,
        seed: int = 0,
        tolerance: float = EPS,
        platform: str = DEFAULT_PLATFORM,
        device: Optional[str] = None,
        step_block_size: int = DEFAULT_STEP_BLOCK_SIZE,
        parallel: bool = True,
    ):
        self.sample_power = sample_power
        self.seed = seed
        self.tolerance = tolerance
        self.platform = platform
        self.device = device
        self.step_block_size = step_block_size
        self.parallel = parallel

    @classmethod
    def from_dict(cls, config_dict: dict) -> "HarnessConfig":
        """Build a configuration from a dictionary, rejecting unknown keys."""
        config_dict = dict(config_dict or {})
        defaults = cls().as_dict()

        unknown = sorted(set(config_dict) - set(defaults))
        if unknown:
            raise PreconditionError(f"Unknown configuration keys: {unknown}")

        return cls(**config_dict)

    @classmethod
    def from_yaml(cls, yaml_path: str) -> "HarnessConfig":
        """Load a configuration from a YAML mapping."""
        with open(yaml_path, "r") as f:
            config_dict = yaml.safe_load(f)

        if config_dict is not None and not isinstance(config_dict, dict):
            raise PreconditionError(f"{yaml_path} must contain a mapping at top level")

        return cls.from_dict(config_dict)

    def as_dict(self) -> dict:
        return {
            "sample_power": self.sample_power,
            "seed": self.seed,
            "tolerance": self.tolerance,
            "platform": self.platform,
            "device": self.device,
            "step_block_size": self.step_block_size,
            "parallel": self.parallel,
        }

    def update(self, **overrides: Any) -> "HarnessConfig":
        """Return a copy with every override that is not None applied."""
        values = self.as_dict()
        values.update({k: v for k, v in overrides.items() if v is not None})
        return type(self).from_dict(values)

    def with_environment(self, environ=None) -> "HarnessConfig":
        """Return a copy with the ``STAGEFFT_*`` environment variables applied."""
        environ = os.environ if environ is None else environ

        overrides = {}
        for variable, (attribute, parse) in ENVIRONMENT_VARIABLES.items():
            if environ.get(variable):
                try:
                    overrides[attribute] = parse(environ[variable])
                except ValueError as e:
                    raise PreconditionError(
                        f"Invalid value for {variable}: {environ[variable]!r}"
                    ) from e

        return self.update(**overrides)

    def validate(self) -> "HarnessConfig":
        for name in ("sample_power", "seed", "step_block_size"):
            value = getattr(self, name)
            if not isinstance(value, int) or isinstance(value, bool):
                raise PreconditionError(f"{name} must be an integer, got {value!r}")
        if not isinstance(self.tolerance, (int, float)) or isinstance(self.tolerance, bool):
            raise PreconditionError(f"tolerance must be a number, got {self.tolerance!r}")
        if not isinstance(self.parallel, bool):
            raise PreconditionError(f"parallel must be true or false, got {self.parallel!r}")

        if self.sample_power < 0:
            raise PreconditionError(
                f"sample_power must be non-negative, got {self.sample_power}"
            )
        if self.tolerance <= 0:
            raise PreconditionError(f"tolerance must be positive, got {self.tolerance}")
        if not is_power_of_two(self.step_block_size):
            raise PreconditionError(
                f"step_block_size must be a power of two, got {self.step_block_size}"
            )
        return self

    def __repr__(self) -> str:
        fields = ", ".join(f"{k}={v!r}" for k, v in self.as_dict().items())
        return f"HarnessConfig({fields})"
