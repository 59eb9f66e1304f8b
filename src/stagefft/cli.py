"""Command line entry point running the differential test suite."""

import argparse
import logging
import sys
from typing import List, Optional

import yaml

from .backend import BackendError, print_platforms
from .config import HarnessConfig
from .errors import PreconditionError
from .harness import DifferentialTestHarness
from .parallel import ParallelTransform

logger = logging.getLogger(__name__)

EXIT_SUCCESS = 0
EXIT_CHECK_FAILED = 1
EXIT_FATAL = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="stagefft",
        description="Cross-check the reference DFT, the iterative FFT and the "
        "backend FFT against each other.",
    )
    parser.add_argument("--config", help="YAML file with harness settings")
    parser.add_argument(
        "--sample-power",
        type=int,
        help="log2 of the test signal length (e.g. 10 for 1024 samples)",
    )
    parser.add_argument("--seed", type=int, help="Seed of the test signal generator")
    parser.add_argument("--tolerance", type=float, help="Largest residual that passes")
    parser.add_argument("--platform", help="Compute platform for the backend checks")
    parser.add_argument("--device", help="Device name or torch device string")
    parser.add_argument(
        "--no-parallel",
        dest="parallel",
        action="store_false",
        default=None,
        help="Skip the backend equivalence checks",
    )
    parser.add_argument(
        "--list-platforms",
        action="store_true",
        help="Print the available platforms and devices, then exit",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    return parser


def resolve_config(args: argparse.Namespace) -> HarnessConfig:
    """Combine defaults, the YAML file, the environment and the command line."""
    config = HarnessConfig.from_yaml(args.config) if args.config else HarnessConfig()
    config = config.with_environment()
    config = config.update(
        sample_power=args.sample_power,
        seed=args.seed,
        tolerance=args.tolerance,
        platform=args.platform,
        device=args.device,
        parallel=args.parallel,
    )
    return config.validate()


def run(config: HarnessConfig, out=None) -> int:
    """Run the suite described by ``config``, printing one line per check."""
    out = sys.stdout if out is None else out

    def report(result):
        print(result, file=out)

    def run_harness(fourier):
        harness = DifferentialTestHarness(
            sample_power=config.sample_power,
            seed=config.seed,
            tolerance=config.tolerance,
            fourier=fourier,
            step_block_size=config.step_block_size,
            on_result=report,
        )
        harness.run()
        print(f"{harness.passed} passed, {harness.failed} failed", file=out)
        return EXIT_SUCCESS if harness.all_passed else EXIT_CHECK_FAILED

    if not config.parallel:
        return run_harness(None)

    with ParallelTransform(config.sample_power, config.platform, config.device) as fourier:
        return run_harness(fourier)


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        if args.list_platforms:
            print_platforms()
            return EXIT_SUCCESS

        config = resolve_config(args)
        logger.info("Running with %r", config)
        return run(config)
    except BackendError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return EXIT_FATAL
    except (PreconditionError, OSError, yaml.YAMLError) as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return EXIT_FATAL


if __name__ == "__main__":
    sys.exit(main())
