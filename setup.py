"""Setup script for stageFFT."""

from setuptools import setup, find_packages
import argparse
import sys
import os

__version__ = "0.1.0"

DEFAULT_BACKENDS = "TorchScript,CUDA"


# Parse command line arguments for compute backends
def parse_backends():
    """Parse enabled backends from command line arguments or environment variables."""
    parser = argparse.ArgumentParser(add_help=False)
    parser.add_argument(
        "--enable-backends",
        dest="enable_backends",
        help='Comma-separated list of compute platforms to enable (e.g., "TorchScript,CUDA")',
        default=None,  # Will use env var or fallback if None
    )

    # Parse known args to avoid conflicts with setuptools
    args, unknown = parser.parse_known_args()

    # Remove our custom args from sys.argv so setuptools doesn't see them
    if "--enable-backends" in sys.argv:
        idx = sys.argv.index("--enable-backends")
        sys.argv.pop(idx)  # Remove the argument
        if idx < len(sys.argv):
            sys.argv.pop(idx)  # Remove its value

    return args


parsed_args = parse_backends()

# Get enabled backends with precedence: CLI args > env vars > defaults
enabled_backends_str = (
    parsed_args.enable_backends
    or os.environ.get("ENABLED_BACKENDS")
    or DEFAULT_BACKENDS
)
enabled_backends = [name.strip() for name in enabled_backends_str.split(",")]

# Write build configuration to a file for testing
os.makedirs("src/stagefft", exist_ok=True)
with open("src/stagefft/build_config.py", "w") as f:
    f.write("# Auto-generated build configuration\n")
    f.write(f"ENABLED_BACKENDS = {enabled_backends}\n")

setup(
    name="stageFFT",
    description="Reference DFT, iterative FFT and staged parallel FFT on PyTorch, cross-checked",
    python_requires=">=3.9",
    packages=find_packages(where="src"),
    package_dir={"": "src"},
    package_data={"stagefft.backend": ["programs/*.torchscript", "programs/*.cu"]},
    install_requires=[
        "torch>=2.0",
        "numpy",
        "pyyaml",
    ],
    extras_require={"test": ["pytest"]},
    entry_points={"console_scripts": ["stagefft=stagefft.cli:main"]},
    version=__version__,
)
