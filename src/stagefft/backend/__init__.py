"""Parallel compute backend: platform discovery and device handles."""

import logging
import sys
from typing import Dict, Optional

from .base import (
    BackendError,
    Buffer,
    CommandQueue,
    Context,
    Device,
    Kernel,
    MemAccess,
    Platform,
    Program,
    Status,
    backend_call,
)
from .cuda import CudaPlatform
from .torchscript import TorchScriptPlatform

logger = logging.getLogger(__name__)

PLATFORM_CLASSES = (TorchScriptPlatform, CudaPlatform)
DEFAULT_PLATFORM = TorchScriptPlatform.name


def get_platforms() -> Dict[str, Platform]:
    """Every platform usable in this process, keyed by name."""
    with backend_call("get platform IDs", Status.INVALID_PLATFORM):
        return {cls.name: cls() for cls in PLATFORM_CLASSES if cls.is_available()}


def get_platform(name: str = DEFAULT_PLATFORM) -> Platform:
    platforms = get_platforms()
    if name not in platforms:
        raise BackendError(
            "find platform",
            Status.INVALID_PLATFORM,
            f"no platform {name!r}, available: {sorted(platforms)}",
        )

    logger.info("Using platform %r", platforms[name])
    return platforms[name]


def print_platforms(file=None) -> None:
    """Print every platform with its version and devices."""
    file = sys.stdout if file is None else file

    for name, platform in get_platforms().items():
        print(f"{name}: version='{platform.version}'", file=file)
        for device in platform.get_devices():
            print(f"  {device.torch_device}: name='{device.name}'", file=file)


__all__ = [
    "BackendError",
    "Buffer",
    "CommandQueue",
    "Context",
    "CudaPlatform",
    "DEFAULT_PLATFORM",
    "Device",
    "Kernel",
    "MemAccess",
    "Platform",
    "Program",
    "Status",
    "TorchScriptPlatform",
    "backend_call",
    "get_platform",
    "get_platforms",
    "print_platforms",
]
