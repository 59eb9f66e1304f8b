"""Platform whose programs are TorchScript source, runnable on CPU and CUDA."""

from typing import List

import torch

from .base import Context, Device, Platform, cuda_devices


class TorchScriptPlatform(Platform):
    """Compiles program text with ``torch.jit.CompilationUnit``.

    Each entry point is a TorchScript function whose tensor operations act on
    all work-items of a dispatch at once; the device of the bound buffers
    decides where it runs.
    """

    name = "TorchScript"
    program_file = "fourier.torchscript"

    @property
    def version(self) -> str:
        return torch.__version__

    @classmethod
    def is_available(cls) -> bool:
        return True

    def get_devices(self) -> List[Device]:
        return [Device("cpu", torch.device("cpu"))] + cuda_devices()

    def compile(self, context: Context, source: str, names: List[str]):
        unit = torch.jit.CompilationUnit(source)

        functions = {}
        for name in names:
            function = unit.find_function(name)
            if function is not None:
                functions[name] = function

        return functions, unit
