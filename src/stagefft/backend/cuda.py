"""Platform whose programs are CUDA C++ source compiled at run time."""

import hashlib
from typing import List

import torch

from .base import Context, Device, Platform, cuda_devices


class CudaPlatform(Platform):
    """Compiles CUDA program text with ``torch.utils.cpp_extension.load_inline``.

    The program registers its own entry points with
    ``PYBIND11_MODULE(TORCH_EXTENSION_NAME, m)``. Compiled modules are cached
    by torch under a name derived from the source text, so a program is only
    built once per source.
    """

    name = "CUDA"
    program_file = "fourier.cu"

    @property
    def version(self) -> str:
        return torch.version.cuda or "unavailable"

    @classmethod
    def is_available(cls) -> bool:
        if not torch.cuda.is_available():
            return False

        # NOTE: cpp_extension pulls in the compiler toolchain helpers, only
        # import it once a GPU is known to be present
        from torch.utils import cpp_extension

        return cpp_extension.CUDA_HOME is not None

    def get_devices(self) -> List[Device]:
        return cuda_devices()

    def compile(self, context: Context, source: str, names: List[str]):
        from torch.utils import cpp_extension

        digest = hashlib.sha1(source.encode("utf-8")).hexdigest()[:12]
        with torch.cuda.device(context.device.torch_device):
            module = cpp_extension.load_inline(
                name=f"stagefft_program_{digest}",
                cpp_sources="",
                cuda_sources=source,
                extra_cuda_cflags=["-O3"],
                verbose=False,
            )

        functions = {name: getattr(module, name) for name in names if hasattr(module, name)}
        return functions, module
