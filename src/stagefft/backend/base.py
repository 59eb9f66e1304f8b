"""Handles of the parallel compute backend.

The backend is a small platform API in the spirit of OpenCL: a
:class:`Platform` enumerates :class:`Device` objects, a :class:`Context`
owns a :class:`CommandQueue` on one device, compiles a :class:`Program`
from source text, hands out :class:`Kernel` entry points and allocates
:class:`Buffer` objects of complex64 (``float2``) samples. Every operation
either succeeds or raises :class:`BackendError` naming the failing operation
and a :class:`Status` code.

Every handle is a context manager; leaving the ``with`` block (or calling
``release()``) frees it, and using a released handle is an error.
"""

import logging
from abc import ABC, abstractmethod
from contextlib import contextmanager, nullcontext
from dataclasses import dataclass
from enum import Enum, IntEnum
from importlib import resources
from typing import Callable, Dict, List, Mapping, Optional, Sequence, Union

import torch

from ..errors import StageFFTError

logger = logging.getLogger(__name__)

BUFFER_DTYPE = torch.complex64


class Status(IntEnum):
    """Backend status codes, numbered as in OpenCL."""

    SUCCESS = 0
    DEVICE_NOT_FOUND = -1
    MEM_OBJECT_ALLOCATION_FAILURE = -4
    OUT_OF_RESOURCES = -5
    OUT_OF_HOST_MEMORY = -6
    BUILD_PROGRAM_FAILURE = -11
    INVALID_VALUE = -30
    INVALID_PLATFORM = -32
    INVALID_DEVICE = -33
    INVALID_CONTEXT = -34
    INVALID_COMMAND_QUEUE = -36
    INVALID_MEM_OBJECT = -38
    INVALID_PROGRAM = -44
    INVALID_KERNEL_NAME = -46
    INVALID_KERNEL = -48
    INVALID_ARG_INDEX = -49
    INVALID_ARG_VALUE = -50
    INVALID_KERNEL_ARGS = -52
    INVALID_GLOBAL_WORK_SIZE = -63


class BackendError(StageFFTError):
    """A backend operation failed. Always fatal for the transform using it."""

    def __init__(self, operation: str, status: Status, detail: Optional[str] = None):
        self.operation = operation
        self.status = Status(status)
        self.detail = detail

        message = f"{operation} failed with status {self.status.name} ({int(self.status)})"
        if detail:
            message += f": {detail}"
        super().__init__(message)


@contextmanager
def backend_call(operation: str, status: Status):
    """Translate an exception raised inside the block into a BackendError.

    ``status`` is the code reported for generic failures of ``operation``;
    allocation failures always report MEM_OBJECT_ALLOCATION_FAILURE.
    """
    try:
        yield
    except BackendError:
        raise
    except torch.cuda.OutOfMemoryError as e:
        raise BackendError(operation, Status.MEM_OBJECT_ALLOCATION_FAILURE, str(e)) from e
    except MemoryError as e:
        raise BackendError(operation, Status.OUT_OF_HOST_MEMORY, str(e)) from e
    except Exception as e:
        raise BackendError(operation, status, f"{type(e).__name__}: {e}") from e


class Handle:
    """Base class for backend objects with an explicit release."""

    kind: str = "handle"
    invalid_status: Status = Status.INVALID_VALUE

    def __init__(self):
        self._released = False

    @property
    def released(self) -> bool:
        return self._released

    def check_valid(self) -> None:
        if self._released:
            raise BackendError(
                f"use {self.kind}", self.invalid_status, f"{self.kind} was released"
            )

    def release(self) -> None:
        """Free the resources held by this handle. Safe to call twice."""
        if self._released:
            return
        with backend_call(f"release {self.kind}", self.invalid_status):
            self._release()
        self._released = True
        logger.debug("Released %s", self)

    def _release(self) -> None:
        pass

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_value, traceback):
        self.release()


@dataclass(frozen=True)
class Device:
    """A compute device: a human readable name and the torch device behind it."""

    name: str
    torch_device: torch.device

    def matches(self, name: str) -> bool:
        return name in (self.name, str(self.torch_device))


def cuda_devices() -> List[Device]:
    """Every visible CUDA device, empty when CUDA is unavailable."""
    if not torch.cuda.is_available():
        return []
    return [
        Device(torch.cuda.get_device_name(i), torch.device("cuda", i))
        for i in range(torch.cuda.device_count())
    ]


class MemAccess(Enum):
    READ_ONLY = "read_only"
    WRITE_ONLY = "write_only"
    READ_WRITE = "read_write"


class Buffer(Handle):
    """Fixed-size device buffer of ``count`` complex64 samples."""

    kind = "buffer"
    invalid_status = Status.INVALID_MEM_OBJECT

    def __init__(self, tensor: torch.Tensor, access: MemAccess):
        super().__init__()
        self._tensor = tensor
        self.access = access

    @property
    def tensor(self) -> torch.Tensor:
        self.check_valid()
        return self._tensor

    @property
    def count(self) -> int:
        return self.tensor.numel()

    @property
    def byte_count(self) -> int:
        return self.count * self.tensor.element_size()

    def _release(self) -> None:
        self._tensor = None

    def __repr__(self) -> str:
        count = 0 if self._tensor is None else self._tensor.numel()
        return f"Buffer(count={count}, access={self.access.value})"


KernelArg = Union[Buffer, int]


class Kernel(Handle):
    """A named program entry point together with its bound arguments."""

    kind = "kernel"
    invalid_status = Status.INVALID_KERNEL

    def __init__(self, name: str, function: Callable, arg_names: Sequence[str]):
        super().__init__()
        self.name = name
        self.arg_names = tuple(arg_names)
        self._function = function
        self._args: Dict[int, KernelArg] = {}

    def set_arg(self, index: int, value: KernelArg) -> None:
        self.check_valid()
        if not 0 <= index < len(self.arg_names):
            raise BackendError(
                "set kernel argument",
                Status.INVALID_ARG_INDEX,
                f"kernel '{self.name}' takes {len(self.arg_names)} arguments, got index {index}",
            )
        if not isinstance(value, (Buffer, int)) or isinstance(value, bool):
            raise BackendError(
                "set kernel argument",
                Status.INVALID_ARG_VALUE,
                f"argument '{self.arg_names[index]}' must be a Buffer or an int",
            )
        self._args[index] = value

    def bound_args(self) -> List[KernelArg]:
        missing = [n for i, n in enumerate(self.arg_names) if i not in self._args]
        if missing:
            raise BackendError(
                "enqueue kernel",
                Status.INVALID_KERNEL_ARGS,
                f"kernel '{self.name}' has unbound arguments {missing}",
            )
        return [self._args[i] for i in range(len(self.arg_names))]

    def __call__(self, *args):
        self.check_valid()
        return self._function(*args)

    def _release(self) -> None:
        self._args.clear()
        self._function = None

    def __repr__(self) -> str:
        return f"Kernel({self.name!r})"


class Program(Handle):
    """A compiled device program exposing named entry points."""

    kind = "program"
    invalid_status = Status.INVALID_PROGRAM

    def __init__(
        self,
        functions: Mapping[str, Callable],
        entry_points: Mapping[str, Sequence[str]],
        module: object = None,
    ):
        super().__init__()
        self._functions = dict(functions)
        self._entry_points = dict(entry_points)
        # Keeps the compiled unit alive for as long as its functions are used
        self._module = module

    @property
    def kernel_names(self) -> List[str]:
        return sorted(self._functions)

    def create_kernel(self, name: str) -> Kernel:
        self.check_valid()
        if name not in self._functions or name not in self._entry_points:
            raise BackendError(
                "create kernel",
                Status.INVALID_KERNEL_NAME,
                f"program has no entry point '{name}', available: {self.kernel_names}",
            )
        logger.debug("Created kernel %r", name)
        return Kernel(name, self._functions[name], self._entry_points[name])

    def _release(self) -> None:
        self._functions.clear()
        self._module = None


class CommandQueue(Handle):
    """In-order queue of device work.

    On CUDA devices this is a dedicated stream; on the CPU every operation
    completes before it returns.
    """

    kind = "command queue"
    invalid_status = Status.INVALID_COMMAND_QUEUE

    def __init__(self, device: Device):
        super().__init__()
        self.device = device
        if device.torch_device.type == "cuda":
            self._stream = torch.cuda.Stream(device=device.torch_device)
        else:
            self._stream = None

    def scope(self):
        """Context in which enqueued torch work lands on this queue."""
        self.check_valid()
        if self._stream is None:
            return nullcontext()
        return torch.cuda.stream(self._stream)

    def finish(self) -> None:
        self.check_valid()
        if self._stream is not None:
            self._stream.synchronize()

    def _release(self) -> None:
        if self._stream is not None:
            self._stream.synchronize()
            self._stream = None


class Context(Handle):
    """Execution context bound to one device of one platform."""

    kind = "context"
    invalid_status = Status.INVALID_CONTEXT

    def __init__(self, platform: "Platform", device: Device):
        super().__init__()
        self.platform = platform
        self.device = device
        self.queue: Optional[CommandQueue] = None

        with backend_call("create context", Status.INVALID_DEVICE):
            if device.torch_device.type == "cuda":
                index = device.torch_device.index or 0
                if index >= torch.cuda.device_count():
                    raise RuntimeError(f"no CUDA device with index {index}")

        with backend_call("create command queue", Status.INVALID_COMMAND_QUEUE):
            self.queue = CommandQueue(device)

        logger.debug("Created context on %s (%s)", device.name, platform.name)

    def build_program(
        self, source: Union[bytes, str], entry_points: Mapping[str, Sequence[str]]
    ) -> Program:
        """Compile ``source`` and expose the functions named in ``entry_points``.

        Parameters
        ----------
        source : bytes or str
            Program text, in the language of this context's platform.
        entry_points : mapping of str to sequence of str
            Entry point names and the names of their arguments, in order.
        """
        self.check_valid()
        if isinstance(source, bytes):
            source = source.decode("utf-8")

        with backend_call("build program", Status.BUILD_PROGRAM_FAILURE):
            functions, module = self.platform.compile(self, source, list(entry_points))

        logger.debug("Built program with entry points %s", sorted(functions))
        return Program(functions, entry_points, module)

    def create_buffer(self, count: int, access: MemAccess = MemAccess.READ_WRITE) -> Buffer:
        self.check_valid()
        if count < 0:
            raise BackendError("create buffer", Status.INVALID_VALUE, f"negative size {count}")

        with backend_call("create buffer", Status.MEM_OBJECT_ALLOCATION_FAILURE):
            tensor = torch.empty(count, dtype=BUFFER_DTYPE, device=self.device.torch_device)

        buffer = Buffer(tensor, access)
        logger.debug("Created %r", buffer)
        return buffer

    def write_buffer(self, buffer: Buffer, host: torch.Tensor) -> None:
        """Copy ``host`` into ``buffer`` and wait for the copy to complete."""
        self.check_valid()
        if host.numel() != buffer.count:
            raise BackendError(
                "write buffer",
                Status.INVALID_VALUE,
                f"host data has {host.numel()} samples, buffer holds {buffer.count}",
            )

        with backend_call("write buffer", Status.OUT_OF_RESOURCES):
            with self.queue.scope():
                buffer.tensor.copy_(host.reshape(-1).to(BUFFER_DTYPE))
            self.queue.finish()

    def read_buffer(self, buffer: Buffer) -> torch.Tensor:
        """Return a host copy of ``buffer`` once all queued work has completed."""
        self.check_valid()
        with backend_call("read buffer", Status.OUT_OF_RESOURCES):
            self.queue.finish()
            return buffer.tensor.to("cpu", copy=True)

    def enqueue_kernel(self, kernel: Kernel, global_work_size: int) -> None:
        """Dispatch ``kernel`` over a 1D range of ``global_work_size`` work-items."""
        self.check_valid()
        kernel.check_valid()
        args = kernel.bound_args()

        for name, arg in zip(kernel.arg_names, args):
            if isinstance(arg, Buffer) and arg.count != global_work_size:
                raise BackendError(
                    "enqueue kernel",
                    Status.INVALID_GLOBAL_WORK_SIZE,
                    f"work size {global_work_size} does not match buffer '{name}' "
                    f"of {arg.count} samples",
                )

        resolved = [arg.tensor if isinstance(arg, Buffer) else arg for arg in args]
        with backend_call(f"enqueue kernel '{kernel.name}'", Status.OUT_OF_RESOURCES):
            with self.queue.scope():
                kernel(*resolved)

    def finish(self) -> None:
        self.check_valid()
        with backend_call("finish", Status.OUT_OF_RESOURCES):
            self.queue.finish()

    def _release(self) -> None:
        if self.queue is not None:
            self.queue.release()

    def __repr__(self) -> str:
        return f"Context({self.platform.name!r}, {self.device.name!r})"


class Platform(ABC):
    """A family of devices sharing one program language and compiler."""

    name: str = None
    program_file: str = None

    @property
    @abstractmethod
    def version(self) -> str:
        pass

    @classmethod
    @abstractmethod
    def is_available(cls) -> bool:
        pass

    @abstractmethod
    def get_devices(self) -> List[Device]:
        pass

    @abstractmethod
    def compile(self, context: Context, source: str, names: List[str]):
        """Compile ``source`` for ``context``.

        Returns
        -------
        tuple
            A mapping from every entry point of ``names`` present in the program
            to a callable, and the compiled module object owning them.
        """
        pass

    def get_device(self, name: Optional[str] = None) -> Device:
        """Return the device called ``name``, or the first device if None."""
        with backend_call("get device IDs", Status.DEVICE_NOT_FOUND):
            devices = self.get_devices()

        for device in devices:
            if name is None or device.matches(name):
                return device

        raise BackendError(
            "find device",
            Status.DEVICE_NOT_FOUND,
            f"no device {name!r} on platform {self.name!r}",
        )

    def create_context(self, device: Device) -> Context:
        return Context(self, device)

    def read_program(self) -> bytes:
        """Read this platform's bundled Fourier program as raw bytes."""
        with backend_call(f"read program {self.program_file}", Status.INVALID_VALUE):
            return (resources.files(__package__) / "programs" / self.program_file).read_bytes()

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r}, version={self.version!r})"
