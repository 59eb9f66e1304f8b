"""FFT whose stages are dispatched to a parallel compute backend.

The transform follows the same stage structure as
:func:`stagefft.iterative.fft`, but each stage is one dispatch of a
data-parallel program over N work-items::

    upload X -> init(X, m) into Y1 -> step(Y, B) for B = 1, 2, ..., N/2 -> download

Stages ping-pong between two device buffers so that no dispatch reads the
buffer it writes. The host waits for the queue to drain before every
download and does not overlap its own work with device work.
"""

import logging
from contextlib import ExitStack
from typing import Optional, Union

import torch

from .backend import DEFAULT_PLATFORM, Buffer, Kernel, MemAccess, get_platform
from .backend.base import BUFFER_DTYPE
from .errors import LengthMismatchError, PreconditionError
from .signal import is_power_of_two

logger = logging.getLogger(__name__)

# Entry points every Fourier program must expose, with their argument names
FOURIER_ENTRY_POINTS = {
    "init": ("x", "sample_power", "y"),
    "step": ("y", "B", "y_out"),
}


class ParallelTransform:
    """Owner of the backend objects needed to run FFTs of one fixed length.

    All handles are acquired on construction and released by :meth:`close`
    (or on leaving a ``with`` block) in reverse order of acquisition. If
    construction fails part way, whatever was already acquired is released
    before the error propagates.

    Attributes
    ----------
    sample_power : int
        log2 of the transform length.
    platform : stagefft.backend.Platform
        The platform the program was built for.
    device : stagefft.backend.Device
        The device all buffers live on.

    Examples
    --------
    >>> with ParallelTransform(10) as fourier:
    ...     spectrum = fourier.fft(signal)
    """

    def __init__(
        self,
        sample_power: int,
        platform: str = DEFAULT_PLATFORM,
        device: Optional[str] = None,
        source: Union[bytes, str, None] = None,
    ):
        if sample_power < 0:
            raise PreconditionError(f"sample_power must be non-negative, got {sample_power}")

        self.sample_power = sample_power
        self._stack = ExitStack()

        try:
            self.platform = get_platform(platform)
            self.device = self.platform.get_device(device)

            self._context = self._stack.enter_context(
                self.platform.create_context(self.device)
            )

            if source is None:
                source = self.platform.read_program()
            program = self._stack.enter_context(
                self._context.build_program(source, FOURIER_ENTRY_POINTS)
            )

            self._init_kernel = self._stack.enter_context(program.create_kernel("init"))
            self._step_kernel = self._stack.enter_context(program.create_kernel("step"))

            n = self.sample_count
            self._x_mem = self._stack.enter_context(
                self._context.create_buffer(n, MemAccess.READ_ONLY)
            )
            self._y1_mem = self._stack.enter_context(
                self._context.create_buffer(n, MemAccess.READ_WRITE)
            )
            self._y2_mem = self._stack.enter_context(
                self._context.create_buffer(n, MemAccess.READ_WRITE)
            )
        except BaseException:
            self._stack.close()
            raise

        logger.debug(
            "ParallelTransform ready: %d samples on %s (%s)",
            self.sample_count,
            self.device.name,
            self.platform.name,
        )

    @property
    def sample_count(self) -> int:
        return 1 << self.sample_power

    @property
    def byte_count(self) -> int:
        return self.sample_count * torch.empty((), dtype=BUFFER_DTYPE).element_size()

    def close(self) -> None:
        """Release every backend handle. Safe to call more than once."""
        self._stack.close()

    def __enter__(self) -> "ParallelTransform":
        return self

    def __exit__(self, exc_type, exc_value, traceback):
        self.close()

    def _check_signal(self, signal: torch.Tensor) -> None:
        if signal.dim() != 1:
            raise PreconditionError(
                f"Signal must be 1D, got tensor with shape {tuple(signal.shape)}"
            )
        if signal.shape[0] != self.sample_count:
            raise LengthMismatchError(self.sample_count, signal.shape[0])

    def _run_kernel(self, kernel: Kernel) -> None:
        self._context.enqueue_kernel(kernel, self.sample_count)

    def _load(self, mem: Buffer, signal: torch.Tensor) -> None:
        self._check_signal(signal)
        self._context.write_buffer(mem, signal)

    def _store(self, mem: Buffer) -> torch.Tensor:
        return self._context.read_buffer(mem)

    def dispatch_init(self, x: Buffer, sample_power: int, y: Buffer) -> None:
        """Enqueue the bit-reversal permutation of ``x`` into ``y``."""
        self._init_kernel.set_arg(0, x)
        self._init_kernel.set_arg(1, sample_power)
        self._init_kernel.set_arg(2, y)

        self._run_kernel(self._init_kernel)

    def dispatch_step(self, y: Buffer, B: int, y_out: Buffer) -> None:
        """Enqueue one butterfly stage of half block size ``B`` from ``y`` into ``y_out``."""
        if not is_power_of_two(B) or 2 * B > self.sample_count:
            raise PreconditionError(
                f"B must be a power of two with 2*B <= {self.sample_count}, got {B}"
            )

        self._step_kernel.set_arg(0, y)
        self._step_kernel.set_arg(1, B)
        self._step_kernel.set_arg(2, y_out)

        self._run_kernel(self._step_kernel)

    def init(self, signal: torch.Tensor) -> torch.Tensor:
        """Bit-reversal permutation of ``signal`` computed on the device."""
        self._load(self._x_mem, signal)

        self.dispatch_init(self._x_mem, self.sample_power, self._y1_mem)

        self._context.finish()
        return self._store(self._y1_mem)

    def step(self, signal: torch.Tensor, B: int) -> torch.Tensor:
        """A single butterfly stage of half block size ``B`` applied to ``signal``."""
        self._load(self._y1_mem, signal)

        self.dispatch_step(self._y1_mem, B, self._y2_mem)

        self._context.finish()
        return self._store(self._y2_mem)

    def fft(self, signal: torch.Tensor) -> torch.Tensor:
        """Forward FFT of ``signal``, which must hold exactly ``sample_count`` samples."""
        self._load(self._x_mem, signal)

        self.dispatch_init(self._x_mem, self.sample_power, self._y1_mem)

        y = self._y1_mem
        y_ = self._y2_mem
        B = 1
        while B != self.sample_count:
            logger.debug("Dispatching step B=%d", B)
            self.dispatch_step(y, B, y_)
            y, y_ = y_, y
            B <<= 1

        self._context.finish()
        return self._store(y)

    def __repr__(self) -> str:
        return (
            f"ParallelTransform(sample_power={self.sample_power}, "
            f"platform={self.platform.name!r}, device={self.device.name!r})"
        )
