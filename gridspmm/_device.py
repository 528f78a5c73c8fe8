# Copyright 2025 BrainX Ecosystem Limited. All Rights Reserved.
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
# ==============================================================================

"""In-process compute device.

A :class:`Device` owns a registry of byte buffers addressed through opaque
integer handles, uploads kernel images and argument records, and launches a
kernel asynchronously on a worker thread.  The host waits for completion
once with a timeout.  Every resource is released when the device is closed,
which the context-manager protocol guarantees on every exit path::

    with Device() as device:
        buf = device.mem_alloc(64, MEM_READ)
        ...
"""

import itertools
import threading
from concurrent.futures import Future, ThreadPoolExecutor, TimeoutError as FutureTimeoutError
from dataclasses import dataclass
from typing import Dict, NamedTuple, Optional

import numpy as np

from ._error import (
    BufferAllocationError,
    DeviceError,
    DeviceTimeoutError,
    InvalidBufferError,
    KernelExecutionError,
    KernelNotAvailableError,
    TransferError,
)
from ._kernel_args import KernelArgs, KERNEL_ARGS_SIZE
from ._op import GridKernel
from ._registry import get_kernel
from ._typing import DTypeLike
from .config import get_numba_parallel

__all__ = [
    'MEM_READ',
    'MEM_WRITE',
    'MEM_READ_WRITE',
    'MAX_TIMEOUT',
    'BufferRegistry',
    'KernelImage',
    'Device',
]

MEM_READ = 0x1
MEM_WRITE = 0x2
MEM_READ_WRITE = MEM_READ | MEM_WRITE

# seconds
MAX_TIMEOUT = 24 * 60 * 60.


@dataclass
class _Buffer:
    handle: int
    size: int
    flags: int
    data: np.ndarray


class BufferRegistry:
    """Maps opaque buffer handles to host-side byte storage.

    Handles are positive integers that are never reused during the lifetime
    of a registry, so a stale handle always fails to resolve instead of
    aliasing a newer buffer.
    """

    def __init__(self):
        self._buffers: Dict[int, _Buffer] = {}
        self._handles = itertools.count(1)
        self._lock = threading.Lock()

    def alloc(self, size: int, flags: int) -> int:
        if size < 0:
            raise BufferAllocationError(f'Cannot allocate a buffer of {size} bytes.')
        if flags & ~MEM_READ_WRITE or not flags:
            raise BufferAllocationError(f'Unknown memory access flags {flags:#x}.')
        with self._lock:
            handle = next(self._handles)
            self._buffers[handle] = _Buffer(handle, int(size), flags, np.zeros(int(size), dtype=np.uint8))
        return handle

    def get(self, handle: int) -> _Buffer:
        with self._lock:
            buf = self._buffers.get(int(handle))
        if buf is None:
            raise InvalidBufferError(f'Buffer handle {int(handle):#x} does not refer to a live buffer.')
        return buf

    def free(self, handle: int):
        with self._lock:
            if self._buffers.pop(int(handle), None) is None:
                raise InvalidBufferError(f'Buffer handle {int(handle):#x} does not refer to a live buffer.')

    def resolve(self, handle: int, dtype: DTypeLike, count: Optional[int] = None) -> np.ndarray:
        """Return a typed view of ``count`` elements at the start of a buffer.

        The view is read-only unless the buffer was allocated with
        :data:`MEM_WRITE`.  ``count`` defaults to as many whole elements as
        the buffer holds.

        Raises
        ------
        InvalidBufferError
            If the handle is stale or the buffer is too small.
        """
        buf = self.get(handle)
        dtype = np.dtype(dtype)
        if count is None:
            count = buf.size // dtype.itemsize
        nbytes = int(count) * dtype.itemsize
        if nbytes > buf.size:
            raise InvalidBufferError(
                f'Buffer {buf.handle:#x} holds {buf.size} bytes, '
                f'but {count} elements of {dtype.name} need {nbytes}.'
            )
        view = buf.data[:nbytes].view(dtype)
        if not buf.flags & MEM_WRITE:
            view.setflags(write=False)
        return view

    def release_all(self):
        with self._lock:
            self._buffers.clear()

    def __contains__(self, handle) -> bool:
        with self._lock:
            return int(handle) in self._buffers

    def __len__(self) -> int:
        with self._lock:
            return len(self._buffers)


class KernelImage(NamedTuple):
    """A kernel bound to a backend and an element type, ready to be started."""
    kernel: GridKernel
    backend: str
    platform: str
    dtype: np.dtype

    @property
    def name(self) -> str:
        return f'{self.kernel.name}:{self.backend}'


def parse_kernel_spec(spec: str):
    """Split a ``name[:backend]`` kernel specification."""
    name, _, backend = spec.partition(':')
    return name, (backend or None)


class Device:
    """An explicit device context owned by one test run.

    Parameters
    ----------
    platform : str, optional
        Platform used to pick a kernel's default backend.  Default ``'cpu'``.
    """

    def __init__(self, platform: str = 'cpu'):
        self.platform = platform
        self.buffers = BufferRegistry()
        self._executor: Optional[ThreadPoolExecutor] = ThreadPoolExecutor(
            max_workers=1, thread_name_prefix='gridspmm-device'
        )
        self._pending: Optional[Future] = None
        self._pending_name: str = ''

    @property
    def closed(self) -> bool:
        return self._executor is None

    def _check_open(self):
        if self._executor is None:
            raise DeviceError('The device is closed.')

    def close(self):
        """Release every buffer and stop the worker.  Safe to call twice."""
        if self._executor is None:
            return
        self._executor.shutdown(wait=False, cancel_futures=True)
        self._executor = None
        self._pending = None
        self.buffers.release_all()

    def __enter__(self) -> 'Device':
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    # --- memory --- #

    def mem_alloc(self, size: int, flags: int = MEM_READ_WRITE) -> int:
        self._check_open()
        return self.buffers.alloc(size, flags)

    def mem_address(self, handle: int) -> int:
        """Return the 64-bit value a kernel argument record stores for a buffer."""
        self._check_open()
        return self.buffers.get(handle).handle

    def mem_free(self, handle: int):
        self._check_open()
        self.buffers.free(handle)

    def copy_to_dev(self, handle: int, host, offset: int = 0, size: Optional[int] = None):
        """Copy ``size`` bytes of a host array into a buffer at byte ``offset``."""
        self._check_open()
        buf = self.buffers.get(handle)
        raw = np.ascontiguousarray(host).reshape(-1).view(np.uint8)
        size = raw.size if size is None else int(size)
        if size > raw.size or offset < 0 or offset + size > buf.size:
            raise TransferError(
                f'Cannot copy {size} bytes to offset {offset} of buffer {buf.handle:#x} '
                f'({buf.size} bytes) from a host array of {raw.size} bytes.'
            )
        buf.data[offset:offset + size] = raw[:size]

    def copy_from_dev(self, handle: int, dtype: DTypeLike, count: Optional[int] = None, offset: int = 0) -> np.ndarray:
        """Copy ``count`` elements starting at byte ``offset`` out of a buffer."""
        self._check_open()
        buf = self.buffers.get(handle)
        dtype = np.dtype(dtype)
        if count is None:
            count = (buf.size - offset) // dtype.itemsize
        nbytes = int(count) * dtype.itemsize
        if offset < 0 or offset + nbytes > buf.size:
            raise TransferError(
                f'Cannot copy {nbytes} bytes from offset {offset} of buffer {buf.handle:#x} '
                f'({buf.size} bytes).'
            )
        return buf.data[offset:offset + nbytes].view(dtype).copy()

    def upload_bytes(self, content: bytes) -> int:
        """Allocate a read-only buffer holding ``content``."""
        raw = np.frombuffer(bytes(content), dtype=np.uint8)
        handle = self.mem_alloc(raw.size, MEM_READ)
        self.copy_to_dev(handle, raw)
        return handle

    # --- kernels --- #

    def upload_kernel(self, spec: str, dtype: DTypeLike) -> KernelImage:
        """Resolve a ``name[:backend]`` kernel specification into a kernel image.

        Raises
        ------
        KernelNotAvailableError
            If the kernel name is unknown or the backend is not registered.
        """
        self._check_open()
        name, backend = parse_kernel_spec(spec)
        kernel = get_kernel(name)
        if kernel is None:
            raise KernelNotAvailableError(f"No kernel named '{name}' is registered.")
        platform = self.platform
        if backend is not None:
            platform = kernel.find_platform(backend) or platform
        entry = kernel.get_entry(platform, backend)
        return KernelImage(kernel, entry.backend, entry.platform, np.dtype(dtype))

    def start(self, image: KernelImage, args_handle: int):
        """Launch a kernel asynchronously over the grid of its argument record.

        Buffers are resolved here, so stale handles fail at the call site.
        """
        self._check_open()
        if self._pending is not None and not self._pending.done():
            raise DeviceError(f'Kernel {self._pending_name} is still running.')
        args = KernelArgs.unpack(self.copy_from_dev(args_handle, np.uint8, KERNEL_ARGS_SIZE))
        dtype = image.dtype
        values = self.buffers.resolve(args.A_val_addr, dtype, args.nnz)
        indices = self.buffers.resolve(args.A_col_addr, np.uint32, args.nnz)
        indptr = self.buffers.resolve(args.A_row_ptr_addr, np.uint32, args.m + 1)
        b = self.buffers.resolve(args.B_addr, dtype, args.k * args.n)
        c = self.buffers.resolve(args.C_addr, dtype)
        if not c.flags.writeable:
            raise InvalidBufferError(f'Output buffer {args.C_addr:#x} was not allocated writable.')
        if c.size < args.m * args.n:
            raise InvalidBufferError(
                f'Output buffer {args.C_addr:#x} holds {c.size} elements, expected {args.m * args.n}.'
            )
        launcher = image.kernel.generate(
            image.platform, image.backend, dtype=dtype.name, parallel=get_numba_parallel()
        )
        self._pending_name = image.name
        self._pending = self._executor.submit(
            launcher, args.grid, args.m, args.n, args.k, values, indices, indptr, b, c
        )

    def ready_wait(self, timeout: Optional[float] = MAX_TIMEOUT):
        """Block until the launched kernel finishes.

        Raises
        ------
        DeviceTimeoutError
            If the kernel is still running after ``timeout`` seconds.
        KernelExecutionError
            If the kernel raised; the original exception is chained.
        """
        self._check_open()
        if self._pending is None:
            return
        try:
            self._pending.result(timeout=timeout)
        except FutureTimeoutError as e:
            raise DeviceTimeoutError(
                f'Kernel {self._pending_name} did not complete within {timeout} s.'
            ) from e
        except DeviceError:
            raise
        except Exception as e:
            raise KernelExecutionError(
                f'Kernel {self._pending_name} failed: {e}. '
                f'Available backends on this platform: '
                f'{self._available_backends()}'
            ) from e

    def _available_backends(self):
        name = self._pending_name.partition(':')[0]
        kernel = get_kernel(name)
        return kernel.available_backends(self.platform) if kernel is not None else []
