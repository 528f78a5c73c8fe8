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

# -*- coding: utf-8 -*-


__all__ = [
    'DeviceError',
    'BufferAllocationError',
    'InvalidBufferError',
    'TransferError',
    'KernelNotAvailableError',
    'KernelExecutionError',
    'DeviceTimeoutError',
]


class DeviceError(Exception):
    """Base exception for setup and runtime failures of the compute device.

    Every failure that happens before verification (opening the device,
    allocating or addressing buffers, copying data, uploading or starting a
    kernel, waiting for completion) derives from this class.  These errors
    are fatal for a test run: the harness releases every acquired resource
    once and terminates with a negative status.  They are never retried.

    Parameters
    ----------
    message : str
        A human-readable description of the failure.

    See Also
    --------
    DeviceTimeoutError : Raised when the kernel does not finish in time.
    KernelExecutionError : Raised when a kernel fails while running.

    Examples
    --------
    .. code-block:: python

        >>> from gridspmm._error import DeviceError
        >>> raise DeviceError("device is closed")  # doctest: +SKIP
    """
    __module__ = 'gridspmm'


class BufferAllocationError(DeviceError):
    """Raised when a device buffer cannot be allocated.

    Typical causes are a negative size, an unknown access flag, or an
    allocation attempted on a device that has already been closed.
    """
    __module__ = 'gridspmm'


class InvalidBufferError(DeviceError):
    """Raised when a buffer handle does not resolve to a live buffer.

    Buffer handles are opaque identifiers handed out by
    :meth:`~gridspmm.Device.mem_alloc`.  A handle that was never issued, or
    whose buffer has already been released, cannot be addressed, copied, or
    resolved by a kernel.
    """
    __module__ = 'gridspmm'


class TransferError(DeviceError):
    """Raised when a host/device copy would fall outside the buffer bounds."""
    __module__ = 'gridspmm'


class KernelNotAvailableError(DeviceError):
    """Raised when a requested kernel or backend is not registered.

    This exception signals that the kernel image named at upload time could
    not be resolved, either because no :class:`~gridspmm.GridKernel` with
    that name exists or because the requested backend is not registered
    for the current platform.

    Parameters
    ----------
    message : str
        A human-readable description naming the kernel, the backend, and
        the backends that are available instead.

    Examples
    --------
    .. code-block:: python

        >>> from gridspmm._error import KernelNotAvailableError
        >>> raise KernelNotAvailableError(
        ...     "Backend 'warp' not registered for kernel 'spmm' on 'cpu'."
        ... )  # doctest: +SKIP
    """
    __module__ = 'gridspmm'


class KernelExecutionError(DeviceError):
    """Raised when a launched kernel fails during execution.

    The original exception raised inside the worker thread is chained as
    ``__cause__``.  The error message includes the kernel name and backend
    so that the user can retry with another backend through the ``-k
    name:backend`` kernel specification.
    """
    __module__ = 'gridspmm'


class DeviceTimeoutError(DeviceError):
    """Raised when :meth:`~gridspmm.Device.ready_wait` times out.

    There are no partial results: once a kernel is dispatched the full
    grid either runs to completion or the host gives up waiting.
    """
    __module__ = 'gridspmm'
