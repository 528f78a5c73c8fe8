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

"""End-to-end SpMM regression run against the in-process device."""

import time
from typing import Optional

import numpy as np

from gridspmm._comparator import Comparator, get_comparator
from gridspmm._csr.builder import build_random_csr, generate_dense, make_rng
from gridspmm._device import Device, MAX_TIMEOUT, MEM_READ, MEM_WRITE
from gridspmm._error import DeviceError
from gridspmm._grid import GridDim, exact_grid
from gridspmm._kernel_args import KernelArgs
from gridspmm._typing import DTypeLike
from gridspmm._verify import spmm_cpu, verify
from gridspmm.config import DEFAULT_SEED, get_element_type

__all__ = [
    'run_spmm_test',
]


def _run(
    device: Device,
    comparator: Comparator,
    m: int,
    n: int,
    k: int,
    sparsity: float,
    kernel: str,
    rng: np.random.Generator,
    timeout: Optional[float],
    grid: GridDim,
) -> int:
    dtype = comparator.dtype
    print(f'data type: {comparator.type_str}')
    print(f'matrix sizes: A({m}x{k}), B({k}x{n}), C({m}x{n})')
    print(f'sparsity: {sparsity * 100.0:g}%')

    args = KernelArgs()
    args.grid = grid
    args.m = m
    args.n = n
    args.k = k

    csr = build_random_csr(m, k, sparsity, comparator, rng)
    density = 100.0 * csr.nnz / (m * k) if m * k else 0.0
    print(f'nnz: {csr.nnz} ({density:g}%)')
    args.nnz = csr.nnz

    print('allocate device memory')
    a_val = device.mem_alloc(csr.nnz * dtype.itemsize, MEM_READ)
    args.A_val_addr = device.mem_address(a_val)
    a_col = device.mem_alloc(csr.nnz * 4, MEM_READ)
    args.A_col_addr = device.mem_address(a_col)
    a_row_ptr = device.mem_alloc((m + 1) * 4, MEM_READ)
    args.A_row_ptr_addr = device.mem_address(a_row_ptr)
    b_buf = device.mem_alloc(k * n * dtype.itemsize, MEM_READ)
    args.B_addr = device.mem_address(b_buf)
    c_buf = device.mem_alloc(m * n * dtype.itemsize, MEM_WRITE)
    args.C_addr = device.mem_address(c_buf)

    print(f'A_val_addr={args.A_val_addr:#x}')
    print(f'A_col_addr={args.A_col_addr:#x}')
    print(f'A_row_ptr_addr={args.A_row_ptr_addr:#x}')
    print(f'B_addr={args.B_addr:#x}')
    print(f'C_addr={args.C_addr:#x}')

    b = generate_dense(k, n, comparator, rng)

    print('upload sparse matrix A (values)')
    device.copy_to_dev(a_val, csr.data)
    print('upload sparse matrix A (column indices)')
    device.copy_to_dev(a_col, csr.indices)
    print('upload sparse matrix A (row pointers)')
    device.copy_to_dev(a_row_ptr, csr.indptr)
    print('upload matrix B buffer')
    device.copy_to_dev(b_buf, b)

    print('upload kernel')
    image = device.upload_kernel(kernel, dtype)
    print('upload kernel argument')
    args_buf = device.upload_bytes(args.pack())

    time_start = time.perf_counter()
    print(f'start device ({image.name})')
    device.start(image, args_buf)
    print('wait for completion')
    device.ready_wait(timeout)
    elapsed = (time.perf_counter() - time_start) * 1000.0
    print(f'Elapsed time: {elapsed:g} ms')

    print('download destination buffer')
    result = device.copy_from_dev(c_buf, dtype, m * n)

    print('verify result')
    reference = spmm_cpu(csr, b, n)
    outcome = verify(result, reference, comparator)

    print('cleanup')
    return outcome.errors


def run_spmm_test(
    m: int = 32,
    n: int = 32,
    k: int = 32,
    sparsity: float = 0.9,
    kernel: str = 'spmm',
    *,
    seed: Optional[int] = DEFAULT_SEED,
    dtype: Optional[DTypeLike] = None,
    platform: str = 'cpu',
    timeout: Optional[float] = MAX_TIMEOUT,
    grid: Optional[GridDim] = None,
) -> int:
    """Run one SpMM regression test and return its exit status.

    Builds a random CSR matrix ``A (m x k)`` and a dense ``B (k x n)`` from
    ``seed``, uploads them to a fresh :class:`~gridspmm.Device`, launches the
    kernel named by ``kernel`` (``name[:backend]``) over ``grid``, downloads
    ``C`` and compares it with :func:`~gridspmm.spmm_cpu`.

    Parameters
    ----------
    m, n, k : int, optional
        Matrix dimensions.  Default 32 each.
    sparsity : float, optional
        Fraction of zero cells of ``A``, in ``[0, 1)``.  Default 0.9.
    kernel : str, optional
        Kernel specification.  Default ``'spmm'`` with the platform's
        default backend.
    seed : int, optional
        Generator seed.  Default 50.
    dtype : dtype-like, optional
        Element type.  Defaults to :func:`gridspmm.config.get_element_type`.
    platform : str, optional
        Device platform.  Default ``'cpu'``.
    timeout : float, optional
        Seconds to wait for the kernel.
    grid : GridDim, optional
        Launch grid.  Defaults to the exact ``(n, m)`` grid.

    Returns
    -------
    int
        ``0`` when every element matches, the number of mismatching
        elements otherwise, and ``-1`` when the element type is not supported
        or a device operation failed before
        verification.
    """
    try:
        comparator = get_comparator(get_element_type() if dtype is None else dtype)
    except (TypeError, ValueError) as e:
        print(f'Error: {e}')
        return -1
    rng = make_rng(seed)
    grid = exact_grid(m, n) if grid is None else grid

    try:
        print('open device connection')
        with Device(platform) as device:
            errors = _run(device, comparator, m, n, k, sparsity, kernel, rng, timeout, grid)
    except DeviceError as e:
        print(f'Error: {e}')
        return -1

    if errors != 0:
        print(f'Found {errors} errors!')
        print('FAILED!')
        return errors

    print('PASSED!')
    return 0
