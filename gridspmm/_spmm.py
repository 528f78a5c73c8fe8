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

import functools
import importlib.util
from typing import Optional, Tuple

import numpy as np

from gridspmm._csr.builder import CSRMatrix
from gridspmm._grid import GridDim, exact_grid
from gridspmm._op import GridKernel
from gridspmm.config import get_numba_parallel

__all__ = [
    'spmm',
    'spmm_p',
]


def _spmm_numba_kernel_generator(dtype: str, parallel: bool = False, **kwargs):
    import numba  # pylint: disable=import-outside-toplevel

    zero = np.dtype(dtype).type(0)

    # one logical thread: C[row, col] over CSR row `row` and dense column `col`
    @numba.njit
    def thread(col, row, m, n, k, values, indices, indptr, b, c):
        if row >= m or col >= n:
            return
        acc = zero
        for i in range(int(indptr[row]), int(indptr[row + 1])):
            a_col = int(indices[i])
            if a_col < k:
                acc += values[i] * b[a_col * n + col]
        c[row * n + col] = acc

    @numba.njit(parallel=parallel)
    def launch(grid_x, grid_y, m, n, k, values, indices, indptr, b, c):
        for tid in numba.prange(grid_x * grid_y):
            t = np.int64(tid)
            thread(t % grid_x, t // grid_x, m, n, k, values, indices, indptr, b, c)

    def kernel(grid, m, n, k, values, indices, indptr, b, c):
        launch(grid.x, grid.y, m, n, k, values, indices, indptr, b, c)

    return kernel


def _pad_operands(k, dtype, values, indices, indptr, b):
    # Empty arrays cannot be gathered from; the padding is never read since
    # every row range is empty or the padded column is out of range.
    if values.size == 0:
        values = np.zeros(1, dtype=dtype)
        indices = np.full(1, k, dtype=indices.dtype)
    if b.size == 0:
        b = np.zeros(1, dtype=dtype)
    return values, indices, indptr, b


def _spmm_jax_kernel_generator(dtype: str, **kwargs):
    import jax  # pylint: disable=import-outside-toplevel
    import jax.numpy as jnp  # pylint: disable=import-outside-toplevel

    dtype = np.dtype(dtype)

    def thread(tid, grid_x, m, n, k, values, indices, indptr, b):
        zero = jnp.zeros((), dtype=dtype)
        col = tid % grid_x
        row = tid // grid_x
        active = (row < m) & (col < n)
        r = jnp.where(active, row, 0)
        c = jnp.where(active, col, 0)

        def body(i, acc):
            a_col = indices[i]
            in_range = a_col < k
            b_val = b[jnp.where(in_range, a_col, 0) * n + c]
            return acc + jnp.where(in_range, values[i] * b_val, zero)

        acc = jax.lax.fori_loop(indptr[r], indptr[r + 1], body, zero)
        return active, row * n + col, acc

    @functools.partial(jax.jit, static_argnums=(0, 1, 2, 3, 4))
    def launch(grid_x, grid_y, m, n, k, values, indices, indptr, b):
        tids = jnp.arange(grid_x * grid_y, dtype=jnp.int32)
        return jax.vmap(lambda tid: thread(tid, grid_x, m, n, k, values, indices, indptr, b))(tids)

    def kernel(grid, m, n, k, values, indices, indptr, b, c):
        if grid.size == 0:
            return
        # int32 indexing; any column >= k is clamped to k, which stays skipped
        indices = np.minimum(np.asarray(indices, dtype=np.int64), k).astype(np.int32)
        indptr = np.asarray(indptr, dtype=np.int32)
        values, indices, indptr, b = _pad_operands(k, dtype, values, indices, indptr, b)
        active, index, acc = launch(
            int(grid.x), int(grid.y), int(m), int(n), int(k),
            jnp.asarray(values), jnp.asarray(indices), jnp.asarray(indptr), jnp.asarray(b),
        )
        active = np.asarray(active)
        c[np.asarray(index)[active]] = np.asarray(acc)[active]

    return kernel


def _spmm_numba_cuda_kernel_generator(dtype: str, block: Tuple[int, int] = (16, 16), **kwargs):
    from numba import cuda  # pylint: disable=import-outside-toplevel

    dtype = np.dtype(dtype)
    zero = dtype.type(0)

    @cuda.jit
    def mm(grid_x, grid_y, m, n, k, values, indices, indptr, b, c):
        col, row = cuda.grid(2)
        if col >= grid_x or row >= grid_y:
            return
        if row >= m or col >= n:
            return
        acc = zero
        for i in range(indptr[row], indptr[row + 1]):
            a_col = indices[i]
            if a_col < k:
                acc += values[i] * b[a_col * n + col]
        c[row * n + col] = acc

    def kernel(grid, m, n, k, values, indices, indptr, b, c):
        if grid.size == 0:
            return
        values, indices, indptr, b = _pad_operands(k, dtype, values, indices, indptr, b)
        blocks = ((grid.x + block[0] - 1) // block[0], (grid.y + block[1] - 1) // block[1])
        d_c = cuda.to_device(c)
        mm[blocks, block](
            grid.x, grid.y, m, n, k,
            cuda.to_device(values),
            cuda.to_device(indices),
            cuda.to_device(indptr),
            cuda.to_device(b),
            d_c,
        )
        cuda.synchronize()
        d_c.copy_to_host(c)

    return kernel


def _numba_cuda_available() -> bool:
    if importlib.util.find_spec('numba') is None:
        return False
    try:
        from numba import cuda  # pylint: disable=import-outside-toplevel
        return cuda.is_available()
    except Exception:  # CUDA driver or toolkit probing failed
        return False


spmm_p = GridKernel(
    'spmm',
    doc='Sparse (CSR) times dense matrix multiplication, one grid thread per output element.'
)
spmm_p.def_numba_kernel(_spmm_numba_kernel_generator)
spmm_p.def_jax_kernel(_spmm_jax_kernel_generator)
if _numba_cuda_available():
    spmm_p.def_numba_cuda_kernel(_spmm_numba_cuda_kernel_generator)


def spmm(
    csr: CSRMatrix,
    b,
    n: Optional[int] = None,
    *,
    backend: Optional[str] = None,
    platform: str = 'cpu',
    grid: Optional[GridDim] = None,
) -> np.ndarray:
    """Multiply a CSR matrix by a dense matrix with the grid SpMM kernel.

    Computes ``C = A @ B`` where ``A`` is an ``m x k`` CSR matrix and ``B``
    is a dense ``k x n`` matrix.  One logical thread is dispatched per grid
    cell; the thread at ``(col, row)`` computes

    ``C[row, col] = sum_{i in [indptr[row], indptr[row + 1])} data[i] * B[indices[i], col]``

    in stored entry order, skipping entries whose column index is ``>= k``.
    Threads outside ``m x n`` do nothing.

    Parameters
    ----------
    csr : CSRMatrix
        The sparse left operand.
    b : numpy.ndarray
        Dense right operand, either of shape ``(k, n)`` or flat row-major of
        length ``k * n``.
    n : int, optional
        Number of columns of ``b``.  Required when ``b`` is flat.
    backend : str, optional
        ``'numba'``, ``'jax'`` or ``'numba_cuda'``.  Defaults to the
        platform's default backend.
    platform : str, optional
        ``'cpu'`` (default) or ``'gpu'``.
    grid : GridDim, optional
        Launch grid.  Defaults to the exact ``(n, m)`` grid; larger grids
        are allowed.

    Returns
    -------
    numpy.ndarray
        The ``(m, n)`` product with the dtype of ``csr.data``.

    Examples
    --------
    .. code-block:: python

        >>> import numpy as np
        >>> from gridspmm import CSRMatrix, spmm
        >>> a = CSRMatrix(np.array([2.], np.float32), np.array([0], np.uint32),
        ...               np.array([0, 1, 1], np.uint32), (2, 2))
        >>> spmm(a, np.ones((2, 2), np.float32))
        array([[2., 2.],
               [0., 0.]], dtype=float32)
    """
    m, k = csr.shape
    b = np.asarray(b)
    if n is None:
        if b.ndim != 2:
            raise ValueError('`n` is required when the dense operand is flat.')
        n = b.shape[1]
    if b.size != k * n:
        raise ValueError(f'The dense operand must hold {k} x {n} elements, but got {b.size}.')
    dtype = csr.data.dtype
    b = np.ascontiguousarray(b.reshape(-1), dtype=dtype)
    grid = exact_grid(m, n) if grid is None else grid

    c = np.zeros(m * n, dtype=dtype)
    kernel = spmm_p.generate(platform, backend, dtype=dtype.name, parallel=get_numba_parallel())
    kernel(
        grid, m, n, k,
        np.ascontiguousarray(csr.data),
        np.ascontiguousarray(csr.indices, dtype=np.uint32),
        np.ascontiguousarray(csr.indptr, dtype=np.uint32),
        b, c,
    )
    return c.reshape(m, n)
