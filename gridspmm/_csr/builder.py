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

from typing import List, NamedTuple, Optional, Union

import numpy as np

from gridspmm._comparator import Comparator, get_comparator
from gridspmm._typing import Data, DTypeLike, Index, Indptr, MatrixShape

__all__ = [
    'CSRMatrix',
    'build_random_csr',
    'generate_dense',
    'csr_todense',
    'validate_csr',
    'make_rng',
]

INDEX_DTYPE = np.uint32


class CSRMatrix(NamedTuple):
    """A sparse ``m x k`` matrix in Compressed Sparse Row format.

    Parameters
    ----------
    data : numpy.ndarray
        Non-zero values, shape ``(nnz,)``.
    indices : numpy.ndarray
        ``uint32`` column index of each non-zero, parallel to ``data``.
        Entries of a row may appear in any column order.
    indptr : numpy.ndarray
        ``uint32`` row pointer array of shape ``(m + 1,)``.  Row ``i`` owns
        the half-open range ``[indptr[i], indptr[i + 1])``.
    shape : tuple of int
        Logical shape ``(m, k)``.
    """
    data: Data
    indices: Index
    indptr: Indptr
    shape: MatrixShape

    @property
    def nnz(self) -> int:
        return int(self.data.shape[0])

    @property
    def dtype(self) -> np.dtype:
        return self.data.dtype

    @property
    def density(self) -> float:
        m, k = self.shape
        return self.nnz / (m * k) if m * k else 0.0


def make_rng(seed: Union[int, np.random.Generator, None] = None) -> np.random.Generator:
    if isinstance(seed, np.random.Generator):
        return seed
    return np.random.default_rng(seed)


def _resolve_comparator(dtype: Union[DTypeLike, Comparator]) -> Comparator:
    if isinstance(dtype, Comparator):
        return dtype
    return get_comparator(dtype)


def build_random_csr(
    m: int,
    k: int,
    sparsity: float,
    dtype: Union[DTypeLike, Comparator] = np.float32,
    rng: Union[int, np.random.Generator, None] = None,
) -> CSRMatrix:
    """Generate a random CSR matrix from a dense, row-major generation pass.

    Every one of the ``m * k`` logical cells is visited in row-major,
    column-increasing order.  A uniform draw ``u`` in ``[0, 1)`` decides the
    cell: it is stored as a non-zero when ``u > sparsity``, so each cell is
    non-zero with probability ``1 - sparsity``.  Values of the stored cells
    are drawn from the element type's generator right after the row's mask,
    and ``indptr`` records the cumulative non-zero count after each row.

    Parameters
    ----------
    m, k : int
        Logical shape of the matrix.
    sparsity : float
        Target fraction of zero cells, in ``[0, 1)``.
    dtype : dtype-like or Comparator, optional
        Element type, or a comparator that provides the value generator.
    rng : int, numpy.random.Generator or None, optional
        Seed or generator.  A fixed seed reproduces the same matrix.

    Returns
    -------
    CSRMatrix
        Columns within each row are ascending.

    Raises
    ------
    ValueError
        If a dimension is negative or ``sparsity`` is outside ``[0, 1)``.

    Examples
    --------
    .. code-block:: python

        >>> csr = build_random_csr(4, 8, 0.5, np.float32, rng=50)
        >>> csr.indptr.shape
        (5,)
    """
    if m < 0 or k < 0:
        raise ValueError(f'Matrix dimensions must be non-negative, but got ({m}, {k}).')
    if not 0.0 <= sparsity < 1.0:
        raise ValueError(f'The sparsity must lie in [0, 1), but got {sparsity}.')
    comparator = _resolve_comparator(dtype)
    rng = make_rng(rng)

    values = []
    columns = []
    indptr = np.zeros(m + 1, dtype=INDEX_DTYPE)
    nnz = 0
    for i in range(m):
        row_mask = rng.random(k) > sparsity
        cols = np.flatnonzero(row_mask).astype(INDEX_DTYPE)
        values.append(comparator.generate(rng, cols.size))
        columns.append(cols)
        nnz += cols.size
        indptr[i + 1] = nnz

    if values:
        data = np.concatenate(values).astype(comparator.dtype, copy=False)
        indices = np.concatenate(columns)
    else:
        data = np.zeros(0, dtype=comparator.dtype)
        indices = np.zeros(0, dtype=INDEX_DTYPE)
    return CSRMatrix(data, indices, indptr, (m, k))


def generate_dense(
    rows: int,
    cols: int,
    dtype: Union[DTypeLike, Comparator] = np.float32,
    rng: Union[int, np.random.Generator, None] = None,
) -> np.ndarray:
    """Generate a flat, row-major dense operand of ``rows * cols`` elements."""
    comparator = _resolve_comparator(dtype)
    return comparator.generate(make_rng(rng), rows * cols)


def csr_todense(csr: CSRMatrix) -> np.ndarray:
    """Scatter a CSR matrix into a dense ``(m, k)`` array.

    Entries whose column index is ``>= k`` are dropped; duplicate entries of
    the same cell are summed.
    """
    m, k = csr.shape
    dense = np.zeros((m, k), dtype=csr.data.dtype)
    counts = np.diff(csr.indptr.astype(np.int64))
    rows = np.repeat(np.arange(m), counts)
    cols = csr.indices.astype(np.int64)
    keep = cols < k
    np.add.at(dense, (rows[keep], cols[keep]), csr.data[keep])
    return dense


def validate_csr(csr: CSRMatrix, nnz: Optional[int] = None) -> List[str]:
    """Check the structural invariants of a CSR matrix.

    Parameters
    ----------
    csr : CSRMatrix
        The matrix to check.
    nnz : int, optional
        Expected number of non-zeros, e.g. the value carried by a kernel
        argument record.  Defaults to ``len(csr.data)``.

    Returns
    -------
    list of str
        One message per violated invariant; empty when the matrix is valid.
        Out-of-range column indices are reported here even though kernels
        tolerate them.
    """
    m, k = csr.shape
    problems = []
    indptr = np.asarray(csr.indptr, dtype=np.int64)
    nnz = csr.data.shape[0] if nnz is None else nnz
    if indptr.shape != (m + 1,):
        problems.append(f'indptr has shape {indptr.shape}, expected ({m + 1},)')
        return problems
    if indptr[0] != 0:
        problems.append(f'indptr[0] is {indptr[0]}, expected 0')
    if np.any(np.diff(indptr) < 0):
        problems.append('indptr is not non-decreasing')
    if indptr[-1] != nnz:
        problems.append(f'indptr[m] is {indptr[-1]}, expected nnz={nnz}')
    if csr.indices.shape[0] != csr.data.shape[0]:
        problems.append(
            f'indices has {csr.indices.shape[0]} entries but data has {csr.data.shape[0]}'
        )
    if csr.indices.size and np.any(np.asarray(csr.indices, dtype=np.int64) >= k):
        problems.append(f'column indices out of range [0, {k})')
    return problems
