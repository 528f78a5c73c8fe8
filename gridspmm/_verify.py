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
from typing import List, NamedTuple, Optional, Tuple

import numpy as np

from gridspmm._comparator import Comparator, get_comparator
from gridspmm._csr.builder import CSRMatrix
from gridspmm.config import get_max_reported_errors

__all__ = [
    'spmm_cpu',
    'verify',
    'VerifyResult',
]


@functools.lru_cache(maxsize=None)
def _reference_kernel(dtype: str):
    import numba  # pylint: disable=import-outside-toplevel

    zero = np.dtype(dtype).type(0)

    # strictly sequential, row by row, in stored entry order
    @numba.njit
    def mm(values, indices, indptr, b, m, n, k, c):
        for i in range(m):
            for j in range(n):
                s = zero
                for idx in range(int(indptr[i]), int(indptr[i + 1])):
                    col = int(indices[idx])
                    if col < k:
                        s += values[idx] * b[col * n + j]
                c[i * n + j] = s

    return mm


def spmm_cpu(csr: CSRMatrix, b, n: int) -> np.ndarray:
    """Sequential CPU reference of the SpMM kernel.

    Walks the output in row-major order and accumulates every element over
    its CSR row in stored entry order, skipping column indices ``>= k``,
    exactly as a single kernel thread does.

    Parameters
    ----------
    csr : CSRMatrix
        The sparse ``m x k`` left operand.
    b : numpy.ndarray
        Dense right operand, ``(k, n)`` or flat row-major.
    n : int
        Number of columns of ``b``.

    Returns
    -------
    numpy.ndarray
        Flat row-major result of length ``m * n``.
    """
    m, k = csr.shape
    dtype = csr.data.dtype
    b = np.ascontiguousarray(np.asarray(b).reshape(-1), dtype=dtype)
    if b.size != k * n:
        raise ValueError(f'The dense operand must hold {k} x {n} elements, but got {b.size}.')
    c = np.zeros(m * n, dtype=dtype)
    _reference_kernel(dtype.name)(
        np.ascontiguousarray(csr.data),
        np.ascontiguousarray(csr.indices, dtype=np.uint32),
        np.ascontiguousarray(csr.indptr, dtype=np.uint32),
        b, m, n, k, c,
    )
    return c


class VerifyResult(NamedTuple):
    """Outcome of comparing a kernel result with the reference.

    Attributes
    ----------
    errors : int
        Total number of mismatching elements.
    mismatches : list of tuple
        ``(index, expected, actual)`` for the reported mismatches, at most
        ``max_report`` of them.
    """
    errors: int
    mismatches: List[Tuple[int, object, object]]

    @property
    def passed(self) -> bool:
        return self.errors == 0


def verify(
    actual,
    expected,
    comparator: Optional[Comparator] = None,
    max_report: Optional[int] = None,
    verbose: bool = True,
) -> VerifyResult:
    """Compare a kernel result element-wise against the reference.

    Every mismatch counts as one error.  The first ``max_report`` mismatches
    are printed as ``*** error: [index] expected=..., actual=...``; the rest
    are only counted.  A mismatch never raises.

    Parameters
    ----------
    actual, expected : array_like
        Kernel output and reference output, compared in flat order.
    comparator : Comparator, optional
        Equality rule.  Defaults to the comparator for ``expected.dtype``.
    max_report : int, optional
        Number of mismatches to print.  Defaults to
        :func:`gridspmm.config.get_max_reported_errors` (100).
    verbose : bool, optional
        Print the reported mismatches.  Default is ``True``.

    Returns
    -------
    VerifyResult
        The total error count and the reported mismatches.

    Raises
    ------
    ValueError
        If the two results do not have the same number of elements.
    """
    expected = np.asarray(expected).reshape(-1)
    actual = np.asarray(actual).reshape(-1)
    if actual.shape != expected.shape:
        raise ValueError(
            f'Cannot compare a result of {actual.size} elements with a reference of {expected.size}.'
        )
    if comparator is None:
        comparator = get_comparator(expected.dtype)
    if max_report is None:
        max_report = get_max_reported_errors()

    ok = comparator.compare(actual, expected)
    bad = np.flatnonzero(~ok)
    mismatches = []
    for index in bad[:max_report]:
        index = int(index)
        mismatches.append((index, expected[index], actual[index]))
        if verbose:
            print(
                f'*** error: [{index}] expected={comparator.format(expected[index])}, '
                f'actual={comparator.format(actual[index])}'
            )
    return VerifyResult(int(bad.size), mismatches)
