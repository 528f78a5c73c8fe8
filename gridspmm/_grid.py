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

"""Grid dispatch model.

A launch covers a grid of ``x * y`` logical threads.  Thread ``tid`` sits at
``(col, row) = (tid % x, tid // x)``: dimension 0 indexes the output
column, dimension 1 the output row.  Threads outside the logical problem
(``row >= m`` or ``col >= n``) do nothing, which lets a grid be padded to a
multiple of a hardware group size.

The helpers here describe that model on the host.  Compiled kernels cannot
call back into Python, so the numba, JAX and CUDA launchers in
:mod:`gridspmm._spmm` inline the same ``tid -> (col, row)`` mapping and the
same bounds check; :func:`exact_grid` and :func:`padded_grid` build the
grids that the harness and :func:`gridspmm.spmm` launch.
"""

from typing import Iterator, NamedTuple, Sequence, Tuple

__all__ = [
    'GridDim',
    'thread_coords',
    'is_active',
    'iter_threads',
    'padded_grid',
    'exact_grid',
]


class GridDim(NamedTuple):
    """Extent of a one- or two-dimensional launch grid."""
    x: int
    y: int = 1

    @property
    def size(self) -> int:
        return self.x * self.y

    @classmethod
    def from_sequence(cls, dims: Sequence[int]) -> 'GridDim':
        dims = tuple(int(d) for d in dims)
        if len(dims) == 1:
            return cls(dims[0])
        if len(dims) == 2:
            return cls(dims[0], dims[1])
        raise ValueError(f'Grids have one or two dimensions, but got {len(dims)}.')


def thread_coords(tid: int, grid: GridDim) -> Tuple[int, int]:
    """Map a flat thread id to its ``(col, row)`` grid coordinate."""
    if not 0 <= tid < grid.size:
        raise IndexError(f'Thread id {tid} outside a grid of {grid.size} threads.')
    return tid % grid.x, tid // grid.x


def is_active(col: int, row: int, m: int, n: int) -> bool:
    """Whether the thread at ``(col, row)`` owns an element of an ``m x n`` output."""
    return row < m and col < n


def iter_threads(grid: GridDim) -> Iterator[Tuple[int, int]]:
    """Yield every ``(col, row)`` of the grid exactly once, in flat id order."""
    for row in range(grid.y):
        for col in range(grid.x):
            yield col, row


def exact_grid(m: int, n: int) -> GridDim:
    """The grid with one thread per element of an ``m x n`` output."""
    return GridDim(n, m)


def padded_grid(m: int, n: int, block: Tuple[int, int] = (16, 16)) -> GridDim:
    """Round the exact ``(n, m)`` grid up to a multiple of ``block`` per dimension."""
    bx, by = block
    if bx <= 0 or by <= 0:
        raise ValueError(f'Block dimensions must be positive, but got {block}.')
    return GridDim(-(-n // bx) * bx, -(-m // by) * by)
