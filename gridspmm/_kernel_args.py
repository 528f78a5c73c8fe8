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

import ctypes
from ctypes import c_uint32, c_uint64

from ._grid import GridDim

__all__ = [
    'KernelArgs',
    'KERNEL_ARGS_SIZE',
]


class KernelArgs(ctypes.LittleEndianStructure):
    """Fixed-layout argument record shared by the host and an SpMM kernel.

    The field order and widths are the binary contract between the two
    sides: ``grid_dim[2]``, ``m``, ``n``, ``k`` and ``nnz`` as unsigned 32-bit
    integers, followed by five unsigned 64-bit buffer handles.  Handles are
    opaque identifiers issued by :meth:`gridspmm.Device.mem_alloc`; a kernel
    resolves them through the device's buffer registry.

    The record is uploaded as bytes with :meth:`pack` and rebuilt on the
    kernel side with :meth:`unpack`, so every launch works on its own copy.
    """
    _pack_ = 1
    _fields_ = [
        ("grid_dim", c_uint32 * 2),
        ("m", c_uint32),  # rows of sparse matrix A
        ("n", c_uint32),  # cols of dense matrix B and of C
        ("k", c_uint32),  # cols of A, rows of B
        ("nnz", c_uint32),
        ("A_val_addr", c_uint64),
        ("A_col_addr", c_uint64),
        ("A_row_ptr_addr", c_uint64),
        ("B_addr", c_uint64),
        ("C_addr", c_uint64),
    ]

    @property
    def grid(self) -> GridDim:
        return GridDim(self.grid_dim[0], self.grid_dim[1])

    @grid.setter
    def grid(self, grid: GridDim):
        self.grid_dim[0] = grid.x
        self.grid_dim[1] = grid.y

    def pack(self) -> bytes:
        return bytes(self)

    @classmethod
    def unpack(cls, raw) -> 'KernelArgs':
        raw = bytes(raw)
        if len(raw) < KERNEL_ARGS_SIZE:
            raise ValueError(
                f'A kernel argument record needs {KERNEL_ARGS_SIZE} bytes, but got {len(raw)}.'
            )
        return cls.from_buffer_copy(raw[:KERNEL_ARGS_SIZE])

    def __repr__(self):
        return (
            f'KernelArgs(grid_dim=({self.grid_dim[0]}, {self.grid_dim[1]}), '
            f'm={self.m}, n={self.n}, k={self.k}, nnz={self.nnz}, '
            f'A_val={self.A_val_addr:#x}, A_col={self.A_col_addr:#x}, '
            f'A_row_ptr={self.A_row_ptr_addr:#x}, B={self.B_addr:#x}, C={self.C_addr:#x})'
        )


KERNEL_ARGS_SIZE = ctypes.sizeof(KernelArgs)
