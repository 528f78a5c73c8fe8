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

__version__ = "0.0.1"

from ._comparator import Comparator, IntComparator, FloatComparator, get_comparator
from ._csr import CSRMatrix, build_random_csr, generate_dense, csr_todense, validate_csr
from ._device import Device, BufferRegistry, KernelImage, MEM_READ, MEM_WRITE, MEM_READ_WRITE, MAX_TIMEOUT
from ._error import (
    DeviceError,
    BufferAllocationError,
    InvalidBufferError,
    TransferError,
    KernelNotAvailableError,
    KernelExecutionError,
    DeviceTimeoutError,
)
from ._grid import GridDim, thread_coords, is_active, iter_threads, padded_grid, exact_grid
from ._harness import run_spmm_test
from ._kernel_args import KernelArgs, KERNEL_ARGS_SIZE
from ._op import GridKernel
from ._spmm import spmm, spmm_p
from ._verify import spmm_cpu, verify, VerifyResult
from .config import (
    get_element_type,
    set_element_type,
    get_float_ulp,
    set_float_ulp,
    set_numba_parallel,
    get_numba_parallel,
    get_config_path,
    set_user_default,
    get_user_default,
    clear_user_defaults,
)

__all__ = [

    # --- sparse operand --- #
    'CSRMatrix',
    'build_random_csr',
    'generate_dense',
    'csr_todense',
    'validate_csr',

    # --- grid dispatch --- #
    'GridDim',
    'thread_coords',
    'is_active',
    'iter_threads',
    'padded_grid',
    'exact_grid',

    # --- kernels --- #
    'GridKernel',
    'KernelArgs',
    'KERNEL_ARGS_SIZE',
    'spmm',
    'spmm_p',

    # --- device --- #
    'Device',
    'BufferRegistry',
    'KernelImage',
    'MEM_READ',
    'MEM_WRITE',
    'MEM_READ_WRITE',
    'MAX_TIMEOUT',

    # --- verification --- #
    'Comparator',
    'IntComparator',
    'FloatComparator',
    'get_comparator',
    'spmm_cpu',
    'verify',
    'VerifyResult',
    'run_spmm_test',

    # --- errors --- #
    'DeviceError',
    'BufferAllocationError',
    'InvalidBufferError',
    'TransferError',
    'KernelNotAvailableError',
    'KernelExecutionError',
    'DeviceTimeoutError',

    # --- configuration --- #
    'get_element_type',
    'set_element_type',
    'get_float_ulp',
    'set_float_ulp',
    'set_numba_parallel',
    'get_numba_parallel',
    'get_config_path',
    'set_user_default',
    'get_user_default',
    'clear_user_defaults',
]
