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

from typing import Callable, Sequence, Tuple, Union

import numpy as np

__all__ = [
    'Data',
    'Index',
    'Indptr',
    'MatrixShape',
    'Kernel',
    'KernelGenerator',
    'DTypeLike',
]

Data = np.ndarray
Index = np.ndarray
Indptr = np.ndarray
MatrixShape = Union[Tuple[int, int], Sequence[int]]
Kernel = Callable
KernelGenerator = Callable[..., Kernel]
DTypeLike = Union[str, np.dtype, type]
