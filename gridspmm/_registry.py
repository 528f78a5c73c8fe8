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

"""Global auto-discovery registry for all GridKernel instances.

This module maintains a registry that is populated automatically when
GridKernel instances are created, so that a device can resolve a kernel
image by name at upload time and the CLI can list what is available. It
avoids importing gridspmm internals to prevent circular dependencies.
"""

from typing import Dict, List, Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from gridspmm._op import GridKernel

__all__ = [
    'register_kernel',
    'get_kernel',
    'get_all_kernel_names',
]

_KERNEL_REGISTRY: Dict[str, 'GridKernel'] = {}


def register_kernel(name: str, kernel: 'GridKernel'):
    """Register a kernel in the global registry.

    Called automatically by ``GridKernel.__init__``.
    """
    _KERNEL_REGISTRY[name] = kernel


def get_kernel(name: str) -> Optional['GridKernel']:
    """Return the kernel registered under ``name``, or ``None``."""
    return _KERNEL_REGISTRY.get(name)


def get_all_kernel_names() -> List[str]:
    """Return a sorted list of all registered kernel names."""
    return sorted(_KERNEL_REGISTRY.keys())
