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

import threading
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Tuple

from ._error import KernelNotAvailableError
from ._typing import Kernel, KernelGenerator

__all__ = [
    'KernelEntry',
    'GridKernel',
]


@dataclass
class KernelEntry:
    """A registered kernel implementation for a specific backend and platform.

    Parameters
    ----------
    backend : str
        The backend name (e.g., ``'numba'``, ``'jax'``, ``'numba_cuda'``).
    platform : str
        The hardware platform name (``'cpu'`` or ``'gpu'``).
    kernel_generator : KernelGenerator
        A callable that accepts keyword arguments describing the launch
        configuration (such as ``dtype``) and returns a concrete launcher.
    """
    backend: str
    platform: str
    kernel_generator: KernelGenerator


class GridKernel:
    """A named grid kernel with interchangeable backend implementations.

    Each backend provides a *kernel generator*: a callable that receives the
    static launch configuration (the element ``dtype``) and returns a
    launcher with the signature
    ``launcher(grid, m, n, k, values, indices, indptr, b, c)``.  The launcher
    runs one logical thread per grid cell and writes its results into the
    flat output array ``c`` in place.

    The first kernel registered for a platform becomes that platform's
    default.  A default persisted in the user config file
    (:func:`gridspmm.config.set_user_default`) takes precedence over the
    built-in one when it names a registered backend.

    Generated launchers are cached per ``(platform, backend, config)``.

    Parameters
    ----------
    name : str
        Unique kernel name, used to upload the kernel on a device.
    doc : str, optional
        Docstring of the instance.

    Examples
    --------
    .. code-block:: python

        >>> kernel = GridKernel('my_kernel')
        >>> kernel.def_numba_kernel(numba_kernel_generator)  # doctest: +SKIP
        >>> kernel.available_backends('cpu')  # doctest: +SKIP
        ['numba']
    """

    __module__ = 'gridspmm'

    def __init__(self, name: str, doc: str = None):
        self.name = name
        if doc is not None:
            self.__doc__ = doc

        # kernel storage: platform -> backend -> KernelEntry
        self._kernels: Dict[str, Dict[str, KernelEntry]] = {}
        # default backends per platform: platform -> backend_name
        self._defaults: Dict[str, str] = {}
        self._cache: Dict[Tuple, Kernel] = {}
        self._cache_lock = threading.Lock()

        from gridspmm._registry import register_kernel
        register_kernel(name, self)

    def def_kernel(
        self,
        backend: str,
        platform: str,
        kg: KernelGenerator,
        asdefault: bool = False
    ):
        """Register a kernel generator for a specific backend and platform."""
        assert isinstance(backend, str), f'The `backend` should be a string, but got {type(backend)}.'
        assert isinstance(platform, str), f'The `platform` should be a string, but got {type(platform)}.'
        assert callable(kg), f'The `kg` should be a callable, but got {type(kg)}.'

        entry = KernelEntry(backend=backend, platform=platform, kernel_generator=kg)
        self._kernels.setdefault(platform, {})[backend] = entry
        if asdefault or platform not in self._defaults:
            self._defaults[platform] = backend

    def def_numba_kernel(self, kg: KernelGenerator, asdefault: bool = False):
        self.def_kernel(backend='numba', platform='cpu', kg=kg, asdefault=asdefault)

    def def_jax_kernel(self, kg: KernelGenerator, asdefault: bool = False):
        self.def_kernel(backend='jax', platform='cpu', kg=kg, asdefault=asdefault)

    def def_numba_cuda_kernel(self, kg: KernelGenerator, asdefault: bool = False):
        self.def_kernel(backend='numba_cuda', platform='gpu', kg=kg, asdefault=asdefault)

    def set_default(self, platform: str, backend: str):
        """Set the default backend for a platform.

        Raises
        ------
        ValueError
            If no kernels are registered for *platform*, or if *backend*
            is not registered for *platform*.
        """
        if platform not in self._kernels:
            raise ValueError(f"No kernels registered for platform '{platform}'")
        if backend not in self._kernels[platform]:
            available = list(self._kernels[platform].keys())
            raise ValueError(
                f"Backend '{backend}' not registered for platform '{platform}'. "
                f"Available: {available}"
            )
        self._defaults[platform] = backend

    def get_default(self, platform: str) -> Optional[str]:
        """Return the backend used for *platform* when none is requested."""
        from gridspmm.config import get_user_default
        user_backend = get_user_default(self.name, platform)
        if user_backend is not None and user_backend in self._kernels.get(platform, {}):
            return user_backend
        return self._defaults.get(platform)

    @property
    def defaults(self) -> Dict[str, str]:
        return dict(self._defaults)

    def available_backends(self, platform: str) -> List[str]:
        """Return the list of registered backend names for a platform."""
        if platform not in self._kernels:
            return []
        return list(self._kernels[platform].keys())

    def find_platform(self, backend: str) -> Optional[str]:
        """Return the platform a backend is registered for, or ``None``."""
        for platform, entries in self._kernels.items():
            if backend in entries:
                return platform
        return None

    def get_entry(self, platform: str = 'cpu', backend: Optional[str] = None) -> KernelEntry:
        """Resolve the kernel entry for a platform and an optional backend.

        Raises
        ------
        KernelNotAvailableError
            If no backend is registered for *platform*, or if the requested
            *backend* is not among them.
        """
        entries = self._kernels.get(platform, {})
        if backend is None:
            backend = self.get_default(platform)
            if backend is None:
                raise KernelNotAvailableError(
                    f"No kernels registered for platform '{platform}' in kernel '{self.name}'."
                )
        if backend not in entries:
            raise KernelNotAvailableError(
                f"Backend '{backend}' not registered for kernel '{self.name}' on "
                f"platform '{platform}'. Available: {list(entries.keys())}"
            )
        return entries[backend]

    def generate(self, platform: str = 'cpu', backend: Optional[str] = None, **kwargs) -> Kernel:
        """Return a launcher for the given platform, backend and launch configuration.

        Keyword arguments are forwarded to the kernel generator and must be
        hashable, since they key the launcher cache.
        """
        entry = self.get_entry(platform, backend)
        key = (entry.platform, entry.backend, tuple(sorted(kwargs.items())))
        with self._cache_lock:
            kernel = self._cache.get(key)
            if kernel is None:
                kernel = entry.kernel_generator(**kwargs)
                self._cache[key] = kernel
        return kernel

    def __repr__(self):
        backends = {p: list(b) for p, b in self._kernels.items()}
        return f'GridKernel({self.name!r}, backends={backends})'
