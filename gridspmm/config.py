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

"""User-level configuration for gridspmm.

Holds the static build-style settings of a test run (element type, ULP
tolerance, report cap, Numba execution mode) and persists per-kernel
default backend selections in a JSON file at a platform-appropriate
location. Supports atomic writes, schema versioning, and cached loading.

Config locations:
    - Linux:   ~/.config/gridspmm/defaults.json
    - macOS:   ~/Library/Application Support/gridspmm/defaults.json
    - Windows: %APPDATA%/gridspmm/defaults.json

The element type mirrors a compile-time choice: it is resolved once from
the ``GRIDSPMM_ELEMENT_TYPE`` environment variable, then from the
``element_type`` entry of the config file, and defaults to ``float32``.
"""

import json
import os
import platform
import tempfile
import warnings
from typing import Any, Dict, Optional

import numpy as np

__all__ = [
    'load_user_defaults',
    'save_user_defaults',
    'get_user_default',
    'set_user_default',
    'clear_user_defaults',
    'get_config_path',
    'invalidate_cache',
    'get_element_type',
    'set_element_type',
    'get_float_ulp',
    'set_float_ulp',
    'get_max_reported_errors',
    'set_numba_parallel',
    'get_numba_parallel',
    'get_numba_num_threads',
    'SUPPORTED_ELEMENT_TYPES',
    'DEFAULT_FLOAT_ULP',
    'DEFAULT_MAX_REPORTED_ERRORS',
    'DEFAULT_SEED',
]

_SCHEMA_VERSION = 1
_SUPPORTED_SCHEMA_VERSIONS = {1}
_cache: Optional[Dict[str, Any]] = None

ELEMENT_TYPE_ENV = 'GRIDSPMM_ELEMENT_TYPE'
SUPPORTED_ELEMENT_TYPES = ('int32', 'float32')
DEFAULT_FLOAT_ULP = 6
DEFAULT_MAX_REPORTED_ERRORS = 100
DEFAULT_SEED = 50


def _empty_config() -> Dict[str, Any]:
    return {'schema_version': _SCHEMA_VERSION, 'defaults': {}}


def get_config_path() -> str:
    """Return the platform-appropriate path for the gridspmm config file.

    Returns
    -------
    str
        Absolute path to the ``defaults.json`` configuration file.

    Notes
    -----
    The platform-specific base directories are:

    - **Windows**: ``%APPDATA%/gridspmm/defaults.json`` (falls back to
      ``~/gridspmm/defaults.json`` if ``APPDATA`` is not set).
    - **macOS**: ``~/Library/Application Support/gridspmm/defaults.json``.
    - **Linux / other**: ``$XDG_CONFIG_HOME/gridspmm/defaults.json`` (falls
      back to ``~/.config/gridspmm/defaults.json``).
    """
    system = platform.system()
    if system == 'Windows':
        base = os.environ.get('APPDATA', os.path.expanduser('~'))
    elif system == 'Darwin':
        base = os.path.join(os.path.expanduser('~'), 'Library', 'Application Support')
    else:
        base = os.environ.get('XDG_CONFIG_HOME', os.path.join(os.path.expanduser('~'), '.config'))
    return os.path.join(base, 'gridspmm', 'defaults.json')


def _read_config_file(path: str) -> Dict[str, Any]:
    """Read and validate the JSON configuration file.

    Returns an empty default structure if the file is missing, corrupted,
    or has an unsupported schema version.
    """
    if not os.path.isfile(path):
        return _empty_config()

    try:
        with open(path, 'r', encoding='utf-8') as f:
            data = json.load(f)
    except (json.JSONDecodeError, OSError) as e:
        warnings.warn(
            f"gridspmm: Corrupted config file at {path}: {e}. Using built-in defaults.",
            stacklevel=3,
        )
        return _empty_config()

    schema_ver = data.get('schema_version', 0)
    if schema_ver not in _SUPPORTED_SCHEMA_VERSIONS:
        warnings.warn(
            f"gridspmm: Config file schema version {schema_ver} is not supported "
            f"(supported: {_SUPPORTED_SCHEMA_VERSIONS}). Ignoring user defaults.",
            stacklevel=3,
        )
        return _empty_config()

    return data


def _write_config_file(path: str, data: Dict[str, Any]):
    """Atomically write the configuration dictionary to a JSON file."""
    config_dir = os.path.dirname(path)
    try:
        os.makedirs(config_dir, exist_ok=True)
    except OSError as e:
        warnings.warn(
            f"gridspmm: Cannot create config directory {config_dir}: {e}. "
            f"Default persistence skipped.",
            stacklevel=3,
        )
        return

    try:
        fd, tmp_path = tempfile.mkstemp(dir=config_dir, suffix='.tmp')
        try:
            with os.fdopen(fd, 'w', encoding='utf-8') as f:
                json.dump(data, f, indent=2, sort_keys=True)
                f.write('\n')
            os.replace(tmp_path, path)
        except BaseException:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
            raise
    except OSError as e:
        warnings.warn(
            f"gridspmm: Cannot write config file {path}: {e}. "
            f"Default persistence skipped.",
            stacklevel=3,
        )


def _load_config() -> Dict[str, Any]:
    global _cache
    if _cache is None:
        _cache = _read_config_file(get_config_path())
    return _cache


def invalidate_cache():
    """Clear the in-memory configuration cache, forcing a re-read on next access."""
    global _cache
    _cache = None


def load_user_defaults() -> Dict[str, Dict[str, str]]:
    """Load user-configured backend defaults from the config file.

    Returns
    -------
    dict of str to dict of str to str
        A dictionary mapping kernel names (e.g., ``"spmm"``) to
        dictionaries of ``{platform_name: backend_name}``.  Returns an
        empty dict if no defaults have been configured.
    """
    return _load_config().get('defaults', {})


def save_user_defaults(defaults: Dict[str, Dict[str, str]]):
    """Merge backend defaults into the config file and write it atomically.

    Parameters
    ----------
    defaults : dict of str to dict of str to str
        Kernel name to ``{platform_name: backend_name}``.  Existing entries
        for the same kernel/platform pair are overwritten.
    """
    global _cache
    path = get_config_path()
    existing = _read_config_file(path)

    existing_defaults = existing.get('defaults', {})
    for kernel_name, platform_map in defaults.items():
        if kernel_name not in existing_defaults:
            existing_defaults[kernel_name] = {}
        existing_defaults[kernel_name].update(platform_map)
    existing['defaults'] = existing_defaults
    existing['schema_version'] = _SCHEMA_VERSION
    _write_config_file(path, existing)

    _cache = existing


def get_user_default(kernel_name: str, platform_name: str) -> Optional[str]:
    """Return the persisted backend for a kernel/platform pair, or ``None``."""
    return load_user_defaults().get(kernel_name, {}).get(platform_name)


def set_user_default(kernel_name: str, platform_name: str, backend: str):
    """Persist the preferred backend for a single kernel/platform pair."""
    save_user_defaults({kernel_name: {platform_name: backend}})


def clear_user_defaults():
    """Delete the config file and clear the in-memory cache."""
    global _cache
    path = get_config_path()
    try:
        if os.path.isfile(path):
            os.unlink(path)
    except OSError as e:
        warnings.warn(
            f"gridspmm: Cannot delete config file {path}: {e}.",
            stacklevel=3,
        )
    _cache = None


_element_type: Optional[np.dtype] = None
_float_ulp: int = DEFAULT_FLOAT_ULP
_max_reported_errors: int = DEFAULT_MAX_REPORTED_ERRORS


def _check_element_type(dtype) -> np.dtype:
    dtype = np.dtype(dtype)
    if dtype.name not in SUPPORTED_ELEMENT_TYPES:
        raise ValueError(
            f'Unsupported element type {dtype.name!r}. '
            f'Supported: {SUPPORTED_ELEMENT_TYPES}.'
        )
    return dtype


def get_element_type() -> np.dtype:
    """Return the element type of the matrices in a test run.

    Resolved on first access from the ``GRIDSPMM_ELEMENT_TYPE`` environment
    variable, then from the ``element_type`` entry of the config file, and
    otherwise ``float32``.  The result is fixed afterwards unless
    :func:`set_element_type` is called.

    Returns
    -------
    numpy.dtype
        ``int32`` or ``float32``.

    Raises
    ------
    ValueError
        If the configured name is not a supported element type.
    """
    global _element_type
    if _element_type is None:
        name = os.environ.get(ELEMENT_TYPE_ENV)
        if not name:
            name = _load_config().get('element_type', 'float32')
        _element_type = _check_element_type(name)
    return _element_type


def set_element_type(dtype=None):
    """Override the element type, or reset it to be re-resolved when ``None``."""
    global _element_type
    _element_type = None if dtype is None else _check_element_type(dtype)


def get_float_ulp() -> int:
    """Return the floating-point comparison tolerance in units in the last place."""
    return _float_ulp


def set_float_ulp(ulp: int = DEFAULT_FLOAT_ULP):
    global _float_ulp
    if ulp < 0:
        raise ValueError(f'The ULP tolerance must be non-negative, but got {ulp}.')
    _float_ulp = int(ulp)


def get_max_reported_errors() -> int:
    """Return how many mismatches the verifier prints before going quiet."""
    return _max_reported_errors


_numba_parallel: bool = False
_numba_num_threads: Optional[int] = None


def set_numba_parallel(parallel: bool = True, num_threads: Optional[int] = None):
    """Enable or disable Numba parallel execution and optionally set the thread count.

    Controls whether the Numba SpMM kernel distributes grid threads over
    ``numba.prange``.  When ``num_threads`` is provided, it also calls
    ``numba.set_num_threads`` to configure the Numba thread pool size.

    Parameters
    ----------
    parallel : bool, optional
        If ``True``, enable Numba parallel mode.  Defaults to ``True``.
    num_threads : int or None, optional
        Number of threads for Numba's thread pool.  If ``None``, the Numba
        default is used.

    Notes
    -----
    The mode is part of the launch configuration that keys the kernel
    cache, so launches after this call use a kernel compiled for it.
    """
    global _numba_parallel, _numba_num_threads
    _numba_parallel = parallel
    _numba_num_threads = num_threads
    if num_threads is not None:
        import numba
        numba.set_num_threads(num_threads)


def get_numba_parallel() -> bool:
    return _numba_parallel


def get_numba_num_threads() -> Optional[int]:
    return _numba_num_threads
