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

import numpy as np

from gridspmm.config import get_float_ulp
from ._typing import DTypeLike

__all__ = [
    'Comparator',
    'IntComparator',
    'FloatComparator',
    'get_comparator',
    'RAND_MAX',
]

RAND_MAX = 2 ** 31 - 1


class Comparator:
    """Element-type strategy used to generate operands and check results.

    A comparator bundles everything that depends on the element type of a
    test run: the name printed in the run header, the generator for random
    non-zero and dense values, and the equality rule used by the verifier.
    Concrete strategies are :class:`IntComparator` (exact equality) and
    :class:`FloatComparator` (equality up to a ULP distance).  Use
    :func:`get_comparator` to select one from a dtype.

    Parameters
    ----------
    dtype : dtype-like
        The element type handled by the strategy.
    """

    __module__ = 'gridspmm'
    type_str: str = ''

    def __init__(self, dtype: DTypeLike):
        self.dtype = np.dtype(dtype)

    def generate(self, rng: np.random.Generator, size: int) -> np.ndarray:
        """Draw ``size`` random elements of :attr:`dtype` from ``rng``."""
        raise NotImplementedError

    def compare(self, actual, expected) -> np.ndarray:
        """Return a boolean mask that is ``True`` where ``actual`` matches ``expected``."""
        raise NotImplementedError

    def format(self, value) -> str:
        raise NotImplementedError

    def __repr__(self):
        return f'{self.__class__.__name__}({self.dtype.name})'


class IntComparator(Comparator):
    """Exact comparison for integral element types.

    Values are drawn uniformly from ``[0, RAND_MAX]``.  Products and sums in
    the kernel and the reference wrap identically modulo ``2**bits``, so any
    difference at all is a mismatch.
    """

    __module__ = 'gridspmm'
    type_str = 'integer'

    def __init__(self, dtype: DTypeLike = np.int32):
        super().__init__(dtype)
        if self.dtype.kind not in 'iu':
            raise TypeError(f'IntComparator requires an integer dtype, but got {self.dtype}.')

    def generate(self, rng, size):
        high = min(RAND_MAX, np.iinfo(self.dtype).max)
        return rng.integers(0, high, size=size, dtype=self.dtype, endpoint=True)

    def compare(self, actual, expected):
        return np.asarray(actual, dtype=self.dtype) == np.asarray(expected, dtype=self.dtype)

    def format(self, value):
        return f'{int(value):d}'


class FloatComparator(Comparator):
    """ULP-tolerant comparison for floating-point element types.

    Two values match when the integer difference of their bit patterns is at
    most ``ulp``.  Values are drawn uniformly from ``[0, 1)``.

    Parameters
    ----------
    dtype : dtype-like, optional
        A floating-point dtype.  Defaults to ``float32``.
    ulp : int or None, optional
        Tolerance in units in the last place.  ``None`` uses
        :func:`gridspmm.config.get_float_ulp` (6 unless overridden).

    Examples
    --------
    .. code-block:: python

        >>> import numpy as np
        >>> cmp = FloatComparator(np.float32)
        >>> x = np.float32(1.0)
        >>> y = np.array([x], np.float32).view(np.int32) + 7
        >>> bool(cmp.compare(x, y.view(np.float32))[0])
        False
    """

    __module__ = 'gridspmm'
    type_str = 'float'

    def __init__(self, dtype: DTypeLike = np.float32, ulp: int = None):
        super().__init__(dtype)
        if self.dtype.kind != 'f':
            raise TypeError(f'FloatComparator requires a floating dtype, but got {self.dtype}.')
        self.ulp = get_float_ulp() if ulp is None else int(ulp)
        self._bits = np.dtype(f'i{self.dtype.itemsize}')

    def generate(self, rng, size):
        return rng.random(size).astype(self.dtype)

    def ulp_distance(self, actual, expected) -> np.ndarray:
        """Absolute difference of the bit patterns of ``actual`` and ``expected``."""
        a = np.atleast_1d(np.asarray(actual, dtype=self.dtype)).view(self._bits).astype(np.int64)
        b = np.atleast_1d(np.asarray(expected, dtype=self.dtype)).view(self._bits).astype(np.int64)
        return np.abs(a - b)

    def compare(self, actual, expected):
        return self.ulp_distance(actual, expected) <= self.ulp

    def format(self, value):
        return f'{float(value):f}'


def get_comparator(dtype: DTypeLike, **kwargs) -> Comparator:
    """Select the comparator strategy for an element type.

    Raises
    ------
    TypeError
        If ``dtype`` is neither integral nor floating point.
    """
    dtype = np.dtype(dtype)
    if dtype.kind in 'iu':
        return IntComparator(dtype)
    if dtype.kind == 'f':
        return FloatComparator(dtype, **kwargs)
    raise TypeError(f'No comparator for element type {dtype}.')
