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
import pytest

from gridspmm._comparator import FloatComparator, IntComparator
from gridspmm._csr.builder import CSRMatrix, build_random_csr, csr_todense, generate_dense
from gridspmm._grid import GridDim, is_active, iter_threads, padded_grid, thread_coords
from gridspmm._spmm import spmm, spmm_p
from gridspmm._verify import spmm_cpu, verify
from gridspmm.config import get_numba_parallel, set_numba_parallel

CPU_BACKENDS = spmm_p.available_backends('cpu')


def _csr(data, indices, indptr, shape, dtype=np.float32):
    return CSRMatrix(
        np.asarray(data, dtype=dtype),
        np.asarray(indices, dtype=np.uint32),
        np.asarray(indptr, dtype=np.uint32),
        shape,
    )


class TestSpmmKernel:
    def test_backends_registered(self):
        assert 'numba' in CPU_BACKENDS
        assert 'jax' in CPU_BACKENDS
        assert spmm_p.defaults['cpu'] == 'numba'

    @pytest.mark.parametrize('backend', CPU_BACKENDS)
    def test_two_by_two(self, backend):
        a = _csr([2.], [0], [0, 1, 1], (2, 2))
        c = spmm(a, np.ones((2, 2), np.float32), backend=backend)
        np.testing.assert_array_equal(c, [[2., 2.], [0., 0.]])

    @pytest.mark.parametrize('backend', CPU_BACKENDS)
    def test_flat_dense_operand(self, backend):
        a = _csr([1., 3.], [1, 0], [0, 2], (1, 2))
        b = np.array([1., 2., 10., 20.], np.float32)
        np.testing.assert_array_equal(spmm(a, b, 2, backend=backend), [[13., 26.]])

    @pytest.mark.parametrize('backend', CPU_BACKENDS)
    @pytest.mark.parametrize('dtype', [np.float32, np.int32])
    @pytest.mark.parametrize('m, k, n, sparsity', [(32, 32, 32, 0.9), (7, 13, 5, 0.5), (16, 8, 1, 0.0)])
    def test_matches_reference(self, backend, dtype, m, k, n, sparsity):
        rng = np.random.default_rng(50)
        csr = build_random_csr(m, k, sparsity, dtype, rng)
        b = generate_dense(k, n, dtype, rng)
        c = spmm(csr, b, n, backend=backend)
        assert c.shape == (m, n)
        assert c.dtype == np.dtype(dtype)
        result = verify(c, spmm_cpu(csr, b, n), verbose=False)
        assert result.errors == 0

    @pytest.mark.parametrize('backend', CPU_BACKENDS)
    def test_integer_result_exact(self, backend):
        rng = np.random.default_rng(1)
        csr = build_random_csr(20, 24, 0.6, np.int32, rng)
        b = generate_dense(24, 10, np.int32, rng)
        np.testing.assert_array_equal(spmm(csr, b, 10, backend=backend).reshape(-1), spmm_cpu(csr, b, 10))

    @pytest.mark.parametrize('backend', CPU_BACKENDS)
    def test_zero_sparsity_equals_dense_product(self, backend):
        rng = np.random.default_rng(3)
        csr = build_random_csr(9, 11, 0.0, np.int32, rng)
        csr = csr._replace(data=csr.data % 100)
        b = generate_dense(11, 6, np.int32, rng).reshape(11, 6) % 100
        expected = csr_todense(csr).astype(np.int64) @ b.astype(np.int64)
        np.testing.assert_array_equal(spmm(csr, b, backend=backend), expected)

    @pytest.mark.parametrize('backend', CPU_BACKENDS)
    def test_zero_sparsity_float_close_to_dense(self, backend):
        rng = np.random.default_rng(4)
        csr = build_random_csr(10, 16, 0.0, np.float32, rng)
        b = generate_dense(16, 8, np.float32, rng).reshape(16, 8)
        expected = csr_todense(csr).astype(np.float64) @ b.astype(np.float64)
        np.testing.assert_allclose(spmm(csr, b, backend=backend), expected, rtol=1e-5)

    @pytest.mark.parametrize('backend', CPU_BACKENDS)
    def test_empty_rows_are_zero(self, backend):
        a = _csr([5., 7.], [0, 2], [0, 0, 2, 2], (3, 3))
        b = np.arange(9, dtype=np.float32).reshape(3, 3) + 1
        c = spmm(a, b, backend=backend)
        np.testing.assert_array_equal(c[0], 0.)
        np.testing.assert_array_equal(c[2], 0.)
        np.testing.assert_array_equal(c[1], 5. * b[0] + 7. * b[2])

    @pytest.mark.parametrize('backend', CPU_BACKENDS)
    def test_no_nonzeros(self, backend):
        a = _csr([], [], [0, 0, 0], (2, 4))
        c = spmm(a, np.ones((4, 3), np.float32), backend=backend)
        np.testing.assert_array_equal(c, np.zeros((2, 3), np.float32))

    @pytest.mark.parametrize('backend', CPU_BACKENDS)
    def test_out_of_range_column_skipped(self, backend):
        a = _csr([1., 100.], [1, 5], [0, 2], (1, 2))
        b = np.array([[3., 30.], [4., 40.]], np.float32)
        np.testing.assert_array_equal(spmm(a, b, backend=backend), [[4., 40.]])

    @pytest.mark.parametrize('backend', CPU_BACKENDS)
    def test_unsorted_columns(self, backend):
        a = _csr([0.1, 0.2, 0.3], [2, 0, 1], [0, 3], (1, 3))
        b = np.array([[1.], [2.], [3.]], np.float32)
        result = verify(spmm(a, b, backend=backend), spmm_cpu(a, b, 1), FloatComparator(), verbose=False)
        assert result.passed

    @pytest.mark.parametrize('backend', CPU_BACKENDS)
    def test_padded_grid(self, backend):
        rng = np.random.default_rng(7)
        csr = build_random_csr(5, 9, 0.5, np.float32, rng)
        b = generate_dense(9, 6, np.float32, rng)
        exact = spmm(csr, b, 6, backend=backend)
        padded = spmm(csr, b, 6, backend=backend, grid=padded_grid(5, 6, block=(4, 4)))
        np.testing.assert_array_equal(exact, padded)

    @pytest.mark.parametrize('backend', CPU_BACKENDS)
    def test_one_dimensional_grid_covers_first_row(self, backend):
        a = _csr([1., 2.], [0, 0], [0, 1, 2], (2, 1))
        b = np.array([[3., 4.]], np.float32)
        c = spmm(a, b, backend=backend, grid=GridDim(2))
        np.testing.assert_array_equal(c, [[3., 4.], [0., 0.]])

    @pytest.mark.parametrize('backend', CPU_BACKENDS)
    def test_matches_host_dispatch_model(self, backend):
        rng = np.random.default_rng(29)
        m, k, n = 6, 10, 5
        csr = build_random_csr(m, k, 0.5, np.int32, rng)
        csr = csr._replace(data=csr.data % 50)
        b = generate_dense(k, n, np.int32, rng) % 50
        grid = padded_grid(m, n, block=(4, 4))

        expected = np.zeros(m * n, np.int64)
        visited = 0
        for tid, (col, row) in enumerate(iter_threads(grid)):
            assert thread_coords(tid, grid) == (col, row)
            if not is_active(col, row, m, n):
                continue
            visited += 1
            for i in range(csr.indptr[row], csr.indptr[row + 1]):
                expected[row * n + col] += int(csr.data[i]) * int(b[csr.indices[i] * n + col])
        assert visited == m * n

        c = spmm(csr, b, n, backend=backend, grid=grid)
        np.testing.assert_array_equal(c.reshape(-1), expected)

    @pytest.mark.parametrize('backend', CPU_BACKENDS)
    def test_idempotent(self, backend):
        rng = np.random.default_rng(11)
        csr = build_random_csr(12, 12, 0.7, np.float32, rng)
        b = generate_dense(12, 12, np.float32, rng)
        np.testing.assert_array_equal(
            spmm(csr, b, 12, backend=backend),
            spmm(csr, b, 12, backend=backend),
        )

    def test_backend_parity(self):
        rng = np.random.default_rng(13)
        csr = build_random_csr(24, 32, 0.8, np.float32, rng)
        b = generate_dense(32, 16, np.float32, rng)
        numba_c = spmm(csr, b, 16, backend='numba')
        jax_c = spmm(csr, b, 16, backend='jax')
        assert verify(jax_c, numba_c, FloatComparator(), verbose=False).passed

    def test_integer_backend_parity(self):
        rng = np.random.default_rng(17)
        csr = build_random_csr(16, 32, 0.5, np.int32, rng)
        b = generate_dense(32, 16, np.int32, rng)
        numba_c = spmm(csr, b, 16, backend='numba')
        jax_c = spmm(csr, b, 16, backend='jax')
        assert verify(jax_c, numba_c, IntComparator(), verbose=False).passed

    def test_flat_operand_requires_n(self):
        a = _csr([1.], [0], [0, 1], (1, 2))
        with pytest.raises(ValueError):
            spmm(a, np.ones(4, np.float32))

    def test_operand_size_mismatch(self):
        a = _csr([1.], [0], [0, 1], (1, 2))
        with pytest.raises(ValueError):
            spmm(a, np.ones((3, 2), np.float32))

    @pytest.mark.skipif('numba_cuda' not in spmm_p.available_backends('gpu'), reason='CUDA is not available')
    def test_numba_cuda(self):
        rng = np.random.default_rng(19)
        csr = build_random_csr(32, 32, 0.9, np.float32, rng)
        b = generate_dense(32, 32, np.float32, rng)
        c = spmm(csr, b, 32, backend='numba_cuda', platform='gpu')
        assert verify(c, spmm_cpu(csr, b, 32), verbose=False).passed


def _launch_key(dtype, parallel):
    return 'cpu', 'numba', (('dtype', dtype), ('parallel', parallel))


class TestNumbaParallelMode:
    @pytest.fixture(autouse=True)
    def restore_mode(self):
        original = get_numba_parallel()
        yield
        set_numba_parallel(original)

    def test_switch_yields_new_launcher(self):
        set_numba_parallel(False)
        serial = spmm_p.generate('cpu', 'numba', dtype='float32', parallel=get_numba_parallel())
        set_numba_parallel(True)
        parallel = spmm_p.generate('cpu', 'numba', dtype='float32', parallel=get_numba_parallel())
        assert serial is not parallel
        set_numba_parallel(False)
        assert spmm_p.generate('cpu', 'numba', dtype='float32', parallel=get_numba_parallel()) is serial

    @pytest.mark.parametrize('parallel', [False, True])
    def test_spmm_follows_current_mode(self, parallel):
        rng = np.random.default_rng(23)
        csr = build_random_csr(12, 16, 0.5, np.float32, rng)
        b = generate_dense(16, 9, np.float32, rng)
        set_numba_parallel(parallel)
        c = spmm(csr, b, 9, backend='numba')
        assert _launch_key('float32', parallel) in spmm_p._cache
        assert spmm_p._cache[_launch_key('float32', parallel)] is spmm_p.generate(
            'cpu', 'numba', dtype='float32', parallel=parallel
        )
        assert verify(c, spmm_cpu(csr, b, 9), verbose=False).passed
