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
from gridspmm._verify import spmm_cpu, verify


class TestSpmmCpu:
    def test_two_by_two(self):
        csr = CSRMatrix(
            np.array([2.], np.float32),
            np.array([0], np.uint32),
            np.array([0, 1, 1], np.uint32),
            (2, 2),
        )
        c = spmm_cpu(csr, np.ones(4, np.float32), 2)
        np.testing.assert_array_equal(c, [2., 2., 0., 0.])

    def test_matches_dense_product(self):
        rng = np.random.default_rng(0)
        csr = build_random_csr(12, 9, 0.5, np.float32, rng)
        b = generate_dense(9, 7, np.float32, rng)
        expected = csr_todense(csr).astype(np.float64) @ b.reshape(9, 7).astype(np.float64)
        np.testing.assert_allclose(spmm_cpu(csr, b, 7).reshape(12, 7), expected, rtol=1e-5, atol=1e-6)

    def test_integer_wraps(self):
        big = np.int32(2 ** 30)
        csr = CSRMatrix(
            np.array([big, big], np.int32),
            np.array([0, 1], np.uint32),
            np.array([0, 2], np.uint32),
            (1, 2),
        )
        b = np.array([4, 4], np.int32)
        # 2 * (2**30 * 4) = 2**33 wraps to 0 in 32 bits
        np.testing.assert_array_equal(spmm_cpu(csr, b, 1), [0])

    def test_skips_out_of_range_columns(self):
        csr = CSRMatrix(
            np.array([1., 100.], np.float32),
            np.array([1, 5], np.uint32),
            np.array([0, 2], np.uint32),
            (1, 2),
        )
        np.testing.assert_array_equal(spmm_cpu(csr, np.array([3., 4.], np.float32), 1), [4.])

    def test_bad_operand_size(self):
        csr = build_random_csr(3, 4, 0.5, np.float32, rng=0)
        with pytest.raises(ValueError):
            spmm_cpu(csr, np.zeros(5, np.float32), 2)


class TestVerify:
    def test_passed(self):
        x = np.arange(10, dtype=np.int32)
        result = verify(x, x.copy())
        assert result.passed
        assert result.errors == 0
        assert result.mismatches == []

    def test_counts_every_mismatch(self, capsys):
        expected = np.zeros(10, np.int32)
        actual = expected.copy()
        actual[[1, 4, 9]] = 1
        result = verify(actual, expected, IntComparator())
        assert result.errors == 3
        assert [m[0] for m in result.mismatches] == [1, 4, 9]
        out = capsys.readouterr().out
        assert '*** error: [4] expected=0, actual=1' in out

    def test_reports_at_most_max_report(self, capsys):
        expected = np.zeros(250, np.float32)
        actual = np.ones(250, np.float32)
        result = verify(actual, expected)
        assert result.errors == 250
        assert len(result.mismatches) == 100
        lines = [line for line in capsys.readouterr().out.splitlines() if line.startswith('*** error')]
        assert len(lines) == 100
        assert lines[0] == '*** error: [0] expected=0.000000, actual=1.000000'

    def test_custom_max_report_and_quiet(self, capsys):
        result = verify(np.ones(5, np.int32), np.zeros(5, np.int32), max_report=2, verbose=False)
        assert result.errors == 5
        assert len(result.mismatches) == 2
        assert capsys.readouterr().out == ''

    def test_float_tolerance(self):
        expected = np.array([1.0, 2.0], np.float32)
        actual = (expected.view(np.int32) + np.array([6, 7], np.int32)).view(np.float32)
        result = verify(actual, expected, FloatComparator(ulp=6), verbose=False)
        assert result.errors == 1
        assert result.mismatches[0][0] == 1

    def test_flat_and_matrix_inputs(self):
        x = np.arange(6, dtype=np.int32)
        assert verify(x.reshape(2, 3), x).passed

    def test_size_mismatch(self):
        with pytest.raises(ValueError):
            verify(np.zeros(3, np.int32), np.zeros(4, np.int32))
