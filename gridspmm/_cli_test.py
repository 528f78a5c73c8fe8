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

import pytest

from gridspmm._cli import USAGE, _build_parser, main
from gridspmm.config import ELEMENT_TYPE_ENV, set_element_type


@pytest.fixture(autouse=True)
def reset_element_type(monkeypatch):
    monkeypatch.delenv(ELEMENT_TYPE_ENV, raising=False)
    set_element_type(None)
    yield
    set_element_type(None)


class TestBuildParser:
    def test_defaults(self):
        args = _build_parser().parse_args([])
        assert args.m == 32
        assert args.n == 32
        assert args.sparsity == 0.9
        assert args.kernel == 'spmm'
        assert args.help is False

    def test_all_flags(self):
        args = _build_parser().parse_args(['-m', '8', '-n', '4', '-s', '0.25', '-k', 'spmm:jax'])
        assert (args.m, args.n, args.sparsity, args.kernel) == (8, 4, 0.25, 'spmm:jax')


class TestMainEntryPoint:
    def test_help(self, capsys):
        assert main(['-h']) == 0
        out = capsys.readouterr().out
        assert USAGE in out
        assert 'PASSED!' not in out

    def test_help_lists_kernels(self, capsys):
        assert main(['-h']) == 0
        assert '  -k spmm:numba|jax' in capsys.readouterr().out.splitlines()

    def test_unknown_flag(self, capsys):
        assert main(['-x']) == -1
        assert USAGE in capsys.readouterr().out

    def test_bad_value(self):
        assert main(['-m', 'abc']) == -1

    @pytest.mark.parametrize('sparsity', ['-0.5', '1.0', '2'])
    def test_bad_sparsity(self, sparsity):
        assert main(['-s', sparsity]) == -1

    def test_negative_size(self):
        assert main(['-n', '-3']) == -1

    def test_run(self, capsys):
        assert main(['-m', '8', '-n', '8', '-s', '0.5']) == 0
        assert 'PASSED!' in capsys.readouterr().out

    def test_run_jax_backend(self, capsys):
        assert main(['-m', '4', '-n', '6', '-k', 'spmm:jax']) == 0
        assert 'start device (spmm:jax)' in capsys.readouterr().out

    def test_unknown_kernel(self):
        assert main(['-k', 'no_such_kernel', '-m', '4', '-n', '4']) == -1

    def test_invalid_element_type(self, monkeypatch, capsys):
        monkeypatch.setenv(ELEMENT_TYPE_ENV, 'float64')
        assert main(['-m', '4', '-n', '4']) == -1
        assert 'Error:' in capsys.readouterr().out
