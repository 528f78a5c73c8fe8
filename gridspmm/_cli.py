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

"""CLI entry point for gridspmm.

Usage:
    gridspmm [-k kernel] [-m rows] [-n cols] [-s sparsity] [-h]
"""

import argparse
import sys
from typing import List, Optional

__all__ = ['main']

USAGE = 'Usage: [-k: kernel] [-m rows] [-n cols] [-s sparsity] [-h: help]'


class _UsageError(Exception):
    pass


class _Parser(argparse.ArgumentParser):
    def error(self, message):
        raise _UsageError(message)


def _build_parser() -> argparse.ArgumentParser:
    parser = _Parser(
        prog='gridspmm',
        description='Sparse (CSR) times dense matrix multiplication test.',
        add_help=False,
    )
    parser.add_argument('-m', type=int, default=32, dest='m', help='Rows of the sparse matrix A.')
    parser.add_argument('-n', type=int, default=32, dest='n', help='Columns of the dense matrix B.')
    parser.add_argument('-s', type=float, default=0.9, dest='sparsity', help='Sparsity of A in [0, 1).')
    parser.add_argument(
        '-k',
        default='spmm',
        dest='kernel',
        help="Kernel to upload, as 'name[:backend]' (e.g. spmm, spmm:jax).",
    )
    parser.add_argument('-h', action='store_true', default=False, dest='help', help='Show usage.')
    return parser


def show_usage():
    from gridspmm._registry import get_all_kernel_names, get_kernel

    print('gridspmm Sparse Matrix Multiplication Test.')
    print(USAGE)
    for name in get_all_kernel_names():
        backends = '|'.join(get_kernel(name).available_backends('cpu'))
        print(f'  -k {name}:{backends}' if backends else f'  -k {name}')


def main(argv: Optional[List[str]] = None) -> int:
    """Main CLI entry point.

    Args:
        argv: Command-line arguments (defaults to sys.argv[1:]).

    Returns:
        0 on success, the number of mismatching elements on a verification
        failure, and -1 on a usage or device error.
    """
    parser = _build_parser()
    try:
        args = parser.parse_args(argv)
    except _UsageError as e:
        print(f'Error: {e}', file=sys.stderr)
        show_usage()
        return -1

    if args.help:
        show_usage()
        return 0

    if args.m < 0 or args.n < 0 or not 0.0 <= args.sparsity < 1.0:
        print('Error: sizes must be non-negative and the sparsity must lie in [0, 1).', file=sys.stderr)
        show_usage()
        return -1

    from gridspmm._harness import run_spmm_test
    return run_spmm_test(args.m, args.n, sparsity=args.sparsity, kernel=args.kernel)


if __name__ == '__main__':
    sys.exit(main())
