"""
Command-line interface.

Usage:
    solidrail compile contracts/token.rb -o build/Token.sol
    solidrail compile contracts/ --no-optimize
    solidrail parse contracts/token.rb
    solidrail validate contracts/token.rb
    solidrail version
"""

import argparse
import sys
from dataclasses import replace
from pathlib import Path
from typing import List, Optional

from . import __version__
from .compiler import CompileResult, Compiler
from .config import get_configuration
from .errors import CompilationError, ParseError
from .parser import parse
from .validator import validate_source


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog='solidrail', description='Ruby to Solidity Transpiler')
    commands = parser.add_subparsers(dest='command')

    compile_cmd = commands.add_parser('compile', help='Compile a Ruby contract to Solidity')
    compile_cmd.add_argument('input', help='Input Ruby file or directory')
    compile_cmd.add_argument('-o', '--output', help='Output file (or directory for directory input)')
    compile_cmd.add_argument('--stdout', action='store_true',
                             help='Print to stdout instead of file (single file input only)')
    compile_cmd.add_argument('--solidity-version', metavar='VERSION',
                             help='Version constraint for the pragma, e.g. ^0.8.20')
    compile_cmd.add_argument('--no-optimize', action='store_true', help='Skip all optimizer passes')
    compile_cmd.add_argument('--no-gas', action='store_true', help='Skip storage layout packing')
    compile_cmd.add_argument('--no-security', action='store_true',
                             help='Skip SafeMath and reentrancy ordering')
    compile_cmd.add_argument('-j', '--jobs', type=int, default=None,
                             help='Parallel workers for directory input')

    parse_cmd = commands.add_parser('parse', help='Print the syntax tree of a Ruby file')
    parse_cmd.add_argument('input', help='Input Ruby file')

    validate_cmd = commands.add_parser('validate', help='Check a Ruby file for forbidden constructs')
    validate_cmd.add_argument('input', help='Input Ruby file')

    commands.add_parser('version', help='Print the version')
    return parser


def _configuration(args):
    changes = {}
    if args.solidity_version:
        changes['solidity_version'] = args.solidity_version
    if args.no_optimize:
        changes['optimization_enabled'] = False
    if args.no_gas:
        changes['gas_optimization'] = False
    if args.no_security:
        changes['security_checks'] = False
    return replace(get_configuration(), **changes)


def _print_warnings(result: CompileResult, label: str = '') -> None:
    for warning in result.warnings:
        prefix = f'{label}: ' if label else ''
        print(f'{prefix}{warning}', file=sys.stderr)


def _compile(args) -> int:
    compiler = Compiler(_configuration(args))
    input_path = Path(args.input)

    if input_path.is_dir():
        if args.stdout:
            print('Error: --stdout needs a single input file', file=sys.stderr)
            return 1
        sources = sorted(input_path.rglob('*.rb'))
        results = compiler.compile_many(sources, max_workers=args.jobs, output_dir=args.output, root=input_path)
        failed = False
        for path in sorted(results):
            result = results[path]
            if isinstance(result, Exception):
                print(f'Error: {path}: {result}', file=sys.stderr)
                failed = True
            else:
                _print_warnings(result, path)
                print(f'Compiled: {path}')
        return 1 if failed else 0

    if not input_path.is_file():
        print(f'Error: {args.input} is not a valid file or directory', file=sys.stderr)
        return 1

    try:
        if args.stdout:
            result = compiler.compile(input_path.read_text(encoding='utf-8'))
            print(result.code, end='')
        else:
            output_path = Path(args.output) if args.output else input_path.with_suffix('.sol')
            result = compiler.compile_file(input_path, output_path)
            print(f'Written: {output_path}')
    except (CompilationError, ParseError) as e:
        print(f'Error: {e}', file=sys.stderr)
        return 1
    _print_warnings(result)
    return 0


def _parse(args) -> int:
    try:
        ast = parse(Path(args.input).read_text(encoding='utf-8'))
    except ParseError as e:
        print(f'Error: {e}', file=sys.stderr)
        return 1
    print(ast.pretty())
    return 0


def _validate(args) -> int:
    findings = validate_source(Path(args.input).read_text(encoding='utf-8'))
    for finding in findings:
        print(finding)
    if not findings:
        print('No issues found.')
    return 1 if any(finding.is_error for finding in findings) else 0


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command == 'compile':
        return _compile(args)
    if args.command == 'parse':
        return _parse(args)
    if args.command == 'validate':
        return _validate(args)
    if args.command == 'version':
        print(f'solidrail {__version__}')
        return 0
    parser.print_help()
    return 1


if __name__ == '__main__':
    sys.exit(main())
