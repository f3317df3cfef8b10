"""
Arithmetic safety for pre-0.8 compilers.

Solidity 0.8 checks integer overflow by default. When the pragma allows an
older compiler, compound assignments to unsigned state variables are
rewritten to SafeMath calls and the library is imported and attached once.
"""

import re
from typing import List, Optional, Tuple

from .declarations import CONTRACT_HEADER_PATTERN, PRAGMA_PATTERN, state_variables
from ..codegen.diagnostics import TranspilerDiagnostics

SAFE_MATH_IMPORT = 'import "@openzeppelin/contracts/utils/math/SafeMath.sol";'
USING_SAFE_MATH = 'using SafeMath for uint256;'

SAFE_MATH_METHODS = {
    '+': 'add',
    '-': 'sub',
    '*': 'mul',
    '/': 'div',
    '%': 'mod',
}

COMPOUND_PATTERN = re.compile(
    r'^(?P<indent>[ \t]+)(?P<target>(?P<root>[A-Za-z_]\w*)(?:\[[^;]*\])*) (?P<op>[-+*/%])= (?P<value>.+);$'
)
STEP_PATTERN = re.compile(r'^(?P<indent>[ \t]+)(?P<target>(?P<root>[A-Za-z_]\w*)(?:\[[^;]*\])*)(?P<op>\+\+|--);$')
VERSION_PATTERN = re.compile(r'(\d+)\.(\d+)')
UNSIGNED_VALUE_PATTERN = re.compile(r'\buint\d*\)*(?:\[\])*$')


def minimum_version(code: str) -> Optional[Tuple[int, int]]:
    """Lowest (major, minor) compiler version the pragma allows, if any."""
    for line in code.split('\n'):
        match = PRAGMA_PATTERN.match(line.strip())
        if match is not None:
            version = VERSION_PATTERN.search(match.group('constraint'))
            if version is not None:
                return int(version.group(1)), int(version.group(2))
    return None


def has_checked_arithmetic(code: str) -> bool:
    version = minimum_version(code)
    return version is None or version >= (0, 8)


class SafeMathPass:
    """Security pass: SafeMath for state arithmetic below Solidity 0.8."""

    name = 'arithmetic'

    def __init__(self, diagnostics: Optional[TranspilerDiagnostics] = None):
        self._diagnostics = diagnostics

    def apply(self, code: str) -> str:
        if has_checked_arithmetic(code):
            return code

        lines = code.split('\n')
        unsigned = {
            name for name, type_text in state_variables(lines).items()
            if UNSIGNED_VALUE_PATTERN.search(type_text)
        }

        rewritten: List[str] = []
        changed_contracts = set()
        contract_index = None
        for line in lines:
            if CONTRACT_HEADER_PATTERN.match(line):
                contract_index = len(rewritten)
            new_line = self._rewrite(line, unsigned)
            if new_line != line and contract_index is not None:
                changed_contracts.add(contract_index)
            rewritten.append(new_line)

        if not changed_contracts:
            return code

        # Attach the library right after each affected contract header
        for header_index in sorted(changed_contracts, reverse=True):
            if rewritten[header_index + 1].strip() == USING_SAFE_MATH:
                continue
            member_indent = self._member_indent(rewritten, header_index)
            insert = [f'{member_indent}{USING_SAFE_MATH}']
            if rewritten[header_index + 1].strip() != '}':
                insert.append('')
            rewritten[header_index + 1:header_index + 1] = insert

        if SAFE_MATH_IMPORT not in rewritten:
            self._add_import(rewritten)
        if self._diagnostics is not None:
            self._diagnostics.info_safe_math()
        return '\n'.join(rewritten)

    @staticmethod
    def _rewrite(line: str, unsigned) -> str:
        match = COMPOUND_PATTERN.match(line)
        if match is not None and match.group('root') in unsigned:
            method = SAFE_MATH_METHODS[match.group('op')]
            target = match.group('target')
            return f'{match.group("indent")}{target} = {target}.{method}({match.group("value")});'
        match = STEP_PATTERN.match(line)
        if match is not None and match.group('root') in unsigned:
            method = 'add' if match.group('op') == '++' else 'sub'
            target = match.group('target')
            return f'{match.group("indent")}{target} = {target}.{method}(1);'
        return line

    @staticmethod
    def _member_indent(lines: List[str], header_index: int) -> str:
        header = lines[header_index]
        return header[:len(header) - len(header.lstrip())] + '    '

    @staticmethod
    def _add_import(lines: List[str]) -> None:
        """Insert the import into the import block, creating one if needed."""
        for index, line in enumerate(lines):
            if PRAGMA_PATTERN.match(line.strip()):
                block_start = index + 2
                if block_start < len(lines) and lines[block_start].startswith('import '):
                    lines.insert(block_start, SAFE_MATH_IMPORT)
                else:
                    lines[index + 1:index + 1] = ['', SAFE_MATH_IMPORT]
                return
        lines.insert(0, SAFE_MATH_IMPORT)
