"""
Line-level recognition of generated Solidity.

The optimizer passes rewrite rendered source text; this module holds the
patterns they share for state variable declarations, contract headers and
function headers.
"""

import re
from dataclasses import dataclass
from typing import Dict, List, Optional

STATE_VARIABLE_PATTERN = re.compile(
    r'^(?P<indent>[ \t]+)(?P<type>\S.*?) (?P<visibility>public|private|internal)'
    r'(?P<constant> constant)? (?P<name>[A-Za-z_]\w*)(?: = .+)?;$'
)
CONTRACT_HEADER_PATTERN = re.compile(r'^(?:abstract )?contract (?P<name>\w+)\b.*\{$')
FUNCTION_HEADER_PATTERN = re.compile(r'^(?P<indent>[ \t]*)(?:function (?P<name>\w+)|constructor)\(.*\{$')
PRAGMA_PATTERN = re.compile(r'^pragma solidity (?P<constraint>[^;]+);$')
ENUM_PATTERN = re.compile(r'^[ \t]*enum (?P<name>\w+) \{')


@dataclass
class StateVariableLine:
    index: int
    name: str
    type_text: str
    constant: bool


def parse_state_variable(line: str, index: int = 0) -> Optional[StateVariableLine]:
    match = STATE_VARIABLE_PATTERN.match(line)
    if match is None or match.group('type').startswith(('function ', 'event ', 'return')):
        return None
    return StateVariableLine(index, match.group('name'), match.group('type'), bool(match.group('constant')))


def state_variables(lines: List[str]) -> Dict[str, str]:
    """Map every declared state variable name to its type text."""
    found = {}
    for index, line in enumerate(lines):
        declaration = parse_state_variable(line, index)
        if declaration is not None:
            found[declaration.name] = declaration.type_text
    return found


def statement_groups(body: List[str], indent: str) -> List[List[str]]:
    """
    Split function body lines into top-level statements.

    A statement starts at a line with exactly the body indentation and
    extends over deeper lines and the closing braces of its own blocks.
    """
    groups: List[List[str]] = []
    for line in body:
        starts_statement = line.startswith(indent) and not line[len(indent):].startswith((' ', '\t', '}'))
        if starts_statement or not groups:
            groups.append([line])
        else:
            groups[-1].append(line)
    return groups


def function_spans(lines: List[str]):
    """
    Yield (name, header index, closing index) for every function and
    constructor in the rendered source.
    """
    for index, line in enumerate(lines):
        match = FUNCTION_HEADER_PATTERN.match(line)
        if match is None:
            continue
        closing = f'{match.group("indent")}}}'
        end = index + 1
        while end < len(lines) and lines[end] != closing:
            end += 1
        yield match.group('name') or 'constructor', index, end
