"""
Checks-effects-interactions ordering.

Within each function, mapping updates that follow the first external value
transfer or low-level call are moved in front of it when nothing between
them depends on the order or can leave the function early. Updates that
cannot be moved, including those nested in a conditional or loop, are
reported.
"""

import re
from typing import List, Optional, Set

from .declarations import function_spans, state_variables, statement_groups
from ..codegen.diagnostics import TranspilerDiagnostics

EXTERNAL_CALL_MARKERS = ('.transfer(', '.send(', '.call(', '.call{')

MUTATION_PATTERN = re.compile(
    r'^[ \t]*(?:delete (?P<deleted>[A-Za-z_]\w*)\[.*|'
    r'(?P<root>[A-Za-z_]\w*)\[[^;]*\] (?:[-+*/%]|\*\*)?= .+);$'
)
DECLARATION_PATTERN = re.compile(r'^[ \t]*(?:[A-Za-z_][\w.]*(?:\[\])*(?: memory| storage)? (?P<name>[A-Za-z_]\w*) = |'
                                 r'\((?P<names>[^)]*)\) = )')
WORD_PATTERN = re.compile(r'[A-Za-z_]\w*')
EXIT_PATTERN = re.compile(r'\b(?:return|break|continue)\b|\brevert\(')
STRING_PATTERN = re.compile(r'"(?:\\.|[^"\\])*"')


def is_external_call(group: List[str]) -> bool:
    text = '\n'.join(group)
    return any(marker in text for marker in EXTERNAL_CALL_MARKERS)


def mutated_mapping(group: List[str], mappings: Set[str]) -> Optional[str]:
    """Name of the mapping a single-line statement writes, or None."""
    if len(group) != 1:
        return None
    match = MUTATION_PATTERN.match(group[0])
    if match is None:
        return None
    name = match.group('deleted') or match.group('root')
    return name if name in mappings else None


def nested_mutations(group: List[str], mappings: Set[str]) -> List[str]:
    """Mappings written inside the blocks of a compound statement."""
    if len(group) == 1:
        return []
    names: List[str] = []
    for line in group[1:]:
        name = mutated_mapping([line], mappings)
        if name is not None and name not in names:
            names.append(name)
    return names


def exits_early(group: List[str]) -> bool:
    """True when the statement can leave the function or loop before its end."""
    return any(EXIT_PATTERN.search(STRING_PATTERN.sub('""', line)) for line in group)


def declared_names(group: List[str]) -> Set[str]:
    """Locals a statement declares, including tuple destructuring."""
    match = DECLARATION_PATTERN.match(group[0])
    if match is None:
        return set()
    if match.group('name'):
        return {match.group('name')}
    names = set()
    for part in match.group('names').split(','):
        words = part.split()
        if words:
            names.add(words[-1])
    return names


def words_in(group: List[str]) -> Set[str]:
    return set(WORD_PATTERN.findall('\n'.join(group)))


class ReentrancyPass:
    """Security pass: move mapping updates ahead of external calls."""

    name = 'reentrancy'

    def __init__(self, diagnostics: Optional[TranspilerDiagnostics] = None):
        self._diagnostics = diagnostics

    def apply(self, code: str) -> str:
        lines = code.split('\n')
        mappings = {
            name for name, type_text in state_variables(lines).items()
            if type_text.startswith('mapping(')
        }
        if not mappings:
            return code

        # Rewrite from the bottom so earlier spans keep their indices
        for function_name, header, closing in reversed(list(function_spans(lines))):
            body = lines[header + 1:closing]
            if not body:
                continue
            indent = body[0][:len(body[0]) - len(body[0].lstrip())]
            groups = statement_groups(body, indent)
            reordered = self._reorder(function_name, groups, mappings)
            if reordered is not None:
                lines[header + 1:closing] = [line for group in reordered for line in group]
        return '\n'.join(lines)

    def _reorder(self, function_name: str, groups: List[List[str]], mappings: Set[str]):
        """Return the reordered statement groups, or None when nothing moved."""
        first_call = next((index for index, group in enumerate(groups) if is_external_call(group)), None)
        if first_call is None:
            return None

        groups = list(groups)
        insert_at = first_call
        moved = False
        index = first_call + 1
        while index < len(groups):
            mapping = mutated_mapping(groups[index], mappings)
            if mapping is None:
                nested = nested_mutations(groups[index], mappings)
                if nested and self._diagnostics is not None:
                    self._diagnostics.warn_reentrancy(
                        function_name, f'the update of {", ".join(nested)} is inside a conditional or loop')
                index += 1
                continue
            reason = self._blocking_reason(groups[insert_at:index], groups[index], mapping)
            if reason is not None:
                if self._diagnostics is not None:
                    self._diagnostics.warn_reentrancy(function_name, reason)
                index += 1
                continue
            groups.insert(insert_at, groups.pop(index))
            insert_at += 1
            moved = True
            index += 1

        if moved and self._diagnostics is not None:
            self._diagnostics.info_reordered(function_name)
        return groups if moved else None

    @staticmethod
    def _blocking_reason(between: List[List[str]], mutation: List[str], mapping: str) -> Optional[str]:
        """Why `mutation` cannot move in front of the statements in `between`."""
        mutation_words = words_in(mutation)
        for group in between:
            if exits_early(group):
                return f'an intervening statement can return before {mapping} is updated'
            if mapping in words_in(group):
                if is_external_call(group):
                    return f'the external call reads {mapping}'
                return f'an intervening statement uses {mapping}'
            produced = declared_names(group) & mutation_words
            if produced:
                if is_external_call(group):
                    return f'the update of {mapping} uses the call result {", ".join(sorted(produced))}'
                return f'the update of {mapping} uses {", ".join(sorted(produced))} computed after the call'
        return None
