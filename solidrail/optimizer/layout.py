"""
Storage layout packing.

Reorders each contiguous block of state variable declarations so that
narrow types share 32-byte storage slots. Constants take no storage and
keep their place at the head of the block.
"""

from typing import Iterable, List

from .declarations import ENUM_PATTERN, StateVariableLine, parse_state_variable
from ..type_system import storage_width_of

SLOT_SIZE = 32


def pack_declarations(
    declarations: List[StateVariableLine],
    enum_names: Iterable[str] = (),
) -> List[StateVariableLine]:
    """
    First-fit-decreasing bin packing of declarations into storage slots.

    The sort is stable, so declarations of equal width keep their relative
    order and packing an already packed block changes nothing.
    """
    enum_names = frozenset(enum_names)
    ordered = sorted(declarations, key=lambda decl: -storage_width_of(decl.type_text, enum_names))
    slots: List[List[StateVariableLine]] = []
    remaining: List[int] = []
    for decl in ordered:
        width = min(storage_width_of(decl.type_text, enum_names), SLOT_SIZE)
        for slot_index, free in enumerate(remaining):
            if width <= free:
                slots[slot_index].append(decl)
                remaining[slot_index] -= width
                break
        else:
            slots.append([decl])
            remaining.append(SLOT_SIZE - width)
    return [decl for slot in slots for decl in slot]


class StorageLayoutPass:
    """Gas pass: pack state variables by storage width."""

    name = 'layout'

    def apply(self, code: str) -> str:
        lines = code.split('\n')
        enum_names = {match.group('name') for match in map(ENUM_PATTERN.match, lines) if match}
        output: List[str] = []
        index = 0
        while index < len(lines):
            if parse_state_variable(lines[index]) is None:
                output.append(lines[index])
                index += 1
                continue
            block = []
            while index < len(lines):
                declaration = parse_state_variable(lines[index], index)
                if declaration is None:
                    break
                block.append(declaration)
                index += 1
            constants = [decl for decl in block if decl.constant]
            variables = pack_declarations([decl for decl in block if not decl.constant], enum_names)
            output.extend(lines[decl.index] for decl in constants + variables)
        return '\n'.join(output)
