"""
Type mappings and conversion utilities for Ruby to Solidity.

This module contains the StaticType model and the pure lookup functions that
turn Ruby values, literals and type names into Solidity types, visibility and
state mutability, plus the naming helpers shared by the code generator.
"""

from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional

from ..parser.ast_nodes import ASTNode, NodeKind


# =============================================================================
# STATIC TYPES
# =============================================================================

@dataclass(frozen=True)
class StaticType:
    """A Solidity type: elementary, array, mapping or enum."""
    name: str
    element: Optional['StaticType'] = None
    key: Optional['StaticType'] = None
    value: Optional['StaticType'] = None
    is_enum: bool = False

    @property
    def is_array(self) -> bool:
        return self.element is not None

    @property
    def is_mapping(self) -> bool:
        return self.key is not None

    @property
    def is_reference(self) -> bool:
        """Whether a local or parameter of this type needs a data location."""
        return self.is_array or self.name in ('string', 'bytes')

    @property
    def is_integer(self) -> bool:
        return not self.is_array and not self.is_mapping and self.name.startswith(('uint', 'int'))

    @property
    def storage_width(self) -> int:
        if self.is_enum:
            return 1
        return storage_width_of(self.render())

    def render(self) -> str:
        if self.is_mapping:
            return f'mapping({self.key.render()} => {self.value.render()})'
        if self.is_array:
            return f'{self.element.render()}[]'
        return self.name

    def __str__(self) -> str:
        return self.render()


UINT256 = StaticType('uint256')
INT256 = StaticType('int256')
STRING = StaticType('string')
ADDRESS = StaticType('address')
BOOL = StaticType('bool')


def array_of(element: StaticType) -> StaticType:
    return StaticType('array', element=element)


def mapping_of(key: StaticType, value: StaticType) -> StaticType:
    return StaticType('mapping', key=key, value=value)


def enum_type(name: str) -> StaticType:
    return StaticType(name, is_enum=True)


DEFAULT_ARRAY = array_of(UINT256)
DEFAULT_MAPPING = mapping_of(ADDRESS, UINT256)


# =============================================================================
# TYPE MAPPING CONSTANTS
# =============================================================================

# Ruby type names to Solidity types (None: no Solidity counterpart)
RUBY_TO_SOLIDITY_MAP: Dict[str, Optional[StaticType]] = {
    'Integer': UINT256,
    'String': STRING,
    'Array': DEFAULT_ARRAY,
    'Hash': DEFAULT_MAPPING,
    'Symbol': STRING,
    'TrueClass': BOOL,
    'FalseClass': BOOL,
    'Boolean': BOOL,
    'NilClass': None,
    'Float': None,
}

VISIBILITY_MAP = {
    'public': 'public',
    'private': 'private',
    'protected': 'internal',
    'internal': 'internal',
}

# Checked in order: the first marker found wins
MUTABILITY_PRECEDENCE = ('pure', 'view', 'payable')

STRING_NAMES = frozenset({
    'name', 'symbol', 'title', 'description', 'uri', 'url', 'message', 'label',
    'text', 'memo', 'reason', 'note', 'tag', 'token_uri', 'base_uri',
})
ADDRESS_NAMES = frozenset({
    'owner', 'to', 'from', 'spender', 'recipient', 'sender', 'account', 'admin',
    'operator', 'beneficiary', 'receiver', 'holder', 'minter', 'user', 'addr',
    'new_owner', 'wallet',
})
BOOL_NAMES = frozenset({'paused', 'enabled', 'active', 'approved', 'locked', 'finalized', 'flag'})
BOOL_PREFIXES = ('is_', 'has_', 'can_', 'should_')

# Default values rendered as Solidity expressions
ZERO_VALUES = {
    'bool': 'false',
    'string': '""',
    'address': 'address(0)',
    'bytes': '""',
}

# Identifiers that cannot be used as Solidity names
SOLIDITY_RESERVED = frozenset({
    'abstract', 'address', 'after', 'alias', 'anonymous', 'apply', 'assembly',
    'assert', 'auto', 'block', 'bool', 'break', 'byte', 'bytes', 'calldata',
    'case', 'catch', 'constant', 'constructor', 'continue', 'contract',
    'copyof', 'days', 'default', 'define', 'delete', 'do', 'else', 'emit',
    'enum', 'error', 'ether', 'event', 'external', 'fallback', 'false',
    'final', 'for', 'function', 'gwei', 'hours', 'if', 'immutable',
    'implements', 'import', 'in', 'indexed', 'inline', 'int', 'int256',
    'interface', 'internal', 'is', 'let', 'library', 'macro', 'mapping',
    'match', 'memory', 'minutes', 'modifier', 'msg', 'mutable', 'new', 'null',
    'of', 'override', 'partial', 'payable', 'pragma', 'private', 'promise',
    'public', 'pure', 'receive', 'reference', 'relocatable', 'require',
    'return', 'returns', 'revert', 'sealed', 'seconds', 'selfdestruct',
    'sizeof', 'static', 'storage', 'string', 'struct', 'super', 'supports',
    'switch', 'this', 'throw', 'true', 'try', 'tx', 'type', 'typedef',
    'typeof', 'uint', 'uint256', 'unchecked', 'using', 'var', 'view',
    'virtual', 'weeks', 'wei', 'while', 'years',
})


# =============================================================================
# TYPE CONVERSION FUNCTIONS
# =============================================================================

def map_type(value: Any, enums: Optional[Dict[str, List[str]]] = None) -> Optional[StaticType]:
    """
    Map a Ruby value, literal node or type name to a Solidity type.

    Args:
        value: An AST literal/collection node, a Ruby type name such as
            'Integer', or a plain Python value
        enums: Known enums as {enum name: [member symbols]}; symbols that are
            members map to the enum type

    Returns:
        The StaticType, or None when the value has no Solidity counterpart
        (nil and floats)
    """
    enums = enums or {}

    if isinstance(value, ASTNode):
        return _map_node(value, enums)

    if isinstance(value, str):
        if value in RUBY_TO_SOLIDITY_MAP:
            return RUBY_TO_SOLIDITY_MAP[value]
        return STRING

    # bool is a subclass of int, so it is checked first
    if isinstance(value, bool):
        return BOOL
    if isinstance(value, int):
        return INT256 if value < 0 else UINT256
    if isinstance(value, (list, tuple)):
        if not value:
            return DEFAULT_ARRAY
        element = map_type(value[0], enums)
        return array_of(element) if element is not None else None
    if isinstance(value, dict):
        if not value:
            return DEFAULT_MAPPING
        first_key, first_value = next(iter(value.items()))
        key, val = map_type(first_key, enums), map_type(first_value, enums)
        if key is None or val is None:
            return None
        return mapping_of(key, val)
    return None


def _map_node(node: ASTNode, enums: Dict[str, List[str]]) -> Optional[StaticType]:
    if node.kind == NodeKind.LITERAL:
        if isinstance(node.value, float) or node.value is None:
            return None
        return map_type(node.value, enums)
    if node.kind == NodeKind.UNARY and node.value == '-' and node.children[0].kind == NodeKind.LITERAL:
        inner = node.children[0].value
        if isinstance(inner, int) and not isinstance(inner, bool):
            return INT256
        return None
    if node.kind == NodeKind.INTERPOLATED_STRING:
        return STRING
    if node.kind == NodeKind.SYMBOL:
        for enum_name, members in enums.items():
            if node.value in members:
                return enum_type(enum_name)
        return STRING
    if node.kind == NodeKind.ARRAY:
        if not node.children:
            return DEFAULT_ARRAY
        element = _map_node(node.children[0], enums)
        return array_of(element) if element is not None else None
    if node.kind == NodeKind.HASH:
        if not node.children:
            return DEFAULT_MAPPING
        key_node, value_node = node.children[0].children
        key, val = _map_node(key_node, enums), _map_node(value_node, enums)
        if key is None or val is None:
            return None
        return mapping_of(key, val)
    return None


def map_visibility(source_visibility: Optional[str] = None) -> str:
    """Map a Ruby visibility keyword to Solidity; unspecified means public."""
    if not source_visibility:
        return 'public'
    return VISIBILITY_MAP.get(source_visibility, 'public')


def map_mutability(markers: Iterable[str]) -> str:
    """
    Map declared method markers to a Solidity state mutability.

    Returns:
        'pure', 'view' or 'payable', or '' for a state-mutating function
    """
    markers = set(markers or ())
    for mutability in MUTABILITY_PRECEDENCE:
        if mutability in markers:
            return mutability
    return ''


def infer_name_type(name: str) -> StaticType:
    """Guess a parameter type from its name when nothing else is known."""
    bare = name.lstrip('_').rstrip('?!')
    if bare in STRING_NAMES or bare.endswith('_name'):
        return STRING
    if bare in ADDRESS_NAMES or bare.endswith('_address') or bare.endswith('_addr'):
        return ADDRESS
    if bare in BOOL_NAMES or bare.startswith(BOOL_PREFIXES):
        return BOOL
    return UINT256


def zero_value(static_type: Optional[StaticType]) -> Optional[str]:
    """Return the Solidity default value expression for a type, if it has one."""
    if static_type is None or static_type.is_array or static_type.is_mapping:
        return None
    if static_type.is_integer:
        return '0'
    if static_type.is_enum:
        return f'{static_type.name}(0)'
    return ZERO_VALUES.get(static_type.name)


def storage_width_of(type_text: str, enum_names: Iterable[str] = ()) -> int:
    """
    Return the storage width in bytes of a rendered Solidity type.

    Dynamic types, mappings and unknown types occupy a full 32-byte slot;
    enums named in enum_names take one byte and other contract types are
    addresses.
    """
    type_text = type_text.strip()
    if type_text.endswith(']') or type_text.startswith('mapping') or type_text in ('string', 'bytes'):
        return 32
    if type_text == 'bool':
        return 1
    if type_text in ('address', 'address payable'):
        return 20
    for prefix in ('uint', 'int'):
        if type_text.startswith(prefix):
            bits = type_text[len(prefix):]
            return int(bits) // 8 if bits.isdigit() else 32
    if type_text.startswith('bytes') and type_text[5:].isdigit():
        return int(type_text[5:])
    if type_text in enum_names:
        return 1
    if type_text and type_text[0].isupper():
        return 20
    return 32


# =============================================================================
# NAMING
# =============================================================================

def to_camel_case(name: str) -> str:
    """
    Convert a Ruby method or variable name to Solidity camelCase.

    Leading underscores are kept; `paused?` becomes `isPaused`, `burn!`
    becomes `burn` and the setter `owner=` becomes `setOwner`.
    """
    prefix = name[:len(name) - len(name.lstrip('_'))]
    bare = name[len(prefix):]
    if bare.endswith('!'):
        bare = bare[:-1]
    elif bare.endswith('?'):
        bare = bare[:-1]
        if not bare.startswith(BOOL_PREFIXES):
            bare = 'is_' + bare
    elif bare.endswith('='):
        bare = 'set_' + bare[:-1]
    parts = [part for part in bare.split('_') if part]
    if not parts:
        return name
    return prefix + parts[0] + ''.join(part[:1].upper() + part[1:] for part in parts[1:])


def safe_identifier(name: str) -> str:
    """Append '_' to names that collide with Solidity reserved words."""
    if name in SOLIDITY_RESERVED:
        return name + '_'
    return name
