"""
AST node definitions for Ruby parsing.

Every node is an immutable ASTNode tagged with a NodeKind from a closed
set. Interior nodes own a dense tuple of children whose shape is fixed by the
kind; leaf nodes carry a literal value instead. Some interior kinds also use
``value`` as a tag (the operator of a BINARY node, the method name of a CALL).

Child shapes by kind:

    PROGRAM        top-level statements
    IMPORT         [LITERAL path]                      value: require | require_relative
    CLASS          [CONSTANT name, CONSTANT parent?, BODY]
    MODULE         [CONSTANT name, BODY]
    BODY           statements
    METHOD_DEF     [IDENTIFIER name, PARAMS, BODY, MARKER*]
    PARAMS         PARAM*
    PARAM          [IDENTIFIER name, default?]
    INCLUDE        [CONSTANT]
    ATTR           SYMBOL*                             value: attr_reader | attr_writer | attr_accessor
    ASSIGNMENT     [target, value]                     value: operator
    CALL           [ARGS, BLOCK?]                      value: method name
    METHOD_CALL    [receiver, ARGS, BLOCK?]            value: method name
    ARGS           expressions
    BLOCK          [BLOCK_PARAMS, BODY]
    BLOCK_PARAMS   IDENTIFIER*
    CONDITIONAL    (cond, BODY)+ BODY?                 value: if | unless
    LOOP           [subject, BLOCK_PARAMS, BODY]       value: each | each_with_index | for | times
                   [cond, BODY]                        value: while | until
    RETURN         [expr?]
    BINARY         [left, right]                       value: operator
    UNARY          [operand]                           value: operator
    TERNARY        [cond, then, else]
    INDEX          [base, index]
    ARRAY          elements
    HASH           PAIR*
    PAIR           [key, value]
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterator, List, Optional, Tuple


# =============================================================================
# NODE KINDS
# =============================================================================

class NodeKind(Enum):
    """Closed set of AST node kinds."""

    # Top-level and declarations
    PROGRAM = 'program'
    IMPORT = 'import'
    CLASS = 'class'
    MODULE = 'module'
    BODY = 'body'
    METHOD_DEF = 'method_def'
    PARAMS = 'params'
    PARAM = 'param'
    MARKER = 'marker'
    INCLUDE = 'include'
    ATTR = 'attr'

    # Statements
    ASSIGNMENT = 'assignment'
    CONDITIONAL = 'conditional'
    LOOP = 'loop'
    RETURN = 'return'
    BREAK = 'break'
    NEXT = 'next'

    # Calls
    CALL = 'call'
    METHOD_CALL = 'method_call'
    ARGS = 'args'
    BLOCK = 'block'
    BLOCK_PARAMS = 'block_params'

    # Expressions
    BINARY = 'binary'
    UNARY = 'unary'
    TERNARY = 'ternary'
    INDEX = 'index'
    ARRAY = 'array'
    HASH = 'hash'
    PAIR = 'pair'

    # Leaves
    LITERAL = 'literal'
    INTERPOLATED_STRING = 'interpolated_string'
    SYMBOL = 'symbol'
    IDENTIFIER = 'identifier'
    IVAR = 'ivar'
    CONSTANT = 'constant'
    SELF = 'self'


LEAF_KINDS = frozenset({
    NodeKind.MARKER,
    NodeKind.BREAK,
    NodeKind.NEXT,
    NodeKind.LITERAL,
    NodeKind.INTERPOLATED_STRING,
    NodeKind.SYMBOL,
    NodeKind.IDENTIFIER,
    NodeKind.IVAR,
    NodeKind.CONSTANT,
    NodeKind.SELF,
})


# =============================================================================
# NODE
# =============================================================================

@dataclass(frozen=True)
class ASTNode:
    """A single immutable node of the Ruby syntax tree."""
    kind: NodeKind
    children: Tuple['ASTNode', ...] = ()
    value: Any = None
    line: Optional[int] = None
    column: Optional[int] = None

    def __post_init__(self):
        if not isinstance(self.children, tuple):
            object.__setattr__(self, 'children', tuple(self.children))
        if any(child is None for child in self.children):
            raise ValueError(f'{self.kind.value} node has an empty child slot')
        if self.kind in LEAF_KINDS and self.children:
            raise ValueError(f'{self.kind.value} is a leaf kind and cannot have children')

    @property
    def is_leaf(self) -> bool:
        return self.kind in LEAF_KINDS

    def child(self, kind: NodeKind) -> Optional['ASTNode']:
        """Return the first direct child of the given kind, if any."""
        for child in self.children:
            if child.kind == kind:
                return child
        return None

    def children_of(self, kind: NodeKind) -> List['ASTNode']:
        """Return every direct child of the given kind."""
        return [child for child in self.children if child.kind == kind]

    def walk(self) -> Iterator['ASTNode']:
        """Yield this node and its descendants depth-first, pre-order."""
        stack = [self]
        while stack:
            node = stack.pop()
            yield node
            stack.extend(reversed(node.children))

    def find_nodes(self, kind: NodeKind) -> List['ASTNode']:
        """Return every node of the given kind in depth-first pre-order.

        Each call performs a fresh traversal, so the result can be requested
        repeatedly from any node of the tree.
        """
        return [node for node in self.walk() if node.kind == kind]

    @property
    def position(self) -> str:
        """Human-readable source position for diagnostics."""
        if self.line is None:
            return 'unknown position'
        return f'line {self.line}, column {self.column}'

    def pretty(self, indent: int = 0) -> str:
        """Render the subtree as an indented outline (used by the CLI)."""
        label = self.kind.value
        if self.value is not None:
            label += f' {self.value!r}'
        lines = ['  ' * indent + label]
        for child in self.children:
            lines.append(child.pretty(indent + 1))
        return '\n'.join(lines)


# =============================================================================
# SHAPE ACCESSORS
# =============================================================================

def class_name(node: ASTNode) -> Optional[str]:
    """Return the declared name of a CLASS or MODULE node."""
    first = node.children[0] if node.children else None
    if first is None or first.kind != NodeKind.CONSTANT or not first.value:
        return None
    return first.value


def class_parent(node: ASTNode) -> Optional[str]:
    """Return the superclass of a CLASS node, if declared."""
    if node.kind == NodeKind.CLASS and len(node.children) == 3:
        return node.children[1].value
    return None


def class_body(node: ASTNode) -> ASTNode:
    return node.children[-1]


def method_name(node: ASTNode) -> str:
    return node.children[0].value


def method_params(node: ASTNode) -> List[ASTNode]:
    return list(node.children[1].children)


def method_body(node: ASTNode) -> ASTNode:
    return node.children[2]


def method_markers(node: ASTNode) -> List[str]:
    return [marker.value for marker in node.children[3:]]


def param_name(node: ASTNode) -> str:
    return node.children[0].value


def param_default(node: ASTNode) -> Optional[ASTNode]:
    return node.children[1] if len(node.children) > 1 else None


def call_receiver(node: ASTNode) -> Optional[ASTNode]:
    if node.kind == NodeKind.METHOD_CALL:
        return node.children[0]
    return None


def call_args(node: ASTNode) -> List[ASTNode]:
    args = node.child(NodeKind.ARGS)
    return list(args.children) if args is not None else []


def call_block(node: ASTNode) -> Optional[ASTNode]:
    return node.child(NodeKind.BLOCK)


def conditional_branches(node: ASTNode) -> Tuple[List[Tuple[ASTNode, ASTNode]], Optional[ASTNode]]:
    """Split a CONDITIONAL into (condition, body) pairs and an else body."""
    children = list(node.children)
    otherwise = None
    if len(children) % 2 == 1:
        otherwise = children.pop()
    branches = [(children[i], children[i + 1]) for i in range(0, len(children), 2)]
    return branches, otherwise


def loop_parts(node: ASTNode) -> Tuple[ASTNode, List[str], ASTNode]:
    """Return (subject or condition, block parameter names, body) of a LOOP."""
    if len(node.children) == 3:
        subject, params, body = node.children
        return subject, [p.value for p in params.children], body
    condition, body = node.children
    return condition, [], body
