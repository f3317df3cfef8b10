"""
Base generator class with shared utilities.

This module provides the BaseGenerator class that contains common utilities
used across all specialized generator classes in the code generation pipeline.
"""

from typing import List, Optional, Tuple, TYPE_CHECKING

if TYPE_CHECKING:
    from .context import CodeGenerationContext

from ..errors import CompilationError
from ..parser.ast_nodes import ASTNode, NodeKind, call_args, call_receiver
from ..type_system import ADDRESS, BOOL, UINT256, StaticType, map_type, infer_name_type


# Global members with a fixed Solidity type
GLOBAL_MEMBER_TYPES = {
    ('msg', 'sender'): ADDRESS,
    ('msg', 'value'): UINT256,
    ('tx', 'origin'): ADDRESS,
    ('tx', 'gasprice'): UINT256,
    ('block', 'timestamp'): UINT256,
    ('block', 'number'): UINT256,
    ('block', 'coinbase'): ADDRESS,
    ('block', 'chainid'): UINT256,
}

COMPARISON_OPS = frozenset({'==', '!=', '<', '>', '<=', '>='})
LOGICAL_OPS = frozenset({'&&', '||'})
LENGTH_METHODS = frozenset({'length', 'size', 'count'})


class BaseGenerator:
    """
    Base class for all code generators.

    Provides shared utilities for:
    - Indentation management
    - Error reporting with source positions
    - Index chain and global access analysis
    - Literal-driven type defaulting
    """

    def __init__(self, ctx: 'CodeGenerationContext'):
        """
        Initialize the base generator.

        Args:
            ctx: The code generation context containing all state
        """
        self._ctx = ctx

    # =========================================================================
    # INDENTATION
    # =========================================================================

    def indent(self) -> str:
        """Return the current indentation string."""
        return self._ctx.indent()

    @property
    def indent_level(self) -> int:
        """Get the current indentation level."""
        return self._ctx.indent_level

    @indent_level.setter
    def indent_level(self, value: int):
        """Set the current indentation level."""
        self._ctx.indent_level = value

    # =========================================================================
    # ERRORS
    # =========================================================================

    def fail(self, message: str, node: Optional[ASTNode] = None) -> CompilationError:
        """Build a CompilationError that names the offending position."""
        if node is not None and node.line is not None:
            message = f'{message} at {node.position}'
        elif self._ctx.current_line is not None:
            message = f'{message} at line {self._ctx.current_line}'
        return CompilationError(message)

    # =========================================================================
    # EXPRESSION ANALYSIS
    # =========================================================================

    def _index_chain(self, node: ASTNode) -> Tuple[ASTNode, List[ASTNode]]:
        """Split a[x][y] into its root `a` and the keys [x, y]."""
        keys = []
        while node.kind == NodeKind.INDEX:
            keys.append(node.children[1])
            node = node.children[0]
        keys.reverse()
        return node, keys

    def _get_base_var_name(self, node: ASTNode) -> Optional[str]:
        """Extract the root variable name from an expression.

        For nested expressions like @a[x][y] or a.b, returns the root 'a'.
        """
        if node.kind in (NodeKind.IDENTIFIER, NodeKind.IVAR):
            return node.value
        if node.kind == NodeKind.INDEX:
            return self._get_base_var_name(node.children[0])
        if node.kind == NodeKind.METHOD_CALL:
            return self._get_base_var_name(node.children[0])
        return None

    def _global_member(self, node: ASTNode) -> Optional[Tuple[str, str]]:
        """Return ('msg', 'sender') for msg.sender and similar global accesses."""
        if node.kind != NodeKind.METHOD_CALL or call_args(node):
            return None
        receiver = call_receiver(node)
        if receiver.kind == NodeKind.IDENTIFIER and receiver.value in ('msg', 'block', 'tx') \
                and self._ctx.lookup_local(receiver.value) is None:
            return receiver.value, node.value
        return None

    def intrinsic_type(self, node: ASTNode) -> Optional[StaticType]:
        """
        Type a node from its own shape, without consulting locals.

        Literals map through the type mapper, globals have fixed types and
        bare identifiers fall back to the naming lexicon.
        """
        if node.kind in (NodeKind.LITERAL, NodeKind.ARRAY, NodeKind.HASH, NodeKind.SYMBOL):
            return map_type(node, self._ctx.enums)
        if node.kind == NodeKind.UNARY:
            if node.value == '!':
                return BOOL
            return map_type(node, self._ctx.enums) or UINT256
        if node.kind == NodeKind.SELF:
            return ADDRESS
        if node.kind == NodeKind.METHOD_CALL:
            member = self._global_member(node)
            if member is not None:
                return GLOBAL_MEMBER_TYPES.get(member)
            if node.value in ('nil?', 'zero?', 'empty?'):
                return BOOL
            if node.value in LENGTH_METHODS:
                return UINT256
            return None
        if node.kind == NodeKind.IDENTIFIER:
            return infer_name_type(node.value)
        if node.kind == NodeKind.BINARY:
            fallback = node.children[1]
            if node.value == '||' and fallback.kind == NodeKind.LITERAL \
                    and not isinstance(fallback.value, bool):
                return map_type(fallback, self._ctx.enums)
            if node.value in COMPARISON_OPS or node.value in LOGICAL_OPS:
                return BOOL
            return UINT256
        return None
