"""
Expression generation for Solidity code.

This module handles the translation of Ruby expressions (literals, variable
references, operators, calls, indexing) into Solidity expression text, and
the companion type inference used for local declarations and return types.
"""

from typing import Callable, Dict, List, Optional, TYPE_CHECKING

from .base import BaseGenerator, LENGTH_METHODS, COMPARISON_OPS
from ..parser.ast_nodes import ASTNode, NodeKind, call_args, call_block, call_receiver
from ..type_system import (
    ADDRESS, BOOL, INT256, STRING, UINT256, DEFAULT_ARRAY,
    StaticType, array_of, map_type, safe_identifier, to_camel_case, zero_value,
)

if TYPE_CHECKING:
    from .context import CodeGenerationContext


# Solidity operator precedence (higher binds tighter)
PRECEDENCE = {
    '||': 1,
    '&&': 2,
    '==': 3, '!=': 3,
    '<': 4, '>': 4, '<=': 4, '>=': 4,
    '|': 5,
    '^': 6,
    '&': 7,
    '<<': 8, '>>': 8,
    '+': 9, '-': 9,
    '*': 10, '/': 10, '%': 10,
    '**': 11,
}
ASSIGNMENT_PRECEDENCE = -1
TERNARY_PRECEDENCE = 0
UNARY_PRECEDENCE = 12
PRIMARY_PRECEDENCE = 13

# Builtins passed through unchanged when called without a receiver
SOLIDITY_BUILTINS = frozenset({
    'keccak256', 'sha256', 'ripemd160', 'ecrecover', 'address', 'payable',
    'blockhash', 'gasleft', 'assert', 'addmod', 'mulmod',
})

# Kernel methods that only make sense as statements
STATEMENT_ONLY_CALLS = frozenset({'emit', 'raise', 'puts', 'p', 'print', 'loop'})

VALUE_TRANSFER_METHODS = frozenset({'transfer', 'send'})


def enum_member(symbol: str) -> str:
    """Render a Ruby symbol as a Solidity enum member (`:pending_review` -> PendingReview)."""
    return ''.join(part[:1].upper() + part[1:] for part in symbol.split('_') if part)


def quote_string(value: str) -> str:
    escaped = (value.replace('\\', '\\\\').replace('"', '\\"')
               .replace('\n', '\\n').replace('\t', '\\t').replace('\r', '\\r'))
    return f'"{escaped}"'


class ExpressionGenerator(BaseGenerator):
    """
    Generates Solidity expressions from Ruby AST nodes.

    Every NodeKind has an entry in the dispatch table; kinds that cannot
    appear in expression position map to a handler that raises
    CompilationError.
    """

    def __init__(self, ctx: 'CodeGenerationContext'):
        super().__init__(ctx)
        self._handlers: Dict[NodeKind, Callable[[ASTNode], str]] = {
            NodeKind.LITERAL: self._generate_literal,
            NodeKind.INTERPOLATED_STRING: self._generate_interpolated_string,
            NodeKind.SYMBOL: self._generate_symbol,
            NodeKind.IDENTIFIER: self._generate_identifier,
            NodeKind.IVAR: self._generate_ivar,
            NodeKind.CONSTANT: self._generate_constant,
            NodeKind.SELF: self._generate_self,
            NodeKind.BINARY: self._generate_binary,
            NodeKind.UNARY: self._generate_unary,
            NodeKind.TERNARY: self._generate_ternary,
            NodeKind.INDEX: self._generate_index,
            NodeKind.ARRAY: self._generate_array,
            NodeKind.HASH: self._generate_hash,
            NodeKind.CALL: self._generate_call,
            NodeKind.METHOD_CALL: self._generate_method_call,
            NodeKind.ASSIGNMENT: self._generate_assignment,
            # Not expressions
            NodeKind.PROGRAM: self._generate_unsupported,
            NodeKind.IMPORT: self._generate_unsupported,
            NodeKind.CLASS: self._generate_unsupported,
            NodeKind.MODULE: self._generate_unsupported,
            NodeKind.BODY: self._generate_unsupported,
            NodeKind.METHOD_DEF: self._generate_unsupported,
            NodeKind.PARAMS: self._generate_unsupported,
            NodeKind.PARAM: self._generate_unsupported,
            NodeKind.MARKER: self._generate_unsupported,
            NodeKind.INCLUDE: self._generate_unsupported,
            NodeKind.ATTR: self._generate_unsupported,
            NodeKind.CONDITIONAL: self._generate_unsupported,
            NodeKind.LOOP: self._generate_unsupported,
            NodeKind.RETURN: self._generate_unsupported,
            NodeKind.BREAK: self._generate_unsupported,
            NodeKind.NEXT: self._generate_unsupported,
            NodeKind.ARGS: self._generate_unsupported,
            NodeKind.BLOCK: self._generate_unsupported,
            NodeKind.BLOCK_PARAMS: self._generate_unsupported,
            NodeKind.PAIR: self._generate_unsupported,
        }

    @property
    def handled_kinds(self):
        return frozenset(self._handlers)

    def generate(self, node: ASTNode) -> str:
        """
        Generate Solidity expression code.

        Args:
            node: The expression node to translate

        Returns:
            The Solidity expression text

        Raises:
            CompilationError: for constructs with no Solidity counterpart
        """
        return self._handlers[node.kind](node)

    def generate_arguments(self, nodes: List[ASTNode]) -> List[str]:
        for node in nodes:
            if node.kind == NodeKind.HASH:
                raise self.fail('Keyword arguments are not supported', node)
        return [self.generate(node) for node in nodes]

    # =========================================================================
    # PRECEDENCE
    # =========================================================================

    def precedence(self, node: ASTNode) -> int:
        if node.kind == NodeKind.BINARY:
            if self._is_zero_default(node):
                return self.precedence(node.children[0])
            if node.value == '<<' and self._is_array_append(node):
                return PRIMARY_PRECEDENCE
            if node.value in ('==', '!=') and self._is_string_comparison(node):
                return PRECEDENCE['==']
            if node.value == '+' and self._is_string_concat(node):
                return PRIMARY_PRECEDENCE
            return PRECEDENCE.get(node.value, PRIMARY_PRECEDENCE)
        if node.kind == NodeKind.TERNARY:
            return TERNARY_PRECEDENCE
        if node.kind == NodeKind.ASSIGNMENT:
            return ASSIGNMENT_PRECEDENCE
        if node.kind == NodeKind.UNARY:
            return UNARY_PRECEDENCE
        if node.kind == NodeKind.METHOD_CALL and node.value in ('nil?', 'zero?', 'empty?'):
            return PRECEDENCE['==']
        return PRIMARY_PRECEDENCE

    def generate_operand(self, node: ASTNode, parent_precedence: int, right_side: bool = False) -> str:
        """Generate a sub-expression, parenthesized when it binds looser than its parent."""
        text = self.generate(node)
        own = self.precedence(node)
        if own < parent_precedence or (right_side and own == parent_precedence):
            return f'({text})'
        return text

    # =========================================================================
    # LEAVES
    # =========================================================================

    def _generate_literal(self, node: ASTNode) -> str:
        value = node.value
        if value is None:
            raise self.fail('nil has no Solidity equivalent', node)
        if isinstance(value, bool):
            return 'true' if value else 'false'
        if isinstance(value, float):
            raise self.fail(f'Float literal {value} is not supported (use integer units)', node)
        if isinstance(value, int):
            return str(value)
        return quote_string(value)

    def _generate_interpolated_string(self, node: ASTNode) -> str:
        raise self.fail('String interpolation is not supported', node)

    def _generate_symbol(self, node: ASTNode) -> str:
        enum_name = self._ctx.enum_for_symbol(node.value)
        if enum_name is not None:
            return f'{enum_name}.{enum_member(node.value)}'
        return quote_string(node.value)

    def _generate_identifier(self, node: ASTNode) -> str:
        name = node.value
        local = self._ctx.lookup_local(name)
        if local is not None:
            return local[0]
        if name == 'super':
            return self._generate_super([], node)
        if name in self._ctx.methods:
            return f'{self._ctx.methods[name]}()'
        if safe_identifier(name) in self._ctx.state_vars:
            return safe_identifier(name)
        if name in ('msg', 'block', 'tx', 'abi'):
            return name
        self._ctx.diagnostics.warn_unsupported_construct(
            'unresolved identifier', f'"{name}" is not a local, field or method', line=node.line)
        return safe_identifier(to_camel_case(name))

    def _generate_ivar(self, node: ASTNode) -> str:
        return safe_identifier(node.value)

    def _generate_constant(self, node: ASTNode) -> str:
        return node.value.split('::')[-1]

    def _generate_self(self, node: ASTNode) -> str:
        return 'address(this)'

    def _generate_unsupported(self, node: ASTNode) -> str:
        raise self.fail(f'{node.kind.value} cannot be used as an expression', node)

    # =========================================================================
    # OPERATORS
    # =========================================================================

    def _is_zero_default(self, node: ASTNode) -> bool:
        """`a || 0`, `a || ""` and `a || false` collapse to `a`."""
        if node.value != '||':
            return False
        fallback = node.children[1]
        if fallback.kind != NodeKind.LITERAL or fallback.value is None or isinstance(fallback.value, float):
            return False
        left_type = self.infer_type(node.children[0])
        zero = zero_value(left_type if left_type is not None else map_type(fallback))
        return zero is not None and self._generate_literal(fallback) == zero

    def _is_array_append(self, node: ASTNode) -> bool:
        left_type = self.infer_type(node.children[0])
        return left_type is not None and left_type.is_array

    def _is_string_comparison(self, node: ASTNode) -> bool:
        return any(self.infer_type(child) == STRING for child in node.children)

    def _is_string_concat(self, node: ASTNode) -> bool:
        return self._is_string_comparison(node)

    def _generate_binary(self, node: ASTNode) -> str:
        left, right = node.children
        op = node.value

        if self._is_zero_default(node):
            return self.generate(left)
        if op == '<<' and self._is_array_append(node):
            return f'{self.generate_operand(left, PRIMARY_PRECEDENCE)}.push({self.generate(right)})'
        if op in ('==', '!=') and self._is_string_comparison(node):
            return (f'keccak256(bytes({self.generate(left)})) {op} '
                    f'keccak256(bytes({self.generate(right)}))')
        if op == '+' and self._is_string_concat(node):
            return f'string.concat({self.generate(left)}, {self.generate(right)})'

        precedence = PRECEDENCE[op]
        # ** is right-associative; everything else is left-associative
        left_text = self.generate_operand(left, precedence, right_side=(op == '**'))
        right_text = self.generate_operand(right, precedence, right_side=(op != '**'))
        return f'{left_text} {op} {right_text}'

    def _generate_unary(self, node: ASTNode) -> str:
        operand = self.generate_operand(node.children[0], UNARY_PRECEDENCE)
        return f'{node.value}{operand}'

    def _generate_ternary(self, node: ASTNode) -> str:
        condition, when_true, when_false = node.children
        return (f'{self.generate_operand(condition, TERNARY_PRECEDENCE, right_side=True)} ? '
                f'{self.generate_operand(when_true, TERNARY_PRECEDENCE)} : '
                f'{self.generate_operand(when_false, TERNARY_PRECEDENCE)}')

    def negate(self, node: ASTNode) -> str:
        """Render `!(cond)`, used for unless and until."""
        if node.kind == NodeKind.UNARY and node.value == '!':
            return self.generate(node.children[0])
        return f'!{self.generate_operand(node, UNARY_PRECEDENCE)}'

    def _generate_assignment(self, node: ASTNode) -> str:
        target, value = node.children
        op = node.value
        if op == '||=':
            raise self.fail('Conditional assignment (||=) is not supported', node)
        if op == '**=':
            target_text = self.generate(target)
            return f'{target_text} = {target_text} ** {self.generate_operand(value, PRECEDENCE["**"], True)}'
        return f'{self.generate(target)} {op} {self.generate(value)}'

    # =========================================================================
    # COLLECTIONS
    # =========================================================================

    def _generate_index(self, node: ASTNode) -> str:
        base, index = node.children
        return f'{self.generate_operand(base, PRIMARY_PRECEDENCE)}[{self.generate(index)}]'

    def _generate_array(self, node: ASTNode) -> str:
        if not node.children:
            return f'new {DEFAULT_ARRAY.render()}(0)'
        raise self.fail('Array literals are only supported as state variable initializers', node)

    def _generate_hash(self, node: ASTNode) -> str:
        raise self.fail('Hash literals are only supported as empty state variable initializers', node)

    # =========================================================================
    # CALLS
    # =========================================================================

    def _generate_super(self, args: List[str], node: ASTNode) -> str:
        method = self._ctx.current_method
        if not args and node.kind == NodeKind.IDENTIFIER:
            # Bare super forwards the current method's arguments
            args = list(self._ctx.current_parameters)
        return f'super.{self._ctx.methods.get(method, to_camel_case(method))}({", ".join(args)})'

    def _generate_call(self, node: ASTNode) -> str:
        name = node.value
        if call_block(node) is not None:
            raise self.fail(f'Blocks passed to {name} are not supported', node)
        args = self.generate_arguments(call_args(node))

        if name in STATEMENT_ONLY_CALLS:
            raise self.fail(f'{name} cannot be used as an expression', node)
        if name == 'require':
            if len(args) == 2:
                return f'require({args[0]}, {args[1]})'
            return f'require({", ".join(args)})'
        if name == 'super':
            return self._generate_super(args, node)
        if name in self._ctx.methods:
            return f'{self._ctx.methods[name]}({", ".join(args)})'
        if name[0].isupper() or name in SOLIDITY_BUILTINS:
            return f'{name}({", ".join(args)})'
        return f'{safe_identifier(to_camel_case(name))}({", ".join(args)})'

    def _generate_method_call(self, node: ASTNode) -> str:
        name = node.value
        receiver = call_receiver(node)
        if call_block(node) is not None:
            raise self.fail(f'Blocks passed to .{name} are not supported', node)
        arg_nodes = call_args(node)
        args = self.generate_arguments(arg_nodes)

        member = self._global_member(node)
        if member is not None:
            return f'{member[0]}.{member[1]}'

        if receiver.kind == NodeKind.SELF:
            if name in self._ctx.methods:
                return f'{self._ctx.methods[name]}({", ".join(args)})'
            if not args and safe_identifier(name) in self._ctx.state_vars:
                return safe_identifier(name)

        if receiver.kind == NodeKind.CONSTANT and name == 'new':
            return f'new {self.generate(receiver)}({", ".join(args)})'

        receiver_text = self.generate_operand(receiver, PRIMARY_PRECEDENCE)

        if name in LENGTH_METHODS and not args:
            if receiver_text in self._ctx.length_cache:
                return self._ctx.length_cache[receiver_text]
            if self.infer_type(receiver) == STRING:
                return f'bytes({receiver_text}).length'
            return f'{receiver_text}.length'
        if name == 'push' or name == 'append':
            return f'{receiver_text}.push({", ".join(args)})'
        if name in VALUE_TRANSFER_METHODS and len(args) == 1:
            return f'payable({self.generate(receiver)}).transfer({args[0]})'
        if name in ('nil?', 'zero?') and not args:
            zero = zero_value(self.infer_type(receiver)) or '0'
            return f'{self.generate_operand(receiver, PRECEDENCE["=="])} == {zero}'
        if name == 'empty?' and not args:
            if self.infer_type(receiver) == STRING:
                return f'bytes({self.generate(receiver)}).length == 0'
            return f'{receiver_text}.length == 0'
        if name in ('to_i', 'to_s', 'to_a') and not args:
            raise self.fail(f'Conversion .{name} is not supported', node)
        return f'{receiver_text}.{safe_identifier(to_camel_case(name))}({", ".join(args)})'

    # =========================================================================
    # TYPE INFERENCE
    # =========================================================================

    def infer_type(self, node: ASTNode) -> Optional[StaticType]:
        """
        Infer the Solidity type of an expression.

        Returns None when the expression has no value type (nil, floats,
        pushes) or nothing can be said about it.
        """
        kind = node.kind
        if kind == NodeKind.IDENTIFIER:
            local = self._ctx.lookup_local(node.value)
            if local is not None:
                return local[1]
            if node.value in self._ctx.methods:
                return self._ctx.method_return_types.get(node.value)
            field_type = self._ctx.state_vars.get(safe_identifier(node.value))
            if field_type is not None:
                return field_type
            return self.intrinsic_type(node)
        if kind == NodeKind.IVAR:
            return self._ctx.state_vars.get(safe_identifier(node.value), UINT256)
        if kind == NodeKind.INDEX:
            base_type = self.infer_type(node.children[0])
            if base_type is None:
                return None
            if base_type.is_mapping:
                return base_type.value
            if base_type.is_array:
                return base_type.element
            return None
        if kind == NodeKind.CALL:
            if node.value in self._ctx.methods:
                return self._ctx.method_return_types.get(node.value)
            if node.value == 'address':
                return ADDRESS
            if node.value in ('keccak256', 'sha256'):
                return StaticType('bytes32')
            return None
        if kind == NodeKind.METHOD_CALL:
            receiver = call_receiver(node)
            if receiver.kind == NodeKind.SELF and node.value in self._ctx.methods:
                return self._ctx.method_return_types.get(node.value)
            if receiver.kind == NodeKind.CONSTANT and node.value == 'new':
                return StaticType(self.generate(receiver))
            if node.value in ('push', 'append', 'transfer', 'send'):
                return None
            return self.intrinsic_type(node)
        if kind == NodeKind.BINARY:
            left, right = node.children
            op = node.value
            if op in COMPARISON_OPS or op in ('&&',):
                return BOOL
            if op == '||':
                if self._is_zero_default(node):
                    return self.infer_type(left)
                return BOOL
            if op == '<<':
                left_type = self.infer_type(left)
                return None if left_type is not None and left_type.is_array else UINT256
            left_type = self.infer_type(left)
            if op == '+' and (left_type == STRING or self.infer_type(right) == STRING):
                return STRING
            if left_type is not None and left_type.is_integer:
                return left_type
            return UINT256
        if kind == NodeKind.UNARY:
            if node.value == '!':
                return BOOL
            if node.value == '-':
                return INT256
            return self.infer_type(node.children[0])
        if kind == NodeKind.TERNARY:
            return self.infer_type(node.children[1]) or self.infer_type(node.children[2])
        if kind == NodeKind.ASSIGNMENT:
            return self.infer_type(node.children[1])
        if kind == NodeKind.CONSTANT:
            return self._ctx.constants.get(node.value.split('::')[-1])
        if kind == NodeKind.ARRAY:
            if not node.children:
                return DEFAULT_ARRAY
            element = self.infer_type(node.children[0])
            return array_of(element) if element is not None else None
        if kind == NodeKind.INTERPOLATED_STRING:
            return STRING
        return self.intrinsic_type(node)
