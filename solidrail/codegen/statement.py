"""
Statement generation for Ruby to Solidity transpilation.

This module lowers Ruby statement nodes into the statement IR of
contract_spec (assignments, conditionals, loops, require/emit/revert and
plain expressions) and renders that IR as indented Solidity lines.
"""

from typing import Callable, Dict, List, Optional, TYPE_CHECKING

from .base import BaseGenerator
from .contract_spec import (
    AssignStatement,
    BreakStatement,
    ConditionalStatement,
    ContinueStatement,
    EmitStatement,
    EventSpec,
    ExpressionStatement,
    LoopStatement,
    ParameterSpec,
    RequireStatement,
    ReturnStatement,
    RevertStatement,
    Statement,
)
from .expression import PRECEDENCE, enum_member, quote_string
from ..parser.ast_nodes import (
    ASTNode,
    NodeKind,
    call_args,
    call_block,
    call_receiver,
    conditional_branches,
    loop_parts,
)
from ..type_system import DEFAULT_ARRAY, STRING, UINT256, StaticType, safe_identifier, to_camel_case

if TYPE_CHECKING:
    from .context import CodeGenerationContext
    from .expression import ExpressionGenerator


SEQUENCE_LOOPS = frozenset({'each', 'each_with_index', 'for'})
OUTPUT_CALLS = frozenset({'puts', 'p', 'print', 'pp'})


class StatementGenerator(BaseGenerator):
    """
    Lowers Ruby statements into the statement IR and renders it.

    This class handles all statement types including:
    - Assignments and local declarations
    - Control flow (if/unless, while/until, each/for/times loops)
    - Returns, breaks, nexts
    - require, emit and raise
    """

    def __init__(
        self,
        ctx: 'CodeGenerationContext',
        expr_generator: 'ExpressionGenerator',
    ):
        """
        Initialize the statement generator.

        Args:
            ctx: The code generation context
            expr_generator: The expression generator
        """
        super().__init__(ctx)
        self._expr = expr_generator
        self._handlers: Dict[NodeKind, Callable[[ASTNode], List[Statement]]] = {
            NodeKind.ASSIGNMENT: self._build_assignment,
            NodeKind.CONDITIONAL: self._build_conditional,
            NodeKind.LOOP: self._build_loop,
            NodeKind.RETURN: self._build_return,
            NodeKind.BREAK: self._build_break,
            NodeKind.NEXT: self._build_next,
            NodeKind.CALL: self._build_call,
            NodeKind.BODY: self.build_body,
            # Expressions used as statements
            NodeKind.METHOD_CALL: self._build_expression,
            NodeKind.BINARY: self._build_expression,
            NodeKind.UNARY: self._build_expression,
            NodeKind.TERNARY: self._build_expression,
            NodeKind.INDEX: self._build_expression,
            NodeKind.IDENTIFIER: self._build_expression,
            NodeKind.IVAR: self._build_expression,
            NodeKind.CONSTANT: self._build_expression,
            NodeKind.SELF: self._build_expression,
            NodeKind.LITERAL: self._build_expression,
            NodeKind.INTERPOLATED_STRING: self._build_expression,
            NodeKind.SYMBOL: self._build_expression,
            NodeKind.ARRAY: self._build_expression,
            NodeKind.HASH: self._build_expression,
            # Declarations that only make sense at class level
            NodeKind.CLASS: self._skip_declaration,
            NodeKind.MODULE: self._skip_declaration,
            NodeKind.METHOD_DEF: self._skip_declaration,
            NodeKind.MARKER: self._skip_declaration,
            NodeKind.INCLUDE: self._skip_declaration,
            NodeKind.ATTR: self._skip_declaration,
            NodeKind.IMPORT: self._skip_declaration,
            # Structural kinds never appear as statements
            NodeKind.PROGRAM: self._build_unsupported,
            NodeKind.PARAMS: self._build_unsupported,
            NodeKind.PARAM: self._build_unsupported,
            NodeKind.ARGS: self._build_unsupported,
            NodeKind.BLOCK: self._build_unsupported,
            NodeKind.BLOCK_PARAMS: self._build_unsupported,
            NodeKind.PAIR: self._build_unsupported,
        }

    @property
    def handled_kinds(self):
        return frozenset(self._handlers)

    # =========================================================================
    # MAIN DISPATCH
    # =========================================================================

    def build(self, node: ASTNode) -> List[Statement]:
        """Lower one Ruby statement into zero or more IR statements."""
        if node.line is not None:
            self._ctx.current_line = node.line
        return self._handlers[node.kind](node)

    def build_body(self, body: ASTNode) -> List[Statement]:
        statements: List[Statement] = []
        for node in body.children:
            statements.extend(self.build(node))
        return statements

    def build_block(self, body: ASTNode) -> List[Statement]:
        """Lower a nested body in its own local scope."""
        saved = self._ctx.enter_block()
        statements = self.build_body(body)
        self._ctx.exit_block(saved)
        return statements

    def _build_expression(self, node: ASTNode) -> List[Statement]:
        if node.kind == NodeKind.IDENTIFIER and node.value == 'super' \
                and self._ctx.lookup_local('super') is None and self._ctx.current_method == 'initialize':
            self._ctx.base_arguments = list(self._ctx.current_parameters)
            return []
        return [ExpressionStatement(self._expr.generate(node))]

    def _skip_declaration(self, node: ASTNode) -> List[Statement]:
        self._ctx.diagnostics.warn_statement_skipped(
            node.kind.value, 'not allowed inside a method body', line=node.line)
        return []

    def _build_unsupported(self, node: ASTNode) -> List[Statement]:
        raise self.fail(f'{node.kind.value} cannot be used as a statement', node)

    # =========================================================================
    # ASSIGNMENTS
    # =========================================================================

    def _build_assignment(self, node: ASTNode) -> List[Statement]:
        target, value = node.children
        op = node.value

        if op == '||=':
            raise self.fail('Conditional assignment (||=) is not supported', node)

        if target.kind == NodeKind.IDENTIFIER and self._ctx.lookup_local(target.value) is None:
            return self._declare_local(target.value, value, op, node)

        if target.kind == NodeKind.METHOD_CALL:
            return self._build_setter_call(target, value, node)

        target_text = self._expr.generate(target)
        if op == '**=':
            exponent = self._expr.generate_operand(value, PRECEDENCE['**'], right_side=True)
            return [AssignStatement(target_text, f'{target_text} ** {exponent}')]
        return [AssignStatement(target_text, self._expr.generate(value), op)]

    def _declare_local(self, name: str, value: ASTNode, op: str, node: ASTNode) -> List[Statement]:
        if op != '=':
            raise self.fail(f'Compound assignment ({op}) to undefined local "{name}"', node)
        value_text = self._expr.generate(value)
        static_type = self._expr.infer_type(value)
        if value.kind == NodeKind.ARRAY and not value.children:
            static_type = DEFAULT_ARRAY
        if static_type is None:
            raise self.fail(f'Cannot infer a Solidity type for local "{name}"', node)

        sol_name = self._ctx.declare_local(name, static_type)
        if name in self._ctx.hoisted:
            self._ctx.hoisted_declarations.append((sol_name, static_type))
            return [AssignStatement(sol_name, value_text)]
        return [AssignStatement(sol_name, value_text, declared_type=self.declared_type(static_type))]

    def _build_setter_call(self, target: ASTNode, value: ASTNode, node: ASTNode) -> List[Statement]:
        """`self.owner = x` assigns the field or calls the setter method."""
        receiver = call_receiver(target)
        if receiver.kind != NodeKind.SELF or node.value != '=':
            raise self.fail(f'Attribute assignment to .{target.value} is not supported', node)
        setter = f'{target.value}='
        value_text = self._expr.generate(value)
        if setter in self._ctx.methods:
            return [ExpressionStatement(f'{self._ctx.methods[setter]}({value_text})')]
        field = safe_identifier(target.value)
        if field in self._ctx.state_vars:
            return [AssignStatement(field, value_text)]
        raise self.fail(f'Unknown attribute "{target.value}"', node)

    @staticmethod
    def declared_type(static_type: StaticType) -> str:
        if static_type.is_reference:
            return f'{static_type.render()} memory'
        return static_type.render()

    # =========================================================================
    # CONTROL FLOW
    # =========================================================================

    def _build_conditional(self, node: ASTNode) -> List[Statement]:
        branches, otherwise = conditional_branches(node)
        lowered = []
        for index, (condition, body) in enumerate(branches):
            if index == 0 and node.value == 'unless':
                condition_text = self._expr.negate(condition)
            else:
                condition_text = self._expr.generate(condition)
            lowered.append((condition_text, self.build_block(body)))
        else_body = self.build_block(otherwise) if otherwise is not None else None
        return [ConditionalStatement(lowered, else_body)]

    def _build_loop(self, node: ASTNode) -> List[Statement]:
        kind = node.value
        if kind in ('while', 'until'):
            condition, _, body = loop_parts(node)
            if kind == 'until':
                condition_text = self._expr.negate(condition)
            else:
                condition_text = self._expr.generate(condition)
            return [LoopStatement('while', condition_text, self.build_block(body))]
        if kind == 'times':
            return self._build_times_loop(node)
        return self._build_sequence_loop(node)

    def _build_times_loop(self, node: ASTNode) -> List[Statement]:
        """`n.times do |i|` becomes a counted for loop."""
        count, params, body = loop_parts(node)
        count_text = self._expr.generate_operand(count, PRECEDENCE['<'] + 1)
        saved = self._ctx.enter_block()
        if params:
            index = self._ctx.declare_local(params[0], UINT256)
        else:
            index = self._ctx.next_index_name()
        statements = self.build_body(body)
        self._ctx.exit_block(saved)
        return [LoopStatement(
            'for', f'{index} < {count_text}', statements,
            init=f'uint256 {index} = 0', update=f'{index}++',
        )]

    def _build_sequence_loop(self, node: ASTNode) -> List[Statement]:
        """
        Lower each/each_with_index/for over an array.

        The sequence length is read once into a local before the loop and
        every length access on the same sequence inside the body uses it.
        """
        subject, params, body = loop_parts(node)
        sequence = self._expr.generate(subject)
        sequence_type = self._expr.infer_type(subject)
        if sequence_type is not None and sequence_type.is_mapping:
            raise self.fail('Iterating over a mapping is not supported', node)
        if sequence_type == STRING:
            raise self.fail('Iterating over a string is not supported', node)
        element_type = sequence_type.element if sequence_type is not None and sequence_type.is_array else UINT256

        base_name = self._get_base_var_name(subject) or 'items'
        length_var = self._ctx.unique_name(f'{to_camel_case(base_name.lstrip("_"))}Length')
        prelude = [AssignStatement(length_var, f'{sequence}.length', declared_type='uint256')]

        saved = self._ctx.enter_block()
        self._ctx.length_cache[sequence] = length_var
        if node.value == 'each_with_index' and len(params) > 1:
            index = self._ctx.declare_local(params[1], UINT256)
        else:
            index = self._ctx.next_index_name()

        statements: List[Statement] = []
        if params:
            element = self._ctx.declare_local(params[0], element_type)
            statements.append(AssignStatement(
                element, f'{sequence}[{index}]', declared_type=self.declared_type(element_type)))
        statements.extend(self.build_body(body))
        self._ctx.exit_block(saved)

        return [LoopStatement(
            'for', f'{index} < {length_var}', statements,
            init=f'uint256 {index} = 0', update=f'{index}++', prelude=prelude,
        )]

    def _build_return(self, node: ASTNode) -> List[Statement]:
        if not node.children:
            return [ReturnStatement()]
        value = node.children[0]
        value_text = self._expr.generate(value)
        static_type = self._expr.infer_type(value)
        if static_type is not None:
            self._ctx.return_types.append(static_type)
        return [ReturnStatement(value_text)]

    def _build_break(self, node: ASTNode) -> List[Statement]:
        return [BreakStatement()]

    def _build_next(self, node: ASTNode) -> List[Statement]:
        return [ContinueStatement()]

    # =========================================================================
    # KERNEL CALLS
    # =========================================================================

    def _build_call(self, node: ASTNode) -> List[Statement]:
        name = node.value
        args = call_args(node)

        if name == 'require':
            return [self._build_require(args, node)]
        if name == 'emit':
            return [self._build_emit(args, node)]
        if name == 'raise':
            return [self._build_raise(args, node)]
        if name in OUTPUT_CALLS:
            self._ctx.diagnostics.warn_statement_skipped(name, 'console output', line=node.line)
            return []
        if name == 'loop' and call_block(node) is not None:
            _, body = call_block(node).children
            return [LoopStatement('while', 'true', self.build_block(body))]
        if name == 'super' and self._ctx.current_method == 'initialize':
            self._ctx.base_arguments = self._expr.generate_arguments(args)
            return []
        return self._build_expression(node)

    def _message_text(self, node: ASTNode) -> str:
        if node.kind == NodeKind.SYMBOL:
            return quote_string(node.value)
        return self._expr.generate(node)

    def _build_require(self, args: List[ASTNode], node: ASTNode) -> RequireStatement:
        if not args or len(args) > 2:
            raise self.fail('require expects a condition and an optional message', node)
        condition = self._expr.generate(args[0])
        message = self._message_text(args[1]) if len(args) == 2 else None
        return RequireStatement(condition, message)

    def _build_emit(self, args: List[ASTNode], node: ASTNode) -> EmitStatement:
        """Lower `emit Event(a, b)` or `emit :event, a, b` and declare the event."""
        if not args:
            raise self.fail('emit expects an event', node)
        event_name = self.event_name(args)
        if event_name is None:
            raise self.fail('emit expects an event name', node)
        first = args[0]
        event_args = call_args(first) if first.kind == NodeKind.CALL else args[1:]

        arguments = self._expr.generate_arguments(event_args)
        self._register_event(event_name, event_args, node)
        return EmitStatement(event_name, arguments)

    @staticmethod
    def event_name(args: List[ASTNode]) -> Optional[str]:
        """Name of the event an emit call refers to, or None."""
        if not args:
            return None
        first = args[0]
        if first.kind == NodeKind.CALL and first.value[:1].isupper():
            return first.value
        if first.kind == NodeKind.SYMBOL:
            return enum_member(first.value)
        if first.kind == NodeKind.CONSTANT:
            return first.value.split('::')[-1]
        return None

    def _register_event(self, event_name: str, args: List[ASTNode], node: ASTNode) -> None:
        existing = self._ctx.events.get(event_name)
        if existing is not None:
            if len(existing.parameters) != len(args):
                self._ctx.diagnostics.warn_unsupported_construct(
                    'event', f'{event_name} emitted with {len(args)} arguments, '
                             f'declared with {len(existing.parameters)}', line=node.line)
            return
        parameters = []
        used = set()
        for index, arg in enumerate(args):
            name = self._event_parameter_name(arg, index)
            while name in used:
                name = f'{name}{index}'
            used.add(name)
            static_type = self._expr.infer_type(arg) or UINT256
            parameters.append(ParameterSpec(name, static_type))
        self._ctx.events[event_name] = EventSpec(event_name, parameters)

    def _event_parameter_name(self, arg: ASTNode, index: int) -> str:
        if arg.kind in (NodeKind.IDENTIFIER, NodeKind.IVAR):
            name = arg.value.lstrip('_')
        elif arg.kind == NodeKind.METHOD_CALL and not call_args(arg):
            name = arg.value.rstrip('?!')
        else:
            return f'arg{index}'
        return safe_identifier(to_camel_case(name)) if name else f'arg{index}'

    def _build_raise(self, args: List[ASTNode], node: ASTNode) -> RevertStatement:
        """`raise 'msg'` and `raise SomeError, 'msg'` both revert with the message."""
        if not args:
            return RevertStatement()
        if args[0].kind == NodeKind.CONSTANT:
            if len(args) > 1:
                return RevertStatement(self._message_text(args[1]))
            return RevertStatement(quote_string(args[0].value.split('::')[-1]))
        return RevertStatement(self._message_text(args[0]))

    # =========================================================================
    # RENDERING
    # =========================================================================

    def render(self, statements: List[Statement]) -> List[str]:
        """Render IR statements as Solidity lines at the current indentation."""
        lines: List[str] = []
        for stmt in statements:
            lines.extend(self.render_statement(stmt))
        return lines

    def _render_nested(self, statements: List[Statement], lines: List[str]) -> None:
        self.indent_level += 1
        lines.extend(self.render(statements))
        self.indent_level -= 1

    def render_statement(self, stmt: Statement) -> List[str]:
        indent = self.indent()
        if isinstance(stmt, AssignStatement):
            if stmt.declared_type and stmt.value is None:
                return [f'{indent}{stmt.declared_type} {stmt.target};']
            if stmt.declared_type:
                return [f'{indent}{stmt.declared_type} {stmt.target} = {stmt.value};']
            return [f'{indent}{stmt.target} {stmt.operator} {stmt.value};']
        elif isinstance(stmt, ConditionalStatement):
            return self._render_conditional(stmt)
        elif isinstance(stmt, LoopStatement):
            return self._render_loop(stmt)
        elif isinstance(stmt, RequireStatement):
            if stmt.message is not None:
                return [f'{indent}require({stmt.condition}, {stmt.message});']
            return [f'{indent}require({stmt.condition});']
        elif isinstance(stmt, EmitStatement):
            return [f'{indent}emit {stmt.event}({", ".join(stmt.arguments)});']
        elif isinstance(stmt, ReturnStatement):
            if stmt.value is None:
                return [f'{indent}return;']
            return [f'{indent}return {stmt.value};']
        elif isinstance(stmt, RevertStatement):
            return [f'{indent}revert({stmt.message or ""});']
        elif isinstance(stmt, BreakStatement):
            return [f'{indent}break;']
        elif isinstance(stmt, ContinueStatement):
            return [f'{indent}continue;']
        elif isinstance(stmt, ExpressionStatement):
            return [f'{indent}{stmt.expression};']
        raise TypeError(f'Unknown statement {stmt!r}')

    def _render_conditional(self, stmt: ConditionalStatement) -> List[str]:
        lines = []
        for index, (condition, body) in enumerate(stmt.branches):
            if index == 0:
                lines.append(f'{self.indent()}if ({condition}) {{')
            else:
                lines.append(f'{self.indent()}}} else if ({condition}) {{')
            self._render_nested(body, lines)
        if stmt.otherwise is not None:
            lines.append(f'{self.indent()}}} else {{')
            self._render_nested(stmt.otherwise, lines)
        lines.append(f'{self.indent()}}}')
        return lines

    def _render_loop(self, stmt: LoopStatement) -> List[str]:
        lines = self.render(stmt.prelude)
        if stmt.kind == 'for':
            lines.append(f'{self.indent()}for ({stmt.init}; {stmt.condition}; {stmt.update}) {{')
        else:
            lines.append(f'{self.indent()}while ({stmt.condition}) {{')
        self._render_nested(stmt.body, lines)
        lines.append(f'{self.indent()}}}')
        return lines
