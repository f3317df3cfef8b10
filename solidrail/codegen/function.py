"""
Function generation for Ruby to Solidity transpilation.

This module lowers Ruby method definitions into FunctionSpec values
(parameters, visibility, mutability, body and return type) and renders them
as Solidity functions and constructors.
"""

from typing import Dict, Iterable, List, Optional, Set, TYPE_CHECKING

from .base import BaseGenerator, LENGTH_METHODS
from .contract_spec import AssignStatement, FunctionSpec, ParameterSpec, Statement
from ..parser.ast_nodes import (
    ASTNode,
    NodeKind,
    call_receiver,
    loop_parts,
    method_body,
    method_markers,
    method_name,
    method_params,
    param_default,
    param_name,
)
from ..type_system import (
    ADDRESS, UINT256, StaticType, array_of, infer_name_type, map_mutability, map_type,
    map_visibility, safe_identifier, to_camel_case,
)

if TYPE_CHECKING:
    from .context import CodeGenerationContext
    from .expression import ExpressionGenerator
    from .statement import StatementGenerator


VISIBILITY_MARKERS = ('private', 'protected', 'public')
ARRAY_METHODS = LENGTH_METHODS | {'each', 'each_with_index', 'push', 'append', 'empty?'}
VALUE_EXPRESSIONS = frozenset({
    NodeKind.LITERAL, NodeKind.SYMBOL, NodeKind.IVAR, NodeKind.INDEX, NodeKind.BINARY,
    NodeKind.UNARY, NodeKind.TERNARY, NodeKind.SELF, NodeKind.CONSTANT, NodeKind.IDENTIFIER,
    NodeKind.METHOD_CALL, NodeKind.CALL,
})


def element_type_for(name: str) -> StaticType:
    """Guess an array element type from a plural name (`recipients` -> address)."""
    if name.endswith('ies'):
        singular = name[:-3] + 'y'
    elif name.endswith('s'):
        singular = name[:-1]
    else:
        singular = name
    return infer_name_type(singular)


class FunctionGenerator(BaseGenerator):
    """
    Generates Solidity functions from Ruby method definitions.

    `initialize` becomes the constructor; every other method becomes a
    function named in camelCase.
    """

    def __init__(
        self,
        ctx: 'CodeGenerationContext',
        expr_generator: 'ExpressionGenerator',
        stmt_generator: 'StatementGenerator',
    ):
        super().__init__(ctx)
        self._expr = expr_generator
        self._stmt = stmt_generator

    # =========================================================================
    # LOWERING
    # =========================================================================

    def build(
        self,
        method: ASTNode,
        section_visibility: Optional[str] = None,
        extra_markers: Iterable[str] = (),
        replacements: Optional[Dict[int, List[Statement]]] = None,
    ) -> FunctionSpec:
        """
        Lower a METHOD_DEF node into a FunctionSpec.

        Args:
            method: The method definition node
            section_visibility: Visibility set by a preceding bare marker line
            extra_markers: Mutability markers from a preceding bare marker line
            replacements: Top-level body statements (by node id) to replace
                with pre-lowered statements; an empty list drops the statement

        Returns:
            The FunctionSpec, named 'constructor' for initialize
        """
        ruby_name = method_name(method)
        is_constructor = ruby_name == 'initialize'
        replacements = replacements or {}

        self._ctx.reset_for_function(ruby_name)
        self._ctx.current_line = method.line

        parameters = []
        parameter_types = self.parameter_types(method)
        for param in method_params(method):
            name = param_name(param)
            if param_default(param) is not None:
                self._ctx.diagnostics.warn_unsupported_construct(
                    'default parameter', f'default for "{name}" in {ruby_name} is dropped', line=param.line)
            sol_name = self._ctx.declare_local(name, parameter_types[name])
            parameters.append(ParameterSpec(sol_name, parameter_types[name]))
            self._ctx.current_parameters.append(sol_name)

        body_node = method_body(method)
        self._ctx.hoisted = self._hoisted_locals(body_node, [param_name(p) for p in method_params(method)])

        statements: List[Statement] = []
        children = list(body_node.children)
        for index, node in enumerate(children):
            if id(node) in replacements:
                statements.extend(replacements[id(node)])
                continue
            if index == len(children) - 1 and not is_constructor and not ruby_name.endswith('='):
                node = self.with_implicit_return(node)
            statements.extend(self._stmt.build(node))

        declarations = [
            AssignStatement(name, None, declared_type=self._stmt.declared_type(static_type))
            for name, static_type in self._ctx.hoisted_declarations
        ]

        markers = method_markers(method) + list(extra_markers)
        spec = FunctionSpec(
            name='constructor' if is_constructor else self._ctx.methods.get(ruby_name, to_camel_case(ruby_name)),
            parameters=parameters,
            visibility='' if is_constructor else self.visibility(ruby_name, markers, section_visibility),
            mutability=map_mutability(markers),
            return_type=None if is_constructor else self._return_type(ruby_name),
            body=declarations + statements,
            base_arguments=self._ctx.base_arguments,
            line=method.line,
        )
        if spec.return_type is not None:
            self._ctx.method_return_types[ruby_name] = spec.return_type
        return spec

    def visibility(self, ruby_name: str, markers: List[str], section_visibility: Optional[str]) -> str:
        """Explicit markers win, then the bare marker section, then the underscore convention."""
        for marker in markers:
            if marker in VISIBILITY_MARKERS:
                return map_visibility(marker)
        if section_visibility:
            return map_visibility(section_visibility)
        if ruby_name.startswith('_'):
            return 'private'
        return map_visibility(None)

    def _return_type(self, ruby_name: str) -> Optional[StaticType]:
        types = self._ctx.return_types
        if not types:
            return None
        if any(t != types[0] for t in types[1:]):
            self._ctx.diagnostics.warn_unsupported_construct(
                'return type', f'{ruby_name} returns values of different types; using {types[0]}')
        if types[0].is_mapping:
            raise self.fail(f'Method "{ruby_name}" cannot return a mapping')
        return types[0]

    # =========================================================================
    # IMPLICIT RETURN
    # =========================================================================

    def with_implicit_return(self, node: ASTNode) -> ASTNode:
        """Rewrite a method's last expression into an explicit return."""
        if node.kind == NodeKind.CONDITIONAL:
            children = list(node.children)
            if len(children) % 2 == 0:
                return node  # no else branch: the value may be nil
            rewritten = []
            for index, child in enumerate(children):
                is_body = index % 2 == 1 or index == len(children) - 1
                if is_body and child.children:
                    *head, last = child.children
                    child = ASTNode(NodeKind.BODY, tuple(head) + (self.with_implicit_return(last),),
                                    line=child.line, column=child.column)
                rewritten.append(child)
            return ASTNode(node.kind, tuple(rewritten), node.value, node.line, node.column)
        if self._returns_value(node):
            return ASTNode(NodeKind.RETURN, (node,), line=node.line, column=node.column)
        return node

    def _returns_value(self, node: ASTNode) -> bool:
        if node.kind not in VALUE_EXPRESSIONS:
            return False
        if node.kind == NodeKind.LITERAL and node.value is None:
            return False
        if node.kind == NodeKind.BINARY and node.value == '<<':
            left_type = self._expr.infer_type(node.children[0])
            if left_type is None or left_type.is_array:
                return False
        if node.kind == NodeKind.IDENTIFIER:
            if self._ctx.lookup_local(node.value) is None \
                    and safe_identifier(node.value) not in self._ctx.state_vars \
                    and node.value not in self._ctx.method_return_types:
                return False
        if node.kind == NodeKind.CALL and node.value not in self._ctx.method_return_types:
            return False
        if node.kind == NodeKind.METHOD_CALL:
            receiver = call_receiver(node)
            if receiver.kind == NodeKind.SELF:
                if node.value not in self._ctx.method_return_types:
                    return False
            elif self._global_member(node) is None \
                    and node.value not in (LENGTH_METHODS | {'nil?', 'zero?', 'empty?'}):
                return False
        return self._expr.infer_type(node) is not None

    # =========================================================================
    # PARAMETER TYPES
    # =========================================================================

    def parameter_types(self, method: ASTNode) -> Dict[str, StaticType]:
        """
        Type each parameter from its default literal, then its usage in the
        body, then the naming lexicon.
        """
        body = method_body(method)
        types = {}
        for param in method_params(method):
            name = param_name(param)
            default = param_default(param)
            if default is not None:
                static_type = map_type(default, self._ctx.enums)
                if static_type is None:
                    raise self.fail(f'Default value of parameter "{name}" has no Solidity type', default)
            else:
                static_type = self._usage_type(name, body) or infer_name_type(name)
            types[name] = static_type
        return types

    def _usage_type(self, name: str, body: ASTNode) -> Optional[StaticType]:
        for node in body.walk():
            kind = node.kind
            if kind == NodeKind.LOOP and node.value in ('each', 'each_with_index', 'for', 'times'):
                subject, _, _ = loop_parts(node)
                if self._is_name(subject, name):
                    return UINT256 if node.value == 'times' else array_of(element_type_for(name))
            elif kind == NodeKind.METHOD_CALL and self._is_name(call_receiver(node), name):
                if node.value in ARRAY_METHODS:
                    return array_of(element_type_for(name))
                if node.value in ('transfer', 'send'):
                    return ADDRESS
            elif kind == NodeKind.INDEX:
                if self._is_name(node.children[0], name):
                    return array_of(element_type_for(name))
                key_type = self._mapping_key_type(node, name)
                if key_type is not None:
                    return key_type
            elif kind == NodeKind.ASSIGNMENT and node.value == '=' \
                    and node.children[0].kind == NodeKind.IVAR and self._is_name(node.children[1], name):
                field_type = self._ctx.state_vars.get(safe_identifier(node.children[0].value))
                if field_type is not None:
                    return field_type
        return None

    @staticmethod
    def _is_name(node: ASTNode, name: str) -> bool:
        return node.kind == NodeKind.IDENTIFIER and node.value == name

    def _mapping_key_type(self, node: ASTNode, name: str) -> Optional[StaticType]:
        """Key type of @field[..][name] when @field is a mapping."""
        root, keys = self._index_chain(node)
        if root.kind != NodeKind.IVAR:
            return None
        static_type = self._ctx.state_vars.get(safe_identifier(root.value))
        for key in keys:
            if static_type is None or not static_type.is_mapping:
                return None
            if self._is_name(key, name):
                return static_type.key
            static_type = static_type.value
        return None

    # =========================================================================
    # LOCAL HOISTING
    # =========================================================================

    def _hoisted_locals(self, body: ASTNode, parameter_names: List[str]) -> Set[str]:
        """Locals first assigned inside a nested block and read after it."""
        assigned = set(parameter_names)
        hoisted = set()
        children = list(body.children)
        for index, stmt in enumerate(children):
            if stmt.kind == NodeKind.ASSIGNMENT and stmt.children[0].kind == NodeKind.IDENTIFIER:
                assigned.add(stmt.children[0].value)
                continue
            if stmt.kind not in (NodeKind.CONDITIONAL, NodeKind.LOOP, NodeKind.CALL):
                continue
            inner = set()
            for node in stmt.walk():
                if node.kind == NodeKind.ASSIGNMENT and node.children[0].kind == NodeKind.IDENTIFIER:
                    inner.add(node.children[0].value)
            inner -= assigned
            if not inner:
                continue
            later = {
                node.value
                for following in children[index + 1:]
                for node in following.walk()
                if node.kind == NodeKind.IDENTIFIER
            }
            hoisted |= inner & later
            assigned |= inner
        return hoisted

    # =========================================================================
    # RENDERING
    # =========================================================================

    def render(self, spec: FunctionSpec, parent_name: Optional[str] = None) -> List[str]:
        """Render a FunctionSpec at the current indentation level."""
        params = ', '.join(param.render() for param in spec.parameters)
        if spec.is_constructor:
            header = f'constructor({params})'
            if spec.base_arguments is not None and parent_name:
                header += f' {parent_name}({", ".join(spec.base_arguments)})'
            if spec.mutability == 'payable':
                header += ' payable'
        else:
            header = f'function {spec.name}({params}) {spec.visibility}'
            if spec.mutability:
                header += f' {spec.mutability}'
            if spec.return_type is not None:
                header += f' returns ({self._stmt.declared_type(spec.return_type)})'

        lines = [f'{self.indent()}{header} {{']
        self.indent_level += 1
        lines.extend(self._stmt.render(spec.body))
        self.indent_level -= 1
        lines.append(f'{self.indent()}}}')
        return lines
