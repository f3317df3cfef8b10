"""
Contract generation for Ruby to Solidity transpilation.

This module lowers one Ruby class (or module) into a ContractSpec: the
inheritance clause, enums, events, typed state variables, the constructor
and the functions. It also renders a ContractSpec as a Solidity contract
block.
"""

from typing import Dict, List, Optional, Set, Tuple, TYPE_CHECKING

from .base import BaseGenerator
from .contract_spec import (
    ContractSpec,
    EnumSpec,
    ExpressionStatement,
    FunctionSpec,
    AssignStatement,
    ParameterSpec,
    StateVariableSpec,
    Statement,
)
from .expression import enum_member
from .fields import FieldAnalyzer, FieldUsage
from .function import VISIBILITY_MARKERS, element_type_for
from ..parser.ast_nodes import (
    ASTNode,
    NodeKind,
    call_args,
    call_receiver,
    class_body,
    class_name,
    class_parent,
    method_body,
    method_name,
    method_params,
    param_name,
)
from ..type_system import (
    ADDRESS, UINT256, StaticType, array_of, infer_name_type, map_type, map_visibility,
    mapping_of, safe_identifier, to_camel_case,
)

if TYPE_CHECKING:
    from .context import CodeGenerationContext
    from .expression import ExpressionGenerator
    from .function import FunctionGenerator
    from .statement import StatementGenerator


# Initializers that are inlined into the state variable declaration
INLINE_KINDS = frozenset({NodeKind.LITERAL, NodeKind.SYMBOL})

# (method node, bare visibility section, pending bare mutability markers)
MethodEntry = Tuple[ASTNode, Optional[str], List[str]]


class ContractGenerator(BaseGenerator):
    """
    Generates a Solidity contract from a Ruby class or module.

    The class body is scanned once for declarations, instance variables are
    discovered and typed before any method is lowered, and methods are
    lowered callees-first so return types are known at every call site.
    """

    def __init__(
        self,
        ctx: 'CodeGenerationContext',
        expr_generator: 'ExpressionGenerator',
        stmt_generator: 'StatementGenerator',
        func_generator: 'FunctionGenerator',
    ):
        super().__init__(ctx)
        self._expr = expr_generator
        self._stmt = stmt_generator
        self._func = func_generator

    # =========================================================================
    # LOWERING
    # =========================================================================

    def build(self, node: ASTNode) -> ContractSpec:
        """
        Lower a CLASS or MODULE node into a ContractSpec.

        Raises:
            CompilationError: when the class has no name or uses a construct
                with no Solidity counterpart
        """
        name = class_name(node)
        if name is None:
            raise self.fail('Class has no resolvable name', node)
        name = name.split('::')[-1]
        kind = 'abstract' if node.kind == NodeKind.MODULE else 'contract'
        self._ctx.reset_for_contract(name, kind)
        self._ctx.current_line = node.line

        spec = ContractSpec(name=name, kind=kind)
        parent = class_parent(node)
        if parent is not None:
            spec.parent_names.append(parent.split('::')[-1])

        methods: List[MethodEntry] = []
        readers: Optional[Set[str]] = None
        writers: List[Tuple[str, ASTNode]] = []
        section: Optional[str] = None
        pending: List[str] = []

        for stmt in class_body(node).children:
            if stmt.kind == NodeKind.METHOD_DEF:
                methods.append((stmt, section, pending))
                pending = []
            elif stmt.kind == NodeKind.MARKER:
                if stmt.value in VISIBILITY_MARKERS:
                    section = stmt.value
                else:
                    pending.append(stmt.value)
            elif stmt.kind == NodeKind.INCLUDE:
                mixin = stmt.children[0].value.split('::')[-1]
                if mixin not in spec.parent_names:
                    spec.parent_names.append(mixin)
            elif stmt.kind == NodeKind.ATTR:
                fields = [symbol.value for symbol in stmt.children]
                if stmt.value in ('attr_reader', 'attr_accessor'):
                    readers = (readers or set()) | set(fields)
                if stmt.value in ('attr_writer', 'attr_accessor'):
                    writers.extend((field_name, stmt) for field_name in fields)
            elif stmt.kind == NodeKind.ASSIGNMENT and stmt.children[0].kind == NodeKind.CONSTANT:
                self._build_constant(stmt, spec)
            elif stmt.kind in (NodeKind.CLASS, NodeKind.MODULE):
                self._ctx.diagnostics.warn_statement_skipped(
                    f'nested {stmt.kind.value}', 'declare it at top level', line=stmt.line)
            else:
                self._ctx.diagnostics.warn_statement_skipped(
                    stmt.kind.value, 'not allowed in a class body', line=stmt.line)

        self._ctx.current_parent_names = list(spec.parent_names)
        methods = self._unique_methods(methods)
        for method, _, _ in methods:
            ruby_name = method_name(method)
            if ruby_name != 'initialize':
                self._ctx.methods[ruby_name] = safe_identifier(to_camel_case(ruby_name))

        method_nodes = [method for method, _, _ in methods]
        usages = FieldAnalyzer().analyze(method_nodes)
        for field_name, attr in writers:
            if field_name not in usages:
                usages[field_name] = FieldUsage(name=field_name, line=attr.line, assigned=True)
        for field_name in sorted(readers or ()):
            if field_name not in usages:
                usages[field_name] = FieldUsage(name=field_name, line=node.line)

        initializer = self._find_method(methods, 'initialize')
        self._type_fields(usages, initializer)
        replacements = self._state_variables(usages, readers, spec)

        built: Dict[str, FunctionSpec] = {}
        for ruby_name in self._build_order(method_nodes):
            method, method_section, markers = self._find_entry(methods, ruby_name)
            built[ruby_name] = self._func.build(
                method, method_section, markers,
                replacements if ruby_name == 'initialize' else None,
            )

        for method, _, _ in methods:
            function = built[method_name(method)]
            if function.is_constructor:
                spec.constructor = function
                if function.base_arguments is not None and not spec.parent_names:
                    self._ctx.diagnostics.warn_unsupported_construct(
                        'super', f'{name} has no parent contract; base constructor call dropped',
                        line=function.line)
            else:
                spec.functions.append(function)

        for field_name, attr in writers:
            setter = self._attr_writer(field_name, attr)
            if setter is not None:
                spec.functions.append(setter)

        spec.events = self._ordered_events(method_nodes)
        return spec

    def _unique_methods(self, methods: List[MethodEntry]) -> List[MethodEntry]:
        """A later definition of the same method replaces the earlier one."""
        last = {method_name(method): index for index, (method, _, _) in enumerate(methods)}
        unique = []
        for index, entry in enumerate(methods):
            ruby_name = method_name(entry[0])
            if last[ruby_name] != index:
                self._ctx.diagnostics.warn_statement_skipped(
                    f'method {ruby_name}', 'redefined later in the class', line=entry[0].line)
                continue
            unique.append(entry)
        return unique

    @staticmethod
    def _find_entry(methods: List[MethodEntry], ruby_name: str) -> MethodEntry:
        for entry in methods:
            if method_name(entry[0]) == ruby_name:
                return entry
        raise KeyError(ruby_name)

    def _find_method(self, methods: List[MethodEntry], ruby_name: str) -> Optional[ASTNode]:
        for method, _, _ in methods:
            if method_name(method) == ruby_name:
                return method
        return None

    # =========================================================================
    # CONSTANTS AND ENUMS
    # =========================================================================

    def _build_constant(self, stmt: ASTNode, spec: ContractSpec) -> None:
        """`Status = [:open, :closed]` declares an enum; other constants are `constant`."""
        target, value = stmt.children
        name = target.value.split('::')[-1]
        if stmt.value != '=':
            raise self.fail(f'Constant {name} can only be assigned with =', stmt)

        if value.kind == NodeKind.ARRAY and value.children \
                and all(child.kind == NodeKind.SYMBOL for child in value.children):
            symbols = [child.value for child in value.children]
            self._ctx.enums[name] = symbols
            spec.enums.append(EnumSpec(name, [enum_member(symbol) for symbol in symbols]))
            return

        if value.kind in (NodeKind.ARRAY, NodeKind.HASH):
            raise self.fail(f'Constant {name} must be a value type', stmt)
        static_type = self._expr.infer_type(value)
        if static_type is None:
            raise self.fail(f'Constant {name} has no Solidity type', stmt)
        spec.state_variables.append(StateVariableSpec(
            name, static_type, 'public', self._expr.generate(value), constant=True))
        self._ctx.constants[name] = static_type

    # =========================================================================
    # STATE VARIABLES
    # =========================================================================

    def _type_fields(self, usages: Dict[str, FieldUsage], initializer: Optional[ASTNode]) -> None:
        """
        Type every discovered field and register it in the context.

        Fields initialized straight from a constructor parameter are typed
        last, from the parameter type, so the other fields can inform it.
        """
        init_params = set()
        if initializer is not None:
            init_params = {param_name(param) for param in method_params(initializer)}

        deferred = []
        for usage in usages.values():
            self._check_initializer(usage)
            init = usage.initializer
            if init is not None and init.kind == NodeKind.IDENTIFIER and init.value in init_params \
                    and not usage.is_array and not usage.is_mapping:
                deferred.append(usage)
                continue
            self._ctx.state_vars[safe_identifier(usage.name)] = self._field_type(usage)

        if deferred:
            param_types = self._func.parameter_types(initializer)
            for usage in deferred:
                self._ctx.state_vars[safe_identifier(usage.name)] = param_types[usage.initializer.value]

    def _check_initializer(self, usage: FieldUsage) -> None:
        init = usage.initializer
        if init is None:
            return
        if init.kind == NodeKind.LITERAL and init.value is None:
            raise self.fail(f'@{usage.name} is initialized to nil, which has no Solidity equivalent', init)
        if init.kind == NodeKind.LITERAL and isinstance(init.value, float):
            raise self.fail(f'@{usage.name} is initialized to a float, which is not supported', init)
        if init.kind == NodeKind.HASH and init.children:
            raise self.fail(f'Non-empty hash initializer for @{usage.name} is not supported', init)
        if init.kind == NodeKind.INTERPOLATED_STRING:
            raise self.fail('String interpolation is not supported', init)

    def _field_type(self, usage: FieldUsage) -> StaticType:
        init = usage.initializer
        if usage.is_mapping:
            return self._mapping_type(usage)
        if usage.is_array:
            if init is not None and init.kind == NodeKind.ARRAY and init.children:
                element = map_type(init.children[0], self._ctx.enums)
                if element is None:
                    raise self.fail(f'Elements of @{usage.name} have no Solidity type', init)
                return array_of(element)
            for element_node in usage.elements:
                element = self._value_type(element_node, usage.first_method)
                if element is not None:
                    return array_of(element)
            return array_of(element_type_for(usage.name))
        if init is not None:
            return self._value_type(init, None) or UINT256
        if usage.first_value is not None:
            return self._value_type(usage.first_value, usage.first_method) or UINT256
        if not usage.assigned:
            self._ctx.diagnostics.warn_undeclared_field(usage.name, UINT256.render(), line=usage.line)
            return UINT256
        return infer_name_type(usage.name)

    def _mapping_type(self, usage: FieldUsage) -> StaticType:
        """Nest one mapping level per index depth, keyed by the first key seen."""
        depth = max(usage.index_depth, 1)
        value_type = UINT256
        if usage.indexed_value is not None and not usage.compound_indexed:
            value_type = self._value_type(usage.indexed_value, None) or UINT256
            if value_type.is_mapping:
                value_type = UINT256
        static_type = value_type
        for level in reversed(range(depth)):
            key = usage.keys[level] if level < len(usage.keys) else None
            static_type = mapping_of(self._key_type(key), static_type)
        if not usage.assigned and usage.initializer is None:
            self._ctx.diagnostics.warn_undeclared_field(usage.name, static_type.render(), line=usage.line)
        return static_type

    def _key_type(self, key: Optional[ASTNode]) -> StaticType:
        if key is None:
            return ADDRESS
        static_type = self.intrinsic_type(key)
        if static_type is None or static_type.is_array or static_type.is_mapping:
            return ADDRESS
        return static_type

    def _value_type(self, node: ASTNode, method: Optional[ASTNode]) -> Optional[StaticType]:
        """Type an assigned value, consulting the enclosing method's parameters."""
        if node.kind == NodeKind.IDENTIFIER and method is not None:
            names = [param_name(param) for param in method_params(method)]
            if node.value in names:
                return self._func.parameter_types(method)[node.value]
        if node.kind == NodeKind.IVAR:
            return self._ctx.state_vars.get(safe_identifier(node.value))
        if node.kind == NodeKind.LITERAL and (node.value is None or isinstance(node.value, float)):
            return None
        return self._expr.infer_type(node)

    def _state_variables(
        self,
        usages: Dict[str, FieldUsage],
        readers: Optional[Set[str]],
        spec: ContractSpec,
    ) -> Dict[int, List[Statement]]:
        """
        Declare the state variables and collect constructor rewrites.

        Literal initializers move into the declaration, empty collections
        need no statement and array literals become pushes.
        """
        replacements: Dict[int, List[Statement]] = {}
        for usage in usages.values():
            sol_name = safe_identifier(usage.name)
            static_type = self._ctx.state_vars[sol_name]
            if usage.name.startswith('_'):
                visibility = 'private'
            elif readers is not None:
                visibility = 'public' if usage.name in readers else 'internal'
            else:
                visibility = map_visibility(None)

            variable = StateVariableSpec(sol_name, static_type, visibility)
            init = usage.initializer
            if init is not None:
                key = id(usage.initializer_statement)
                if init.kind == NodeKind.ARRAY:
                    replacements[key] = [
                        ExpressionStatement(f'{sol_name}.push({self._expr.generate(element)})')
                        for element in init.children
                    ]
                elif init.kind == NodeKind.HASH:
                    replacements[key] = []
                elif self._is_inline_literal(init):
                    variable.initializer = self._expr.generate(init)
                    replacements[key] = []
            spec.state_variables.append(variable)
        return replacements

    @staticmethod
    def _is_inline_literal(node: ASTNode) -> bool:
        if node.kind in INLINE_KINDS:
            return True
        return node.kind == NodeKind.UNARY and node.value == '-' \
            and node.children[0].kind == NodeKind.LITERAL

    def _attr_writer(self, field_name: str, attr: ASTNode) -> Optional[FunctionSpec]:
        """`attr_writer :fee` becomes `function setFee(uint256 _fee) public`."""
        if f'{field_name}=' in self._ctx.methods:
            return None
        sol_name = safe_identifier(field_name)
        static_type = self._ctx.state_vars[sol_name]
        if static_type.is_mapping:
            self._ctx.diagnostics.warn_unsupported_construct(
                'attr_writer', f'mapping @{field_name} has no setter', line=attr.line)
            return None
        parameter = ParameterSpec(f'_{to_camel_case(field_name.lstrip("_"))}', static_type)
        return FunctionSpec(
            name=to_camel_case(f'{field_name}='),
            parameters=[parameter],
            visibility='public',
            body=[AssignStatement(sol_name, parameter.name)],
            line=attr.line,
        )

    # =========================================================================
    # ORDERING
    # =========================================================================

    def _build_order(self, methods: List[ASTNode]) -> List[str]:
        """Method names ordered so that callees are lowered before callers."""
        by_name = {method_name(method): method for method in methods}
        order: List[str] = []
        visiting: Set[str] = set()
        for method in methods:
            self._visit_callees(method_name(method), by_name, visiting, order)
        return order

    def _visit_callees(self, name: str, by_name: Dict[str, ASTNode], visiting: Set[str], order: List[str]):
        if name in order or name in visiting:
            return
        visiting.add(name)
        for node in method_body(by_name[name]).walk():
            callee = None
            if node.kind in (NodeKind.CALL, NodeKind.IDENTIFIER):
                callee = node.value
            elif node.kind == NodeKind.METHOD_CALL and call_receiver(node).kind == NodeKind.SELF:
                callee = node.value
            if callee in by_name and callee != 'initialize':
                self._visit_callees(callee, by_name, visiting, order)
        visiting.discard(name)
        order.append(name)

    def _ordered_events(self, methods: List[ASTNode]):
        """Events in the order of their first emit in source order."""
        names: List[str] = []
        for method in methods:
            for node in method_body(method).find_nodes(NodeKind.CALL):
                if node.value == 'emit':
                    event_name = self._stmt.event_name(call_args(node))
                    if event_name is not None and event_name not in names:
                        names.append(event_name)
        events = [self._ctx.events[name] for name in names if name in self._ctx.events]
        events.extend(event for name, event in self._ctx.events.items() if name not in names)
        return events

    # =========================================================================
    # RENDERING
    # =========================================================================

    def render(self, spec: ContractSpec) -> List[str]:
        """Render a ContractSpec as Solidity lines; sections are separated by one blank line."""
        header = f'abstract contract {spec.name}' if spec.kind == 'abstract' else f'contract {spec.name}'
        if spec.parent_names:
            header += f' is {", ".join(spec.parent_names)}'

        lines = [f'{self.indent()}{header} {{']
        self.indent_level += 1
        indent = self.indent()

        sections: List[List[str]] = []
        if spec.enums:
            sections.append([f'{indent}enum {enum.name} {{ {", ".join(enum.members)} }}' for enum in spec.enums])
        if spec.events:
            sections.append([
                f'{indent}event {event.name}('
                f'{", ".join(f"{param.static_type.render()} {param.name}" for param in event.parameters)});'
                for event in spec.events
            ])
        if spec.state_variables:
            sections.append([f'{indent}{self.render_state_variable(var)}' for var in spec.state_variables])
        if spec.constructor is not None:
            parent_name = spec.parent_names[0] if spec.parent_names else None
            sections.append(self._func.render(spec.constructor, parent_name))
        for function in spec.functions:
            sections.append(self._func.render(function))

        for index, section in enumerate(sections):
            if index:
                lines.append('')
            lines.extend(section)

        self.indent_level -= 1
        lines.append(f'{self.indent()}}}')
        return lines

    @staticmethod
    def render_state_variable(var: StateVariableSpec) -> str:
        text = f'{var.static_type.render()} {var.visibility}'
        if var.constant:
            text += ' constant'
        text += f' {var.name}'
        if var.initializer is not None:
            text += f' = {var.initializer}'
        return text + ';'
