"""
Instance variable discovery for Ruby classes.

The FieldAnalyzer performs a first pass over the methods of a class to
discover every instance variable before code generation: where it is first
assigned, how deeply it is indexed, what is pushed into it and what is
stored through it. The contract generator turns these usages into typed
state variable declarations.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional

from ..parser.ast_nodes import ASTNode, NodeKind, call_args, call_receiver, loop_parts, method_body, method_name

ITERATION_METHODS = frozenset({'each', 'each_with_index'})
MEASURE_METHODS = frozenset({'length', 'size', 'count', 'empty?'})
APPEND_METHODS = frozenset({'push', 'append'})


@dataclass
class FieldUsage:
    """Everything the generator needs to know about one instance variable."""
    name: str
    line: Optional[int] = None
    # Top-level `@x = value` in initialize
    initializer: Optional[ASTNode] = None
    initializer_statement: Optional[ASTNode] = None
    # First `@x = value` anywhere, and the method it appears in
    first_value: Optional[ASTNode] = None
    first_method: Optional[ASTNode] = None
    assigned: bool = False
    # Indexing: deepest @x[a][b] chain and the first key seen at each level
    index_depth: int = 0
    keys: List[ASTNode] = field(default_factory=list)
    indexed_value: Optional[ASTNode] = None
    compound_indexed: bool = False
    # Array usage
    elements: List[ASTNode] = field(default_factory=list)
    iterated: bool = False
    measured: bool = False

    @property
    def is_array(self) -> bool:
        if self.initializer is not None and self.initializer.kind == NodeKind.ARRAY:
            return True
        # `@name.length` alone is also valid on a string
        return bool(self.elements) or self.iterated or (self.measured and self.index_depth > 0)

    @property
    def is_mapping(self) -> bool:
        if self.initializer is not None and self.initializer.kind == NodeKind.HASH:
            return True
        return self.index_depth > 0 and not self.is_array


class FieldAnalyzer:
    """
    Discovers instance variables across the methods of one class.

    Initializer fields come first, in assignment order; fields first seen in
    other methods follow in discovery order.
    """

    def __init__(self):
        self.fields: Dict[str, FieldUsage] = {}

    def _usage(self, name: str, node: ASTNode) -> FieldUsage:
        if name not in self.fields:
            self.fields[name] = FieldUsage(name=name, line=node.line)
        return self.fields[name]

    def analyze(self, methods: List[ASTNode]) -> Dict[str, FieldUsage]:
        """Scan method definitions and return usages keyed by field name."""
        for method in methods:
            if method_name(method) != 'initialize':
                continue
            for stmt in method_body(method).children:
                if stmt.kind == NodeKind.ASSIGNMENT and stmt.value == '=' \
                        and stmt.children[0].kind == NodeKind.IVAR:
                    usage = self._usage(stmt.children[0].value, stmt)
                    if usage.initializer is None:
                        usage.initializer = stmt.children[1]
                        usage.initializer_statement = stmt

        for method in methods:
            for node in method_body(method).walk():
                self._visit(node, method)
        return self.fields

    def _visit(self, node: ASTNode, method: ASTNode) -> None:
        kind = node.kind
        if kind == NodeKind.IVAR:
            self._usage(node.value, node)
        elif kind == NodeKind.ASSIGNMENT:
            target, value = node.children
            if target.kind == NodeKind.IVAR:
                usage = self._usage(target.value, node)
                usage.assigned = True
                if usage.first_value is None and node.value == '=':
                    usage.first_value = value
                    usage.first_method = method
            elif target.kind == NodeKind.INDEX:
                root, keys = self._index_chain(target)
                if root.kind == NodeKind.IVAR:
                    usage = self._usage(root.value, node)
                    usage.assigned = True
                    if node.value == '=':
                        if usage.indexed_value is None and len(keys) >= usage.index_depth:
                            usage.indexed_value = value
                    else:
                        usage.compound_indexed = True
        elif kind == NodeKind.INDEX:
            root, keys = self._index_chain(node)
            if root.kind == NodeKind.IVAR:
                usage = self._usage(root.value, node)
                usage.index_depth = max(usage.index_depth, len(keys))
                for level, key in enumerate(keys):
                    if level >= len(usage.keys):
                        usage.keys.append(key)
        elif kind == NodeKind.BINARY and node.value == '<<':
            left = node.children[0]
            if left.kind == NodeKind.IVAR:
                self._usage(left.value, node).elements.append(node.children[1])
        elif kind == NodeKind.METHOD_CALL:
            receiver = call_receiver(node)
            if receiver.kind == NodeKind.IVAR:
                usage = self._usage(receiver.value, node)
                if node.value in APPEND_METHODS:
                    usage.elements.extend(call_args(node))
                elif node.value in ITERATION_METHODS:
                    usage.iterated = True
                elif node.value in MEASURE_METHODS:
                    usage.measured = True
        elif kind == NodeKind.LOOP and node.value in ('each', 'each_with_index', 'for'):
            subject, _, _ = loop_parts(node)
            if subject.kind == NodeKind.IVAR:
                self._usage(subject.value, node).iterated = True

    @staticmethod
    def _index_chain(node: ASTNode):
        keys = []
        while node.kind == NodeKind.INDEX:
            keys.append(node.children[1])
            node = node.children[0]
        keys.reverse()
        return node, keys
