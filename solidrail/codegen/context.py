"""
Code generation context for the Solidity code generator.

This module provides a context class that holds all state needed during
code generation, separating state management from the generation logic.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set, Tuple

from ..config import Configuration, get_configuration
from ..type_system import StaticType, safe_identifier
from .contract_spec import EventSpec
from .diagnostics import TranspilerDiagnostics


# Names that are always available inside a contract body
GLOBAL_NAMESPACES = frozenset({'msg', 'block', 'tx', 'abi'})

# Preferred loop counter names, in order
INDEX_NAMES = ('i', 'j', 'k', 'm', 'n')


@dataclass
class CodeGenerationContext:
    """
    Holds all state needed during Solidity code generation.

    Contract-level state is reset for every class; function-level state
    (locals, cached lengths, loop counters) is reset for every method.
    """

    config: Configuration = field(default_factory=get_configuration)

    # Indentation state
    indent_level: int = 0
    indent_str: str = '    '

    # Contract context
    current_contract_name: str = ''
    current_contract_kind: str = ''  # 'contract' or 'abstract'
    current_parent_names: List[str] = field(default_factory=list)

    # Type knowledge
    enums: Dict[str, List[str]] = field(default_factory=dict)
    constants: Dict[str, StaticType] = field(default_factory=dict)
    state_vars: Dict[str, StaticType] = field(default_factory=dict)
    methods: Dict[str, str] = field(default_factory=dict)  # ruby name -> solidity name
    method_return_types: Dict[str, StaticType] = field(default_factory=dict)
    events: Dict[str, EventSpec] = field(default_factory=dict)

    # Function context
    current_method: str = ''
    current_line: Optional[int] = None
    locals: Dict[str, Tuple[str, StaticType]] = field(default_factory=dict)
    declared_names: Set[str] = field(default_factory=set)
    length_cache: Dict[str, str] = field(default_factory=dict)
    base_arguments: Optional[List[str]] = None
    current_parameters: List[str] = field(default_factory=list)
    return_types: List[StaticType] = field(default_factory=list)
    # Locals first assigned in a nested block but read after it
    hoisted: Set[str] = field(default_factory=set)
    hoisted_declarations: List[Tuple[str, StaticType]] = field(default_factory=list)

    # Diagnostics collector
    _diagnostics: Optional[TranspilerDiagnostics] = None

    @property
    def diagnostics(self) -> TranspilerDiagnostics:
        """Get the diagnostics collector, creating one if needed."""
        if self._diagnostics is None:
            self._diagnostics = TranspilerDiagnostics()
        return self._diagnostics

    def indent(self) -> str:
        """Return the current indentation string."""
        return self.indent_str * self.indent_level

    def reset_for_contract(self, name: str, kind: str) -> None:
        """Clear contract-level state before lowering a new class."""
        self.current_contract_name = name
        self.current_contract_kind = kind
        self.current_parent_names = []
        self.enums = {}
        self.constants = {}
        self.state_vars = {}
        self.methods = {}
        self.method_return_types = {}
        self.events = {}
        self.reset_for_function('')

    def reset_for_function(self, method_name: str) -> None:
        """Clear function-level state before lowering a new method."""
        self.current_method = method_name
        self.current_line = None
        self.locals = {}
        self.declared_names = set()
        self.length_cache = {}
        self.base_arguments = None
        self.current_parameters = []
        self.return_types = []
        self.hoisted = set()
        self.hoisted_declarations = []

    # =========================================================================
    # LOCAL NAMES
    # =========================================================================

    def enter_block(self) -> Tuple[dict, set, dict]:
        """Snapshot local scope before lowering a nested block."""
        return dict(self.locals), set(self.declared_names), dict(self.length_cache)

    def exit_block(self, saved: Tuple[dict, set, dict]) -> None:
        """Restore the scope saved by enter_block, keeping hoisted locals."""
        locals_, declared, length_cache = saved
        for ruby_name in self.hoisted:
            if ruby_name in self.locals:
                locals_[ruby_name] = self.locals[ruby_name]
                declared.add(self.locals[ruby_name][0])
        self.locals = locals_
        self.declared_names = declared
        self.length_cache = length_cache

    def declare_local(self, ruby_name: str, static_type: StaticType) -> str:
        """
        Register a parameter or local variable and return its Solidity name.

        Names that shadow a state variable get a leading underscore; reserved
        words get a trailing one.
        """
        name = safe_identifier(ruby_name)
        if name in self.state_vars or name in self.methods.values():
            name = '_' + name
        name = self.unique_name(name)
        self.locals[ruby_name] = (name, static_type)
        return name

    def unique_name(self, base: str) -> str:
        """Reserve a local name, suffixing a counter if it is already taken."""
        name = base
        counter = 2
        while name in self.declared_names or name in self.state_vars:
            name = f'{base}{counter}'
            counter += 1
        self.declared_names.add(name)
        return name

    def next_index_name(self) -> str:
        for candidate in INDEX_NAMES:
            if candidate not in self.declared_names and candidate not in self.locals \
                    and candidate not in self.state_vars:
                self.declared_names.add(candidate)
                return candidate
        return self.unique_name('index')

    def lookup_local(self, ruby_name: str) -> Optional[Tuple[str, StaticType]]:
        return self.locals.get(ruby_name)

    def enum_for_symbol(self, symbol: str) -> Optional[str]:
        for enum_name, members in self.enums.items():
            if symbol in members:
                return enum_name
        return None
