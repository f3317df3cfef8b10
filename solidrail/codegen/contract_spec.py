"""
Intermediate representation of generated contracts.

The code generator first lowers each Ruby class into a ContractSpec and then
renders that ContractSpec as Solidity text. Expressions are kept as rendered Solidity
strings; statements stay structured so the renderer controls layout.
"""

from dataclasses import dataclass, field
from typing import List, Optional, Tuple, Union

from ..type_system import StaticType


# =============================================================================
# STATEMENTS
# =============================================================================

@dataclass
class AssignStatement:
    """`target op value;`, or a local declaration when declared_type is set."""
    target: str
    value: Optional[str]
    operator: str = '='
    declared_type: Optional[str] = None


@dataclass
class ConditionalStatement:
    """if / else if / else chain; branches are (condition, body) in order."""
    branches: List[Tuple[str, List['Statement']]]
    otherwise: Optional[List['Statement']] = None


@dataclass
class LoopStatement:
    """A for or while loop, with statements emitted just before it."""
    kind: str  # 'for' or 'while'
    condition: str
    body: List['Statement'] = field(default_factory=list)
    init: str = ''
    update: str = ''
    prelude: List['Statement'] = field(default_factory=list)


@dataclass
class RequireStatement:
    condition: str
    message: Optional[str] = None


@dataclass
class EmitStatement:
    event: str
    arguments: List[str] = field(default_factory=list)


@dataclass
class ExpressionStatement:
    expression: str


@dataclass
class ReturnStatement:
    value: Optional[str] = None


@dataclass
class RevertStatement:
    message: Optional[str] = None


@dataclass
class BreakStatement:
    pass


@dataclass
class ContinueStatement:
    pass


Statement = Union[
    AssignStatement,
    ConditionalStatement,
    LoopStatement,
    RequireStatement,
    EmitStatement,
    ExpressionStatement,
    ReturnStatement,
    RevertStatement,
    BreakStatement,
    ContinueStatement,
]


# =============================================================================
# DECLARATIONS
# =============================================================================

@dataclass
class ParameterSpec:
    name: str
    static_type: StaticType

    def render(self) -> str:
        location = ' memory' if self.static_type.is_reference else ''
        return f'{self.static_type.render()}{location} {self.name}'


@dataclass
class EventSpec:
    name: str
    parameters: List[ParameterSpec] = field(default_factory=list)


@dataclass
class EnumSpec:
    name: str
    members: List[str] = field(default_factory=list)


@dataclass
class StateVariableSpec:
    name: str
    static_type: StaticType
    visibility: str = 'public'
    initializer: Optional[str] = None
    constant: bool = False


@dataclass
class FunctionSpec:
    """A function or (when name is 'constructor') the contract constructor."""
    name: str
    parameters: List[ParameterSpec] = field(default_factory=list)
    visibility: str = 'public'
    mutability: str = ''  # '', 'pure', 'view' or 'payable'
    return_type: Optional[StaticType] = None
    body: List[Statement] = field(default_factory=list)
    base_arguments: Optional[List[str]] = None
    line: Optional[int] = None

    @property
    def is_constructor(self) -> bool:
        return self.name == 'constructor'


@dataclass
class ContractSpec:
    """Everything needed to render one Solidity contract."""
    name: str
    kind: str = 'contract'  # 'contract' or 'abstract'
    parent_names: List[str] = field(default_factory=list)
    enums: List[EnumSpec] = field(default_factory=list)
    events: List[EventSpec] = field(default_factory=list)
    state_variables: List[StateVariableSpec] = field(default_factory=list)
    constructor: Optional[FunctionSpec] = None
    functions: List[FunctionSpec] = field(default_factory=list)

    def state_variable(self, name: str) -> Optional[StateVariableSpec]:
        for var in self.state_variables:
            if var.name == name:
                return var
        return None

    def function(self, name: str) -> Optional[FunctionSpec]:
        for func in self.functions:
            if func.name == name:
                return func
        return None
