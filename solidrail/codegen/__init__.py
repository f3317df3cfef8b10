"""
Code generation module for the Ruby to Solidity transpiler.

This module provides Solidity code generation from Ruby AST nodes.
"""

from .context import CodeGenerationContext
from .base import BaseGenerator
from .contract_spec import (
    AssignStatement,
    BreakStatement,
    ConditionalStatement,
    ContinueStatement,
    ContractSpec,
    EmitStatement,
    EnumSpec,
    EventSpec,
    ExpressionStatement,
    FunctionSpec,
    LoopStatement,
    ParameterSpec,
    RequireStatement,
    ReturnStatement,
    RevertStatement,
    StateVariableSpec,
    Statement,
)
from .expression import ExpressionGenerator
from .statement import StatementGenerator
from .function import FunctionGenerator
from .fields import FieldAnalyzer, FieldUsage
from .contract import ContractGenerator
from .generator import SolidityCodeGenerator
from .diagnostics import TranspilerDiagnostics, Diagnostic, DiagnosticSeverity

__all__ = [
    'CodeGenerationContext',
    'BaseGenerator',
    'AssignStatement',
    'BreakStatement',
    'ConditionalStatement',
    'ContinueStatement',
    'ContractSpec',
    'EmitStatement',
    'EnumSpec',
    'EventSpec',
    'ExpressionStatement',
    'FunctionSpec',
    'LoopStatement',
    'ParameterSpec',
    'RequireStatement',
    'ReturnStatement',
    'RevertStatement',
    'StateVariableSpec',
    'Statement',
    'ExpressionGenerator',
    'StatementGenerator',
    'FunctionGenerator',
    'FieldAnalyzer',
    'FieldUsage',
    'ContractGenerator',
    'SolidityCodeGenerator',
    'TranspilerDiagnostics',
    'Diagnostic',
    'DiagnosticSeverity',
]
