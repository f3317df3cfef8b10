"""
Ruby to Solidity Transpiler

This package compiles a Ruby subset (classes, methods, instance variables,
conditionals and iteration) into Solidity contracts for the EVM.

Module Structure:
- lexer/: Tokenization (TokenType, Token, Lexer)
- parser/: AST nodes and parsing (ASTNode, NodeKind, Parser, parse)
- type_system/: Ruby to Solidity type, visibility and mutability mapping
- codegen/: Contract lowering and rendering (SolidityCodeGenerator, diagnostics)
- optimizer/: Rewrite passes over generated Solidity
- validator.py: Pattern checks on Ruby input and Solidity output
- compiler.py: The end-to-end pipeline (Compiler, CompileResult)
- cli.py: The `solidrail` command

Usage:
    from solidrail import Compiler

    result = Compiler().compile(source)
    print(result.code)
"""

__version__ = '0.1.0'

# Re-export main classes for convenience
from .errors import SolidRailError, ParseError, CompilationError, ValidationError
from .config import Configuration, configure, get_configuration, reset_configuration
from .lexer import Lexer
from .parser import ASTNode, NodeKind, Parser, parse
from .codegen import SolidityCodeGenerator, TranspilerDiagnostics
from .optimizer import Optimizer
from .validator import validate_source, validate_generated, raise_for_findings
from .compiler import Compiler, CompileResult

__all__ = [
    '__version__',
    'SolidRailError',
    'ParseError',
    'CompilationError',
    'ValidationError',
    'Configuration',
    'configure',
    'get_configuration',
    'reset_configuration',
    'Lexer',
    'ASTNode',
    'NodeKind',
    'Parser',
    'parse',
    'SolidityCodeGenerator',
    'TranspilerDiagnostics',
    'Optimizer',
    'validate_source',
    'validate_generated',
    'raise_for_findings',
    'Compiler',
    'CompileResult',
]
