"""
Lexer module for the Ruby to Solidity transpiler.

This module provides tokenization of Ruby source code.
"""

from .tokens import TokenType, Token, KEYWORDS, TWO_CHAR_OPS, SINGLE_CHAR_OPS
from .lexer import Lexer

__all__ = [
    'TokenType',
    'Token',
    'KEYWORDS',
    'TWO_CHAR_OPS',
    'SINGLE_CHAR_OPS',
    'Lexer',
]
