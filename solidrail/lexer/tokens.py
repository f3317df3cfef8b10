"""
Token definitions for the Ruby lexer.

Ruby keywords that the supported subset does not accept still get a token
type, so the parser can name them in its error messages.
"""

from dataclasses import dataclass
from enum import Enum, auto


class TokenType(Enum):
    """Enumeration of all token types recognized by the Ruby lexer."""

    # Keywords
    CLASS = auto()
    MODULE = auto()
    DEF = auto()
    END = auto()
    IF = auto()
    ELSIF = auto()
    ELSE = auto()
    UNLESS = auto()
    WHILE = auto()
    UNTIL = auto()
    FOR = auto()
    IN = auto()
    DO = auto()
    THEN = auto()
    RETURN = auto()
    BREAK = auto()
    NEXT = auto()
    TRUE = auto()
    FALSE = auto()
    NIL = auto()
    SELF = auto()
    AND = auto()
    OR = auto()
    NOT = auto()
    # Recognized only so the parser can reject them by name
    BEGIN = auto()
    RESCUE = auto()
    ENSURE = auto()
    CASE = auto()
    WHEN = auto()
    YIELD = auto()

    # Operators
    PLUS = auto()
    MINUS = auto()
    STAR = auto()
    SLASH = auto()
    PERCENT = auto()
    STAR_STAR = auto()
    AMPERSAND = auto()
    PIPE = auto()
    CARET = auto()
    TILDE = auto()
    LT = auto()
    GT = auto()
    LT_EQ = auto()
    GT_EQ = auto()
    EQ_EQ = auto()
    BANG_EQ = auto()
    AMPERSAND_AMPERSAND = auto()
    PIPE_PIPE = auto()
    BANG = auto()
    LT_LT = auto()
    GT_GT = auto()
    EQ = auto()
    PLUS_EQ = auto()
    MINUS_EQ = auto()
    STAR_EQ = auto()
    SLASH_EQ = auto()
    PERCENT_EQ = auto()
    STAR_STAR_EQ = auto()
    PIPE_PIPE_EQ = auto()
    QUESTION = auto()
    COLON = auto()
    COLON_COLON = auto()
    ARROW = auto()

    # Delimiters
    LPAREN = auto()
    RPAREN = auto()
    LBRACE = auto()
    RBRACE = auto()
    LBRACKET = auto()
    RBRACKET = auto()
    SEMICOLON = auto()
    COMMA = auto()
    DOT = auto()

    # Literals
    INTEGER = auto()
    FLOAT = auto()
    STRING = auto()
    INTERPOLATED_STRING = auto()
    SYMBOL = auto()
    LABEL = auto()
    IDENTIFIER = auto()
    CONSTANT = auto()
    IVAR = auto()

    # Special
    NEWLINE = auto()
    EOF = auto()


@dataclass
class Token:
    """Represents a single token from the lexer."""
    type: TokenType
    value: str
    line: int
    column: int
    spaced: bool = False  # preceded by whitespace on the same line


# Keyword to TokenType mapping
KEYWORDS = {
    'class': TokenType.CLASS,
    'module': TokenType.MODULE,
    'def': TokenType.DEF,
    'end': TokenType.END,
    'if': TokenType.IF,
    'elsif': TokenType.ELSIF,
    'else': TokenType.ELSE,
    'unless': TokenType.UNLESS,
    'while': TokenType.WHILE,
    'until': TokenType.UNTIL,
    'for': TokenType.FOR,
    'in': TokenType.IN,
    'do': TokenType.DO,
    'then': TokenType.THEN,
    'return': TokenType.RETURN,
    'break': TokenType.BREAK,
    'next': TokenType.NEXT,
    'true': TokenType.TRUE,
    'false': TokenType.FALSE,
    'nil': TokenType.NIL,
    'self': TokenType.SELF,
    'and': TokenType.AND,
    'or': TokenType.OR,
    'not': TokenType.NOT,
    'begin': TokenType.BEGIN,
    'rescue': TokenType.RESCUE,
    'ensure': TokenType.ENSURE,
    'case': TokenType.CASE,
    'when': TokenType.WHEN,
    'yield': TokenType.YIELD,
}

# Three-character operators
THREE_CHAR_OPS = {
    '**=': TokenType.STAR_STAR_EQ,
    '||=': TokenType.PIPE_PIPE_EQ,
}

# Two-character operators
TWO_CHAR_OPS = {
    '**': TokenType.STAR_STAR,
    '&&': TokenType.AMPERSAND_AMPERSAND,
    '||': TokenType.PIPE_PIPE,
    '==': TokenType.EQ_EQ,
    '!=': TokenType.BANG_EQ,
    '<=': TokenType.LT_EQ,
    '>=': TokenType.GT_EQ,
    '<<': TokenType.LT_LT,
    '>>': TokenType.GT_GT,
    '+=': TokenType.PLUS_EQ,
    '-=': TokenType.MINUS_EQ,
    '*=': TokenType.STAR_EQ,
    '/=': TokenType.SLASH_EQ,
    '%=': TokenType.PERCENT_EQ,
    '=>': TokenType.ARROW,
    '::': TokenType.COLON_COLON,
}

# Single-character operators and delimiters
SINGLE_CHAR_OPS = {
    '+': TokenType.PLUS,
    '-': TokenType.MINUS,
    '*': TokenType.STAR,
    '/': TokenType.SLASH,
    '%': TokenType.PERCENT,
    '&': TokenType.AMPERSAND,
    '|': TokenType.PIPE,
    '^': TokenType.CARET,
    '~': TokenType.TILDE,
    '<': TokenType.LT,
    '>': TokenType.GT,
    '!': TokenType.BANG,
    '=': TokenType.EQ,
    '?': TokenType.QUESTION,
    ':': TokenType.COLON,
    '(': TokenType.LPAREN,
    ')': TokenType.RPAREN,
    '{': TokenType.LBRACE,
    '}': TokenType.RBRACE,
    '[': TokenType.LBRACKET,
    ']': TokenType.RBRACKET,
    ';': TokenType.SEMICOLON,
    ',': TokenType.COMMA,
    '.': TokenType.DOT,
}

# A newline directly after one of these does not end the statement
CONTINUATION_TOKENS = {
    TokenType.PLUS, TokenType.MINUS, TokenType.STAR, TokenType.SLASH,
    TokenType.PERCENT, TokenType.STAR_STAR, TokenType.AMPERSAND, TokenType.PIPE,
    TokenType.CARET, TokenType.LT, TokenType.GT, TokenType.LT_EQ, TokenType.GT_EQ,
    TokenType.EQ_EQ, TokenType.BANG_EQ, TokenType.AMPERSAND_AMPERSAND,
    TokenType.PIPE_PIPE, TokenType.LT_LT, TokenType.GT_GT, TokenType.EQ,
    TokenType.PLUS_EQ, TokenType.MINUS_EQ, TokenType.STAR_EQ, TokenType.SLASH_EQ,
    TokenType.PERCENT_EQ, TokenType.STAR_STAR_EQ, TokenType.PIPE_PIPE_EQ,
    TokenType.QUESTION, TokenType.COLON, TokenType.ARROW, TokenType.LPAREN,
    TokenType.LBRACKET, TokenType.LBRACE, TokenType.COMMA, TokenType.DOT,
    TokenType.AND, TokenType.OR, TokenType.NOT, TokenType.LABEL,
}
