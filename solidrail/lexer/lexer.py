"""
Lexer implementation for Ruby source code.

The Lexer tokenizes Ruby source code into a stream of tokens
that can be consumed by the parser. Newlines are significant in Ruby, so
they are emitted as NEWLINE tokens except where a line obviously continues.
"""

from typing import List, Tuple

from ..errors import ParseError
from .tokens import (
    Token,
    TokenType,
    KEYWORDS,
    THREE_CHAR_OPS,
    TWO_CHAR_OPS,
    SINGLE_CHAR_OPS,
    CONTINUATION_TOKENS,
)

ESCAPES = {'n': '\n', 't': '\t', 'r': '\r', '0': '\0', 's': ' '}


class Lexer:
    """
    Lexer for Ruby source code.

    Converts source text into a list of tokens for parsing.
    """

    def __init__(self, source: str):
        self.source = source
        self.pos = 0
        self.line = 1
        self.column = 1
        self.tokens: List[Token] = []
        self._spaced = False

    def peek(self, offset: int = 0) -> str:
        """Look ahead in the source without consuming."""
        pos = self.pos + offset
        if pos >= len(self.source):
            return ''
        return self.source[pos]

    def advance(self) -> str:
        """Consume and return the current character."""
        ch = self.peek()
        self.pos += 1
        if ch == '\n':
            self.line += 1
            self.column = 1
        else:
            self.column += 1
        return ch

    def at_line_start(self) -> bool:
        return self.pos == 0 or self.source[self.pos - 1] == '\n'

    def skip_whitespace(self) -> None:
        """Skip spaces, tabs and escaped newlines (but not bare newlines)."""
        while True:
            ch = self.peek()
            if ch and ch in ' \t\r':
                self.advance()
                self._spaced = True
            elif ch == '\\' and self.peek(1) == '\n':
                self.advance()
                self.advance()
                self._spaced = True
            else:
                break

    def skip_comment(self) -> None:
        """Skip a '#' comment up to (not including) the newline."""
        while self.peek() and self.peek() != '\n':
            self.advance()

    def skip_block_comment(self) -> None:
        """Skip an =begin ... =end block comment."""
        start_line, start_col = self.line, self.column
        while self.peek():
            if self.at_line_start() and self.source.startswith('=end', self.pos):
                self.skip_comment()
                return
            self.advance()
        raise ParseError('Unterminated =begin comment', start_line, start_col)

    def read_string(self) -> Tuple[str, TokenType]:
        """Read a quoted string literal and return its decoded contents."""
        start_line, start_col = self.line, self.column
        quote = self.advance()
        result = ''
        interpolated = False
        while self.peek() and self.peek() != quote:
            ch = self.advance()
            if ch == '\\':
                nxt = self.advance()
                if quote == "'":
                    result += nxt if nxt in "\\'" else '\\' + nxt
                else:
                    result += ESCAPES.get(nxt, nxt)
                continue
            if quote == '"' and ch == '#' and self.peek() == '{':
                interpolated = True
            result += ch
        if self.peek() != quote:
            raise ParseError('Unterminated string literal', start_line, start_col)
        self.advance()
        token_type = TokenType.INTERPOLATED_STRING if interpolated else TokenType.STRING
        return result, token_type

    def read_number(self) -> Tuple[str, TokenType]:
        """Read a numeric literal (decimal, hex, binary or float)."""
        result = ''
        token_type = TokenType.INTEGER

        if self.peek() == '0' and self.peek(1) in ('x', 'X', 'b', 'B'):
            base_char = self.peek(1).lower()
            digits = '0123456789abcdefABCDEF_' if base_char == 'x' else '01_'
            self.advance()
            self.advance()
            while self.peek() and self.peek() in digits:
                ch = self.advance()
                if ch != '_':
                    result += ch
            return str(int(result, 16 if base_char == 'x' else 2)), token_type

        while self.peek() and self.peek() in '0123456789_':
            ch = self.advance()
            if ch != '_':
                result += ch
        # Handle decimal point; `3.times` is an integer followed by a call
        if self.peek() == '.' and self.peek(1).isdigit():
            token_type = TokenType.FLOAT
            result += self.advance()
            while self.peek() and self.peek() in '0123456789_':
                ch = self.advance()
                if ch != '_':
                    result += ch
        # Handle exponent
        if self.peek() in ('e', 'E') and (self.peek(1).isdigit() or self.peek(1) in '+-'):
            token_type = TokenType.FLOAT
            result += self.advance()
            if self.peek() in '+-':
                result += self.advance()
            while self.peek().isdigit():
                result += self.advance()

        return result, token_type

    def read_identifier(self) -> str:
        """Read an identifier, keeping a directly attached '?' or '!' suffix."""
        result = ''
        while self.peek() and (self.peek().isalnum() or self.peek() == '_'):
            result += self.advance()
        if self.peek() in ('?', '!') and self.peek(1) != '=':
            result += self.advance()
        return result

    def add_token(self, token_type: TokenType, value: str, line: int, column: int) -> None:
        """Add a token to the token list."""
        self.tokens.append(Token(token_type, value, line, column, self._spaced))
        self._spaced = False

    def add_newline(self, line: int, column: int) -> None:
        """Add a NEWLINE unless the statement obviously continues."""
        self._spaced = False
        if not self.tokens:
            return
        last = self.tokens[-1].type
        if last in (TokenType.NEWLINE, TokenType.SEMICOLON) or last in CONTINUATION_TOKENS:
            return
        self.tokens.append(Token(TokenType.NEWLINE, '\n', line, column))

    def _symbol_allowed(self) -> bool:
        """A ':' starts a symbol unless it follows a value with no space."""
        if not self.tokens:
            return True
        last = self.tokens[-1]
        if self._spaced:
            return True
        return last.type not in (
            TokenType.IDENTIFIER, TokenType.CONSTANT, TokenType.IVAR,
            TokenType.RPAREN, TokenType.RBRACKET,
        )

    def tokenize(self) -> List[Token]:
        """
        Tokenize the entire source and return a list of tokens.

        Returns:
            List of Token objects, ending with an EOF token.

        Raises:
            ParseError: on unterminated strings or characters outside the
                supported Ruby subset.
        """
        while self.pos < len(self.source):
            self.skip_whitespace()

            if self.pos >= len(self.source):
                break

            start_line = self.line
            start_col = self.column
            ch = self.peek()

            if ch == '\n':
                self.advance()
                self.add_newline(start_line, start_col)
                continue

            if ch == '=' and self.at_line_start() and self.source.startswith('=begin', self.pos):
                self.skip_block_comment()
                continue

            if ch == '#':
                self.skip_comment()
                continue

            if self.at_line_start() and self.source.startswith('__END__', self.pos):
                break

            # String literals
            if ch in '"\'':
                value, token_type = self.read_string()
                self.add_token(token_type, value, start_line, start_col)
                continue

            # Numbers
            if ch.isdigit():
                value, token_type = self.read_number()
                self.add_token(token_type, value, start_line, start_col)
                continue

            # Instance variables
            if ch == '@':
                self.advance()
                if self.peek() == '@':
                    raise ParseError('Class variables (@@) are not supported', start_line, start_col)
                name = self.read_identifier()
                if not name:
                    raise ParseError("Expected instance variable name after '@'", start_line, start_col)
                self.add_token(TokenType.IVAR, name, start_line, start_col)
                continue

            if ch == '$':
                raise ParseError('Global variables are not supported', start_line, start_col)

            # Symbols
            if ch == ':' and self.peek(1) != ':' and (self.peek(1).isalpha() or self.peek(1) == '_') \
                    and self._symbol_allowed():
                self.advance()
                name = self.read_identifier()
                self.add_token(TokenType.SYMBOL, name, start_line, start_col)
                continue
            if ch == ':' and self.peek(1) in '"\'' and self._symbol_allowed():
                self.advance()
                value, _ = self.read_string()
                self.add_token(TokenType.SYMBOL, value, start_line, start_col)
                continue

            # Identifiers, constants, keywords and hash labels
            if ch.isalpha() or ch == '_':
                value = self.read_identifier()
                previous = self.tokens[-1].type if self.tokens else None
                if self.peek() == ':' and self.peek(1) != ':' and value[-1] not in '?!':
                    self.advance()
                    self.add_token(TokenType.LABEL, value, start_line, start_col)
                    continue
                token_type = KEYWORDS.get(value)
                if token_type is None or previous == TokenType.DOT:
                    token_type = TokenType.CONSTANT if value[0].isupper() else TokenType.IDENTIFIER
                self.add_token(token_type, value, start_line, start_col)
                continue

            # Multi-character operators
            three_char = self.source[self.pos:self.pos + 3]
            if three_char in THREE_CHAR_OPS:
                for _ in range(3):
                    self.advance()
                self.add_token(THREE_CHAR_OPS[three_char], three_char, start_line, start_col)
                continue

            two_char = self.source[self.pos:self.pos + 2]
            if two_char in TWO_CHAR_OPS:
                self.advance()
                self.advance()
                self.add_token(TWO_CHAR_OPS[two_char], two_char, start_line, start_col)
                continue

            if ch == '`' or (ch == '%' and self.peek(1) and self.peek(1) in 'xwiWIqQr'
                             and self.peek(2) and self.peek(2) in '([{<|!/'):
                raise ParseError(f"Unsupported literal starting with {ch + self.peek(1)!r}",
                                 start_line, start_col)

            # Single-character operators and delimiters
            if ch in SINGLE_CHAR_OPS:
                self.advance()
                self.add_token(SINGLE_CHAR_OPS[ch], ch, start_line, start_col)
                continue

            raise ParseError(f'Unexpected character {ch!r}', start_line, start_col)

        self.add_newline(self.line, self.column)
        self.tokens.append(Token(TokenType.EOF, '', self.line, self.column))
        return self.tokens
