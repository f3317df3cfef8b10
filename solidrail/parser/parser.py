"""
Ruby parser implementation.

The Parser converts a stream of tokens from the Lexer into an immutable
Abstract Syntax Tree of ASTNode values. Only the Ruby subset that has a
sensible Solidity counterpart is accepted; everything else is rejected with a
ParseError that points at the offending token.
"""

from typing import List, Optional, Set

from ..errors import ParseError
from ..lexer import Lexer, Token, TokenType
from .ast_nodes import ASTNode, NodeKind


MARKER_NAMES = frozenset({'private', 'protected', 'public', 'pure', 'view', 'payable'})
ATTR_NAMES = frozenset({'attr_reader', 'attr_writer', 'attr_accessor'})
IMPORT_NAMES = frozenset({'require', 'require_relative'})
BLOCK_LOOPS = frozenset({'each', 'each_with_index', 'times'})

ASSIGNMENT_OPS = {
    TokenType.EQ: '=',
    TokenType.PLUS_EQ: '+=',
    TokenType.MINUS_EQ: '-=',
    TokenType.STAR_EQ: '*=',
    TokenType.SLASH_EQ: '/=',
    TokenType.PERCENT_EQ: '%=',
    TokenType.STAR_STAR_EQ: '**=',
    TokenType.PIPE_PIPE_EQ: '||=',
}

UNSUPPORTED_KEYWORDS = {
    TokenType.BEGIN: 'begin/rescue blocks are not supported',
    TokenType.RESCUE: 'rescue clauses are not supported',
    TokenType.ENSURE: 'ensure clauses are not supported',
    TokenType.CASE: 'case expressions are not supported',
    TokenType.WHEN: 'case expressions are not supported',
    TokenType.YIELD: 'yield is not supported',
}

# Tokens that may start the first argument of a parenthesis-less command call
COMMAND_ARG_STARTS = {
    TokenType.IDENTIFIER, TokenType.CONSTANT, TokenType.IVAR, TokenType.INTEGER,
    TokenType.FLOAT, TokenType.STRING, TokenType.INTERPOLATED_STRING,
    TokenType.SYMBOL, TokenType.LABEL, TokenType.TRUE, TokenType.FALSE,
    TokenType.NIL, TokenType.SELF, TokenType.NOT, TokenType.BANG,
    TokenType.LBRACKET, TokenType.LPAREN,
}

STATEMENT_END = (TokenType.NEWLINE, TokenType.SEMICOLON)
MODIFIERS = (TokenType.IF, TokenType.UNLESS, TokenType.WHILE, TokenType.UNTIL)


class Parser:
    """
    Recursive descent parser for Ruby source code.

    Parses a stream of tokens into an AST (Abstract Syntax Tree). Local
    variable names are tracked per method, as Ruby does, to tell a local
    variable reference from a parenthesis-less method call.
    """

    def __init__(self, tokens: List[Token]):
        self.tokens = tokens
        self.pos = 0
        self._scopes: List[Set[str]] = [set()]
        self._no_do = 0

    def peek(self, offset: int = 0) -> Token:
        """Look ahead in the token stream without consuming."""
        pos = self.pos + offset
        if pos >= len(self.tokens):
            return self.tokens[-1]  # Return EOF
        return self.tokens[pos]

    def current(self) -> Token:
        """Return the current token."""
        return self.peek()

    def advance(self) -> Token:
        """Consume and return the current token."""
        token = self.current()
        self.pos += 1
        return token

    def match(self, *types: TokenType) -> bool:
        """Check if current token matches any of the given types."""
        return self.current().type in types

    def expect(self, token_type: TokenType, message: str = '') -> Token:
        """Consume the current token if it matches, otherwise raise an error."""
        token = self.current()
        if token.type != token_type:
            found = repr(token.value) if token.value.strip() else token.type.name
            detail = f': {message}' if message else ''
            raise ParseError(f'Expected {token_type.name} but got {found}{detail}', token.line, token.column)
        return self.advance()

    def error(self, message: str, token: Optional[Token] = None) -> ParseError:
        token = token or self.current()
        return ParseError(message, token.line, token.column)

    def node(self, kind: NodeKind, token: Token, children=(), value=None) -> ASTNode:
        return ASTNode(kind=kind, children=tuple(children), value=value, line=token.line, column=token.column)

    def skip_newlines(self) -> None:
        while self.match(TokenType.NEWLINE):
            self.advance()

    def skip_terminators(self) -> None:
        while self.match(TokenType.NEWLINE, TokenType.SEMICOLON):
            self.advance()

    # =========================================================================
    # SCOPES
    # =========================================================================

    def declare_local(self, name: str) -> None:
        self._scopes[-1].add(name)

    def is_local(self, name: str) -> bool:
        return any(name in scope for scope in self._scopes)

    # =========================================================================
    # TOP-LEVEL PARSING
    # =========================================================================

    def parse(self) -> ASTNode:
        """Parse the entire token stream into a PROGRAM node."""
        start = self.current()
        statements = []
        self.skip_terminators()
        while not self.match(TokenType.EOF):
            statements.extend(self.parse_top_level_statement())
            self.end_statement()
        return self.node(NodeKind.PROGRAM, start, statements)

    def parse_top_level_statement(self) -> List[ASTNode]:
        token = self.current()
        if token.type == TokenType.IDENTIFIER and token.value in IMPORT_NAMES \
                and self.peek(1).type == TokenType.STRING:
            return [self.parse_import()]
        if token.type == TokenType.IDENTIFIER and token.value in IMPORT_NAMES \
                and self.peek(1).type == TokenType.LPAREN and self.peek(2).type == TokenType.STRING \
                and self.peek(3).type == TokenType.RPAREN:
            return [self.parse_import()]
        return self.parse_class_statement()

    def parse_import(self) -> ASTNode:
        """Parse `require 'path'` / `require_relative 'path'`."""
        keyword = self.advance()
        parenthesized = self.match(TokenType.LPAREN)
        if parenthesized:
            self.advance()
        path = self.expect(TokenType.STRING)
        if parenthesized:
            self.expect(TokenType.RPAREN)
        literal = self.node(NodeKind.LITERAL, path, value=path.value)
        return self.node(NodeKind.IMPORT, keyword, [literal], value=keyword.value)

    def end_statement(self) -> None:
        """Require a statement terminator unless a block closer follows."""
        if self.match(TokenType.NEWLINE, TokenType.SEMICOLON):
            self.skip_terminators()
            return
        if self.match(TokenType.EOF, TokenType.END, TokenType.ELSE, TokenType.ELSIF, TokenType.RBRACE):
            return
        token = self.current()
        raise self.error(f'Unexpected {token.value!r} after statement', token)

    # =========================================================================
    # CLASS AND MODULE PARSING
    # =========================================================================

    def parse_constant_path(self) -> ASTNode:
        """Parse `Name` or `Scope::Name` into a CONSTANT leaf."""
        token = self.expect(TokenType.CONSTANT, 'expected a constant name')
        name = token.value
        while self.match(TokenType.COLON_COLON):
            self.advance()
            name += '::' + self.expect(TokenType.CONSTANT).value
        return self.node(NodeKind.CONSTANT, token, value=name)

    def parse_class(self) -> ASTNode:
        """Parse `class Name [< Parent] ... end`."""
        keyword = self.expect(TokenType.CLASS)
        if self.match(TokenType.LT_LT):
            raise self.error('Singleton class blocks (class << self) are not supported')
        if not self.match(TokenType.CONSTANT):
            raise self.error('Expected class name')
        children = [self.parse_constant_path()]
        if self.match(TokenType.LT):
            self.advance()
            children.append(self.parse_constant_path())
        children.append(self.parse_declaration_body())
        self.expect(TokenType.END, 'expected end of class')
        return self.node(NodeKind.CLASS, keyword, children)

    def parse_module(self) -> ASTNode:
        """Parse `module Name ... end`."""
        keyword = self.expect(TokenType.MODULE)
        if not self.match(TokenType.CONSTANT):
            raise self.error('Expected module name')
        name = self.parse_constant_path()
        body = self.parse_declaration_body()
        self.expect(TokenType.END, 'expected end of module')
        return self.node(NodeKind.MODULE, keyword, [name, body])

    def parse_declaration_body(self) -> ASTNode:
        start = self.current()
        outer_scopes = self._scopes
        self._scopes = [set()]
        statements = []
        self.skip_terminators()
        while not self.match(TokenType.END, TokenType.EOF):
            statements.extend(self.parse_class_statement())
            self.end_statement()
        if self.match(TokenType.EOF):
            raise self.error("Unexpected end of input, expected 'end'")
        self._scopes = outer_scopes
        return self.node(NodeKind.BODY, start, statements)

    def parse_class_statement(self) -> List[ASTNode]:
        """Parse one statement of a class body (also used at top level)."""
        token = self.current()
        if token.type == TokenType.CLASS:
            return [self.parse_class()]
        if token.type == TokenType.MODULE:
            return [self.parse_module()]
        if token.type == TokenType.DEF:
            return [self.parse_def([])]
        if token.type == TokenType.IDENTIFIER and not self.is_local(token.value):
            if token.value in MARKER_NAMES:
                markers = self.parse_markers()
                if markers is not None:
                    return markers
            elif token.value == 'include' and self.peek(1).type == TokenType.CONSTANT:
                return self.parse_include()
            elif token.value in ATTR_NAMES and self.peek(1).type == TokenType.SYMBOL:
                return [self.parse_attr()]
        return [self.parse_statement()]

    def parse_markers(self) -> Optional[List[ASTNode]]:
        """Parse bare marker lines and `private view def ...` prefixes.

        Returns None when the identifier is not used as a marker here.
        """
        offset = 0
        while self.peek(offset).type == TokenType.IDENTIFIER and self.peek(offset).value in MARKER_NAMES:
            offset += 1
        after = self.peek(offset)
        if after.type == TokenType.DEF:
            markers = [self.advance() for _ in range(offset)]
            return [self.parse_def(markers)]
        if offset == 1 and after.type in (TokenType.NEWLINE, TokenType.SEMICOLON, TokenType.END,
                                          TokenType.EOF):
            token = self.advance()
            return [self.node(NodeKind.MARKER, token, value=token.value)]
        return None

    def parse_include(self) -> List[ASTNode]:
        keyword = self.advance()
        nodes = [self.node(NodeKind.INCLUDE, keyword, [self.parse_constant_path()])]
        while self.match(TokenType.COMMA):
            self.advance()
            nodes.append(self.node(NodeKind.INCLUDE, keyword, [self.parse_constant_path()]))
        return nodes

    def parse_attr(self) -> ASTNode:
        keyword = self.advance()
        symbols = []
        while True:
            token = self.expect(TokenType.SYMBOL, f'{keyword.value} expects symbols')
            symbols.append(self.node(NodeKind.SYMBOL, token, value=token.value))
            if not self.match(TokenType.COMMA):
                break
            self.advance()
        return self.node(NodeKind.ATTR, keyword, symbols, value=keyword.value)

    # =========================================================================
    # METHOD PARSING
    # =========================================================================

    def parse_def(self, marker_tokens: List[Token]) -> ASTNode:
        """Parse `def name(params) ... end`."""
        keyword = self.expect(TokenType.DEF)
        if self.match(TokenType.SELF):
            raise self.error('Singleton methods (def self.x) are not supported')
        name_token = self.current()
        if name_token.type not in (TokenType.IDENTIFIER, TokenType.CONSTANT):
            raise self.error('Expected method name')
        self.advance()
        name = name_token.value
        # Setter methods: def owner=(value)
        if self.match(TokenType.EQ) and not self.current().spaced and self.peek(1).type == TokenType.LPAREN:
            self.advance()
            name += '='

        outer_scopes = self._scopes
        self._scopes = [set()]

        params = []
        params_token = self.current()
        if self.match(TokenType.LPAREN):
            self.advance()
            self.skip_newlines()
            while not self.match(TokenType.RPAREN):
                params.append(self.parse_param())
                self.skip_newlines()
                if not self.match(TokenType.COMMA):
                    break
                self.advance()
                self.skip_newlines()
            self.expect(TokenType.RPAREN)
        elif self.match(TokenType.IDENTIFIER):
            while True:
                params.append(self.parse_param())
                if not self.match(TokenType.COMMA):
                    break
                self.advance()

        body = self.parse_body((TokenType.END,))
        self.expect(TokenType.END, f"expected 'end' to close method {name}")
        self._scopes = outer_scopes

        markers = [self.node(NodeKind.MARKER, tok, value=tok.value) for tok in marker_tokens]
        children = [
            self.node(NodeKind.IDENTIFIER, name_token, value=name),
            self.node(NodeKind.PARAMS, params_token, params),
            body,
        ] + markers
        return self.node(NodeKind.METHOD_DEF, keyword, children)

    def parse_param(self) -> ASTNode:
        token = self.current()
        if token.type in (TokenType.STAR, TokenType.STAR_STAR, TokenType.AMPERSAND):
            raise self.error('Splat and block parameters are not supported', token)
        if token.type == TokenType.LABEL:
            raise self.error('Keyword parameters are not supported', token)
        name = self.expect(TokenType.IDENTIFIER, 'expected parameter name')
        self.declare_local(name.value)
        children = [self.node(NodeKind.IDENTIFIER, name, value=name.value)]
        if self.match(TokenType.EQ):
            self.advance()
            children.append(self.parse_ternary())
        return self.node(NodeKind.PARAM, token, children)

    # =========================================================================
    # STATEMENT PARSING
    # =========================================================================

    def parse_body(self, closers) -> ASTNode:
        """Parse statements until one of the closing tokens (not consumed)."""
        start = self.current()
        statements = []
        self.skip_terminators()
        while not self.match(*closers):
            if self.match(TokenType.EOF):
                expected = ' or '.join(repr(t.name.lower()) for t in closers)
                raise self.error(f'Unexpected end of input, expected {expected}')
            statements.extend(self.parse_class_statement())
            self.end_statement()
        return self.node(NodeKind.BODY, start, statements)

    def parse_statement(self) -> ASTNode:
        """Parse a statement, including trailing `if`/`unless`/`while` modifiers."""
        token = self.current()
        if token.type in UNSUPPORTED_KEYWORDS:
            raise self.error(UNSUPPORTED_KEYWORDS[token.type], token)

        if token.type in (TokenType.IF, TokenType.UNLESS):
            stmt = self.parse_if()
        elif token.type in (TokenType.WHILE, TokenType.UNTIL):
            stmt = self.parse_while()
        elif token.type == TokenType.FOR:
            stmt = self.parse_for()
        elif token.type == TokenType.RETURN:
            self.advance()
            children = []
            if not self.at_expression_end():
                children.append(self.parse_expression())
            stmt = self.node(NodeKind.RETURN, token, children)
        elif token.type == TokenType.BREAK:
            self.advance()
            stmt = self.node(NodeKind.BREAK, token, value='break')
        elif token.type == TokenType.NEXT:
            self.advance()
            stmt = self.node(NodeKind.NEXT, token, value='next')
        else:
            stmt = self.parse_expression_statement()

        while self.match(*MODIFIERS):
            modifier = self.advance()
            condition = self.parse_expression()
            body = self.node(NodeKind.BODY, modifier, [stmt])
            if modifier.type in (TokenType.IF, TokenType.UNLESS):
                stmt = self.node(NodeKind.CONDITIONAL, token, [condition, body], value=modifier.value)
            else:
                stmt = self.node(NodeKind.LOOP, token, [condition, body], value=modifier.value)
        return stmt

    def at_expression_end(self) -> bool:
        return self.match(TokenType.NEWLINE, TokenType.SEMICOLON, TokenType.EOF, TokenType.END,
                          TokenType.RBRACE, *MODIFIERS)

    def parse_expression_statement(self) -> ASTNode:
        """Parse an expression, or an assignment whose target is that expression."""
        start = self.current()
        target = self.parse_expression()
        if self.current().type not in ASSIGNMENT_OPS:
            return target

        op_token = self.advance()
        if target.kind not in (NodeKind.IDENTIFIER, NodeKind.IVAR, NodeKind.INDEX,
                               NodeKind.CONSTANT, NodeKind.METHOD_CALL):
            raise self.error(f'Invalid assignment target ({target.kind.value})', start)
        if target.kind == NodeKind.METHOD_CALL and call_has_args(target):
            raise self.error('Invalid assignment target (method call)', start)
        if target.kind == NodeKind.IDENTIFIER:
            self.declare_local(target.value)
        self.skip_newlines()
        value = self.parse_expression_statement()
        return self.node(NodeKind.ASSIGNMENT, start, [target, value], value=ASSIGNMENT_OPS[op_token.type])

    def parse_if(self) -> ASTNode:
        """Parse if/elsif/else/end and unless/else/end."""
        keyword = self.advance()
        children = []
        condition = self.parse_expression()
        self.skip_then()
        children.extend([condition, self.parse_body((TokenType.ELSIF, TokenType.ELSE, TokenType.END))])
        while self.match(TokenType.ELSIF):
            if keyword.type == TokenType.UNLESS:
                raise self.error('unless cannot have elsif branches')
            self.advance()
            condition = self.parse_expression()
            self.skip_then()
            children.extend([condition, self.parse_body((TokenType.ELSIF, TokenType.ELSE, TokenType.END))])
        if self.match(TokenType.ELSE):
            self.advance()
            children.append(self.parse_body((TokenType.END,)))
        self.expect(TokenType.END, f"expected 'end' to close {keyword.value}")
        return self.node(NodeKind.CONDITIONAL, keyword, children, value=keyword.value)

    def skip_then(self) -> None:
        if self.match(TokenType.THEN):
            self.advance()

    def parse_while(self) -> ASTNode:
        keyword = self.advance()
        self._no_do += 1
        condition = self.parse_expression()
        self._no_do -= 1
        if self.match(TokenType.DO):
            self.advance()
        body = self.parse_body((TokenType.END,))
        self.expect(TokenType.END, f"expected 'end' to close {keyword.value}")
        return self.node(NodeKind.LOOP, keyword, [condition, body], value=keyword.value)

    def parse_for(self) -> ASTNode:
        """Parse `for x in items ... end`."""
        keyword = self.expect(TokenType.FOR)
        names = []
        while True:
            name = self.expect(TokenType.IDENTIFIER, 'expected loop variable')
            self.declare_local(name.value)
            names.append(self.node(NodeKind.IDENTIFIER, name, value=name.value))
            if not self.match(TokenType.COMMA):
                break
            self.advance()
        self.expect(TokenType.IN)
        self._no_do += 1
        subject = self.parse_expression()
        self._no_do -= 1
        if self.match(TokenType.DO):
            self.advance()
        body = self.parse_body((TokenType.END,))
        self.expect(TokenType.END, "expected 'end' to close for")
        params = self.node(NodeKind.BLOCK_PARAMS, keyword, names)
        return self.node(NodeKind.LOOP, keyword, [subject, params, body], value='for')

    # =========================================================================
    # EXPRESSION PARSING
    # =========================================================================

    def parse_expression(self) -> ASTNode:
        """Parse an expression (lowest precedence: `and` / `or`)."""
        left = self.parse_not_keyword()
        while self.match(TokenType.AND, TokenType.OR):
            token = self.advance()
            self.skip_newlines()
            right = self.parse_not_keyword()
            op = '&&' if token.type == TokenType.AND else '||'
            left = self.node(NodeKind.BINARY, token, [left, right], value=op)
        return left

    def parse_not_keyword(self) -> ASTNode:
        if self.match(TokenType.NOT):
            token = self.advance()
            operand = self.parse_not_keyword()
            return self.node(NodeKind.UNARY, token, [operand], value='!')
        return self.parse_ternary()

    def parse_ternary(self) -> ASTNode:
        condition = self.parse_or()
        if self.match(TokenType.QUESTION):
            token = self.advance()
            self.skip_newlines()
            when_true = self.parse_ternary()
            self.skip_newlines()
            self.expect(TokenType.COLON, "expected ':' in conditional expression")
            self.skip_newlines()
            when_false = self.parse_ternary()
            return self.node(NodeKind.TERNARY, token, [condition, when_true, when_false])
        return condition

    def _binary_level(self, operand, *types: TokenType) -> ASTNode:
        left = operand()
        while self.match(*types):
            token = self.advance()
            self.skip_newlines()
            right = operand()
            left = self.node(NodeKind.BINARY, token, [left, right], value=token.value)
        return left

    def parse_or(self) -> ASTNode:
        return self._binary_level(self.parse_and, TokenType.PIPE_PIPE)

    def parse_and(self) -> ASTNode:
        return self._binary_level(self.parse_equality, TokenType.AMPERSAND_AMPERSAND)

    def parse_equality(self) -> ASTNode:
        return self._binary_level(self.parse_comparison, TokenType.EQ_EQ, TokenType.BANG_EQ)

    def parse_comparison(self) -> ASTNode:
        return self._binary_level(self.parse_bitwise_or, TokenType.LT, TokenType.GT,
                                  TokenType.LT_EQ, TokenType.GT_EQ)

    def parse_bitwise_or(self) -> ASTNode:
        return self._binary_level(self.parse_bitwise_and, TokenType.PIPE, TokenType.CARET)

    def parse_bitwise_and(self) -> ASTNode:
        return self._binary_level(self.parse_shift, TokenType.AMPERSAND)

    def parse_shift(self) -> ASTNode:
        return self._binary_level(self.parse_additive, TokenType.LT_LT, TokenType.GT_GT)

    def parse_additive(self) -> ASTNode:
        return self._binary_level(self.parse_multiplicative, TokenType.PLUS, TokenType.MINUS)

    def parse_multiplicative(self) -> ASTNode:
        return self._binary_level(self.parse_negation, TokenType.STAR, TokenType.SLASH, TokenType.PERCENT)

    def parse_negation(self) -> ASTNode:
        """Parse unary minus (binds looser than `**` in Ruby)."""
        if self.match(TokenType.MINUS):
            token = self.advance()
            operand = self.parse_negation()
            return self.node(NodeKind.UNARY, token, [operand], value='-')
        return self.parse_exponentiation()

    def parse_exponentiation(self) -> ASTNode:
        """Parse an exponentiation expression (right-associative)."""
        left = self.parse_unary()
        if self.match(TokenType.STAR_STAR):
            token = self.advance()
            right = self.parse_negation()
            return self.node(NodeKind.BINARY, token, [left, right], value='**')
        return left

    def parse_unary(self) -> ASTNode:
        if self.match(TokenType.BANG, TokenType.TILDE):
            token = self.advance()
            operand = self.parse_unary()
            return self.node(NodeKind.UNARY, token, [operand], value=token.value)
        return self.parse_postfix()

    def parse_postfix(self) -> ASTNode:
        """Parse method calls, indexing and scoped constants after a primary."""
        expr = self.parse_primary()

        while True:
            if self.match(TokenType.DOT):
                self.advance()
                self.skip_newlines()
                name = self.current()
                if name.type not in (TokenType.IDENTIFIER, TokenType.CONSTANT):
                    raise self.error('Expected method name after "."')
                self.advance()
                args = []
                if self.match(TokenType.LPAREN) and not self.current().spaced:
                    args = self.parse_call_arguments()
                expr = self.parse_call_tail(NodeKind.METHOD_CALL, name, args, receiver=expr)
            elif self.match(TokenType.LBRACKET) and not self.current().spaced:
                token = self.advance()
                self.skip_newlines()
                index = self.parse_expression()
                self.skip_newlines()
                if self.match(TokenType.COMMA):
                    raise self.error('Multiple index arguments are not supported')
                self.expect(TokenType.RBRACKET)
                expr = self.node(NodeKind.INDEX, token, [expr, index])
            elif self.match(TokenType.COLON_COLON) and expr.kind == NodeKind.CONSTANT:
                self.advance()
                name = self.expect(TokenType.CONSTANT)
                expr = ASTNode(NodeKind.CONSTANT, value=f'{expr.value}::{name.value}',
                               line=expr.line, column=expr.column)
            else:
                break

        return expr

    def parse_call_arguments(self) -> List[ASTNode]:
        """Parse a parenthesized argument list."""
        self.expect(TokenType.LPAREN)
        self.skip_newlines()
        args = self.parse_argument_list((TokenType.RPAREN,))
        self.skip_newlines()
        self.expect(TokenType.RPAREN)
        return args

    def parse_argument_list(self, closers) -> List[ASTNode]:
        """Parse comma-separated arguments; trailing `key: value` pairs form a hash."""
        args = []
        pairs = []
        start = self.current()
        while not self.match(*closers) and not self.at_expression_end_for_command(closers):
            if self.match(TokenType.LABEL):
                pairs.append(self.parse_label_pair())
            else:
                expr = self.parse_ternary_with_not()
                if self.match(TokenType.ARROW):
                    arrow = self.advance()
                    pairs.append(self.node(NodeKind.PAIR, arrow, [expr, self.parse_ternary_with_not()]))
                else:
                    args.append(expr)
            if not self.match(TokenType.COMMA):
                break
            self.advance()
            self.skip_newlines()
        if pairs:
            args.append(self.node(NodeKind.HASH, start, pairs))
        return args

    def at_expression_end_for_command(self, closers) -> bool:
        if TokenType.RPAREN in closers:
            return False
        return self.at_expression_end() or self.match(TokenType.DO)

    def parse_ternary_with_not(self) -> ASTNode:
        if self.match(TokenType.NOT):
            return self.parse_not_keyword()
        return self.parse_ternary()

    def parse_label_pair(self) -> ASTNode:
        label = self.advance()
        key = self.node(NodeKind.SYMBOL, label, value=label.value)
        self.skip_newlines()
        return self.node(NodeKind.PAIR, label, [key, self.parse_ternary_with_not()])

    def parse_call_tail(self, kind: NodeKind, name: Token, args: List[ASTNode],
                        receiver: Optional[ASTNode] = None) -> ASTNode:
        """Attach an optional block and build the call (or loop) node."""
        block = self.parse_block_if_present()
        if block is not None and receiver is not None and name.value in BLOCK_LOOPS and not args:
            params, body = block.children
            return self.node(NodeKind.LOOP, name, [receiver, params, body], value=name.value)
        children = [] if receiver is None else [receiver]
        children.append(self.node(NodeKind.ARGS, name, args))
        if block is not None:
            children.append(block)
        return self.node(kind, name, children, value=name.value)

    def parse_block_if_present(self) -> Optional[ASTNode]:
        if self.match(TokenType.DO) and not self._no_do:
            closer = TokenType.END
        elif self.match(TokenType.LBRACE):
            closer = TokenType.RBRACE
        else:
            return None
        opener = self.advance()
        outer_no_do = self._no_do
        self._no_do = 0
        self._scopes.append(set())
        names = []
        if self.match(TokenType.PIPE):
            self.advance()
            while not self.match(TokenType.PIPE):
                name = self.expect(TokenType.IDENTIFIER, 'expected block parameter')
                self.declare_local(name.value)
                names.append(self.node(NodeKind.IDENTIFIER, name, value=name.value))
                if not self.match(TokenType.COMMA):
                    break
                self.advance()
            self.expect(TokenType.PIPE)
        body = self.parse_body((closer,))
        self.expect(closer, 'expected end of block')
        self._scopes.pop()
        self._no_do = outer_no_do
        params = self.node(NodeKind.BLOCK_PARAMS, opener, names)
        return self.node(NodeKind.BLOCK, opener, [params, body])

    def starts_command_argument(self) -> bool:
        """Whether the current token begins the argument of `name arg` syntax."""
        token = self.current()
        return token.spaced and token.type in COMMAND_ARG_STARTS

    def parse_primary(self) -> ASTNode:
        """Parse a primary expression."""
        token = self.current()

        if token.type == TokenType.INTEGER:
            self.advance()
            return self.node(NodeKind.LITERAL, token, value=int(token.value))
        if token.type == TokenType.FLOAT:
            self.advance()
            return self.node(NodeKind.LITERAL, token, value=float(token.value))
        if token.type == TokenType.STRING:
            self.advance()
            return self.node(NodeKind.LITERAL, token, value=token.value)
        if token.type == TokenType.INTERPOLATED_STRING:
            self.advance()
            return self.node(NodeKind.INTERPOLATED_STRING, token, value=token.value)
        if token.type == TokenType.SYMBOL:
            self.advance()
            return self.node(NodeKind.SYMBOL, token, value=token.value)
        if token.type in (TokenType.TRUE, TokenType.FALSE):
            self.advance()
            return self.node(NodeKind.LITERAL, token, value=token.type == TokenType.TRUE)
        if token.type == TokenType.NIL:
            self.advance()
            return self.node(NodeKind.LITERAL, token, value=None)
        if token.type == TokenType.SELF:
            self.advance()
            return self.node(NodeKind.SELF, token, value='self')
        if token.type == TokenType.IVAR:
            self.advance()
            return self.node(NodeKind.IVAR, token, value=token.value)

        if token.type == TokenType.CONSTANT:
            self.advance()
            if self.match(TokenType.LPAREN) and not self.current().spaced:
                args = self.parse_call_arguments()
                return self.parse_call_tail(NodeKind.CALL, token, args)
            return self.node(NodeKind.CONSTANT, token, value=token.value)

        if token.type == TokenType.IDENTIFIER:
            self.advance()
            if self.match(TokenType.LPAREN) and not self.current().spaced:
                args = self.parse_call_arguments()
                return self.parse_call_tail(NodeKind.CALL, token, args)
            if self.is_local(token.value):
                return self.node(NodeKind.IDENTIFIER, token, value=token.value)
            if self.starts_command_argument():
                args = self.parse_argument_list(())
                return self.parse_call_tail(NodeKind.CALL, token, args)
            if self.match(TokenType.DO) and not self._no_do:
                return self.parse_call_tail(NodeKind.CALL, token, [])
            return self.node(NodeKind.IDENTIFIER, token, value=token.value)

        if token.type == TokenType.LPAREN:
            self.advance()
            self.skip_newlines()
            if self.match(TokenType.RPAREN):
                self.advance()
                return self.node(NodeKind.LITERAL, token, value=None)
            expr = self.parse_expression_statement()
            self.skip_newlines()
            self.expect(TokenType.RPAREN)
            return expr

        if token.type == TokenType.LBRACKET:
            self.advance()
            self.skip_newlines()
            elements = []
            while not self.match(TokenType.RBRACKET):
                elements.append(self.parse_ternary_with_not())
                self.skip_newlines()
                if not self.match(TokenType.COMMA):
                    break
                self.advance()
                self.skip_newlines()
            self.expect(TokenType.RBRACKET)
            return self.node(NodeKind.ARRAY, token, elements)

        if token.type == TokenType.LBRACE:
            return self.parse_hash()

        if token.type in UNSUPPORTED_KEYWORDS:
            raise self.error(UNSUPPORTED_KEYWORDS[token.type], token)
        if token.type == TokenType.EOF:
            raise self.error('Unexpected end of input')
        found = repr(token.value) if token.value.strip() else token.type.name
        raise self.error(f'Unexpected token {found}', token)

    def parse_hash(self) -> ASTNode:
        """Parse `{ key => value, label: value }`."""
        token = self.expect(TokenType.LBRACE)
        self.skip_newlines()
        pairs = []
        while not self.match(TokenType.RBRACE):
            if self.match(TokenType.LABEL):
                pairs.append(self.parse_label_pair())
            else:
                key = self.parse_ternary()
                self.skip_newlines()
                arrow = self.expect(TokenType.ARROW, "expected '=>' in hash literal")
                self.skip_newlines()
                pairs.append(self.node(NodeKind.PAIR, arrow, [key, self.parse_ternary()]))
            self.skip_newlines()
            if not self.match(TokenType.COMMA):
                break
            self.advance()
            self.skip_newlines()
        self.expect(TokenType.RBRACE)
        return self.node(NodeKind.HASH, token, pairs)


def call_has_args(node: ASTNode) -> bool:
    args = node.child(NodeKind.ARGS)
    return bool(args is not None and args.children)


def parse(source: str) -> ASTNode:
    """Tokenize and parse Ruby source into a PROGRAM node.

    Raises:
        ParseError: when the source is not valid in the supported subset.
    """
    tokens = Lexer(source).tokenize()
    return Parser(tokens).parse()
