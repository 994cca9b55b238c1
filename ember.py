#!/usr/bin/env python3
"""
EMBER - A small scripting language with closures, classes and hashes
Version 1.0
"""

import sys
import os
import math
import logging
import argparse
import threading

try:
    import readline
    import atexit
    HAVE_READLINE = True
except ImportError:
    HAVE_READLINE = False

from typing import List, Dict, Any, Optional, Tuple, Union, Callable, Iterable, NamedTuple
from enum import Enum, IntEnum
from pathlib import Path

__version__ = "1.0.0"

logger = logging.getLogger("ember")
logger.addHandler(logging.NullHandler())

SOURCE_EXTENSION = ".ember"


# ============================================================================
# 1. ERROR HANDLING
# ============================================================================

class EmberError(Exception):
    """Base class for host-level EMBER errors"""
    def __init__(self, message, line=None, col=None, source=None):
        self.message = message
        self.line = line
        self.col = col
        self.source = source
        super().__init__(self._format_message())

    def _format_message(self):
        if self.line is not None:
            location = f"at line {self.line}"
            if self.col is not None:
                location += f", column {self.col}"
            return f"{self.message} ({location})"
        return self.message

    def show_with_context(self):
        """Show error with source context"""
        if self.line is not None and self.source:
            lines = self.source.split('\n')
            if 0 <= self.line - 1 < len(lines):
                context = lines[self.line - 1]
                pointer = ' ' * (self.col - 1 if self.col else 0) + '^'
                return f"{str(self)}\n\n{context}\n{pointer}"
        return str(self)


class LexerError(EmberError):
    """Tokenization errors"""
    pass


class ParserError(EmberError):
    """Syntax errors, collected by the parser instead of raised"""
    pass


class LoadError(EmberError):
    """A script file could not be read"""
    pass


# ============================================================================
# 2. TOKEN DEFINITIONS
# ============================================================================

class TokenType(Enum):
    ILLEGAL = "ILLEGAL"
    EOF = "EOF"

    # Literals
    IDENTIFIER = "IDENTIFIER"
    INTEGER = "INTEGER"
    REAL = "REAL"
    STRING = "STRING"

    # Operators
    EQUAL = "="
    PLUS = "+"
    MINUS = "-"
    BANG = "!"
    STAR = "*"
    SLASH = "/"
    PERCENT = "%"
    EQUAL_EQUAL = "=="
    BANG_EQUAL = "!="
    PLUS_PLUS = "++"
    MINUS_MINUS = "--"
    LESS = "<"
    GREATER = ">"

    # Delimiters
    COMMA = ","
    SEMICOLON = ";"
    COLON = ":"
    DOT = "."
    LEFT_PAREN = "("
    RIGHT_PAREN = ")"
    LEFT_BRACE = "{"
    RIGHT_BRACE = "}"
    LEFT_BRACKET = "["
    RIGHT_BRACKET = "]"

    # Keywords
    FUNC = "func"
    VAR = "var"
    TRUE = "true"
    FALSE = "false"
    NULL = "null"
    IF = "if"
    ELSE = "else"
    ELIF = "elif"
    RETURN = "return"
    FOR = "for"
    FROM = "from"
    TO = "to"
    IN = "in"
    CLASS = "class"
    INIT = "Init"
    THIS = "this"
    NEW = "new"


KEYWORDS = {
    "func": TokenType.FUNC,
    "var": TokenType.VAR,
    "true": TokenType.TRUE,
    "false": TokenType.FALSE,
    "null": TokenType.NULL,
    "if": TokenType.IF,
    "else": TokenType.ELSE,
    "elif": TokenType.ELIF,
    "return": TokenType.RETURN,
    "for": TokenType.FOR,
    "from": TokenType.FROM,
    "to": TokenType.TO,
    "in": TokenType.IN,
    "class": TokenType.CLASS,
    "Init": TokenType.INIT,
    "this": TokenType.THIS,
    "new": TokenType.NEW,
}


class Token:
    """Represents a token in the source code"""
    __slots__ = ("type", "literal", "line", "col")

    def __init__(self, type: TokenType, literal: str, line: int = 0, col: int = 0):
        self.type = type
        self.literal = literal
        self.line = line
        self.col = col

    def __repr__(self):
        return f"Token({self.type}, {self.literal!r})"

    def __str__(self):
        return f"{self.type.name}:{self.literal}"


# ============================================================================
# 3. LEXER
# ============================================================================

class Lexer:
    """Lexer/tokenizer for EMBER source code"""

    ESCAPES = {'n': '\n', 't': '\t', '"': '"', '\\': '\\'}

    def __init__(self, source: str, filename: str = "<input>"):
        self.source = source
        self.filename = filename
        self.tokens: List[Token] = []
        self.start = 0
        self.start_col = 1
        self.current = 0
        self.line = 1
        self.col = 1
        self.errors: List[LexerError] = []

    def scan_tokens(self) -> List[Token]:
        """Scan the entire source and return tokens"""
        while not self.is_at_end():
            self.start = self.current
            self.start_col = self.col
            self.scan_token()

        self.start = self.current
        self.start_col = self.col
        self.add_token(TokenType.EOF, "")
        return self.tokens

    def scan_token(self):
        char = self.advance()

        if char == '(': self.add_token(TokenType.LEFT_PAREN)
        elif char == ')': self.add_token(TokenType.RIGHT_PAREN)
        elif char == '[': self.add_token(TokenType.LEFT_BRACKET)
        elif char == ']': self.add_token(TokenType.RIGHT_BRACKET)
        elif char == '{': self.add_token(TokenType.LEFT_BRACE)
        elif char == '}': self.add_token(TokenType.RIGHT_BRACE)
        elif char == ',': self.add_token(TokenType.COMMA)
        elif char == ';': self.add_token(TokenType.SEMICOLON)
        elif char == ':': self.add_token(TokenType.COLON)
        elif char == '.': self.add_token(TokenType.DOT)
        elif char == '*': self.add_token(TokenType.STAR)
        elif char == '%': self.add_token(TokenType.PERCENT)
        elif char == '<': self.add_token(TokenType.LESS)
        elif char == '>': self.add_token(TokenType.GREATER)
        elif char == '+':
            self.add_token(TokenType.PLUS_PLUS if self.match('+') else TokenType.PLUS)
        elif char == '-':
            self.add_token(TokenType.MINUS_MINUS if self.match('-') else TokenType.MINUS)
        elif char == '=':
            self.add_token(TokenType.EQUAL_EQUAL if self.match('=') else TokenType.EQUAL)
        elif char == '!':
            self.add_token(TokenType.BANG_EQUAL if self.match('=') else TokenType.BANG)
        elif char == '/':
            if self.match('/'):
                while self.peek() != '\n' and not self.is_at_end():
                    self.advance()
            elif self.match('*'):
                self.block_comment()
            else:
                self.add_token(TokenType.SLASH)
        elif char in ' \t\r':
            pass
        elif char == '\n':
            self.line += 1
            self.col = 1
        elif char == '"':
            self.string()
        elif char.isdigit():
            self.number()
        elif char.isalpha() or char == '_':
            self.identifier()
        else:
            self.error(f"Unexpected character '{char}'")
            self.add_token(TokenType.ILLEGAL, char)

    def string(self):
        start_line = self.line
        start_col = self.start_col

        content = []
        while self.peek() != '"' and not self.is_at_end():
            char = self.advance()
            if char == '\n':
                self.line += 1
                self.col = 1
                content.append(char)
            elif char == '\\' and self.peek() in self.ESCAPES:
                content.append(self.ESCAPES[self.advance()])
            else:
                content.append(char)

        if self.is_at_end():
            self.error("Unterminated string", line=start_line, col=start_col)
            self.add_token(TokenType.ILLEGAL, self.source[self.start:self.current])
            return

        self.advance()  # Closing quote
        self.add_token(TokenType.STRING, ''.join(content))

    def block_comment(self):
        """Handle /* ... */ comments"""
        start_line = self.line
        start_col = self.start_col
        while not self.is_at_end():
            if self.peek() == '*' and self.peek_next() == '/':
                self.advance()  # *
                self.advance()  # /
                return
            if self.advance() == '\n':
                self.line += 1
                self.col = 1

        self.error("Unterminated block comment", line=start_line, col=start_col)

    def identifier(self):
        while self.peek().isalnum() or self.peek() == '_':
            self.advance()

        text = self.source[self.start:self.current]
        self.add_token(KEYWORDS.get(text, TokenType.IDENTIFIER), text)

    def number(self):
        while self.peek().isdigit():
            self.advance()

        token_type = TokenType.INTEGER
        if self.peek() == '.' and self.peek_next().isdigit():
            token_type = TokenType.REAL
            self.advance()
            while self.peek().isdigit():
                self.advance()

        self.add_token(token_type)

    def add_token(self, type: TokenType, literal: Optional[str] = None):
        if literal is None:
            literal = self.source[self.start:self.current]
        self.tokens.append(Token(type, literal, self.line, self.start_col))

    def advance(self) -> str:
        char = self.source[self.current]
        self.current += 1
        self.col += 1
        return char

    def match(self, expected: str) -> bool:
        if self.is_at_end():
            return False
        if self.source[self.current] != expected:
            return False
        self.current += 1
        self.col += 1
        return True

    def peek(self) -> str:
        if self.is_at_end():
            return '\0'
        return self.source[self.current]

    def peek_next(self) -> str:
        if self.current + 1 >= len(self.source):
            return '\0'
        return self.source[self.current + 1]

    def is_at_end(self) -> bool:
        return self.current >= len(self.source)

    def error(self, message: str, line: int = None, col: int = None):
        if line is None: line = self.line
        if col is None: col = self.start_col
        self.errors.append(LexerError(message, line, col, self.source))

    def has_errors(self) -> bool:
        return len(self.errors) > 0


# ============================================================================
# 4. AST NODES
# ============================================================================

class Node:
    """Base class for all AST nodes"""
    def __init__(self, token: Optional[Token] = None):
        self.token = token

    def accept(self, visitor, env):
        raise NotImplementedError

    def __repr__(self):
        return f"{self.__class__.__name__}({self})"


class Statement(Node):
    pass


class Expression(Node):
    pass


class Program(Node):
    def __init__(self, statements: List[Statement]):
        super().__init__()
        self.statements = statements

    def __str__(self):
        return "".join(str(s) for s in self.statements)

    def accept(self, visitor, env):
        return visitor.visit_program(self, env)


class Identifier(Expression):
    def __init__(self, token: Token, value: str, has_this_prefix: bool = False):
        super().__init__(token)
        self.value = value
        self.has_this_prefix = has_this_prefix

    def __str__(self):
        return f"this.{self.value}" if self.has_this_prefix else self.value

    def accept(self, visitor, env):
        return visitor.visit_identifier(self, env)


class NullLiteral(Expression):
    def __str__(self):
        return "null"

    def accept(self, visitor, env):
        return visitor.visit_null_literal(self, env)


class IntegerLiteral(Expression):
    def __init__(self, token: Token, value: int):
        super().__init__(token)
        self.value = value

    def __str__(self):
        return self.token.literal

    def accept(self, visitor, env):
        return visitor.visit_integer_literal(self, env)


class RealLiteral(Expression):
    def __init__(self, token: Token, value: float):
        super().__init__(token)
        self.value = value

    def __str__(self):
        return self.token.literal

    def accept(self, visitor, env):
        return visitor.visit_real_literal(self, env)


class StringLiteral(Expression):
    def __init__(self, token: Token, value: str):
        super().__init__(token)
        self.value = value

    def __str__(self):
        return self.value

    def accept(self, visitor, env):
        return visitor.visit_string_literal(self, env)


class BooleanLiteral(Expression):
    def __init__(self, token: Token, value: bool):
        super().__init__(token)
        self.value = value

    def __str__(self):
        return self.token.literal

    def accept(self, visitor, env):
        return visitor.visit_boolean_literal(self, env)


class PrefixExpression(Expression):
    def __init__(self, token: Token, operator: str, right: Optional[Expression] = None):
        super().__init__(token)
        self.operator = operator
        self.right = right

    def __str__(self):
        return f"({self.operator}{self.right})"

    def accept(self, visitor, env):
        return visitor.visit_prefix_expression(self, env)


class InfixExpression(Expression):
    def __init__(self, token: Token, left: Optional[Expression], operator: str,
                 right: Optional[Expression] = None):
        super().__init__(token)
        self.left = left
        self.operator = operator
        self.right = right

    def __str__(self):
        return f"({self.left} {self.operator} {self.right})"

    def accept(self, visitor, env):
        return visitor.visit_infix_expression(self, env)


class PostfixExpression(Expression):
    """Increment or decrement of a named integer: i++ / this.count--"""
    def __init__(self, token: Token, name: Identifier, operator: str):
        super().__init__(token)
        self.name = name
        self.operator = operator

    @property
    def delta(self) -> int:
        return 1 if self.operator == "++" else -1

    def __str__(self):
        return f"{self.name}{self.operator}"

    def accept(self, visitor, env):
        return visitor.visit_postfix_expression(self, env)


class BlockStatement(Statement):
    def __init__(self, token: Token, statements: List[Statement]):
        super().__init__(token)
        self.statements = statements

    def __str__(self):
        return "".join(str(s) for s in self.statements)

    def accept(self, visitor, env):
        return visitor.visit_block_statement(self, env)


class ConditionalBranch:
    """One `if (...) {...}` or `elif (...) {...}` arm"""
    def __init__(self, token: Token, condition: Expression, consequence: BlockStatement):
        self.token = token
        self.condition = condition
        self.consequence = consequence

    def __str__(self):
        return f"{self.token.literal} ({self.condition}) {{{self.consequence}}}"


class IfExpression(Expression):
    def __init__(self, token: Token, branches: List[ConditionalBranch],
                 alternative: Optional[BlockStatement] = None):
        super().__init__(token)
        self.branches = branches
        self.alternative = alternative

    def __str__(self):
        out = " ".join(str(b) for b in self.branches)
        if self.alternative is not None:
            out += f" else {{{self.alternative}}}"
        return out

    def accept(self, visitor, env):
        return visitor.visit_if_expression(self, env)


class FunctionLiteral(Expression):
    def __init__(self, token: Token, parameters: List[Identifier], body: BlockStatement):
        super().__init__(token)
        self.parameters = parameters
        self.body = body

    def __str__(self):
        params = ", ".join(str(p) for p in self.parameters)
        return f"func({params}) {{{self.body}}}"

    def accept(self, visitor, env):
        return visitor.visit_function_literal(self, env)


class CallExpression(Expression):
    def __init__(self, token: Token, function: Expression, arguments: List[Expression]):
        super().__init__(token)
        self.function = function
        self.arguments = arguments

    def __str__(self):
        args = ", ".join(str(a) for a in self.arguments)
        return f"{self.function}({args})"

    def accept(self, visitor, env):
        return visitor.visit_call_expression(self, env)


class ArrayLiteral(Expression):
    def __init__(self, token: Token, elements: List[Expression]):
        super().__init__(token)
        self.elements = elements

    def __str__(self):
        return "[" + ", ".join(str(e) for e in self.elements) + "]"

    def accept(self, visitor, env):
        return visitor.visit_array_literal(self, env)


class IndexExpression(Expression):
    def __init__(self, token: Token, left: Expression, index: Optional[Expression] = None):
        super().__init__(token)
        self.left = left
        self.index = index

    def __str__(self):
        return f"({self.left}[{self.index}])"

    def accept(self, visitor, env):
        return visitor.visit_index_expression(self, env)


class HashLiteral(Expression):
    def __init__(self, token: Token, pairs: List[Tuple[Expression, Expression]]):
        super().__init__(token)
        self.pairs = pairs

    def __str__(self):
        return "{" + ", ".join(f"{k}:{v}" for k, v in self.pairs) + "}"

    def accept(self, visitor, env):
        return visitor.visit_hash_literal(self, env)


class CountingLoop(Expression):
    """for (i from A to B) { ... }"""
    def __init__(self, token: Token, variable: Identifier, start: Expression,
                 end: Expression, body: BlockStatement):
        super().__init__(token)
        self.variable = variable
        self.start = start
        self.end = end
        self.body = body

    def __str__(self):
        return f"for ({self.variable} from {self.start} to {self.end}) {{{self.body}}}"

    def accept(self, visitor, env):
        return visitor.visit_counting_loop(self, env)


class CollectionLoop(Expression):
    """for (item in array) { ... }"""
    def __init__(self, token: Token, variable: Identifier, target: Identifier,
                 body: BlockStatement):
        super().__init__(token)
        self.variable = variable
        self.target = target
        self.body = body

    def __str__(self):
        return f"for ({self.variable} in {self.target}) {{{self.body}}}"

    def accept(self, visitor, env):
        return visitor.visit_collection_loop(self, env)


class NewExpression(Expression):
    def __init__(self, token: Token, name: Identifier, arguments: List[Expression]):
        super().__init__(token)
        self.name = name
        self.arguments = arguments

    def __str__(self):
        args = ", ".join(str(a) for a in self.arguments)
        return f"new {self.name}({args})"

    def accept(self, visitor, env):
        return visitor.visit_new_expression(self, env)


class MethodCallExpression(Expression):
    def __init__(self, token: Token, object_name: Identifier, method_name: Identifier,
                 arguments: List[Expression]):
        super().__init__(token)
        self.object_name = object_name
        self.method_name = method_name
        self.arguments = arguments

    def __str__(self):
        args = ", ".join(str(a) for a in self.arguments)
        return f"{self.object_name}.{self.method_name}({args})"

    def accept(self, visitor, env):
        return visitor.visit_method_call_expression(self, env)


class VarStatement(Statement):
    def __init__(self, token: Token, name: Identifier, value: Optional[Expression]):
        super().__init__(token)
        self.name = name
        self.value = value

    def __str__(self):
        return f"var {self.name} = {self.value};"

    def accept(self, visitor, env):
        return visitor.visit_var_statement(self, env)


class ReturnStatement(Statement):
    def __init__(self, token: Token, return_value: Optional[Expression]):
        super().__init__(token)
        self.return_value = return_value

    def __str__(self):
        return f"return {self.return_value};"

    def accept(self, visitor, env):
        return visitor.visit_return_statement(self, env)


class ExpressionStatement(Statement):
    def __init__(self, token: Token, expression: Optional[Expression]):
        super().__init__(token)
        self.expression = expression

    def __str__(self):
        return str(self.expression) if self.expression is not None else ""

    def accept(self, visitor, env):
        return visitor.visit_expression_statement(self, env)


class FunctionStatement(Statement):
    """func name(params) { ... } -- also used for class methods"""
    def __init__(self, token: Token, name: Identifier, function: FunctionLiteral):
        super().__init__(token)
        self.name = name
        self.function = function

    @property
    def is_public(self) -> bool:
        first = self.name.value[:1]
        return first != first.lower()

    def __str__(self):
        params = ", ".join(str(p) for p in self.function.parameters)
        return f"func {self.name}({params}) {{{self.function.body}}}"

    def accept(self, visitor, env):
        return visitor.visit_function_statement(self, env)


class InitParam:
    """Constructor parameter; `this.name` parameters write straight into the instance"""
    def __init__(self, token: Token, parameter: Identifier, is_this: bool):
        self.token = token
        self.parameter = parameter
        self.is_this = is_this

    def __str__(self):
        return f"this.{self.parameter.value}" if self.is_this else self.parameter.value


class ClassStatement(Statement):
    def __init__(self, token: Token, name: Identifier):
        super().__init__(token)
        self.name = name
        self.fields: List[VarStatement] = []
        self.methods: List[FunctionStatement] = []
        self.init_params: List[InitParam] = []
        self.init_body: Optional[BlockStatement] = None

    @property
    def has_constructor(self) -> bool:
        return self.init_body is not None

    def __str__(self):
        parts = [str(f) for f in self.fields]
        if self.has_constructor:
            params = ", ".join(str(p) for p in self.init_params)
            parts.append(f"Init({params}) {{{self.init_body}}}")
        parts.extend(str(m) for m in self.methods)
        return f"class {self.name} {{{' '.join(parts)}}}"

    def accept(self, visitor, env):
        return visitor.visit_class_statement(self, env)


# ============================================================================
# 5. PARSER
# ============================================================================

class Precedence(IntEnum):
    LOWEST = 1
    EQUALS = 2        # = == !=
    LESSGREATER = 3   # < >
    SUM = 4           # + -
    PRODUCT = 5       # * / %
    PREFIX = 6        # -x !x
    CALL = 7          # fn(x)
    INDEX = 8         # array[i]


PRECEDENCES = {
    TokenType.EQUAL: Precedence.EQUALS,
    TokenType.EQUAL_EQUAL: Precedence.EQUALS,
    TokenType.BANG_EQUAL: Precedence.EQUALS,
    TokenType.LESS: Precedence.LESSGREATER,
    TokenType.GREATER: Precedence.LESSGREATER,
    TokenType.PLUS: Precedence.SUM,
    TokenType.MINUS: Precedence.SUM,
    TokenType.STAR: Precedence.PRODUCT,
    TokenType.SLASH: Precedence.PRODUCT,
    TokenType.PERCENT: Precedence.PRODUCT,
    TokenType.LEFT_PAREN: Precedence.CALL,
    TokenType.LEFT_BRACKET: Precedence.INDEX,
}

INT64_MIN = -(2 ** 63)
INT64_MAX = 2 ** 63 - 1

PrefixParseFn = Callable[[], Optional[Expression]]
InfixParseFn = Callable[[Optional[Expression]], Optional[Expression]]


class Parser:
    """Pratt parser for EMBER

    Reads tokens one at a time with a single token of lookahead. Syntax errors
    are collected in `errors` and the malformed construct is replaced by None,
    so one pass reports every problem it can find.
    """

    def __init__(self, tokens: Iterable[Token], source: str = "<input>"):
        self.source = source
        self.errors: List[ParserError] = []
        self._tokens = iter(tokens)
        self._eof = Token(TokenType.EOF, "")
        self.cur_token: Token = self._eof
        self.peek_token: Token = self._eof

        self.prefix_parse_fns: Dict[TokenType, PrefixParseFn] = {}
        self.register_prefix(TokenType.IDENTIFIER, self.parse_identifier)
        self.register_prefix(TokenType.INTEGER, self.parse_integer_literal)
        self.register_prefix(TokenType.REAL, self.parse_real_literal)
        self.register_prefix(TokenType.STRING, self.parse_string_literal)
        self.register_prefix(TokenType.TRUE, self.parse_boolean)
        self.register_prefix(TokenType.FALSE, self.parse_boolean)
        self.register_prefix(TokenType.NULL, self.parse_null)
        self.register_prefix(TokenType.BANG, self.parse_prefix_expression)
        self.register_prefix(TokenType.MINUS, self.parse_prefix_expression)
        self.register_prefix(TokenType.LEFT_PAREN, self.parse_grouped_expression)
        self.register_prefix(TokenType.IF, self.parse_if_expression)
        self.register_prefix(TokenType.FUNC, self.parse_function_literal)
        self.register_prefix(TokenType.LEFT_BRACKET, self.parse_array_literal)
        self.register_prefix(TokenType.LEFT_BRACE, self.parse_hash_literal)
        self.register_prefix(TokenType.FOR, self.parse_for_expression)
        self.register_prefix(TokenType.NEW, self.parse_new_expression)
        self.register_prefix(TokenType.THIS, self.parse_this_identifier)

        self.infix_parse_fns: Dict[TokenType, InfixParseFn] = {}
        for token_type in (TokenType.PLUS, TokenType.MINUS, TokenType.STAR,
                           TokenType.SLASH, TokenType.PERCENT, TokenType.EQUAL_EQUAL,
                           TokenType.BANG_EQUAL, TokenType.LESS, TokenType.GREATER,
                           TokenType.EQUAL):
            self.register_infix(token_type, self.parse_infix_expression)
        self.register_infix(TokenType.LEFT_PAREN, self.parse_call_expression)
        self.register_infix(TokenType.LEFT_BRACKET, self.parse_index_expression)

        # Fill cur_token and peek_token
        self.next_token()
        self.next_token()

    def register_prefix(self, token_type: TokenType, fn: PrefixParseFn):
        self.prefix_parse_fns[token_type] = fn

    def register_infix(self, token_type: TokenType, fn: InfixParseFn):
        self.infix_parse_fns[token_type] = fn

    # -- token handling ---------------------------------------------------

    def next_token(self):
        self.cur_token = self.peek_token
        token = next(self._tokens, None)
        if token is None:
            token = Token(TokenType.EOF, "", self.cur_token.line, self.cur_token.col)
        self.peek_token = token

    def cur_token_is(self, token_type: TokenType) -> bool:
        return self.cur_token.type == token_type

    def peek_token_is(self, token_type: TokenType) -> bool:
        return self.peek_token.type == token_type

    def expect_peek(self, token_type: TokenType) -> bool:
        if self.peek_token_is(token_type):
            self.next_token()
            return True
        self.peek_error(token_type.value)
        return False

    def skip_semicolon(self):
        if self.peek_token_is(TokenType.SEMICOLON):
            self.next_token()

    def peek_precedence(self) -> int:
        return PRECEDENCES.get(self.peek_token.type, Precedence.LOWEST)

    def cur_precedence(self) -> int:
        return PRECEDENCES.get(self.cur_token.type, Precedence.LOWEST)

    # -- errors -----------------------------------------------------------

    def error(self, message: str, token: Optional[Token] = None):
        token = token or self.cur_token
        self.errors.append(ParserError(message, token.line or None, token.col or None, self.source))

    def peek_error(self, expected: str):
        self.error(f"expected next token to be {expected}, "
                   f"got {self.peek_token.type.value} instead", self.peek_token)

    def no_prefix_parse_fn_error(self, token_type: TokenType):
        self.error(f"no prefix parse function for {token_type.value} found")

    def has_errors(self) -> bool:
        return len(self.errors) > 0

    # -- statements -------------------------------------------------------

    def parse_program(self) -> Program:
        program = Program([])

        while not self.cur_token_is(TokenType.EOF):
            stmt = self.parse_statement()
            if stmt is not None:
                program.statements.append(stmt)
            self.next_token()

        return program

    def parse_statement(self) -> Optional[Statement]:
        if self.cur_token_is(TokenType.VAR):
            return self.parse_var_statement()
        elif self.cur_token_is(TokenType.RETURN):
            return self.parse_return_statement()
        elif self.cur_token_is(TokenType.FUNC) and self.peek_token_is(TokenType.IDENTIFIER):
            return self.parse_function_statement()
        elif self.cur_token_is(TokenType.CLASS):
            return self.parse_class_statement()
        else:
            return self.parse_expression_statement()

    def parse_var_statement(self) -> Optional[VarStatement]:
        token = self.cur_token

        if not self.expect_peek(TokenType.IDENTIFIER):
            return None

        name = Identifier(self.cur_token, self.cur_token.literal)

        if self.peek_token_is(TokenType.EQUAL):
            self.next_token()
            self.next_token()
            value = self.parse_expression(Precedence.LOWEST)
        else:
            value = NullLiteral(token)

        self.skip_semicolon()
        return VarStatement(token, name, value)

    def parse_return_statement(self) -> ReturnStatement:
        token = self.cur_token

        if self.peek_token.type in (TokenType.SEMICOLON, TokenType.RIGHT_BRACE, TokenType.EOF):
            value = NullLiteral(token)
        else:
            self.next_token()
            value = self.parse_expression(Precedence.LOWEST)

        self.skip_semicolon()
        return ReturnStatement(token, value)

    def parse_expression_statement(self) -> ExpressionStatement:
        token = self.cur_token
        expression = self.parse_expression(Precedence.LOWEST)
        # lets the REPL accept `5 + 5` without a trailing semicolon
        self.skip_semicolon()
        return ExpressionStatement(token, expression)

    def parse_function_statement(self) -> Optional[FunctionStatement]:
        token = self.cur_token

        if not self.expect_peek(TokenType.IDENTIFIER):
            return None

        name = Identifier(self.cur_token, self.cur_token.literal)

        if not self.expect_peek(TokenType.LEFT_PAREN):
            return None

        parameters = self.parse_function_parameters()
        if parameters is None:
            return None

        if not self.expect_peek(TokenType.LEFT_BRACE):
            return None

        body = self.parse_block_statement()
        self.skip_semicolon()
        return FunctionStatement(token, name, FunctionLiteral(token, parameters, body))

    def parse_class_statement(self) -> Optional[ClassStatement]:
        token = self.cur_token

        if not self.expect_peek(TokenType.IDENTIFIER):
            return None

        stmt = ClassStatement(token, Identifier(self.cur_token, self.cur_token.literal))

        if not self.expect_peek(TokenType.LEFT_BRACE):
            return None

        self.next_token()

        while not self.cur_token_is(TokenType.RIGHT_BRACE):
            if self.cur_token_is(TokenType.EOF):
                self.error(f"expected next token to be }}, got {TokenType.EOF.value} instead")
                return None
            elif self.cur_token_is(TokenType.VAR):
                field = self.parse_var_statement()
                if field is not None:
                    stmt.fields.append(field)
            elif self.cur_token_is(TokenType.FUNC):
                method = self.parse_function_statement()
                if method is not None:
                    stmt.methods.append(method)
            elif self.cur_token_is(TokenType.INIT):
                if stmt.has_constructor:
                    self.error(f"class {stmt.name} already has an Init constructor")
                self.parse_constructor(stmt)
            else:
                self.error(f"unexpected {self.cur_token.type.value} in body of class {stmt.name}")

            self.next_token()

        return stmt

    def parse_constructor(self, stmt: ClassStatement):
        if not self.expect_peek(TokenType.LEFT_PAREN):
            return

        params: List[InitParam] = []
        if self.peek_token_is(TokenType.RIGHT_PAREN):
            self.next_token()
        else:
            param = self.parse_init_param()
            if param is None:
                return
            params.append(param)

            while self.peek_token_is(TokenType.COMMA):
                self.next_token()
                param = self.parse_init_param()
                if param is None:
                    return
                params.append(param)

            if not self.expect_peek(TokenType.RIGHT_PAREN):
                return

        if not self.expect_peek(TokenType.LEFT_BRACE):
            return

        stmt.init_params = params
        stmt.init_body = self.parse_block_statement()

    def parse_init_param(self) -> Optional[InitParam]:
        self.next_token()
        token = self.cur_token

        if self.cur_token_is(TokenType.THIS):
            if not self.expect_peek(TokenType.DOT) or not self.expect_peek(TokenType.IDENTIFIER):
                return None
            return InitParam(token, Identifier(self.cur_token, self.cur_token.literal), True)
        elif self.cur_token_is(TokenType.IDENTIFIER):
            return InitParam(token, Identifier(token, token.literal), False)

        self.error(f"expected constructor parameter, got {token.type.value} instead")
        return None

    def parse_block_statement(self) -> BlockStatement:
        block = BlockStatement(self.cur_token, [])

        self.next_token()
        while not self.cur_token_is(TokenType.RIGHT_BRACE):
            if self.cur_token_is(TokenType.EOF):
                self.error(f"expected next token to be }}, got {TokenType.EOF.value} instead")
                break
            stmt = self.parse_statement()
            if stmt is not None:
                block.statements.append(stmt)
            self.next_token()

        return block

    # -- expressions ------------------------------------------------------

    def parse_expression(self, precedence: int) -> Optional[Expression]:
        prefix = self.prefix_parse_fns.get(self.cur_token.type)
        if prefix is None:
            self.no_prefix_parse_fn_error(self.cur_token.type)
            return None
        left = prefix()

        while not self.peek_token_is(TokenType.SEMICOLON) and precedence < self.peek_precedence():
            infix = self.infix_parse_fns.get(self.peek_token.type)
            if infix is None:
                return left

            self.next_token()
            left = infix(left)

        return left

    def parse_identifier(self) -> Expression:
        if self.peek_token_is(TokenType.DOT):
            return self.parse_method_call()

        ident = Identifier(self.cur_token, self.cur_token.literal)
        if self.peek_token.type in (TokenType.PLUS_PLUS, TokenType.MINUS_MINUS):
            return self.parse_postfix_expression(ident)
        return ident

    def parse_this_identifier(self) -> Optional[Expression]:
        if not self.expect_peek(TokenType.DOT) or not self.expect_peek(TokenType.IDENTIFIER):
            return None

        ident = Identifier(self.cur_token, self.cur_token.literal, has_this_prefix=True)
        if self.peek_token.type in (TokenType.PLUS_PLUS, TokenType.MINUS_MINUS):
            return self.parse_postfix_expression(ident)
        return ident

    def parse_postfix_expression(self, ident: Identifier) -> PostfixExpression:
        self.next_token()
        return PostfixExpression(self.cur_token, ident, self.cur_token.literal)

    def parse_method_call(self) -> Optional[MethodCallExpression]:
        object_name = Identifier(self.cur_token, self.cur_token.literal)
        self.next_token()
        token = self.cur_token

        if not self.expect_peek(TokenType.IDENTIFIER):
            return None
        method_name = Identifier(self.cur_token, self.cur_token.literal)

        if not self.expect_peek(TokenType.LEFT_PAREN):
            return None

        arguments = self.parse_expression_list(TokenType.RIGHT_PAREN)
        if arguments is None:
            return None
        return MethodCallExpression(token, object_name, method_name, arguments)

    def parse_integer_literal(self) -> Optional[IntegerLiteral]:
        try:
            value = int(self.cur_token.literal)
        except ValueError:
            value = None
        if value is None or not INT64_MIN <= value <= INT64_MAX:
            self.error(f'could not parse "{self.cur_token.literal}" as integer')
            return None
        return IntegerLiteral(self.cur_token, value)

    def parse_real_literal(self) -> Optional[RealLiteral]:
        try:
            return RealLiteral(self.cur_token, float(self.cur_token.literal))
        except ValueError:
            self.error(f'could not parse "{self.cur_token.literal}" as real')
            return None

    def parse_string_literal(self) -> StringLiteral:
        return StringLiteral(self.cur_token, self.cur_token.literal)

    def parse_boolean(self) -> BooleanLiteral:
        return BooleanLiteral(self.cur_token, self.cur_token_is(TokenType.TRUE))

    def parse_null(self) -> NullLiteral:
        return NullLiteral(self.cur_token)

    def parse_prefix_expression(self) -> PrefixExpression:
        expression = PrefixExpression(self.cur_token, self.cur_token.literal)
        self.next_token()
        expression.right = self.parse_expression(Precedence.PREFIX)
        return expression

    def parse_infix_expression(self, left: Optional[Expression]) -> InfixExpression:
        expression = InfixExpression(self.cur_token, left, self.cur_token.literal)
        precedence = self.cur_precedence()
        self.next_token()
        expression.right = self.parse_expression(precedence)
        return expression

    def parse_grouped_expression(self) -> Optional[Expression]:
        self.next_token()
        expression = self.parse_expression(Precedence.LOWEST)
        if not self.expect_peek(TokenType.RIGHT_PAREN):
            return None
        return expression

    def parse_conditional_branch(self) -> Optional[ConditionalBranch]:
        token = self.cur_token

        if not self.expect_peek(TokenType.LEFT_PAREN):
            return None
        self.next_token()
        condition = self.parse_expression(Precedence.LOWEST)

        if not self.expect_peek(TokenType.RIGHT_PAREN):
            return None
        if not self.expect_peek(TokenType.LEFT_BRACE):
            return None

        return ConditionalBranch(token, condition, self.parse_block_statement())

    def parse_if_expression(self) -> Optional[IfExpression]:
        token = self.cur_token
        branches = []

        branch = self.parse_conditional_branch()
        if branch is None:
            return None
        branches.append(branch)

        while self.peek_token_is(TokenType.ELIF):
            self.next_token()
            branch = self.parse_conditional_branch()
            if branch is None:
                return None
            branches.append(branch)

        alternative = None
        if self.peek_token_is(TokenType.ELSE):
            self.next_token()
            if not self.expect_peek(TokenType.LEFT_BRACE):
                return None
            alternative = self.parse_block_statement()

        return IfExpression(token, branches, alternative)

    def parse_function_literal(self) -> Optional[FunctionLiteral]:
        token = self.cur_token

        if not self.expect_peek(TokenType.LEFT_PAREN):
            return None

        parameters = self.parse_function_parameters()
        if parameters is None:
            return None

        if not self.expect_peek(TokenType.LEFT_BRACE):
            return None

        return FunctionLiteral(token, parameters, self.parse_block_statement())

    def parse_function_parameters(self) -> Optional[List[Identifier]]:
        identifiers: List[Identifier] = []

        if self.peek_token_is(TokenType.RIGHT_PAREN):
            self.next_token()
            return identifiers

        if not self.expect_peek(TokenType.IDENTIFIER):
            return None
        identifiers.append(Identifier(self.cur_token, self.cur_token.literal))

        while self.peek_token_is(TokenType.COMMA):
            self.next_token()
            if not self.expect_peek(TokenType.IDENTIFIER):
                return None
            identifiers.append(Identifier(self.cur_token, self.cur_token.literal))

        if not self.expect_peek(TokenType.RIGHT_PAREN):
            return None

        return identifiers

    def parse_call_expression(self, function: Optional[Expression]) -> Optional[CallExpression]:
        token = self.cur_token
        arguments = self.parse_expression_list(TokenType.RIGHT_PAREN)
        if arguments is None:
            return None
        return CallExpression(token, function, arguments)

    def parse_expression_list(self, end: TokenType) -> Optional[List[Expression]]:
        expressions: List[Expression] = []

        if self.peek_token_is(end):
            self.next_token()
            return expressions

        self.next_token()
        expressions.append(self.parse_expression(Precedence.LOWEST))

        while self.peek_token_is(TokenType.COMMA):
            self.next_token()
            self.next_token()
            expressions.append(self.parse_expression(Precedence.LOWEST))

        if not self.expect_peek(end):
            return None

        return expressions

    def parse_array_literal(self) -> Optional[ArrayLiteral]:
        token = self.cur_token
        elements = self.parse_expression_list(TokenType.RIGHT_BRACKET)
        if elements is None:
            return None
        return ArrayLiteral(token, elements)

    def parse_index_expression(self, left: Optional[Expression]) -> Optional[IndexExpression]:
        expression = IndexExpression(self.cur_token, left)

        self.next_token()
        expression.index = self.parse_expression(Precedence.LOWEST)

        if not self.expect_peek(TokenType.RIGHT_BRACKET):
            return None

        return expression

    def parse_hash_literal(self) -> Optional[HashLiteral]:
        token = self.cur_token
        pairs: List[Tuple[Expression, Expression]] = []

        while not self.peek_token_is(TokenType.RIGHT_BRACE):
            self.next_token()
            key = self.parse_expression(Precedence.LOWEST)

            if not self.expect_peek(TokenType.COLON):
                return None

            self.next_token()
            value = self.parse_expression(Precedence.LOWEST)
            pairs.append((key, value))

            if not self.peek_token_is(TokenType.RIGHT_BRACE) and not self.expect_peek(TokenType.COMMA):
                return None

        if not self.expect_peek(TokenType.RIGHT_BRACE):
            return None

        return HashLiteral(token, pairs)

    def parse_for_expression(self) -> Optional[Expression]:
        token = self.cur_token

        if not self.expect_peek(TokenType.LEFT_PAREN):
            return None
        if not self.expect_peek(TokenType.IDENTIFIER):
            return None
        variable = Identifier(self.cur_token, self.cur_token.literal)

        if self.peek_token_is(TokenType.FROM):
            self.next_token()
            self.next_token()
            start = self.parse_expression(Precedence.LOWEST)

            if not self.expect_peek(TokenType.TO):
                return None

            self.next_token()
            end = self.parse_expression(Precedence.LOWEST)

            body = self.parse_loop_body()
            if body is None:
                return None
            return CountingLoop(token, variable, start, end, body)

        elif self.peek_token_is(TokenType.IN):
            self.next_token()
            if self.peek_token_is(TokenType.THIS):
                self.next_token()
                target = self.parse_this_identifier()
            elif self.expect_peek(TokenType.IDENTIFIER):
                target = Identifier(self.cur_token, self.cur_token.literal)
            else:
                return None

            if not isinstance(target, Identifier):
                return None

            body = self.parse_loop_body()
            if body is None:
                return None
            return CollectionLoop(token, variable, target, body)

        self.peek_error(f"{TokenType.FROM.value} or {TokenType.IN.value}")
        return None

    def parse_loop_body(self) -> Optional[BlockStatement]:
        if not self.expect_peek(TokenType.RIGHT_PAREN):
            return None
        if not self.expect_peek(TokenType.LEFT_BRACE):
            return None
        return self.parse_block_statement()

    def parse_new_expression(self) -> Optional[NewExpression]:
        token = self.cur_token

        if not self.expect_peek(TokenType.IDENTIFIER):
            return None
        name = Identifier(self.cur_token, self.cur_token.literal)

        if not self.expect_peek(TokenType.LEFT_PAREN):
            return None

        arguments = self.parse_expression_list(TokenType.RIGHT_PAREN)
        if arguments is None:
            return None
        return NewExpression(token, name, arguments)


def parse(tokens: Iterable[Token], source: str = "<input>") -> Tuple[Program, List[str]]:
    """Parse a token stream into a program plus the list of syntax error messages"""
    parser = Parser(tokens, source)
    program = parser.parse_program()
    return program, [e.message for e in parser.errors]


def format_parser_errors(errors: Iterable[Union[str, EmberError]]) -> str:
    lines = ["parser errors:"]
    for error in errors:
        message = error.message if isinstance(error, EmberError) else str(error)
        lines.append(f"\t- {message}")
    return "\n".join(lines)


# ============================================================================
# 6. ENVIRONMENT
# ============================================================================

class Environment:
    """Runtime scope frame: a name -> value mapping plus an optional parent

    The parent link is fixed at creation, so frames form a tree. Function calls,
    loops, class bodies and instances each get their own frame.
    """

    def __init__(self, parent: Optional['Environment'] = None):
        self._parent = parent
        self.values: Dict[str, 'Object'] = {}

    @property
    def parent(self) -> Optional['Environment']:
        return self._parent

    def get(self, name: str) -> Optional['Object']:
        if name in self.values:
            return self.values[name]

        if self._parent is not None:
            return self._parent.get(name)

        return None

    def set(self, name: str, value: 'Object') -> 'Object':
        self.values[name] = value
        return value

    def update(self, name: str, value: 'Object') -> bool:
        if name in self.values:
            self.values[name] = value
            return True

        if self._parent is not None:
            return self._parent.update(name, value)

        return False

    def outermost(self) -> 'Environment':
        env = self
        while env._parent is not None:
            env = env._parent
        return env

    def get_outermost(self, name: str) -> Optional['Object']:
        return self.outermost().values.get(name)

    def update_outermost(self, name: str, value: 'Object') -> bool:
        root = self.outermost()
        if name not in root.values:
            return False
        root.values[name] = value
        return True

    def copy_detached(self) -> 'Environment':
        """Snapshot of the local bindings in a new frame with no parent"""
        new_env = Environment()
        new_env.values = self.values.copy()
        return new_env

    def __repr__(self):
        return f"Environment({sorted(self.values)}, parent={self._parent is not None})"


# ============================================================================
# 7. OBJECT MODEL
# ============================================================================

class ObjectType(Enum):
    INTEGER = "INTEGER"
    REAL = "REAL"
    STRING = "STRING"
    BOOLEAN = "BOOLEAN"
    NULL = "NULL"
    ARRAY = "ARRAY"
    HASH = "HASH"
    FUNCTION = "FUNCTION"
    BUILTIN = "BUILTIN"
    CLASS_INSTANCE = "CLASS_INSTANCE"
    INIT_FUNCTION = "INIT_FUNCTION"
    RETURN_VALUE = "RETURN_VALUE"
    ERROR = "ERROR"


class HashKey(NamedTuple):
    type: ObjectType
    value: Any


class Object:
    """Base class for runtime values"""
    type: ObjectType

    def inspect(self) -> str:
        raise NotImplementedError

    def __str__(self):
        return self.inspect()

    def __repr__(self):
        return f"<{self.type.value} {self.inspect()}>"


class Hashable(Object):
    """Values usable as hash keys; the key pairs the type tag with the content"""
    value: Any

    def hash_key(self) -> HashKey:
        return HashKey(self.type, self.value)


class Integer(Hashable):
    type = ObjectType.INTEGER

    def __init__(self, value: int):
        self.value = value

    def inspect(self) -> str:
        return str(self.value)


class Real(Hashable):
    type = ObjectType.REAL

    def __init__(self, value: float):
        self.value = value

    def inspect(self) -> str:
        return repr(self.value)


class String(Hashable):
    type = ObjectType.STRING

    def __init__(self, value: str):
        self.value = value

    def inspect(self) -> str:
        return self.value


class Boolean(Hashable):
    type = ObjectType.BOOLEAN

    def __init__(self, value: bool):
        self.value = value

    def inspect(self) -> str:
        return "true" if self.value else "false"


class Null(Object):
    type = ObjectType.NULL

    def inspect(self) -> str:
        return "null"


TRUE = Boolean(True)
FALSE = Boolean(False)
NULL = Null()


class Array(Object):
    type = ObjectType.ARRAY

    def __init__(self, elements: List[Object]):
        self.elements = elements

    def inspect(self) -> str:
        return "[" + ", ".join(e.inspect() for e in self.elements) + "]"


class HashPair(NamedTuple):
    key: Object
    value: Object


class Hash(Object):
    type = ObjectType.HASH

    def __init__(self, pairs: Optional[Dict[HashKey, HashPair]] = None):
        self.pairs = pairs if pairs is not None else {}

    def inspect(self) -> str:
        items = ", ".join(f"{p.key.inspect()}: {p.value.inspect()}" for p in self.pairs.values())
        return "{" + items + "}"


class Function(Object):
    type = ObjectType.FUNCTION

    def __init__(self, parameters: List[Identifier], body: BlockStatement,
                 env: Environment, is_public: bool = True, name: Optional[str] = None):
        self.parameters = parameters
        self.body = body
        self.env = env
        self.is_public = is_public
        self.name = name

    def bind(self, env: Environment) -> 'Function':
        """Copy of this function closing over `env` instead"""
        return Function(self.parameters, self.body, env, self.is_public, self.name)

    def inspect(self) -> str:
        params = ", ".join(str(p) for p in self.parameters)
        return f"func({params}) {{\n{self.body}\n}}"


class Builtin(Object):
    type = ObjectType.BUILTIN

    def __init__(self, name: str, fn: Callable[..., Object]):
        self.name = name
        self.fn = fn

    def inspect(self) -> str:
        return f"builtin function {self.name}"


class InitFunction(Object):
    type = ObjectType.INIT_FUNCTION

    def __init__(self, parameters: List[InitParam], body: BlockStatement, env: Environment):
        self.parameters = parameters
        self.body = body
        self.env = env

    def inspect(self) -> str:
        params = ", ".join(str(p) for p in self.parameters)
        return f"Init({params}) {{\n{self.body}\n}}"


class ClassInstance(Object):
    """A class descriptor or one of its instances: a name plus its own field frame"""
    type = ObjectType.CLASS_INSTANCE

    def __init__(self, name: str, env: Environment,
                 field_declarations: Optional[List['VarStatement']] = None):
        self.name = name
        self.env = env
        self.field_declarations = field_declarations or []

    def fields(self) -> Dict[str, Object]:
        return {k: v for k, v in self.env.values.items()
                if not isinstance(v, (Function, InitFunction))}

    def inspect(self) -> str:
        fields = ", ".join(f"{k}: {v.inspect()}" for k, v in self.fields().items())
        return f"{self.name}{{{fields}}}"


class ReturnValue(Object):
    type = ObjectType.RETURN_VALUE

    def __init__(self, value: Object):
        self.value = value

    def inspect(self) -> str:
        return self.value.inspect()


class Error(Object):
    type = ObjectType.ERROR

    def __init__(self, message: str):
        self.message = message

    def inspect(self) -> str:
        return f"ERROR: {self.message}"


def native_bool(value: bool) -> Boolean:
    return TRUE if value else FALSE


def is_error(obj: Optional[Object]) -> bool:
    return isinstance(obj, Error)


def is_truthy(obj: Object) -> bool:
    return not (obj is NULL or obj is FALSE)


def inspect(value: Optional[Object]) -> str:
    """Human-readable rendering used by the REPL and CLI"""
    return value.inspect() if value is not None else ""


# ============================================================================
# 8. BUILTIN FUNCTIONS
# ============================================================================

class Builtins:
    """Collection primitives available from every scope"""

    @staticmethod
    def _arity(args, *allowed: int) -> Optional[Error]:
        if len(args) not in allowed:
            want = "/".join(str(n) for n in allowed)
            return Error(f"wrong number of arguments. got={len(args)}, want={want}")
        return None

    @staticmethod
    def _array_arg(name: str, args) -> Union[Array, Error]:
        error = Builtins._arity(args, 1)
        if error:
            return error
        if not isinstance(args[0], Array):
            return Error(f"argument to `{name}` must be ARRAY, got {args[0].type.value}")
        return args[0]

    @staticmethod
    def len(*args: Object) -> Object:
        error = Builtins._arity(args, 1)
        if error:
            return error

        arg = args[0]
        if isinstance(arg, Array):
            return Integer(len(arg.elements))
        elif isinstance(arg, Hash):
            return Integer(len(arg.pairs))
        elif isinstance(arg, String):
            return Integer(len(arg.value))
        return Error(f"argument to `len` not supported, got {arg.type.value}")

    @staticmethod
    def first(*args: Object) -> Object:
        arr = Builtins._array_arg("first", args)
        if isinstance(arr, Error):
            return arr
        return arr.elements[0] if arr.elements else NULL

    @staticmethod
    def last(*args: Object) -> Object:
        arr = Builtins._array_arg("last", args)
        if isinstance(arr, Error):
            return arr
        return arr.elements[-1] if arr.elements else NULL

    @staticmethod
    def rest(*args: Object) -> Object:
        arr = Builtins._array_arg("rest", args)
        if isinstance(arr, Error):
            return arr
        if not arr.elements:
            return NULL
        return Array(arr.elements[1:])

    @staticmethod
    def add(*args: Object) -> Object:
        """add(array, value) or add(hash, key, value); returns a new collection"""
        if not args:
            return Error("wrong number of arguments. got=0, want=2/3")

        target = args[0]
        if isinstance(target, Array):
            error = Builtins._arity(args, 2)
            if error:
                return error
            return Array(target.elements + [args[1]])

        elif isinstance(target, Hash):
            error = Builtins._arity(args, 3)
            if error:
                return error
            key = args[1]
            if not isinstance(key, Hashable):
                return Error(f"unusable as hash key: {key.type.value}")
            pairs = dict(target.pairs)
            pairs[key.hash_key()] = HashPair(key, args[2])
            return Hash(pairs)

        return Error(f"argument to `add` must be ARRAY or HASH, got {target.type.value}")

    @staticmethod
    def remove(*args: Object) -> Object:
        """remove(array, index) returns a new array; remove(hash, key) edits the hash"""
        error = Builtins._arity(args, 2)
        if error:
            return error

        target, selector = args
        if isinstance(target, Array):
            if not target.elements:
                return Error("length of array must be greater than 0")
            if not isinstance(selector, Integer):
                return Error(f"index argument to `remove` must be INTEGER, got {selector.type.value}")
            if not 0 <= selector.value < len(target.elements):
                return Error("index parameter must be between 0 and length of arr - 1")
            return Array([e for i, e in enumerate(target.elements) if i != selector.value])

        elif isinstance(target, Hash):
            if not target.pairs:
                return Error("cannot remove from empty hash")
            if not isinstance(selector, Hashable):
                return Error(f"unusable as hash key: {selector.type.value}")
            key = selector.hash_key()
            if key not in target.pairs:
                return Error("key not found in hash")
            del target.pairs[key]
            return target

        return Error(f"argument to `remove` must be ARRAY or HASH, got {target.type.value}")

    @staticmethod
    def print(*args: Object) -> Object:
        for arg in args:
            print(arg.inspect())
        return NULL


BUILTINS: Dict[str, Builtin] = {
    name: Builtin(name, getattr(Builtins, name))
    for name in ("len", "first", "last", "rest", "add", "remove", "print")
}


# ============================================================================
# 9. INTERPRETER
# ============================================================================

INIT_BINDING = "Init"


class SourceLoader:
    """Finds `<ClassName>.ember` files for on-demand class loading"""

    def __init__(self, search_paths: Optional[Iterable[Union[str, Path]]] = None):
        if search_paths is None:
            search_paths = [Path.cwd()]
        self.search_paths: List[Path] = [Path(p) for p in search_paths]

    def find(self, name: str) -> Optional[Path]:
        if not name.isidentifier():
            return None
        for directory in self.search_paths:
            candidate = directory / f"{name}{SOURCE_EXTENSION}"
            if candidate.is_file():
                return candidate
        return None

    def load(self, name: str) -> Optional[Tuple[str, str]]:
        path = self.find(name)
        if path is None:
            return None
        return path.read_text(encoding='utf-8'), str(path)


class Interpreter:
    """Tree-walking evaluator for EMBER

    `evaluate(node, env)` dispatches on the node type. Runtime failures are
    Error values and early returns are ReturnValue values; both travel back
    through ordinary return slots until a block, loop or call unwraps them.
    """

    def __init__(self, search_paths: Optional[Iterable[Union[str, Path]]] = None,
                 loader: Optional[SourceLoader] = None):
        self.globals = Environment()
        self.loader = loader or SourceLoader(search_paths)
        self.loaded_classes: Dict[str, ClassInstance] = {}
        self._loading: List[str] = []

    def interpret(self, program: Program, env: Optional[Environment] = None) -> Object:
        """Evaluate a whole program on a worker thread with a deep stack"""
        env = env if env is not None else self.globals
        try:
            return call_with_deep_stack(self.evaluate, program, env)
        except RecursionError:
            return Error("maximum recursion depth exceeded")

    def evaluate(self, node: Optional[Node], env: Environment) -> Object:
        if node is None:
            return Error("cannot evaluate an incomplete expression")
        return node.accept(self, env)

    # -- statements -------------------------------------------------------

    def visit_program(self, node: Program, env: Environment) -> Object:
        result: Object = NULL
        for statement in node.statements:
            result = self.evaluate(statement, env)

            if isinstance(result, ReturnValue):
                return result.value
            if isinstance(result, Error):
                return result

        return result

    def visit_block_statement(self, node: BlockStatement, env: Environment) -> Object:
        result: Object = NULL
        for statement in node.statements:
            result = self.evaluate(statement, env)

            if isinstance(result, (ReturnValue, Error)):
                return result

        return result

    def visit_expression_statement(self, node: ExpressionStatement, env: Environment) -> Object:
        return self.evaluate(node.expression, env)

    def visit_var_statement(self, node: VarStatement, env: Environment) -> Object:
        value = self.evaluate(node.value, env)
        if is_error(value):
            return value
        env.set(node.name.value, value)
        return NULL

    def visit_return_statement(self, node: ReturnStatement, env: Environment) -> Object:
        value = self.evaluate(node.return_value, env)
        if is_error(value):
            return value
        return ReturnValue(value)

    def visit_function_statement(self, node: FunctionStatement, env: Environment) -> Object:
        function = Function(node.function.parameters, node.function.body, env,
                            node.is_public, node.name.value)
        env.set(node.name.value, function)
        return NULL

    def visit_class_statement(self, node: ClassStatement, env: Environment) -> Object:
        class_env = Environment()

        for field in node.fields:
            value = self.evaluate(field.value, class_env)
            if is_error(value):
                return value
            class_env.set(field.name.value, value)

        for method in node.methods:
            class_env.set(method.name.value, Function(
                method.function.parameters, method.function.body, class_env,
                method.is_public, method.name.value))

        if node.has_constructor:
            class_env.set(INIT_BINDING, InitFunction(node.init_params, node.init_body, class_env))

        descriptor = ClassInstance(node.name.value, class_env, node.fields)
        env.set(descriptor.name, descriptor)
        return descriptor

    # -- literals ---------------------------------------------------------

    def visit_null_literal(self, node: NullLiteral, env: Environment) -> Object:
        return NULL

    def visit_integer_literal(self, node: IntegerLiteral, env: Environment) -> Object:
        return Integer(node.value)

    def visit_real_literal(self, node: RealLiteral, env: Environment) -> Object:
        return Real(node.value)

    def visit_string_literal(self, node: StringLiteral, env: Environment) -> Object:
        return String(node.value)

    def visit_boolean_literal(self, node: BooleanLiteral, env: Environment) -> Object:
        return native_bool(node.value)

    def visit_array_literal(self, node: ArrayLiteral, env: Environment) -> Object:
        elements = self.eval_expressions(node.elements, env)
        if isinstance(elements, Error):
            return elements
        return Array(elements)

    def visit_hash_literal(self, node: HashLiteral, env: Environment) -> Object:
        pairs: Dict[HashKey, HashPair] = {}

        for key_node, value_node in node.pairs:
            key = self.evaluate(key_node, env)
            if is_error(key):
                return key

            if not isinstance(key, Hashable):
                return Error(f"unusable as hash key: {key.type.value}")

            value = self.evaluate(value_node, env)
            if is_error(value):
                return value

            pairs[key.hash_key()] = HashPair(key, value)

        return Hash(pairs)

    def visit_function_literal(self, node: FunctionLiteral, env: Environment) -> Object:
        return Function(node.parameters, node.body, env)

    # -- names ------------------------------------------------------------

    def visit_identifier(self, node: Identifier, env: Environment) -> Object:
        if node.has_this_prefix:
            value = env.get_outermost(node.value)
            if value is None:
                return Error(f"identifier not found: {node.value}. Try to remove 'this.'")
            return value

        value = env.get(node.value)
        if value is not None:
            return value

        builtin = BUILTINS.get(node.value)
        if builtin is not None:
            return builtin

        return Error(f"identifier not found: {node.value}")

    def eval_assignment(self, node: InfixExpression, env: Environment) -> Object:
        target = node.left
        if not isinstance(target, Identifier):
            return Error(f"left side of assignment is not an identifier. got={target}")

        value = self.evaluate(node.right, env)
        if is_error(value):
            return value

        if target.has_this_prefix:
            if not env.update_outermost(target.value, value):
                return Error(f"{target.value} is not defined. Try to remove 'this.'")
        elif not env.update(target.value, value):
            return Error(f"{target.value} is not defined")

        return value

    def visit_postfix_expression(self, node: PostfixExpression, env: Environment) -> Object:
        name = node.name
        current = env.get_outermost(name.value) if name.has_this_prefix else env.get(name.value)
        if current is None:
            return Error(f"{name.value} is not defined")

        if not isinstance(current, Integer):
            return Error(f"unknown operator: {current.type.value}{node.operator}")

        # mutated in place: every alias of this Integer sees the new value
        current.value = wrap_int64(current.value + node.delta)
        if name.has_this_prefix:
            env.update_outermost(name.value, current)
        else:
            env.update(name.value, current)
        return current

    # -- operators --------------------------------------------------------

    def visit_prefix_expression(self, node: PrefixExpression, env: Environment) -> Object:
        right = self.evaluate(node.right, env)
        if is_error(right):
            return right

        if node.operator == "!":
            return self.eval_bang_operator(right)
        elif node.operator == "-":
            return self.eval_minus_prefix_operator(right)
        return Error(f"unknown operator: {node.operator}{right.type.value}")

    def eval_bang_operator(self, right: Object) -> Object:
        if right is TRUE:
            return FALSE
        elif right is FALSE or right is NULL:
            return TRUE
        return FALSE

    def eval_minus_prefix_operator(self, right: Object) -> Object:
        if isinstance(right, Integer):
            return Integer(wrap_int64(-right.value))
        elif isinstance(right, Real):
            return Real(-right.value)
        return Error(f"unknown operator: -{right.type.value}")

    def visit_infix_expression(self, node: InfixExpression, env: Environment) -> Object:
        if node.operator == "=":
            return self.eval_assignment(node, env)

        left = self.evaluate(node.left, env)
        if is_error(left):
            return left

        right = self.evaluate(node.right, env)
        if is_error(right):
            return right

        return self.eval_infix(node.operator, left, right)

    def eval_infix(self, operator: str, left: Object, right: Object) -> Object:
        if isinstance(left, String) and isinstance(right, String):
            return self.eval_string_infix(operator, left, right)
        elif isinstance(left, Integer) and isinstance(right, Integer):
            return self.eval_integer_infix(operator, left, right)
        elif isinstance(left, (Integer, Real)) and isinstance(right, (Integer, Real)):
            return self.eval_real_infix(operator, left, right)
        elif left.type != right.type:
            return Error(f"type mismatch: {left.type.value} {operator} {right.type.value}")
        elif operator == "==":
            return native_bool(left is right)
        elif operator == "!=":
            return native_bool(left is not right)
        return Error(f"unknown operator: {left.type.value} {operator} {right.type.value}")

    def eval_integer_infix(self, operator: str, left: Integer, right: Integer) -> Object:
        a, b = left.value, right.value

        if operator == "+":
            return Integer(wrap_int64(a + b))
        elif operator == "-":
            return Integer(wrap_int64(a - b))
        elif operator == "*":
            return Integer(wrap_int64(a * b))
        elif operator in ("/", "%"):
            if b == 0:
                return Error("division by zero")
            quotient = truncated_div(a, b)
            if operator == "/":
                return Integer(wrap_int64(quotient))
            return Integer(a - b * quotient)
        elif operator == "<":
            return native_bool(a < b)
        elif operator == ">":
            return native_bool(a > b)
        elif operator == "==":
            return native_bool(a == b)
        elif operator == "!=":
            return native_bool(a != b)
        return Error(f"unknown operator: {left.type.value} {operator} {right.type.value}")

    def eval_real_infix(self, operator: str, left: Object, right: Object) -> Object:
        a, b = float(left.value), float(right.value)

        if operator == "+":
            return Real(a + b)
        elif operator == "-":
            return Real(a - b)
        elif operator == "*":
            return Real(a * b)
        elif operator == "/":
            return Real(real_divide(a, b))
        elif operator == "%":
            return Real(real_modulo(a, b))
        elif operator == "<":
            return native_bool(a < b)
        elif operator == ">":
            return native_bool(a > b)
        elif operator == "==":
            return native_bool(a == b)
        elif operator == "!=":
            return native_bool(a != b)
        return Error(f"unknown operator: {left.type.value} {operator} {right.type.value}")

    def eval_string_infix(self, operator: str, left: String, right: String) -> Object:
        if operator == "+":
            return String(left.value + right.value)
        elif operator == "==":
            return native_bool(left.value == right.value)
        elif operator == "!=":
            return native_bool(left.value != right.value)
        return Error(f"unknown operator: {left.type.value} {operator} {right.type.value}")

    # -- control flow -----------------------------------------------------

    def visit_if_expression(self, node: IfExpression, env: Environment) -> Object:
        for branch in node.branches:
            condition = self.evaluate(branch.condition, env)
            if is_error(condition):
                return condition

            if is_truthy(condition):
                return self.evaluate(branch.consequence, env)

        if node.alternative is not None:
            return self.evaluate(node.alternative, env)
        return NULL

    def visit_counting_loop(self, node: CountingLoop, env: Environment) -> Object:
        start = self.evaluate(node.start, env)
        if is_error(start):
            return start
        if not isinstance(start, Integer):
            return Error(f"'from' expression in forloop was not integer. got={start.type.value}")

        end = self.evaluate(node.end, env)
        if is_error(end):
            return end
        if not isinstance(end, Integer):
            return Error(f"'to' expression in forloop was not integer. got={end.type.value}")

        loop_env = Environment(env)
        name = node.variable.value
        loop_env.set(name, NULL)

        # upward runs [start, end), downward runs (end, start]
        step = 1 if start.value < end.value else -1
        result: Object = NULL
        for i in range(start.value, end.value, step):
            loop_env.set(name, Integer(i))
            result = self.evaluate(node.body, loop_env)

            if isinstance(result, (ReturnValue, Error)):
                return result

        return result

    def visit_collection_loop(self, node: CollectionLoop, env: Environment) -> Object:
        target = node.target
        collection = env.get_outermost(target.value) if target.has_this_prefix else env.get(target.value)
        if collection is None:
            return Error(f"{target.value} is not defined")
        if not isinstance(collection, Array):
            return Error(f"{target.value} is not an array. got={collection.type.value}")

        loop_env = Environment(env)
        name = node.variable.value
        loop_env.set(name, NULL)

        result: Object = NULL
        for element in collection.elements:
            loop_env.set(name, element)
            result = self.evaluate(node.body, loop_env)

            if isinstance(result, (ReturnValue, Error)):
                return result

        return result

    # -- calls ------------------------------------------------------------

    def eval_expressions(self, nodes: List[Expression], env: Environment) -> Union[List[Object], Error]:
        results = []
        for node in nodes:
            evaluated = self.evaluate(node, env)
            if is_error(evaluated):
                return evaluated
            results.append(evaluated)
        return results

    def visit_call_expression(self, node: CallExpression, env: Environment) -> Object:
        function = self.evaluate(node.function, env)
        if is_error(function):
            return function

        args = self.eval_expressions(node.arguments, env)
        if isinstance(args, Error):
            return args

        return self.apply_function(function, args)

    def apply_function(self, fn: Object, args: List[Object]) -> Object:
        if isinstance(fn, Function):
            if len(args) != len(fn.parameters):
                return Error(f"wrong number of arguments. got={len(args)}, want={len(fn.parameters)}")

            call_env = Environment(fn.env)
            for param, arg in zip(fn.parameters, args):
                call_env.set(param.value, arg)

            return unwrap_return_value(self.evaluate(fn.body, call_env))

        elif isinstance(fn, Builtin):
            return fn.fn(*args)

        return Error(f"not a function: {fn.type.value}")

    def visit_index_expression(self, node: IndexExpression, env: Environment) -> Object:
        left = self.evaluate(node.left, env)
        if is_error(left):
            return left

        index = self.evaluate(node.index, env)
        if is_error(index):
            return index

        return self.eval_index(left, index)

    def eval_index(self, left: Object, index: Object) -> Object:
        if isinstance(left, Array) and isinstance(index, Integer):
            if 0 <= index.value < len(left.elements):
                return left.elements[index.value]
            return NULL

        elif isinstance(left, Hash):
            if not isinstance(index, Hashable):
                return Error(f"unusable as hash key: {index.type.value}")
            pair = left.pairs.get(index.hash_key())
            return pair.value if pair is not None else NULL

        return Error(f"index operator not supported: {left.type.value}")

    # -- classes ----------------------------------------------------------

    def visit_new_expression(self, node: NewExpression, env: Environment) -> Object:
        name = node.name.value

        descriptor = env.get(name)
        if descriptor is None:
            descriptor = self.load_class(name)
            if is_error(descriptor):
                return descriptor

        if not isinstance(descriptor, ClassInstance):
            return Error(f"{name} is not a class. got={descriptor.type.value}")

        return self.instantiate(descriptor, node.arguments)

    def load_class(self, name: str) -> Object:
        """Resolve a class from `<name>.ember` on the loader's search path"""
        if name in self.loaded_classes:
            logger.debug("class %s served from cache", name)
            return self.loaded_classes[name]

        if name in self._loading:
            return Error(f"circular class loading: {name}")

        try:
            found = self.loader.load(name)
        except (OSError, UnicodeDecodeError) as e:
            logger.debug("reading class %s failed: %s", name, e)
            return Error(f"could not load class {name}: {e}")
        if found is None:
            return Error(f"no such class: {name}")

        source, filename = found
        logger.debug("loading class %s from %s", name, filename)

        lexer = Lexer(source, filename)
        parser = Parser(lexer.scan_tokens(), source)
        program = parser.parse_program()

        problems = lexer.errors + parser.errors
        if problems:
            logger.debug("%d syntax errors in %s", len(problems), filename)
            return Error(f"could not load class {name}: {problems[0].message}")

        module_env = Environment()
        self._loading.append(name)
        try:
            result = self.evaluate(program, module_env)
        finally:
            self._loading.pop()

        if is_error(result):
            return result

        descriptor = module_env.get(name)
        if not isinstance(descriptor, ClassInstance):
            return Error(f"no such class: {name}")

        self.loaded_classes[name] = descriptor
        return descriptor

    def instantiate(self, descriptor: ClassInstance, arg_nodes: List[Expression]) -> Object:
        instance = ClassInstance(descriptor.name, descriptor.env.copy_detached(),
                                 descriptor.field_declarations)

        # field initializers run again so arrays, hashes and integers are never shared
        for field in descriptor.field_declarations:
            value = self.evaluate(field.value, instance.env)
            if is_error(value):
                return value
            instance.env.set(field.name.value, value)

        # each instance gets its own copies of the methods, closed over its own fields
        for key, value in list(instance.env.values.items()):
            if isinstance(value, Function):
                instance.env.set(key, value.bind(instance.env))

        init = instance.env.get(INIT_BINDING)
        if init is None:
            if arg_nodes:
                return Error(f"wrong number of arguments for {descriptor.name}. "
                             f"got={len(arg_nodes)}, want=0")
            return instance

        if not isinstance(init, InitFunction):
            return Error(f"{INIT_BINDING} of {descriptor.name} is not a constructor")

        if len(arg_nodes) != len(init.parameters):
            return Error(f"wrong number of arguments for {descriptor.name}. "
                         f"got={len(arg_nodes)}, want={len(init.parameters)}")

        init_env = Environment(instance.env)
        for param, arg_node in zip(init.parameters, arg_nodes):
            if param.is_this:
                value = self.evaluate(arg_node, instance.env)
                if is_error(value):
                    return value
                instance.env.set(param.parameter.value, value)
            else:
                value = self.evaluate(arg_node, init_env)
                if is_error(value):
                    return value
                init_env.set(param.parameter.value, value)

        result = self.evaluate(init.body, init_env)
        if is_error(result):
            return result

        return instance

    def visit_method_call_expression(self, node: MethodCallExpression, env: Environment) -> Object:
        object_name = node.object_name.value
        method_name = node.method_name.value

        obj = env.get(object_name)
        if obj is None:
            return Error(f"{object_name} is not defined")
        if not isinstance(obj, ClassInstance):
            return Error(f"{object_name} is not an object. got={obj.type.value}")

        method = obj.env.get(method_name)
        if method is None:
            return Error(f"{method_name} is not a defined method")
        if not isinstance(method, Function):
            return Error(f"{method_name} is not a method of {obj.name}. got={method.type.value}")

        # private methods are only reachable from code running inside the same instance
        if not method.is_public and env.outermost() is not obj.env:
            return Error(f"{method_name} is not a public function in {obj.name}")

        args = self.eval_expressions(node.arguments, obj.env)
        if isinstance(args, Error):
            return args

        return self.apply_function(method, args)


def unwrap_return_value(obj: Object) -> Object:
    if isinstance(obj, ReturnValue):
        return obj.value
    return obj


def truncated_div(a: int, b: int) -> int:
    """Integer division rounding toward zero"""
    quotient = abs(a) // abs(b)
    return quotient if (a >= 0) == (b >= 0) else -quotient


def wrap_int64(value: int) -> int:
    return (value - INT64_MIN) % (2 ** 64) + INT64_MIN


def real_divide(a: float, b: float) -> float:
    """IEEE division: x/0 is a signed infinity, 0/0 is nan"""
    if b != 0:
        return a / b
    if a == 0 or math.isnan(a):
        return math.nan
    return math.copysign(math.inf, a) * math.copysign(1.0, b)


def real_modulo(a: float, b: float) -> float:
    """fmod that yields nan instead of raising for a zero divisor or infinite dividend"""
    try:
        return math.fmod(a, b)
    except ValueError:
        return math.nan


# Each EMBER call costs a dozen or so Python frames
RECURSION_LIMIT = 100000
THREAD_STACK_SIZE = 256 * 1024 * 1024


def call_with_deep_stack(fn: Callable[..., Object], *args) -> Object:
    """Run `fn` on a worker thread whose stack and recursion limit fit deep EMBER recursion"""
    outcome: Dict[str, Any] = {}

    def target():
        try:
            outcome["result"] = fn(*args)
        except BaseException as e:
            outcome["error"] = e

    old_limit = sys.getrecursionlimit()
    old_stack_size = threading.stack_size(THREAD_STACK_SIZE)
    sys.setrecursionlimit(max(old_limit, RECURSION_LIMIT))
    try:
        worker = threading.Thread(target=target, name="ember-eval")
        worker.start()
        worker.join()
    finally:
        threading.stack_size(old_stack_size)
        sys.setrecursionlimit(old_limit)

    if "error" in outcome:
        raise outcome["error"]
    return outcome["result"]


def run_source(source: str, interpreter: Optional[Interpreter] = None,
               env: Optional[Environment] = None,
               filename: str = "<input>") -> Tuple[Object, List[EmberError]]:
    """Lex, parse and evaluate `source`; returns the value and any syntax errors"""
    interpreter = interpreter or Interpreter()
    lexer = Lexer(source, filename)
    parser = Parser(lexer.scan_tokens(), source)
    program = parser.parse_program()
    result = interpreter.interpret(program, env)
    return result, lexer.errors + parser.errors


# ============================================================================
# 10. REPL
# ============================================================================

class EmberREPL:
    """Read-Eval-Print Loop for EMBER"""

    PROMPT = ">> "
    CONTINUATION_PROMPT = ".. "

    def __init__(self, search_paths: Optional[List[str]] = None):
        self.search_paths = search_paths
        self.interpreter = Interpreter(search_paths)
        self.env = self.interpreter.globals
        self.history: List[str] = []
        self.buffer: List[str] = []

    def setup_history(self):
        """Load readline history if available and save it on exit"""
        if not HAVE_READLINE:
            return
        histfile = os.path.join(os.path.expanduser("~"), ".ember_history")
        try:
            readline.read_history_file(histfile)
            readline.set_history_length(1000)
        except OSError:
            pass

        atexit.register(readline.write_history_file, histfile)

    def run(self):
        self.setup_history()
        print(f"Welcome to EMBER {__version__}!")
        print("Type code, '.help' for help, or '.exit' to quit.")

        while True:
            try:
                prompt = self.CONTINUATION_PROMPT if self.buffer else self.PROMPT
                line = input(prompt)

                if not self.buffer:
                    stripped = line.strip()
                    if stripped == "quit":
                        print("Goodbye!")
                        break
                    if stripped.startswith('.'):
                        if self.handle_command(stripped):
                            continue

                self.buffer.append(line)
                source = "\n".join(self.buffer)
                if self.needs_more_input(source):
                    continue

                self.buffer = []
                if not source.strip():
                    continue

                self.history.append(source)
                result = self.execute(source)
                if result is not None and result is not NULL:
                    print(inspect(result))

            except EOFError:
                print("\nGoodbye!")
                break
            except KeyboardInterrupt:
                print("\n(Interrupted)")
                self.buffer = []
                continue

    @staticmethod
    def needs_more_input(source: str) -> bool:
        """True while braces, brackets or parentheses are still open"""
        depth = 0
        for token in Lexer(source, "<repl>").scan_tokens():
            if token.type in (TokenType.LEFT_BRACE, TokenType.LEFT_BRACKET, TokenType.LEFT_PAREN):
                depth += 1
            elif token.type in (TokenType.RIGHT_BRACE, TokenType.RIGHT_BRACKET, TokenType.RIGHT_PAREN):
                depth -= 1
        return depth > 0

    def handle_command(self, line: str) -> bool:
        cmd = line[1:].strip()

        if cmd == "exit" or cmd == "quit":
            print("Goodbye!")
            sys.exit(0)
        elif cmd == "help":
            self.show_help()
            return True
        elif cmd == "history":
            self.show_history()
            return True
        elif cmd.startswith("load "):
            filename = cmd[5:].strip().strip('"\'')
            try:
                with open(filename, 'r', encoding='utf-8') as f:
                    source = f.read()
            except OSError as e:
                print(f"Error loading {filename}: {e}")
                return True
            print(f"Loading {filename}...")
            result = self.execute(source, filename)
            if result is not None and result is not NULL:
                print(inspect(result))
            return True
        elif cmd == "reset":
            self.interpreter = Interpreter(self.search_paths)
            self.env = self.interpreter.globals
            print("Interpreter reset.")
            return True

        print(f"Unknown command: {cmd}. Type '.help' for available commands.")
        return True

    def execute(self, source: str, filename: str = "<repl>") -> Optional[Object]:
        lexer = Lexer(source, filename)
        parser = Parser(lexer.scan_tokens(), source)
        program = parser.parse_program()

        if lexer.has_errors():
            for error in lexer.errors:
                print(error.show_with_context())
        if parser.has_errors():
            print(format_parser_errors(parser.errors))
        if lexer.has_errors() or parser.has_errors():
            return None

        return self.interpreter.interpret(program, self.env)

    def show_help(self):
        print("EMBER Commands:")
        print("  .exit, .quit    - Exit the REPL")
        print("  .help           - Show this help")
        print("  .history        - Show command history")
        print("  .load <file>    - Load and run an EMBER file")
        print("  .reset          - Reset interpreter state")
        print()
        print("Lines with unclosed braces continue on the next prompt.")
        print()
        print("Examples:")
        print("  var add = func(a, b) { a + b }")
        print("  for (i from 0 to 3) { print(i) }")
        print("  class Point { var x = 0  func GetX() { return x } }")

    def show_history(self):
        if not self.history:
            print("No history yet.")
        else:
            for i, cmd in enumerate(self.history[-20:], 1):
                print(f"{i:3}: {cmd}")


# ============================================================================
# 11. FILE EXECUTION
# ============================================================================

def read_script(filename: str) -> str:
    try:
        with open(filename, 'r', encoding='utf-8') as f:
            return f.read()
    except OSError as e:
        raise LoadError(f"Cannot read {filename}: {e.strerror or e}")


def run_file(filename: str, include: Optional[List[str]] = None) -> int:
    """Run a script and print its final value; returns a process exit status"""
    if not filename.endswith(SOURCE_EXTENSION):
        print(f"Warning: File doesn't have {SOURCE_EXTENSION} extension", file=sys.stderr)

    try:
        source = read_script(filename)
    except LoadError as e:
        print(e.show_with_context(), file=sys.stderr)
        return 1

    script_dir = str(Path(filename).resolve().parent)
    search_paths = [script_dir] + list(include or []) + [os.getcwd()]
    return run_code(source, filename, search_paths)


def run_code(source: str, filename: str, search_paths: Optional[List[str]] = None) -> int:
    interpreter = Interpreter(search_paths)

    lexer = Lexer(source, filename)
    parser = Parser(lexer.scan_tokens(), source)
    program = parser.parse_program()

    if lexer.has_errors():
        print("Lexer errors:")
        for error in lexer.errors:
            print(error.show_with_context())
    if parser.has_errors():
        # evaluation still runs on the partial tree
        print(format_parser_errors(parser.errors))

    logger.debug("evaluating %s (%d statements)", filename, len(program.statements))
    result = interpreter.interpret(program)

    if result is not NULL:
        print(inspect(result))
    return 1 if is_error(result) else 0


# ============================================================================
# 12. COMMAND LINE INTERFACE
# ============================================================================

def main(argv: Optional[List[str]] = None):
    parser = argparse.ArgumentParser(
        prog="ember",
        description="EMBER - A small scripting language with closures and classes",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  ember                          # Start REPL
  ember shapes.ember             # Run an EMBER file
  ember -e "print(1 + 2)"        # Execute code directly
  ember -I lib shapes.ember      # Also look in lib/ for classes
        """
    )

    parser.add_argument(
        "file",
        nargs="?",
        help="EMBER script to run (.ember file)"
    )

    parser.add_argument(
        "-v", "--version",
        action="version",
        version=f"EMBER {__version__}"
    )

    parser.add_argument(
        "-e", "--execute",
        help="Execute code from command line"
    )

    parser.add_argument(
        "-I", "--include",
        action="append",
        default=[],
        metavar="DIR",
        help="Directory searched for <Class>.ember files (repeatable)"
    )

    parser.add_argument(
        "-d", "--debug",
        action="store_true",
        help="Log interpreter activity to stderr"
    )

    parser.add_argument(
        "--demo",
        action="store_true",
        help="Run the bundled example program"
    )

    parser.add_argument(
        "-t", "--test",
        action="store_true",
        help="Run test suite"
    )

    args = parser.parse_args(argv)

    if args.debug:
        logging.basicConfig(level=logging.DEBUG,
                            format="%(name)s: %(levelname)s: %(message)s")

    if args.test:
        run_tests()
        return

    if args.execute:
        sys.exit(run_code(args.execute, "<command-line>", args.include + [os.getcwd()]))
    elif args.demo:
        sys.exit(run_code(EXAMPLE_PROGRAM, "<demo>", args.include + [os.getcwd()]))
    elif args.file:
        sys.exit(run_file(args.file, args.include))
    else:
        repl = EmberREPL(args.include + [os.getcwd()])
        repl.run()


# ============================================================================
# 13. TEST SUITE
# ============================================================================

def load_test_suite():
    import unittest
    import test_ember

    return unittest.TestLoader().loadTestsFromModule(test_ember)


def run_tests():
    import unittest

    print("Running EMBER test suite...")
    runner = unittest.TextTestRunner(verbosity=2)
    result = runner.run(load_test_suite())

    if result.wasSuccessful():
        print("All tests passed!")
    else:
        print("Some tests failed.")
        sys.exit(1)


# ============================================================================
# 14. EXAMPLE PROGRAM
# ============================================================================

EXAMPLE_PROGRAM = """
/* EMBER demo */
print("EMBER demo")

// closures
func makeCounter() {
    var count = 0
    return func() { count = count + 1; count }
}
var next = makeCounter()
next()
next()
print("counter: " + "3")
print(next())

// loops
var total = 0
for (i from 1 to 5) { total = total + i }
print(total)

var names = ["ada", "grace", "edsger"]
for (n in names) { print(n) }

// hashes
var ages = {"ada": 36, "grace": 85}
print(ages["grace"])
print(len(add(ages, "edsger", 72)))

// classes
class Account {
    var owner = ""
    var balance = 0

    Init(this.owner, opening) {
        balance = opening
    }

    func Deposit(amount) {
        balance = balance + amount
        return balance
    }

    func Owner() {
        return this.owner
    }
}

var a = new Account("ada", 10)
var b = new Account("grace", 0)
a.Deposit(5)
print(a.Owner())
print(a)
print(b)

if (a.Deposit(0) > 10) { "rich" } elif (true) { "poor" } else { "unknown" }
"""


# ============================================================================
# 15. MAIN ENTRY POINT
# ============================================================================

if __name__ == "__main__":
    main()
