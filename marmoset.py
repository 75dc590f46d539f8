#!/usr/bin/env python3

from abc import ABC, abstractmethod
from argparse import ArgumentParser
from dataclasses import dataclass, field
from pathlib import Path
from string import ascii_letters, digits
from types import ModuleType
from typing import (
    Callable,
    Iterator,
    Optional,
    Type,
    Union,
    final,
)
import code
import enum
import os
import re
import sys

from termcolor import colored

readline: Optional[ModuleType]
try:
    # REPL readline support.
    import readline
except ImportError:
    readline = None


INT64_MAX = (1 << 63) - 1
UINT64_MASK = (1 << 64) - 1

FNV_OFFSET_BASIS = 0xCBF29CE484222325
FNV_PRIME = 0x100000001B3


def wrap_int64(value: int) -> int:
    """
    Reduce an arbitrary precision Python integer to the signed 64-bit range
    using two's complement wrap-around.
    """
    value &= UINT64_MASK
    return value - (1 << 64) if value > INT64_MAX else value


def fnv1_64(data: bytes) -> int:
    digest = FNV_OFFSET_BASIS
    for byte in data:
        digest = (digest * FNV_PRIME) & UINT64_MASK
        digest ^= byte
    return digest


@dataclass(frozen=True)
class HashKey:
    type: str
    value: int


class Value(ABC):
    @staticmethod
    @abstractmethod
    def typename() -> str:
        raise NotImplementedError()

    @abstractmethod
    def __str__(self):
        raise NotImplementedError()


class Hashable(ABC):
    """
    Values that may be used as hash keys. Two hashable values of the same type
    with equal content always produce the same key.
    """

    @abstractmethod
    def hash_key(self) -> HashKey:
        raise NotImplementedError()


@final
@dataclass(eq=False)
class Null(Value):
    @staticmethod
    def typename() -> str:
        return "NULL"

    @staticmethod
    def new() -> "Null":
        return NULL

    def __str__(self):
        return "null"


@final
@dataclass(eq=False)
class Boolean(Value, Hashable):
    data: bool

    @staticmethod
    def typename() -> str:
        return "BOOLEAN"

    @staticmethod
    def new(data: bool) -> "Boolean":
        # Equality on booleans is identity based, so the interned instances
        # must be used everywhere a boolean is produced.
        return TRUE if data else FALSE

    def hash_key(self) -> HashKey:
        return HashKey(self.typename(), 1 if self.data else 0)

    def __str__(self):
        return "true" if self.data else "false"


NULL = Null()
TRUE = Boolean(True)
FALSE = Boolean(False)


@final
@dataclass(eq=False)
class Integer(Value, Hashable):
    data: int

    @staticmethod
    def typename() -> str:
        return "INTEGER"

    def hash_key(self) -> HashKey:
        return HashKey(self.typename(), self.data & UINT64_MASK)

    def __str__(self):
        return str(self.data)


@final
@dataclass(eq=False)
class String(Value, Hashable):
    data: str

    @staticmethod
    def typename() -> str:
        return "STRING"

    def hash_key(self) -> HashKey:
        return HashKey(self.typename(), fnv1_64(self.data.encode("utf-8")))

    def __str__(self):
        return f'"{self.data}"'


@final
@dataclass(eq=False)
class Array(Value):
    elements: list[Value] = field(default_factory=list)

    @staticmethod
    def typename() -> str:
        return "ARRAY"

    def __str__(self):
        elements = ", ".join([str(x) for x in self.elements])
        return f"[{elements}]"


@dataclass(eq=False)
class HashPair:
    # Key value kept for printing, since a HashKey is one way.
    key: Value
    value: Value


@final
@dataclass(eq=False)
class Hash(Value):
    pairs: dict[HashKey, HashPair] = field(default_factory=dict)

    @staticmethod
    def typename() -> str:
        return "HASH"

    def __str__(self):
        elements = ", ".join([f"{p.key}: {p.value}" for p in self.pairs.values()])
        return f"{{{elements}}}"


@final
@dataclass(eq=False)
class Function(Value):
    ast: "AstExpressionFunction"
    env: "Environment"

    @staticmethod
    def typename() -> str:
        return "FUNCTION"

    def __str__(self):
        parameters = ", ".join([x.name for x in self.ast.parameters])
        return f"fn({parameters}) {self.ast.body}"


class Builtin(Value):
    @property
    @abstractmethod
    def name(self) -> str:
        """
        Name associated with the builtin.
        Builtin subclasses should add the builtin name as a class property.
        """
        raise NotImplementedError()

    @staticmethod
    def typename() -> str:
        return "BUILTIN"

    def __str__(self):
        return "builtin function"

    def call(self, arguments: list[Value]) -> Value:
        try:
            result = self.function(arguments)
            # A builtin with no meaningful result, e.g. puts, may simply fall
            # off the end of the host function.
            return Null.new() if result is None else result
        except Exception as e:
            message = f"{e}"
            if len(message) == 0:
                message = f"encountered exception {type(e).__name__}"
            return Error(None, message)

    @staticmethod
    def expect_argument_count(arguments: list[Value], count: int) -> None:
        if len(arguments) != count:
            raise TypeError(
                f"wrong number of arguments. got={len(arguments)}, want={count}"
            )

    @staticmethod
    def array_argument(
        nameof: str, argument: Value, position: str = "argument"
    ) -> "Array":
        if not isinstance(argument, Array):
            raise TypeError(
                f"{position} to `{nameof}` must be {Array.typename()}, got {argument.typename()}"
            )
        return argument

    @abstractmethod
    def function(self, arguments: list[Value]) -> Optional[Value]:
        raise NotImplementedError()


@dataclass
class SourceLocation:
    filename: Optional[str]
    line: int

    def __str__(self):
        if self.filename is None:
            return f"line {self.line}"
        return f"{self.filename}, line {self.line}"


@final
@dataclass(eq=False)
class Error(Value):
    @dataclass
    class TraceElement:
        location: Optional[SourceLocation]
        function: Union[Function, Builtin]

    location: Optional[SourceLocation]
    message: str
    trace: list[TraceElement] = field(default_factory=list)

    @staticmethod
    def typename() -> str:
        return "ERROR"

    def __str__(self):
        return f"ERROR: {self.message}"


@final
@dataclass(eq=False)
class ReturnValue(Value):
    """
    Signal produced by a return statement. Carried out of blocks unchanged and
    unwrapped only at a function call boundary or at the top of a program.
    """

    value: Value

    @staticmethod
    def typename() -> str:
        return "RETURN_VALUE"

    def __str__(self):
        return str(self.value)


class Environment:
    def __init__(self, outer: Optional["Environment"] = None):
        self.outer: Optional["Environment"] = outer
        self.store: dict[str, Value] = dict()

    def let(self, name: str, value: Value) -> None:
        assert not isinstance(value, ReturnValue), "return signal bound to a name"
        self.store[name] = value

    def get(self, name: str) -> Optional[Value]:
        value = self.store.get(name, None)
        if value is None and self.outer is not None:
            return self.outer.get(name)
        return value


class TokenKind(enum.Enum):
    # Meta
    ILLEGAL = "illegal"
    EOF = "eof"
    # Identifiers and Literals
    IDENTIFIER = "identifier"
    INT = "int"
    STRING = "string"
    # Operators
    ASSIGN = "="
    PLUS = "+"
    MINUS = "-"
    BANG = "!"
    ASTERISK = "*"
    SLASH = "/"
    LT = "<"
    GT = ">"
    EQ = "=="
    NOT_EQ = "!="
    # Delimiters
    COMMA = ","
    SEMICOLON = ";"
    COLON = ":"
    LPAREN = "("
    RPAREN = ")"
    LBRACE = "{"
    RBRACE = "}"
    LBRACKET = "["
    RBRACKET = "]"
    # Keywords
    FUNCTION = "fn"
    LET = "let"
    IF = "if"
    ELSE = "else"
    RETURN = "return"
    TRUE = "true"
    FALSE = "false"

    def __str__(self):
        return self.value


@dataclass(frozen=True)
class Token:
    KEYWORDS = {
        # fmt: off
        str(TokenKind.FUNCTION):  TokenKind.FUNCTION,
        str(TokenKind.LET):       TokenKind.LET,
        str(TokenKind.IF):        TokenKind.IF,
        str(TokenKind.ELSE):      TokenKind.ELSE,
        str(TokenKind.RETURN):    TokenKind.RETURN,
        str(TokenKind.TRUE):      TokenKind.TRUE,
        str(TokenKind.FALSE):     TokenKind.FALSE,
        # fmt: on
    }

    kind: TokenKind
    literal: str
    location: Optional[SourceLocation] = None

    @staticmethod
    def lookup_identifier(identifier: str) -> TokenKind:
        return Token.KEYWORDS.get(identifier, TokenKind.IDENTIFIER)


class Lexer:
    EOF_LITERAL = ""
    WHITESPACE = " \t\n\r"
    RE_IDENTIFIER = re.compile(r"[a-zA-Z][a-zA-Z0-9_]*", re.ASCII)
    RE_INTEGER = re.compile(r"[0-9]+", re.ASCII)

    SINGLE_CHARACTER_TOKENS = {
        # fmt: off
        str(TokenKind.ASSIGN):    TokenKind.ASSIGN,
        str(TokenKind.PLUS):      TokenKind.PLUS,
        str(TokenKind.MINUS):     TokenKind.MINUS,
        str(TokenKind.BANG):      TokenKind.BANG,
        str(TokenKind.ASTERISK):  TokenKind.ASTERISK,
        str(TokenKind.SLASH):     TokenKind.SLASH,
        str(TokenKind.LT):        TokenKind.LT,
        str(TokenKind.GT):        TokenKind.GT,
        str(TokenKind.COMMA):     TokenKind.COMMA,
        str(TokenKind.SEMICOLON): TokenKind.SEMICOLON,
        str(TokenKind.COLON):     TokenKind.COLON,
        str(TokenKind.LPAREN):    TokenKind.LPAREN,
        str(TokenKind.RPAREN):    TokenKind.RPAREN,
        str(TokenKind.LBRACE):    TokenKind.LBRACE,
        str(TokenKind.RBRACE):    TokenKind.RBRACE,
        str(TokenKind.LBRACKET):  TokenKind.LBRACKET,
        str(TokenKind.RBRACKET):  TokenKind.RBRACKET,
        # fmt: on
    }

    def __init__(self, source: str, location: Optional[SourceLocation] = None):
        self.source: str = source
        # What position does the source "start" being parsed from.
        # None if the source is being lexed in a location-independent manner.
        self.location: Optional[SourceLocation] = location
        self.position: int = 0

    @staticmethod
    def _is_letter(ch: str) -> bool:
        return ch != "" and ch in ascii_letters

    @staticmethod
    def _is_digit(ch: str) -> bool:
        return ch != "" and ch in digits

    def _current_character(self) -> str:
        if self.position >= len(self.source):
            return Lexer.EOF_LITERAL
        return self.source[self.position]

    def _peek_character(self) -> str:
        if self.position + 1 >= len(self.source):
            return Lexer.EOF_LITERAL
        return self.source[self.position + 1]

    def _is_eof(self) -> bool:
        return self.position >= len(self.source)

    def _advance_character(self) -> None:
        if self._is_eof():
            return
        if self.location is not None:
            self.location.line += int(self.source[self.position] == "\n")
        self.position += 1

    def _advance_characters(self, count: int) -> None:
        for _ in range(count):
            self._advance_character()

    def _skip_whitespace(self) -> None:
        while not self._is_eof() and self._current_character() in Lexer.WHITESPACE:
            self._advance_character()

    def _current_location(self) -> Optional[SourceLocation]:
        if self.location is None:
            return None
        return SourceLocation(self.location.filename, self.location.line)

    def _lex_keyword_or_identifier(self, location: Optional[SourceLocation]) -> Token:
        assert Lexer._is_letter(self._current_character())
        match = Lexer.RE_IDENTIFIER.match(self.source, self.position)
        assert match is not None  # guaranteed by regexp
        text = match[0]
        self._advance_characters(len(text))
        return Token(Token.lookup_identifier(text), text, location)

    def _lex_integer(self, location: Optional[SourceLocation]) -> Token:
        assert Lexer._is_digit(self._current_character())
        match = Lexer.RE_INTEGER.match(self.source, self.position)
        assert match is not None  # guaranteed by regexp
        text = match[0]
        self._advance_characters(len(text))
        return Token(TokenKind.INT, text, location)

    def _lex_string(self, location: Optional[SourceLocation]) -> Token:
        assert self._current_character() == '"'
        self._advance_character()
        start = self.position
        while not self._is_eof() and self._current_character() != '"':
            self._advance_character()
        if self._is_eof():
            # An unterminated string consumes the rest of the input.
            return Token(TokenKind.EOF, Lexer.EOF_LITERAL, location)
        literal = self.source[start : self.position]
        self._advance_character()
        return Token(TokenKind.STRING, literal, location)

    def next_token(self) -> Token:
        self._skip_whitespace()
        location = self._current_location()

        if self._is_eof():
            return Token(TokenKind.EOF, Lexer.EOF_LITERAL, location)

        # Literals, Identifiers, and Keywords
        if self._current_character() == '"':
            return self._lex_string(location)
        if Lexer._is_letter(self._current_character()):
            return self._lex_keyword_or_identifier(location)
        if Lexer._is_digit(self._current_character()):
            return self._lex_integer(location)

        # Operators
        if self._current_character() == "=" and self._peek_character() == "=":
            self._advance_characters(2)
            return Token(TokenKind.EQ, str(TokenKind.EQ), location)
        if self._current_character() == "!" and self._peek_character() == "=":
            self._advance_characters(2)
            return Token(TokenKind.NOT_EQ, str(TokenKind.NOT_EQ), location)

        # Single character operators and delimiters
        character = self._current_character()
        self._advance_character()
        kind = Lexer.SINGLE_CHARACTER_TOKENS.get(character, TokenKind.ILLEGAL)
        return Token(kind, character, location)

    def tokens(self) -> Iterator[Token]:
        while True:
            token = self.next_token()
            yield token
            if token.kind == TokenKind.EOF:
                return


@dataclass
class ParseError(Exception):
    location: Optional[SourceLocation]
    why: str
    # Set when the error was caused by running out of input, in which case
    # more source text may turn the program into a valid one.
    eof: bool = False

    def __str__(self):
        if self.location is None:
            return f"{self.why}"
        return f"[{self.location}] {self.why}"


class ParseFailure(Exception):
    def __init__(self, errors: list[ParseError]):
        assert len(errors) != 0
        self.errors = errors
        super().__init__("\n".join([str(x) for x in errors]))


def truthy(value: Value) -> bool:
    return not (value is NULL or value is FALSE)


def interrupted(value: Optional[Value]) -> bool:
    """
    Errors and return signals end evaluation of whatever construct produced
    them, and are passed upward unchanged until something consumes them.
    """
    return isinstance(value, (Error, ReturnValue))


class AstNode(ABC):
    location: Optional[SourceLocation]

    @abstractmethod
    def __str__(self):
        raise NotImplementedError()


class AstExpression(AstNode):
    location: Optional[SourceLocation]

    @abstractmethod
    def eval(self, env: Environment) -> Value:
        raise NotImplementedError()


class AstStatement(AstNode):
    location: Optional[SourceLocation]

    @abstractmethod
    def eval(self, env: Environment) -> Optional[Value]:
        raise NotImplementedError()


@final
@dataclass
class AstProgram(AstNode):
    location: Optional[SourceLocation] = field(compare=False)
    statements: list[AstStatement]

    def eval(self, env: Environment) -> Optional[Value]:
        result: Optional[Value] = None
        for statement in self.statements:
            result = statement.eval(env)
            if isinstance(result, ReturnValue):
                return result.value
            if isinstance(result, Error):
                return result
        return result

    def __str__(self):
        return " ".join([str(x) for x in self.statements])


@final
@dataclass
class AstBlock(AstNode):
    location: Optional[SourceLocation] = field(compare=False)
    statements: list[AstStatement]

    def eval(self, env: Environment) -> Optional[Value]:
        # Blocks share the environment of the enclosing scope. Only function
        # calls introduce a new one.
        result: Optional[Value] = None
        for statement in self.statements:
            result = statement.eval(env)
            if interrupted(result):
                return result
        return result

    def __str__(self):
        if len(self.statements) == 0:
            return "{ }"
        return f"{{ {' '.join([str(x) for x in self.statements])} }}"


@final
@dataclass
class AstIdentifier(AstNode):
    """
    Identifier with no additional behavior attached.
    """

    location: Optional[SourceLocation] = field(compare=False)
    name: str

    def __str__(self):
        return self.name


@final
@dataclass
class AstExpressionIdentifier(AstExpression):
    """
    Identifier evaluated as an identifier/symbol expression to produce a value.
    """

    location: Optional[SourceLocation] = field(compare=False)
    name: str

    def eval(self, env: Environment) -> Value:
        value = env.get(self.name)
        if value is None:
            return Error(self.location, f"identifier not found: {self.name}")
        return value

    def __str__(self):
        return self.name


@final
@dataclass
class AstExpressionInteger(AstExpression):
    location: Optional[SourceLocation] = field(compare=False)
    data: int

    def eval(self, env: Environment) -> Value:
        return Integer(self.data)

    def __str__(self):
        return str(self.data)


@final
@dataclass
class AstExpressionBoolean(AstExpression):
    location: Optional[SourceLocation] = field(compare=False)
    data: bool

    def eval(self, env: Environment) -> Value:
        return Boolean.new(self.data)

    def __str__(self):
        return "true" if self.data else "false"


@final
@dataclass
class AstExpressionString(AstExpression):
    location: Optional[SourceLocation] = field(compare=False)
    data: str

    def eval(self, env: Environment) -> Value:
        return String(self.data)

    def __str__(self):
        return f'"{self.data}"'


@final
@dataclass
class AstExpressionArray(AstExpression):
    location: Optional[SourceLocation] = field(compare=False)
    elements: list[AstExpression]

    def eval(self, env: Environment) -> Value:
        values: list[Value] = list()
        for x in self.elements:
            result = x.eval(env)
            if interrupted(result):
                return result
            values.append(result)
        return Array(values)

    def __str__(self):
        return f"[{', '.join([str(x) for x in self.elements])}]"


@final
@dataclass
class AstExpressionHash(AstExpression):
    location: Optional[SourceLocation] = field(compare=False)
    pairs: list[tuple[AstExpression, AstExpression]]

    def eval(self, env: Environment) -> Value:
        pairs: dict[HashKey, HashPair] = dict()
        for k, v in self.pairs:
            k_result = k.eval(env)
            if interrupted(k_result):
                return k_result
            if not isinstance(k_result, Hashable):
                return Error(
                    k.location, f"unusable as hash key: {k_result.typename()}"
                )
            v_result = v.eval(env)
            if interrupted(v_result):
                return v_result
            pairs[k_result.hash_key()] = HashPair(k_result, v_result)
        return Hash(pairs)

    def __str__(self):
        return f"{{{', '.join([f'{k}: {v}' for k, v in self.pairs])}}}"


@final
@dataclass
class AstExpressionFunction(AstExpression):
    location: Optional[SourceLocation] = field(compare=False)
    parameters: list[AstIdentifier]
    body: AstBlock

    def eval(self, env: Environment) -> Value:
        return Function(self, env)

    def __str__(self):
        return f"fn({', '.join([str(x) for x in self.parameters])}) {self.body}"


@final
@dataclass
class AstExpressionPrefix(AstExpression):
    location: Optional[SourceLocation] = field(compare=False)
    operator: str
    operand: AstExpression

    def eval(self, env: Environment) -> Value:
        operand = self.operand.eval(env)
        if interrupted(operand):
            return operand
        if self.operator == str(TokenKind.BANG):
            return Boolean.new(not truthy(operand))
        if self.operator == str(TokenKind.MINUS) and isinstance(operand, Integer):
            return Integer(wrap_int64(-operand.data))
        return Error(
            self.location, f"unknown operator: {self.operator}{operand.typename()}"
        )

    def __str__(self):
        return f"({self.operator}{self.operand})"


def eval_integer_infix(
    location: Optional[SourceLocation], operator: str, lhs: Integer, rhs: Integer
) -> Value:
    a = lhs.data
    b = rhs.data
    match operator:
        case "+":
            return Integer(wrap_int64(a + b))
        case "-":
            return Integer(wrap_int64(a - b))
        case "*":
            return Integer(wrap_int64(a * b))
        case "/":
            if b == 0:
                return Error(location, "division by zero")
            # Integer division truncates toward zero rather than flooring.
            quotient = abs(a) // abs(b)
            return Integer(wrap_int64(quotient if (a < 0) == (b < 0) else -quotient))
        case "<":
            return Boolean.new(a < b)
        case ">":
            return Boolean.new(a > b)
        case "==":
            return Boolean.new(a == b)
        case "!=":
            return Boolean.new(a != b)
    return Error(
        location, f"unknown operator: {lhs.typename()} {operator} {rhs.typename()}"
    )


def eval_infix(
    location: Optional[SourceLocation], operator: str, lhs: Value, rhs: Value
) -> Value:
    if isinstance(lhs, Integer) and isinstance(rhs, Integer):
        return eval_integer_infix(location, operator, lhs, rhs)
    if isinstance(lhs, String) and isinstance(rhs, String) and operator == "+":
        return String(lhs.data + rhs.data)
    if lhs.typename() != rhs.typename():
        return Error(
            location,
            f"type mismatch: {lhs.typename()} {operator} {rhs.typename()}",
        )
    # Booleans and null are interned, so identity is equality for them. Any
    # other pair of values is only equal to itself.
    if operator == str(TokenKind.EQ):
        return Boolean.new(lhs is rhs)
    if operator == str(TokenKind.NOT_EQ):
        return Boolean.new(lhs is not rhs)
    return Error(
        location, f"unknown operator: {lhs.typename()} {operator} {rhs.typename()}"
    )


@final
@dataclass
class AstExpressionInfix(AstExpression):
    location: Optional[SourceLocation] = field(compare=False)
    lhs: AstExpression
    operator: str
    rhs: AstExpression

    def eval(self, env: Environment) -> Value:
        lhs = self.lhs.eval(env)
        if interrupted(lhs):
            return lhs
        rhs = self.rhs.eval(env)
        if interrupted(rhs):
            return rhs
        return eval_infix(self.location, self.operator, lhs, rhs)

    def __str__(self):
        return f"({self.lhs} {self.operator} {self.rhs})"


@final
@dataclass
class AstExpressionIf(AstExpression):
    location: Optional[SourceLocation] = field(compare=False)
    condition: AstExpression
    consequence: AstBlock
    alternative: Optional[AstBlock]

    def eval(self, env: Environment) -> Value:
        condition = self.condition.eval(env)
        if interrupted(condition):
            return condition
        if truthy(condition):
            result = self.consequence.eval(env)
        elif self.alternative is not None:
            result = self.alternative.eval(env)
        else:
            result = None
        return result if result is not None else Null.new()

    def __str__(self):
        if self.alternative is None:
            return f"if ({self.condition}) {self.consequence}"
        return f"if ({self.condition}) {self.consequence} else {self.alternative}"


@final
@dataclass
class AstExpressionCall(AstExpression):
    location: Optional[SourceLocation] = field(compare=False)
    function: AstExpression
    arguments: list[AstExpression]

    def eval(self, env: Environment) -> Value:
        function = self.function.eval(env)
        if interrupted(function):
            return function
        arguments: list[Value] = list()
        for argument in self.arguments:
            result = argument.eval(env)
            if interrupted(result):
                return result
            arguments.append(result)
        return call(self.location, function, arguments)

    def __str__(self):
        return f"{self.function}({', '.join([str(x) for x in self.arguments])})"


@final
@dataclass
class AstExpressionIndex(AstExpression):
    location: Optional[SourceLocation] = field(compare=False)
    store: AstExpression
    index: AstExpression

    def eval(self, env: Environment) -> Value:
        store = self.store.eval(env)
        if interrupted(store):
            return store
        index = self.index.eval(env)
        if interrupted(index):
            return index
        if isinstance(store, Array) and isinstance(index, Integer):
            if 0 <= index.data < len(store.elements):
                return store.elements[index.data]
            return Null.new()
        if isinstance(store, Hash):
            if not isinstance(index, Hashable):
                return Error(
                    self.location, f"unusable as hash key: {index.typename()}"
                )
            pair = store.pairs.get(index.hash_key(), None)
            return pair.value if pair is not None else Null.new()
        return Error(
            self.location, f"index operator not supported: {store.typename()}"
        )

    def __str__(self):
        return f"({self.store}[{self.index}])"


@final
@dataclass
class AstStatementLet(AstStatement):
    location: Optional[SourceLocation] = field(compare=False)
    name: AstIdentifier
    value: AstExpression

    def eval(self, env: Environment) -> Optional[Value]:
        result = self.value.eval(env)
        if interrupted(result):
            return result
        env.let(self.name.name, result)
        return None

    def __str__(self):
        return f"let {self.name} = {self.value};"


@final
@dataclass
class AstStatementReturn(AstStatement):
    location: Optional[SourceLocation] = field(compare=False)
    value: Optional[AstExpression]

    def eval(self, env: Environment) -> Optional[Value]:
        if self.value is None:
            return ReturnValue(Null.new())
        result = self.value.eval(env)
        if interrupted(result):
            return result
        return ReturnValue(result)

    def __str__(self):
        if self.value is None:
            return "return;"
        return f"return {self.value};"


@final
@dataclass
class AstStatementExpression(AstStatement):
    location: Optional[SourceLocation] = field(compare=False)
    expression: AstExpression

    def eval(self, env: Environment) -> Optional[Value]:
        return self.expression.eval(env)

    def __str__(self):
        return f"{self.expression};"


class Precedence(enum.IntEnum):
    # fmt: off
    LOWEST     = enum.auto()
    EQUALITY   = enum.auto()  # == !=
    RELATIONAL = enum.auto()  # < >
    ADD_SUB    = enum.auto()  # + -
    MUL_DIV    = enum.auto()  # * /
    PREFIX     = enum.auto()  # -x !x
    CALL       = enum.auto()  # foo(bar, 123)
    INDEX      = enum.auto()  # foo[42]
    # fmt: on


class Parser:
    ParseNud = Callable[["Parser"], Optional[AstExpression]]
    ParseLed = Callable[["Parser", AstExpression], Optional[AstExpression]]

    PRECEDENCES: dict[TokenKind, Precedence] = {
        # fmt: off
        TokenKind.EQ:       Precedence.EQUALITY,
        TokenKind.NOT_EQ:   Precedence.EQUALITY,
        TokenKind.LT:       Precedence.RELATIONAL,
        TokenKind.GT:       Precedence.RELATIONAL,
        TokenKind.PLUS:     Precedence.ADD_SUB,
        TokenKind.MINUS:    Precedence.ADD_SUB,
        TokenKind.ASTERISK: Precedence.MUL_DIV,
        TokenKind.SLASH:    Precedence.MUL_DIV,
        TokenKind.LPAREN:   Precedence.CALL,
        TokenKind.LBRACKET: Precedence.INDEX,
        # fmt: on
    }

    def __init__(self, lexer: Lexer):
        self.lexer: Lexer = lexer
        self.errors: list[ParseError] = list()
        self.current_token: Token = Token(TokenKind.ILLEGAL, "DEFAULT CURRENT TOKEN")
        self.peek_token: Token = Token(TokenKind.ILLEGAL, "DEFAULT PEEK TOKEN")

        # Read two tokens so that both the current and peek tokens are set.
        self._advance_token()
        self._advance_token()

        self.parse_nud_functions: dict[TokenKind, Parser.ParseNud] = dict()
        self.parse_led_functions: dict[TokenKind, Parser.ParseLed] = dict()

        self._register_nud(TokenKind.IDENTIFIER, Parser.parse_expression_identifier)
        self._register_nud(TokenKind.INT, Parser.parse_expression_integer)
        self._register_nud(TokenKind.STRING, Parser.parse_expression_string)
        self._register_nud(TokenKind.TRUE, Parser.parse_expression_boolean)
        self._register_nud(TokenKind.FALSE, Parser.parse_expression_boolean)
        self._register_nud(TokenKind.BANG, Parser.parse_expression_prefix)
        self._register_nud(TokenKind.MINUS, Parser.parse_expression_prefix)
        self._register_nud(TokenKind.LPAREN, Parser.parse_expression_grouped)
        self._register_nud(TokenKind.IF, Parser.parse_expression_if)
        self._register_nud(TokenKind.FUNCTION, Parser.parse_expression_function)
        self._register_nud(TokenKind.LBRACKET, Parser.parse_expression_array)
        self._register_nud(TokenKind.LBRACE, Parser.parse_expression_hash)

        self._register_led(TokenKind.EQ, Parser.parse_expression_infix)
        self._register_led(TokenKind.NOT_EQ, Parser.parse_expression_infix)
        self._register_led(TokenKind.LT, Parser.parse_expression_infix)
        self._register_led(TokenKind.GT, Parser.parse_expression_infix)
        self._register_led(TokenKind.PLUS, Parser.parse_expression_infix)
        self._register_led(TokenKind.MINUS, Parser.parse_expression_infix)
        self._register_led(TokenKind.ASTERISK, Parser.parse_expression_infix)
        self._register_led(TokenKind.SLASH, Parser.parse_expression_infix)
        self._register_led(TokenKind.LPAREN, Parser.parse_expression_call)
        self._register_led(TokenKind.LBRACKET, Parser.parse_expression_index)

    def _register_nud(self, kind: TokenKind, parse: "Parser.ParseNud") -> None:
        self.parse_nud_functions[kind] = parse

    def _register_led(self, kind: TokenKind, parse: "Parser.ParseLed") -> None:
        self.parse_led_functions[kind] = parse

    def _advance_token(self) -> Token:
        current_token = self.current_token
        self.current_token = self.peek_token
        self.peek_token = self.lexer.next_token()
        return current_token

    def _check_current(self, kind: TokenKind) -> bool:
        return self.current_token.kind == kind

    def _check_peek(self, kind: TokenKind) -> bool:
        return self.peek_token.kind == kind

    def _expect_peek(self, kind: TokenKind) -> bool:
        if not self._check_peek(kind):
            self._error(
                self.peek_token,
                f"Expected next token to be {kind.name}, got {self.peek_token.kind.name}",
            )
            return False
        self._advance_token()
        return True

    def _error(self, token: Token, why: str) -> None:
        eof = token.kind == TokenKind.EOF
        self.errors.append(ParseError(token.location, why, eof))

    def _current_precedence(self) -> Precedence:
        return Parser.PRECEDENCES.get(self.current_token.kind, Precedence.LOWEST)

    def _peek_precedence(self) -> Precedence:
        return Parser.PRECEDENCES.get(self.peek_token.kind, Precedence.LOWEST)

    def parse_program(self) -> AstProgram:
        location = self.current_token.location
        statements: list[AstStatement] = list()
        while not self._check_current(TokenKind.EOF):
            statement = self.parse_statement()
            if statement is not None:
                statements.append(statement)
            self._advance_token()
        return AstProgram(location, statements)

    def parse_statement(self) -> Optional[AstStatement]:
        if self._check_current(TokenKind.LET):
            return self.parse_statement_let()
        if self._check_current(TokenKind.RETURN):
            return self.parse_statement_return()
        return self.parse_statement_expression()

    def parse_statement_let(self) -> Optional[AstStatementLet]:
        location = self.current_token.location
        if not self._expect_peek(TokenKind.IDENTIFIER):
            return None
        identifier = AstIdentifier(
            self.current_token.location, self.current_token.literal
        )
        if not self._expect_peek(TokenKind.ASSIGN):
            return None
        self._advance_token()
        expression = self.parse_expression()
        if expression is None:
            return None
        if self._check_peek(TokenKind.SEMICOLON):
            self._advance_token()
        return AstStatementLet(location, identifier, expression)

    def parse_statement_return(self) -> Optional[AstStatementReturn]:
        location = self.current_token.location
        if self._check_peek(TokenKind.SEMICOLON):
            self._advance_token()
            return AstStatementReturn(location, None)
        if self._check_peek(TokenKind.RBRACE) or self._check_peek(TokenKind.EOF):
            return AstStatementReturn(location, None)
        self._advance_token()
        expression = self.parse_expression()
        if expression is None:
            return None
        if self._check_peek(TokenKind.SEMICOLON):
            self._advance_token()
        return AstStatementReturn(location, expression)

    def parse_statement_expression(self) -> Optional[AstStatementExpression]:
        location = self.current_token.location
        expression = self.parse_expression()
        if expression is None:
            return None
        # Semicolons are optional after an expression so that single
        # expressions typed into the REPL need no terminator.
        if self._check_peek(TokenKind.SEMICOLON):
            self._advance_token()
        return AstStatementExpression(location, expression)

    def parse_block(self) -> Optional[AstBlock]:
        location = self.current_token.location
        assert self._check_current(TokenKind.LBRACE)
        self._advance_token()
        statements: list[AstStatement] = list()
        while not self._check_current(TokenKind.RBRACE):
            if self._check_current(TokenKind.EOF):
                self._error(
                    self.current_token,
                    f"Expected next token to be {TokenKind.RBRACE.name}, got {TokenKind.EOF.name}",
                )
                return None
            statement = self.parse_statement()
            if statement is not None:
                statements.append(statement)
            self._advance_token()
        return AstBlock(location, statements)

    def parse_expression(
        self, precedence: Precedence = Precedence.LOWEST
    ) -> Optional[AstExpression]:
        parse_nud = self.parse_nud_functions.get(self.current_token.kind, None)
        if parse_nud is None:
            self._error(
                self.current_token,
                f"No prefix parse function for {self.current_token.kind.name}",
            )
            return None
        expression = parse_nud(self)
        while (
            expression is not None
            and not self._check_peek(TokenKind.SEMICOLON)
            and precedence < self._peek_precedence()
        ):
            parse_led = self.parse_led_functions.get(self.peek_token.kind, None)
            if parse_led is None:
                return expression
            self._advance_token()
            expression = parse_led(self, expression)
        return expression

    def parse_expression_list(self, end: TokenKind) -> Optional[list[AstExpression]]:
        expressions: list[AstExpression] = list()
        if self._check_peek(end):
            self._advance_token()
            return expressions
        self._advance_token()
        expression = self.parse_expression()
        if expression is None:
            return None
        expressions.append(expression)
        while self._check_peek(TokenKind.COMMA):
            self._advance_token()
            self._advance_token()
            expression = self.parse_expression()
            if expression is None:
                return None
            expressions.append(expression)
        if not self._expect_peek(end):
            return None
        return expressions

    def parse_expression_identifier(self) -> AstExpressionIdentifier:
        token = self.current_token
        return AstExpressionIdentifier(token.location, token.literal)

    def parse_expression_integer(self) -> Optional[AstExpressionInteger]:
        token = self.current_token
        text = token.literal.lstrip("0") or "0"
        # Length is checked first since int() rejects very long digit strings.
        if len(text) > len(str(INT64_MAX)) or int(text) > INT64_MAX:
            self._error(token, f'Could not parse "{token.literal}" as an integer')
            return None
        return AstExpressionInteger(token.location, int(text))

    def parse_expression_string(self) -> AstExpressionString:
        token = self.current_token
        return AstExpressionString(token.location, token.literal)

    def parse_expression_boolean(self) -> AstExpressionBoolean:
        token = self.current_token
        return AstExpressionBoolean(token.location, token.kind == TokenKind.TRUE)

    def parse_expression_prefix(self) -> Optional[AstExpressionPrefix]:
        token = self._advance_token()
        operand = self.parse_expression(Precedence.PREFIX)
        if operand is None:
            return None
        return AstExpressionPrefix(token.location, token.literal, operand)

    def parse_expression_infix(
        self, lhs: AstExpression
    ) -> Optional[AstExpressionInfix]:
        precedence = self._current_precedence()
        token = self._advance_token()
        rhs = self.parse_expression(precedence)
        if rhs is None:
            return None
        return AstExpressionInfix(token.location, lhs, token.literal, rhs)

    def parse_expression_grouped(self) -> Optional[AstExpression]:
        self._advance_token()
        expression = self.parse_expression()
        if expression is None:
            return None
        if not self._expect_peek(TokenKind.RPAREN):
            return None
        return expression

    def parse_expression_if(self) -> Optional[AstExpressionIf]:
        location = self.current_token.location
        if not self._expect_peek(TokenKind.LPAREN):
            return None
        self._advance_token()
        condition = self.parse_expression()
        if condition is None:
            return None
        if not self._expect_peek(TokenKind.RPAREN):
            return None
        if not self._expect_peek(TokenKind.LBRACE):
            return None
        consequence = self.parse_block()
        if consequence is None:
            return None
        alternative: Optional[AstBlock] = None
        if self._check_peek(TokenKind.ELSE):
            self._advance_token()
            if not self._expect_peek(TokenKind.LBRACE):
                return None
            alternative = self.parse_block()
            if alternative is None:
                return None
        return AstExpressionIf(location, condition, consequence, alternative)

    def parse_function_parameters(self) -> Optional[list[AstIdentifier]]:
        parameters: list[AstIdentifier] = list()
        if self._check_peek(TokenKind.RPAREN):
            self._advance_token()
            return parameters
        if not self._expect_peek(TokenKind.IDENTIFIER):
            return None
        parameters.append(
            AstIdentifier(self.current_token.location, self.current_token.literal)
        )
        while self._check_peek(TokenKind.COMMA):
            self._advance_token()
            if not self._expect_peek(TokenKind.IDENTIFIER):
                return None
            parameters.append(
                AstIdentifier(self.current_token.location, self.current_token.literal)
            )
        if not self._expect_peek(TokenKind.RPAREN):
            return None
        seen: set[str] = set()
        for parameter in parameters:
            if parameter.name in seen:
                self.errors.append(
                    ParseError(
                        parameter.location,
                        f"Duplicate function parameter {parameter.name}",
                    )
                )
                return None
            seen.add(parameter.name)
        return parameters

    def parse_expression_function(self) -> Optional[AstExpressionFunction]:
        location = self.current_token.location
        if not self._expect_peek(TokenKind.LPAREN):
            return None
        parameters = self.parse_function_parameters()
        if parameters is None:
            return None
        if not self._expect_peek(TokenKind.LBRACE):
            return None
        body = self.parse_block()
        if body is None:
            return None
        return AstExpressionFunction(location, parameters, body)

    def parse_expression_array(self) -> Optional[AstExpressionArray]:
        location = self.current_token.location
        elements = self.parse_expression_list(TokenKind.RBRACKET)
        if elements is None:
            return None
        return AstExpressionArray(location, elements)

    def parse_expression_hash(self) -> Optional[AstExpressionHash]:
        location = self.current_token.location
        pairs: list[tuple[AstExpression, AstExpression]] = list()
        while not self._check_peek(TokenKind.RBRACE):
            self._advance_token()
            key = self.parse_expression()
            if key is None:
                return None
            if not self._expect_peek(TokenKind.COLON):
                return None
            self._advance_token()
            value = self.parse_expression()
            if value is None:
                return None
            pairs.append((key, value))
            if not self._check_peek(TokenKind.RBRACE) and not self._expect_peek(
                TokenKind.COMMA
            ):
                return None
        self._advance_token()
        return AstExpressionHash(location, pairs)

    def parse_expression_call(
        self, function: AstExpression
    ) -> Optional[AstExpressionCall]:
        location = self.current_token.location
        arguments = self.parse_expression_list(TokenKind.RPAREN)
        if arguments is None:
            return None
        return AstExpressionCall(location, function, arguments)

    def parse_expression_index(self, store: AstExpression) -> Optional[AstExpressionIndex]:
        location = self.current_token.location
        self._advance_token()
        index = self.parse_expression()
        if index is None:
            return None
        if not self._expect_peek(TokenKind.RBRACKET):
            return None
        return AstExpressionIndex(location, store, index)


def call(
    location: Optional[SourceLocation],
    function: Value,
    arguments: list[Value],
) -> Value:
    if isinstance(function, Builtin):
        produced = function.call(arguments)
        if isinstance(produced, Error):
            produced.trace.append(Error.TraceElement(location, function))
        return produced
    if not isinstance(function, Function):
        return Error(location, f"not a function: {function.typename()}")
    if len(arguments) != len(function.ast.parameters):
        return Error(
            location,
            f"wrong number of arguments: want={len(function.ast.parameters)}, got={len(arguments)}",
        )
    # The call environment encloses the environment the function was defined
    # in, not the environment of the caller.
    env = Environment(function.env)
    for i in range(len(function.ast.parameters)):
        env.let(function.ast.parameters[i].name, arguments[i])
    result = function.ast.body.eval(env)
    if isinstance(result, ReturnValue):
        return result.value
    if isinstance(result, Error):
        result.trace.append(Error.TraceElement(location, function))
        return result
    return result if result is not None else Null.new()


# @builtin("first", 1)
# def builtin_first(array: Value) -> Optional[Value]: ...
def builtin(nameof: str, count: Optional[int] = None):
    def decorator(func: Callable[..., Optional[Value]]) -> Type[Builtin]:
        class GeneratedBuiltin(Builtin):
            name = nameof

            def function(self, arguments: list[Value]) -> Optional[Value]:
                if count is not None:
                    Builtin.expect_argument_count(arguments, count)
                return func(*arguments)

        GeneratedBuiltin.__name__ = f"Builtin_{func.__name__}"
        return GeneratedBuiltin

    return decorator


@builtin("len", 1)
def builtin_len(value: Value) -> Optional[Value]:
    if isinstance(value, String):
        return Integer(len(value.data))
    if isinstance(value, Array):
        return Integer(len(value.elements))
    return Error(None, f"argument to `len` not supported, got {value.typename()}")


@builtin("first", 1)
def builtin_first(value: Value) -> Optional[Value]:
    array = Builtin.array_argument("first", value)
    if len(array.elements) == 0:
        return Null.new()
    return array.elements[0]


@builtin("last", 1)
def builtin_last(value: Value) -> Optional[Value]:
    array = Builtin.array_argument("last", value)
    if len(array.elements) == 0:
        return Null.new()
    return array.elements[-1]


@builtin("tail", 1)
def builtin_tail(value: Value) -> Optional[Value]:
    array = Builtin.array_argument("tail", value)
    if len(array.elements) == 0:
        return Null.new()
    return Array(array.elements[1:])


@builtin("push", 2)
def builtin_push(value: Value, element: Value) -> Optional[Value]:
    array = Builtin.array_argument("push", value, "first argument")
    # Arrays behave as values: the argument is left untouched and a new array
    # is produced.
    return Array(array.elements + [element])


@builtin("puts")
def builtin_puts(*values: Value) -> Optional[Value]:
    for value in values:
        print(value.data if isinstance(value, String) else value)
    return Null.new()


def parse_source(
    source: str, location: Optional[SourceLocation] = None
) -> AstProgram:
    parser = Parser(Lexer(source, location))
    program = parser.parse_program()
    if len(parser.errors) != 0:
        raise ParseFailure(parser.errors)
    return program


def eval_source(
    source: str,
    env: Optional[Environment] = None,
    location: Optional[SourceLocation] = None,
) -> Optional[Value]:
    program = parse_source(source, location)
    return program.eval(env or Environment(BASE_ENVIRONMENT))


# Outermost environment holding the builtins. Sessions evaluate in a child of
# this environment so that user bindings may shadow builtin names.
BASE_ENVIRONMENT = Environment()
BASE_ENVIRONMENT.let("len", builtin_len())
BASE_ENVIRONMENT.let("first", builtin_first())
BASE_ENVIRONMENT.let("last", builtin_last())
BASE_ENVIRONMENT.let("tail", builtin_tail())
BASE_ENVIRONMENT.let("push", builtin_push())
BASE_ENVIRONMENT.let("puts", builtin_puts())


class Repl(code.InteractiveConsole):
    def __init__(self, env: Optional[Environment] = None):
        super().__init__()
        self.env = env if env is not None else Environment(BASE_ENVIRONMENT)

    def runsource(self, source, filename="<input>", symbol="single"):
        parser = Parser(Lexer(source))
        program = parser.parse_program()
        if len(parser.errors) != 0:
            if not source.endswith("\n") and any(x.eof for x in parser.errors):
                # Assume the user has not finished entering their program, and
                # wait for an additional line before producing an error.
                return True
            for error in parser.errors:
                print(colored(f"\t{error}", "red"))
            return False
        result = program.eval(self.env)
        if isinstance(result, Error):
            print(colored(str(result), "red"))
        elif result is not None:
            print(result)
        return False


def print_error(error: Error) -> None:
    if error.location is not None:
        message = f"[{error.location}] error: {error.message}"
    else:
        message = f"error: {error.message}"
    print(colored(message, "red"), file=sys.stderr)
    for element in error.trace:
        s = f"...within {element.function}"
        if element.location is not None:
            s += f" called from {element.location}"
        print(s, file=sys.stderr)


def main() -> None:
    description = "The Marmoset Programming Language"
    parser = ArgumentParser(description=description)
    parser.add_argument(
        "-e",
        "--eval",
        dest="source",
        type=str,
        default=None,
        metavar="SOURCE",
        help="evaluate SOURCE, print the result, and exit",
    )
    args = parser.parse_args()

    if args.source is not None:
        env = Environment(BASE_ENVIRONMENT)
        try:
            result = eval_source(args.source, env, SourceLocation("<eval>", 1))
        except ParseFailure as e:
            for error in e.errors:
                print(colored(f"error: {error}", "red"), file=sys.stderr)
            sys.exit(1)
        if isinstance(result, Error):
            print_error(result)
            sys.exit(1)
        if result is not None:
            print(result)
    else:
        HOME = os.environ.get("MARMOSET_HOME", Path.home())
        HISTFILE = Path(HOME) / ".marmoset-history"
        HISTFILE_SIZE = 4096
        if readline and os.path.exists(HISTFILE):
            readline.read_history_file(HISTFILE)
        sys.ps1 = "> "
        sys.ps2 = ". "
        repl = Repl()
        repl.interact(banner="", exitmsg="")
        if readline:
            readline.set_history_length(HISTFILE_SIZE)
            readline.write_history_file(HISTFILE)


if __name__ == "__main__":
    main()
