"""Parse workflow expressions into a tree of nodes."""

from __future__ import annotations

import enum
import re
from dataclasses import dataclass
from typing import Any, Iterator, Union


class ExpressionError(ValueError):
    """Raised when an expression cannot be parsed; ``offset`` marks the position."""

    def __init__(self, message: str, offset: int) -> None:
        super().__init__(message)
        self.message = message
        self.offset = offset


class CompareOp(str, enum.Enum):
    """Comparison operators."""

    LESS = "<"
    LESS_EQ = "<="
    GREATER = ">"
    GREATER_EQ = ">="
    EQ = "=="
    NOT_EQ = "!="

    def __str__(self) -> str:
        return self.value


class LogicalOp(str, enum.Enum):
    """Logical operators."""

    AND = "&&"
    OR = "||"

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class VariableNode:
    """A context name such as ``github``."""

    name: str


@dataclass(frozen=True)
class BoolNode:
    """``true`` or ``false``."""

    value: bool


@dataclass(frozen=True)
class NullNode:
    """``null``."""


@dataclass(frozen=True)
class IntNode:
    """An integer literal."""

    value: int


@dataclass(frozen=True)
class FloatNode:
    """A floating point literal."""

    value: float


@dataclass(frozen=True)
class StringNode:
    """A single-quoted string literal."""

    value: str


@dataclass(frozen=True)
class IndexAccessNode:
    """``operand[index]``."""

    operand: "Node"
    index: "Node"


@dataclass(frozen=True)
class ObjectDerefNode:
    """``receiver.property``."""

    receiver: "Node"
    property: str


@dataclass(frozen=True)
class ArrayDerefNode:
    """``receiver.*``."""

    receiver: "Node"


@dataclass(frozen=True)
class NotOpNode:
    """``!operand``."""

    operand: "Node"


@dataclass(frozen=True)
class CompareOpNode:
    """``left <op> right`` for a comparison operator."""

    kind: CompareOp
    left: "Node"
    right: "Node"


@dataclass(frozen=True)
class LogicalOpNode:
    """``left && right`` or ``left || right``."""

    kind: LogicalOp
    left: "Node"
    right: "Node"


@dataclass(frozen=True)
class FuncCallNode:
    """``callee(args...)``; the callee keeps the case it was written in."""

    callee: str
    args: tuple = ()


Node = Union[
    VariableNode,
    BoolNode,
    NullNode,
    IntNode,
    FloatNode,
    StringNode,
    IndexAccessNode,
    ObjectDerefNode,
    ArrayDerefNode,
    NotOpNode,
    CompareOpNode,
    LogicalOpNode,
    FuncCallNode,
]


class _Kind(enum.Enum):
    IDENT = enum.auto()
    INT = enum.auto()
    FLOAT = enum.auto()
    STRING = enum.auto()
    PUNCT = enum.auto()
    END = enum.auto()


@dataclass(frozen=True)
class _Token:
    kind: _Kind
    value: Any
    text: str
    offset: int


_WHITESPACE = " \t\r\n"
_IDENT = re.compile(r"[A-Za-z_][A-Za-z0-9_-]*")
_NUMBER = re.compile(
    r"-?(?:0[xX][0-9a-fA-F]+|[0-9]+(?:\.[0-9]+)?(?:[eE][+-]?[0-9]+)?)"
)
_PUNCTUATION = (
    "==", "!=", "<=", ">=", "&&", "||",
    "(", ")", "[", "]", ".", ",", "!", "<", ">", "*",
)
_INT64_MIN = -(2**63)
_INT64_MAX = 2**63 - 1

_EQUALITY = {"==": CompareOp.EQ, "!=": CompareOp.NOT_EQ}
_ORDER = {
    "<": CompareOp.LESS,
    "<=": CompareOp.LESS_EQ,
    ">": CompareOp.GREATER,
    ">=": CompareOp.GREATER_EQ,
}


def _lex_string(text: str, start: int) -> tuple[str, int]:
    parts = []
    pos = start + 1
    while True:
        quote = text.find("'", pos)
        if quote < 0:
            raise ExpressionError("unterminated string literal", start)
        parts.append(text[pos:quote])
        if text.startswith("''", quote):
            parts.append("'")
            pos = quote + 2
        else:
            return "".join(parts), quote + 1


def _number_token(literal: str, offset: int) -> _Token:
    is_hex = "x" in literal.lower()
    if not is_hex and any(c in literal for c in ".eE"):
        return _Token(_Kind.FLOAT, float(literal), literal, offset)
    if is_hex:
        sign = -1 if literal.startswith("-") else 1
        value = sign * int(literal.lstrip("-")[2:], 16)
    else:
        value = int(literal, 10)
    if not _INT64_MIN <= value <= _INT64_MAX:
        raise ExpressionError(f"integer literal {literal} is out of range", offset)
    return _Token(_Kind.INT, value, literal, offset)


def _lex(text: str) -> list[_Token]:
    """Tokenize up to the end of text or the first ``}}`` outside a string."""
    tokens: list[_Token] = []
    pos = 0
    length = len(text)
    while True:
        while pos < length and text[pos] in _WHITESPACE:
            pos += 1
        if pos >= length or text.startswith("}}", pos):
            tokens.append(_Token(_Kind.END, None, "", pos))
            return tokens
        char = text[pos]
        if char == "'":
            value, end = _lex_string(text, pos)
            tokens.append(_Token(_Kind.STRING, value, text[pos:end], pos))
            pos = end
            continue
        if char.isdigit() or char == "-":
            match = _NUMBER.match(text, pos)
            if match is None:
                raise ExpressionError(f"unexpected character {char!r}", pos)
            tokens.append(_number_token(match.group(), pos))
            pos = match.end()
            continue
        match = _IDENT.match(text, pos)
        if match is not None:
            tokens.append(_Token(_Kind.IDENT, match.group(), match.group(), pos))
            pos = match.end()
            continue
        for punct in _PUNCTUATION:
            if text.startswith(punct, pos):
                tokens.append(_Token(_Kind.PUNCT, punct, punct, pos))
                pos += len(punct)
                break
        else:
            raise ExpressionError(f"unexpected character {char!r}", pos)


def _describe(token: _Token) -> str:
    if token.kind is _Kind.END:
        return "end of input"
    return f"token {token.text!r}"


class _Parser:
    def __init__(self, tokens: list[_Token]) -> None:
        self._tokens = tokens
        self._pos = 0

    def _peek(self) -> _Token:
        return self._tokens[self._pos]

    def _advance(self) -> _Token:
        token = self._tokens[self._pos]
        if token.kind is not _Kind.END:
            self._pos += 1
        return token

    def _at(self, punct: str) -> bool:
        token = self._peek()
        return token.kind is _Kind.PUNCT and token.value == punct

    def _unexpected(self, what: str) -> ExpressionError:
        token = self._peek()
        return ExpressionError(
            f"unexpected {_describe(token)} while parsing {what}", token.offset
        )

    def _expect(self, punct: str, what: str) -> None:
        if not self._at(punct):
            raise self._unexpected(what)
        self._advance()

    def parse(self) -> Node:
        node = self._logical_or()
        if self._peek().kind is not _Kind.END:
            raise self._unexpected("end of expression")
        return node

    def _logical_or(self) -> Node:
        node = self._logical_and()
        while self._at("||"):
            self._advance()
            node = LogicalOpNode(LogicalOp.OR, node, self._logical_and())
        return node

    def _logical_and(self) -> Node:
        node = self._equality()
        while self._at("&&"):
            self._advance()
            node = LogicalOpNode(LogicalOp.AND, node, self._equality())
        return node

    def _binary(self, operators: dict[str, CompareOp], operand) -> Node:
        node = operand()
        while True:
            token = self._peek()
            if token.kind is not _Kind.PUNCT or token.value not in operators:
                return node
            self._advance()
            node = CompareOpNode(operators[token.value], node, operand())

    def _equality(self) -> Node:
        return self._binary(_EQUALITY, self._order)

    def _order(self) -> Node:
        return self._binary(_ORDER, self._not)

    def _not(self) -> Node:
        if self._at("!"):
            self._advance()
            return NotOpNode(self._not())
        return self._postfix()

    def _postfix(self) -> Node:
        node = self._primary()
        while True:
            if self._at("."):
                self._advance()
                token = self._peek()
                if token.kind is _Kind.PUNCT and token.value == "*":
                    self._advance()
                    node = ArrayDerefNode(node)
                elif token.kind is _Kind.IDENT:
                    self._advance()
                    node = ObjectDerefNode(node, token.value)
                else:
                    raise self._unexpected("object property dereference")
            elif self._at("["):
                self._advance()
                index = self._logical_or()
                self._expect("]", "index access")
                node = IndexAccessNode(node, index)
            else:
                return node

    def _primary(self) -> Node:
        token = self._peek()
        if token.kind is _Kind.PUNCT and token.value == "(":
            self._advance()
            node = self._logical_or()
            self._expect(")", "parenthesized expression")
            return node
        if token.kind is _Kind.IDENT:
            self._advance()
            if token.value == "null":
                return NullNode()
            if token.value in ("true", "false"):
                return BoolNode(token.value == "true")
            if self._at("("):
                return FuncCallNode(token.value, self._arguments())
            return VariableNode(token.value)
        if token.kind is _Kind.INT:
            self._advance()
            return IntNode(token.value)
        if token.kind is _Kind.FLOAT:
            self._advance()
            return FloatNode(token.value)
        if token.kind is _Kind.STRING:
            self._advance()
            return StringNode(token.value)
        raise self._unexpected("expression")

    def _arguments(self) -> tuple:
        self._expect("(", "function call")
        args = []
        if not self._at(")"):
            while True:
                args.append(self._logical_or())
                if not self._at(","):
                    break
                self._advance()
        self._expect(")", "function call")
        return tuple(args)


def parse(text: str) -> Node:
    """Parse an expression; parsing stops at the first ``}}`` outside a string."""
    return _Parser(_lex(text)).parse()


def _children(node: Node) -> tuple:
    if isinstance(node, IndexAccessNode):
        return (node.operand, node.index)
    if isinstance(node, (ObjectDerefNode, ArrayDerefNode)):
        return (node.receiver,)
    if isinstance(node, NotOpNode):
        return (node.operand,)
    if isinstance(node, (CompareOpNode, LogicalOpNode)):
        return (node.left, node.right)
    if isinstance(node, FuncCallNode):
        return tuple(node.args)
    return ()


def walk(node: Node) -> Iterator[Node]:
    """Yield ``node`` and every node below it, parents before children."""
    yield node
    for child in _children(node):
        yield from walk(child)