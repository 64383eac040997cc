"""Tokenizer and parser for rule text.

Grammar::

    rule      := kind '(' [arg (',' arg)*] ')' ['!']
    arg       := [ident '='] value
    value     := magnitude | comparator magnitude | bare_ident | pin_uid
    magnitude := number unit ['+']

Whitespace between tokens is insignificant. The parser only checks shape;
argument arity, types and units are checked per kind by the registry.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from ..units import Bound, parse_bound

if TYPE_CHECKING:
    from collections.abc import Iterator

_UNIT_CHARS = frozenset("µμΩ")
_PUNCTUATION = {
    "(": "LPAREN",
    ")": "RPAREN",
    ",": "COMMA",
    "=": "EQUALS",
    "!": "BANG",
}


@dataclass
class CompileError(Exception):
    """Rule text could not be compiled.

    Attributes:
        message: What went wrong.
        offset: Zero-based character offset into ``text``.
        text: The rule text being compiled.
    """

    message: str
    offset: int = 0
    text: str = ""

    def __str__(self) -> str:
        return f"{self.message} at offset {self.offset} in {self.text!r}"


@dataclass(frozen=True)
class Token:
    type: str  # 'IDENT', 'PIN', 'MAGNITUDE', 'LPAREN', 'RPAREN', 'COMMA', 'EQUALS', 'BANG', 'END'
    value: str
    offset: int


@dataclass(frozen=True)
class RawValue:
    """An argument value before kind-specific validation."""

    type: str  # 'ident', 'pin', 'magnitude'
    text: str
    offset: int
    bound: Bound | None = None


@dataclass(frozen=True)
class RawArg:
    name: str | None
    value: RawValue
    offset: int


@dataclass(frozen=True)
class RuleCall:
    """Parsed shape of one rule: ``kind(args...)[!]``."""

    kind: str
    args: tuple[RawArg, ...]
    firm: bool
    text: str
    kind_offset: int = 0


def tokenize(text: str) -> Iterator[Token]:
    """Yield tokens for ``text`` followed by a single END token.

    Raises:
        CompileError: On a character that cannot start any token.
    """
    pos = 0
    length = len(text)
    while pos < length:
        char = text[pos]
        if char.isspace():
            pos += 1
            continue
        if char in _PUNCTUATION:
            yield Token(_PUNCTUATION[char], char, pos)
            pos += 1
            continue
        if char in "<>":
            start = pos
            if pos + 1 >= length or text[pos + 1] != "=":
                raise CompileError(f"Expected '{char}=' comparator", start, text)
            pos += 2
            while pos < length and text[pos].isspace():
                pos += 1
            end = _scan_magnitude(text, pos)
            if end == pos:
                raise CompileError("Comparator must be followed by a magnitude", pos, text)
            yield Token("MAGNITUDE", text[start:end], start)
            pos = end
            continue
        if char.isdigit() or char == "." or (char in "+-" and pos + 1 < length and text[pos + 1].isdigit()):
            start = pos
            pos = _scan_magnitude(text, pos)
            yield Token("MAGNITUDE", text[start:pos], start)
            continue
        if char.isalpha() or char == "_":
            start = pos
            while pos < length and (text[pos].isalnum() or text[pos] in "_."):
                pos += 1
            word = text[start:pos]
            if word.endswith(".") or ".." in word:
                raise CompileError(f"Malformed pin identifier {word!r}", start, text)
            yield Token("PIN" if "." in word else "IDENT", word, start)
            continue
        raise CompileError(f"Unexpected character {char!r}", pos, text)
    yield Token("END", "", length)


def _scan_magnitude(text: str, pos: int) -> int:
    length = len(text)
    if pos < length and text[pos] in "+-":
        pos += 1
    while pos < length and (text[pos].isdigit() or text[pos] == "."):
        pos += 1
    while pos < length and text[pos].isspace() and pos + 1 < length and _is_unit_char(text[pos + 1]):
        pos += 1
    while pos < length and _is_unit_char(text[pos]):
        pos += 1
    if pos < length and text[pos] == "+":
        pos += 1
    return pos


def _is_unit_char(char: str) -> bool:
    return char.isascii() and char.isalpha() or char in _UNIT_CHARS


class _Parser:
    def __init__(self, text: str) -> None:
        self.text = text
        self._tokens = list(tokenize(text))
        self._index = 0

    @property
    def current(self) -> Token:
        return self._tokens[self._index]

    def advance(self) -> Token:
        token = self._tokens[self._index]
        if token.type != "END":
            self._index += 1
        return token

    def expect(self, token_type: str, description: str) -> Token:
        token = self.current
        if token.type != token_type:
            found = "end of text" if token.type == "END" else repr(token.value)
            raise CompileError(f"Expected {description}, found {found}", token.offset, self.text)
        return self.advance()

    def parse(self) -> RuleCall:
        if self.current.type == "END":
            raise CompileError("Empty rule text", 0, self.text)
        kind = self.expect("IDENT", "rule kind")
        self.expect("LPAREN", "'('")
        args: list[RawArg] = []
        if self.current.type != "RPAREN":
            args.append(self._parse_arg())
            while self.current.type == "COMMA":
                self.advance()
                args.append(self._parse_arg())
        self.expect("RPAREN", "',' or ')'")
        firm = False
        if self.current.type == "BANG":
            self.advance()
            firm = True
        if self.current.type != "END":
            raise CompileError(f"Unexpected trailing {self.current.value!r}", self.current.offset, self.text)
        return RuleCall(kind=kind.value, args=tuple(args), firm=firm, text=self.text, kind_offset=kind.offset)

    def _parse_arg(self) -> RawArg:
        start = self.current.offset
        name: str | None = None
        if self.current.type == "IDENT" and self._tokens[self._index + 1].type == "EQUALS":
            name = self.advance().value
            self.advance()
        return RawArg(name=name, value=self._parse_value(), offset=start)

    def _parse_value(self) -> RawValue:
        token = self.current
        if token.type == "IDENT":
            self.advance()
            return RawValue("ident", token.value, token.offset)
        if token.type == "PIN":
            self.advance()
            return RawValue("pin", token.value, token.offset)
        if token.type == "MAGNITUDE":
            self.advance()
            try:
                bound = parse_bound(token.value)
            except ValueError as exc:
                raise CompileError(str(exc), token.offset, self.text) from exc
            return RawValue("magnitude", token.value, token.offset, bound)
        found = "end of text" if token.type == "END" else repr(token.value)
        raise CompileError(f"Expected an argument value, found {found}", token.offset, self.text)


def parse_rule(text: str) -> RuleCall:
    """Parse rule text into a :class:`RuleCall`.

    Raises:
        CompileError: If the text does not match the rule grammar.
    """
    return _Parser(text).parse()
