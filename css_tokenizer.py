"""Tokenizer for CSS ``content:`` values, following the CSS Syntax Level 3 rules."""
from __future__ import annotations

from typing import List, Optional, Union

EOF = -1
MAX_CODEPOINT = 0x10FFFF
REPLACEMENT = 0xFFFD


def _between(code: int, first: int, last: int) -> bool:
    return first <= code <= last


def _digit(code: int) -> bool:
    return _between(code, 0x30, 0x39)


def _hexdigit(code: int) -> bool:
    return _digit(code) or _between(code, 0x41, 0x46) or _between(code, 0x61, 0x66)


def _letter(code: int) -> bool:
    return _between(code, 0x41, 0x5A) or _between(code, 0x61, 0x7A)


def _namestart(code: int) -> bool:
    return _letter(code) or code >= 0x80 or code == 0x5F


def _namechar(code: int) -> bool:
    return _namestart(code) or _digit(code) or code == 0x2D


def _nonprintable(code: int) -> bool:
    return _between(code, 0, 8) or code == 0x0B or _between(code, 0x0E, 0x1F) or code == 0x7F


def _newline(code: int) -> bool:
    return code == 0x0A


def _whitespace(code: int) -> bool:
    return _newline(code) or code == 0x09 or code == 0x20


def _char(code: int) -> str:
    return chr(code)


def preprocess(source: str) -> List[int]:
    """Normalize a string into the code point stream the tokenizer consumes.

    CRLF, CR and FF become LF, NUL becomes U+FFFD and surrogate pairs are
    combined into a single code point.
    """
    codepoints: List[int] = []
    i = 0
    length = len(source)
    while i < length:
        code = ord(source[i])
        nxt = ord(source[i + 1]) if i + 1 < length else EOF
        if code == 0x0D and nxt == 0x0A:
            code = 0x0A
            i += 1
        elif code in (0x0D, 0x0C):
            code = 0x0A
        elif code == 0:
            code = REPLACEMENT
        elif _between(code, 0xD800, 0xDBFF) and _between(nxt, 0xDC00, 0xDFFF):
            code = 0x10000 + (code - 0xD800) * 0x400 + (nxt - 0xDC00)
            i += 1
        codepoints.append(code)
        i += 1
    return codepoints


# ─────────────────────────────────────────────────────────────────────────────
# Tokens
# ─────────────────────────────────────────────────────────────────────────────


class CSSToken:
    """Base class for all tokens."""

    token_type = ""

    def __init__(self, value: Union[str, float, int, None] = None):
        self.value = value

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.value!r})"

    def __str__(self) -> str:
        return self.token_type

    def to_source(self) -> str:
        return str(self)


class BadStringToken(CSSToken):
    token_type = "BADSTRING"


class BadURLToken(CSSToken):
    token_type = "BADURL"


class WhitespaceToken(CSSToken):
    token_type = "WHITESPACE"

    def __str__(self) -> str:
        return "WS"

    def to_source(self) -> str:
        return " "


class ColonToken(CSSToken):
    token_type = ":"


class SemicolonToken(CSSToken):
    token_type = ";"


class CommaToken(CSSToken):
    token_type = ","


class GroupingToken(CSSToken):
    """Bracket-like token that knows its matching counterpart."""

    mirror = ""

    def __init__(self):
        super().__init__(self.token_type)


class OpenCurlyToken(GroupingToken):
    token_type = "{"
    mirror = "}"


class CloseCurlyToken(GroupingToken):
    token_type = "}"
    mirror = "{"


class OpenSquareToken(GroupingToken):
    token_type = "["
    mirror = "]"


class CloseSquareToken(GroupingToken):
    token_type = "]"
    mirror = "["


class OpenParenToken(GroupingToken):
    token_type = "("
    mirror = ")"


class CloseParenToken(GroupingToken):
    token_type = ")"
    mirror = "("


class EOFToken(CSSToken):
    token_type = "EOF"

    def to_source(self) -> str:
        return ""


class DelimToken(CSSToken):
    token_type = "DELIM"

    def __init__(self, code: int):
        super().__init__(_char(code))

    def __str__(self) -> str:
        return f"DELIM({self.value})"

    def to_source(self) -> str:
        return "\\\n" if self.value == "\\" else str(self.value)


class IdentToken(CSSToken):
    token_type = "IDENT"


class FunctionToken(CSSToken):
    token_type = "FUNCTION"
    mirror = ")"


class AtKeywordToken(CSSToken):
    token_type = "AT-KEYWORD"


class HashToken(CSSToken):
    token_type = "HASH"

    def __init__(self, value: str = "", type: str = "unrestricted"):
        super().__init__(value)
        self.type = type


class StringToken(CSSToken):
    token_type = "STRING"


class URLToken(CSSToken):
    token_type = "URL"


class NumberToken(CSSToken):
    token_type = "NUMBER"

    def __init__(self, value: Union[int, float] = 0, repr: str = "", type: str = "integer"):
        super().__init__(value)
        self.repr = repr
        self.type = type


class PercentageToken(CSSToken):
    token_type = "PERCENTAGE"

    def __init__(self, value: Union[int, float] = 0, repr: str = ""):
        super().__init__(value)
        self.repr = repr


class DimensionToken(CSSToken):
    token_type = "DIMENSION"

    def __init__(
        self,
        value: Union[int, float] = 0,
        repr: str = "",
        type: str = "integer",
        unit: str = "",
    ):
        super().__init__(value)
        self.repr = repr
        self.type = type
        self.unit = unit


# ─────────────────────────────────────────────────────────────────────────────
# Tokenizer
# ─────────────────────────────────────────────────────────────────────────────


class _Tokenizer:
    """Single-use cursor over a preprocessed code point stream."""

    def __init__(self, source: str):
        self.stream = preprocess(source)
        self.pos = -1
        self.code = EOF

    def codepoint(self, index: int) -> int:
        if index < 0 or index >= len(self.stream):
            return EOF
        return self.stream[index]

    def next(self, num: int = 1) -> int:
        return self.codepoint(self.pos + num)

    def consume(self, num: int = 1) -> None:
        self.pos += num
        self.code = self.codepoint(self.pos)

    def reconsume(self) -> None:
        self.pos -= 1

    def at_eof(self, code: Optional[int] = None) -> bool:
        return (self.code if code is None else code) == EOF

    def run(self) -> List[CSSToken]:
        tokens: List[CSSToken] = []
        guard = len(self.stream) * 2
        while not self.at_eof(self.next()):
            tokens.append(self.consume_token())
            guard -= 1
            if guard < 0:
                break
        return tokens

    # -- predicates ----------------------------------------------------------

    @staticmethod
    def valid_escape(c1: int, c2: int) -> bool:
        return c1 == 0x5C and not _newline(c2)

    def starts_with_valid_escape(self) -> bool:
        return self.valid_escape(self.code, self.next())

    @classmethod
    def would_start_identifier(cls, c1: int, c2: int, c3: int) -> bool:
        if c1 == 0x2D:
            return _namestart(c2) or c2 == 0x2D or cls.valid_escape(c2, c3)
        if _namestart(c1):
            return True
        if c1 == 0x5C:
            return cls.valid_escape(c1, c2)
        return False

    def starts_with_identifier(self) -> bool:
        return self.would_start_identifier(self.code, self.next(1), self.next(2))

    @staticmethod
    def would_start_number(c1: int, c2: int, c3: int) -> bool:
        if c1 in (0x2B, 0x2D):
            return _digit(c2) or (c2 == 0x2E and _digit(c3))
        if c1 == 0x2E:
            return _digit(c2)
        return _digit(c1)

    def starts_with_number(self) -> bool:
        return self.would_start_number(self.code, self.next(1), self.next(2))

    # -- consumers -----------------------------------------------------------

    def consume_token(self) -> CSSToken:
        self.consume_comments()
        self.consume()
        code = self.code

        if _whitespace(code):
            while _whitespace(self.next()):
                self.consume()
            return WhitespaceToken()
        if code in (0x22, 0x27):
            return self.consume_string(code)
        if code == 0x23:
            if _namechar(self.next()) or self.valid_escape(self.next(1), self.next(2)):
                token = HashToken()
                if self.would_start_identifier(self.next(1), self.next(2), self.next(3)):
                    token.type = "id"
                token.value = self.consume_name()
                return token
            return DelimToken(code)
        if code == 0x28:
            return OpenParenToken()
        if code == 0x29:
            return CloseParenToken()
        if code == 0x2B:
            if self.starts_with_number():
                self.reconsume()
                return self.consume_numeric()
            return DelimToken(code)
        if code == 0x2C:
            return CommaToken()
        if code == 0x2D:
            if self.starts_with_number():
                self.reconsume()
                return self.consume_numeric()
            if self.starts_with_identifier():
                self.reconsume()
                return self.consume_identlike()
            return DelimToken(code)
        if code == 0x2E:
            if self.starts_with_number():
                self.reconsume()
                return self.consume_numeric()
            return DelimToken(code)
        if code == 0x3A:
            return ColonToken()
        if code == 0x3B:
            return SemicolonToken()
        if code == 0x40:
            if self.would_start_identifier(self.next(1), self.next(2), self.next(3)):
                return AtKeywordToken(self.consume_name())
            return DelimToken(code)
        if code == 0x5B:
            return OpenSquareToken()
        if code == 0x5C:
            if self.starts_with_valid_escape():
                self.reconsume()
                return self.consume_identlike()
            return DelimToken(code)
        if code == 0x5D:
            return CloseSquareToken()
        if code == 0x7B:
            return OpenCurlyToken()
        if code == 0x7D:
            return CloseCurlyToken()
        if _digit(code):
            self.reconsume()
            return self.consume_numeric()
        if _namestart(code):
            self.reconsume()
            return self.consume_identlike()
        if self.at_eof():
            return EOFToken()
        return DelimToken(code)

    def consume_comments(self) -> None:
        while self.next(1) == 0x2F and self.next(2) == 0x2A:
            self.consume(2)
            while True:
                self.consume()
                if self.code == 0x2A and self.next() == 0x2F:
                    self.consume()
                    break
                if self.at_eof():
                    return

    def consume_numeric(self) -> CSSToken:
        value, repr_, type_ = self.consume_number()
        if self.would_start_identifier(self.next(1), self.next(2), self.next(3)):
            return DimensionToken(value, repr_, type_, self.consume_name())
        if self.next() == 0x25:
            self.consume()
            return PercentageToken(value, repr_)
        return NumberToken(value, repr_, type_)

    def consume_identlike(self) -> CSSToken:
        name = self.consume_name()
        if name.lower() == "url" and self.next() == 0x28:
            self.consume()
            while _whitespace(self.next(1)) and _whitespace(self.next(2)):
                self.consume()
            if self.next() in (0x22, 0x27):
                return FunctionToken(name)
            if _whitespace(self.next()) and self.next(2) in (0x22, 0x27):
                return FunctionToken(name)
            return self.consume_url()
        if self.next() == 0x28:
            self.consume()
            return FunctionToken(name)
        return IdentToken(name)

    def consume_string(self, ending: int) -> CSSToken:
        chars: List[str] = []
        while True:
            self.consume()
            code = self.code
            if code == ending or self.at_eof():
                return StringToken("".join(chars))
            if _newline(code):
                self.reconsume()
                return BadStringToken()
            if code == 0x5C:
                if self.at_eof(self.next()):
                    continue
                if _newline(self.next()):
                    self.consume()
                else:
                    chars.append(_char(self.consume_escape()))
            else:
                chars.append(_char(code))

    def consume_url(self) -> CSSToken:
        chars: List[str] = []
        while _whitespace(self.next()):
            self.consume()
        if self.at_eof(self.next()):
            return URLToken("")
        while True:
            self.consume()
            code = self.code
            if code == 0x29 or self.at_eof():
                return URLToken("".join(chars))
            if _whitespace(code):
                while _whitespace(self.next()):
                    self.consume()
                if self.next() == 0x29 or self.at_eof(self.next()):
                    self.consume()
                    return URLToken("".join(chars))
                self.consume_bad_url_remnants()
                return BadURLToken()
            if code in (0x22, 0x27, 0x28) or _nonprintable(code):
                self.consume_bad_url_remnants()
                return BadURLToken()
            if code == 0x5C:
                if self.starts_with_valid_escape():
                    chars.append(_char(self.consume_escape()))
                else:
                    self.consume_bad_url_remnants()
                    return BadURLToken()
            else:
                chars.append(_char(code))

    def consume_escape(self) -> int:
        self.consume()
        if _hexdigit(self.code):
            digits = [_char(self.code)]
            for _ in range(5):
                if not _hexdigit(self.next()):
                    break
                self.consume()
                digits.append(_char(self.code))
            if _whitespace(self.next()):
                self.consume()
            value = int("".join(digits), 16)
            if value > MAX_CODEPOINT or value == 0 or _between(value, 0xD800, 0xDFFF):
                return REPLACEMENT
            return value
        if self.at_eof():
            return REPLACEMENT
        return self.code

    def consume_name(self) -> str:
        chars: List[str] = []
        while True:
            self.consume()
            if _namechar(self.code):
                chars.append(_char(self.code))
            elif self.starts_with_valid_escape():
                chars.append(_char(self.consume_escape()))
            else:
                self.reconsume()
                return "".join(chars)

    def consume_number(self):
        repr_: List[str] = []
        type_ = "integer"

        def take(count: int = 1) -> None:
            for _ in range(count):
                self.consume()
                repr_.append(_char(self.code))

        def take_digits() -> None:
            while _digit(self.next()):
                take()

        if self.next() in (0x2B, 0x2D):
            take()
        take_digits()
        if self.next(1) == 0x2E and _digit(self.next(2)):
            take(2)
            type_ = "number"
            take_digits()
        c1, c2, c3 = self.next(1), self.next(2), self.next(3)
        if c1 in (0x45, 0x65) and _digit(c2):
            take(2)
            type_ = "number"
            take_digits()
        elif c1 in (0x45, 0x65) and c2 in (0x2B, 0x2D) and _digit(c3):
            take(3)
            type_ = "number"
            take_digits()

        text = "".join(repr_)
        value: Union[int, float] = int(text) if type_ == "integer" else float(text)
        return value, text, type_

    def consume_bad_url_remnants(self) -> None:
        while True:
            self.consume()
            if self.code == 0x29 or self.at_eof():
                return
            if self.starts_with_valid_escape():
                self.consume_escape()


def tokenize(source: str) -> List[CSSToken]:
    """Split ``source`` into CSS tokens.

    Never raises: malformed input produces ``BadStringToken``/``BadURLToken``
    and the trailing EOF is implied rather than emitted.
    """
    return _Tokenizer(source).run()
