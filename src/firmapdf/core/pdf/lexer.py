"""Minimal PDF tokenizer.

Understands enough PDF syntax (PDF 32000-1 section 7.2-7.3) to read
dictionaries, arrays, references and strings while recording the byte
offsets of every dictionary entry. The signing code uses those offsets
to copy or splice raw dictionary bytes without re-serializing objects.

Stream data, content operators and cross-reference streams are not
interpreted.
"""

from __future__ import annotations

from typing import NamedTuple, Union

__all__ = [
    "PdfArray",
    "PdfDict",
    "PdfKeyword",
    "PdfLexer",
    "PdfName",
    "PdfRef",
    "PdfSyntaxError",
    "PdfValue",
    "Token",
]

WHITESPACE = frozenset(b"\x00\t\n\x0c\r ")
DELIMITERS = frozenset(b"()<>[]{}/%")
_HEX_DIGITS = frozenset(b"0123456789abcdefABCDEF")
_NUMBER_CHARS = frozenset(b"0123456789+-.")

_ESCAPES = {
    ord("n"): b"\n",
    ord("r"): b"\r",
    ord("t"): b"\t",
    ord("b"): b"\b",
    ord("f"): b"\f",
    ord("("): b"(",
    ord(")"): b")",
    ord("\\"): b"\\",
}


class PdfSyntaxError(ValueError):
    """Malformed PDF syntax at a given offset."""

    def __init__(self, message: str, offset: int) -> None:
        super().__init__(f"{message} at offset {offset}")
        self.offset = offset


class PdfName(str):
    """A PDF name, stored with its leading slash (``"/Type"``)."""

    __slots__ = ()


class PdfKeyword(str):
    """A bare PDF keyword such as ``obj``, ``R`` or ``startxref``."""

    __slots__ = ()


class PdfRef(NamedTuple):
    """Indirect object reference ``num gen R``."""

    num: int
    gen: int

    def __str__(self) -> str:
        return f"{self.num} {self.gen} R"


class PdfDict(dict):  # type: ignore[type-arg]
    """Dictionary that remembers where it and each of its entries sit.

    Attributes:
        start: Offset of the opening ``<<``.
        end: Offset just past the closing ``>>``.
        spans: Key -> (key_start, value_end) offsets of each entry.
        source: The buffer the offsets refer to.
    """

    def __init__(self, start: int, source: bytes = b"") -> None:
        super().__init__()
        self.source = source
        self.start = start
        self.end = start
        self.spans: dict[str, tuple[int, int]] = {}

    @property
    def close_offset(self) -> int:
        """Offset of the closing ``>>``."""
        return self.end - 2


class PdfArray(list):  # type: ignore[type-arg]
    """Array that remembers its ``[`` and past-``]`` offsets in ``source``."""

    def __init__(self, start: int, source: bytes = b"") -> None:
        super().__init__()
        self.source = source
        self.start = start
        self.end = start


PdfValue = Union[None, bool, int, float, bytes, PdfName, PdfKeyword, PdfRef, PdfDict, PdfArray]


class Token(NamedTuple):
    kind: str
    value: object
    start: int
    end: int


class PdfLexer:
    """Tokenizer over a PDF byte buffer.

    Args:
        data: The PDF bytes.
        pos: Offset to start reading from.
    """

    def __init__(self, data: bytes, pos: int = 0) -> None:
        self.data = data
        self.pos = pos

    # ── Low-level scanning ──────────────────────────────────────────

    def skip_whitespace(self) -> None:
        """Skip whitespace and comments."""
        data = self.data
        n = len(data)
        pos = self.pos
        while pos < n:
            c = data[pos]
            if c in WHITESPACE:
                pos += 1
            elif c == 0x25:  # %
                while pos < n and data[pos] not in (0x0A, 0x0D):
                    pos += 1
            else:
                break
        self.pos = pos

    def _read_regular(self) -> bytes:
        data = self.data
        start = self.pos
        pos = start
        n = len(data)
        while pos < n and data[pos] not in WHITESPACE and data[pos] not in DELIMITERS:
            pos += 1
        self.pos = pos
        return data[start:pos]

    def next_token(self) -> Token:
        """Read the next token, or a token of kind ``"eof"``."""
        self.skip_whitespace()
        data = self.data
        start = self.pos
        if start >= len(data):
            return Token("eof", None, start, start)

        c = data[start]
        if c == 0x3C:  # <
            if data[start + 1 : start + 2] == b"<":
                self.pos = start + 2
                return Token("dict_open", None, start, self.pos)
            value = self._read_hex_string()
            return Token("string", value, start, self.pos)
        if c == 0x3E:  # >
            if data[start + 1 : start + 2] == b">":
                self.pos = start + 2
                return Token("dict_close", None, start, self.pos)
            self.pos = start + 1
            return Token("keyword", PdfKeyword(">"), start, self.pos)
        if c == 0x5B:  # [
            self.pos = start + 1
            return Token("array_open", None, start, self.pos)
        if c == 0x5D:  # ]
            self.pos = start + 1
            return Token("array_close", None, start, self.pos)
        if c == 0x28:  # (
            value = self._read_literal_string()
            return Token("string", value, start, self.pos)
        if c == 0x2F:  # /
            self.pos = start + 1
            raw = self._read_regular()
            return Token("name", PdfName("/" + _decode_name(raw)), start, self.pos)
        if c in DELIMITERS:
            # Stray ")", "{" or "}": surface as a one-character keyword.
            self.pos = start + 1
            return Token("keyword", PdfKeyword(chr(c)), start, self.pos)

        raw = self._read_regular()
        if raw and raw[0] in _NUMBER_CHARS:
            number = _parse_number(raw)
            if number is not None:
                kind = "int" if isinstance(number, int) else "real"
                return Token(kind, number, start, self.pos)
        return Token("keyword", PdfKeyword(raw.decode("latin-1")), start, self.pos)

    def _read_hex_string(self) -> bytes:
        data = self.data
        start = self.pos
        end = data.find(b">", start + 1)
        if end == -1:
            raise PdfSyntaxError("Unterminated hex string", start)
        digits = bytes(b for b in data[start + 1 : end] if b not in WHITESPACE)
        if any(b not in _HEX_DIGITS for b in digits):
            raise PdfSyntaxError("Invalid hex string", start)
        if len(digits) % 2:
            digits += b"0"
        self.pos = end + 1
        return bytes.fromhex(digits.decode("ascii"))

    def _read_literal_string(self) -> bytes:
        data = self.data
        n = len(data)
        pos = self.pos + 1
        depth = 1
        out = bytearray()
        while pos < n:
            c = data[pos]
            if c == 0x5C:  # backslash
                pos += 1
                if pos >= n:
                    break
                e = data[pos]
                if e in _ESCAPES:
                    out += _ESCAPES[e]
                    pos += 1
                elif 0x30 <= e <= 0x37:
                    octal = data[pos : pos + 3]
                    digits = 1
                    while digits < len(octal) and 0x30 <= octal[digits] <= 0x37:
                        digits += 1
                    out.append(int(octal[:digits], 8) & 0xFF)
                    pos += digits
                elif e == 0x0D:
                    pos += 2 if data[pos + 1 : pos + 2] == b"\n" else 1
                elif e == 0x0A:
                    pos += 1
                else:
                    out.append(e)
                    pos += 1
                continue
            if c == 0x28:
                depth += 1
            elif c == 0x29:
                depth -= 1
                if depth == 0:
                    self.pos = pos + 1
                    return bytes(out)
            out.append(c)
            pos += 1
        raise PdfSyntaxError("Unterminated literal string", self.pos)

    # ── Object parsing ──────────────────────────────────────────────

    def parse_object(self) -> PdfValue:
        """Parse one complete value (dictionary, array, reference, ...)."""
        return self.parse_value(self.next_token())

    def parse_value(self, tok: Token) -> PdfValue:
        """Parse the value that begins with ``tok``."""
        kind = tok.kind
        if kind == "dict_open":
            return self._parse_dict(tok.start)
        if kind == "array_open":
            return self._parse_array(tok.start)
        if kind == "int":
            return self._maybe_reference(tok)
        if kind in ("real", "string", "name"):
            return tok.value  # type: ignore[return-value]
        if kind == "keyword":
            word = tok.value
            if word == "true":
                return True
            if word == "false":
                return False
            if word == "null":
                return None
            return tok.value  # type: ignore[return-value]
        if kind == "eof":
            raise PdfSyntaxError("Unexpected end of data", tok.start)
        raise PdfSyntaxError(f"Unexpected {kind}", tok.start)

    def _maybe_reference(self, tok: Token) -> int | PdfRef:
        saved = self.pos
        second = self.next_token()
        if second.kind == "int":
            third = self.next_token()
            if third.kind == "keyword" and third.value == "R":
                return PdfRef(tok.value, second.value)  # type: ignore[arg-type]
        self.pos = saved
        return tok.value  # type: ignore[return-value]

    def _parse_dict(self, start: int) -> PdfDict:
        result = PdfDict(start, self.data)
        while True:
            tok = self.next_token()
            if tok.kind == "dict_close":
                result.end = tok.end
                return result
            if tok.kind != "name":
                raise PdfSyntaxError(f"Expected name key in dictionary, got {tok.kind}", tok.start)
            value = self.parse_object()
            result[tok.value] = value
            result.spans[tok.value] = (tok.start, self.pos)  # type: ignore[index]

    def _parse_array(self, start: int) -> PdfArray:
        result = PdfArray(start, self.data)
        while True:
            tok = self.next_token()
            if tok.kind == "array_close":
                result.end = tok.end
                return result
            result.append(self.parse_value(tok))


def _decode_name(raw: bytes) -> str:
    """Decode ``#xx`` escapes in a name token."""
    if b"#" not in raw:
        return raw.decode("latin-1")
    out = bytearray()
    i = 0
    while i < len(raw):
        pair = raw[i + 1 : i + 3]
        if raw[i] == 0x23 and len(pair) == 2 and all(b in _HEX_DIGITS for b in pair):
            out.append(int(raw[i + 1 : i + 3], 16))
            i += 3
        else:
            out.append(raw[i])
            i += 1
    return out.decode("latin-1")


def _parse_number(raw: bytes) -> int | float | None:
    text = raw.decode("latin-1")
    try:
        if "." in text:
            return float(text)
        return int(text)
    except ValueError:
        return None
