"""ByteRange location and digesting.

A signature's ``/ByteRange [start1 len1 start2 len2]`` covers the whole
file except the ``/Contents <...>`` value, angle brackets included:
``len1`` is the offset of ``<`` and ``start2`` is the offset just past ``>``.
"""

from __future__ import annotations

import hashlib
import logging
import re
from typing import NamedTuple

from ...errors import PDFError, PdfStructureNotRecognized

__all__ = [
    "BYTERANGE_PATTERN",
    "ByteRange",
    "compute_byte_range",
    "digest_byte_range",
    "read_byte_range",
    "signed_spans",
]

_logger = logging.getLogger(__name__)

# Regex pattern to find ByteRange arrays in PDF
BYTERANGE_PATTERN = rb"/ByteRange\s*\[\s*(\d+)\s+(\d+)\s+(\d+)\s+(\d+)\s*\]"

# Hex-form /Contents value (a signature slot, not a content stream reference)
_CONTENTS_HEX_PATTERN = re.compile(rb"/Contents\s*<([0-9A-Fa-f]+)>")


class ByteRange(NamedTuple):
    """The two digested spans ``[start1, start1 + len1)`` and ``[start2, start2 + len2)``."""

    start1: int
    len1: int
    start2: int
    len2: int

    @property
    def hex_start(self) -> int:
        """Offset of the first hex digit of the excluded ``/Contents`` value."""
        return self.start1 + self.len1 + 1

    @property
    def hex_end(self) -> int:
        """Offset of the closing ``>`` of the excluded ``/Contents`` value."""
        return self.start2 - 1


def compute_byte_range(pdf_bytes: bytes) -> ByteRange:
    """Compute the ByteRange around the last hex ``/Contents`` value.

    The result depends only on the slot position and total length, so it
    is identical before and after the fixed-width ``/ByteRange`` values
    are written.

    Raises:
        PdfStructureNotRecognized: If no hex ``/Contents`` value exists.
    """
    matches = list(_CONTENTS_HEX_PATTERN.finditer(pdf_bytes))
    if not matches:
        raise PdfStructureNotRecognized("Cannot find /Contents <hex> signature slot in PDF.")
    match = matches[-1]

    contents_start = match.start(1)
    contents_end = match.end(1)
    total = len(pdf_bytes)
    return ByteRange(0, contents_start - 1, contents_end + 1, total - (contents_end + 1))


def read_byte_range(pdf_bytes: bytes) -> ByteRange | None:
    """Parse the last ``/ByteRange`` array written in the file, if any."""
    matches = list(re.finditer(BYTERANGE_PATTERN, pdf_bytes))
    if not matches:
        return None
    m = matches[-1]
    return ByteRange(int(m.group(1)), int(m.group(2)), int(m.group(3)), int(m.group(4)))


def signed_spans(pdf_bytes: bytes, byte_range: ByteRange) -> tuple[bytes, bytes]:
    """Return the two spans selected by ``byte_range``.

    Raises:
        PDFError: If the ranges do not fit the buffer or do not frame a
            ``<...>`` hex string.
    """
    start1, len1, start2, len2 = byte_range
    total = len(pdf_bytes)
    if start1 != 0 or len1 <= 0 or len2 < 0:
        raise PDFError(f"Invalid ByteRange {list(byte_range)}: must start at 0 with positive spans")
    if start2 <= len1 + 1:
        raise PDFError(
            f"Invalid ByteRange {list(byte_range)}: second span must start after the first"
        )
    if start2 + len2 != total:
        raise PDFError(
            f"Invalid ByteRange {list(byte_range)}: does not reach end of file ({total} bytes)"
        )
    if pdf_bytes[len1 : len1 + 1] != b"<":
        raise PDFError(f"Expected '<' at offset {len1}, got {pdf_bytes[len1 : len1 + 1]!r}")
    if pdf_bytes[start2 - 1 : start2] != b">":
        found = pdf_bytes[start2 - 1 : start2]
        raise PDFError(f"Expected '>' at offset {start2 - 1}, got {found!r}")
    return pdf_bytes[start1 : start1 + len1], pdf_bytes[start2 : start2 + len2]


def digest_byte_range(pdf_bytes: bytes, byte_range: ByteRange) -> bytes:
    """SHA-256 of the concatenated spans selected by ``byte_range``."""
    first, second = signed_spans(pdf_bytes, byte_range)
    h = hashlib.sha256()
    h.update(first)
    h.update(second)
    _logger.debug("Digested %d + %d bytes", len(first), len(second))
    return h.digest()
