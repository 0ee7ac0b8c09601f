"""In-place signature embedding.

Both writes replace bytes of identical length, so every offset computed
before them (and the ByteRange itself) stays valid.
"""

from __future__ import annotations

import logging
import re

from ...constants import BYTERANGE_MAX_VALUE
from ...errors import PDFError, SignatureTooLarge
from .byterange import BYTERANGE_PATTERN, ByteRange
from .objects import format_byte_range

__all__ = [
    "embed_signature",
    "write_byte_range",
]

_logger = logging.getLogger(__name__)


def write_byte_range(pdf_bytes: bytes, offset: int, byte_range: ByteRange) -> bytes:
    """Write real ``/ByteRange`` values over the placeholder at ``offset``.

    Args:
        pdf_bytes: Prepared PDF bytes.
        offset: Offset of the ``/ByteRange [...]`` entry.
        byte_range: Values to write.

    Returns:
        New PDF bytes of identical length.

    Raises:
        PDFError: If no ByteRange entry sits at ``offset`` or a value does
            not fit the fixed-width fields.
    """
    if any(v < 0 or v > BYTERANGE_MAX_VALUE for v in byte_range):
        raise PDFError(f"ByteRange value out of range for fixed-width fields: {list(byte_range)}")

    match = re.compile(BYTERANGE_PATTERN).match(pdf_bytes, offset)
    if match is None:
        raise PDFError(f"No /ByteRange placeholder at offset {offset}")
    replacement = format_byte_range(byte_range)
    if len(replacement) != match.end() - match.start():
        raise PDFError(
            f"ByteRange placeholder is {match.end() - match.start()} bytes, "
            f"values need {len(replacement)}"
        )

    result = pdf_bytes[: match.start()] + replacement + pdf_bytes[match.end() :]
    _logger.debug("Wrote ByteRange %s at offset %d", list(byte_range), offset)
    return result


def embed_signature(pdf_bytes: bytes, hex_start: int, capacity: int, signature_hex: str) -> bytes:
    """Write the hex signature into the reserved ``/Contents`` slot.

    The signature is right-padded with ``'0'`` to exactly ``capacity``
    characters.

    Args:
        pdf_bytes: PDF bytes with the ByteRange already written.
        hex_start: Offset of the first hex digit of the slot.
        capacity: Reserved hex characters.
        signature_hex: Hex-encoded DER signature.

    Returns:
        New PDF bytes of identical length.

    Raises:
        SignatureTooLarge: If ``signature_hex`` exceeds ``capacity``.
        PDFError: If the slot is not framed by ``<`` and ``>``.
    """
    if len(signature_hex) > capacity:
        raise SignatureTooLarge(len(signature_hex), capacity)
    if len(signature_hex) % 2:
        raise PDFError("Signature hex string has odd length")

    end = hex_start + capacity
    if pdf_bytes[hex_start - 1 : hex_start] != b"<":
        raise PDFError("Malformed Contents field: expected '<' before hex data")
    if pdf_bytes[end : end + 1] != b">":
        raise PDFError("Malformed Contents field: expected '>' after hex data")

    padded = signature_hex.encode("ascii") + b"0" * (capacity - len(signature_hex))
    result = bytearray(pdf_bytes)
    result[hex_start:end] = padded
    _logger.debug(
        "Embedded %d hex chars into %d-char slot (%d spare)",
        len(signature_hex),
        capacity,
        capacity - len(signature_hex),
    )
    return bytes(result)
