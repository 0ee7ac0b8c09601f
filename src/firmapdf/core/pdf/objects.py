"""Low-level PDF object construction.

Builders for the raw objects appended by a signature incremental update:
the ``/Sig`` dictionary with its fixed-width placeholders, the signature
widget annotation, its appearance form XObject, and byte-level splicing
of existing dictionaries (page, catalog, AcroForm) into new revisions.

Incremental update assembly (xref, trailer) is in incremental.py.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import datetime

from ...constants import BYTERANGE_FIELD_WIDTH, __version__
from .lexer import PdfDict, PdfRef

__all__ = [
    "ANNOT_FLAGS_SIG_WIDGET",
    "BYTERANGE_PLACEHOLDER",
    "build_appearance_xobject",
    "build_sig_dict",
    "build_widget",
    "format_byte_range",
    "pdf_date",
    "pdf_string",
    "pdf_text_string",
    "splice_dict",
    "wrap_object",
]

_logger = logging.getLogger(__name__)

BYTERANGE_PLACEHOLDER = b"/ByteRange [" + b" ".join([b"0" * BYTERANGE_FIELD_WIDTH] * 4) + b"]"

# PDF annotation flags for signature widget (/F entry).
# Print flag is 4, Locked flag is 128; combined value is 132.
_ANNOT_FLAG_PRINT = 4
_ANNOT_FLAG_LOCKED = 128
ANNOT_FLAGS_SIG_WIDGET = _ANNOT_FLAG_PRINT | _ANNOT_FLAG_LOCKED  # 132

# Helvetica's average glyph width is a little over half the font size.
_HELVETICA_AVG_WIDTH = 0.52


# ── PDF string/object helpers ────────────────────────────────────────


def pdf_string(text: str) -> str:
    """Escape text for a PDF literal string in a content stream.

    Handles backslash, parentheses and control characters. Characters
    outside Latin-1 have no glyph in the WinAnsi Helvetica of the
    appearance stream and are replaced with '?', with a warning.
    Dictionary values use :func:`pdf_text_string` instead.
    """
    result: list[str] = []
    replaced_count = 0
    for char in text:
        code = ord(char)
        if char == "\\":
            result.append("\\\\")
        elif char == "(":
            result.append("\\(")
        elif char == ")":
            result.append("\\)")
        elif char == "\n":
            result.append("\\n")
        elif char == "\r":
            result.append("\\r")
        elif char == "\t":
            result.append("\\t")
        elif code < 0x20 or code == 0x7F:
            result.append(f"\\{code:03o}")
        elif code > 0xFF:
            result.append("?")
            replaced_count += 1
        else:
            result.append(char)
    if replaced_count > 0:
        _logger.warning(
            "pdf_string: %d non-Latin1 character(s) replaced with '?' in: %r", replaced_count, text
        )
    return "".join(result)


def pdf_text_string(text: str) -> str:
    """Render text as a complete PDF text-string token for a dictionary value.

    Text that PDFDocEncoding shares with Latin-1 becomes an escaped literal
    ``(...)``. Anything else (``€``, CJK, code points 0x80-0x9F) becomes a
    UTF-16BE hex string with a byte order mark, ``<FEFF...>``, so signer
    names and reasons survive intact in the signature panel.
    """
    if all(ord(c) <= 0x7F or 0xA0 <= ord(c) <= 0xFF for c in text):
        return f"({pdf_string(text)})"
    return f"<FEFF{text.encode('utf-16-be').hex().upper()}>"


def pdf_date(moment: datetime) -> str:
    """Format an aware datetime as a PDF date (``D:YYYYMMDDHHmmSS+hh'mm'``)."""
    offset = moment.utcoffset()
    if offset is None:
        return moment.strftime("D:%Y%m%d%H%M%S")
    minutes = int(offset.total_seconds()) // 60
    sign = "+" if minutes >= 0 else "-"
    hours, mins = divmod(abs(minutes), 60)
    return f"{moment.strftime('D:%Y%m%d%H%M%S')}{sign}{hours:02d}'{mins:02d}'"


def format_byte_range(values: Iterable[int]) -> bytes:
    """Render a ``/ByteRange`` entry with fixed-width, zero-padded fields."""
    fields = " ".join(f"{v:0{BYTERANGE_FIELD_WIDTH}d}" for v in values)
    return f"/ByteRange [{fields}]".encode("ascii")


def wrap_object(num: int, body: bytes | str, gen: int = 0) -> bytes:
    """Wrap a raw object body in ``N G obj ... endobj``."""
    if isinstance(body, str):
        body = body.encode("latin-1")
    return f"{num} {gen} obj\n".encode("ascii") + body + b"\nendobj\n"


def splice_dict(data: bytes, d: PdfDict, drop: Iterable[str] = (), extra: str = "") -> bytes:
    """Copy a dictionary's raw bytes, removing ``drop`` keys and appending ``extra``.

    Entries that are kept are copied byte for byte, so values the scanner
    does not interpret (stream references, nested dicts, strings) survive as-is.
    """
    cut = sorted(d.spans[key] for key in drop if key in d.spans)
    parts: list[bytes] = []
    pos = d.start
    for key_start, value_end in cut:
        parts.append(data[pos:key_start])
        pos = value_end
    parts.append(data[pos : d.close_offset].rstrip())
    if extra:
        parts.append(b"\n  " + extra.encode("latin-1"))
    parts.append(b"\n>>")
    return b"".join(parts)


# ── Signature objects ─────────────────────────────────────────────────


def build_sig_dict(
    capacity: int,
    signed_at: datetime,
    reason: str,
    location: str,
    name: str | None = None,
    contact_info: str | None = None,
    certification_level: int = 0,
) -> str:
    """Build the body of the ``/Type /Sig`` dictionary.

    ``/Contents`` is the last entry so the reserved hex slot is the last
    thing in the object.

    Args:
        capacity: Hex characters reserved in ``/Contents``.
        signed_at: Signing moment for ``/M``.
        reason: ``/Reason`` text.
        location: ``/Location`` text.
        name: Signer display name for ``/Name``.
        contact_info: Optional ``/ContactInfo`` text.
        certification_level: DocMDP permission level; 0 for an approval signature.
    """
    lines = [
        "<<",
        "  /Type /Sig",
        "  /Filter /Adobe.PPKLite",
        "  /SubFilter /adbe.pkcs7.detached",
    ]
    if name:
        lines.append(f"  /Name {pdf_text_string(name)}")
    lines.append(f"  /Reason {pdf_text_string(reason)}")
    lines.append(f"  /Location {pdf_text_string(location)}")
    if contact_info:
        lines.append(f"  /ContactInfo {pdf_text_string(contact_info)}")
    lines.append(f"  /M ({pdf_date(signed_at)})")
    if certification_level:
        lines.append(
            "  /Reference [<< /Type /SigRef /TransformMethod /DocMDP"
            f" /TransformParams << /Type /TransformParams /P {certification_level} /V /1.2 >> >>]"
        )
    lines.append(
        f"  /Prop_Build << /App << /Name /firmapdf /REx ({__version__}) >> "
        f"/Filter << /Name /Adobe.PPKLite >> >>"
    )
    lines.append("  " + BYTERANGE_PLACEHOLDER.decode("ascii"))
    lines.append(f"  /Contents <{'0' * capacity}>")
    lines.append(">>")
    return "\n".join(lines)


def build_widget(
    annot_num: int,
    sig_ref: PdfRef,
    page_ref: PdfRef,
    rect: tuple[float, float, float, float] | None = None,
    ap_ref: PdfRef | None = None,
) -> str:
    """Build the ``/Widget`` annotation that hosts the signature field.

    Invisible signatures (``rect`` None) use ``/Rect [0 0 0 0]`` and no
    appearance dictionary.
    """
    if rect is None:
        rect_str = "[0 0 0 0]"
    else:
        x, y, w, h = rect
        rect_str = f"[{x:.2f} {y:.2f} {x + w:.2f} {y + h:.2f}]"
    ap_entry = f"  /AP << /N {ap_ref} >>\n" if ap_ref is not None else ""
    return (
        f"<<\n"
        f"  /Type /Annot\n"
        f"  /Subtype /Widget\n"
        f"  /FT /Sig\n"
        f"  /Rect {rect_str}\n"
        f"  /V {sig_ref}\n"
        f"  /T (Signature_{annot_num})\n"
        f"  /F {ANNOT_FLAGS_SIG_WIDGET}\n"
        f"  /P {page_ref}\n"
        f"{ap_entry}"
        f"  /Border [0 0 0]\n"
        f">>"
    )


def build_appearance_xobject(w: float, h: float, lines: list[str]) -> bytes:
    """Build a form XObject (body and stream) drawing the signature box.

    Draws a thin border and ``lines`` of Helvetica text from the top down.
    The first line is treated as a caption and set slightly smaller.
    """
    stream = _appearance_stream(w, h, lines)
    head = (
        f"<< /Type /XObject /Subtype /Form /FormType 1\n"
        f"   /BBox [0.00 0.00 {w:.2f} {h:.2f}]\n"
        f"   /Resources << /Font << /F1 << /Type /Font /Subtype /Type1"
        f" /BaseFont /Helvetica /Encoding /WinAnsiEncoding >> >> >>\n"
        f"   /Length {len(stream)}\n"
        f">>\nstream\n"
    )
    return head.encode("latin-1") + stream + b"\nendstream"


def _appearance_stream(w: float, h: float, lines: list[str]) -> bytes:
    padding = 4.0
    count = max(len(lines), 1)
    size = min(10.0, max(4.0, (h - 2 * padding) / (count * 1.25)))
    leading = size * 1.25
    ops = [
        "q",
        "0.5 w 0.2 0.2 0.2 RG",
        f"0.25 0.25 {w - 0.5:.2f} {h - 0.5:.2f} re S",
        "Q",
        "BT",
        "0 g",
    ]
    y = h - padding - size
    for i, text in enumerate(lines):
        line_size = size * 0.85 if i == 0 and count > 1 else size
        max_chars = max(1, int((w - 2 * padding) / (line_size * _HELVETICA_AVG_WIDTH)))
        if len(text) > max_chars:
            text = text[: max_chars - 1] + "."
        ops.append(f"/F1 {line_size:.2f} Tf")
        ops.append(f"1 0 0 1 {padding:.2f} {y:.2f} Tm")
        ops.append(f"({pdf_string(text)}) Tj")
        y -= leading
    ops.append("ET")
    return "\n".join(ops).encode("latin-1")
