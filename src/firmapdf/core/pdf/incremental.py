"""Incremental update assembly.

Appends new and overriding objects after the original bytes, followed by
their own cross-reference section and a trailer chained to the previous
one with ``/Prev``. The original bytes are never modified.
"""

from __future__ import annotations

import logging
from typing import NamedTuple

from ...errors import PDFError
from .structure import PdfIndex

__all__ = [
    "RawObject",
    "assemble_incremental_update",
    "build_xref_and_trailer",
]

_logger = logging.getLogger(__name__)

# Trailer entries carried forward from the previous revision.
_CARRIED_TRAILER_KEYS = ("/Info", "/ID")


class RawObject(NamedTuple):
    """A complete ``N G obj ... endobj`` definition ready to append."""

    num: int
    gen: int
    data: bytes


def assemble_incremental_update(
    index: PdfIndex,
    raw_objects: list[RawObject],
    new_size: int,
) -> bytes:
    """Assemble the full PDF with an incremental update appended.

    Args:
        index: Structure index of the original PDF.
        raw_objects: Objects to append, in output order.
        new_size: ``/Size`` of the new trailer (highest object number + 1).

    Returns:
        Original bytes followed by the new objects, xref section and trailer.
    """
    base = index.data
    if not base.endswith(b"\n"):
        base = base + b"\n"

    xref_entries: dict[int, tuple[int, int]] = {}
    running_offset = len(base)
    for obj in raw_objects:
        xref_entries[obj.num] = (running_offset, obj.gen)
        running_offset += len(obj.data)

    all_objects = b"".join(obj.data for obj in raw_objects)
    root = index.root_ref
    xref_data = build_xref_and_trailer(
        xref_entries=xref_entries,
        new_size=new_size,
        prev_xref=index.startxref,
        root_ref=f"{root.num} {root.gen} R",
        trailer_extra=_carried_trailer_entries(index),
        xref_offset=len(base) + len(all_objects),
    )
    _logger.debug(
        "Incremental update: %d object(s), %d bytes appended after offset %d",
        len(raw_objects),
        len(all_objects) + len(xref_data),
        len(base),
    )
    return base + all_objects + xref_data


def _carried_trailer_entries(index: PdfIndex) -> list[str]:
    """Raw ``/Info`` and ``/ID`` entries of the newest trailer defining them."""
    entries: list[str] = []
    for key in _CARRIED_TRAILER_KEYS:
        for trailer in reversed(index.trailers):
            if key in trailer.spans:
                key_start, value_end = trailer.spans[key]
                entries.append(index.raw(key_start, value_end).decode("latin-1"))
                break
    return entries


def build_xref_and_trailer(
    xref_entries: dict[int, tuple[int, int]],
    new_size: int,
    prev_xref: int,
    root_ref: str,
    trailer_extra: list[str],
    xref_offset: int,
) -> bytes:
    """Build an xref table and trailer for an incremental update.

    Args:
        xref_entries: Mapping of object number to (byte offset, generation).
        new_size: Total object count (/Size value).
        prev_xref: Previous xref offset (/Prev value).
        root_ref: Catalog reference (``"N G R"``).
        trailer_extra: Extra trailer entries to carry forward (/Info, /ID).
        xref_offset: Byte offset where this xref table starts.

    Returns:
        Raw bytes of the xref table, trailer, and %%EOF.
    """
    if not xref_entries:
        raise PDFError("Cannot build xref table: no objects to reference.")

    xref_lines = ["xref"]

    # Group consecutive object numbers into subsections
    sorted_nums = sorted(xref_entries)
    groups: list[list[int]] = []
    current_group = [sorted_nums[0]]
    for n in sorted_nums[1:]:
        if n == current_group[-1] + 1:
            current_group.append(n)
        else:
            groups.append(current_group)
            current_group = [n]
    groups.append(current_group)

    for group in groups:
        xref_lines.append(f"{group[0]} {len(group)}")
        # Each entry is exactly 20 bytes: 18 chars + "\r" here + "\n" from join.
        for obj_num in group:
            offset, gen = xref_entries[obj_num]
            xref_lines.append(f"{offset:010d} {gen:05d} n\r")

    xref_lines.append("trailer")
    xref_lines.append("<<")
    xref_lines.append(f"  /Size {new_size}")
    xref_lines.append(f"  /Prev {prev_xref}")
    xref_lines.append(f"  /Root {root_ref}")
    xref_lines.extend(f"  {extra}" for extra in trailer_extra)
    xref_lines.append(">>")
    xref_lines.append("startxref")
    xref_lines.append(str(xref_offset))
    xref_lines.append("%%EOF")
    xref_lines.append("")

    return "\n".join(xref_lines).encode("latin-1")
