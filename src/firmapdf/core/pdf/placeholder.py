"""Signature placeholder insertion.

Prepares a PDF for hash-then-sign with a TRUE incremental update: the
original bytes are preserved exactly and the new objects are appended
after them:

- the ``/Sig`` dictionary with a zero ``/ByteRange`` and a zero-filled
  ``/Contents`` slot of fixed capacity (appended last);
- the ``/Widget`` annotation (plus its appearance XObject when visible);
- a new revision of the target page with the widget added to ``/Annots``;
- a new revision of the catalog (or its indirect ``/AcroForm``) listing
  the widget in ``/AcroForm /Fields`` with ``/SigFlags 3``, and
  ``/Perms /DocMDP`` for certification signatures.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone

from ...constants import PDF_MAGIC, SIG_HEIGHT, SIG_WIDTH
from ...errors import PDFError, PdfStructureNotRecognized
from .incremental import RawObject, assemble_incremental_update
from .lexer import PdfArray, PdfDict, PdfRef, PdfValue
from .objects import (
    BYTERANGE_PLACEHOLDER,
    build_appearance_xobject,
    build_sig_dict,
    build_widget,
    splice_dict,
    wrap_object,
)
from .structure import PdfIndex, find_pages, index_pdf, inherited_attribute, resolve_page_index

__all__ = [
    "CONTENTS_MARKER",
    "PreparedPdf",
    "insert_placeholder",
]

_logger = logging.getLogger(__name__)

CONTENTS_MARKER = b"/Contents <"

# How far into the file a %PDF header may appear (PDF 32000-1 implementation note).
_HEADER_SEARCH_WINDOW = 1024


@dataclass(frozen=True)
class PreparedPdf:
    """A PDF carrying an empty signature slot.

    Attributes:
        data: Complete PDF bytes (original + incremental update).
        contents_offset: Offset of the first hex digit of ``/Contents``.
        capacity: Number of reserved hex characters.
        byte_range_offset: Offset of the ``/ByteRange [...]`` placeholder.
        sig_obj_num: Object number of the ``/Sig`` dictionary.
        page_index: 0-based index of the page hosting the widget.
        original_length: Length of the unsigned input.
    """

    data: bytes
    contents_offset: int
    capacity: int
    byte_range_offset: int
    sig_obj_num: int
    page_index: int
    original_length: int


def insert_placeholder(
    pdf_bytes: bytes,
    capacity: int,
    *,
    name: str | None = None,
    reason: str = "",
    location: str = "",
    contact_info: str | None = None,
    page: int | str = 0,
    clamp_page: bool = False,
    visible: bool = False,
    x: float = 0.0,
    y: float = 0.0,
    w: float = SIG_WIDTH,
    h: float = SIG_HEIGHT,
    certification_level: int = 0,
    signed_at: datetime | None = None,
) -> PreparedPdf:
    """Append a signature placeholder to ``pdf_bytes``.

    Args:
        pdf_bytes: Raw PDF content.
        capacity: Hex characters to reserve in ``/Contents`` (even).
        name: Signer display name (``/Name``).
        reason: ``/Reason`` text.
        location: ``/Location`` text.
        contact_info: Optional ``/ContactInfo`` text.
        page: Target page -- 0-based int, negative from the end, "first" or "last".
        clamp_page: Use the last page when ``page`` is past the end.
        visible: Draw a signature box at (x, y) of size (w, h).
        x, y: Lower-left corner of the visible box (PDF points).
        w, h: Size of the visible box.
        certification_level: DocMDP level 1-3, or 0 for an approval signature.
        signed_at: Moment written to ``/M``; defaults to now.

    Returns:
        PreparedPdf with the located slot offsets.

    Raises:
        PdfStructureNotRecognized: A required marker or object is missing.
        PDFError: Invalid capacity, page, or an encrypted document.
    """
    if capacity <= 0 or capacity % 2:
        raise PDFError(f"Signature capacity must be a positive even number, got {capacity}")
    if PDF_MAGIC not in pdf_bytes[:_HEADER_SEARCH_WINDOW]:
        raise PdfStructureNotRecognized("Cannot find %PDF header in input.")

    index = index_pdf(pdf_bytes)
    if index.trailer_value("/Encrypt") is not None:
        raise PDFError("Encrypted PDFs are not supported for signing.")

    root = index.root_ref
    catalog = index.catalog
    pages = find_pages(index)
    page_index = resolve_page_index(page, len(pages), clamp=clamp_page)
    page_ref = pages[page_index]
    page_obj = index.get(page_ref.num)
    page_dict = index.dict_object(page_ref.num, "page")
    if signed_at is None:
        signed_at = datetime.now(timezone.utc)

    next_num = index.next_object_number()
    sig_ref = PdfRef(next_num, 0)
    annot_ref = PdfRef(next_num + 1, 0)
    ap_ref = PdfRef(next_num + 2, 0) if visible else None
    new_size = next_num + (3 if visible else 2)
    _logger.debug(
        "Placeholder: page %d (obj %d), sig obj %d, annot obj %d, /Size %d",
        page_index,
        page_ref.num,
        sig_ref.num,
        annot_ref.num,
        new_size,
    )

    raw_objects: list[RawObject] = []

    # Widget (and appearance)
    rect = None
    if visible:
        rect = (x, y, w, h)
        _warn_if_off_page(index, page_ref, rect)
    widget = build_widget(annot_ref.num, sig_ref, page_ref, rect, ap_ref)
    raw_objects.append(RawObject(annot_ref.num, 0, wrap_object(annot_ref.num, widget)))
    if ap_ref is not None:
        lines = _appearance_lines(name, reason, signed_at)
        appearance = build_appearance_xobject(w, h, lines)
        raw_objects.append(RawObject(ap_ref.num, 0, wrap_object(ap_ref.num, appearance)))

    # Page revision with the widget in /Annots
    annots = _ref_list(index, page_dict.get("/Annots"), "/Annots")
    annots.append(str(annot_ref))
    page_body = splice_dict(
        page_dict.source, page_dict, drop=["/Annots"], extra=f"/Annots [{' '.join(annots)}]"
    )
    raw_objects.append(_revision(page_obj.num, page_obj.gen, page_body))

    # AcroForm and catalog revisions
    catalog_drop: list[str] = []
    catalog_extra: list[str] = []
    acroform = catalog.get("/AcroForm")
    if isinstance(acroform, PdfRef):
        acro_dict = index.dict_object(acroform.num, "AcroForm")
        acro_body = _acroform_body(index, acro_dict, annot_ref)
        raw_objects.append(_revision(acroform.num, index.get(acroform.num).gen, acro_body))
    elif isinstance(acroform, PdfDict):
        catalog_drop.append("/AcroForm")
        acro_body = _acroform_body(index, acroform, annot_ref)
        catalog_extra.append("/AcroForm " + acro_body.decode("latin-1"))
    else:
        catalog_extra.append(f"/AcroForm << /Fields [{annot_ref}] /SigFlags 3 >>")

    if certification_level:
        catalog_drop.append("/Perms")
        perms = index.resolve(catalog.get("/Perms"))
        if isinstance(perms, PdfDict):
            body = splice_dict(
                perms.source, perms, drop=["/DocMDP"], extra=f"/DocMDP {sig_ref}"
            )
            catalog_extra.append("/Perms " + body.decode("latin-1"))
        else:
            catalog_extra.append(f"/Perms << /DocMDP {sig_ref} >>")

    if catalog_extra:
        catalog_body = splice_dict(
            catalog.source, catalog, drop=catalog_drop, extra="\n  ".join(catalog_extra)
        )
        raw_objects.append(_revision(root.num, index.get(root.num).gen, catalog_body))

    # Signature dictionary last: its /Contents is the final hex string in the file
    sig_body = build_sig_dict(
        capacity,
        signed_at,
        reason,
        location,
        name=name,
        contact_info=contact_info,
        certification_level=certification_level,
    )
    raw_objects.append(RawObject(sig_ref.num, 0, wrap_object(sig_ref.num, sig_body)))

    full_pdf = assemble_incremental_update(index, raw_objects, new_size)

    base_length = len(pdf_bytes) + (0 if pdf_bytes.endswith(b"\n") else 1)
    sig_start = base_length + sum(len(o.data) for o in raw_objects[:-1])
    sig_end = sig_start + len(raw_objects[-1].data)
    contents_pos = full_pdf.find(CONTENTS_MARKER, sig_start, sig_end)
    br_pos = full_pdf.find(BYTERANGE_PLACEHOLDER, sig_start, sig_end)
    if contents_pos == -1 or br_pos == -1:
        raise PdfStructureNotRecognized("Cannot locate signature placeholder in prepared PDF.")

    prepared = PreparedPdf(
        data=full_pdf,
        contents_offset=contents_pos + len(CONTENTS_MARKER),
        capacity=capacity,
        byte_range_offset=br_pos,
        sig_obj_num=sig_ref.num,
        page_index=page_index,
        original_length=len(pdf_bytes),
    )
    _logger.debug(
        "Prepared PDF: %d -> %d bytes, /Contents hex at %d (%d chars)",
        len(pdf_bytes),
        len(full_pdf),
        prepared.contents_offset,
        capacity,
    )
    return prepared


def _revision(num: int, gen: int, body: bytes) -> RawObject:
    """A new revision of an existing object."""
    return RawObject(num, gen, wrap_object(num, body, gen))


def _ref_list(index: PdfIndex, value: PdfValue, what: str) -> list[str]:
    """Render the entries of a (possibly indirect) array of references."""
    array = index.resolve(value) if value is not None else None
    if array is None:
        return []
    if not isinstance(array, PdfArray):
        raise PdfStructureNotRecognized(f"{what} is not an array.")
    items: list[str] = []
    for item in array:
        if isinstance(item, PdfRef):
            items.append(str(item))
        elif isinstance(item, PdfDict):
            items.append(item.source[item.start : item.end].decode("latin-1"))
        else:
            _logger.warning("Dropping non-reference %s entry: %r", what, item)
    return items


def _acroform_body(index: PdfIndex, acroform: PdfDict, annot_ref: PdfRef) -> bytes:
    fields = _ref_list(index, acroform.get("/Fields"), "/AcroForm /Fields")
    fields.append(str(annot_ref))
    return splice_dict(
        acroform.source,
        acroform,
        drop=["/Fields", "/SigFlags"],
        extra=f"/Fields [{' '.join(fields)}] /SigFlags 3",
    )


def _appearance_lines(name: str | None, reason: str, signed_at: datetime) -> list[str]:
    lines = ["Firmado digitalmente por:", name or "Firma digital"]
    lines.append(f"Fecha: {signed_at.strftime('%Y-%m-%d %H:%M:%S %z')}")
    if reason:
        lines.append(f"Razón: {reason}")
    return lines


def _warn_if_off_page(
    index: PdfIndex, page_ref: PdfRef, rect: tuple[float, float, float, float]
) -> None:
    box = inherited_attribute(index, page_ref, "/MediaBox")
    if not isinstance(box, PdfArray) or len(box) != 4:
        return
    if not all(isinstance(v, (int, float)) for v in box):
        return
    x0, y0, x1, y1 = (float(v) for v in box)
    x, y, w, h = rect
    if x < min(x0, x1) or y < min(y0, y1) or x + w > max(x0, x1) or y + h > max(y0, y1):
        _logger.warning(
            "Signature box (%.1f, %.1f, %.1f x %.1f) extends beyond the page MediaBox %s",
            x,
            y,
            w,
            h,
            [x0, y0, x1, y1],
        )
