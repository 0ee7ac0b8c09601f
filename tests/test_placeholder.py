"""Tests for firmapdf.core.pdf.placeholder -- signature slot insertion."""

import io
import logging
from datetime import datetime, timezone

import pikepdf
import pytest

from firmapdf.core.pdf.byterange import compute_byte_range
from firmapdf.core.pdf.lexer import PdfRef
from firmapdf.core.pdf.objects import BYTERANGE_PLACEHOLDER
from firmapdf.core.pdf.placeholder import insert_placeholder
from firmapdf.core.pdf.structure import index_pdf
from firmapdf.errors import PDFError, PdfStructureNotRecognized

from .conftest import make_raw_pdf

_SIGNED_AT = datetime(2024, 3, 5, 14, 7, 9, tzinfo=timezone.utc)


def _open(data: bytes) -> pikepdf.Pdf:
    return pikepdf.open(io.BytesIO(data))


def _pages(catalog: str, *extra: str) -> dict[int, str]:
    bodies = {
        1: catalog,
        2: "<< /Type /Pages /Kids [3 0 R] /Count 1 >>",
        3: "<< /Type /Page /Parent 2 0 R /MediaBox [0 0 612 792] /Annots [4 0 R] >>",
        4: "<< /Type /Annot /Subtype /Link /Rect [0 0 10 10] >>",
    }
    for offset, body in enumerate(extra):
        bodies[5 + offset] = body
    return bodies


# ── Slot layout ─────────────────────────────────────────────────────


def test_original_bytes_preserved(one_page_pdf):
    prepared = insert_placeholder(one_page_pdf, 4096, signed_at=_SIGNED_AT)
    assert prepared.data.startswith(one_page_pdf)
    assert prepared.original_length == len(one_page_pdf)
    assert prepared.capacity == 4096
    assert prepared.page_index == 0


def test_contents_slot_is_zero_filled_and_framed(one_page_pdf):
    prepared = insert_placeholder(one_page_pdf, 4096, signed_at=_SIGNED_AT)
    data = prepared.data
    start = prepared.contents_offset
    assert data[start - 1 : start] == b"<"
    assert data[start : start + 4096] == b"0" * 4096
    assert data[start + 4096 : start + 4097] == b">"
    assert data[prepared.byte_range_offset :].startswith(BYTERANGE_PLACEHOLDER)


def test_slot_is_last_hex_contents(one_page_pdf):
    prepared = insert_placeholder(one_page_pdf, 4096, signed_at=_SIGNED_AT)
    assert compute_byte_range(prepared.data).hex_start == prepared.contents_offset


def test_sig_dict_entries(one_page_pdf):
    prepared = insert_placeholder(
        one_page_pdf,
        4096,
        name="JUAN PEREZ LOPEZ",
        reason="Firma Electrónica",
        location="México",
        contact_info="juan@example.mx",
        signed_at=_SIGNED_AT,
    )
    sig = index_pdf(prepared.data).get(prepared.sig_obj_num).value
    assert sig["/Type"] == "/Sig"
    assert sig["/Name"] == b"JUAN PEREZ LOPEZ"
    assert sig["/Reason"] == "Firma Electrónica".encode("latin-1")
    assert sig["/Location"] == "México".encode("latin-1")
    assert sig["/ContactInfo"] == b"juan@example.mx"
    assert sig["/M"] == b"D:20240305140709+00'00'"


# ── Document structure ──────────────────────────────────────────────


def test_acroform_and_annotation_added(one_page_pdf):
    prepared = insert_placeholder(one_page_pdf, 4096, signed_at=_SIGNED_AT)
    with _open(prepared.data) as pdf:
        acroform = pdf.Root.AcroForm
        assert int(acroform.SigFlags) == 3
        assert len(acroform.Fields) == 1
        field = acroform.Fields[0]
        assert field.FT == "/Sig"
        assert field.Subtype == "/Widget"
        assert [float(v) for v in field.Rect] == [0.0, 0.0, 0.0, 0.0]
        assert field.V.objgen == (prepared.sig_obj_num, 0)
        annots = pdf.pages[0].obj.Annots
        assert [a.objgen for a in annots] == [field.objgen]


def test_last_page_of_ten(ten_page_pdf):
    prepared = insert_placeholder(ten_page_pdf, 4096, page="last", signed_at=_SIGNED_AT)
    assert prepared.page_index == 9
    with _open(prepared.data) as pdf:
        assert len(pdf.pages) == 10
        assert "/Annots" in pdf.pages[9].obj
        assert "/Annots" not in pdf.pages[0].obj


def test_existing_annotations_kept():
    original = make_raw_pdf(_pages("<< /Type /Catalog /Pages 2 0 R >>"))
    prepared = insert_placeholder(original, 4096, signed_at=_SIGNED_AT)
    page = index_pdf(prepared.data).get(3).value
    assert page["/Annots"][0] == PdfRef(4, 0)
    assert len(page["/Annots"]) == 2
    assert page["/MediaBox"] == [0, 0, 612, 792]


def test_existing_inline_acroform_extended():
    catalog = (
        "<< /Type /Catalog /Pages 2 0 R "
        "/AcroForm << /Fields [5 0 R] /DA (/Helv 0 Tf 0 g) /SigFlags 1 >> >>"
    )
    original = make_raw_pdf(_pages(catalog, "<< /FT /Tx /T (nombre) >>"))
    prepared = insert_placeholder(original, 4096, signed_at=_SIGNED_AT)
    acroform = index_pdf(prepared.data).catalog["/AcroForm"]
    assert acroform["/Fields"][0] == PdfRef(5, 0)
    assert len(acroform["/Fields"]) == 2
    assert acroform["/SigFlags"] == 3
    assert acroform["/DA"] == b"/Helv 0 Tf 0 g"


def test_existing_indirect_acroform_revised_in_place():
    catalog = "<< /Type /Catalog /Pages 2 0 R /AcroForm 5 0 R >>"
    original = make_raw_pdf(_pages(catalog, "<< /Fields [] >>"))
    prepared = insert_placeholder(original, 4096, signed_at=_SIGNED_AT)
    index = index_pdf(prepared.data)
    acroform = index.get(5)
    assert acroform.start >= len(original)
    assert acroform.value["/SigFlags"] == 3
    assert len(acroform.value["/Fields"]) == 1
    # Catalog needs no new revision.
    assert index.get(1).start < len(original)


def test_encrypted_pdf_rejected():
    original = make_raw_pdf(
        _pages("<< /Type /Catalog /Pages 2 0 R >>"), trailer_extra="/Encrypt 9 0 R "
    )
    with pytest.raises(PDFError, match="Encrypted"):
        insert_placeholder(original, 4096)


# ── Visible and certification signatures ────────────────────────────


def test_visible_signature_has_appearance(one_page_pdf):
    prepared = insert_placeholder(
        one_page_pdf,
        4096,
        name="JUAN PEREZ LOPEZ",
        visible=True,
        x=50,
        y=50,
        signed_at=_SIGNED_AT,
    )
    with _open(prepared.data) as pdf:
        field = pdf.Root.AcroForm.Fields[0]
        assert [float(v) for v in field.Rect] == [50.0, 50.0, 300.0, 120.0]
        appearance = field.AP.N
        assert appearance.Subtype == "/Form"
        assert b"JUAN PEREZ LOPEZ" in appearance.read_bytes()


def test_visible_signature_off_page_warns(one_page_pdf, caplog):
    with caplog.at_level(logging.WARNING, logger="firmapdf.core.pdf.placeholder"):
        insert_placeholder(one_page_pdf, 4096, visible=True, x=500, y=50)
    assert "beyond the page" in caplog.text


def test_certification_signature_sets_docmdp(one_page_pdf):
    prepared = insert_placeholder(one_page_pdf, 4096, certification_level=2, signed_at=_SIGNED_AT)
    with _open(prepared.data) as pdf:
        assert pdf.Root.Perms.DocMDP.objgen == (prepared.sig_obj_num, 0)
        sig = pdf.Root.AcroForm.Fields[0].V
        assert int(sig.Reference[0].TransformParams.P) == 2


# ── Input validation ────────────────────────────────────────────────


@pytest.mark.parametrize(
    "capacity",
    [
        0,
        -2,
        4095,
    ],
)
def test_invalid_capacity(one_page_pdf, capacity):
    with pytest.raises(PDFError, match="capacity"):
        insert_placeholder(one_page_pdf, capacity)


def test_not_a_pdf():
    with pytest.raises(PdfStructureNotRecognized, match="%PDF"):
        insert_placeholder(b"hello world", 4096)


def test_page_out_of_range(one_page_pdf):
    with pytest.raises(PDFError, match="out of range"):
        insert_placeholder(one_page_pdf, 4096, page=3)
