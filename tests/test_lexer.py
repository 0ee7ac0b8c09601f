"""Tests for firmapdf.core.pdf.lexer -- PDF tokenizer with entry offsets."""

import pytest

from firmapdf.core.pdf.lexer import PdfDict, PdfLexer, PdfName, PdfRef, PdfSyntaxError


def _parse(data: bytes):
    return PdfLexer(data).parse_object()


# ── Dictionaries ────────────────────────────────────────────────────


def test_dict_values_and_offsets():
    data = b"<< /Type /Page /Parent 2 0 R /MediaBox [0 0 612 792] /Rotate 90 >>"
    d = _parse(data)
    assert isinstance(d, PdfDict)
    assert d["/Type"] == "/Page"
    assert isinstance(d["/Type"], PdfName)
    assert d["/Parent"] == PdfRef(2, 0)
    assert d["/MediaBox"] == [0, 0, 612, 792]
    assert d["/Rotate"] == 90
    assert d.start == 0
    assert d.end == len(data)
    assert data[d.close_offset : d.end] == b">>"


def test_dict_entry_spans_cover_key_and_value():
    data = b"<< /Type /Page /Parent 2 0 R /Annots [4 0 R 5 0 R] /Count 3 >>"
    d = _parse(data)
    spans = {key: data[start:end] for key, (start, end) in d.spans.items()}
    assert spans["/Type"] == b"/Type /Page"
    assert spans["/Parent"] == b"/Parent 2 0 R"
    assert spans["/Annots"] == b"/Annots [4 0 R 5 0 R]"
    assert spans["/Count"] == b"/Count 3"


def test_nested_dict_offsets():
    data = b"<< /AcroForm << /Fields [] /SigFlags 1 >> >>"
    outer = _parse(data)
    inner = outer["/AcroForm"]
    assert data[inner.start : inner.end] == b"<< /Fields [] /SigFlags 1 >>"


def test_dict_requires_name_keys():
    with pytest.raises(PdfSyntaxError, match="Expected name key"):
        _parse(b"<< 1 2 >>")


# ── Scalars ─────────────────────────────────────────────────────────


def test_integers_are_not_references_without_r():
    assert _parse(b"[1 2 3]") == [1, 2, 3]
    assert _parse(b"[1 0 R 2]") == [PdfRef(1, 0), 2]


def test_keywords_true_false_null():
    assert _parse(b"[true false null]") == [True, False, None]


def test_real_numbers():
    assert _parse(b"-1.5") == -1.5
    assert _parse(b".25") == 0.25


def test_comments_are_skipped():
    assert _parse(b"% a comment\n42") == 42


def test_name_hex_escape():
    assert _parse(b"/A#20B") == "/A B"


# ── Strings ─────────────────────────────────────────────────────────


def test_literal_string_escapes():
    assert _parse(rb"(a\(b\) \n \101)") == b"a(b) \n A"


def test_literal_string_balanced_parentheses():
    assert _parse(b"(x (y) z)") == b"x (y) z"


def test_literal_string_line_continuation():
    assert _parse(b"(ab\\\ncd)") == b"abcd"


def test_hex_string():
    assert _parse(b"<48 65 6C6C6F>") == b"Hello"


def test_hex_string_odd_length_padded():
    assert _parse(b"<414>") == b"A@"


def test_unterminated_literal_string():
    with pytest.raises(PdfSyntaxError, match="Unterminated"):
        _parse(b"(never closed")


def test_invalid_hex_string_reports_offset():
    with pytest.raises(PdfSyntaxError) as exc_info:
        _parse(b"[ <zz> ]")
    assert exc_info.value.offset == 2
    assert isinstance(exc_info.value, ValueError)


def test_unexpected_end_of_data():
    with pytest.raises(PdfSyntaxError, match="end of data"):
        _parse(b"[1 2")
