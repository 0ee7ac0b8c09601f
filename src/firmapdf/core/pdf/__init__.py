"""PDF scanning, placeholder insertion, embedding, and validation."""

from .byterange import (
    BYTERANGE_PATTERN,
    ByteRange,
    compute_byte_range,
    digest_byte_range,
    read_byte_range,
    signed_spans,
)
from .cms_info import CmsInspection, extract_cms, inspect_cms_blob
from .embed import embed_signature, write_byte_range
from .incremental import RawObject, assemble_incremental_update, build_xref_and_trailer
from .lexer import PdfArray, PdfDict, PdfLexer, PdfName, PdfRef, PdfSyntaxError
from .objects import (
    ANNOT_FLAGS_SIG_WIDGET,
    BYTERANGE_PLACEHOLDER,
    build_sig_dict,
    build_widget,
    pdf_date,
    pdf_string,
    pdf_text_string,
)
from .placeholder import CONTENTS_MARKER, PreparedPdf, insert_placeholder
from .structure import PdfIndex, find_pages, index_pdf, resolve_page_index
from .verify import (
    LIMITATION_NOTE,
    DocumentMetadata,
    ValidationReport,
    read_document_metadata,
    validate_signed_pdf,
)

__all__ = [
    "ANNOT_FLAGS_SIG_WIDGET",
    "BYTERANGE_PATTERN",
    "BYTERANGE_PLACEHOLDER",
    "CONTENTS_MARKER",
    "LIMITATION_NOTE",
    "ByteRange",
    "CmsInspection",
    "DocumentMetadata",
    "PdfArray",
    "PdfDict",
    "PdfIndex",
    "PdfLexer",
    "PdfName",
    "PdfRef",
    "PdfSyntaxError",
    "PreparedPdf",
    "RawObject",
    "ValidationReport",
    "assemble_incremental_update",
    "build_sig_dict",
    "build_widget",
    "build_xref_and_trailer",
    "compute_byte_range",
    "digest_byte_range",
    "embed_signature",
    "extract_cms",
    "find_pages",
    "index_pdf",
    "insert_placeholder",
    "inspect_cms_blob",
    "pdf_date",
    "pdf_string",
    "pdf_text_string",
    "read_byte_range",
    "read_document_metadata",
    "resolve_page_index",
    "signed_spans",
    "validate_signed_pdf",
    "write_byte_range",
]
