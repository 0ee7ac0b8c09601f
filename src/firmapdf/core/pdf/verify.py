"""
Digest-consistency validation of signed PDFs.

Re-locates ``/Contents`` and ``/ByteRange`` of the last signature,
recomputes the SHA-256 digest over the two signed spans, compares it with
the CMS ``messageDigest`` attribute and reports document metadata.

This is NOT cryptographic verification: the certificate chain,
revocation status and the CMS signature value are not checked.
"""

from __future__ import annotations

import io
import logging
import re
from typing import TypedDict

from ...errors import PDFError
from .. import require_pikepdf as _require_pikepdf
from .byterange import BYTERANGE_PATTERN, compute_byte_range, digest_byte_range, read_byte_range
from .cms_info import extract_cms, extract_digest_info, inspect_cms_blob

__all__ = [
    "LIMITATION_NOTE",
    "DocumentMetadata",
    "ValidationReport",
    "read_document_metadata",
    "validate_signed_pdf",
]

_logger = logging.getLogger(__name__)

LIMITATION_NOTE = (
    "Digest-consistency check only: the certificate chain, revocation status "
    "and the CMS signature value are not verified."
)


class DocumentMetadata(TypedDict):
    page_count: int | None
    title: str | None
    producer: str | None
    modification_date: str | None


class ValidationReport(TypedDict):
    """Result of validating the last signature of a PDF."""

    valid: bool  # structure_ok and digest_ok
    structure_ok: bool  # ByteRange frames the /Contents slot, CMS parses
    digest_ok: bool  # SHA-256 of the spans equals the CMS messageDigest
    byte_range: list[int] | None
    digest: str | None  # hex SHA-256 of the signed spans
    message_digest: str | None  # hex messageDigest from the CMS
    signature_count: int
    signer: dict[str, str | None] | None
    signing_time: str | None
    metadata: DocumentMetadata
    details: list[str]
    limitation: str


def read_document_metadata(pdf_bytes: bytes) -> DocumentMetadata:
    """Page count and document information via pikepdf; None where unavailable."""
    metadata: DocumentMetadata = {
        "page_count": None,
        "title": None,
        "producer": None,
        "modification_date": None,
    }
    pikepdf = _require_pikepdf()
    try:
        with pikepdf.open(io.BytesIO(pdf_bytes)) as pdf:
            metadata["page_count"] = len(pdf.pages)
            info = pdf.docinfo
            for key, field in (
                ("/Title", "title"),
                ("/Producer", "producer"),
                ("/ModDate", "modification_date"),
            ):
                if key in info:
                    metadata[field] = str(info[key])  # type: ignore[literal-required]
    except (ValueError, RuntimeError, OSError, pikepdf.PdfError) as e:
        _logger.warning("pikepdf could not read document metadata (non-fatal): %s", e)
    return metadata


def validate_signed_pdf(pdf_bytes: bytes) -> ValidationReport:
    """Validate digest consistency of the last embedded signature.

    Never raises on validation failure -- returns ``valid=False`` with
    details explaining which check failed.
    """
    report: ValidationReport = {
        "valid": False,
        "structure_ok": False,
        "digest_ok": False,
        "byte_range": None,
        "digest": None,
        "message_digest": None,
        "signature_count": len(re.findall(BYTERANGE_PATTERN, pdf_bytes)),
        "signer": None,
        "signing_time": None,
        "metadata": read_document_metadata(pdf_bytes),
        "details": [],
        "limitation": LIMITATION_NOTE,
    }
    details = report["details"]

    # ── 1. ByteRange ─────────────────────────────────────────────
    written = read_byte_range(pdf_bytes)
    if written is None:
        details.append("Structure error: No /ByteRange found in PDF -- not a signed PDF?")
        return report
    report["byte_range"] = list(written)

    try:
        located = compute_byte_range(pdf_bytes)
    except PDFError as e:
        details.append(f"Structure error: {e}")
        return report
    if located != written:
        details.append(
            f"ByteRange {list(written)} does not frame the last /Contents slot "
            f"(expected {list(located)})"
        )

    # ── 2. Digest over the signed spans ──────────────────────────
    try:
        digest = digest_byte_range(pdf_bytes, written)
        cms_der = extract_cms(pdf_bytes, written)
    except PDFError as e:
        details.append(f"Structure error: {e}")
        return report
    report["digest"] = digest.hex()
    details.append(f"ByteRange OK -- signed data: {written.len1 + written.len2} bytes")

    # ── 3. CMS structure ─────────────────────────────────────────
    inspection = inspect_cms_blob(cms_der)
    details.extend(inspection["details"])
    report["signer"] = inspection["signer"]
    report["signing_time"] = inspection["signing_time"]
    report["structure_ok"] = located == written and inspection["content_type"] == "signed_data"

    # ── 4. messageDigest comparison ──────────────────────────────
    digest_info = extract_digest_info(cms_der)
    if digest_info is None:
        details.append("Could not extract messageDigest -- digest cannot be compared")
    else:
        algo_name, message_digest = digest_info
        report["message_digest"] = message_digest.hex()
        if algo_name != "sha256":
            details.append(f"Unsupported digest algorithm {algo_name.upper()} -- not compared")
        elif message_digest == digest:
            report["digest_ok"] = True
            details.append(f"Digest OK -- SHA-256 matches CMS messageDigest: {digest.hex()}")
        else:
            details.append(
                f"Digest MISMATCH!\n"
                f"  ByteRange SHA-256:  {digest.hex()}\n"
                f"  CMS messageDigest:  {message_digest.hex()}"
            )

    report["valid"] = report["structure_ok"] and report["digest_ok"]
    return report
