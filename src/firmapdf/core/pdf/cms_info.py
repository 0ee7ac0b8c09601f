# pyright: reportUnknownMemberType=false, reportUnknownVariableType=false, reportUnknownArgumentType=false
"""CMS extraction and inspection -- signature blob, digest info, signer identity."""

from __future__ import annotations

import hashlib
import logging
from typing import TypedDict

from asn1crypto import cms as asn1_cms

from ...errors import PDFError
from .asn1 import ASN1_SEQUENCE_TAG, MIN_CMS_SIZE, extract_der_from_padded_hex
from .byterange import ByteRange

__all__ = [
    "CmsInspection",
    "extract_cms",
    "extract_digest_info",
    "extract_signer_info",
    "inspect_cms_blob",
    "resolve_hash_algo",
]

_logger = logging.getLogger(__name__)

# OID for messageDigest attribute in CMS SignerInfo
_OID_MESSAGE_DIGEST = "1.2.840.113549.1.9.4"
_OID_SIGNING_TIME = "1.2.840.113549.1.9.5"

# Map signature-algorithm identifiers some producers put in digestAlgorithm
_DIGEST_ALGO_MAP: dict[str, str] = {
    "sha1_rsa": "sha1",
    "sha256_rsa": "sha256",
    "sha384_rsa": "sha384",
    "sha512_rsa": "sha512",
    "1.2.840.113549.1.1.5": "sha1",
    "1.2.840.113549.1.1.11": "sha256",
    "1.2.840.113549.1.1.12": "sha384",
    "1.2.840.113549.1.1.13": "sha512",
}


def extract_cms(pdf_bytes: bytes, byte_range: ByteRange) -> bytes:
    """Extract the DER CMS blob from the gap between the two signed spans.

    Raises:
        PDFError: If the gap is not a ``<hex>`` string holding DER data.
    """
    hex_start = byte_range.hex_start
    hex_end = byte_range.hex_end
    if hex_start <= 0 or hex_end > len(pdf_bytes) or hex_end <= hex_start:
        raise PDFError(f"Invalid ByteRange {list(byte_range)} for a {len(pdf_bytes)}-byte PDF")
    if pdf_bytes[hex_start - 1 : hex_start] != b"<":
        raise PDFError(f"Expected '<' at offset {hex_start - 1}")
    if pdf_bytes[hex_end : hex_end + 1] != b">":
        raise PDFError(f"Expected '>' at offset {hex_end}")

    try:
        hex_str = pdf_bytes[hex_start:hex_end].decode("ascii").strip()
        return extract_der_from_padded_hex(hex_str)
    except (UnicodeDecodeError, ValueError) as e:
        raise PDFError(f"Invalid hex in CMS blob: {e}") from e


def resolve_hash_algo(algo_raw: str) -> str | None:
    """Resolve a CMS digest algorithm identifier to a hashlib-compatible name."""
    if algo_raw in hashlib.algorithms_available:
        return algo_raw
    return _DIGEST_ALGO_MAP.get(algo_raw)


def _first_signer_info(cms_der: bytes) -> asn1_cms.SignerInfo | None:
    content_info = asn1_cms.ContentInfo.load(cms_der)
    signer_infos = content_info["content"]["signer_infos"]
    if not signer_infos:
        return None
    return signer_infos[0]


def extract_digest_info(cms_der: bytes) -> tuple[str, bytes] | None:
    """Extract digest algorithm and messageDigest from the first SignerInfo.

    Returns:
        (hashlib_algo_name, digest_bytes) if extraction succeeds, None otherwise.
    """
    try:
        signer_info = _first_signer_info(cms_der)
        if signer_info is None:
            return None

        algo_id = signer_info["digest_algorithm"]["algorithm"]
        algo_name = resolve_hash_algo(algo_id.native) or resolve_hash_algo(algo_id.dotted)
        if algo_name is None:
            _logger.debug("Unrecognized digest algorithm: %s (%s)", algo_id.native, algo_id.dotted)
            return None

        signed_attrs = signer_info["signed_attrs"]
        for attr in signed_attrs:
            if attr["type"].dotted == _OID_MESSAGE_DIGEST and attr["values"]:
                return (algo_name, attr["values"][0].native)
        return None  # noqa: TRY300 -- no messageDigest attribute after the loop
    except (ValueError, TypeError, KeyError, AttributeError, IndexError):
        _logger.debug("Could not extract digest info from CMS", exc_info=True)
        return None


def extract_signer_info(cms_der: bytes) -> dict[str, str | None] | None:
    """Extract signer certificate info from a CMS blob.

    Returns:
        dict with name, organization, dn, serial_number -- or None on failure.
    """
    try:
        content_info = asn1_cms.ContentInfo.load(cms_der)
        certificates = content_info["content"]["certificates"]
        if not certificates:
            return None
        cert = certificates[0].chosen
        subject = cert.subject.native
        return {
            "name": subject.get("common_name"),
            "organization": subject.get("organization_name"),
            "dn": cert.subject.human_friendly,
            "serial_number": format(cert.serial_number, "x"),
        }
    except (ValueError, TypeError, KeyError, AttributeError, IndexError):
        _logger.debug("Could not extract signer info from CMS", exc_info=True)
        return None


class CmsInspection(TypedDict):
    """Structure of a CMS/PKCS#7 blob (without the signed data)."""

    content_type: str | None
    signer_count: int
    certificate_count: int
    detached: bool
    digest_algorithm: str | None
    signing_time: str | None
    signer: dict[str, str | None] | None
    cms_size: int
    details: list[str]


def inspect_cms_blob(cms_der: bytes) -> CmsInspection:
    """Inspect a CMS/PKCS#7 blob without verifying it against data."""
    result: CmsInspection = {
        "content_type": None,
        "signer_count": 0,
        "certificate_count": 0,
        "detached": False,
        "digest_algorithm": None,
        "signing_time": None,
        "signer": None,
        "cms_size": len(cms_der),
        "details": [],
    }
    details = result["details"]

    if len(cms_der) < MIN_CMS_SIZE:
        details.append(f"CMS too small ({len(cms_der)} bytes) -- likely corrupt")
        return result
    if cms_der[0] != ASN1_SEQUENCE_TAG:
        details.append("Not a valid CMS blob (expected ASN.1 SEQUENCE)")
        return result

    try:
        content_info = asn1_cms.ContentInfo.load(cms_der)
        result["content_type"] = content_info["content_type"].native
        signed_data = content_info["content"]
        encap = signed_data["encap_content_info"]
        result["detached"] = encap["content"].native is None
        result["signer_count"] = len(signed_data["signer_infos"])
        result["certificate_count"] = len(signed_data["certificates"])
        for attr in signed_data["signer_infos"][0]["signed_attrs"]:
            if attr["type"].dotted == _OID_SIGNING_TIME and attr["values"]:
                result["signing_time"] = attr["values"][0].native.isoformat()
    except (ValueError, TypeError, KeyError, AttributeError, IndexError) as e:
        details.append(f"CMS parse error: {e}")
        return result

    details.append(f"CMS blob: {len(cms_der)} bytes, {result['content_type']}")
    if result["detached"]:
        details.append("Detached signature (no encapsulated content)")

    signer = extract_signer_info(cms_der)
    result["signer"] = signer
    if signer and signer.get("name"):
        details.append(f"Signer: {signer['name']}")

    digest_info = extract_digest_info(cms_der)
    if digest_info is not None:
        result["digest_algorithm"] = digest_info[0]
        details.append(f"Digest algorithm: {digest_info[0].upper()}")
    return result
