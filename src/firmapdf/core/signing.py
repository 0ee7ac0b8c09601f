"""
Core signing pipeline -- embedded detached CMS signatures.

``sign_pdf`` runs the hash-then-sign workflow over a local certificate and
private key. The input PDF is never modified: every intermediate buffer is
local to the call and only a fully verified result is returned.
"""

from __future__ import annotations

__all__ = [
    "SignatureMetadata",
    "SignatureOptions",
    "SigningResult",
    "sign_pdf",
]

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import TypedDict, cast

from ..constants import (
    CERTIFICATION_LEVELS,
    DEFAULT_LOCATION,
    DEFAULT_REASON,
    MAX_CONTENTS_CAPACITY,
    PDF_MAGIC,
    SIG_HEIGHT,
    SIG_WIDTH,
)
from ..errors import (
    ByteRangeIntegrityViolation,
    ConfigError,
    InvalidPdfHeaderAfterSigning,
    PDFError,
)
from .certificates import SigningCredentials, is_valid
from .cms import estimate_signature_capacity, sign_detached
from .pdf.asn1 import extract_der_from_padded_hex
from .pdf.byterange import compute_byte_range, digest_byte_range
from .pdf.cms_info import extract_digest_info
from .pdf.embed import embed_signature, write_byte_range
from .pdf.placeholder import insert_placeholder

_logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SignatureOptions:
    """Options for signature placement, appearance and certification.

    Attributes:
        visible: Draw a signature box on the page; otherwise invisible.
        page: Target page -- 0-based int, negative from the end, "first" or "last".
        clamp_page: Use the last page when ``page`` is past the end instead
            of failing; set by :meth:`from_mapping`.
        x: Lower-left x of the visible box (PDF points, origin bottom-left).
        y: Lower-left y of the visible box.
        w: Width of the visible box.
        h: Height of the visible box.
        reason: ``/Reason`` text.
        location: ``/Location`` text.
        contact_info: Optional ``/ContactInfo`` text.
        name: Signer display name; defaults to the certificate CN.
        certification_level: 0 (approval) or DocMDP level 1-3.
        include_timestamp: Accepted for compatibility; RFC 3161 timestamps
            are not requested.
        capacity: Reserved ``/Contents`` hex characters; derived from the
            certificate when None.
    """

    visible: bool = False
    page: int | str = 0
    clamp_page: bool = False
    x: float = 0.0
    y: float = 0.0
    w: float = SIG_WIDTH
    h: float = SIG_HEIGHT
    reason: str = DEFAULT_REASON
    location: str = DEFAULT_LOCATION
    contact_info: str | None = None
    name: str | None = None
    certification_level: int = 0
    include_timestamp: bool = False
    capacity: int | None = field(default=None)

    def __post_init__(self) -> None:
        if self.certification_level not in CERTIFICATION_LEVELS:
            raise ConfigError(
                f"certification_level must be one of {sorted(CERTIFICATION_LEVELS)}, "
                f"got {self.certification_level!r}"
            )
        if self.w <= 0 or self.h <= 0:
            raise ConfigError(f"Signature dimensions must be positive, got w={self.w}, h={self.h}")
        if self.x < 0 or self.y < 0:
            raise ConfigError(
                f"Signature coordinates must be non-negative, got x={self.x}, y={self.y}"
            )
        if self.capacity is not None and (
            self.capacity <= 0 or self.capacity % 2 or self.capacity > MAX_CONTENTS_CAPACITY
        ):
            raise ConfigError(
                f"capacity must be a positive even number up to {MAX_CONTENTS_CAPACITY}, "
                f"got {self.capacity}"
            )

    @classmethod
    def from_mapping(cls, data: Mapping[str, object]) -> SignatureOptions:
        """Build options from the upload form's ``signatureOptions`` JSON object.

        Keys are camelCase (``contactInfo``, ``certificationLevel``,
        ``includeTimestamp``). ``page`` follows the web form convention:
        0 selects the last page, any other value is 1-based, and a page past
        the end of the document selects the last page. Unknown keys are
        ignored with a warning.

        Raises:
            ConfigError: If a value has the wrong type or is out of range.
        """
        unknown = set(data) - set(_MAPPING_KEYS)
        if unknown:
            _logger.warning("Ignoring unknown signature options: %s", ", ".join(sorted(unknown)))

        kwargs: dict[str, object] = {}
        for key, (attr, convert) in _MAPPING_KEYS.items():
            if key not in data or data[key] is None:
                continue
            try:
                kwargs[attr] = convert(data[key])
            except (TypeError, ValueError) as e:
                raise ConfigError(f"Invalid value for {key!r}: {data[key]!r}") from e

        if "page" in kwargs:
            page = cast(int, kwargs["page"])
            if page < 0:
                raise ConfigError(f"Invalid value for 'page': {page} (0 = last, else 1-based)")
            kwargs["page"] = "last" if page == 0 else page - 1
            kwargs["clamp_page"] = True
        return cls(**kwargs)  # type: ignore[arg-type]


def _to_bool(value: object) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.lower() in ("true", "false", "1", "0", "on", "off"):
        return value.lower() in ("true", "1", "on")
    if isinstance(value, int):
        return bool(value)
    raise ValueError(f"not a boolean: {value!r}")


def _to_int(value: object) -> int:
    if isinstance(value, bool):
        raise TypeError("boolean is not an integer")
    return int(value)  # type: ignore[call-overload]


def _to_float(value: object) -> float:
    if isinstance(value, bool):
        raise TypeError("boolean is not a number")
    return float(value)  # type: ignore[arg-type]


# camelCase key -> (field name, converter)
_MAPPING_KEYS = {
    "visible": ("visible", _to_bool),
    "page": ("page", _to_int),
    "x": ("x", _to_float),
    "y": ("y", _to_float),
    "width": ("w", _to_float),
    "height": ("h", _to_float),
    "reason": ("reason", str),
    "location": ("location", str),
    "contactInfo": ("contact_info", str),
    "certificationLevel": ("certification_level", _to_int),
    "includeTimestamp": ("include_timestamp", _to_bool),
}

_OPTIONS_FIELDS = frozenset(
    (
        "visible",
        "page",
        "clamp_page",
        "x",
        "y",
        "w",
        "h",
        "reason",
        "location",
        "contact_info",
        "name",
        "certification_level",
        "include_timestamp",
        "capacity",
    )
)


class SignatureMetadata(TypedDict):
    """Facts about a produced signature, for display and audit."""

    signer: str  # subject DN
    sign_date: str  # ISO-8601
    reason: str
    location: str
    certification_level: str  # human-readable
    hash: str  # hex SHA-256 of the signed byte ranges
    certificate_serial: str  # hex


@dataclass(frozen=True)
class SigningResult:
    """Signed PDF bytes plus the metadata of the new signature."""

    signed_pdf: bytes = field(repr=False)
    metadata: SignatureMetadata


def _resolve_options(
    options: SignatureOptions | None,
    kwargs: dict[str, object],
) -> SignatureOptions:
    """Merge explicit keyword arguments into an options instance.

    Keyword arguments override the corresponding fields in *options*.
    Unknown keys raise TypeError.
    """
    unknown = set(kwargs) - _OPTIONS_FIELDS
    if unknown:
        raise TypeError(f"Unexpected keyword arguments: {', '.join(sorted(unknown))}")

    if options is None:
        options = SignatureOptions()

    if not kwargs:
        return options

    return replace(options, **kwargs)  # type: ignore[arg-type]


def _validate_pdf(pdf_bytes: bytes) -> None:
    """Raise PDFError if bytes don't look like a PDF."""
    if not pdf_bytes or not pdf_bytes.startswith(PDF_MAGIC):
        raise PDFError("Input does not appear to be a PDF file.")


def sign_pdf(
    pdf_bytes: bytes,
    credentials: SigningCredentials,
    options: SignatureOptions | None = None,
    *,
    signed_at: datetime | None = None,
    **kwargs: object,
) -> SigningResult:
    """
    Sign a PDF with an embedded detached CMS signature.

    Uses the hash-then-sign workflow:
    1. Append a signature placeholder as an incremental update
    2. Compute the ByteRange and write it into the placeholder
    3. Digest the two signed spans and build the CMS SignedData
    4. Write the signature into the /Contents slot
    5. Re-check ByteRange, length, header and messageDigest

    The private key in *credentials* is released when the call returns,
    whether it succeeds or fails.

    Args:
        pdf_bytes: Raw PDF file content.
        credentials: Certificate and private key from
            :func:`~firmapdf.core.certificates.load_from_pair` or
            :func:`~firmapdf.core.certificates.load_from_pkcs12`.
        options: Placement, appearance and certification options.
            Individual keyword arguments (visible, page, clamp_page, x, y,
            w, h, reason, location, contact_info, name, certification_level,
            include_timestamp, capacity) override the options fields.
        signed_at: Signing moment for ``/M`` and the signing-time
            attribute; defaults to now.

    Returns:
        SigningResult with the signed PDF and signature metadata.

    Raises:
        PDFError: Input is not a PDF, or any pipeline stage failed.
        SignatureTooLarge: The signature does not fit the reserved slot.
        ByteRangeIntegrityViolation: The ByteRange changed while writing.
        InvalidPdfHeaderAfterSigning: The output lost its %PDF header.
    """
    try:
        _validate_pdf(pdf_bytes)
        opts = _resolve_options(options, kwargs)
        return _sign(pdf_bytes, credentials, opts, signed_at)
    finally:
        credentials.close()


def _sign(
    pdf_bytes: bytes,
    credentials: SigningCredentials,
    opts: SignatureOptions,
    signed_at: datetime | None,
) -> SigningResult:
    certificate = credentials.certificate
    key = credentials.key
    if signed_at is None:
        signed_at = datetime.now(timezone.utc)
    elif signed_at.tzinfo is None:
        signed_at = signed_at.replace(tzinfo=timezone.utc)
    signed_at = signed_at.replace(microsecond=0)

    _logger.info(
        "Signing PDF (%s, %s): %d bytes, page=%s, signer=%s",
        "visible" if opts.visible else "invisible",
        CERTIFICATION_LEVELS[opts.certification_level],
        len(pdf_bytes),
        opts.page,
        certificate.common_name or certificate.subject_dn,
    )
    if not is_valid(certificate, signed_at):
        _logger.warning(
            "Certificate is outside its validity period (%s -- %s); signing anyway",
            certificate.not_before.isoformat(),
            certificate.not_after.isoformat(),
        )
    if opts.include_timestamp:
        _logger.warning(
            "Timestamp requested but RFC 3161 timestamping is not supported; "
            "the signature carries only the local signing time"
        )

    capacity = opts.capacity
    if capacity is None:
        capacity = estimate_signature_capacity(certificate, key.key_size)
    _logger.debug("Signature capacity: %d hex chars", capacity)

    # Step 1: Placeholder
    _logger.debug("Step 1: Inserting signature placeholder")
    prepared = insert_placeholder(
        pdf_bytes,
        capacity,
        name=opts.name or certificate.common_name,
        reason=opts.reason,
        location=opts.location,
        contact_info=opts.contact_info,
        page=opts.page,
        clamp_page=opts.clamp_page,
        visible=opts.visible,
        x=opts.x,
        y=opts.y,
        w=opts.w,
        h=opts.h,
        certification_level=opts.certification_level,
        signed_at=signed_at,
    )

    # Step 2: ByteRange
    _logger.debug("Step 2: Computing and writing ByteRange")
    byte_range = compute_byte_range(prepared.data)
    if byte_range.hex_start != prepared.contents_offset:
        raise ByteRangeIntegrityViolation(
            f"ByteRange frames offset {byte_range.hex_start}, "
            f"placeholder slot is at {prepared.contents_offset}"
        )
    pdf_with_range = write_byte_range(prepared.data, prepared.byte_range_offset, byte_range)
    rechecked = compute_byte_range(pdf_with_range)
    if rechecked != byte_range:
        raise ByteRangeIntegrityViolation(
            f"ByteRange changed after writing: {list(byte_range)} -> {list(rechecked)}"
        )

    # Step 3: Digest and CMS
    _logger.debug("Step 3: Digesting signed spans and building CMS")
    digest = digest_byte_range(pdf_with_range, byte_range)
    signature_hex = sign_detached(digest, certificate, key, capacity, signed_at)

    # Step 4: Embed
    _logger.debug("Step 4: Embedding signature")
    signed_pdf = embed_signature(pdf_with_range, byte_range.hex_start, capacity, signature_hex)

    # Step 5: Verify the result
    _logger.debug("Step 5: Verifying signed output")
    final_range = compute_byte_range(signed_pdf)
    if final_range != byte_range:
        raise ByteRangeIntegrityViolation(
            f"ByteRange changed after embedding: {list(byte_range)} -> {list(final_range)}"
        )
    if len(signed_pdf) != len(prepared.data):
        raise PDFError(f"Embedding changed PDF size: {len(prepared.data)} -> {len(signed_pdf)}")
    if not signed_pdf.startswith(PDF_MAGIC):
        raise InvalidPdfHeaderAfterSigning("Signed output does not begin with %PDF.")
    if digest_byte_range(signed_pdf, final_range) != digest:
        raise ByteRangeIntegrityViolation("Signed spans changed while embedding the signature.")
    _check_message_digest(signed_pdf, byte_range.hex_start, capacity, digest)
    _logger.debug("Signature verified successfully")

    metadata: SignatureMetadata = {
        "signer": certificate.subject_dn,
        "sign_date": signed_at.isoformat(),
        "reason": opts.reason,
        "location": opts.location,
        "certification_level": CERTIFICATION_LEVELS[opts.certification_level],
        "hash": digest.hex(),
        "certificate_serial": format(certificate.serial_number, "x"),
    }
    _logger.info(
        "Signed PDF complete: %d -> %d bytes, SHA-256 %s",
        len(pdf_bytes),
        len(signed_pdf),
        metadata["hash"],
    )
    return SigningResult(signed_pdf=signed_pdf, metadata=metadata)


def _check_message_digest(signed_pdf: bytes, hex_start: int, capacity: int, digest: bytes) -> None:
    """Re-parse the embedded CMS and compare its messageDigest with *digest*."""
    hex_str = signed_pdf[hex_start : hex_start + capacity].decode("ascii")
    try:
        cms_der = extract_der_from_padded_hex(hex_str)
    except ValueError as e:
        raise PDFError(f"Post-sign verification FAILED: embedded CMS unreadable: {e}") from e
    digest_info = extract_digest_info(cms_der)
    if digest_info is None or digest_info[1] != digest:
        _logger.error("Post-sign verification failed: messageDigest does not match ByteRange")
        raise PDFError(
            "Post-sign verification FAILED: CMS messageDigest does not match the "
            "ByteRange digest. The signed PDF may be corrupt -- not returned."
        )
