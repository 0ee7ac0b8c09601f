"""High-level convenience API for PDF signing.

Provides :func:`sign_file_with_efirma`, :func:`sign_file_with_pfx` and
:func:`validate_file`, which read the inputs from disk, load the key
material, and apply the saved signing defaults automatically.

For lower-level control, use :func:`~firmapdf.core.signing.sign_pdf`
directly with credentials from :mod:`firmapdf.core.certificates`.
"""

from __future__ import annotations

__all__ = [
    "sign_file_with_efirma",
    "sign_file_with_pfx",
    "sign_with_efirma",
    "sign_with_pfx",
    "validate_file",
]

import logging
import os
from pathlib import Path

from .config import get_signing_defaults
from .core.certificates import SigningCredentials, load_from_pair, load_from_pkcs12
from .core.pdf.verify import ValidationReport, validate_signed_pdf
from .core.signing import SignatureOptions, SigningResult, sign_pdf
from .errors import FirmaError

_logger = logging.getLogger(__name__)

StrPath = str | os.PathLike[str]


# ---------------------------------------------------------------------------
# Private resolution helpers
# ---------------------------------------------------------------------------


def _resolve_options(
    options: SignatureOptions | None, kwargs: dict[str, object]
) -> SignatureOptions:
    """Fill reason, location, contact info and capacity from the saved defaults.

    Only applies when no options object is given; an explicit
    :class:`SignatureOptions` is used as-is (keyword arguments still
    override its fields inside :func:`sign_pdf`).
    """
    if options is not None:
        return options
    defaults = get_signing_defaults(
        reason=kwargs.pop("reason", None),  # type: ignore[arg-type]
        location=kwargs.pop("location", None),  # type: ignore[arg-type]
        contact_info=kwargs.pop("contact_info", None),  # type: ignore[arg-type]
        capacity=kwargs.pop("capacity", None),  # type: ignore[arg-type]
    )
    return SignatureOptions(
        reason=defaults["reason"],
        location=defaults["location"],
        contact_info=defaults["contact_info"],
        capacity=defaults["capacity"],
    )


def _read(path: StrPath, kind: str) -> bytes:
    try:
        return Path(path).read_bytes()
    except OSError as e:
        raise FirmaError(f"Cannot read {kind} {os.fspath(path)!r}: {e}") from e


def _sign(
    pdf_bytes: bytes,
    credentials: SigningCredentials,
    options: SignatureOptions | None,
    kwargs: dict[str, object],
) -> SigningResult:
    with credentials:
        opts = _resolve_options(options, kwargs)
        return sign_pdf(pdf_bytes, credentials, opts, **kwargs)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def sign_with_efirma(
    pdf_bytes: bytes,
    cer_bytes: bytes,
    key_bytes: bytes,
    password: str,
    *,
    options: SignatureOptions | None = None,
    **kwargs: object,
) -> SigningResult:
    """Sign PDF bytes with an e.firma certificate (.cer) and encrypted key (.key).

    Args:
        pdf_bytes: Raw PDF file content.
        cer_bytes: Certificate, DER or PEM.
        key_bytes: Encrypted private key (PKCS#8 DER or PEM).
        password: Private key password.
        options: Reusable options object. Saved defaults apply only
            when it is None.
        **kwargs: Individual :class:`SignatureOptions` fields.

    Raises:
        CertificateError: If the key material cannot be loaded.
        PDFError: If signing fails.
    """
    credentials = load_from_pair(cer_bytes, key_bytes, password)
    return _sign(pdf_bytes, credentials, options, dict(kwargs))


def sign_with_pfx(
    pdf_bytes: bytes,
    pfx_bytes: bytes,
    password: str,
    *,
    options: SignatureOptions | None = None,
    **kwargs: object,
) -> SigningResult:
    """Sign PDF bytes with a PKCS#12 (.pfx/.p12) bundle.

    Arguments as for :func:`sign_with_efirma`.
    """
    credentials = load_from_pkcs12(pfx_bytes, password)
    return _sign(pdf_bytes, credentials, options, dict(kwargs))


def sign_file_with_efirma(
    pdf_path: StrPath,
    cer_path: StrPath,
    key_path: StrPath,
    password: str,
    *,
    options: SignatureOptions | None = None,
    **kwargs: object,
) -> SigningResult:
    """Sign a PDF file with e.firma files; the output is returned, not written.

    Raises:
        FirmaError: If an input file cannot be read, or any signing error.
    """
    _logger.debug("Signing %s with e.firma %s", pdf_path, cer_path)
    return sign_with_efirma(
        _read(pdf_path, "PDF"),
        _read(cer_path, "certificate"),
        _read(key_path, "private key"),
        password,
        options=options,
        **kwargs,
    )


def sign_file_with_pfx(
    pdf_path: StrPath,
    pfx_path: StrPath,
    password: str,
    *,
    options: SignatureOptions | None = None,
    **kwargs: object,
) -> SigningResult:
    """Sign a PDF file with a PKCS#12 file; the output is returned, not written."""
    _logger.debug("Signing %s with PKCS#12 %s", pdf_path, pfx_path)
    return sign_with_pfx(
        _read(pdf_path, "PDF"),
        _read(pfx_path, "PKCS#12 bundle"),
        password,
        options=options,
        **kwargs,
    )


def validate_file(pdf_path: StrPath) -> ValidationReport:
    """Run the digest-consistency validator on a PDF file."""
    return validate_signed_pdf(_read(pdf_path, "PDF"))
