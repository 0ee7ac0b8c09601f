"""
firmapdf -- PKCS#7 detached signatures embedded in PDF documents.

Signs PDFs locally with a Mexican SAT e.firma (certificate + encrypted
private key) or a PKCS#12 bundle, using a true incremental update.
"""

from __future__ import annotations

from .api import (
    sign_file_with_efirma,
    sign_file_with_pfx,
    sign_with_efirma,
    sign_with_pfx,
    validate_file,
)
from .constants import __version__
from .core.certificates import (
    Certificate,
    SigningCredentials,
    is_valid,
    load_from_pair,
    load_from_pkcs12,
    summarize,
)
from .core.pdf import ValidationReport, validate_signed_pdf
from .core.signing import SignatureOptions, SigningResult, sign_pdf
from .errors import (
    ByteRangeIntegrityViolation,
    CannotDecryptKey,
    CertificateError,
    CertificateOrKeyMissingInPFX,
    ConfigError,
    FirmaError,
    InvalidPdfHeaderAfterSigning,
    KeyCertificateMismatch,
    PDFError,
    PdfStructureNotRecognized,
    SignatureTooLarge,
    UnsupportedKeyFormat,
    WrongPassword,
)

__all__ = [
    "ByteRangeIntegrityViolation",
    "CannotDecryptKey",
    "Certificate",
    "CertificateError",
    "CertificateOrKeyMissingInPFX",
    "ConfigError",
    "FirmaError",
    "InvalidPdfHeaderAfterSigning",
    "KeyCertificateMismatch",
    "PDFError",
    "PdfStructureNotRecognized",
    "SignatureOptions",
    "SignatureTooLarge",
    "SigningCredentials",
    "SigningResult",
    "UnsupportedKeyFormat",
    "ValidationReport",
    "WrongPassword",
    "__version__",
    "is_valid",
    "load_from_pair",
    "load_from_pkcs12",
    "sign_file_with_efirma",
    "sign_file_with_pfx",
    "sign_pdf",
    "sign_with_efirma",
    "sign_with_pfx",
    "summarize",
    "validate_file",
    "validate_signed_pdf",
]
