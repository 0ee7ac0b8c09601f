"""firmapdf error types.

Every error carries its taxonomy tag in ``kind`` (the class name) so
callers can report which stage failed without matching on messages.
"""

from __future__ import annotations

__all__ = [
    "ByteRangeIntegrityViolation",
    "CannotDecryptKey",
    "CertificateError",
    "CertificateOrKeyMissingInPFX",
    "ConfigError",
    "FirmaError",
    "InvalidPdfHeaderAfterSigning",
    "KeyCertificateMismatch",
    "PDFError",
    "PdfStructureNotRecognized",
    "SignatureTooLarge",
    "UnsupportedKeyFormat",
    "WrongPassword",
]


class FirmaError(Exception):
    """Base error for firmapdf operations."""

    @property
    def kind(self) -> str:
        """Taxonomy tag of this error (the class name)."""
        return type(self).__name__


# ── Certificate ingestion ─────────────────────────────────────────────


class CertificateError(FirmaError):
    """Certificate or private key parsing error."""


class WrongPassword(CertificateError):
    """The PKCS#12 container could not be opened with the given password."""


class CannotDecryptKey(CertificateError):
    """The encrypted private key could not be decrypted."""


class CertificateOrKeyMissingInPFX(CertificateError):
    """The PKCS#12 container lacks a certificate or a private key."""


class UnsupportedKeyFormat(CertificateError):
    """The key material is not an RSA key in a recognized encoding."""


class KeyCertificateMismatch(CertificateError):
    """The private key does not belong to the certificate."""


# ── PDF structure and embedding ───────────────────────────────────────


class PDFError(FirmaError):
    """PDF structure, parsing, or embedding error."""


class PdfStructureNotRecognized(PDFError):
    """A marker or object required for signing could not be located."""


class ByteRangeIntegrityViolation(PDFError):
    """The /ByteRange recomputed after writing differs from the signed one."""


class InvalidPdfHeaderAfterSigning(PDFError):
    """The signed output does not begin with %PDF."""


class SignatureTooLarge(PDFError):
    """The hex-encoded signature does not fit the reserved /Contents slot.

    Args:
        required: Hex characters needed by the signature.
        capacity: Hex characters reserved in the placeholder.
    """

    def __init__(self, required: int, capacity: int) -> None:
        super().__init__(
            f"Signature needs {required} hex chars but only {capacity} are reserved "
            f"(exceeds capacity by {required - capacity})"
        )
        self.required = required
        self.capacity = capacity

    def __reduce__(self) -> tuple[type[SignatureTooLarge], tuple[int, int]]:
        """Preserve required/capacity across pickle/unpickle."""
        return (type(self), (self.required, self.capacity))


# ── Configuration ─────────────────────────────────────────────────────


class ConfigError(FirmaError):
    """Configuration or signing option validation error."""
