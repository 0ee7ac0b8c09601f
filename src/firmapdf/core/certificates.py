# pyright: reportUnknownMemberType=false, reportUnknownVariableType=false, reportUnknownArgumentType=false
"""
Certificate and private key ingestion.

Loads signing credentials from a SAT e.firma pair (DER certificate plus
password-encrypted private key) or from a PKCS#12 bundle, and exposes the
identity and validity attributes used by the signing pipeline.

Nothing here keeps process-wide state: every loader returns a fresh
:class:`SigningCredentials` owned by the caller for one signing session.
"""

from __future__ import annotations

__all__ = [
    "Certificate",
    "CertificateSummary",
    "PrivateKeySession",
    "SigningCredentials",
    "is_valid",
    "load_certificate",
    "load_from_pair",
    "load_from_pkcs12",
    "load_private_key",
    "summarize",
]

import base64
import datetime
import logging
import types
from dataclasses import dataclass, field
from functools import cached_property
from typing import TYPE_CHECKING, Mapping, TypedDict

from asn1crypto import pem as asn1_pem
from asn1crypto import pkcs12 as asn1_pkcs12
from asn1crypto import x509 as asn1_x509
from cryptography import x509
from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import padding, rsa
from cryptography.hazmat.primitives.serialization import pkcs12

from ..errors import (
    CannotDecryptKey,
    CertificateError,
    CertificateOrKeyMissingInPFX,
    KeyCertificateMismatch,
    UnsupportedKeyFormat,
    WrongPassword,
)

if TYPE_CHECKING:
    from types import TracebackType

_logger = logging.getLogger(__name__)

# Short names for distinguished-name attributes, keyed by dotted OID.
_DN_SHORT_NAMES: dict[str, str] = {
    "2.5.4.3": "CN",
    "2.5.4.4": "SN",
    "2.5.4.5": "serialNumber",
    "2.5.4.6": "C",
    "2.5.4.7": "L",
    "2.5.4.8": "ST",
    "2.5.4.9": "street",
    "2.5.4.10": "O",
    "2.5.4.11": "OU",
    "2.5.4.12": "title",
    "2.5.4.17": "postalCode",
    "2.5.4.41": "name",
    "2.5.4.42": "GN",
    "2.5.4.45": "x500UniqueIdentifier",
    "1.2.840.113549.1.9.1": "emailAddress",
    "1.2.840.113549.1.9.2": "unstructuredName",
    "0.9.2342.19200300.100.1.1": "UID",
    "0.9.2342.19200300.100.1.25": "DC",
}

# PKCS#12 SafeBag types (RFC 7292 section 4.2)
_OID_KEY_BAG = "1.2.840.113549.1.12.10.1.1"
_OID_SHROUDED_KEY_BAG = "1.2.840.113549.1.12.10.1.2"

_PEM_KEY_HEADER = b"-----BEGIN"


# ── Value objects ────────────────────────────────────────────────────


@dataclass(frozen=True)
class Certificate:
    """Parsed X.509 certificate.

    Attributes:
        subject: Subject DN components keyed by short attribute name.
        issuer: Issuer DN components keyed by short attribute name.
        subject_dn: Subject DN as ``"CN=..., O=..."`` in certificate order.
        issuer_dn: Issuer DN string in the same format.
        serial_number: Certificate serial (arbitrary precision).
        not_before: Start of the validity interval (UTC).
        not_after: End of the validity interval (UTC).
        der: Raw DER encoding.
    """

    subject: Mapping[str, str]
    issuer: Mapping[str, str]
    subject_dn: str
    issuer_dn: str
    serial_number: int
    not_before: datetime.datetime
    not_after: datetime.datetime
    der: bytes = field(repr=False)

    @cached_property
    def asn1(self) -> asn1_x509.Certificate:
        """asn1crypto view of the certificate, used for CMS assembly."""
        return asn1_x509.Certificate.load(self.der)

    @property
    def issuer_der(self) -> bytes:
        """DER encoding of the issuer Name."""
        return self.asn1.issuer.dump()

    @property
    def common_name(self) -> str | None:
        return self.subject.get("CN")

    def public_key(self) -> rsa.RSAPublicKey:
        key = x509.load_der_x509_certificate(self.der).public_key()
        if not isinstance(key, rsa.RSAPublicKey):
            raise UnsupportedKeyFormat(
                f"Only RSA certificates are supported, got {type(key).__name__}"
            )
        return key


class PrivateKeySession:
    """Scoped holder for an RSA private key.

    The key is usable until :meth:`close` is called; leaving a ``with``
    block closes it on every exit path, including exceptions.
    """

    def __init__(self, key: rsa.RSAPrivateKey) -> None:
        self._key: rsa.RSAPrivateKey | None = key

    def __repr__(self) -> str:
        state = "closed" if self.closed else f"{self.key_size}-bit RSA"
        return f"<PrivateKeySession {state}>"

    def __enter__(self) -> PrivateKeySession:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()

    @property
    def closed(self) -> bool:
        return self._key is None

    def _require_key(self) -> rsa.RSAPrivateKey:
        if self._key is None:
            raise CertificateError("Private key session is closed.")
        return self._key

    @property
    def key_size(self) -> int:
        """Modulus size in bits."""
        return self._require_key().key_size

    def public_key(self) -> rsa.RSAPublicKey:
        return self._require_key().public_key()

    def sign(self, data: bytes) -> bytes:
        """RSASSA-PKCS1-v1_5 signature over SHA-256(data)."""
        return self._require_key().sign(data, padding.PKCS1v15(), hashes.SHA256())

    def close(self) -> None:
        """Drop the key reference so the backend can free the key material."""
        if self._key is not None:
            _logger.debug("Releasing private key")
        self._key = None


@dataclass(frozen=True)
class SigningCredentials:
    """A certificate and its private key, owned by one signing session."""

    certificate: Certificate
    key: PrivateKeySession

    def __enter__(self) -> SigningCredentials:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()

    def close(self) -> None:
        self.key.close()


class CertificateSummary(TypedDict):
    """Read-only view of a certificate for display."""

    name: str | None
    organization: str | None
    rfc: str | None
    curp: str | None
    subject: str
    issuer: str
    serial_number: str
    valid_from: str
    valid_to: str
    days_remaining: int
    is_valid: bool


# ── Certificate parsing ──────────────────────────────────────────────


def _name_components(name: x509.Name) -> tuple[dict[str, str], str]:
    """Return (short-name mapping, DN string) for an X.509 Name."""
    components: dict[str, str] = {}
    parts: list[str] = []
    for attr in name:
        short = _DN_SHORT_NAMES.get(attr.oid.dotted_string, attr.oid.dotted_string)
        value = attr.value
        if isinstance(value, bytes):
            value = value.decode("latin-1")
        components.setdefault(short, value)
        parts.append(f"{short}={value}")
    return components, ", ".join(parts)


def _certificate_der(data: bytes) -> bytes:
    """Accept DER or PEM certificate input, returning DER."""
    if asn1_pem.detect(data):
        _, _, der = asn1_pem.unarmor(data)
        return der
    return data


def load_certificate(data: bytes) -> Certificate:
    """Parse a DER or PEM X.509 certificate.

    Raises:
        CertificateError: If the bytes are not a parseable certificate.
    """
    try:
        der = _certificate_der(data)
        cert = x509.load_der_x509_certificate(der)
        subject, subject_dn = _name_components(cert.subject)
        issuer, issuer_dn = _name_components(cert.issuer)
        not_before = cert.not_valid_before_utc
        not_after = cert.not_valid_after_utc
        serial = cert.serial_number
    except (ValueError, TypeError) as e:
        raise CertificateError(f"Failed to parse X.509 certificate: {e}") from e

    now = datetime.datetime.now(datetime.timezone.utc)
    if now < not_before:
        _logger.warning("Certificate is not yet valid (notBefore: %s)", not_before)
    elif now > not_after:
        _logger.warning("Certificate has expired (notAfter: %s)", not_after)

    return Certificate(
        subject=types.MappingProxyType(subject),
        issuer=types.MappingProxyType(issuer),
        subject_dn=subject_dn,
        issuer_dn=issuer_dn,
        serial_number=serial,
        not_before=not_before,
        not_after=not_after,
        der=der,
    )


# ── Private key decryption ───────────────────────────────────────────


def _password_bytes(password: str | bytes | None) -> bytes | None:
    if password is None:
        return None
    if isinstance(password, str):
        password = password.encode("utf-8")
    return password or None


def _key_candidates(key_bytes: bytes) -> list[tuple[str, bytes]]:
    """Encodings to try for a key blob, in order.

    SAT ``.key`` files are encrypted PKCS#8 DER; PEM files may hold an
    ``ENCRYPTED PRIVATE KEY`` or a traditional PKCS#5 RSA key
    (``Proc-Type``/``DEK-Info`` headers). A bare base64 body is also
    accepted and decoded to DER.
    """
    stripped = key_bytes.strip()
    if stripped.startswith(_PEM_KEY_HEADER):
        return [("pem", stripped)]
    candidates = [("pkcs8-der", key_bytes)]
    try:
        decoded = base64.b64decode(stripped, validate=True)
    except ValueError:
        decoded = b""
    if decoded:
        candidates.append(("pkcs8-base64", decoded))
    return candidates


def _load_one(kind: str, data: bytes, password: bytes | None) -> object:
    loader = (
        serialization.load_pem_private_key if kind == "pem" else serialization.load_der_private_key
    )
    try:
        return loader(data, password)
    except TypeError:
        # Unencrypted key given with a password (or vice versa): retry bare.
        return loader(data, None)


def load_private_key(key_bytes: bytes, password: str | bytes | None) -> rsa.RSAPrivateKey:
    """Decrypt an RSA private key blob.

    Tries encrypted PKCS#8 first, then the PEM/PKCS#5 and base64 variants.

    Raises:
        CannotDecryptKey: If no encoding yields a key (wrong password or
            corrupt blob).
        UnsupportedKeyFormat: If a key was recovered but is not RSA, or its
            encryption algorithm is unsupported.
    """
    pw = _password_bytes(password)
    last_error: Exception | None = None
    key: object = None
    for kind, data in _key_candidates(key_bytes):
        try:
            key = _load_one(kind, data, pw)
        except UnsupportedAlgorithm as e:
            raise UnsupportedKeyFormat(f"Unsupported key encryption: {e}") from e
        except (ValueError, TypeError) as e:  # noqa: PERF203
            _logger.debug("Key decoding as %s failed: %s", kind, e)
            last_error = e
            continue
        _logger.debug("Private key decoded as %s", kind)
        break

    if key is None:
        raise CannotDecryptKey(
            f"Could not decrypt the private key. Check the password. ({last_error})"
        )
    if not isinstance(key, rsa.RSAPrivateKey):
        raise UnsupportedKeyFormat(f"Only RSA private keys are supported, got {type(key).__name__}")
    return key


def _public_der(key: rsa.RSAPublicKey) -> bytes:
    return key.public_bytes(
        serialization.Encoding.DER, serialization.PublicFormat.SubjectPublicKeyInfo
    )


def _check_pair(certificate: Certificate, key: rsa.RSAPrivateKey) -> None:
    if _public_der(certificate.public_key()) != _public_der(key.public_key()):
        raise KeyCertificateMismatch("The private key does not correspond to the certificate.")


# ── Loaders ──────────────────────────────────────────────────────────


def load_from_pair(
    cert_bytes: bytes, key_bytes: bytes, password: str | bytes | None
) -> SigningCredentials:
    """Load credentials from a SAT e.firma pair (.cer + encrypted .key).

    Args:
        cert_bytes: Certificate, DER (``.cer``) or PEM.
        key_bytes: Password-protected private key.
        password: Private key password.

    Returns:
        SigningCredentials owned by the caller; close them after signing.
    """
    certificate = load_certificate(cert_bytes)
    key = load_private_key(key_bytes, password)
    _check_pair(certificate, key)
    _logger.info("Loaded e.firma pair for %s", certificate.common_name or certificate.subject_dn)
    return SigningCredentials(certificate=certificate, key=PrivateKeySession(key))


def _find_key_bag(pfx_bytes: bytes) -> tuple[str, bytes] | None:
    """Locate the key bag in the unencrypted safes of a PKCS#12 container.

    Returns the shrouded key bag when present, otherwise a plain key bag,
    as ``(bag_oid, der)``. Returns None when the key lives inside an
    encrypted safe, which only the full PKCS#12 parser can open.
    """
    pfx = asn1_pkcs12.Pfx.load(pfx_bytes)
    found: dict[str, bytes] = {}
    for content_info in pfx.authenticated_safe:
        if content_info["content_type"].native != "data":
            continue
        safe_contents = asn1_pkcs12.SafeContents.load(content_info["content"].native)
        for bag in safe_contents:
            oid = bag["bag_id"].dotted
            if oid in (_OID_SHROUDED_KEY_BAG, _OID_KEY_BAG) and oid not in found:
                found[oid] = bag["bag_value"].untag().dump()
    for oid in (_OID_SHROUDED_KEY_BAG, _OID_KEY_BAG):
        if oid in found:
            return oid, found[oid]
    return None


def load_from_pkcs12(pfx_bytes: bytes, password: str | bytes | None) -> SigningCredentials:
    """Load credentials from a PKCS#12 (.pfx/.p12) bundle.

    Raises:
        UnsupportedKeyFormat: If the bytes are not a PKCS#12 structure.
        WrongPassword: If the container cannot be opened with the password.
        CertificateOrKeyMissingInPFX: If the certificate or key bag is absent.
    """
    try:
        content_type = asn1_pkcs12.Pfx.load(pfx_bytes)["auth_safe"]["content_type"].native
    except (ValueError, TypeError, KeyError) as e:
        raise UnsupportedKeyFormat(f"Not a PKCS#12 container: {e}") from e
    _logger.debug("PKCS#12 authenticated safe content type: %s", content_type)

    pw = _password_bytes(password)
    try:
        bundle = pkcs12.load_pkcs12(pfx_bytes, pw)
    except ValueError as e:
        raise WrongPassword(f"Cannot open PKCS#12 container: wrong password ({e})") from e

    cert_obj = bundle.cert.certificate if bundle.cert is not None else None
    if cert_obj is None and len(bundle.additional_certs) == 1:
        cert_obj = bundle.additional_certs[0].certificate

    key: object = None
    try:
        bag = _find_key_bag(pfx_bytes)
    except (ValueError, TypeError, KeyError, AttributeError) as e:
        _logger.debug("Could not walk PKCS#12 safes, using parser's key: %s", e)
        bag = None
    if bag is not None:
        oid, der = bag
        shrouded = oid == _OID_SHROUDED_KEY_BAG
        _logger.debug("Using %s key bag", "shrouded" if shrouded else "plain")
        try:
            key = serialization.load_der_private_key(der, pw if shrouded else None)
        except (ValueError, TypeError, UnsupportedAlgorithm) as e:
            if bundle.key is None:
                raise CannotDecryptKey(f"Could not decrypt the PKCS#12 key bag: {e}") from e
            _logger.debug("Key bag not decodable on its own (%s), using parser's key", e)
            key = bundle.key
    else:
        key = bundle.key

    if cert_obj is None or key is None:
        missing = "certificate" if cert_obj is None else "private key"
        raise CertificateOrKeyMissingInPFX(f"No {missing} found in the PKCS#12 container.")
    if not isinstance(key, rsa.RSAPrivateKey):
        raise UnsupportedKeyFormat(f"Only RSA private keys are supported, got {type(key).__name__}")

    certificate = load_certificate(cert_obj.public_bytes(serialization.Encoding.DER))
    _check_pair(certificate, key)
    _logger.info("Loaded PKCS#12 bundle for %s", certificate.common_name or certificate.subject_dn)
    return SigningCredentials(certificate=certificate, key=PrivateKeySession(key))


# ── Validity and summary ─────────────────────────────────────────────


def _utc_now(now: datetime.datetime | None) -> datetime.datetime:
    if now is None:
        return datetime.datetime.now(datetime.timezone.utc)
    if now.tzinfo is None:
        return now.replace(tzinfo=datetime.timezone.utc)
    return now


def is_valid(certificate: Certificate, now: datetime.datetime | None = None) -> bool:
    """True when ``notBefore <= now <= notAfter`` (inclusive both ends)."""
    moment = _utc_now(now)
    return certificate.not_before <= moment <= certificate.not_after


def summarize(certificate: Certificate, now: datetime.datetime | None = None) -> CertificateSummary:
    """Derive a display summary of a certificate.

    SAT certificates carry the RFC in ``x500UniqueIdentifier`` (possibly
    as ``"RFC / RFC-of-representative"``) and the CURP in ``serialNumber``.
    """
    moment = _utc_now(now)
    rfc = certificate.subject.get("x500UniqueIdentifier")
    if rfc:
        rfc = rfc.split("/")[0].strip()
    return {
        "name": certificate.subject.get("CN"),
        "organization": certificate.subject.get("O"),
        "rfc": rfc or None,
        "curp": certificate.subject.get("serialNumber"),
        "subject": certificate.subject_dn,
        "issuer": certificate.issuer_dn,
        "serial_number": format(certificate.serial_number, "x"),
        "valid_from": certificate.not_before.isoformat(),
        "valid_to": certificate.not_after.isoformat(),
        "days_remaining": (certificate.not_after - moment).days,
        "is_valid": is_valid(certificate, moment),
    }
