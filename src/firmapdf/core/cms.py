# pyright: reportUnknownMemberType=false, reportUnknownVariableType=false, reportUnknownArgumentType=false
"""
Detached CMS (PKCS#7) SignedData construction.

The signed attributes are DER-encoded as a universal SET (tag 0x31) and
that exact encoding is what gets hashed and signed. Only afterwards is
the tag byte swapped to the context-specific ``[0]`` (0xA0) under which
the same length and content bytes sit inside ``SignerInfo.signedAttrs``.
Hashing the 0xA0 form instead yields signatures no verifier accepts.
"""

from __future__ import annotations

__all__ = [
    "build_signed_attributes",
    "build_signed_data",
    "build_signer_info",
    "estimate_signature_capacity",
    "retag_implicit",
    "sign_detached",
]

import datetime
import logging

from asn1crypto import algos, cms, core

from ..constants import (
    CMS_OVERHEAD_BYTES,
    CONTENTS_CAPACITY_STEP,
    MIN_CONTENTS_CAPACITY,
    SHA256_DIGEST_SIZE,
)
from ..errors import PDFError, SignatureTooLarge
from .certificates import Certificate, PrivateKeySession
from .pdf.asn1 import ASN1_SEQUENCE_TAG, ASN1_SET_TAG, CONTEXT_CONSTRUCTED_0, der_tlv

_logger = logging.getLogger(__name__)


def _simple_attribute(attr_type: str, value: object) -> bytes:
    return cms.CMSAttribute({"type": cms.CMSAttributeType(attr_type), "values": (value,)}).dump()


def build_signed_attributes(
    content_digest: bytes, signing_time: datetime.datetime | None = None
) -> bytes:
    """DER-encode the signed attributes as a universal SET OF Attribute.

    Contains content-type ``data``, message-digest ``content_digest`` and
    signing-time, sorted by encoding as DER requires for SET OF.

    Args:
        content_digest: SHA-256 of the signed byte ranges.
        signing_time: Aware UTC datetime; defaults to now.

    Returns:
        DER bytes beginning with the SET tag 0x31.
    """
    if len(content_digest) != SHA256_DIGEST_SIZE:
        raise PDFError(
            f"Expected a {SHA256_DIGEST_SIZE}-byte SHA-256 digest, got {len(content_digest)} bytes"
        )
    if signing_time is None:
        signing_time = datetime.datetime.now(datetime.timezone.utc)
    signing_time = signing_time.astimezone(datetime.timezone.utc).replace(microsecond=0)

    attributes = [
        _simple_attribute("content_type", cms.ContentType("data")),
        _simple_attribute("message_digest", core.OctetString(content_digest)),
        _simple_attribute("signing_time", cms.Time({"utc_time": core.UTCTime(signing_time)})),
    ]
    return der_tlv(ASN1_SET_TAG, b"".join(sorted(attributes)))


def retag_implicit(set_der: bytes) -> bytes:
    """Swap the universal SET tag for the implicit ``[0]`` tag.

    Length and content bytes are kept unchanged.

    Raises:
        PDFError: If ``set_der`` does not start with a SET tag.
    """
    if not set_der or set_der[0] != ASN1_SET_TAG:
        raise PDFError("Signed attributes must be DER-encoded under the universal SET tag (0x31)")
    return bytes([CONTEXT_CONSTRUCTED_0]) + set_der[1:]


def build_signer_info(
    certificate: Certificate, signed_attrs_der: bytes, signature: bytes
) -> cms.SignerInfo:
    """Assemble the SignerInfo around already-signed attributes.

    Args:
        certificate: Signer certificate (issuer and serial identify it).
        signed_attrs_der: The universal-SET encoding that was signed.
        signature: RSA PKCS#1 v1.5 signature over ``signed_attrs_der``.
    """
    sid = cms.IssuerAndSerialNumber(
        {
            "issuer": certificate.asn1.issuer,
            "serial_number": certificate.asn1.serial_number,
        }
    )
    digest_algorithm = algos.DigestAlgorithm({"algorithm": "sha256", "parameters": core.Null()})
    signature_algorithm = algos.SignedDigestAlgorithm(
        {"algorithm": "sha256_rsa", "parameters": core.Null()}
    )
    content = b"".join(
        [
            core.Integer(1).dump(),
            sid.dump(),
            digest_algorithm.dump(),
            retag_implicit(signed_attrs_der),
            signature_algorithm.dump(),
            core.OctetString(signature).dump(),
        ]
    )
    return cms.SignerInfo.load(der_tlv(ASN1_SEQUENCE_TAG, content))


def build_signed_data(certificate: Certificate, signer_info: cms.SignerInfo) -> cms.ContentInfo:
    """Wrap one SignerInfo in a detached SignedData ContentInfo."""
    signed_data = cms.SignedData(
        {
            "version": "v1",
            "digest_algorithms": cms.DigestAlgorithms(
                [algos.DigestAlgorithm({"algorithm": "sha256", "parameters": core.Null()})]
            ),
            "encap_content_info": {"content_type": "data"},
            "certificates": [cms.CertificateChoices({"certificate": certificate.asn1})],
            "signer_infos": cms.SignerInfos([signer_info]),
        }
    )
    return cms.ContentInfo({"content_type": cms.ContentType("signed_data"), "content": signed_data})


def sign_detached(
    content_digest: bytes,
    certificate: Certificate,
    key: PrivateKeySession,
    capacity: int | None = None,
    signing_time: datetime.datetime | None = None,
) -> str:
    """Build and sign a detached CMS SignedData over ``content_digest``.

    Args:
        content_digest: SHA-256 of the PDF byte ranges.
        certificate: Signer certificate.
        key: Open private key session matching ``certificate``.
        capacity: Reserved hex characters; checked when given.
        signing_time: Aware datetime for the signing-time attribute.

    Returns:
        Lower-case hex encoding of the DER ContentInfo.

    Raises:
        SignatureTooLarge: If the hex encoding exceeds ``capacity``.
    """
    attrs_der = build_signed_attributes(content_digest, signing_time)
    signature = key.sign(attrs_der)
    signer_info = build_signer_info(certificate, attrs_der, signature)
    content_info = build_signed_data(certificate, signer_info)

    der = content_info.dump()
    signature_hex = der.hex()
    _logger.debug(
        "CMS SignedData: %d bytes DER (%d signed-attribute bytes, %d-byte signature)",
        len(der),
        len(attrs_der),
        len(signature),
    )
    if capacity is not None and len(signature_hex) > capacity:
        raise SignatureTooLarge(len(signature_hex), capacity)
    return signature_hex


def estimate_signature_capacity(certificate: Certificate, key_size_bits: int) -> int:
    """Hex characters to reserve for a signature by ``certificate``.

    ``2 * (certificate + issuer name + RSA signature + fixed overhead)``,
    rounded up to a multiple of the capacity step and never below the
    minimum capacity.
    """
    key_bytes = (key_size_bits + 7) // 8
    raw = len(certificate.der) + len(certificate.issuer_der) + key_bytes + CMS_OVERHEAD_BYTES
    needed = 2 * raw
    step = CONTENTS_CAPACITY_STEP
    rounded = -(-needed // step) * step
    return max(rounded, MIN_CONTENTS_CAPACITY)
