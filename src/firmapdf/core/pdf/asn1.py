"""ASN.1/DER utilities for CMS construction and extraction."""

from __future__ import annotations

__all__ = [
    "ASN1_SEQUENCE_TAG",
    "ASN1_SET_TAG",
    "CONTEXT_CONSTRUCTED_0",
    "MIN_CMS_SIZE",
    "der_length",
    "der_tlv",
    "extract_der_from_padded_hex",
    "split_tlv",
]

# ASN.1 SEQUENCE tag -- first byte of any valid CMS/PKCS#7 blob
ASN1_SEQUENCE_TAG = 0x30

# Universal SET (constructed)
ASN1_SET_TAG = 0x31

# Context-specific constructed [0]
CONTEXT_CONSTRUCTED_0 = 0xA0

# Maximum hex chars for a single CMS blob (16 MB DER = 32M hex chars).
# Protects against malformed length fields claiming absurd sizes.
_MAX_CMS_HEX_CHARS = 32 * 1024 * 1024

# Minimum plausible CMS blob size in bytes (header + basic content)
MIN_CMS_SIZE = 100


def der_length(length: int) -> bytes:
    """Encode a DER definite length."""
    if length < 0:
        raise ValueError(f"Negative DER length: {length}")
    if length < 0x80:
        return bytes([length])
    body = length.to_bytes((length.bit_length() + 7) // 8, "big")
    return bytes([0x80 | len(body)]) + body


def der_tlv(tag: int, content: bytes) -> bytes:
    """Encode a single-byte-tag TLV."""
    return bytes([tag]) + der_length(len(content)) + content


def split_tlv(der: bytes) -> tuple[int, int, int]:
    """Return (tag, header_length, content_length) of the leading TLV.

    Raises:
        ValueError: If the header is truncated or uses indefinite length.
    """
    if len(der) < 2:
        raise ValueError("DER value too short for a TLV header")
    tag = der[0]
    first = der[1]
    if first < 0x80:
        return tag, 2, first
    if first == 0x80:
        raise ValueError("Indefinite length encoding is not valid in DER")
    num_len_bytes = first & 0x7F
    if num_len_bytes > 4:
        raise ValueError(f"ASN.1 length field too large: {num_len_bytes} bytes")
    if len(der) < 2 + num_len_bytes:
        raise ValueError("DER value too short for its length field")
    content_len = int.from_bytes(der[2 : 2 + num_len_bytes], "big")
    return tag, 2 + num_len_bytes, content_len


def extract_der_from_padded_hex(hex_str: str) -> bytes:
    """Extract exact DER blob from zero-padded hex string.

    Parses the ASN.1 TLV header to determine exact DER length, avoiding
    the rstrip("0") approach which corrupts blobs ending in 0x00 bytes.

    Args:
        hex_str: Hex-encoded DER data, potentially right-padded with zeros.

    Returns:
        Exact DER-encoded bytes without padding.

    Raises:
        ValueError: If the hex string is invalid or ASN.1 header is malformed.
    """
    if len(hex_str) < 4:
        raise ValueError("Hex string too short for ASN.1 TLV header")

    tag = int(hex_str[0:2], 16)
    if tag != ASN1_SEQUENCE_TAG:
        raise ValueError(f"Expected ASN.1 SEQUENCE (0x30), got 0x{tag:02x}")

    # Length bytes never exceed 1 + 4 octets (checked in split_tlv)
    head = bytes.fromhex(hex_str[: min(len(hex_str) // 2, 6) * 2])
    _, header_bytes, content_len = split_tlv(head)

    total_der_bytes = header_bytes + content_len
    total_hex_chars = total_der_bytes * 2

    if total_hex_chars > _MAX_CMS_HEX_CHARS:
        raise ValueError(
            f"ASN.1 claims {total_der_bytes} bytes, exceeds maximum "
            f"({_MAX_CMS_HEX_CHARS // 2} bytes)"
        )

    if total_hex_chars > len(hex_str):
        raise ValueError(
            f"ASN.1 length ({total_der_bytes} bytes) exceeds available hex data "
            f"({len(hex_str) // 2} bytes)"
        )

    return bytes.fromhex(hex_str[:total_hex_chars])
