"""
Application-wide constants for firmapdf.

Placeholder widths, capacity bounds, and other magic numbers are
centralized here for easy maintenance and configuration.
"""

from __future__ import annotations

import importlib.metadata

try:
    __version__ = importlib.metadata.version("firmapdf")
except importlib.metadata.PackageNotFoundError:
    __version__ = "0.1.0"

__all__ = [
    "BYTERANGE_FIELD_WIDTH",
    "BYTERANGE_MAX_VALUE",
    "CERTIFICATION_LEVELS",
    "CMS_OVERHEAD_BYTES",
    "CONTENTS_CAPACITY_STEP",
    "DEFAULT_LOCATION",
    "DEFAULT_REASON",
    "ENV_CONFIG_DIR",
    "ENV_CONTACT",
    "ENV_LOCATION",
    "ENV_PASSWORD",
    "ENV_REASON",
    "MAX_CONTENTS_CAPACITY",
    "MIN_CONTENTS_CAPACITY",
    "PDF_MAGIC",
    "SHA256_DIGEST_SIZE",
    "SIG_HEIGHT",
    "SIG_WIDTH",
    "__version__",
]

# ── Signature placeholder layout ──────────────────────────────────────

# Each /ByteRange integer is written as a fixed-width, zero-padded field so
# that replacing the placeholder with real offsets never changes file length.
BYTERANGE_FIELD_WIDTH = 10
BYTERANGE_MAX_VALUE = 10**BYTERANGE_FIELD_WIDTH - 1

# Bytes reserved on top of certificate + issuer name + RSA signature for the
# SignedData/SignerInfo framing, algorithm identifiers and signed attributes.
CMS_OVERHEAD_BYTES = 512

# Derived /Contents capacities (hex characters) are rounded up to this step.
CONTENTS_CAPACITY_STEP = 1024

# Lower bound for any /Contents capacity (hex characters, 2 KB of DER).
MIN_CONTENTS_CAPACITY = 4096

# Upper bound accepted for an explicit capacity (hex characters, 512 KB of DER).
MAX_CONTENTS_CAPACITY = 1024 * 1024

# SHA-256 digest size (bytes)
SHA256_DIGEST_SIZE = 32


# ── Visible signature geometry (PDF points) ───────────────────────────

SIG_WIDTH = 250.0
SIG_HEIGHT = 70.0


# ── Signing defaults ──────────────────────────────────────────────────

DEFAULT_REASON = "Firma Electrónica"
DEFAULT_LOCATION = "México"

# DocMDP permission levels (/P in /TransformParams); 0 = approval signature.
CERTIFICATION_LEVELS: dict[int, str] = {
    0: "Not certified (changes allowed)",
    1: "Certified - no changes allowed",
    2: "Certified - form filling allowed",
    3: "Certified - form filling and annotations allowed",
}


# ── Environment variable names ────────────────────────────────────────

ENV_PASSWORD = "FIRMAPDF_PASSWORD"
ENV_REASON = "FIRMAPDF_REASON"
ENV_LOCATION = "FIRMAPDF_LOCATION"
ENV_CONTACT = "FIRMAPDF_CONTACT"
ENV_CONFIG_DIR = "FIRMAPDF_CONFIG_DIR"


# PDF file magic bytes
PDF_MAGIC = b"%PDF"
