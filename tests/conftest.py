"""Shared test fixtures for the firmapdf test suite."""

from __future__ import annotations

import datetime
import io

import pikepdf
import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.hazmat.primitives.serialization import pkcs12
from cryptography.x509.oid import NameOID

PASSWORD = "test1234"

_ENV_VARS = (
    "FIRMAPDF_PASSWORD",
    "FIRMAPDF_REASON",
    "FIRMAPDF_LOCATION",
    "FIRMAPDF_CONTACT",
    "FIRMAPDF_CONFIG_DIR",
)


# ── Key material ────────────────────────────────────────────────────


def make_certificate(
    key: rsa.RSAPrivateKey,
    common_name: str = "JUAN PEREZ LOPEZ",
    not_before: datetime.datetime | None = None,
    not_after: datetime.datetime | None = None,
) -> x509.Certificate:
    """Self-signed certificate with SAT-like subject fields."""
    now = datetime.datetime.now(datetime.timezone.utc).replace(microsecond=0)
    subject = x509.Name(
        [
            x509.NameAttribute(NameOID.COMMON_NAME, common_name),
            x509.NameAttribute(NameOID.ORGANIZATION_NAME, "FIRMAPDF PRUEBAS SA DE CV"),
            x509.NameAttribute(NameOID.COUNTRY_NAME, "MX"),
            x509.NameAttribute(NameOID.SERIAL_NUMBER, "PELJ800101HDFRPN09"),
        ]
    )
    return (
        x509.CertificateBuilder()
        .subject_name(subject)
        .issuer_name(subject)
        .public_key(key.public_key())
        .serial_number(0x3330303031303030303030353030303033343136)
        .not_valid_before(not_before or now - datetime.timedelta(days=1))
        .not_valid_after(not_after or now + datetime.timedelta(days=365))
        .sign(key, hashes.SHA256())
    )


@pytest.fixture(scope="session")
def rsa_key():
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture(scope="session")
def other_rsa_key():
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture(scope="session")
def certificate(rsa_key):
    return make_certificate(rsa_key)


@pytest.fixture(scope="session")
def cer_bytes(certificate):
    """DER certificate, as delivered in a SAT .cer file."""
    return certificate.public_bytes(serialization.Encoding.DER)


@pytest.fixture(scope="session")
def key_bytes(rsa_key):
    """Encrypted PKCS#8 DER private key, as delivered in a SAT .key file."""
    return rsa_key.private_bytes(
        serialization.Encoding.DER,
        serialization.PrivateFormat.PKCS8,
        serialization.BestAvailableEncryption(PASSWORD.encode()),
    )


@pytest.fixture(scope="session")
def pfx_bytes(rsa_key, certificate):
    return pkcs12.serialize_key_and_certificates(
        b"firmapdf",
        rsa_key,
        certificate,
        None,
        serialization.BestAvailableEncryption(PASSWORD.encode()),
    )


@pytest.fixture
def credentials(pfx_bytes):
    """Fresh credentials per test; signing closes the key."""
    from firmapdf.core.certificates import load_from_pkcs12

    return load_from_pkcs12(pfx_bytes, PASSWORD)


# ── PDFs ────────────────────────────────────────────────────────────


def make_pdf(
    pages: int = 1, title: str = "Contrato de prueba", object_streams: bool = False
) -> bytes:
    """PDF with ``pages`` pages and a document title.

    Saved with a classic xref table, or with compressed object streams and an
    xref stream when ``object_streams`` is set.
    """
    pdf = pikepdf.Pdf.new()
    for number in range(1, pages + 1):
        content = pdf.make_stream(f"BT /F1 24 Tf 72 720 Td (Pagina {number}) Tj ET".encode())
        page = pikepdf.Dictionary(
            Type=pikepdf.Name.Page,
            MediaBox=[0, 0, 612, 792],
            Contents=content,
            Resources=pikepdf.Dictionary(),
        )
        pdf.pages.append(pikepdf.Page(pdf.make_indirect(page)))
    pdf.docinfo[pikepdf.Name.Title] = pikepdf.String(title)
    buf = io.BytesIO()
    mode = pikepdf.ObjectStreamMode.disable
    if object_streams:
        mode = pikepdf.ObjectStreamMode.generate
    pdf.save(buf, object_stream_mode=mode)
    return buf.getvalue()


def make_raw_pdf(bodies: dict[int, str], root: int = 1, trailer_extra: str = "") -> bytes:
    """Assemble a PDF from raw object bodies with a correct xref table."""
    out = bytearray(b"%PDF-1.7\n")
    offsets: dict[int, int] = {}
    for num in sorted(bodies):
        offsets[num] = len(out)
        out += f"{num} 0 obj\n{bodies[num]}\nendobj\n".encode("latin-1")
    size = max(bodies) + 1
    xref_offset = len(out)
    out += f"xref\n0 {size}\n".encode()
    out += b"0000000000 65535 f\r\n"
    for num in range(1, size):
        if num in offsets:
            out += f"{offsets[num]:010d} 00000 n\r\n".encode()
        else:
            out += b"0000000000 65535 f\r\n"
    out += f"trailer\n<< /Size {size} /Root {root} 0 R {trailer_extra}>>\n".encode()
    out += f"startxref\n{xref_offset}\n%%EOF\n".encode()
    return bytes(out)


@pytest.fixture(scope="session")
def one_page_pdf():
    return make_pdf(1)


@pytest.fixture(scope="session")
def ten_page_pdf():
    return make_pdf(10)


# ── Environment isolation ───────────────────────────────────────────


@pytest.fixture(autouse=True)
def isolated_config(tmp_path, monkeypatch):
    """Point the config store at a temp directory and clear firmapdf env vars."""
    config_dir = tmp_path / "config"
    monkeypatch.setattr("firmapdf.config._storage.CONFIG_DIR", config_dir)
    monkeypatch.setattr("firmapdf.config._storage.CONFIG_FILE", config_dir / "config.json")
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    return config_dir
