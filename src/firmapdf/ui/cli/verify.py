"""
Signature validation and certificate inspection commands.

cmd_check runs the digest-consistency validator; cmd_cert prints the
certificate summary of an e.firma .cer or a PKCS#12 bundle.
"""

from __future__ import annotations

import sys
from pathlib import Path
from typing import TYPE_CHECKING

from ...core.certificates import load_certificate, load_from_pkcs12, summarize
from ...core.pdf.verify import validate_signed_pdf
from ...errors import FirmaError
from ..helpers import format_size_kb, prompt_password, safe_read_file

if TYPE_CHECKING:
    import argparse


def cmd_check(args: argparse.Namespace) -> None:
    """Validate the last embedded signature of a PDF."""
    pdf_path = Path(args.pdf)
    pdf_bytes = safe_read_file(pdf_path, "PDF")
    if pdf_bytes is None:
        sys.exit(1)

    print(f"Checking {pdf_path.name} ({format_size_kb(len(pdf_bytes))})...")
    report = validate_signed_pdf(pdf_bytes)

    for line in report["details"]:
        print(f"  {line}")

    metadata = report["metadata"]
    print()
    print(f"  Pages:      {metadata['page_count'] if metadata['page_count'] is not None else '?'}")
    if metadata["title"]:
        print(f"  Title:      {metadata['title']}")
    if metadata["producer"]:
        print(f"  Producer:   {metadata['producer']}")
    if metadata["modification_date"]:
        print(f"  Modified:   {metadata['modification_date']}")
    print(f"  Signatures: {report['signature_count']}")
    if report["signing_time"]:
        print(f"  Signed at:  {report['signing_time']}")

    print()
    print(f"  Note: {report['limitation']}")
    if report["valid"]:
        print("  RESULT: Digest VALID")
    else:
        print("  RESULT: FAILED")
        sys.exit(1)


def cmd_cert(args: argparse.Namespace) -> None:
    """Print the summary of a certificate."""
    try:
        if args.pfx:
            pfx_bytes = safe_read_file(Path(args.pfx), "PKCS#12 bundle")
            if pfx_bytes is None:
                sys.exit(1)
            password = prompt_password(args.password, "PKCS#12 password")
            with load_from_pkcs12(pfx_bytes, password) as credentials:
                certificate = credentials.certificate
        else:
            cer_bytes = safe_read_file(Path(args.cer), "certificate")
            if cer_bytes is None:
                sys.exit(1)
            certificate = load_certificate(cer_bytes)
    except FirmaError as e:
        print(f"Error: {e.kind}: {e}", file=sys.stderr)
        sys.exit(1)

    summary = summarize(certificate)
    print(f"  Name:          {summary['name'] or '-'}")
    if summary["organization"]:
        print(f"  Organization:  {summary['organization']}")
    if summary["rfc"]:
        print(f"  RFC:           {summary['rfc']}")
    if summary["curp"]:
        print(f"  CURP:          {summary['curp']}")
    print(f"  Subject:       {summary['subject']}")
    print(f"  Issuer:        {summary['issuer']}")
    print(f"  Serial:        {summary['serial_number']}")
    print(f"  Valid from:    {summary['valid_from']}")
    print(f"  Valid to:      {summary['valid_to']}")
    status = "VALID" if summary["is_valid"] else "NOT VALID"
    print(f"  Status:        {status} ({summary['days_remaining']} days remaining)")
