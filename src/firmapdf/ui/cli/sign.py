"""Signing command handler for the firmapdf CLI."""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

from ...config import get_signing_defaults
from ...constants import __version__
from ...core.certificates import SigningCredentials, load_from_pair, load_from_pkcs12
from ...core.signing import SignatureOptions, sign_pdf
from ...errors import ConfigError, FirmaError
from ..helpers import (
    atomic_write,
    default_output_path,
    format_size_kb,
    prompt_password,
    safe_read_file,
)


def parse_page_spec(raw: str) -> int | str:
    """Parse ``--page``: "first", "last", or a 1-based page number.

    Returns:
        "first", "last", or a 0-based page index.

    Raises:
        ConfigError: On anything else.
    """
    value = raw.strip().lower()
    if value in ("first", "last"):
        return value
    try:
        number = int(value)
    except ValueError:
        raise ConfigError(f"Invalid page {raw!r}: use 'first', 'last', or a page number") from None
    if number < 1:
        raise ConfigError(f"Invalid page {raw!r}: page numbers start at 1")
    return number - 1


def _load_credentials(args: argparse.Namespace) -> SigningCredentials | None:
    """Load e.firma or PKCS#12 credentials named on the command line."""
    if args.pfx:
        pfx_bytes = safe_read_file(Path(args.pfx), "PKCS#12 bundle")
        if pfx_bytes is None:
            return None
        password = prompt_password(args.password, "PKCS#12 password")
        return load_from_pkcs12(pfx_bytes, password)

    cer_bytes = safe_read_file(Path(args.cer), "certificate")
    key_bytes = safe_read_file(Path(args.key), "private key")
    if cer_bytes is None or key_bytes is None:
        return None
    password = prompt_password(args.password)
    return load_from_pair(cer_bytes, key_bytes, password)


def _build_options(args: argparse.Namespace) -> SignatureOptions:
    defaults = get_signing_defaults(
        reason=args.reason,
        location=args.location,
        contact_info=args.contact,
        capacity=args.capacity,
    )
    return SignatureOptions(
        visible=args.visible,
        page=parse_page_spec(args.page),
        x=args.x,
        y=args.y,
        reason=defaults["reason"],
        location=defaults["location"],
        contact_info=defaults["contact_info"],
        certification_level=args.certification_level,
        include_timestamp=args.timestamp,
        capacity=defaults["capacity"],
    )


def cmd_sign(args: argparse.Namespace) -> None:
    """Handle the 'sign' subcommand."""
    if not args.pfx and not (args.cer and args.key):
        print("Error: provide --pfx, or both --cer and --key.", file=sys.stderr)
        sys.exit(1)
    if args.pfx and (args.cer or args.key):
        print("Error: --pfx cannot be combined with --cer/--key.", file=sys.stderr)
        sys.exit(1)

    pdf_path = Path(args.pdf)
    out = Path(args.output) if args.output else default_output_path(pdf_path)

    try:
        options = _build_options(args)
    except ConfigError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    pdf_bytes = safe_read_file(pdf_path, "PDF")
    if pdf_bytes is None:
        sys.exit(1)

    print(f"firmapdf v{__version__}")
    try:
        credentials = _load_credentials(args)
        if credentials is None:
            sys.exit(1)
        signer = credentials.certificate.common_name or credentials.certificate.subject_dn
        print(f"Signer: {signer}")
        size = format_size_kb(len(pdf_bytes))
        print(f"  Signing {pdf_path.name} ({size})...", end=" ", flush=True)
        result = sign_pdf(pdf_bytes, credentials, options)
    except FirmaError as e:
        print("FAILED", file=sys.stderr)
        print(f"  {e.kind}: {e}", file=sys.stderr)
        sys.exit(1)

    try:
        atomic_write(out, result.signed_pdf)
    except OSError as e:
        print("FAILED", file=sys.stderr)
        print(f"  Cannot write {out}: {e}", file=sys.stderr)
        sys.exit(1)

    meta = result.metadata
    print(f"OK -> {out.name} ({format_size_kb(len(result.signed_pdf))})")
    print(f"  Signer:        {meta['signer']}")
    print(f"  Date:          {meta['sign_date']}")
    print(f"  Reason:        {meta['reason']}")
    print(f"  Location:      {meta['location']}")
    print(f"  Certification: {meta['certification_level']}")
    print(f"  SHA-256:       {meta['hash']}")
