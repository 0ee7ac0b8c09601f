"""
Command-line interface for firmapdf.

Argument parsing, dispatch, and the ``defaults`` subcommand.
Signing logic lives in ``sign``; validation and certificate
inspection in ``verify``.
"""

from __future__ import annotations

import argparse
import logging
import sys

from ...constants import CERTIFICATION_LEVELS, __version__
from ...errors import ConfigError
from .sign import cmd_sign
from .verify import cmd_cert, cmd_check


def _cmd_defaults(args: argparse.Namespace) -> None:
    """Show, update, or clear the saved signing defaults."""
    from ...config import (
        CONFIG_FILE,
        get_signing_defaults,
        reset_signing_defaults,
        save_signing_defaults,
    )

    if args.reset:
        reset_signing_defaults()
        print("Signing defaults cleared.")
        return

    changes = (args.reason, args.location, args.contact, args.capacity)
    if any(value is not None for value in changes):
        try:
            save_signing_defaults(
                reason=args.reason,
                location=args.location,
                contact_info=args.contact,
                capacity=args.capacity,
            )
        except ConfigError as e:
            print(f"Error: {e}", file=sys.stderr)
            sys.exit(1)
        print(f"Saved to {CONFIG_FILE}")
    elif not args.show:
        print("Nothing to change (use --show to display the current defaults).")
        return

    defaults = get_signing_defaults()
    print(f"  Reason:    {defaults['reason']}")
    print(f"  Location:  {defaults['location']}")
    print(f"  Contact:   {defaults['contact_info'] or '-'}")
    capacity = defaults["capacity"]
    print(f"  Capacity:  {capacity if capacity is not None else 'derived from certificate'}")


def _add_key_material_args(parser: argparse.ArgumentParser, *, with_key: bool) -> None:
    parser.add_argument("--cer", help="e.firma certificate (.cer, DER or PEM)")
    if with_key:
        parser.add_argument("--key", help="e.firma encrypted private key (.key)")
    parser.add_argument("--pfx", help="PKCS#12 bundle (.pfx/.p12)")
    parser.add_argument(
        "--password",
        default=None,
        help="Key password (prefer FIRMAPDF_PASSWORD or the interactive prompt)",
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="firmapdf",
        description="Embed PKCS#7 detached signatures into PDF documents.",
        epilog=(
            "Environment variables:\n"
            "  FIRMAPDF_PASSWORD    Private key / PKCS#12 password\n"
            "  FIRMAPDF_REASON      Default signature reason\n"
            "  FIRMAPDF_LOCATION    Default signature location\n"
            "  FIRMAPDF_CONTACT     Default contact info\n"
            "  FIRMAPDF_CONFIG_DIR  Config directory (default: ~/.firmapdf)\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("-V", "--version", action="version", version=f"firmapdf {__version__}")
    parser.add_argument(
        "-v", "--verbose", action="store_true", default=False, help="Enable debug logging"
    )

    sub = parser.add_subparsers(dest="command", help="Available commands")

    # sign
    p_sign = sub.add_parser("sign", help="Sign a PDF document")
    p_sign.add_argument("pdf", help="PDF file to sign")
    _add_key_material_args(p_sign, with_key=True)
    p_sign.add_argument("-o", "--output", help="Output file path (default: <name>_signed.pdf)")
    p_sign.add_argument(
        "--page",
        default="first",
        help="Page for the signature field: 'first', 'last', or a 1-based number (default: first)",
    )
    p_sign.add_argument(
        "--visible",
        action="store_true",
        default=False,
        help="Draw a visible signature box (default: invisible)",
    )
    p_sign.add_argument("--x", type=float, default=0.0, help="Box x-coordinate in PDF points")
    p_sign.add_argument("--y", type=float, default=0.0, help="Box y-coordinate in PDF points")
    p_sign.add_argument("--reason", default=None, help="Signature reason")
    p_sign.add_argument("--location", default=None, help="Signature location")
    p_sign.add_argument("--contact", default=None, help="Signer contact info")
    p_sign.add_argument(
        "--certification-level",
        type=int,
        choices=sorted(CERTIFICATION_LEVELS),
        default=0,
        help="; ".join(f"{k} = {v}" for k, v in CERTIFICATION_LEVELS.items()),
    )
    p_sign.add_argument(
        "--timestamp",
        action="store_true",
        default=False,
        help="Request a timestamp (not supported; logged and ignored)",
    )
    p_sign.add_argument(
        "--capacity", type=int, default=None, help="Reserved /Contents size in hex characters"
    )

    # check
    p_check = sub.add_parser("check", help="Check the digest of an embedded PDF signature")
    p_check.add_argument("pdf", help="Signed PDF file")

    # cert
    p_cert = sub.add_parser("cert", help="Show certificate details")
    _add_key_material_args(p_cert, with_key=False)

    # defaults
    p_defaults = sub.add_parser("defaults", help="Show or change saved signing defaults")
    p_defaults.add_argument("--reason", default=None, help="Default signature reason")
    p_defaults.add_argument("--location", default=None, help="Default signature location")
    p_defaults.add_argument("--contact", default=None, help="Default contact info")
    p_defaults.add_argument(
        "--capacity", type=int, default=None, help="Default /Contents size in hex characters"
    )
    p_defaults.add_argument("--show", action="store_true", default=False, help="Print defaults")
    p_defaults.add_argument(
        "--reset", action="store_true", default=False, help="Clear all saved defaults"
    )

    return parser


def main(argv: list[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    if args.command == "sign":
        cmd_sign(args)
    elif args.command == "check":
        cmd_check(args)
    elif args.command == "cert":
        if bool(args.cer) == bool(args.pfx):
            print("Error: provide exactly one of --cer or --pfx.", file=sys.stderr)
            sys.exit(1)
        cmd_cert(args)
    elif args.command == "defaults":
        _cmd_defaults(args)
    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()
