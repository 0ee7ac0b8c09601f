"""
Common CLI helper functions for firmapdf.

File reading, atomic output, and password prompting shared by the
subcommands.
"""

from __future__ import annotations

import os
import sys
import tempfile
from pathlib import Path

from ..config import get_env_password

__all__ = [
    "atomic_write",
    "default_output_path",
    "format_size_kb",
    "prompt_password",
    "safe_read_file",
]

_BYTES_PER_KB = 1024


def format_size_kb(size_bytes: int) -> str:
    """Format a byte count as a human-readable KB string (e.g. '123.4 KB')."""
    return f"{size_bytes / _BYTES_PER_KB:.1f} KB"


def default_output_path(pdf_path: Path) -> Path:
    """Compute default output path for a signed PDF: '<stem>_signed.pdf'."""
    return pdf_path.with_name(f"{pdf_path.stem}_signed.pdf")


def safe_read_file(path: Path, kind: str = "file") -> bytes | None:
    """
    Read a file with uniform error handling.

    Checks existence first, then reads, catching OSError.

    Args:
        path: Path to the file to read.
        kind: Descriptive name for error messages (e.g., "PDF", "certificate").

    Returns:
        File contents as bytes, or None if the file doesn't exist or can't be read.
    """
    if not path.exists():
        print(f"Error: {kind} not found: {path}", file=sys.stderr)
        return None

    try:
        return path.read_bytes()
    except OSError as e:
        print(f"Error reading {kind}: {e}", file=sys.stderr)
        return None


def prompt_password(explicit: str | None = None, label: str = "Private key password") -> str:
    """
    Resolve the key password: explicit value > FIRMAPDF_PASSWORD > prompt.

    Raises:
        SystemExit: If the user cancels (Ctrl-C, Ctrl-D) or enters nothing.
    """
    if explicit:
        return explicit
    env_password = get_env_password()
    if env_password:
        return env_password

    try:
        import getpass

        password = getpass.getpass(f"{label}: ")
    except (EOFError, KeyboardInterrupt):
        print()
        sys.exit(1)

    if not password:
        print("Error: a password is required.", file=sys.stderr)
        sys.exit(1)
    return password


def atomic_write(path: Path, data: bytes) -> None:
    """Write data to a file atomically using temp file + rename.

    Prevents partial writes from leaving corrupt output files if
    the process is interrupted mid-write (e.g., disk full, Ctrl-C).

    Args:
        path: Target file path.
        data: Bytes to write.
    """
    fd, tmp_path = tempfile.mkstemp(dir=path.parent, suffix=".tmp")
    tmp = Path(tmp_path)
    try:
        os.write(fd, data)
        os.fsync(fd)
        os.close(fd)
        fd = -1
        tmp.replace(path)
    except Exception:
        if fd >= 0:
            os.close(fd)
        tmp.unlink(missing_ok=True)
        raise
