"""
Entry point for `python -m firmapdf`.

Usage:
    python -m firmapdf sign document.pdf --cer cert.cer --key key.key
    python -m firmapdf check document_signed.pdf
    python -m firmapdf cert --cer cert.cer
"""

from .ui.cli import main

main()
