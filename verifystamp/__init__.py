"""Stamp PDFs with a verification table (signer info, QR code, notice)."""

__version__ = "0.1.0"
