"""Exceptions raised while stamping a document.

Every error carries the HTTP status the web layer answers with.
"""


class StampError(Exception):
    status_code = 500


class ValidationError(StampError):
    """The upload is missing, empty or not a PDF."""

    status_code = 400


class AssetMissingError(StampError):
    """The logo image is absent or cannot be decoded."""


class FontAssetError(StampError):
    """The overlay font is absent or cannot be loaded."""


class DocumentParseError(StampError):
    """The source PDF cannot be opened or has no pages."""

    status_code = 422


class RenderError(StampError):
    """PyMuPDF failed to draw the overlay or to write the result."""
