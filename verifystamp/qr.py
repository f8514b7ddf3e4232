"""QR code for the verification URL, with the institution logo in the middle.

The code is encoded with error correction level H (~30% of the modules can be
lost), which is what lets a solid logo patch cover the center and still scan.
"""

from __future__ import annotations

import io
import logging
from dataclasses import dataclass
from pathlib import Path

import qrcode
from qrcode.exceptions import DataOverflowError
from qrcode.image.pil import PilImage
from PIL import Image, ImageOps

from .errors import AssetMissingError, RenderError

logger = logging.getLogger(__name__)

BOX_SIZE = 20     # pixels per module
BORDER = 4        # quiet zone, in modules
LOGO_RATIO = 0.2  # logo side relative to the code side


@dataclass
class CodeComposite:
    image: Image.Image
    width_px: int
    height_px: int

    def to_png(self) -> bytes:
        buf = io.BytesIO()
        self.image.save(buf, format="PNG")
        return buf.getvalue()


def render_base_code(data: str) -> Image.Image:
    """Plain black-on-white QR code for ``data``."""
    qr = qrcode.QRCode(
        error_correction=qrcode.constants.ERROR_CORRECT_H,
        box_size=BOX_SIZE,
        border=BORDER,
        image_factory=PilImage,
    )
    qr.add_data(data)
    qr.make(fit=True)
    return qr.make_image(fill_color="black", back_color="white").get_image().convert("RGB")


def logo_box(width: int, height: int) -> tuple[int, int, int, int]:
    """(left, top, right, bottom) of the logo patch on a ``width`` x ``height`` code."""
    size = int(min(width, height) * LOGO_RATIO)
    left = (width - size) // 2
    top = (height - size) // 2
    return left, top, left + size, top + size


class CodeCompositor:
    def __init__(self, logo_path: str | Path):
        self.logo_path = Path(logo_path)

    def load_logo(self) -> Image.Image:
        if not self.logo_path.is_file():
            raise AssetMissingError(f"Logo not found at {self.logo_path}")
        try:
            with Image.open(self.logo_path) as img:
                img.load()
                logo = img.convert("RGBA")
        except OSError as exc:  # includes UnidentifiedImageError
            raise AssetMissingError(f"Logo at {self.logo_path} could not be decoded: {exc}") from exc

        # flatten transparency so the patch stays opaque
        flat = Image.new("RGB", logo.size, "white")
        flat.paste(logo, mask=logo.getchannel("A"))
        return flat

    def compose(self, url: str) -> CodeComposite:
        logo = self.load_logo()
        try:
            code = render_base_code(url)
        except DataOverflowError as exc:
            raise RenderError(f"URL of {len(url)} characters does not fit a QR code") from exc
        width, height = code.size

        left, top, right, bottom = logo_box(width, height)
        patch = ImageOps.fit(logo, (right - left, bottom - top), method=Image.Resampling.LANCZOS)
        code.paste(patch, (left, top))  # plain overwrite, no mask

        logger.debug("QR code %dx%d px with %dpx logo", width, height, right - left)
        return CodeComposite(image=code, width_px=width, height_px=height)
