"""Settings read from the environment (and a local .env file, if present).

    VERIFYSTAMP_WEB_ROOT         root of the served files (default: wwwroot)
    VERIFYSTAMP_FONT_PATH        TTF/OTF used for the table text
    VERIFYSTAMP_LOGO_PATH        image placed in the middle of the QR code
    VERIFYSTAMP_INSTITUTION      institution name printed in the table
    VERIFYSTAMP_PUBLIC_BASE_URL  base of the public links (default: request URL)
    VERIFYSTAMP_PLACEMENT        extent | append (default: extent)
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import find_dotenv, load_dotenv

from .overlay import OverlayText


@dataclass(frozen=True)
class Settings:
    web_root: Path
    font_path: Path
    logo_path: Path
    institution: str = OverlayText.institution
    public_base_url: Optional[str] = None
    placement: str = "extent"

    @property
    def signed_dir(self) -> Path:
        return self.web_root / "signed"

    @property
    def upload_dir(self) -> Path:
        return self.web_root / "uploads"

    @classmethod
    def for_web_root(cls, web_root: str | Path, **overrides) -> "Settings":
        root = Path(web_root).resolve()
        values = {
            "font_path": root / "fonts" / "NotoSans-Regular.ttf",
            "logo_path": root / "images" / "logo.png",
        }
        values.update(overrides)
        return cls(web_root=root, **values)

    @classmethod
    def from_env(cls) -> "Settings":
        load_dotenv(find_dotenv(usecwd=True))
        root = Path(os.getenv("VERIFYSTAMP_WEB_ROOT", "wwwroot")).resolve()

        overrides = {}
        if os.getenv("VERIFYSTAMP_FONT_PATH"):
            overrides["font_path"] = Path(os.environ["VERIFYSTAMP_FONT_PATH"]).resolve()
        if os.getenv("VERIFYSTAMP_LOGO_PATH"):
            overrides["logo_path"] = Path(os.environ["VERIFYSTAMP_LOGO_PATH"]).resolve()
        if os.getenv("VERIFYSTAMP_INSTITUTION"):
            overrides["institution"] = os.environ["VERIFYSTAMP_INSTITUTION"]

        return cls.for_web_root(
            root,
            public_base_url=os.getenv("VERIFYSTAMP_PUBLIC_BASE_URL") or None,
            placement=os.getenv("VERIFYSTAMP_PLACEMENT", "extent"),
            **overrides,
        )

    def overlay_text(self) -> OverlayText:
        return OverlayText(institution=self.institution)
