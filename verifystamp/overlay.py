"""Draw the verification table onto a PDF page using PyMuPDF.

Layout (three rows, table width = 85% of the page, horizontally centered):

    +-----------+-------------------------------------+--------+
    | labels    | institution / timestamp / how-to    |  QR    |
    +-----------+-------------------------------------+--------+
    | verification URL (blue, clickable)                       |
    +----------------------------------------------------------+
    | legal disclaimer                                         |
    +----------------------------------------------------------+

The decision's anchor is the bottom-left corner of the table in stamp space.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import List, Optional

import fitz  # PyMuPDF

from .errors import FontAssetError, RenderError
from .geometry import PageGeometry
from .placement import DEFAULT_SPEC, OverlaySpec, PlacementDecision
from .qr import CodeComposite

logger = logging.getLogger(__name__)

BLACK = (0, 0, 0)
BLUE = (0, 0, 1)
MIN_FONT_SIZE = 5.0


@dataclass(frozen=True)
class OverlayText:
    signer_labels: str = "Потпишува:\nДатум и време:\nВерификација:"
    institution: str = "Факултет за информатички науки и компјутерско инженерство"
    instructions: str = (
        "Информации за верификација на автентичноста на овој документ се достапни "
        "со користење на кодот за верификација (QR-кодот) односно на линкот подолу."
    )
    disclaimer: str = (
        "Овој документ е официјално потпишан со електронски печат и електронски "
        "временски жиг. Автентичноста на печатените копии од овој документ можат "
        "да бидат електронски верификувани."
    )
    timestamp_format: str = "%d.%m.%Y %H:%M"

    def details(self, timestamp: datetime) -> str:
        return f"{self.institution}\n{timestamp.strftime(self.timestamp_format)}\n{self.instructions}"


@dataclass(frozen=True)
class TableLayout:
    """Cell rectangles in visible page space (after the page's /Rotate)."""

    labels: fitz.Rect
    details: fitz.Rect
    code: fitz.Rect
    url: fitz.Rect
    disclaimer: fitz.Rect

    @property
    def bounds(self) -> fitz.Rect:
        return fitz.Rect(self.labels.tl, self.disclaimer.br)

    def cells(self) -> List[fitz.Rect]:
        return [self.labels, self.details, self.code, self.url, self.disclaimer]


def layout_table(
    decision: PlacementDecision, geometry: PageGeometry, spec: OverlaySpec = DEFAULT_SPEC
) -> TableLayout:
    table_width = spec.table_width(geometry.width)
    widths = [table_width * ratio for ratio in spec.column_ratios]
    x0 = decision.anchor_x
    x1 = x0 + widths[0]
    x2 = x1 + widths[1]
    x3 = x0 + table_width

    top = geometry.flip(decision.anchor_y + spec.overlay_height)
    row1 = top + spec.row_heights[0]
    row2 = row1 + spec.row_heights[1]
    row3 = row2 + spec.row_heights[2]

    return TableLayout(
        labels=fitz.Rect(x0, top, x1, row1),
        details=fitz.Rect(x1, top, x2, row1),
        code=fitz.Rect(x2, top, x3, row1),
        url=fitz.Rect(x0, row1, x3, row2),
        disclaimer=fitz.Rect(x0, row2, x3, row3),
    )


def centered_square(cell: fitz.Rect, side: float) -> fitz.Rect:
    cx = (cell.x0 + cell.x1) / 2
    cy = (cell.y0 + cell.y1) / 2
    return fitz.Rect(cx - side / 2, cy - side / 2, cx + side / 2, cy + side / 2)


class OverlayRenderer:
    FONT_NAME = "vstamp"

    def __init__(
        self,
        font_path: str | Path,
        text: Optional[OverlayText] = None,
        spec: OverlaySpec = DEFAULT_SPEC,
    ):
        self.font_path = Path(font_path)
        self.text = text or OverlayText()
        self.spec = spec

    # ------------------------------------------------------------------
    def load_font(self) -> fitz.Font:
        """Load the overlay font and make sure it covers every glyph we draw."""
        if not self.font_path.is_file():
            raise FontAssetError(f"Font not found at {self.font_path}")
        try:
            font = fitz.Font(fontfile=str(self.font_path))
        except Exception as exc:
            raise FontAssetError(f"Font at {self.font_path} could not be loaded: {exc}") from exc

        sample = "".join(
            (self.text.signer_labels, self.text.institution, self.text.instructions, self.text.disclaimer)
        )
        missing = sorted({ch for ch in sample if not ch.isspace() and not font.has_glyph(ord(ch))})
        if missing:
            raise FontAssetError(
                f"Font {font.name} has no glyphs for {''.join(missing)!r}; "
                "configure a font that covers the overlay text"
            )
        return font

    def _write(self, page: fitz.Page, geometry: PageGeometry, cell: fitz.Rect, text: str, color=BLACK) -> None:
        pad = self.spec.cell_padding
        box = geometry.to_unrotated(cell + (pad, pad, -pad, -pad))
        fontsize = self.spec.font_size
        while fontsize >= MIN_FONT_SIZE:
            rc = page.insert_textbox(
                box,
                text,
                fontname=self.FONT_NAME,
                fontsize=fontsize,
                color=color,
                rotate=page.rotation,
            )
            if rc >= 0:
                return
            fontsize -= 1
        logger.warning("Text does not fit its cell on page %d: %.40r", page.number + 1, text)

    # ------------------------------------------------------------------
    def render(
        self,
        page: fitz.Page,
        decision: PlacementDecision,
        url: str,
        timestamp: datetime,
        composite: CodeComposite,
    ) -> TableLayout:
        font = self.load_font()
        geometry = PageGeometry.from_page(page)
        layout = layout_table(decision, geometry, self.spec)

        try:
            self._draw(page, geometry, layout, font, url, timestamp, composite)
        except Exception as exc:
            raise RenderError(f"Cannot draw the overlay on page {page.number + 1}: {exc}") from exc

        logger.debug("Overlay drawn on page %d at %s", page.number + 1, layout.bounds)
        return layout

    def _draw(
        self,
        page: fitz.Page,
        geometry: PageGeometry,
        layout: TableLayout,
        font: fitz.Font,
        url: str,
        timestamp: datetime,
        composite: CodeComposite,
    ) -> None:
        # drawing calls take unrotated coordinates; text and image turn with the page
        page.insert_font(fontname=self.FONT_NAME, fontbuffer=font.buffer)

        for cell in layout.cells():
            page.draw_rect(geometry.to_unrotated(cell), color=BLACK, width=0.5)

        self._write(page, geometry, layout.labels, self.text.signer_labels)
        self._write(page, geometry, layout.details, self.text.details(timestamp))

        pad = self.spec.cell_padding
        side = min(self.spec.code_size, layout.code.width - 2 * pad, layout.code.height - 2 * pad)
        page.insert_image(
            geometry.to_unrotated(centered_square(layout.code, side)),
            stream=composite.to_png(),
            rotate=page.rotation,
        )

        self._write(page, geometry, layout.url, url, color=BLUE)
        page.insert_link({"kind": fitz.LINK_URI, "from": geometry.to_unrotated(layout.url), "uri": url})

        self._write(page, geometry, layout.disclaimer, self.text.disclaimer)
