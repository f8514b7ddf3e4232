"""One signing request from source PDF to stamped result.

    source ──► extent of last page ──► placement ──► (new page?) ──► overlay
                                      QR + logo ─────────────────────┘

The result is written under a temporary name and renamed into place, so a
half-written file is never reachable at its public URL.
"""

from __future__ import annotations

import logging
import os
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Iterator, Optional, Tuple

import fitz  # PyMuPDF
import pikepdf

from .config import Settings
from .errors import DocumentParseError, RenderError
from .extent import ContentExtentAnalyzer, ExtentResult
from .geometry import PageGeometry
from .overlay import OverlayRenderer
from .placement import DEFAULT_SPEC, ExtentPlacementPolicy, OverlaySpec, PlacementDecision, PlacementPolicy, get_policy
from .qr import CodeCompositor

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SignedDocument:
    path: Path
    public_url: str
    source_page_count: int
    page_count: int
    extent: ExtentResult
    decision: PlacementDecision


@contextmanager
def open_source(path: str | Path) -> Iterator[Tuple[fitz.Document, pikepdf.Pdf]]:
    """Open ``path`` with PyMuPDF and pikepdf; both handles close on exit."""
    try:
        doc = fitz.open(str(path), filetype="pdf")
    except Exception as exc:
        raise DocumentParseError(f"Cannot open {Path(path).name} as PDF: {exc}") from exc

    with doc:
        if doc.needs_pass:
            raise DocumentParseError(f"{Path(path).name} is encrypted")
        if doc.page_count == 0:
            raise DocumentParseError(f"{Path(path).name} has no pages")
        try:
            pdf = pikepdf.open(path)
        except pikepdf.PdfError as exc:
            raise DocumentParseError(f"Cannot read PDF objects of {Path(path).name}: {exc}") from exc
        with pdf:
            yield doc, pdf


class SigningService:
    def __init__(
        self,
        compositor: CodeCompositor,
        renderer: OverlayRenderer,
        policy: Optional[PlacementPolicy] = None,
        analyzer: Optional[ContentExtentAnalyzer] = None,
        spec: OverlaySpec = DEFAULT_SPEC,
    ):
        self.compositor = compositor
        self.renderer = renderer
        self.policy = policy or ExtentPlacementPolicy()
        self.analyzer = analyzer or ContentExtentAnalyzer()
        self.spec = spec

    @classmethod
    def from_settings(cls, settings: Settings) -> "SigningService":
        return cls(
            compositor=CodeCompositor(settings.logo_path),
            renderer=OverlayRenderer(settings.font_path, text=settings.overlay_text()),
            policy=get_policy(settings.placement),
        )

    @staticmethod
    def _append_page(doc: fitz.Document, geometry: PageGeometry) -> fitz.Page:
        # the new page is upright, sized like the visible last page
        try:
            return doc.new_page(width=geometry.width, height=geometry.height)
        except Exception as exc:
            raise RenderError(f"Cannot append a page: {exc}") from exc

    def sign(
        self,
        source_path: str | Path,
        result_path: str | Path,
        public_url: str,
        *,
        timestamp: Optional[datetime] = None,
    ) -> SignedDocument:
        source_path = Path(source_path)
        result_path = Path(result_path)
        partial = result_path.with_name(result_path.name + ".part")
        timestamp = timestamp or datetime.now()

        composite = self.compositor.compose(public_url)

        try:
            with open_source(source_path) as (doc, pdf):
                source_page_count = doc.page_count
                last_page = doc[-1]
                geometry = PageGeometry.from_page(last_page)

                extent = self.analyzer.analyze(last_page, pdf)
                decision = self.policy.decide(extent, geometry, self.spec)
                logger.info(
                    "%s: lowest_y=%.1f found=%s -> %s page, anchor=(%.1f, %.1f)",
                    source_path.name,
                    extent.lowest_y,
                    extent.found,
                    "last" if decision.targets_existing_page else "new",
                    decision.anchor_x,
                    decision.anchor_y,
                )

                if decision.targets_existing_page:
                    target = last_page
                else:
                    target = self._append_page(doc, geometry)

                self.renderer.render(target, decision, public_url, timestamp, composite)
                page_count = doc.page_count
                try:
                    doc.save(str(partial), garbage=0, deflate=True)
                    os.replace(partial, result_path)
                except Exception as exc:
                    raise RenderError(f"Cannot write {result_path.name}: {exc}") from exc
        finally:
            if partial.exists():
                partial.unlink()

        return SignedDocument(
            path=result_path,
            public_url=public_url,
            source_page_count=source_page_count,
            page_count=page_count,
            extent=extent,
            decision=decision,
        )
