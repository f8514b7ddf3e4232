"""Page geometry shared by the analyzer, the placement policy and the renderer.

Three coordinate systems meet here:

* Unrotated page space: what PyMuPDF extraction and drawing calls use. Origin
  top-left, y grows downwards, the page's /Rotate is ignored.
* Visible page space: the same, after /Rotate is applied (``page.rect``).
* Stamp space: origin bottom-left of the visible page, y grows upwards. Every
  extent and anchor in this package is expressed in stamp space.

Raw ``/Rect`` arrays read from the PDF objects are in PDF user space and go
through the page's transformation matrix first.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Sequence, Tuple

import fitz  # PyMuPDF

MatrixTuple = Tuple[float, float, float, float, float, float]


def _map_rect(rect: Sequence[float], m: fitz.Matrix) -> fitz.Rect:
    # corner by corner, so zero-height baselines survive the transform
    r = fitz.Rect(rect)
    corners = [p * m for p in (r.tl, r.tr, r.bl, r.br)]
    xs = [p.x for p in corners]
    ys = [p.y for p in corners]
    return fitz.Rect(min(xs), min(ys), max(xs), max(ys))


@dataclass(frozen=True)
class ContentBoundingBox:
    bottom_y: float


@dataclass(frozen=True)
class PageGeometry:
    width: float
    height: float
    bottom_edge: float
    top_edge: float
    # PDF user space -> unrotated page space; None means a page at origin
    matrix: Optional[MatrixTuple] = None
    # unrotated page space -> visible page space; None means /Rotate 0
    rotation: Optional[MatrixTuple] = None

    @classmethod
    def from_page(cls, page: fitz.Page) -> "PageGeometry":
        rect = page.rect
        return cls(
            width=rect.width,
            height=rect.height,
            bottom_edge=0.0,
            top_edge=rect.height,
            matrix=tuple(page.transformation_matrix),
            rotation=tuple(page.rotation_matrix) if page.rotation else None,
        )

    def _matrix(self) -> fitz.Matrix:
        if self.matrix is None:
            return fitz.Matrix(1, 0, 0, -1, 0, self.height)
        return fitz.Matrix(*self.matrix)

    def _rotation(self) -> fitz.Matrix:
        if self.rotation is None:
            return fitz.Matrix(1, 0, 0, 1, 0, 0)
        return fitz.Matrix(*self.rotation)

    def flip(self, y: float) -> float:
        """Convert a y value between visible page space and stamp space (both ways)."""
        return self.bottom_edge + self.height - y

    def to_visible(self, rect: Sequence[float]) -> fitz.Rect:
        """Map a rectangle from unrotated to visible page space."""
        return _map_rect(rect, self._rotation())

    def to_unrotated(self, rect: Sequence[float]) -> fitz.Rect:
        """Map a rectangle from visible to unrotated page space, for drawing."""
        return _map_rect(rect, ~self._rotation())

    def box_from_page_rect(self, rect: Sequence[float]) -> ContentBoundingBox:
        """Bounding box of a rectangle given in unrotated page space."""
        r = self.to_visible(fitz.Rect(rect).normalize())
        return ContentBoundingBox(bottom_y=self.flip(r.y1))

    def box_from_pdf_rect(self, rect: Sequence[float]) -> ContentBoundingBox:
        """Bounding box of a raw ``/Rect`` array given in PDF user space."""
        if len(rect) != 4:
            raise ValueError(f"rectangle needs 4 numbers, got {len(rect)}")
        r = fitz.Rect(*(float(v) for v in rect)).normalize() * self._matrix()
        return self.box_from_page_rect(r)
