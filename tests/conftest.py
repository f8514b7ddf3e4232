from pathlib import Path

import fitz  # PyMuPDF
import pytest
from PIL import Image

from verifystamp.config import Settings


def build_pdf(path: Path, pages=1, size=(595, 842), texts=(), images=()):
    """Write a PDF to ``path``.

    ``texts``  -> (page_index, x, baseline_y, text), baseline_y in stamp space
    ``images`` -> (page_index, fitz.Rect in page space)
    """
    width, height = size
    doc = fitz.open()
    for _ in range(pages):
        doc.new_page(width=width, height=height)
    for page_index, x, baseline_y, text in texts:
        doc[page_index].insert_text((x, height - baseline_y), text, fontsize=11)
    for page_index, rect in images:
        pix = fitz.Pixmap(fitz.csRGB, fitz.IRect(0, 0, 8, 8), False)
        pix.clear_with(128)
        doc[page_index].insert_image(rect, pixmap=pix)
    doc.save(str(path))
    doc.close()
    return path


@pytest.fixture
def font_file(tmp_path):
    pytest.importorskip("pymupdf_fonts")
    path = tmp_path / "NotoSans-Regular.ttf"
    path.write_bytes(fitz.Font("notos").buffer)
    return path


@pytest.fixture
def logo_file(tmp_path):
    path = tmp_path / "logo.png"
    Image.new("RGBA", (64, 32), (255, 0, 0, 255)).save(path)
    return path


@pytest.fixture
def settings(tmp_path, font_file, logo_file):
    return Settings.for_web_root(tmp_path / "wwwroot", font_path=font_file, logo_path=logo_file)


def build_rotated_pdf(path: Path, rotation=90, size=(595, 842), texts=()):
    """One page with /Rotate set; ``texts`` -> (visible_x, baseline_y, text).

    Coordinates are on the page as a viewer shows it, baseline_y in stamp
    space, and the text reads upright there.
    """
    width, height = size
    doc = fitz.open()
    doc.new_page(width=width, height=height)
    page = doc[0]
    page.set_rotation(rotation)
    visible_height = page.rect.height
    for x, baseline_y, text in texts:
        origin = fitz.Point(x, visible_height - baseline_y) * page.derotation_matrix
        page.insert_text(origin, text, fontsize=11, rotate=page.rotation)
    doc.save(str(path))
    doc.close()
    return path
