"""PDF watermarking: viewer identity stamped diagonally five times per page."""
from __future__ import annotations

import io
import logging
from typing import TYPE_CHECKING

from pypdf import PdfReader, PdfWriter, Transformation
from pypdf.errors import PyPdfError
from reportlab.pdfbase.pdfmetrics import stringWidth
from reportlab.pdfgen import canvas

from app.dataroom.watermark.base import FAMILY_PDF, Rendition, RenderError, Source

if TYPE_CHECKING:
    from app.dataroom.rbac import Viewer

logger = logging.getLogger(__name__)

FONT_NAME = "Helvetica"
FONT_SCALE = 0.06  # of min(page width, page height)
ROTATION_DEGREES = 45
FILL_GRAY = (0.7, 0.7, 0.7)
FILL_OPACITY = 0.15

# Centre plus the four quadrant centres, as fractions of (width, height).
STAMP_POSITIONS = (
    (0.5, 0.5),
    (0.25, 0.25),
    (0.75, 0.75),
    (0.25, 0.75),
    (0.75, 0.25),
)


def _stamp_page(width: float, height: float, label: str) -> bytes:
    font_size = min(width, height) * FONT_SCALE
    text_width = stringWidth(label, FONT_NAME, font_size)

    buf = io.BytesIO()
    # invariant + no compression: byte-stable output, stamps stay searchable
    c = canvas.Canvas(buf, pagesize=(width, height), invariant=1, pageCompression=0)
    c.setFont(FONT_NAME, font_size)
    c.setFillColorRGB(*FILL_GRAY)
    c.setFillAlpha(FILL_OPACITY)
    for fx, fy in STAMP_POSITIONS:
        c.saveState()
        c.translate(width * fx - text_width / 2, height * fy)
        c.rotate(ROTATION_DEGREES)
        c.drawString(0, 0, label)
        c.restoreState()
    c.showPage()
    c.save()
    return buf.getvalue()


def watermark_pdf(data: bytes, label: str) -> bytes:
    try:
        reader = PdfReader(io.BytesIO(data), strict=False)
        writer = PdfWriter(clone_from=reader)
        overlays: dict[tuple[float, float], object] = {}
        for page in writer.pages:
            box = page.mediabox
            width, height = float(box.width), float(box.height)
            size = (width, height)
            if size not in overlays:
                overlays[size] = PdfReader(io.BytesIO(_stamp_page(width, height, label))).pages[0]
            stamp = overlays[size]
            # Overlay is drawn from (0, 0); shift it onto the page's own origin.
            op = Transformation().translate(float(box.left), float(box.bottom))
            page.merge_transformed_page(stamp, op, over=True)
        out = io.BytesIO()
        writer.write(out)
    except (PyPdfError, ValueError, KeyError, TypeError, AttributeError) as e:
        raise RenderError(f"PDF watermark failed: {e}") from e
    return out.getvalue()


class PdfRenderer:
    family = FAMILY_PDF

    def render(self, source: Source, viewer: "Viewer") -> Rendition:
        return Rendition(data=watermark_pdf(source.read_bytes(), viewer.label))
