"""Signed NDA as a PDF: the accepted text followed by the investor's sign-off record."""
from __future__ import annotations

import io
from datetime import datetime

from reportlab.lib.pagesizes import A4
from reportlab.lib.utils import simpleSplit
from reportlab.pdfbase.pdfmetrics import stringWidth
from reportlab.pdfgen import canvas

from app.dataroom.models import Investor

MARGIN = 60
LINE_HEIGHT = 16
FONT = "Helvetica"
BOLD_FONT = "Helvetica-Bold"
FONT_SIZE = 11
TITLE_FONT_SIZE = 18
HEADING_FONT_SIZE = 13
TEXT_GRAY = (0.1, 0.1, 0.1)
LABEL_GRAY = (0.3, 0.3, 0.3)
RULE_GRAY = (0.7, 0.7, 0.7)

TITLE = "NON-DISCLOSURE AGREEMENT"
SIGN_OFF_HEADING = "SIGN-OFF RECORD"


class _Writer:
    """Top-down text cursor over a reportlab canvas that starts new pages as needed."""

    def __init__(self, c: canvas.Canvas, width: float, height: float) -> None:
        self.c = c
        self.width = width
        self.height = height
        self.y = height - MARGIN

    def ensure_space(self, needed: float) -> None:
        if self.y - needed < MARGIN:
            self.c.showPage()
            self.y = self.height - MARGIN

    def line(self, text: str, *, font: str = FONT, size: float = FONT_SIZE, x: float = MARGIN) -> None:
        self.ensure_space(size + 4)
        self.c.setFont(font, size)
        self.c.setFillColorRGB(*TEXT_GRAY)
        self.c.drawString(x, self.y, text)
        self.y -= LINE_HEIGHT

    def paragraph(self, text: str) -> None:
        for wrapped in simpleSplit(text, FONT, FONT_SIZE, self.width - 2 * MARGIN):
            self.line(wrapped)


def _format_accepted_at(dt: datetime | None) -> str:
    return dt.strftime("%B %d, %Y %H:%M:%S UTC") if dt else "N/A"


def sign_off_fields(investor: Investor) -> list[tuple[str, str]]:
    fields = [("Signed by:", investor.email)]
    if investor.name:
        fields.append(("Name:", investor.name))
    if investor.firm:
        fields.append(("Firm:", investor.firm))
    fields.append(("Date & Time:", _format_accepted_at(investor.nda_accepted_at)))
    fields.append(("IP Address:", investor.nda_ip_address or "N/A"))
    return fields


def render_signed_nda(content: str, investor: Investor) -> bytes:
    width, height = A4
    buf = io.BytesIO()
    c = canvas.Canvas(buf, pagesize=A4, invariant=1, pageCompression=0)
    c.setTitle("Signed NDA")
    w = _Writer(c, width, height)

    w.ensure_space(TITLE_FONT_SIZE + 30)
    w.line(TITLE, font=BOLD_FONT, size=TITLE_FONT_SIZE)
    w.y -= TITLE_FONT_SIZE + 4

    for raw in content.split("\n"):
        text = raw.strip()
        if text:
            w.paragraph(text)
        else:
            w.y -= LINE_HEIGHT * 0.5
            w.ensure_space(LINE_HEIGHT)

    w.y -= LINE_HEIGHT * 2
    w.ensure_space(HEADING_FONT_SIZE + LINE_HEIGHT * 8)
    c.setStrokeColorRGB(*RULE_GRAY)
    c.setLineWidth(1)
    c.line(MARGIN, w.y + 8, width - MARGIN, w.y + 8)
    w.y -= 8
    w.line(SIGN_OFF_HEADING, font=BOLD_FONT, size=HEADING_FONT_SIZE)
    w.y -= 8

    for label, value in sign_off_fields(investor):
        w.ensure_space(LINE_HEIGHT * 1.5)
        c.setFont(BOLD_FONT, FONT_SIZE)
        c.setFillColorRGB(*LABEL_GRAY)
        c.drawString(MARGIN, w.y, label)
        c.setFont(FONT, FONT_SIZE)
        c.setFillColorRGB(*TEXT_GRAY)
        c.drawString(MARGIN + stringWidth(label, BOLD_FONT, FONT_SIZE) + 8, w.y, value)
        w.y -= LINE_HEIGHT * 1.4

    c.showPage()
    c.save()
    return buf.getvalue()
