"""
Spreadsheet watermarking.

Every sheet gets a confidentiality header/footer (odd and even pages) and a new
banner row 1 merged across the used columns. Inserting the row shifts all
existing rows down by one; that is visible to the recipient and intended.
"""
from __future__ import annotations

import io
import logging
import zipfile
from typing import TYPE_CHECKING

from openpyxl import load_workbook
from openpyxl.styles import Alignment, Font
from openpyxl.utils.exceptions import InvalidFileException
from openpyxl.worksheet.worksheet import Worksheet

from app.dataroom.watermark.base import FAMILY_SPREADSHEET, Rendition, RenderError, Source

if TYPE_CHECKING:
    from app.dataroom.rbac import Viewer

logger = logging.getLogger(__name__)

HEADER_COLOR = "808080"
BANNER_COLOR = "40808080"  # ARGB, semi-transparent gray
MIN_BANNER_COLUMNS = 5


def banner_text(label: str) -> str:
    return f"CONFIDENTIAL - {label}"


def footer_text(label: str) -> str:
    return f"{label} - Downloaded from Investor Dataroom"


def _apply_header_footer(ws: Worksheet, label: str) -> None:
    for hf in (ws.oddHeader, ws.evenHeader):
        hf.center.text = banner_text(label)
        hf.center.size = 14
        hf.center.color = HEADER_COLOR
    for hf in (ws.oddFooter, ws.evenFooter):
        hf.center.text = footer_text(label)
        hf.center.size = 10
        hf.center.color = HEADER_COLOR


def _insert_banner_row(ws: Worksheet, label: str) -> None:
    last_col = max(ws.max_column, MIN_BANNER_COLUMNS)

    # openpyxl does not move merged ranges on insert_rows; do it ourselves.
    merged = list(ws.merged_cells.ranges)
    for rng in merged:
        ws.unmerge_cells(rng.coord)
    ws.insert_rows(1)
    for rng in merged:
        rng.shift(row_shift=1)
        ws.merge_cells(rng.coord)

    cell = ws.cell(row=1, column=1, value=banner_text(label))
    cell.font = Font(size=14, bold=True, italic=True, color=BANNER_COLOR)
    cell.alignment = Alignment(horizontal="center")
    ws.merge_cells(start_row=1, start_column=1, end_row=1, end_column=last_col)


def watermark_excel(data: bytes, label: str) -> bytes:
    try:
        wb = load_workbook(io.BytesIO(data))
    except (InvalidFileException, zipfile.BadZipFile, KeyError, ValueError, OSError) as e:
        raise RenderError(f"Spreadsheet could not be loaded: {e}") from e

    try:
        for ws in wb.worksheets:
            _apply_header_footer(ws, label)
            _insert_banner_row(ws, label)
        out = io.BytesIO()
        wb.save(out)
    except (ValueError, TypeError, KeyError) as e:
        raise RenderError(f"Spreadsheet watermark failed: {e}") from e
    finally:
        wb.close()
    return out.getvalue()


class ExcelRenderer:
    family = FAMILY_SPREADSHEET

    def render(self, source: Source, viewer: "Viewer") -> Rendition:
        return Rendition(data=watermark_excel(source.read_bytes(), viewer.label))
