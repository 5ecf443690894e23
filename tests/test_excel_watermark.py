import io

import pytest
from openpyxl import Workbook, load_workbook

from app.dataroom.watermark import RenderError, watermark_excel


def _make_workbook() -> bytes:
    wb = Workbook()
    ws = wb.active
    ws.title = "PnL"
    ws["A1"] = "Revenue"
    ws["B1"] = 100
    ws["A3"] = "Merged note"
    ws.merge_cells("A3:B3")

    wide = wb.create_sheet("Wide")
    for col in range(1, 9):
        wide.cell(row=1, column=col, value=col)

    buf = io.BytesIO()
    wb.save(buf)
    return buf.getvalue()


def _watermarked() -> Workbook:
    out = watermark_excel(_make_workbook(), "inv@example.com")
    return load_workbook(io.BytesIO(out))


def test_banner_row_is_inserted_and_content_shifts_down():
    ws = _watermarked()["PnL"]

    assert ws["A1"].value == "CONFIDENTIAL - inv@example.com"
    assert ws["A2"].value == "Revenue"
    assert ws["B2"].value == 100
    assert ws["A4"].value == "Merged note"


def test_banner_font_is_italic_semi_transparent_gray():
    font = _watermarked()["PnL"]["A1"].font
    assert font.italic is True
    assert font.bold is True
    assert font.color.rgb == "40808080"


def test_existing_merges_move_with_their_rows_and_banner_spans_used_columns():
    wb = _watermarked()
    narrow = {str(r) for r in wb["PnL"].merged_cells.ranges}
    wide = {str(r) for r in wb["Wide"].merged_cells.ranges}

    # At least five columns, more when the sheet is wider.
    assert narrow == {"A1:E1", "A4:B4"}
    assert wide == {"A1:H1"}


def test_every_sheet_gets_header_and_footer():
    for ws in _watermarked().worksheets:
        assert ws.oddHeader.center.text == "CONFIDENTIAL - inv@example.com"
        assert ws.evenHeader.center.text == "CONFIDENTIAL - inv@example.com"
        assert ws.oddFooter.center.text == "inv@example.com - Downloaded from Investor Dataroom"
        assert ws.evenFooter.center.text == "inv@example.com - Downloaded from Investor Dataroom"


@pytest.mark.parametrize("data", [b"not a workbook", b"PK\x03\x04broken"])
def test_unreadable_workbook_raises_render_error(data):
    with pytest.raises(RenderError):
        watermark_excel(data, "inv@example.com")
