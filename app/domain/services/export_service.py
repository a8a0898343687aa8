"""
Report export - NDR ride statistics as a formatted XLSX workbook (openpyxl)
"""
import io
from datetime import datetime
from typing import Any, Iterable

from openpyxl import Workbook
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side
from openpyxl.utils import get_column_letter

from app.core.logging import log_sync_operation
from app.core.time_utils import format_date

_HEADER_FILL = PatternFill(start_color="7F1D1D", end_color="7F1D1D", fill_type="solid")
_HEADER_FONT = Font(name="Arial", bold=True, color="FFFFFF", size=11)
_TITLE_FONT = Font(name="Arial", bold=True, size=14)
_SUBTITLE_FONT = Font(name="Arial", size=10, color="666666")
_TOTAL_FONT = Font(name="Arial", bold=True, size=11)
_TOTAL_FILL = PatternFill(start_color="FDE2E2", end_color="FDE2E2", fill_type="solid")
_THIN = Side(style="thin")
_BORDER = Border(left=_THIN, right=_THIN, top=_THIN, bottom=_THIN)
_TEXT_ALIGN = Alignment(horizontal="left", vertical="center", wrap_text=True)
_NUMBER_ALIGN = Alignment(horizontal="right", vertical="center")

# Excel treats cells starting with these as formulas
_FORMULA_PREFIXES = ("=", "+", "-", "@", "\t", "\r")

NDR_REPORT_COLUMNS = [
    ("Date", "event_date"),
    ("Event", "event_name"),
    ("Status", "status"),
    ("Cars", "available_cars"),
    ("Completed rides", "completed_rides"),
    ("Completed riders", "completed_riders"),
    ("Cancelled rides", "cancelled_rides"),
    ("Cancelled riders", "cancelled_riders"),
    ("Terminated rides", "terminated_rides"),
    ("Terminated riders", "terminated_riders"),
]

_TOTALLED = {key for _, key in NDR_REPORT_COLUMNS[4:]}


def _sanitize_text(value: Any) -> Any:
    """Prefix formula-looking text with a quote so Excel shows it literally"""
    if isinstance(value, str) and value and value[0] in _FORMULA_PREFIXES:
        return f"'{value}"
    return value


def _auto_fit_columns(ws: Any) -> None:
    for col_cells in ws.columns:
        longest = max((len(str(c.value)) for c in col_cells if c.value is not None), default=0)
        ws.column_dimensions[get_column_letter(col_cells[0].column)].width = min(max(longest + 4, 10), 40)


def _style_row(ws: Any, row: int, col_count: int, font: Font | None = None, fill: PatternFill | None = None) -> None:
    for col in range(1, col_count + 1):
        cell = ws.cell(row=row, column=col)
        cell.border = _BORDER
        cell.alignment = _NUMBER_ALIGN if isinstance(cell.value, (int, float)) else _TEXT_ALIGN
        if font is not None:
            cell.font = font
        if fill is not None:
            cell.fill = fill


def _cell_value(ndr: Any, key: str) -> Any:
    value = getattr(ndr, key)
    if key == "event_date" and isinstance(value, datetime):
        return format_date(value)
    if key == "status":
        return value.value if hasattr(value, "value") else str(value)
    if key in _TOTALLED or key == "available_cars":
        return value or 0
    return _sanitize_text(value or "")


@log_sync_operation("ndr.export_report")
def generate_ndr_report_excel(ndrs: Iterable[Any], generated_at: datetime) -> bytes:
    """One row per NDR with its final ride counters and a totals row"""
    wb = Workbook()
    ws = wb.active
    ws.title = "NDR report"

    ws.cell(row=1, column=1, value="Night Duty Run Report").font = _TITLE_FONT
    ws.cell(row=2, column=1, value=f"Generated {format_date(generated_at)}").font = _SUBTITLE_FONT

    header_row = 4
    col_count = len(NDR_REPORT_COLUMNS)
    for col, (title, _) in enumerate(NDR_REPORT_COLUMNS, start=1):
        ws.cell(row=header_row, column=col, value=title)
    _style_row(ws, header_row, col_count, font=_HEADER_FONT, fill=_HEADER_FILL)

    totals = {key: 0 for key in _TOTALLED}
    row = header_row
    for ndr in ndrs:
        row += 1
        for col, (_, key) in enumerate(NDR_REPORT_COLUMNS, start=1):
            value = _cell_value(ndr, key)
            ws.cell(row=row, column=col, value=value)
            if key in totals:
                totals[key] += value
        _style_row(ws, row, col_count)

    row += 1
    ws.cell(row=row, column=1, value="Total")
    for col, (_, key) in enumerate(NDR_REPORT_COLUMNS, start=1):
        if key in totals:
            ws.cell(row=row, column=col, value=totals[key])
    _style_row(ws, row, col_count, font=_TOTAL_FONT, fill=_TOTAL_FILL)

    ws.freeze_panes = ws.cell(row=header_row + 1, column=1)
    _auto_fit_columns(ws)

    buffer = io.BytesIO()
    wb.save(buffer)
    return buffer.getvalue()
