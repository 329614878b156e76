"""Export writer — merged rows to ``.xlsx`` or ``.csv``."""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime
from pathlib import Path
from typing import Any

import pandas as pd
from openpyxl import Workbook
from openpyxl.styles import Alignment, Font, PatternFill
from openpyxl.utils import get_column_letter
from openpyxl.worksheet.worksheet import Worksheet

from spreadsheet_merge.models import MergedRow

SHEET_NAME = "Merged Data"
DEFAULT_FILENAME = "merged_data.xlsx"

# ── Style constants ──────────────────────────────────────────────

HEADER_FONT = Font(name="Calibri", bold=True, size=11, color="FFFFFF")
HEADER_FILL = PatternFill(start_color="2F5496", end_color="2F5496", fill_type="solid")
HEADER_ALIGN = Alignment(horizontal="center", vertical="center", wrap_text=True)

_AUTO_WIDTH_SAMPLE_ROWS = 300
_MAX_COLUMN_WIDTH = 40
_EXCEL_FORMULA_PREFIXES = ("=", "+", "-", "@")


# ── Helpers ──────────────────────────────────────────────────────


def _style_header(ws: Worksheet, ncols: int) -> None:
    for c in range(1, ncols + 1):
        cell = ws.cell(row=1, column=c)
        cell.font = HEADER_FONT
        cell.fill = HEADER_FILL
        cell.alignment = HEADER_ALIGN


def _auto_width(ws: Worksheet) -> None:
    max_row = min(ws.max_row, _AUTO_WIDTH_SAMPLE_ROWS + 1)  # include header row
    for c_idx in range(1, ws.max_column + 1):
        letter = get_column_letter(c_idx)
        width = 0
        for row in ws.iter_rows(min_row=1, max_row=max_row, min_col=c_idx, max_col=c_idx):
            width = max(width, len(str(row[0].value or "")))
        ws.column_dimensions[letter].width = min(width + 4, _MAX_COLUMN_WIDTH)


def _excel_value(val: Any) -> Any:
    if val is None:
        return None
    if isinstance(val, datetime) and val.tzinfo:
        return val.replace(tzinfo=None)
    if isinstance(val, str):
        if val.startswith("'"):
            return val
        stripped = val.lstrip()
        # A bare "-" or "+" sign followed by digits is a number typed as text, not a formula.
        if stripped and stripped[0] in _EXCEL_FORMULA_PREFIXES and not _looks_numeric(stripped):
            return f"'{val}"
    return val


def _looks_numeric(text: str) -> bool:
    try:
        float(text)
    except ValueError:
        return False
    return True


def merged_frame(rows: Sequence[MergedRow], standard_headers: Sequence[str]) -> pd.DataFrame:
    """Provenance-free DataFrame with columns in standard header order."""
    records = [row.to_record(include_source=False) for row in rows]
    return pd.DataFrame(records, columns=list(standard_headers), dtype=object)


def _frame_to_sheet(wb: Workbook, df: pd.DataFrame) -> Worksheet:
    ws = wb.create_sheet(title=SHEET_NAME)
    col_names = list(df.columns)
    for c_idx, col_name in enumerate(col_names, 1):
        ws.cell(row=1, column=c_idx, value=col_name)
    for r_idx, row_vals in enumerate(df.itertuples(index=False, name=None), 2):
        for c_idx, val in enumerate(row_vals, 1):
            ws.cell(row=r_idx, column=c_idx, value=_excel_value(val))
    if col_names:
        _style_header(ws, len(col_names))
        ws.freeze_panes = "A2"
        if len(df) > 0:
            ws.auto_filter.ref = ws.dimensions
        _auto_width(ws)
    return ws


# ── Public API ───────────────────────────────────────────────────


def write_workbook(path: Path, rows: Sequence[MergedRow], standard_headers: Sequence[str]) -> Path:
    """Write a single-sheet workbook named ``Merged Data`` and return the path."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    wb = Workbook()
    active_sheet = wb.active
    if active_sheet is not None:
        wb.remove(active_sheet)  # remove default sheet
    _frame_to_sheet(wb, merged_frame(rows, standard_headers))

    tmp_path = path.with_name(f"{path.stem}.tmp{path.suffix}")
    wb.save(tmp_path)
    tmp_path.replace(path)
    return path


def write_csv(path: Path, rows: Sequence[MergedRow], standard_headers: Sequence[str]) -> Path:
    """Write the merged rows as UTF-8 CSV and return the path."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_name(f"{path.stem}.tmp{path.suffix}")
    merged_frame(rows, standard_headers).to_csv(tmp_path, index=False, encoding="utf-8")
    tmp_path.replace(path)
    return path


def write_merged(path: Path, rows: Sequence[MergedRow], standard_headers: Sequence[str]) -> Path:
    """Export *rows* to *path*; the format follows the file extension."""
    suffix = Path(path).suffix.lower()
    if suffix == ".xlsx":
        return write_workbook(path, rows, standard_headers)
    if suffix == ".csv":
        return write_csv(path, rows, standard_headers)
    raise ValueError(f"Unsupported export type: {suffix!r}. Use .xlsx or .csv")
