"""I/O helpers — load input files, write JSON artifacts."""

from __future__ import annotations

import csv
import json
from datetime import date, datetime
from pathlib import Path
from typing import Any, Callable, cast

import pandas as pd

from spreadsheet_merge.models import Scalar, SourceFile

EXCEL_SUFFIXES = (".xlsx", ".xlsm", ".xltx", ".xltm")
SUPPORTED_SUFFIXES = (".csv", *EXCEL_SUFFIXES, ".xls")

CSV_DELIMITERS = ",;\t|"
_SNIFF_SAMPLE_CHARS = 64 * 1024

# Cells keep their native int/float/str type; only truly blank cells become "".
_EXCEL_READ_OPTIONS: dict[str, Any] = {"dtype": object, "keep_default_na": False, "na_values": []}


class SourceParseError(ValueError):
    """Raised when an input file cannot be turned into rows."""

    def __init__(self, path: Path, message: str) -> None:
        super().__init__(f"{Path(path).name}: {message}")
        self.path = Path(path)
        self.reason = message


# ── Loading ──────────────────────────────────────────────────────


def _sniff_delimiter(path: Path, encoding: str) -> str:
    """Guess the CSV delimiter; single-column files fall back to ``","``."""
    with path.open("r", encoding=encoding, newline="") as fh:
        sample = fh.read(_SNIFF_SAMPLE_CHARS)
    try:
        return csv.Sniffer().sniff(sample, delimiters=CSV_DELIMITERS).delimiter
    except csv.Error:
        return ","


def load_table(path: Path, delimiter: str | None = None) -> pd.DataFrame:
    """Load a CSV or Excel file and return a raw DataFrame.

    The first row is the header row.  Only the first sheet of a workbook
    is read.  Blank cells come back as empty strings.

    Raises
    ------
    FileNotFoundError
        If *path* does not exist.
    ValueError
        If *path* is a directory, the extension is not supported, or CSV
        decoding/parsing fails.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Input file not found: {path}")
    if path.is_dir():
        raise ValueError(f"Input path is a directory, not a file: {path}")

    suffix = path.suffix.lower()
    if suffix == ".csv":
        last_exc: Exception | None = None
        for encoding in ("utf-8-sig", "utf-8", "latin-1"):
            try:
                sep = delimiter or _sniff_delimiter(path, encoding)
                return pd.read_csv(
                    path,
                    dtype="string",
                    sep=sep,
                    engine="c",
                    encoding=encoding,
                    encoding_errors="strict",
                    keep_default_na=False,
                )
            except (UnicodeDecodeError, pd.errors.ParserError) as exc:
                last_exc = exc
        raise ValueError(f"Could not read CSV {path} (decode or parse failed)") from last_exc

    if suffix in EXCEL_SUFFIXES:
        read_excel = cast(Callable[..., pd.DataFrame], getattr(pd, "read_excel"))
        return read_excel(path, engine="openpyxl", sheet_name=0, **_EXCEL_READ_OPTIONS)

    if suffix == ".xls":
        try:
            read_excel = cast(Callable[..., pd.DataFrame], getattr(pd, "read_excel"))
            return read_excel(path, engine="xlrd", sheet_name=0, **_EXCEL_READ_OPTIONS)
        except ImportError as exc:
            raise ValueError(
                "Unsupported .xls input unless 'xlrd' is installed. "
                "Either convert to .xlsx or add dependency: pip install xlrd"
            ) from exc

    raise ValueError(f"Unsupported file type: {suffix!r}. Use .csv, .xlsx, or .xls")


def _cell_value(val: Any) -> Scalar:
    try:
        if pd.isna(val):
            return ""
    except (TypeError, ValueError):
        return str(val)

    if isinstance(val, pd.Timestamp):
        return val.isoformat()
    if isinstance(val, (datetime, date)):
        return val.isoformat()

    item = getattr(val, "item", None)
    if callable(item):
        val = item()
    if isinstance(val, (str, int, float, bool)):
        return val
    return str(val)


def frame_to_source(df: pd.DataFrame, name: str, *, size: int = 0) -> SourceFile:
    """Turn a loaded DataFrame into a :class:`SourceFile`."""
    headers = [str(col) for col in df.columns]
    rows = [
        {header: _cell_value(val) for header, val in zip(headers, values)}
        for values in df.itertuples(index=False, name=None)
    ]
    return SourceFile(name=name, headers=tuple(headers), rows=tuple(rows), size=size)


def read_source(path: Path) -> SourceFile:
    """Parse *path* into a :class:`SourceFile`.

    Every failure is reported as :class:`SourceParseError` so callers can
    handle one exception type per file.
    """
    path = Path(path)
    try:
        df = load_table(path)
        size = path.stat().st_size
    except SourceParseError:
        raise
    except (FileNotFoundError, ValueError, OSError) as exc:
        raise SourceParseError(path, str(exc)) from exc
    except Exception as exc:
        # openpyxl / zipfile raise a wide range of errors for corrupt workbooks
        raise SourceParseError(path, f"unreadable spreadsheet ({type(exc).__name__}: {exc})") from exc
    return frame_to_source(df, path.name, size=size)


# ── Writing ──────────────────────────────────────────────────────


def _json_default(obj: Any) -> Any:
    if isinstance(obj, Path):
        return str(obj)
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    item = getattr(obj, "item", None)
    if callable(item):
        converted = item()
        if isinstance(converted, (str, int, float, bool)) or converted is None:
            return converted
    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")


def write_json(path: Path, data: Any) -> Path:
    """Write *data* as pretty-printed JSON to *path* (atomic + deterministic)."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    payload = json.dumps(
        data,
        indent=2,
        sort_keys=True,
        ensure_ascii=False,
        default=_json_default,
    ) + "\n"
    tmp_path = path.with_suffix(path.suffix + ".tmp")
    tmp_path.write_text(payload, encoding="utf-8")
    tmp_path.replace(path)
    return path
