"""Data ingestion module for the project margin reconciler.

Handles reading, cleaning, and normalizing the two source tables:
- Revenue (CSV or the "Revenue" sheet of an .xlsx workbook)
- Expenses (CSV or the "Expenses" sheet of an .xlsx workbook)

Every cell is read as a string; the value parsers below turn the free-text
amounts, image counts, and dates into typed values without ever raising.
"""

import math
import re
from concurrent.futures import ThreadPoolExecutor
from datetime import date, datetime
from pathlib import Path
from zipfile import BadZipFile

import pandas as pd

from src.schema.models import UNKNOWN_MONTH, RawRow, SourceTable


class IngestionError(Exception):
    """Raised when a source table cannot be retrieved as a whole."""


# ---------------------------------------------------------------------------
# Value parsers
# ---------------------------------------------------------------------------

_STRIP_CHARS = re.compile(r"[$€£,]")
_LEADING_NUMBER = re.compile(r"^[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?")


def _is_blank(value) -> bool:
    if value is None:
        return True
    try:
        if pd.isna(value):
            return True
    except (TypeError, ValueError):
        pass
    return False


def parse_amount(value) -> float:
    """Parse a free-text monetary value, returning 0.0 when unparseable.

    Examples:
        "$1,200.50" -> 1200.5
        "-$50"      -> -50.0
        "12 USD"    -> 12.0
        "12 34"     -> 12.0
        ""          -> 0.0
        "abc"       -> 0.0
    """
    if _is_blank(value):
        return 0.0
    if isinstance(value, (int, float)):
        return float(value) if math.isfinite(value) else 0.0
    s = _STRIP_CHARS.sub("", str(value)).strip()
    match = _LEADING_NUMBER.match(s)
    if not match:
        return 0.0
    try:
        result = float(match.group(0))
    except ValueError:
        return 0.0
    return result if math.isfinite(result) else 0.0


def parse_image_count(value) -> float:
    """Parse an image count; negative or unparseable values count as 0."""
    return max(parse_amount(value), 0.0)


# A bare day/month or weekday gets its missing fields filled from today's
# date by the parser, so a resolvable date must carry a year.
_HAS_YEAR = re.compile(r"\d{4}|\d+[/-]\d+[/-]\d+")


def _parse_calendar_date(s: str):
    """Lenient parse; month-first for ambiguous ``A/B/C`` dates."""
    if not _HAS_YEAR.search(s):
        return None
    try:
        ts = pd.to_datetime(s, errors="coerce")
    except (ValueError, OverflowError):
        return None
    if pd.isna(ts):
        return None
    return ts


def _parse_day_first(s: str) -> date | None:
    """Reinterpret an ``A/B/C`` string as day/month/year."""
    parts = [p.strip() for p in s.split("/")]
    if len(parts) != 3 or not all(p.isdigit() for p in parts):
        return None
    day, month, year = (int(p) for p in parts)
    if len(parts[2]) == 2:
        year += 2000
    try:
        return date(year, month, day)
    except ValueError:
        return None


def resolve_month(value) -> str | None:
    """Resolve a free-text date to a ``YYYY-MM`` key.

    Examples:
        "2024-01-15" -> "2024-01"
        "01/15/2024" -> "2024-01"   (month-first parse)
        "1/15/2024 9:00" -> "2024-01"
        "31/01/2024" -> "2024-01"   (day-first fallback)
        ""           -> None
    """
    if _is_blank(value):
        return None
    if isinstance(value, (datetime, date)):
        return f"{value.year:04d}-{value.month:02d}"
    s = str(value).strip()
    if not s:
        return None
    resolved = _parse_calendar_date(s)
    if resolved is None:
        resolved = _parse_day_first(s)
    if resolved is None:
        return None
    return f"{resolved.year:04d}-{resolved.month:02d}"


def month_or_unknown(value) -> str:
    """Like :func:`resolve_month` but maps unresolved dates to ``"Unknown"``."""
    return resolve_month(value) or UNKNOWN_MONTH


# ---------------------------------------------------------------------------
# Column cleaning
# ---------------------------------------------------------------------------

def clean_columns(df):
    """Strip whitespace and byte-order marks from column names."""
    df.columns = [c.replace("\ufeff", "").strip() if isinstance(c, str) else c
                  for c in df.columns]
    return df


def clean_values(df):
    """Trim every cell and replace missing cells with empty strings."""
    df = df.fillna("")
    return df.apply(lambda col: col.astype(str).str.strip())


# ---------------------------------------------------------------------------
# Encoding detection and table reading
# ---------------------------------------------------------------------------

def detect_encoding(path):
    """Detect whether a file is UTF-16 LE (with BOM) or UTF-8.

    Returns (encoding, delimiter) tuple.
    """
    with open(path, "rb") as f:
        raw = f.read(4)
    if raw[:2] == b"\xff\xfe":
        return "utf-16-le", "\t"
    return "utf-8", ","


def read_csv_auto(path):
    """Read a CSV file as strings with automatic encoding detection."""
    encoding, sep = detect_encoding(path)
    df = pd.read_csv(path, encoding=encoding, sep=sep, dtype=str,
                     keep_default_na=False)
    return clean_values(clean_columns(df))


_EXCEL_SUFFIXES = {".xlsx", ".xlsm"}


def read_table(path, sheet_name=0):
    """Read one source table from a CSV file or a workbook sheet.

    Raises:
        IngestionError: If the file is missing or cannot be read.
    """
    path = Path(path)
    if not path.exists():
        raise IngestionError(f"Data file not found: {path}")
    try:
        if path.suffix.lower() in _EXCEL_SUFFIXES:
            df = pd.read_excel(path, sheet_name=sheet_name, dtype=str,
                               engine="openpyxl")
            return clean_values(clean_columns(df))
        return read_csv_auto(path)
    except (OSError, ValueError, BadZipFile) as exc:
        raise IngestionError(f"Could not read {path}: {exc}") from exc


def read_workbook(path):
    """Read the Revenue and Expenses sheets of one workbook.

    Returns a dict of DataFrames keyed by :class:`SourceTable`.

    Raises:
        IngestionError: If the workbook or either sheet is missing.
    """
    path = Path(path)
    if not path.exists():
        raise IngestionError(f"Workbook not found: {path}")
    try:
        xl = pd.ExcelFile(path, engine="openpyxl")
    except (OSError, ValueError, BadZipFile) as exc:
        raise IngestionError(f"Could not open workbook {path}: {exc}") from exc

    try:
        available = xl.sheet_names
        result = {}
        for source in SourceTable:
            if source.sheet_name not in available:
                raise IngestionError(
                    f"Workbook {path} has no '{source.sheet_name}' sheet "
                    f"(found: {', '.join(available)})"
                )
            df = xl.parse(source.sheet_name, dtype=str)
            result[source] = clean_values(clean_columns(df))
    finally:
        xl.close()
    return result


# ---------------------------------------------------------------------------
# Row extraction
# ---------------------------------------------------------------------------

def rows_from_frame(df, source: SourceTable) -> list[RawRow]:
    """Convert a source DataFrame into structured rows."""
    if df is None or df.empty:
        return []
    return [RawRow.from_mapping(record, source)
            for record in df.to_dict(orient="records")]


def ingest_sources(revenue_path, expenses_path):
    """Read both source tables and return their rows.

    The two reads are independent and run concurrently. If either fails the
    whole attempt fails; no partial result is returned.

    Returns:
        Dict mapping :class:`SourceTable` to a list of :class:`RawRow`.

    Raises:
        IngestionError: If either table cannot be read.
    """
    paths = {
        SourceTable.REVENUE: revenue_path,
        SourceTable.EXPENSES: expenses_path,
    }
    with ThreadPoolExecutor(max_workers=2) as pool:
        futures = {source: pool.submit(read_table, path)
                   for source, path in paths.items()}
        frames = {source: future.result() for source, future in futures.items()}
    return {source: rows_from_frame(df, source) for source, df in frames.items()}


def ingest_workbook(path):
    """Read both source tables from the sheets of a single workbook."""
    frames = read_workbook(path)
    return {source: rows_from_frame(df, source) for source, df in frames.items()}


# ---------------------------------------------------------------------------
# Source type registry
# ---------------------------------------------------------------------------

SOURCE_TYPES = {
    "revenue": SourceTable.REVENUE,
    "expenses": SourceTable.EXPENSES,
}


def ingest(path, source_type):
    """Ingest a single source table file by source type.

    Args:
        path: Path to a CSV or workbook file.
        source_type: One of 'revenue', 'expenses'.

    Returns:
        List of :class:`RawRow`.

    Raises:
        ValueError: If source_type is not recognized.
        IngestionError: If the file cannot be read.
    """
    if source_type not in SOURCE_TYPES:
        raise ValueError(
            f"Unknown source type '{source_type}'. "
            f"Valid types: {', '.join(sorted(SOURCE_TYPES))}"
        )
    source = SOURCE_TYPES[source_type]
    sheet = source.sheet_name if Path(path).suffix.lower() in _EXCEL_SUFFIXES else 0
    return rows_from_frame(read_table(path, sheet_name=sheet), source)
