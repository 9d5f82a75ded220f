"""
Data Transformation Utilities
Post-processing for joined BLS tables: numeric values, dates built from
year + period codes, and pruning of internal code columns
"""
import re
import logging
from datetime import date
from typing import Iterable, List, Optional, Tuple

import pandas as pd

log = logging.getLogger(__name__)

# Quarter -> first month of the quarter
QUARTER_START_MONTHS = {1: 1, 2: 4, 3: 7, 4: 10}

# Annual averages and whole-year periods are dated January 1st
ANNUAL_PERIODS = {"M13", "Q05", "S03", "A01"}

# Series-file bookkeeping columns with no analytical use
HOUSEKEEPING_COLUMNS = [
    "begin_year", "begin_period", "end_year", "end_period",
    "selectable", "sort_sequence", "display_level",
]

# Descriptive columns that pair with an X_code column
CODE_PARTNER_SUFFIXES = ("_text", "_name", "_title")

_PERIOD_RE = re.compile(r"^([MQSA])(\d{2})$")


def period_to_month(period: Optional[str]) -> Optional[int]:
    """
    Month in which a BLS period code starts

    Args:
        period: Period code such as 'M01', 'M13', 'Q02', 'S01', 'A01'

    Returns:
        Month number 1-12, or None for unknown codes

    Examples:
        >>> period_to_month('M07')
        7
        >>> period_to_month('Q03')
        7
        >>> period_to_month('M13')
        1
        >>> period_to_month('X99') is None
        True
    """
    if not isinstance(period, str):
        return None
    period = period.strip().upper()
    if period in ANNUAL_PERIODS:
        return 1

    match = _PERIOD_RE.match(period)
    if not match:
        return None
    kind, number = match.group(1), int(match.group(2))

    if kind == "M" and 1 <= number <= 12:
        return number
    if kind == "Q":
        return QUARTER_START_MONTHS.get(number)
    if kind == "S" and number in (1, 2):
        return 1 if number == 1 else 7
    return None


def period_to_date(year, period: Optional[str]) -> Optional[date]:
    """
    First day of the period

    Examples:
        >>> period_to_date(2020, 'M13')
        datetime.date(2020, 1, 1)
        >>> period_to_date('2021', 'Q02')
        datetime.date(2021, 4, 1)
    """
    month = period_to_month(period)
    if month is None:
        return None
    try:
        year = int(str(year).strip())
    except (TypeError, ValueError):
        return None
    if not 1 <= year <= 9999:
        return None
    return date(year, month, 1)


def coerce_value(frame: pd.DataFrame, column: str = "value") -> Tuple[pd.DataFrame, int]:
    """
    Convert the value column to numbers

    Tokens that are not numeric (footnote markers such as '-' or '(NA)')
    become NaN instead of raising.

    Returns:
        (frame, number of non-blank tokens that could not be converted)
    """
    if column not in frame.columns:
        return frame, 0

    text = frame[column].fillna("").astype(str).str.strip()
    numeric = pd.to_numeric(text, errors="coerce")
    failed = int((numeric.isna() & (text != "")).sum())
    if failed:
        log.debug(f"{failed:,} '{column}' token(s) could not be parsed as numbers")

    frame = frame.copy()
    frame[column] = numeric.astype("float64")
    return frame, failed


def add_date_column(frame: pd.DataFrame, year_column: str = "year", period_column: str = "period") -> pd.DataFrame:
    """
    Add a 'date' column built from year + period

    Rows with an unrecognised period get NaT rather than a guessed date.
    """
    if year_column not in frame.columns or period_column not in frame.columns:
        return frame

    dates = [
        period_to_date(year, period)
        for year, period in zip(frame[year_column], frame[period_column])
    ]
    frame = frame.copy()
    frame["date"] = pd.to_datetime(pd.Series(dates, index=frame.index, dtype="object"), errors="coerce")
    return frame


def code_columns_with_partner(columns: Iterable[str]) -> List[str]:
    """
    X_code columns whose descriptive X_text / X_name / X_title partner is present

    Examples:
        >>> code_columns_with_partner(['area_code', 'area_text', 'seasonal_code'])
        ['area_code']
    """
    columns = list(columns)
    present = set(columns)
    out = []
    for col in columns:
        if not col.endswith("_code"):
            continue
        stem = col[: -len("_code")]
        if any(stem + suffix in present for suffix in CODE_PARTNER_SUFFIXES):
            out.append(col)
    return out


def drop_code_columns(frame: pd.DataFrame, require_partner: bool = True) -> Tuple[pd.DataFrame, List[str]]:
    """
    Remove internal code columns

    Args:
        frame: Joined table
        require_partner: If True, only drop codes whose descriptive column was
            joined in; if False, drop every column containing '_code'
            (footnote_codes included)

    Returns:
        (frame, dropped column names)
    """
    if require_partner:
        to_drop = code_columns_with_partner(frame.columns)
    else:
        to_drop = [c for c in frame.columns if "_code" in c]
    return frame.drop(columns=to_drop), to_drop


def drop_columns(frame: pd.DataFrame, columns: Iterable[str]) -> Tuple[pd.DataFrame, List[str]]:
    """Drop whichever of the named columns exist."""
    to_drop = [c for c in columns if c in frame.columns]
    return frame.drop(columns=to_drop), to_drop
