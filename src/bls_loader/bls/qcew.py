# qcew.py
"""
Quarterly Census of Employment and Wages data slices

QCEW is not part of the time.series archive. BLS publishes it as CSV slices
at <api>/<year>/<quarter>/industry/<code>.csv and <api>/<year>/<quarter>/area/<fips>.csv,
where quarter is 1-4 or 'a' for annual averages. Slices exist from 2014.
"""
import io
import logging
from datetime import date
from typing import List, Optional

import pandas as pd

from bls_loader.config import settings
from bls_loader.bls.exceptions import DatasetError, FetchError, FormatError
from bls_loader.bls.flat_file_client import FlatFileClient
from bls_loader.utils.data_transform import period_to_date

log = logging.getLogger(__name__)

FIRST_SLICE_YEAR = 2014

# Codes that look numeric but must keep their leading zeros
QCEW_TEXT_COLUMNS = {"area_fips": str, "industry_code": str}


def default_qcew_year(today: Optional[date] = None) -> int:
    """Year of the date six months ago; recent quarters are not out yet"""
    today = today or date.today()
    month = today.month - 6
    return today.year if month > 0 else today.year - 1


def slice_url(year: int, quarter: str, industry_code: Optional[str] = None, area_code: Optional[str] = None) -> str:
    """
    URL of one slice

    Examples:
        >>> slice_url(2024, "1", industry_code="31-33")
        'https://data.bls.gov/cew/data/api/2024/1/industry/31_33.csv'
    """
    base = settings.bls.qcew_base_url
    if industry_code is not None:
        # The API spells hyphenated NAICS ranges with underscores
        return f"{base}/{year}/{quarter}/industry/{industry_code.replace('-', '_')}.csv"
    return f"{base}/{year}/{quarter}/area/{area_code}.csv"


def add_qcew_date(frame: pd.DataFrame, period_type: str) -> pd.DataFrame:
    """First day of the quarter, or January 1st for annual slices"""
    if period_type == "quarter":
        periods = [f"Q0{str(q).strip()}" for q in frame["qtr"]]
    else:
        periods = ["A01"] * len(frame)
    dates = [period_to_date(year, period) for year, period in zip(frame["year"], periods)]
    frame = frame.copy()
    frame["date"] = pd.to_datetime(pd.Series(dates, index=frame.index, dtype="object"), errors="coerce")
    return frame


def get_qcew(
    period_type: str = "quarter",
    year_start: Optional[int] = None,
    year_end: Optional[int] = None,
    industry_code: Optional[str] = None,
    area_code: Optional[str] = None,
    client: Optional[FlatFileClient] = None,
) -> pd.DataFrame:
    """
    Stack QCEW slices for one industry or one area over a range of years

    Args:
        period_type: 'quarter' (quarters 1-4) or 'year' (annual averages)
        year_start: First year (default: the year six months ago)
        year_end: Last year (default: the year six months ago)
        industry_code: NAICS code such as '10' or '31-33'
        area_code: Area FIPS code such as 'US000' or '26000'
        client: FlatFileClient used for every slice

    Returns:
        pd.DataFrame with a date column; slices that could not be fetched
        (typically quarters not yet released) are skipped with a warning

    Raises:
        ValueError: bad period_type, or not exactly one of industry_code / area_code
        DatasetError: no slice could be fetched
    """
    if period_type not in ("quarter", "year"):
        raise ValueError("period_type must be either 'quarter' or 'year'")
    if industry_code is None and area_code is None:
        raise ValueError("You must provide either an industry_code or an area_code")
    if industry_code is not None and area_code is not None:
        raise ValueError("Provide only one of industry_code or area_code, not both")

    default_year = default_qcew_year()
    year_start = year_start if year_start is not None else default_year
    year_end = year_end if year_end is not None else default_year
    if year_start < FIRST_SLICE_YEAR:
        log.warning(f"QCEW slices start in {FIRST_SLICE_YEAR}; earlier years will not be found")

    client = client or FlatFileClient()
    quarters = ["1", "2", "3", "4"] if period_type == "quarter" else ["a"]
    frames: List[pd.DataFrame] = []

    for year in range(year_start, year_end + 1):
        for quarter in quarters:
            url = slice_url(year, quarter, industry_code=industry_code, area_code=area_code)
            log.info(f"Accessing: {url}")
            try:
                body = client.fetch(url)
            except (FetchError, FormatError) as e:
                log.warning(f"Could not fetch data for {url}: {e}")
                continue
            frames.append(pd.read_csv(io.BytesIO(body.content), dtype=QCEW_TEXT_COLUMNS))

    if not frames:
        raise DatasetError("No QCEW data was retrieved; check the parameters and the connection")

    data = pd.concat(frames, ignore_index=True, sort=False)
    data = add_qcew_date(data, period_type)
    log.info(f"QCEW: {len(frames)} slice(s), {len(data):,} rows")
    return data
