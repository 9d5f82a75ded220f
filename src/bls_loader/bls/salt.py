# salt.py
"""
State alternative measures of labor underutilization (SALT)

BLS publishes four-quarter moving averages of the U-1 to U-6 measures for
every state as one spreadsheet (stalt-moave.xlsx). get_salt() reads it,
turns the measures into proportions and adds the derived measures, the
cross-state quartiles and the prior-quarter / prior-year values that the
state comparisons use.
"""
import io
import logging
from typing import List, Optional

import pandas as pd

from bls_loader.config import settings
from bls_loader.bls.flat_file_client import FlatFileClient
from bls_loader.utils.data_transform import period_to_date

log = logging.getLogger(__name__)

SALT_DROP_COLUMNS = ["record", "start year", "start quarter", "end year", "end quarter", "unique period"]

# Measures summarised across states for every date
QUARTILE_MEASURES = ["u1", "u2", "u3", "u4b", "u5b"]

# Rows per state between a quarter and the same quarter a year earlier
QUARTERS_PER_YEAR = 4

MEASURE_PATTERN = r"^u[0-9]"


def read_salt_workbook(content: bytes) -> pd.DataFrame:
    """The spreadsheet's table; its first row is a title above the header"""
    frame = pd.read_excel(io.BytesIO(content), skiprows=1)
    frame.columns = [str(c).strip().lower() for c in frame.columns]
    return frame


def _quarter_end_dates(frame: pd.DataFrame) -> pd.Series:
    dates = [
        period_to_date(year, f"Q0{int(quarter)}") if pd.notna(quarter) else None
        for year, quarter in zip(frame["end year"], frame["end quarter"])
    ]
    return pd.to_datetime(pd.Series(dates, index=frame.index, dtype="object"), errors="coerce")


def add_derived_measures(frame: pd.DataFrame) -> pd.DataFrame:
    """
    Measures built from the published counts and rates

    The 'b' measures isolate one component of the wider measure (u4b is the
    discouraged-worker share), the 'c' measures are what remains.
    """
    frame = frame.copy()
    frame["not_job_losers"] = frame["unemployed"] - frame["job_losers"]
    frame["unemployed_under_14_weeks"] = frame["unemployed"] - frame["unemployed_15+_weeks"]
    frame["losers_notlosers_ratio"] = frame["job_losers"] / frame["not_job_losers"]
    frame["u1b"] = frame["u3"] - frame["u1"]
    frame["u2b"] = frame["u3"] - frame["u2"]

    labor_force = frame["civilian_labor_force"]
    discouraged = frame["discouraged_workers"]
    frame["u4b"] = discouraged / (labor_force + discouraged)
    frame["u4c"] = frame["u4"] - frame["u4b"]

    other_attached = frame["all_marginally_attached"] - discouraged
    frame["marginally_attached_not_discouraged"] = other_attached
    frame["u5b"] = other_attached / (labor_force + other_attached)
    frame["u5c"] = frame["u5"] - discouraged / (labor_force + discouraged + other_attached) - frame["u5b"]
    frame["u6b"] = frame["involuntary_part_time_employed"] / labor_force
    return frame


def add_quartiles(frame: pd.DataFrame) -> pd.DataFrame:
    """25th, 50th and 75th percentile of each measure across the rows of each date"""
    frame = frame.copy()
    by_date = frame.groupby("date")
    for measure in QUARTILE_MEASURES:
        for pct in (25, 50, 75):
            frame[f"{measure}_{pct}"] = by_date[measure].transform(lambda s, q=pct / 100: s.quantile(q))
    return frame


def add_lagged_measures(frame: pd.DataFrame) -> pd.DataFrame:
    """py_<measure> is the value a year earlier, pq_<measure> a quarter earlier, within each state"""
    frame = frame.sort_values(["state", "date"], kind="stable").reset_index(drop=True)
    measures: List[str] = list(frame.filter(regex=MEASURE_PATTERN).columns)
    by_state = frame.groupby("state")[measures]
    prior_year = by_state.shift(QUARTERS_PER_YEAR).add_prefix("py_")
    prior_quarter = by_state.shift(1).add_prefix("pq_")
    return pd.concat([frame, prior_year, prior_quarter], axis=1)


def clean_salt(frame: pd.DataFrame, only_states: bool = True) -> pd.DataFrame:
    """
    Turn the raw spreadsheet table into the analysis table

    Args:
        frame: Output of read_salt_workbook()
        only_states: Keep only rows whose FIPS code has two digits

    Returns:
        pd.DataFrame with snake_case columns, measures as proportions
        (u-3 -> u3), a quarter date and a 'YYYYQn' period_name
    """
    frame = frame.copy()
    frame["date"] = _quarter_end_dates(frame)
    frame = frame.drop(columns=[c for c in SALT_DROP_COLUMNS if c in frame.columns])

    measures = [c for c in frame.columns if c.startswith("u-")]
    frame[measures] = frame[measures] / 100
    frame = frame.rename(columns={c: c.replace("-", "", 1) for c in measures})
    frame.columns = [c.replace(" ", "_") for c in frame.columns]

    frame = add_derived_measures(frame)
    frame["period_name"] = frame["date"].dt.to_period("Q").astype(str)

    if only_states:
        frame = frame[frame["fips"].astype(str).str.len() == 2].reset_index(drop=True)

    frame = add_quartiles(frame)
    return add_lagged_measures(frame)


def get_salt(only_states: bool = True, client: Optional[FlatFileClient] = None) -> pd.DataFrame:
    """
    Download and prepare the state alternative measures spreadsheet

    Args:
        only_states: Drop rows that are not states (FIPS codes longer than two)
        client: FlatFileClient used for the download

    Raises:
        FetchError / FormatError: the spreadsheet could not be downloaded
    """
    client = client or FlatFileClient()
    url = settings.bls.salt_url
    log.info(f"Downloading state alternative measures from {url}")
    body = client.fetch(url)
    frame = clean_salt(read_salt_workbook(body.content), only_states=only_states)
    log.info(f"SALT: {len(frame):,} rows x {frame.shape[1]} columns")
    return frame
