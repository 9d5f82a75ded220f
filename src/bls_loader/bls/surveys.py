# surveys.py
"""
Ready-made loaders for individual BLS programs

Each SurveyDefinition lists the files a program needs, the key every lookup
joins on and the columns to leave out. The get_* functions run a definition
through collect() and apply the program's own clean-up:

  - get_jolts()         JOLTS (jt)
  - get_oews()          OEWS (oe)
  - get_ces()           State and area CES (sm)
  - get_national_ces()  National CES (ce), one of four data files
  - get_laus()          LAUS (la), one geography or state per call
"""
import logging
from dataclasses import dataclass, field, replace
from typing import Dict, List, Optional, Tuple, Union

import numpy as np
import pandas as pd

from bls_loader.config import settings
from bls_loader.bls.diagnostics import DataCollection, report_warnings
from bls_loader.bls.flat_file_cache import FlatFileCache
from bls_loader.bls.flat_file_client import FlatFileClient
from bls_loader.bls.join_orchestrator import CollectOptions, DeclaredKey, collect
from bls_loader.utils.data_transform import drop_columns

log = logging.getLogger(__name__)

# JOLTS state codes for the four census regions and the national total
JOLTS_REGION_CODES = ["MW", "NE", "SO", "WE"]
JOLTS_NATIONAL_CODES = ["00"]

RATELEVEL_LABELS = {"L": "Level", "R": "Rate"}

# Lookup bookkeeping dropped before joining
LOOKUP_DISPLAY_COLUMNS = ["display_level", "selectable", "sort_sequence"]


@dataclass
class SurveyDefinition:
    """Files and join rules for one program"""
    code: str
    label: str
    files: Dict[str, str]  # logical name -> file name; 'data' is the base
    join_keys: Dict[str, DeclaredKey] = field(default_factory=dict)
    exclude_columns: Dict[str, List[str]] = field(default_factory=dict)
    doc_url: Optional[str] = None

    def urls(self) -> Dict[str, str]:
        return {
            name: f"{settings.bls.base_url}/{self.code}/{file_name}"
            for name, file_name in self.files.items()
        }

    def with_data_file(self, file_name: str) -> "SurveyDefinition":
        """Same program, different observation file"""
        return replace(self, files={**self.files, "data": file_name})

    def options(self, **overrides) -> CollectOptions:
        return CollectOptions(
            join_keys=dict(self.join_keys),
            exclude_columns={k: list(v) for k, v in self.exclude_columns.items()},
            **overrides,
        )


JOLTS = SurveyDefinition(
    code="jt",
    label="JOLTS",
    files={
        "data": "jt.data.1.AllItems",
        "series": "jt.series",
        "state": "jt.state",
        "dataelement": "jt.dataelement",
        "area": "jt.area",
        "sizeclass": "jt.sizeclass",
        "industry": "jt.industry",
    },
    join_keys={
        "series": "series_id",
        "state": "state_code",
        "dataelement": "dataelement_code",
        "area": "area_code",
        "sizeclass": "sizeclass_code",
        "industry": "industry_code",
    },
    exclude_columns={
        "data": ["footnote_codes"],
        "series": ["footnote_codes"],
        "state": LOOKUP_DISPLAY_COLUMNS,
        "dataelement": LOOKUP_DISPLAY_COLUMNS,
        "area": LOOKUP_DISPLAY_COLUMNS,
        "sizeclass": LOOKUP_DISPLAY_COLUMNS,
        "industry": LOOKUP_DISPLAY_COLUMNS,
    },
    doc_url="https://www.bls.gov/jlt/jlt_series_changes.htm",
)

# Lookups join on whatever columns they share with the table built so far
OEWS = SurveyDefinition(
    code="oe",
    label="OEWS",
    files={
        "data": "oe.data.0.Current",
        "series": "oe.series",
        "occupation": "oe.occupation",
        "area": "oe.area",
        "datatype": "oe.datatype",
    },
    join_keys={"series": "series_id"},
    exclude_columns={
        "data": ["footnote_codes"],
        "series": ["footnote_codes"],
    },
    doc_url="https://www.bls.gov/oes/",
)

# State and metro area employment, hours and earnings
CES = SurveyDefinition(
    code="sm",
    label="CES",
    files={
        "data": "sm.data.1.AllData",
        "series": "sm.series",
        "industry": "sm.industry",
        "state": "sm.state",
        "area": "sm.area",
        "data_type": "sm.data_type",
        "supersector": "sm.supersector",
    },
    join_keys={
        "series": "series_id",
        "industry": "industry_code",
        "state": "state_code",
        "area": "area_code",
        "data_type": "data_type_code",
        "supersector": "supersector_code",
    },
    exclude_columns={
        "data": ["footnote_codes"],
        "series": ["footnote_codes"],
    },
    doc_url="https://www.bls.gov/sae/",
)

NATIONAL_CES = SurveyDefinition(
    code="ce",
    label="National CES",
    files={
        "data": "ce.data.0.AllCESSeries",
        "series": "ce.series",
        "industry": "ce.industry",
        "period": "ce.period",
        "datatype": "ce.datatype",
        "supersector": "ce.supersector",
    },
    join_keys={
        "series": "series_id",
        "industry": "industry_code",
        "period": "period",
        "datatype": "data_type_code",
        "supersector": "supersector_code",
    },
    exclude_columns={
        "data": ["footnote_codes"],
        "series": ["footnote_codes"],
    },
    doc_url="https://www.bls.gov/ces/",
)

LAUS = SurveyDefinition(
    code="la",
    label="LAUS",
    files={
        "data": "la.data.3.AllStatesS",
        "series": "la.series",
        "area": "la.area",
        "measure": "la.measure",
    },
    join_keys={
        "series": "series_id",
        "area": ["area_code", "area_type_code"],
        "measure": "measure_code",
    },
    exclude_columns={
        "data": ["footnote_codes"],
        "series": ["footnote_codes"],
    },
    doc_url="https://www.bls.gov/lau/",
)

SURVEYS: Dict[str, SurveyDefinition] = {s.code: s for s in (JOLTS, OEWS, CES, NATIONAL_CES, LAUS)}

# dataset_filter -> (data file, description)
NATIONAL_CES_DATASETS = {
    "all_data": ("ce.data.0.AllCESSeries", "Complete national CES dataset"),
    "current_seasonally_adjusted": ("ce.data.01a.CurrentSeasAE", "Seasonally adjusted all-employee series"),
    "real_earnings_all_employees": ("ce.data.02b.AllRealEarningsAE", "Real earnings for all employees"),
    "real_earnings_production": ("ce.data.03c.AllRealEarningsPE", "Real earnings for production employees"),
}

# geography -> LAUS data file
LAUS_DATA_FILES = {
    "state_current_adjusted": "la.data.1.CurrentS",
    "state_unadjusted": "la.data.2.AllStatesU",
    "state_adjusted": "la.data.3.AllStatesS",
    "region_unadjusted": "la.data.4.RegionDivisionU",
    "region_adjusted": "la.data.5.RegionDivisionS",
    "metro": "la.data.60.Metro",
    "division": "la.data.61.Division",
    "micro": "la.data.62.Micro",
    "combined": "la.data.63.Combined",
    "county": "la.data.64.County",
    "city": "la.data.65.City",
    "2025-2029": "la.data.0.CurrentU25-29",
    "2020-2024": "la.data.0.CurrentU20-24",
    "2015-2019": "la.data.0.CurrentU15-19",
    "2010-2014": "la.data.0.CurrentU10-14",
    "2005-2009": "la.data.0.CurrentU05-09",
    "2000-2004": "la.data.0.CurrentU00-04",
    "1995-1999": "la.data.0.CurrentU95-99",
    "1990-1994": "la.data.0.CurrentU90-94",
    "AL": "la.data.7.Alabama",
    "AK": "la.data.8.Alaska",
    "AZ": "la.data.9.Arizona",
    "AR": "la.data.10.Arkansas",
    "CA": "la.data.11.California",
    "CO": "la.data.12.Colorado",
    "CT": "la.data.13.Connecticut",
    "DE": "la.data.14.Delaware",
    "DC": "la.data.15.DC",
    "FL": "la.data.16.Florida",
    "GA": "la.data.17.Georgia",
    "HI": "la.data.18.Hawaii",
    "ID": "la.data.19.Idaho",
    "IL": "la.data.20.Illinois",
    "IN": "la.data.21.Indiana",
    "IA": "la.data.22.Iowa",
    "KS": "la.data.23.Kansas",
    "KY": "la.data.24.Kentucky",
    "LA": "la.data.25.Louisiana",
    "ME": "la.data.26.Maine",
    "MD": "la.data.27.Maryland",
    "MA": "la.data.28.Massachusetts",
    "MI": "la.data.29.Michigan",
    "MN": "la.data.30.Minnesota",
    "MS": "la.data.31.Mississippi",
    "MO": "la.data.32.Missouri",
    "MT": "la.data.33.Montana",
    "NE": "la.data.34.Nebraska",
    "NV": "la.data.35.Nevada",
    "NH": "la.data.36.NewHampshire",
    "NJ": "la.data.37.NewJersey",
    "NM": "la.data.38.NewMexico",
    "NY": "la.data.39.NewYork",
    "NC": "la.data.40.NorthCarolina",
    "ND": "la.data.41.NorthDakota",
    "OH": "la.data.42.Ohio",
    "OK": "la.data.43.Oklahoma",
    "OR": "la.data.44.Oregon",
    "PA": "la.data.45.Pennsylvania",
    "PR": "la.data.46.PuertoRico",
    "RI": "la.data.47.RhodeIsland",
    "SC": "la.data.48.SouthCarolina",
    "SD": "la.data.49.SouthDakota",
    "TN": "la.data.50.Tennessee",
    "TX": "la.data.51.Texas",
    "UT": "la.data.52.Utah",
    "VT": "la.data.53.Vermont",
    "VA": "la.data.54.Virginia",
    "WA": "la.data.56.Washington",
    "WV": "la.data.57.WestVirginia",
    "WI": "la.data.58.Wisconsin",
    "WY": "la.data.59.Wyoming",
}

LAUS_LARGE_GEOGRAPHIES = ("county", "city")

# CES data types published in thousands of employees
CES_THOUSANDS_DATA_TYPES = ["01", "06", "26"]

# Series bookkeeping dropped from simplified CES tables
CES_SERIES_COLUMNS = ["benchmark_year", "begin_year", "begin_period", "end_year", "end_period"]

NATIONAL_CES_SIMPLIFY_COLUMNS = [
    "series_title", "begin_year", "begin_period", "end_year", "end_period",
    "naics_code", "publishing_status", "display_level", "selectable", "sort_sequence",
]

LAUS_DROP_COLUMNS = [
    "display_level", "selectable", "sort_sequence",
    "series_title", "begin_year", "begin_period", "end_year", "end_period",
]


def _with_data(collection: DataCollection, frame: pd.DataFrame, steps: List[str]) -> DataCollection:
    summary = replace(
        collection.summary,
        final_dimensions=tuple(frame.shape),
        processing_steps=collection.summary.processing_steps + steps,
    )
    return replace(collection, data=frame, summary=summary)


def _finish(
    collection: DataCollection,
    return_diagnostics: bool,
    suppress_warnings: bool,
) -> Union[pd.DataFrame, DataCollection]:
    if not suppress_warnings and collection.has_issues():
        report_warnings(collection)
    if return_diagnostics:
        return collection
    return collection.data


def clean_jolts(
    frame: pd.DataFrame,
    monthly_only: bool = True,
    remove_regions: bool = True,
    remove_national: bool = True,
) -> Tuple[pd.DataFrame, List[str]]:
    """
    JOLTS-specific filtering and scaling of a joined table

    Levels are published in thousands and rates in percent; after this step
    levels are counts and rates are fractions. The unemployed-per-opening
    ratio (dataelement UO) is published as a plain ratio and keeps its value.

    Returns:
        (frame, processing steps)
    """
    steps = []

    if monthly_only and "period" in frame.columns:
        frame = frame[frame["period"] != "M13"]
        steps.append("Removed annual averages (M13)")

    if "state_code" in frame.columns:
        excluded = []
        if remove_regions:
            excluded += JOLTS_REGION_CODES
        if remove_national:
            excluded += JOLTS_NATIONAL_CODES
        if excluded:
            frame = frame[~frame["state_code"].isin(excluded)]
            steps.append(f"Removed state codes: {', '.join(excluded)}")

    frame = frame.reset_index(drop=True).copy()

    if "ratelevel_code" in frame.columns:
        frame["ratelevel_code"] = frame["ratelevel_code"].map(RATELEVEL_LABELS).fillna("Other")

    if "value" in frame.columns and "ratelevel_code" in frame.columns:
        value = frame["value"]
        if "dataelement_code" in frame.columns:
            value = value.where(frame["dataelement_code"] != "UO", value * 100)
        frame["value"] = np.where(frame["ratelevel_code"] == "Rate", value / 100, value * 1000)
        steps.append("Scaled rates to fractions and levels to counts")

    if "date" in frame.columns:
        frame["periodname"] = frame["date"].dt.strftime("%B")

    return frame, steps


def get_jolts(
    monthly_only: bool = True,
    remove_regions: bool = True,
    remove_national: bool = True,
    return_diagnostics: bool = False,
    suppress_warnings: bool = True,
    client: Optional[FlatFileClient] = None,
    cache: Optional[FlatFileCache] = None,
) -> Union[pd.DataFrame, DataCollection]:
    """
    Job Openings and Labor Turnover Survey, all items, with every lookup joined

    Args:
        monthly_only: Drop annual (M13) rows
        remove_regions: Drop the four census-region rows
        remove_national: Drop the national total rows
        return_diagnostics: Return the DataCollection instead of the table
        suppress_warnings: If False, log the warning report when issues exist
        client: FlatFileClient shared by every download
        cache: Optional FlatFileCache

    Returns:
        pd.DataFrame with value, date, periodname and the decoded
        ratelevel_code ('Level' / 'Rate' / 'Other'), or a DataCollection
    """
    collection = collect(
        JOLTS.urls(),
        options=JOLTS.options(coerce_value=True, derive_date=True),
        client=client,
        cache=cache,
        data_type=JOLTS.label,
    )
    frame, steps = clean_jolts(
        collection.data,
        monthly_only=monthly_only,
        remove_regions=remove_regions,
        remove_national=remove_national,
    )
    log.info(f"JOLTS: {len(frame):,} rows after filtering")
    return _finish(_with_data(collection, frame, steps), return_diagnostics, suppress_warnings)


def get_oews(
    return_diagnostics: bool = False,
    suppress_warnings: bool = True,
    client: Optional[FlatFileClient] = None,
    cache: Optional[FlatFileCache] = None,
) -> Union[pd.DataFrame, DataCollection]:
    """
    Occupational Employment and Wage Statistics, current release

    Joins the current data file with series, occupation, area and datatype
    and converts value to numeric.
    """
    collection = collect(
        OEWS.urls(),
        options=OEWS.options(coerce_value=True),
        client=client,
        cache=cache,
        data_type=OEWS.label,
    )
    return _finish(collection, return_diagnostics, suppress_warnings)


def _drop_missing_values(frame: pd.DataFrame, steps: List[str]) -> pd.DataFrame:
    if "value" not in frame.columns:
        return frame
    kept = frame[frame["value"].notna()]
    if len(kept) != len(frame):
        steps.append(f"Removed {len(frame) - len(kept):,} row(s) without a numeric value")
    return kept


def clean_ces(
    frame: pd.DataFrame,
    transform: bool = True,
    monthly_only: bool = True,
    simplify_table: bool = True,
) -> Tuple[pd.DataFrame, List[str]]:
    """
    CES (state and area) clean-up of a joined table with numeric values

    The industry code is re-read from characters 11-18 of the series id.
    With transform, employment counts published in thousands become counts
    and ', In Thousands' is removed from data_type_text. With
    simplify_table, series bookkeeping plus year and period are dropped and
    statewide totals (state_code '00') are removed.

    Returns:
        (frame, processing steps)
    """
    steps: List[str] = []

    if "series_id" in frame.columns:
        frame = frame.copy()
        frame["industry_code"] = frame["series_id"].str[10:18]
    frame = _drop_missing_values(frame, steps)

    if transform and "value" in frame.columns and "data_type_code" in frame.columns:
        frame = frame.copy()
        in_thousands = frame["data_type_code"].isin(CES_THOUSANDS_DATA_TYPES)
        frame["value"] = np.where(in_thousands, frame["value"] * 1000, frame["value"])
        if "data_type_text" in frame.columns:
            frame["data_type_text"] = frame["data_type_text"].str.replace(", In Thousands", "", regex=False)
        steps.append("Converted employment from thousands to counts")

    if monthly_only and "period" in frame.columns:
        frame = frame[frame["period"] != "M13"]
        steps.append("Removed annual averages (M13)")

    if simplify_table:
        frame, dropped = drop_columns(frame, CES_SERIES_COLUMNS + ["year", "period"])
        if dropped:
            steps.append(f"Dropped columns: {', '.join(dropped)}")
        if "state_code" in frame.columns:
            frame = frame[frame["state_code"] != "00"]
            steps.append("Removed state code 00")

    return frame.reset_index(drop=True), steps


def get_ces(
    transform: bool = True,
    monthly_only: bool = True,
    simplify_table: bool = True,
    return_diagnostics: bool = False,
    suppress_warnings: bool = False,
    client: Optional[FlatFileClient] = None,
    cache: Optional[FlatFileCache] = None,
) -> Union[pd.DataFrame, DataCollection]:
    """
    Current Employment Statistics for states and metropolitan areas (sm)

    Args:
        transform: Convert employment from thousands to counts
        monthly_only: Drop annual (M13) rows
        simplify_table: Add date, drop bookkeeping columns and statewide totals
        return_diagnostics: Return the DataCollection instead of the table
        suppress_warnings: If False, log the warning report when issues exist

    Returns:
        pd.DataFrame or DataCollection
    """
    collection = collect(
        CES.urls(),
        options=CES.options(coerce_value=True, derive_date=simplify_table),
        client=client,
        cache=cache,
        data_type=CES.label,
    )
    frame, steps = clean_ces(
        collection.data,
        transform=transform,
        monthly_only=monthly_only,
        simplify_table=simplify_table,
    )
    log.info(f"CES: {len(frame):,} rows x {frame.shape[1]} columns")
    return _finish(_with_data(collection, frame, steps), return_diagnostics, suppress_warnings)


def list_national_ces_options(show_descriptions: bool = False) -> Union[List[str], pd.DataFrame]:
    """
    dataset_filter values accepted by get_national_ces()

    Returns:
        List of filter names, or a DataFrame of filter / data_file /
        description when show_descriptions is True
    """
    if not show_descriptions:
        return list(NATIONAL_CES_DATASETS)
    return pd.DataFrame(
        [
            {"filter": name, "data_file": data_file, "description": description}
            for name, (data_file, description) in NATIONAL_CES_DATASETS.items()
        ]
    )


def get_national_ces(
    dataset_filter: str = "all_data",
    monthly_only: bool = True,
    simplify_table: bool = True,
    return_diagnostics: bool = False,
    suppress_warnings: bool = True,
    client: Optional[FlatFileClient] = None,
    cache: Optional[FlatFileCache] = None,
) -> Union[pd.DataFrame, DataCollection]:
    """
    National Current Employment Statistics (ce)

    Args:
        dataset_filter: One of list_national_ces_options(); the smaller
            files download much faster than 'all_data'
        monthly_only: Drop annual (M13) rows
        simplify_table: Drop series bookkeeping and add a date column

    Raises:
        ValueError: unknown dataset_filter
    """
    if dataset_filter not in NATIONAL_CES_DATASETS:
        raise ValueError(
            f"Invalid dataset_filter '{dataset_filter}'. Must be one of: {', '.join(NATIONAL_CES_DATASETS)}"
        )
    data_file, description = NATIONAL_CES_DATASETS[dataset_filter]
    survey = NATIONAL_CES.with_data_file(data_file)
    log.info(f"Downloading national CES datasets ({description})")

    collection = collect(
        survey.urls(),
        options=survey.options(
            coerce_value=True,
            derive_date=simplify_table,
            drop_columns=NATIONAL_CES_SIMPLIFY_COLUMNS if simplify_table else [],
        ),
        client=client,
        cache=cache,
        data_type=f"{survey.label}: {description}",
    )

    frame, steps = collection.data, []
    if monthly_only and "period" in frame.columns:
        frame = frame[frame["period"] != "M13"].reset_index(drop=True)
        steps.append("Removed annual averages (M13)")
    return _finish(_with_data(collection, frame, steps), return_diagnostics, suppress_warnings)


def clean_laus(
    frame: pd.DataFrame,
    monthly_only: bool = True,
    transform: bool = True,
) -> Tuple[pd.DataFrame, List[str]]:
    """
    LAUS clean-up of a joined table with numeric values

    With transform, every measure whose text mentions a rate or a ratio is
    divided by 100, so a 5% unemployment rate becomes 0.05.

    Returns:
        (frame, processing steps)
    """
    steps: List[str] = []
    frame = _drop_missing_values(frame, steps)

    if monthly_only and "period" in frame.columns:
        frame = frame[frame["period"] != "M13"]
        steps.append("Removed annual averages (M13)")

    frame = frame.reset_index(drop=True)

    if transform and "value" in frame.columns and "measure_text" in frame.columns:
        frame = frame.copy()
        is_rate = frame["measure_text"].fillna("").str.contains("rate|ratio", regex=True)
        frame["value"] = np.where(is_rate, frame["value"] / 100, frame["value"])
        steps.append("Converted rates and ratios to proportions")

    return frame, steps


def get_laus(
    geography: str = "state_adjusted",
    monthly_only: bool = True,
    transform: bool = True,
    return_diagnostics: bool = False,
    suppress_warnings: bool = False,
    client: Optional[FlatFileClient] = None,
    cache: Optional[FlatFileCache] = None,
) -> Union[pd.DataFrame, DataCollection]:
    """
    Local Area Unemployment Statistics (la) for one geography

    Args:
        geography: A key of LAUS_DATA_FILES: a geographic level such as
            'state_adjusted', 'metro' or 'county', a five-year block such
            as '2020-2024', or a state abbreviation ('CA', 'DC', 'PR')
        monthly_only: Drop annual (M13) rows and add a date column
        transform: Express rates and ratios as proportions

    Raises:
        ValueError: unknown geography

    Example:
        >>> laus = get_laus("metro", transform=False)
    """
    if geography not in LAUS_DATA_FILES:
        raise ValueError(f"Invalid geography '{geography}'. Valid options are: {', '.join(LAUS_DATA_FILES)}")
    if geography in LAUS_LARGE_GEOGRAPHIES:
        log.warning(f"{geography} data file is very large (>300MB)")

    survey = LAUS.with_data_file(LAUS_DATA_FILES[geography])
    collection = collect(
        survey.urls(),
        options=survey.options(
            coerce_value=True,
            derive_date=monthly_only,
            drop_columns=LAUS_DROP_COLUMNS,
        ),
        client=client,
        cache=cache,
        data_type=survey.label,
    )
    frame, steps = clean_laus(collection.data, monthly_only=monthly_only, transform=transform)
    log.info(f"LAUS ({geography}): {len(frame):,} rows")
    return _finish(_with_data(collection, frame, steps), return_diagnostics, suppress_warnings)
