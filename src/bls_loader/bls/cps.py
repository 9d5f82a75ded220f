# cps.py
"""
Current Population Survey (LN) subsets and series discovery

The LN archive is one very large observation file (ln.data.1.AllData) plus
ln.series, whose 30-odd *_code columns each have a lookup file named after
the code (ages_code -> ln.ages). Most analyses need a handful of series, so:

  - explore_cps_characteristics()  lists the characteristics and their codes
  - explore_cps_series()           searches ln.series by title and codes
  - get_cps_subset()               pulls only the requested series, caching
                                   the extracted subset next to the master file

A cached subset stays valid until the server reports a newer master file.
"""
import os
import time
import hashlib
import logging
from pathlib import Path
from typing import Dict, Iterable, List, Mapping, Optional, Union

import pandas as pd

from bls_loader.config import settings
from bls_loader.bls.diagnostics import DataCollection, FetchDiagnostics, create_collection, report_warnings
from bls_loader.bls.exceptions import DatasetError, FetchError, FormatError
from bls_loader.bls.flat_file_cache import MTIME_TOLERANCE_SEC, FlatFileCache, default_cache_dir, parse_http_date
from bls_loader.bls.flat_file_client import FlatFileClient
from bls_loader.bls.flat_file_reader import fetch_flat_file
from bls_loader.bls.join_orchestrator import CollectOptions, JoinKey, apply_post_processing, left_join, resolve_join_key
from bls_loader.utils.data_transform import drop_columns

log = logging.getLogger(__name__)

CPS_CODE = "ln"
CPS_DATA_FILE = "ln.data.1.AllData"
CPS_SERIES_FILE = "ln.series"

# Bookkeeping removed from data, series and lookup tables before joining
CPS_DROP_COLUMNS = ["display_level", "sort_sequence", "selectable", "footnote_codes"]

SERIES_SUMMARY_COLUMNS = ["series_id", "series_title", "seasonal", "begin_year", "begin_period", "end_year", "end_period"]

# ln.series code column stem -> what it classifies
CPS_CHARACTERISTICS = {
    "lfst": "Labor force status",
    "periodicity": "Data periodicity (monthly, quarterly, annual)",
    "absn": "Absence from work",
    "activity": "Activity status",
    "ages": "Age group",
    "cert": "Professional certification",
    "class": "Class of worker",
    "duration": "Duration of unemployment",
    "education": "Educational attainment",
    "entr": "Labor force entrance",
    "expr": "Work experience",
    "hheader": "Head of household status",
    "hour": "Hours of work",
    "indy": "Industry",
    "jdes": "Job desire",
    "look": "Job search method",
    "mari": "Marital status",
    "mjhs": "Multiple jobholding",
    "occupation": "Occupation",
    "orig": "Hispanic or Latino origin",
    "pcts": "Percent of poverty",
    "race": "Race",
    "rjnw": "Reason for absence from work",
    "rnlf": "Reason not in the labor force",
    "rwns": "Reason for working part time",
    "seek": "Job seeking status",
    "sexs": "Sex",
    "tdat": "Type of data (levels, rates, etc.)",
    "vets": "Veteran status",
    "wkst": "Work status",
    "born": "Nativity",
    "chld": "Presence of children",
    "disa": "Disability status",
    "tlwk": "Telework status",
}

Characteristics = Mapping[str, Union[str, Iterable[str]]]


def cps_url(file_name: str) -> str:
    return f"{settings.bls.base_url}/{CPS_CODE}/{file_name}"


def _load_series(client: FlatFileClient):
    table, diag = fetch_flat_file(cps_url(CPS_SERIES_FILE), client=client)
    return table.data, diag


def _code_columns(columns: Iterable[str]) -> List[str]:
    return [c for c in columns if c.endswith("_code")]


def filter_by_characteristics(series: pd.DataFrame, characteristics: Characteristics) -> pd.DataFrame:
    """
    Rows of ln.series matching every characteristic

    Args:
        series: ln.series table
        characteristics: code column -> one code or several, e.g.
            {'ages_code': '00', 'sexs_code': ['1', '2']}

    Raises:
        DatasetError: a characteristic is not a column of ln.series
    """
    for name, wanted in characteristics.items():
        if name not in series.columns:
            raise DatasetError(f"Characteristic '{name}' not found in {CPS_SERIES_FILE}")
        values = [wanted] if isinstance(wanted, str) else list(wanted)
        series = series[series[name].isin(values)]
    return series


def subset_cache_path(cache_dir: Union[str, Path], series_ids: Iterable[str]) -> Path:
    """Cache file for one set of series ids; order and duplicates do not matter"""
    digest = hashlib.md5("\n".join(sorted(set(series_ids))).encode("utf-8")).hexdigest()
    return Path(cache_dir) / f"ln_subset_{digest}.csv"


def _remote_timestamp(client: FlatFileClient, url: str) -> float:
    """Server modification time of url; now when the server cannot say"""
    try:
        head = client.head(url)
    except FetchError as e:
        log.warning(f"Could not reach BLS server to verify update status: {e}")
        return time.time()
    remote = parse_http_date(head.headers.get("Last-Modified"))
    return remote.timestamp() if remote is not None else time.time()


def get_cps_subset(
    series_ids: Optional[Union[str, Iterable[str]]] = None,
    characteristics: Optional[Characteristics] = None,
    simplify_table: bool = True,
    cache: bool = True,
    cache_dir: Optional[Union[str, Path]] = None,
    suppress_warnings: bool = False,
    client: Optional[FlatFileClient] = None,
) -> DataCollection:
    """
    Extract selected CPS series from the LN master file

    Series can be named directly, selected by characteristics, or both (the
    union is used). The lookup file of every *_code column in ln.series is
    joined when the archive has one; missing lookups are skipped.

    Args:
        series_ids: Series id or ids, e.g. ['LNS13000000', 'LNS12000000']
        characteristics: code column -> code(s), see explore_cps_characteristics()
        simplify_table: Numeric value, date column, no code columns
        cache: Keep the master file and the extracted subset in cache_dir
        cache_dir: Cache directory (default: BLS_CACHE_DIR or ~/.cache/bls_loader)
        suppress_warnings: If False, log the warning report when issues exist
        client: FlatFileClient shared by every download

    Returns:
        DataCollection with the subset as .data

    Raises:
        ValueError: neither series_ids nor characteristics were given
        DatasetError: unknown characteristic, or nothing matched
    """
    if not series_ids and not characteristics:
        raise ValueError("Provide series_ids, characteristics, or both")

    client = client or FlatFileClient()
    ids = [series_ids] if isinstance(series_ids, str) else list(series_ids or [])
    diagnostics: Dict[str, FetchDiagnostics] = {}

    series, diagnostics["series"] = _load_series(client)
    if characteristics:
        matched = filter_by_characteristics(series, characteristics)["series_id"].tolist()
        ids = list(dict.fromkeys(ids + matched))
        if not ids:
            raise DatasetError("The provided characteristics did not match any series in the LN database")

    cache_dir = Path(cache_dir) if cache_dir else default_cache_dir()
    data_url = cps_url(CPS_DATA_FILE)
    subset_path = subset_cache_path(cache_dir, ids)
    remote_ts = _remote_timestamp(client, data_url)
    steps: List[str] = []

    if cache and subset_path.exists() and subset_path.stat().st_mtime >= remote_ts - MTIME_TOLERANCE_SEC:
        log.info(f"Using cached CPS subset {subset_path}")
        data = pd.read_csv(subset_path, dtype=str, keep_default_na=False)
        steps.append("Loaded subset from local cache")
    else:
        log.info(f"Extracting {len(ids)} series from {CPS_DATA_FILE}")
        file_cache = FlatFileCache(cache_dir=cache_dir, client=client) if cache else None
        master, diagnostics["data"] = fetch_flat_file(data_url, client=client, cache=file_cache)
        data = master.data[master.data["series_id"].isin(ids)].reset_index(drop=True)
        del master
        if cache:
            cache_dir.mkdir(parents=True, exist_ok=True)
            data.to_csv(subset_path, index=False)
            os.utime(subset_path, (remote_ts, remote_ts))
        steps.append(f"Extracted {len(data):,} row(s) from {CPS_DATA_FILE}")

    data, _ = drop_columns(data, CPS_DROP_COLUMNS)
    series, _ = drop_columns(series, CPS_DROP_COLUMNS)
    series = series[series["series_id"].isin(ids)]

    full = left_join(data, series, JoinKey(columns=("series_id",), strategy="declared"), suffix="_series")
    steps.append("Joined series metadata")

    for column in _code_columns(series.columns):
        stem = column[: -len("_code")]
        try:
            table, diag = fetch_flat_file(cps_url(f"{CPS_CODE}.{stem}"), client=client)
        except (FetchError, FormatError) as e:
            log.debug(f"No lookup file for {column}: {e}")
            continue
        lookup, _ = drop_columns(table.data, CPS_DROP_COLUMNS)
        key = resolve_join_key(full.columns, lookup.columns, strategy="first_column")
        if not key.found:
            continue
        full = left_join(full, lookup, key, suffix=f"_{stem}")
        diagnostics[stem] = diag
        steps.append(f"Joined {stem} on {key.columns[0]}")

    if simplify_table:
        full, post_steps = apply_post_processing(
            full,
            CollectOptions(
                coerce_value=True,
                derive_date=True,
                drop_code_columns=True,
                code_columns_require_partner=False,
            ),
        )
        steps.extend(post_steps)

    collection = create_collection(full, diagnostics, data_type="BLS-LN-SUBSET", processing_steps=steps)
    if not suppress_warnings and collection.has_issues():
        report_warnings(collection)
    return collection


def explore_cps_series(
    search: Optional[Union[str, Iterable[str]]] = None,
    characteristics: Optional[Characteristics] = None,
    seasonal: Optional[str] = None,
    max_results: int = 50,
    client: Optional[FlatFileClient] = None,
) -> pd.DataFrame:
    """
    Search ln.series for series ids

    Args:
        search: Term or terms matched case-insensitively against series_title
            (any term may match)
        characteristics: code column -> code(s)
        seasonal: 'S' (seasonally adjusted) or 'U' (not adjusted)
        max_results: Maximum rows returned, in series_id order

    Returns:
        DataFrame of series_id, series_title, seasonal, begin/end year and
        period, and every *_code column; empty when nothing matches

    Example:
        >>> explore_cps_series(search="unemployment rate", characteristics={"sexs_code": "2"}, seasonal="S")
    """
    if seasonal is not None and seasonal not in ("S", "U"):
        raise ValueError("seasonal must be 'S' (seasonally adjusted) or 'U' (not adjusted)")

    series, _ = _load_series(client or FlatFileClient())
    matched = series

    if characteristics:
        matched = filter_by_characteristics(matched, characteristics)
        log.info(f"{len(matched):,} series match characteristics {dict(characteristics)}")

    if seasonal is not None:
        matched = matched[matched["seasonal"] == seasonal]

    if search is not None:
        terms = [search] if isinstance(search, str) else list(search)
        pattern = "|".join(terms)
        matched = matched[matched["series_title"].str.contains(pattern, case=False, regex=True, na=False)]
        log.info(f"{len(matched):,} series match search '{pattern}'")

    if matched.empty:
        log.info("No series found matching your criteria")
        return pd.DataFrame()

    columns = [c for c in SERIES_SUMMARY_COLUMNS if c in matched.columns] + _code_columns(matched.columns)
    result = matched[columns].sort_values("series_id").head(max_results).reset_index(drop=True)
    if len(matched) > max_results:
        log.info(f"Showing first {max_results} of {len(matched):,} results; increase max_results to see more")
    return result


def explore_cps_characteristics(
    characteristic: Optional[str] = None,
    client: Optional[FlatFileClient] = None,
) -> pd.DataFrame:
    """
    Characteristics available for filtering CPS series, or the codes of one

    Args:
        characteristic: None to list every characteristic; otherwise its
            name with or without the '_code' suffix ('ages', 'sexs_code')

    Returns:
        Without a characteristic: characteristic / code_column / description.
        With one: the distinct rows of its lookup file ordered by code, or,
        when the archive has no lookup file, the distinct codes used in
        ln.series in a column named after the characteristic.

    Raises:
        DatasetError: unknown characteristic
    """
    client = client or FlatFileClient()
    series, _ = _load_series(client)
    code_columns = _code_columns(series.columns)

    if characteristic is None:
        stems = [c[: -len("_code")] for c in code_columns]
        return pd.DataFrame({
            "characteristic": stems,
            "code_column": code_columns,
            "description": [CPS_CHARACTERISTICS.get(stem, "") for stem in stems],
        })

    stem = characteristic[: -len("_code")] if characteristic.endswith("_code") else characteristic
    code_column = f"{stem}_code"
    if code_column not in code_columns:
        available = ", ".join(c[: -len("_code")] for c in code_columns)
        raise DatasetError(f"Characteristic '{characteristic}' not found. Available characteristics: {available}")

    try:
        table, _ = fetch_flat_file(cps_url(f"{CPS_CODE}.{stem}"), client=client)
    except (FetchError, FormatError) as e:
        log.info(f"No lookup file for '{stem}' ({e}); listing codes used in {CPS_SERIES_FILE}")
        codes = series.loc[series[code_column] != "", code_column].drop_duplicates().sort_values()
        return pd.DataFrame({stem: codes.tolist()})

    lookup, _ = drop_columns(table.data, ["display_level", "sort_sequence", "selectable"])
    lookup = lookup.drop_duplicates()
    return lookup.sort_values(lookup.columns[0]).reset_index(drop=True)
