# join_orchestrator.py
"""
Multi-file join for BLS surveys

A survey is published as one observation file (series_id, year, period,
value, ...) plus lookup files (series, area, industry, ...). collect() fetches
them in order, left-joins every lookup onto the observation table and returns
the result as a DataCollection together with each file's diagnostics.

Join keys are either declared per file or guessed:
  - a two-column lookup joins on its first column
  - a wider lookup joins on every column name it shares with the table so far
"""
import logging
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

import pandas as pd

from bls_loader.config import settings
from bls_loader.bls.diagnostics import DataCollection, FetchDiagnostics, create_collection
from bls_loader.bls.exceptions import FetchError, FormatError
from bls_loader.bls.flat_file_cache import FlatFileCache
from bls_loader.bls.flat_file_client import FlatFileClient
from bls_loader.bls.flat_file_reader import RemoteTable, fetch_flat_file
from bls_loader.utils.data_transform import (
    add_date_column,
    coerce_value,
    drop_code_columns,
    drop_columns,
)

log = logging.getLogger(__name__)

DeclaredKey = Union[str, Sequence[str]]


@dataclass
class CollectOptions:
    """How collect() joins and cleans a set of files"""
    base_name: str = "data"
    join_keys: Dict[str, DeclaredKey] = field(default_factory=dict)
    exclude_columns: Dict[str, List[str]] = field(default_factory=dict)
    coerce_value: bool = False
    derive_date: bool = False
    drop_code_columns: bool = False
    code_columns_require_partner: bool = True
    drop_columns: List[str] = field(default_factory=list)
    tolerate_aux_failures: Optional[bool] = None
    # 'auto' guesses per file shape; 'first_column' always uses the lookup's first column
    key_strategy: str = "auto"


@dataclass(frozen=True)
class JoinKey:
    """Outcome of key resolution; an empty key carries the reason instead"""
    columns: Tuple[str, ...] = ()
    strategy: str = "none"  # 'declared', 'first_column', 'overlap' or 'none'
    reason: Optional[str] = None

    @property
    def found(self) -> bool:
        return len(self.columns) > 0


def resolve_join_key(
    base_columns: Iterable[str],
    candidate_columns: Iterable[str],
    declared: Optional[DeclaredKey] = None,
    strategy: str = "auto",
) -> JoinKey:
    """
    Work out which column(s) join a lookup file onto the base table.

    A declared key always wins. Otherwise strategy 'first_column' joins on
    the lookup's first column whatever its width, and 'auto' picks between
    first column and overlap from the lookup's shape.

    Never raises; JoinKey.found is False when no usable key exists.
    """
    base = list(base_columns)
    candidate = list(candidate_columns)
    base_set = set(base)

    if declared:
        declared_cols = (declared,) if isinstance(declared, str) else tuple(declared)
        missing = [c for c in declared_cols if c not in base_set or c not in candidate]
        if missing:
            return JoinKey(reason=f"declared join column(s) {', '.join(missing)} not found in both tables")
        return JoinKey(columns=declared_cols, strategy="declared")

    if not candidate:
        return JoinKey(reason="file has no columns")

    if len(candidate) == 2 or strategy == "first_column":
        key = candidate[0]
        if key in base_set:
            return JoinKey(columns=(key,), strategy="first_column")
        return JoinKey(reason=f"join column '{key}' not found in data")

    # Composite key from every shared name, even if they are unrelated
    shared = tuple(c for c in candidate if c in base_set)
    if shared:
        return JoinKey(columns=shared, strategy="overlap")
    return JoinKey(reason="no column names shared with data")


def left_join(base: pd.DataFrame, candidate: pd.DataFrame, key: JoinKey, suffix: str) -> pd.DataFrame:
    """
    Left join keeping every base row in base order.

    Non-key columns present on both sides keep the base name; the lookup's
    copy gets the suffix.
    """
    return base.merge(
        candidate,
        how="left",
        on=list(key.columns),
        sort=False,
        suffixes=("", suffix),
    )


def _without(frame: pd.DataFrame, columns: Optional[List[str]]) -> pd.DataFrame:
    if not columns:
        return frame
    frame, _ = drop_columns(frame, columns)
    return frame


def apply_post_processing(frame: pd.DataFrame, options: CollectOptions) -> Tuple[pd.DataFrame, List[str]]:
    """Numeric value, then date, then column pruning, in that order."""
    steps: List[str] = []

    if options.coerce_value and "value" in frame.columns:
        frame, failed = coerce_value(frame, "value")
        step = "Converted value to numeric"
        if failed:
            step += f" ({failed:,} unparseable token(s) set to missing)"
        steps.append(step)

    if options.derive_date and "year" in frame.columns and "period" in frame.columns:
        frame = add_date_column(frame)
        steps.append("Derived date from year and period")

    if options.drop_code_columns:
        frame, dropped = drop_code_columns(frame, require_partner=options.code_columns_require_partner)
        if dropped:
            steps.append(f"Dropped code columns: {', '.join(dropped)}")

    if options.drop_columns:
        frame, dropped = drop_columns(frame, options.drop_columns)
        if dropped:
            steps.append(f"Dropped columns: {', '.join(dropped)}")

    return frame, steps


def collect(
    named_urls: Mapping[str, str],
    options: Optional[CollectOptions] = None,
    client: Optional[FlatFileClient] = None,
    cache: Optional[FlatFileCache] = None,
    data_type: str = "BLS",
) -> DataCollection:
    """
    Fetch an observation file plus lookup files and join them

    Args:
        named_urls: Logical file name -> URL. The base file is the one named
            options.base_name ('data'), or the first entry otherwise.
        options: CollectOptions
        client: FlatFileClient shared by every fetch
        cache: Optional FlatFileCache
        data_type: Label stored in the summary (e.g. 'JOLTS')

    Returns:
        DataCollection

    Raises:
        FetchError / FormatError: the base file could not be fetched, or an
            auxiliary file failed while failures are not tolerated
    """
    if not named_urls:
        raise ValueError("named_urls must contain at least one file")

    options = options or CollectOptions()
    tolerate = options.tolerate_aux_failures
    if tolerate is None:
        tolerate = settings.bls.tolerate_aux_failures
    base_name = options.base_name if options.base_name in named_urls else next(iter(named_urls))
    client = client or FlatFileClient()

    tables: Dict[str, RemoteTable] = {}
    diagnostics: Dict[str, FetchDiagnostics] = {}
    failed: Dict[str, str] = {}

    for name, url in named_urls.items():
        log.info(f"Reading {name} file: {url}")
        try:
            table, diag = fetch_flat_file(url, client=client, cache=cache)
        except (FetchError, FormatError) as e:
            if name == base_name or not tolerate:
                raise
            log.warning(f"Could not fetch {name} ({e}); continuing without it")
            failed[name] = str(e)
            continue
        tables[name] = table
        diagnostics[name] = diag

    full = _without(tables[base_name].data, options.exclude_columns.get(base_name))
    join_warnings: Dict[str, List[str]] = defaultdict(list)
    steps: List[str] = []

    for name, table in tables.items():
        if name == base_name:
            continue
        candidate = _without(table.data, options.exclude_columns.get(name))
        key = resolve_join_key(
            full.columns, candidate.columns, options.join_keys.get(name), strategy=options.key_strategy
        )
        if not key.found:
            log.warning(f"Skipping {name}: {key.reason}")
            join_warnings[name].append(f"Skipped join: {key.reason}")
            continue

        rows_before = len(full)
        log.info(f"Joining {name} on {', '.join(key.columns)} ({key.strategy})")
        full = left_join(full, candidate, key, suffix=f"_{name}")
        steps.append(f"Joined {name} on {', '.join(key.columns)}")
        if len(full) != rows_before:
            join_warnings[name].append(
                f"Join on {', '.join(key.columns)} changed row count from {rows_before:,} "
                f"to {len(full):,} (duplicate keys in lookup)"
            )

    full, post_steps = apply_post_processing(full, options)

    collection = create_collection(
        full,
        diagnostics,
        data_type=data_type,
        processing_steps=steps + post_steps,
        failed_files=failed,
        extra_warnings=dict(join_warnings),
    )
    log.info(
        f"{data_type}: {collection.summary.files_downloaded} file(s), "
        f"{collection.summary.total_warnings} warning(s), "
        f"{full.shape[0]:,} rows x {full.shape[1]} columns"
    )
    return collection
