# flat_file_reader.py
"""
Reader for BLS time-series flat files downloaded from:
https://download.bls.gov/pub/time.series/

The archive's tab-delimited files are not always consistent. Known defects:
  - a spurious blank field between two tabs, shifting every later column
  - header lines with fewer (or more) names than the data rows have fields
  - trailing columns that are empty in every row
  - an HTML error page served in place of the file (handled by the client)

Parsing runs as a sequence of repair passes. Each pass records what it found
in the file's FetchDiagnostics; none of them raises on malformed input.
"""
import csv
import os
import re
import logging
import tempfile
from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional, Sequence, Tuple, Union

import pandas as pd

from bls_loader.bls.diagnostics import FetchDiagnostics, report_warnings
from bls_loader.bls.flat_file_cache import FlatFileCache, cache_enabled
from bls_loader.bls.flat_file_client import FlatFileClient, decode_body

log = logging.getLogger(__name__)

# <tab><whitespace>*<tab>: a blank field produced by a stray delimiter
_DELIMITER_RUN = re.compile(r"\t\s*\t")


@dataclass(frozen=True, eq=False)
class RemoteTable:
    """One parsed flat file; every cell is a string, blanks are ''"""
    data: pd.DataFrame

    @property
    def columns(self) -> List[str]:
        return list(self.data.columns)

    @property
    def rows(self) -> List[Dict[str, str]]:
        return self.data.to_dict(orient="records")

    @property
    def shape(self) -> Tuple[int, int]:
        return tuple(self.data.shape)

    def __len__(self) -> int:
        return len(self.data)


@dataclass
class _ParsedText:
    header: List[str]
    frame: pd.DataFrame  # positional integer columns

    @property
    def width(self) -> int:
        return self.frame.shape[1]


# ==================== PARSING ====================

def _split_lines(text: str) -> Tuple[str, List[str]]:
    lines = text.splitlines()
    if not lines:
        return "", []
    return lines[0], [line for line in lines[1:] if line.strip()]


def _parse_lines(header_line: str, data_lines: List[str]) -> _ParsedText:
    """
    Parse the header and the data rows independently.

    Data rows go through a scratch file and pandas; ragged rows are padded
    to the widest row with ''.
    """
    header = [name.strip() for name in header_line.split("\t")] if header_line else []
    width = max((line.count("\t") + 1 for line in data_lines), default=0)
    if width == 0:
        return _ParsedText(header=header, frame=pd.DataFrame())

    fd, path = tempfile.mkstemp(prefix="bls_", suffix=".txt")
    try:
        with os.fdopen(fd, "w", encoding="utf-8", newline="") as f:
            f.write("\n".join(data_lines))
            f.write("\n")
        frame = pd.read_csv(
            path,
            sep="\t",
            header=None,
            names=list(range(width)),
            dtype=str,
            keep_default_na=False,
            na_filter=False,
            quoting=csv.QUOTE_NONE,
            encoding="utf-8",
        )
    finally:
        os.remove(path)

    frame = frame.fillna("").apply(lambda col: col.str.strip())
    return _ParsedText(header=header, frame=frame)


# ==================== REPAIR PASSES ====================

def _positional_name(index: int) -> str:
    return f"V{index + 1}"


def _provisional_names(header: List[str], width: int) -> List[str]:
    return [
        header[i] if i < len(header) and header[i] else _positional_name(i)
        for i in range(width)
    ]


def _empty_positions(frame: pd.DataFrame) -> List[int]:
    """Columns whose every value is blank. A file without rows has none."""
    if frame.empty:
        return []
    blank = frame.eq("").all(axis=0)
    return [int(pos) for pos, is_blank in blank.items() if is_blank]


def collapse_delimiter_runs(lines: Sequence[str]) -> Tuple[List[str], int]:
    """Collapse tab/blank/tab runs into one tab; untouched lines pass through."""
    repaired = []
    rewritten = 0
    for line in lines:
        if _DELIMITER_RUN.search(line):
            repaired.append(_DELIMITER_RUN.sub("\t", line))
            rewritten += 1
        else:
            repaired.append(line)
    return repaired, rewritten


def _header_names_phantoms(header: List[str], width: int, positions: List[int]) -> bool:
    """True when the header matches the data width and names every blank column."""
    if len(header) != width:
        return False
    return all(header[pos] for pos in positions)


def reconcile_header(header: List[str], width: int) -> Tuple[List[str], bool]:
    """
    Make the header as long as the data rows are wide.

    Extra data fields get positional placeholder names; surplus header
    names are dropped from the end.
    """
    if width == len(header):
        return list(header), False
    if width > len(header):
        return list(header) + [_positional_name(i) for i in range(len(header), width)], True
    return list(header[:width]), True


def _unique_names(names: List[str]) -> List[str]:
    seen: Dict[str, int] = {}
    out = []
    for i, name in enumerate(names):
        name = name or _positional_name(i)
        if name in seen:
            seen[name] += 1
            name = f"{name}.{seen[name]}"
        else:
            seen[name] = 0
        out.append(name)
    return out


# ==================== PUBLIC API ====================

def parse_flat_file(
    content: Union[bytes, str],
    source_url: str = "<memory>",
    transport: str = "primary",
) -> Tuple[RemoteTable, FetchDiagnostics]:
    """
    Parse and repair the body of one tab-delimited flat file

    Args:
        content: Raw bytes (or already decoded text) of the file
        source_url: URL recorded in the diagnostics
        transport: Which path produced the bytes ('primary', 'fallback', 'cache')

    Returns:
        (RemoteTable, FetchDiagnostics)
    """
    text = decode_body(content) if isinstance(content, bytes) else content
    diag = FetchDiagnostics(source_url=source_url, transport=transport)

    header_line, data_lines = _split_lines(text)
    parsed = _parse_lines(header_line, data_lines)
    diag.original_dimensions = (len(parsed.frame), parsed.width)

    # Pass 1: phantom columns
    phantom_positions = _empty_positions(parsed.frame)
    if phantom_positions:
        names = _provisional_names(parsed.header, parsed.width)
        diag.phantom_columns_detected = len(phantom_positions)
        diag.phantom_column_names = [names[pos] for pos in phantom_positions]

        # Pass 2: collapse stray delimiters, then parse again
        rewritten = 0
        if _header_names_phantoms(parsed.header, parsed.width, phantom_positions):
            # A named, aligned column that is simply blank; pass 4 drops it in place
            log.debug(f"{source_url}: phantom column(s) are named in the header; rows left as is")
        else:
            repaired_lines, rewritten = collapse_delimiter_runs([header_line] + data_lines)
            if rewritten:
                repaired = _parse_lines(repaired_lines[0], repaired_lines[1:])
                if repaired.width == len(repaired.header):
                    log.debug(f"{source_url}: collapsed blank tab-delimited fields on {rewritten} line(s)")
                    diag.cleaning_applied = True
                    parsed = repaired
                else:
                    log.debug(
                        f"{source_url}: collapsed rows have {repaired.width} field(s) but the header "
                        f"has {len(repaired.header)}; keeping the original layout"
                    )
                    rewritten = 0
        diag.warnings.append(
            f"Detected {len(phantom_positions)} phantom column(s) with no data: "
            f"{', '.join(diag.phantom_column_names)}"
            + (f" (repaired {rewritten} line(s))" if rewritten else "")
        )

    # Pass 3: header/data arity
    names, mismatch = reconcile_header(parsed.header, parsed.width) if parsed.width else (parsed.header, False)
    diag.header_field_count = len(parsed.header)
    diag.data_field_count = parsed.width if parsed.width else len(parsed.header)
    if mismatch:
        diag.header_data_mismatch = True
        diag.cleaning_applied = True
        action = (
            "added placeholder names for the extra columns"
            if parsed.width > len(parsed.header)
            else "dropped the surplus header names"
        )
        diag.warnings.append(
            f"Header has {len(parsed.header)} field(s) but data rows have {parsed.width}; {action}"
        )

    frame = parsed.frame
    if frame.shape[1] == 0:
        frame = pd.DataFrame(columns=list(range(len(names))), dtype=str)

    # Pass 4: columns that are still empty
    still_empty = _empty_positions(frame)
    if still_empty:
        dropped = set(still_empty)
        frame = frame.drop(columns=still_empty)
        names = [name for i, name in enumerate(names) if i not in dropped]
        diag.empty_columns_removed = len(still_empty)
        diag.cleaning_applied = True
        diag.warnings.append(f"Removed {len(still_empty)} empty column(s) after cleaning")

    # Pass 5: final names
    if len(names) != frame.shape[1]:
        names = [_positional_name(i) for i in range(frame.shape[1])]
        diag.header_data_mismatch = True
        diag.cleaning_applied = True
        diag.warnings.append("Column names could not be reconciled with the data; using positional names")
    frame.columns = _unique_names(names)
    frame = frame.reset_index(drop=True)

    diag.final_dimensions = tuple(frame.shape)
    log.info(f"Read {source_url}: {frame.shape[0]:,} rows x {frame.shape[1]} columns")
    return RemoteTable(data=frame), diag


def fetch_flat_file(
    url: str,
    client: Optional[FlatFileClient] = None,
    cache: Optional[FlatFileCache] = None,
) -> Tuple[RemoteTable, FetchDiagnostics]:
    """
    Download one BLS flat file and return it with its diagnostics

    Args:
        url: Absolute URL of a tab-delimited file
        client: FlatFileClient to use (a default one is built if omitted)
        cache: Optional FlatFileCache; when given (or enabled through
            USE_BLS_CACHE) the file is read through the local cache

    Raises:
        FetchError: transport failed
        FormatError: an HTML error page came back instead of data

    Example:
        >>> table, diag = fetch_flat_file("https://download.bls.gov/pub/time.series/jt/jt.state")
        >>> table.columns[:2]
        ['state_code', 'state_text']
    """
    client = client or FlatFileClient()
    if cache is None and cache_enabled():
        cache = FlatFileCache(client=client)

    body = cache.fetch(url) if cache is not None else client.fetch(url)
    return parse_flat_file(body.content, source_url=url, transport=body.transport)


def download_flat_files(
    urls: Union[Mapping[str, str], Sequence[str]],
    client: Optional[FlatFileClient] = None,
    cache: Optional[FlatFileCache] = None,
    suppress_warnings: bool = True,
) -> Dict[str, Tuple[RemoteTable, FetchDiagnostics]]:
    """
    Fetch several flat files one after another

    Args:
        urls: name -> URL mapping; a plain list is keyed by file name
        suppress_warnings: If False, log each file's warning report

    Returns:
        Dict of name -> (RemoteTable, FetchDiagnostics), in input order
    """
    if not isinstance(urls, Mapping):
        urls = {url.rstrip("/").split("/")[-1]: url for url in urls}

    client = client or FlatFileClient()
    results: Dict[str, Tuple[RemoteTable, FetchDiagnostics]] = {}
    for name, url in urls.items():
        log.info(f"Downloading {name} from {url}")
        table, diag = fetch_flat_file(url, client=client, cache=cache)
        if diag.has_warnings and not suppress_warnings:
            report_warnings(diag)
        results[name] = (table, diag)
    return results
