"""
Generic loader for any survey under the BLS time.series archive

Each survey directory (e.g. /pub/time.series/jt/) holds:
  - one or more observation files:  <code>.data.<n>.<Name>
  - the series file:                 <code>.series
  - lookup files:                    <code>.area, <code>.industry, ...
  - documentation:                   <code>.txt, <code>.contacts, <code>.footnote

load_bls_dataset() discovers the files from the directory listing, joins the
series file on series_id and every lookup file on its first column.
"""
import re
import logging
from typing import Dict, Iterable, List, Optional, Union

import pandas as pd

from bls_loader.config import settings
from bls_loader.bls.diagnostics import DataCollection
from bls_loader.bls.exceptions import DatasetError
from bls_loader.bls.flat_file_cache import FlatFileCache
from bls_loader.bls.flat_file_client import FlatFileClient
from bls_loader.bls.join_orchestrator import CollectOptions, collect
from bls_loader.utils.data_transform import HOUSEKEEPING_COLUMNS

log = logging.getLogger(__name__)

# Documentation files published next to the data
EXCLUDED_SUFFIXES = (".contacts", ".txt", ".footnote")

_SURVEY_CODE_RE = re.compile(r"^[A-Za-z0-9]+$")


def _normalize_code(survey_code: str) -> str:
    if not isinstance(survey_code, str) or not _SURVEY_CODE_RE.match(survey_code.strip()):
        raise ValueError(f"survey_code must be a short alphanumeric code such as 'jt', got {survey_code!r}")
    return survey_code.strip().lower()


def survey_url(survey_code: str) -> str:
    """Directory URL of a survey, e.g. https://download.bls.gov/pub/time.series/jt/"""
    return f"{settings.bls.base_url}/{_normalize_code(survey_code)}/"


def survey_file_url(survey_code: str, file_name: str) -> str:
    return f"{settings.bls.base_url}/{_normalize_code(survey_code)}/{file_name}"


def list_survey_files(survey_code: str, client: Optional[FlatFileClient] = None) -> List[str]:
    """
    Data and lookup files published for a survey

    Args:
        survey_code: Two-letter survey code such as 'jt' or 'ce'
        client: FlatFileClient used for the directory listing

    Returns:
        File names in listing order, documentation files excluded

    Raises:
        FetchError: the directory listing could not be downloaded
    """
    code = _normalize_code(survey_code)
    client = client or FlatFileClient()

    names = client.list_directory(survey_url(code))
    prefix = f"{code}."
    files = []
    for name in names:
        if not name.startswith(prefix) or name.endswith(EXCLUDED_SUFFIXES):
            continue
        if name not in files:
            files.append(name)

    log.info(f"Found {len(files)} file(s) for survey '{code}'")
    return files


def classify_survey_files(file_names: Iterable[str]) -> Dict[str, List[str]]:
    """
    Sort survey files into data, series and mapping groups

    Examples:
        >>> classify_survey_files(['jt.data.1.AllItems', 'jt.series', 'jt.area'])
        {'data': ['jt.data.1.AllItems'], 'series': ['jt.series'], 'mapping': ['jt.area']}
    """
    groups: Dict[str, List[str]] = {"data": [], "series": [], "mapping": []}
    for name in file_names:
        if ".data." in name:
            groups["data"].append(name)
        elif name.endswith(".series"):
            groups["series"].append(name)
        else:
            groups["mapping"].append(name)
    return groups


def _choose_data_file(code: str, data_files: List[str], data_file: Optional[str]) -> str:
    if not data_files:
        raise DatasetError(f"No data files found for survey '{code}'")

    if data_file is not None:
        if data_file in data_files:
            return data_file
        raise DatasetError(
            f"Data file '{data_file}' not found for survey '{code}'. "
            f"Available: {', '.join(data_files)}"
        )

    if len(data_files) == 1:
        return data_files[0]

    raise DatasetError(
        f"Survey '{code}' publishes {len(data_files)} data files; pass data_file= one of: "
        f"{', '.join(data_files)}"
    )


def load_bls_dataset(
    survey_code: str,
    data_file: Optional[str] = None,
    simplify_table: bool = True,
    return_diagnostics: bool = False,
    client: Optional[FlatFileClient] = None,
    cache: Optional[FlatFileCache] = None,
) -> Union[pd.DataFrame, DataCollection]:
    """
    Download and join every file of a survey

    Args:
        survey_code: Survey code such as 'jt', 'ce', 'la'
        data_file: Which observation file to use when the survey has several
        simplify_table: Convert value to numeric, add date, drop code and
            housekeeping columns
        return_diagnostics: Return the DataCollection instead of the table
        client: FlatFileClient shared by every download
        cache: Optional FlatFileCache

    Returns:
        pd.DataFrame, or DataCollection when return_diagnostics is True

    Raises:
        DatasetError: no series file, no data file, or an ambiguous data file
        FetchError / FormatError: the data file could not be downloaded
    """
    code = _normalize_code(survey_code)
    client = client or FlatFileClient()

    files = classify_survey_files(list_survey_files(code, client=client))
    if not files["series"]:
        raise DatasetError(f"No series file found for survey '{code}'")
    if len(files["series"]) > 1:
        log.info(f"Several series files for '{code}', using {files['series'][0]}")

    chosen = _choose_data_file(code, files["data"], data_file)
    log.info(f"Loading survey '{code}' from {chosen}")

    named_urls = {
        "data": survey_file_url(code, chosen),
        "series": survey_file_url(code, files["series"][0]),
    }
    for name in files["mapping"]:
        named_urls[name[len(code) + 1:]] = survey_file_url(code, name)

    options = CollectOptions(
        join_keys={"series": "series_id"},
        key_strategy="first_column",
    )
    if simplify_table:
        # Lookup bookkeeping would only collide on every join before being dropped
        options.exclude_columns = {
            name: list(HOUSEKEEPING_COLUMNS)
            for name in named_urls if name not in ("data", "series")
        }
        options.coerce_value = True
        options.derive_date = True
        options.drop_code_columns = True
        options.code_columns_require_partner = False
        options.drop_columns = list(HOUSEKEEPING_COLUMNS)

    collection = collect(named_urls, options=options, client=client, cache=cache, data_type=code.upper())
    if return_diagnostics:
        return collection
    return collection.data


def read_bls_text(url: str, client: Optional[FlatFileClient] = None) -> List[str]:
    """Lines of a plain-text file from the archive"""
    client = client or FlatFileClient()
    return client.read_text(url)


def bls_overview(survey_code: str, client: Optional[FlatFileClient] = None) -> List[str]:
    """
    The survey's <code>.txt documentation: file layout, code definitions and
    contact details

    Example:
        >>> print("\\n".join(bls_overview("jt")[:5]))
    """
    code = _normalize_code(survey_code)
    return read_bls_text(survey_file_url(code, f"{code}.txt"), client=client)
