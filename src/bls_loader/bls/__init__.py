"""
BLS Module

Downloads tab-delimited files from the BLS time.series archive, repairs
their layout problems and joins a survey's files into one table.

Components:
- FlatFileClient: HTTP access with HTML error-page detection and a fallback transport
- parse_flat_file / fetch_flat_file: tolerant parsing with per-file diagnostics
- FlatFileCache: local copies refreshed from Last-Modified
- collect: multi-file join producing a DataCollection
- load_bls_dataset / get_jolts / get_oews / get_ces / get_national_ces / get_laus: ready-made survey loaders
- get_cps_subset / explore_cps_series / explore_cps_characteristics: CPS (LN) subsets and discovery
- get_qcew / get_salt: QCEW slices and state alternative measures, outside the time.series archive

Usage:
    from bls_loader.bls import get_jolts, report_warnings

    jolts = get_jolts(return_diagnostics=True)
    report_warnings(jolts)
    df = jolts.data
"""
from .exceptions import BLSLoaderError, FetchError, FormatError, DatasetError
from .flat_file_client import FlatFileClient
from .flat_file_reader import RemoteTable, parse_flat_file, fetch_flat_file, download_flat_files
from .flat_file_cache import FlatFileCache
from .diagnostics import (
    FetchDiagnostics,
    DataCollection,
    create_collection,
    has_issues,
    format_warnings,
    report_warnings,
)
from .join_orchestrator import CollectOptions, JoinKey, resolve_join_key, collect
from .datasets import list_survey_files, classify_survey_files, load_bls_dataset, read_bls_text, bls_overview
from .surveys import (
    SurveyDefinition,
    get_jolts,
    get_oews,
    get_ces,
    get_national_ces,
    list_national_ces_options,
    get_laus,
)
from .cps import get_cps_subset, explore_cps_series, explore_cps_characteristics
from .qcew import get_qcew
from .salt import get_salt

__all__ = [
    'BLSLoaderError',
    'FetchError',
    'FormatError',
    'DatasetError',
    'FlatFileClient',
    'RemoteTable',
    'parse_flat_file',
    'fetch_flat_file',
    'download_flat_files',
    'FlatFileCache',
    'FetchDiagnostics',
    'DataCollection',
    'create_collection',
    'has_issues',
    'format_warnings',
    'report_warnings',
    'CollectOptions',
    'JoinKey',
    'resolve_join_key',
    'collect',
    'list_survey_files',
    'classify_survey_files',
    'load_bls_dataset',
    'read_bls_text',
    'bls_overview',
    'SurveyDefinition',
    'get_jolts',
    'get_oews',
    'get_ces',
    'get_national_ces',
    'list_national_ces_options',
    'get_laus',
    'get_cps_subset',
    'explore_cps_series',
    'explore_cps_characteristics',
    'get_qcew',
    'get_salt',
]
