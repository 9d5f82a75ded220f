"""
Download diagnostics for BLS flat files

Every fetched file carries a FetchDiagnostics record describing what was found
and repaired. A multi-file retrieval bundles the joined table with the
per-file records in a DataCollection.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Mapping, Optional, Tuple, Union

import pandas as pd

log = logging.getLogger(__name__)


@dataclass
class FetchDiagnostics:
    """What was detected and fixed while ingesting a single flat file"""
    source_url: str
    original_dimensions: Tuple[int, int] = (0, 0)
    final_dimensions: Tuple[int, int] = (0, 0)
    phantom_columns_detected: int = 0
    phantom_column_names: List[str] = field(default_factory=list)
    cleaning_applied: bool = False
    header_data_mismatch: bool = False
    header_field_count: Optional[int] = None
    data_field_count: Optional[int] = None
    empty_columns_removed: int = 0
    warnings: List[str] = field(default_factory=list)
    transport: str = "primary"
    fetched_at: Optional[datetime] = None

    def __post_init__(self):
        if self.fetched_at is None:
            self.fetched_at = datetime.now()

    @property
    def has_warnings(self) -> bool:
        return len(self.warnings) > 0


@dataclass
class CollectionSummary:
    """Roll-up of a multi-file retrieval"""
    data_type: str
    files_downloaded: int
    files_with_issues: int
    total_warnings: int
    final_dimensions: Tuple[int, int]
    processing_steps: List[str] = field(default_factory=list)
    downloaded_at: Optional[datetime] = None

    def __post_init__(self):
        if self.downloaded_at is None:
            self.downloaded_at = datetime.now()


@dataclass
class DataCollection:
    """Joined table plus everything that went wrong while building it"""
    data: pd.DataFrame
    per_file_diagnostics: Dict[str, FetchDiagnostics]
    aggregate_warnings: List[str]
    summary: CollectionSummary
    failed_files: Dict[str, str] = field(default_factory=dict)

    def has_issues(self) -> bool:
        return len(self.aggregate_warnings) > 0

    def report(self, detailed: bool = False) -> str:
        return format_warnings(self, detailed=detailed)


def create_collection(
    data: pd.DataFrame,
    diagnostics: Mapping[str, FetchDiagnostics],
    data_type: str = "BLS",
    processing_steps: Optional[List[str]] = None,
    failed_files: Optional[Mapping[str, str]] = None,
    extra_warnings: Optional[Mapping[str, List[str]]] = None,
) -> DataCollection:
    """
    Bundle a processed table with the diagnostics of the files it came from.

    Args:
        data: Final joined/processed table
        diagnostics: Per-file diagnostics keyed by file name
        data_type: Category label such as "JOLTS" or "OEWS"
        processing_steps: Human readable list of post-processing applied
        failed_files: Auxiliary files that could not be fetched, name -> error
        extra_warnings: Orchestration warnings (skipped joins etc.) keyed by file name

    Returns:
        DataCollection
    """
    failed_files = dict(failed_files or {})
    extra_warnings = extra_warnings or {}

    all_warnings: List[str] = []
    files_with_issues = 0
    names = list(diagnostics) + [n for n in extra_warnings if n not in diagnostics]
    for name in names:
        diag = diagnostics.get(name)
        file_warnings = list(diag.warnings) if diag is not None else []
        file_warnings.extend(extra_warnings.get(name, []))
        if file_warnings:
            files_with_issues += 1
        all_warnings.extend(f"{name}: {w}" for w in file_warnings)

    for name, error in failed_files.items():
        if name not in extra_warnings:
            files_with_issues += 1
        all_warnings.append(f"{name}: download failed, file omitted ({error})")

    summary = CollectionSummary(
        data_type=data_type,
        files_downloaded=len(diagnostics),
        files_with_issues=files_with_issues,
        total_warnings=len(all_warnings),
        final_dimensions=tuple(data.shape),
        processing_steps=list(processing_steps or []),
    )

    return DataCollection(
        data=data,
        per_file_diagnostics=dict(diagnostics),
        aggregate_warnings=all_warnings,
        summary=summary,
        failed_files=failed_files,
    )


def has_issues(obj: Union[DataCollection, FetchDiagnostics, None]) -> bool:
    """True when a collection or single-file record carries any warning."""
    if isinstance(obj, DataCollection):
        return obj.has_issues()
    if isinstance(obj, FetchDiagnostics):
        return obj.has_warnings
    return False


def format_warnings(obj: Union[DataCollection, FetchDiagnostics], detailed: bool = False) -> str:
    """
    Render the warnings of a collection (or of a single file) as text.

    With detailed=True each affected file is listed with its URL, dimensions
    before/after cleaning and its individual issues.
    """
    if isinstance(obj, FetchDiagnostics):
        summary = CollectionSummary(
            data_type="Single File",
            files_downloaded=1,
            files_with_issues=int(obj.has_warnings),
            total_warnings=len(obj.warnings),
            final_dimensions=obj.final_dimensions,
        )
        warnings = list(obj.warnings)
        diagnostics = {"Single File": obj}
    else:
        summary = obj.summary
        warnings = obj.aggregate_warnings
        diagnostics = obj.per_file_diagnostics

    if not warnings:
        return f"No warnings for {summary.data_type} data download"

    title = f"{summary.data_type} Data Download Warnings:"
    lines = [
        title,
        "=" * len(title),
        f"Total files downloaded: {summary.files_downloaded}",
        f"Files with issues: {summary.files_with_issues}",
        f"Total warnings: {summary.total_warnings}",
        f"Final data dimensions: {summary.final_dimensions[0]} x {summary.final_dimensions[1]}",
        "",
    ]

    if detailed:
        lines.append("Detailed Diagnostics:")
        for file_name, diag in diagnostics.items():
            if not diag.warnings:
                continue
            lines.append(f"{file_name}:")
            lines.append(f"  URL: {diag.source_url}")
            lines.append(f"  Original dimensions: {diag.original_dimensions[0]} x {diag.original_dimensions[1]}")
            lines.append(f"  Final dimensions: {diag.final_dimensions[0]} x {diag.final_dimensions[1]}")
            lines.append("  Issues:")
            lines.extend(f"    - {w}" for w in diag.warnings)
        if isinstance(obj, DataCollection) and obj.failed_files:
            lines.append("Failed files:")
            lines.extend(f"  {name}: {error}" for name, error in obj.failed_files.items())
    else:
        lines.append("Summary of warnings:")
        lines.extend(f"  {i}. {w}" for i, w in enumerate(warnings, 1))
        if len(diagnostics) > 1:
            lines.append("")
            lines.append("Use detailed=True for file-by-file details")

    return "\n".join(lines)


def report_warnings(
    obj: Union[DataCollection, FetchDiagnostics],
    detailed: bool = False,
    silent: bool = False,
) -> List[str]:
    """Log the warning report and return the flat list of warnings."""
    if isinstance(obj, FetchDiagnostics):
        warnings = list(obj.warnings)
    else:
        warnings = list(obj.aggregate_warnings)

    if not silent:
        text = format_warnings(obj, detailed=detailed)
        if warnings:
            log.warning(text)
        else:
            log.info(text)
    return warnings
