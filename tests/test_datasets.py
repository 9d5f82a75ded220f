"""
Tests for survey discovery and the generic dataset loader.
"""

import pandas as pd
import pytest

from bls_loader.bls.datasets import (
    bls_overview,
    classify_survey_files,
    list_survey_files,
    load_bls_dataset,
)
from bls_loader.bls.diagnostics import DataCollection
from bls_loader.bls.exceptions import DatasetError

ROOT = "https://download.bls.gov/pub/time.series"
DIR = f"{ROOT}/zz/"

LISTING = [
    "zz.area",
    "zz.contacts",
    "zz.data.0.Current",
    "zz.footnote",
    "zz.series",
    "zz.txt",
    "other.series",
]

FILES = {
    f"{ROOT}/zz/zz.data.0.Current": (
        "series_id\tyear\tperiod\tvalue\tfootnote_codes\n"
        "ZZU001\t2020\tM01\t1.5\t\n"
        "ZZU001\t2020\tM13\t2.0\tP\n"
        "ZZU002\t2021\tQ02\t-\t\n"
    ),
    f"{ROOT}/zz/zz.series": (
        "series_id\tarea_code\tseries_title\tbegin_year\tbegin_period\tend_year\tend_period\n"
        "ZZU001\tA1\tFirst series\t2000\tM01\t2024\tM12\n"
        "ZZU002\tA2\tSecond series\t2001\tM01\t2024\tM12\n"
    ),
    f"{ROOT}/zz/zz.area": (
        "area_code\tarea_text\tdisplay_level\tselectable\tsort_sequence\n"
        "A1\tAlpha\t0\tT\t1\n"
        "A2\tBeta\t0\tT\t2\n"
    ),
    f"{ROOT}/zz/zz.txt": "ZZ Survey overview\nSection 1. Files\n",
}


@pytest.fixture
def client(archive_client):
    return archive_client(files=FILES, listings={DIR: LISTING})


class TestDiscovery:
    """Listing and classifying survey files."""

    def test_list_excludes_documentation_and_other_surveys(self, client) -> None:
        """Test that only the survey's own data and lookup files are kept."""
        assert list_survey_files("zz", client=client) == ["zz.area", "zz.data.0.Current", "zz.series"]

    def test_survey_code_is_case_insensitive(self, client) -> None:
        """Test that upper-case codes resolve to the same directory."""
        assert list_survey_files("ZZ", client=client) == ["zz.area", "zz.data.0.Current", "zz.series"]

    def test_invalid_survey_code(self, client) -> None:
        """Test that codes with path characters are rejected."""
        with pytest.raises(ValueError):
            list_survey_files("../etc", client=client)

    def test_classify(self) -> None:
        """Test the data/series/mapping split."""
        groups = classify_survey_files(["jt.data.1.AllItems", "jt.data.0.Current", "jt.series", "jt.state", "jt.industry"])

        assert groups == {
            "data": ["jt.data.1.AllItems", "jt.data.0.Current"],
            "series": ["jt.series"],
            "mapping": ["jt.state", "jt.industry"],
        }


class TestLoadDataset:
    """Joining a whole survey."""

    def test_simplified_table(self, client) -> None:
        """Test the default simplified output."""
        frame = load_bls_dataset("zz", client=client)

        assert isinstance(frame, pd.DataFrame)
        assert frame.columns.tolist() == ["series_id", "year", "period", "value", "series_title", "area_text", "date"]
        assert frame["area_text"].tolist() == ["Alpha", "Alpha", "Beta"]
        assert frame["value"].tolist()[:2] == [1.5, 2.0]
        assert pd.isna(frame["value"].iloc[2])
        assert frame["date"].tolist() == [
            pd.Timestamp("2020-01-01"),
            pd.Timestamp("2020-01-01"),
            pd.Timestamp("2021-04-01"),
        ]

    def test_raw_table_keeps_codes(self, client) -> None:
        """Test that simplify_table=False leaves every column in place."""
        frame = load_bls_dataset("zz", simplify_table=False, client=client)

        for column in ("area_code", "footnote_codes", "begin_year", "display_level", "area_text"):
            assert column in frame.columns
        assert "date" not in frame.columns
        assert frame["value"].tolist()[0] == "1.5"

    def test_return_diagnostics(self, client) -> None:
        """Test that the collection carries every file's diagnostics."""
        collection = load_bls_dataset("zz", return_diagnostics=True, client=client)

        assert isinstance(collection, DataCollection)
        assert set(collection.per_file_diagnostics) == {"data", "series", "area"}
        assert collection.summary.files_downloaded == 3
        assert collection.summary.data_type == "ZZ"
        assert collection.aggregate_warnings == []

    def test_explicit_data_file(self, archive_client) -> None:
        """Test choosing among several data files."""
        files = dict(FILES)
        files[f"{ROOT}/zz/zz.data.1.AllItems"] = files[f"{ROOT}/zz/zz.data.0.Current"]
        client = archive_client(files=files, listings={DIR: LISTING + ["zz.data.1.AllItems"]})

        with pytest.raises(DatasetError, match="zz.data.1.AllItems"):
            load_bls_dataset("zz", client=client)

        frame = load_bls_dataset("zz", data_file="zz.data.1.AllItems", client=client)
        assert len(frame) == 3
        assert f"{ROOT}/zz/zz.data.1.AllItems" in client.fetched

    def test_unknown_data_file(self, client) -> None:
        """Test that a data file not in the listing is an error."""
        with pytest.raises(DatasetError, match="not found"):
            load_bls_dataset("zz", data_file="zz.data.9.Missing", client=client)

    def test_missing_series_file(self, archive_client) -> None:
        """Test that a survey without a series file cannot be loaded."""
        client = archive_client(files=FILES, listings={DIR: ["zz.data.0.Current", "zz.area"]})

        with pytest.raises(DatasetError, match="series"):
            load_bls_dataset("zz", client=client)

    def test_missing_data_file(self, archive_client) -> None:
        """Test that a survey without data files cannot be loaded."""
        client = archive_client(files=FILES, listings={DIR: ["zz.series", "zz.area"]})

        with pytest.raises(DatasetError, match="No data files"):
            load_bls_dataset("zz", client=client)


class TestOverview:
    """Survey documentation."""

    def test_overview_lines(self, client) -> None:
        """Test that the <code>.txt file is returned line by line."""
        lines = bls_overview("zz", client=client)
        assert lines[:2] == ["ZZ Survey overview", "Section 1. Files"]
