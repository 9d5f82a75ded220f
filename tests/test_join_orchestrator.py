"""
Tests for join-key resolution and multi-file collection.
"""

import pandas as pd
import pytest

from bls_loader.bls.exceptions import FetchError
from bls_loader.bls.join_orchestrator import (
    CollectOptions,
    JoinKey,
    apply_post_processing,
    collect,
    left_join,
    resolve_join_key,
)

BASE = "https://download.bls.gov/pub/time.series/xx"

DATA = (
    "series_id\tyear\tperiod\tvalue\tarea_code\n"
    "XXU001\t2020\tM01\t1.5\tA1\n"
    "XXU002\t2020\tM13\t2.0\tA2\n"
    "XXU001\t2021\tQ02\t-\tA1\n"
)
AREA = "area_code\tarea_text\nA1\tAlpha\nA2\tBeta\n"
PERIOD = "period\tperiod_name\nM01\tJanuary\nM13\tAnnual Average\nQ02\t2nd Quarter\n"


def _urls(*names):
    return {name: f"{BASE}/xx.{name}" for name in names}


class TestResolveJoinKey:
    """Choosing the join columns."""

    def test_two_column_lookup_uses_first_column(self) -> None:
        """Test that a code/text pair joins on its code."""
        key = resolve_join_key(["series_id", "area_code"], ["area_code", "area_text"])

        assert key.found
        assert key.columns == ("area_code",)
        assert key.strategy == "first_column"

    def test_two_column_lookup_missing_key(self) -> None:
        """Test that a missing first column yields no key and a reason."""
        key = resolve_join_key(["series_id"], ["area_code", "area_text"])

        assert not key.found
        assert "area_code" in key.reason

    def test_wider_lookup_uses_overlap(self) -> None:
        """Test that every shared name becomes part of the key."""
        key = resolve_join_key(
            ["series_id", "areatype_code", "area_code", "value"],
            ["areatype_code", "area_code", "area_name"],
        )

        assert key.columns == ("areatype_code", "area_code")
        assert key.strategy == "overlap"

    def test_wider_lookup_without_overlap(self) -> None:
        """Test that no shared names yields no key."""
        key = resolve_join_key(["a", "b"], ["x", "y", "z"])

        assert not key.found
        assert key.reason

    def test_declared_key_wins(self) -> None:
        """Test that a declared key overrides the heuristics."""
        key = resolve_join_key(["series_id", "area_code"], ["series_id", "area_code", "title"], declared="series_id")

        assert key.columns == ("series_id",)
        assert key.strategy == "declared"

    def test_declared_key_must_exist_on_both_sides(self) -> None:
        """Test that a declared key absent from one side is reported."""
        key = resolve_join_key(["series_id"], ["state_code", "state_text"], declared="state_code")

        assert not key.found
        assert "state_code" in key.reason

    def test_first_column_strategy_for_wide_lookup(self) -> None:
        """Test that the first_column strategy ignores other shared names."""
        key = resolve_join_key(
            ["area_code", "display_level"],
            ["area_code", "area_text", "display_level"],
            strategy="first_column",
        )

        assert key.columns == ("area_code",)

    def test_empty_lookup(self) -> None:
        """Test that a lookup without columns yields no key."""
        assert not resolve_join_key(["a"], []).found


class TestLeftJoin:
    """Row-preserving joins."""

    def test_single_shared_column_preserves_rows(self) -> None:
        """Test that a unique-key lookup never changes the row count."""
        base = pd.DataFrame({"k": ["a", "b", "a", "c"], "v": ["1", "2", "3", "4"]})
        lookup = pd.DataFrame({"k": ["a", "b"], "text": ["A", "B"]})

        joined = left_join(base, lookup, JoinKey(columns=("k",), strategy="first_column"), "_lookup")

        assert len(joined) == len(base)
        assert joined["k"].tolist() == ["a", "b", "a", "c"]
        assert joined["text"].tolist()[:3] == ["A", "B", "A"]
        assert pd.isna(joined["text"].iloc[3])

    def test_colliding_columns_get_suffix(self) -> None:
        """Test that a non-key name on both sides keeps the base copy unsuffixed."""
        base = pd.DataFrame({"k": ["a"], "title": ["base"]})
        lookup = pd.DataFrame({"k": ["a"], "title": ["lookup"]})

        joined = left_join(base, lookup, JoinKey(columns=("k",)), "_area")

        assert joined.columns.tolist() == ["k", "title", "title_area"]


class TestCollect:
    """Fetching and joining several files."""

    def test_base_with_two_lookups(self, archive_client) -> None:
        """Test the 3-row, 5-column base plus two 2-column lookups."""
        urls = _urls("data", "area", "period")
        client = archive_client(files={urls["data"]: DATA, urls["area"]: AREA, urls["period"]: PERIOD})

        collection = collect(urls, client=client)

        assert collection.data.shape == (3, 7)
        assert collection.summary.files_downloaded == 3
        assert collection.summary.total_warnings == 0
        assert collection.summary.final_dimensions == (3, 7)
        assert collection.data["area_text"].tolist() == ["Alpha", "Beta", "Alpha"]
        assert collection.data["period_name"].tolist() == ["January", "Annual Average", "2nd Quarter"]
        assert not collection.has_issues()

    def test_files_are_fetched_in_order(self, archive_client) -> None:
        """Test that files are requested one after another in mapping order."""
        urls = _urls("data", "area", "period")
        client = archive_client(files={urls["data"]: DATA, urls["area"]: AREA, urls["period"]: PERIOD})

        collect(urls, client=client)

        assert client.fetched == list(urls.values())

    def test_failing_auxiliary_file_is_tolerated(self, archive_client) -> None:
        """Test that a missing lookup leaves a warning naming it."""
        urls = _urls("data", "area", "period")
        client = archive_client(
            files={urls["data"]: DATA, urls["period"]: PERIOD},
            failures=[urls["area"]],
        )

        collection = collect(urls, client=client)

        assert collection.data.shape == (3, 6)
        assert "area" in collection.failed_files
        assert any(w.startswith("area:") for w in collection.aggregate_warnings)
        assert collection.summary.files_downloaded == 2
        assert collection.summary.files_with_issues == 1
        assert collection.has_issues()

    def test_auxiliary_failure_raises_when_not_tolerated(self, archive_client) -> None:
        """Test that tolerate_aux_failures=False propagates the error."""
        urls = _urls("data", "area")
        client = archive_client(files={urls["data"]: DATA}, failures=[urls["area"]])

        with pytest.raises(FetchError):
            collect(urls, options=CollectOptions(tolerate_aux_failures=False), client=client)

    def test_setting_disables_tolerance(self, monkeypatch, archive_client) -> None:
        """Test that BLS_TOLERATE_AUX_FAILURES=false is honoured."""
        monkeypatch.setenv("BLS_TOLERATE_AUX_FAILURES", "false")
        urls = _urls("data", "area")
        client = archive_client(files={urls["data"]: DATA}, failures=[urls["area"]])

        with pytest.raises(FetchError):
            collect(urls, client=client)

    def test_base_failure_always_raises(self, archive_client) -> None:
        """Test that the observation file is mandatory."""
        urls = _urls("data", "area")
        client = archive_client(files={urls["area"]: AREA}, failures=[urls["data"]])

        with pytest.raises(FetchError):
            collect(urls, client=client)

    def test_unjoinable_file_is_skipped_with_warning(self, archive_client) -> None:
        """Test that a lookup without a usable key is reported and skipped."""
        urls = _urls("data", "industry")
        client = archive_client(files={
            urls["data"]: DATA,
            urls["industry"]: "industry_code\tindustry_text\n000000\tTotal nonfarm\n",
        })

        collection = collect(urls, client=client)

        assert collection.data.shape == (3, 5)
        assert len(collection.aggregate_warnings) == 1
        assert collection.aggregate_warnings[0].startswith("industry: Skipped join")

    def test_duplicate_lookup_keys_are_reported(self, archive_client) -> None:
        """Test that a join that multiplies rows leaves a warning."""
        urls = _urls("data", "area")
        client = archive_client(files={
            urls["data"]: DATA,
            urls["area"]: "area_code\tarea_text\nA1\tAlpha\nA1\tAlpha again\nA2\tBeta\n",
        })

        collection = collect(urls, client=client)

        # both A1 rows of the base match twice
        assert len(collection.data) == 5
        assert any("changed row count" in w for w in collection.aggregate_warnings)

    def test_parse_warnings_are_prefixed_with_file_name(self, archive_client) -> None:
        """Test that per-file repairs show up in the aggregate list."""
        urls = _urls("data", "area")
        client = archive_client(files={
            urls["data"]: DATA,
            urls["area"]: "area_code\tarea_text\nA1\tAlpha\tExtra\nA2\tBeta\tExtra\n",
        })

        collection = collect(urls, client=client)

        assert collection.summary.files_with_issues == 1
        assert collection.aggregate_warnings[0].startswith("area: Header has 2 field(s)")
        assert collection.per_file_diagnostics["area"].header_data_mismatch is True

    def test_excluded_columns_are_dropped_before_joining(self, archive_client) -> None:
        """Test that exclude_columns trims a file before it is joined."""
        urls = _urls("data", "area")
        client = archive_client(files={urls["data"]: DATA, urls["area"]: AREA})
        options = CollectOptions(exclude_columns={"data": ["value"]})

        collection = collect(urls, options=options, client=client)

        assert "value" not in collection.data.columns
        assert "area_text" in collection.data.columns

    def test_empty_mapping_is_rejected(self) -> None:
        """Test that at least one file is required."""
        with pytest.raises(ValueError):
            collect({})


class TestPostProcessing:
    """Value coercion, dates and column pruning."""

    def test_steps_run_in_order(self, archive_client) -> None:
        """Test coercion, date derivation and code-column removal together."""
        urls = _urls("data", "area")
        client = archive_client(files={urls["data"]: DATA, urls["area"]: AREA})
        options = CollectOptions(coerce_value=True, derive_date=True, drop_code_columns=True)

        collection = collect(urls, options=options, client=client)
        frame = collection.data

        assert frame["value"].tolist()[:2] == [1.5, 2.0]
        assert pd.isna(frame["value"].iloc[2])
        assert frame["date"].tolist() == [
            pd.Timestamp("2020-01-01"),
            pd.Timestamp("2020-01-01"),
            pd.Timestamp("2021-04-01"),
        ]
        assert "area_code" not in frame.columns
        assert "area_text" in frame.columns
        steps = collection.summary.processing_steps
        assert steps[0] == "Joined area on area_code"
        assert steps[1].startswith("Converted value to numeric")

    def test_date_needs_year_and_period(self) -> None:
        """Test that no date column is derived without both inputs."""
        frame = pd.DataFrame({"year": ["2020"], "value": ["1"]})

        out, steps = apply_post_processing(frame, CollectOptions(derive_date=True))

        assert "date" not in out.columns
        assert steps == []

    def test_code_columns_kept_without_partner(self) -> None:
        """Test that a code without its descriptive column is kept by default."""
        frame = pd.DataFrame({"seasonal_code": ["S"], "area_code": ["A1"], "area_text": ["Alpha"]})

        out, _ = apply_post_processing(frame, CollectOptions(drop_code_columns=True))

        assert out.columns.tolist() == ["seasonal_code", "area_text"]
