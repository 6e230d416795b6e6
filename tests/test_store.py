"""Tests for the DuckDB snapshot store."""

from __future__ import annotations

from pathlib import Path

import polars as pl
import pytest

from gemeinden_analytics.errors import DataSourceUnavailableError
from gemeinden_analytics.extraction.snapshot_store import SnapshotStore, quote_identifier


class TestQuoteIdentifier:
    def test_plain(self):
        assert quote_identifier("Year") == '"Year"'

    def test_embedded_quote(self):
        assert quote_identifier('a"b') == '"a""b"'


class TestFetchYear:
    """Loading and normalizing one year."""

    def test_rows_of_one_year(self, store: SnapshotStore):
        df = store.fetch_year(2020)
        assert df.height == 5
        assert df["BFS"].to_list() == [1, 2, 3, 4, 5]
        assert set(df["Year"].to_list()) == {2020}

    def test_numeric_text_is_normalized(self, store: SnapshotStore):
        df = store.fetch_year(2020)
        assert df.schema["Sozialhilfequote"] == pl.Float64
        assert df["Sozialhilfequote"].to_list() == [2.0, 4.0, 6.0, 8.0, 10.0]

    def test_unparseable_text_becomes_null(self, store: SnapshotStore):
        df = store.fetch_year(2021)
        assert df.filter(pl.col("BFS") == 2)["Sozialhilfequote"].to_list() == [None]

    def test_geometry_is_left_as_text(self, store: SnapshotStore):
        df = store.fetch_year(2020)
        assert df.schema["geometry"] == pl.Utf8

    def test_unknown_year(self, store: SnapshotStore):
        with pytest.raises(DataSourceUnavailableError, match="No rows for year 1999"):
            store.fetch_year(1999)

    def test_missing_warehouse(self, tmp_path: Path):
        store = SnapshotStore(tmp_path / "missing.duckdb")
        with pytest.raises(DataSourceUnavailableError, match="Warehouse not found"):
            store.fetch_year(2020)

    def test_missing_table(self, warehouse: Path):
        store = SnapshotStore(warehouse, table="no_such_table")
        with pytest.raises(DataSourceUnavailableError, match="Failed to load year 2020"):
            store.fetch_year(2020)


class TestOtherQueries:
    def test_timeseries_is_ordered_by_year(self, store: SnapshotStore):
        df = store.fetch_entity_timeseries(1)
        assert df["Year"].to_list() == [2020, 2021]
        assert df["Steuerfuss"].to_list() == [1.0, 5.0]

    def test_timeseries_of_unknown_entity_is_empty(self, store: SnapshotStore):
        assert store.fetch_entity_timeseries(999).is_empty()

    def test_list_years(self, store: SnapshotStore):
        assert store.list_years() == [2020, 2021]

    def test_find_entity_ids_by_name(self, store: SnapshotStore):
        assert store.find_entity_ids("bülach") == [2]
        assert store.find_entity_ids("Atlantis") == []

    def test_moran_scores(self, store: SnapshotStore):
        rows = store.fetch_moran_scores(2020, "Steuerfuss")
        assert [(row.entity_id, row.score) for row in rows] == [(1, 0.25), (2, None), (3, -0.5)]
        assert rows[0].year == 2020
        assert rows[0].attribute == "Steuerfuss"

    def test_moran_scores_subset(self, store: SnapshotStore):
        rows = store.fetch_moran_scores(2020, "Steuerfuss", [3, 1])
        assert [row.entity_id for row in rows] == [1, 3]

    def test_moran_scores_empty_subset(self, store: SnapshotStore):
        assert store.fetch_moran_scores(2020, "Steuerfuss", []) == []
