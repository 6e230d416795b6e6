"""
DuckDB snapshot store.

This module reads the merged Gemeinden warehouse table (one row per
Gemeinde and year, KPIs as columns, geometry as GeoJSON text) and the
optional table of precomputed Moran's I scores. Every frame leaving the
store has been through ``normalize_frame``.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Sequence

import duckdb
import polars as pl
from loguru import logger

from gemeinden_analytics.config import (
    ID_COLUMN,
    KPI_TABLE,
    MORAN_TABLE,
    NAME_COLUMN,
    WAREHOUSE_PATH,
    YEAR_COLUMN,
)
from gemeinden_analytics.errors import DataSourceUnavailableError
from gemeinden_analytics.models import EntityId, StoredMoranScore, finite_or_none, normalize_frame

# Columns of the precomputed Moran's I table
MORAN_ATTRIBUTE_COLUMN = "kpi"
MORAN_SCORE_COLUMN = "moran_i"


def quote_identifier(name: str) -> str:
    """Quote a column or table name for DuckDB SQL."""
    return '"' + name.replace('"', '""') + '"'


class SnapshotStore:
    """
    Read-only access to the Gemeinden warehouse.

    Example:
        >>> store = SnapshotStore(Path("data/warehouse/gemeinden.duckdb"))
        >>> df = store.fetch_year(2020)
    """

    def __init__(
        self,
        warehouse_path: Path | str = WAREHOUSE_PATH,
        table: str = KPI_TABLE,
        moran_table: str = MORAN_TABLE,
    ) -> None:
        self.warehouse_path = Path(warehouse_path)
        self.table = table
        self.moran_table = moran_table

    def _query(self, query: str, params: Sequence[Any], context: str) -> pl.DataFrame:
        """Run ``query`` on a fresh read-only connection and return a Polars frame."""
        if not self.warehouse_path.exists():
            raise DataSourceUnavailableError(
                f"Warehouse not found at {self.warehouse_path} while loading {context}"
            )

        logger.debug(f"Query ({context}): {query.strip()[:200]}")
        try:
            with duckdb.connect(str(self.warehouse_path), read_only=True) as conn:
                return conn.execute(query, list(params)).pl()
        except duckdb.Error as e:
            raise DataSourceUnavailableError(f"Failed to load {context}: {e}") from e

    def fetch_year(self, year: int) -> pl.DataFrame:
        """
        Load all Gemeinden of one year.

        Args:
            year: Reporting year.

        Returns:
            Normalized frame, one row per Gemeinde, geometry as GeoJSON text.

        Raises:
            DataSourceUnavailableError: If the query fails or the year has no rows.
        """
        query = f"""
        SELECT *
        FROM {quote_identifier(self.table)}
        WHERE {quote_identifier(YEAR_COLUMN)} = ?
        ORDER BY {quote_identifier(ID_COLUMN)}
        """
        df = self._query(query, [year], context=f"year {year}")
        if df.is_empty():
            raise DataSourceUnavailableError(f"No rows for year {year} in {self.table}")
        return normalize_frame(df)

    def fetch_entity_timeseries(self, entity_id: EntityId) -> pl.DataFrame:
        """All years of one Gemeinde, ascending by year. Empty if the id is unknown."""
        query = f"""
        SELECT *
        FROM {quote_identifier(self.table)}
        WHERE {quote_identifier(ID_COLUMN)} = ?
        ORDER BY {quote_identifier(YEAR_COLUMN)} ASC
        """
        df = self._query(query, [entity_id], context=f"time series of {entity_id}")
        return normalize_frame(df)

    def find_entity_ids(self, name: str) -> list[EntityId]:
        """Ids of the Gemeinden called ``name`` in any year (case-insensitive)."""
        query = f"""
        SELECT DISTINCT {quote_identifier(ID_COLUMN)} AS entity_id
        FROM {quote_identifier(self.table)}
        WHERE lower(trim({quote_identifier(NAME_COLUMN)})) = lower(trim(?))
        ORDER BY entity_id
        """
        df = self._query(query, [name], context=f"Gemeinde {name!r}")
        return df["entity_id"].to_list()

    def fetch_moran_scores(
        self,
        year: int,
        attribute: str,
        entity_ids: Sequence[EntityId] | None = None,
    ) -> list[StoredMoranScore]:
        """
        Read precomputed Moran's I scores.

        Args:
            year: Reporting year.
            attribute: KPI the scores were computed for.
            entity_ids: Restrict to these Gemeinden. None returns all.

        Returns:
            Stored scores ordered by entity id.
        """
        query = f"""
        SELECT
            {quote_identifier(YEAR_COLUMN)} AS year,
            {quote_identifier(MORAN_ATTRIBUTE_COLUMN)} AS attribute,
            {quote_identifier(ID_COLUMN)} AS entity_id,
            {quote_identifier(MORAN_SCORE_COLUMN)} AS score
        FROM {quote_identifier(self.moran_table)}
        WHERE {quote_identifier(YEAR_COLUMN)} = ?
          AND {quote_identifier(MORAN_ATTRIBUTE_COLUMN)} = ?
        """
        params: list[Any] = [year, attribute]
        if entity_ids is not None:
            if not entity_ids:
                return []
            placeholders = ", ".join("?" for _ in entity_ids)
            query += f"  AND {quote_identifier(ID_COLUMN)} IN ({placeholders})\n"
            params.extend(entity_ids)
        query += f"ORDER BY {quote_identifier(ID_COLUMN)}"

        df = self._query(query, params, context=f"Moran scores {attribute} {year}")
        return [
            StoredMoranScore(
                year=int(row["year"]),
                attribute=row["attribute"],
                entity_id=row["entity_id"],
                score=finite_or_none(row["score"]),
            )
            for row in df.iter_rows(named=True)
        ]

    def list_years(self) -> list[int]:
        """Distinct years present in the warehouse table."""
        query = f"""
        SELECT DISTINCT {quote_identifier(YEAR_COLUMN)} AS year
        FROM {quote_identifier(self.table)}
        ORDER BY year
        """
        df = self._query(query, [], context="year list")
        return [int(year) for year in df["year"].to_list()]
