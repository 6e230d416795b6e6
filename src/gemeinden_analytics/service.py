"""
Analytics service.

Entry point for callers (CLI, web layer): validates years, attributes and
entity ids against the snapshot cache and dispatches to the engines of
``gemeinden_analytics.analysis``.
"""

from __future__ import annotations

from typing import Any, Iterable, Sequence

import polars as pl
from loguru import logger

from gemeinden_analytics.analysis.adjacency import AdjacencyGraph, adjacency_to_dict, build_adjacency, edge_count
from gemeinden_analytics.analysis.clustering import DEFAULT_ITERATIONS, DEFAULT_K, cluster
from gemeinden_analytics.analysis.correlation import compute_correlations
from gemeinden_analytics.analysis.moran import global_moran, moran_scores
from gemeinden_analytics.analysis.regression import Observation, deviations
from gemeinden_analytics.cache import SnapshotCache, YearSnapshot, strip_internal_fields
from gemeinden_analytics.config import ID_COLUMN, NAME_COLUMN, YEAR_COLUMN, Settings
from gemeinden_analytics.errors import InvalidParameterError, SnapshotUnavailableError
from gemeinden_analytics.extraction.snapshot_store import SnapshotStore
from gemeinden_analytics.models import (
    ClusterAssignment,
    CorrelationResult,
    EntityId,
    MoranScore,
    RegressionDeviation,
    finite_or_none,
)

MIN_CLUSTER_FEATURES = 2
MAX_CLUSTER_FEATURES = 3


class AnalyticsService:
    """
    Validated access to the analytics engines.

    Example:
        >>> service = AnalyticsService.from_settings(Settings.from_env(), years=[2020])
        >>> service.deviations(2020, "Anzahl Neugründungen Unternehmen", "Steuerkraft in Mio")
    """

    def __init__(self, cache: SnapshotCache, settings: Settings | None = None) -> None:
        self.cache = cache
        self.settings = settings or Settings()
        self._adjacency: dict[int, AdjacencyGraph] = {}

    @classmethod
    def from_settings(cls, settings: Settings, years: Iterable[int] | None = None) -> AnalyticsService:
        """Create the store and cache for ``settings`` and preload ``years`` (default: all)."""
        store = SnapshotStore(
            warehouse_path=settings.warehouse_path,
            table=settings.kpi_table,
            moran_table=settings.moran_table,
        )
        cache = SnapshotCache(store)
        cache.preload(settings.years if years is None else years)
        return cls(cache, settings)

    # ------------------------------------------------------------------
    # Validation helpers
    # ------------------------------------------------------------------

    def _check_year(self, year: int) -> None:
        if year not in self.settings.years:
            raise InvalidParameterError(
                f"Year {year} is outside {self.settings.year_start}-{self.settings.year_end}"
            )

    def _snapshot(self, year: int) -> YearSnapshot:
        self._check_year(year)
        return self.cache.get(year)

    @staticmethod
    def _check_attribute(snapshot: YearSnapshot, attribute: str) -> None:
        if attribute not in snapshot.attribute_names:
            raise InvalidParameterError(f"Unknown KPI for {snapshot.year}: {attribute!r}")

    @staticmethod
    def _resolve_entities(snapshot: YearSnapshot, entity_ids: Iterable[EntityId]) -> list[EntityId]:
        """Map requested ids (int or text) to the ids used in the snapshot."""
        known = {str(entity.id): entity.id for entity in snapshot.entities}
        resolved = []
        for entity_id in entity_ids:
            key = str(entity_id).strip()
            if key not in known:
                raise InvalidParameterError(f"Unknown Gemeinde for {snapshot.year}: {entity_id!r}")
            resolved.append(known[key])
        return resolved

    def _coerce_id(self, entity_id: EntityId) -> EntityId:
        """Id as stored in the warehouse: cached ids, numeric text as int, then names."""
        key = str(entity_id).strip()
        for year in self.cache.years:
            for entity in self.cache.get(year).entities:
                if str(entity.id) == key:
                    return entity.id
        if not isinstance(entity_id, str):
            return entity_id
        if key.lstrip("-").isdigit():
            return int(key)
        return self._resolve_name(entity_id)

    def invalidate(self, year: int) -> None:
        """Forget the cached snapshot and adjacency of ``year``."""
        self.cache.invalidate(year)
        self._adjacency.pop(year, None)

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def attributes(self, year: int) -> list[str]:
        """Numeric KPI names available in ``year``."""
        return self._snapshot(year).attribute_names

    def adjacency_graph(self, year: int) -> AdjacencyGraph:
        """Contiguity graph of ``year``, built once per year."""
        snapshot = self._snapshot(year)
        graph = self._adjacency.get(year)
        if graph is None:
            graph = build_adjacency(snapshot.entities)
            self._adjacency[year] = graph
            logger.debug(f"Built adjacency for {year}: {len(graph)} Gemeinden, {edge_count(graph)} edges")
        return graph

    def adjacency(self, year: int) -> dict[EntityId, list[EntityId]]:
        """``{entityId: [neighborIds]}`` for ``year``."""
        return adjacency_to_dict(self.adjacency_graph(year))

    def correlations(self, start: int, end: int) -> list[CorrelationResult]:
        """
        Rank KPI pairs by ``|r|`` over all Gemeinde-years in ``start..end``.

        Years of the range that are not cached are skipped with a warning.

        Raises:
            InvalidParameterError: If the range is reversed or outside the
                configured years.
            SnapshotUnavailableError: If no year of the range is cached.
        """
        if start > end:
            raise InvalidParameterError(f"Start year {start} is after end year {end}")
        self._check_year(start)
        self._check_year(end)

        frames = []
        for year in range(start, end + 1):
            if not self.cache.available(year):
                logger.warning(f"Skipping year {year}: not cached")
                continue
            frames.append(self.cache.get(year).attributes)

        if not frames:
            raise SnapshotUnavailableError(start, f"no year between {start} and {end} is cached")

        # A KPI numeric in any year stays numeric in the pooled frame
        numeric = {name for frame in frames for name, dtype in frame.schema.items() if dtype == pl.Float64}
        frames = [
            frame.with_columns(
                [pl.col(name).cast(pl.Float64, strict=False) for name in numeric if name in frame.columns]
            )
            for frame in frames
        ]

        rows = pl.concat(frames, how="diagonal_relaxed")
        results = compute_correlations(rows)
        logger.debug(f"Correlated {len(results)} KPI pairs over {rows.height} rows")
        return results

    def clusters(
        self,
        year: int,
        features: Sequence[str],
        k: int = DEFAULT_K,
        iterations: int = DEFAULT_ITERATIONS,
    ) -> list[ClusterAssignment]:
        """Cluster the Gemeinden of ``year`` on two or three KPIs."""
        snapshot = self._snapshot(year)

        features = list(features)
        if not MIN_CLUSTER_FEATURES <= len(features) <= MAX_CLUSTER_FEATURES:
            raise InvalidParameterError(
                f"Clustering needs {MIN_CLUSTER_FEATURES}-{MAX_CLUSTER_FEATURES} KPIs, got {len(features)}"
            )
        if len(set(features)) != len(features):
            raise InvalidParameterError(f"Duplicate KPIs in {features}")
        for feature in features:
            self._check_attribute(snapshot, feature)

        return cluster(snapshot.entities, features, k=k, iterations=iterations)

    def _values(self, snapshot: YearSnapshot, attribute: str) -> dict[EntityId, float | None]:
        self._check_attribute(snapshot, attribute)
        return {entity.id: entity.value(attribute) for entity in snapshot.entities}

    def moran(
        self,
        year: int,
        attribute: str,
        entity_ids: Sequence[EntityId] | None = None,
    ) -> list[MoranScore]:
        """
        Neighbourhood Moran's I per Gemeinde.

        Args:
            year: Reporting year.
            attribute: KPI name.
            entity_ids: Gemeinden to score. None scores all of them.
        """
        snapshot = self._snapshot(year)
        values = self._values(snapshot, attribute)
        if entity_ids is not None:
            entity_ids = self._resolve_entities(snapshot, entity_ids)
        return moran_scores(values, self.adjacency_graph(year), entity_ids)

    def global_moran(self, year: int, attribute: str) -> float | None:
        """Moran's I of ``attribute`` over all Gemeinden of ``year``."""
        snapshot = self._snapshot(year)
        return global_moran(self._values(snapshot, attribute), self.adjacency_graph(year))

    def stored_moran(
        self,
        year: int,
        attribute: str,
        entity_ids: Sequence[EntityId] | None = None,
    ) -> list[MoranScore]:
        """Precomputed Moran's I scores from the warehouse."""
        snapshot = self._snapshot(year)
        self._check_attribute(snapshot, attribute)
        if entity_ids is not None:
            entity_ids = self._resolve_entities(snapshot, entity_ids)
        rows = self.cache.store.fetch_moran_scores(year, attribute, entity_ids)
        return [row.to_score() for row in rows]

    def deviations(self, year: int, x: str, y: str) -> list[RegressionDeviation]:
        """
        Residuals of the OLS fit of ``y`` on ``x`` for ``year``.

        Raises:
            DegenerateInputError: If every Gemeinde has the same ``x``.
        """
        snapshot = self._snapshot(year)
        self._check_attribute(snapshot, x)
        self._check_attribute(snapshot, y)

        pairs = [
            Observation(entity_id=entity.id, x=entity.value(x), y=entity.value(y))
            for entity in snapshot.entities
        ]
        return deviations(pairs)

    def entity_details(self, year: int, entity_id: EntityId) -> dict[str, Any]:
        """Id, name, year and every numeric KPI of one Gemeinde in ``year``."""
        snapshot = self._snapshot(year)
        (resolved,) = self._resolve_entities(snapshot, [entity_id])

        row = snapshot.attributes.filter(pl.col(ID_COLUMN) == resolved).row(0, named=True)
        details: dict[str, Any] = {
            ID_COLUMN: row[ID_COLUMN],
            NAME_COLUMN: row.get(NAME_COLUMN),
            YEAR_COLUMN: row[YEAR_COLUMN],
        }
        for name in snapshot.attribute_names:
            details[name] = finite_or_none(row[name])
        return details

    def _resolve_name(self, name: str) -> EntityId:
        """Id of the Gemeinde called ``name``: cached years first, then the warehouse."""
        key = name.strip().lower()
        for year in self.cache.years:
            for entity in self.cache.get(year).entities:
                if entity.name and entity.name.strip().lower() == key:
                    return entity.id

        ids = self.cache.store.find_entity_ids(name)
        if not ids:
            raise InvalidParameterError(f"Unknown Gemeinde: {name!r}")
        if len(ids) > 1:
            raise InvalidParameterError(f"Ambiguous Gemeinde name {name!r}: ids {ids}")
        return ids[0]

    def entity_timeseries(self, entity_id: EntityId) -> list[dict[str, Any]]:
        """
        Every year of one Gemeinde, read straight from the warehouse.

        Args:
            entity_id: BFS id (int or numeric text) or Gemeinde name.

        Raises:
            InvalidParameterError: If the warehouse has no row for ``entity_id``.
        """
        df = self.cache.store.fetch_entity_timeseries(self._coerce_id(entity_id))
        if df.is_empty():
            raise InvalidParameterError(f"Unknown Gemeinde: {entity_id!r}")
        return list(strip_internal_fields(df).iter_rows(named=True))

    def kpi_averages(self, x: str, y: str) -> list[dict[str, Any]]:
        """
        Mean of two KPIs across Gemeinden, per cached year.

        Returns:
            ``[{"year", "xAvg", "yAvg"}]`` ascending by year; a KPI missing
            in a year averages to None.
        """
        known = set()
        for year in self.cache.years:
            known.update(self.cache.get(year).attribute_names)
        for attribute in (x, y):
            if attribute not in known:
                raise InvalidParameterError(f"Unknown KPI: {attribute!r}")

        averages = []
        for year in self.cache.years:
            df = self.cache.get(year).attributes
            averages.append(
                {
                    "year": year,
                    "xAvg": finite_or_none(df[x].mean()) if x in df.columns else None,
                    "yAvg": finite_or_none(df[y].mean()) if y in df.columns else None,
                }
            )
        return averages

    def geojson(self, year: int) -> dict[str, Any]:
        """GeoJSON FeatureCollection of ``year``."""
        return self._snapshot(year).features
