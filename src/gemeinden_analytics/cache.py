"""
Per-year snapshot cache.

Holds, for each configured year, the KPI table with internal fields
stripped, the GeoJSON FeatureCollection of the year and the parsed
entities. Filled once by ``preload``; a year that fails to load is
logged and left out.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable

import polars as pl
from loguru import logger
from shapely.geometry import mapping

from gemeinden_analytics.config import DROP_FIELDS
from gemeinden_analytics.errors import AnalyticsError, SnapshotUnavailableError
from gemeinden_analytics.extraction.snapshot_store import SnapshotStore
from gemeinden_analytics.models import Entity, entities_from_frame, numeric_attributes


@dataclass
class YearSnapshot:
    """Everything the engines need for one year."""

    year: int
    attributes: pl.DataFrame
    features: dict[str, Any]
    entities: list[Entity] = field(default_factory=list)

    @property
    def attribute_names(self) -> list[str]:
        return numeric_attributes(self.attributes)


def strip_internal_fields(df: pl.DataFrame, drop_fields: Iterable[str] = DROP_FIELDS) -> pl.DataFrame:
    """Remove raw geometry encodings and area/length housekeeping columns."""
    return df.drop([name for name in drop_fields if name in df.columns])


def build_feature_collection(df: pl.DataFrame, entities: list[Entity]) -> dict[str, Any]:
    """
    Build a GeoJSON FeatureCollection from a year frame.

    Properties carry every non-null column except the geometry fields.
    """
    properties = strip_internal_fields(df)
    features = []
    for row, entity in zip(properties.iter_rows(named=True), entities):
        features.append(
            {
                "type": "Feature",
                "properties": {key: value for key, value in row.items() if value is not None},
                "geometry": mapping(entity.geometry) if entity.geometry is not None else None,
            }
        )
    return {"type": "FeatureCollection", "features": features}


class SnapshotCache:
    """
    Keyed store of ``YearSnapshot`` objects.

    Example:
        >>> cache = SnapshotCache(SnapshotStore())
        >>> cache.preload(range(2011, 2024))
        >>> cache.get(2020).attributes
    """

    def __init__(self, store: SnapshotStore) -> None:
        self.store = store
        self._snapshots: dict[int, YearSnapshot] = {}
        self._failures: dict[int, str] = {}
        self._ready = False

    @property
    def ready(self) -> bool:
        """True once a ``preload`` call has finished."""
        return self._ready

    @property
    def years(self) -> list[int]:
        return sorted(self._snapshots)

    @property
    def failures(self) -> dict[int, str]:
        """Error message per year that failed to load."""
        return dict(self._failures)

    def load_year(self, year: int) -> YearSnapshot:
        """Fetch one year from the store and build its snapshot."""
        df = self.store.fetch_year(year)
        attributes = strip_internal_fields(df)
        entities = entities_from_frame(df, numeric_attributes(attributes))
        snapshot = YearSnapshot(
            year=year,
            attributes=attributes,
            features=build_feature_collection(df, entities),
            entities=entities,
        )
        self._snapshots[year] = snapshot
        self._failures.pop(year, None)
        return snapshot

    def preload(self, years: Iterable[int]) -> None:
        """
        Load every year in ``years`` once.

        Failures are logged and recorded; the remaining years still load.
        """
        years = list(years)
        logger.info(f"Preloading {len(years)} years...")

        for year in years:
            try:
                snapshot = self.load_year(year)
            except AnalyticsError as e:
                logger.error(f"Failed to preload year {year}: {e}")
                self._failures[year] = str(e)
                continue
            logger.debug(f"Preloaded year {year}: {len(snapshot.entities)} Gemeinden")

        self._ready = True
        logger.success(f"Preloading complete. {len(self._snapshots)}/{len(years)} years cached.")

    def available(self, year: int) -> bool:
        return year in self._snapshots

    def get(self, year: int) -> YearSnapshot:
        """
        Return the cached snapshot of ``year``.

        Raises:
            SnapshotUnavailableError: If the year is not cached (preload not
                run yet, year failed to load, or year invalidated).
        """
        snapshot = self._snapshots.get(year)
        if snapshot is None:
            if not self._ready:
                raise SnapshotUnavailableError(year, "preload has not completed")
            raise SnapshotUnavailableError(year, self._failures.get(year, "not loaded"))
        return snapshot

    def invalidate(self, year: int) -> None:
        """Drop a year so the next ``load_year`` refetches it."""
        self._snapshots.pop(year, None)
