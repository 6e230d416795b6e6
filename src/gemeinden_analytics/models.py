"""
Entity model, result records and the numeric normalization step.

Rows leaving the snapshot store pass through ``normalize_frame`` exactly
once, so every engine downstream sees KPIs as Float64 with nulls in place
of unparseable or non-finite values.
"""

from __future__ import annotations

import json
import math
from dataclasses import dataclass, field
from typing import Any, Iterable, Union

import polars as pl
from loguru import logger
from shapely.errors import ShapelyError
from shapely.geometry import shape
from shapely.geometry.base import BaseGeometry

from gemeinden_analytics.config import (
    GEOMETRY_COLUMN,
    ID_COLUMN,
    META_COLUMNS,
    NAME_COLUMN,
    YEAR_COLUMN,
)

EntityId = Union[int, str]


@dataclass
class Entity:
    """One Gemeinde in one year."""

    id: EntityId
    name: str | None
    year: int
    geometry: BaseGeometry | None = None
    attributes: dict[str, float | None] = field(default_factory=dict)

    def value(self, attribute: str) -> float | None:
        """Finite value of ``attribute`` or None."""
        return finite_or_none(self.attributes.get(attribute))


@dataclass(frozen=True)
class CorrelationResult:
    """Pearson correlation of one unordered attribute pair."""

    attribute_a: str
    attribute_b: str
    r: float
    n: int

    @property
    def pair_label(self) -> str:
        return f"{self.attribute_a} vs {self.attribute_b}"

    def to_dict(self) -> dict[str, Any]:
        return {"pairLabel": self.pair_label, "r": self.r}


@dataclass(frozen=True)
class ClusterAssignment:
    """Cluster label of one entity together with its raw feature values."""

    entity_id: EntityId
    features: dict[str, float]
    cluster: int

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.entity_id, **self.features, "cluster": self.cluster}


@dataclass(frozen=True)
class MoranScore:
    entity_id: EntityId
    moran_i: float | None

    def to_dict(self) -> dict[str, Any]:
        return {"entityId": self.entity_id, "moranI": self.moran_i}


@dataclass(frozen=True)
class StoredMoranScore:
    """Row of the offline Moran's I table: (year, attribute, entity id, score)."""

    year: int
    attribute: str
    entity_id: EntityId
    score: float | None

    def to_score(self) -> MoranScore:
        return MoranScore(self.entity_id, self.score)


@dataclass(frozen=True)
class LinearFit:
    """Ordinary least squares line ``y = slope * x + intercept``."""

    slope: float
    intercept: float
    n: int

    def predict(self, x: float) -> float:
        return self.slope * x + self.intercept


@dataclass(frozen=True)
class RegressionDeviation:
    entity_id: EntityId
    x: float
    y: float
    predicted: float
    deviation: float

    def to_dict(self) -> dict[str, Any]:
        return {"entityId": self.entity_id, "deviation": self.deviation}


def finite_or_none(value: Any) -> float | None:
    """
    Coerce a raw value to a finite float.

    Numeric strings are parsed; anything else that is not a finite
    number (None, NaN, inf, text, booleans) yields None.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        value = value.strip()
        if not value:
            return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def normalize_frame(
    df: pl.DataFrame,
    meta_columns: Iterable[str] = META_COLUMNS,
) -> pl.DataFrame:
    """
    Cast every KPI column of ``df`` to Float64.

    - Numeric columns are cast directly.
    - String columns are parsed when at least one cell is numeric;
      cells that do not parse become null. Pure text columns are kept
      as they are.
    - Columns without a single value (all null) become Float64, so a KPI
      missing for a whole year keeps its numeric type.
    - NaN and infinite values become null.

    Args:
        df: Raw frame as read from the warehouse.
        meta_columns: Identifier-like columns that are never cast.

    Returns:
        DataFrame with normalized KPI columns.
    """
    meta = set(meta_columns)
    exprs = []

    for name, dtype in df.schema.items():
        if name in meta:
            continue
        if dtype.is_numeric():
            col = pl.col(name).cast(pl.Float64)
        elif dtype in (pl.Utf8, pl.Null) and df.height and df[name].null_count() == df.height:
            col = pl.col(name).cast(pl.Float64, strict=False)
        elif dtype == pl.Utf8:
            parsed = df[name].str.strip_chars().cast(pl.Float64, strict=False)
            if parsed.is_null().all():
                continue
            col = pl.col(name).str.strip_chars().cast(pl.Float64, strict=False)
        else:
            continue
        exprs.append(pl.when(col.is_finite()).then(col).otherwise(None).alias(name))

    return df.with_columns(exprs) if exprs else df


def numeric_attributes(df: pl.DataFrame, exclude: Iterable[str] = META_COLUMNS) -> list[str]:
    """Names of the Float64 KPI columns of a normalized frame, in column order."""
    excluded = set(exclude)
    return [
        name
        for name, dtype in df.schema.items()
        if name not in excluded and dtype == pl.Float64
    ]


def parse_geometry(raw: Any) -> BaseGeometry | None:
    """
    Parse a GeoJSON geometry (text or mapping) into a shapely geometry.

    Missing, malformed and empty geometries yield None.
    """
    if raw is None:
        return None
    try:
        if isinstance(raw, (bytes, str)):
            raw = json.loads(raw)
        geom = shape(raw)
    except (ValueError, TypeError, KeyError, IndexError, AttributeError, ShapelyError) as e:
        logger.warning(f"Ignoring unparseable geometry: {e}")
        return None
    if geom.is_empty:
        return None
    return geom


def entities_from_frame(
    df: pl.DataFrame,
    attributes: list[str] | None = None,
) -> list[Entity]:
    """
    Build ``Entity`` records from a normalized year frame.

    Args:
        df: Normalized frame with id, name, year and (optionally) geometry columns.
        attributes: KPI columns to carry over. Defaults to all numeric KPIs.

    Returns:
        Entities in frame order.
    """
    if attributes is None:
        attributes = numeric_attributes(df)
    has_geometry = GEOMETRY_COLUMN in df.columns

    entities = []
    for row in df.iter_rows(named=True):
        entities.append(
            Entity(
                id=row[ID_COLUMN],
                name=row.get(NAME_COLUMN),
                year=int(row[YEAR_COLUMN]),
                geometry=parse_geometry(row[GEOMETRY_COLUMN]) if has_geometry else None,
                attributes={name: finite_or_none(row[name]) for name in attributes},
            )
        )
    return entities
