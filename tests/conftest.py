"""Shared fixtures: a small DuckDB warehouse of five Gemeinden in a row."""

from __future__ import annotations

import json
from pathlib import Path

import duckdb
import pytest
from shapely.geometry import box

from gemeinden_analytics.cache import SnapshotCache
from gemeinden_analytics.config import Settings
from gemeinden_analytics.extraction.snapshot_store import SnapshotStore
from gemeinden_analytics.models import Entity
from gemeinden_analytics.service import AnalyticsService


def square(i: int) -> dict:
    """Unit square GeoJSON at x offset ``i``; squares i and i+1 share an edge."""
    return {
        "type": "Polygon",
        "coordinates": [[[i, 0], [i + 1, 0], [i + 1, 1], [i, 1], [i, 0]]],
    }


# BFS, name, year, geometry, Steuerfuss, Sozialhilfequote (text), Anzahl Beschäftigte
ROWS = [
    (1, "Aesch", 2020, square(0), 1.0, "2", 100.0),
    (2, "Bülach", 2020, square(1), 2.0, "4", None),
    (3, "Dübendorf", 2020, square(2), 3.0, "6", 300.0),
    (4, "Egg", 2020, square(3), 4.0, "8", None),
    (5, "Fehraltorf", 2020, square(4), 5.0, "10", 500.0),
    (1, "Aesch", 2021, square(0), 5.0, "1.5", 110.0),
    (2, "Bülach", 2021, square(1), 4.0, "n/a", 210.0),
    (3, "Dübendorf", 2021, square(2), 3.0, "3.5", None),
    (4, "Egg", 2021, square(3), 2.0, "4.5", 410.0),
    (5, "Fehraltorf", 2021, square(4), 1.0, "5.5", 510.0),
    (6, "Glattfelden", 2021, None, 7.0, None, 600.0),
]

MORAN_ROWS = [
    (2020, "Steuerfuss", 1, 0.25),
    (2020, "Steuerfuss", 2, None),
    (2020, "Steuerfuss", 3, -0.5),
    (2020, "Sozialhilfequote", 1, 0.9),
]


@pytest.fixture
def warehouse(tmp_path: Path) -> Path:
    """Path to a DuckDB file with ``gemeinden_merged`` and ``moran_scores``."""
    path = tmp_path / "gemeinden.duckdb"
    with duckdb.connect(str(path)) as conn:
        conn.execute(
            """
            CREATE TABLE gemeinden_merged (
                "BFS" INTEGER,
                "GEBIET_NAME" VARCHAR,
                "Year" INTEGER,
                "geometry" VARCHAR,
                "Steuerfuss" DOUBLE,
                "Sozialhilfequote" VARCHAR,
                "Anzahl Beschäftigte" DOUBLE,
                "ART_CODE" VARCHAR,
                "SHAPE_AREA" DOUBLE,
                "SHAPE_LEN" DOUBLE
            )
            """
        )
        conn.executemany(
            "INSERT INTO gemeinden_merged VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
            [
                (bfs, name, year, json.dumps(geom) if geom else None, tax, welfare, jobs, "GDE", 1.0, 4.0)
                for bfs, name, year, geom, tax, welfare, jobs in ROWS
            ],
        )
        conn.execute(
            'CREATE TABLE moran_scores ("Year" INTEGER, "kpi" VARCHAR, "BFS" INTEGER, "moran_i" DOUBLE)'
        )
        conn.executemany("INSERT INTO moran_scores VALUES (?, ?, ?, ?)", MORAN_ROWS)
    return path


@pytest.fixture
def store(warehouse: Path) -> SnapshotStore:
    return SnapshotStore(warehouse)


@pytest.fixture
def settings(warehouse: Path, tmp_path: Path) -> Settings:
    """Year range 2019-2021; 2019 has no rows in the warehouse."""
    return Settings(
        warehouse_path=warehouse,
        year_start=2019,
        year_end=2021,
        log_dir=tmp_path / "logs",
    )


@pytest.fixture
def cache(store: SnapshotStore) -> SnapshotCache:
    cache = SnapshotCache(store)
    cache.preload([2019, 2020, 2021])
    return cache


@pytest.fixture
def service(cache: SnapshotCache, settings: Settings) -> AnalyticsService:
    return AnalyticsService(cache, settings)


@pytest.fixture
def chain_entities() -> list[Entity]:
    """Five touching unit squares in a row with values 1..5."""
    return [
        Entity(
            id=i + 1,
            name=f"Gemeinde {i + 1}",
            year=2020,
            geometry=box(i, 0, i + 1, 1),
            attributes={"value": float(i + 1)},
        )
        for i in range(5)
    ]
