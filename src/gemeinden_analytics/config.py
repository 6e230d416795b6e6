"""
Runtime configuration.

Settings are read from the environment (and a local ``.env`` file, if
present). Column names of the warehouse table are fixed constants since
every year of the merged Gemeinden table shares them.
"""

from __future__ import annotations

import os
import sys
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv
from loguru import logger

# Configuration
PROJECT_ROOT = Path(__file__).parent.parent.parent
WAREHOUSE_PATH = PROJECT_ROOT / "data" / "warehouse" / "gemeinden.duckdb"

KPI_TABLE = "gemeinden_merged"
MORAN_TABLE = "moran_scores"

# Warehouse columns
ID_COLUMN = "BFS"
NAME_COLUMN = "GEBIET_NAME"
YEAR_COLUMN = "Year"
GEOMETRY_COLUMN = "geometry"
META_COLUMNS = (ID_COLUMN, NAME_COLUMN, YEAR_COLUMN, GEOMETRY_COLUMN)

# Raw geometry duplicates and GIS housekeeping, never exposed as KPIs
DROP_FIELDS = ("geom", "geometry", "ARPS", "ART_CODE", "SHAPE_AREA", "SHAPE_LEN")

YEAR_START = 1990
YEAR_END = 2023


@dataclass(frozen=True)
class Settings:
    """Configuration for the warehouse, the cached year range and logging."""

    warehouse_path: Path = WAREHOUSE_PATH
    kpi_table: str = KPI_TABLE
    moran_table: str = MORAN_TABLE
    year_start: int = YEAR_START
    year_end: int = YEAR_END
    log_dir: Path = Path("logs")
    log_level: str = "INFO"

    @property
    def years(self) -> range:
        """Inclusive year range served by the cache."""
        return range(self.year_start, self.year_end + 1)

    @classmethod
    def from_env(cls) -> Settings:
        """
        Build settings from ``GEMEINDEN_*`` environment variables.

        Raises:
            ValueError: If the configured year range is empty.
        """
        load_dotenv()

        settings = cls(
            warehouse_path=Path(os.getenv("GEMEINDEN_WAREHOUSE_PATH", str(WAREHOUSE_PATH))),
            kpi_table=os.getenv("GEMEINDEN_TABLE", KPI_TABLE),
            moran_table=os.getenv("GEMEINDEN_MORAN_TABLE", MORAN_TABLE),
            year_start=int(os.getenv("GEMEINDEN_YEAR_START", YEAR_START)),
            year_end=int(os.getenv("GEMEINDEN_YEAR_END", YEAR_END)),
            log_dir=Path(os.getenv("GEMEINDEN_LOG_DIR", "logs")),
            log_level=os.getenv("GEMEINDEN_LOG_LEVEL", "INFO").upper(),
        )
        if settings.year_start > settings.year_end:
            raise ValueError(
                f"GEMEINDEN_YEAR_START ({settings.year_start}) is after "
                f"GEMEINDEN_YEAR_END ({settings.year_end})"
            )
        return settings


def configure_logging(settings: Settings) -> None:
    """Route loguru output to stderr and a rotating file sink."""
    logger.remove()
    logger.add(sys.stderr, level=settings.log_level)
    logger.add(
        str(settings.log_dir / "analytics_{time}.log"),
        rotation="10 MB",
        retention="7 days",
        level=settings.log_level,
    )
