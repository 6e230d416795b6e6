"""Exception hierarchy shared by the store, the cache and the analytics service."""

from __future__ import annotations


class AnalyticsError(Exception):
    """Base class for every error raised by this package."""


class InvalidParameterError(AnalyticsError):
    """A requested year, attribute or entity id is missing or unknown."""


class InsufficientDataError(AnalyticsError):
    """Too few valid observations to compute a statistic."""


class DegenerateInputError(AnalyticsError):
    """The statistic is undefined for the input (zero variance, zero weight)."""


class DataSourceUnavailableError(AnalyticsError):
    """The snapshot store could not deliver the requested data."""


class SnapshotUnavailableError(DataSourceUnavailableError):
    """The requested year is not (or not yet) held by the snapshot cache."""

    def __init__(self, year: int, reason: str = "not loaded") -> None:
        self.year = year
        self.reason = reason
        super().__init__(f"Snapshot for year {year} is unavailable: {reason}")
