"""Residuals of a simple linear fit between two KPIs."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

import numpy as np

from gemeinden_analytics.analysis.correlation import is_constant
from gemeinden_analytics.errors import DegenerateInputError, InsufficientDataError
from gemeinden_analytics.models import EntityId, LinearFit, RegressionDeviation, finite_or_none

MIN_PAIRS = 2


@dataclass(frozen=True)
class Observation:
    """One Gemeinde's (x, y) pair."""

    entity_id: EntityId
    x: float | None
    y: float | None


def valid_observations(pairs: Iterable[Observation]) -> list[Observation]:
    """Keep the pairs where both coordinates are finite numbers."""
    kept = []
    for pair in pairs:
        x = finite_or_none(pair.x)
        y = finite_or_none(pair.y)
        if x is not None and y is not None:
            kept.append(Observation(pair.entity_id, x, y))
    return kept


def fit_line(pairs: Iterable[Observation]) -> LinearFit:
    """
    Ordinary least squares fit of y on x.

    Raises:
        InsufficientDataError: With fewer than two valid pairs.
        DegenerateInputError: When every x is identical.
    """
    pairs = valid_observations(pairs)
    if len(pairs) < MIN_PAIRS:
        raise InsufficientDataError(f"At least {MIN_PAIRS} valid pairs are required, got {len(pairs)}")

    x = np.array([pair.x for pair in pairs], dtype=float)
    y = np.array([pair.y for pair in pairs], dtype=float)
    if is_constant(x):
        raise DegenerateInputError("Regression undefined: x has zero variance")

    x_mean = x.mean()
    y_mean = y.mean()
    slope = float(np.sum((x - x_mean) * (y - y_mean)) / np.sum((x - x_mean) ** 2))
    intercept = float(y_mean - slope * x_mean)

    return LinearFit(slope=slope, intercept=intercept, n=len(pairs))


def deviations(pairs: Iterable[Observation]) -> list[RegressionDeviation]:
    """
    Deviation ``y - (slope * x + intercept)`` of every valid pair.

    Returns an empty list with fewer than two valid pairs. Output follows
    input order.

    Raises:
        DegenerateInputError: When every x is identical.
    """
    pairs = valid_observations(pairs)
    if len(pairs) < MIN_PAIRS:
        return []

    fit = fit_line(pairs)
    results = []
    for pair in pairs:
        predicted = fit.predict(pair.x)
        results.append(
            RegressionDeviation(
                entity_id=pair.entity_id,
                x=pair.x,
                y=pair.y,
                predicted=predicted,
                deviation=pair.y - predicted,
            )
        )
    return results
