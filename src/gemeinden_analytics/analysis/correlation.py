"""
Pairwise Pearson correlations between all KPIs.

Rows may span several years; every Gemeinde-year is one observation.
Pairs with fewer than ``MIN_SAMPLES`` co-occurring values, or with a
constant side, are left out of the ranking.
"""

from __future__ import annotations

from itertools import combinations
from typing import Iterable

import numpy as np
import polars as pl

from gemeinden_analytics.config import META_COLUMNS
from gemeinden_analytics.models import CorrelationResult, numeric_attributes

MIN_SAMPLES = 5


def is_constant(values: np.ndarray) -> bool:
    """True when every element equals the first one."""
    return bool(np.all(values == values[0]))


def pearson(x: Iterable[float], y: Iterable[float]) -> float | None:
    """
    Calculate the Pearson correlation coefficient.

    Non-finite entries drop the whole pair. Returns None when fewer than
    two pairs remain or either side has zero variance.
    """
    x_arr = np.asarray(x, dtype=float)
    y_arr = np.asarray(y, dtype=float)
    mask = np.isfinite(x_arr) & np.isfinite(y_arr)
    x_arr = x_arr[mask]
    y_arr = y_arr[mask]

    if len(x_arr) < 2 or is_constant(x_arr) or is_constant(y_arr):
        return None

    x_dev = x_arr - x_arr.mean()
    y_dev = y_arr - y_arr.mean()

    numerator = np.sum(x_dev * y_dev)
    denominator = np.sqrt(np.sum(x_dev ** 2) * np.sum(y_dev ** 2))

    if denominator == 0:
        return None

    return float(np.clip(numerator / denominator, -1.0, 1.0))


def compute_correlations(
    rows: pl.DataFrame,
    exclude: Iterable[str] = META_COLUMNS,
    min_samples: int = MIN_SAMPLES,
) -> list[CorrelationResult]:
    """
    Correlate every unordered pair of numeric KPIs.

    Args:
        rows: Normalized Gemeinde-year rows.
        exclude: Identifier-like columns that are not KPIs.
        min_samples: Minimum number of rows where both KPIs are present.

    Returns:
        Correlation results sorted by descending ``|r|``.
    """
    attributes = [
        name for name in numeric_attributes(rows, exclude)
        if rows[name].null_count() < rows.height
    ]
    columns = {name: rows[name].to_numpy().astype(float) for name in attributes}

    results = []
    for a, b in combinations(attributes, 2):
        x, y = columns[a], columns[b]
        mask = np.isfinite(x) & np.isfinite(y)
        n = int(mask.sum())
        if n < min_samples:
            continue

        r = pearson(x[mask], y[mask])
        if r is None:
            continue
        results.append(CorrelationResult(attribute_a=a, attribute_b=b, r=r, n=n))

    results.sort(key=lambda result: abs(result.r), reverse=True)
    return results


def interpret_correlation(r: float) -> str:
    """Interpret a correlation coefficient in words."""
    abs_r = abs(r)

    if abs_r >= 0.7:
        strength = "strong"
    elif abs_r >= 0.4:
        strength = "moderate"
    elif abs_r >= 0.2:
        strength = "weak"
    else:
        strength = "very weak"

    direction = "positive" if r > 0 else "negative"

    return f"{strength} {direction}"
