"""
Moran's I spatial autocorrelation on the Gemeinde contiguity graph.

Weights are binary (1 between touching Gemeinden, 0 otherwise) and not
row-standardized. Gemeinden without a value are dropped from the mean,
the sums and the total weight.
"""

from __future__ import annotations

from typing import Iterable, Mapping

import numpy as np

from gemeinden_analytics.analysis.adjacency import AdjacencyGraph
from gemeinden_analytics.analysis.correlation import is_constant
from gemeinden_analytics.models import EntityId, MoranScore, finite_or_none


def moran_i(
    values: Mapping[EntityId, float | None],
    adjacency: AdjacencyGraph,
) -> float | None:
    """
    Compute Moran's I of ``values`` on ``adjacency``.

    Args:
        values: entity id -> value; None and non-finite values are excluded.
        adjacency: entity id -> set of neighbour ids.

    Returns:
        The statistic, or None when no edge joins two valued Gemeinden
        or all valued Gemeinden share the same value.
    """
    valid = {}
    for entity_id, value in values.items():
        number = finite_or_none(value)
        if number is not None:
            valid[entity_id] = number

    n = len(valid)
    if n < 2:
        return None

    x = np.fromiter(valid.values(), dtype=float, count=n)
    if is_constant(x):
        return None

    mean_val = x.mean()
    devs = {entity_id: value - mean_val for entity_id, value in valid.items()}

    s0 = 0
    weighted_sum = 0.0
    for entity_id, dev in devs.items():
        for neighbor in adjacency.get(entity_id, ()):
            if neighbor == entity_id or neighbor not in devs:
                continue
            s0 += 1
            weighted_sum += dev * devs[neighbor]

    if s0 == 0:
        return None

    ss = float(np.sum((x - mean_val) ** 2))
    return float((n / s0) * (weighted_sum / ss))


def global_moran(
    values: Mapping[EntityId, float | None],
    adjacency: AdjacencyGraph,
) -> float | None:
    """Moran's I over every Gemeinde of the year."""
    return moran_i(values, adjacency)


def local_moran(
    values: Mapping[EntityId, float | None],
    adjacency: AdjacencyGraph,
    entity_id: EntityId,
) -> float | None:
    """Moran's I restricted to ``entity_id`` and its immediate neighbours."""
    if finite_or_none(values.get(entity_id)) is None:
        return None

    neighborhood = {entity_id, *adjacency.get(entity_id, ())}
    subset = {member: values.get(member) for member in neighborhood}
    return moran_i(subset, adjacency)


def moran_scores(
    values: Mapping[EntityId, float | None],
    adjacency: AdjacencyGraph,
    entity_ids: Iterable[EntityId] | None = None,
) -> list[MoranScore]:
    """
    Neighbourhood Moran's I for each requested Gemeinde.

    Args:
        values: entity id -> KPI value.
        adjacency: Contiguity graph of the same year.
        entity_ids: Gemeinden to score, in output order. None scores every
            Gemeinde of the graph.

    Returns:
        One score per requested Gemeinde; undefined scores are None.
    """
    if entity_ids is None:
        entity_ids = adjacency.keys()
    return [
        MoranScore(entity_id=entity_id, moran_i=local_moran(values, adjacency, entity_id))
        for entity_id in entity_ids
    ]
