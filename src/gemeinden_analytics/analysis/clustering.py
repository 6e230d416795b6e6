"""
Gemeinde clustering module.

Implements a deterministic K-Means over two or three KPIs of one year.
Seeds are the first ``k`` complete Gemeinden in input order, so the same
input always yields the same labels.

Usage:
    from gemeinden_analytics.analysis.clustering import cluster
    assignments = cluster(snapshot.entities, ["Steuerfuss", "Steuerfuss JusPers"])
"""

from __future__ import annotations

from typing import Sequence

import numpy as np
import polars as pl
from sklearn.metrics import silhouette_score

from gemeinden_analytics.models import ClusterAssignment, Entity

DEFAULT_K = 3
DEFAULT_ITERATIONS = 5


def prepare_features(
    entities: Sequence[Entity],
    feature_names: Sequence[str],
) -> tuple[np.ndarray, list[Entity]]:
    """
    Extract the feature matrix of the Gemeinden that have every feature.

    Args:
        entities: Gemeinden of one year.
        feature_names: Ordered KPI names.

    Returns:
        Tuple of (feature matrix, kept entities in input order).
    """
    kept = []
    rows = []
    for entity in entities:
        values = [entity.value(name) for name in feature_names]
        if any(value is None for value in values):
            continue
        kept.append(entity)
        rows.append(values)

    X = np.array(rows, dtype=float).reshape(len(rows), len(feature_names))
    return X, kept


def run_kmeans(
    X: np.ndarray,
    k: int = DEFAULT_K,
    iterations: int = DEFAULT_ITERATIONS,
) -> tuple[np.ndarray, np.ndarray]:
    """
    Run K-Means with the first ``k`` rows as seeds.

    Each round assigns every point to its nearest centroid (ties go to
    the lowest cluster index) and moves each centroid to the mean of its
    members. A centroid without members stays where it is.

    Args:
        X: Feature matrix with at least ``k`` rows.
        k: Number of clusters.
        iterations: Number of assign/update rounds.

    Returns:
        Tuple of (labels, centroids).
    """
    if k < 1 or iterations < 1:
        raise ValueError(f"k and iterations must be positive, got k={k}, iterations={iterations}")

    centroids = X[:k].copy()
    labels = np.zeros(len(X), dtype=int)

    for _ in range(iterations):
        distances = np.linalg.norm(X[:, np.newaxis, :] - centroids[np.newaxis, :, :], axis=2)
        labels = distances.argmin(axis=1)

        for c in range(k):
            members = X[labels == c]
            if len(members):
                centroids[c] = members.mean(axis=0)

    return labels, centroids


def cluster(
    entities: Sequence[Entity],
    feature_names: Sequence[str],
    k: int = DEFAULT_K,
    iterations: int = DEFAULT_ITERATIONS,
) -> list[ClusterAssignment]:
    """
    Cluster Gemeinden on ``feature_names``.

    Gemeinden missing any feature get no assignment. With fewer than
    ``k`` complete Gemeinden the result is empty.

    Returns:
        One assignment per complete Gemeinde, in input order.
    """
    X, kept = prepare_features(entities, feature_names)
    if len(kept) < k:
        return []

    labels, _ = run_kmeans(X, k=k, iterations=iterations)

    return [
        ClusterAssignment(
            entity_id=entity.id,
            features={name: float(value) for name, value in zip(feature_names, row)},
            cluster=int(label),
        )
        for entity, row, label in zip(kept, X, labels)
    ]


def cluster_profiles(assignments: Sequence[ClusterAssignment]) -> pl.DataFrame:
    """
    Generate summary statistics for each cluster.

    Returns:
        DataFrame with member count and feature means per cluster.
    """
    if not assignments:
        return pl.DataFrame(schema={"cluster": pl.Int64, "members": pl.UInt32})

    feature_names = list(assignments[0].features)
    df = pl.DataFrame([{"cluster": a.cluster, **a.features} for a in assignments])

    return (
        df.group_by("cluster")
        .agg([
            pl.len().alias("members"),
            *[pl.col(name).mean().alias(f"avg_{name}") for name in feature_names],
        ])
        .sort("cluster")
    )


def silhouette(assignments: Sequence[ClusterAssignment]) -> float | None:
    """
    Silhouette score of a clustering on the raw feature values.

    Returns None when the score is undefined (fewer than two distinct
    labels, or as many labels as points).
    """
    if not assignments:
        return None

    labels = np.array([a.cluster for a in assignments])
    n_labels = len(np.unique(labels))
    if n_labels < 2 or n_labels > len(assignments) - 1:
        return None

    X = np.array([list(a.features.values()) for a in assignments], dtype=float)
    return float(silhouette_score(X, labels))
