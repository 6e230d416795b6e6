"""
Analysis module for Gemeinde KPI analytics.

Contains the contiguity graph, correlation ranking, clustering,
Moran's I and regression deviation engines.
"""

from .adjacency import AdjacencyGraph, adjacency_to_dict, build_adjacency
from .clustering import DEFAULT_ITERATIONS, DEFAULT_K, cluster, cluster_profiles, silhouette
from .correlation import MIN_SAMPLES, compute_correlations, pearson
from .moran import global_moran, local_moran, moran_i, moran_scores
from .regression import Observation, deviations, fit_line

__all__ = [
    "AdjacencyGraph",
    "adjacency_to_dict",
    "build_adjacency",
    "DEFAULT_ITERATIONS",
    "DEFAULT_K",
    "cluster",
    "cluster_profiles",
    "silhouette",
    "MIN_SAMPLES",
    "compute_correlations",
    "pearson",
    "global_moran",
    "local_moran",
    "moran_i",
    "moran_scores",
    "Observation",
    "deviations",
    "fit_line",
]
