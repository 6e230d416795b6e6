"""
Gemeinden KPI analytics.

Spatial statistics over year-indexed municipal indicators: contiguity
graphs, correlation rankings, clustering, Moran's I and regression
deviations.
"""

__version__ = "0.1.0"
