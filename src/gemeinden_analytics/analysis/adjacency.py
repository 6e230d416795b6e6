"""
Contiguity graph of the Gemeinden of one year.

Two Gemeinden are neighbours when their boundaries touch without their
interiors overlapping. Candidate pairs come from an STRtree bounding-box
query so the exact ``touches`` test only runs on nearby polygons.
"""

from __future__ import annotations

from typing import Iterable

from shapely.strtree import STRtree

from gemeinden_analytics.models import Entity, EntityId

AdjacencyGraph = dict[EntityId, set[EntityId]]


def build_adjacency(entities: Iterable[Entity]) -> AdjacencyGraph:
    """
    Build the symmetric, irreflexive touch graph of ``entities``.

    Every entity is a key of the result. Entities without a usable
    geometry keep an empty neighbour set.

    Args:
        entities: Gemeinden of a single year.

    Returns:
        Mapping entity id -> ids of touching Gemeinden.
    """
    entities = list(entities)
    graph: AdjacencyGraph = {entity.id: set() for entity in entities}

    located = [
        entity for entity in entities
        if entity.geometry is not None and not entity.geometry.is_empty
    ]
    if len(located) < 2:
        return graph

    tree = STRtree([entity.geometry for entity in located])

    for i, entity in enumerate(located):
        # Indices whose envelopes intersect this entity's envelope
        for j in tree.query(entity.geometry):
            j = int(j)
            if j <= i:
                continue
            other = located[j]
            if other.id == entity.id:
                continue
            if entity.geometry.touches(other.geometry):
                graph[entity.id].add(other.id)
                graph[other.id].add(entity.id)

    return graph


def adjacency_to_dict(graph: AdjacencyGraph) -> dict[EntityId, list[EntityId]]:
    """``{entityId: [neighborIds]}`` with sorted neighbour lists."""
    return {entity_id: sorted(neighbors) for entity_id, neighbors in graph.items()}


def edge_count(graph: AdjacencyGraph) -> int:
    """Number of undirected edges."""
    return sum(len(neighbors) for neighbors in graph.values()) // 2
