"""Tests for the contiguity graph builder."""

from __future__ import annotations

from shapely.geometry import Polygon, box

from gemeinden_analytics.analysis.adjacency import adjacency_to_dict, build_adjacency, edge_count
from gemeinden_analytics.models import Entity


def entity(entity_id, geometry):
    return Entity(id=entity_id, name=str(entity_id), year=2020, geometry=geometry)


class TestBuildAdjacency:
    """Touch graph over polygons."""

    def test_chain_links_only_immediate_neighbours(self, chain_entities):
        graph = build_adjacency(chain_entities)
        assert graph == {1: {2}, 2: {1, 3}, 3: {2, 4}, 4: {3, 5}, 5: {4}}
        assert edge_count(graph) == 4

    def test_symmetric_and_irreflexive(self, chain_entities):
        graph = build_adjacency(chain_entities)
        for a, neighbors in graph.items():
            assert a not in neighbors
            for b in neighbors:
                assert a in graph[b]

    def test_independent_of_input_order(self, chain_entities):
        forward = build_adjacency(chain_entities)
        backward = build_adjacency(list(reversed(chain_entities)))
        assert forward == backward

    def test_corner_contact_counts_as_touch(self):
        graph = build_adjacency([entity("a", box(0, 0, 1, 1)), entity("b", box(1, 1, 2, 2))])
        assert graph == {"a": {"b"}, "b": {"a"}}

    def test_overlapping_polygons_do_not_touch(self):
        graph = build_adjacency([entity("a", box(0, 0, 2, 2)), entity("b", box(1, 1, 3, 3))])
        assert graph == {"a": set(), "b": set()}

    def test_contained_polygon_does_not_touch(self):
        graph = build_adjacency([entity("outer", box(0, 0, 4, 4)), entity("inner", box(1, 1, 2, 2))])
        assert graph["outer"] == set()

    def test_disjoint_polygons_with_overlapping_envelopes(self):
        # Two triangles whose bounding boxes overlap but which never meet
        lower = Polygon([(0, 0), (2, 0), (0, 2)])
        upper = Polygon([(2, 2), (2, 0.5), (0.5, 2)])
        graph = build_adjacency([entity(1, lower), entity(2, upper)])
        assert graph == {1: set(), 2: set()}

    def test_missing_and_empty_geometry_contribute_no_edges(self, chain_entities):
        entities = chain_entities + [entity(6, None), entity(7, Polygon())]
        graph = build_adjacency(entities)
        assert graph[6] == set()
        assert graph[7] == set()
        assert graph[3] == {2, 4}

    def test_single_entity(self):
        assert build_adjacency([entity(1, box(0, 0, 1, 1))]) == {1: set()}

    def test_to_dict_sorts_neighbours(self, chain_entities):
        graph = adjacency_to_dict(build_adjacency(chain_entities))
        assert graph[3] == [2, 4]
        assert graph[1] == [2]
