"""Tests for BFS, shortest path, path enumeration and subgraph extraction."""

import pytest

from synton.errors import NodeNotFoundError, StorageError, TraversalError
from synton.graph.schema import Direction, Node, NodeType
from synton.graph.store import MemoryGraphStore, connect
from synton.graph.traversal import (
    bfs,
    find_all_paths,
    find_simple_paths,
    shortest_path,
    subgraph,
    traversable_edges,
)


def _store(*node_ids: str) -> MemoryGraphStore:
    store = MemoryGraphStore()
    for node_id in node_ids:
        store.add_node(Node(id=node_id, node_type=NodeType.ENTITY, content=node_id))
    return store


@pytest.fixture
def cyclic():
    """a -> b -> c -> a, plus c -> d."""
    store = _store("a", "b", "c", "d")
    connect(store, "a", "b", "causes", 0.9)
    connect(store, "b", "c", "causes", 0.8)
    connect(store, "c", "a", "causes", 0.7)
    connect(store, "c", "d", "is_a", 0.6)
    return store


class TestBfs:
    def test_terminates_on_cycles_and_emits_once(self, cyclic):
        order = bfs(cyclic, "a", max_depth=10)
        ids = [node_id for node_id, _ in order]
        assert ids[0] == "a"
        assert sorted(ids) == ["a", "b", "c", "d"]
        assert len(ids) == len(set(ids))

    def test_respects_depth(self, cyclic):
        order = dict(bfs(cyclic, "a", max_depth=1, direction=Direction.OUT))
        assert order == {"a": 0, "b": 1}

    def test_hops_are_shortest(self, cyclic):
        order = dict(bfs(cyclic, "a", max_depth=3, direction=Direction.OUT))
        assert order == {"a": 0, "b": 1, "c": 2, "d": 3}

    def test_relation_filter(self, cyclic):
        order = dict(bfs(cyclic, "c", max_depth=3, relations=["IS_A"]))
        assert order == {"c": 0, "d": 1}

    def test_max_nodes(self, cyclic):
        assert len(bfs(cyclic, "a", max_depth=5, max_nodes=2)) == 2

    def test_max_nodes_one_is_just_start(self, cyclic):
        assert bfs(cyclic, "a", max_depth=5, max_nodes=1) == [("a", 0)]

    def test_max_nodes_zero_is_empty(self, cyclic):
        assert bfs(cyclic, "a", max_depth=5, max_nodes=0) == []

    def test_missing_start(self, cyclic):
        with pytest.raises(NodeNotFoundError):
            bfs(cyclic, "zzz", max_depth=2)


class TestShortestPath:
    def test_finds_path(self, cyclic):
        assert shortest_path(cyclic, "a", "d", max_hops=5) == ["a", "b", "c", "d"]

    def test_never_longer_than_max_hops(self, cyclic):
        assert shortest_path(cyclic, "a", "d", max_hops=2) is None
        path = shortest_path(cyclic, "a", "c", max_hops=2)
        assert path is not None and len(path) - 1 <= 2

    def test_unreachable_returns_none(self, cyclic):
        assert shortest_path(cyclic, "d", "a", max_hops=5) is None

    def test_same_node(self, cyclic):
        assert shortest_path(cyclic, "b", "b", max_hops=0) == ["b"]

    def test_symmetric_edges_walk_backwards(self):
        store = _store("x", "y")
        connect(store, "y", "x", "similar_to", 0.5)
        assert shortest_path(store, "x", "y", max_hops=1) == ["x", "y"]

    def test_missing_endpoint(self, cyclic):
        with pytest.raises(NodeNotFoundError) as exc_info:
            shortest_path(cyclic, "a", "nope", max_hops=3)
        assert exc_info.value.node_id == "nope"


class TestPathEnumeration:
    def test_all_simple_paths(self):
        store = _store("s", "m1", "m2", "t")
        connect(store, "s", "m1", "causes")
        connect(store, "s", "m2", "causes")
        connect(store, "m1", "t", "causes")
        connect(store, "m2", "t", "causes")
        connect(store, "m1", "m2", "causes")

        paths = find_all_paths(store, "s", "t", max_depth=3)
        assert sorted(paths) == [
            ["s", "m1", "m2", "t"],
            ["s", "m1", "t"],
            ["s", "m2", "t"],
        ]

    def test_depth_bounds_paths(self):
        store = _store("s", "m1", "m2", "t")
        connect(store, "s", "m1", "causes")
        connect(store, "m1", "m2", "causes")
        connect(store, "m2", "t", "causes")
        assert find_simple_paths(store, "s", "t", max_depth=2) == []
        assert find_simple_paths(store, "s", "t", max_depth=3) == [["s", "m1", "m2", "t"]]

    def test_no_connection_returns_empty_list(self):
        store = _store("a", "b", "c")
        connect(store, "a", "c", "causes")
        assert find_simple_paths(store, "a", "b", max_depth=2) == []

    def test_branches_may_share_nodes(self, cyclic):
        paths = find_all_paths(cyclic, "a", "d", max_depth=6)
        assert paths == [["a", "b", "c", "d"]]

    def test_parallel_edges_give_one_path(self):
        store = _store("a", "b", "c")
        connect(store, "a", "b", "causes")
        connect(store, "a", "b", "is_a")
        connect(store, "b", "c", "causes")
        connect(store, "b", "c", "is_part_of")

        assert find_all_paths(store, "a", "b", max_depth=2) == [["a", "b"]]
        assert find_all_paths(store, "a", "c", max_depth=3) == [["a", "b", "c"]]


class TestSubgraph:
    def test_shared_neighbor_appears_once(self):
        store = _store("a", "b", "c")
        connect(store, "a", "c", "similar_to", 0.5)
        connect(store, "b", "c", "similar_to", 0.5)

        result = subgraph(store, ["a", "b"], radius=1)
        assert sorted(result.nodes) == ["a", "b", "c"]
        assert result.nodes.count("c") == 1
        assert sorted(e.id for e in result.edges) == ["a::c::similar_to", "b::c::similar_to"]

    def test_radius_zero_is_just_seeds(self, cyclic):
        result = subgraph(cyclic, ["a"], radius=0)
        assert result.nodes == ("a",)
        assert {e.id for e in result.edges} == {"a::b::causes", "c::a::causes"}


class _FailingStore(MemoryGraphStore):
    def edges(self, node_id, direction=Direction.BOTH):
        raise StorageError("disk on fire")


def test_storage_failures_become_traversal_errors():
    store = _FailingStore()
    store.add_node(Node(id="a", node_type=NodeType.ENTITY, content="a"))
    with pytest.raises(TraversalError) as exc_info:
        bfs(store, "a", max_depth=2)
    assert isinstance(exc_info.value.__cause__, StorageError)


def test_traversable_edges_min_weight(cyclic):
    walkable = traversable_edges(cyclic, "c", Direction.OUT, min_weight=0.65)
    assert [neighbor for neighbor, _ in walkable] == ["a"]
