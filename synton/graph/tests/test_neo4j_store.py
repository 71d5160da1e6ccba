"""Integration tests for the Neo4j graph store.

These tests require a running Neo4j instance and are skipped otherwise.
"""

import os

import pytest

from synton.errors import NodeInUseError, NodeNotFoundError
from synton.graph.neo4j_store import Neo4jGraphStore, relationship_type, sanitize_label
from synton.graph.schema import Direction, Edge, Node, NodeType, Relation
from synton.graph.traversal import shortest_path


def test_relationship_type_is_sanitized():
    assert relationship_type(Relation("is_part_of")) == "IS_PART_OF"
    assert relationship_type(Relation("works with")) == "WORKS_WITH"
    assert sanitize_label("1abc") == "N_1abc"


class TestNeo4jGraphStore:
    @pytest.fixture
    def store(self):
        try:
            s = Neo4jGraphStore(
                uri=os.getenv("TEST_NEO4J_URI", "bolt://localhost:17687"),
                user=os.getenv("TEST_NEO4J_USER", "neo4j"),
                password=os.getenv("TEST_NEO4J_PASSWORD", "synton"),
            )
            s.ensure_schema()
            s.clear(force=True)
        except Exception as e:
            pytest.skip(f"Neo4j not available: {e}")
        yield s
        s.clear(force=True)
        s.close()

    def test_add_get_and_edges(self, store):
        store.add_node(Node(id="a", node_type=NodeType.CONCEPT, content="A"))
        store.add_node(Node(id="b", node_type=NodeType.FACT, content="B"))
        store.add_edge(Edge("a", "b", Relation("causes"), 0.7))

        node = store.get_node("a")
        assert node.node_type == NodeType.CONCEPT
        edges = store.edges("a", Direction.OUT)
        assert [e.id for e in edges] == ["a::b::causes"]
        assert edges[0].weight == pytest.approx(0.7)
        assert shortest_path(store, "a", "b", max_hops=2) == ["a", "b"]

    def test_missing_nodes(self, store):
        with pytest.raises(NodeNotFoundError):
            store.get_node("missing")
        store.add_node(Node(id="a", node_type=NodeType.ENTITY, content="A"))
        with pytest.raises(NodeNotFoundError):
            store.add_edge(Edge("a", "missing", Relation("causes")))

    def test_remove_policy(self, store):
        store.add_node(Node(id="a", node_type=NodeType.ENTITY, content="A"))
        store.add_node(Node(id="b", node_type=NodeType.ENTITY, content="B"))
        store.add_edge(Edge("a", "b", Relation("is_a")))
        with pytest.raises(NodeInUseError):
            store.remove_node("a")
        store.remove_node("a", cascade=True)
        assert store.counts() == {"nodes": 1, "edges": 0}

    def test_node_labels(self, store):
        store.add_node(Node(id="f", node_type=NodeType.FACT, content="F"))
        with store.driver.session(database=store.database) as session:
            record = session.run("MATCH (n {id: 'f'}) RETURN labels(n) AS labels").single()
        assert sorted(record["labels"]) == ["Fact", "SyntonNode"]
