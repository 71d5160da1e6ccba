"""Tests for relation semantics and node/edge records."""

import pytest

from synton.errors import InvalidEdgeError
from synton.graph.schema import (
    Direction,
    Edge,
    Node,
    NodeMeta,
    NodeType,
    Relation,
    StandardRelation,
)


class TestRelation:
    """Relation parsing and semantics."""

    def test_parse_is_case_insensitive(self):
        assert Relation.parse("CAUSES") == Relation("causes")
        assert Relation.parse("  Is_A ") == Relation("is_a")
        assert not Relation.parse("Causes").is_custom

    def test_unknown_names_are_custom(self):
        relation = Relation.parse("Inspired_By")
        assert relation.is_custom
        assert relation.name == "inspired_by"
        assert relation.phrase == "inspired_by"

    def test_parse_standard_enum(self):
        assert Relation.parse(StandardRelation.SIMILAR_TO).name == "similar_to"

    def test_empty_name_rejected(self):
        with pytest.raises(ValueError):
            Relation.parse("   ")

    def test_symmetric_and_transitive(self):
        assert Relation("similar_to").is_symmetric
        assert Relation("contradicts").is_symmetric
        assert not Relation("causes").is_symmetric
        assert Relation("causes").is_transitive
        assert Relation("located_at").is_transitive
        assert not Relation("belongs_to").is_transitive

    def test_reverse(self):
        assert Relation("is_part_of").reverse() == Relation("belongs_to")
        assert Relation("belongs_to").reverse() == Relation("is_part_of")
        assert Relation("causes").reverse() == Relation("caused_by")
        assert Relation("happened_after").reverse() == Relation("happened_before")
        assert Relation("located_at").reverse() == Relation("contains")
        assert Relation("is_a").reverse() == Relation("has_instance")
        assert Relation("similar_to").reverse() == Relation("similar_to")
        assert Relation("mentors").reverse() == Relation("reverse_mentors")

    def test_phrases(self):
        assert Relation("is_part_of").phrase == "is part of"
        assert Relation("similar_to").phrase == "is similar to"
        assert Relation("located_at").phrase == "is located at"


class TestEdge:
    def test_self_loop_rejected(self):
        with pytest.raises(InvalidEdgeError):
            Edge("a", "a", Relation("causes"))

    @pytest.mark.parametrize("weight", [-0.1, 1.5, float("nan")])
    def test_weight_out_of_range_rejected(self, weight):
        with pytest.raises(InvalidEdgeError):
            Edge("a", "b", Relation("causes"), weight=weight)

    def test_id_and_other(self):
        edge = Edge("a", "b", "Causes", weight=0.5)
        assert edge.relation == Relation("causes")
        assert edge.id == "a::b::causes"
        assert edge.other("a") == "b"
        assert edge.other("b") == "a"

    def test_dict_round_trip_keeps_fields(self):
        edge = Edge("a", "b", Relation("is_a"), weight=0.25, attributes={"k": 1})
        restored = Edge.from_dict(edge.to_dict())
        assert restored.id == edge.id
        assert restored.weight == 0.25
        assert restored.attributes == {"k": 1}
        assert restored.created_at == edge.created_at


class TestNode:
    def test_create_generates_id(self):
        node = Node.create("Rust is a language", NodeType.CONCEPT)
        assert len(node.id) == 32
        assert node.node_type == NodeType.CONCEPT
        assert node.meta.access_score == 1.0

    def test_node_type_parsed_from_string(self):
        node = Node(id="n1", node_type="RAW_CHUNK", content="text")
        assert node.node_type == NodeType.RAW_CHUNK

    def test_access_clamps_to_range(self):
        node = Node.create("x", node_id="n1")
        assert node.access(0.5) == pytest.approx(1.5)
        assert node.access(100.0) == 10.0
        assert node.access(-50.0) == 0.0

    def test_meta_clamps_initial_score(self):
        assert NodeMeta(access_score=42.0).access_score == 10.0
        assert NodeMeta(access_score=float("nan")).access_score == 0.0

    def test_direction_parse(self):
        assert Direction.parse("OUT") == Direction.OUT
        assert Direction.parse(Direction.BOTH) == Direction.BOTH
