import json

import pytest

from synton.graph.schema import Edge, Node, NodeType, Relation
from synton.retrieval.renderer import FormatStyle, render, to_record
from synton.retrieval.scorer import DEFAULT_SCORER
from synton.retrieval.types import RetrievalStats, RetrievedContext, RetrievedNode


def _item(node_id: str, content: str, hop: int = 0, node_type=NodeType.CONCEPT):
    node = Node(id=node_id, node_type=node_type, content=content)
    if hop == 0:
        score = DEFAULT_SCORER.score_direct(node_id, 0.9)
    else:
        score = DEFAULT_SCORER.score_traversal(node_id, 0.9, hop)
    return RetrievedNode(node=node, score=score, is_direct_match=hop == 0)


def _context(items, edges=()):
    return RetrievedContext(
        items=tuple(items),
        edges=tuple(edges),
        truncated=False,
        failures=(),
        stats=RetrievalStats(mode="hybrid"),
    )


@pytest.fixture
def context():
    return _context(
        [_item("a", "Paris is in France"), _item("b", "France is in Europe", hop=1)],
        [Edge(source="a", target="b", relation=Relation.parse("located_at"), weight=0.8)],
    )


def test_empty_context_renders_placeholder():
    for style in FormatStyle:
        output = render(_context([]), style)
        assert not output.truncated
        if style not in (FormatStyle.JSON, FormatStyle.FLAT, FormatStyle.COMPACT):
            assert "No relevant context found." in output.text


def test_markdown_layout(context):
    output = render(context, FormatStyle.MARKDOWN)
    assert output.text.startswith("# Retrieved Context")
    assert "## 1. concept" in output.text
    assert "**Relevance:** 0.94" in output.text
    assert output.text.index("Paris") < output.text.index("Europe")


def test_flat_layout(context):
    output = render(context, "flat")
    assert output.text.split("\n\n---\n\n")[0] == "Paris is in France\n(score: 0.94)"


def test_flat_without_metadata(context):
    output = render(context, FormatStyle.FLAT, include_metadata=False)
    assert output.text == "Paris is in France\n\n---\n\nFrance is in Europe"


def test_structured_layout(context):
    text = render(context, FormatStyle.STRUCTURED).text
    assert text.startswith("=== Retrieved Context ===")
    assert "[2]" in text
    assert "Distance: 1 hops" in text
    assert "Content: France is in Europe" in text


def test_tree_groups_by_hop_and_lists_connections(context):
    text = render(context, FormatStyle.TREE).text
    assert "## Hop 0 (direct matches)" in text
    assert "## Hop 1 (1 hop)" in text
    assert "- a -[LOCATED_AT]-> b | weight=0.80" in text


def test_compact_is_single_line(context):
    text = render(context, FormatStyle.COMPACT).text
    assert text == "Paris is in France France is in Europe"


def test_json_round_trips(context):
    payload = json.loads(render(context, FormatStyle.JSON).text)
    assert [item["id"] for item in payload["items"]] == ["a", "b"]
    assert payload["edges"][0]["relation"] == "located_at"
    assert payload["stats"]["mode"] == "hybrid"
    assert payload["truncated"] is False


def test_token_budget_drops_tail_items():
    items = [_item(f"n{i}", f"Fact number {i} " * 10) for i in range(12)]
    output = render(_context(items), FormatStyle.MARKDOWN, max_tokens=80)

    assert output.truncated
    assert output.tokens <= 80
    assert "...(truncated" in output.text
    assert "Fact number 0" in output.text


def test_record_only_keeps_edges_for_kept_items(context):
    record = to_record(context, context.items[:1], truncated_items=1)
    assert record["edges"] == []
    assert record["truncated"] is True


def test_unknown_style_rejected(context):
    with pytest.raises(ValueError):
        render(context, "yaml")
