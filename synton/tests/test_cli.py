"""Tests for the synton CLI."""

import json

from click.testing import CliRunner
import pytest

from synton import cli as cli_module
from synton.cli import cli
from synton.graph.schema import Node, NodeType
from synton.graph.store import MemoryGraphStore, connect
from synton.vector.sqlite_index import SqliteVecIndex


class _FakeEmbedder:
    dimensions = 3

    def embed(self, text: str) -> list[float]:
        return [1.0, 0.0, 0.0] if "cat" in text.lower() else [0.0, 1.0, 0.0]

    def embed_batch(self, texts: list[str], batch_size: int = 32):
        for text in texts:
            yield self.embed(text)


@pytest.fixture
def graph_file(tmp_path):
    store = MemoryGraphStore()
    store.add_node(Node(id="cat", node_type=NodeType.ENTITY, content="Cats"))
    store.add_node(Node(id="mammal", node_type=NodeType.CONCEPT, content="Mammals"))
    store.add_node(Node(id="animal", node_type=NodeType.CONCEPT, content="Animals"))
    store.add_node(Node(id="rock", node_type=NodeType.ENTITY, content="Rocks"))
    connect(store, "cat", "mammal", "is_a", 0.9)
    connect(store, "mammal", "animal", "is_a", 0.8)

    path = tmp_path / "graph.json"
    store.save(path)
    return path


@pytest.fixture
def runner():
    return CliRunner()


def test_stats(runner, graph_file):
    result = runner.invoke(cli, ["--graph", str(graph_file), "stats"])
    assert result.exit_code == 0
    assert "Nodes: 4" in result.output
    assert "Edges: 2" in result.output


def test_missing_graph_file(runner, tmp_path):
    result = runner.invoke(cli, ["--graph", str(tmp_path / "none.json"), "stats"])
    assert result.exit_code != 0
    assert "Graph file not found" in result.output


def test_explain(runner, graph_file):
    result = runner.invoke(cli, ["--graph", str(graph_file), "explain", "cat", "animal"])
    assert result.exit_code == 0
    assert "Cats is a Mammals, which is a Animals" in result.output
    assert "Type: hierarchical" in result.output


def test_explain_no_path(runner, graph_file):
    result = runner.invoke(cli, ["--graph", str(graph_file), "explain", "cat", "rock"])
    assert result.exit_code == 0
    assert "No path" in result.output


def test_explain_unknown_node(runner, graph_file):
    result = runner.invoke(cli, ["--graph", str(graph_file), "explain", "cat", "ghost"])
    assert result.exit_code == 1
    assert "ghost" in result.output


def test_paths(runner, graph_file):
    result = runner.invoke(cli, ["--graph", str(graph_file), "paths", "cat", "animal"])
    assert result.exit_code == 0
    assert "cat -> mammal -> animal" in result.output


def test_retrieve_json(runner, graph_file):
    result = runner.invoke(
        cli,
        ["--graph", str(graph_file), "retrieve", "cat", "--style", "json", "--max-hops", "1"],
    )
    assert result.exit_code == 0
    payload = json.loads(result.output)
    assert [item["id"] for item in payload["items"]] == ["cat", "mammal"]
    assert payload["stats"]["mode"] == "graph_only"


def test_retrieve_with_config(runner, graph_file, tmp_path):
    config = tmp_path / "synton.yaml"
    config.write_text("retrieval:\n  max_results: 1\n", encoding="utf-8")

    result = runner.invoke(
        cli,
        ["--config", str(config), "--graph", str(graph_file), "retrieve", "cat", "-s", "compact"],
    )
    assert result.exit_code == 0
    assert result.output.strip() == "Cats"


def test_bad_config_reported(runner, graph_file, tmp_path):
    config = tmp_path / "bad.yaml"
    config.write_text("retrieval:\n  top_k: -3\n", encoding="utf-8")
    result = runner.invoke(cli, ["--config", str(config), "--graph", str(graph_file), "stats"])
    assert result.exit_code == 1
    assert "top_k" in result.output


def test_index_and_search(runner, graph_file, tmp_path, monkeypatch):
    try:
        SqliteVecIndex(tmp_path / "probe.db", dimension=3)
    except AttributeError as exc:
        pytest.skip(f"sqlite3 lacks extension loading: {exc}")
    monkeypatch.setattr(cli_module, "_load_embedder", lambda model=None: _FakeEmbedder())
    index_path = tmp_path / "vectors.db"

    result = runner.invoke(
        cli, ["--graph", str(graph_file), "index-nodes", "--index", str(index_path)]
    )
    assert result.exit_code == 0
    assert "indexed=4" in result.output

    result = runner.invoke(
        cli,
        [
            "--graph", str(graph_file),
            "search", "cat food",
            "--index", str(index_path),
            "--top-k", "1",
            "--style", "json",
        ],
    )
    assert result.exit_code == 0
    payload = json.loads(result.output)
    assert payload["items"][0]["id"] == "cat"
    assert payload["items"][0]["is_direct_match"] is True
    assert "mammal" in [item["id"] for item in payload["items"]]


def test_search_without_index(runner, graph_file, tmp_path):
    result = runner.invoke(
        cli, ["--graph", str(graph_file), "search", "cats", "--index", str(tmp_path / "x.db")]
    )
    assert result.exit_code != 0
    assert "run index-nodes" in result.output


class _FakeNeo4jStore:
    opened: list[tuple[str, str, str]] = []

    def __init__(self, uri: str, user: str, password: str):
        self.opened.append((uri, user, password))
        self.closed = False

    def counts(self) -> dict[str, int]:
        return {"nodes": 7, "edges": 3}

    def close(self) -> None:
        self.closed = True


def test_neo4j_connection_from_environment(runner, monkeypatch):
    monkeypatch.setattr(_FakeNeo4jStore, "opened", [])
    monkeypatch.setattr(cli_module, "Neo4jGraphStore", _FakeNeo4jStore)

    result = runner.invoke(
        cli,
        ["stats"],
        env={
            "NEO4J_URI": "bolt://graph.local:7687",
            "NEO4J_USER": "reader",
            "NEO4J_PASSWORD": "secret",
        },
    )

    assert result.exit_code == 0
    assert "Nodes: 7" in result.output
    assert _FakeNeo4jStore.opened == [("bolt://graph.local:7687", "reader", "secret")]


def test_neo4j_flags_override_environment(runner, monkeypatch):
    monkeypatch.setattr(_FakeNeo4jStore, "opened", [])
    monkeypatch.setattr(cli_module, "Neo4jGraphStore", _FakeNeo4jStore)

    result = runner.invoke(
        cli,
        ["--neo4j-uri", "bolt://other:7687", "stats"],
        env={
            "NEO4J_URI": "bolt://graph.local:7687",
            "NEO4J_USER": None,
            "NEO4J_PASSWORD": None,
        },
    )

    assert result.exit_code == 0
    assert _FakeNeo4jStore.opened == [("bolt://other:7687", "neo4j", "neo4j")]


def test_retrieve_summary_level(runner, graph_file):
    args = ["--graph", str(graph_file), "retrieve", "cat", "-s", "compact"]

    result = runner.invoke(cli, args + ["--level", "document"])
    assert result.exit_code == 0
    assert result.output.strip() == "Cats Mammals Animals"


def test_retrieve_top_only_compression(runner, graph_file):
    result = runner.invoke(
        cli,
        [
            "--graph", str(graph_file),
            "retrieve", "cat",
            "-s", "compact",
            "--max-tokens", "5",
            "--compress", "top_only",
        ],
    )
    assert result.exit_code == 0
    assert result.output.strip() == "Cats"


def test_auto_level_without_budget_rejected(runner, graph_file):
    result = runner.invoke(
        cli, ["--graph", str(graph_file), "retrieve", "cat", "--level", "auto"]
    )
    assert result.exit_code == 1
    assert "max_tokens" in result.output
