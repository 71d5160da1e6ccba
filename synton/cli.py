"""CLI for synton - hybrid graph + vector retrieval."""

from contextlib import contextmanager
from dataclasses import replace
import logging
from pathlib import Path
from typing import Iterator

import click

from .errors import SyntonError
from .graph.neo4j_store import Neo4jGraphStore
from .graph.paths import explain_relationship
from .graph.store import GraphStore, MemoryGraphStore
from .graph.traversal import find_all_paths
from .retrieval.config import DEFAULT_RETRIEVAL_CONFIG, RetrievalConfig, RetrievalMode, load_config
from .retrieval.pipeline import AUTO_LEVEL, format_context, retrieve
from .retrieval.renderer import FormatStyle
from .retrieval.scorer import DEFAULT_SCORER
from .retrieval.summary import CompressionStrategy, SummaryLevel
from .vector.sqlite_index import SqliteVecIndex

STYLE_CHOICES = [style.value for style in FormatStyle]
LEVEL_CHOICES = [level.value for level in SummaryLevel] + [AUTO_LEVEL]
COMPRESSION_CHOICES = [strategy.value for strategy in CompressionStrategy]


def output_options(f):
    """Shared formatting options for commands that print a context."""
    f = click.option(
        "--compress",
        "compression",
        type=click.Choice(COMPRESSION_CHOICES),
        default="none",
        help="Compression applied when over --max-tokens",
    )(f)
    f = click.option(
        "--level", type=click.Choice(LEVEL_CHOICES), default=None, help="Summary level"
    )(f)
    f = click.option("--max-tokens", type=int, default=None, help="Output token budget")(f)
    f = click.option(
        "--style", "-s", type=click.Choice(STYLE_CHOICES), default="markdown"
    )(f)
    return f


def _load_embedder(model: str | None = None):
    """Load the sentence-transformers model only when a command needs it."""
    from .vector.embedder import DEFAULT_MODEL, Embedder

    return Embedder(model or DEFAULT_MODEL)


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
@click.option(
    "--config",
    "config_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="YAML file with retrieval: and scorer: sections",
)
@click.option(
    "--graph",
    "graph_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default="data/graph.json",
    help="Graph JSON file (node-link format)",
)
@click.option(
    "--neo4j-uri",
    envvar="NEO4J_URI",
    default=None,
    help="Use Neo4j instead of a graph file",
)
@click.option("--neo4j-user", envvar="NEO4J_USER", default="neo4j", help="Neo4j username")
@click.option(
    "--neo4j-password", envvar="NEO4J_PASSWORD", default="neo4j", help="Neo4j password"
)
@click.pass_context
def cli(
    ctx: click.Context,
    verbose: bool,
    config_path: Path | None,
    graph_path: Path,
    neo4j_uri: str | None,
    neo4j_user: str,
    neo4j_password: str,
):
    """Synton - Graph-RAG retrieval over a typed knowledge graph."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    config, scorer = DEFAULT_RETRIEVAL_CONFIG, DEFAULT_SCORER
    if config_path is not None:
        try:
            config, scorer = load_config(config_path)
        except SyntonError as exc:
            raise click.ClickException(str(exc)) from exc

    ctx.obj = {
        "config": config,
        "scorer": scorer,
        "graph_path": graph_path,
        "neo4j": (neo4j_uri, neo4j_user, neo4j_password) if neo4j_uri else None,
    }


@contextmanager
def _open_store(obj: dict) -> Iterator[GraphStore]:
    if obj["neo4j"] is not None:
        uri, user, password = obj["neo4j"]
        storage = Neo4jGraphStore(uri=uri, user=user, password=password)
        try:
            yield storage
        finally:
            storage.close()
        return

    graph_path = obj["graph_path"]
    if not graph_path.exists():
        raise click.ClickException(f"Graph file not found: {graph_path}")
    yield MemoryGraphStore.load(graph_path)


def _echo_context(context, style: str, **formatting) -> None:
    try:
        rendered = format_context(context, style, **formatting)
    except SyntonError as exc:
        raise click.ClickException(str(exc)) from exc
    click.echo(rendered.text)
    for failure in context.failures:
        click.echo(f"[{failure.stage}] {failure.seed_id}: {failure.message}", err=True)


@cli.command()
@click.pass_obj
def stats(obj: dict):
    """Show node and edge counts."""
    try:
        with _open_store(obj) as store:
            counts = store.counts()
    except SyntonError as exc:
        raise click.ClickException(str(exc)) from exc

    click.echo(f"Nodes: {counts['nodes']}")
    click.echo(f"Edges: {counts['edges']}")


@cli.command()
@click.argument("source", type=str)
@click.argument("target", type=str)
@click.option("--max-hops", type=int, default=5, help="Maximum path length")
@click.pass_obj
def explain(obj: dict, source: str, target: str, max_hops: int):
    """Explain how SOURCE relates to TARGET."""
    try:
        with _open_store(obj) as store:
            path = explain_relationship(store, source, target, max_hops=max_hops)
    except SyntonError as exc:
        raise click.ClickException(str(exc)) from exc

    if path is None:
        click.echo(f"No path from {source} to {target} within {max_hops} hops")
        return

    click.echo(path.explanation)
    click.echo(
        f"Type: {path.path_type.value}  Confidence: {path.confidence:.2f}  Hops: {path.hops}"
    )


@cli.command()
@click.argument("source", type=str)
@click.argument("target", type=str)
@click.option("--max-depth", type=int, default=3, help="Maximum path length")
@click.pass_obj
def paths(obj: dict, source: str, target: str, max_depth: int):
    """List every simple path from SOURCE to TARGET."""
    try:
        with _open_store(obj) as store:
            found = find_all_paths(store, source, target, max_depth=max_depth)
    except SyntonError as exc:
        raise click.ClickException(str(exc)) from exc

    if not found:
        click.echo("No paths found.")
        return
    for path in found:
        click.echo(" -> ".join(path))


@cli.command("retrieve")
@click.argument("seeds", nargs=-1, required=True)
@output_options
@click.option("--max-hops", type=int, default=None, help="Override expansion depth")
@click.option("--limit", "-n", type=int, default=None, help="Maximum results")
@click.pass_obj
def retrieve_cmd(
    obj: dict,
    seeds: tuple[str, ...],
    style: str,
    max_tokens: int | None,
    level: str | None,
    compression: str,
    max_hops: int | None,
    limit: int | None,
):
    """Graph-only retrieval from explicit SEEDS."""
    config: RetrievalConfig = obj["config"]
    overrides = {"mode": RetrievalMode.GRAPH_ONLY}
    if max_hops is not None:
        overrides["max_hops"] = max_hops
    if limit is not None:
        overrides["max_results"] = limit
        overrides["min_results"] = min(config.min_results, limit)

    try:
        with _open_store(obj) as store:
            context = retrieve(
                store=store,
                scorer=obj["scorer"],
                config=_override(config, overrides),
                seed_ids=list(seeds),
            )
    except SyntonError as exc:
        raise click.ClickException(str(exc)) from exc

    _echo_context(
        context, style, max_tokens=max_tokens, level=level, compression=compression
    )


@cli.command()
@click.argument("query", type=str)
@click.option(
    "--index",
    "index_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default="data/vectors.db",
    help="sqlite-vec index built by index-nodes",
)
@output_options
@click.option("--top-k", "-k", type=int, default=None, help="Vector seeds to use")
@click.option("--model", default=None, help="sentence-transformers model name")
@click.pass_obj
def search(
    obj: dict,
    query: str,
    index_path: Path,
    style: str,
    max_tokens: int | None,
    level: str | None,
    compression: str,
    top_k: int | None,
    model: str | None,
):
    """Hybrid retrieval for a free-text QUERY."""
    if not index_path.exists():
        raise click.ClickException(f"Index not found: {index_path} (run index-nodes)")

    config: RetrievalConfig = obj["config"]
    if top_k is not None:
        config = _override(config, {"top_k": top_k})

    embedder = _load_embedder(model)
    try:
        query_vector = embedder.embed(query)
        index = SqliteVecIndex(index_path, dimension=len(query_vector))
        with _open_store(obj) as store:
            context = retrieve(
                query_vector,
                store=store,
                index=index,
                scorer=obj["scorer"],
                config=config,
            )
    except SyntonError as exc:
        raise click.ClickException(str(exc)) from exc

    _echo_context(
        context, style, max_tokens=max_tokens, level=level, compression=compression
    )


@cli.command("index-nodes")
@click.option(
    "--index",
    "index_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default="data/vectors.db",
    help="sqlite-vec database to write",
)
@click.option("--model", default=None, help="sentence-transformers model name")
@click.option("--batch-size", type=int, default=32)
@click.pass_obj
def index_nodes(obj: dict, index_path: Path, model: str | None, batch_size: int):
    """Embed every node's content into a sqlite-vec index."""
    embedder = _load_embedder(model)
    try:
        with _open_store(obj) as store:
            nodes = [store.get_node(node_id) for node_id in store.node_ids()]
        nodes = [node for node in nodes if node.content.strip()]
        click.echo(f"Indexing {len(nodes)} nodes...")

        index = SqliteVecIndex(index_path, dimension=embedder.dimensions)
        vectors = embedder.embed_batch([node.content for node in nodes], batch_size=batch_size)
        for count, (node, vector) in enumerate(zip(nodes, vectors), 1):
            index.upsert(node.id, vector, {"node_type": node.node_type.value})
            if count % 100 == 0 or count == len(nodes):
                click.echo(f"  [{count}/{len(nodes)}]")
    except SyntonError as exc:
        raise click.ClickException(str(exc)) from exc

    click.echo(f"Done. indexed={len(nodes)} -> {index_path}")


def _override(config: RetrievalConfig, overrides: dict) -> RetrievalConfig:
    updated = replace(config, **overrides)
    try:
        updated.validate()
    except SyntonError as exc:
        raise click.ClickException(str(exc)) from exc
    return updated


if __name__ == "__main__":
    cli()
