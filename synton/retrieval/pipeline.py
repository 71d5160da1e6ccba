"""Hybrid retrieval orchestration.

One call runs ResolveSeeds -> Expand -> Merge/Dedup -> Rank -> Budget-Trim.
Per-seed expansions run on a thread pool, each with its own visited set, and
meet only at the merge step.
"""

from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import replace
import logging
import time
from typing import Iterable, Sequence

from ..errors import (
    ContextTooLargeError,
    InvalidConfigError,
    NotFoundError,
    StorageError,
    SyntonError,
    VectorSearchError,
)
from ..graph.paths import ReasoningPath, explain_relationship
from ..graph.schema import Node
from ..graph.store import GraphStore
from ..vector.index import VectorHit, VectorIndex
from .config import DEFAULT_RETRIEVAL_CONFIG, RetrievalConfig, RetrievalMode
from .expansion import ExpansionResult, expand_seed, merge_results
from .renderer import FormatStyle, RenderedContext, render
from .scorer import DEFAULT_SCORER, RelevanceScore, Scorer
from .summary import CompressionStrategy, SummaryLevel, compress, select_level, summarize
from .tokenize import estimate_tokens
from .types import RetrievalStats, RetrievedContext, RetrievedNode, SeedFailure

log = logging.getLogger(__name__)


def _failure(seed_id: str, stage: str, exc: BaseException) -> SeedFailure:
    return SeedFailure(
        seed_id=seed_id,
        stage=stage,
        error_type=type(exc).__name__,
        message=str(exc),
    )


def _unique(ids: Iterable[str]) -> list[str]:
    return list(dict.fromkeys(ids))


def _resolve_explicit_seeds(
    seed_ids: Sequence[str],
    *,
    store: GraphStore,
    scorer: Scorer,
    failures: list[SeedFailure],
) -> list[RelevanceScore]:
    seeds = []
    for seed_id in _unique(seed_ids):
        try:
            present = store.has_node(seed_id)
        except StorageError as exc:
            failures.append(_failure(seed_id, "resolve", exc))
            continue
        if not present:
            log.warning(f"Seed {seed_id} is not in the graph")
            failures.append(
                SeedFailure(seed_id, "resolve", "NodeNotFoundError", f"Node not found: {seed_id}")
            )
            continue
        seeds.append(scorer.score_graph_only(seed_id, 0))
    return seeds


def _resolve_vector_seeds(
    hits: Sequence[VectorHit],
    *,
    store: GraphStore,
    scorer: Scorer,
    failures: list[SeedFailure],
) -> list[RelevanceScore]:
    seeds = []
    seen: set[str] = set()
    for node_id, similarity in hits:
        if node_id in seen:
            continue
        seen.add(node_id)
        try:
            present = store.has_node(node_id)
        except StorageError as exc:
            failures.append(_failure(node_id, "resolve", exc))
            continue
        if not present:
            log.warning(f"Vector hit {node_id} has no node in the graph")
            failures.append(
                SeedFailure(node_id, "resolve", "NodeNotFoundError", f"Node not found: {node_id}")
            )
            continue
        seeds.append(scorer.score_direct(node_id, similarity))
    return seeds


def _search_index(
    index: VectorIndex, query_vector: Sequence[float], config: RetrievalConfig
) -> list[VectorHit]:
    if config.vector_filter:
        return index.search_with_filter(query_vector, dict(config.vector_filter), config.top_k)
    return index.search(query_vector, config.top_k)


def _collect(
    pending: list[tuple[RelevanceScore, Future]],
    failures: list[SeedFailure],
) -> list[ExpansionResult]:
    results = []
    for seed, future in pending:
        try:
            results.append(future.result())
        except SyntonError as exc:
            log.warning(f"Expansion failed for seed {seed.node_id}: {exc}")
            failures.append(_failure(seed.node_id, "expand", exc))
    return results


def _merge_candidates(
    seeds: Sequence[RelevanceScore], merged: ExpansionResult
) -> dict[str, tuple[RelevanceScore, bool]]:
    """Seeds first, then expansion candidates; the higher score wins."""
    best: dict[str, tuple[RelevanceScore, bool]] = {}
    for seed in seeds:
        existing = best.get(seed.node_id)
        if existing is None or seed.final_score > existing[0].final_score:
            best[seed.node_id] = (seed, True)
    for node_id, score in merged.candidates.items():
        existing = best.get(node_id)
        if existing is None or score.final_score > existing[0].final_score:
            best[node_id] = (score, False)
    return best


def _rank(
    best: dict[str, tuple[RelevanceScore, bool]],
    *,
    store: GraphStore,
    scorer: Scorer,
    failures: list[SeedFailure],
) -> list[RetrievedNode]:
    items: dict[str, RetrievedNode] = {}
    for node_id, (score, direct) in best.items():
        try:
            node = store.get_node(node_id)
        except (NotFoundError, StorageError) as exc:
            failures.append(_failure(node_id, "rank", exc))
            continue
        score = scorer.apply_access(score, node.meta.access_score)
        items[node_id] = RetrievedNode(node=node, score=score, is_direct_match=direct)

    ranked_scores = scorer.rerank(item.score for item in items.values())
    return [items[score.node_id] for score in ranked_scores]


def _trim(
    ranked: list[RetrievedNode], config: RetrievalConfig
) -> tuple[list[RetrievedNode], bool]:
    kept = ranked[: config.max_results]
    truncated = len(kept) < len(ranked)

    if config.max_tokens is not None:
        used = 0
        fitted: list[RetrievedNode] = []
        for item in kept:
            cost = estimate_tokens(item.node.content)
            if used + cost > config.max_tokens:
                break
            fitted.append(item)
            used += cost
        truncated = truncated or len(fitted) < len(kept)
        kept = fitted

    required = min(config.min_results, len(ranked))
    if len(kept) < required:
        size = sum(estimate_tokens(item.node.content) for item in ranked[:required])
        raise ContextTooLargeError(size, config.max_tokens or 0)

    return kept, truncated


def retrieve(
    query_vector: Sequence[float] | None = None,
    *,
    store: GraphStore,
    index: VectorIndex | None = None,
    scorer: Scorer = DEFAULT_SCORER,
    config: RetrievalConfig = DEFAULT_RETRIEVAL_CONFIG,
    seed_ids: Sequence[str] = (),
) -> RetrievedContext:
    """Run one retrieval call.

    Args:
        query_vector: Query embedding; required unless mode is graph-only
        store: Graph store to expand through
        index: Vector index used to resolve seeds from ``query_vector``
        scorer: Score weights
        config: Mode, budgets and fallback policy
        seed_ids: Explicit seeds (graph-only, hybrid, or fallback)

    Returns:
        Ranked context with no duplicate node ids

    Raises:
        InvalidConfigError: Bad configuration or vector dimension
        VectorSearchError: Index failed and fallback is not enabled
        ContextTooLargeError: ``min_results`` items do not fit the budget
    """
    config.validate()
    scorer.validate()
    started = time.perf_counter()

    mode = config.mode
    uses_vector = mode != RetrievalMode.GRAPH_ONLY
    if uses_vector and query_vector is None:
        raise InvalidConfigError(f"{mode.value} retrieval needs a query vector")
    if uses_vector and index is None:
        raise InvalidConfigError(f"{mode.value} retrieval needs a vector index")

    failures: list[SeedFailure] = []
    expansion = config.expansion_config()
    fallback_used = False

    explicit_seeds: list[RelevanceScore] = []
    if mode != RetrievalMode.VECTOR_ONLY:
        explicit_seeds = _resolve_explicit_seeds(
            seed_ids, store=store, scorer=scorer, failures=failures
        )

    def submit(
        pool: ThreadPoolExecutor, seed: RelevanceScore, similarities: dict | None
    ) -> Future:
        return pool.submit(
            expand_seed,
            seed,
            store=store,
            scorer=scorer,
            config=expansion,
            similarity_of=similarities.get if similarities is not None else None,
        )

    with ThreadPoolExecutor(max_workers=config.workers) as pool:
        pending: list[tuple[RelevanceScore, Future]] = []
        # Explicit seeds do not depend on the vector call; start them now.
        pending.extend((seed, submit(pool, seed, None)) for seed in explicit_seeds)

        vector_seeds: list[RelevanceScore] = []
        if uses_vector:
            try:
                hits = _search_index(index, query_vector, config)
            except InvalidConfigError:
                raise
            except Exception as exc:
                if not config.fallback_to_graph_only:
                    raise VectorSearchError(f"Vector index search failed: {exc}") from exc
                log.warning(f"Vector search failed, falling back to graph-only: {exc}")
                fallback_used = True
                hits = []
                if mode == RetrievalMode.VECTOR_ONLY:
                    explicit_seeds = _resolve_explicit_seeds(
                        seed_ids, store=store, scorer=scorer, failures=failures
                    )
                    pending.extend(
                        (seed, submit(pool, seed, None)) for seed in explicit_seeds
                    )

            vector_seeds = _resolve_vector_seeds(
                hits, store=store, scorer=scorer, failures=failures
            )
            log.debug(f"Resolved {len(vector_seeds)} vector seed(s)")
            if mode == RetrievalMode.HYBRID:
                similarities = {seed.node_id: seed.vector_similarity for seed in vector_seeds}
                pending.extend(
                    (seed, submit(pool, seed, similarities)) for seed in vector_seeds
                )

        results = _collect(pending, failures)

    seeds = vector_seeds + explicit_seeds
    merged = merge_results(results)
    best = _merge_candidates(seeds, merged)
    log.debug(
        f"Merged {len(merged.candidates)} expansion candidate(s) from "
        f"{len(results)} seed expansion(s) into {len(best)} unique node(s)"
    )

    ranked = _rank(best, store=store, scorer=scorer, failures=failures)
    if config.min_relevance > 0.0:
        ranked = [item for item in ranked if item.final_score >= config.min_relevance]

    kept, truncated = _trim(ranked, config)
    kept_ids = {item.node_id for item in kept}

    if config.touch_on_retrieve:
        for item in kept:
            try:
                store.touch(item.node_id, config.access_boost)
            except (NotFoundError, StorageError) as exc:
                log.warning(f"Failed to update access score of {item.node_id}: {exc}")

    stats = RetrievalStats(
        mode=(RetrievalMode.GRAPH_ONLY if fallback_used else mode).value,
        seeds=len(seeds),
        candidates=len(best),
        nodes_visited=merged.nodes_visited,
        edges_traversed=merged.edges_traversed,
        budget_exhausted=merged.budget_exhausted,
        fallback_used=fallback_used,
        elapsed_ms=(time.perf_counter() - started) * 1000.0,
    )
    return RetrievedContext(
        items=tuple(kept),
        edges=tuple(
            edge
            for edge in merged.edges
            if edge.source in kept_ids and edge.target in kept_ids
        ),
        truncated=truncated,
        failures=tuple(failures),
        stats=stats,
    )


def retrieve_from_seeds(
    seed_ids: Sequence[str],
    *,
    store: GraphStore,
    scorer: Scorer = DEFAULT_SCORER,
    config: RetrievalConfig = DEFAULT_RETRIEVAL_CONFIG,
) -> RetrievedContext:
    """Graph-only retrieval from explicit seeds."""
    return retrieve(
        store=store,
        scorer=scorer,
        config=replace(config, mode=RetrievalMode.GRAPH_ONLY),
        seed_ids=seed_ids,
    )


def hybrid_retrieve(
    query_vector: Sequence[float],
    *,
    store: GraphStore,
    index: VectorIndex,
    top_k: int,
    max_hops: int,
    scorer: Scorer = DEFAULT_SCORER,
    config: RetrievalConfig = DEFAULT_RETRIEVAL_CONFIG,
) -> RetrievedContext:
    """Vector seeds plus graph expansion with explicit top_k/max_hops."""
    return retrieve(
        query_vector,
        store=store,
        index=index,
        scorer=scorer,
        config=replace(config, mode=RetrievalMode.HYBRID, top_k=top_k, max_hops=max_hops),
    )


AUTO_LEVEL = "auto"


def format_context(
    context: RetrievedContext,
    style: FormatStyle | str = FormatStyle.MARKDOWN,
    *,
    max_tokens: int | None = None,
    level: SummaryLevel | str | None = None,
    compression: CompressionStrategy | str = CompressionStrategy.NONE,
    include_metadata: bool = True,
) -> RenderedContext:
    """Final stage: summarize, compress, then render within ``max_tokens``.

    ``level="auto"`` picks a summary level from the budget and needs
    ``max_tokens``. Compression only runs when a budget is given.
    """
    if level == AUTO_LEVEL:
        if max_tokens is None:
            raise InvalidConfigError("automatic summary level needs max_tokens")
        level = select_level(context, max_tokens)
        log.debug(f"Selected summary level {level.value}")
    if level is not None:
        context = summarize(context, SummaryLevel(level))
    if max_tokens is not None:
        context = compress(context, max_tokens, CompressionStrategy(compression))
    return render(
        context, style, max_tokens=max_tokens, include_metadata=include_metadata
    )


class GraphRag:
    """Bundle a store, an index and default settings behind one handle."""

    def __init__(
        self,
        store: GraphStore,
        index: VectorIndex | None = None,
        *,
        scorer: Scorer = DEFAULT_SCORER,
        config: RetrievalConfig = DEFAULT_RETRIEVAL_CONFIG,
    ):
        scorer.validate()
        config.validate()
        self.store = store
        self.index = index
        self.scorer = scorer
        self.config = config

    def add_node(self, node: Node, vector: Sequence[float] | None = None) -> Node:
        """Insert a node and, when given, index its embedding."""
        if vector is not None and self.index is None:
            raise InvalidConfigError("No vector index configured")
        self.store.add_node(node)
        if vector is not None:
            self.index.upsert(node.id, vector, {"node_type": node.node_type.value})
        return node

    def retrieve(
        self,
        query_vector: Sequence[float] | None = None,
        *,
        seed_ids: Sequence[str] = (),
        config: RetrievalConfig | None = None,
    ) -> RetrievedContext:
        return retrieve(
            query_vector,
            store=self.store,
            index=self.index,
            scorer=self.scorer,
            config=config or self.config,
            seed_ids=seed_ids,
        )

    def retrieve_from_seeds(
        self, seed_ids: Sequence[str], *, config: RetrievalConfig | None = None
    ) -> RetrievedContext:
        return retrieve_from_seeds(
            seed_ids, store=self.store, scorer=self.scorer, config=config or self.config
        )

    def hybrid_retrieve(
        self, query_vector: Sequence[float], *, top_k: int, max_hops: int
    ) -> RetrievedContext:
        if self.index is None:
            raise InvalidConfigError("hybrid retrieval needs a vector index")
        return hybrid_retrieve(
            query_vector,
            store=self.store,
            index=self.index,
            top_k=top_k,
            max_hops=max_hops,
            scorer=self.scorer,
            config=self.config,
        )

    def retrieve_context(
        self,
        query_vector: Sequence[float] | None = None,
        *,
        seed_ids: Sequence[str] = (),
        style: FormatStyle | str = FormatStyle.MARKDOWN,
        max_tokens: int | None = None,
        level: SummaryLevel | str | None = None,
        compression: CompressionStrategy | str = CompressionStrategy.NONE,
        config: RetrievalConfig | None = None,
    ) -> RenderedContext:
        """Retrieve, summarize, compress and render in one step."""
        context = self.retrieve(query_vector, seed_ids=seed_ids, config=config)
        return format_context(
            context,
            style,
            max_tokens=max_tokens,
            level=level,
            compression=compression,
        )

    def explain(
        self, source: str, target: str, *, max_hops: int | None = None
    ) -> ReasoningPath | None:
        hops = self.config.max_hops if max_hops is None else max_hops
        return explain_relationship(self.store, source, target, max_hops=hops)
