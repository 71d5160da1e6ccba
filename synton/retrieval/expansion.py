"""Budgeted outward expansion from scored seed nodes."""

from collections import deque
from dataclasses import dataclass, field
from enum import Enum
import logging
from typing import Callable, Iterable

from ..errors import InvalidConfigError
from ..graph.schema import Direction, Edge
from ..graph.store import GraphStore
from ..graph.traversal import relation_names, require_node, traversable_edges
from .scorer import DEFAULT_SCORER, RelevanceScore, Scorer

log = logging.getLogger(__name__)

SimilarityLookup = Callable[[str], "float | None"]


class ExpansionStrategy(Enum):
    NEIGHBOR = "neighbor"  # structural BFS, any relation
    RELATION = "relation"  # only the configured relations


@dataclass(frozen=True)
class ExpansionConfig:
    max_nodes: int = 10
    max_hops: int = 2
    min_edge_weight: float = 0.0
    direction: Direction = Direction.BOTH
    strategy: ExpansionStrategy = ExpansionStrategy.NEIGHBOR
    relations: tuple[str, ...] = ()

    def validate(self) -> None:
        if self.max_nodes < 0:
            raise InvalidConfigError(f"max_nodes must be >= 0, got {self.max_nodes}")
        if self.max_hops < 0:
            raise InvalidConfigError(f"max_hops must be >= 0, got {self.max_hops}")
        if not 0.0 <= self.min_edge_weight <= 1.0:
            raise InvalidConfigError(
                f"min_edge_weight must be within [0, 1], got {self.min_edge_weight}"
            )
        if self.strategy == ExpansionStrategy.RELATION and not self.relations:
            raise InvalidConfigError("relation expansion needs at least one relation")


DEFAULT_EXPANSION_CONFIG = ExpansionConfig()


@dataclass(frozen=True)
class ExpansionResult:
    candidates: dict[str, RelevanceScore]
    nodes_visited: int = 0
    edges_traversed: int = 0
    budget_exhausted: bool = False
    edges: tuple[Edge, ...] = field(default_factory=tuple)

    def ranked(self) -> list[RelevanceScore]:
        return sorted(self.candidates.values(), key=lambda s: -s.final_score)


def _score(
    node_id: str,
    hop: int,
    *,
    seed: RelevanceScore,
    scorer: Scorer,
    similarity_of: SimilarityLookup | None,
) -> RelevanceScore:
    if similarity_of is None:
        return scorer.score_graph_only(node_id, hop)
    similarity = similarity_of(node_id)
    if similarity is None:
        similarity = seed.vector_similarity
    return scorer.score_traversal(node_id, similarity, hop)


def expand_seed(
    seed: RelevanceScore,
    *,
    store: GraphStore,
    scorer: Scorer = DEFAULT_SCORER,
    config: ExpansionConfig = DEFAULT_EXPANSION_CONFIG,
    similarity_of: SimilarityLookup | None = None,
) -> ExpansionResult:
    """Breadth-first expansion from one seed with its own visited set.

    Discovered nodes are scored by hop distance from the seed. Without
    ``similarity_of`` they get graph-only scores; with it, they get traversal
    scores using their own similarity when known and the seed's otherwise.
    The node budget is checked at every discovery.
    """
    require_node(store, seed.node_id)
    allowed = (
        relation_names(config.relations)
        if config.strategy == ExpansionStrategy.RELATION
        else None
    )

    candidates: dict[str, RelevanceScore] = {}
    edges: dict[str, Edge] = {}
    visited = {seed.node_id}
    queue: deque[tuple[str, int]] = deque([(seed.node_id, 0)])
    nodes_visited = 0
    edges_traversed = 0
    exhausted = False

    while queue and not exhausted:
        current, hop = queue.popleft()
        nodes_visited += 1
        walkable = traversable_edges(
            store,
            current,
            config.direction,
            relations=allowed,
            min_weight=config.min_edge_weight,
        )

        if hop >= config.max_hops:
            if any(neighbor not in visited for neighbor, _ in walkable):
                exhausted = True
            continue

        for neighbor, edge in walkable:
            edges_traversed += 1
            if neighbor in visited:
                continue
            if len(candidates) >= config.max_nodes:
                exhausted = True
                break
            visited.add(neighbor)
            edges[edge.id] = edge
            candidates[neighbor] = _score(
                neighbor,
                hop + 1,
                seed=seed,
                scorer=scorer,
                similarity_of=similarity_of,
            )
            queue.append((neighbor, hop + 1))

    if exhausted:
        log.debug(
            f"Expansion budget exhausted for seed {seed.node_id} "
            f"after {len(candidates)} candidate(s)"
        )

    return ExpansionResult(
        candidates=candidates,
        nodes_visited=nodes_visited,
        edges_traversed=edges_traversed,
        budget_exhausted=exhausted,
        edges=tuple(edges.values()),
    )


def merge_results(results: Iterable[ExpansionResult]) -> ExpansionResult:
    """Union results keeping the highest score per node.

    Ties keep the entry seen first. Scores are never summed.
    """
    candidates: dict[str, RelevanceScore] = {}
    edges: dict[str, Edge] = {}
    nodes_visited = 0
    edges_traversed = 0
    exhausted = False

    for result in results:
        nodes_visited += result.nodes_visited
        edges_traversed += result.edges_traversed
        exhausted = exhausted or result.budget_exhausted
        for edge in result.edges:
            edges.setdefault(edge.id, edge)
        for node_id, score in result.candidates.items():
            existing = candidates.get(node_id)
            if existing is None or score.final_score > existing.final_score:
                candidates[node_id] = score

    return ExpansionResult(
        candidates=candidates,
        nodes_visited=nodes_visited,
        edges_traversed=edges_traversed,
        budget_exhausted=exhausted,
        edges=tuple(edges.values()),
    )


def expand_seeds(
    seeds: Iterable[RelevanceScore],
    *,
    store: GraphStore,
    scorer: Scorer = DEFAULT_SCORER,
    config: ExpansionConfig = DEFAULT_EXPANSION_CONFIG,
    similarity_of: SimilarityLookup | None = None,
) -> ExpansionResult:
    """Expand every seed sequentially and merge the results."""
    return merge_results(
        expand_seed(
            seed,
            store=store,
            scorer=scorer,
            config=config,
            similarity_of=similarity_of,
        )
        for seed in seeds
    )
