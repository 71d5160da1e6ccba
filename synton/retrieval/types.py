"""Typed contracts for the retrieval pipeline."""

from dataclasses import dataclass

from ..graph.schema import Edge, Node
from .scorer import RelevanceScore


@dataclass(frozen=True)
class RetrievedNode:
    node: Node
    score: RelevanceScore
    is_direct_match: bool

    @property
    def node_id(self) -> str:
        return self.node.id

    @property
    def final_score(self) -> float:
        return self.score.final_score

    @property
    def hop_distance(self) -> int:
        return self.score.hop_distance


@dataclass(frozen=True)
class SeedFailure:
    seed_id: str
    stage: str
    error_type: str
    message: str


@dataclass(frozen=True)
class RetrievalStats:
    mode: str
    seeds: int = 0
    candidates: int = 0
    nodes_visited: int = 0
    edges_traversed: int = 0
    budget_exhausted: bool = False
    fallback_used: bool = False
    elapsed_ms: float = 0.0


@dataclass(frozen=True)
class RetrievedContext:
    """Ranked, deduplicated nodes plus the edges connecting them."""

    items: tuple[RetrievedNode, ...]
    edges: tuple[Edge, ...]
    truncated: bool
    failures: tuple[SeedFailure, ...]
    stats: RetrievalStats

    def __len__(self) -> int:
        return len(self.items)

    def __iter__(self):
        return iter(self.items)

    def node_ids(self) -> list[str]:
        return [item.node_id for item in self.items]
