"""Explain how two nodes relate through a scored, classified path."""

from dataclasses import dataclass
from enum import Enum
import logging
from typing import Sequence

from ..errors import StorageError, TraversalError
from .schema import Direction, Edge
from .store import GraphStore
from .traversal import require_node, shortest_path

log = logging.getLogger(__name__)

_MAX_LABEL_LEN = 80
_MISSING_EDGE_PHRASE = "is linked to"


class PathType(Enum):
    CAUSAL = "causal"
    HIERARCHICAL = "hierarchical"
    TEMPORAL = "temporal"
    ASSOCIATIVE = "associative"
    HYBRID = "hybrid"


@dataclass(frozen=True)
class ReasoningPath:
    nodes: tuple[str, ...]
    edges: tuple[Edge, ...]
    path_type: PathType
    confidence: float
    explanation: str

    @property
    def hops(self) -> int:
        return max(0, len(self.nodes) - 1)

    def to_dict(self) -> dict:
        return {
            "nodes": list(self.nodes),
            "edges": [edge.to_dict() for edge in self.edges],
            "path_type": self.path_type.value,
            "confidence": self.confidence,
            "explanation": self.explanation,
        }


def classify_path_type(edges: Sequence[Edge]) -> PathType:
    if not edges:
        return PathType.ASSOCIATIVE
    names = {edge.relation.name for edge in edges}
    if names == {"causes"}:
        return PathType.CAUSAL
    if all(edge.relation.is_hierarchical for edge in edges):
        return PathType.HIERARCHICAL
    if names == {"happened_after"}:
        return PathType.TEMPORAL
    return PathType.HYBRID


def path_confidence(edges: Sequence[Edge]) -> float:
    """Product of edge weights; 1.0 for an edgeless path."""
    confidence = 1.0
    for edge in edges:
        confidence *= edge.weight
    return confidence


def edge_between(store: GraphStore, source: str, target: str) -> Edge | None:
    """Stored edge walking source -> target, including reversed symmetric edges."""
    try:
        outgoing = store.edges(source, Direction.OUT)
        incoming = store.edges(source, Direction.IN)
    except StorageError as exc:
        raise TraversalError(f"Failed to read edges of {source}: {exc}") from exc

    for edge in outgoing:
        if edge.target == target:
            return edge
    for edge in incoming:
        if edge.source == target and edge.relation.is_symmetric:
            return edge
    return None


def _label(store: GraphStore, node_id: str) -> str:
    content = " ".join(require_node(store, node_id).content.split())
    if not content:
        return node_id
    if len(content) > _MAX_LABEL_LEN:
        return content[: _MAX_LABEL_LEN - 3].rstrip() + "..."
    return content


def _explain(labels: Sequence[str], phrases: Sequence[str]) -> str:
    if not phrases:
        return labels[0] if labels else ""
    parts = [f"{labels[0]} {phrases[0]} {labels[1]}"]
    for phrase, label in zip(phrases[1:], labels[2:]):
        parts.append(f"which {phrase} {label}")
    return ", ".join(parts)


def build_reasoning_path(store: GraphStore, node_ids: Sequence[str]) -> ReasoningPath:
    """Collect edges for consecutive pairs and derive type/confidence/explanation.

    Pairs without a stored edge are tolerated: they contribute no edge, so the
    path may carry fewer edges than node pairs.
    """
    edges: list[Edge] = []
    phrases: list[str] = []
    for source, target in zip(node_ids, node_ids[1:]):
        edge = edge_between(store, source, target)
        if edge is None:
            log.debug(f"No stored edge between {source} and {target}")
            phrases.append(_MISSING_EDGE_PHRASE)
            continue
        edges.append(edge)
        phrases.append(edge.relation.phrase)

    labels = [_label(store, node_id) for node_id in node_ids]
    return ReasoningPath(
        nodes=tuple(node_ids),
        edges=tuple(edges),
        path_type=classify_path_type(edges),
        confidence=path_confidence(edges),
        explanation=_explain(labels, phrases),
    )


def explain_relationship(
    store: GraphStore,
    source: str,
    target: str,
    *,
    max_hops: int,
) -> ReasoningPath | None:
    """Find the shortest path from source to target and explain it."""
    node_ids = shortest_path(store, source, target, max_hops=max_hops)
    if not node_ids:
        return None
    return build_reasoning_path(store, node_ids)
