"""Relevance scoring: fuse vector similarity with hop-decayed graph proximity."""

from dataclasses import dataclass, replace
import math
from typing import Iterable

from ..errors import InvalidConfigError


def clamp_01(value: float | int | None) -> float:
    """Clamp a numeric score into [0, 1]; NaN and junk become 0."""
    try:
        score = float(value)
    except (TypeError, ValueError):
        return 0.0
    if math.isnan(score) or score < 0.0:
        return 0.0
    if score > 1.0:
        return 1.0
    return score


@dataclass(frozen=True)
class RelevanceScore:
    node_id: str
    vector_similarity: float
    graph_proximity: float
    hop_distance: int
    final_score: float

    @classmethod
    def direct_match(cls, node_id: str, similarity: float) -> "RelevanceScore":
        """Score a vector hit with the default weights."""
        return DEFAULT_SCORER.score_direct(node_id, similarity)

    def to_dict(self) -> dict:
        return {
            "node_id": self.node_id,
            "vector_similarity": self.vector_similarity,
            "graph_proximity": self.graph_proximity,
            "hop_distance": self.hop_distance,
            "final_score": self.final_score,
        }


@dataclass(frozen=True)
class Scorer:
    """Weights for the fused score.

    ``vector_weight`` and ``graph_weight`` need not sum to 1. ``hop_decay_rate``
    is clamped into [0, 1] on construction. ``access_weight`` scales the
    optional access-score bonus and is off by default.
    """

    vector_weight: float = 0.6
    graph_weight: float = 0.4
    hop_decay_rate: float = 0.5
    access_weight: float = 0.0

    def __post_init__(self):
        object.__setattr__(self, "hop_decay_rate", clamp_01(self.hop_decay_rate))

    def validate(self) -> None:
        for name in ("vector_weight", "graph_weight", "access_weight"):
            value = getattr(self, name)
            if not isinstance(value, (int, float)) or not math.isfinite(value):
                raise InvalidConfigError(f"{name} must be a finite number, got {value!r}")
            if value < 0:
                raise InvalidConfigError(f"{name} must be >= 0, got {value}")

    def proximity(self, hop_distance: int) -> float:
        """Graph proximity for a hop distance: decay ** hops."""
        return clamp_01(self.hop_decay_rate ** max(0, hop_distance))

    def _fuse(self, similarity: float, proximity: float) -> float:
        return clamp_01(self.vector_weight * similarity + self.graph_weight * proximity)

    def score_direct(self, node_id: str, similarity: float) -> RelevanceScore:
        similarity = clamp_01(similarity)
        return RelevanceScore(
            node_id=node_id,
            vector_similarity=similarity,
            graph_proximity=1.0,
            hop_distance=0,
            final_score=self._fuse(similarity, 1.0),
        )

    def score_traversal(
        self, node_id: str, similarity: float, hop_distance: int
    ) -> RelevanceScore:
        similarity = clamp_01(similarity)
        proximity = self.proximity(hop_distance)
        return RelevanceScore(
            node_id=node_id,
            vector_similarity=similarity,
            graph_proximity=proximity,
            hop_distance=max(0, hop_distance),
            final_score=self._fuse(similarity, proximity),
        )

    def score_graph_only(self, node_id: str, hop_distance: int) -> RelevanceScore:
        proximity = self.proximity(hop_distance)
        return RelevanceScore(
            node_id=node_id,
            vector_similarity=0.0,
            graph_proximity=proximity,
            hop_distance=max(0, hop_distance),
            final_score=clamp_01(self.graph_weight * proximity),
        )

    def apply_access(self, score: RelevanceScore, access_score: float) -> RelevanceScore:
        """Add the access-score bonus (access_score is on a 0-10 scale)."""
        if not self.access_weight:
            return score
        bonus = self.access_weight * clamp_01(access_score / 10.0)
        return replace(score, final_score=clamp_01(score.final_score + bonus))

    def rerank(self, scores: Iterable[RelevanceScore]) -> list[RelevanceScore]:
        """Sort by final score, highest first; ties keep input order."""
        return sorted(scores, key=lambda score: -score.final_score)


DEFAULT_SCORER = Scorer()
