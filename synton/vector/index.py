"""Vector index contract and an in-memory cosine implementation."""

import math
import threading
from typing import Any, Mapping, Protocol, Sequence

from ..errors import DimensionMismatchError, InvalidConfigError

VectorHit = tuple[str, float]


class VectorIndex(Protocol):
    """Nearest-neighbour search over node embeddings.

    Similarities are in [0, 1], highest first.
    """

    @property
    def dimension(self) -> int: ...

    def search(self, query: Sequence[float], k: int) -> list[VectorHit]: ...

    def search_with_filter(
        self, query: Sequence[float], filter: Mapping[str, Any], k: int
    ) -> list[VectorHit]: ...

    def upsert(
        self,
        node_id: str,
        vector: Sequence[float],
        metadata: Mapping[str, Any] | None = None,
    ) -> Any: ...

    def remove(self, node_id: str) -> bool: ...


def check_dimension(vector: Sequence[float], expected: int) -> None:
    if len(vector) != expected:
        raise DimensionMismatchError(expected, len(vector))


def matches_filter(metadata: Mapping[str, Any], filter: Mapping[str, Any]) -> bool:
    """Every filter key must match; list/tuple/set values mean "any of"."""
    for key, wanted in filter.items():
        value = metadata.get(key)
        if isinstance(wanted, (list, tuple, set, frozenset)):
            if value not in wanted:
                return False
        elif value != wanted:
            return False
    return True


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine similarity clamped into [0, 1]; zero vectors score 0."""
    dot = sum(x * y for x, y in zip(a, b))
    norm_a = math.sqrt(sum(x * x for x in a))
    norm_b = math.sqrt(sum(y * y for y in b))
    if norm_a == 0.0 or norm_b == 0.0:
        return 0.0
    similarity = dot / (norm_a * norm_b)
    if math.isnan(similarity) or similarity < 0.0:
        return 0.0
    return min(similarity, 1.0)


class InMemoryVectorIndex:
    """Brute-force cosine index guarded by a lock."""

    def __init__(self, dimension: int):
        if dimension < 1:
            raise InvalidConfigError(f"dimension must be >= 1, got {dimension}")
        self._dimension = dimension
        self._lock = threading.RLock()
        self._vectors: dict[str, tuple[float, ...]] = {}
        self._metadata: dict[str, dict[str, Any]] = {}

    @property
    def dimension(self) -> int:
        return self._dimension

    def upsert(
        self,
        node_id: str,
        vector: Sequence[float],
        metadata: Mapping[str, Any] | None = None,
    ) -> None:
        check_dimension(vector, self._dimension)
        with self._lock:
            self._vectors[node_id] = tuple(float(x) for x in vector)
            self._metadata[node_id] = dict(metadata or {})

    def remove(self, node_id: str) -> bool:
        with self._lock:
            self._metadata.pop(node_id, None)
            return self._vectors.pop(node_id, None) is not None

    def __len__(self) -> int:
        with self._lock:
            return len(self._vectors)

    def search(self, query: Sequence[float], k: int) -> list[VectorHit]:
        return self._search(query, None, k)

    def search_with_filter(
        self, query: Sequence[float], filter: Mapping[str, Any], k: int
    ) -> list[VectorHit]:
        return self._search(query, filter, k)

    def _search(
        self, query: Sequence[float], filter: Mapping[str, Any] | None, k: int
    ) -> list[VectorHit]:
        check_dimension(query, self._dimension)
        if k <= 0:
            return []
        with self._lock:
            entries = [
                (node_id, vector)
                for node_id, vector in self._vectors.items()
                if filter is None or matches_filter(self._metadata[node_id], filter)
            ]
        hits = [(node_id, cosine_similarity(query, vector)) for node_id, vector in entries]
        hits.sort(key=lambda hit: -hit[1])
        return hits[:k]
