"""Configuration for hybrid retrieval."""

from dataclasses import dataclass, fields
from enum import Enum
import math
from pathlib import Path
from typing import Any, Mapping

import yaml

from ..errors import InvalidConfigError
from ..graph.schema import Direction
from .expansion import ExpansionConfig, ExpansionStrategy
from .scorer import Scorer


class RetrievalMode(Enum):
    VECTOR_ONLY = "vector_only"
    GRAPH_ONLY = "graph_only"
    HYBRID = "hybrid"


@dataclass(frozen=True)
class RetrievalConfig:
    """Knobs for one retrieval call.

    ``max_results`` and ``max_tokens`` bound the returned context; when either
    cuts items the result is flagged as truncated. ``min_results`` is a hard
    floor: failing to fit that many items raises ContextTooLargeError.
    """

    mode: RetrievalMode = RetrievalMode.HYBRID
    top_k: int = 10
    max_hops: int = 2
    max_expanded_nodes: int = 20
    min_edge_weight: float = 0.0
    direction: Direction = Direction.BOTH
    strategy: ExpansionStrategy = ExpansionStrategy.NEIGHBOR
    relations: tuple[str, ...] = ()
    vector_filter: Mapping[str, Any] | None = None

    max_results: int = 20
    max_tokens: int | None = None
    min_results: int = 0
    min_relevance: float = 0.0

    fallback_to_graph_only: bool = False
    workers: int = 4
    touch_on_retrieve: bool = False
    access_boost: float = 0.1

    def validate(self) -> None:
        if not isinstance(self.mode, RetrievalMode):
            raise InvalidConfigError(f"Unknown retrieval mode: {self.mode!r}")
        for name in ("top_k", "max_hops", "max_expanded_nodes", "max_results", "min_results"):
            value = getattr(self, name)
            if not isinstance(value, int) or value < 0:
                raise InvalidConfigError(f"{name} must be a non-negative integer, got {value!r}")
        if self.workers < 1:
            raise InvalidConfigError(f"workers must be >= 1, got {self.workers}")
        if self.max_tokens is not None and self.max_tokens < 1:
            raise InvalidConfigError(f"max_tokens must be >= 1, got {self.max_tokens}")
        if self.min_results > self.max_results:
            raise InvalidConfigError(
                f"min_results ({self.min_results}) exceeds max_results ({self.max_results})"
            )
        if not 0.0 <= self.min_relevance <= 1.0:
            raise InvalidConfigError(
                f"min_relevance must be within [0, 1], got {self.min_relevance}"
            )
        if not math.isfinite(self.access_boost):
            raise InvalidConfigError(f"access_boost must be finite, got {self.access_boost}")
        self.expansion_config().validate()

    def expansion_config(self) -> ExpansionConfig:
        return ExpansionConfig(
            max_nodes=self.max_expanded_nodes,
            max_hops=self.max_hops,
            min_edge_weight=self.min_edge_weight,
            direction=self.direction,
            strategy=self.strategy,
            relations=self.relations,
        )


DEFAULT_RETRIEVAL_CONFIG = RetrievalConfig()

_ENUM_FIELDS = {
    "mode": RetrievalMode,
    "direction": Direction,
    "strategy": ExpansionStrategy,
}


def _build(cls: type, section: Mapping[str, Any] | None, name: str) -> Any:
    if section is None:
        return cls()
    if not isinstance(section, Mapping):
        raise InvalidConfigError(f"'{name}' section must be a mapping")

    known = {f.name for f in fields(cls)}
    unknown = sorted(set(section) - known)
    if unknown:
        raise InvalidConfigError(f"Unknown {name} option(s): {', '.join(unknown)}")

    values: dict[str, Any] = {}
    for key, raw in section.items():
        if key in _ENUM_FIELDS and raw is not None:
            try:
                raw = _ENUM_FIELDS[key](str(raw).strip().lower())
            except ValueError as exc:
                raise InvalidConfigError(f"Invalid {name}.{key}: {raw!r}") from exc
        elif key == "relations" and raw is not None:
            raw = tuple(str(r) for r in raw)
        values[key] = raw
    return cls(**values)


def config_from_dict(data: Mapping[str, Any] | None) -> tuple[RetrievalConfig, Scorer]:
    """Build retrieval and scorer settings from a parsed mapping."""
    data = data or {}
    unknown = sorted(set(data) - {"retrieval", "scorer"})
    if unknown:
        raise InvalidConfigError(f"Unknown config section(s): {', '.join(unknown)}")

    retrieval = _build(RetrievalConfig, data.get("retrieval"), "retrieval")
    scorer = _build(Scorer, data.get("scorer"), "scorer")
    retrieval.validate()
    scorer.validate()
    return retrieval, scorer


def load_config(path: Path | str) -> tuple[RetrievalConfig, Scorer]:
    """Load ``retrieval:`` and ``scorer:`` sections from a YAML file."""
    with open(path, encoding="utf-8") as f:
        data = yaml.safe_load(f)
    if data is not None and not isinstance(data, Mapping):
        raise InvalidConfigError(f"Config file {path} must contain a mapping")
    return config_from_dict(data)
