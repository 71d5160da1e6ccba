"""Graph schema definitions for the knowledge store.

Defines node types, relation semantics and the node/edge records owned by a
graph store.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
import math
from typing import Any
from uuid import uuid4

from ..errors import InvalidEdgeError

MAX_ACCESS_SCORE = 10.0
DEFAULT_ACCESS_SCORE = 1.0


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class NodeType(Enum):
    """Closed set of node kinds."""

    ENTITY = "entity"
    CONCEPT = "concept"
    FACT = "fact"
    RAW_CHUNK = "raw_chunk"

    @classmethod
    def parse(cls, value: "str | NodeType") -> "NodeType":
        if isinstance(value, cls):
            return value
        return cls(str(value).strip().lower())


class Direction(Enum):
    """Edge direction relative to a node."""

    OUT = "out"
    IN = "in"
    BOTH = "both"

    @classmethod
    def parse(cls, value: "str | Direction") -> "Direction":
        if isinstance(value, cls):
            return value
        return cls(str(value).strip().lower())


class StandardRelation(Enum):
    """Built-in relation names."""

    IS_PART_OF = "is_part_of"
    CAUSES = "causes"
    CONTRADICTS = "contradicts"
    HAPPENED_AFTER = "happened_after"
    SIMILAR_TO = "similar_to"
    IS_A = "is_a"
    LOCATED_AT = "located_at"
    BELONGS_TO = "belongs_to"


_STANDARD_NAMES = frozenset(r.value for r in StandardRelation)

SYMMETRIC_RELATIONS = frozenset({"similar_to", "contradicts"})
TRANSITIVE_RELATIONS = frozenset({"is_part_of", "is_a", "causes", "located_at"})
HIERARCHICAL_RELATIONS = frozenset({"is_part_of", "is_a"})

_REVERSE_NAMES = {
    "is_part_of": "belongs_to",
    "belongs_to": "is_part_of",
    "causes": "caused_by",
    "happened_after": "happened_before",
    "located_at": "contains",
    "is_a": "has_instance",
}

_PHRASES = {
    "is_part_of": "is part of",
    "causes": "causes",
    "contradicts": "contradicts",
    "happened_after": "happened after",
    "similar_to": "is similar to",
    "is_a": "is a",
    "located_at": "is located at",
    "belongs_to": "belongs to",
}


@dataclass(frozen=True)
class Relation:
    """Relation tag of an edge: one of the standard names or a custom one."""

    name: str

    @classmethod
    def parse(cls, value: "str | Relation | StandardRelation") -> "Relation":
        """Parse case-insensitively; unknown names become custom relations."""
        if isinstance(value, Relation):
            return value
        if isinstance(value, StandardRelation):
            return cls(value.value)
        name = str(value).strip().lower()
        if not name:
            raise ValueError("Relation name must not be empty")
        return cls(name)

    @property
    def is_custom(self) -> bool:
        return self.name not in _STANDARD_NAMES

    @property
    def is_symmetric(self) -> bool:
        return self.name in SYMMETRIC_RELATIONS

    @property
    def is_transitive(self) -> bool:
        return self.name in TRANSITIVE_RELATIONS

    @property
    def is_hierarchical(self) -> bool:
        return self.name in HIERARCHICAL_RELATIONS

    @property
    def phrase(self) -> str:
        """Human-readable verb phrase used in explanations."""
        return _PHRASES.get(self.name, self.name)

    def reverse(self) -> "Relation":
        if self.is_symmetric:
            return self
        if self.name in _REVERSE_NAMES:
            return Relation(_REVERSE_NAMES[self.name])
        return Relation(f"reverse_{self.name}")

    def __str__(self) -> str:
        return self.name


def clamp_access_score(value: float) -> float:
    if value is None or math.isnan(value):
        return 0.0
    return min(max(float(value), 0.0), MAX_ACCESS_SCORE)


def _parse_time(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value
    if isinstance(value, str) and value:
        return datetime.fromisoformat(value)
    return utc_now()


@dataclass
class NodeMeta:
    """Mutable bookkeeping attached to a node.

    ``access_score`` is produced by an external decay process; the store only
    bumps it on access and reads it for scoring.
    """

    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)
    accessed_at: datetime = field(default_factory=utc_now)
    access_score: float = DEFAULT_ACCESS_SCORE
    confidence: float = 1.0

    def __post_init__(self):
        self.access_score = clamp_access_score(self.access_score)

    def to_dict(self) -> dict[str, Any]:
        return {
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
            "accessed_at": self.accessed_at.isoformat(),
            "access_score": self.access_score,
            "confidence": self.confidence,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "NodeMeta":
        data = data or {}
        return cls(
            created_at=_parse_time(data.get("created_at")),
            updated_at=_parse_time(data.get("updated_at")),
            accessed_at=_parse_time(data.get("accessed_at")),
            access_score=float(data.get("access_score", DEFAULT_ACCESS_SCORE)),
            confidence=float(data.get("confidence", 1.0)),
        )


@dataclass
class Node:
    id: str
    node_type: NodeType
    content: str
    meta: NodeMeta = field(default_factory=NodeMeta)
    attributes: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        self.node_type = NodeType.parse(self.node_type)

    @classmethod
    def create(
        cls,
        content: str,
        node_type: NodeType | str = NodeType.ENTITY,
        node_id: str | None = None,
        **attributes: Any,
    ) -> "Node":
        """Build a node, generating an id when none is given."""
        return cls(
            id=node_id or uuid4().hex,
            node_type=NodeType.parse(node_type),
            content=content,
            attributes=dict(attributes),
        )

    def access(self, boost: float) -> float:
        """Bump the access score by ``boost`` and return the new value."""
        self.meta.access_score = clamp_access_score(self.meta.access_score + boost)
        self.meta.accessed_at = utc_now()
        return self.meta.access_score

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "node_type": self.node_type.value,
            "content": self.content,
            "meta": self.meta.to_dict(),
            "attributes": dict(self.attributes),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Node":
        return cls(
            id=str(data["id"]),
            node_type=NodeType.parse(data.get("node_type", "entity")),
            content=str(data.get("content") or ""),
            meta=NodeMeta.from_dict(data.get("meta")),
            attributes=dict(data.get("attributes") or {}),
        )


@dataclass
class Edge:
    """Directed, weighted relation between two node ids."""

    source: str
    target: str
    relation: Relation
    weight: float = 1.0
    created_at: datetime = field(default_factory=utc_now)
    attributes: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        self.relation = Relation.parse(self.relation)
        if self.source == self.target:
            raise InvalidEdgeError(f"Self-loop edges are not allowed: {self.source}")
        weight = float(self.weight)
        if math.isnan(weight) or weight < 0.0 or weight > 1.0:
            raise InvalidEdgeError(
                f"Edge weight must be within [0, 1], got {self.weight}"
            )
        self.weight = weight

    @property
    def id(self) -> str:
        return f"{self.source}::{self.target}::{self.relation.name}"

    def other(self, node_id: str) -> str:
        """Return the endpoint opposite ``node_id``."""
        return self.target if node_id == self.source else self.source

    def to_dict(self) -> dict[str, Any]:
        return {
            "source": self.source,
            "target": self.target,
            "relation": self.relation.name,
            "weight": self.weight,
            "created_at": self.created_at.isoformat(),
            "attributes": dict(self.attributes),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Edge":
        return cls(
            source=str(data["source"]),
            target=str(data["target"]),
            relation=Relation.parse(data["relation"]),
            weight=float(data.get("weight", 1.0)),
            created_at=_parse_time(data.get("created_at")),
            attributes=dict(data.get("attributes") or {}),
        )
