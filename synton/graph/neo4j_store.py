"""Neo4j-backed GraphStore.

Every node carries the internal ``SyntonNode`` label plus one label for its
node type. Relationship types are upper-cased sanitized relation names; the
exact relation name is kept in the ``relation`` property.
"""

from contextlib import contextmanager
from datetime import datetime
import json
import logging
import re
from typing import Any, Iterator

from neo4j import GraphDatabase
from neo4j.exceptions import DriverError, Neo4jError

from ..errors import (
    DuplicateNodeError,
    EdgeNotFoundError,
    NodeInUseError,
    NodeNotFoundError,
    StorageError,
)
from .schema import Direction, Edge, Node, NodeMeta, NodeType, Relation

log = logging.getLogger(__name__)

INTERNAL_LABEL = "SyntonNode"

_TYPE_LABELS = {
    NodeType.ENTITY: "Entity",
    NodeType.CONCEPT: "Concept",
    NodeType.FACT: "Fact",
    NodeType.RAW_CHUNK: "RawChunk",
}

_EDGE_RETURN = """
    startNode(r).id AS source, endNode(r).id AS target,
    r.relation AS relation, r.weight AS weight,
    r.created_at AS created_at, r.attributes AS attributes
"""


def sanitize_label(label: str) -> str:
    """Sanitize label for Neo4j (no spaces, special chars)."""
    sanitized = re.sub(r"[^a-zA-Z0-9_]", "_", label)
    if sanitized and not sanitized[0].isalpha():
        sanitized = "N_" + sanitized
    return sanitized or "Unknown"


def relationship_type(relation: Relation) -> str:
    return sanitize_label(relation.name).upper()


class Neo4jGraphStore:
    """GraphStore over the official Neo4j driver."""

    def __init__(
        self,
        uri: str = "bolt://localhost:7687",
        user: str = "neo4j",
        password: str = "neo4j",
        database: str | None = None,
    ):
        self.driver = GraphDatabase.driver(uri, auth=(user, password))
        self.database = database

    def close(self):
        self.driver.close()

    def __enter__(self) -> "Neo4jGraphStore":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    @contextmanager
    def _session(self) -> Iterator[Any]:
        try:
            with self.driver.session(database=self.database) as session:
                yield session
        except (Neo4jError, DriverError) as exc:
            raise StorageError(f"Neo4j operation failed: {exc}") from exc

    def ensure_schema(self) -> None:
        """Create the uniqueness constraint on node ids."""
        with self._session() as session:
            session.run(
                f"CREATE CONSTRAINT synton_node_id IF NOT EXISTS "
                f"FOR (n:{INTERNAL_LABEL}) REQUIRE n.id IS UNIQUE"
            )

    def clear(self, force: bool = False):
        """Delete every node managed by this store.

        Args:
            force: Must be True to execute destructive wipe.
        """
        if not force:
            raise RuntimeError("Refusing to clear database without force=True")
        with self._session() as session:
            session.run(f"MATCH (n:{INTERNAL_LABEL}) DETACH DELETE n")

    @staticmethod
    def _node_from_record(props: dict) -> Node:
        return Node(
            id=props["id"],
            node_type=NodeType.parse(props.get("node_type", "entity")),
            content=props.get("content") or "",
            meta=NodeMeta.from_dict(
                {
                    "created_at": props.get("created_at"),
                    "updated_at": props.get("updated_at"),
                    "accessed_at": props.get("accessed_at"),
                    "access_score": props.get("access_score", 1.0),
                    "confidence": props.get("confidence", 1.0),
                }
            ),
            attributes=json.loads(props.get("attributes") or "{}"),
        )

    @staticmethod
    def _edge_from_record(record: Any) -> Edge:
        return Edge.from_dict(
            {
                "source": record["source"],
                "target": record["target"],
                "relation": record["relation"],
                "weight": record["weight"] if record["weight"] is not None else 1.0,
                "created_at": record["created_at"],
                "attributes": json.loads(record["attributes"] or "{}"),
            }
        )

    @staticmethod
    def _node_props(node: Node) -> dict[str, Any]:
        meta = node.meta.to_dict()
        return {
            "id": node.id,
            "node_type": node.node_type.value,
            "content": node.content,
            "created_at": meta["created_at"],
            "updated_at": meta["updated_at"],
            "accessed_at": meta["accessed_at"],
            "access_score": meta["access_score"],
            "confidence": meta["confidence"],
            "attributes": json.dumps(node.attributes, ensure_ascii=False),
        }

    def _exists(self, session: Any, node_id: str) -> bool:
        record = session.run(
            f"MATCH (n:{INTERNAL_LABEL} {{id: $id}}) RETURN count(n) AS c", id=node_id
        ).single()
        return bool(record and record["c"])

    def add_node(self, node: Node) -> Node:
        label = _TYPE_LABELS[node.node_type]
        with self._session() as session:
            if self._exists(session, node.id):
                raise DuplicateNodeError(node.id)
            session.run(
                f"CREATE (n:{INTERNAL_LABEL}:{label}) SET n = $props",
                props=self._node_props(node),
            )
        return node

    def add_edge(self, edge: Edge) -> Edge:
        rel_type = relationship_type(edge.relation)
        with self._session() as session:
            for endpoint in (edge.source, edge.target):
                if not self._exists(session, endpoint):
                    raise NodeNotFoundError(endpoint)
            session.run(
                f"""
                MATCH (a:{INTERNAL_LABEL} {{id: $source}})
                MATCH (b:{INTERNAL_LABEL} {{id: $target}})
                MERGE (a)-[r:{rel_type} {{relation: $relation}}]->(b)
                SET r.weight = $weight, r.created_at = $created_at,
                    r.attributes = $attributes
                """,
                source=edge.source,
                target=edge.target,
                relation=edge.relation.name,
                weight=edge.weight,
                created_at=edge.created_at.isoformat(),
                attributes=json.dumps(edge.attributes, ensure_ascii=False),
            )
        return edge

    def get_node(self, node_id: str) -> Node:
        with self._session() as session:
            record = session.run(
                f"MATCH (n:{INTERNAL_LABEL} {{id: $id}}) RETURN n", id=node_id
            ).single()
        if not record:
            raise NodeNotFoundError(node_id)
        return self._node_from_record(dict(record["n"]))

    def has_node(self, node_id: str) -> bool:
        with self._session() as session:
            return self._exists(session, node_id)

    def remove_node(self, node_id: str, cascade: bool = False) -> Node:
        node = self.get_node(node_id)
        with self._session() as session:
            record = session.run(
                f"MATCH (n:{INTERNAL_LABEL} {{id: $id}})-[r]-() RETURN count(r) AS c",
                id=node_id,
            ).single()
            edge_count = record["c"] if record else 0
            if edge_count and not cascade:
                raise NodeInUseError(node_id, edge_count)
            session.run(
                f"MATCH (n:{INTERNAL_LABEL} {{id: $id}}) DETACH DELETE n", id=node_id
            )
        log.debug(f"Removed node {node_id} with {edge_count} edge(s)")
        return node

    def remove_edge(self, edge_id: str) -> Edge:
        parts = edge_id.split("::")
        if len(parts) != 3:
            raise EdgeNotFoundError(edge_id)
        source, target, relation = parts
        with self._session() as session:
            record = session.run(
                f"""
                MATCH (a:{INTERNAL_LABEL} {{id: $source}})-[r {{relation: $relation}}]->(b:{INTERNAL_LABEL} {{id: $target}})
                WITH r, {_EDGE_RETURN}
                DELETE r
                RETURN source, target, relation, weight, created_at, attributes
                """,
                source=source,
                target=target,
                relation=relation,
            ).single()
        if not record:
            raise EdgeNotFoundError(edge_id)
        return self._edge_from_record(record)

    def edges(self, node_id: str, direction: Direction = Direction.BOTH) -> list[Edge]:
        direction = Direction.parse(direction)
        if direction == Direction.OUT:
            pattern = "(n)-[r]->(m)"
        elif direction == Direction.IN:
            pattern = "(n)<-[r]-(m)"
        else:
            pattern = "(n)-[r]-(m)"

        with self._session() as session:
            if not self._exists(session, node_id):
                raise NodeNotFoundError(node_id)
            result = session.run(
                f"""
                MATCH (n:{INTERNAL_LABEL} {{id: $id}})
                MATCH {pattern}
                WHERE m:{INTERNAL_LABEL}
                RETURN {_EDGE_RETURN}
                ORDER BY r.created_at
                """,
                id=node_id,
            )
            return [self._edge_from_record(record) for record in result]

    def neighbors(
        self, node_id: str, direction: Direction = Direction.BOTH
    ) -> list[str]:
        seen: dict[str, None] = {}
        for edge in self.edges(node_id, direction):
            seen.setdefault(edge.other(node_id), None)
        return list(seen)

    def node_ids(self) -> list[str]:
        with self._session() as session:
            result = session.run(
                f"MATCH (n:{INTERNAL_LABEL}) RETURN n.id AS id ORDER BY n.created_at"
            )
            return [record["id"] for record in result]

    def touch(self, node_id: str, boost: float) -> float:
        with self._session() as session:
            record = session.run(
                f"""
                MATCH (n:{INTERNAL_LABEL} {{id: $id}})
                SET n.access_score = CASE
                        WHEN coalesce(n.access_score, 1.0) + $boost > 10.0 THEN 10.0
                        WHEN coalesce(n.access_score, 1.0) + $boost < 0.0 THEN 0.0
                        ELSE coalesce(n.access_score, 1.0) + $boost
                    END,
                    n.accessed_at = $now
                RETURN n.access_score AS score
                """,
                id=node_id,
                boost=boost,
                now=datetime.now().astimezone().isoformat(),
            ).single()
        if not record:
            raise NodeNotFoundError(node_id)
        return float(record["score"])

    def counts(self) -> dict[str, int]:
        with self._session() as session:
            nodes = session.run(
                f"MATCH (n:{INTERNAL_LABEL}) RETURN count(n) AS c"
            ).single()["c"]
            edges = session.run(
                f"MATCH (:{INTERNAL_LABEL})-[r]->(:{INTERNAL_LABEL}) RETURN count(r) AS c"
            ).single()["c"]
        return {"nodes": nodes, "edges": edges}
