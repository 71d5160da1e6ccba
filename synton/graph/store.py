"""Graph store contract and the in-memory arena implementation."""

import json
import logging
from pathlib import Path
import threading
from typing import Iterable, Protocol

import networkx as nx

from ..errors import (
    DuplicateNodeError,
    EdgeNotFoundError,
    NodeInUseError,
    NodeNotFoundError,
)
from .schema import Direction, Edge, Node, NodeMeta, NodeType, Relation

log = logging.getLogger(__name__)


class GraphStore(Protocol):
    """Node/edge storage consumed by traversal, expansion and retrieval."""

    def add_node(self, node: Node) -> Node: ...

    def add_edge(self, edge: Edge) -> Edge: ...

    def get_node(self, node_id: str) -> Node: ...

    def has_node(self, node_id: str) -> bool: ...

    def remove_node(self, node_id: str, cascade: bool = False) -> Node: ...

    def remove_edge(self, edge_id: str) -> Edge: ...

    def neighbors(
        self, node_id: str, direction: Direction = Direction.BOTH
    ) -> list[str]: ...

    def edges(
        self, node_id: str, direction: Direction = Direction.BOTH
    ) -> list[Edge]: ...

    def node_ids(self) -> list[str]: ...

    def touch(self, node_id: str, boost: float) -> float: ...

    def counts(self) -> dict[str, int]: ...


class MemoryGraphStore:
    """Arena-backed graph: nodes keyed by id, adjacency keyed by node id.

    Every public method holds the store lock for its own duration only, so a
    reader never observes a half-applied mutation.
    """

    def __init__(self, nodes: Iterable[Node] = (), edges: Iterable[Edge] = ()):
        self._lock = threading.RLock()
        self._nodes: dict[str, Node] = {}
        self._outgoing: dict[str, dict[str, Edge]] = {}
        self._incoming: dict[str, dict[str, Edge]] = {}
        self._edges: dict[str, Edge] = {}
        for node in nodes:
            self.add_node(node)
        for edge in edges:
            self.add_edge(edge)

    def add_node(self, node: Node) -> Node:
        with self._lock:
            if node.id in self._nodes:
                raise DuplicateNodeError(node.id)
            self._nodes[node.id] = node
            self._outgoing[node.id] = {}
            self._incoming[node.id] = {}
            return node

    def add_edge(self, edge: Edge) -> Edge:
        """Insert an edge; an edge with the same id replaces the old one."""
        with self._lock:
            for endpoint in (edge.source, edge.target):
                if endpoint not in self._nodes:
                    raise NodeNotFoundError(endpoint)
            self._outgoing[edge.source][edge.id] = edge
            self._incoming[edge.target][edge.id] = edge
            self._edges[edge.id] = edge
            return edge

    def get_node(self, node_id: str) -> Node:
        with self._lock:
            node = self._nodes.get(node_id)
            if node is None:
                raise NodeNotFoundError(node_id)
            return node

    def has_node(self, node_id: str) -> bool:
        with self._lock:
            return node_id in self._nodes

    def get_edge(self, edge_id: str) -> Edge:
        with self._lock:
            edge = self._edges.get(edge_id)
            if edge is None:
                raise EdgeNotFoundError(edge_id)
            return edge

    def remove_edge(self, edge_id: str) -> Edge:
        with self._lock:
            edge = self.get_edge(edge_id)
            del self._outgoing[edge.source][edge_id]
            del self._incoming[edge.target][edge_id]
            del self._edges[edge_id]
            return edge

    def remove_node(self, node_id: str, cascade: bool = False) -> Node:
        """Remove a node.

        Args:
            node_id: Node to remove
            cascade: Also delete incident edges. When False, a node that still
                has edges is rejected with NodeInUseError.

        Returns:
            The removed node
        """
        with self._lock:
            node = self.get_node(node_id)
            incident = self._incident(node_id)
            if incident and not cascade:
                raise NodeInUseError(node_id, len(incident))
            for edge in incident:
                self._outgoing[edge.source].pop(edge.id, None)
                self._incoming[edge.target].pop(edge.id, None)
                self._edges.pop(edge.id, None)
            if incident:
                log.debug(f"Cascade-removed {len(incident)} edge(s) of {node_id}")
            del self._nodes[node_id]
            del self._outgoing[node_id]
            del self._incoming[node_id]
            return node

    def _incident(self, node_id: str) -> list[Edge]:
        merged = dict(self._outgoing[node_id])
        merged.update(self._incoming[node_id])
        return list(merged.values())

    def edges(self, node_id: str, direction: Direction = Direction.BOTH) -> list[Edge]:
        direction = Direction.parse(direction)
        with self._lock:
            if node_id not in self._nodes:
                raise NodeNotFoundError(node_id)
            if direction == Direction.OUT:
                return list(self._outgoing[node_id].values())
            if direction == Direction.IN:
                return list(self._incoming[node_id].values())
            return self._incident(node_id)

    def neighbors(
        self, node_id: str, direction: Direction = Direction.BOTH
    ) -> list[str]:
        seen: dict[str, None] = {}
        for edge in self.edges(node_id, direction):
            seen.setdefault(edge.other(node_id), None)
        return list(seen)

    def node_ids(self) -> list[str]:
        with self._lock:
            return list(self._nodes)

    def all_edges(self) -> list[Edge]:
        with self._lock:
            return [edge for out in self._outgoing.values() for edge in out.values()]

    def touch(self, node_id: str, boost: float) -> float:
        with self._lock:
            return self.get_node(node_id).access(boost)

    def counts(self) -> dict[str, int]:
        with self._lock:
            return {
                "nodes": len(self._nodes),
                "edges": sum(len(out) for out in self._outgoing.values()),
            }

    def __len__(self) -> int:
        return self.counts()["nodes"]

    def __contains__(self, node_id: object) -> bool:
        return isinstance(node_id, str) and self.has_node(node_id)

    def to_networkx(self) -> nx.MultiDiGraph:
        """Copy the graph into a networkx MultiDiGraph keyed by relation."""
        graph = nx.MultiDiGraph()
        with self._lock:
            for node in self._nodes.values():
                payload = node.to_dict()
                payload.pop("id")
                graph.add_node(node.id, **payload)
            for edge in self.all_edges():
                payload = edge.to_dict()
                payload.pop("source")
                payload.pop("target")
                graph.add_edge(edge.source, edge.target, key=edge.relation.name, **payload)
        return graph

    @classmethod
    def from_networkx(cls, graph: nx.MultiDiGraph) -> "MemoryGraphStore":
        store = cls()
        for node_id, data in graph.nodes(data=True):
            store.add_node(
                Node(
                    id=str(node_id),
                    node_type=NodeType.parse(data.get("node_type", "entity")),
                    content=str(data.get("content") or ""),
                    meta=NodeMeta.from_dict(data.get("meta")),
                    attributes=dict(data.get("attributes") or {}),
                )
            )
        for source, target, key, data in graph.edges(keys=True, data=True):
            store.add_edge(
                Edge.from_dict(
                    {
                        **data,
                        "source": source,
                        "target": target,
                        "relation": data.get("relation", key),
                    }
                )
            )
        return store

    def save(self, path: Path) -> None:
        """Save graph to JSON."""
        data = nx.node_link_data(self.to_networkx())
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, ensure_ascii=False)

    @classmethod
    def load(cls, path: Path) -> "MemoryGraphStore":
        """Load graph from JSON."""
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
        store = cls.from_networkx(nx.node_link_graph(data))
        counts = store.counts()
        log.info(f"Loaded graph: {counts['nodes']} nodes, {counts['edges']} edges")
        return store


def connect(
    store: GraphStore,
    source: str,
    target: str,
    relation: "Relation | str",
    weight: float = 1.0,
) -> Edge:
    """Convenience wrapper building and inserting an edge."""
    return store.add_edge(
        Edge(source=source, target=target, relation=Relation.parse(relation), weight=weight)
    )
