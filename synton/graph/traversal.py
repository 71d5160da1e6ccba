"""Traversal primitives over a GraphStore.

All walks are cycle-safe. BFS and shortest path share a single visited set;
path enumeration keeps a visited set per stack entry and is bounded only by
``max_depth``.
"""

from collections import deque
from dataclasses import dataclass
from typing import Iterable

from ..errors import StorageError, TraversalError
from .schema import Direction, Edge, Node, Relation
from .store import GraphStore


@dataclass(frozen=True)
class Subgraph:
    nodes: tuple[str, ...]
    edges: tuple[Edge, ...]


def relation_names(relations: Iterable["Relation | str"] | None) -> frozenset[str] | None:
    """Normalize a relation filter to a set of names; empty means no filter."""
    if not relations:
        return None
    return frozenset(Relation.parse(r).name for r in relations)


def require_node(store: GraphStore, node_id: str) -> Node:
    try:
        return store.get_node(node_id)
    except StorageError as exc:
        raise TraversalError(f"Failed to read node {node_id}: {exc}") from exc


def traversable_edges(
    store: GraphStore,
    node_id: str,
    direction: Direction = Direction.BOTH,
    *,
    relations: frozenset[str] | None = None,
    min_weight: float = 0.0,
) -> list[tuple[str, Edge]]:
    """Return (neighbor_id, edge) pairs that can be walked from ``node_id``.

    Symmetric relations are walkable against their stored direction.
    """
    direction = Direction.parse(direction)
    try:
        edges = store.edges(node_id, Direction.BOTH)
    except StorageError as exc:
        raise TraversalError(f"Failed to read edges of {node_id}: {exc}") from exc

    walkable: list[tuple[str, Edge]] = []
    for edge in edges:
        if relations is not None and edge.relation.name not in relations:
            continue
        if edge.weight < min_weight:
            continue
        if edge.source == node_id:
            if direction == Direction.IN and not edge.relation.is_symmetric:
                continue
            walkable.append((edge.target, edge))
        else:
            if direction == Direction.OUT and not edge.relation.is_symmetric:
                continue
            walkable.append((edge.source, edge))
    return walkable


def bfs(
    store: GraphStore,
    start: str,
    *,
    max_depth: int,
    direction: Direction = Direction.BOTH,
    relations: Iterable["Relation | str"] | None = None,
    max_nodes: int | None = None,
) -> list[tuple[str, int]]:
    """Bounded breadth-first search.

    Returns (node_id, hop) pairs in discovery order, the start node first at
    hop 0. Each node is emitted at most once.
    """
    require_node(store, start)
    allowed = relation_names(relations)
    if max_nodes is not None and max_nodes <= 0:
        return []

    order: list[tuple[str, int]] = [(start, 0)]
    if max_nodes is not None and len(order) >= max_nodes:
        return order
    visited = {start}
    queue: deque[tuple[str, int]] = deque([(start, 0)])

    while queue:
        current, hop = queue.popleft()
        if hop >= max_depth:
            continue
        for neighbor, _edge in traversable_edges(
            store, current, direction, relations=allowed
        ):
            if neighbor in visited:
                continue
            if max_nodes is not None and len(order) >= max_nodes:
                return order
            visited.add(neighbor)
            order.append((neighbor, hop + 1))
            queue.append((neighbor, hop + 1))

    return order


def shortest_path(
    store: GraphStore,
    source: str,
    target: str,
    *,
    max_hops: int,
    direction: Direction = Direction.OUT,
) -> list[str] | None:
    """Fewest-hop path from source to target, or None beyond ``max_hops``."""
    require_node(store, source)
    require_node(store, target)
    if source == target:
        return [source]

    parents: dict[str, str] = {}
    visited = {source}
    queue: deque[tuple[str, int]] = deque([(source, 0)])

    while queue:
        current, hop = queue.popleft()
        if hop >= max_hops:
            continue
        for neighbor, _edge in traversable_edges(store, current, direction):
            if neighbor in visited:
                continue
            visited.add(neighbor)
            parents[neighbor] = current
            if neighbor == target:
                path = [target]
                while path[-1] != source:
                    path.append(parents[path[-1]])
                path.reverse()
                return path
            queue.append((neighbor, hop + 1))

    return None


def find_all_paths(
    store: GraphStore,
    source: str,
    target: str,
    *,
    max_depth: int,
    direction: Direction = Direction.OUT,
) -> list[list[str]]:
    """Enumerate every simple path of at most ``max_depth`` hops.

    The number of paths can grow combinatorially with depth; ``max_depth`` is
    the only bound. Returns an empty list when nothing connects.
    """
    require_node(store, source)
    require_node(store, target)
    if source == target:
        return [[source]]

    paths: list[list[str]] = []
    stack: list[tuple[str, list[str], frozenset[str]]] = [
        (source, [source], frozenset({source}))
    ]

    while stack:
        current, path, visited = stack.pop()
        if len(path) - 1 >= max_depth:
            continue
        # Parallel edges lead to the same neighbor once.
        walkable = traversable_edges(store, current, direction)
        neighbors = dict.fromkeys(neighbor for neighbor, _ in walkable)
        # Reversed so the first stored edge is explored first.
        for neighbor in reversed(list(neighbors)):
            if neighbor in visited:
                continue
            next_path = path + [neighbor]
            if neighbor == target:
                paths.append(next_path)
                continue
            stack.append((neighbor, next_path, visited | {neighbor}))

    return paths


find_simple_paths = find_all_paths


def subgraph(store: GraphStore, seeds: Iterable[str], *, radius: int) -> Subgraph:
    """Union of BFS neighborhoods around seeds plus edges incident to seeds."""
    nodes: dict[str, None] = {}
    edges: dict[str, Edge] = {}

    for seed in seeds:
        for node_id, _hop in bfs(store, seed, max_depth=radius):
            nodes.setdefault(node_id, None)
        try:
            incident = store.edges(seed, Direction.BOTH)
        except StorageError as exc:
            raise TraversalError(f"Failed to read edges of {seed}: {exc}") from exc
        for edge in incident:
            edges.setdefault(edge.id, edge)

    return Subgraph(nodes=tuple(nodes), edges=tuple(edges.values()))
