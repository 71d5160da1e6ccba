"""Typed knowledge graph: schema, stores, traversal and reasoning paths."""

from .paths import PathType, ReasoningPath, explain_relationship
from .schema import Direction, Edge, Node, NodeMeta, NodeType, Relation, StandardRelation
from .store import GraphStore, MemoryGraphStore, connect
from .traversal import bfs, find_all_paths, shortest_path, subgraph

__all__ = [
    "Direction",
    "Edge",
    "GraphStore",
    "MemoryGraphStore",
    "Node",
    "NodeMeta",
    "NodeType",
    "PathType",
    "ReasoningPath",
    "Relation",
    "StandardRelation",
    "bfs",
    "connect",
    "explain_relationship",
    "find_all_paths",
    "shortest_path",
    "subgraph",
]
