"""Error taxonomy shared by the graph store, retrieval and vector layers."""


class SyntonError(Exception):
    """Base class for every error raised by this package."""


class NotFoundError(SyntonError):
    """A referenced node or edge does not exist."""


class NodeNotFoundError(NotFoundError):
    def __init__(self, node_id: str):
        super().__init__(f"Node not found: {node_id}")
        self.node_id = node_id


class EdgeNotFoundError(NotFoundError):
    def __init__(self, edge_id: str):
        super().__init__(f"Edge not found: {edge_id}")
        self.edge_id = edge_id


class DuplicateNodeError(SyntonError):
    def __init__(self, node_id: str):
        super().__init__(f"Node already exists: {node_id}")
        self.node_id = node_id


class InvalidEdgeError(SyntonError):
    """Edge rejected at creation (self-loop or weight outside [0, 1])."""


class NodeInUseError(SyntonError):
    """Node still has incident edges and cascade removal was not requested."""

    def __init__(self, node_id: str, edge_count: int):
        super().__init__(
            f"Node {node_id} has {edge_count} incident edge(s); "
            "remove them first or pass cascade=True"
        )
        self.node_id = node_id
        self.edge_count = edge_count


class InvalidConfigError(SyntonError):
    """Configuration value out of its allowed range."""


class DimensionMismatchError(InvalidConfigError):
    def __init__(self, expected: int, found: int):
        super().__init__(
            f"Vector dimension mismatch: expected {expected}, found {found}"
        )
        self.expected = expected
        self.found = found


class StorageError(SyntonError):
    """Opaque failure reported by a persistence backend."""


class TraversalError(SyntonError):
    """Storage failure observed while walking the graph."""


class ScoringError(SyntonError):
    """Reserved for scoring backends that can fail."""


class VectorSearchError(SyntonError):
    """The vector index failed while resolving seeds."""


class ContextTooLargeError(SyntonError):
    def __init__(self, size: int, max_size: int):
        super().__init__(f"Context too large: {size} exceeds limit {max_size}")
        self.size = size
        self.max_size = max_size
