"""Vector index backends."""

from .index import InMemoryVectorIndex, VectorIndex, cosine_similarity
from .sqlite_index import SqliteVecIndex

__all__ = ["InMemoryVectorIndex", "SqliteVecIndex", "VectorIndex", "cosine_similarity"]
