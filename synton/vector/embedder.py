"""Local query/node embedding using sentence-transformers."""

import logging
from typing import Iterator

from sentence_transformers import SentenceTransformer

log = logging.getLogger(__name__)

DEFAULT_MODEL = "sentence-transformers/all-MiniLM-L6-v2"
DEFAULT_DIMENSIONS = 384
_MAX_CHARS = 8000


class Embedder:
    """Generate normalized embeddings with a local sentence-transformers model."""

    def __init__(self, model: str = DEFAULT_MODEL):
        log.info(f"Loading embedding model: {model}")
        self.model = SentenceTransformer(model)
        self.dimensions = self.model.get_sentence_embedding_dimension()
        log.info(f"Model loaded. Dimensions: {self.dimensions}")

    def embed(self, text: str) -> list[float]:
        """Embed a single text (long inputs are cut to 8000 chars)."""
        embedding = self.model.encode(text[:_MAX_CHARS], normalize_embeddings=True)
        return embedding.tolist()

    def embed_batch(
        self, texts: list[str], batch_size: int = 32
    ) -> Iterator[list[float]]:
        """Yield embeddings for ``texts`` in input order, batch by batch."""
        texts = [t[:_MAX_CHARS] for t in texts]
        for i in range(0, len(texts), batch_size):
            batch = texts[i : i + batch_size]
            embeddings = self.model.encode(
                batch, normalize_embeddings=True, show_progress_bar=False
            )
            for emb in embeddings:
                yield emb.tolist()
