"""Hierarchical detail levels and compression for retrieved contexts."""

from dataclasses import replace
from enum import Enum
import logging

from ..graph.schema import NodeType
from .tokenize import estimate_tokens, normalize_whitespace
from .types import RetrievedContext

log = logging.getLogger(__name__)

_DEDUP_PREFIX_LEN = 50


class SummaryLevel(Enum):
    """Detail levels, from most compressed to most detailed."""

    DOCUMENT = "document"
    PARAGRAPH = "paragraph"
    SENTENCE = "sentence"

    @property
    def rank(self) -> int:
        return _LEVEL_ORDER.index(self)

    @property
    def node_types(self) -> frozenset[NodeType]:
        return _LEVEL_TYPES[self]

    def coarser(self) -> "SummaryLevel":
        return _LEVEL_ORDER[max(0, self.rank - 1)]

    def finer(self) -> "SummaryLevel":
        return _LEVEL_ORDER[min(len(_LEVEL_ORDER) - 1, self.rank + 1)]


_LEVEL_ORDER = (SummaryLevel.DOCUMENT, SummaryLevel.PARAGRAPH, SummaryLevel.SENTENCE)

_LEVEL_TYPES = {
    SummaryLevel.DOCUMENT: frozenset({NodeType.ENTITY, NodeType.CONCEPT}),
    SummaryLevel.PARAGRAPH: frozenset(
        {NodeType.ENTITY, NodeType.CONCEPT, NodeType.FACT}
    ),
    SummaryLevel.SENTENCE: frozenset(NodeType),
}


class CompressionStrategy(Enum):
    NONE = "none"
    DEDUPLICATE = "deduplicate"  # drop items whose content prefix repeats
    TOP_ONLY = "top_only"  # keep the better-scoring half


def context_tokens(context: RetrievedContext) -> int:
    return sum(estimate_tokens(item.node.content) for item in context.items)


def select_level(
    context: RetrievedContext,
    max_tokens: int,
    default_level: SummaryLevel = SummaryLevel.PARAGRAPH,
) -> SummaryLevel:
    """Pick a level from the context size.

    Over budget moves one level coarser; under a quarter of the budget moves
    one level finer; otherwise the default stands.
    """
    total = context_tokens(context)
    if total > max_tokens:
        return default_level.coarser()
    if total < max_tokens / 4:
        return default_level.finer()
    return default_level


def _with_items(context: RetrievedContext, items: tuple) -> RetrievedContext:
    if len(items) == len(context.items):
        return context
    kept_ids = {item.node_id for item in items}
    return replace(
        context,
        items=items,
        edges=tuple(
            edge
            for edge in context.edges
            if edge.source in kept_ids and edge.target in kept_ids
        ),
        truncated=True,
    )


def summarize(context: RetrievedContext, level: SummaryLevel) -> RetrievedContext:
    """Keep only items whose node type belongs to ``level``."""
    allowed = level.node_types
    items = tuple(item for item in context.items if item.node.node_type in allowed)
    dropped = len(context.items) - len(items)
    if dropped:
        log.debug(f"Summary level {level.value} dropped {dropped} item(s)")
    return _with_items(context, items)


def compress(
    context: RetrievedContext,
    max_tokens: int,
    strategy: CompressionStrategy = CompressionStrategy.DEDUPLICATE,
) -> RetrievedContext:
    """Apply ``strategy`` only when the context exceeds ``max_tokens``."""
    if context_tokens(context) <= max_tokens or strategy == CompressionStrategy.NONE:
        return context

    if strategy == CompressionStrategy.DEDUPLICATE:
        seen: set[str] = set()
        kept = []
        for item in context.items:
            key = normalize_whitespace(item.node.content)[:_DEDUP_PREFIX_LEN].lower()
            if key in seen:
                continue
            seen.add(key)
            kept.append(item)
        return _with_items(context, tuple(kept))

    ranked = sorted(context.items, key=lambda item: -item.final_score)
    return _with_items(context, tuple(ranked[: len(ranked) // 2]))
