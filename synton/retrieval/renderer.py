"""Render a RetrievedContext into bounded text for downstream prompts."""

from dataclasses import asdict, dataclass
from enum import Enum
import json
from typing import Any, Callable, Sequence

from ..graph.schema import Edge
from .tokenize import estimate_tokens, normalize_whitespace, truncate_text
from .types import RetrievedContext, RetrievedNode

_MAX_ID_LEN = 160
_MAX_LINE_CONTENT_LEN = 240
_EMPTY = "No relevant context found."


class FormatStyle(Enum):
    FLAT = "flat"
    STRUCTURED = "structured"
    TREE = "tree"
    MARKDOWN = "markdown"
    JSON = "json"
    COMPACT = "compact"

    @classmethod
    def parse(cls, value: "str | FormatStyle") -> "FormatStyle":
        if isinstance(value, cls):
            return value
        return cls(str(value).strip().lower())


@dataclass(frozen=True)
class RenderedContext:
    text: str
    style: FormatStyle
    truncated_items: int = 0

    @property
    def truncated(self) -> bool:
        return self.truncated_items > 0

    @property
    def tokens(self) -> int:
        return estimate_tokens(self.text)


def _marker(truncated: int) -> str:
    return f"...(truncated {truncated})"


def _node_type(item: RetrievedNode) -> str:
    return item.node.node_type.value


def _format_flat(items: Sequence[RetrievedNode], meta: bool, truncated: int) -> str:
    entries = []
    for item in items:
        content = item.node.content.strip()
        if not content:
            continue
        if meta:
            content = f"{content}\n(score: {item.final_score:.2f})"
        entries.append(content)
    if truncated:
        entries.append(_marker(truncated))
    return "\n\n---\n\n".join(entries)


def _format_structured(
    items: Sequence[RetrievedNode], meta: bool, truncated: int
) -> str:
    if not items and not truncated:
        return f"=== Retrieved Context ===\n{_EMPTY}"

    parts = ["=== Retrieved Context ==="]
    for i, item in enumerate(items, 1):
        parts.append(f"\n[{i}]")
        parts.append(f"Relevance: {item.final_score:.2f}")
        if meta:
            parts.append(f"Type: {_node_type(item)}")
            if item.hop_distance > 0:
                parts.append(f"Distance: {item.hop_distance} hops")
        parts.append(f"Content: {item.node.content}")
    if truncated:
        parts.append(f"\n{_marker(truncated)}")
    return "\n".join(parts)


def _format_markdown(
    items: Sequence[RetrievedNode], meta: bool, truncated: int
) -> str:
    if not items and not truncated:
        return f"# Retrieved Context\n\n*{_EMPTY}*"

    parts = ["# Retrieved Context"]
    for i, item in enumerate(items, 1):
        parts.append(f"\n## {i}. {_node_type(item)}\n")
        if meta:
            parts.append(f"**Relevance:** {item.final_score:.2f}\n")
        parts.append(item.node.content)
    if truncated:
        parts.append(f"\n*{_marker(truncated)}*")
    return "\n".join(parts)


def _format_tree_line(item: RetrievedNode, meta: bool) -> str:
    node_id = truncate_text(item.node_id, _MAX_ID_LEN)
    content = truncate_text(item.node.content, _MAX_LINE_CONTENT_LEN)
    line = f"- [{node_id}] {_node_type(item)} | {content}"
    if meta:
        line += (
            f" | score={item.final_score:.4f}"
            f" | vector={item.score.vector_similarity:.4f}"
            f" | graph={item.score.graph_proximity:.4f}"
        )
    return line


def _format_tree(
    items: Sequence[RetrievedNode],
    meta: bool,
    truncated: int,
    edges: Sequence[Edge] = (),
) -> str:
    if not items and not truncated:
        return f"# Retrieved Context\n\n{_EMPTY}"

    groups: dict[int, list[RetrievedNode]] = {}
    for item in items:
        groups.setdefault(item.hop_distance, []).append(item)

    parts = ["# Retrieved Context"]
    for hop in sorted(groups):
        title = "direct matches" if hop == 0 else f"{hop} hop{'s' if hop > 1 else ''}"
        parts.append("")
        parts.append(f"## Hop {hop} ({title})")
        parts.extend(_format_tree_line(item, meta) for item in groups[hop])

    kept_ids = {item.node_id for item in items}
    connection_lines = [
        f"- {edge.source} -[{edge.relation.name.upper()}]-> {edge.target} | weight={edge.weight:.2f}"
        for edge in edges
        if edge.source in kept_ids and edge.target in kept_ids
    ]
    if connection_lines:
        parts.append("")
        parts.append("## Connections")
        parts.extend(connection_lines)

    if truncated:
        parts.append("")
        parts.append(f"- {_marker(truncated)}")
    return "\n".join(parts)


def _format_compact(items: Sequence[RetrievedNode], meta: bool, truncated: int) -> str:
    entries = [normalize_whitespace(item.node.content) for item in items]
    entries = [entry for entry in entries if entry]
    if truncated:
        entries.append(_marker(truncated))
    return " ".join(entries)


def item_record(item: RetrievedNode) -> dict[str, Any]:
    return {
        "id": item.node_id,
        "node_type": _node_type(item),
        "content": item.node.content,
        "score": item.final_score,
        "vector_similarity": item.score.vector_similarity,
        "graph_proximity": item.score.graph_proximity,
        "hop_distance": item.hop_distance,
        "is_direct_match": item.is_direct_match,
        "access_score": item.node.meta.access_score,
    }


def to_record(
    context: RetrievedContext,
    items: Sequence[RetrievedNode] | None = None,
    *,
    truncated_items: int = 0,
) -> dict[str, Any]:
    """Serializable record of a context (optionally a prefix of its items)."""
    items = context.items if items is None else items
    kept_ids = {item.node_id for item in items}
    return {
        "items": [item_record(item) for item in items],
        "edges": [
            edge.to_dict()
            for edge in context.edges
            if edge.source in kept_ids and edge.target in kept_ids
        ],
        "truncated": context.truncated or truncated_items > 0,
        "truncated_items": truncated_items,
        "failures": [asdict(failure) for failure in context.failures],
        "stats": asdict(context.stats),
    }


def _fit_items(
    items: Sequence[RetrievedNode],
    render_fn: Callable[[Sequence[RetrievedNode], int], str],
    token_budget: int,
) -> int:
    """Count how many leading items fit, including the truncation marker."""
    kept = 0
    while kept < len(items):
        remaining = len(items) - kept - 1
        if estimate_tokens(render_fn(items[: kept + 1], remaining)) > token_budget:
            break
        kept += 1
    return kept


def render(
    context: RetrievedContext,
    style: FormatStyle | str = FormatStyle.MARKDOWN,
    *,
    max_tokens: int | None = None,
    include_metadata: bool = True,
) -> RenderedContext:
    """Render items in rank order, dropping tail items past ``max_tokens``."""
    style = FormatStyle.parse(style)
    items = list(context.items)

    if style == FormatStyle.JSON:

        def render_fn(subset: Sequence[RetrievedNode], truncated: int) -> str:
            record = to_record(context, subset, truncated_items=truncated)
            return json.dumps(record, indent=2, ensure_ascii=False)

    elif style == FormatStyle.TREE:

        def render_fn(subset: Sequence[RetrievedNode], truncated: int) -> str:
            return _format_tree(subset, include_metadata, truncated, context.edges)

    else:
        formatter = _FORMATTERS[style]

        def render_fn(subset: Sequence[RetrievedNode], truncated: int) -> str:
            return formatter(subset, include_metadata, truncated)

    kept = len(items)
    if max_tokens is not None:
        kept = _fit_items(items, render_fn, max(1, max_tokens))

    truncated = len(items) - kept
    return RenderedContext(
        text=render_fn(items[:kept], truncated),
        style=style,
        truncated_items=truncated,
    )


_FORMATTERS: dict[FormatStyle, Callable[[Sequence[RetrievedNode], bool, int], str]] = {
    FormatStyle.FLAT: _format_flat,
    FormatStyle.STRUCTURED: _format_structured,
    FormatStyle.MARKDOWN: _format_markdown,
    FormatStyle.COMPACT: _format_compact,
}
