"""Whitespace normalization and token estimation for context budgeting."""

import math
import re

_WS_RE = re.compile(r"\s+")


def normalize_whitespace(text: str | None) -> str:
    """Collapse whitespace to single spaces."""
    if text is None:
        return ""
    return _WS_RE.sub(" ", text).strip()


def estimate_tokens(text: str | None) -> int:
    """Estimate tokens (4 chars per token) with 10% safety margin."""
    if not text:
        return 0
    return int(math.ceil((len(text) / 4.0) * 1.10))


def truncate_text(text: str | None, max_len: int) -> str:
    cleaned = normalize_whitespace(text)
    if len(cleaned) <= max_len:
        return cleaned
    return cleaned[: max_len - 3].rstrip() + "..."
