"""Hybrid retrieval pipeline, scoring and context rendering."""

from typing import Any

__all__ = ["hybrid_retrieve", "retrieve", "retrieve_from_seeds"]


def retrieve(*args: Any, **kwargs: Any):
    from .pipeline import retrieve as _retrieve

    return _retrieve(*args, **kwargs)


def retrieve_from_seeds(*args: Any, **kwargs: Any):
    from .pipeline import retrieve_from_seeds as _retrieve_from_seeds

    return _retrieve_from_seeds(*args, **kwargs)


def hybrid_retrieve(*args: Any, **kwargs: Any):
    from .pipeline import hybrid_retrieve as _hybrid_retrieve

    return _hybrid_retrieve(*args, **kwargs)
