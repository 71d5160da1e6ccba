"""Hybrid graph + vector retrieval for cognitive knowledge stores."""

__version__ = "0.1.0"
