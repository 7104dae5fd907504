"""Span annotations for documents, and crowdsourced named entity tasks."""

__version__ = "0.1.0"
