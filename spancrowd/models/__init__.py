"""Data models for spancrowd."""

from spancrowd.models.document import Document
from spancrowd.models.sentence import Sentence
from spancrowd.models.span import Span
from spancrowd.models.token import Token

__all__ = [
    "Document",
    "Sentence",
    "Span",
    "Token",
]
