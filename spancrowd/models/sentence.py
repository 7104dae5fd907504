"""Sentence model."""

from __future__ import annotations

import builtins
from typing import TYPE_CHECKING

from sqlalchemy import CheckConstraint, ForeignKey, Integer
from sqlalchemy.orm import Mapped, mapped_column, relationship

from spancrowd.db import Base

if TYPE_CHECKING:
    from spancrowd.models.document import Document
    from spancrowd.models.token import Token


class Sentence(Base):
    """
    Represents a sentence of a document.

    A sentence has these characteristics:
    - A document ID
    - Character bounds ``[begin, end)`` that contain all of its tokens

    Sentences never overlap each other and tokens never cross sentence
    boundaries.
    """

    __tablename__ = "sentences"
    __table_args__ = (
        CheckConstraint('"begin" <= "end"', name="ck_sentences_bounds"),
    )

    #: The sentence ID.
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    #: The document ID.
    document_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("documents.id", ondelete="CASCADE"), nullable=False
    )
    #: The character offset the sentence begins at.
    begin: Mapped[int] = mapped_column(Integer, nullable=False)
    #: The character offset the sentence ends at (exclusive).
    end: Mapped[int] = mapped_column(Integer, nullable=False)

    # Relationships
    document: Mapped[Document] = relationship("Document", back_populates="sentences")

    @property
    def text(self) -> str:
        """The text of the sentence."""
        return self.document.covered_text(self.begin, self.end)

    @property
    def tokens(self) -> builtins.list[Token]:
        """
        The tokens covered by this sentence, in document order.
        """
        return [
            token
            for token in self.document.tokens
            if token.begin >= self.begin and token.end <= self.end
        ]

    def __repr__(self) -> str:
        return f"Sentence(id={self.id!r}, begin={self.begin!r}, end={self.end!r})"
