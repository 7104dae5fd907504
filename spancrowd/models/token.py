"""Token model."""

from __future__ import annotations

import builtins
from typing import TYPE_CHECKING

from sqlalchemy import CheckConstraint, ForeignKey, Integer, select
from sqlalchemy.orm import Mapped, Session, mapped_column, relationship

from spancrowd.db import Base
from spancrowd.models.span import Span
from spancrowd.types import SpanKind

if TYPE_CHECKING:
    from spancrowd.models.document import Document


class Token(Base):
    """
    Represents a token of a document.

    Tokens are provided by the segmentation of the document and are read-only
    to the rest of the application, except for their attach features:
    :attr:`pos` and :attr:`lemma` point at the part-of-speech and lemma spans
    annotating the token.
    """

    __tablename__ = "tokens"
    __table_args__ = (CheckConstraint('"begin" < "end"', name="ck_tokens_bounds"),)

    #: The token ID.
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    #: The document ID.
    document_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("documents.id", ondelete="CASCADE"), nullable=False
    )
    #: The character offset the token begins at.
    begin: Mapped[int] = mapped_column(Integer, nullable=False)
    #: The character offset the token ends at (exclusive).
    end: Mapped[int] = mapped_column(Integer, nullable=False)
    #: The ID of the part-of-speech span attached to this token.
    pos_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("spans.id", ondelete="SET NULL"), nullable=True
    )
    #: The ID of the lemma span attached to this token.
    lemma_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("spans.id", ondelete="SET NULL"), nullable=True
    )

    # Relationships
    document: Mapped[Document] = relationship("Document", back_populates="tokens")
    pos: Mapped[Span | None] = relationship("Span", foreign_keys=[pos_id])
    lemma: Mapped[Span | None] = relationship("Span", foreign_keys=[lemma_id])

    @property
    def text(self) -> str:
        """The surface form of the token."""
        return self.document.covered_text(self.begin, self.end)

    def attach(self, kind: SpanKind, span: Span | None) -> None:
        """
        Point the attach feature for ``kind`` at ``span``.

        Args:
            kind: The kind of span; must have an attach feature
            span: The span to attach, or None to detach

        Raises:
            ValueError: If ``kind`` does not attach to tokens

        """
        if kind.attach_feature == "pos":
            self.pos = span
        elif kind.attach_feature == "lemma":
            self.lemma = span
        else:
            msg = f"Spans of kind {kind.value} do not attach to tokens"
            raise ValueError(msg)

    def attached(self, kind: SpanKind) -> Span | None:
        """
        Get the span attached for ``kind``, if any.

        Args:
            kind: The kind of span

        Returns:
            The attached span, or None

        """
        if kind.attach_feature == "pos":
            return self.pos
        if kind.attach_feature == "lemma":
            return self.lemma
        return None

    @classmethod
    def select_covered(
        cls, session: Session, document_id: int, begin: int, end: int
    ) -> builtins.list[Token]:
        """
        Get the tokens of a document that lie fully inside ``[begin, end]``.

        Args:
            session: SQLAlchemy session
            document_id: Document ID
            begin: First character offset of the interval
            end: Last character offset of the interval

        Returns:
            List of tokens ordered by position

        """
        return builtins.list(
            session.scalars(
                select(cls)
                .where(
                    cls.document_id == document_id,
                    cls.begin >= begin,
                    cls.end <= end,
                )
                .order_by(cls.begin)
            ).all()
        )

    @classmethod
    def attached_to(
        cls, session: Session, span: Span
    ) -> builtins.list[Token]:
        """
        Get the tokens whose attach features point at ``span``.

        Args:
            session: SQLAlchemy session
            span: The span

        Returns:
            List of tokens

        """
        return builtins.list(
            session.scalars(
                select(cls).where((cls.pos_id == span.id) | (cls.lemma_id == span.id))
            ).all()
        )

    def __repr__(self) -> str:
        return f"Token(id={self.id!r}, begin={self.begin!r}, end={self.end!r})"
