"""Span model."""

from __future__ import annotations

import builtins
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    ForeignKey,
    Integer,
    String,
    select,
)
from sqlalchemy.orm import Mapped, Session, mapped_column, relationship

from spancrowd.db import Base
from spancrowd.types import SpanKind

if TYPE_CHECKING:
    from spancrowd.models.document import Document


class Span(Base):
    """
    Represents one labeled annotation over a ``[begin, end)`` interval of
    document characters.
    """

    __tablename__ = "spans"
    __table_args__ = (
        CheckConstraint(
            "kind IN ('pos','lemma','named_entity')", name="ck_spans_kind"
        ),
        CheckConstraint('"begin" <= "end"', name="ck_spans_bounds"),
    )

    #: The span ID.  This is the stable identity used as deletion key.
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    #: The document ID.
    document_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("documents.id", ondelete="CASCADE"), nullable=False
    )
    #: The kind of annotation, one of the :class:`~spancrowd.types.SpanKind` values.
    kind: Mapped[str] = mapped_column(String, nullable=False)
    #: The label, e.g. a POS tag, a lemma or a named entity type.
    label: Mapped[str] = mapped_column(String, nullable=False)
    #: The character offset the span begins at.
    begin: Mapped[int] = mapped_column(Integer, nullable=False)
    #: The character offset the span ends at (exclusive).
    end: Mapped[int] = mapped_column(Integer, nullable=False)
    #: The date and time the span was created.
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.now, nullable=False
    )
    #: The date and time the span was last updated.
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.now, onupdate=datetime.now, nullable=False
    )

    # Relationships
    document: Mapped[Document] = relationship("Document", back_populates="spans")

    @property
    def span_kind(self) -> SpanKind:
        return SpanKind(self.kind)

    @property
    def text(self) -> str:
        """The text covered by the span."""
        return self.document.covered_text(self.begin, self.end)

    @classmethod
    def get(cls, session: Session, span_id: int) -> Span | None:
        """
        Get a span by ID.
        """
        return session.get(cls, span_id)

    @classmethod
    def select_covered(
        cls,
        session: Session,
        document_id: int,
        kind: SpanKind,
        begin: int,
        end: int,
    ) -> builtins.list[Span]:
        """
        Get the spans of one kind that lie fully inside ``[begin, end]``.

        Args:
            session: SQLAlchemy session
            document_id: Document ID
            kind: The kind of span to select
            begin: First character offset of the interval
            end: Last character offset of the interval

        Returns:
            List of spans ordered by position

        """
        return builtins.list(
            session.scalars(
                select(cls)
                .where(
                    cls.document_id == document_id,
                    cls.kind == kind.value,
                    cls.begin >= begin,
                    cls.end <= end,
                )
                .order_by(cls.begin, cls.end, cls.id)
            ).all()
        )

    @classmethod
    def list(
        cls, session: Session, document_id: int, kind: SpanKind | None = None
    ) -> builtins.list[Span]:
        """
        Get all spans of a document, optionally only those of one kind.

        Args:
            session: SQLAlchemy session
            document_id: Document ID

        Keyword Args:
            kind: Restrict the result to this kind

        Returns:
            List of spans ordered by position

        """
        stmt = select(cls).where(cls.document_id == document_id)
        if kind is not None:
            stmt = stmt.where(cls.kind == kind.value)
        return builtins.list(
            session.scalars(stmt.order_by(cls.begin, cls.end, cls.id)).all()
        )

    def __repr__(self) -> str:
        return (
            f"Span(id={self.id!r}, kind={self.kind!r}, label={self.label!r}, "
            f"begin={self.begin!r}, end={self.end!r})"
        )
