"""Document model."""

from __future__ import annotations

import builtins
from datetime import datetime

from sqlalchemy import DateTime, Integer, String, select
from sqlalchemy.orm import Mapped, Session, mapped_column, relationship

from spancrowd.db import Base
from spancrowd.exc import AlreadyExists
from spancrowd.models.sentence import Sentence
from spancrowd.models.span import Span
from spancrowd.models.token import Token
from spancrowd.services.splitter import segment


class Document(Base):
    """
    Represents a document: a text with its sentences, tokens and spans.
    """

    __tablename__ = "documents"

    #: The document ID.
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    #: The document name.
    name: Mapped[str] = mapped_column(String, unique=True, nullable=False)
    #: The text of the document.
    text: Mapped[str] = mapped_column(String, nullable=False)
    #: The date and time the document was created.
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.now, nullable=False
    )
    #: The date and time the document was last updated.
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.now, onupdate=datetime.now, nullable=False
    )

    # Relationships
    sentences: Mapped[builtins.list[Sentence]] = relationship(
        "Sentence",
        back_populates="document",
        cascade="all, delete-orphan",
        order_by="Sentence.begin",
    )
    tokens: Mapped[builtins.list[Token]] = relationship(
        "Token",
        back_populates="document",
        cascade="all, delete-orphan",
        order_by="Token.begin",
    )
    spans: Mapped[builtins.list[Span]] = relationship(
        "Span",
        back_populates="document",
        cascade="all, delete-orphan",
        order_by="Span.begin",
    )

    @classmethod
    def exists(cls, session: Session, name: str) -> bool:
        """
        Check if a document with the given name exists.
        """
        return session.scalar(select(cls).where(cls.name == name)) is not None

    @classmethod
    def get(cls, session: Session, document_id: int) -> Document | None:
        """
        Get a document by ID.
        """
        return session.get(cls, document_id)

    @classmethod
    def get_by_name(cls, session: Session, name: str) -> Document | None:
        """
        Get a document by name.
        """
        return session.scalar(select(cls).where(cls.name == name))

    @classmethod
    def list(cls, session: Session) -> builtins.list[Document]:
        """
        Get all documents, in the order they were added.
        """
        return builtins.list(session.scalars(select(cls).order_by(cls.id)).all())

    @classmethod
    def create(
        cls,
        session: Session,
        name: str,
        text: str,
        commit: bool = True,  # noqa: FBT001, FBT002
    ) -> Document:
        """
        Create a new document.

        The text is split into sentences and tokens, which are stored with
        their character bounds.

        Args:
            session: SQLAlchemy session
            name: Document name
            text: Text of the document

        Keyword Args:
            commit: Whether to commit the changes

        Returns:
            The new :class:`~spancrowd.models.document.Document` object

        Raises:
            AlreadyExists: If a document with this name already exists

        """
        if cls.exists(session, name):
            raise AlreadyExists("Document", name)

        document = cls(name=name, text=text)
        session.add(document)
        session.flush()  # Get the ID

        for (sentence_begin, sentence_end), token_bounds in segment(text):
            document.sentences.append(
                Sentence(begin=sentence_begin, end=sentence_end)
            )
            for token_begin, token_end in token_bounds:
                document.tokens.append(Token(begin=token_begin, end=token_end))
        session.flush()

        if commit:
            session.commit()
        return document

    def covered_text(self, begin: int, end: int) -> str:
        """
        Get the text between two character offsets.

        Args:
            begin: The first character offset
            end: The character offset after the last character

        Returns:
            The covered text

        """
        return self.text[begin:end]

    def __repr__(self) -> str:
        return f"Document(id={self.id!r}, name={self.name!r})"
