"""Creating, updating and deleting span annotations."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from spancrowd.exc import NotFound
from spancrowd.models import Document, Sentence, Span, Token
from spancrowd.services.logs import get_logger
from spancrowd.services.offsets import (
    snap_to_tokens,
    split_to_tokens,
    token_bounds,
    window_offsets,
)
from spancrowd.types import SpanKind

if TYPE_CHECKING:
    from sqlalchemy.orm import Session

logger = get_logger(__name__)


@dataclass(frozen=True)
class RenderedEntity:
    """A span as shown in a display window."""

    #: The span ID.
    id: int
    #: The label with the kind's prefix, e.g. ``NE_PER``.
    type: str
    #: Window relative ``(begin, end)`` offsets.
    offsets: list[tuple[int, int]]


class SpanStore:
    """
    Store for the spans of one kind.

    All operations flush the session but never commit; committing is up to
    the caller.  The store is not safe for concurrent writers to the same
    document.

    Usage:
        store = SpanStore.for_named_entity(session)
        store.add_span("PER", document, 0, 7)
        session.commit()
    """

    def __init__(self, session: Session, kind: SpanKind) -> None:
        """
        Initialize the store.

        Args:
            session: SQLAlchemy session
            kind: The kind of span this store manages

        """
        #: The SQLAlchemy session.
        self.session = session
        #: The kind of span managed by this store.
        self.kind = kind

    @classmethod
    def for_pos(cls, session: Session) -> SpanStore:
        return cls(session, SpanKind.POS)

    @classmethod
    def for_lemma(cls, session: Session) -> SpanStore:
        return cls(session, SpanKind.LEMMA)

    @classmethod
    def for_named_entity(cls, session: Session) -> SpanStore:
        return cls(session, SpanKind.NAMED_ENTITY)

    def add_span(
        self, label: str, document: Document, start: int, end: int
    ) -> list[Span]:
        """
        Annotate the interval ``[start, end)`` with ``label``.

        For single token kinds (part-of-speech, lemma) one span is upserted
        per token the interval touches.  Otherwise the interval is expanded
        to the boundaries of the tokens it begins and ends in and a single
        span is upserted.

        Args:
            label: The label for the span
            document: The document to annotate
            start: Character offset of the beginning of the selection
            end: Character offset of the end of the selection

        Returns:
            The spans created or updated

        Raises:
            MappingInconsistency: If no token covers the selection
            NotFound: If the kind attaches to tokens and no token is covered

        """
        bounds = token_bounds(document)
        if self.kind.single_token:
            return [
                self.upsert(document, token_begin, token_end, label)
                for token_begin, token_end in split_to_tokens(
                    bounds, start, end
                ).items()
            ]
        begin, snapped_end = snap_to_tokens(bounds, start, end)
        return [self.upsert(document, begin, snapped_end, label)]

    def upsert(self, document: Document, begin: int, end: int, label: str) -> Span:
        """
        Create a span, or relabel the span that has exactly these bounds.

        At most one span of a kind may occupy an exact ``[begin, end)``
        interval, so an existing span with the same bounds is reused; its
        label is only written when it differs.  A new span of a kind with an
        attach feature is linked from the first token inside the interval.

        Args:
            document: The document
            begin: Character offset of the beginning of the span
            end: Character offset of the end of the span
            label: The label for the span

        Returns:
            The existing or new span

        Raises:
            NotFound: If the kind attaches to tokens and no token lies inside
                ``[begin, end]``

        """
        existing = None
        for span in Span.select_covered(
            self.session, document.id, self.kind, begin, end
        ):
            if span.begin == begin and span.end == end:
                existing = span
                break
        if existing is not None:
            if existing.label != label:
                logger.debug(
                    "span relabeled",
                    span_id=existing.id,
                    old=existing.label,
                    new=label,
                )
                existing.label = label
                self.session.flush()
            return existing

        span = Span(
            document=document,
            kind=self.kind.value,
            label=label,
            begin=begin,
            end=end,
        )
        if self.kind.attach_feature is not None:
            tokens = Token.select_covered(self.session, document.id, begin, end)
            if not tokens:
                raise NotFound("Token", f"{document.id}:{begin}-{end}")
            tokens[0].attach(self.kind, span)
        self.session.add(span)
        self.session.flush()
        logger.debug(
            "span created",
            span_id=span.id,
            kind=self.kind.value,
            label=label,
            begin=begin,
            end=end,
        )
        return span

    def delete_span(self, ref: Span | int) -> None:
        """
        Delete a span.

        Args:
            ref: The span, or its ID

        Raises:
            NotFound: If the span does not exist (any more), or is of another
                kind

        """
        span_id = ref if isinstance(ref, int) else ref.id
        span = Span.get(self.session, span_id) if span_id is not None else None
        if span is None or span.span_kind is not self.kind:
            raise NotFound("Span", str(span_id))
        for token in Token.attached_to(self.session, span):
            token.attach(self.kind, None)
        if span in span.document.spans:
            span.document.spans.remove(span)
        self.session.delete(span)
        self.session.flush()
        logger.debug("span deleted", span_id=span_id, kind=self.kind.value)

    def render(
        self, document: Document, first_sentence: Sentence, window_size: int
    ) -> list[RenderedEntity]:
        """
        Get the spans in a display window of ``window_size`` sentences.

        Offsets are made relative to the beginning of ``first_sentence``.

        Args:
            document: The document
            first_sentence: The first sentence of the window
            window_size: The number of sentences in the window

        Returns:
            The entities in the window, sentence by sentence

        """
        sentences = [s for s in document.sentences if s.begin >= first_sentence.begin]
        entities: list[RenderedEntity] = []
        for sentence in sentences[:window_size]:
            for span in Span.select_covered(
                self.session, document.id, self.kind, sentence.begin, sentence.end
            ):
                entities.append(
                    RenderedEntity(
                        id=span.id,
                        type=span.span_kind.prefix + span.label,
                        offsets=[
                            window_offsets(span.begin, span.end, first_sentence.begin)
                        ],
                    )
                )
        return entities
