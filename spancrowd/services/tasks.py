"""
Generation of crowd task data from documents.

Every sentence becomes one :class:`TaskRecord` whose markup wraps each token
in a ``<span id="token=N">`` element, ``N`` being the token's index in this
export pass.  Crowd workers mark entities by selecting tokens, and their
answers come back as ``{"s": start, "e": end}`` markers over these indices.
"""

from __future__ import annotations

import html
import json
import re
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Final

from spancrowd.models import Span
from spancrowd.services.conflicts import CandidateEntity, ConflictResolver
from spancrowd.services.logs import get_logger
from spancrowd.services.offsets import OffsetMapper, SentenceOffsets
from spancrowd.types import SpanKind

if TYPE_CHECKING:
    from sqlalchemy.orm import Session

    from spancrowd.config import TaskTexts
    from spancrowd.models import Document, Sentence

logger = get_logger(__name__)

#: The gold answer of a sentence without entities.
NO_ENTITY: Final[str] = "none"
#: Marks the opening tag of a token in task markup.
TOKEN_TAG: Final[str] = "<span "
#: The first number in task markup is the index of its first token.
_FIRST_NUMBER: Final[re.Pattern[str]] = re.compile(r"\d+")


def compact_json(value: Any) -> str:
    """
    Serialize a value as compact JSON.

    The crowd task's JavaScript produces markers in this form.

    Args:
        value: The value to serialize

    Returns:
        JSON text without whitespace

    """
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False)


@dataclass(frozen=True)
class GoldMarker:
    """A gold answer: the token indices of an entity, with its type."""

    #: Index of the first token.
    start: int
    #: Index of the last token.
    end: int
    #: The entity type.
    label: str

    def to_wire(self) -> dict[str, int]:
        return {"s": self.start, "e": self.end}


@dataclass
class TaskRecord:
    """One unit of work sent to the crowd: a sentence to mark entities in."""

    #: The token markup of the sentence.
    text: str
    #: Index of the first token of the document the sentence belongs to.
    offset: int
    #: Document tag: ``S<n>`` for normal and ``G<n>`` for gold data.
    document: str
    #: Number of gold entities, at least 1.
    difficulty: int | None = None
    #: The gold markers.
    gold_markers: list[GoldMarker] = field(default_factory=list)
    #: Explanation shown to workers who miss the gold answer.
    gold_reason: str | None = None
    #: Whether this record is gold data.
    is_golden: bool = False

    @property
    def gold_answer(self) -> str:
        """The gold answer as compact JSON list of markers."""
        if not self.gold_markers:
            return compact_json([NO_ENTITY])
        return compact_json([marker.to_wire() for marker in self.gold_markers])

    @property
    def gold_types(self) -> str:
        """The types of the gold markers as compact JSON list."""
        return compact_json([marker.label for marker in self.gold_markers])

    def to_payload(self) -> dict[str, Any]:
        """
        Get the record in the form uploaded to the crowd provider.

        Returns:
            Dictionary of upload fields

        """
        payload: dict[str, Any] = {
            "text": self.text,
            "offset": self.offset,
            "document": self.document,
        }
        if self.is_golden:
            payload.update(
                {
                    "markertext_gold": self.gold_answer,
                    "markertext_gold_reason": self.gold_reason,
                    "types": self.gold_types,
                    "_difficulty": self.difficulty,
                    # Still needs "convert uploaded gold" in the provider's UI
                    "_golden": "TRUE",
                }
            )
        return payload


@dataclass
class TaskBatch:
    """The records of one export pass."""

    records: list[TaskRecord]
    #: The index the next token would have got; start the next pass here.
    next_index: int


def token_markup(index: int, token_text: str) -> str:
    """
    Get the markup of one token.

    Args:
        index: The token's index in the export pass
        token_text: The token's text

    Returns:
        The HTML fragment for the token

    """
    return f'<span id="token={index}">{html.escape(token_text)} </span>'


def first_token_index(markup: str) -> int:
    """
    Get the index of the first token in task markup.

    Args:
        markup: Task markup as produced by :func:`token_markup`

    Returns:
        The index, or 0 if the markup contains no number

    """
    match = _FIRST_NUMBER.search(markup)
    return int(match.group()) if match else 0


def extract_markup(markup: str, start: int, end: int) -> str:
    """
    Cut the markup of the tokens ``start`` to ``end`` out of task markup.

    Args:
        markup: Task markup as produced by :func:`token_markup`
        start: Index of the first token to extract
        end: Index of the last token to extract

    Returns:
        The markup of the tokens

    Raises:
        IndexError: If the markup does not contain these tokens

    """
    offset = first_token_index(markup)
    positions = [match.start() for match in re.finditer(re.escape(TOKEN_TAG), markup)]
    positions.append(len(markup))
    first, last = start - offset, end - offset + 1
    if first < 0 or last >= len(positions) or first >= last:
        msg = f"Tokens {start}-{end} are not in the markup starting at {offset}"
        raise IndexError(msg)
    return markup[positions[first] : positions[last]]


class TaskDataGenerator:
    """
    Turn the sentences of documents into crowd task records.

    Gold records also carry the expected answer, built from the named entity
    spans already present in the gold documents.  Overlapping entities are
    reduced with :class:`~spancrowd.services.conflicts.ConflictResolver`
    first, because a worker can only mark non-overlapping token ranges.
    """

    def __init__(
        self,
        session: Session,
        texts: TaskTexts,
        resolver: ConflictResolver | None = None,
    ) -> None:
        """
        Initialize the generator.

        Args:
            session: SQLAlchemy session
            texts: Explanation texts for gold records

        Keyword Args:
            resolver: Conflict resolver for overlapping gold entities

        """
        #: The SQLAlchemy session.
        self.session = session
        #: Explanation texts for gold records.
        self.texts = texts
        #: Conflict resolver for overlapping gold entities.
        self.resolver = resolver or ConflictResolver()

    def generate(
        self,
        documents: Sequence[Document],
        start_index: int = 0,
        generate_gold: bool = False,  # noqa: FBT001, FBT002
        limit: int | None = None,
    ) -> TaskBatch:
        """
        Generate one record per sentence of ``documents``.

        Gold and normal data are generated in separate passes and uploaded
        together, so the normal pass must start at the ``next_index`` of the
        gold pass to keep token indices unique within the upload.

        Args:
            documents: The documents, in the order their tags are numbered
            start_index: The index of the first token
            generate_gold: Whether to generate gold records
            limit: Stop the whole pass after this many sentences.  None means
                no limit.

        Returns:
            The records and the next free token index

        Raises:
            MappingInconsistency: If a gold entity is not aligned to tokens

        """
        mapper = OffsetMapper(start_index)
        records: list[TaskRecord] = []

        for doc_no, document in enumerate(documents):
            offset = mapper.next_index
            logger.info(
                "generating task data",
                document=document.name,
                number=doc_no,
                total=len(documents),
                gold=generate_gold,
            )
            for sentence in document.sentences:
                if limit is not None and len(records) >= limit:
                    logger.info("sentence limit reached", limit=limit)
                    return TaskBatch(records=records, next_index=mapper.next_index)

                tokens = sentence.tokens
                offsets = mapper.map_sentence(tokens)
                markup = "".join(
                    token_markup(offsets.begin_to_index[token.begin], token.text)
                    for token in tokens
                )
                record = TaskRecord(text=markup, offset=offset, document=f"S{doc_no}")
                if generate_gold:
                    self._add_gold(record, document, sentence, offsets)
                    record.document = f"G{doc_no}"
                records.append(record)

        return TaskBatch(records=records, next_index=mapper.next_index)

    def _add_gold(
        self,
        record: TaskRecord,
        document: Document,
        sentence: Sentence,
        offsets: SentenceOffsets,
    ) -> None:
        """
        Fill in the gold answer of a record from the sentence's entities.

        Args:
            record: The record to fill in
            document: The document of the sentence
            sentence: The sentence
            offsets: The sentence's offset tables

        """
        candidates = [
            CandidateEntity(span.begin, span.end, span.label)
            for span in Span.select_covered(
                self.session,
                document.id,
                SpanKind.NAMED_ENTITY,
                sentence.begin,
                sentence.end,
            )
        ]
        winners = self.resolver.resolve(candidates)

        markers = []
        for winner in winners:
            start, end = offsets.to_token_interval(winner.begin, winner.end)
            markers.append(GoldMarker(start=start, end=end, label=winner.label))

        record.is_golden = True
        record.gold_markers = markers
        record.difficulty = max(len(markers), 1)
        if not markers:
            record.gold_reason = self.texts.no_entity_reason
            return

        entity_texts = [
            " ".join(
                token.text
                for token in sentence.tokens
                if token.begin >= winner.begin and token.end <= winner.end
            )
            for winner in winners
        ]
        record.gold_reason = (
            f"The text contains {len(entity_texts)} named entit"
            f"{'y' if len(entity_texts) == 1 else 'ies'}: "
            f"{html.escape(', '.join(entity_texts))}"
            f"{self.texts.entity_reason_hints}"
        )
