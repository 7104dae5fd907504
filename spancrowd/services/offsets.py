"""
Translation between character offsets and sequential token indices.

Crowd tasks address tokens by a running index that is handed out during one
export pass, while spans are stored with document character offsets.  An
:class:`OffsetMapper` numbers the tokens as it goes and keeps, per sentence,
the tables needed to translate in both directions.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from spancrowd.exc import MappingInconsistency

if TYPE_CHECKING:
    from spancrowd.models import Document, Token


@dataclass
class SentenceOffsets:
    """The character <-> token index tables of one sentence."""

    #: Character offset a token begins at -> token index.
    begin_to_index: dict[int, int] = field(default_factory=dict)
    #: Character offset a token ends at -> token index.
    end_to_index: dict[int, int] = field(default_factory=dict)
    #: Token index -> character offset the token begins at.
    index_to_begin: dict[int, int] = field(default_factory=dict)
    #: Token index -> character offset the token ends at.
    index_to_end: dict[int, int] = field(default_factory=dict)

    def add(self, index: int, begin: int, end: int) -> None:
        self.begin_to_index[begin] = index
        self.end_to_index[end] = index
        self.index_to_begin[index] = begin
        self.index_to_end[index] = end

    def to_token_interval(self, begin: int, end: int) -> tuple[int, int]:
        """
        Translate a character interval to the indices of its first and last
        token.

        Args:
            begin: Character offset of the beginning of the interval
            end: Character offset of the end of the interval

        Returns:
            ``(start_index, end_index)``, both inclusive

        Raises:
            MappingInconsistency: If ``begin`` is not the beginning of a token
                or ``end`` is not the end of a token

        """
        if begin not in self.begin_to_index:
            raise MappingInconsistency(begin, "char begin")
        if end not in self.end_to_index:
            raise MappingInconsistency(end, "char end")
        return self.begin_to_index[begin], self.end_to_index[end]

    def to_char_interval(self, start: int, end: int) -> tuple[int, int]:
        """
        Translate an inclusive token index interval back to characters.

        Args:
            start: Index of the first token
            end: Index of the last token

        Returns:
            ``(begin, end)`` character offsets

        Raises:
            MappingInconsistency: If either index is unknown

        """
        if start not in self.index_to_begin:
            raise MappingInconsistency(start, "token begin")
        if end not in self.index_to_end:
            raise MappingInconsistency(end, "token end")
        return self.index_to_begin[start], self.index_to_end[end]


class OffsetMapper:
    """
    Hands out sequential token indices and records the mapping tables.

    Usage:
        mapper = OffsetMapper(start_index=gold_offset)
        for sentence in document.sentences:
            offsets = mapper.map_sentence(sentence.tokens)
            start, end = offsets.to_token_interval(span.begin, span.end)
    """

    def __init__(self, start_index: int = 0) -> None:
        #: The index the next token will get.
        self.next_index = start_index

    def map_sentence(self, tokens: Iterable[Token]) -> SentenceOffsets:
        """
        Number the tokens of one sentence.

        Args:
            tokens: The tokens of the sentence, in document order

        Returns:
            The tables for this sentence

        """
        offsets = SentenceOffsets()
        for token in tokens:
            offsets.add(self.next_index, token.begin, token.end)
            self.next_index += 1
        return offsets

    @classmethod
    def for_document(cls, document: Document) -> SentenceOffsets:
        """
        Build tables covering every token of a document, numbered from 0 in
        sentence order.

        This is the numbering a task export gives a document's tokens,
        relative to the task's ``offset``.

        Args:
            document: The document

        Returns:
            The tables for the whole document

        """
        mapper = cls()
        offsets = SentenceOffsets()
        for sentence in document.sentences:
            sentence_offsets = mapper.map_sentence(sentence.tokens)
            offsets.begin_to_index.update(sentence_offsets.begin_to_index)
            offsets.end_to_index.update(sentence_offsets.end_to_index)
            offsets.index_to_begin.update(sentence_offsets.index_to_begin)
            offsets.index_to_end.update(sentence_offsets.index_to_end)
        return offsets


def window_offsets(begin: int, end: int, first_sentence_offset: int) -> tuple[int, int]:
    """
    Make a pair of document offsets relative to a display window.

    The window starts at the first sentence shown; an annotation at ``X`` is
    displayed at ``X - first_sentence_offset``.

    Args:
        begin: Document offset of the beginning of the annotation
        end: Document offset of the end of the annotation
        first_sentence_offset: Document offset of the first sentence shown

    Returns:
        The window relative ``(begin, end)``

    """
    return begin - first_sentence_offset, end - first_sentence_offset


def token_bounds(document: Document) -> dict[int, int]:
    """
    Get the bounds of all tokens of a document.

    Args:
        document: The document

    Returns:
        Mapping of token begin offset -> token end offset, in document order

    """
    return {token.begin: token.end for token in document.tokens}


def split_to_tokens(
    bounds: Mapping[int, int], start: int, end: int
) -> dict[int, int]:
    """
    Split an interval into one sub-interval per token it touches.

    Args:
        bounds: Token bounds as returned by :func:`token_bounds`
        start: Character offset of the beginning of the interval
        end: Character offset of the end of the interval

    Returns:
        Mapping of token begin -> token end for each token overlapping
        ``[start, end)``

    """
    return {
        begin: token_end
        for begin, token_end in bounds.items()
        if begin < end and token_end > start
    }


def snap_to_tokens(bounds: Mapping[int, int], start: int, end: int) -> tuple[int, int]:
    """
    Expand an interval to the boundaries of the tokens it starts and ends in.

    Args:
        bounds: Token bounds as returned by :func:`token_bounds`
        start: Character offset of the beginning of the interval
        end: Character offset of the end of the interval

    Returns:
        ``(begin, end)`` of the first and last touched token

    Raises:
        MappingInconsistency: If no token covers the interval's beginning or
            end

    """
    touched = split_to_tokens(bounds, start, end if end > start else start + 1)
    if not touched:
        raise MappingInconsistency(start, "token bounds")
    return min(touched), max(touched.values())
