"""Sentence and token splitter service."""

import re
from typing import Final

#: A word (with inner apostrophes) or a single punctuation character.
TOKEN_PATTERN: Final[re.Pattern[str]] = re.compile(r"\w+(?:['’]\w+)*|[^\w\s]")
#: Tokens that may end a sentence.
SENTENCE_END: Final[frozenset[str]] = frozenset({".", "!", "?"})
#: Tokens that may close a quotation after the end of a sentence.
CLOSING_QUOTES: Final[frozenset[str]] = frozenset({'"', "'", "”", "’", "»"})  # noqa: RUF001

Bounds = tuple[int, int]


def tokenize(text: str) -> list[Bounds]:
    """
    Split text into tokens.

    Args:
        text: Input text

    Returns:
        List of ``(begin, end)`` character bounds, one per token, in order

    """
    return [match.span() for match in TOKEN_PATTERN.finditer(text)]


def _sentence_break(text: str, tokens: list[Bounds], index: int) -> int | None:
    """
    Decide whether a sentence ends at the terminal punctuation ``tokens[index]``.

    Closing quotes directly after the punctuation belong to the sentence that
    ends.  The sentence ends if what follows is the end of the text or a token
    starting with an uppercase letter, a digit or an opening quote.  A
    following lowercase word means an abbreviation, so no break.

    Returns:
        The index of the last token of the sentence, or None if there is no
        break here

    """
    last = index
    while last + 1 < len(tokens) and text[slice(*tokens[last + 1])] in CLOSING_QUOTES:
        last += 1
    if last + 1 >= len(tokens):
        return last
    following = text[tokens[last + 1][0]]
    if following.isupper() or following.isdigit() or following in CLOSING_QUOTES:
        return last
    return None


def segment(text: str) -> list[tuple[Bounds, list[Bounds]]]:
    """
    Split text into sentences and tokens.

    Args:
        text: Input text

    Returns:
        A list with one entry per sentence: the sentence bounds and the
        bounds of the tokens it contains.  Sentence bounds run from the
        beginning of the first token to the end of the last.

    """
    tokens = tokenize(text)
    sentences: list[list[Bounds]] = []
    current: list[Bounds] = []
    index = 0
    while index < len(tokens):
        current.append(tokens[index])
        if text[slice(*tokens[index])] in SENTENCE_END:
            last = _sentence_break(text, tokens, index)
            if last is not None:
                current.extend(tokens[index + 1 : last + 1])
                sentences.append(current)
                current = []
                index = last
        index += 1
    if current:
        sentences.append(current)
    return [((sentence[0][0], sentence[-1][1]), sentence) for sentence in sentences]
