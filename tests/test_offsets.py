"""Unit tests for character offset <-> token index mapping."""

import pytest

from spancrowd.exc import MappingInconsistency
from spancrowd.services.offsets import (
    OffsetMapper,
    snap_to_tokens,
    split_to_tokens,
    token_bounds,
    window_offsets,
)


class TestOffsetMapper:
    """Test cases for OffsetMapper."""

    def test_map_sentence(self, cat_document):
        """Test that tokens are numbered from the start index."""
        mapper = OffsetMapper(start_index=5)
        offsets = mapper.map_sentence(cat_document.sentences[0].tokens)

        assert offsets.begin_to_index == {0: 5, 4: 6, 8: 7, 12: 8}
        assert offsets.end_to_index == {3: 5, 7: 6, 11: 7, 13: 8}
        assert mapper.next_index == 9

    def test_round_trip(self, cat_document):
        """Test that aligned intervals survive both directions."""
        offsets = OffsetMapper(start_index=5).map_sentence(
            cat_document.sentences[0].tokens
        )
        assert offsets.to_token_interval(0, 7) == (5, 6)
        assert offsets.to_char_interval(5, 6) == (0, 7)

    def test_unaligned_begin(self, cat_document):
        offsets = OffsetMapper().map_sentence(cat_document.sentences[0].tokens)
        with pytest.raises(MappingInconsistency) as excinfo:
            offsets.to_token_interval(1, 7)
        assert excinfo.value.offset == 1

    def test_unaligned_end(self, cat_document):
        offsets = OffsetMapper().map_sentence(cat_document.sentences[0].tokens)
        with pytest.raises(MappingInconsistency):
            offsets.to_token_interval(0, 6)

    def test_unknown_index(self, cat_document):
        offsets = OffsetMapper().map_sentence(cat_document.sentences[0].tokens)
        with pytest.raises(MappingInconsistency):
            offsets.to_char_interval(0, 4)

    def test_indices_continue_across_sentences(self, make_document):
        document = make_document("two", "Alice met Bob. Then they left.")
        mapper = OffsetMapper()
        mapper.map_sentence(document.sentences[0].tokens)
        second = mapper.map_sentence(document.sentences[1].tokens)
        assert second.to_token_interval(15, 19) == (4, 4)

    def test_for_document(self, make_document):
        """Test that document tables number all tokens from 0."""
        document = make_document("two", "Alice met Bob. Then they left.")
        offsets = OffsetMapper.for_document(document)
        assert offsets.to_char_interval(0, 2) == (0, 13)
        assert offsets.to_char_interval(4, 6) == (15, 29)


def test_window_offsets():
    assert window_offsets(20, 25, 15) == (5, 10)


class TestTokenBounds:
    """Test cases for splitting and snapping intervals to tokens."""

    def test_token_bounds(self, cat_document):
        assert token_bounds(cat_document) == {0: 3, 4: 7, 8: 11, 12: 13}

    def test_split_to_tokens(self):
        bounds = {0: 3, 4: 7, 8: 11}
        assert split_to_tokens(bounds, 2, 9) == {0: 3, 4: 7, 8: 11}
        assert split_to_tokens(bounds, 4, 7) == {4: 7}

    def test_snap_partial_selection(self):
        """Test that a selection is expanded to whole tokens."""
        assert snap_to_tokens({0: 3, 4: 7, 8: 11}, 5, 9) == (4, 11)

    def test_snap_empty_selection(self):
        """Test that a caret inside a token selects that token."""
        assert snap_to_tokens({0: 3, 4: 7, 8: 11}, 5, 5) == (4, 7)

    def test_snap_whitespace_fails(self):
        with pytest.raises(MappingInconsistency):
            snap_to_tokens({0: 3, 4: 7, 8: 11}, 3, 4)
