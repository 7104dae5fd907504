"""Unit tests for the sentence and token splitter."""

from spancrowd.services.splitter import segment, tokenize


class TestTokenize:
    """Test cases for tokenize."""

    def test_words_and_punctuation(self):
        """Test that words and punctuation become separate tokens."""
        assert tokenize("The cat sat .") == [(0, 3), (4, 7), (8, 11), (12, 13)]

    def test_punctuation_attached_to_word(self):
        """Test that punctuation is split off the preceding word."""
        assert tokenize("Bob.") == [(0, 3), (3, 4)]

    def test_inner_apostrophe(self):
        """Test that an apostrophe inside a word does not split it."""
        assert tokenize("Don't stop.") == [(0, 5), (6, 10), (10, 11)]

    def test_empty(self):
        assert tokenize("") == []


class TestSegment:
    """Test cases for segment."""

    def test_two_sentences(self):
        """Test splitting at a full stop followed by an uppercase word."""
        sentences = segment("Alice met Bob. Then they left.")
        assert [bounds for bounds, _ in sentences] == [(0, 14), (15, 30)]
        assert len(sentences[0][1]) == 4
        assert len(sentences[1][1]) == 4

    def test_abbreviation(self):
        """Test that a full stop followed by a lowercase word is no break."""
        sentences = segment("See e.g. this.")
        assert len(sentences) == 1
        assert sentences[0][0] == (0, 14)

    def test_closing_quote_belongs_to_sentence(self):
        """Test that a closing quote stays with the sentence it ends."""
        sentences = segment('He said "Go." Then')
        assert [bounds for bounds, _ in sentences] == [(0, 13), (14, 18)]

    def test_no_terminal_punctuation(self):
        """Test that trailing tokens form a final sentence."""
        sentences = segment("no full stop here")
        assert len(sentences) == 1
        assert sentences[0][0] == (0, 17)
