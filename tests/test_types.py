"""Unit tests for span kinds."""

import pytest

from spancrowd.types import SpanKind


class TestSpanKind:
    """Test cases for SpanKind."""

    def test_prefixes(self):
        assert SpanKind.POS.prefix == "POS_"
        assert SpanKind.LEMMA.prefix == ""
        assert SpanKind.NAMED_ENTITY.prefix == "NE_"

    def test_single_token(self):
        """Test that only part-of-speech and lemma are single token kinds."""
        assert SpanKind.POS.single_token
        assert SpanKind.LEMMA.single_token
        assert not SpanKind.NAMED_ENTITY.single_token

    def test_attach_feature(self):
        assert SpanKind.POS.attach_feature == "pos"
        assert SpanKind.LEMMA.attach_feature == "lemma"
        assert SpanKind.NAMED_ENTITY.attach_feature is None

    @pytest.mark.parametrize(
        "name", ["named_entity", "NAMED_ENTITY", "named-entity", "Named-Entity"]
    )
    def test_from_name(self, name):
        assert SpanKind.from_name(name) is SpanKind.NAMED_ENTITY

    def test_from_name_unknown(self):
        with pytest.raises(ValueError, match="chunk"):
            SpanKind.from_name("chunk")
