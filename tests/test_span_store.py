"""Unit tests for SpanStore."""

import pytest

from spancrowd.exc import MappingInconsistency, NotFound
from spancrowd.models import Span
from spancrowd.services.span_store import RenderedEntity, SpanStore
from spancrowd.types import SpanKind


class TestAddSpan:
    """Test cases for SpanStore.add_span and upsert."""

    def test_named_entity(self, db_session, cat_document):
        store = SpanStore.for_named_entity(db_session)
        (span,) = store.add_span("PER", cat_document, 4, 7)
        assert (span.begin, span.end, span.label) == (4, 7, "PER")
        assert span.kind == SpanKind.NAMED_ENTITY.value
        assert span.text == "cat"

    def test_upsert_is_idempotent(self, db_session, cat_document):
        """Test that annotating the same interval twice keeps one span."""
        store = SpanStore.for_named_entity(db_session)
        (first,) = store.add_span("PER", cat_document, 4, 7)
        (second,) = store.add_span("PER", cat_document, 4, 7)
        assert first.id == second.id
        assert len(Span.list(db_session, cat_document.id)) == 1

    def test_upsert_relabels(self, db_session, cat_document):
        """Test that a different label on the same interval relabels the span."""
        store = SpanStore.for_named_entity(db_session)
        (first,) = store.add_span("PER", cat_document, 4, 7)
        (second,) = store.add_span("ORG", cat_document, 4, 7)
        assert first.id == second.id
        assert second.label == "ORG"
        assert len(Span.list(db_session, cat_document.id)) == 1

    def test_partial_selection_snaps(self, db_session, cat_document):
        """Test that a named entity selection is expanded to whole tokens."""
        store = SpanStore.for_named_entity(db_session)
        (span,) = store.add_span("ORG", cat_document, 5, 9)
        assert (span.begin, span.end) == (4, 11)

    def test_selection_outside_tokens(self, db_session, cat_document):
        store = SpanStore.for_named_entity(db_session)
        with pytest.raises(MappingInconsistency):
            store.add_span("ORG", cat_document, 3, 4)

    def test_pos_split_per_token(self, db_session, cat_document):
        """Test that a part-of-speech selection becomes one span per token."""
        store = SpanStore.for_pos(db_session)
        spans = store.add_span("NN", cat_document, 0, 7)
        assert [(span.begin, span.end) for span in spans] == [(0, 3), (4, 7)]
        assert all(span.label == "NN" for span in spans)

    def test_pos_attaches_to_token(self, db_session, cat_document):
        store = SpanStore.for_pos(db_session)
        (span,) = store.add_span("VVFIN", cat_document, 8, 11)
        token = cat_document.tokens[2]
        assert token.pos is span
        assert token.attached(SpanKind.POS) is span
        assert token.lemma is None

    def test_lemma_attaches_to_token(self, db_session, cat_document):
        store = SpanStore.for_lemma(db_session)
        (span,) = store.add_span("sit", cat_document, 8, 11)
        assert cat_document.tokens[2].lemma is span

    def test_attach_without_token(self, db_session, cat_document):
        """Test that an attaching kind needs a token inside the interval."""
        store = SpanStore.for_pos(db_session)
        with pytest.raises(NotFound):
            store.upsert(cat_document, 3, 4, "X")


class TestDeleteSpan:
    """Test cases for SpanStore.delete_span."""

    def test_delete(self, db_session, cat_document):
        store = SpanStore.for_named_entity(db_session)
        (span,) = store.add_span("PER", cat_document, 4, 7)
        store.delete_span(span.id)
        assert Span.list(db_session, cat_document.id) == []

    def test_delete_detaches_tokens(self, db_session, cat_document):
        store = SpanStore.for_pos(db_session)
        (span,) = store.add_span("NN", cat_document, 4, 7)
        store.delete_span(span)
        assert cat_document.tokens[1].pos is None

    def test_delete_stale_reference(self, db_session, cat_document):
        """Test that deleting a span twice raises NotFound."""
        store = SpanStore.for_named_entity(db_session)
        (span,) = store.add_span("PER", cat_document, 4, 7)
        span_id = span.id
        store.delete_span(span_id)
        with pytest.raises(NotFound):
            store.delete_span(span_id)

    def test_delete_other_kind(self, db_session, cat_document):
        (span,) = SpanStore.for_pos(db_session).add_span("NN", cat_document, 4, 7)
        with pytest.raises(NotFound):
            SpanStore.for_named_entity(db_session).delete_span(span.id)


class TestRender:
    """Test cases for SpanStore.render."""

    def test_window_relative_offsets(self, db_session, make_document):
        """Test that offsets are relative to the first sentence shown."""
        document = make_document("two", "Alice met Bob. Then they left.")
        store = SpanStore.for_named_entity(db_session)
        (alice,) = store.add_span("PER", document, 0, 5)
        (left,) = store.add_span("LOC", document, 25, 29)

        assert store.render(document, document.sentences[1], 1) == [
            RenderedEntity(id=left.id, type="NE_LOC", offsets=[(10, 14)])
        ]
        assert store.render(document, document.sentences[0], 2) == [
            RenderedEntity(id=alice.id, type="NE_PER", offsets=[(0, 5)]),
            RenderedEntity(id=left.id, type="NE_LOC", offsets=[(25, 29)]),
        ]

    def test_window_size_limits_sentences(self, db_session, make_document):
        document = make_document("two", "Alice met Bob. Then they left.")
        store = SpanStore.for_named_entity(db_session)
        store.add_span("LOC", document, 25, 29)
        assert store.render(document, document.sentences[0], 1) == []

    def test_pos_prefix(self, db_session, cat_document):
        store = SpanStore.for_pos(db_session)
        store.add_span("NN", cat_document, 4, 7)
        (entity,) = store.render(cat_document, cat_document.sentences[0], 1)
        assert entity.type == "POS_NN"
