"""
Aggregation of crowd judgments and their import as spans.

The crowd provider returns the judgments of a job as JSON lines, one line per
task record.  Each line is parsed on its own by a pure function that returns
either a record or a :class:`SkipReason`; a bad line is reported and skipped
and never aborts the import.

Entity detection (stage one) lines carry one marker list per worker.  A
marker is accepted when enough workers agree on it.  Accepted markers are
turned back into character offsets and stored as spans, or sent on as
classification (stage two) tasks, whose finalized results are imported as
typed named entities.
"""

from __future__ import annotations

import json
from collections import Counter
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Final

from spancrowd.config import DEFAULT_VOTES_NEEDED
from spancrowd.exc import MalformedRecord, MappingInconsistency
from spancrowd.services.logs import get_logger
from spancrowd.services.offsets import OffsetMapper, SentenceOffsets
from spancrowd.services.tasks import (
    NO_ENTITY,
    GoldMarker,
    compact_json,
    extract_markup,
    first_token_index,
)

if TYPE_CHECKING:
    from spancrowd.config import LabelTable, TaskTexts
    from spancrowd.models import Document, Span
    from spancrowd.services.span_store import SpanStore

logger = get_logger(__name__)

#: State of gold lines.
GOLDEN: Final[str] = "golden"
#: State of gold lines the provider keeps hidden; these are never used.
HIDDEN_GOLD: Final[str] = "hidden_gold"
#: State of lines whose aggregated result is final.
FINALIZED: Final[str] = "finalized"
#: Canonical form of the "no entity" marker.
NO_ENTITY_MARKER: Final[str] = compact_json(NO_ENTITY)


@dataclass(frozen=True)
class SkipReason:
    """Why a line (or a marker of it) was not used."""

    line_number: int
    reason: str

    @property
    def error(self) -> MalformedRecord:
        return MalformedRecord(self.reason, self.line_number)

    def __str__(self) -> str:
        return str(self.error)


@dataclass(frozen=True)
class Judgment:
    """One worker's markers for one task, in canonical form."""

    markers: tuple[str, ...]


@dataclass(frozen=True)
class ParsedRecord:
    """One parsed line of entity detection results."""

    line_number: int
    #: The task markup.
    text: str
    #: The document tag, e.g. ``S0``.
    document: str
    #: Index of the first token of the document.
    offset: int
    is_gold: bool = False
    #: The workers' judgments (normal lines).
    judgments: tuple[Judgment, ...] = ()
    #: The gold markers with their types (gold lines).
    gold_markers: tuple[GoldMarker, ...] = ()
    #: Problems that did not invalidate the line.
    warnings: tuple[str, ...] = ()


@dataclass(frozen=True)
class AggregatedMarker:
    """A marker enough workers agreed on."""

    #: The canonical marker text, e.g. ``{"s":3,"e":4}``.
    marker: str
    #: Index of the first token.
    start: int
    #: Index of the last token.
    end: int
    #: Number of judgments containing the marker.
    votes: int


@dataclass
class AggregatedTask:
    """A normal record with its accepted markers."""

    record: ParsedRecord
    markers: list[AggregatedMarker]


@dataclass
class AggregationResult:
    """The outcome of aggregating one job's judgments."""

    tasks: list[AggregatedTask] = field(default_factory=list)
    gold: list[ParsedRecord] = field(default_factory=list)
    skipped: list[SkipReason] = field(default_factory=list)


@dataclass
class ImportResult:
    """The outcome of turning results into spans."""

    spans: list[Span] = field(default_factory=list)
    skipped: list[SkipReason] = field(default_factory=list)


@dataclass
class ClassificationTaskRecord:
    """A classification (stage two) task: decide the type of one entity."""

    #: The markup of the whole sentence.
    text: str
    #: The markup of the entity's tokens.
    tooltip_text: str
    #: The entity's marker, e.g. ``{"s":3,"e":4}``.
    pos_text: str
    #: Index of the sentence's first token.
    first_offset: int
    #: The document tag.
    document: str
    #: Index of the first token of the document.
    doc_offset: int
    #: The expected display type, for gold items.
    entity_type: str | None = None
    #: Explanation for workers who miss the gold type.
    reason: str | None = None

    @property
    def is_golden(self) -> bool:
        return self.entity_type is not None

    def to_payload(self, result_field: str) -> dict[str, Any]:
        """
        Get the record in the form uploaded to the crowd provider.

        Args:
            result_field: Name of the result field workers answer in

        Returns:
            Dictionary of upload fields

        """
        payload: dict[str, Any] = {
            "text": self.text,
            "toolTipText": self.tooltip_text,
            "posText": self.pos_text,
            "offset": str(self.first_offset),
            "document": self.document,
            "docOffset": self.doc_offset,
        }
        if self.is_golden:
            payload.update(
                {
                    f"{result_field}_gold": self.entity_type,
                    f"{result_field}_gold_reason": self.reason,
                    "_golden": "TRUE",
                }
            )
        return payload


def _get_path(obj: Any, *path: str) -> Any:
    """
    Follow a path of keys through nested dictionaries.

    Returns:
        The value, or None if any key is missing

    """
    for key in path:
        if not isinstance(obj, dict) or key not in obj:
            return None
        obj = obj[key]
    return obj


def _as_int(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str) and _is_ascii_number(value.strip().removeprefix("-")):
        try:
            return int(value)
        except ValueError:
            # More digits than int() accepts
            return None
    return None


def _is_ascii_number(text: str) -> bool:
    # str.isdigit() also accepts digits such as superscripts that int() rejects
    return text.isascii() and text.isdecimal()


def _parse_marker(value: Any) -> tuple[int, int] | None:
    """
    Get the token indices of a ``{"s": start, "e": end}`` marker.

    Returns:
        ``(start, end)``, or None if ``value`` is not a valid marker

    """
    start = _as_int(_get_path(value, "s"))
    end = _as_int(_get_path(value, "e"))
    if start is None or end is None or start > end:
        return None
    return start, end


def marker_key(start: int, end: int) -> str:
    """
    Get the canonical form of a marker, the key votes are counted on.

    Key order, spacing and extra fields of the submitted marker do not matter.

    Args:
        start: Index of the first token
        end: Index of the last token

    Returns:
        Compact JSON such as ``{"s":3,"e":4}``

    """
    return compact_json({"s": start, "e": end})


def _load_json(text: Any) -> tuple[Any, str | None]:
    """
    Decode JSON without raising.

    Returns:
        ``(value, None)`` on success, ``(None, error message)`` otherwise

    """
    if not isinstance(text, str):
        return None, "expected JSON text"
    try:
        return json.loads(text), None
    except ValueError as e:
        return None, f"invalid JSON: {e}"
    except RecursionError:
        return None, "invalid JSON: nested too deeply"


def document_number(tag: str) -> int | None:
    """
    Get the document number from a document tag such as ``S3`` or ``G0``.

    Args:
        tag: The document tag

    Returns:
        The number, or None if the tag is malformed

    """
    if len(tag) < 2 or tag[0] not in "SG":  # noqa: PLR2004
        return None
    return _as_int(tag[1:]) if _is_ascii_number(tag[1:]) else None


def _parse_gold(
    line_number: int, data: dict[str, Any], base: dict[str, Any]
) -> ParsedRecord | SkipReason:
    markers, error = _load_json(data.get("markertext_gold"))
    if error:
        return SkipReason(line_number, f"data.markertext_gold: {error}")
    types, error = _load_json(data.get("types"))
    if error:
        return SkipReason(line_number, f"data.types: {error}")
    if not isinstance(types, list) or not isinstance(markers, list):
        return SkipReason(line_number, "gold markers and types must be lists")
    if not types:
        # A gold sentence without entities
        return ParsedRecord(line_number=line_number, is_gold=True, **base)
    if len(types) != len(markers):
        return SkipReason(
            line_number,
            f"{len(types)} gold types but {len(markers)} gold markers",
        )
    gold_markers = []
    for marker, label in zip(markers, types, strict=True):
        bounds = _parse_marker(marker)
        if bounds is None or not isinstance(label, str):
            return SkipReason(line_number, f"invalid gold marker {marker!r}")
        gold_markers.append(GoldMarker(start=bounds[0], end=bounds[1], label=label))
    return ParsedRecord(
        line_number=line_number,
        is_gold=True,
        gold_markers=tuple(gold_markers),
        **base,
    )


def _parse_judgments(
    line_number: int, elem: dict[str, Any], base: dict[str, Any]
) -> ParsedRecord | SkipReason:
    raw_judgments = _get_path(elem, "results", "judgments")
    if not isinstance(raw_judgments, list):
        return SkipReason(line_number, "missing results.judgments")
    judgments = []
    warnings = []
    for index, raw in enumerate(raw_judgments):
        markertext = _get_path(raw, "data", "markertext")
        if markertext is None:
            warnings.append(f"judgment {index} has no data.markertext")
            continue
        markers, error = _load_json(markertext)
        if error or not isinstance(markers, list):
            return SkipReason(
                line_number, f"judgment {index} markertext: {error or 'not a list'}"
            )
        canonical = []
        for marker in markers:
            if marker == NO_ENTITY:
                canonical.append(NO_ENTITY_MARKER)
                continue
            bounds = _parse_marker(marker)
            if bounds is None:
                return SkipReason(
                    line_number, f"judgment {index} has invalid marker {marker!r}"
                )
            canonical.append(marker_key(*bounds))
        # A worker's judgment is a set: repeated markers count once
        judgments.append(Judgment(markers=tuple(dict.fromkeys(canonical))))
    return ParsedRecord(
        line_number=line_number,
        judgments=tuple(judgments),
        warnings=tuple(warnings),
        **base,
    )


def parse_judgment_line(line: str, line_number: int = 0) -> ParsedRecord | SkipReason:
    """
    Parse one line of entity detection results.

    Args:
        line: The JSON line
        line_number: The line's number, for reporting

    Returns:
        The parsed record, or the reason the line has to be skipped

    """
    if not line.strip():
        return SkipReason(line_number, "blank line")
    elem, error = _load_json(line)
    if error:
        return SkipReason(line_number, error)
    if not isinstance(elem, dict):
        return SkipReason(line_number, "line is not a JSON object")

    state = elem.get("state")
    if state == HIDDEN_GOLD:
        return SkipReason(line_number, "hidden gold")

    data = elem.get("data")
    if not isinstance(data, dict):
        return SkipReason(line_number, "missing data")
    text = data.get("text")
    document = data.get("document")
    offset = _as_int(data.get("offset"))
    if not isinstance(text, str):
        return SkipReason(line_number, "missing data.text")
    if not isinstance(document, str) or document_number(document) is None:
        return SkipReason(line_number, f"invalid data.document {document!r}")
    if offset is None:
        return SkipReason(line_number, "missing data.offset")

    base = {"text": text, "document": document, "offset": offset}
    if state == GOLDEN:
        return _parse_gold(line_number, data, base)
    return _parse_judgments(line_number, elem, base)


@dataclass(frozen=True)
class ClassificationResult:
    """One finalized line of classification results."""

    line_number: int
    document: str
    doc_offset: int
    start: int
    end: int
    #: The aggregated type as displayed to the workers.
    display_type: str


def parse_classification_line(
    line: str, result_field: str, line_number: int = 0
) -> ClassificationResult | SkipReason:
    """
    Parse one line of classification results.

    Args:
        line: The JSON line
        result_field: Name of the result field holding the aggregated type
        line_number: The line's number, for reporting

    Returns:
        The parsed result, or the reason the line has to be skipped

    """
    if not line.strip():
        return SkipReason(line_number, "blank line")
    elem, error = _load_json(line)
    if error:
        return SkipReason(line_number, error)
    if not isinstance(elem, dict):
        return SkipReason(line_number, "line is not a JSON object")
    if elem.get("state") != FINALIZED:
        return SkipReason(line_number, f"state {elem.get('state')!r} is not final")

    display_type = _get_path(elem, "results", result_field, "agg")
    if not isinstance(display_type, str):
        return SkipReason(line_number, f"missing results.{result_field}.agg")
    document = _get_path(elem, "data", "document")
    if not isinstance(document, str) or document_number(document) is None:
        return SkipReason(line_number, f"invalid data.document {document!r}")
    doc_offset = _as_int(_get_path(elem, "data", "docOffset"))
    if doc_offset is None:
        return SkipReason(line_number, "missing data.docOffset")
    marker, error = _load_json(_get_path(elem, "data", "posText"))
    bounds = None if error else _parse_marker(marker)
    if bounds is None:
        return SkipReason(line_number, "invalid data.posText marker")

    return ClassificationResult(
        line_number=line_number,
        document=document,
        doc_offset=doc_offset,
        start=bounds[0],
        end=bounds[1],
        display_type=display_type,
    )


class JudgmentAggregator:
    """
    Majority voting over crowd judgments, and conversion of the results back
    into spans.
    """

    def __init__(self, votes_needed: int = DEFAULT_VOTES_NEEDED) -> None:
        """
        Initialize the aggregator.

        Keyword Args:
            votes_needed: Number of judgments that must contain a marker for
                it to be accepted

        """
        #: Number of judgments that must contain a marker for it to be accepted.
        self.votes_needed = votes_needed

    def aggregate(self, lines: Iterable[str]) -> AggregationResult:
        """
        Aggregate the judgments of one entity detection job.

        Args:
            lines: The job's result lines

        Returns:
            The accepted markers per record, the gold records and the skipped
            lines

        """
        result = AggregationResult()
        for line_number, line in enumerate(lines, 1):
            parsed = parse_judgment_line(line, line_number)
            if isinstance(parsed, SkipReason):
                self._skip(result.skipped, parsed)
                continue
            for warning in parsed.warnings:
                logger.warning("judgment ignored", line=line_number, reason=warning)
            if parsed.is_gold:
                result.gold.append(parsed)
                continue
            result.tasks.append(
                AggregatedTask(record=parsed, markers=self.vote(parsed.judgments))
            )
        logger.info(
            "judgments aggregated",
            tasks=len(result.tasks),
            gold=len(result.gold),
            skipped=len(result.skipped),
        )
        return result

    def vote(self, judgments: Iterable[Judgment]) -> list[AggregatedMarker]:
        """
        Count the judgments each marker appears in and accept those with
        enough votes.

        The "no entity" marker is never accepted.

        Args:
            judgments: The judgments of one record

        Returns:
            The accepted markers, in the order they were first seen

        """
        votes: Counter[str] = Counter()
        for judgment in judgments:
            votes.update(judgment.markers)
        accepted = []
        for marker, count in votes.items():
            if count < self.votes_needed or marker == NO_ENTITY_MARKER:
                continue
            bounds = _parse_marker(json.loads(marker))
            if bounds is None:
                continue
            accepted.append(
                AggregatedMarker(
                    marker=marker, start=bounds[0], end=bounds[1], votes=count
                )
            )
        return accepted

    def materialize(
        self,
        result: AggregationResult,
        documents: Sequence[Document],
        label: str,
        store: SpanStore,
    ) -> ImportResult:
        """
        Store the accepted markers as spans.

        Marker token indices are made relative to their document with the
        record's ``offset`` and translated to character offsets.  A marker
        that cannot be translated is skipped.  Spans are flushed but not
        committed, so the caller can commit the whole job at once.

        Args:
            result: The aggregation result
            documents: The documents, numbered as in the document tags
            label: The label to give the new spans
            store: The store to create the spans in

        Returns:
            The spans and the skipped markers

        """
        imported = ImportResult()
        tables: dict[int, SentenceOffsets] = {}
        for task in result.tasks:
            record = task.record
            for marker in task.markers:
                span = self._to_span(
                    documents,
                    tables,
                    store,
                    record.line_number,
                    record.document,
                    marker.start - record.offset,
                    marker.end - record.offset,
                    label,
                    imported.skipped,
                )
                if span is not None:
                    imported.spans.append(span)
        logger.info(
            "entities imported",
            spans=len(imported.spans),
            skipped=len(imported.skipped),
        )
        return imported

    def build_classification_tasks(
        self, result: AggregationResult, labels: LabelTable, texts: TaskTexts
    ) -> tuple[list[ClassificationTaskRecord], list[SkipReason]]:
        """
        Turn accepted markers and gold markers into classification tasks.

        Args:
            result: The aggregation result of an entity detection job
            labels: Table to translate gold types to display labels
            texts: Explanation texts for gold items

        Returns:
            The classification tasks, gold first, and the skipped markers

        """
        records: list[ClassificationTaskRecord] = []
        skipped: list[SkipReason] = []
        items: list[tuple[ParsedRecord, int, int, str | None]] = []
        for gold in result.gold:
            items.extend(
                (gold, marker.start, marker.end, marker.label)
                for marker in gold.gold_markers
            )
        for task in result.tasks:
            items.extend(
                (task.record, marker.start, marker.end, None) for marker in task.markers
            )

        for record, start, end, gold_type in items:
            try:
                tooltip = extract_markup(record.text, start, end)
            except IndexError as e:
                self._skip(skipped, SkipReason(record.line_number, str(e)))
                continue
            classification = ClassificationTaskRecord(
                text=record.text,
                tooltip_text=tooltip,
                pos_text=marker_key(start, end),
                first_offset=first_token_index(record.text),
                document=record.document,
                doc_offset=record.offset,
            )
            if gold_type is not None:
                classification.entity_type = labels.display(gold_type) or gold_type
                classification.reason = texts.classification_reason
            records.append(classification)
        return records, skipped

    def import_classifications(
        self,
        lines: Iterable[str],
        documents: Sequence[Document],
        store: SpanStore,
        labels: LabelTable,
        result_field: str,
    ) -> ImportResult:
        """
        Store the finalized results of a classification job as spans.

        Args:
            lines: The job's result lines
            documents: The documents, numbered as in the document tags
            store: The store to create the spans in
            labels: Table to translate display labels back to short codes
            result_field: Name of the result field holding the aggregated type

        Returns:
            The spans and the skipped lines

        """
        imported = ImportResult()
        tables: dict[int, SentenceOffsets] = {}
        for line_number, line in enumerate(lines, 1):
            parsed = parse_classification_line(line, result_field, line_number)
            if isinstance(parsed, SkipReason):
                self._skip(imported.skipped, parsed)
                continue
            code = labels.code(parsed.display_type)
            if code is None:
                self._skip(
                    imported.skipped,
                    SkipReason(line_number, f"unknown type {parsed.display_type!r}"),
                )
                continue
            span = self._to_span(
                documents,
                tables,
                store,
                line_number,
                parsed.document,
                parsed.start - parsed.doc_offset,
                parsed.end - parsed.doc_offset,
                code,
                imported.skipped,
            )
            if span is not None:
                imported.spans.append(span)
        logger.info(
            "classifications imported",
            spans=len(imported.spans),
            skipped=len(imported.skipped),
        )
        return imported

    def _to_span(  # noqa: PLR0913
        self,
        documents: Sequence[Document],
        tables: dict[int, SentenceOffsets],
        store: SpanStore,
        line_number: int,
        tag: str,
        start: int,
        end: int,
        label: str,
        skipped: list[SkipReason],
    ) -> Span | None:
        """
        Upsert a span for a document relative token interval.

        Returns:
            The span, or None if the interval could not be translated (the
            reason is added to ``skipped``)

        """
        number = document_number(tag)
        if number is None or number >= len(documents):
            self._skip(skipped, SkipReason(line_number, f"unknown document {tag!r}"))
            return None
        if number not in tables:
            tables[number] = OffsetMapper.for_document(documents[number])
        try:
            begin, char_end = tables[number].to_char_interval(start, end)
        except MappingInconsistency as e:
            self._skip(skipped, SkipReason(line_number, str(e)))
            return None
        return store.upsert(documents[number], begin, char_end, label)

    @staticmethod
    def _skip(skipped: list[SkipReason], reason: SkipReason) -> None:
        logger.warning("record skipped", line=reason.line_number, reason=reason.reason)
        skipped.append(reason)
