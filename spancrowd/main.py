"""Command line entry point for spancrowd."""

import argparse
import json
import sys
from pathlib import Path

from sqlalchemy.orm import Session

from spancrowd.config import Settings
from spancrowd.db import get_session_factory
from spancrowd.exc import (
    AlreadyExists,
    MappingInconsistency,
    NotFound,
    TransportFailure,
)
from spancrowd.models import Document
from spancrowd.services.crowd import CrowdFlowerClient, CrowdTaskManager
from spancrowd.services.judgments import JudgmentAggregator
from spancrowd.services.logs import configure_logging, get_logger
from spancrowd.services.span_store import SpanStore
from spancrowd.services.tasks import TaskDataGenerator
from spancrowd.types import SpanKind

logger = get_logger(__name__)


def get_documents(session: Session, names: list[str]) -> list[Document]:
    """
    Look up documents by name, keeping the order of ``names``.

    Raises:
        NotFound: If a document does not exist

    """
    documents = []
    for name in names:
        document = Document.get_by_name(session, name)
        if document is None:
            raise NotFound("Document", name)
        documents.append(document)
    return documents


def add_document(args: argparse.Namespace, session: Session, settings: Settings) -> None:
    text = Path(args.file).read_text(encoding="utf-8")
    document = Document.create(session, args.name, text)
    print(
        f"Added {document.name}: {len(document.sentences)} sentences, "
        f"{len(document.tokens)} tokens"
    )


def annotate(args: argparse.Namespace, session: Session, settings: Settings) -> None:
    (document,) = get_documents(session, [args.document])
    store = SpanStore(session, SpanKind.from_name(args.kind))
    spans = store.add_span(args.label, document, args.start, args.end)
    session.commit()
    for span in spans:
        print(f"{span.id}\t{span.begin}\t{span.end}\t{span.label}\t{span.text}")


def export_tasks(args: argparse.Namespace, session: Session, settings: Settings) -> None:
    generator = TaskDataGenerator(session, settings.load_crowd_config().texts)
    gold = generator.generate(
        get_documents(session, args.gold),
        generate_gold=True,
        limit=args.gold_limit,
    )
    normal = generator.generate(
        get_documents(session, args.documents),
        start_index=gold.next_index,
        limit=args.limit,
    )
    out = open(args.output, "w", encoding="utf-8") if args.output else sys.stdout  # noqa: SIM115
    try:
        for record in gold.records + normal.records:
            out.write(json.dumps(record.to_payload(), ensure_ascii=False) + "\n")
    finally:
        if out is not sys.stdout:
            out.close()


def aggregate(args: argparse.Namespace, session: Session, settings: Settings) -> None:
    documents = get_documents(session, args.documents)
    aggregator = JudgmentAggregator(args.votes_needed or settings.votes_needed)
    with Path(args.file).open("r", encoding="utf-8") as f:
        result = aggregator.aggregate(f)
    imported = aggregator.materialize(
        result, documents, args.label, SpanStore.for_named_entity(session)
    )
    session.commit()
    print(f"Imported {len(imported.spans)} spans")
    skipped = result.skipped + imported.skipped
    for reason in skipped:
        print(f"skipped: {reason}", file=sys.stderr)


def status(args: argparse.Namespace, session: Session, settings: Settings) -> None:
    if not settings.api_key:
        print("CROWDFLOWER_API_KEY is not set", file=sys.stderr)
        sys.exit(1)
    manager = CrowdTaskManager(
        CrowdFlowerClient(settings.api_key, settings.base_url), session, settings
    )
    print(manager.status_string(args.job, args.job2))
    if args.job:
        print(manager.job_url(args.job))


def build_parser() -> argparse.ArgumentParser:
    """
    Build the argument parser.

    Returns:
        The parser, with one subcommand per operation

    """
    parser = argparse.ArgumentParser(
        prog="spancrowd", description="Span annotations and crowd tasks"
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    p = subparsers.add_parser("add-document", help="Add a plain text document")
    p.add_argument("name", help="Document name")
    p.add_argument("file", help="UTF-8 text file")
    p.set_defaults(func=add_document)

    p = subparsers.add_parser("annotate", help="Annotate a character interval")
    p.add_argument("document", help="Document name")
    p.add_argument("kind", help="pos, lemma or named_entity")
    p.add_argument("label", help="The label")
    p.add_argument("start", type=int, help="First character offset")
    p.add_argument("end", type=int, help="Character offset after the selection")
    p.set_defaults(func=annotate)

    p = subparsers.add_parser("export-tasks", help="Write crowd task data")
    p.add_argument("documents", nargs="+", help="Documents to annotate")
    p.add_argument("--gold", nargs="*", default=[], help="Gold documents")
    p.add_argument("--limit", type=int, help="Maximum number of sentences")
    p.add_argument("--gold-limit", type=int, help="Maximum number of gold sentences")
    p.add_argument("-o", "--output", help="Output file (default: stdout)")
    p.set_defaults(func=export_tasks)

    p = subparsers.add_parser("aggregate", help="Import a raw judgment file")
    p.add_argument("file", help="JSON lines judgment report")
    p.add_argument("documents", nargs="+", help="Documents, in upload order")
    p.add_argument("--label", required=True, help="Label for the imported spans")
    p.add_argument("--votes-needed", type=int, help="Votes to accept a marker")
    p.set_defaults(func=aggregate)

    p = subparsers.add_parser("status", help="Show the status of crowd jobs")
    p.add_argument("job", nargs="?", help="Entity detection job ID")
    p.add_argument("job2", nargs="?", help="Classification job ID")
    p.set_defaults(func=status)

    return parser


def main(argv: list[str] | None = None) -> None:
    """
    Run the spancrowd command line.
    """
    args = build_parser().parse_args(argv)
    settings = Settings.from_env()
    configure_logging(settings)

    session = get_session_factory(settings)()
    try:
        args.func(args, session, settings)
    except (
        AlreadyExists,
        MappingInconsistency,
        NotFound,
        TransportFailure,
        ValueError,
    ) as e:
        session.rollback()
        logger.error("command failed", command=args.command, error=str(e))
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)
    finally:
        session.close()


if __name__ == "__main__":
    main()
