"""Tests for the command line entry point."""

import json
from unittest.mock import patch

import pytest

from spancrowd import db
from spancrowd.main import main


@pytest.fixture
def cli(tmp_path, monkeypatch):
    """Run the command line against a fresh database."""
    monkeypatch.setenv("SPANCROWD_DB_PATH", str(tmp_path / "cli.db"))
    monkeypatch.delenv("CROWDFLOWER_API_KEY", raising=False)
    monkeypatch.setattr(db, "_session_factory", None)

    def _run(*args):
        with patch("spancrowd.main.configure_logging"):
            main(list(args))

    return _run


@pytest.fixture
def text_file(tmp_path):
    path = tmp_path / "cat.txt"
    path.write_text("The cat sat .", encoding="utf-8")
    return path


def test_add_document(cli, text_file, capsys):
    cli("add-document", "cat", str(text_file))
    assert "Added cat: 1 sentences, 4 tokens" in capsys.readouterr().out


def test_add_document_twice(cli, text_file, capsys):
    """Test that errors are reported on stderr with exit code 1."""
    cli("add-document", "cat", str(text_file))
    with pytest.raises(SystemExit) as excinfo:
        cli("add-document", "cat", str(text_file))
    assert excinfo.value.code == 1
    assert "already exists" in capsys.readouterr().err


def test_annotate(cli, text_file, capsys):
    cli("add-document", "cat", str(text_file))
    cli("annotate", "cat", "named-entity", "PER", "5", "6")
    assert "4\t7\tPER\tcat" in capsys.readouterr().out


def test_annotate_unknown_document(cli, capsys):
    with pytest.raises(SystemExit):
        cli("annotate", "missing", "pos", "NN", "0", "3")
    assert "does not exist" in capsys.readouterr().err


def test_export_tasks(cli, text_file, tmp_path):
    gold_file = tmp_path / "gold.txt"
    gold_file.write_text("Alice met Bob.", encoding="utf-8")
    cli("add-document", "cat", str(text_file))
    cli("add-document", "gold", str(gold_file))
    cli("annotate", "gold", "named_entity", "PER", "0", "5")

    output = tmp_path / "tasks.jsonl"
    cli("export-tasks", "cat", "--gold", "gold", "-o", str(output))

    records = [json.loads(line) for line in output.read_text("utf-8").splitlines()]
    assert [(r["document"], r["offset"]) for r in records] == [("G0", 0), ("S0", 4)]
    assert records[0]["markertext_gold"] == '[{"s":0,"e":0}]'


def test_aggregate(cli, text_file, tmp_path, capsys):
    cli("add-document", "cat", str(text_file))
    judgments = tmp_path / "judgments.jsonl"
    line = {
        "state": "finalized",
        "data": {"text": "", "document": "S0", "offset": 0},
        "results": {
            "judgments": [{"data": {"markertext": '[{"s":1,"e":1}]'}}] * 2
        },
    }
    judgments.write_text(json.dumps(line) + "\n\n", encoding="utf-8")

    cli("aggregate", str(judgments), "cat", "--label", "NE")

    captured = capsys.readouterr()
    assert "Imported 1 spans" in captured.out
    assert "blank line" in captured.err


def test_status_without_api_key(cli, capsys):
    with pytest.raises(SystemExit) as excinfo:
        cli("status", "42")
    assert excinfo.value.code == 1
    assert "CROWDFLOWER_API_KEY" in capsys.readouterr().err
