"""Shared pytest fixtures and test helpers for spancrowd tests."""

import os
import tempfile
from pathlib import Path

# Set a temporary database path for tests before any other imports
# This prevents spancrowd.db from trying to create a directory in the user's home
if "SPANCROWD_DB_PATH" not in os.environ:
    _temp_db = tempfile.NamedTemporaryFile(suffix=".db", delete=False)
    _temp_db.close()
    os.environ["SPANCROWD_DB_PATH"] = _temp_db.name

import pytest
from sqlalchemy.orm import sessionmaker

from spancrowd.config import LabelTable, TaskTexts
from spancrowd.db import create_engine_with_path, init_db
from spancrowd.models import Document

#: "The cat sat ." tokenizes to (0,3) (4,7) (8,11) (12,13), one sentence.
CAT_TEXT = "The cat sat ."


@pytest.fixture
def db_session():
    """Create a temporary database and session for testing."""
    temp_db = tempfile.NamedTemporaryFile(mode="w", delete=False, suffix=".db")
    temp_db.close()
    db_path = Path(temp_db.name)

    engine = create_engine_with_path(db_path)
    init_db(engine)
    SessionFactory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = SessionFactory()

    yield session

    session.close()
    engine.dispose()
    db_path.unlink(missing_ok=True)


@pytest.fixture
def labels():
    """The label table of the packaged crowd configuration."""
    return LabelTable.from_dict(
        {
            "to_display": {
                "PER": "Person",
                "ORG": "Organisation",
                "LOC": "Location",
                "OTH": "Something else",
            },
            "to_code": {
                "Person": "PER",
                "Organisation": "ORG",
                "Location": "LOC",
                "Something else": "OTH",
            },
        }
    )


@pytest.fixture
def texts():
    """Short explanation texts."""
    return TaskTexts(
        no_entity_reason="No entities.",
        entity_reason_hints=" Hints.",
        classification_reason="Contest it.",
    )


def create_test_document(session, name="doc", text=CAT_TEXT):
    """Helper function to create a test document."""
    return Document.create(session, name, text)


@pytest.fixture
def cat_document(db_session):
    """A document with the single sentence "The cat sat ."."""
    return create_test_document(db_session)


@pytest.fixture
def make_document(db_session):
    """Factory fixture creating documents by name and text."""

    def _make(name, text):
        return create_test_document(db_session, name, text)

    return _make
