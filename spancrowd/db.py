"""SQLAlchemy database setup for spancrowd."""

from __future__ import annotations

from pathlib import Path
from typing import Final

from sqlalchemy import Engine, create_engine, event
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from spancrowd.config import Settings, get_app_data_path

#: The default database name.
DEFAULT_DB_NAME: Final[str] = "spancrowd.db"


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""


def get_default_db_path() -> Path:
    """
    Get the path to the default document database.

    The database lives in the ``documents`` directory of the platform specific
    application data directory (see
    :func:`~spancrowd.config.get_app_data_path`).

    Returns:
        Path to the database file

    """
    db_dir = get_app_data_path() / "documents"
    db_dir.mkdir(parents=True, exist_ok=True)
    return db_dir / DEFAULT_DB_NAME


def create_engine_with_path(db_path: Path | None = None) -> Engine:
    """
    Create SQLAlchemy engine with proper SQLite settings.

    Args:
        db_path: Optional path to database file. If None, uses default path.

    Returns:
        SQLAlchemy engine

    """
    if db_path is None:
        db_path = get_default_db_path()

    # Create the file if it doesn't exist
    db_path.touch(exist_ok=True)

    engine = create_engine(
        f"sqlite:///{db_path}",
        echo=False,  # Set to True for SQL debugging
    )

    @event.listens_for(engine, "connect")
    def set_sqlite_pragma(dbapi_conn, connection_record):
        """Set SQLite pragmas on connection."""
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    return engine


def init_db(engine: Engine) -> None:
    """
    Create all tables known to :class:`Base` on ``engine``.

    Args:
        engine: SQLAlchemy engine

    """
    # Import the models so that they are registered on Base.metadata
    import spancrowd.models  # noqa: F401, PLC0415

    Base.metadata.create_all(engine)


_session_factory: sessionmaker[Session] | None = None


def get_session_factory(settings: Settings | None = None) -> sessionmaker[Session]:
    """
    Get the session factory, creating the engine on first use.

    Keyword Args:
        settings: Settings to read the database path from.  If None, the
            settings are read from the environment.

    Returns:
        A configured :class:`~sqlalchemy.orm.sessionmaker`

    """
    global _session_factory  # noqa: PLW0603
    if _session_factory is None:
        settings = settings or Settings.from_env()
        engine = create_engine_with_path(settings.db_path)
        init_db(engine)
        _session_factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    return _session_factory

