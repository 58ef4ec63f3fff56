import os
from contextlib import contextmanager
from sqlalchemy import create_engine, event
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from typing import Generator, Iterator
from news_analyzer.config import settings
from news_analyzer.exceptions import TaskInfrastructureError


def _ensure_sqlite_dir(url: str):
    if url.startswith("sqlite:///") and not url.endswith(":memory:"):
        directory = os.path.dirname(url[len("sqlite:///"):])
        if directory:
            os.makedirs(directory, exist_ok=True)


def make_engine(url: str, echo: bool = False):
    """
    Create an engine for the given URL with the SQLite tweaks this app relies on
    """
    connect_args = {}
    if url.startswith("sqlite"):
        _ensure_sqlite_dir(url)
        connect_args["check_same_thread"] = False  # Needed for SQLite

    new_engine = create_engine(url, connect_args=connect_args, echo=echo)

    if url.startswith("sqlite"):
        # Enable foreign keys for SQLite
        @event.listens_for(new_engine, "connect")
        def set_sqlite_pragma(dbapi_conn, connection_record):
            cursor = dbapi_conn.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

    return new_engine


engine = make_engine(settings.DATABASE_URL, echo=settings.DEBUG)

# Create session factory
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Base class for models
Base = declarative_base()


def get_db() -> Generator:
    """
    Dependency for getting database session
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db(bind=None):
    """
    Initialize database - create all tables
    """
    # Register all models on Base.metadata before create_all
    import news_analyzer.models  # noqa: F401

    Base.metadata.create_all(bind=bind or engine)


@contextmanager
def session_scope(session_factory=None) -> Iterator[Session]:
    """
    Transactional scope: commit on success, roll back on error

    Driver and connection failures surface as TaskInfrastructureError so
    callers can tell an unavailable store apart from domain errors.
    """
    db = (session_factory or SessionLocal)()
    try:
        yield db
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        raise TaskInfrastructureError(f"Database error: {e}") from e
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
