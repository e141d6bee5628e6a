"""Database setup and session management."""

import sqlite3

from sqlalchemy import create_engine, event
from sqlalchemy.orm import DeclarativeBase, sessionmaker, Session
from sqlalchemy.engine import Engine

from .config import get_database_url


class Base(DeclarativeBase):
    """Base class for all database models."""
    pass


# Singleton engine and session maker to ensure consistent database access
_engine = None
_session_maker = None


# Enable foreign keys for SQLite so cascades are enforced
@event.listens_for(Engine, "connect")
def set_sqlite_pragma(dbapi_connection, connection_record):
    if not isinstance(dbapi_connection, sqlite3.Connection):
        return
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def create_db_engine(url: str) -> Engine:
    """Create an engine for the given database URL."""
    connect_args = {}
    if url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
    return create_engine(url, connect_args=connect_args, echo=False)


def get_engine():
    """Get or create the singleton database engine."""
    global _engine
    if _engine is None:
        _engine = create_db_engine(get_database_url())
    return _engine


def get_session_maker():
    """Get or create the singleton session maker."""
    global _session_maker
    if _session_maker is None:
        engine = get_engine()
        _session_maker = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    return _session_maker


def init_database(engine: Engine = None):
    """Initialize the database, creating all tables."""
    from . import models  # noqa: F401  (registers tables on Base.metadata)

    Base.metadata.create_all(bind=engine or get_engine())


def get_db():
    """Dependency to get a database session."""
    SessionLocal = get_session_maker()
    db: Session = SessionLocal()
    try:
        yield db
    finally:
        db.close()
