"""Database connection and session management."""

import os
import threading
from contextlib import contextmanager
from typing import Callable, Iterator, Optional
from sqlalchemy import create_engine, Engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

DEFAULT_DATABASE_URL = "sqlite:///./sequence_engine.db"

_engine: Optional[Engine] = None

# Base class for all database models
Base = declarative_base()

# Bound lazily to the engine created by get_database_engine
SessionLocal = sessionmaker(autoflush=False)


def _is_memory_url(database_url: str) -> bool:
    return database_url in ("sqlite://", "sqlite:///:memory:") or "mode=memory" in database_url


def get_database_engine(database_url: Optional[str] = None,
                        echo: bool = False,
                        connect_args: Optional[dict] = None) -> Engine:
    """Get or create database engine with configuration."""
    global _engine

    if _engine is None:
        if database_url is None:
            database_url = os.getenv("SEQUENCE_ENGINE_DATABASE_URL", DEFAULT_DATABASE_URL)

        if connect_args is None:
            if database_url.startswith("sqlite"):
                connect_args = {"check_same_thread": False}
            else:
                connect_args = {}

        if database_url.startswith("sqlite") and _is_memory_url(database_url):
            # one shared connection keeps the in-memory database alive
            _engine = create_engine(
                database_url,
                connect_args=connect_args,
                poolclass=StaticPool,
                echo=echo
            )
        else:
            _engine = create_engine(
                database_url,
                echo=echo,
                connect_args=connect_args
            )

        SessionLocal.configure(bind=_engine)

    return _engine


def configure_database(database_url: str, echo: bool = False) -> Engine:
    """Point the module at ``database_url`` and create the schema there."""
    reset_database_engine()
    engine = get_database_engine(database_url, echo=echo)
    create_tables()
    return engine


def reset_database_engine():
    """Reset the global database engine (mainly for testing)."""
    global _engine
    if _engine:
        _engine.dispose()
    _engine = None


# Serializes session lifetimes; an in-memory database has one shared connection
session_lock = threading.RLock()


@contextmanager
def session_scope(session_factory: Optional[Callable[[], Session]] = None) -> Iterator[Session]:
    """Open a session, holding the session lock until it is closed."""
    with session_lock:
        if session_factory is None:
            get_database_engine()
            session_factory = SessionLocal
        db = session_factory()
        try:
            yield db
        finally:
            db.close()


def create_tables():
    """Create all database tables."""
    from . import models  # noqa: F401  (registers the tables on Base)
    Base.metadata.create_all(bind=get_database_engine())


def drop_tables():
    """Drop all database tables."""
    Base.metadata.drop_all(bind=get_database_engine())
