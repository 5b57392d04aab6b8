"""Database engine initialization and session management."""

from __future__ import annotations

from pathlib import Path

from sqlalchemy.engine import Engine
from sqlmodel import Session, SQLModel, create_engine

# Import models so SQLModel registers them
from signalpress.storage import models as _models  # noqa: F401

_engines: dict[str, Engine] = {}


def get_engine(db_url: str) -> Engine:
    """Get or create a SQLAlchemy engine for the given database URL."""
    if db_url not in _engines:
        connect_args: dict = {}
        if db_url.startswith("sqlite:///"):
            Path(db_url[len("sqlite:///"):]).parent.mkdir(parents=True, exist_ok=True)
            # FastAPI runs sync routes in a thread pool
            connect_args["check_same_thread"] = False
        engine = create_engine(db_url, echo=False, connect_args=connect_args)
        SQLModel.metadata.create_all(engine)
        _engines[db_url] = engine
    return _engines[db_url]


def get_session(db_url: str) -> Session:
    """Create a new database session."""
    return Session(get_engine(db_url), expire_on_commit=False)


def dispose_engines() -> None:
    """Close every cached engine (used by tests and on shutdown)."""
    for engine in _engines.values():
        engine.dispose()
    _engines.clear()
