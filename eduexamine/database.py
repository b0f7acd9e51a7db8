"""Database engine construction, session dependency and transaction helpers."""

from contextlib import contextmanager
from typing import Any, Iterator

from fastapi import Request
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.engine import Engine
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

from eduexamine.config import Settings


def build_engine(settings: Settings) -> Engine:
    """Create the engine the application owns for its whole lifetime."""
    url = settings.database_url
    if url.startswith("sqlite"):
        kwargs: dict[str, Any] = {"connect_args": {"check_same_thread": False}}
        # In-memory databases must share a single connection across threads
        if url in ("sqlite://", "sqlite:///:memory:"):
            kwargs["poolclass"] = StaticPool
        return create_engine(url, echo=settings.sql_echo, **kwargs)
    return create_engine(url, echo=settings.sql_echo)


def create_db_and_tables(engine: Engine) -> None:
    """Create database tables based on SQLModel metadata."""
    # Importing the models populates SQLModel.metadata
    from eduexamine import models  # noqa: F401

    SQLModel.metadata.create_all(engine)


def get_session(request: Request) -> Iterator[Session]:
    """FastAPI dependency that yields a session bound to the app's engine."""
    with Session(request.app.state.engine) as session:
        yield session


@contextmanager
def transaction(session: Session) -> Iterator[Session]:
    """Commit everything done inside the block, or roll all of it back."""
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise


def upsert(session: Session, model, values: dict, conflict_cols: list[str], update: dict):
    """INSERT ... ON CONFLICT (conflict_cols) DO UPDATE SET update.

    ``update`` values may reference the proposed row through the returned
    statement's ``excluded`` namespace by passing a callable taking it.
    """
    dialect = session.get_bind().dialect.name
    insert = postgresql.insert if dialect == "postgresql" else sqlite.insert
    stmt = insert(model).values(**values)
    set_ = {
        key: (value(stmt.excluded) if callable(value) else value)
        for key, value in update.items()
    }
    stmt = stmt.on_conflict_do_update(index_elements=conflict_cols, set_=set_)
    return session.exec(stmt)
