from __future__ import annotations

from collections.abc import Generator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

from loguru import logger
from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from config import get_settings
from apollo.db.models import Base

# search_index is a full-text table over topics and lessons. SQLite gets FTS5,
# other dialects a plain table with the same columns.
SEARCH_INDEX_SQLITE_DDL = """
CREATE VIRTUAL TABLE IF NOT EXISTS search_index USING fts5(
    entity_type UNINDEXED,
    entity_id UNINDEXED,
    title,
    body
)
"""

SEARCH_INDEX_GENERIC_DDL = """
CREATE TABLE IF NOT EXISTS search_index (
    entity_type TEXT NOT NULL,
    entity_id TEXT NOT NULL,
    title TEXT NOT NULL,
    body TEXT
)
"""

_engine: Engine | None = None
_SessionLocal: sessionmaker[Session] | None = None


def _enable_sqlite_foreign_keys(dbapi_connection: Any, connection_record: Any) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.execute("PRAGMA busy_timeout=5000")
    cursor.close()


def create_engine_for(url: str, echo: bool = False) -> Engine:
    """Create an engine for ``url`` with per-dialect connection settings."""
    if url.startswith("sqlite"):
        db_path = url.split("///", 1)[-1]
        if db_path and db_path != ":memory:":
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        engine = create_engine(url, echo=echo, connect_args={"check_same_thread": False})
        event.listen(engine, "connect", _enable_sqlite_foreign_keys)
        return engine
    return create_engine(url, echo=echo, pool_pre_ping=True)


def get_engine() -> Engine:
    """Get the database engine (created on first use from settings)."""
    global _engine
    if _engine is None:
        settings = get_settings()
        _engine = create_engine_for(settings.database_url, echo=settings.log_level == "DEBUG")
    return _engine


def get_session_factory(engine: Engine | None = None) -> sessionmaker[Session]:
    """Get a session factory, the shared one unless ``engine`` is given."""
    global _SessionLocal
    if engine is not None:
        return sessionmaker(bind=engine, autocommit=False, autoflush=False)
    if _SessionLocal is None:
        _SessionLocal = sessionmaker(bind=get_engine(), autocommit=False, autoflush=False)
    return _SessionLocal


def init_db(engine: Engine | None = None) -> None:
    """Initialize database tables, including the search index."""
    engine = engine or get_engine()
    Base.metadata.create_all(bind=engine)
    ddl = SEARCH_INDEX_SQLITE_DDL if engine.dialect.name == "sqlite" else SEARCH_INDEX_GENERIC_DDL
    with engine.begin() as conn:
        conn.execute(text(ddl))
    logger.info("Database tables initialized")


@contextmanager
def session_scope(factory: sessionmaker[Session] | None = None) -> Generator[Session, None, None]:
    """Provide a transactional scope around a series of operations."""
    session = (factory or get_session_factory())()
    try:
        yield session
        session.commit()
    except Exception:  # Intentionally broad - rollback on any error before re-raising
        session.rollback()
        raise
    finally:
        session.close()


def insert_or_ignore(session: Session, model: type[Base], **values: Any) -> int:
    """
    Insert a row, silently skipping it when it conflicts with an existing key.

    Returns the number of rows actually inserted (0 or 1).
    """
    dialect = session.get_bind().dialect.name
    if dialect == "sqlite":
        from sqlalchemy.dialects.sqlite import insert
    elif dialect == "postgresql":
        from sqlalchemy.dialects.postgresql import insert
    else:
        raise NotImplementedError(f"insert-or-ignore not supported for dialect {dialect}")

    stmt = insert(model).values(**values).on_conflict_do_nothing()
    result = session.execute(stmt)
    return max(result.rowcount or 0, 0)
