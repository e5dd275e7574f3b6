from .database import (
    create_engine_for,
    get_engine,
    get_session_factory,
    init_db,
    insert_or_ignore,
    session_scope,
)

__all__ = [
    "create_engine_for",
    "get_engine",
    "get_session_factory",
    "init_db",
    "insert_or_ignore",
    "session_scope",
]
