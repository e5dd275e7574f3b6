"""Declarative base shared by all catalog models."""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""


def utcnow() -> datetime:
    """Naive UTC timestamp, the form SQLite stores without conversion."""
    return datetime.now(timezone.utc).replace(tzinfo=None)
