"""Declarative base shared by all ORM models."""

from datetime import datetime, timezone

from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """Base class for all models."""
    pass


def utcnow() -> datetime:
    """Naive UTC timestamp, matching the DateTime columns."""
    return datetime.now(timezone.utc).replace(tzinfo=None)
