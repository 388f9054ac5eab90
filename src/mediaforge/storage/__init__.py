"""Persistence layer."""

from mediaforge.storage.db import Database, db, get_database
from mediaforge.storage.models import Base

__all__ = ["Base", "Database", "db", "get_database"]
