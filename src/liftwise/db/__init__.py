"""Persistence layer: engine lifecycle, ORM tables and the async repository."""

from .models import Base
from .repo import close_db, get_session, init_db

__all__ = ["Base", "close_db", "get_session", "init_db"]
