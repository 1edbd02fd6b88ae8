"""Database package."""

from tasktrack.db.base import Base, BaseModel

__all__ = ["Base", "BaseModel"]
