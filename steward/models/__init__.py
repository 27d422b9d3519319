"""SQLAlchemy ORM models."""

from steward.models.base import Base
from steward.models.user import User

__all__ = ["Base", "User"]
