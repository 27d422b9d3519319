"""Persistence adapters."""

from steward.repositories.user_store import SqlAlchemyUserStore, UserStore, normalize_email

__all__ = ["SqlAlchemyUserStore", "UserStore", "normalize_email"]
