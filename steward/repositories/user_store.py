"""Credential store: persistence of user records behind a small interface."""

import logging
from typing import Any, Protocol

from sqlalchemy import func
from sqlalchemy.orm import Session

from steward.models.user import User

logger = logging.getLogger(__name__)

# Columns the auth layer is allowed to change through update().
UPDATABLE_FIELDS = frozenset(
    {
        "email",
        "password_hash",
        "first_name",
        "last_name",
        "role",
        "phone",
        "two_factor_enabled",
        "two_factor_secret",
        "reset_token_hash",
        "reset_token_expires_at",
        "last_login_at",
    }
)


def normalize_email(email: str) -> str:
    return email.strip().lower()


class UserStore(Protocol):
    """
    Lookup and mutation of user records.

    update() must apply all changes or none of them; the auth service relies
    on that to set and clear paired fields (reset digest + expiry, 2FA flag +
    secret) together.
    """

    def find_by_id(self, user_id: str) -> User | None: ...

    def find_by_email(self, email: str) -> User | None: ...

    def find_by_reset_token_hash(self, token_hash: str) -> User | None: ...

    def list_users(self, offset: int = 0, limit: int = 50) -> tuple[list[User], int]: ...

    def create(self, user: User) -> User: ...

    def update(self, user_id: str, **changes: Any) -> User | None: ...


def _check_fields(changes: dict[str, Any]) -> None:
    unknown = set(changes) - UPDATABLE_FIELDS
    if unknown:
        raise ValueError(f"Cannot update user fields: {', '.join(sorted(unknown))}")


class SqlAlchemyUserStore:
    """UserStore backed by a SQLAlchemy session (one per request)."""

    def __init__(self, db: Session) -> None:
        self.db = db

    def find_by_id(self, user_id: str) -> User | None:
        return self.db.get(User, user_id)

    def find_by_email(self, email: str) -> User | None:
        return (
            self.db.query(User)
            .filter(func.lower(User.email) == normalize_email(email))
            .first()
        )

    def find_by_reset_token_hash(self, token_hash: str) -> User | None:
        return self.db.query(User).filter(User.reset_token_hash == token_hash).first()

    def list_users(self, offset: int = 0, limit: int = 50) -> tuple[list[User], int]:
        total = self.db.query(func.count(User.id)).scalar() or 0
        users = (
            self.db.query(User)
            .order_by(User.created_at.desc(), User.id)
            .offset(offset)
            .limit(limit)
            .all()
        )
        return users, total

    def create(self, user: User) -> User:
        user.email = normalize_email(user.email)
        self.db.add(user)
        try:
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        self.db.refresh(user)
        logger.info("User created", extra={"user_id": user.id, "role": user.role})
        return user

    def update(self, user_id: str, **changes: Any) -> User | None:
        _check_fields(changes)
        user = self.find_by_id(user_id)
        if user is None:
            return None
        if "email" in changes and changes["email"] is not None:
            changes["email"] = normalize_email(changes["email"])
        for field, value in changes.items():
            setattr(user, field, value)
        try:
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        self.db.refresh(user)
        return user
