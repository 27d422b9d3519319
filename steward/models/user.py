"""ORM model for application users (credentials, 2FA and password-reset state)."""

import uuid

from sqlalchemy import Boolean, CheckConstraint, Column, DateTime, String, func

from steward.core.roles import DEFAULT_ROLE
from steward.models.base import Base

TWO_FACTOR_OFF = "off"
TWO_FACTOR_PENDING = "pending"
TWO_FACTOR_ENABLED = "enabled"


def new_user_id() -> str:
    return str(uuid.uuid4())


class User(Base):
    """
    User account for JWT authentication and role-based access control.

    2FA state lives on the record itself: a secret with two_factor_enabled
    False is a pending enrollment awaiting its first valid code. Reset-token
    digest and expiry are set and cleared together.
    """

    __tablename__ = "users"
    __table_args__ = (
        CheckConstraint(
            "(reset_token_hash IS NULL) = (reset_token_expires_at IS NULL)",
            name="reset_token_pair",
        ),
        CheckConstraint(
            "NOT two_factor_enabled OR two_factor_secret IS NOT NULL",
            name="two_factor_secret",
        ),
    )

    id = Column(String(36), primary_key=True, default=new_user_id)
    # Stored lower-cased; lookups normalize the same way.
    email = Column(String(255), nullable=False, unique=True, index=True)
    password_hash = Column(String(255), nullable=False)
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False)
    role = Column(String(32), nullable=False, default=DEFAULT_ROLE.value)
    phone = Column(String(32), nullable=True)

    two_factor_enabled = Column(Boolean, nullable=False, default=False)
    two_factor_secret = Column(String(64), nullable=True)

    reset_token_hash = Column(String(64), nullable=True, index=True)
    reset_token_expires_at = Column(DateTime(timezone=True), nullable=True)

    last_login_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    @property
    def two_factor_state(self) -> str:
        if not self.two_factor_secret:
            return TWO_FACTOR_OFF
        if self.two_factor_enabled:
            return TWO_FACTOR_ENABLED
        return TWO_FACTOR_PENDING

    def __repr__(self) -> str:
        return f"<User id={self.id!r} email={self.email!r} role={self.role!r}>"
