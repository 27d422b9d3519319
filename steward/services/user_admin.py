"""User record creation and administrative lookups."""

import logging
import re
from typing import TYPE_CHECKING

from sqlalchemy.exc import IntegrityError

from steward.core.errors import ConflictError, NotFoundError, ValidationFailedError
from steward.core.roles import UserRole
from steward.core.security import PASSWORD_MAX_LEN, PASSWORD_MIN_LEN, hash_password
from steward.models.user import User, new_user_id
from steward.repositories.user_store import UserStore, normalize_email
from steward.schemas.auth import UserProfile, UsersListResponse

if TYPE_CHECKING:
    from steward.core.config import Settings

logger = logging.getLogger(__name__)

DUPLICATE_EMAIL_MESSAGE = "User with this email already exists"

# At least one uppercase, one lowercase, and one digit or non-alphanumeric character.
_PASSWORD_CLASSES = (
    re.compile(r"[A-Z]"),
    re.compile(r"[a-z]"),
    re.compile(r"[0-9\W_]"),
)

MAX_PAGE_SIZE = 100


def validate_password_length(password: str) -> None:
    if not (PASSWORD_MIN_LEN <= len(password) <= PASSWORD_MAX_LEN):
        raise ValidationFailedError(
            f"Password must be between {PASSWORD_MIN_LEN} and {PASSWORD_MAX_LEN} characters",
            reason="password_length",
        )


def validate_password_policy(password: str) -> None:
    """Length bounds plus character classes; applied when a password is reset or changed."""
    validate_password_length(password)
    if not all(pattern.search(password) for pattern in _PASSWORD_CLASSES):
        raise ValidationFailedError(
            "Password must contain at least 1 uppercase letter, 1 lowercase letter, "
            "and 1 number or special character",
            reason="password_policy",
        )


def create_user_record(
    store: UserStore,
    settings: "Settings",
    *,
    email: str,
    password: str,
    first_name: str,
    last_name: str,
    role: UserRole | str,
    phone: str | None = None,
) -> User:
    """Hash the password and persist a new user. Raises ConflictError on duplicate email."""
    email = normalize_email(email)
    try:
        role_value = UserRole(role).value
    except ValueError as e:
        raise ValidationFailedError(f"Unknown role: {role}", reason="unknown_role") from e
    validate_password_length(password)
    if store.find_by_email(email) is not None:
        raise ConflictError(DUPLICATE_EMAIL_MESSAGE, reason="duplicate_email")

    user = User(
        id=new_user_id(),
        email=email,
        password_hash=hash_password(password, rounds=settings.BCRYPT_ROUNDS),
        first_name=first_name.strip(),
        last_name=last_name.strip(),
        role=role_value,
        phone=phone.strip() if phone else None,
        two_factor_enabled=False,
        two_factor_secret=None,
        reset_token_hash=None,
        reset_token_expires_at=None,
    )
    try:
        return store.create(user)
    except IntegrityError as e:
        # Lost a race with a concurrent registration for the same email.
        raise ConflictError(DUPLICATE_EMAIL_MESSAGE, reason="duplicate_email_race") from e


def get_user(store: UserStore, user_id: str) -> User:
    user = store.find_by_id(user_id)
    if user is None:
        raise NotFoundError("User not found", reason="user_not_found")
    return user


def list_users(store: UserStore, offset: int = 0, limit: int = 50) -> UsersListResponse:
    offset = max(offset, 0)
    limit = min(max(limit, 1), MAX_PAGE_SIZE)
    users, total = store.list_users(offset=offset, limit=limit)
    return UsersListResponse(
        users=[UserProfile.model_validate(u) for u in users],
        total=total,
        offset=offset,
        limit=limit,
    )
