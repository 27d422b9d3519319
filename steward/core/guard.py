"""
Request-time authorization.

A request passes through: token present -> token valid -> user still
exists -> role sufficient -> permissions sufficient. The first failing step
rejects with a reason tag. Routes declare their requirements as an
AccessPolicy; the guard holds no per-route rules of its own.
"""

import logging
from dataclasses import dataclass
from enum import Enum

from steward.core.roles import UserRole, has_permission, has_role
from steward.core.security import TokenExpiredError, TokenInvalidError, TokenIssuer
from steward.repositories.user_store import UserStore
from steward.schemas.auth import CurrentUser

logger = logging.getLogger(__name__)


class GuardReason(str, Enum):
    MISSING_TOKEN = "missing_token"
    INVALID_TOKEN = "invalid_token"
    EXPIRED_TOKEN = "expired_token"
    USER_NOT_FOUND = "user_not_found"
    INSUFFICIENT_ROLE = "insufficient_role"
    INSUFFICIENT_PERMISSION = "insufficient_permission"


# Reasons that mean "who are you?" (401) rather than "not allowed" (403).
AUTHENTICATION_REASONS = frozenset(
    {
        GuardReason.MISSING_TOKEN,
        GuardReason.INVALID_TOKEN,
        GuardReason.EXPIRED_TOKEN,
        GuardReason.USER_NOT_FOUND,
    }
)


class GuardRejection(Exception):
    """Request not allowed; reason is logged, never shown to the client."""

    def __init__(self, reason: GuardReason, detail: str = "") -> None:
        self.reason = reason
        self.detail = detail
        super().__init__(f"{reason.value}: {detail}" if detail else reason.value)

    @property
    def status_code(self) -> int:
        return 401 if self.reason in AUTHENTICATION_REASONS else 403

    @property
    def public_message(self) -> str:
        if self.reason is GuardReason.MISSING_TOKEN:
            return "Not authenticated"
        if self.reason in AUTHENTICATION_REASONS:
            return "Invalid or expired token"
        return "Insufficient permissions"


@dataclass(frozen=True)
class AccessPolicy:
    """Per-route requirements. Every listed permission must be held."""

    public: bool = False
    min_role: UserRole | None = None
    permissions: tuple[str, ...] = ()


AUTHENTICATED = AccessPolicy()
PUBLIC = AccessPolicy(public=True)


class RequestGuard:
    def __init__(self, access_issuer: TokenIssuer, store: UserStore) -> None:
        self.access_issuer = access_issuer
        self.store = store

    def check(self, token: str | None, policy: AccessPolicy = AUTHENTICATED) -> CurrentUser | None:
        """
        Resolve the bearer token and enforce the policy.

        Returns None for public policies (the token is not inspected),
        otherwise the current user. Raises GuardRejection on the first failed step.
        """
        if policy.public:
            return None
        if not token:
            raise self._reject(GuardReason.MISSING_TOKEN)

        try:
            claims = self.access_issuer.verify(token)
        except TokenExpiredError:
            raise self._reject(GuardReason.EXPIRED_TOKEN)
        except TokenInvalidError as e:
            raise self._reject(GuardReason.INVALID_TOKEN, str(e))

        user = self.store.find_by_id(claims.sub)
        if user is None:
            raise self._reject(GuardReason.USER_NOT_FOUND, claims.sub)
        # Decisions use the stored role, so demotions apply before the token expires.
        current = CurrentUser.model_validate(user)

        if policy.min_role is not None and not has_role(current, policy.min_role):
            raise self._reject(
                GuardReason.INSUFFICIENT_ROLE, f"{current.role} < {policy.min_role.value}"
            )
        for permission in policy.permissions:
            if not has_permission(current, permission):
                raise self._reject(
                    GuardReason.INSUFFICIENT_PERMISSION, f"{current.role} lacks {permission}"
                )
        return current

    @staticmethod
    def _reject(reason: GuardReason, detail: str = "") -> GuardRejection:
        if reason in AUTHENTICATION_REASONS:
            logger.info("Request unauthenticated", extra={"reason": reason.value, "detail": detail})
        else:
            logger.warning("Request forbidden", extra={"reason": reason.value, "detail": detail})
        return GuardRejection(reason, detail)
