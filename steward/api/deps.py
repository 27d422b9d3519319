"""FastAPI dependencies: store, services, and per-route access policies."""

from collections.abc import Callable
from typing import Annotated

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from steward.core.config import Settings, get_settings
from steward.core.database import get_db
from steward.core.guard import AUTHENTICATED, AccessPolicy, RequestGuard
from steward.core.roles import UserRole
from steward.core.security import build_access_issuer
from steward.repositories.user_store import SqlAlchemyUserStore, UserStore
from steward.schemas.auth import CurrentUser
from steward.services.auth_service import AuthService, build_auth_service
from steward.services.notifications import NotificationSender, build_notification_sender

security = HTTPBearer(auto_error=False)


def get_user_store(db: Annotated[Session, Depends(get_db)]) -> UserStore:
    return SqlAlchemyUserStore(db)


def get_notification_sender(
    settings: Annotated[Settings, Depends(get_settings)],
) -> NotificationSender:
    return build_notification_sender(settings)


def get_auth_service(
    store: Annotated[UserStore, Depends(get_user_store)],
    settings: Annotated[Settings, Depends(get_settings)],
    notifier: Annotated[NotificationSender, Depends(get_notification_sender)],
) -> AuthService:
    return build_auth_service(store, settings, notifier)


def get_request_guard(
    store: Annotated[UserStore, Depends(get_user_store)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> RequestGuard:
    return RequestGuard(build_access_issuer(settings), store)


def authorize(policy: AccessPolicy) -> Callable[..., CurrentUser | None]:
    """
    Build a dependency enforcing policy for one route.

    Raises GuardRejection, which the app's exception handler turns into 401/403.
    """

    def dependency(
        credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
        guard: Annotated[RequestGuard, Depends(get_request_guard)],
    ) -> CurrentUser | None:
        token = credentials.credentials if credentials is not None else None
        return guard.check(token, policy)

    return dependency


def require_role(role: UserRole, *permissions: str) -> Callable[..., CurrentUser | None]:
    return authorize(AccessPolicy(min_role=role, permissions=permissions))


def require_permission(*permissions: str) -> Callable[..., CurrentUser | None]:
    return authorize(AccessPolicy(permissions=permissions))


get_current_user = authorize(AUTHENTICATED)
