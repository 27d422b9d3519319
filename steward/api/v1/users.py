"""Administrative user endpoints (RBAC-protected)."""

from typing import Annotated

from fastapi import APIRouter, Depends, Query, status

from steward.api.deps import get_user_store, require_permission, require_role
from steward.core.config import Settings, get_settings
from steward.core.roles import UserRole
from steward.repositories.user_store import UserStore
from steward.schemas.auth import (
    ApiResponse,
    CreateUserRequest,
    CurrentUser,
    UserProfile,
    UsersListResponse,
)
from steward.services.user_admin import create_user_record, get_user, list_users

router = APIRouter()


@router.post(
    "",
    response_model=ApiResponse[UserProfile],
    status_code=status.HTTP_201_CREATED,
)
def create_user(
    body: CreateUserRequest,
    _admin: Annotated[CurrentUser, Depends(require_role(UserRole.ADMIN, "users.create"))],
    store: Annotated[UserStore, Depends(get_user_store)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> ApiResponse[UserProfile]:
    """Create a user with an explicit role (admin and above)."""
    user = create_user_record(
        store,
        settings,
        email=body.email,
        password=body.password,
        first_name=body.first_name,
        last_name=body.last_name,
        role=body.role,
        phone=body.phone,
    )
    return ApiResponse(data=UserProfile.model_validate(user), message="User created successfully")


@router.get("", response_model=ApiResponse[UsersListResponse])
def get_users(
    _viewer: Annotated[CurrentUser, Depends(require_permission("users.view"))],
    store: Annotated[UserStore, Depends(get_user_store)],
    offset: Annotated[int, Query(ge=0)] = 0,
    limit: Annotated[int, Query(ge=1, le=100)] = 50,
) -> ApiResponse[UsersListResponse]:
    return ApiResponse(
        data=list_users(store, offset=offset, limit=limit),
        message="Users retrieved successfully",
    )


@router.get("/{user_id}", response_model=ApiResponse[UserProfile])
def get_user_by_id(
    user_id: str,
    _viewer: Annotated[CurrentUser, Depends(require_permission("users.view"))],
    store: Annotated[UserStore, Depends(get_user_store)],
) -> ApiResponse[UserProfile]:
    user = get_user(store, user_id)
    return ApiResponse(data=UserProfile.model_validate(user), message="User retrieved successfully")
