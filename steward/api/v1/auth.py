"""Auth endpoints: login, registration, refresh, password reset, profile, and 2FA."""

from typing import Annotated

from fastapi import APIRouter, Depends, status

from steward.api.deps import authorize, get_auth_service, get_current_user
from steward.core.guard import PUBLIC
from steward.schemas.auth import (
    ApiResponse,
    ChangePasswordRequest,
    CurrentUser,
    ForgotPasswordRequest,
    LoginRequest,
    MessageResponse,
    RefreshRequest,
    RegisterRequest,
    ResetPasswordRequest,
    TokenResponse,
    TwoFactorCodeRequest,
    TwoFactorDisableRequest,
    TwoFactorRequiredResponse,
    TwoFactorSetupResponse,
    UserProfile,
)
from steward.services.auth_service import AuthService

router = APIRouter()

public = [Depends(authorize(PUBLIC))]


@router.post(
    "/login",
    response_model=ApiResponse[TokenResponse | TwoFactorRequiredResponse],
    dependencies=public,
)
def login(
    body: LoginRequest,
    service: Annotated[AuthService, Depends(get_auth_service)],
) -> ApiResponse[TokenResponse | TwoFactorRequiredResponse]:
    """
    Authenticate with email and password.

    When two-factor authentication is enabled and no code is sent, the
    response carries requires_two_factor=true instead of tokens; repeat the
    request with two_factor_code. Send the access token as
    Authorization: Bearer <access_token>.
    """
    result = service.login(body.email, body.password, body.two_factor_code)
    if isinstance(result, TwoFactorRequiredResponse):
        return ApiResponse(data=result, message="Two-factor authentication required")
    return ApiResponse(data=result, message="Login successful")


@router.post(
    "/register",
    response_model=ApiResponse[TokenResponse],
    status_code=status.HTTP_201_CREATED,
    dependencies=public,
)
def register(
    body: RegisterRequest,
    service: Annotated[AuthService, Depends(get_auth_service)],
) -> ApiResponse[TokenResponse]:
    """Create an account with the default role and return tokens for it."""
    result = service.register(
        email=body.email,
        first_name=body.first_name,
        last_name=body.last_name,
        password=body.password,
        phone=body.phone,
    )
    return ApiResponse(data=result, message="Registration successful")


@router.post("/refresh", response_model=ApiResponse[TokenResponse], dependencies=public)
def refresh(
    body: RefreshRequest,
    service: Annotated[AuthService, Depends(get_auth_service)],
) -> ApiResponse[TokenResponse]:
    """Exchange a refresh token for a new access/refresh pair."""
    return ApiResponse(data=service.refresh(body.refresh_token), message="Token refreshed")


@router.post("/forgot-password", response_model=ApiResponse[MessageResponse], dependencies=public)
def forgot_password(
    body: ForgotPasswordRequest,
    service: Annotated[AuthService, Depends(get_auth_service)],
) -> ApiResponse[MessageResponse]:
    """Email a reset link if the account exists. The response never says whether it does."""
    return ApiResponse(
        data=service.forgot_password(body.email), message="Password reset requested"
    )


@router.post("/reset-password", response_model=ApiResponse[MessageResponse], dependencies=public)
def reset_password(
    body: ResetPasswordRequest,
    service: Annotated[AuthService, Depends(get_auth_service)],
) -> ApiResponse[MessageResponse]:
    result = service.reset_password(body.token, body.password, body.confirm_password)
    return ApiResponse(data=result, message="Password reset successful")


@router.get("/profile", response_model=ApiResponse[UserProfile])
def get_profile(
    current_user: Annotated[CurrentUser, Depends(get_current_user)],
    service: Annotated[AuthService, Depends(get_auth_service)],
) -> ApiResponse[UserProfile]:
    return ApiResponse(
        data=service.get_profile(current_user.id), message="Profile retrieved successfully"
    )


@router.post("/change-password", response_model=ApiResponse[MessageResponse])
def change_password(
    body: ChangePasswordRequest,
    current_user: Annotated[CurrentUser, Depends(get_current_user)],
    service: Annotated[AuthService, Depends(get_auth_service)],
) -> ApiResponse[MessageResponse]:
    result = service.change_password(
        current_user.id, body.current_password, body.new_password, body.confirm_password
    )
    return ApiResponse(data=result, message="Password changed")


@router.post("/2fa/generate", response_model=ApiResponse[TwoFactorSetupResponse])
def generate_two_factor(
    current_user: Annotated[CurrentUser, Depends(get_current_user)],
    service: Annotated[AuthService, Depends(get_auth_service)],
) -> ApiResponse[TwoFactorSetupResponse]:
    """Create a pending 2FA secret; confirm it with POST /2fa/enable."""
    return ApiResponse(
        data=service.generate_two_factor(current_user.id), message="2FA secret generated"
    )


@router.post("/2fa/enable", response_model=ApiResponse[MessageResponse])
def enable_two_factor(
    body: TwoFactorCodeRequest,
    current_user: Annotated[CurrentUser, Depends(get_current_user)],
    service: Annotated[AuthService, Depends(get_auth_service)],
) -> ApiResponse[MessageResponse]:
    result = service.enable_two_factor(current_user.id, body.code)
    return ApiResponse(data=result, message="2FA enabled successfully")


@router.post("/2fa/disable", response_model=ApiResponse[MessageResponse])
def disable_two_factor(
    body: TwoFactorDisableRequest,
    current_user: Annotated[CurrentUser, Depends(get_current_user)],
    service: Annotated[AuthService, Depends(get_auth_service)],
) -> ApiResponse[MessageResponse]:
    result = service.disable_two_factor(current_user.id, body.code)
    return ApiResponse(data=result, message="2FA disabled successfully")
