"""Pydantic request/response schemas."""

from steward.schemas.auth import (
    ApiResponse,
    CurrentUser,
    LoginRequest,
    MessageResponse,
    RegisterRequest,
    TokenResponse,
    TwoFactorRequiredResponse,
    TwoFactorSetupResponse,
    UserProfile,
    UserSummary,
)
from steward.schemas.health import HealthResponse

__all__ = [
    "ApiResponse",
    "CurrentUser",
    "HealthResponse",
    "LoginRequest",
    "MessageResponse",
    "RegisterRequest",
    "TokenResponse",
    "TwoFactorRequiredResponse",
    "TwoFactorSetupResponse",
    "UserProfile",
    "UserSummary",
]
