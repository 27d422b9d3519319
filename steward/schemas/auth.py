"""Request/response schemas for auth endpoints."""

from datetime import datetime
from typing import Generic, Literal, TypeVar

from pydantic import BaseModel, ConfigDict, Field, field_validator

from steward.core.roles import UserRole

T = TypeVar("T")


def _strip_email(v: str) -> str:
    value = v.strip()
    if "@" not in value or value.startswith("@") or value.endswith("@"):
        raise ValueError("Invalid email address")
    return value


class ApiResponse(BaseModel, Generic[T]):
    """Envelope for successful responses."""

    success: bool = True
    message: str = Field(default="Operation successful")
    data: T


class LoginRequest(BaseModel):
    """Credentials for login; two_factor_code only when 2FA is enabled."""

    email: str = Field(..., min_length=3, max_length=255, description="User email")
    password: str = Field(..., min_length=1, max_length=128, description="Password")
    two_factor_code: str | None = Field(
        default=None, max_length=16, description="6-digit authenticator code"
    )

    @field_validator("email")
    @classmethod
    def validate_email(cls, v: str) -> str:
        return _strip_email(v)


class RegisterRequest(BaseModel):
    """Self-registration. Role is always the default tier."""

    email: str = Field(..., min_length=3, max_length=255)
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    password: str = Field(..., min_length=8, max_length=128)
    phone: str | None = Field(default=None, max_length=32)

    @field_validator("email")
    @classmethod
    def validate_email(cls, v: str) -> str:
        return _strip_email(v)


class CreateUserRequest(RegisterRequest):
    """Administrative user creation with an explicit role."""

    role: UserRole = UserRole.MEMBER


class ForgotPasswordRequest(BaseModel):
    email: str = Field(..., min_length=3, max_length=255)

    @field_validator("email")
    @classmethod
    def validate_email(cls, v: str) -> str:
        return _strip_email(v)


class ResetPasswordRequest(BaseModel):
    token: str = Field(..., min_length=1, max_length=256, description="Token from the reset email")
    password: str = Field(..., min_length=1, max_length=128)
    confirm_password: str = Field(..., min_length=1, max_length=128)


class ChangePasswordRequest(BaseModel):
    current_password: str = Field(..., min_length=1, max_length=128)
    new_password: str = Field(..., min_length=1, max_length=128)
    confirm_password: str = Field(..., min_length=1, max_length=128)


class RefreshRequest(BaseModel):
    refresh_token: str = Field(..., min_length=1)


class TwoFactorCodeRequest(BaseModel):
    code: str = Field(..., min_length=1, max_length=16, description="6-digit authenticator code")


class TwoFactorDisableRequest(BaseModel):
    code: str | None = Field(default=None, max_length=16)


class UserSummary(BaseModel):
    """Minimal projection returned with tokens (no password, no 2FA secret)."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    email: str
    first_name: str
    last_name: str
    role: str
    two_factor_enabled: bool


class UserProfile(UserSummary):
    phone: str | None = None
    last_login_at: datetime | None = None
    created_at: datetime | None = None


class TokenResponse(BaseModel):
    """Access + refresh token pair issued on login, registration and refresh."""

    access_token: str = Field(..., description="JWT access token")
    refresh_token: str = Field(..., description="JWT refresh token")
    token_type: str = Field(default="bearer", description="Token type")
    expires_in: int = Field(..., description="Access token lifetime in seconds")
    user: UserSummary


class TwoFactorRequiredResponse(BaseModel):
    """Intermediate login state: password accepted, authenticator code needed."""

    requires_two_factor: Literal[True] = True
    message: str = "Please enter your two-factor authentication code"


class TwoFactorSetupResponse(BaseModel):
    """Pending 2FA enrollment: the secret and the otpauth URI to render as a QR code."""

    secret: str
    otpauth_url: str


class MessageResponse(BaseModel):
    message: str


class CurrentUser(BaseModel):
    """Authenticated user resolved by the request guard."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    email: str
    role: str
    first_name: str = ""
    last_name: str = ""
    two_factor_enabled: bool = False


class UsersListResponse(BaseModel):
    users: list[UserProfile]
    total: int
    offset: int
    limit: int
