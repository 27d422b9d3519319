"""
Authentication flows: login, registration, token refresh, password reset and
two-factor enrollment.

Every operation either returns a response schema or raises an AuthError
subclass. Security failures carry a specific internal reason (logged) and a
generic public message, so a caller cannot tell an unknown email from a
wrong password.
"""

import logging
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING, Any
from urllib.parse import urlencode

from steward.core import totp
from steward.core.errors import (
    INVALID_CREDENTIALS,
    INVALID_SESSION,
    INVALID_TWO_FACTOR_CODE,
    AuthError,
    ConflictError,
    NotFoundError,
    UnauthorizedError,
    ValidationFailedError,
)
from steward.core.roles import DEFAULT_ROLE
from steward.core.security import (
    TokenExpiredError,
    TokenInvalidError,
    TokenIssuer,
    build_access_issuer,
    build_refresh_issuer,
    burn_password_check,
    generate_reset_token,
    hash_password,
    hash_reset_token,
    reset_token_matches,
    utcnow,
    verify_password,
)
from steward.models.user import User
from steward.repositories.user_store import UserStore
from steward.schemas.auth import (
    MessageResponse,
    TokenResponse,
    TwoFactorRequiredResponse,
    TwoFactorSetupResponse,
    UserProfile,
    UserSummary,
)
from steward.services.notifications import NotificationSender, build_notification_sender
from steward.services.user_admin import (
    create_user_record,
    get_user,
    validate_password_policy,
)

if TYPE_CHECKING:
    from steward.core.config import Settings

logger = logging.getLogger(__name__)

FORGOT_PASSWORD_MESSAGE = (
    "If your email exists in our system, you will receive a password reset link shortly"
)
PASSWORD_RESET_MESSAGE = "Password has been reset successfully"
PASSWORD_CHANGED_MESSAGE = "Password has been changed successfully"
PASSWORD_MISMATCH_MESSAGE = "Passwords do not match"
INVALID_RESET_TOKEN_MESSAGE = "Invalid or expired token"
EXPIRED_RESET_TOKEN_MESSAGE = "Reset token has expired"
TWO_FACTOR_ENABLED_MESSAGE = "Two-factor authentication has been enabled"
TWO_FACTOR_DISABLED_MESSAGE = "Two-factor authentication has been disabled"
RESET_EMAIL_SUBJECT = "Reset your password"


def _as_aware(value: datetime) -> datetime:
    # SQLite hands back naive datetimes even for timezone-aware columns.
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


class AuthService:
    """Orchestrates the credential store, password hashing, TOTP and token issuers."""

    def __init__(
        self,
        store: UserStore,
        settings: "Settings",
        notifier: NotificationSender,
        access_issuer: TokenIssuer | None = None,
        refresh_issuer: TokenIssuer | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.store = store
        self.settings = settings
        self.notifier = notifier
        self.clock = clock
        self.access_issuer = access_issuer or build_access_issuer(settings, clock=clock)
        self.refresh_issuer = refresh_issuer or build_refresh_issuer(settings, clock=clock)

    # ------------------------------------------------------------------
    # Login / registration / refresh
    # ------------------------------------------------------------------

    def login(
        self,
        email: str,
        password: str,
        two_factor_code: str | None = None,
    ) -> TokenResponse | TwoFactorRequiredResponse:
        """
        Verify credentials and issue tokens.

        With 2FA enabled and no code supplied, returns TwoFactorRequiredResponse
        instead of tokens; that is an expected step, not a failure.
        """
        user = self.store.find_by_email(email)
        if user is None:
            # Same bcrypt cost as a real check, so timing does not reveal the miss.
            burn_password_check(password)
            raise self._rejected(UnauthorizedError(INVALID_CREDENTIALS, reason="unknown_email"))
        if not verify_password(password, user.password_hash):
            raise self._rejected(
                UnauthorizedError(INVALID_CREDENTIALS, reason="wrong_password"), user.id
            )

        if user.two_factor_enabled:
            if not two_factor_code:
                logger.info("Login awaiting two-factor code", extra={"user_id": user.id})
                return TwoFactorRequiredResponse()
            if not totp.verify_code(two_factor_code, user.two_factor_secret, for_time=self.clock()):
                raise self._rejected(
                    UnauthorizedError(INVALID_TWO_FACTOR_CODE, reason="wrong_two_factor_code"),
                    user.id,
                )

        summary = UserSummary.model_validate(user)
        self._record_login(user.id)
        logger.info("Login succeeded", extra={"user_id": summary.id, "role": summary.role})
        return self._issue_tokens(summary)

    def register(
        self,
        email: str,
        first_name: str,
        last_name: str,
        password: str,
        phone: str | None = None,
    ) -> TokenResponse:
        """Create a user with the default role and log them in."""
        user = create_user_record(
            self.store,
            self.settings,
            email=email,
            password=password,
            first_name=first_name,
            last_name=last_name,
            role=DEFAULT_ROLE,
            phone=phone,
        )
        logger.info("User registered", extra={"user_id": user.id, "role": user.role})
        return self._issue_tokens(UserSummary.model_validate(user))

    def refresh(self, refresh_token: str) -> TokenResponse:
        """Exchange a valid refresh token for a new token pair carrying the current role."""
        try:
            claims = self.refresh_issuer.verify(refresh_token)
        except TokenExpiredError:
            raise self._rejected(UnauthorizedError(INVALID_SESSION, reason="expired_token"))
        except TokenInvalidError as e:
            logger.warning("Refresh token rejected: %s", e)
            raise self._rejected(UnauthorizedError(INVALID_SESSION, reason="invalid_token"))
        user = self.store.find_by_id(claims.sub)
        if user is None:
            raise self._rejected(
                UnauthorizedError(INVALID_SESSION, reason="user_not_found"), claims.sub
            )
        return self._issue_tokens(UserSummary.model_validate(user))

    def get_profile(self, user_id: str) -> UserProfile:
        return UserProfile.model_validate(get_user(self.store, user_id))

    # ------------------------------------------------------------------
    # Passwords
    # ------------------------------------------------------------------

    def forgot_password(self, email: str) -> MessageResponse:
        """
        Start a password reset. The response is identical whether or not the
        email belongs to an account.
        """
        user = self.store.find_by_email(email)
        if user is None:
            logger.info("Password reset requested for unknown email")
            return MessageResponse(message=FORGOT_PASSWORD_MESSAGE)

        raw_token = generate_reset_token()
        expires_at = self.clock() + timedelta(minutes=self.settings.PASSWORD_RESET_EXPIRE_MINUTES)
        self._update(
            user.id,
            reset_token_hash=hash_reset_token(raw_token, self._reset_secret),
            reset_token_expires_at=expires_at,
        )
        try:
            self.notifier.send(user.email, RESET_EMAIL_SUBJECT, self._reset_email_body(raw_token))
        except Exception:
            logger.exception(
                "Password reset email could not be delivered", extra={"user_id": user.id}
            )
        else:
            logger.info("Password reset email sent", extra={"user_id": user.id})
        return MessageResponse(message=FORGOT_PASSWORD_MESSAGE)

    def reset_password(self, token: str, password: str, confirm_password: str) -> MessageResponse:
        """Set a new password from a reset token; the token is cleared and cannot be reused."""
        if password != confirm_password:
            raise ValidationFailedError(PASSWORD_MISMATCH_MESSAGE, reason="password_mismatch")
        # Input rules come first, as request-body validation would apply them.
        validate_password_policy(password)

        user = self.store.find_by_reset_token_hash(hash_reset_token(token, self._reset_secret))
        if user is None or not reset_token_matches(token, user.reset_token_hash, self._reset_secret):
            raise self._rejected(
                ValidationFailedError(INVALID_RESET_TOKEN_MESSAGE, reason="unknown_reset_token")
            )
        expires_at = user.reset_token_expires_at
        if expires_at is None or _as_aware(expires_at) <= self.clock():
            raise self._rejected(
                ValidationFailedError(EXPIRED_RESET_TOKEN_MESSAGE, reason="expired_reset_token"),
                user.id,
            )

        self._update(
            user.id,
            password_hash=hash_password(password, rounds=self.settings.BCRYPT_ROUNDS),
            reset_token_hash=None,
            reset_token_expires_at=None,
        )
        logger.info("Password reset completed", extra={"user_id": user.id})
        return MessageResponse(message=PASSWORD_RESET_MESSAGE)

    def change_password(
        self,
        user_id: str,
        current_password: str,
        new_password: str,
        confirm_password: str,
    ) -> MessageResponse:
        user = get_user(self.store, user_id)
        if not verify_password(current_password, user.password_hash):
            raise self._rejected(
                UnauthorizedError("Current password is incorrect", reason="wrong_password"),
                user.id,
            )
        if new_password != confirm_password:
            raise ValidationFailedError(PASSWORD_MISMATCH_MESSAGE, reason="password_mismatch")
        validate_password_policy(new_password)
        self._update(
            user.id,
            password_hash=hash_password(new_password, rounds=self.settings.BCRYPT_ROUNDS),
            reset_token_hash=None,
            reset_token_expires_at=None,
        )
        logger.info("Password changed", extra={"user_id": user.id})
        return MessageResponse(message=PASSWORD_CHANGED_MESSAGE)

    # ------------------------------------------------------------------
    # Two-factor enrollment
    # ------------------------------------------------------------------

    def generate_two_factor(self, user_id: str) -> TwoFactorSetupResponse:
        """Store a new pending secret (2FA stays disabled) and return its provisioning URI."""
        user = get_user(self.store, user_id)
        if user.two_factor_enabled:
            raise ConflictError(
                "Two-factor authentication is already enabled",
                reason="two_factor_already_enabled",
            )
        secret = totp.generate_secret()
        self._update(user.id, two_factor_secret=secret, two_factor_enabled=False)
        logger.info("Two-factor secret generated", extra={"user_id": user.id})
        return TwoFactorSetupResponse(
            secret=secret,
            otpauth_url=totp.provisioning_uri(user.email, self.settings.APP_NAME, secret),
        )

    def enable_two_factor(self, user_id: str, code: str) -> MessageResponse:
        """Confirm the pending secret with a code; only then is 2FA switched on."""
        user = get_user(self.store, user_id)
        if not user.two_factor_secret:
            raise ValidationFailedError(
                "Generate a two-factor secret before enabling two-factor authentication",
                reason="no_pending_secret",
            )
        if not totp.verify_code(code, user.two_factor_secret, for_time=self.clock()):
            raise self._rejected(
                UnauthorizedError(INVALID_TWO_FACTOR_CODE, reason="wrong_two_factor_code"),
                user.id,
            )
        if not user.two_factor_enabled:
            self._update(user.id, two_factor_enabled=True)
            logger.info("Two-factor authentication enabled", extra={"user_id": user.id})
        return MessageResponse(message=TWO_FACTOR_ENABLED_MESSAGE)

    def disable_two_factor(self, user_id: str, code: str | None = None) -> MessageResponse:
        """
        Turn 2FA off and drop the secret.

        An active enrollment needs a valid current code unless
        TWO_FACTOR_DISABLE_REQUIRES_CODE is off; a pending one never does.
        """
        user = get_user(self.store, user_id)
        if (
            user.two_factor_enabled
            and self.settings.TWO_FACTOR_DISABLE_REQUIRES_CODE
            and not totp.verify_code(code, user.two_factor_secret, for_time=self.clock())
        ):
            raise self._rejected(
                UnauthorizedError(INVALID_TWO_FACTOR_CODE, reason="wrong_two_factor_code"),
                user.id,
            )
        self._update(user.id, two_factor_enabled=False, two_factor_secret=None)
        logger.info("Two-factor authentication disabled", extra={"user_id": user.id})
        return MessageResponse(message=TWO_FACTOR_DISABLED_MESSAGE)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @property
    def _reset_secret(self) -> str:
        return self.settings.RESET_TOKEN_SECRET.get_secret_value()

    def _issue_tokens(self, user: UserSummary) -> TokenResponse:
        return TokenResponse(
            access_token=self.access_issuer.issue(user.id, user.email, user.role),
            refresh_token=self.refresh_issuer.issue(user.id, user.email, user.role),
            expires_in=int(self.access_issuer.ttl.total_seconds()),
            user=user,
        )

    def _record_login(self, user_id: str) -> None:
        try:
            self.store.update(user_id, last_login_at=self.clock())
        except Exception:
            logger.warning(
                "Could not record last login", extra={"user_id": user_id}, exc_info=True
            )

    def _update(self, user_id: str, **changes: Any) -> User:
        user = self.store.update(user_id, **changes)
        if user is None:
            raise NotFoundError("User not found", reason="user_not_found")
        return user

    def _reset_email_body(self, raw_token: str) -> str:
        link = f"{self.settings.PASSWORD_RESET_URL}?{urlencode({'token': raw_token})}"
        minutes = self.settings.PASSWORD_RESET_EXPIRE_MINUTES
        return (
            "We received a request to reset your password.\n\n"
            f"Use the link below within {minutes} minutes to choose a new password:\n"
            f"{link}\n\n"
            "If you did not request this, you can ignore this email."
        )

    @staticmethod
    def _rejected(error: AuthError, user_id: str | None = None) -> AuthError:
        logger.warning(
            "Auth request rejected",
            extra={"reason": error.reason, "user_id": user_id or ""},
        )
        return error


def build_auth_service(
    store: UserStore,
    settings: "Settings",
    notifier: NotificationSender | None = None,
) -> AuthService:
    return AuthService(
        store=store,
        settings=settings,
        notifier=notifier or build_notification_sender(settings),
    )
