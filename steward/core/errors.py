"""Auth error taxonomy.

Each error carries a public ``message`` and an internal ``reason`` tag. The
reason is for logs only; several reasons share one message so
that callers cannot tell, for example, an unknown email from a wrong
password.
"""

# Public messages shared by several internal reasons.
INVALID_CREDENTIALS = "Invalid email or password"
INVALID_TWO_FACTOR_CODE = "Invalid two-factor authentication code"
INVALID_SESSION = "Invalid or expired token"


class AuthError(Exception):
    """Base class for failures raised by the auth service."""

    status_code = 400

    def __init__(self, message: str, reason: str | None = None) -> None:
        self.message = message
        self.reason = reason or "unspecified"
        super().__init__(message)


class UnauthorizedError(AuthError):
    """Bad credentials, bad 2FA code, or an unusable token."""

    status_code = 401


class ConflictError(AuthError):
    """Duplicate email, or a state change that conflicts with current state."""

    status_code = 409


class NotFoundError(AuthError):
    """Operation on a user id that does not exist (authenticated callers only)."""

    status_code = 404


class ValidationFailedError(AuthError):
    """Non-security input problem; the message may name the field."""

    status_code = 400
