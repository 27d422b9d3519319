"""Password hashing, reset-token digests, and JWT issuing/verification."""

import hashlib
import hmac
import secrets
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from functools import lru_cache
from typing import TYPE_CHECKING, Any

import bcrypt
import jwt

if TYPE_CHECKING:
    from steward.core.config import Settings

# Bcrypt cost (rounds); 12 is a good default for security vs speed.
BCRYPT_ROUNDS = 12
# bcrypt only uses the first 72 bytes of input.
BCRYPT_MAX_BYTES = 72

# Min/max lengths for email and password validation.
EMAIL_MAX_LEN = 255
PASSWORD_MIN_LEN = 8
PASSWORD_MAX_LEN = 128

# 32 random bytes, hex-encoded in the emailed link.
RESET_TOKEN_BYTES = 32

ACCESS_TOKEN_TYPE = "access"
REFRESH_TOKEN_TYPE = "refresh"

REQUIRED_CLAIMS = ("sub", "email", "role", "type", "iat", "exp")


def hash_password(plain_password: str, rounds: int = BCRYPT_ROUNDS) -> str:
    """Hash a plain-text password for storage. Do not store plain passwords."""
    pw_bytes = plain_password.encode("utf-8")[:BCRYPT_MAX_BYTES]
    return bcrypt.hashpw(pw_bytes, bcrypt.gensalt(rounds=rounds)).decode("utf-8")


def verify_password(plain_password: str, hashed: str | None) -> bool:
    """Verify a plain password against a stored hash. Malformed hashes verify as False."""
    if not hashed:
        return False
    pw_bytes = plain_password.encode("utf-8")[:BCRYPT_MAX_BYTES]
    try:
        return bcrypt.checkpw(pw_bytes, hashed.encode("utf-8"))
    except (ValueError, TypeError):
        return False


@lru_cache(maxsize=1)
def _dummy_password_hash() -> str:
    return hash_password(secrets.token_hex(16))


def burn_password_check(plain_password: str) -> None:
    """Run one bcrypt check against a throwaway hash (unknown-email login path)."""
    verify_password(plain_password, _dummy_password_hash())


def generate_reset_token() -> str:
    """Return a new raw reset token. Only its digest may be persisted."""
    return secrets.token_hex(RESET_TOKEN_BYTES)


def hash_reset_token(raw_token: str, secret: str) -> str:
    """
    Keyed digest of a raw reset token (HMAC-SHA256, hex).

    Deterministic for a given server secret, so the store can look the
    digest up by equality instead of scanning salted hashes.
    """
    return hmac.new(
        secret.encode("utf-8"),
        raw_token.encode("utf-8"),
        hashlib.sha256,
    ).hexdigest()


def reset_token_matches(raw_token: str, stored_digest: str | None, secret: str) -> bool:
    if not stored_digest:
        return False
    return hmac.compare_digest(hash_reset_token(raw_token, secret), stored_digest)


def utcnow() -> datetime:
    return datetime.now(UTC)


class TokenError(Exception):
    """Token could not be accepted."""

    reason = "invalid_token"


class TokenInvalidError(TokenError):
    """Malformed token, bad signature, wrong type, or missing claims."""

    reason = "invalid_token"


class TokenExpiredError(TokenError):
    """Well-formed and correctly signed, but past its expiry."""

    reason = "expired_token"


@dataclass(frozen=True)
class TokenClaims:
    """Decoded content of a bearer token."""

    sub: str
    email: str
    role: str
    token_type: str
    iat: float
    exp: float


class TokenIssuer:
    """
    Signs and verifies one kind of token (access or refresh).

    Access and refresh tokens use separate issuers with separate secrets, so
    one secret leaking or rotating never affects the other kind.
    """

    def __init__(
        self,
        secret: str,
        ttl: timedelta,
        token_type: str,
        algorithm: str = "HS256",
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        if not secret:
            raise ValueError("Token secret must be non-empty")
        if ttl <= timedelta(0):
            raise ValueError("Token ttl must be positive")
        self._secret = secret
        self.ttl = ttl
        self.token_type = token_type
        self._algorithm = algorithm
        self._clock = clock

    def issue(self, sub: str, email: str, role: str, ttl: timedelta | None = None) -> str:
        """Create a signed token for the subject with exp = now + ttl."""
        # NumericDate with the fractional part kept, so exp is exactly issue + ttl.
        issued_at = self._clock().timestamp()
        lifetime = (ttl or self.ttl).total_seconds()
        payload: dict[str, Any] = {
            "sub": str(sub),
            "email": email,
            "role": role,
            "type": self.token_type,
            "iat": issued_at,
            "exp": issued_at + lifetime,
        }
        return jwt.encode(payload, self._secret, algorithm=self._algorithm)

    def verify(self, token: str) -> TokenClaims:
        """
        Check signature, claims and expiry; return the decoded claims.

        Raises TokenExpiredError once now >= exp, TokenInvalidError for
        anything else wrong with the token.
        """
        if not token:
            raise TokenInvalidError("Empty token")
        try:
            # Expiry is checked below against the injected clock.
            payload = jwt.decode(
                token,
                self._secret,
                algorithms=[self._algorithm],
                options={"verify_exp": False, "verify_iat": False},
            )
        except jwt.PyJWTError as e:
            raise TokenInvalidError(str(e)) from e

        missing = [claim for claim in REQUIRED_CLAIMS if payload.get(claim) in (None, "")]
        if missing:
            raise TokenInvalidError(f"Missing claims: {', '.join(missing)}")
        if payload["type"] != self.token_type:
            raise TokenInvalidError(
                f"Expected {self.token_type} token, got {payload['type']}"
            )
        try:
            exp = float(payload["exp"])
            iat = float(payload["iat"])
        except (TypeError, ValueError) as e:
            raise TokenInvalidError("Non-numeric iat/exp") from e

        if self._clock().timestamp() >= exp:
            raise TokenExpiredError("Token has expired")

        return TokenClaims(
            sub=str(payload["sub"]),
            email=str(payload["email"]),
            role=str(payload["role"]),
            token_type=payload["type"],
            iat=iat,
            exp=exp,
        )


def build_access_issuer(settings: "Settings", clock: Callable[[], datetime] = utcnow) -> TokenIssuer:
    return TokenIssuer(
        secret=settings.JWT_SECRET.get_secret_value(),
        ttl=timedelta(minutes=settings.JWT_EXPIRE_MINUTES),
        token_type=ACCESS_TOKEN_TYPE,
        algorithm=settings.JWT_ALGORITHM,
        clock=clock,
    )


def build_refresh_issuer(settings: "Settings", clock: Callable[[], datetime] = utcnow) -> TokenIssuer:
    return TokenIssuer(
        secret=settings.JWT_REFRESH_SECRET.get_secret_value(),
        ttl=timedelta(minutes=settings.JWT_REFRESH_EXPIRE_MINUTES),
        token_type=REFRESH_TOKEN_TYPE,
        algorithm=settings.JWT_ALGORITHM,
        clock=clock,
    )
