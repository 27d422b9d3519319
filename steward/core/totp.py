"""Time-based one-time passwords (RFC 6238) for two-factor authentication."""

import re
from datetime import datetime

import pyotp

TOTP_DIGITS = 6
TOTP_INTERVAL_SEC = 30
# Accept the current step and one step of clock skew either way.
TOTP_VALID_WINDOW = 1

_CODE_PATTERN = re.compile(r"^[0-9]{6}$")


def generate_secret() -> str:
    """Return a new random base32 shared secret for authenticator apps."""
    return pyotp.random_base32()


def provisioning_uri(account_label: str, issuer_name: str, secret: str) -> str:
    """Return the otpauth:// URI an authenticator app enrolls from (usually via QR code)."""
    totp = pyotp.TOTP(secret, digits=TOTP_DIGITS, interval=TOTP_INTERVAL_SEC)
    return totp.provisioning_uri(name=account_label, issuer_name=issuer_name)


def current_code(secret: str, for_time: datetime | None = None) -> str:
    totp = pyotp.TOTP(secret, digits=TOTP_DIGITS, interval=TOTP_INTERVAL_SEC)
    if for_time is None:
        return totp.now()
    return totp.at(for_time)


def verify_code(code: str | None, secret: str | None, for_time: datetime | None = None) -> bool:
    """
    True if code matches the secret within one time step of for_time (default now).

    Malformed codes, empty secrets and undecodable secrets verify as False.
    """
    if not code or not secret:
        return False
    candidate = code.strip()
    if not _CODE_PATTERN.match(candidate):
        return False
    totp = pyotp.TOTP(secret, digits=TOTP_DIGITS, interval=TOTP_INTERVAL_SEC)
    try:
        return totp.verify(candidate, for_time=for_time, valid_window=TOTP_VALID_WINDOW)
    except (ValueError, TypeError):
        return False
