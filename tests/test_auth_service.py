"""Unit tests for AuthService flows against an in-memory store and a fixed clock."""

import unittest
from datetime import timedelta
from urllib.parse import parse_qs, urlparse

from steward.core import totp
from steward.core.errors import (
    INVALID_CREDENTIALS,
    INVALID_SESSION,
    INVALID_TWO_FACTOR_CODE,
    ConflictError,
    NotFoundError,
    UnauthorizedError,
    ValidationFailedError,
)
from steward.core.roles import UserRole
from steward.core.security import hash_reset_token, verify_password
from steward.schemas.auth import TokenResponse, TwoFactorRequiredResponse
from steward.services.auth_service import (
    FORGOT_PASSWORD_MESSAGE,
    PASSWORD_RESET_MESSAGE,
    AuthService,
)
from steward.services.user_admin import create_user_record

from fakes import RESET_SECRET, FakeClock, InMemoryUserStore, RecordingNotifier, make_settings

PASSWORD = "Secret123!"
WRONG_PASSWORD = "Secret124!"


class AuthServiceTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self.settings = make_settings()
        self.store = InMemoryUserStore()
        self.notifier = RecordingNotifier()
        self.clock = FakeClock()
        self.service = self._make_service()

    def _make_service(self, **overrides) -> AuthService:
        settings = overrides.pop("settings", self.settings)
        return AuthService(
            store=self.store,
            settings=settings,
            notifier=overrides.pop("notifier", self.notifier),
            clock=self.clock,
        )

    def _add_user(self, email: str = "alice@x.com", role: str = UserRole.MEMBER.value):
        return create_user_record(
            self.store,
            self.settings,
            email=email,
            password=PASSWORD,
            first_name="Alice",
            last_name="Smith",
            role=role,
        )

    def _reset_token_from_email(self) -> str:
        _, _, body = self.notifier.sent[-1]
        link = next(line for line in body.splitlines() if "token=" in line)
        return parse_qs(urlparse(link).query)["token"][0]

    def _enroll_two_factor(self, user_id: str) -> str:
        setup = self.service.generate_two_factor(user_id)
        self.service.enable_two_factor(user_id, totp.current_code(setup.secret, for_time=self.clock()))
        return setup.secret


class TestLogin(AuthServiceTestCase):
    def test_login_success_returns_token_pair(self) -> None:
        user = self._add_user()
        result = self.service.login("alice@x.com", PASSWORD)
        self.assertIsInstance(result, TokenResponse)
        self.assertEqual(result.user.id, user.id)
        self.assertEqual(result.user.role, "member")
        self.assertEqual(result.expires_in, 24 * 3600)
        claims = self.service.access_issuer.verify(result.access_token)
        self.assertEqual(claims.sub, user.id)
        self.assertEqual(self.service.refresh_issuer.verify(result.refresh_token).sub, user.id)

    def test_login_email_is_case_insensitive(self) -> None:
        self._add_user()
        result = self.service.login("  Alice@X.com ", PASSWORD)
        self.assertIsInstance(result, TokenResponse)

    def test_login_records_last_login(self) -> None:
        user = self._add_user()
        self.service.login("alice@x.com", PASSWORD)
        self.assertEqual(user.last_login_at, self.clock())

    def test_unknown_email_and_wrong_password_are_indistinguishable(self) -> None:
        self._add_user()
        with self.assertRaises(UnauthorizedError) as unknown:
            self.service.login("nobody@x.com", PASSWORD)
        with self.assertRaises(UnauthorizedError) as wrong:
            self.service.login("alice@x.com", WRONG_PASSWORD)
        self.assertEqual(unknown.exception.message, INVALID_CREDENTIALS)
        self.assertEqual(str(unknown.exception), str(wrong.exception))
        self.assertEqual(unknown.exception.status_code, wrong.exception.status_code)
        self.assertEqual(unknown.exception.reason, "unknown_email")
        self.assertEqual(wrong.exception.reason, "wrong_password")

    def test_failed_login_does_not_touch_record(self) -> None:
        self._add_user()
        with self.assertRaises(UnauthorizedError):
            self.service.login("alice@x.com", WRONG_PASSWORD)
        self.assertEqual(self.store.update_calls, [])

    def test_last_login_write_failure_does_not_fail_login(self) -> None:
        self._add_user()
        self.store.fail_updates_on = {"last_login_at"}
        with self.assertLogs("steward.services.auth_service", level="WARNING"):
            result = self.service.login("alice@x.com", PASSWORD)
        self.assertIsInstance(result, TokenResponse)


class TestTwoFactorLogin(AuthServiceTestCase):
    def setUp(self) -> None:
        super().setUp()
        self.user = self._add_user()
        self.secret = self._enroll_two_factor(self.user.id)

    def test_password_only_returns_two_factor_required(self) -> None:
        result = self.service.login("alice@x.com", PASSWORD)
        self.assertIsInstance(result, TwoFactorRequiredResponse)
        self.assertTrue(result.requires_two_factor)
        self.assertEqual(result.message, "Please enter your two-factor authentication code")
        self.assertIsNone(self.user.last_login_at)

    def test_wrong_password_still_rejected_before_code(self) -> None:
        with self.assertRaises(UnauthorizedError) as ctx:
            self.service.login("alice@x.com", WRONG_PASSWORD)
        self.assertEqual(ctx.exception.message, INVALID_CREDENTIALS)

    def test_valid_code_completes_login(self) -> None:
        code = totp.current_code(self.secret, for_time=self.clock())
        result = self.service.login("alice@x.com", PASSWORD, code)
        self.assertIsInstance(result, TokenResponse)
        self.assertTrue(result.user.two_factor_enabled)

    def test_code_from_previous_step_accepted(self) -> None:
        code = totp.current_code(self.secret, for_time=self.clock() - timedelta(seconds=30))
        self.assertIsInstance(self.service.login("alice@x.com", PASSWORD, code), TokenResponse)

    def test_invalid_code_rejected(self) -> None:
        code = totp.current_code(self.secret, for_time=self.clock() - timedelta(minutes=10))
        with self.assertRaises(UnauthorizedError) as ctx:
            self.service.login("alice@x.com", PASSWORD, code)
        self.assertEqual(ctx.exception.message, INVALID_TWO_FACTOR_CODE)
        with self.assertRaises(UnauthorizedError):
            self.service.login("alice@x.com", PASSWORD, "abcdef")


class TestRegister(AuthServiceTestCase):
    def test_register_uses_default_role_and_logs_in(self) -> None:
        result = self.service.register("Bob@X.com", "Bob", "Jones", "password1")
        self.assertEqual(result.user.role, UserRole.DATA_ENTRY.value)
        self.assertEqual(result.user.email, "bob@x.com")
        self.assertFalse(result.user.two_factor_enabled)
        stored = self.store.find_by_email("bob@x.com")
        self.assertNotEqual(stored.password_hash, "password1")
        self.assertTrue(verify_password("password1", stored.password_hash))

    def test_duplicate_email_conflicts_regardless_of_case(self) -> None:
        self._add_user()
        with self.assertRaises(ConflictError) as ctx:
            self.service.register("ALICE@x.com", "A", "B", PASSWORD)
        self.assertEqual(ctx.exception.status_code, 409)

    def test_short_password_rejected(self) -> None:
        with self.assertRaises(ValidationFailedError):
            self.service.register("bob@x.com", "Bob", "Jones", "short")
        self.assertIsNone(self.store.find_by_email("bob@x.com"))


class TestRefresh(AuthServiceTestCase):
    def test_refresh_issues_new_pair_with_current_role(self) -> None:
        user = self._add_user()
        tokens = self.service.login("alice@x.com", PASSWORD)
        user.role = UserRole.STAFF.value
        refreshed = self.service.refresh(tokens.refresh_token)
        self.assertEqual(refreshed.user.role, "staff")
        self.assertEqual(self.service.access_issuer.verify(refreshed.access_token).role, "staff")

    def test_access_token_cannot_refresh(self) -> None:
        self._add_user()
        tokens = self.service.login("alice@x.com", PASSWORD)
        with self.assertRaises(UnauthorizedError) as ctx:
            self.service.refresh(tokens.access_token)
        self.assertEqual(ctx.exception.message, INVALID_SESSION)

    def test_expired_refresh_token_rejected(self) -> None:
        self._add_user()
        tokens = self.service.login("alice@x.com", PASSWORD)
        self.clock.advance(days=7)
        with self.assertRaises(UnauthorizedError) as ctx:
            self.service.refresh(tokens.refresh_token)
        self.assertEqual(ctx.exception.reason, "expired_token")

    def test_deleted_user_cannot_refresh(self) -> None:
        user = self._add_user()
        tokens = self.service.login("alice@x.com", PASSWORD)
        del self.store.users[user.id]
        with self.assertRaises(UnauthorizedError) as ctx:
            self.service.refresh(tokens.refresh_token)
        self.assertEqual(ctx.exception.reason, "user_not_found")


class TestPasswordReset(AuthServiceTestCase):
    def test_same_message_for_known_and_unknown_email(self) -> None:
        self._add_user()
        known = self.service.forgot_password("alice@x.com")
        unknown = self.service.forgot_password("bob@x.com")
        self.assertEqual(known.message, FORGOT_PASSWORD_MESSAGE)
        self.assertEqual(known, unknown)
        self.assertEqual(len(self.notifier.sent), 1)
        self.assertEqual(self.notifier.sent[0][0], "alice@x.com")

    def test_only_digest_is_stored(self) -> None:
        user = self._add_user()
        self.service.forgot_password("alice@x.com")
        token = self._reset_token_from_email()
        self.assertNotEqual(user.reset_token_hash, token)
        self.assertEqual(user.reset_token_hash, hash_reset_token(token, RESET_SECRET))
        self.assertEqual(user.reset_token_expires_at, self.clock() + timedelta(hours=1))

    def test_reset_then_login_with_new_password(self) -> None:
        user = self._add_user()
        self.service.forgot_password("alice@x.com")
        token = self._reset_token_from_email()

        result = self.service.reset_password(token, WRONG_PASSWORD, WRONG_PASSWORD)
        self.assertEqual(result.message, PASSWORD_RESET_MESSAGE)
        self.assertIsNone(user.reset_token_hash)
        self.assertIsNone(user.reset_token_expires_at)

        self.assertIsInstance(self.service.login("alice@x.com", WRONG_PASSWORD), TokenResponse)
        with self.assertRaises(UnauthorizedError):
            self.service.login("alice@x.com", PASSWORD)

    def test_token_is_single_use(self) -> None:
        self._add_user()
        self.service.forgot_password("alice@x.com")
        token = self._reset_token_from_email()
        self.service.reset_password(token, WRONG_PASSWORD, WRONG_PASSWORD)
        with self.assertRaises(ValidationFailedError):
            self.service.reset_password(token, "Another123!", "Another123!")

    def test_newer_request_replaces_older_token(self) -> None:
        self._add_user()
        self.service.forgot_password("alice@x.com")
        first = self._reset_token_from_email()
        self.service.forgot_password("alice@x.com")
        second = self._reset_token_from_email()
        with self.assertRaises(ValidationFailedError):
            self.service.reset_password(first, WRONG_PASSWORD, WRONG_PASSWORD)
        self.service.reset_password(second, WRONG_PASSWORD, WRONG_PASSWORD)

    def test_expired_token_rejected(self) -> None:
        user = self._add_user()
        self.service.forgot_password("alice@x.com")
        token = self._reset_token_from_email()
        self.clock.advance(minutes=60)
        with self.assertRaises(ValidationFailedError) as ctx:
            self.service.reset_password(token, WRONG_PASSWORD, WRONG_PASSWORD)
        self.assertEqual(ctx.exception.status_code, 400)
        self.assertTrue(verify_password(PASSWORD, user.password_hash))

    def test_unknown_token_rejected(self) -> None:
        self._add_user()
        with self.assertRaises(ValidationFailedError):
            self.service.reset_password("0" * 64, WRONG_PASSWORD, WRONG_PASSWORD)

    def test_mismatch_and_weak_password_rejected(self) -> None:
        self._add_user()
        self.service.forgot_password("alice@x.com")
        token = self._reset_token_from_email()
        with self.assertRaises(ValidationFailedError) as mismatch:
            self.service.reset_password(token, WRONG_PASSWORD, "Secret125!")
        self.assertEqual(mismatch.exception.reason, "password_mismatch")
        with self.assertRaises(ValidationFailedError) as weak:
            self.service.reset_password(token, "alllowercase", "alllowercase")
        self.assertEqual(weak.exception.reason, "password_policy")
        # Failed attempts leave the token usable.
        self.service.reset_password(token, WRONG_PASSWORD, WRONG_PASSWORD)

    def test_notifier_failure_does_not_fail_request(self) -> None:
        user = self._add_user()
        service = self._make_service(notifier=RecordingNotifier(fail=True))
        with self.assertLogs("steward.services.auth_service", level="ERROR"):
            result = service.forgot_password("alice@x.com")
        self.assertEqual(result.message, FORGOT_PASSWORD_MESSAGE)
        self.assertIsNotNone(user.reset_token_hash)


class TestChangePassword(AuthServiceTestCase):
    def test_change_password(self) -> None:
        user = self._add_user()
        self.service.change_password(user.id, PASSWORD, WRONG_PASSWORD, WRONG_PASSWORD)
        self.assertTrue(verify_password(WRONG_PASSWORD, user.password_hash))

    def test_wrong_current_password(self) -> None:
        user = self._add_user()
        with self.assertRaises(UnauthorizedError):
            self.service.change_password(user.id, "nope", WRONG_PASSWORD, WRONG_PASSWORD)
        self.assertTrue(verify_password(PASSWORD, user.password_hash))

    def test_unknown_user(self) -> None:
        with self.assertRaises(NotFoundError):
            self.service.change_password("missing", PASSWORD, WRONG_PASSWORD, WRONG_PASSWORD)


class TestTwoFactorEnrollment(AuthServiceTestCase):
    def setUp(self) -> None:
        super().setUp()
        self.user = self._add_user()

    def test_generate_leaves_enrollment_pending(self) -> None:
        setup = self.service.generate_two_factor(self.user.id)
        self.assertEqual(self.user.two_factor_secret, setup.secret)
        self.assertFalse(self.user.two_factor_enabled)
        self.assertEqual(self.user.two_factor_state, "pending")
        self.assertTrue(setup.otpauth_url.startswith("otpauth://totp/"))
        self.assertIn("issuer=Steward", setup.otpauth_url)
        # Pending enrollment does not change login.
        self.assertIsInstance(self.service.login("alice@x.com", PASSWORD), TokenResponse)

    def test_enable_requires_valid_code(self) -> None:
        setup = self.service.generate_two_factor(self.user.id)
        bad = totp.current_code(setup.secret, for_time=self.clock() - timedelta(minutes=10))
        with self.assertRaises(UnauthorizedError):
            self.service.enable_two_factor(self.user.id, bad)
        self.assertFalse(self.user.two_factor_enabled)

        good = totp.current_code(setup.secret, for_time=self.clock())
        self.service.enable_two_factor(self.user.id, good)
        self.assertTrue(self.user.two_factor_enabled)
        self.assertEqual(self.user.two_factor_state, "enabled")

    def test_enable_without_pending_secret(self) -> None:
        with self.assertRaises(ValidationFailedError):
            self.service.enable_two_factor(self.user.id, "123456")

    def test_generate_when_already_enabled_conflicts(self) -> None:
        secret = self._enroll_two_factor(self.user.id)
        with self.assertRaises(ConflictError):
            self.service.generate_two_factor(self.user.id)
        self.assertEqual(self.user.two_factor_secret, secret)

    def test_regenerate_replaces_pending_secret(self) -> None:
        first = self.service.generate_two_factor(self.user.id).secret
        second = self.service.generate_two_factor(self.user.id).secret
        self.assertNotEqual(first, second)
        self.assertEqual(self.user.two_factor_secret, second)

    def test_disable_requires_current_code(self) -> None:
        secret = self._enroll_two_factor(self.user.id)
        with self.assertRaises(UnauthorizedError):
            self.service.disable_two_factor(self.user.id)
        self.assertTrue(self.user.two_factor_enabled)

        self.service.disable_two_factor(
            self.user.id, totp.current_code(secret, for_time=self.clock())
        )
        self.assertFalse(self.user.two_factor_enabled)
        self.assertIsNone(self.user.two_factor_secret)
        self.assertIsInstance(self.service.login("alice@x.com", PASSWORD), TokenResponse)

    def test_disable_pending_enrollment_without_code(self) -> None:
        self.service.generate_two_factor(self.user.id)
        self.service.disable_two_factor(self.user.id)
        self.assertEqual(self.user.two_factor_state, "off")

    def test_disable_without_code_when_not_required(self) -> None:
        self._enroll_two_factor(self.user.id)
        service = self._make_service(settings=make_settings(TWO_FACTOR_DISABLE_REQUIRES_CODE=False))
        service.disable_two_factor(self.user.id)
        self.assertFalse(self.user.two_factor_enabled)
        self.assertIsNone(self.user.two_factor_secret)


class TestProfile(AuthServiceTestCase):
    def test_profile_hides_secrets(self) -> None:
        user = self._add_user()
        profile = self.service.get_profile(user.id)
        dumped = profile.model_dump()
        self.assertEqual(dumped["email"], "alice@x.com")
        self.assertNotIn("password_hash", dumped)
        self.assertNotIn("two_factor_secret", dumped)
        self.assertNotIn("reset_token_hash", dumped)

    def test_profile_unknown_user(self) -> None:
        with self.assertRaises(NotFoundError):
            self.service.get_profile("missing")


if __name__ == "__main__":
    unittest.main()
