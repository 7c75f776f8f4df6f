import tempfile
import unittest
from datetime import datetime, timedelta, timezone
from unittest.mock import patch

from jose import jwt

import auth_service
from database import JsonStore
from errors import Conflict, InvalidToken, StoreError, Unauthorized, ValidationError


class AuthTestCase(unittest.TestCase):
    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.store = JsonStore(self.tmp.name)
        patcher = patch("auth_service.email_service")
        self.mail = patcher.start()
        self.addCleanup(patcher.stop)

    def tearDown(self):
        self.tmp.cleanup()

    def register(self, email="a@b.com", password="Passw0rd", name="Alice Smith"):
        return auth_service.register(self.store, name, email, password)

    def stored_user(self, email="a@b.com"):
        return auth_service.find_user_by_email(auth_service.load_users(self.store), email)


class TestValidators(unittest.TestCase):
    def test_email(self):
        self.assertTrue(auth_service.is_valid_email("a@b.com"))
        self.assertFalse(auth_service.is_valid_email("a@b"))
        self.assertFalse(auth_service.is_valid_email("a b@c.com"))

    def test_password(self):
        self.assertTrue(auth_service.is_valid_password("Passw0rd"))
        self.assertFalse(auth_service.is_valid_password("Pass0rd"))
        self.assertFalse(auth_service.is_valid_password("password1"))
        self.assertFalse(auth_service.is_valid_password("PASSWORD1"))
        self.assertFalse(auth_service.is_valid_password("Password"))

    def test_name(self):
        self.assertTrue(auth_service.is_valid_name("Jo"))
        self.assertTrue(auth_service.is_valid_name("דנה כהן"))
        self.assertFalse(auth_service.is_valid_name("J"))
        self.assertFalse(auth_service.is_valid_name("R2D2"))


class TestTokens(unittest.TestCase):
    def test_access_and_refresh_use_distinct_secrets(self):
        access = auth_service.create_access_token("u1")
        refresh = auth_service.create_refresh_token("u1")
        self.assertEqual(auth_service.verify_access_token(access), "u1")
        self.assertEqual(auth_service.verify_refresh_token(refresh), "u1")
        self.assertIsNone(auth_service.verify_access_token(refresh))
        self.assertIsNone(auth_service.verify_refresh_token(access))

    def test_expired_token_is_rejected(self):
        past = datetime.now(timezone.utc) - timedelta(minutes=5)
        token = jwt.encode({"userId": "u1", "exp": past}, auth_service.JWT_SECRET, algorithm=auth_service.JWT_ALG)
        self.assertIsNone(auth_service.verify_access_token(token))

    def test_garbage_token_is_rejected(self):
        self.assertIsNone(auth_service.verify_access_token("not-a-token"))


class TestRegister(AuthTestCase):
    def test_short_password_is_rejected(self):
        with self.assertRaises(ValidationError):
            self.register(password="Pa1")
        self.assertEqual(auth_service.load_users(self.store), [])

    def test_register_returns_token_pair_and_projection(self):
        result = self.register()
        self.assertIn("token", result)
        self.assertIn("refreshToken", result)
        user = result["user"]
        self.assertFalse(user["isEmailVerified"])
        self.assertEqual(user["email"], "a@b.com")
        self.assertNotIn("password", user)
        self.assertNotIn("emailVerificationToken", user)
        self.assertEqual(auth_service.verify_access_token(result["token"]), user["id"])

        stored = self.stored_user()
        self.assertNotEqual(stored.password, "Passw0rd")
        self.assertTrue(auth_service.verify_password("Passw0rd", stored.password))
        self.mail.send_verification_email.assert_called_once_with(
            "a@b.com", "Alice Smith", stored.email_verification_token
        )

    def test_invalid_name_and_email(self):
        with self.assertRaises(ValidationError):
            self.register(name="X")
        with self.assertRaises(ValidationError):
            self.register(email="not-an-email")

    def test_duplicate_email_is_case_insensitive(self):
        self.register()
        with self.assertRaises(Conflict):
            self.register(email="A@B.COM")

    def test_mail_failure_does_not_fail_registration(self):
        self.mail.send_verification_email.return_value = False
        result = self.register()
        self.assertIn("token", result)

    def test_unreadable_users_file_is_not_overwritten(self):
        path = self.store.path("users")
        with open(path, "w", encoding="utf-8") as f:
            f.write('[{"id": "old", "email": "old@x.com", "na')
        with open(path, "rb") as f:
            before = f.read()

        fresh = JsonStore(self.tmp.name)
        with self.assertRaises(StoreError):
            auth_service.register(fresh, "Alice", "a@b.com", "Passw0rd")
        with open(path, "rb") as f:
            self.assertEqual(f.read(), before)


class TestLogin(AuthTestCase):
    def setUp(self):
        super().setUp()
        self.register()

    def test_login_success_stamps_last_login(self):
        result = auth_service.login(self.store, "A@b.com", "Passw0rd")
        self.assertIsNotNone(result["user"]["lastLoginAt"])
        self.assertIsNotNone(self.stored_user().last_login_at)

    def test_wrong_password_and_unknown_email_look_the_same(self):
        with self.assertRaises(Unauthorized) as wrong_password:
            auth_service.login(self.store, "a@b.com", "Wrong0pass")
        with self.assertRaises(Unauthorized) as unknown_email:
            auth_service.login(self.store, "nobody@b.com", "Passw0rd")
        self.assertEqual(wrong_password.exception.message, unknown_email.exception.message)

    def test_refresh(self):
        pair = auth_service.login(self.store, "a@b.com", "Passw0rd")
        refreshed = auth_service.refresh(self.store, pair["refreshToken"])
        self.assertEqual(refreshed["user"]["id"], pair["user"]["id"])
        with self.assertRaises(Unauthorized):
            auth_service.refresh(self.store, pair["token"])


class TestEmailVerification(AuthTestCase):
    def test_verify_email(self):
        self.register()
        token = self.stored_user().email_verification_token

        result = auth_service.verify_email(self.store, token)
        self.assertTrue(result["user"]["isEmailVerified"])
        user = self.stored_user()
        self.assertTrue(user.is_email_verified)
        self.assertIsNone(user.email_verification_token)
        self.mail.send_welcome_email.assert_called_once_with("a@b.com", "Alice Smith")

        with self.assertRaises(InvalidToken):
            auth_service.verify_email(self.store, token)

    def test_unknown_token(self):
        self.register()
        with self.assertRaises(InvalidToken):
            auth_service.verify_email(self.store, "nope")
        with self.assertRaises(InvalidToken):
            auth_service.verify_email(self.store, "")


class TestPasswordReset(AuthTestCase):
    def setUp(self):
        super().setUp()
        self.register()

    def test_request_is_generic(self):
        known = auth_service.request_password_reset(self.store, "a@b.com")
        unknown = auth_service.request_password_reset(self.store, "ghost@b.com")
        self.assertEqual(known, unknown)
        self.mail.send_password_reset_email.assert_called_once()

        user = self.stored_user()
        self.assertIsNotNone(user.reset_password_token)
        remaining = user.reset_password_expires - datetime.now(timezone.utc)
        self.assertTrue(timedelta(minutes=59) < remaining <= timedelta(hours=1))

    def test_request_with_blank_or_odd_email(self):
        generic = {"message": auth_service.RESET_REQUESTED}
        self.assertEqual(auth_service.request_password_reset(self.store, ""), generic)
        self.assertEqual(auth_service.request_password_reset(self.store, "not an email"), generic)
        self.mail.send_password_reset_email.assert_not_called()

    def test_confirm_replaces_password(self):
        auth_service.request_password_reset(self.store, "a@b.com")
        token = self.stored_user().reset_password_token

        auth_service.confirm_password_reset(self.store, token, "NewPassw0rd")
        user = self.stored_user()
        self.assertIsNone(user.reset_password_token)
        self.assertIsNone(user.reset_password_expires)
        auth_service.login(self.store, "a@b.com", "NewPassw0rd")
        with self.assertRaises(Unauthorized):
            auth_service.login(self.store, "a@b.com", "Passw0rd")

        with self.assertRaises(InvalidToken):
            auth_service.confirm_password_reset(self.store, token, "Other0pass")

    def test_expired_token(self):
        auth_service.request_password_reset(self.store, "a@b.com")
        users = auth_service.load_users(self.store)
        users[0].reset_password_expires = datetime.now(timezone.utc) - timedelta(seconds=1)
        auth_service.save_users(self.store, users)

        with self.assertRaises(InvalidToken):
            auth_service.confirm_password_reset(self.store, users[0].reset_password_token, "NewPassw0rd")

    def test_weak_new_password(self):
        auth_service.request_password_reset(self.store, "a@b.com")
        token = self.stored_user().reset_password_token
        with self.assertRaises(ValidationError):
            auth_service.confirm_password_reset(self.store, token, "weak")


if __name__ == "__main__":
    unittest.main()
