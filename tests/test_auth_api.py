"""API tests for /api/v1/auth using TestClient with an in-memory database and a mock mailer."""

import unittest
from collections.abc import Generator
from datetime import timedelta
from unittest.mock import MagicMock

from fastapi import Response
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from app.api.v1.auth import GENERIC_SERVER_ERROR, _to_http_error, get_mailer
from app.core.config import get_settings
from app.core.cookies import SessionCookieAdapter
from app.core.database import get_db
from app.core.security import PasswordHasher, TokenIssuer
from app.main import app
from app.models import Base
from app.services.errors import InvalidTokenError, MailError, PersistenceError
from app.services.user_store import SqlAlchemyUserStore

PREFIX = "/api/v1/auth"


class _ApiTestCase(unittest.TestCase):
    """Fresh database, mock mailer and TestClient per test."""

    def setUp(self) -> None:
        engine = create_engine(
            "sqlite://",
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
        Base.metadata.create_all(engine)
        self.SessionTesting = sessionmaker(bind=engine, autoflush=False)
        self.mailer = MagicMock()
        self.mailer.configured = True

        def override_get_db() -> Generator[Session, None, None]:
            db = self.SessionTesting()
            try:
                yield db
            finally:
                db.close()

        app.dependency_overrides[get_db] = override_get_db
        app.dependency_overrides[get_mailer] = lambda: self.mailer
        self.client = TestClient(app)
        self.settings = get_settings()

    def tearDown(self) -> None:
        app.dependency_overrides.clear()

    def _register(self, email: str = "a@x.com", password: str = "secret1", **extra: str):
        return self.client.post(f"{PREFIX}/register", json={"email": email, "password": password, **extra})

    def _login(self, email: str = "a@x.com", password: str = "secret1"):
        return self.client.post(f"{PREFIX}/login", json={"email": email, "password": password})

    def _reset_token_from_mail(self) -> str:
        return self.mailer.send.call_args.kwargs["text"].rsplit("/", 1)[-1]


class TestSessionScenario(_ApiTestCase):
    """register -> login (cookie) -> logout (cookie cleared)."""

    def test_register_login_logout(self) -> None:
        res = self._register()
        self.assertEqual(res.status_code, 201)
        account = res.json()
        self.assertEqual(account["email"], "a@x.com")
        self.assertEqual(account["role"], "USER")
        self.assertFalse(account["active"])
        self.assertNotIn("password_hash", account)
        self.assertNotIn("reset_token", account)
        self.assertNotIn("secret1", res.text)

        res = self._login()
        self.assertEqual(res.status_code, 200)
        self.assertEqual(res.headers["cache-control"], "no-store")
        cookie = res.headers["set-cookie"]
        self.assertIn("access_token=", cookie)
        self.assertIn("HttpOnly", cookie)
        self.assertIn("SameSite=strict", cookie)
        self.assertIn("Max-Age=3600", cookie)
        self.assertIn("Path=/", cookie)

        body = res.json()
        self.assertEqual(body["token_type"], "bearer")
        self.assertEqual(body["expires_in"], 3600)
        claims = TokenIssuer.from_settings(self.settings).verify(body["access_token"])
        self.assertEqual(claims["sub"], account["id"])
        self.assertEqual(claims["email"], "a@x.com")

        res = self.client.get(f"{PREFIX}/me")
        self.assertEqual(res.status_code, 200)
        self.assertEqual(res.json()["id"], account["id"])

        res = self.client.get(f"{PREFIX}/logout")
        self.assertEqual(res.status_code, 200)
        cleared = res.headers["set-cookie"]
        self.assertIn('access_token=""', cleared)
        self.assertIn("Max-Age=0", cleared)

    def test_logout_accepts_post(self) -> None:
        res = self.client.post(f"{PREFIX}/logout")
        self.assertEqual(res.status_code, 200)
        self.assertIn("Max-Age=0", res.headers["set-cookie"])


class TestRegisterApi(_ApiTestCase):
    def test_name_defaults_to_email(self) -> None:
        self.assertEqual(self._register().json()["name"], "a@x.com")

    def test_duplicate_email_conflict(self) -> None:
        self._register()
        res = self._register(password="another-password", name="Someone")
        self.assertEqual(res.status_code, 409)
        self.assertEqual(res.json(), {"detail": "User already exists"})

    def test_invalid_email_is_400(self) -> None:
        self.assertEqual(self._register(email="not-an-email").status_code, 400)

    def test_short_password_is_400(self) -> None:
        self.assertEqual(self._register(password="abc").status_code, 400)

    def test_confirmation_mismatch_is_400(self) -> None:
        res = self._register(confirmPassword="secret2")
        self.assertEqual(res.status_code, 400)
        self.assertIn("Passwords do not match", res.text)


class TestLoginApi(_ApiTestCase):
    def setUp(self) -> None:
        super().setUp()
        self._register()

    def test_unknown_email_and_wrong_password_identical(self) -> None:
        wrong_password = self._login(password="wrong-password")
        unknown_email = self._login(email="nobody@x.com")
        self.assertEqual(wrong_password.status_code, 401)
        self.assertEqual(unknown_email.status_code, 401)
        self.assertEqual(wrong_password.json(), unknown_email.json())
        self.assertEqual(wrong_password.json(), {"detail": "Invalid credentials"})
        self.assertNotIn("set-cookie", wrong_password.headers)

    def test_missing_field_is_400(self) -> None:
        res = self.client.post(f"{PREFIX}/login", json={"email": "a@x.com"})
        self.assertEqual(res.status_code, 400)


class TestPasswordResetApi(_ApiTestCase):
    def setUp(self) -> None:
        super().setUp()
        self._register()

    def _reset(self, token: str, password: str = "newpass1", confirm: str = "newpass1"):
        return self.client.post(
            f"{PREFIX}/reset-password/{token}",
            json={"password": password, "confirmPassword": confirm},
        )

    def test_forgot_then_reset_once(self) -> None:
        res = self.client.post(f"{PREFIX}/forgot-password", json={"email": "a@x.com"})
        self.assertEqual(res.status_code, 200)
        self.assertEqual(res.json(), {"message": "Email sent successfully"})
        token = self._reset_token_from_mail()
        self.assertIn(f"/api/v1/auth/reset-password-form/{token}", self.mailer.send.call_args.kwargs["html"])

        res = self._reset(token)
        self.assertEqual(res.status_code, 200)
        self.assertEqual(res.json(), {"message": "Password changed successfully"})

        res = self._reset(token, "newpass2", "newpass2")
        self.assertEqual(res.status_code, 401)
        self.assertEqual(res.json(), {"detail": "Invalid token"})

        self.assertEqual(self._login(password="newpass1").status_code, 200)
        self.assertEqual(self._login(password="secret1").status_code, 401)

    def test_forgot_unknown_email(self) -> None:
        res = self.client.post(f"{PREFIX}/forgot-password", json={"email": "nobody@x.com"})
        self.assertEqual(res.status_code, 401)
        self.assertEqual(res.json(), {"detail": "User not found"})

    def test_forgot_invalid_email_is_400(self) -> None:
        res = self.client.post(f"{PREFIX}/forgot-password", json={"email": "nope"})
        self.assertEqual(res.status_code, 400)

    def test_mail_failure_is_reported_and_token_withdrawn(self) -> None:
        self.mailer.send.side_effect = MailError("Failed to send email: connection refused")
        res = self.client.post(f"{PREFIX}/forgot-password", json={"email": "a@x.com"})
        self.assertEqual(res.status_code, 502)
        db = self.SessionTesting()
        try:
            self.assertIsNone(SqlAlchemyUserStore(db).find_by_email("a@x.com").reset_token)
        finally:
            db.close()

    def test_reset_mismatch_is_400(self) -> None:
        self.client.post(f"{PREFIX}/forgot-password", json={"email": "a@x.com"})
        token = self._reset_token_from_mail()
        res = self._reset(token, "newpass1", "newpass2")
        self.assertEqual(res.status_code, 400)
        # The token survives a rejected request
        self.assertEqual(self._reset(token).status_code, 200)

    def test_reset_unknown_token(self) -> None:
        self.assertEqual(self._reset("made-up-token").status_code, 401)

    def test_reset_form_embeds_token(self) -> None:
        res = self.client.get(f"{PREFIX}/reset-password-form/abc123")
        self.assertEqual(res.status_code, 200)
        self.assertIn("text/html", res.headers["content-type"])
        self.assertIn("/api/v1/auth/reset-password/abc123", res.text)


class TestCurrentUserApi(_ApiTestCase):
    def setUp(self) -> None:
        super().setUp()
        self.account = self._register().json()
        self.issuer = TokenIssuer.from_settings(self.settings)

    def test_bearer_token(self) -> None:
        token = self.issuer.issue({"sub": self.account["id"], "email": "a@x.com"})
        res = self.client.get(f"{PREFIX}/me", headers={"Authorization": f"Bearer {token}"})
        self.assertEqual(res.status_code, 200)
        self.assertEqual(res.json(), {"id": self.account["id"], "email": "a@x.com", "role": "USER"})

    def test_missing_token(self) -> None:
        res = self.client.get(f"{PREFIX}/me")
        self.assertEqual(res.status_code, 401)
        self.assertEqual(res.json(), {"detail": "Not authenticated"})

    def test_expired_and_invalid_are_distinct(self) -> None:
        expired = self.issuer.issue({"sub": self.account["id"]}, ttl=timedelta(seconds=-5))
        res = self.client.get(f"{PREFIX}/me", headers={"Authorization": f"Bearer {expired}"})
        self.assertEqual(res.status_code, 401)
        self.assertEqual(res.json(), {"detail": "Token expired"})

        forged = TokenIssuer(secret="attacker-secret").issue({"sub": self.account["id"]})
        res = self.client.get(f"{PREFIX}/me", headers={"Authorization": f"Bearer {forged}"})
        self.assertEqual(res.status_code, 401)
        self.assertEqual(res.json(), {"detail": "Invalid token"})

    def test_token_for_deleted_account(self) -> None:
        token = self.issuer.issue({"sub": "no-such-account"})
        res = self.client.get(f"{PREFIX}/me", headers={"Authorization": f"Bearer {token}"})
        self.assertEqual(res.status_code, 401)


class TestAdminUsersApi(_ApiTestCase):
    def setUp(self) -> None:
        super().setUp()
        self._register()
        db = self.SessionTesting()
        try:
            SqlAlchemyUserStore(db).create(
                {
                    "email": "admin@x.com",
                    "name": "Admin",
                    "password_hash": PasswordHasher(rounds=4).hash("adminpass"),
                    "role": "ADMIN",
                    "active": True,
                }
            )
        finally:
            db.close()

    def _bearer(self, email: str, password: str) -> dict[str, str]:
        token = self._login(email, password).json()["access_token"]
        return {"Authorization": f"Bearer {token}"}

    def test_admin_lists_users(self) -> None:
        res = self.client.get(f"{PREFIX}/users", headers=self._bearer("admin@x.com", "adminpass"))
        self.assertEqual(res.status_code, 200)
        emails = [u["email"] for u in res.json()["users"]]
        self.assertEqual(emails, ["a@x.com", "admin@x.com"])
        self.assertNotIn("password_hash", res.text)

    def test_user_role_forbidden(self) -> None:
        res = self.client.get(f"{PREFIX}/users", headers=self._bearer("a@x.com", "secret1"))
        self.assertEqual(res.status_code, 403)

    def test_anonymous_unauthorized(self) -> None:
        self.assertEqual(self.client.get(f"{PREFIX}/users").status_code, 401)


class TestHealthApi(_ApiTestCase):
    def test_health(self) -> None:
        res = self.client.get("/api/v1/health/")
        self.assertEqual(res.status_code, 200)
        body = res.json()
        self.assertEqual(body["status"], "ok")
        self.assertEqual(body["database"], "connected")
        self.assertEqual(body["mail"], "configured")


class TestErrorMapping(unittest.TestCase):
    """Collaborator failure details are hidden in prod; client errors never are."""

    def test_prod_hides_collaborator_details(self) -> None:
        settings = MagicMock()
        settings.is_production = True
        err = _to_http_error(PersistenceError("duplicate key value violates constraint"), settings)
        self.assertEqual(err.status_code, 500)
        self.assertEqual(err.detail, GENERIC_SERVER_ERROR)
        err = _to_http_error(MailError("Failed to send email: 535 auth"), settings)
        self.assertEqual(err.status_code, 502)
        self.assertEqual(err.detail, GENERIC_SERVER_ERROR)

    def test_dev_passes_message_through(self) -> None:
        settings = MagicMock()
        settings.is_production = False
        err = _to_http_error(MailError("Failed to send email: 535 auth"), settings)
        self.assertEqual(err.detail, "Failed to send email: 535 auth")

    def test_token_errors_keep_message_in_prod(self) -> None:
        settings = MagicMock()
        settings.is_production = True
        err = _to_http_error(InvalidTokenError(), settings)
        self.assertEqual((err.status_code, err.detail), (401, "Invalid token"))


class TestSessionCookieAdapter(unittest.TestCase):
    def test_secure_flag_follows_environment(self) -> None:
        settings = MagicMock()
        settings.SESSION_COOKIE_NAME = "access_token"
        settings.is_production = True
        settings.JWT_EXPIRE_MINUTES = 60
        adapter = SessionCookieAdapter.from_settings(settings)
        response = Response()
        adapter.attach(response, "tok")
        cookie = response.headers["set-cookie"]
        self.assertIn("access_token=tok", cookie)
        self.assertIn("Secure", cookie)
        self.assertIn("HttpOnly", cookie)
        self.assertIn("SameSite=strict", cookie)
        self.assertIn("Max-Age=3600", cookie)

    def test_dev_cookie_not_secure(self) -> None:
        response = Response()
        SessionCookieAdapter(secure=False).attach(response, "tok")
        self.assertNotIn("Secure", response.headers["set-cookie"])


if __name__ == "__main__":
    unittest.main()
