from datetime import timedelta

from tests.base import StorefrontApiBase

from storefront.core.config import settings
from storefront.core.security import create_jwt
from storefront.models.refresh_token import UserRefreshToken


class AuthApiTests(StorefrontApiBase):
    def _register(self, email="new@example.com", password="secret123", name="New <b>User</b>"):
        return self.client.post("/auth/register", json={"email": email, "password": password, "name": name})

    def test_register_creates_customer_and_sets_refresh_cookie(self):
        response = self._register()
        self.assertEqual(response.status_code, 201)
        body = response.json()
        self.assertTrue(body["success"])
        self.assertTrue(body["accessToken"])
        self.assertEqual(body["user"]["email"], "new@example.com")
        self.assertEqual(body["user"]["name"], "New &lt;b&gt;User&lt;/b&gt;")
        self.assertEqual(body["user"]["roles"], ["customer"])
        self.assertNotIn("passwordHash", body["user"])
        self.assertIn(settings.REFRESH_COOKIE_NAME, response.cookies)

        with self.SessionLocal() as db:
            stored = db.query(UserRefreshToken).all()
            self.assertEqual(len(stored), 1)
            self.assertNotEqual(stored[0].token_hash, response.cookies[settings.REFRESH_COOKIE_NAME])

    def test_register_validation(self):
        self.assertEqual(self._register(email="").status_code, 400)
        self.assertEqual(self._register(email="not-an-email").status_code, 400)
        self.assertEqual(self._register(password="123").status_code, 400)

    def test_register_duplicate_email_is_409(self):
        self.create_user(email="taken@example.com")
        self.assertEqual(self._register(email="Taken@Example.com").status_code, 409)

    def test_login(self):
        self.create_user(email="buyer@example.com", password="secret123")
        ok = self.client.post("/auth/login", json={"email": "buyer@example.com", "password": "secret123"})
        self.assertEqual(ok.status_code, 200)
        self.assertTrue(ok.json()["accessToken"])

        wrong = self.client.post("/auth/login", json={"email": "buyer@example.com", "password": "nope-nope"})
        self.assertEqual(wrong.status_code, 401)
        missing = self.client.post("/auth/login", json={"email": "buyer@example.com"})
        self.assertEqual(missing.status_code, 400)

    def test_token_rotation_replaces_stored_hash(self):
        self._register()
        old_cookie = self.client.cookies.get(settings.REFRESH_COOKIE_NAME)

        rotated = self.client.get("/auth/token")
        self.assertEqual(rotated.status_code, 200)
        new_cookie = rotated.cookies.get(settings.REFRESH_COOKIE_NAME)
        self.assertTrue(new_cookie)
        self.assertNotEqual(new_cookie, old_cookie)

        self.client.cookies.clear()
        self.client.cookies.set(settings.REFRESH_COOKIE_NAME, old_cookie)
        replay = self.client.get("/auth/token")
        self.assertEqual(replay.status_code, 401)

    def test_token_without_cookie_is_401(self):
        self.assertEqual(self.client.get("/auth/token").status_code, 401)

    def test_logout_revokes_refresh_token(self):
        self._register()
        cookie = self.client.cookies.get(settings.REFRESH_COOKIE_NAME)
        response = self.client.get("/auth/logout")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {"success": True})
        with self.SessionLocal() as db:
            self.assertEqual(db.query(UserRefreshToken).count(), 0)

        self.client.cookies.clear()
        self.client.cookies.set(settings.REFRESH_COOKIE_NAME, cookie)
        again = self.client.get("/auth/token")
        self.assertEqual(again.status_code, 401)

    def test_current_user_and_roles(self):
        admin = self.create_user(email="admin@example.com", admin=True)
        me = self.client.get("/auth/user", headers=self.auth_headers(admin))
        self.assertEqual(me.status_code, 200)
        self.assertEqual(me.json()["user"]["email"], "admin@example.com")

        roles = self.client.get("/auth/user/roles", headers=self.auth_headers(admin))
        self.assertEqual(roles.json(), ["customer", "admin"])

    def test_invalid_and_expired_tokens(self):
        invalid = self.client.get("/auth/user", headers={"Authorization": "Bearer garbage"})
        self.assertEqual(invalid.status_code, 401)

        user = self.create_user(email="old@example.com")
        expired = create_jwt(
            {"sub": str(user.id), "roles": ["customer"], "type": "access"},
            settings.access_token_secret,
            timedelta(minutes=-1),
        )
        response = self.client.get("/auth/user", headers={"Authorization": f"Bearer {expired}"})
        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.json()["detail"], "Token expired")

    def test_refresh_token_is_not_an_access_token(self):
        self._register()
        refresh = self.client.cookies.get(settings.REFRESH_COOKIE_NAME)
        response = self.client.get("/auth/user", headers={"Authorization": f"Bearer {refresh}"})
        self.assertEqual(response.status_code, 401)

    def test_update_me_only_touches_name_and_email(self):
        user = self.create_user(email="me@example.com", name="Me")
        response = self.client.patch(
            "/auth/me",
            json={"name": "Renamed", "roles": ["admin"]},
            headers=self.auth_headers(user),
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["user"]["name"], "Renamed")
        self.assertEqual(response.json()["user"]["roles"], ["customer"])

        bad = self.client.patch("/auth/me", json={"email": "broken"}, headers=self.auth_headers(user))
        self.assertEqual(bad.status_code, 400)
