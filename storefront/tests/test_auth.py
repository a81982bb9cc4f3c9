import unittest

import jwt

from storefront.auth import AuthSession
from storefront.db import InMemoryDbClient, Role
from storefront.errors import AuthenticationError, ConflictError
from storefront.schemas import LoginRequest, SignUpRequest
from storefront.security import CsrfGuard, PasswordHasher, TokenIssuer

SECRET = "test-secret-key-with-enough-length-for-hs256"


class AuthSessionTests(unittest.TestCase):
    def setUp(self):
        self.db = InMemoryDbClient()
        self.auth = AuthSession(
            self.db,
            TokenIssuer(secret=SECRET),
            CsrfGuard(),
            PasswordHasher(time_cost=1, memory_cost=8, parallelism=1),
        )
        self.bob = self.auth.sign_up(
            SignUpRequest(
                user_name="bob",
                password="rightpass",
                contact="555-0100",
                address="1 Main St",
                role=Role.CUSTOMER,
            )
        ).user

    def _login(self, **overrides):
        data = {"user_name": "bob", "password": "rightpass", "role": Role.CUSTOMER}
        data.update(overrides)
        return self.auth.login(LoginRequest(**data))

    def test_login_issues_token_for_user(self):
        grant = self._login()
        claims = jwt.decode(grant.session_token, SECRET, algorithms=["HS256"])
        self.assertEqual(claims["sub"], self.bob.user_id)
        self.assertEqual(claims["exp"] - claims["iat"], 3 * 24 * 60 * 60)
        self.assertEqual(grant.max_age, 3 * 24 * 60 * 60)
        self.assertEqual(grant.user.user_id, self.bob.user_id)

    def test_login_strips_credential_secret(self):
        grant = self._login()
        self.assertIsNone(grant.user.password_hash)
        self.assertNotIn("password_hash", grant.user.as_dict())
        # stored record still has it
        self.assertIsNotNone(self.db.get_user(self.bob.user_id).password_hash)

    def test_csrf_token_differs_per_session(self):
        first = self._login()
        second = self._login()
        self.assertNotEqual(first.csrf_token, second.csrf_token)
        self.assertNotIn("bob", first.csrf_token)

    def test_wrong_password_fails(self):
        with self.assertRaises(AuthenticationError):
            self._login(password="wrongpass")

    def test_unknown_user_fails(self):
        with self.assertRaises(AuthenticationError):
            self._login(user_name="alice")

    def test_role_mismatch_fails(self):
        with self.assertRaises(AuthenticationError):
            self._login(role=Role.MERCHANT)

    def test_signup_with_taken_username_conflicts(self):
        with self.assertRaises(ConflictError) as ctx:
            self.auth.sign_up(
                SignUpRequest(user_name="bob", password="other", role=Role.MERCHANT)
            )
        self.assertEqual(ctx.exception.status_code, 409)
        self.assertEqual(self.db.count_users(), 1)

    def test_signup_issues_session(self):
        grant = self.auth.sign_up(
            SignUpRequest(user_name="carol", password="pw", role=Role.MERCHANT)
        )
        claims = jwt.decode(grant.session_token, SECRET, algorithms=["HS256"])
        self.assertEqual(claims["sub"], grant.user.user_id)
        self.assertEqual(grant.user.role, Role.MERCHANT)
        self.assertEqual(self.db.count_users(), 2)

    def test_google_login_requires_matching_stored_token(self):
        with self.assertRaises(AuthenticationError):
            self._login(login_type="googleLogin", google_auth_access_token="ya29.token")

        self.db.update_user(self.bob.user_id, google_auth_access_token="ya29.token")
        with self.assertRaises(AuthenticationError):
            self._login(login_type="googleLogin", google_auth_access_token="ya29.other")
        with self.assertRaises(AuthenticationError):
            self._login(login_type="googleLogin", password="rightpass")

        grant = self._login(
            login_type="googleLogin",
            password=None,
            google_auth_access_token="ya29.token",
            image="data:image/png;base64,AAAA",
        )
        self.assertEqual(grant.user.user_id, self.bob.user_id)
        self.assertEqual(grant.user.image, "data:image/png;base64,AAAA")
        self.assertEqual(grant.user.google_auth_access_token, "ya29.token")


if __name__ == "__main__":
    unittest.main()
