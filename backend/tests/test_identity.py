import unittest
from unittest import mock

import requests

from app.core.settings import settings
from app.services.identity import IdentityProviderError, SupabaseAuthClient, build_identity_client


class FakeResponse:
    def __init__(self, status_code: int, payload=None, text: str = "") -> None:
        self.status_code = status_code
        self._payload = payload
        self.text = text

    def json(self):
        if self._payload is None:
            raise ValueError("no json")
        return self._payload


class FakeSession:
    def __init__(self, *responses) -> None:
        self.responses = list(responses)
        self.calls: list[dict] = []
        self.closed = False

    def post(self, url, **kwargs):
        self.calls.append({"url": url, **kwargs})
        item = self.responses.pop(0)
        if isinstance(item, Exception):
            raise item
        return item

    def close(self):
        self.closed = True


def _client(*responses) -> tuple[SupabaseAuthClient, FakeSession]:
    session = FakeSession(*responses)
    return SupabaseAuthClient(url="https://project.supabase.co/", api_key="anon-key", session=session), session


class TestSignUp(unittest.TestCase):
    def test_parses_user_when_confirmation_required(self):
        client, session = _client(FakeResponse(200, {"id": "u-1", "email": "A@Example.com"}))
        user = client.sign_up("a@example.com", "secret123", metadata={"name": "A"})

        self.assertEqual((user.id, user.email), ("u-1", "a@example.com"))
        call = session.calls[0]
        self.assertEqual(call["url"], "https://project.supabase.co/auth/v1/signup")
        self.assertEqual(call["json"], {"email": "a@example.com", "password": "secret123", "data": {"name": "A"}})
        self.assertEqual(call["headers"]["apikey"], "anon-key")

    def test_parses_user_from_autoconfirm_session(self):
        payload = {"access_token": "jwt", "user": {"id": "u-2", "email": "b@example.com"}}
        client, _ = _client(FakeResponse(200, payload))
        self.assertEqual(client.sign_up("b@example.com", "secret123").id, "u-2")

    def test_rejection_carries_provider_message(self):
        client, _ = _client(FakeResponse(422, {"msg": "User already registered"}))
        with self.assertRaises(IdentityProviderError) as ctx:
            client.sign_up("a@example.com", "secret123")
        self.assertEqual(str(ctx.exception), "User already registered")
        self.assertTrue(ctx.exception.is_rejection)

    def test_missing_user_id_is_an_error(self):
        client, _ = _client(FakeResponse(200, {"email": "a@example.com"}))
        with self.assertRaises(IdentityProviderError):
            client.sign_up("a@example.com", "secret123")


class TestSignIn(unittest.TestCase):
    def test_password_grant(self):
        payload = {"access_token": "jwt-abc", "refresh_token": "r-1", "user": {"id": "u-1", "email": "a@example.com"}}
        client, session = _client(FakeResponse(200, payload))
        result = client.sign_in_with_password("a@example.com", "secret123")

        self.assertEqual(result.access_token, "jwt-abc")
        self.assertEqual(result.refresh_token, "r-1")
        self.assertEqual(result.user.id, "u-1")
        self.assertEqual(session.calls[0]["url"], "https://project.supabase.co/auth/v1/token")
        self.assertEqual(session.calls[0]["params"], {"grant_type": "password"})

    def test_bad_credentials(self):
        client, _ = _client(FakeResponse(400, {"error": "invalid_grant", "error_description": "Invalid login credentials"}))
        with self.assertRaises(IdentityProviderError) as ctx:
            client.sign_in_with_password("a@example.com", "nope")
        self.assertEqual(ctx.exception.status_code, 400)
        self.assertEqual(str(ctx.exception), "Invalid login credentials")

    def test_transport_failure_is_not_a_rejection(self):
        client, _ = _client(requests.ConnectionError("connection refused"))
        with self.assertRaises(IdentityProviderError) as ctx:
            client.sign_in_with_password("a@example.com", "secret123")
        self.assertIsNone(ctx.exception.status_code)
        self.assertFalse(ctx.exception.is_rejection)

    def test_server_error_is_not_a_rejection(self):
        client, _ = _client(FakeResponse(503, None, text="upstream down"))
        with self.assertRaises(IdentityProviderError) as ctx:
            client.sign_in_with_password("a@example.com", "secret123")
        self.assertFalse(ctx.exception.is_rejection)
        self.assertEqual(str(ctx.exception), "upstream down")


class TestBuild(unittest.TestCase):
    def test_unconfigured_returns_none(self):
        with mock.patch.object(settings, "supabase_url", None):
            self.assertIsNone(build_identity_client())

    def test_close_releases_session(self):
        client, session = _client()
        client.close()
        self.assertTrue(session.closed)


if __name__ == "__main__":
    unittest.main()
