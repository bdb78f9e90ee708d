from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

import requests

from app.core.settings import settings

logger = logging.getLogger(__name__)


class IdentityProviderError(RuntimeError):
    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code

    @property
    def is_rejection(self) -> bool:
        return self.status_code is not None and 400 <= self.status_code < 500


@dataclass(frozen=True)
class IdentityUser:
    id: str
    email: str


@dataclass(frozen=True)
class IdentitySession:
    user: IdentityUser
    access_token: str
    refresh_token: str | None = None


def _error_message(resp: requests.Response) -> str:
    try:
        body = resp.json()
    except ValueError:
        return (resp.text or "")[:300] or f"HTTP {resp.status_code}"
    if isinstance(body, dict):
        for key in ("msg", "error_description", "message", "error"):
            value = body.get(key)
            if isinstance(value, str) and value.strip():
                return value.strip()
    return f"HTTP {resp.status_code}"


def _parse_user(payload: Any) -> IdentityUser:
    if not isinstance(payload, dict):
        raise IdentityProviderError("Identity provider returned no user")
    user_id = str(payload.get("id") or "").strip()
    if not user_id:
        raise IdentityProviderError("Identity provider returned a user without id")
    return IdentityUser(id=user_id, email=str(payload.get("email") or "").strip().lower())


class SupabaseAuthClient:
    """Password sign-up and sign-in against the Supabase Auth REST API."""

    def __init__(
        self,
        *,
        url: str,
        api_key: str,
        timeout_s: float = 10.0,
        session: requests.Session | None = None,
    ) -> None:
        self._base_url = f"{url.rstrip('/')}/auth/v1"
        self._api_key = api_key
        self._timeout_s = timeout_s
        self._session = session or requests.Session()

    def close(self) -> None:
        self._session.close()

    def _post(self, path: str, *, payload: dict[str, Any], params: dict[str, str] | None = None) -> dict[str, Any]:
        try:
            resp = self._session.post(
                f"{self._base_url}{path}",
                params=params,
                json=payload,
                headers={
                    "apikey": self._api_key,
                    "authorization": f"Bearer {self._api_key}",
                    "accept": "application/json",
                },
                timeout=self._timeout_s,
            )
        except requests.RequestException as exc:
            logger.warning("identity.request_failed path=%s error=%s", path, exc)
            raise IdentityProviderError(f"Identity provider request failed: {exc}") from exc

        if resp.status_code >= 400:
            message = _error_message(resp)
            logger.info("identity.rejected path=%s status=%s message=%s", path, resp.status_code, message)
            raise IdentityProviderError(message, status_code=int(resp.status_code))

        try:
            data = resp.json()
        except ValueError as exc:
            raise IdentityProviderError("Identity provider returned invalid JSON") from exc
        return data if isinstance(data, dict) else {}

    def sign_up(self, email: str, password: str, *, metadata: dict[str, Any] | None = None) -> IdentityUser:
        payload: dict[str, Any] = {"email": email, "password": password}
        if metadata:
            payload["data"] = metadata
        data = self._post("/signup", payload=payload)
        # Autoconfirm projects answer with a session wrapping the user.
        user = data.get("user") if isinstance(data.get("user"), dict) else data
        return _parse_user(user)

    def sign_in_with_password(self, email: str, password: str) -> IdentitySession:
        data = self._post(
            "/token",
            params={"grant_type": "password"},
            payload={"email": email, "password": password},
        )
        token = str(data.get("access_token") or "").strip()
        if not token:
            raise IdentityProviderError("Identity provider returned no access token")
        return IdentitySession(
            user=_parse_user(data.get("user")),
            access_token=token,
            refresh_token=(str(data.get("refresh_token") or "").strip() or None),
        )


def build_identity_client() -> SupabaseAuthClient | None:
    if not settings.supabase_url or not settings.supabase_anon_key:
        logger.warning("identity.disabled reason=SUPABASE_URL/SUPABASE_ANON_KEY not set")
        return None
    return SupabaseAuthClient(
        url=settings.supabase_url,
        api_key=settings.supabase_anon_key,
        timeout_s=settings.supabase_timeout_s,
    )
