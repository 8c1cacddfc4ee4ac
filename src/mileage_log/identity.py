from __future__ import annotations

from dataclasses import dataclass, field
import logging
import re
from typing import Any

import requests

from mileage_log.config import Settings
from mileage_log.errors import AuthenticationError
from mileage_log.models import Session

logger = logging.getLogger(__name__)

MISSING_CREDENTIALS = (
    "Missing Supabase credentials. Set MILEAGE_SUPABASE_URL and "
    "MILEAGE_SUPABASE_ANON_KEY in your environment."
)


def strip_quotes(value: str | None) -> str | None:
    if not value:
        return value
    return re.sub(r"^['\"]|['\"]$", "", value.strip())


def normalize_url(value: str | None) -> str | None:
    trimmed = strip_quotes(value)
    if not trimmed:
        return trimmed
    if not re.match(r"^https?://", trimmed, flags=re.IGNORECASE):
        return "https://" + trimmed.lstrip("/").rstrip("/")
    return trimmed.rstrip("/")


@dataclass
class BackendClient:
    url: str
    anon_key: str
    http: requests.Session = field(default_factory=requests.Session)
    timeout: float | None = None

    @property
    def rest_url(self) -> str:
        return f"{self.url}/rest/v1"

    @property
    def auth_url(self) -> str:
        return f"{self.url}/auth/v1"

    def auth_headers(self, access_token: str | None = None) -> dict[str, str]:
        return {
            "apikey": self.anon_key,
            "Authorization": f"Bearer {access_token or self.anon_key}",
        }


@dataclass(frozen=True)
class ClientInitResult:
    client: BackendClient | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.client is not None and self.error is None


def create_backend_client(settings: Settings, http: requests.Session | None = None) -> ClientInitResult:
    url = normalize_url(settings.supabase_url)
    anon_key = strip_quotes(settings.supabase_anon_key)
    if not url or not anon_key:
        logger.warning(MISSING_CREDENTIALS)
        return ClientInitResult(error=MISSING_CREDENTIALS)

    client = BackendClient(
        url=url,
        anon_key=anon_key,
        http=http or requests.Session(),
        timeout=settings.request_timeout,
    )
    return ClientInitResult(client=client)


def session_from_payload(payload: dict[str, Any], access_token: str | None = None) -> Session:
    user = payload.get("user") or payload
    metadata = user.get("user_metadata") or {}
    user_id = user.get("id")
    if not user_id:
        raise AuthenticationError("Identity provider response did not include a user id.")
    return Session(
        user_id=str(user_id),
        display_name=(metadata.get("full_name") or "").strip(),
        access_token=access_token or payload.get("access_token"),
    )


class SupabaseAuthAdapter:
    """Resolves sign-in credentials and bearer tokens into a :class:`Session`."""

    def __init__(self, client: BackendClient):
        self.client = client

    def _post(self, path: str, body: dict[str, Any], params: dict[str, str] | None = None) -> dict[str, Any]:
        try:
            response = self.client.http.post(
                f"{self.client.auth_url}/{path}",
                params=params,
                json=body,
                headers=self.client.auth_headers(),
                timeout=self.client.timeout,
            )
        except requests.RequestException as exc:
            logger.warning("Identity provider unreachable: %s", exc)
            raise AuthenticationError(
                "Unable to reach the identity provider. Confirm your connection and credentials."
            ) from exc
        if not response.ok:
            raise AuthenticationError(_error_message(response))
        return response.json()

    def sign_in(self, email: str, password: str) -> Session:
        payload = self._post("token", {"email": email, "password": password}, params={"grant_type": "password"})
        return session_from_payload(payload)

    def sign_up(self, email: str, password: str, full_name: str) -> Session | None:
        """Create an account. Returns None while email confirmation is pending."""
        if not full_name.strip():
            raise AuthenticationError("Please provide your full name to create an account.")
        payload = self._post(
            "signup",
            {"email": email, "password": password, "data": {"full_name": full_name.strip()}},
        )
        if not payload.get("access_token"):
            logger.info("Sign-up for %s awaiting email confirmation", email)
            return None
        return session_from_payload(payload)

    def get_session(self, access_token: str) -> Session:
        try:
            response = self.client.http.get(
                f"{self.client.auth_url}/user",
                headers=self.client.auth_headers(access_token),
                timeout=self.client.timeout,
            )
        except requests.RequestException as exc:
            logger.warning("Identity provider unreachable: %s", exc)
            raise AuthenticationError("Unable to reach the identity provider.") from exc
        if not response.ok:
            raise AuthenticationError(_error_message(response))
        return session_from_payload(response.json(), access_token=access_token)


def _error_message(response: requests.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        body = {}
    if isinstance(body, dict):
        for key in ("error_description", "msg", "message", "error"):
            if body.get(key):
                return str(body[key])
    return "Authentication failed. Please try again."
