from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Protocol

import httpx

from crosspost.core.errors import UpstreamError, UpstreamTimeoutError
from crosspost.core.models import MediaFiles, SocialConnection


@dataclass
class TokenGrant:
    access_token: str = field(repr=False)
    refresh_token: str | None = field(default=None, repr=False)
    expires_in: int | None = None


@dataclass
class PlatformProfile:
    platform_user_id: str
    username: str | None = None
    display_name: str | None = None


@dataclass
class PublishedPost:
    post_id: str
    post_url: str


class OAuthAdapter(Protocol):
    def authorization_url(self, redirect_uri: str, state: str, code_challenge: str) -> str: ...

    def exchange_code(self, code: str, redirect_uri: str, code_verifier: str) -> TokenGrant: ...

    def fetch_profile(self, access_token: str) -> PlatformProfile: ...

    def refresh_token(self, refresh_token: str) -> TokenGrant: ...


class PublishAdapter(Protocol):
    def publish(
        self,
        content: str,
        media: MediaFiles | None,
        connection: SocialConnection,
        access_token: str,
    ) -> PublishedPost: ...


@contextmanager
def upstream_call(label: str) -> Iterator[None]:
    """Translate transport failures into typed upstream errors."""
    try:
        yield
    except httpx.TimeoutException as exc:
        raise UpstreamTimeoutError(f"{label} timed out") from exc
    except httpx.HTTPError as exc:
        raise UpstreamError(f"{label} failed: {exc.__class__.__name__}") from exc


def checked_json(resp: Any, label: str) -> dict[str, Any]:
    if resp.status_code >= 400:
        raise UpstreamError(f"{label} failed: status={resp.status_code}", status_code=resp.status_code)
    return safe_json(resp, label)


def safe_json(resp: Any, label: str) -> dict[str, Any]:
    try:
        payload = resp.json()
    except ValueError as exc:
        raise UpstreamError(f"{label} returned non-JSON response") from exc
    if not isinstance(payload, dict):
        raise UpstreamError(f"{label} returned invalid JSON payload")
    return payload


def grant_from_payload(payload: dict[str, Any], label: str, default_expires_in: int | None = None) -> TokenGrant:
    access_token = str(payload.get("access_token") or "").strip()
    if not access_token:
        raise UpstreamError(f"{label} response missing access_token")
    expires_in = payload.get("expires_in", default_expires_in)
    if expires_in is not None:
        try:
            expires_in = int(expires_in)
        except (TypeError, ValueError) as exc:
            raise UpstreamError(f"{label} response has invalid expires_in") from exc
    return TokenGrant(
        access_token=access_token,
        refresh_token=(str(payload["refresh_token"]) if payload.get("refresh_token") else None),
        expires_in=expires_in,
    )
