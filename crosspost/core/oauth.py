from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import json
import logging
import secrets
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum

from crosspost.core.concurrency import KeyedLocks
from crosspost.core.errors import (
    CallbackError,
    ConfigurationError,
    NotConnectedError,
    NotFoundError,
    UpstreamError,
)
from crosspost.core.models import Platform, SocialConnection, utc_now
from crosspost.core.repositories import ConnectionRepository, EventLog, new_id
from crosspost.core.secret_vault import SecretVault
from crosspost.integrations.base import OAuthAdapter, PlatformProfile

logger = logging.getLogger(__name__)


class ConnectionState(str, Enum):
    DISCONNECTED = "disconnected"
    ACTIVE = "active"
    EXPIRED = "expired"


def connection_state(connection: SocialConnection | None) -> ConnectionState:
    if connection is None or not connection.is_active:
        return ConnectionState.DISCONNECTED
    if connection.needs_reconnection:
        return ConnectionState.EXPIRED
    return ConnectionState.ACTIVE


def _b64(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


def _unb64(text: str) -> bytes:
    return base64.urlsafe_b64decode(text + "=" * (-len(text) % 4))


@dataclass
class StatePayload:
    user_id: str
    platform: Platform
    nonce: str
    issued_at: int


class StateCodec:
    """Signed, expiring OAuth state tokens: base64url(json).base64url(hmac).

    The PKCE verifier is derived from the token's nonce, so the callback can
    recompute it without server-side session storage.
    """

    def __init__(self, master_secret: str, ttl_seconds: int = 600, clock: Callable[[], float] = time.time):
        if not master_secret:
            raise ConfigurationError("OAuth state signing requires a master secret")
        self._key = hmac.new(master_secret.encode("utf-8"), b"crosspost:oauth-state", hashlib.sha256).digest()
        self.ttl_seconds = ttl_seconds
        self._clock = clock

    def issue(self, user_id: str, platform: Platform) -> tuple[str, str]:
        nonce = secrets.token_urlsafe(16)
        payload = {"uid": user_id, "p": platform.value, "n": nonce, "iat": int(self._clock())}
        body = _b64(json.dumps(payload, separators=(",", ":"), sort_keys=True).encode("utf-8"))
        return f"{body}.{self._sign(body)}", nonce

    def decode(self, state: str, platform: Platform) -> StatePayload:
        body, sep, signature = state.partition(".")
        if not sep or not body or not signature:
            raise CallbackError("OAuth state is malformed")
        if not hmac.compare_digest(signature.encode("utf-8"), self._sign(body).encode("ascii")):
            raise CallbackError("OAuth state signature mismatch")
        try:
            data = json.loads(_unb64(body).decode("utf-8"))
            payload = StatePayload(
                user_id=str(data["uid"]),
                platform=Platform(data["p"]),
                nonce=str(data["n"]),
                issued_at=int(data["iat"]),
            )
        except (binascii.Error, UnicodeDecodeError, ValueError, KeyError, TypeError) as exc:
            raise CallbackError("OAuth state could not be decoded") from exc
        if payload.platform != platform:
            raise CallbackError(f"OAuth state was issued for {payload.platform.value}, not {platform.value}")
        if self._clock() - payload.issued_at > self.ttl_seconds:
            raise CallbackError("OAuth state expired; start the connection again")
        return payload

    def code_verifier(self, nonce: str) -> str:
        return _b64(hmac.new(self._key, f"pkce:{nonce}".encode("utf-8"), hashlib.sha256).digest())

    @staticmethod
    def code_challenge(verifier: str) -> str:
        return _b64(hashlib.sha256(verifier.encode("ascii")).digest())

    def _sign(self, body: str) -> str:
        return _b64(hmac.new(self._key, body.encode("utf-8"), hashlib.sha256).digest())


class OAuthLifecycleManager:
    def __init__(
        self,
        vault: SecretVault,
        connections: ConnectionRepository,
        adapters: Mapping[Platform, OAuthAdapter],
        state_codec: StateCodec,
        callback_base_url: str,
        events: EventLog | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.vault = vault
        self.connections = connections
        self.adapters = dict(adapters)
        self.state_codec = state_codec
        self.callback_base_url = callback_base_url.rstrip("/")
        self.events = events
        self._clock = clock
        self._locks = KeyedLocks()

    def redirect_uri(self, platform: Platform) -> str:
        return f"{self.callback_base_url}/api/platforms/callback/{platform.value}"

    def build_authorization_url(self, platform: Platform | str, user_id: str) -> str:
        platform = Platform(platform)
        adapter = self._adapter(platform)
        state, nonce = self.state_codec.issue(user_id, platform)
        challenge = StateCodec.code_challenge(self.state_codec.code_verifier(nonce))
        return adapter.authorization_url(self.redirect_uri(platform), state, challenge)

    def handle_callback(
        self,
        platform: Platform | str,
        code: str | None,
        state: str | None,
        error: str | None = None,
    ) -> SocialConnection:
        platform = Platform(platform)
        if error:
            raise CallbackError(f"{platform.value} authorization failed: {error}")
        if not code or not state:
            raise CallbackError("Invalid callback parameters: code and state are required")
        payload = self.state_codec.decode(state, platform)
        adapter = self._adapter(platform)

        grant = adapter.exchange_code(
            code,
            self.redirect_uri(platform),
            self.state_codec.code_verifier(payload.nonce),
        )
        profile = adapter.fetch_profile(grant.access_token)

        with self._locks.hold((payload.user_id, platform)):
            now = self._clock().isoformat()
            connection = self.connections.get(payload.user_id, platform)
            created = connection is None
            if connection is None:
                connection = SocialConnection(
                    id=new_id("conn"),
                    user_id=payload.user_id,
                    platform=platform,
                    platform_user_id=profile.platform_user_id,
                    encrypted_access_token="",
                    created_at=now,
                    updated_at=now,
                )
            connection.platform_user_id = profile.platform_user_id
            connection.username = profile.username
            connection.display_name = profile.display_name
            connection.encrypted_access_token = self.vault.encrypt(grant.access_token)
            if grant.refresh_token:
                connection.encrypted_refresh_token = self.vault.encrypt(grant.refresh_token)
            connection.token_expires_at = self._expiry(grant.expires_in)
            connection.is_active = True
            self.connections.save(connection)

        logger.info(
            "%s %s connection for user %s", "Created" if created else "Updated", platform.value, payload.user_id
        )
        self._record(
            "connection_created" if created else "connection_updated",
            connection,
            {"platform_user_id": connection.platform_user_id},
        )
        return connection

    def refresh(self, connection: SocialConnection) -> bool:
        """Refresh the access token. False means "could not refresh", never an exception for upstream trouble."""
        platform = connection.platform
        with self._locks.hold((connection.user_id, platform)):
            current = self.connections.get(connection.user_id, platform)
            if current is None:
                raise NotFoundError(f"No {platform.value} connection for user {connection.user_id}")
            if not current.is_active or not current.encrypted_refresh_token:
                return False
            if current.encrypted_access_token != connection.encrypted_access_token:
                # A concurrent refresh or reconnect already replaced the token.
                _sync_tokens(connection, current)
                return True

            adapter = self._adapter(platform)
            refresh_token = self.vault.decrypt(current.encrypted_refresh_token)
            try:
                grant = adapter.refresh_token(refresh_token)
            except UpstreamError as exc:
                logger.warning(
                    "Token refresh failed for %s user %s: %s", platform.value, connection.user_id, exc
                )
                self._record("connection_refresh_failed", current, {"error": str(exc)})
                return False

            current.encrypted_access_token = self.vault.encrypt(grant.access_token)
            if grant.refresh_token:
                current.encrypted_refresh_token = self.vault.encrypt(grant.refresh_token)
            current.token_expires_at = self._expiry(grant.expires_in)
            self.connections.save(current)
            _sync_tokens(connection, current)

        logger.info("Refreshed %s token for user %s", platform.value, connection.user_id)
        self._record("connection_refreshed", current, {"token_expires_at": current.token_expires_at})
        return True

    def ensure_fresh(self, connection: SocialConnection) -> SocialConnection:
        if not connection.needs_reconnection:
            return connection
        self.refresh(connection)
        return connection

    def disconnect(self, user_id: str, platform: Platform | str) -> SocialConnection:
        platform = Platform(platform)
        with self._locks.hold((user_id, platform)):
            connection = self.connections.get(user_id, platform)
            if connection is None:
                raise NotFoundError(f"No {platform.value} connection to disconnect for user {user_id}")
            connection.is_active = False
            self.connections.save(connection)
        logger.info("Disconnected %s for user %s", platform.value, user_id)
        self._record("connection_disconnected", connection)
        return connection

    def get_active_connection(self, user_id: str, platform: Platform | str) -> SocialConnection | None:
        connection = self.connections.get(user_id, Platform(platform))
        if connection is None or not connection.is_active:
            return None
        return connection

    def list_connections(self, user_id: str) -> list[SocialConnection]:
        return [c for c in self.connections.list_for_user(user_id) if c.is_active]

    def fetch_profile(self, user_id: str, platform: Platform | str) -> PlatformProfile:
        """Live profile for the user's active connection, read from the platform."""
        platform = Platform(platform)
        connection = self.get_active_connection(user_id, platform)
        if connection is None:
            raise NotConnectedError(platform.value)
        adapter = self._adapter(platform)
        connection = self.ensure_fresh(connection)
        return adapter.fetch_profile(self.vault.decrypt(connection.encrypted_access_token))

    def _adapter(self, platform: Platform) -> OAuthAdapter:
        adapter = self.adapters.get(platform)
        if adapter is None:
            prefix = platform.value.upper()
            raise ConfigurationError(f"{prefix}_CLIENT_ID / {prefix}_CLIENT_SECRET not configured")
        return adapter

    def _expiry(self, expires_in: int | None) -> str | None:
        if expires_in is None:
            return None
        return (self._clock() + timedelta(seconds=expires_in)).isoformat()

    def _record(self, event_type: str, connection: SocialConnection, details: dict | None = None) -> None:
        if self.events is None:
            return
        self.events.record(
            event_type,
            user_id=connection.user_id,
            details={"platform": connection.platform.value, **(details or {})},
        )


def _sync_tokens(target: SocialConnection, source: SocialConnection) -> None:
    target.encrypted_access_token = source.encrypted_access_token
    target.encrypted_refresh_token = source.encrypted_refresh_token
    target.token_expires_at = source.token_expires_at
    target.updated_at = source.updated_at
