from __future__ import annotations

import threading
import time
from urllib.parse import parse_qs, urlparse

import pytest
from pydantic import SecretStr

from crosspost.core.errors import (
    CallbackError,
    ConfigurationError,
    NotConnectedError,
    NotFoundError,
    UpstreamError,
)
from crosspost.core.models import Platform
from crosspost.core.oauth import ConnectionState, OAuthLifecycleManager, StateCodec, connection_state
from crosspost.core.settings import OAuthClientConfig
from crosspost.integrations.base import PlatformProfile, TokenGrant
from crosspost.integrations.twitter_client import TwitterOAuth

SECRET = "test-master-secret"


class _FakeOAuth:
    def __init__(self, delay: float = 0.0, refresh_error: Exception | None = None):
        self.delay = delay
        self.refresh_error = refresh_error
        self.exchanged: list[tuple[str, str, str]] = []
        self.refresh_calls = 0
        self.username = "ada"
        self.profile_tokens: list[str] = []

    def authorization_url(self, redirect_uri, state, code_challenge):
        return f"https://auth.example.test/authorize?state={state}&code_challenge={code_challenge}"

    def exchange_code(self, code, redirect_uri, code_verifier):
        self.exchanged.append((code, redirect_uri, code_verifier))
        return TokenGrant(access_token=f"at-{code}", refresh_token=f"rt-{code}", expires_in=3600)

    def fetch_profile(self, access_token):
        self.profile_tokens.append(access_token)
        return PlatformProfile(platform_user_id="p-1", username=self.username, display_name="Ada Lovelace")

    def refresh_token(self, refresh_token):
        self.refresh_calls += 1
        time.sleep(self.delay)
        if self.refresh_error is not None:
            raise self.refresh_error
        return TokenGrant(access_token="at-refreshed", refresh_token=None, expires_in=7200)


def _manager(storage, vault, adapter=None, codec=None) -> OAuthLifecycleManager:
    adapters = {Platform.TWITTER: adapter} if adapter is not None else {}
    return OAuthLifecycleManager(
        vault=vault,
        connections=storage.connections,
        adapters=adapters,
        state_codec=codec or StateCodec(SECRET),
        callback_base_url="https://app.example.test/",
        events=storage.events,
    )


def _state_from(url: str) -> str:
    return parse_qs(urlparse(url).query)["state"][0]


def test_state_codec_round_trip_and_pkce_pair():
    codec = StateCodec(SECRET)
    state, nonce = codec.issue("u1", Platform.TWITTER)
    payload = codec.decode(state, Platform.TWITTER)
    assert (payload.user_id, payload.platform, payload.nonce) == ("u1", Platform.TWITTER, nonce)
    verifier = codec.code_verifier(nonce)
    assert 43 <= len(verifier) <= 128
    assert StateCodec.code_challenge(verifier) != verifier


@pytest.mark.parametrize("mangle", [lambda s: s + "x", lambda s: "x" + s, lambda s: s.split(".")[0], lambda s: "ü.ü"])
def test_state_codec_rejects_tampering(mangle):
    codec = StateCodec(SECRET)
    state, _ = codec.issue("u1", Platform.TWITTER)
    with pytest.raises(CallbackError):
        codec.decode(mangle(state), Platform.TWITTER)


def test_state_codec_rejects_other_platform_and_expiry():
    now = [1_000.0]
    codec = StateCodec(SECRET, ttl_seconds=600, clock=lambda: now[0])
    state, _ = codec.issue("u1", Platform.TWITTER)
    with pytest.raises(CallbackError, match="issued for twitter"):
        codec.decode(state, Platform.LINKEDIN)
    now[0] += 601
    with pytest.raises(CallbackError, match="expired"):
        codec.decode(state, Platform.TWITTER)


def test_state_from_another_secret_is_rejected():
    state, _ = StateCodec("other-secret").issue("u1", Platform.TWITTER)
    with pytest.raises(CallbackError, match="signature"):
        StateCodec(SECRET).decode(state, Platform.TWITTER)


def test_callback_creates_then_updates_single_connection(storage, vault):
    adapter = _FakeOAuth()
    manager = _manager(storage, vault, adapter)

    url = manager.build_authorization_url(Platform.TWITTER, "u1")
    first = manager.handle_callback("twitter", "code1", _state_from(url))
    assert first.user_id == "u1"
    assert first.is_active
    assert vault.decrypt(first.encrypted_access_token) == "at-code1"
    assert first.encrypted_access_token != "at-code1"

    code, redirect_uri, verifier = adapter.exchanged[0]
    assert redirect_uri == "https://app.example.test/api/platforms/callback/twitter"
    assert f"code_challenge={StateCodec.code_challenge(verifier)}" in url

    adapter.username = "ada_renamed"
    url = manager.build_authorization_url(Platform.TWITTER, "u1")
    second = manager.handle_callback("twitter", "code2", _state_from(url))

    assert second.id == first.id
    assert second.username == "ada_renamed"
    assert vault.decrypt(second.encrypted_access_token) == "at-code2"
    assert len(storage.connections.store.read_all()) == 1
    kinds = [e["event_type"] for e in storage.events.query()]
    assert kinds == ["connection_created", "connection_updated"]


def test_callback_error_and_missing_params(storage, vault):
    adapter = _FakeOAuth()
    manager = _manager(storage, vault, adapter)
    with pytest.raises(CallbackError, match="access_denied"):
        manager.handle_callback("twitter", None, None, error="access_denied")
    with pytest.raises(CallbackError, match="code and state"):
        manager.handle_callback("twitter", "code", None)
    assert adapter.exchanged == []


def test_unconfigured_platform_is_configuration_error(storage, vault):
    manager = _manager(storage, vault)
    with pytest.raises(ConfigurationError, match="LINKEDIN_CLIENT_ID"):
        manager.build_authorization_url("linkedin", "u1")


def test_refresh_without_refresh_token_is_local(storage, vault, make_connection):
    adapter = _FakeOAuth()
    manager = _manager(storage, vault, adapter)
    connection = make_connection(refresh_token=None, expires_in=-60)

    assert manager.refresh(connection) is False
    assert adapter.refresh_calls == 0


def test_refresh_updates_tokens_and_keeps_refresh_token(storage, vault, make_connection):
    adapter = _FakeOAuth()
    manager = _manager(storage, vault, adapter)
    connection = make_connection(expires_in=-60)

    assert manager.refresh(connection) is True
    stored = storage.connections.get("u1", Platform.TWITTER)
    assert vault.decrypt(stored.encrypted_access_token) == "at-refreshed"
    assert vault.decrypt(stored.encrypted_refresh_token) == "rt-1"
    assert not stored.needs_reconnection
    assert connection.encrypted_access_token == stored.encrypted_access_token


def test_refresh_upstream_failure_returns_false(storage, vault, make_connection):
    adapter = _FakeOAuth(refresh_error=UpstreamError("Twitter token refresh failed: status=400", status_code=400))
    manager = _manager(storage, vault, adapter)
    connection = make_connection(expires_in=-60)

    assert manager.refresh(connection) is False
    assert storage.events.query()[-1]["event_type"] == "connection_refresh_failed"
    assert storage.connections.get("u1", Platform.TWITTER).needs_reconnection


def test_refresh_with_malformed_token_response_returns_false(storage, vault, make_connection, monkeypatch):
    class _Resp:
        status_code = 200
        headers: dict[str, str] = {}

        def json(self):
            return {"access_token": "new", "expires_in": "7200s"}

    class _Client:
        def __init__(self, timeout: float):
            self.timeout = timeout

        def __enter__(self):
            return self

        def __exit__(self, exc_type, exc, tb):
            return False

        def post(self, url, **kwargs):
            return _Resp()

    monkeypatch.setattr("crosspost.integrations.twitter_client.httpx.Client", _Client)
    client = OAuthClientConfig(client_id="cid", client_secret=SecretStr("csecret"))
    manager = _manager(storage, vault, TwitterOAuth(client))
    connection = make_connection(expires_in=-60)

    assert manager.refresh(connection) is False
    assert storage.events.query()[-1]["event_type"] == "connection_refresh_failed"
    assert vault.decrypt(storage.connections.get("u1", Platform.TWITTER).encrypted_access_token) == "at-1"


def test_concurrent_refresh_calls_upstream_once(storage, vault, make_connection):
    adapter = _FakeOAuth(delay=0.2)
    manager = _manager(storage, vault, adapter)
    connection = make_connection(expires_in=-60)
    snapshots = [connection.model_copy(), connection.model_copy()]
    results: list[bool] = []

    threads = [threading.Thread(target=lambda c=c: results.append(manager.refresh(c))) for c in snapshots]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert results == [True, True]
    assert adapter.refresh_calls == 1
    assert snapshots[0].encrypted_access_token == snapshots[1].encrypted_access_token


def test_ensure_fresh_refreshes_expired_connection(storage, vault, make_connection):
    adapter = _FakeOAuth()
    manager = _manager(storage, vault, adapter)
    expired = make_connection(expires_in=-60)

    fresh = manager.ensure_fresh(expired)
    assert connection_state(fresh) == ConnectionState.ACTIVE
    assert adapter.refresh_calls == 1


def test_disconnect_deactivates_and_requires_record(storage, vault, make_connection):
    manager = _manager(storage, vault, _FakeOAuth())
    with pytest.raises(NotFoundError):
        manager.disconnect("u1", "twitter")

    make_connection()
    manager.disconnect("u1", "twitter")
    manager.disconnect("u1", "twitter")
    assert manager.get_active_connection("u1", Platform.TWITTER) is None
    assert manager.list_connections("u1") == []
    assert connection_state(storage.connections.get("u1", Platform.TWITTER)) == ConnectionState.DISCONNECTED


def test_fetch_profile_reads_live_account_with_decrypted_token(storage, vault, make_connection):
    adapter = _FakeOAuth()
    manager = _manager(storage, vault, adapter)
    make_connection(access_token="at-live")

    profile = manager.fetch_profile("u1", "twitter")

    assert profile.platform_user_id == "p-1"
    assert profile.display_name == "Ada Lovelace"
    assert adapter.profile_tokens == ["at-live"]


def test_fetch_profile_refreshes_expired_token_first(storage, vault, make_connection):
    adapter = _FakeOAuth()
    manager = _manager(storage, vault, adapter)
    make_connection(expires_in=-60)

    manager.fetch_profile("u1", Platform.TWITTER)
    assert adapter.refresh_calls == 1
    assert adapter.profile_tokens == ["at-refreshed"]


def test_fetch_profile_requires_active_connection(storage, vault, make_connection):
    adapter = _FakeOAuth()
    manager = _manager(storage, vault, adapter)
    with pytest.raises(NotConnectedError, match="twitter account not connected"):
        manager.fetch_profile("u1", "twitter")

    make_connection()
    manager.disconnect("u1", "twitter")
    with pytest.raises(NotConnectedError):
        manager.fetch_profile("u1", "twitter")
    assert adapter.profile_tokens == []


def test_connection_locks_are_released_after_use(storage, vault, make_connection):
    manager = _manager(storage, vault, _FakeOAuth())
    assert manager.refresh(make_connection(expires_in=-60)) is True
    manager.disconnect("u1", "twitter")
    assert len(manager._locks) == 0
