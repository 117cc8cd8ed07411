from __future__ import annotations

from urllib.parse import urlencode

import httpx

from crosspost.core.errors import UpstreamError
from crosspost.core.models import MediaFiles, SocialConnection
from crosspost.core.settings import OAuthClientConfig
from crosspost.integrations.base import (
    PlatformProfile,
    PublishedPost,
    TokenGrant,
    checked_json,
    grant_from_payload,
    upstream_call,
)

AUTHORIZE_URL = "https://twitter.com/i/oauth2/authorize"
TOKEN_URL = "https://api.twitter.com/2/oauth2/token"
PROFILE_URL = "https://api.twitter.com/2/users/me"
TWEETS_URL = "https://api.twitter.com/2/tweets"
SCOPE = "tweet.read tweet.write users.read offline.access"
# Twitter access tokens live two hours; refresh responses sometimes omit expires_in.
DEFAULT_EXPIRES_IN = 2 * 60 * 60


class TwitterOAuth:
    def __init__(self, client: OAuthClientConfig, timeout: float = 8.0) -> None:
        self.client_id = client.client_id
        self.client_secret = client.client_secret
        self.timeout = timeout

    def authorization_url(self, redirect_uri: str, state: str, code_challenge: str) -> str:
        params = {
            "response_type": "code",
            "client_id": self.client_id,
            "redirect_uri": redirect_uri,
            "scope": SCOPE,
            "state": state,
            "code_challenge": code_challenge,
            "code_challenge_method": "S256",
        }
        return f"{AUTHORIZE_URL}?{urlencode(params)}"

    def exchange_code(self, code: str, redirect_uri: str, code_verifier: str) -> TokenGrant:
        form = {
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": redirect_uri,
            "client_id": self.client_id,
            "code_verifier": code_verifier,
        }
        return self._token_request(form, "Twitter token exchange")

    def refresh_token(self, refresh_token: str) -> TokenGrant:
        form = {
            "grant_type": "refresh_token",
            "refresh_token": refresh_token,
            "client_id": self.client_id,
        }
        return self._token_request(form, "Twitter token refresh")

    def fetch_profile(self, access_token: str) -> PlatformProfile:
        with upstream_call("Twitter profile"):
            with httpx.Client(timeout=self.timeout) as client:
                resp = client.get(PROFILE_URL, headers={"Authorization": f"Bearer {access_token}"})
        data = checked_json(resp, "Twitter profile").get("data")
        if not isinstance(data, dict) or not data.get("id"):
            raise UpstreamError("Twitter profile response missing data.id")
        return PlatformProfile(
            platform_user_id=str(data["id"]),
            username=data.get("username"),
            display_name=data.get("name"),
        )

    def _token_request(self, form: dict[str, str], label: str) -> TokenGrant:
        with upstream_call(label):
            with httpx.Client(timeout=self.timeout) as client:
                resp = client.post(
                    TOKEN_URL,
                    data=form,
                    auth=(self.client_id, self.client_secret.get_secret_value()),
                    headers={"Content-Type": "application/x-www-form-urlencoded"},
                )
        return grant_from_payload(checked_json(resp, label), label, default_expires_in=DEFAULT_EXPIRES_IN)


class TwitterPublisher:
    def __init__(self, timeout: float = 8.0) -> None:
        self.timeout = timeout

    def publish(
        self,
        content: str,
        media: MediaFiles | None,
        connection: SocialConnection,
        access_token: str,
    ) -> PublishedPost:
        with upstream_call("Twitter publish"):
            with httpx.Client(timeout=self.timeout) as client:
                resp = client.post(
                    TWEETS_URL,
                    json={"text": content},
                    headers={"Authorization": f"Bearer {access_token}"},
                )
        data = checked_json(resp, "Twitter publish").get("data")
        tweet_id = str(data.get("id") or "").strip() if isinstance(data, dict) else ""
        if not tweet_id:
            raise UpstreamError("Twitter publish response missing tweet id")
        handle = connection.username or "i/web"
        return PublishedPost(post_id=tweet_id, post_url=f"https://twitter.com/{handle}/status/{tweet_id}")
