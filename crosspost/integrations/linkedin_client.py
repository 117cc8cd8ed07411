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

AUTHORIZE_URL = "https://www.linkedin.com/oauth/v2/authorization"
TOKEN_URL = "https://www.linkedin.com/oauth/v2/accessToken"
PROFILE_URL = "https://api.linkedin.com/v2/me"
UGC_POSTS_URL = "https://api.linkedin.com/v2/ugcPosts"
SCOPE = "r_liteprofile r_emailaddress w_member_social"


class LinkedInOAuth:
    def __init__(self, client: OAuthClientConfig, timeout: float = 8.0) -> None:
        self.client_id = client.client_id
        self.client_secret = client.client_secret
        self.timeout = timeout

    def authorization_url(self, redirect_uri: str, state: str, code_challenge: str) -> str:
        # LinkedIn's member flow does not take PKCE parameters.
        params = {
            "response_type": "code",
            "client_id": self.client_id,
            "redirect_uri": redirect_uri,
            "state": state,
            "scope": SCOPE,
        }
        return f"{AUTHORIZE_URL}?{urlencode(params)}"

    def exchange_code(self, code: str, redirect_uri: str, code_verifier: str) -> TokenGrant:
        form = {
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": redirect_uri,
            "client_id": self.client_id,
            "client_secret": self.client_secret.get_secret_value(),
        }
        return self._token_request(form, "LinkedIn token exchange")

    def refresh_token(self, refresh_token: str) -> TokenGrant:
        form = {
            "grant_type": "refresh_token",
            "refresh_token": refresh_token,
            "client_id": self.client_id,
            "client_secret": self.client_secret.get_secret_value(),
        }
        return self._token_request(form, "LinkedIn token refresh")

    def fetch_profile(self, access_token: str) -> PlatformProfile:
        with upstream_call("LinkedIn profile"):
            with httpx.Client(timeout=self.timeout) as client:
                resp = client.get(PROFILE_URL, headers={"Authorization": f"Bearer {access_token}"})
        data = checked_json(resp, "LinkedIn profile")
        profile_id = str(data.get("id") or "").strip()
        if not profile_id:
            raise UpstreamError("LinkedIn profile response missing id")
        name = " ".join(
            part for part in (data.get("localizedFirstName"), data.get("localizedLastName")) if part
        )
        return PlatformProfile(platform_user_id=profile_id, username=name or None, display_name=name or None)

    def _token_request(self, form: dict[str, str], label: str) -> TokenGrant:
        with upstream_call(label):
            with httpx.Client(timeout=self.timeout) as client:
                resp = client.post(
                    TOKEN_URL,
                    data=form,
                    headers={"Content-Type": "application/x-www-form-urlencoded"},
                )
        return grant_from_payload(checked_json(resp, label), label)


class LinkedInPublisher:
    """Two-step share: resolve the member id, then submit a UGC post."""

    def __init__(self, timeout: float = 8.0) -> None:
        self.timeout = timeout

    def publish(
        self,
        content: str,
        media: MediaFiles | None,
        connection: SocialConnection,
        access_token: str,
    ) -> PublishedPost:
        headers = {
            "Authorization": f"Bearer {access_token}",
            "Content-Type": "application/json",
        }
        with upstream_call("LinkedIn publish"):
            with httpx.Client(timeout=self.timeout) as client:
                profile_resp = client.get(PROFILE_URL, headers=headers)
                profile = checked_json(profile_resp, "LinkedIn profile lookup")
                profile_id = str(profile.get("id") or "").strip()
                if not profile_id:
                    raise UpstreamError("LinkedIn profile response missing id")

                share = {
                    "author": f"urn:li:person:{profile_id}",
                    "lifecycleState": "PUBLISHED",
                    "specificContent": {
                        "com.linkedin.ugc.ShareContent": {
                            "shareCommentary": {"text": content},
                            "shareMediaCategory": "NONE",
                        }
                    },
                    "visibility": {"com.linkedin.ugc.MemberNetworkVisibility": "PUBLIC"},
                }
                post_resp = client.post(
                    UGC_POSTS_URL,
                    json=share,
                    headers={**headers, "X-Restli-Protocol-Version": "2.0.0"},
                )
        if post_resp.status_code >= 400:
            raise UpstreamError(
                f"LinkedIn publish failed: status={post_resp.status_code}",
                status_code=post_resp.status_code,
            )
        urn = post_resp.headers.get("x-restli-id") or post_resp.headers.get("x-linkedin-id")
        if not urn:
            raise UpstreamError("LinkedIn publish response missing post id header")
        post_id = urn.split(":")[-1]
        return PublishedPost(post_id=post_id, post_url=f"https://www.linkedin.com/feed/update/{urn}")
