from __future__ import annotations

from crosspost.core.models import LlmProvider, Platform
from crosspost.core.settings import Settings
from crosspost.integrations.base import OAuthAdapter, PublishAdapter
from crosspost.integrations.linkedin_client import LinkedInOAuth, LinkedInPublisher
from crosspost.integrations.llm_providers import (
    AnthropicAdapter,
    GeminiAdapter,
    LlmProviderAdapter,
    OpenAIAdapter,
)
from crosspost.integrations.twitter_client import TwitterOAuth, TwitterPublisher


def oauth_adapters(settings: Settings) -> dict[Platform, OAuthAdapter]:
    """Adapters for every platform whose OAuth app is configured."""
    timeout = settings.http_timeout_seconds
    adapters: dict[Platform, OAuthAdapter] = {}
    if settings.linkedin is not None:
        adapters[Platform.LINKEDIN] = LinkedInOAuth(settings.linkedin, timeout=timeout)
    if settings.twitter is not None:
        adapters[Platform.TWITTER] = TwitterOAuth(settings.twitter, timeout=timeout)
    return adapters


def publish_adapters(settings: Settings) -> dict[Platform, PublishAdapter]:
    timeout = settings.http_timeout_seconds
    return {
        Platform.LINKEDIN: LinkedInPublisher(timeout=timeout),
        Platform.TWITTER: TwitterPublisher(timeout=timeout),
    }


def llm_adapters(settings: Settings) -> dict[LlmProvider, LlmProviderAdapter]:
    timeout = settings.http_timeout_seconds
    return {
        LlmProvider.OPENAI: OpenAIAdapter(timeout=timeout),
        LlmProvider.ANTHROPIC: AnthropicAdapter(timeout=timeout),
        LlmProvider.GEMINI: GeminiAdapter(timeout=timeout),
    }
