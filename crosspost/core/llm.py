from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field

from crosspost.core.concurrency import fan_out
from crosspost.core.errors import ConfigurationError, CredentialError, GenerationError
from crosspost.core.models import LlmCredential, LlmProvider, Platform, ToneVariation
from crosspost.core.platforms import guidelines_for, tones_for
from crosspost.core.redaction import redact_secrets
from crosspost.core.secret_vault import SecretVault
from crosspost.integrations.llm_providers import LlmProviderAdapter

logger = logging.getLogger(__name__)

VARIATION_PROMPT = """Adapt the following content for {platform} with a {tone} tone:

Original Content: {source}

Platform Guidelines:
{guidelines}

Please create an optimized version that follows the platform's best practices and character limits.
Include appropriate hashtags and formatting for {platform}.

Return only the adapted content without any explanations."""

REFINE_PROMPT = """Current {platform} content: {content}

User request: {instruction}

Platform Guidelines:
{guidelines}

Please refine the content according to the user's request while maintaining platform best practices.
Return only the refined content without any explanations."""


@dataclass
class _Unlocked:
    provider: LlmProvider
    model: str
    api_key: str = field(repr=False)


class LlmDispatcher:
    def __init__(
        self,
        vault: SecretVault,
        adapters: Mapping[LlmProvider, LlmProviderAdapter],
        max_workers: int = 3,
    ) -> None:
        self.vault = vault
        self.adapters = dict(adapters)
        self.max_workers = max_workers

    def generate_variations(
        self,
        source_text: str,
        platform: Platform | str,
        credential: LlmCredential | None,
    ) -> list[ToneVariation]:
        platform = Platform(platform)
        unlocked = self._unlock(credential)
        guidelines = guidelines_for(platform)

        def _one(tone: str) -> ToneVariation:
            prompt = VARIATION_PROMPT.format(
                platform=platform.value, tone=tone, source=source_text, guidelines=guidelines
            )
            return ToneVariation(tone=tone, content=self._generate(unlocked, prompt))

        variations = fan_out(_one, list(tones_for(platform)), self.max_workers)
        logger.info(
            "Generated %d %s variations with %s/%s",
            len(variations),
            platform.value,
            unlocked.provider.value,
            unlocked.model,
        )
        return variations

    def refine(
        self,
        current_content: str,
        instruction: str,
        platform: Platform | str,
        credential: LlmCredential | None,
    ) -> str:
        platform = Platform(platform)
        unlocked = self._unlock(credential)
        prompt = REFINE_PROMPT.format(
            platform=platform.value,
            content=current_content,
            instruction=instruction,
            guidelines=guidelines_for(platform),
        )
        return self._generate(unlocked, prompt)

    def generate(self, provider: LlmProvider | str, api_key: str, model: str | None, prompt: str) -> str:
        adapter = self._adapter(LlmProvider(provider))
        return self._generate(_Unlocked(adapter.provider, model or adapter.default_model, api_key), prompt)

    def _generate(self, unlocked: _Unlocked, prompt: str) -> str:
        adapter = self._adapter(unlocked.provider)
        try:
            text = adapter.generate(unlocked.api_key, unlocked.model, prompt)
        except GenerationError as exc:
            message = redact_secrets(str(exc), [unlocked.api_key]) or ""
            logger.warning("LLM generation failed: %s", message)
            if message != str(exc):
                raise type(exc)(message, provider=exc.provider, status_code=exc.status_code) from None
            raise
        except Exception as exc:  # noqa: BLE001
            raw = f"{exc.__class__.__name__}: {exc}"
            message = redact_secrets(raw, [unlocked.api_key]) or ""
            logger.warning("LLM adapter %s raised %s", unlocked.provider.value, message)
            wrapped = GenerationError(
                f"{unlocked.provider.value} generation failed: {message}", provider=unlocked.provider.value
            )
            # Drop the cause when its text carried secret material.
            raise wrapped from (exc if message == raw else None)
        text = (text or "").strip()
        if not text:
            raise GenerationError(
                f"{unlocked.provider.value} returned an empty completion", provider=unlocked.provider.value
            )
        return text

    def _unlock(self, credential: LlmCredential | None) -> _Unlocked:
        if credential is None or not credential.is_configured:
            raise CredentialError("LLM configuration not found. Configure a provider and API key first.")
        provider = LlmProvider(credential.provider)
        adapter = self._adapter(provider)
        api_key = self.vault.decrypt(credential.encrypted_api_key or "")
        return _Unlocked(provider=provider, model=credential.model or adapter.default_model, api_key=api_key)

    def _adapter(self, provider: LlmProvider) -> LlmProviderAdapter:
        adapter = self.adapters.get(provider)
        if adapter is None:
            raise ConfigurationError(f"No LLM adapter registered for {provider.value}")
        return adapter
