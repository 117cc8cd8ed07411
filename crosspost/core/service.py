from __future__ import annotations

import logging
from typing import Any

from crosspost.core.errors import CredentialError, NotFoundError
from crosspost.core.llm import LlmDispatcher
from crosspost.core.models import (
    Campaign,
    CampaignLink,
    CampaignStatus,
    ContentDraft,
    IterationEntry,
    LlmCredential,
    LlmProvider,
    MediaFiles,
    Platform,
    PlatformLimits,
    PublishResult,
    utc_now_iso,
)
from crosspost.core.oauth import OAuthLifecycleManager, StateCodec, connection_state
from crosspost.core.platforms import limits_for
from crosspost.core.publisher import PublishingOrchestrator
from crosspost.core.repositories import Storage, new_id
from crosspost.core.secret_vault import SecretVault
from crosspost.core.settings import Settings
from crosspost.integrations.base import PlatformProfile
from crosspost.integrations.registry import llm_adapters, oauth_adapters, publish_adapters

logger = logging.getLogger(__name__)


class CampaignService:
    """Application layer over the vault, OAuth, LLM and publishing components.

    This is the surface an HTTP controller (or the CLI) calls; it owns loading
    and saving records, while the components own the behaviour.
    """

    def __init__(
        self,
        storage: Storage,
        vault: SecretVault,
        oauth: OAuthLifecycleManager,
        llm: LlmDispatcher,
        publisher: PublishingOrchestrator,
    ) -> None:
        self.storage = storage
        self.vault = vault
        self.oauth = oauth
        self.llm = llm
        self.publisher = publisher

    @classmethod
    def from_settings(cls, settings: Settings, storage: Storage | None = None) -> "CampaignService":
        storage = storage or Storage.open(settings.paths())
        vault = SecretVault.from_settings(settings)
        oauth = OAuthLifecycleManager(
            vault=vault,
            connections=storage.connections,
            adapters=oauth_adapters(settings),
            state_codec=StateCodec(settings.require_master_secret(), ttl_seconds=settings.state_ttl_seconds),
            callback_base_url=settings.callback_base_url,
            events=storage.events,
        )
        llm = LlmDispatcher(vault, llm_adapters(settings), max_workers=settings.max_parallel)
        publisher = PublishingOrchestrator(
            vault=vault,
            oauth=oauth,
            drafts=storage.drafts,
            campaigns=storage.campaigns,
            adapters=publish_adapters(settings),
            events=storage.events,
            max_workers=settings.max_parallel,
        )
        return cls(storage, vault, oauth, llm, publisher)

    # Campaigns

    def create_campaign(
        self,
        user_id: str,
        title: str,
        original_content: str,
        media_files: MediaFiles | None = None,
        links: list[CampaignLink] | None = None,
    ) -> Campaign:
        if not original_content.strip():
            raise ValueError("Campaign content must not be empty")
        now = utc_now_iso()
        campaign = Campaign(
            id=new_id("camp"),
            user_id=user_id,
            title=title,
            original_content=original_content,
            media_files=media_files,
            links=links or [],
            status=CampaignStatus.DRAFT,
            created_at=now,
            updated_at=now,
        )
        self.storage.campaigns.save(campaign)
        self.storage.events.record("campaign_created", campaign_id=campaign.id, user_id=user_id)
        return campaign

    def get_campaign(self, campaign_id: str, user_id: str) -> Campaign:
        campaign = self.storage.campaigns.get(campaign_id)
        if campaign is None or campaign.user_id != user_id:
            raise NotFoundError(f"Campaign not found: {campaign_id}")
        return campaign

    def list_drafts(self, campaign_id: str, user_id: str) -> list[ContentDraft]:
        self.get_campaign(campaign_id, user_id)
        return self.storage.drafts.list_for_campaign(campaign_id)

    # LLM credential

    def configure_llm(self, user_id: str, provider: LlmProvider | str, model: str, api_key: str) -> LlmCredential:
        try:
            provider = LlmProvider(provider)
        except ValueError as exc:
            raise CredentialError(f"Invalid LLM provider: {provider}") from exc
        if not api_key.strip():
            raise CredentialError("API key is required")
        credential = LlmCredential(
            user_id=user_id,
            provider=provider,
            model=model.strip(),
            encrypted_api_key=self.vault.encrypt(api_key.strip()),
        )
        self.storage.llm_credentials.save(credential)
        logger.info("Configured %s LLM credential for user %s", provider.value, user_id)
        self.storage.events.record("llm_configured", user_id=user_id, details={"provider": provider.value})
        return credential

    def revoke_llm(self, user_id: str) -> LlmCredential:
        # One record write with every field cleared; never a field-by-field update.
        credential = LlmCredential(user_id=user_id)
        self.storage.llm_credentials.save(credential)
        logger.info("Revoked LLM credential for user %s", user_id)
        self.storage.events.record("llm_revoked", user_id=user_id)
        return credential

    def llm_status(self, user_id: str) -> dict[str, Any]:
        credential = self.storage.llm_credentials.get(user_id)
        if credential is None or not credential.is_configured:
            return {"configured": False, "provider": None, "model": None}
        return {
            "configured": True,
            "provider": credential.provider.value if credential.provider else None,
            "model": credential.model,
        }

    # Drafts

    def generate_drafts(
        self,
        campaign_id: str,
        user_id: str,
        platforms: list[Platform | str],
    ) -> list[ContentDraft]:
        if not platforms:
            raise ValueError("At least one platform is required")
        campaign = self.get_campaign(campaign_id, user_id)
        credential = self._credential(user_id)

        drafts: list[ContentDraft] = []
        for platform in dict.fromkeys(Platform(p) for p in platforms):
            variations = self.llm.generate_variations(campaign.original_content, platform, credential)
            now = utc_now_iso()
            draft = ContentDraft(
                id=new_id("pc"),
                campaign_id=campaign.id,
                platform=platform,
                variations=tuple(variations),
                created_at=now,
                updated_at=now,
            )
            self.storage.drafts.replace_for_platform(draft)
            drafts.append(draft)
        self.storage.events.record(
            "drafts_generated",
            campaign_id=campaign.id,
            user_id=user_id,
            details={"platforms": [d.platform.value for d in drafts]},
        )
        return drafts

    def refine_draft(
        self,
        draft_id: str,
        user_id: str,
        instruction: str,
        variation_index: int | None = None,
    ) -> ContentDraft:
        if not instruction.strip():
            raise ValueError("Refinement instruction is required")
        draft = self._draft(draft_id, user_id)
        credential = self._credential(user_id)

        if variation_index is not None:
            base = self._variation(draft, variation_index).content
        else:
            base = draft.selected_content or (draft.variations[0].content if draft.variations else "")
        refined = self.llm.refine(base, instruction, draft.platform, credential)

        draft.selected_content = refined
        draft.iteration_history.append(
            IterationEntry(timestamp=utc_now_iso(), content=refined, prompt=instruction)
        )
        self.storage.drafts.save(draft)
        self.storage.events.record(
            "draft_refined",
            campaign_id=draft.campaign_id,
            user_id=user_id,
            details={"draft_id": draft.id, "iteration": len(draft.iteration_history)},
        )
        return draft

    def select_variation(self, draft_id: str, user_id: str, index: int) -> ContentDraft:
        draft = self._draft(draft_id, user_id)
        draft.selected_content = self._variation(draft, index).content
        self.storage.drafts.save(draft)
        return draft

    def set_final_content(self, draft_id: str, user_id: str, content: str) -> ContentDraft:
        draft = self._draft(draft_id, user_id)
        draft.final_content = content
        self.storage.drafts.save(draft)
        return draft

    # Publishing

    def publish_campaign(self, campaign_id: str, user_id: str) -> list[PublishResult]:
        return self.publisher.publish_all(campaign_id, user_id)

    def publish_platform(self, campaign_id: str, platform: Platform | str, user_id: str) -> PublishResult:
        return self.publisher.publish_platform(campaign_id, platform, user_id)

    # Connections

    def connections(self, user_id: str) -> list[dict[str, Any]]:
        summaries = []
        for conn in self.oauth.list_connections(user_id):
            summaries.append(
                {
                    "id": conn.id,
                    "platform": conn.platform.value,
                    "platform_user_id": conn.platform_user_id,
                    "username": conn.username,
                    "display_name": conn.display_name,
                    "token_expires_at": conn.token_expires_at,
                    "state": connection_state(conn).value,
                    "needs_reconnection": conn.needs_reconnection,
                }
            )
        return summaries

    def refresh_connection(self, user_id: str, platform: Platform | str) -> bool:
        connection = self.storage.connections.get(user_id, Platform(platform))
        if connection is None:
            raise NotFoundError(f"Platform account not found: {Platform(platform).value}")
        return self.oauth.refresh(connection)

    def account_profile(self, user_id: str, platform: Platform | str) -> PlatformProfile:
        return self.oauth.fetch_profile(user_id, platform)

    def platform_limits(self, platform: Platform | str) -> PlatformLimits:
        return limits_for(platform)

    def query_events(self, campaign_id: str | None = None, limit: int = 50) -> list[dict[str, Any]]:
        return self.storage.events.query(campaign_id=campaign_id, limit=limit)

    def compact_data(self) -> dict[str, int]:
        """Drop blank or corrupt lines from every store. Returns lines dropped per file."""
        return {store.file_path.name: store.compact() for store in self.storage.stores()}

    def _credential(self, user_id: str) -> LlmCredential:
        credential = self.storage.llm_credentials.get(user_id)
        if credential is None or not credential.is_configured:
            raise CredentialError("Please configure your LLM API key first")
        return credential

    def _draft(self, draft_id: str, user_id: str) -> ContentDraft:
        draft = self.storage.drafts.get(draft_id)
        if draft is None:
            raise NotFoundError(f"Platform content not found: {draft_id}")
        self.get_campaign(draft.campaign_id, user_id)
        return draft

    @staticmethod
    def _variation(draft: ContentDraft, index: int):
        if index < 0 or index >= len(draft.variations):
            raise ValueError(f"Variation index out of range: {index}")
        return draft.variations[index]
