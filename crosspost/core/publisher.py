from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from datetime import datetime

from crosspost.core.concurrency import fan_out
from crosspost.core.errors import ConfigurationError, NotConnectedError, NotFoundError, VaultError
from crosspost.core.models import (
    Campaign,
    CampaignStatus,
    ContentDraft,
    Platform,
    PostStatus,
    PublishResult,
    utc_now,
)
from crosspost.core.oauth import OAuthLifecycleManager
from crosspost.core.preflight import validate_publish
from crosspost.core.redaction import redact_secrets
from crosspost.core.repositories import CampaignRepository, DraftRepository, EventLog
from crosspost.core.secret_vault import SecretVault
from crosspost.core.state_machine import ensure_transition
from crosspost.integrations.base import PublishAdapter, PublishedPost

logger = logging.getLogger(__name__)


class PublishingOrchestrator:
    def __init__(
        self,
        vault: SecretVault,
        oauth: OAuthLifecycleManager,
        drafts: DraftRepository,
        campaigns: CampaignRepository,
        adapters: Mapping[Platform, PublishAdapter],
        events: EventLog | None = None,
        max_workers: int = 4,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.vault = vault
        self.oauth = oauth
        self.drafts = drafts
        self.campaigns = campaigns
        self.adapters = dict(adapters)
        self.events = events
        self.max_workers = max_workers
        self._clock = clock

    def publish_one(self, draft: ContentDraft, campaign: Campaign, user_id: str) -> PublishResult:
        connection = self.oauth.get_active_connection(user_id, draft.platform)
        if connection is None:
            raise NotConnectedError(draft.platform.value)

        content = draft.content_to_publish()
        if draft.status != PostStatus.DRAFT:
            ensure_transition(draft.status, PostStatus.DRAFT)
            draft.status = PostStatus.DRAFT

        preflight = validate_publish(content, draft.platform, campaign.media_files)
        if not preflight.ok:
            return self._fail(draft, campaign, f"Preflight failed: {'; '.join(preflight.errors)}")

        try:
            adapter = self._adapter(draft.platform)
            connection = self.oauth.ensure_fresh(connection)
            if connection.needs_reconnection:
                return self._fail(
                    draft,
                    campaign,
                    f"{draft.platform.value} access token expired; reconnect the account",
                )
            access_token = self.vault.decrypt(connection.encrypted_access_token)
            published = adapter.publish(content, campaign.media_files, connection, access_token)
        except (VaultError, ConfigurationError) as exc:
            self._fail(draft, campaign, str(exc))
            raise
        except Exception as exc:  # noqa: BLE001
            return self._fail(draft, campaign, str(exc) or exc.__class__.__name__)
        return self._succeed(draft, campaign, published)

    def publish_all(self, campaign_id: str, user_id: str) -> list[PublishResult]:
        campaign = self._campaign(campaign_id, user_id)
        drafts = self.drafts.list_for_campaign(campaign.id)

        def _one(draft: ContentDraft) -> PublishResult:
            try:
                return self.publish_one(draft, campaign, user_id)
            except Exception as exc:  # noqa: BLE001
                error = redact_secrets(str(exc)) or exc.__class__.__name__
                logger.warning("Publish to %s aborted for campaign %s: %s", draft.platform.value, campaign.id, error)
                return PublishResult(platform=draft.platform, success=False, error=error)

        results = fan_out(_one, drafts, self.max_workers)

        campaign.status = CampaignStatus.PUBLISHED
        self.campaigns.save(campaign)
        succeeded = sum(1 for r in results if r.success)
        logger.info("Campaign %s published: %d/%d platforms succeeded", campaign.id, succeeded, len(results))
        self._record(
            "campaign_published",
            campaign,
            {"succeeded": succeeded, "failed": len(results) - succeeded},
        )
        return results

    def publish_platform(self, campaign_id: str, platform: Platform | str, user_id: str) -> PublishResult:
        platform = Platform(platform)
        campaign = self._campaign(campaign_id, user_id)
        for draft in self.drafts.list_for_campaign(campaign.id):
            if draft.platform == platform:
                return self.publish_one(draft, campaign, user_id)
        raise NotFoundError(f"No content found for platform {platform.value}")

    def _campaign(self, campaign_id: str, user_id: str) -> Campaign:
        campaign = self.campaigns.get(campaign_id)
        if campaign is None or campaign.user_id != user_id:
            raise NotFoundError(f"Campaign not found: {campaign_id}")
        return campaign

    def _adapter(self, platform: Platform) -> PublishAdapter:
        adapter = self.adapters.get(platform)
        if adapter is None:
            raise ConfigurationError(f"No publish adapter registered for {platform.value}")
        return adapter

    def _succeed(self, draft: ContentDraft, campaign: Campaign, published: PublishedPost) -> PublishResult:
        ensure_transition(draft.status, PostStatus.POSTED)
        draft.status = PostStatus.POSTED
        draft.post_id = published.post_id
        draft.post_url = published.post_url
        draft.posted_at = self._clock().isoformat()
        draft.last_error = None
        self.drafts.save(draft)
        logger.info("Published %s draft %s as %s", draft.platform.value, draft.id, published.post_id)
        self._record(
            "post_published",
            campaign,
            {"platform": draft.platform.value, "draft_id": draft.id, "post_id": published.post_id},
        )
        return PublishResult(
            platform=draft.platform,
            success=True,
            post_id=published.post_id,
            post_url=published.post_url,
        )

    def _fail(self, draft: ContentDraft, campaign: Campaign, error: str) -> PublishResult:
        error = redact_secrets(error) or "Unknown error"
        ensure_transition(draft.status, PostStatus.FAILED)
        draft.status = PostStatus.FAILED
        draft.post_id = None
        draft.post_url = None
        draft.posted_at = None
        draft.last_error = error
        self.drafts.save(draft)
        logger.warning("Publish failed for %s draft %s: %s", draft.platform.value, draft.id, error)
        self._record("post_failed", campaign, {"platform": draft.platform.value, "draft_id": draft.id, "error": error})
        return PublishResult(platform=draft.platform, success=False, error=error)

    def _record(self, event_type: str, campaign: Campaign, details: dict) -> None:
        if self.events is not None:
            self.events.record(event_type, campaign_id=campaign.id, user_id=campaign.user_id, details=details)
