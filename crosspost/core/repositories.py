from __future__ import annotations

import hashlib
import uuid
from dataclasses import dataclass
from typing import Any, Protocol

from crosspost.core.models import (
    Campaign,
    ContentDraft,
    LlmCredential,
    Platform,
    SocialConnection,
    utc_now_iso,
)
from crosspost.core.paths import DataPaths, ensure_directories
from crosspost.core.redaction import redact_secrets
from crosspost.core.storage_jsonl import JsonlStore


def new_id(prefix: str) -> str:
    raw = f"{prefix}:{utc_now_iso()}:{uuid.uuid4().hex}"
    suffix = hashlib.sha1(raw.encode("utf-8")).hexdigest()[:10]
    return f"{prefix}_{suffix}"


class ConnectionRepository(Protocol):
    def get(self, user_id: str, platform: Platform) -> SocialConnection | None: ...

    def save(self, connection: SocialConnection) -> None: ...

    def list_for_user(self, user_id: str) -> list[SocialConnection]: ...


class LlmCredentialRepository(Protocol):
    def get(self, user_id: str) -> LlmCredential | None: ...

    def save(self, credential: LlmCredential) -> None: ...


class DraftRepository(Protocol):
    def get(self, draft_id: str) -> ContentDraft | None: ...

    def list_for_campaign(self, campaign_id: str) -> list[ContentDraft]: ...

    def save(self, draft: ContentDraft) -> None: ...

    def replace_for_platform(self, draft: ContentDraft) -> None: ...


class CampaignRepository(Protocol):
    def get(self, campaign_id: str) -> Campaign | None: ...

    def save(self, campaign: Campaign) -> None: ...


class JsonlConnectionRepository:
    def __init__(self, store: JsonlStore):
        self.store = store

    def get(self, user_id: str, platform: Platform) -> SocialConnection | None:
        rows = self.store.filter(
            lambda r: r.get("user_id") == user_id and r.get("platform") == Platform(platform).value
        )
        return SocialConnection.model_validate(rows[0]) if rows else None

    def save(self, connection: SocialConnection) -> None:
        connection.updated_at = utc_now_iso()
        # (user_id, platform) is the natural key; the row id never changes after creation.
        self.store.replace_where(
            lambda r: r.get("user_id") == connection.user_id
            and r.get("platform") == connection.platform.value,
            connection.model_dump(mode="json"),
        )

    def list_for_user(self, user_id: str) -> list[SocialConnection]:
        rows = self.store.filter(lambda r: r.get("user_id") == user_id)
        return [SocialConnection.model_validate(r) for r in rows]


class JsonlLlmCredentialRepository:
    def __init__(self, store: JsonlStore):
        self.store = store

    def get(self, user_id: str) -> LlmCredential | None:
        row = self.store.find_one("user_id", user_id)
        return LlmCredential.model_validate(row) if row else None

    def save(self, credential: LlmCredential) -> None:
        credential.updated_at = utc_now_iso()
        self.store.upsert("user_id", credential.user_id, credential.model_dump(mode="json"))


class JsonlDraftRepository:
    def __init__(self, store: JsonlStore):
        self.store = store

    def get(self, draft_id: str) -> ContentDraft | None:
        row = self.store.find_one("id", draft_id)
        return ContentDraft.model_validate(row) if row else None

    def list_for_campaign(self, campaign_id: str) -> list[ContentDraft]:
        rows = self.store.filter(lambda r: r.get("campaign_id") == campaign_id)
        return [ContentDraft.model_validate(r) for r in rows]

    def save(self, draft: ContentDraft) -> None:
        draft.updated_at = utc_now_iso()
        self.store.upsert("id", draft.id, draft.model_dump(mode="json"))

    def replace_for_platform(self, draft: ContentDraft) -> None:
        draft.updated_at = utc_now_iso()
        self.store.replace_where(
            lambda r: r.get("campaign_id") == draft.campaign_id
            and r.get("platform") == draft.platform.value,
            draft.model_dump(mode="json"),
        )


class JsonlCampaignRepository:
    def __init__(self, store: JsonlStore):
        self.store = store

    def get(self, campaign_id: str) -> Campaign | None:
        row = self.store.find_one("id", campaign_id)
        return Campaign.model_validate(row) if row else None

    def save(self, campaign: Campaign) -> None:
        campaign.updated_at = utc_now_iso()
        self.store.upsert("id", campaign.id, campaign.model_dump(mode="json"))


class EventLog:
    def __init__(self, store: JsonlStore):
        self.store = store

    def record(
        self,
        event_type: str,
        campaign_id: str | None = None,
        user_id: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        safe_details = {
            key: redact_secrets(value) if isinstance(value, str) else value
            for key, value in (details or {}).items()
        }
        self.store.append(
            {
                "event_id": new_id("evt"),
                "event_type": event_type,
                "campaign_id": campaign_id,
                "user_id": user_id,
                "timestamp": utc_now_iso(),
                "details": safe_details,
            }
        )

    def query(self, campaign_id: str | None = None, limit: int = 50) -> list[dict[str, Any]]:
        rows = self.store.read_all()
        if campaign_id:
            rows = [r for r in rows if r.get("campaign_id") == campaign_id]
        if limit > 0:
            rows = rows[-limit:]
        return rows


@dataclass
class Storage:
    connections: JsonlConnectionRepository
    llm_credentials: JsonlLlmCredentialRepository
    campaigns: JsonlCampaignRepository
    drafts: JsonlDraftRepository
    events: EventLog

    @classmethod
    def open(cls, paths: DataPaths) -> "Storage":
        ensure_directories(paths)
        return cls(
            connections=JsonlConnectionRepository(JsonlStore(paths.connections_file)),
            llm_credentials=JsonlLlmCredentialRepository(JsonlStore(paths.llm_credentials_file)),
            campaigns=JsonlCampaignRepository(JsonlStore(paths.campaigns_file)),
            drafts=JsonlDraftRepository(JsonlStore(paths.drafts_file)),
            events=EventLog(JsonlStore(paths.events_file)),
        )

    def stores(self) -> list[JsonlStore]:
        return [
            self.connections.store,
            self.llm_credentials.store,
            self.campaigns.store,
            self.drafts.store,
            self.events.store,
        ]
