from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, model_validator


def utc_now() -> datetime:
    return datetime.now(tz=timezone.utc)


def utc_now_iso() -> str:
    return utc_now().isoformat()


def parse_iso(value: str) -> datetime:
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class Platform(str, Enum):
    LINKEDIN = "linkedin"
    TWITTER = "twitter"


class LlmProvider(str, Enum):
    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    GEMINI = "gemini"


class PostStatus(str, Enum):
    DRAFT = "draft"
    POSTED = "posted"
    FAILED = "failed"


class CampaignStatus(str, Enum):
    DRAFT = "draft"
    PUBLISHED = "published"
    SCHEDULED = "scheduled"
    FAILED = "failed"


class SocialConnection(BaseModel):
    id: str
    user_id: str
    platform: Platform
    platform_user_id: str
    username: str | None = None
    display_name: str | None = None
    encrypted_access_token: str
    encrypted_refresh_token: str | None = None
    token_expires_at: str | None = None
    is_active: bool = True
    created_at: str
    updated_at: str

    @property
    def needs_reconnection(self) -> bool:
        if not self.token_expires_at:
            return False
        return parse_iso(self.token_expires_at) < utc_now()


class LlmCredential(BaseModel):
    """Single LLM identity per user. Either fully configured or fully cleared."""

    user_id: str
    provider: LlmProvider | None = None
    model: str | None = None
    encrypted_api_key: str | None = None
    updated_at: str = Field(default_factory=utc_now_iso)

    @model_validator(mode="after")
    def _all_or_nothing(self) -> "LlmCredential":
        set_flags = (
            self.provider is not None,
            self.model is not None,
            bool(self.encrypted_api_key),
        )
        if any(set_flags) and not all(set_flags):
            raise ValueError("LLM credential must set provider, model and api key together")
        return self

    @property
    def is_configured(self) -> bool:
        return self.provider is not None and bool(self.encrypted_api_key)


class ToneVariation(BaseModel):
    model_config = ConfigDict(frozen=True)

    tone: str
    content: str


class IterationEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    timestamp: str
    content: str
    prompt: str


class ContentDraft(BaseModel):
    id: str
    campaign_id: str
    platform: Platform
    variations: tuple[ToneVariation, ...] = ()
    selected_content: str | None = None
    final_content: str | None = None
    status: PostStatus = PostStatus.DRAFT
    post_id: str | None = None
    post_url: str | None = None
    iteration_history: list[IterationEntry] = Field(default_factory=list)
    posted_at: str | None = None
    last_error: str | None = None
    created_at: str
    updated_at: str

    def content_to_publish(self) -> str:
        for candidate in (
            self.final_content,
            self.selected_content,
            self.variations[0].content if self.variations else None,
        ):
            if candidate and candidate.strip():
                return candidate
        return ""


class MediaFiles(BaseModel):
    images: list[str] = Field(default_factory=list)
    videos: list[str] = Field(default_factory=list)

    def all(self) -> list[str]:
        return [*self.images, *self.videos]


class CampaignLink(BaseModel):
    url: str
    title: str | None = None
    description: str | None = None
    image: str | None = None


class Campaign(BaseModel):
    id: str
    user_id: str
    title: str
    original_content: str
    media_files: MediaFiles | None = None
    links: list[CampaignLink] = Field(default_factory=list)
    status: CampaignStatus = CampaignStatus.DRAFT
    created_at: str
    updated_at: str


class PublishResult(BaseModel):
    platform: Platform
    success: bool
    post_id: str | None = None
    post_url: str | None = None
    error: str | None = None


class PlatformLimits(BaseModel):
    character_limit: int
    media_limit: int
    image_size_limit: int
    video_size_limit: int
    supported_formats: tuple[str, ...]
