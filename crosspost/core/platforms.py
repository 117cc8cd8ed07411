from __future__ import annotations

from crosspost.core.models import Platform, PlatformLimits

_MB = 1024 * 1024

PLATFORM_LIMITS: dict[Platform, PlatformLimits] = {
    Platform.LINKEDIN: PlatformLimits(
        character_limit=3000,
        media_limit=9,
        image_size_limit=10 * _MB,
        video_size_limit=5 * 1024 * _MB,
        supported_formats=("jpg", "jpeg", "png", "gif", "mp4"),
    ),
    Platform.TWITTER: PlatformLimits(
        character_limit=280,
        media_limit=4,
        image_size_limit=5 * _MB,
        video_size_limit=512 * _MB,
        supported_formats=("jpg", "jpeg", "png", "gif", "mp4", "mov"),
    ),
}

TONE_PRESETS: dict[Platform, tuple[str, ...]] = {
    Platform.LINKEDIN: (
        "Professional & Informative",
        "Thought Leadership",
        "Engaging & Conversational",
    ),
    Platform.TWITTER: (
        "Casual & Fun",
        "Direct & Informative",
        "Engaging Question",
    ),
}

GUIDELINES: dict[Platform, str] = {
    Platform.LINKEDIN: (
        "- Professional tone, industry insights\n"
        "- Character limit: 3000\n"
        "- Best practices: Use relevant hashtags (3-5), mention industry leaders, include a call-to-action\n"
        "- Format: Well-structured paragraphs with clear spacing"
    ),
    Platform.TWITTER: (
        "- Concise, engaging, conversational\n"
        "- Character limit: 280 (or thread if needed)\n"
        "- Best practices: Use 1-2 hashtags, include mentions, emojis for engagement\n"
        "- Format: Short, punchy sentences or thread format"
    ),
}


def limits_for(platform: Platform | str) -> PlatformLimits:
    return PLATFORM_LIMITS[Platform(platform)]


def tones_for(platform: Platform | str) -> tuple[str, ...]:
    return TONE_PRESETS[Platform(platform)]


def guidelines_for(platform: Platform | str) -> str:
    return GUIDELINES[Platform(platform)]
