from __future__ import annotations

from dataclasses import dataclass

from crosspost.core.models import MediaFiles, Platform
from crosspost.core.platforms import limits_for


@dataclass
class PreflightResult:
    ok: bool
    errors: list[str]


def validate_publish(content: str, platform: Platform, media: MediaFiles | None = None) -> PreflightResult:
    errors: list[str] = []
    limits = limits_for(platform)
    text = content.strip()

    if not text:
        errors.append("content is empty")
        return PreflightResult(False, errors)

    if len(text) > limits.character_limit:
        errors.append(
            f"content exceeds {limits.character_limit} characters for {platform.value} ({len(text)})"
        )

    if media is not None:
        refs = media.all()
        if len(refs) > limits.media_limit:
            errors.append(f"{platform.value} allows at most {limits.media_limit} media files")
        for ref in refs:
            ext = ref.rsplit("?", 1)[0].rsplit(".", 1)[-1].lower() if "." in ref else ""
            if ext not in limits.supported_formats:
                errors.append(f"unsupported media format for {platform.value}: {ref}")

    return PreflightResult(len(errors) == 0, errors)
