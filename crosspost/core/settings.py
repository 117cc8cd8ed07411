from __future__ import annotations

import os
from pathlib import Path

from pydantic import BaseModel, SecretStr

from crosspost.core.errors import ConfigurationError
from crosspost.core.paths import DataPaths, default_paths


class OAuthClientConfig(BaseModel):
    client_id: str
    client_secret: SecretStr


class Settings(BaseModel):
    """Process-wide configuration, read once at startup and passed down explicitly."""

    master_secret: SecretStr | None = None
    linkedin: OAuthClientConfig | None = None
    twitter: OAuthClientConfig | None = None
    callback_base_url: str = "http://localhost:3001"
    http_timeout_seconds: float = 8.0
    max_parallel: int = 4
    state_ttl_seconds: int = 600
    data_root: Path | None = None
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        secret = os.getenv("CROSSPOST_ENCRYPTION_KEY")
        root = os.getenv("CROSSPOST_ROOT")
        return cls(
            master_secret=SecretStr(secret) if secret else None,
            linkedin=_client_from_env("LINKEDIN"),
            twitter=_client_from_env("TWITTER"),
            callback_base_url=os.getenv("CROSSPOST_CALLBACK_BASE_URL", "http://localhost:3001").rstrip("/"),
            http_timeout_seconds=_float_env("CROSSPOST_HTTP_TIMEOUT", 8.0),
            max_parallel=int(_float_env("CROSSPOST_MAX_PARALLEL", 4)),
            state_ttl_seconds=int(_float_env("CROSSPOST_STATE_TTL", 600)),
            data_root=Path(root) if root else None,
            log_level=os.getenv("CROSSPOST_LOG_LEVEL", "INFO").upper(),
        )

    def paths(self) -> DataPaths:
        return DataPaths(self.data_root) if self.data_root else default_paths()

    def require_master_secret(self) -> str:
        if self.master_secret is None or not self.master_secret.get_secret_value():
            raise ConfigurationError("Missing CROSSPOST_ENCRYPTION_KEY environment variable")
        return self.master_secret.get_secret_value()

    def oauth_client(self, platform: str) -> OAuthClientConfig:
        config = getattr(self, platform, None)
        if not isinstance(config, OAuthClientConfig):
            prefix = platform.upper()
            raise ConfigurationError(f"{prefix}_CLIENT_ID / {prefix}_CLIENT_SECRET not configured")
        return config

    def redirect_uri(self, platform: str) -> str:
        return f"{self.callback_base_url}/api/platforms/callback/{platform}"


def _client_from_env(prefix: str) -> OAuthClientConfig | None:
    client_id = os.getenv(f"{prefix}_CLIENT_ID")
    client_secret = os.getenv(f"{prefix}_CLIENT_SECRET")
    if not client_id or not client_secret:
        return None
    return OAuthClientConfig(client_id=client_id, client_secret=SecretStr(client_secret))


def _float_env(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = float(raw)
    except ValueError as exc:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}") from exc
    if value <= 0:
        raise ConfigurationError(f"{name} must be positive")
    return value
