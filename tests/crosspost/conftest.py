from __future__ import annotations

from datetime import timedelta
from pathlib import Path

import pytest

from crosspost.core.models import (
    LlmCredential,
    LlmProvider,
    Platform,
    SocialConnection,
    utc_now,
)
from crosspost.core.paths import DataPaths
from crosspost.core.repositories import Storage, new_id
from crosspost.core.secret_vault import SecretVault

MASTER_SECRET = "test-master-secret"
API_KEY = "sk-test-0123456789abcdef"


@pytest.fixture
def vault() -> SecretVault:
    return SecretVault(MASTER_SECRET)


@pytest.fixture
def storage(tmp_path: Path) -> Storage:
    return Storage.open(DataPaths(tmp_path / "crosspost"))


@pytest.fixture
def make_connection(storage: Storage, vault: SecretVault):
    def _make(
        user_id: str = "u1",
        platform: Platform = Platform.TWITTER,
        access_token: str = "at-1",
        refresh_token: str | None = "rt-1",
        expires_in: int | None = 3600,
        username: str | None = "ada",
    ) -> SocialConnection:
        now = utc_now()
        connection = SocialConnection(
            id=new_id("conn"),
            user_id=user_id,
            platform=platform,
            platform_user_id="p-1",
            username=username,
            display_name="Ada Lovelace",
            encrypted_access_token=vault.encrypt(access_token),
            encrypted_refresh_token=vault.encrypt(refresh_token) if refresh_token else None,
            token_expires_at=(now + timedelta(seconds=expires_in)).isoformat() if expires_in is not None else None,
            created_at=now.isoformat(),
            updated_at=now.isoformat(),
        )
        storage.connections.save(connection)
        return connection

    return _make


@pytest.fixture
def credential(vault: SecretVault) -> LlmCredential:
    return LlmCredential(
        user_id="u1",
        provider=LlmProvider.OPENAI,
        model="gpt-4o",
        encrypted_api_key=vault.encrypt(API_KEY),
    )
