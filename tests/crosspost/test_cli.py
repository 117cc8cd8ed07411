from __future__ import annotations

from pathlib import Path

import pytest
from typer.testing import CliRunner

from crosspost.cli.app import app

runner = CliRunner()


@pytest.fixture
def cli_env(monkeypatch, tmp_path: Path) -> Path:
    monkeypatch.setenv("CROSSPOST_ENCRYPTION_KEY", "cli-master-secret")
    monkeypatch.setenv("CROSSPOST_ROOT", str(tmp_path))
    for name in ("LINKEDIN_CLIENT_ID", "LINKEDIN_CLIENT_SECRET", "TWITTER_CLIENT_ID", "TWITTER_CLIENT_SECRET"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setattr("crosspost.cli.app.configure_logging", lambda level, paths=None: None)
    return tmp_path


def test_llm_configure_status_and_revoke(cli_env):
    assert runner.invoke(app, ["init"]).exit_code == 0
    assert "not configured" in runner.invoke(app, ["llm-status"]).output

    result = runner.invoke(app, ["llm-configure", "openai", "--model", "gpt-4o", "--api-key", "sk-cli-0123456789"])
    assert result.exit_code == 0, result.output
    assert "configured provider=openai model=gpt-4o" in runner.invoke(app, ["llm-status"]).output

    assert runner.invoke(app, ["llm-revoke"]).exit_code == 0
    assert "not configured" in runner.invoke(app, ["llm-status"]).output


def test_campaign_create_and_events(cli_env):
    content = cli_env / "post.md"
    content.write_text("We shipped crosspost.", encoding="utf-8")

    result = runner.invoke(app, ["campaign-create", "Launch", "--content-file", str(content)])
    assert result.exit_code == 0, result.output
    assert "Campaign created: camp_" in result.output

    events = runner.invoke(app, ["events"])
    assert "campaign_created" in events.output


def test_domain_errors_exit_non_zero(cli_env):
    result = runner.invoke(app, ["generate", "camp_missing"])
    assert result.exit_code == 1
    assert "Campaign not found" in result.output

    result = runner.invoke(app, ["connect-url", "twitter"])
    assert result.exit_code == 1
    assert "TWITTER_CLIENT_ID" in result.output


def test_missing_master_secret_is_reported(cli_env, monkeypatch):
    monkeypatch.delenv("CROSSPOST_ENCRYPTION_KEY")
    result = runner.invoke(app, ["llm-status"])
    assert result.exit_code == 1
    assert "CROSSPOST_ENCRYPTION_KEY" in result.output


def test_profile_requires_connected_account(cli_env):
    result = runner.invoke(app, ["profile", "linkedin"])
    assert result.exit_code == 1
    assert "linkedin account not connected" in result.output
