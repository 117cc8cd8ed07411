from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

import typer

from crosspost.core.errors import CrosspostError
from crosspost.core.logging_setup import configure_logging
from crosspost.core.models import MediaFiles
from crosspost.core.paths import ensure_directories
from crosspost.core.service import CampaignService
from crosspost.core.settings import Settings

app = typer.Typer(help="Crosspost CLI")

USER_OPTION = typer.Option("local", "--user", help="Owning user id")


def _service() -> CampaignService:
    settings = Settings.from_env()
    paths = ensure_directories(settings.paths())
    configure_logging(settings.log_level, paths)
    return CampaignService.from_settings(settings)


@contextmanager
def _errors() -> Iterator[None]:
    try:
        yield
    except CrosspostError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from exc
    except ValueError as exc:
        raise typer.BadParameter(str(exc)) from exc


@app.command("init")
def init_data() -> None:
    """Initialize storage directories and JSONL files."""
    paths = ensure_directories(Settings.from_env().paths())
    typer.echo(f"Initialized data directories under {paths.root}")


@app.command("llm-configure")
def llm_configure(
    provider: str = typer.Argument(..., help="openai|anthropic|gemini"),
    model: str = typer.Option(..., help="Model name, e.g. gpt-4o"),
    api_key: str = typer.Option(..., prompt=True, hide_input=True),
    user: str = USER_OPTION,
) -> None:
    with _errors():
        credential = _service().configure_llm(user, provider, model, api_key)
    typer.echo(f"Configured {credential.provider.value} model={credential.model}")


@app.command("llm-revoke")
def llm_revoke(user: str = USER_OPTION) -> None:
    with _errors():
        _service().revoke_llm(user)
    typer.echo("LLM credential revoked")


@app.command("llm-status")
def llm_status(user: str = USER_OPTION) -> None:
    with _errors():
        status = _service().llm_status(user)
    if not status["configured"]:
        typer.echo("not configured")
        return
    typer.echo(f"configured provider={status['provider']} model={status['model']}")


@app.command("connect-url")
def connect_url(platform: str, user: str = USER_OPTION) -> None:
    """Print the authorization URL to open in a browser."""
    with _errors():
        url = _service().oauth.build_authorization_url(platform, user)
    typer.echo(url)


@app.command("connect-callback")
def connect_callback(
    platform: str,
    code: str = typer.Option("", help="Authorization code from the redirect"),
    state: str = typer.Option(..., help="State parameter from the redirect"),
    error: str = typer.Option("", help="Error parameter from the redirect, if any"),
) -> None:
    with _errors():
        connection = _service().oauth.handle_callback(platform, code or None, state, error or None)
    typer.echo(
        f"Connected {connection.platform.value} as {connection.username or connection.platform_user_id}; "
        f"expires={connection.token_expires_at or '-'}"
    )


@app.command("connections")
def connections(user: str = USER_OPTION) -> None:
    with _errors():
        rows = _service().connections(user)
    if not rows:
        typer.echo("No connected accounts.")
        return
    for row in rows:
        typer.echo(
            f"{row['platform']} user={row['username'] or row['platform_user_id']} "
            f"state={row['state']} expires={row['token_expires_at'] or '-'}"
        )


@app.command("disconnect")
def disconnect(platform: str, user: str = USER_OPTION) -> None:
    with _errors():
        connection = _service().oauth.disconnect(user, platform)
    typer.echo(f"Disconnected {connection.platform.value}")


@app.command("refresh")
def refresh(platform: str, user: str = USER_OPTION) -> None:
    with _errors():
        refreshed = _service().refresh_connection(user, platform)
    if not refreshed:
        typer.echo(f"Could not refresh {platform} token; reconnect the account.")
        raise typer.Exit(code=1)
    typer.echo(f"Refreshed {platform} token")


@app.command("profile")
def profile(platform: str, user: str = USER_OPTION) -> None:
    """Show the live profile of a connected account."""
    with _errors():
        account = _service().account_profile(user, platform)
    typer.echo(
        f"{platform} id={account.platform_user_id} username={account.username or '-'} "
        f"name={account.display_name or '-'}"
    )


@app.command("campaign-create")
def campaign_create(
    title: str = typer.Argument(...),
    content_file: Path = typer.Option(..., exists=True, readable=True),
    image: list[str] = typer.Option([], help="Image path or URL; repeatable"),
    video: list[str] = typer.Option([], help="Video path or URL; repeatable"),
    user: str = USER_OPTION,
) -> None:
    content = content_file.read_text(encoding="utf-8")
    media = MediaFiles(images=image, videos=video) if image or video else None
    with _errors():
        campaign = _service().create_campaign(user, title, content, media_files=media)
    typer.echo(f"Campaign created: {campaign.id}")


@app.command("generate")
def generate(
    campaign_id: str,
    platform: list[str] = typer.Option(["linkedin", "twitter"], help="Target platform; repeatable"),
    user: str = USER_OPTION,
) -> None:
    with _errors():
        drafts = _service().generate_drafts(campaign_id, user, platform)
    for draft in drafts:
        typer.echo(f"{draft.id} [{draft.platform.value}]")
        for index, variation in enumerate(draft.variations):
            typer.echo(f"  {index}. ({variation.tone}) {variation.content}")


@app.command("refine")
def refine(
    draft_id: str,
    instruction: str = typer.Option(..., help="What to change"),
    variation: int | None = typer.Option(None, help="Refine this variation instead of the selection"),
    user: str = USER_OPTION,
) -> None:
    with _errors():
        draft = _service().refine_draft(draft_id, user, instruction, variation_index=variation)
    typer.echo(f"Iteration {len(draft.iteration_history)}:\n{draft.selected_content}")


@app.command("select")
def select(draft_id: str, index: int, user: str = USER_OPTION) -> None:
    with _errors():
        draft = _service().select_variation(draft_id, user, index)
    typer.echo(f"Selected variation {index} for {draft.id}")


@app.command("publish")
def publish(
    campaign_id: str,
    platform: str | None = typer.Option(None, help="Publish a single platform only"),
    user: str = USER_OPTION,
) -> None:
    with _errors():
        service = _service()
        if platform:
            results = [service.publish_platform(campaign_id, platform, user)]
        else:
            results = service.publish_campaign(campaign_id, user)
    failed = 0
    for result in results:
        if result.success:
            typer.echo(f"{result.platform.value}: posted {result.post_url or result.post_id}")
        else:
            failed += 1
            typer.echo(f"{result.platform.value}: failed {result.error}")
    if failed:
        raise typer.Exit(code=1)


@app.command("events")
def events(
    campaign_id: str | None = typer.Option(None),
    limit: int = typer.Option(50, min=1, max=500),
) -> None:
    with _errors():
        rows = _service().query_events(campaign_id=campaign_id, limit=limit)
    if not rows:
        typer.echo("No events found.")
        return
    for row in rows:
        details = row.get("details") or {}
        typer.echo(
            f"{row.get('timestamp')} {row.get('event_type')} "
            f"campaign={row.get('campaign_id') or '-'} user={row.get('user_id') or '-'} details={details}"
        )


@app.command("compact")
def compact() -> None:
    with _errors():
        result = _service().compact_data()
    for name, dropped in result.items():
        typer.echo(f"{name}: dropped_lines={dropped}")


if __name__ == "__main__":
    app()
