import asyncio
import json
import logging
from pathlib import Path
from typing import Optional

import typer
from rich import print
from rich.markup import escape

from .config import Settings, load_settings
from .errors import Cancelled, InvalidParameter, MissingInput, ReplyGenerationError, UpstreamError, user_message
from .generator import ReplyGenerationService
from .llm import build_client
from .models import GenerationRequest, Platform, Tone, default_platform
from .retry import retry_generation

app = typer.Typer()


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log request metadata."),
):
    """ReplyCopilot CLI entrypoint."""
    logging.basicConfig(level=logging.INFO if verbose else logging.WARNING)
    if ctx.invoked_subcommand is None:
        print(ctx.get_help())
        raise typer.Exit(code=0)


def _load_settings() -> Settings:
    try:
        return load_settings()
    except ValueError as exc:
        print(f"[red]Invalid configuration:[/red] {exc}")
        raise typer.Exit(code=1)


def _build_service(settings: Settings) -> ReplyGenerationService:
    try:
        client = build_client(settings)
    except RuntimeError as exc:
        print(f"[red]{exc}[/red]")
        raise typer.Exit(code=1)
    return ReplyGenerationService(client, settings=settings)


def _read_image(file: Path, max_bytes: int) -> bytes:
    if not file.exists():
        print("[red]File not found[/red]")
        raise typer.Exit(code=1)
    data = file.read_bytes()
    if len(data) > max_bytes:
        print(f"[red]Screenshot is too large ({len(data)} bytes, max {max_bytes}).[/red]")
        raise typer.Exit(code=1)
    return data


def _resolve_tone(tone: Optional[str], platform: str) -> str:
    if tone is not None:
        return tone
    try:
        return Tone.recommended_for(Platform(platform)).value
    except ValueError:
        # Unknown platform; let the service report it.
        return Tone.FRIENDLY.value


def _exit_code(exc: ReplyGenerationError) -> int:
    if isinstance(exc, (MissingInput, InvalidParameter)):
        return 2
    if isinstance(exc, Cancelled):
        return 130
    return 1


def _handle_generation_error(exc: ReplyGenerationError) -> None:
    print(f"[red]{user_message(exc)}[/red]")
    if isinstance(exc, InvalidParameter):
        print(f"Allowed values: {', '.join(exc.allowed)}")
    if isinstance(exc, UpstreamError):
        print(f"[dim]{exc.reason}: {escape(exc.detail)}[/dim]")
    raise typer.Exit(code=_exit_code(exc))


@app.command()
def generate(
    file: Path,
    platform: Optional[str] = typer.Option(
        None,
        "--platform",
        help="Messaging platform of the screenshot. Defaults to the --bundle-id app, else whatsapp.",
    ),
    bundle_id: Optional[str] = typer.Option(None, "--bundle-id", help="Host app bundle id, e.g. com.microsoft.skype.teams."),
    tone: Optional[str] = typer.Option(
        None,
        "--tone",
        help="Reply tone. Defaults to the platform's recommended tone.",
    ),
    user_id: Optional[str] = typer.Option(None, "--user-id", help="Caller id recorded in telemetry."),
    timeout: Optional[float] = typer.Option(None, "--timeout", help="Seconds to wait for the model."),
    retries: int = typer.Option(0, "--retries", min=0, help="Extra attempts on retryable failures."),
    as_json: bool = typer.Option(False, "--json", help="Print the result as JSON."),
):
    settings = _load_settings()
    image = _read_image(file, settings.max_image_bytes)
    service = _build_service(settings)

    if platform is None:
        platform = default_platform(bundle_id).value
    request = GenerationRequest(
        image=image,
        platform=platform,
        tone=_resolve_tone(tone, platform),
        user_id=user_id,
    )
    run = service.generate
    if retries:
        run = retry_generation(max_attempts=retries + 1)(service.generate)

    try:
        result = asyncio.run(run(request, timeout=timeout))
    except ReplyGenerationError as exc:
        _handle_generation_error(exc)

    if as_json:
        typer.echo(json.dumps(result.model_dump(), ensure_ascii=False))
        return

    if not result.suggestions:
        print("[yellow]No suggestions generated.[/yellow]")
        return

    print(f"[bold]Suggestions[/bold] ({result.processing_time_ms}ms)")
    for i, suggestion in enumerate(result.suggestions, 1):
        print(f"{i}. {escape(suggestion)}")


@app.command()
def tones():
    for tone in Tone:
        print(f"{tone.emoji} [bold]{tone.value}[/bold] - {tone.description}")


@app.command()
def platforms():
    for platform in Platform:
        recommended = Tone.recommended_for(platform)
        print(f"[bold]{platform.value}[/bold] ({platform.display_name}) - recommended tone: {recommended.value}")


@app.command()
def serve(
    host: str = typer.Option("127.0.0.1", "--host"),
    port: int = typer.Option(7071, "--port"),
    debug: bool = typer.Option(False, "--debug"),
):
    from .api import create_app

    settings = _load_settings()
    flask_app = create_app(_build_service(settings), settings=settings)
    flask_app.run(host=host, port=port, debug=debug)


if __name__ == "__main__":
    app()
