"""Command-line entry point for the content portal.

Commands:
    serve        run the HTTP API under uvicorn
    trigger      send one brief to the n8n webhook and print the normalized result
    history      print the most recent content records
    video-status ask the rendering service for a video's status
    watch-video  poll a video until it renders, flipping its record to completed
"""
from __future__ import annotations

import asyncio
import json
import logging
from typing import Optional

import typer

# Load .env file if present (before any config access)
from dotenv import find_dotenv, load_dotenv

_env_file = find_dotenv(usecwd=True)
if _env_file:
    load_dotenv(_env_file)

from .automation import AutomationClient
from .config import get_settings
from .db import create_store
from .errors import PortalError
from .models.automation import AutomationPayload
from .models.content import ContentKind
from .normalization import describe_result
from .service import ContentService
from .video_service import VideoServiceClient

app = typer.Typer(help="n8n content portal CLI")


def _setup_logging() -> None:
    settings = get_settings()
    logging.basicConfig(
        level=settings.LOG_LEVEL,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _run(coro) -> None:
    try:
        asyncio.run(coro)
    except PortalError as e:
        typer.echo(f"Error: {e.message}", err=True)
        raise typer.Exit(code=1) from e


@app.callback()
def main() -> None:  # pragma: no cover - simple callback
    """Content portal commands."""


@app.command(help="Run the HTTP API.")
def serve(
    host: Optional[str] = typer.Option(None, help="Bind address (defaults to API_HOST)"),
    port: Optional[int] = typer.Option(None, help="Bind port (defaults to API_PORT)"),
) -> None:
    import uvicorn

    from .api import create_app

    _setup_logging()
    settings = get_settings()
    uvicorn.run(
        create_app(settings),
        host=host or settings.API_HOST,
        port=port or settings.API_PORT,
        log_level=settings.LOG_LEVEL.lower(),
    )


@app.command(help="Send a single brief to the automation and print the normalized result.")
def trigger(
    type_: ContentKind = typer.Option(..., "--type", help="Brief type"),
    prompt: str = typer.Option(..., help="Prompt text sent to the workflow"),
) -> None:
    _setup_logging()

    async def _go() -> None:
        async with AutomationClient.from_settings(get_settings()) as client:
            response = await client.trigger(AutomationPayload(type=type_.value, prompt=prompt))
        typer.echo(json.dumps(response.model_dump(), indent=2, ensure_ascii=False))

    _run(_go())


@app.command(help="Print the most recent content records.")
def history(limit: int = typer.Option(20, help="Number of records (1-50)")) -> None:
    _setup_logging()

    async def _go() -> None:
        store = create_store(get_settings())
        await store.open()
        try:
            records = await store.list_recent(limit)
        finally:
            await store.close()
        if not records:
            typer.echo("No content yet.")
            return
        for record in records:
            typer.echo(
                f"[{record.created_at:%Y-%m-%d %H:%M}] {record.kind.value} "
                f"({record.status.value}) id={record.id}"
            )
            summary = describe_result(record.result)
            if summary:
                typer.echo(f"    {summary}")
            if record.error:
                typer.echo(f"    error: {record.error}")

    _run(_go())


@app.command("video-status", help="Show the rendering status of a video.")
def video_status(video_id: str = typer.Argument(..., help="videoId returned by the automation")) -> None:
    _setup_logging()

    async def _go() -> None:
        client = VideoServiceClient.from_settings(get_settings())
        try:
            data = await client.status(video_id)
        finally:
            await client.aclose()
        typer.echo(json.dumps(data, indent=2, ensure_ascii=False))

    _run(_go())


@app.command("watch-video", help="Poll a video until it is ready and mark its record completed.")
def watch_video(
    record_id: str = typer.Argument(..., help="Content record id"),
    video_id: str = typer.Argument(..., help="videoId returned by the automation"),
    max_attempts: Optional[int] = typer.Option(None, help="Override VIDEO_POLL_MAX_ATTEMPTS"),
    interval_ms: Optional[int] = typer.Option(None, help="Override VIDEO_POLL_INTERVAL_MS"),
) -> None:
    _setup_logging()
    settings = get_settings()
    if not settings.PG_DSN:
        # the in-memory store starts empty, so the record could never be found
        typer.echo(
            "Error: watch-video needs a persistent content store; set PG_DSN "
            "(or the DB_POSTGRESDB_* variables).",
            err=True,
        )
        raise typer.Exit(code=1)

    async def _go() -> None:
        store = create_store(settings)
        automation = AutomationClient.from_settings(settings)
        videos = VideoServiceClient.from_settings(settings)
        service = ContentService(
            store,
            automation,
            videos,
            video_poll_interval_ms=settings.VIDEO_POLL_INTERVAL_MS,
            video_poll_max_attempts=settings.VIDEO_POLL_MAX_ATTEMPTS,
        )
        await store.open()
        try:
            outcome = await service.watch_video(
                record_id, video_id, max_attempts=max_attempts, interval_ms=interval_ms
            )
        finally:
            await automation.aclose()
            await videos.aclose()
            await store.close()
        typer.echo(f"{outcome.state} after {outcome.attempts} attempt(s): {outcome.message}")
        if outcome.state == "error":
            raise typer.Exit(code=1)

    _run(_go())


if __name__ == "__main__":  # pragma: no cover
    app()
