"""HTTP API for the content portal.

Routes:
    POST  /api/content/script             {topic, tone}           -> {item}
    POST  /api/content/image              {description, goals}    -> {item}
    POST  /api/content/sentiment          {text}                  -> {item}
    POST  /api/content/video              {scenes, config?}       -> {item}
    GET   /api/content/video?videoId=     render status passthrough
    PATCH /api/content/video              {itemId, videoStatus}   -> {item}
    GET   /api/content/video/download?videoId=   MP4 attachment
    GET   /api/history?limit=             {items}, newest first
    GET   /healthz

Every `PortalError` is rendered as ``{"error": message}`` with the error's
status code. The store and HTTP clients are opened in the application
lifespan and closed on shutdown.
"""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, Response

from .automation import AutomationClient
from .config import Settings, get_settings
from .db import ContentStore, create_store
from .errors import PortalError, RequestValidationError
from .models.content import ContentRecord
from .service import ContentService
from .video_service import VIDEO_MIME_TYPE, VideoServiceClient, download_filename

logger = logging.getLogger(__name__)

__all__ = ["create_app"]


async def _json_body(request: Request) -> Any:
    try:
        return await request.json()
    except ValueError as e:
        raise RequestValidationError("could not parse the request body as JSON") from e


def _item(record: ContentRecord) -> Dict[str, Any]:
    return {"item": record.to_api()}


def _service(request: Request) -> ContentService:
    return request.app.state.service


def create_app(
    settings: Optional[Settings] = None,
    *,
    store: Optional[ContentStore] = None,
    automation: Optional[AutomationClient] = None,
    video_service: Optional[VideoServiceClient] = None,
) -> FastAPI:
    """Build the application. Collaborators default to ones built from settings."""
    settings = settings or get_settings()
    store = store or create_store(settings)
    automation = automation or AutomationClient.from_settings(settings)
    video_service = video_service or VideoServiceClient.from_settings(settings)
    service = ContentService(
        store,
        automation,
        video_service,
        video_poll_interval_ms=settings.VIDEO_POLL_INTERVAL_MS,
        video_poll_max_attempts=settings.VIDEO_POLL_MAX_ATTEMPTS,
    )
    if not settings.N8N_WEBHOOK_URL:
        logger.warning("N8N_WEBHOOK_URL is not set; generation requests will fail")

    @asynccontextmanager
    async def lifespan(_: FastAPI) -> AsyncIterator[None]:
        await store.open()
        try:
            yield
        finally:
            await automation.aclose()
            await video_service.aclose()
            await store.close()

    app = FastAPI(title="n8n content portal", version="0.1.0", lifespan=lifespan)
    app.state.service = service

    @app.exception_handler(PortalError)
    async def _portal_error(_: Request, exc: PortalError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error("Request failed (%d): %s", exc.status_code, exc.message)
        return JSONResponse({"error": exc.message}, status_code=exc.status_code)

    @app.get("/healthz")
    async def healthz() -> Dict[str, str]:
        return {"status": "ok"}

    @app.post("/api/content/script")
    async def create_script(request: Request) -> Dict[str, Any]:
        return _item(await _service(request).generate_script(await _json_body(request)))

    @app.post("/api/content/image")
    async def create_image(request: Request) -> Dict[str, Any]:
        return _item(await _service(request).generate_image(await _json_body(request)))

    @app.post("/api/content/sentiment")
    async def create_sentiment(request: Request) -> Dict[str, Any]:
        return _item(await _service(request).analyze_sentiment(await _json_body(request)))

    @app.post("/api/content/video")
    async def create_video(request: Request) -> Dict[str, Any]:
        return _item(await _service(request).generate_video(await _json_body(request)))

    @app.get("/api/content/video")
    async def video_status(request: Request, videoId: Optional[str] = None) -> Dict[str, Any]:
        return await _service(request).video_status(videoId or "")

    @app.patch("/api/content/video")
    async def update_video(request: Request) -> Dict[str, Any]:
        body = await _json_body(request)
        if not isinstance(body, dict):
            raise RequestValidationError("itemId and videoStatus are required")
        record = await _service(request).mark_video_status(
            str(body.get("itemId") or ""), str(body.get("videoStatus") or "")
        )
        return _item(record)

    @app.get("/api/content/video/download")
    async def download_video(request: Request, videoId: Optional[str] = None) -> Response:
        content = await _service(request).download_video(videoId or "")
        return Response(
            content=content,
            media_type=VIDEO_MIME_TYPE,
            headers={
                "Content-Disposition": f'attachment; filename="{download_filename(videoId or "")}"'
            },
        )

    @app.get("/api/history")
    async def history(request: Request, limit: Optional[str] = None) -> Dict[str, Any]:
        records = await _service(request).recent(limit)
        return {"items": [r.to_api() for r in records]}

    return app
