"""FastAPI application for Ephemera."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Annotated

from fastapi import Depends, FastAPI, Header, Request
from fastapi.responses import JSONResponse

from ephemera import __version__
from ephemera.config import settings
from ephemera.dependencies import (
    Services,
    build_default_services,
    get_services,
    rate_limit,
)
from ephemera.errors import BackendError, RateLimitedError, UploadRejectedError
from ephemera.models.enums import DenialReason, RateLimitAction, UploadRejection
from ephemera.schemas import (
    DownloadRequest,
    DownloadResponse,
    ErrorResponse,
    StatusResponse,
    SweepResponse,
    UploadRequest,
    UploadResponse,
)
from ephemera.security import constant_time_equals
from ephemera.services.access_gate import Denied, NotFound, PublicStatus
from ephemera.utils.time import utcnow

logger = logging.getLogger(__name__)

UPLOAD_REJECTION_STATUS = {
    UploadRejection.MISSING_FIELDS: 400,
    UploadRejection.FILE_TOO_LARGE: 400,
    UploadRejection.INVALID_EXPIRY: 400,
    UploadRejection.INVALID_SLUG_FORMAT: 400,
    UploadRejection.SLUG_TAKEN: 409,
    UploadRejection.ALLOCATION_EXHAUSTED: 503,
}

DENIAL_STATUS = {
    DenialReason.EXPIRED: 410,
    DenialReason.ALREADY_CONSUMED: 410,
    DenialReason.LIMIT_REACHED: 410,
    DenialReason.PASSWORD_REQUIRED: 401,
    DenialReason.INVALID_PASSWORD: 401,
}


def error_response(
    status_code: int,
    error: str,
    message: str,
    *,
    requires_password: bool = False,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    body = ErrorResponse(error=error, message=message, requires_password=requires_password)
    return JSONResponse(
        status_code=status_code,
        content=body.model_dump(mode="json", by_alias=True),
        headers=headers,
    )


def gate_error(result: Denied | NotFound) -> JSONResponse:
    if isinstance(result, NotFound):
        return error_response(404, "not_found", "File not found")
    reason = result.reason
    return error_response(
        DENIAL_STATUS[reason],
        reason.value,
        reason.value.replace("_", " ").capitalize(),
        requires_password=reason is DenialReason.PASSWORD_REQUIRED,
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan handler.

    Builds services from settings unless they were injected, and runs the
    periodic sweep when ``sweep_interval_seconds`` is set.
    """
    owned = getattr(app.state, "services", None) is None
    if owned:
        app.state.services = await build_default_services()
    services: Services = app.state.services

    sweep_task: asyncio.Task[None] | None = None
    if settings.sweep_interval_seconds > 0:
        sweep_task = asyncio.create_task(
            services.sweeper.run_forever(settings.sweep_interval_seconds), name="sweeper"
        )
    try:
        yield
    finally:
        if sweep_task is not None:
            sweep_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await sweep_task
        if owned:
            await services.close()
        else:
            await services.scheduler.shutdown()


def create_app(services: Services | None = None) -> FastAPI:
    """Build the application, optionally around pre-built services."""
    app = FastAPI(
        title="Ephemera",
        description="Expiring, password-gated, limited-download file links",
        version=__version__,
        lifespan=lifespan,
    )
    if services is not None:
        app.state.services = services

    @app.exception_handler(UploadRejectedError)
    async def _upload_rejected(request: Request, exc: UploadRejectedError) -> JSONResponse:
        return error_response(UPLOAD_REJECTION_STATUS[exc.reason], exc.reason.value, str(exc))

    @app.exception_handler(RateLimitedError)
    async def _rate_limited(request: Request, exc: RateLimitedError) -> JSONResponse:
        return error_response(
            429,
            "rate_limited",
            "Rate limit exceeded. Try again later.",
            headers={"Retry-After": str(exc.retry_after_seconds)},
        )

    @app.exception_handler(BackendError)
    async def _backend_error(request: Request, exc: BackendError) -> JSONResponse:
        logger.error("Backend failure on %s %s: %s", request.method, request.url.path, exc)
        return error_response(502, "backend_unavailable", "A storage backend is unavailable")

    @app.get("/health")
    async def health() -> dict[str, str]:
        """Health check endpoint."""
        return {"status": "ok", "version": __version__}

    @app.post(
        "/api/upload",
        response_model=UploadResponse,
        dependencies=[Depends(rate_limit(RateLimitAction.UPLOAD))],
    )
    async def upload(
        body: UploadRequest,
        services: Annotated[Services, Depends(get_services)],
    ) -> UploadResponse:
        """Negotiate an upload: returns the signed URL to PUT bytes to."""
        ticket = await services.uploads.negotiate(body)
        return UploadResponse(
            upload_url=ticket.upload_url,
            slug=ticket.slug,
            expires_at=ticket.expires_at,
        )

    @app.get("/api/download", response_model=StatusResponse)
    async def download_status(
        slug: str,
        services: Annotated[Services, Depends(get_services)],
    ):
        """Public metadata for a link. Does not consume a download."""
        result = await services.gate.status(slug)
        if not isinstance(result, PublicStatus):
            return gate_error(result)
        return StatusResponse(
            filename=result.filename,
            size=result.size,
            expires_at=result.expires_at,
            requires_password=result.requires_password,
            download_count=result.download_count,
            one_time_download=result.one_time_download,
            max_downloads=result.max_downloads,
        )

    @app.post(
        "/api/download",
        response_model=DownloadResponse,
        dependencies=[Depends(rate_limit(RateLimitAction.DOWNLOAD))],
    )
    async def download(
        body: DownloadRequest,
        services: Annotated[Services, Depends(get_services)],
    ):
        """Consume one download and return a signed download URL."""
        if not body.slug:
            return error_response(400, "missing_slug", "Missing slug")
        result = await services.gate.evaluate(body.slug, body.password)
        if isinstance(result, (Denied, NotFound)):
            return gate_error(result)
        return DownloadResponse(
            download_url=result.download_url,
            filename=result.filename,
            size=result.size,
        )

    @app.api_route("/api/cleanup", methods=["GET", "POST"], response_model=SweepResponse)
    async def cleanup(
        services: Annotated[Services, Depends(get_services)],
        authorization: Annotated[str | None, Header()] = None,
    ):
        """Run one sweep. Guarded by ``cleanup_secret`` when configured."""
        secret = settings.cleanup_secret
        if secret and not constant_time_equals(authorization or "", f"Bearer {secret}"):
            return error_response(401, "unauthorized", "Unauthorized")
        report = await services.sweeper.sweep()
        return SweepResponse(
            timestamp=utcnow(),
            scanned=report.scanned,
            purged=report.purged,
            failed=report.failed,
        )

    return app


app = create_app()
