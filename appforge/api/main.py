from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager, suppress
import logging
from typing import AsyncIterator

from dotenv import load_dotenv
from fastapi import Depends, FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, Response, StreamingResponse

from appforge.api.dependencies import Services, build_services, get_services
from appforge.api.schemas import (
    SESSION_ID_REGEX,
    BuildRequest,
    ChatRequest,
    DeployRequest,
    DownloadRequest,
)
from appforge.archive import archive_filename, build_archive
from appforge.config import Settings, configure_logging
from appforge.errors import (
    ProvisioningError,
    SessionNotFound,
    UpstreamError,
    ValidationError,
)

logger = logging.getLogger(__name__)


async def _evict_periodically(services: Services) -> None:
    while True:
        await asyncio.sleep(services.settings.eviction_interval_s)
        services.store.evict_expired()


def create_app(services: Services | None = None) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        if services is None:
            load_dotenv()
            settings = Settings.from_env()
            configure_logging(settings.log_level)
            app.state.services = build_services(settings)
        current: Services = app.state.services
        evictor = asyncio.create_task(_evict_periodically(current))
        try:
            yield
        finally:
            evictor.cancel()
            with suppress(asyncio.CancelledError):
                await evictor
            await current.builds.shutdown()

    app = FastAPI(title="appforge", lifespan=lifespan)
    if services is not None:
        app.state.services = services
    _register_error_handlers(app)
    _register_routes(app)
    return app


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse({"success": False, "error": message}, status_code=status_code)


def _register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        fields = ", ".join(
            ".".join(str(part) for part in error.get("loc", ()) if part != "body")
            for error in exc.errors()
        )
        return _error(400, f"Invalid request: {fields}")

    @app.exception_handler(SessionNotFound)
    async def not_found_handler(request: Request, exc: SessionNotFound) -> JSONResponse:
        return _error(404, str(exc))

    @app.exception_handler(ValidationError)
    async def validation_handler(request: Request, exc: ValidationError) -> JSONResponse:
        return _error(400, str(exc))

    @app.exception_handler(UpstreamError)
    async def upstream_handler(request: Request, exc: UpstreamError) -> JSONResponse:
        logger.error(f"Upstream failure on {request.url.path}: {exc}")
        return _error(502, str(exc))

    @app.exception_handler(ProvisioningError)
    async def provisioning_handler(request: Request, exc: ProvisioningError) -> JSONResponse:
        return _error(502, str(exc))


def _register_routes(app: FastAPI) -> None:
    @app.get("/health")
    def health_check() -> dict:
        return {"status": "ok"}

    @app.post("/api/build-stream", status_code=202)
    async def start_build(
        body: BuildRequest, services: Services = Depends(get_services)
    ) -> dict:
        services.builds.start(body.session_id, body.prompt)
        return {"success": True, "message": "Build started", "sessionId": body.session_id}

    @app.get("/api/build-stream")
    async def build_stream(
        session_id: str = Query(alias="sessionId", pattern=SESSION_ID_REGEX),
        services: Services = Depends(get_services),
    ) -> StreamingResponse:
        return StreamingResponse(
            services.broadcaster.stream(session_id),
            media_type="text/event-stream",
            headers={"Cache-Control": "no-cache", "Connection": "keep-alive"},
        )

    @app.get("/api/files")
    def list_files(
        session_id: str = Query(alias="sessionId", pattern=SESSION_ID_REGEX),
        services: Services = Depends(get_services),
    ) -> dict:
        files = services.store.get_files(session_id)
        if not files:
            raise SessionNotFound(session_id)
        return {"success": True, "files": [item.to_dict() for item in files]}

    def _download(session_id: str, services: Services) -> Response:
        files = services.store.get_files(session_id)
        if not files:
            raise SessionNotFound(session_id)
        payload = build_archive(files)
        return Response(
            content=payload,
            media_type="application/zip",
            headers={
                "Content-Disposition": f'attachment; filename="{archive_filename(session_id)}"'
            },
        )

    @app.get("/api/download")
    def download_get(
        session_id: str = Query(alias="sessionId", pattern=SESSION_ID_REGEX),
        services: Services = Depends(get_services),
    ) -> Response:
        return _download(session_id, services)

    @app.post("/api/download")
    def download_post(
        body: DownloadRequest, services: Services = Depends(get_services)
    ) -> Response:
        return _download(body.session_id, services)

    @app.post("/api/chat")
    async def chat(body: ChatRequest, services: Services = Depends(get_services)) -> dict:
        logger.info(f"Chat request for sandbox {body.sandbox_id}")
        result = await services.edits.apply(
            body.message,
            body.sandbox_id,
            [turn.model_dump() for turn in body.conversation_history],
            session_id=body.session_id,
        )
        return {
            "success": True,
            "message": result.message,
            "filesUpdated": result.files_changed,
            "explanation": result.explanation,
        }

    @app.post("/api/deploy")
    async def deploy(
        body: DeployRequest, services: Services = Depends(get_services)
    ) -> JSONResponse:
        result = await services.deploys.deploy(
            body.session_id, body.commit_message, body.project_prompt
        )
        return JSONResponse(result.to_dict(), status_code=200 if result.success else 502)

    @app.get("/api/cleanup")
    async def cleanup(services: Services = Depends(get_services)) -> dict:
        deleted = await services.provisioner.cleanup_all()
        return {
            "success": True,
            "message": f"Successfully deleted {len(deleted)} sandbox(es)",
            "deleted": len(deleted),
            "sandboxIds": deleted,
        }


app = create_app()
