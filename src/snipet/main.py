from __future__ import annotations

import logging
import uuid
from typing import Any, Dict

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.requests import Request
from starlette.responses import Response

from snipet.api.comments import router as comments_router
from snipet.api.routes import router as api_router
from snipet.core.config import Settings, get_settings
from snipet.core.errors import SnipetError
from snipet.core.logging import setup_logging
from snipet.db.store import Clock, RecordStore
from snipet.services.container import build_services, open_store

logger = logging.getLogger(__name__)


def create_app(
    settings: Settings | None = None,
    store: RecordStore | None = None,
    clock: Clock | None = None,
) -> FastAPI:
    settings = settings or get_settings()

    app = FastAPI(title=settings.app_name, version=settings.app_version)
    app.state.settings = settings
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def add_request_id(request: Request, call_next) -> Response:
        request_id = request.headers.get("x-request-id") or str(uuid.uuid4())
        request.state.request_id = request_id
        response = await call_next(request)
        response.headers["x-request-id"] = request_id
        return response

    @app.exception_handler(SnipetError)
    async def snipet_error_handler(request: Request, exc: SnipetError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.on_event("startup")
    async def startup_events() -> None:
        opened = store if store is not None else await open_store(settings)
        services = build_services(settings, opened, clock=clock)
        await services.identity.provision()
        app.state.services = services
        logger.info("%s %s started with %s store", settings.app_name, settings.app_version, type(opened).__name__)

    @app.on_event("shutdown")
    async def shutdown_events() -> None:
        services = getattr(app.state, "services", None)
        if services is not None:
            await services.close()

    @app.get("/healthz")
    async def healthz() -> Dict[str, Any]:
        return {"status": "ok"}

    @app.get("/readyz")
    async def readyz() -> Dict[str, Any]:
        ready = getattr(app.state, "services", None) is not None
        return {"status": "ready" if ready else "starting"}

    @app.get("/metrics")
    async def metrics() -> Response:
        body = app.state.services.store.metrics.render_prometheus()
        return Response(content=body, media_type="text/plain")

    app.include_router(api_router)
    app.include_router(comments_router)
    return app


app = create_app()


def run() -> None:
    settings = get_settings()
    setup_logging()
    uvicorn.run("snipet.main:app", host=settings.host, port=settings.port, log_level=settings.log_level.lower())
