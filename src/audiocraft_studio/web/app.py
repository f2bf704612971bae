"""FastAPI application factory for the AudioCraft Studio API."""

from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .. import SERVICE_NAME, __version__
from ..adapters.ffmpeg import EngineProbe
from ..adapters.workspace import CleanupScheduler
from ..features.pipeline import AudioEnhancer
from ..util.config import LoggingConfig, ServiceConfig
from .api.routes import router
from .frontend import mount_frontend
from .services.accounts import AccountRepository, AuthService
from .services.enhance import EnhanceService

__all__ = ["create_app", "main"]

LOG = LoggingConfig()


def create_app(
    config: Optional[ServiceConfig] = None,
    *,
    enhancer: Optional[AudioEnhancer] = None,
    repository: Optional[AccountRepository] = None,
) -> FastAPI:
    config = config or ServiceConfig.from_env()
    config.upload_dir = config.upload_dir.expanduser().resolve()
    config.upload_dir.mkdir(parents=True, exist_ok=True)

    repository = repository or AccountRepository()
    enhancer = enhancer or AudioEnhancer(
        EngineProbe(config.engine),
        config=config.engine,
        clamp=config.clamp_settings,
    )
    scheduler = CleanupScheduler(config.cleanup_grace_seconds)
    auth_service = AuthService(repository, config)
    enhance_service = EnhanceService(config, enhancer, repository, scheduler)

    @asynccontextmanager
    async def lifespan(_: FastAPI) -> AsyncIterator[None]:
        try:
            yield
        finally:
            scheduler.shutdown()

    app = FastAPI(title=SERVICE_NAME, version=__version__, lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Processing-Mode", "X-Credits-Remaining", "X-Filter-Chain"],
    )
    app.state.config = config
    app.state.account_repository = repository
    app.state.auth_service = auth_service
    app.state.enhance_service = enhance_service
    app.state.cleanup_scheduler = scheduler
    app.include_router(router)
    mount_frontend(app, config.public_dir)
    return app


def main() -> None:
    """Launch the API with Uvicorn."""

    import uvicorn

    logging.basicConfig(
        level=os.environ.get("AUDIOCRAFT_LOG_LEVEL", LOG.level).upper(),
        format=LOG.format,
    )
    host = os.environ.get("AUDIOCRAFT_WEB_HOST", "0.0.0.0")
    port_text = os.environ.get("AUDIOCRAFT_WEB_PORT", os.environ.get("PORT", "5000"))
    try:
        port = int(port_text)
    except ValueError as exc:  # pragma: no cover
        raise SystemExit(f"Invalid AUDIOCRAFT_WEB_PORT: {port_text}") from exc

    uvicorn.run(create_app(), host=host, port=port)
