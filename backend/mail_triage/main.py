"""FastAPI application entry point."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncGenerator

import structlog
from fastapi import FastAPI

from mail_triage.api.cycle import router as cycle_router
from mail_triage.config import AppConfig, get_config
from mail_triage.database import init_db
from mail_triage.logging_config import setup_logging
from mail_triage.triage.service import build_dispatcher

logger = structlog.get_logger(__name__)

# Module-level config cache
_config: AppConfig | None = None


def _get_config() -> AppConfig:
    global _config
    if _config is None:
        _config = get_config()
    return _config


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application startup and shutdown lifecycle."""
    config = _get_config()
    setup_logging(level=config.log_level, log_file=config.log_file, json_console=config.log_json)
    init_db(config)

    dispatcher = None
    if config.dispatcher_enabled:
        dispatcher = build_dispatcher(config)
        dispatcher.start()

    logger.info(
        "server_starting",
        host=config.host,
        port=config.port,
        handler=config.handler_name,
        dispatcher_enabled=config.dispatcher_enabled,
        llm_provider=config.llm_provider,
    )
    yield
    if dispatcher is not None:
        dispatcher.stop()
    logger.info("server_shutting_down")


def create_app() -> FastAPI:
    """Application factory — create and configure the FastAPI app."""
    app = FastAPI(
        title="Mail Triage",
        description="Incremental LLM labelling of inbox threads",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.include_router(cycle_router)

    @app.get("/api/health", tags=["health"])
    def health_check() -> dict[str, str]:
        return {"status": "ok"}

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    config = _get_config()
    uvicorn.run("mail_triage.main:app", host=config.host, port=config.port)
