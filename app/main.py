"""FastAPI application entry point."""

import logging
import os
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path

import uvicorn
from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.errors import install_error_handlers
from app.routes import clients, mass_entry, rule_types, rules
from app.routes.health import get_db_info
from config import Settings, get_settings
from db.connection import init_database
from policyhub.services._types import DbInfoDict

logger: logging.Logger = logging.getLogger(__name__)


@asynccontextmanager
async def _lifespan(app: FastAPI) -> AsyncIterator[None]:
    settings: Settings = get_settings()
    logger.info("DB: %s", settings.database.db_info_for_logging())

    init_database()
    yield


def create_app() -> FastAPI:
    app: FastAPI = FastAPI(
        title="PolicyHub",
        version="0.1.0",
        lifespan=_lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["http://localhost:5173", "http://127.0.0.1:5173"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["*"],
    )

    install_error_handlers(app)

    @app.get("/health")
    def health() -> dict[str, str]:
        return {"status": "ok"}

    @app.get("/health/db")
    def health_db() -> DbInfoDict:
        return get_db_info()

    app.include_router(clients.router)
    app.include_router(rule_types.router)
    app.include_router(rules.router)
    app.include_router(mass_entry.router)

    return app


app: FastAPI = create_app()


def start() -> None:
    """Entry point for policyhub-api."""
    project_root: Path = Path(__file__).resolve().parent.parent
    os.chdir(project_root)

    candidate: Path = project_root / ".env"
    if candidate.exists():
        load_dotenv(candidate, override=False)

    reload: bool = os.environ.get("POLICYHUB_RELOAD", "false").lower() in ("1", "true", "yes")
    uvicorn.run(
        "app.main:app",
        host=os.environ.get("POLICYHUB_HOST", "0.0.0.0"),
        port=int(os.environ.get("POLICYHUB_PORT", "8000")),
        reload=reload,
    )
