"""FastAPI application entry point."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .api.routes import admin, health, sessions
from .config import Settings, settings as default_settings
from .persistence import RegistrationStore, get_registration_store
from .services.sessions import SessionRegistry


def configure_logging(app_settings: Settings) -> None:
    logging.basicConfig(
        level=app_settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def create_app(
    app_settings: Settings | None = None,
    store: RegistrationStore | None = None,
) -> FastAPI:
    app_settings = app_settings or default_settings
    configure_logging(app_settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        await app.state.sessions.close_all()

    app = FastAPI(title=app_settings.app_name, root_path="", lifespan=lifespan)
    app.state.settings = app_settings
    app.state.sessions = SessionRegistry(store or get_registration_store(app_settings), app_settings)

    if app_settings.frontend_allowed_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=list(app_settings.frontend_allowed_origins),
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    @app.get("/")
    def root():
        return {
            "service": app_settings.app_name,
            "status": "running",
            "api_prefix": app_settings.api_prefix,
            "health": f"{app_settings.api_prefix}/health",
            "docs": "/docs",
        }

    app.include_router(health.router, prefix=app_settings.api_prefix)
    app.include_router(sessions.router, prefix=app_settings.api_prefix)
    app.include_router(admin.router, prefix=app_settings.api_prefix)
    return app


app = create_app()
