"""Application factory for the user directory web service."""
from __future__ import annotations

import os
from typing import Optional

from fastapi import FastAPI
from starlette.middleware.sessions import SessionMiddleware
from uvicorn.middleware.proxy_headers import ProxyHeadersMiddleware

from .accounts import AccountController
from .config import Settings, load_settings
from .database import Database
from .security import CredentialService
from .sessions import SessionManager
from .web import register_ui_routes

SESSION_COOKIE_NAME = "userdir_session"


def _trusted_proxy_hosts() -> list[str] | str:
    raw = os.getenv("USERDIR_TRUSTED_PROXIES")
    if not raw:
        return "127.0.0.1"
    hosts = [item.strip() for item in raw.split(",") if item.strip()]
    return hosts or "127.0.0.1"


def create_app(
    *,
    settings: Optional[Settings] = None,
    database: Optional[Database] = None,
    credentials: Optional[CredentialService] = None,
) -> FastAPI:
    """Create the directory ASGI application."""

    if settings is None:
        settings = load_settings()

    if not settings.session_secret:
        raise RuntimeError(
            "USERDIR_SESSION_SECRET must be configured to use the directory interface"
        )

    if database is None:
        database = Database(settings.database_path)
    database.initialize()

    if credentials is None:
        credentials = CredentialService(SessionManager(ttl=settings.session_ttl))

    controller = AccountController(database, credentials, page_size=settings.page_size)

    app = FastAPI(
        title="User Directory",
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )
    app.state.settings = settings
    app.state.database = database
    app.state.credentials = credentials
    app.state.controller = controller

    app.add_middleware(
        SessionMiddleware,
        secret_key=settings.session_secret,
        session_cookie=SESSION_COOKIE_NAME,
        https_only=settings.secure_cookies,
        same_site="lax",
        max_age=credentials.sessions.cookie_max_age,
    )
    app.add_middleware(ProxyHeadersMiddleware, trusted_hosts=_trusted_proxy_hosts())

    register_ui_routes(app, controller=controller, database=database, credentials=credentials)
    return app


__all__ = ["create_app"]
