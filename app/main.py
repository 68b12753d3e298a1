"""Pali FastAPI application factory + lifespan lifecycle.

Provides:
  - create_app() — factory used by uvicorn and by tests
  - lifespan     — @asynccontextmanager startup/shutdown sequence

Startup sequence:
  1. load_config()              → app.state.config
  2. init_store()               → schema created / verified, file chmod 0600
  3. CredentialStore, TodoStore → app.state.credential_store, app.state.todo_store
  4. KeyHasher(pepper, iters)   → app.state.hasher
  5. PALI_INITIAL_ADMIN_KEY     → conditional bootstrap with that secret
  6. app.state.ready = True

Nothing else is held between requests: stores open one connection per
operation, and there is no validation cache.

Tests build the app with create_app() and assign app.state.* directly
(httpx ASGITransport does not run the lifespan).
"""

from __future__ import annotations

import os
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

from app.auth import lifecycle
from app.auth.keys import KeyHasher
from app.auth.router import router as auth_router
from app.config import Config, load_config
from app.errors import AlreadyInitializedError, PaliError
from app.health import router as health_router
from app.middleware import RequestIdMiddleware
from app.models.schemas import error_envelope
from app.store.credentials import CredentialStore
from app.store.database import init_store
from app.store.todos import TodoStore
from app.todos.router import router as todos_router
from app.utils.logger import configure_from_env, get_logger

# ─── Logging Setup ────────────────────────────────────────────────────────────
DEBUG = os.getenv("DEBUG", "false").lower() == "true"

configure_from_env()
logger = get_logger(__name__)

INITIAL_ADMIN_KEY_ENV = "PALI_INITIAL_ADMIN_KEY"


# ─── State ────────────────────────────────────────────────────────────────────


def attach_state(app: FastAPI, config: Config) -> None:
    """Build the shared collaborators from ``config`` and put them on app.state."""
    app.state.config = config
    app.state.credential_store = CredentialStore(config.store.path, config.store.timeout_s)
    app.state.todo_store = TodoStore(config.store.path, config.store.timeout_s)
    app.state.hasher = KeyHasher(
        pepper=config.keys.pepper_bytes,
        iterations=config.keys.iterations,
        prefix=config.keys.prefix,
    )


async def seed_initial_admin_key(store: CredentialStore, hasher: KeyHasher) -> bool:
    """Bootstrap with the operator-supplied PALI_INITIAL_ADMIN_KEY, if set.

    A no-op once the store is initialized.

    Returns:
        True if a new admin credential was created.
    """
    secret = os.environ.get(INITIAL_ADMIN_KEY_ENV, "").strip()
    if not secret:
        return False
    try:
        await lifecycle.bootstrap(store, hasher, secret=secret)
    except AlreadyInitializedError:
        logger.info("initial_admin_key_skipped", reason="already_initialized")
        return False
    logger.info("initial_admin_key_seeded")
    return True


# ─── Lifespan ─────────────────────────────────────────────────────────────────


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Startup and shutdown sequence.

    Any failure before ``yield`` (bad config, unreadable database, unsupported
    schema version) aborts startup.
    """
    config = load_config()
    db_path = await init_store(config.store.path, config.store.timeout_s)
    logger.info("store_ready", path=str(db_path))

    attach_state(app, config)
    await seed_initial_admin_key(app.state.credential_store, app.state.hasher)

    app.state.ready = True
    logger.info("pali_ready", host=config.server.host, port=config.server.port)

    yield

    app.state.ready = False
    logger.info("pali_shutdown_complete")


# ─── Application Factory ──────────────────────────────────────────────────────


def create_app() -> FastAPI:
    """Create and configure the Pali FastAPI application.

    The module-level ``app`` is created at import time for uvicorn:
        uvicorn app.main:app --host 127.0.0.1 --port 8787
    """
    application = FastAPI(
        title="Pali Server",
        description="Self-hosted todo management with API-key access control",
        version="1.0.0",
        lifespan=lifespan,
        docs_url="/docs" if DEBUG else None,
        redoc_url="/redoc" if DEBUG else None,
        openapi_url="/openapi.json" if DEBUG else None,
    )
    application.state.ready = False

    application.add_middleware(RequestIdMiddleware)

    application.include_router(health_router)
    application.include_router(auth_router)
    application.include_router(todos_router)

    # ── Exception handlers: every error leaves as {"success": false, "error": ...}

    @application.exception_handler(PaliError)
    async def pali_error_handler(request: Request, exc: PaliError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error(
                "request_failed",
                code=exc.code,
                error_type=type(exc).__name__,
                path=str(request.url.path),
            )
        return JSONResponse(status_code=exc.status_code, content=error_envelope(exc.message))

    @application.exception_handler(RequestValidationError)
    async def validation_error_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        logger.info(
            "request_invalid",
            path=str(request.url.path),
            errors=len(exc.errors()),
        )
        return JSONResponse(status_code=400, content=error_envelope("Invalid JSON body"))

    @application.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
        logger.warning(
            "http_exception",
            status_code=exc.status_code,
            detail=exc.detail,
            path=str(request.url.path),
        )
        return JSONResponse(
            status_code=exc.status_code,
            content=error_envelope(str(exc.detail)),
            headers=getattr(exc, "headers", None),
        )

    @application.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.error(
            "unhandled_exception",
            error_type=type(exc).__name__,
            path=str(request.url.path),
        )
        return JSONResponse(status_code=500, content=error_envelope("Internal server error"))

    return application


app = create_app()
