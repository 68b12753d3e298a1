"""Pali API key authentication dependencies.

Provides ``authenticate_request()``: a FastAPI Depends()-compatible async
dependency that reads the ``X-API-Key`` header and resolves it to an
``Identity`` through the validation service. ``require_admin()`` layers the
admin capability check on top.

CRITICAL INVARIANT: authentication failures raise BEFORE the route handler
runs. Every todo and admin route MUST depend on one of these functions.

Every attempt is security-logged (method, path, client address, outcome).
The presented secret is never logged.

The shared collaborators (credential store, todo store, hasher) live on
``app.state`` and are read per request, so tests can swap them directly.
"""

from __future__ import annotations

from fastapi import Depends, Request

from app.auth.keys import KeyHasher
from app.auth.lifecycle import ensure_admin
from app.auth.validation import validate_api_key
from app.errors import UnauthenticatedError
from app.models.credential import Identity
from app.store.credentials import CredentialStore
from app.store.todos import TodoStore
from app.utils.logger import get_logger

logger = get_logger(__name__)

API_KEY_HEADER = "X-API-Key"


# ─── app.state accessors ──────────────────────────────────────────────────────


def get_credential_store(request: Request) -> CredentialStore:
    return request.app.state.credential_store


def get_todo_store(request: Request) -> TodoStore:
    return request.app.state.todo_store


def get_hasher(request: Request) -> KeyHasher:
    return request.app.state.hasher


def _client_address(request: Request) -> str:
    return request.client.host if request.client else "unknown"


# ─── Dependencies ─────────────────────────────────────────────────────────────


async def authenticate_request(request: Request) -> Identity:
    """FastAPI dependency: authenticate the ``X-API-Key`` header.

    Returns:
        The caller's Identity.

    Raises:
        MissingApiKeyError / InvalidApiKeyError (401): rendered by app.main.
        StoreUnavailableError (500): the credential lookup failed.
    """
    presented = request.headers.get(API_KEY_HEADER)
    try:
        identity = await validate_api_key(
            presented,
            get_credential_store(request),
            get_hasher(request),
        )
    except UnauthenticatedError as exc:
        logger.warning(
            "auth_failed",
            reason=exc.code,
            method=request.method,
            path=str(request.url.path),
            client=_client_address(request),
        )
        raise

    logger.info(
        "auth_succeeded",
        credential_id=identity.credential_id,
        owner=identity.owner_label,
        role=identity.role.value,
        method=request.method,
        path=str(request.url.path),
        client=_client_address(request),
    )
    return identity


async def require_admin(identity: Identity = Depends(authenticate_request)) -> Identity:
    """FastAPI dependency: authenticated AND admin, else 403."""
    ensure_admin(identity)
    return identity
