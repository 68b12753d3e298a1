"""Service banner and health endpoints.

Implements:
  GET /        — plain-text service banner (the one endpoint outside the envelope)
  GET /health  — database connectivity check, enveloped like every JSON endpoint

/health is unauthenticated and polled by container probes; it reports only
whether the store answers, never anything about stored credentials.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse, PlainTextResponse

from app.models.schemas import envelope, error_envelope
from app.store.credentials import CredentialStore

router = APIRouter(tags=["health"])

BANNER = "Pali Server API v1.0 - Self-hosted todo management"


@router.get("/", response_class=PlainTextResponse)
async def root() -> str:
    return BANNER


@router.get("/health")
async def health(request: Request) -> Any:
    """Report whether the credential store is reachable.

    Response body (200):  {"success": true, "data": {"status": "ok", "store": "ok"}}
    Response body (503):  {"success": false, "error": "Credential store unavailable"}
    """
    store: CredentialStore = request.app.state.credential_store
    if await store.health_check():
        return envelope({"status": "ok", "store": "ok"})
    return JSONResponse(
        status_code=503,
        content=error_envelope("Credential store unavailable"),
    )
