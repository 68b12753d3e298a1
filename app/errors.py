"""Exception hierarchy for the Pali server.

Every error that can reach a client derives from ``PaliError`` and carries the
HTTP status, a short machine code and a safe message. ``app.main`` maps them
onto the ``{"success": false, "error": ...}`` envelope; nothing else in the
codebase builds error responses.

Messages are fixed strings on purpose: they never include a digest, a secret,
or anything that distinguishes a revoked key from an unknown one.
"""

from __future__ import annotations

from typing import Optional


class PaliError(Exception):
    """Base class for all caller-visible errors."""

    status_code: int = 500
    code: str = "internal_error"
    default_message: str = "Internal server error"

    def __init__(self, message: Optional[str] = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


# ─── Unauthenticated (401) ────────────────────────────────────────────────────


class UnauthenticatedError(PaliError):
    status_code = 401
    code = "unauthenticated"
    default_message = "Invalid or missing API key"


class MissingApiKeyError(UnauthenticatedError):
    """No secret was presented."""

    code = "missing_api_key"
    default_message = "Missing API key"


class InvalidApiKeyError(UnauthenticatedError):
    """The secret matched no active credential (unknown and revoked look the same)."""

    code = "invalid_api_key"
    default_message = "Invalid or revoked API key"


# ─── Authorization / state (403, 409, 400) ────────────────────────────────────


class ForbiddenError(PaliError):
    status_code = 403
    code = "forbidden"
    default_message = "Admin privileges required"


class ConflictError(PaliError):
    status_code = 409
    code = "conflict"
    default_message = "Conflict"


class AlreadyInitializedError(ConflictError):
    code = "already_initialized"
    default_message = "Server already initialized"


class PreconditionFailedError(PaliError):
    status_code = 400
    code = "precondition_failed"
    default_message = "Precondition failed"


class NotInitializedError(PreconditionFailedError):
    code = "not_initialized"
    default_message = "Server not initialized. Use POST /initialize first"


class NotFoundError(PaliError):
    status_code = 404
    code = "not_found"
    default_message = "Not found"


class InvalidInputError(PaliError):
    status_code = 400
    code = "invalid_input"
    default_message = "Invalid JSON body"


# ─── Store (500) ──────────────────────────────────────────────────────────────


class StoreUnavailableError(PaliError):
    """The backend failed, timed out or was locked. The core never retries."""

    status_code = 500
    code = "store_unavailable"
    default_message = "Credential store unavailable"


class CorruptRecordError(StoreUnavailableError):
    """A stored value could not be decoded into its logical type."""

    code = "corrupt_record"
    default_message = "Stored record could not be decoded"


class CredentialStoreInconsistentError(PaliError):
    """A multi-step mutation was partially applied and could not be rolled back.

    Requires manual intervention on the database. Never retried.
    """

    status_code = 500
    code = "store_inconsistent"
    default_message = "Credential store left in an inconsistent state; manual intervention required"
