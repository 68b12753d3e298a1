"""HTTP request/response contracts.

Every endpoint answers with ``ApiResponse``:

    {"success": true,  "data": ...}
    {"success": false, "error": "..."}

Absent fields are omitted rather than sent as null (``envelope()``).
Credential responses are built from ``IssuedKey`` / ``CredentialInfo``; there
is no response model with a hash field.
"""

from __future__ import annotations

from typing import Any, Generic, Optional, TypeVar

from pydantic import BaseModel, Field

from app.constants import MAX_OWNER_LABEL_LENGTH, SQLITE_INTEGER_MAX, SQLITE_INTEGER_MIN
from app.models.credential import CredentialInfo, IssuedKey, Role
from app.models.todo import Todo, TodoChanges

T = TypeVar("T")


class ApiResponse(BaseModel, Generic[T]):
    success: bool
    data: Optional[T] = None
    error: Optional[str] = None


def envelope(data: Any = None) -> dict[str, Any]:
    """Success envelope, with ``data`` omitted when there is none."""
    response = ApiResponse[Any](success=True, data=data)
    return response.model_dump(mode="json", exclude_none=True)


def error_envelope(message: str) -> dict[str, Any]:
    response = ApiResponse[Any](success=False, error=message)
    return response.model_dump(mode="json", exclude_none=True)


# ─── Credentials ──────────────────────────────────────────────────────────────


class CreateApiKeyRequest(BaseModel):
    """Body of POST /admin/keys/generate."""

    client_name: str = Field(..., max_length=MAX_OWNER_LABEL_LENGTH)
    key_type: Role = Role.CLIENT


class ApiKeyResponse(BaseModel):
    """A newly issued key. The only response that ever carries a plaintext secret."""

    id: str
    api_key: str
    client_name: str
    key_type: Role
    created_at: int

    @classmethod
    def from_issued(cls, issued: IssuedKey) -> "ApiKeyResponse":
        return cls(
            id=issued.id,
            api_key=issued.api_key,
            client_name=issued.owner_label,
            key_type=issued.role,
            created_at=issued.created_at,
        )


class ApiKeyInfo(BaseModel):
    id: str
    client_name: str
    key_type: Role
    last_used: Optional[int] = None
    created_at: int
    active: bool

    @classmethod
    def from_info(cls, info: CredentialInfo) -> "ApiKeyInfo":
        return cls(
            id=info.id,
            client_name=info.owner_label,
            key_type=info.role,
            last_used=info.last_used_at,
            created_at=info.created_at,
            active=info.active,
        )


# ─── Todos ────────────────────────────────────────────────────────────────────


class CreateTodoRequest(BaseModel):
    title: str = Field(..., min_length=1)
    description: Optional[str] = None
    priority: Optional[int] = Field(default=None, ge=SQLITE_INTEGER_MIN, le=SQLITE_INTEGER_MAX)
    due_date: Optional[int] = Field(default=None, ge=SQLITE_INTEGER_MIN, le=SQLITE_INTEGER_MAX)


class UpdateTodoRequest(BaseModel):
    """Partial update; omitted fields keep their stored value."""

    title: Optional[str] = Field(default=None, min_length=1)
    description: Optional[str] = None
    completed: Optional[bool] = None
    priority: Optional[int] = Field(default=None, ge=SQLITE_INTEGER_MIN, le=SQLITE_INTEGER_MAX)
    due_date: Optional[int] = Field(default=None, ge=SQLITE_INTEGER_MIN, le=SQLITE_INTEGER_MAX)

    def to_changes(self) -> TodoChanges:
        return TodoChanges(
            title=self.title,
            description=self.description,
            completed=self.completed,
            priority=self.priority,
            due_date=self.due_date,
        )


class TodoResponse(BaseModel):
    id: str
    title: str
    description: Optional[str] = None
    completed: bool
    priority: int
    due_date: Optional[int] = None
    created_at: int
    updated_at: int

    @classmethod
    def from_todo(cls, todo: Todo) -> "TodoResponse":
        return cls(
            id=todo.id,
            title=todo.title,
            description=todo.description,
            completed=todo.completed,
            priority=todo.priority,
            due_date=todo.due_date,
            created_at=todo.created_at,
            updated_at=todo.updated_at,
        )


class IdResolutionResponse(BaseModel):
    full_id: str
