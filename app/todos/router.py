"""Todo endpoints.

Every route depends on ``authenticate_request``: any active key, admin or
client, may read and write todos.

  POST   /todos                    — create
  GET    /todos?completed=         — list (priority DESC, newest first)
  GET    /todos/search?q=          — substring match on title/description
  GET    /todos/resolve/{prefix}   — expand a short id prefix
  GET    /todos/{todo_id}          — fetch one
  PUT    /todos/{todo_id}          — partial update
  PATCH  /todos/{todo_id}/toggle   — flip completed
  DELETE /todos/{todo_id}          — delete

/todos/search and /todos/resolve are registered before /todos/{todo_id}
so the literal segments win.
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query

from app.auth.middleware import authenticate_request, get_todo_store
from app.constants import MIN_ID_PREFIX_LENGTH
from app.errors import InvalidInputError, NotFoundError
from app.models.credential import Identity
from app.models.schemas import (
    CreateTodoRequest,
    IdResolutionResponse,
    TodoResponse,
    UpdateTodoRequest,
    envelope,
)
from app.models.todo import Todo
from app.store.todos import TodoStore
from app.utils.logger import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/todos", tags=["todos"])

_NOT_FOUND = "Todo not found"


def _found(todo: Optional[Todo]) -> Todo:
    if todo is None:
        raise NotFoundError(_NOT_FOUND)
    return todo


def _todo_list(todos: list[Todo]) -> dict:
    return envelope([TodoResponse.from_todo(todo) for todo in todos])


@router.post("")
async def create_todo(
    body: CreateTodoRequest,
    identity: Identity = Depends(authenticate_request),
    store: TodoStore = Depends(get_todo_store),
) -> dict:
    todo = await store.create(
        title=body.title,
        description=body.description,
        priority=body.priority,
        due_date=body.due_date,
    )
    logger.info("todo_created", todo_id=todo.id, credential_id=identity.credential_id)
    return envelope(TodoResponse.from_todo(todo))


@router.get("")
async def list_todos(
    completed: Optional[bool] = Query(default=None),
    identity: Identity = Depends(authenticate_request),
    store: TodoStore = Depends(get_todo_store),
) -> dict:
    return _todo_list(await store.list_all(completed=completed))


@router.get("/search")
async def search_todos(
    q: Optional[str] = Query(default=None),
    identity: Identity = Depends(authenticate_request),
    store: TodoStore = Depends(get_todo_store),
) -> dict:
    if not q:
        raise InvalidInputError("Missing search query parameter 'q'")
    return _todo_list(await store.search(q))


@router.get("/resolve/{prefix}")
async def resolve_todo_id(
    prefix: str,
    identity: Identity = Depends(authenticate_request),
    store: TodoStore = Depends(get_todo_store),
) -> dict:
    """Expand a short id prefix. 404 if nothing matches, 409 if several do."""
    if len(prefix) < MIN_ID_PREFIX_LENGTH:
        raise InvalidInputError(
            f"Id prefix must be at least {MIN_ID_PREFIX_LENGTH} characters"
        )
    full_id = await store.resolve_id(prefix)
    if full_id is None:
        raise NotFoundError(f"No todo matches id prefix '{prefix}'")
    return envelope(IdResolutionResponse(full_id=full_id))


@router.get("/{todo_id}")
async def get_todo(
    todo_id: str,
    identity: Identity = Depends(authenticate_request),
    store: TodoStore = Depends(get_todo_store),
) -> dict:
    return envelope(TodoResponse.from_todo(_found(await store.get(todo_id))))


@router.put("/{todo_id}")
async def update_todo(
    todo_id: str,
    body: UpdateTodoRequest,
    identity: Identity = Depends(authenticate_request),
    store: TodoStore = Depends(get_todo_store),
) -> dict:
    todo = _found(await store.update(todo_id, body.to_changes()))
    return envelope(TodoResponse.from_todo(todo))


@router.patch("/{todo_id}/toggle")
async def toggle_todo(
    todo_id: str,
    identity: Identity = Depends(authenticate_request),
    store: TodoStore = Depends(get_todo_store),
) -> dict:
    return envelope(TodoResponse.from_todo(_found(await store.toggle(todo_id))))


@router.delete("/{todo_id}")
async def delete_todo(
    todo_id: str,
    identity: Identity = Depends(authenticate_request),
    store: TodoStore = Depends(get_todo_store),
) -> dict:
    if not await store.delete(todo_id):
        raise NotFoundError(_NOT_FOUND)
    logger.info("todo_deleted", todo_id=todo_id, credential_id=identity.credential_id)
    return envelope()
