"""Todo record — the resource the API keys gate access to."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


@dataclass
class Todo:
    id: str
    title: str
    description: Optional[str]
    completed: bool
    priority: int
    due_date: Optional[int]
    created_at: int
    updated_at: int


@dataclass
class TodoChanges:
    """Partial update. ``None`` means "leave the stored value alone"."""

    title: Optional[str] = None
    description: Optional[str] = None
    completed: Optional[bool] = None
    priority: Optional[int] = None
    due_date: Optional[int] = None

    def apply(self, todo: Todo, updated_at: int) -> Todo:
        """Return a merged copy of ``todo``; only ``updated_at`` changes unconditionally."""
        return Todo(
            id=todo.id,
            title=self.title if self.title is not None else todo.title,
            description=self.description if self.description is not None else todo.description,
            completed=self.completed if self.completed is not None else todo.completed,
            priority=self.priority if self.priority is not None else todo.priority,
            due_date=self.due_date if self.due_date is not None else todo.due_date,
            created_at=todo.created_at,
            updated_at=updated_at,
        )
