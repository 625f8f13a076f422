"""Pydantic-модель задачи очереди."""
from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel

TaskState = Literal["new", "in_progress", "retried", "failed", "finished"]

# Состояния, в которых задача ещё ждёт воркера (retried = new после неудачной попытки)
CLAIMABLE_STATES: tuple[str, ...] = ("new", "retried")
TASK_STATES: tuple[str, ...] = ("new", "in_progress", "retried", "failed", "finished")


class Task(BaseModel):
    """Задача из таблицы tasks."""

    id: str
    task_type: str
    payload: dict[str, Any] = {}
    state: TaskState = "new"
    uniqueness_key: str | None = None  # None для не-уникальных типов
    retry_count: int = 0
    max_retries: int = 3
    error_message: str | None = None
    scheduled_at: datetime | None = None
    started_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class EnqueueResult(BaseModel):
    """Результат постановки задачи: новая или уже существующая эквивалентная."""

    task_id: str
    duplicate: bool = False
