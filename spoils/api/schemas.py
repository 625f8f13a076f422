"""Pydantic-схемы HTTP API очереди."""
from typing import Any

from pydantic import BaseModel, Field, field_validator


class EnqueueRequest(BaseModel):
    """Запрос на постановку задачи произвольного типа."""

    task_type: str = Field(min_length=1)
    payload: dict[str, Any] = {}


def normalize_barcode(value: str) -> str:
    """Убрать пробелы; штрихкод — только цифры, иначе ValueError."""
    cleaned = value.strip().replace(" ", "")
    if not cleaned.isdigit():
        raise ValueError("barcode must contain digits only")
    return cleaned


class FetchProductRequest(BaseModel):
    """Запрос на загрузку продукта по штрихкоду."""

    barcode: str

    @field_validator("barcode")
    @classmethod
    def clean_barcode(cls, v: str) -> str:
        return normalize_barcode(v)


class AnalyzeIngredientsRequest(BaseModel):
    """Запрос на анализ ингредиентов продукта."""

    product_id: int = Field(ge=1)


class EnqueueResponse(BaseModel):
    """Ответ на постановку задачи."""

    task_id: str
    task_type: str
    status: str  # "created" | "duplicate"


class TaskResponse(BaseModel):
    """Одна задача в ответе API."""

    id: str
    task_type: str
    state: str
    payload: dict[str, Any] = {}
    retry_count: int = 0
    max_retries: int = 3
    error_message: str | None = None
    scheduled_at: str | None = None
    created_at: str | None = None
    updated_at: str | None = None


class TaskListResponse(BaseModel):
    """Список задач по ключу корреляции."""

    tasks: list[TaskResponse]
    total: int


class TaskStatsResponse(BaseModel):
    """Количество задач по состояниям."""

    new: int = 0
    in_progress: int = 0
    retried: int = 0
    failed: int = 0
    finished: int = 0


class RetryResponse(BaseModel):
    """Ответ на POST /api/tasks/{id}/retry."""

    task_id: str
    status: str  # "retrying"


class HealthResponse(BaseModel):
    """Ответ healthcheck."""

    status: str
    tasks_in_progress: int
    tasks_pending: int
