"""Реестр типов задач: type_tag → обработчик, уникальность, ретраи, backoff, расписание."""
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from apscheduler.triggers.cron import CronTrigger
from supabase import Client

from spoils.catalog import OpenFoodFactsClient
from spoils.config import Settings
from spoils.database import enqueue_task
from spoils.exceptions import UnknownTaskTypeError
from spoils.models.task import EnqueueResult, Task
from spoils.worker.backoff import get_backoff_seconds


def next_run_at(cron: str, now: datetime | None = None) -> datetime:
    """Ближайшее срабатывание crontab-выражения после now (UTC)."""
    trigger = CronTrigger.from_crontab(cron, timezone=UTC)
    fire_time = trigger.get_next_fire_time(None, now or datetime.now(UTC))
    if fire_time is None:
        raise ValueError(f"Cron pattern {cron!r} never fires")
    return fire_time


@dataclass(frozen=True)
class TaskType:
    """Описание варианта задачи."""

    type_tag: str
    handler: "Handler"
    unique: bool = True
    max_retries: int = 3
    backoff_base_seconds: int = 60
    cron: str | None = None  # crontab для периодических задач

    def backoff(self, retry_count: int) -> int:
        return get_backoff_seconds(retry_count, self.backoff_base_seconds)

    def next_run_at(self, now: datetime | None = None) -> datetime | None:
        if self.cron is None:
            return None
        return next_run_at(self.cron, now)


class TaskRegistry:
    """Собирается один раз при старте; воркеры и API резолвят типы через него."""

    def __init__(self, task_types: Iterable[TaskType]) -> None:
        self._types: dict[str, TaskType] = {}
        for task_type in task_types:
            if task_type.type_tag in self._types:
                raise ValueError(f"Duplicate task type: {task_type.type_tag}")
            self._types[task_type.type_tag] = task_type

    def __contains__(self, type_tag: object) -> bool:
        return type_tag in self._types

    def get(self, type_tag: str) -> TaskType:
        try:
            return self._types[type_tag]
        except KeyError:
            raise UnknownTaskTypeError(type_tag) from None

    @property
    def type_tags(self) -> list[str]:
        return sorted(self._types)

    def recurring(self) -> list[TaskType]:
        return [t for t in self._types.values() if t.cron]

    async def enqueue(
        self,
        db: Client,
        type_tag: str,
        payload: dict[str, Any] | None = None,
        scheduled_at: datetime | None = None,
    ) -> EnqueueResult:
        """
        Поставить задачу с параметрами её варианта.
        Для периодических задач без явного времени — ближайшее срабатывание cron.
        """
        task_type = self.get(type_tag)
        if scheduled_at is None:
            scheduled_at = task_type.next_run_at()
        return await enqueue_task(
            db,
            type_tag,
            payload or {},
            unique=task_type.unique,
            max_retries=task_type.max_retries,
            scheduled_at=scheduled_at,
        )


@dataclass
class HandlerContext:
    """Зависимости, доступные обработчикам задач."""

    db: Client
    settings: Settings
    registry: TaskRegistry
    catalog: OpenFoodFactsClient

    async def enqueue(self, type_tag: str, payload: dict[str, Any]) -> EnqueueResult:
        return await self.registry.enqueue(self.db, type_tag, payload)


Handler = Callable[[HandlerContext, Task], Awaitable[None]]
