"""APScheduler-задачи обслуживания очереди."""
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from loguru import logger
from supabase import Client

from spoils.config import Settings
from spoils.database import reclaim_stale_tasks
from spoils.worker.registry import TaskRegistry


async def reclaim_tasks(db: Client, settings: Settings) -> None:
    """Вернуть зависшие in_progress задачи в new."""
    await reclaim_stale_tasks(db, timeout_minutes=settings.stale_task_minutes)


async def ensure_recurring_tasks(db: Client, registry: TaskRegistry) -> int:
    """
    Убедиться, что у каждой периодической задачи есть ровно один ожидающий экземпляр.
    Уникальность enqueue не даст создать второй.
    """
    created = 0
    for task_type in registry.recurring():
        result = await registry.enqueue(db, task_type.type_tag)
        if not result.duplicate:
            created += 1
            logger.info(f"Scheduled recurring task {task_type.type_tag} ({task_type.cron})")
    return created


def create_scheduler(
    db: Client,
    settings: Settings,
    registry: TaskRegistry,
) -> AsyncIOScheduler:
    """Создать и настроить APScheduler."""
    scheduler = AsyncIOScheduler(
        job_defaults={
            # Sweep не пропускается при задержке event loop
            "misfire_grace_time": None,
            "coalesce": True,
        }
    )

    # Recovery зависших in_progress задач
    scheduler.add_job(
        reclaim_tasks,
        "interval",
        minutes=settings.reclaim_interval_minutes,
        kwargs={"db": db, "settings": settings},
        id="reclaim_tasks",
    )

    # Экземпляры периодических задач: однократно при старте и каждый час
    scheduler.add_job(
        ensure_recurring_tasks,
        "date",
        kwargs={"db": db, "registry": registry},
        id="ensure_recurring_tasks_startup",
    )
    scheduler.add_job(
        ensure_recurring_tasks,
        "interval",
        hours=1,
        kwargs={"db": db, "registry": registry},
        id="ensure_recurring_tasks",
    )

    return scheduler
