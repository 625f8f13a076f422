"""Пул воркеров — polling очереди + обработка задач."""
import asyncio

from loguru import logger

from spoils.database import (
    claim_next_task,
    mark_task_failed,
    mark_task_finished,
    mark_task_retry,
    release_task,
)
from spoils.exceptions import InfrastructureError, PermanentTaskError, UnknownTaskTypeError
from spoils.models.task import Task
from spoils.worker.registry import HandlerContext, TaskType

SHUTDOWN_TIMEOUT_SECONDS = 30


async def record_failure(ctx: HandlerContext, task: Task, task_type: TaskType, error: str) -> None:
    """
    Зафиксировать неудачную попытку: retry с backoff или failed.
    failed — ровно когда новый retry_count превысил бы max_retries.
    """
    retry_count = task.retry_count + 1
    if retry_count > task.max_retries:
        await mark_task_failed(
            ctx.db, task.id,
            f"{error} (retries exhausted: {task.retry_count}/{task.max_retries})",
        )
        return
    await mark_task_retry(ctx.db, task.id, task_type.backoff(retry_count), error)


async def process_task(ctx: HandlerContext, task: Task) -> None:
    """Выполнить одну заклеймленную задачу и перевести её в следующее состояние."""
    logger.debug(f"Processing task {task.id}: type={task.task_type}, "
                 f"retries={task.retry_count}/{task.max_retries}")
    try:
        task_type = ctx.registry.get(task.task_type)
    except UnknownTaskTypeError as e:
        logger.warning(f"Unknown task type: {task.task_type}")
        await mark_task_failed(ctx.db, task.id, str(e))
        return

    try:
        await task_type.handler(ctx, task)
    except InfrastructureError as e:
        # Хранилище недоступно, попытка не засчитывается
        logger.warning(f"Task {task.id} interrupted by store error, releasing: {e}")
        await release_task(ctx.db, task.id)
        return
    except PermanentTaskError as e:
        await mark_task_failed(ctx.db, task.id, str(e))
        return
    except Exception as e:
        logger.exception(f"Task {task.id} ({task.task_type}) failed: {e}")
        await record_failure(ctx, task, task_type, str(e) or type(e).__name__)
        return

    await mark_task_finished(ctx.db, task.id)
    logger.debug(f"Task {task.id} finished")

    if task_type.cron:
        # Следующий запуск периодической задачи
        await ctx.registry.enqueue(ctx.db, task_type.type_tag, task.payload)


class WorkerPool:
    """
    Фиксированный пул из size воркеров.
    Общей очереди в памяти нет: каждый воркер сам клеймит задачи из БД.
    """

    def __init__(self, ctx: HandlerContext, size: int, poll_interval: float = 1.0) -> None:
        self.ctx = ctx
        self.size = size
        self.poll_interval = poll_interval
        self.shutdown_event = asyncio.Event()
        self._workers: list[asyncio.Task[None]] = []

    def stop(self) -> None:
        self.shutdown_event.set()

    async def run_once(self, worker_id: int = 0) -> bool:
        """Заклеймить и обработать одну задачу. False — задач нет (или БД недоступна)."""
        try:
            task = await claim_next_task(self.ctx.db)
        except InfrastructureError as e:
            logger.warning(f"[worker-{worker_id}] Claim failed, store unavailable: {e}")
            return False
        except Exception as e:
            logger.exception(f"[worker-{worker_id}] Error claiming task: {e}")
            return False

        if task is None:
            return False

        try:
            await process_task(self.ctx, task)
        except Exception as e:
            # Переход состояния не записался, задачу вернёт reclaim sweep
            logger.exception(f"[worker-{worker_id}] Unhandled error in task {task.id}: {e}")
        return True

    async def _idle(self) -> None:
        """Ждём poll_interval или shutdown."""
        try:
            await asyncio.wait_for(self.shutdown_event.wait(), timeout=self.poll_interval)
        except TimeoutError:
            pass  # Нормальный таймаут, продолжаем цикл

    async def _worker(self, worker_id: int) -> None:
        while not self.shutdown_event.is_set():
            claimed = await self.run_once(worker_id)
            if not claimed:
                await self._idle()

    async def run(self) -> None:
        """Запустить воркеры и дождаться shutdown."""
        logger.info(f"Worker pool started (workers={self.size}, poll={self.poll_interval}s)")
        self._workers = [
            asyncio.create_task(self._worker(i), name=f"worker-{i}")
            for i in range(self.size)
        ]

        await self.shutdown_event.wait()

        # Graceful shutdown: дождаться завершения активных задач
        logger.info(f"Waiting for {len(self._workers)} workers to finish...")
        _, pending = await asyncio.wait(self._workers, timeout=SHUTDOWN_TIMEOUT_SECONDS)
        if pending:
            logger.warning(f"Cancelling {len(pending)} workers that didn't finish in "
                           f"{SHUTDOWN_TIMEOUT_SECONDS}s")
            for t in pending:
                t.cancel()
            await asyncio.gather(*pending, return_exceptions=True)

        logger.info("Worker pool shutting down")
