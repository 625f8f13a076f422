"""Точка входа — инициализация и запуск API + пула воркеров."""
import asyncio
import signal
import sys

import uvicorn
from loguru import logger
from supabase import create_client

from spoils.api.app import create_app
from spoils.catalog import OpenFoodFactsClient
from spoils.config import load_settings
from spoils.log_sink import create_supabase_sink
from spoils.worker.handlers import build_registry
from spoils.worker.loop import WorkerPool
from spoils.worker.registry import HandlerContext
from spoils.worker.scheduler import create_scheduler


async def main() -> None:
    """Инициализация и запуск API + воркеров."""
    settings = load_settings()

    # Логирование
    logger.remove()
    logger.add(sys.stderr, level=settings.log_level)
    if settings.log_level == "DEBUG":
        logger.add("logs/spoils.log", rotation="100 MB", retention="7 days")

    logger.info("Starting spoils worker")

    # Supabase
    db = create_client(settings.supabase_url, settings.supabase_service_key.get_secret_value())

    # Персистить WARNING+ логи (включая обнаруженные циклы) в Supabase
    logger.add(
        create_supabase_sink(db),
        level="WARNING",
        enqueue=True,
        serialize=False,
    )

    catalog = OpenFoodFactsClient(settings.openfoodfacts_url, timeout=settings.catalog_timeout)
    registry = build_registry()
    ctx = HandlerContext(db=db, settings=settings, registry=registry, catalog=catalog)
    pool = WorkerPool(ctx, size=settings.worker_count, poll_interval=settings.worker_poll_interval)

    # FastAPI
    app = create_app(db, registry, settings)
    config = uvicorn.Config(app, host="0.0.0.0", port=settings.api_port, log_level="warning")
    server = uvicorn.Server(config)

    # Graceful shutdown
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, pool.stop)

    # APScheduler: reclaim sweep и периодические задачи
    scheduler = create_scheduler(db, settings, registry)
    scheduler.start()
    logger.info("Scheduler started")

    logger.info(f"API server starting on port {settings.api_port}")

    async def serve_api() -> None:
        # uvicorn ставит свои обработчики сигналов, по его выходу гасим и воркеры
        try:
            await server.serve()
        finally:
            pool.stop()

    async def stop_api_on_shutdown() -> None:
        await pool.shutdown_event.wait()
        server.should_exit = True

    try:
        await asyncio.gather(serve_api(), stop_api_on_shutdown(), pool.run())
    finally:
        scheduler.shutdown(wait=False)
        await catalog.aclose()
        logger.info("Spoils stopped gracefully")


def run() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    run()
