"""
Одноразовый скрипт: заново поставить analyze_ingredients для закэшированных продуктов.

Нужен после изменений в разборе ингредиентов — связи идемпотентны,
поэтому повторный прогон только добавляет недостающие ингредиенты.

Использование:
    python -m spoils.cli.reanalyze              # все продукты с ingredients_text
    python -m spoils.cli.reanalyze --limit 50   # первые 50
    python -m spoils.cli.reanalyze --dry-run    # без изменений, только вывод
"""
import argparse
import asyncio
import sys

from loguru import logger
from supabase import create_client

from spoils.config import load_settings
from spoils.database import run_in_thread
from spoils.worker.handlers import ANALYZE_INGREDIENTS, build_registry


async def reanalyze(limit: int | None = None, dry_run: bool = False) -> int:
    """Создать задачи analyze_ingredients. Возвращает число новых задач."""
    settings = load_settings()
    db = create_client(settings.supabase_url, settings.supabase_service_key.get_secret_value())
    registry = build_registry()

    query = (
        db.table("products")
        .select("id, barcode")
        .not_.is_("ingredients_text", "null")
        .order("created_at", desc=True)
    )
    if limit:
        query = query.limit(limit)

    result = await run_in_thread(query.execute)
    products = result.data

    if not products:
        logger.info("Нет продуктов для переанализа")
        return 0

    logger.info(f"Найдено {len(products)} продуктов для переанализа")

    if dry_run:
        for product in products:
            logger.info(f"  [dry-run] {product.get('barcode', '?')} (product={product['id']})")
        logger.info(f"[dry-run] Было бы поставлено до {len(products)} задач. Выход.")
        return 0

    created = 0
    for product in products:
        enqueued = await registry.enqueue(db, ANALYZE_INGREDIENTS, {"product_id": product["id"]})
        if not enqueued.duplicate:
            created += 1

    logger.info(
        f"Готово: создано {created} задач {ANALYZE_INGREDIENTS} "
        f"({len(products) - created} уже ожидали). "
        f"Задачи будут обработаны воркерами при следующем цикле."
    )
    return created


def main() -> None:
    parser = argparse.ArgumentParser(description="Переанализ ингредиентов продуктов")
    parser.add_argument("--limit", type=int, default=None, help="Максимум продуктов")
    parser.add_argument("--dry-run", action="store_true", help="Только показать, не ставить задачи")
    args = parser.parse_args()

    logger.remove()
    logger.add(sys.stderr, level="INFO")

    asyncio.run(reanalyze(limit=args.limit, dry_run=args.dry_run))


if __name__ == "__main__":
    main()
