"""Обработчики задач воркера — fetch, analyze, resolve, notify, cleanup."""
from typing import Any

from loguru import logger

from spoils.catalog import build_product_row
from spoils.database import (
    cleanup_tasks,
    get_ingredient,
    get_product,
    insert_notification,
    mark_ingredient_expanded,
    upsert_product,
)
from spoils.exceptions import CatalogAPIError, PermanentTaskError, ProductNotFoundError
from spoils.ingredients.extractor import extract_label_ingredients, split_ingredient_list
from spoils.ingredients.resolver import RESOLVE_SUB_INGREDIENT, resolve_ingredients
from spoils.models.ingredient import ParentRef
from spoils.models.task import Task
from spoils.worker.registry import HandlerContext, TaskRegistry, TaskType

FETCH_PRODUCT = "fetch_product"
ANALYZE_INGREDIENTS = "analyze_ingredients"
SEND_NOTIFICATION = "send_notification"
CLEANUP = "cleanup"


def _require(task: Task, key: str) -> Any:
    """Достать обязательное поле payload; без него ретрай бесполезен."""
    value = task.payload.get(key)
    if value is None or value == "":
        raise PermanentTaskError(f"Payload of {task.task_type} is missing '{key}'")
    return value


def _require_int(task: Task, key: str) -> int:
    value = _require(task, key)
    try:
        return int(value)
    except (TypeError, ValueError):
        raise PermanentTaskError(f"Payload field '{key}' must be an integer, got {value!r}") from None


async def handle_fetch_product(ctx: HandlerContext, task: Task) -> None:
    """
    Получить продукт из OpenFoodFacts и закэшировать.
    1. GET каталога по штрихкоду
    2. upsert в products
    3. Создать задачу analyze_ingredients
    """
    barcode = str(_require(task, "barcode")).strip()
    logger.debug(f"[fetch_product] Starting task={task.id}, barcode={barcode}")

    try:
        product_data = await ctx.catalog.fetch_product(barcode)
    except CatalogAPIError as e:
        # 429/5xx → retry, остальные 4xx не ретраим
        if not e.retryable:
            raise PermanentTaskError(str(e)) from e
        raise

    product = await upsert_product(ctx.db, build_product_row(barcode, product_data))
    await ctx.enqueue(ANALYZE_INGREDIENTS, {"product_id": product.id})
    logger.info(f"Product {barcode} cached (product={product.id})")


async def handle_analyze_ingredients(ctx: HandlerContext, task: Task) -> None:
    """Разобрать ingredients_text продукта и привязать ингредиенты верхнего уровня."""
    product_id = _require_int(task, "product_id")
    product = await get_product(ctx.db, product_id)
    if product is None:
        raise ProductNotFoundError(f"Product {product_id} not found in database")

    names = extract_label_ingredients(product.ingredients_text)
    if not names:
        logger.info(f"[analyze_ingredients] Product {product_id}: no ingredients to resolve")
        return

    summary = await resolve_ingredients(
        ctx.db,
        ParentRef(kind="product", id=product.id),
        names,
        ctx.enqueue,
        max_depth=ctx.settings.max_ingredient_depth,
    )
    logger.info(
        f"Ingredient analysis done for product {product_id}: "
        f"{len(summary.linked) + len(summary.already_linked)} ingredients, "
        f"{len(summary.enqueued)} composite queued"
    )


async def handle_resolve_sub_ingredient(ctx: HandlerContext, task: Task) -> None:
    """Развернуть вложенный список составного ингредиента на один уровень."""
    ingredient_id = _require_int(task, "ingredient_id")
    text = str(task.payload.get("text") or "")

    ingredient = await get_ingredient(ctx.db, ingredient_id)
    if ingredient is None:
        raise PermanentTaskError(f"Ingredient {ingredient_id} not found")

    names = split_ingredient_list(text)
    if names:
        await resolve_ingredients(
            ctx.db,
            ParentRef(kind="ingredient", id=ingredient.id),
            names,
            ctx.enqueue,
            max_depth=ctx.settings.max_ingredient_depth,
        )
    else:
        # Пустой вложенный список: успешный разбор без потомков
        logger.debug(f"[resolve_sub_ingredient] {ingredient.name!r}: nested text is empty")

    await mark_ingredient_expanded(ctx.db, ingredient.id)
    logger.info(f"Sub-ingredients resolved for {ingredient.name!r} ({len(names)} entries)")


async def handle_send_notification(ctx: HandlerContext, task: Task) -> None:
    """Записать уведомление пользователю."""
    user_id = _require_int(task, "user_id")
    notification_type = str(_require(task, "notification_type"))
    message = str(_require(task, "message"))

    await insert_notification(ctx.db, user_id, notification_type, message)
    logger.info(f"Sent {notification_type} notification to user {user_id}")


async def handle_cleanup(ctx: HandlerContext, task: Task) -> None:
    """Удалить старые завершённые задачи."""
    await cleanup_tasks(ctx.db, ctx.settings.task_retention_days)


def build_registry() -> TaskRegistry:
    """Реестр всех вариантов задач (собирается при старте)."""
    return TaskRegistry([
        TaskType(FETCH_PRODUCT, handle_fetch_product, unique=True, max_retries=3),
        TaskType(ANALYZE_INGREDIENTS, handle_analyze_ingredients, unique=True, max_retries=2),
        TaskType(SEND_NOTIFICATION, handle_send_notification, unique=False, max_retries=5),
        TaskType(CLEANUP, handle_cleanup, unique=True, max_retries=1, cron="0 2 * * *"),
        TaskType(
            RESOLVE_SUB_INGREDIENT,
            handle_resolve_sub_ingredient,
            unique=True,
            max_retries=3,
            backoff_base_seconds=30,
        ),
    ])
