"""CRUD-операции с Supabase: очередь задач, продукты, ингредиенты."""
import asyncio
import hashlib
import json
import re
from datetime import UTC, datetime, timedelta
from typing import Any

import httpx
from loguru import logger
from postgrest.types import CountMethod
from supabase import Client

from spoils.exceptions import InfrastructureError
from spoils.models.ingredient import Ingredient, Product
from spoils.models.task import CLAIMABLE_STATES, TASK_STATES, EnqueueResult, Task


async def run_in_thread(func: Any, *args: Any, **kwargs: Any) -> Any:
    """Выполнить синхронный вызов Supabase в отдельном потоке.

    Сетевые ошибки (хранилище недоступно) пробрасываются как InfrastructureError,
    ошибки PostgREST (constraint, RLS и т.п.) — как есть.
    """
    try:
        return await asyncio.to_thread(func, *args, **kwargs)
    except (httpx.TransportError, OSError) as e:
        raise InfrastructureError(f"Store unavailable: {sanitize_error(str(e))}") from e


def sanitize_error(error: str) -> str:
    """Убрать потенциальные креденшалы из сообщения об ошибке."""
    return re.sub(r"://[^@\s]+@", "://***:***@", error)


def compute_uniqueness_key(task_type: str, payload: dict[str, Any]) -> str:
    """sha256 от (task_type, payload) с каноничной сериализацией JSON."""
    canonical = json.dumps(
        {"task_type": task_type, "payload": payload},
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
        default=str,
    )
    return hashlib.sha256(canonical.encode()).hexdigest()


def _extract_rpc_scalar(data: Any) -> Any:
    """Extract scalar value from Supabase RPC response."""
    if isinstance(data, list):
        if not data:
            return None
        first_item = data[0]
        if isinstance(first_item, dict):
            if not first_item:
                return None
            if len(first_item) == 1:
                return next(iter(first_item.values()))
            return first_item
        return first_item

    if isinstance(data, dict):
        if not data:
            return None
        if len(data) == 1:
            return next(iter(data.values()))
        return data

    return data


def _extract_rpc_row(data: Any) -> dict[str, Any] | None:
    """Первая строка из ответа set-returning RPC (list[dict] или dict)."""
    if isinstance(data, list):
        data = data[0] if data else None
    if isinstance(data, dict) and data:
        return data
    return None


# ---------------------------------------------------------------------------
# Очередь задач
# ---------------------------------------------------------------------------


async def enqueue_task(
    db: Client,
    task_type: str,
    payload: dict[str, Any],
    *,
    unique: bool,
    max_retries: int,
    scheduled_at: datetime | None = None,
) -> EnqueueResult:
    """
    Поставить задачу через атомарную RPC-функцию.
    Для уникальных типов вставка идёт через ON CONFLICT по partial unique index:
    если эквивалентная задача уже new/retried/in_progress — возвращается её id.
    """
    uniqueness_key = compute_uniqueness_key(task_type, payload) if unique else None
    when = scheduled_at or datetime.now(UTC)

    result = await run_in_thread(
        db.rpc("enqueue_task", {
            "p_task_type": task_type,
            "p_payload": payload,
            "p_uniqueness_key": uniqueness_key,
            "p_max_retries": max_retries,
            "p_scheduled_at": when.isoformat(),
        }).execute
    )
    row = _extract_rpc_row(result.data)
    if row is None:
        raise InfrastructureError(f"enqueue_task returned no row for {task_type}")

    enqueued = EnqueueResult(task_id=str(row["task_id"]), duplicate=bool(row["duplicate"]))
    if enqueued.duplicate:
        logger.debug(f"Task {task_type} already pending: {enqueued.task_id}, skipping")
    else:
        logger.info(f"Enqueued task {task_type}: {enqueued.task_id}")
    return enqueued


async def claim_next_task(db: Client) -> Task | None:
    """Атомарно забрать одну готовую задачу (FOR UPDATE SKIP LOCKED) и перевести в in_progress."""
    result = await run_in_thread(db.rpc("claim_next_task", {}).execute)
    row = _extract_rpc_row(result.data)
    if row is None or row.get("id") is None:
        return None
    return Task.model_validate(row)


async def mark_task_finished(db: Client, task_id: str) -> None:
    """Пометить задачу как finished."""
    await run_in_thread(
        db.table("tasks").update({
            "state": "finished",
            "updated_at": datetime.now(UTC).isoformat(),
        }).eq("id", task_id).execute
    )


async def mark_task_retry(db: Client, task_id: str, delay_seconds: int, error: str) -> str:
    """
    Запланировать повтор: retry_count + 1, scheduled_at = now + delay, state = retried.
    Если retry_count уже достиг max_retries — RPC переводит задачу в failed.
    Возвращает итоговое состояние.
    """
    safe_error = sanitize_error(error)
    result = await run_in_thread(
        db.rpc("mark_task_retry", {
            "p_task_id": task_id,
            "p_delay_seconds": delay_seconds,
            "p_error": safe_error,
        }).execute
    )
    state = _extract_rpc_scalar(result.data) or "retried"
    if state == "failed":
        logger.error(f"Task {task_id} permanently failed: {safe_error}")
    else:
        logger.info(f"Task {task_id} retry in {delay_seconds}s: {safe_error}")
    return state


async def mark_task_failed(db: Client, task_id: str, error: str) -> None:
    """Пометить задачу как failed без повторов."""
    safe_error = sanitize_error(error)
    await run_in_thread(
        db.table("tasks").update({
            "state": "failed",
            "error_message": safe_error,
            "updated_at": datetime.now(UTC).isoformat(),
        }).eq("id", task_id).execute
    )
    logger.error(f"Task {task_id} permanently failed: {safe_error}")


async def release_task(db: Client, task_id: str) -> None:
    """Вернуть in_progress задачу в new, не трогая retry_count (сбой инфраструктуры)."""
    await run_in_thread(
        db.table("tasks").update({
            "state": "new",
            "started_at": None,
            "updated_at": datetime.now(UTC).isoformat(),
        }).eq("id", task_id).eq("state", "in_progress").execute
    )


async def reclaim_stale_tasks(db: Client, timeout_minutes: int = 30) -> int:
    """
    Вернуть зависшие in_progress задачи в new.
    Воркер мог упасть посреди выполнения — без sweep'а задача осталась бы in_progress навсегда.
    """
    result = await run_in_thread(
        db.rpc("reclaim_stale_tasks", {"p_timeout_minutes": timeout_minutes}).execute
    )
    reclaimed = _extract_rpc_scalar(result.data) or 0
    if reclaimed:
        logger.warning(f"Reclaimed {reclaimed} stale tasks (>{timeout_minutes}min in progress)")
    return int(reclaimed)


async def cancel_task(db: Client, task_id: str) -> bool:
    """Удалить задачу, пока её не забрал воркер. False — задача уже в работе или не найдена."""
    result = await run_in_thread(
        db.table("tasks").delete().eq("id", task_id).in_("state", list(CLAIMABLE_STATES)).execute
    )
    return bool(result.data)


async def reset_failed_task(db: Client, task_id: str) -> bool:
    """Сбросить failed задачу в new с обнулённым счётчиком попыток."""
    now = datetime.now(UTC).isoformat()
    result = await run_in_thread(
        db.table("tasks").update({
            "state": "new",
            "retry_count": 0,
            "error_message": None,
            "scheduled_at": now,
            "updated_at": now,
        }).eq("id", task_id).eq("state", "failed").execute
    )
    return bool(result.data)


async def get_task(db: Client, task_id: str) -> Task | None:
    """Получить задачу по ID."""
    result = await run_in_thread(
        db.table("tasks").select("*").eq("id", task_id).limit(1).execute
    )
    if not result.data:
        return None
    return Task.model_validate(result.data[0])


async def find_tasks_by_payload(
    db: Client, key: str, value: Any, limit: int = 50
) -> list[Task]:
    """Задачи по ключу корреляции в payload (например barcode)."""
    result = await run_in_thread(
        db.table("tasks")
        .select("*")
        .eq(f"payload->>{key}", str(value))
        .order("created_at", desc=True)
        .limit(limit)
        .execute
    )
    return [Task.model_validate(row) for row in result.data]


async def get_task_stats(db: Client) -> dict[str, int]:
    """Количество задач по состояниям (все состояния присутствуют, по умолчанию 0)."""
    result = await run_in_thread(db.rpc("task_state_counts", {}).execute)
    stats = dict.fromkeys(TASK_STATES, 0)
    for row in result.data or []:
        stats[row["state"]] = int(row["count"])
    return stats


async def count_tasks(db: Client, state: str) -> int:
    """Точное количество задач в состоянии (для healthcheck)."""
    result = await run_in_thread(
        db.table("tasks")
        .select("id", count=CountMethod.exact)
        .eq("state", state)
        .execute
    )
    return result.count or 0


async def cleanup_tasks(db: Client, retention_days: int) -> int:
    """Удалить finished/failed задачи старше retention_days дней."""
    threshold = (datetime.now(UTC) - timedelta(days=retention_days)).isoformat()
    result = await run_in_thread(
        db.table("tasks")
        .delete()
        .in_("state", ["finished", "failed"])
        .lt("updated_at", threshold)
        .execute
    )
    deleted = len(result.data or [])
    logger.info(f"Cleaned up {deleted} tasks older than {retention_days} days")
    return deleted


# ---------------------------------------------------------------------------
# Продукты
# ---------------------------------------------------------------------------


async def get_product(db: Client, product_id: int) -> Product | None:
    """Продукт по ID."""
    result = await run_in_thread(
        db.table("products").select("*").eq("id", product_id).limit(1).execute
    )
    if not result.data:
        return None
    return Product.model_validate(result.data[0])


async def get_product_by_barcode(db: Client, barcode: str) -> Product | None:
    """Продукт по штрихкоду."""
    result = await run_in_thread(
        db.table("products").select("*").eq("barcode", barcode).limit(1).execute
    )
    if not result.data:
        return None
    return Product.model_validate(result.data[0])


async def upsert_product(db: Client, data: dict[str, Any]) -> Product:
    """Upsert продукта. ON CONFLICT (barcode) DO UPDATE."""
    row = {**data, "updated_at": datetime.now(UTC).isoformat()}
    result = await run_in_thread(
        db.table("products").upsert(row, on_conflict="barcode").execute
    )
    return Product.model_validate(result.data[0])


async def link_product_ingredient(db: Client, product_id: int, ingredient_id: int) -> str:
    """Добавить ингредиент верхнего уровня к продукту. 'linked' | 'exists'."""
    result = await run_in_thread(
        db.rpc("link_product_ingredient", {
            "p_product_id": product_id,
            "p_ingredient_id": ingredient_id,
        }).execute
    )
    return _extract_rpc_scalar(result.data) or "linked"


# ---------------------------------------------------------------------------
# Ингредиенты
# ---------------------------------------------------------------------------


async def get_ingredient(db: Client, ingredient_id: int) -> Ingredient | None:
    """Ингредиент по ID."""
    result = await run_in_thread(
        db.table("ingredients").select("*").eq("id", ingredient_id).limit(1).execute
    )
    if not result.data:
        return None
    return Ingredient.model_validate(result.data[0])


async def get_parent_links(db: Client, ingredient_ids: list[int]) -> dict[int, list[int]]:
    """parent_ingredients для набора ингредиентов: {id: [parent_id, ...]}."""
    if not ingredient_ids:
        return {}
    result = await run_in_thread(
        db.table("ingredients")
        .select("id, parent_ingredients")
        .in_("id", ingredient_ids)
        .execute
    )
    return {
        row["id"]: list(row.get("parent_ingredients") or [])
        for row in result.data
    }


async def get_or_create_ingredient(db: Client, name: str, branded: bool) -> Ingredient:
    """
    Атомарный insert-or-fetch по нормализованному имени (ON CONFLICT (name)).
    Параллельные воркеры с одним именем получат одну и ту же строку.
    """
    result = await run_in_thread(
        db.rpc("get_or_create_ingredient", {"p_name": name, "p_branded": branded}).execute
    )
    row = _extract_rpc_row(result.data)
    if row is None:
        raise InfrastructureError(f"get_or_create_ingredient returned no row for {name!r}")
    return Ingredient.model_validate(row)


async def link_ingredient(db: Client, parent_id: int, child_id: int, max_depth: int) -> str:
    """
    Связать parent → child (sub_ingredients + обратная ссылка parent_ingredients).
    RPC повторяет проверку цикла под блокировкой строки.
    Возвращает 'linked' | 'exists' | 'cycle'.
    """
    result = await run_in_thread(
        db.rpc("link_ingredient", {
            "p_parent_id": parent_id,
            "p_child_id": child_id,
            "p_max_depth": max_depth,
        }).execute
    )
    return _extract_rpc_scalar(result.data) or "linked"


async def mark_ingredient_expanded(db: Client, ingredient_id: int) -> None:
    """Отметить, что вложенный список составного ингредиента разобран."""
    now = datetime.now(UTC).isoformat()
    await run_in_thread(
        db.table("ingredients").update({
            "expanded_at": now,
            "updated_at": now,
        }).eq("id", ingredient_id).execute
    )


# ---------------------------------------------------------------------------
# Уведомления
# ---------------------------------------------------------------------------


async def insert_notification(
    db: Client, user_id: int, notification_type: str, message: str
) -> None:
    """Записать уведомление для доставки."""
    await run_in_thread(
        db.table("notifications").insert({
            "user_id": user_id,
            "notification_type": notification_type,
            "message": message,
        }).execute
    )
