"""Резолвер ингредиентов: insert-or-fetch, связи родитель → потомок, защита от циклов."""
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass, field
from typing import Any

from loguru import logger
from supabase import Client

from spoils.database import (
    get_or_create_ingredient,
    get_parent_links,
    link_ingredient,
    link_product_ingredient,
)
from spoils.ingredients.extractor import parse_ingredient_entry
from spoils.models.ingredient import ParentRef, normalize_ingredient_name
from spoils.models.task import EnqueueResult

Enqueuer = Callable[[str, dict[str, Any]], Awaitable[EnqueueResult]]

RESOLVE_SUB_INGREDIENT = "resolve_sub_ingredient"


@dataclass
class ResolveSummary:
    """Итог одного прохода резолвера."""

    linked: list[int] = field(default_factory=list)
    already_linked: list[int] = field(default_factory=list)
    cycles: list[int] = field(default_factory=list)  # потомки, ребро к которым отклонено
    enqueued: list[str] = field(default_factory=list)  # id задач resolve_sub_ingredient


async def find_cycle(db: Client, parent_id: int, child_id: int, max_depth: int) -> str | None:
    """
    Проверить, создаст ли ребро parent → child цикл.
    Обход предков parent по parent_ingredients, не глубже max_depth уровней.
    Возвращает причину отказа ('self' | 'ancestor' | 'depth_exceeded') или None.
    """
    if parent_id == child_id:
        return "self"

    visited = {parent_id}
    frontier = [parent_id]
    for _ in range(max_depth):
        links = await get_parent_links(db, frontier)
        next_frontier: list[int] = []
        for node in frontier:
            for ancestor in links.get(node, []):
                if ancestor == child_id:
                    return "ancestor"
                if ancestor not in visited:
                    visited.add(ancestor)
                    next_frontier.append(ancestor)
        if not next_frontier:
            return None
        frontier = next_frontier

    # Граф глубже лимита: ребро не добавляем
    return "depth_exceeded"


async def resolve_ingredients(
    db: Client,
    parent: ParentRef,
    raw_names: Iterable[str],
    enqueue: Enqueuer,
    max_depth: int = 10,
) -> ResolveSummary:
    """
    Материализовать ингредиенты и привязать их к родителю.

    Для каждой позиции: нормализация → insert-or-fetch → проверка цикла →
    связь. Составные ингредиенты не разворачиваются рекурсивно: вложенный
    список уходит отдельной задачей resolve_sub_ingredient.
    """
    summary = ResolveSummary()
    seen: set[str] = set()

    for raw in raw_names:
        name, nested = parse_ingredient_entry(raw)
        normalized = normalize_ingredient_name(name)
        if not normalized or normalized in seen:
            continue
        seen.add(normalized)

        ingredient = await get_or_create_ingredient(db, normalized, branded=nested is not None)

        if parent.kind == "ingredient":
            reason = await find_cycle(db, parent.id, ingredient.id, max_depth)
            outcome = "cycle" if reason else await link_ingredient(
                db, parent.id, ingredient.id, max_depth
            )
        else:
            reason = None
            outcome = await link_product_ingredient(db, parent.id, ingredient.id)

        if outcome == "cycle":
            logger.warning(
                f"[resolver] Cycle detected: {parent.kind} {parent.id} → "
                f"ingredient {ingredient.id} ({normalized!r}), "
                f"reason={reason or 'store'}; edge skipped"
            )
            summary.cycles.append(ingredient.id)
            continue

        if outcome == "exists":
            summary.already_linked.append(ingredient.id)
        else:
            summary.linked.append(ingredient.id)

        if ingredient.branded and nested and ingredient.expanded_at is None:
            result = await enqueue(
                RESOLVE_SUB_INGREDIENT,
                {"ingredient_id": ingredient.id, "text": nested},
            )
            if not result.duplicate:
                summary.enqueued.append(result.task_id)

    logger.debug(
        f"[resolver] {parent.kind} {parent.id}: linked={len(summary.linked)}, "
        f"existing={len(summary.already_linked)}, cycles={len(summary.cycles)}, "
        f"enqueued={len(summary.enqueued)}"
    )
    return summary
