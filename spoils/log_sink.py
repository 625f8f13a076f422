"""Loguru sink: WARNING+ логи (в т.ч. обнаруженные циклы ингредиентов) в таблицу app_logs."""
from typing import Any

from supabase import Client


def build_log_row(record: dict[str, Any]) -> dict[str, Any]:
    """Строка app_logs из loguru record."""
    exception = record.get("exception")
    exc_value = getattr(exception, "value", None) if exception else None
    return {
        "level": record["level"].name,
        "module": record["name"],
        "function": record.get("function"),
        "message": str(record["message"]),
        "exception": f"{type(exc_value).__name__}: {exc_value}" if exc_value else None,
    }


def create_supabase_sink(db: Client):
    """Фабрика: вернуть sink-функцию, привязанную к db-клиенту."""

    def sink(message) -> None:
        try:
            db.table("app_logs").insert(build_log_row(message.record)).execute()
        except Exception:
            pass  # Ошибка логирования не должна ронять воркер

    return sink
