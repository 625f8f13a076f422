"""Общие фикстуры и хелперы для тестов API."""
from unittest.mock import MagicMock


TASK_ID = "0b7c9a52-3d1e-4f4b-9f55-0c3f3a6f2d11"


def make_settings():
    """Создать мок Settings."""
    settings = MagicMock()
    settings.max_ingredient_depth = 10
    return settings


def make_app(db=None, settings=None):
    """Создать FastAPI app с моками и настоящим реестром задач."""
    from spoils.api.app import create_app
    from spoils.worker.handlers import build_registry

    return create_app(
        db=db or MagicMock(),
        registry=build_registry(),
        settings=settings or make_settings(),
    )


def make_task_row(**overrides) -> dict:
    row = {
        "id": TASK_ID,
        "task_type": "fetch_product",
        "payload": {"barcode": "5449000000996"},
        "state": "new",
        "uniqueness_key": "abc",
        "retry_count": 0,
        "max_retries": 3,
        "error_message": None,
        "scheduled_at": "2026-02-20T10:00:00+00:00",
        "created_at": "2026-02-20T10:00:00+00:00",
        "updated_at": "2026-02-20T10:00:00+00:00",
    }
    row.update(overrides)
    return row
