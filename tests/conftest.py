"""Общие фикстуры: мок Supabase client с цепочкой вызовов."""
from unittest.mock import MagicMock

import pytest


def make_supabase_mock() -> MagicMock:
    """Создать мок Supabase client: table().<filter>()...execute() возвращает один и тот же мок."""
    db = MagicMock()
    table_mock = MagicMock()
    db.table.return_value = table_mock
    for method in (
        "update", "insert", "upsert", "delete", "select",
        "eq", "in_", "is_", "lt", "lte", "gt", "or_", "order", "limit",
    ):
        getattr(table_mock, method).return_value = table_mock
    table_mock.execute.return_value = MagicMock(data=[], count=0)
    # rpc цепочка
    rpc_mock = MagicMock()
    db.rpc.return_value = rpc_mock
    rpc_mock.execute.return_value = MagicMock(data=[])
    return db


@pytest.fixture
def mock_db() -> MagicMock:
    return make_supabase_mock()
