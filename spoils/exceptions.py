"""Исключения очереди задач и резолвера."""


class SpoilsError(Exception):
    """Общая ошибка сервиса."""


class InfrastructureError(SpoilsError):
    """Хранилище недоступно — ретраится воркером, попытка не засчитывается."""


class TaskLogicError(SpoilsError):
    """Ошибка выполнения самой задачи — засчитывается в retry_count."""


class PermanentTaskError(TaskLogicError):
    """Ретрай бесполезен — задача сразу уходит в failed."""


class UnknownTaskTypeError(PermanentTaskError):
    """Тип задачи не зарегистрирован."""

    def __init__(self, task_type: str) -> None:
        self.task_type = task_type
        super().__init__(f"Unknown task type: {task_type}")


class ProductNotFoundError(PermanentTaskError):
    """Продукт не найден ни в каталоге, ни в БД."""


class CatalogAPIError(TaskLogicError):
    """Ошибка HTTP от OpenFoodFacts (4xx/5xx)."""

    def __init__(self, status_code: int, detail: str = "") -> None:
        self.status_code = status_code
        super().__init__(f"OpenFoodFacts HTTP {status_code}: {detail}")

    @property
    def retryable(self) -> bool:
        return self.status_code in (429, 500, 502, 503, 504)
