"""FastAPI-приложение: постановка задач и чтение их состояния."""
import time
import uuid
from collections import defaultdict, deque

from fastapi import Depends, FastAPI, HTTPException, Path, Query, Request, Response
from fastapi.responses import JSONResponse
from loguru import logger
from postgrest.exceptions import APIError as PostgrestAPIError
from supabase import Client

from spoils.api.schemas import (
    AnalyzeIngredientsRequest,
    EnqueueRequest,
    EnqueueResponse,
    FetchProductRequest,
    HealthResponse,
    RetryResponse,
    TaskListResponse,
    TaskResponse,
    TaskStatsResponse,
    normalize_barcode,
)
from spoils.config import Settings
from spoils.database import (
    cancel_task,
    count_tasks,
    find_tasks_by_payload,
    get_ingredient,
    get_product_by_barcode,
    get_task,
    get_task_stats,
    reset_failed_task,
)
from spoils.exceptions import InfrastructureError, UnknownTaskTypeError
from spoils.models.task import EnqueueResult
from spoils.worker.handlers import ANALYZE_INGREDIENTS, FETCH_PRODUCT
from spoils.worker.registry import TaskRegistry

RATE_LIMIT_MAX_REQUESTS = 60
RATE_LIMIT_WINDOW_SECONDS = 60
RATE_LIMIT_MAX_CLIENTS = 100


class RateLimiter:
    """In-memory sliding window по IP клиента."""

    def __init__(
        self,
        max_requests: int = RATE_LIMIT_MAX_REQUESTS,
        window_seconds: float = RATE_LIMIT_WINDOW_SECONDS,
    ) -> None:
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._hits: dict[str, deque[float]] = defaultdict(deque)

    def hit(self, client: str, now: float | None = None) -> bool:
        """Учесть запрос. False — окно клиента уже заполнено."""
        now = time.monotonic() if now is None else now
        window_start = now - self.window_seconds

        hits = self._hits[client]
        while hits and hits[0] <= window_start:
            hits.popleft()
        if len(hits) >= self.max_requests:
            return False
        hits.append(now)

        if len(self._hits) > RATE_LIMIT_MAX_CLIENTS:
            idle = [c for c, ts in self._hits.items() if not ts or ts[-1] <= window_start]
            for c in idle:
                del self._hits[c]
        return True


def _validate_uuid(value: str) -> None:
    """Проверить что строка — валидный UUID. Бросает 422 при ошибке."""
    try:
        uuid.UUID(value)
    except ValueError:
        raise HTTPException(status_code=422, detail=f"Invalid UUID: {value}")


def _enqueue_response(task_type: str, result: EnqueueResult) -> dict:
    return {
        "task_id": result.task_id,
        "task_type": task_type,
        "status": "duplicate" if result.duplicate else "created",
    }


def create_app(db: Client, registry: TaskRegistry, settings: Settings) -> FastAPI:
    """Создать FastAPI-приложение с зависимостями."""
    app = FastAPI(title="Spoils API", version="0.1.0")

    app.state.db = db
    app.state.registry = registry
    app.state.settings = settings
    app.state.rate_limiter = RateLimiter()

    @app.exception_handler(InfrastructureError)
    async def infrastructure_error_handler(request: Request, exc: InfrastructureError) -> JSONResponse:
        logger.error(f"Store unavailable on {request.url.path}: {exc}")
        return JSONResponse(status_code=503, content={"detail": "Store unavailable"})

    async def check_rate_limit(request: Request) -> None:
        client_ip = request.client.host if request.client else "unknown"
        if not app.state.rate_limiter.hit(client_ip):
            raise HTTPException(status_code=429, detail="Rate limit exceeded")

    limited = [Depends(check_rate_limit)]

    @app.get("/api/health", response_model=HealthResponse)
    async def health(response: Response) -> HealthResponse:
        """Healthcheck: доступность хранилища + счётчики задач."""
        try:
            in_progress = await count_tasks(db, "in_progress")
            pending = await count_tasks(db, "new") + await count_tasks(db, "retried")
        except Exception:
            response.status_code = 503
            in_progress = -1
            pending = -1
            status = "degraded"
        else:
            status = "ok"

        return HealthResponse(status=status, tasks_in_progress=in_progress, tasks_pending=pending)

    @app.post("/api/tasks", status_code=201, response_model=EnqueueResponse, dependencies=limited)
    async def enqueue(body: EnqueueRequest) -> dict:
        """Поставить задачу любого зарегистрированного типа."""
        try:
            result = await registry.enqueue(db, body.task_type, body.payload)
        except UnknownTaskTypeError:
            raise HTTPException(
                status_code=422,
                detail=f"Unknown task type '{body.task_type}', expected one of {registry.type_tags}",
            )
        return _enqueue_response(body.task_type, result)

    @app.post(
        "/api/tasks/fetch-product", status_code=201,
        response_model=EnqueueResponse, dependencies=limited,
    )
    async def enqueue_fetch_product(body: FetchProductRequest) -> dict:
        """Поставить загрузку продукта из каталога."""
        result = await registry.enqueue(db, FETCH_PRODUCT, {"barcode": body.barcode})
        return _enqueue_response(FETCH_PRODUCT, result)

    @app.post(
        "/api/tasks/analyze-ingredients", status_code=201,
        response_model=EnqueueResponse, dependencies=limited,
    )
    async def enqueue_analyze_ingredients(body: AnalyzeIngredientsRequest) -> dict:
        """Поставить анализ ингредиентов продукта."""
        result = await registry.enqueue(db, ANALYZE_INGREDIENTS, {"product_id": body.product_id})
        return _enqueue_response(ANALYZE_INGREDIENTS, result)

    @app.get("/api/tasks/stats", response_model=TaskStatsResponse, dependencies=limited)
    async def task_stats() -> dict:
        """Количество задач по состояниям."""
        return await get_task_stats(db)

    @app.get("/api/tasks", response_model=TaskListResponse, dependencies=limited)
    async def list_tasks_by_barcode(
        barcode: str = Query(min_length=1, description="Штрихкод из payload"),
        limit: int = Query(default=20, ge=1, le=100),
    ) -> dict:
        """Задачи, связанные со штрихкодом."""
        tasks = await find_tasks_by_payload(db, "barcode", barcode, limit=limit)
        return {
            "tasks": [t.model_dump(mode="json") for t in tasks],
            "total": len(tasks),
        }

    @app.get("/api/tasks/{task_id}", response_model=TaskResponse, dependencies=limited)
    async def get_task_detail(task_id: str = Path(description="UUID задачи")) -> dict:
        """Получить задачу по ID."""
        _validate_uuid(task_id)
        task = await get_task(db, task_id)
        if task is None:
            raise HTTPException(status_code=404, detail="Task not found")
        return task.model_dump(mode="json")

    @app.delete("/api/tasks/{task_id}", status_code=204, dependencies=limited)
    async def delete_task(task_id: str = Path(description="UUID задачи")) -> Response:
        """Отменить задачу, пока её не забрал воркер."""
        _validate_uuid(task_id)
        if await cancel_task(db, task_id):
            return Response(status_code=204)
        task = await get_task(db, task_id)
        if task is None:
            raise HTTPException(status_code=404, detail="Task not found")
        raise HTTPException(
            status_code=409,
            detail=f"Task state is '{task.state}', only pending tasks can be cancelled",
        )

    @app.post("/api/tasks/{task_id}/retry", response_model=RetryResponse, dependencies=limited)
    async def retry_task(task_id: str = Path(description="UUID задачи")) -> dict:
        """Повторить упавшую задачу — сбросить в new."""
        _validate_uuid(task_id)
        task = await get_task(db, task_id)
        if task is None:
            raise HTTPException(status_code=404, detail="Task not found")
        if task.state != "failed":
            raise HTTPException(status_code=409, detail=f"Task state is '{task.state}', expected 'failed'")

        try:
            reset = await reset_failed_task(db, task_id)
        except PostgrestAPIError:
            # Эквивалентная задача уже ожидает (partial unique index)
            raise HTTPException(status_code=409, detail="Equivalent task is already pending")
        if not reset:
            raise HTTPException(status_code=409, detail="Task state changed concurrently")

        return {"task_id": task_id, "status": "retrying"}

    @app.get("/api/products/{barcode}", dependencies=limited)
    async def get_product(barcode: str, response: Response) -> dict:
        """Продукт из кэша; если его нет — ставится fetch_product и возвращается 202."""
        try:
            barcode = normalize_barcode(barcode)
        except ValueError:
            raise HTTPException(status_code=422, detail=f"Invalid barcode: {barcode}")

        product = await get_product_by_barcode(db, barcode)
        if product is not None:
            return product.model_dump(mode="json", exclude={"full_response"})

        result = await registry.enqueue(db, FETCH_PRODUCT, {"barcode": barcode})
        response.status_code = 202
        return _enqueue_response(FETCH_PRODUCT, result)

    @app.get("/api/ingredients/{ingredient_id}", dependencies=limited)
    async def get_ingredient_detail(ingredient_id: int) -> dict:
        """Ингредиент с его связями."""
        ingredient = await get_ingredient(db, ingredient_id)
        if ingredient is None:
            raise HTTPException(status_code=404, detail="Ingredient not found")
        return ingredient.model_dump(mode="json")

    return app
