"""Конфигурация сервиса из переменных окружения."""
from pydantic import AliasChoices, Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Настройки очереди и API — парсятся из env или .env файла."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # Supabase
    supabase_url: str
    supabase_service_key: SecretStr

    # OpenFoodFacts
    openfoodfacts_url: str = "https://world.openfoodfacts.org"
    catalog_timeout: float = 15.0

    # Воркер
    worker_count: int = Field(default=5, ge=1)
    worker_poll_interval: float = 1.0
    stale_task_minutes: int = 30       # in_progress дольше: возвращаем в new
    reclaim_interval_minutes: int = 10
    task_retention_days: int = 30      # finished/failed старше: удаляем
    log_level: str = "INFO"

    # Резолвер ингредиентов
    max_ingredient_depth: int = Field(default=10, ge=1)

    # API
    api_port: int = Field(
        default=8080,
        validation_alias=AliasChoices("API_PORT", "PORT"),
    )


def load_settings() -> Settings:
    """Создать Settings из переменных окружения (.env файла).

    Фабричная функция — обходит ограничение pyright, который не знает,
    что pydantic-settings заполняет обязательные поля из окружения.
    """
    return Settings.model_validate({})
