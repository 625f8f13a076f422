"""Тесты конфигурации сервиса."""
import pytest
from pydantic import ValidationError


def _set_required(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("SUPABASE_URL", "https://test.supabase.co")
    monkeypatch.setenv("SUPABASE_SERVICE_KEY", "test-key")


class TestSettings:
    """Тесты парсинга Settings из env."""

    def test_minimal_settings(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Минимальный набор обязательных переменных, остальное по умолчанию."""
        _set_required(monkeypatch)

        from spoils.config import Settings

        s = Settings(_env_file=None)
        assert s.supabase_url == "https://test.supabase.co"
        assert s.supabase_service_key.get_secret_value() == "test-key"
        assert s.worker_count == 5
        assert s.stale_task_minutes == 30
        assert s.max_ingredient_depth == 10
        assert s.api_port == 8080

    def test_service_key_is_masked(self, monkeypatch: pytest.MonkeyPatch) -> None:
        _set_required(monkeypatch)

        from spoils.config import Settings

        s = Settings(_env_file=None)
        assert "test-key" not in repr(s)

    def test_worker_overrides(self, monkeypatch: pytest.MonkeyPatch) -> None:
        _set_required(monkeypatch)
        monkeypatch.setenv("WORKER_COUNT", "12")
        monkeypatch.setenv("WORKER_POLL_INTERVAL", "0.5")
        monkeypatch.setenv("MAX_INGREDIENT_DEPTH", "4")

        from spoils.config import Settings

        s = Settings(_env_file=None)
        assert s.worker_count == 12
        assert s.worker_poll_interval == 0.5
        assert s.max_ingredient_depth == 4

    def test_port_alias(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """PORT (Railway/Heroku) подхватывается, если API_PORT не задан."""
        _set_required(monkeypatch)
        monkeypatch.delenv("API_PORT", raising=False)
        monkeypatch.setenv("PORT", "9000")

        from spoils.config import Settings

        assert Settings(_env_file=None).api_port == 9000

    def test_zero_workers_rejected(self, monkeypatch: pytest.MonkeyPatch) -> None:
        _set_required(monkeypatch)
        monkeypatch.setenv("WORKER_COUNT", "0")

        from spoils.config import Settings

        with pytest.raises(ValidationError):
            Settings(_env_file=None)

    def test_missing_supabase_url(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("SUPABASE_URL", raising=False)
        monkeypatch.setenv("SUPABASE_SERVICE_KEY", "test-key")

        from spoils.config import Settings

        with pytest.raises(ValidationError):
            Settings(_env_file=None)
