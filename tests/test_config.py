"""
Tests for runtime configuration loading.
"""

import pytest

from src.infra.config import Settings, load_settings


ENV_VARS = (
    "DATABASE_PATH",
    "REDIS_URL",
    "BROADCAST_CHANNEL",
    "WORKER_CONCURRENCY",
    "RETRY_BASE_DELAY_MS",
    "QUEUE_POLL_INTERVAL",
    "QUEUE_LEASE_SECONDS",
    "QUEUE_MAX_DELIVERIES",
    "SEND_FAILURE_RATE",
    "NOTIFIER_WEBHOOK_URL",
    "RUN_WORKERS_IN_API",
    "LOG_LEVEL",
    "LOG_DIR",
    "HOST",
    "PORT",
)


class TestLoadSettings:

    def test_defaults(self, monkeypatch):
        for name in ENV_VARS:
            monkeypatch.delenv(name, raising=False)

        settings = load_settings()

        assert settings == Settings()
        assert settings.database_path == "data/notifier.db"
        assert settings.worker_concurrency == 5
        assert settings.retry_base_delay_ms == 1000
        assert settings.log_dir == "logs"
        assert settings.port == 3000

    def test_environment_overrides(self, monkeypatch):
        monkeypatch.setenv("DATABASE_PATH", "/var/lib/notifier/events.db")
        monkeypatch.setenv("REDIS_URL", "redis://cache:6379/2")
        monkeypatch.setenv("WORKER_CONCURRENCY", "8")
        monkeypatch.setenv("QUEUE_POLL_INTERVAL", "0.5")
        monkeypatch.setenv("RUN_WORKERS_IN_API", "yes")
        monkeypatch.setenv("LOG_LEVEL", "debug")
        monkeypatch.setenv("NOTIFIER_WEBHOOK_URL", "https://hooks.example.com/notify")

        settings = load_settings()

        assert settings.database_path == "/var/lib/notifier/events.db"
        assert settings.redis_url == "redis://cache:6379/2"
        assert settings.worker_concurrency == 8
        assert settings.queue_poll_interval == 0.5
        assert settings.run_workers_in_api is True
        assert settings.log_level == "DEBUG"
        assert settings.webhook_url == "https://hooks.example.com/notify"

    def test_blank_optional_values_are_unset(self, monkeypatch):
        monkeypatch.setenv("REDIS_URL", "  ")
        monkeypatch.setenv("LOG_DIR", "")

        settings = load_settings()

        assert settings.redis_url is None
        assert settings.log_dir is None

    @pytest.mark.parametrize(
        "name, value",
        [
            ("WORKER_CONCURRENCY", "five"),
            ("PORT", "80.5"),
            ("QUEUE_LEASE_SECONDS", "soon"),
        ],
    )
    def test_invalid_number_names_variable(self, monkeypatch, name, value):
        monkeypatch.setenv(name, value)

        with pytest.raises(ValueError, match=name):
            load_settings()
