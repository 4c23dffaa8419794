"""Tests for health endpoints and the application factory."""
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

from parkingdirekt.config.app_config import AppSettings
from parkingdirekt.container import ServiceContainer
from parkingdirekt.db.connection import init_db
from parkingdirekt.main import create_app


class TestHealthLiveness:
    """Test liveness endpoint."""

    def test_health_liveness_returns_200(self, client: Any) -> None:
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "healthy"}

    def test_health_is_not_rate_limited(self, client: Any) -> None:
        response = client.get("/health")
        assert "X-RateLimit-Limit" not in response.headers


class TestHealthReadiness:
    """Test readiness endpoint."""

    def test_ready_when_all_checks_pass(self, client: Any) -> None:
        response = client.get("/health/ready")
        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "healthy"
        assert body["version"] == "1.0.0"
        assert set(body["checks"]) == {"database", "config_store"}
        assert body["checks"]["database"]["status"] == "up"
        assert body["checks"]["database"]["latency_ms"] >= 0

    def test_unavailable_when_config_store_is_down(self, client: Any, db) -> None:
        db.drop_tables()
        response = client.get("/health/ready")
        assert response.status_code == 503
        body = response.json()
        assert body["status"] == "unhealthy"
        assert body["checks"]["database"]["status"] == "up"
        assert body["checks"]["config_store"]["status"] == "down"

    def test_redis_check_included_when_configured(self, settings: AppSettings) -> None:
        redis_client = MagicMock()
        redis_client.ping = AsyncMock(return_value=True)
        redis_client.aclose = AsyncMock()
        container = ServiceContainer(settings, init_db(settings.database_url), redis_client=redis_client)

        with TestClient(create_app(settings, container)) as client:
            body = client.get("/health/ready").json()
        assert body["checks"]["redis"]["status"] == "up"
        redis_client.aclose.assert_awaited_once()

    def test_redis_failure_marks_unhealthy(self, settings: AppSettings) -> None:
        redis_client = MagicMock()
        redis_client.ping = AsyncMock(side_effect=ConnectionError("refused"))
        redis_client.aclose = AsyncMock()
        container = ServiceContainer(settings, init_db(settings.database_url), redis_client=redis_client)

        with TestClient(create_app(settings, container)) as client:
            response = client.get("/health/ready")
        assert response.status_code == 503
        assert response.json()["checks"]["redis"]["status"] == "down"


class TestAppFactory:
    def test_rejects_invalid_production_settings(self) -> None:
        settings = AppSettings(
            SESSION_SECRET="test-session-secret-for-testing",
            ENCRYPTION_KEY="0123456789abcdef0123456789abcdef",
            APP_ENV="production",
            DATABASE_URL="sqlite://",
        )
        with pytest.raises(RuntimeError) as exc:
            create_app(settings)
        assert "DATABASE_URL must point to a server database in production" in str(exc.value)
        assert "SMTP_HOST is required in production" in str(exc.value)

    def test_short_session_secret(self, settings: AppSettings) -> None:
        weak = settings.model_copy(update={"session_secret": "short"})
        assert weak.validate_environment() == ["SESSION_SECRET must be at least 16 characters"]

    def test_container_is_attached(self, settings: AppSettings, container: ServiceContainer) -> None:
        app = create_app(settings, container)
        assert app.state.container is container

    def test_startup_registers_providers(self, client: Any, container: ServiceContainer) -> None:
        assert sorted(container.email.providers) == ["log", "smtp"]
        assert not container.email_worker.running
