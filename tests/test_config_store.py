"""Tests for the typed config store and setting validation."""
import json
from unittest.mock import Mock

import pytest

from parkingdirekt.config.catalog import (
    SECRET_MASK,
    default_entries,
    is_secret_setting,
    setting_type,
    validate_settings,
)
from parkingdirekt.db.models import IntegrationSetting, SystemConfig
from parkingdirekt.services.encryption import EncryptionService
from parkingdirekt.services.system_config import (
    ConfigUpdate,
    SystemConfigService,
    parse_value,
    serialize_value,
)


@pytest.fixture
def store(container) -> SystemConfigService:
    return container.config_store


class TestValueCodec:
    @pytest.mark.parametrize(
        "value,value_type,stored",
        [
            (12.5, "number", "12.5"),
            (True, "boolean", "true"),
            ("TRUE", "boolean", "true"),
            (0, "boolean", "false"),
            ({"a": [1, 2]}, "json", '{"a": [1, 2]}'),
            ("EUR", "string", "EUR"),
        ],
    )
    def test_serialize(self, value, value_type, stored):
        assert serialize_value(value, value_type) == stored

    def test_parse(self):
        assert parse_value("60", "number") == 60
        assert parse_value("2.5", "number") == 2.5
        assert parse_value("true", "boolean") is True
        assert parse_value("yes", "boolean") is False
        assert parse_value('{"x": 1}', "json") == {"x": 1}

    def test_parse_falls_back_to_raw_text(self):
        assert parse_value("abc", "number") == "abc"
        assert parse_value("{oops", "json") == "{oops"


class TestCatalog:
    def test_secret_detection(self):
        assert is_secret_setting("stripeApiKey")
        assert is_secret_setting("smtpPassword")
        assert is_secret_setting("webhookToken")
        assert not is_secret_setting("maxRequestsPerMinute")

    def test_setting_type(self):
        assert setting_type("maintenanceMode", "yes") == "boolean"
        assert setting_type("custom", 3) == "number"
        assert setting_type("custom", ["a"]) == "json"
        assert setting_type("custom", "x") == "string"

    def test_default_entries_by_category(self):
        entries = default_entries("api")
        assert set(entries) == {"enableRateLimiting", "maxRequestsPerMinute", "rateLimitMode"}
        assert entries["maxRequestsPerMinute"]["value"] == 60

    @pytest.mark.parametrize(
        "category,settings,message",
        [
            ("financial", {"platformCommissionPercent": 51}, "platformCommissionPercent must be between 0 and 50"),
            ("financial", {"serviceFeePercent": -1}, "serviceFeePercent must be between 0 and 10"),
            ("financial", {"minimumPayoutThreshold": 5}, "minimumPayoutThreshold must be at least 10.00"),
            ("automation", {"gracePeriod": 61}, "gracePeriod must be between 0 and 60 minutes"),
            ("automation", {"overstayRateMultiplier": 0.5}, "overstayRateMultiplier must be between 1.0 and 10.0"),
            ("email", {"defaultFromEmail": "not-an-email"}, "defaultFromEmail must be a valid email address"),
            ("email", {"notificationRetryLimit": 0}, "notificationRetryLimit must be between 1 and 10"),
            ("api", {"maxRequestsPerMinute": 1001}, "maxRequestsPerMinute must be between 1 and 1000"),
            ("api", {"rateLimitMode": "per_tenant"}, "rateLimitMode must be one of: per_user, per_ip, global"),
        ],
    )
    def test_validation_messages(self, category, settings, message):
        assert validate_settings(category, settings) == [message]

    def test_valid_batch(self):
        assert validate_settings("financial", {"platformCommissionPercent": 12.5, "serviceFeePercent": 3}) == []
        assert validate_settings("api", {"maxRequestsPerMinute": "120"}) == []


class TestSystemConfigService:
    @pytest.mark.asyncio
    async def test_empty_store_returns_nothing(self, store):
        assert await store.get_system_config("financial") == {}

    @pytest.mark.asyncio
    async def test_get_config_value_falls_back_to_defaults(self, store):
        assert await store.get_config_value("maxRequestsPerMinute") == 60
        assert await store.get_config_value("unknownKey", "fallback") == "fallback"
        assert await store.get_config_value("unknownKey") is None

    @pytest.mark.asyncio
    async def test_update_and_read_typed_values(self, store):
        await store.update_config("maxRequestsPerMinute", 120, "api", "root-1")
        await store.update_config("maintenanceMode", True, "platform", "root-1")

        api = await store.get_system_config("api")
        assert api["maxRequestsPerMinute"]["value"] == 120
        assert api["maxRequestsPerMinute"]["type"] == "number"
        assert await store.get_config_value("maintenanceMode") is True

    @pytest.mark.asyncio
    async def test_writes_invalidate_cache(self, store):
        assert await store.get_config_value("maxRequestsPerMinute") == 60
        await store.update_config("maxRequestsPerMinute", 30, "api", "root-1")
        assert await store.get_config_value("maxRequestsPerMinute") == 30

    @pytest.mark.asyncio
    async def test_reads_are_cached(self, store, db):
        await store.update_config("gracePeriod", 10, "automation", "root-1")
        assert (await store.get_system_config("automation"))["gracePeriod"]["value"] == 10

        with db.get_session() as session:
            session.query(SystemConfig).filter_by(key="gracePeriod").update({SystemConfig.value: "20"})
        assert (await store.get_system_config("automation"))["gracePeriod"]["value"] == 10

        store.invalidate_cache("automation")
        assert (await store.get_system_config("automation"))["gracePeriod"]["value"] == 20

    @pytest.mark.asyncio
    async def test_environments_are_isolated(self, store):
        await store.update_config("maintenanceMode", True, "platform", "root-1", environment="staging")
        assert await store.get_config_value("maintenanceMode", environment="staging") is True
        assert await store.get_config_value("maintenanceMode") is False

    @pytest.mark.asyncio
    async def test_secrets_are_encrypted_and_masked(self, store, db):
        await store.update_config("stripeApiKey", "sk_live_123", "integrations", "root-1")

        with db.get_session() as session:
            row = session.query(SystemConfig).filter_by(key="stripeApiKey").one()
            assert row.is_secret is True
            assert "sk_live_123" not in row.value
            assert store.encryption.decrypt(row.value) == "sk_live_123"

        entry = (await store.get_system_config("integrations"))["stripeApiKey"]
        assert entry["value"] == SECRET_MASK

    @pytest.mark.asyncio
    async def test_batch_update_is_atomic(self, store):
        updates = [
            ConfigUpdate(key="gracePeriod", value=15, category="automation"),
            ConfigUpdate(key="bookingBuffer", value=5, category="automation"),
        ]
        await store.update_multiple_configs(updates, "root-1")
        automation = await store.get_system_config("automation")
        assert automation["gracePeriod"]["value"] == 15
        assert automation["bookingBuffer"]["value"] == 5

    @pytest.mark.asyncio
    async def test_failed_batch_writes_nothing(self, store, db):
        store.encryption = Mock(spec=EncryptionService)
        store.encryption.encrypt.side_effect = RuntimeError("kms down")
        updates = [
            ConfigUpdate(key="gracePeriod", value=15, category="automation"),
            ConfigUpdate(key="smtpPassword", value="hunter2", category="email"),
        ]
        with pytest.raises(RuntimeError):
            await store.update_multiple_configs(updates, "root-1")

        with db.get_session() as session:
            assert session.query(SystemConfig).count() == 0

    @pytest.mark.asyncio
    async def test_store_failure_returns_defaults(self, store, db):
        db.drop_tables()
        configs = await store.get_system_config("api")
        assert configs["rateLimitMode"]["value"] == "per_user"
        assert await store.is_healthy() is False

    @pytest.mark.asyncio
    async def test_integration_secrets(self, store, db):
        await store.set_integration_secret("sendgrid", "api_key", "SG.secret", "root-1")
        assert await store.get_integration_secret("sendgrid", "api_key") == "SG.secret"
        assert await store.get_integration_secret("sendgrid", "missing") is None

        listed = await store.list_integrations()
        assert listed[0]["name"] == "sendgrid"
        assert listed[0]["value"] == SECRET_MASK

        with db.get_session() as session:
            row = session.query(IntegrationSetting).one()
            assert row.value != "SG.secret"

    @pytest.mark.asyncio
    async def test_inactive_integration_secret_is_hidden(self, store):
        await store.set_integration_secret("smtp", "pass", "pw", "root-1", is_active=False)
        assert await store.get_integration_secret("smtp", "pass") is None

    @pytest.mark.asyncio
    async def test_json_values_round_trip(self, store):
        await store.update_config("allowedCities", ["Berlin", "Munich"], "platform", "root-1")
        assert await store.get_config_value("allowedCities") == ["Berlin", "Munich"]
        raw = (await store.get_system_config("platform"))["allowedCities"]
        assert raw["type"] == "json"
        assert json.dumps(raw["value"]) == '["Berlin", "Munich"]'

    @pytest.mark.asyncio
    async def test_health_and_warmup(self, store):
        assert await store.is_healthy() is True
        await store.warmup_cache()
