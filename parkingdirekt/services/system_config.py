"""Typed configuration store backed by the system_config table."""
import json
import logging
from typing import Any, Iterable, Optional

from pydantic import BaseModel, Field
from sqlalchemy import text

from parkingdirekt.config.catalog import (
    DEFAULT_SETTINGS,
    SECRET_MASK,
    ConfigType,
    default_entries,
    is_secret_setting,
    setting_description,
    setting_type,
)
from parkingdirekt.db.connection import DatabaseConnectionManager
from parkingdirekt.db.models import IntegrationSetting, SystemConfig
from parkingdirekt.services.encryption import EncryptionService
from parkingdirekt.utils.cache import TTLCache

logger = logging.getLogger(__name__)

DEFAULT_ENVIRONMENT = "production"


class ConfigUpdate(BaseModel):
    """One entry of a batched config write."""

    key: str = Field(..., min_length=1, max_length=100)
    value: Any
    category: str = Field(..., min_length=1, max_length=50)
    type: Optional[ConfigType] = None
    description: Optional[str] = None
    is_secret: Optional[bool] = None


def serialize_value(value: Any, value_type: ConfigType) -> str:
    """Convert a typed value to its stored string form."""
    if value_type == "json":
        return json.dumps(value)
    if value_type == "boolean":
        if isinstance(value, str):
            return "true" if value.strip().lower() == "true" else "false"
        return "true" if value else "false"
    return str(value)


def parse_value(raw: str, value_type: str, key: str = "") -> Any:
    """Convert a stored string back to its typed value."""
    if value_type == "number":
        try:
            number = float(raw)
        except (TypeError, ValueError):
            logger.warning("Failed to parse number config value", extra={"config_key": key})
            return raw
        return int(number) if number.is_integer() and "." not in raw else number
    if value_type == "boolean":
        return raw == "true"
    if value_type == "json":
        try:
            return json.loads(raw)
        except (TypeError, ValueError):
            logger.warning("Failed to parse JSON config value", extra={"config_key": key})
            return raw
    return raw


class SystemConfigService:
    """
    Config store with a five-minute in-process cache.

    Cache entries are keyed by (category or "all", environment). Writes drop
    the affected category entry and the all-categories entry. Other processes
    see a write once their own entry expires.
    """

    CACHE_TTL_SECONDS = 300  # 5 minutes

    def __init__(
        self,
        db: DatabaseConnectionManager,
        encryption: EncryptionService,
        cache: Optional[TTLCache[dict[str, dict[str, Any]]]] = None,
    ):
        self.db = db
        self.encryption = encryption
        self._cache: TTLCache[dict[str, dict[str, Any]]] = cache or TTLCache(self.CACHE_TTL_SECONDS)

    def _to_entry(self, row: SystemConfig) -> dict[str, Any]:
        if row.is_secret:
            value: Any = SECRET_MASK
        else:
            value = parse_value(row.value, row.type, row.key)
        return {
            "value": value,
            "type": row.type,
            "category": row.category,
            "description": row.description,
            "is_secret": row.is_secret,
            "updated_at": row.updated_at.isoformat() if row.updated_at else None,
        }

    async def get_system_config(
        self,
        category: Optional[str] = None,
        environment: str = DEFAULT_ENVIRONMENT,
    ) -> dict[str, dict[str, Any]]:
        """
        Get typed config entries keyed by config key.

        Secret values are always masked. When the store can't be read the
        built-in defaults are returned instead (and not cached).

        Args:
            category: Restrict to one category (all categories when None)
            environment: Config environment

        Returns:
            Mapping of key to {value, type, category, description, is_secret, updated_at}
        """
        cache_key = ("config", category or "all", environment)
        cached = self._cache.get(cache_key)
        if cached is not None:
            return {key: dict(entry) for key, entry in cached.items()}

        try:
            with self.db.get_session() as session:
                query = session.query(SystemConfig).filter(SystemConfig.environment == environment)
                if category:
                    query = query.filter(SystemConfig.category == category)
                rows = query.order_by(SystemConfig.category, SystemConfig.key).all()
                result = {row.key: self._to_entry(row) for row in rows}
        except Exception as e:
            logger.error(
                "Failed to fetch system config, using defaults",
                extra={
                    "category": category,
                    "environment": environment,
                    "error": str(e),
                    "error_type": type(e).__name__,
                },
                exc_info=True,
            )
            return default_entries(category)

        self._cache.set(cache_key, result)
        return {key: dict(entry) for key, entry in result.items()}

    async def get_config_value(
        self,
        key: str,
        default: Any = None,
        environment: str = DEFAULT_ENVIRONMENT,
    ) -> Any:
        """
        Get a single typed value.

        Falls back to ``default``, then to the built-in default for known keys.
        """
        configs = await self.get_system_config(None, environment)
        entry = configs.get(key)
        if entry is not None:
            return entry["value"]
        if default is not None:
            return default
        if key in DEFAULT_SETTINGS:
            return DEFAULT_SETTINGS[key][1]
        return None

    def _upsert(
        self,
        session: Any,
        update: ConfigUpdate,
        updated_by: str,
        environment: str,
    ) -> None:
        value_type = update.type or setting_type(update.key, update.value)
        is_secret = update.is_secret if update.is_secret is not None else is_secret_setting(update.key)
        stored = serialize_value(update.value, value_type)
        if is_secret:
            stored = self.encryption.encrypt(stored)

        row = (
            session.query(SystemConfig)
            .filter_by(category=update.category, key=update.key, environment=environment)
            .first()
        )
        if row is None:
            row = SystemConfig(
                category=update.category,
                key=update.key,
                environment=environment,
            )
            session.add(row)

        row.value = stored
        row.type = value_type
        row.is_secret = is_secret
        row.description = update.description or setting_description(update.category, update.key)
        row.updated_by = updated_by

    async def update_config(
        self,
        key: str,
        value: Any,
        category: str,
        updated_by: str,
        value_type: Optional[ConfigType] = None,
        environment: str = DEFAULT_ENVIRONMENT,
        description: Optional[str] = None,
        is_secret: Optional[bool] = None,
    ) -> None:
        """Upsert one config value and drop the affected cache entries."""
        update = ConfigUpdate(
            key=key,
            value=value,
            category=category,
            type=value_type,
            description=description,
            is_secret=is_secret,
        )
        await self.update_multiple_configs([update], updated_by, environment)

    async def update_multiple_configs(
        self,
        updates: Iterable[ConfigUpdate],
        updated_by: str,
        environment: str = DEFAULT_ENVIRONMENT,
    ) -> None:
        """
        Upsert several values in a single transaction.

        Either every value is written or none is.
        """
        updates = list(updates)
        if not updates:
            return

        with self.db.get_session() as session:
            for update in updates:
                self._upsert(session, update, updated_by, environment)

        for category in {update.category for update in updates}:
            self.invalidate_cache(category, environment)

        logger.info(
            "System config updated",
            extra={
                "environment": environment,
                "keys": [update.key for update in updates],
                "updated_by": updated_by,
            },
        )

    async def get_integration_secret(
        self,
        name: str,
        key: str,
        environment: str = DEFAULT_ENVIRONMENT,
    ) -> Optional[str]:
        """
        Decrypt an integration secret for internal use.

        Returns:
            Plaintext secret, or None when missing, inactive or unreadable
        """
        try:
            with self.db.get_session() as session:
                row = (
                    session.query(IntegrationSetting)
                    .filter_by(name=name, key=key, environment=environment)
                    .first()
                )
                if row is None or not row.is_active:
                    return None
                encrypted = row.value
            return self.encryption.decrypt(encrypted)
        except Exception as e:
            logger.error(
                "Failed to fetch integration secret",
                extra={
                    "integration": name,
                    "secret_key": key,
                    "environment": environment,
                    "error_type": type(e).__name__,
                },
            )
            return None

    async def set_integration_secret(
        self,
        name: str,
        key: str,
        value: str,
        updated_by: str,
        environment: str = DEFAULT_ENVIRONMENT,
        description: Optional[str] = None,
        is_active: bool = True,
    ) -> None:
        """Encrypt and upsert an integration secret."""
        encrypted = self.encryption.encrypt(value)
        with self.db.get_session() as session:
            row = (
                session.query(IntegrationSetting)
                .filter_by(name=name, key=key, environment=environment)
                .first()
            )
            if row is None:
                row = IntegrationSetting(name=name, key=key, environment=environment)
                session.add(row)
            row.value = encrypted
            row.is_active = is_active
            row.description = description if description is not None else row.description
            row.updated_by = updated_by

        logger.info(
            "Integration secret updated",
            extra={"integration": name, "secret_key": key, "environment": environment, "updated_by": updated_by},
        )

    async def list_integrations(self, environment: str = DEFAULT_ENVIRONMENT) -> list[dict[str, Any]]:
        """List integration settings with values masked."""
        with self.db.get_session() as session:
            rows = (
                session.query(IntegrationSetting)
                .filter_by(environment=environment)
                .order_by(IntegrationSetting.name, IntegrationSetting.key)
                .all()
            )
            return [
                {
                    "id": row.id,
                    "name": row.name,
                    "key": row.key,
                    "value": SECRET_MASK,
                    "is_active": row.is_active,
                    "description": row.description,
                    "updated_at": row.updated_at.isoformat() if row.updated_at else None,
                }
                for row in rows
            ]

    def invalidate_cache(self, category: Optional[str] = None, environment: Optional[str] = None) -> None:
        """
        Drop cached config.

        Args:
            category: Drop this category plus the all-categories entry; None drops everything
            environment: Limit to one environment (all environments when None)
        """
        if category is None:
            if environment is None:
                self._cache.clear()
            else:
                for scope in ("all",) + tuple(self._known_categories()):
                    self._cache.delete(("config", scope, environment))
            return

        if environment is None:
            self._cache.invalidate_prefix("config", category)
            self._cache.invalidate_prefix("config", "all")
        else:
            self._cache.delete(("config", category, environment))
            self._cache.delete(("config", "all", environment))

    def _known_categories(self) -> set[str]:
        return {entry[0] for entry in DEFAULT_SETTINGS.values()}

    async def is_healthy(self) -> bool:
        """Check that the config table is reachable."""
        try:
            with self.db.get_session() as session:
                session.execute(text("SELECT 1"))
                session.query(SystemConfig.id).limit(1).all()
            return True
        except Exception as e:
            logger.warning(
                "Config store health check failed",
                extra={"error": str(e), "error_type": type(e).__name__},
            )
            return False

    async def warmup_cache(self, environments: Iterable[str] = (DEFAULT_ENVIRONMENT,)) -> None:
        """Pre-load the all-categories entry for each environment."""
        for environment in environments:
            await self.get_system_config(None, environment)
        logger.info("Config cache warmed", extra={"environments": list(environments)})
