"""Admin control center: per-category settings views and audited writes."""
import json
import logging
from typing import Any, Optional

from parkingdirekt.auth.models import AuthContext
from parkingdirekt.config.catalog import (
    CONFIG_CATEGORIES,
    SECRET_MASK,
    is_secret_setting,
    setting_type,
    validate_settings,
)
from parkingdirekt.db.connection import DatabaseConnectionManager
from parkingdirekt.db.models import AdminAuditLog
from parkingdirekt.exceptions import ValidationError
from parkingdirekt.features.service import FeatureFlagService
from parkingdirekt.services.commission import CommissionService
from parkingdirekt.services.email import EmailDeliveryManager
from parkingdirekt.services.rate_limiter import RateLimiter
from parkingdirekt.services.system_config import ConfigUpdate, SystemConfigService

logger = logging.getLogger(__name__)

INTEGRATIONS_CATEGORY = "integrations"


def _audit_value(value: Any, secret: bool) -> Optional[str]:
    if value is None:
        return None
    return json.dumps(SECRET_MASK if secret else value)


class ControlCenterService:
    """Reads and writes control-center categories for super admins."""

    def __init__(
        self,
        db: DatabaseConnectionManager,
        config_store: SystemConfigService,
        feature_flags: FeatureFlagService,
        commission: CommissionService,
        email: EmailDeliveryManager,
        rate_limiter: RateLimiter,
    ):
        self.db = db
        self.config_store = config_store
        self.feature_flags = feature_flags
        self.commission = commission
        self.email = email
        self.rate_limiter = rate_limiter

    @staticmethod
    def check_category(category: str) -> None:
        if category not in CONFIG_CATEGORIES:
            raise ValidationError("Invalid category", code="INVALID_CATEGORY")

    async def get_category(self, category: str, environment: str = "production") -> Any:
        """
        Settings for a category, plus the related operational data.

        financial adds revenue analytics, platform adds feature flags, email
        adds delivery stats, api adds rate-limit stats. integrations lists
        the integration secrets with masked values.
        """
        self.check_category(category)
        if category == INTEGRATIONS_CATEGORY:
            return await self.config_store.list_integrations(environment)

        configs = await self.config_store.get_system_config(category, environment)
        if category == "financial":
            return {"settings": configs, "revenue": await self.commission.get_revenue_analytics(30)}
        if category == "platform":
            flags = await self.feature_flags.get_all_flags(environment)
            return {
                "configs": configs,
                "feature_flags": [
                    {
                        "key": flag.key,
                        "name": flag.name,
                        "enabled": flag.enabled,
                        "rollout_percentage": flag.rollout_percentage,
                        "updated_at": flag.updated_at.isoformat() if flag.updated_at else None,
                    }
                    for flag in flags
                ],
            }
        if category == "email":
            stats = await self.email.get_delivery_stats(7)
            return {"configs": configs, "stats": stats.model_dump()}
        if category == "api":
            stats = await self.rate_limiter.get_rate_limit_stats(24 * 3600)
            return {"configs": configs, "rate_limit_stats": stats.model_dump()}
        return configs

    async def update_category(
        self,
        category: str,
        settings: dict[str, Any],
        admin: AuthContext,
        environment: str = "production",
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> Any:
        """
        Validate and write a batch of settings, auditing every changed value.

        Integration settings use ``"<integration>.<key>"`` names and are
        stored encrypted.

        Raises:
            ValidationError: Unknown category or invalid values
        """
        self.check_category(category)
        if not settings:
            raise ValidationError("Settings object is required")

        if category == INTEGRATIONS_CATEGORY:
            changes = await self._update_integrations(settings, admin, environment)
        else:
            errors = validate_settings(category, settings)
            if errors:
                raise ValidationError(
                    "Validation failed",
                    details=[{"field": category, "issue": error} for error in errors],
                )

            old = await self.config_store.get_system_config(category, environment)
            updates = [
                ConfigUpdate(
                    key=key,
                    value=value,
                    category=category,
                    type=setting_type(key, value),
                    is_secret=is_secret_setting(key),
                )
                for key, value in settings.items()
            ]
            await self.config_store.update_multiple_configs(updates, admin.user_id, environment)

            changes = []
            for key, value in settings.items():
                previous = old.get(key, {}).get("value")
                secret = is_secret_setting(key)
                if secret or previous != value:
                    changes.append((f"{category}.{key}", previous, value, secret))

        self._write_audit(changes, admin, environment, ip_address, user_agent)
        logger.info(
            "Control center settings updated",
            extra={
                "category": category,
                "environment": environment,
                "admin_id": admin.user_id,
                "changed": len(changes),
            },
        )
        return await self.get_category(category, environment)

    async def _update_integrations(
        self,
        settings: dict[str, Any],
        admin: AuthContext,
        environment: str,
    ) -> list[tuple[str, Any, Any, bool]]:
        parsed = []
        for target, value in settings.items():
            name, _, key = target.partition(".")
            if not name or not key:
                raise ValidationError(
                    "Validation failed",
                    details=[{"field": target, "issue": "Integration settings must be named <integration>.<key>"}],
                )
            parsed.append((target, name, key, value))

        for _, name, key, value in parsed:
            await self.config_store.set_integration_secret(
                name, key, str(value), admin.user_id, environment=environment
            )
        return [(f"integrations.{target}", None, value, True) for target, _, _, value in parsed]

    def _write_audit(
        self,
        changes: list[tuple[str, Any, Any, bool]],
        admin: AuthContext,
        environment: str,
        ip_address: Optional[str],
        user_agent: Optional[str],
    ) -> None:
        if not changes:
            return
        with self.db.get_session() as session:
            for target, old_value, new_value, secret in changes:
                session.add(
                    AdminAuditLog(
                        admin_id=admin.user_id,
                        action="update",
                        category="config",
                        target=target,
                        old_value=_audit_value(old_value, secret),
                        new_value=_audit_value(new_value, secret),
                        environment=environment,
                        ip_address=ip_address,
                        user_agent=(user_agent or "")[:500] or None,
                    )
                )
