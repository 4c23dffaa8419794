"""Feature flag service with caching."""
import logging
from datetime import timedelta
from typing import Any, Mapping, Optional

from sqlalchemy import func

from parkingdirekt.db.connection import DatabaseConnectionManager
from parkingdirekt.db.models import FeatureFlag
from parkingdirekt.exceptions import ConflictError, NotFoundError, ValidationError
from parkingdirekt.features.models import FeatureFlagCreate, FeatureFlagView, FlagUsageStats
from parkingdirekt.features.rules import (
    RuleError,
    dump_conditions,
    evaluate_rule,
    load_conditions,
    rollout_bucket,
    rollout_identifier,
)
from parkingdirekt.utils.cache import TTLCache
from parkingdirekt.utils.clock import utcnow

logger = logging.getLogger(__name__)

DEFAULT_ENVIRONMENT = "production"

# Context keys that are part of the cache identity (email follows user_id)
_CACHEABLE_CONTEXT_KEYS = {"user_id", "role", "email"}


class FeatureFlagService:
    """Service for evaluating and administering feature flags with caching."""

    CACHE_TTL_SECONDS = 120  # 2 minutes

    def __init__(self, db: DatabaseConnectionManager, cache: Optional[TTLCache[bool]] = None):
        """
        Initialize feature flag service.

        Args:
            db: Database connection manager
            cache: Result cache (a private one is created when omitted)
        """
        self.db = db
        self._cache: TTLCache[bool] = cache or TTLCache(self.CACHE_TTL_SECONDS)

    def _get_cache_key(
        self, flag_key: str, context: Mapping[str, Any], environment: str
    ) -> tuple[str, str, str, str, str]:
        """Get cache key for a flag evaluation."""
        return (
            "flag",
            flag_key,
            str(context.get("user_id") or "no-user"),
            str(context.get("role") or "no-role"),
            environment,
        )

    def _is_cacheable(self, context: Mapping[str, Any]) -> bool:
        """
        Results are cached only when the cache key identifies the caller.

        Anonymous callers bucketed by email, and contexts with custom fields,
        would otherwise share an entry with callers that evaluate differently.
        """
        if set(context) - _CACHEABLE_CONTEXT_KEYS:
            return False
        return bool(context.get("user_id")) or not context.get("email")

    async def is_enabled(
        self,
        flag_key: str,
        context: Optional[Mapping[str, Any]] = None,
        environment: str = DEFAULT_ENVIRONMENT,
    ) -> bool:
        """
        Check if a feature flag is active for a caller.

        Evaluation order: missing or disabled flag, rollout bucket, then the
        targeting rule tree. Results are cached for two minutes per
        (flag, user, role, environment).

        Args:
            flag_key: Key of the feature flag
            context: Caller attributes (user_id, role, email, custom fields)
            environment: Flag environment

        Returns:
            True if active, False otherwise (fail closed on lookup errors and
            on stored conditions that can't be parsed)
        """
        context = context or {}
        cacheable = self._is_cacheable(context)
        cache_key = self._get_cache_key(flag_key, context, environment)

        if cacheable:
            cached = self._cache.lookup(cache_key)
            if not TTLCache.is_miss(cached):
                return cached

        try:
            with self.db.get_session() as session:
                flag = (
                    session.query(FeatureFlag)
                    .filter_by(key=flag_key, environment=environment)
                    .first()
                )
                if flag is None:
                    result = False
                else:
                    result = self._evaluate(flag, context)
        except Exception as e:
            logger.error(
                "Failed to check feature flag",
                extra={
                    "flag_key": flag_key,
                    "environment": environment,
                    "error": str(e),
                    "error_type": type(e).__name__,
                },
                exc_info=True,
            )
            return False

        if cacheable:
            self._cache.set(cache_key, result)
        return result

    def _evaluate(self, flag: FeatureFlag, context: Mapping[str, Any]) -> bool:
        """Evaluate a loaded flag against a context."""
        if not flag.enabled:
            return False

        if flag.rollout_percentage >= 100 and not flag.conditions:
            return True

        if flag.rollout_percentage < 100:
            bucket = rollout_bucket(rollout_identifier(context))
            if bucket > flag.rollout_percentage:
                return False

        try:
            conditions = load_conditions(flag.conditions)
        except RuleError as e:
            logger.warning(
                "Stored feature flag conditions are malformed; treating flag as inactive",
                extra={"flag_key": flag.key, "environment": flag.environment, "error": str(e)},
            )
            return False

        if conditions is None:
            return True
        return evaluate_rule(conditions, context)

    def _to_view(self, flag: FeatureFlag) -> FeatureFlagView:
        try:
            conditions = load_conditions(flag.conditions)
        except RuleError:
            logger.warning(
                "Stored feature flag conditions are malformed",
                extra={"flag_key": flag.key, "environment": flag.environment},
            )
            conditions = None
        return FeatureFlagView(
            key=flag.key,
            name=flag.name,
            description=flag.description,
            enabled=flag.enabled,
            rollout_percentage=flag.rollout_percentage,
            conditions=conditions,
            environment=flag.environment,
            updated_by=flag.updated_by,
            created_at=flag.created_at,
            updated_at=flag.updated_at,
        )

    def _get_flag_or_raise(self, session: Any, flag_key: str, environment: str) -> FeatureFlag:
        flag = session.query(FeatureFlag).filter_by(key=flag_key, environment=environment).first()
        if flag is None:
            raise NotFoundError("Feature flag", flag_key)
        return flag

    async def get_flag_config(
        self, flag_key: str, environment: str = DEFAULT_ENVIRONMENT
    ) -> Optional[FeatureFlagView]:
        """
        Get the full configuration of a flag.

        Returns:
            FeatureFlagView if the flag exists in that environment, None otherwise
        """
        with self.db.get_session() as session:
            flag = session.query(FeatureFlag).filter_by(key=flag_key, environment=environment).first()
            return self._to_view(flag) if flag else None

    async def toggle_flag(
        self,
        flag_key: str,
        enabled: bool,
        updated_by: str,
        environment: str = DEFAULT_ENVIRONMENT,
    ) -> FeatureFlagView:
        """Turn a flag on or off."""
        with self.db.get_session() as session:
            flag = self._get_flag_or_raise(session, flag_key, environment)
            flag.enabled = enabled
            flag.updated_by = updated_by
            session.flush()
            view = self._to_view(flag)

        self.invalidate_cache(flag_key)
        logger.info(
            "Feature flag toggled",
            extra={"flag_key": flag_key, "environment": environment, "enabled": enabled, "updated_by": updated_by},
        )
        return view

    async def update_rollout_percentage(
        self,
        flag_key: str,
        percentage: int,
        updated_by: str,
        environment: str = DEFAULT_ENVIRONMENT,
    ) -> FeatureFlagView:
        """
        Set the rollout percentage of a flag.

        Raises:
            ValidationError: If percentage is outside [0, 100]
            NotFoundError: If the flag doesn't exist
        """
        if isinstance(percentage, bool) or not 0 <= percentage <= 100:
            raise ValidationError("Rollout percentage must be between 0 and 100")

        with self.db.get_session() as session:
            flag = self._get_flag_or_raise(session, flag_key, environment)
            flag.rollout_percentage = int(percentage)
            flag.updated_by = updated_by
            session.flush()
            view = self._to_view(flag)

        self.invalidate_cache(flag_key)
        logger.info(
            "Feature flag rollout updated",
            extra={"flag_key": flag_key, "environment": environment, "percentage": percentage},
        )
        return view

    async def update_conditions(
        self,
        flag_key: str,
        conditions: Optional[Mapping[str, Any]],
        updated_by: str,
        environment: str = DEFAULT_ENVIRONMENT,
    ) -> FeatureFlagView:
        """
        Replace the targeting rule tree of a flag (None clears it).

        Raises:
            ValidationError: If the rule tree is malformed
            NotFoundError: If the flag doesn't exist
        """
        serialized = self._serialize_conditions(conditions)

        with self.db.get_session() as session:
            flag = self._get_flag_or_raise(session, flag_key, environment)
            flag.conditions = serialized
            flag.updated_by = updated_by
            session.flush()
            view = self._to_view(flag)

        self.invalidate_cache(flag_key)
        logger.info(
            "Feature flag conditions updated",
            extra={"flag_key": flag_key, "environment": environment, "has_conditions": serialized is not None},
        )
        return view

    def _serialize_conditions(self, conditions: Optional[Mapping[str, Any]]) -> Optional[str]:
        try:
            return dump_conditions(conditions)
        except RuleError as e:
            raise ValidationError(
                "Invalid flag conditions",
                details=[{"field": "conditions", "issue": str(e)}],
            ) from e

    async def create_flag(self, data: FeatureFlagCreate, updated_by: str) -> FeatureFlagView:
        """
        Create a flag.

        Raises:
            ConflictError: If the key already exists in the environment
            ValidationError: If the rule tree is malformed
        """
        serialized = self._serialize_conditions(data.conditions)

        with self.db.get_session() as session:
            existing = (
                session.query(FeatureFlag.id)
                .filter_by(key=data.flag_key, environment=data.environment)
                .first()
            )
            if existing:
                raise ConflictError(
                    f"Feature flag '{data.flag_key}' already exists",
                    code="FLAG_EXISTS",
                )
            flag = FeatureFlag(
                key=data.flag_key,
                name=data.name,
                description=data.description,
                enabled=data.enabled,
                rollout_percentage=data.rollout_percentage,
                conditions=serialized,
                environment=data.environment,
                updated_by=updated_by,
            )
            session.add(flag)
            session.flush()
            view = self._to_view(flag)

        self.invalidate_cache(data.flag_key)
        logger.info(
            "Feature flag created",
            extra={"flag_key": data.flag_key, "environment": data.environment, "updated_by": updated_by},
        )
        return view

    async def get_all_flags(self, environment: str = DEFAULT_ENVIRONMENT) -> list[FeatureFlagView]:
        """
        Get all flags of an environment ordered by key.

        Returns:
            List of flags (empty on lookup failure)
        """
        try:
            with self.db.get_session() as session:
                flags = (
                    session.query(FeatureFlag)
                    .filter_by(environment=environment)
                    .order_by(FeatureFlag.key)
                    .all()
                )
                return [self._to_view(flag) for flag in flags]
        except Exception as e:
            logger.error(
                "Failed to list feature flags",
                extra={"environment": environment, "error": str(e), "error_type": type(e).__name__},
                exc_info=True,
            )
            return []

    async def get_active_flags(
        self,
        context: Optional[Mapping[str, Any]] = None,
        environment: str = DEFAULT_ENVIRONMENT,
    ) -> list[FeatureFlagView]:
        """Get the flags that are active for a caller."""
        active: list[FeatureFlagView] = []
        for flag in await self.get_all_flags(environment):
            if await self.is_enabled(flag.key, context, environment):
                active.append(flag)
        return active

    async def emergency_rollback(self, updated_by: str, environment: str = DEFAULT_ENVIRONMENT) -> int:
        """
        Disable every flag in an environment and clear the whole cache.

        Returns:
            Number of flags that were disabled
        """
        with self.db.get_session() as session:
            disabled = (
                session.query(FeatureFlag)
                .filter(FeatureFlag.environment == environment)
                .update(
                    {
                        FeatureFlag.enabled: False,
                        FeatureFlag.updated_by: updated_by,
                        FeatureFlag.updated_at: utcnow(),
                    },
                    synchronize_session=False,
                )
            )

        self.clear_cache()
        logger.warning(
            "Emergency rollback executed",
            extra={"environment": environment, "updated_by": updated_by, "flags_disabled": disabled},
        )
        return disabled

    async def get_usage_stats(self, days: int = 7) -> FlagUsageStats:
        """
        Get flag usage statistics across all environments.

        Args:
            days: Lookback window for recent changes

        Returns:
            FlagUsageStats (zeros on lookup failure)
        """
        since = utcnow() - timedelta(days=days)
        try:
            with self.db.get_session() as session:
                total = session.query(func.count(FeatureFlag.id)).scalar() or 0
                active = (
                    session.query(func.count(FeatureFlag.id))
                    .filter(FeatureFlag.enabled.is_(True))
                    .scalar()
                    or 0
                )
                with_rollout = (
                    session.query(func.count(FeatureFlag.id))
                    .filter(FeatureFlag.rollout_percentage < 100)
                    .scalar()
                    or 0
                )
                recent = (
                    session.query(func.count(FeatureFlag.id))
                    .filter(FeatureFlag.updated_at >= since)
                    .scalar()
                    or 0
                )
        except Exception as e:
            logger.error(
                "Failed to get feature flag stats",
                extra={"error": str(e), "error_type": type(e).__name__},
                exc_info=True,
            )
            return FlagUsageStats(days=days)

        return FlagUsageStats(
            total_flags=total,
            active_flags=active,
            flags_with_rollout=with_rollout,
            recent_changes=recent,
            days=days,
        )

    def invalidate_cache(self, flag_key: Optional[str] = None) -> None:
        """
        Invalidate cached results for one flag, or for every flag.

        Args:
            flag_key: If provided, drop only entries for this flag key
        """
        if flag_key:
            self._cache.invalidate_prefix("flag", flag_key)
        else:
            self._cache.clear()

    def clear_cache(self) -> None:
        self._cache.clear()
