"""
Sliding-window API rate limiter.

Counts requests per identifier (and optionally per endpoint) over a trailing
window. Redis sorted sets are used when a client is configured, otherwise a
per-process deque of timestamps. Every backend failure fails open.
"""
import logging
import math
import threading
import time
import uuid
from collections import deque
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from typing import Any, Callable, Deque, Dict, Optional

from fastapi import Request
from pydantic import BaseModel
from redis.asyncio import Redis
from sqlalchemy import func

from parkingdirekt.config.catalog import RATE_LIMIT_MODES
from parkingdirekt.db.connection import DatabaseConnectionManager
from parkingdirekt.db.models import ApiRateLimitLog
from parkingdirekt.services.system_config import SystemConfigService
from parkingdirekt.utils.clock import from_epoch, utcnow
from parkingdirekt.utils.http import get_client_ip

logger = logging.getLogger(__name__)

KEY_PREFIX = "rate_limit"
WINDOW_SECONDS = 60
DEFAULT_MAX_REQUESTS = 60
DEFAULT_MODE = "per_user"


@dataclass(frozen=True)
class RateLimitConfig:
    """Effective limiter settings for one check."""

    enabled: bool = True
    max_requests: int = DEFAULT_MAX_REQUESTS
    window_seconds: int = WINDOW_SECONDS
    mode: str = DEFAULT_MODE


class RateLimitResult(BaseModel):
    """Outcome of a rate limit check."""

    allowed: bool
    remaining: int
    reset_time: datetime
    limit: int
    retry_after: Optional[int] = None


class RateLimitStats(BaseModel):
    total_violations: int = 0
    unique_identifiers: int = 0
    top_violators: list[dict[str, Any]] = []
    by_limit_type: dict[str, int] = {}


def build_key(identifier: str, endpoint: Optional[str] = None) -> str:
    """Counter key: rate_limit:{identifier}[:{endpoint}]."""
    key = f"{KEY_PREFIX}:{identifier}"
    return f"{key}:{endpoint}" if endpoint else key


def identifier_from_request(request: Request, mode: str) -> str:
    """
    Pick the counter identity for a request.

    per_user uses the authenticated user id and falls back to the client IP,
    per_ip always uses the client IP, global shares one counter.
    """
    if mode == "global":
        return "global"
    if mode == "per_user":
        auth = getattr(request.state, "auth", None)
        if auth is not None and getattr(auth, "user_id", None):
            return f"user:{auth.user_id}"
    return f"ip:{get_client_ip(request)}"


class InMemorySlidingWindow:
    """Per-process sliding window over request timestamps."""

    def __init__(self, clock: Callable[[], float] = time.time):
        self._clock = clock
        self._hits: Dict[str, Deque[float]] = {}
        self._lock = threading.Lock()
        self._last_sweep = clock()

    def hit(self, key: str, window_seconds: int) -> tuple[int, float]:
        """
        Record a request and count the window.

        Returns:
            (requests in the window including this one, oldest timestamp in the window)
        """
        now = self._clock()
        cutoff = now - window_seconds
        with self._lock:
            if now - self._last_sweep >= window_seconds:
                self._sweep(cutoff)
                self._last_sweep = now
            hits = self._hits.setdefault(key, deque())
            while hits and hits[0] <= cutoff:
                hits.popleft()
            hits.append(now)
            return len(hits), hits[0]

    def _sweep(self, cutoff: float) -> None:
        # Drop keys whose newest hit is outside the window
        idle = [key for key, hits in self._hits.items() if not hits or hits[-1] <= cutoff]
        for key in idle:
            del self._hits[key]

    def key_count(self) -> int:
        with self._lock:
            return len(self._hits)

    def clear(self, identifier: str) -> int:
        base = build_key(identifier)
        with self._lock:
            doomed = [key for key in self._hits if key == base or key.startswith(base + ":")]
            for key in doomed:
                del self._hits[key]
        return len(doomed)

    def now(self) -> float:
        return self._clock()


class RateLimiter:
    """Sliding-window limiter configured from the config store."""

    def __init__(
        self,
        db: DatabaseConnectionManager,
        config_store: SystemConfigService,
        redis_client: Optional[Redis] = None,
        memory_window: Optional[InMemorySlidingWindow] = None,
    ):
        """
        Initialize rate limiter.

        Args:
            db: Database for violation logs
            config_store: Source of enableRateLimiting, maxRequestsPerMinute and rateLimitMode
            redis_client: Shared counter store; the in-process window is used when None
            memory_window: In-process backend (injectable for tests)
        """
        self.db = db
        self.config_store = config_store
        self.redis = redis_client
        self.memory = memory_window or InMemorySlidingWindow()

    async def get_config(self, overrides: Optional[dict[str, Any]] = None) -> RateLimitConfig:
        """Read limiter settings, falling back to defaults on any error."""
        try:
            enabled = await self.config_store.get_config_value("enableRateLimiting", True)
            max_requests = await self.config_store.get_config_value(
                "maxRequestsPerMinute", DEFAULT_MAX_REQUESTS
            )
            mode = await self.config_store.get_config_value("rateLimitMode", DEFAULT_MODE)
            config = RateLimitConfig(
                enabled=bool(enabled),
                max_requests=int(max_requests) or DEFAULT_MAX_REQUESTS,
                mode=mode if mode in RATE_LIMIT_MODES else DEFAULT_MODE,
            )
        except Exception as e:
            logger.warning(
                "Failed to fetch rate limit config, using defaults",
                extra={"error": str(e), "error_type": type(e).__name__},
            )
            config = RateLimitConfig()

        if overrides:
            config = replace(config, **overrides)
        return config

    async def check_rate_limit(
        self,
        identifier: str,
        endpoint: Optional[str] = None,
        overrides: Optional[dict[str, Any]] = None,
        method: Optional[str] = None,
        config: Optional[RateLimitConfig] = None,
    ) -> RateLimitResult:
        """
        Count a request and decide whether it is allowed.

        Args:
            identifier: Counter identity (see identifier_from_request)
            endpoint: Optional endpoint to scope the counter
            overrides: RateLimitConfig fields to override for this check
            method: HTTP method, recorded on violations
            config: Settings already read by the caller; fetched when None

        Returns:
            RateLimitResult; allowed is True whenever the limiter itself fails
        """
        fallback = RateLimitConfig()
        try:
            if config is None:
                config = await self.get_config(overrides)
            elif overrides:
                config = replace(config, **overrides)
            if not config.enabled:
                return RateLimitResult(
                    allowed=True,
                    remaining=config.max_requests,
                    reset_time=utcnow() + timedelta(seconds=config.window_seconds),
                    limit=config.max_requests,
                )

            if self.redis is not None:
                result, count = await self._check_redis(identifier, endpoint, config)
            else:
                result, count = self._check_memory(identifier, endpoint, config)

            if not result.allowed:
                await self._log_violation(identifier, endpoint, method, config, count)
            return result
        except Exception as e:
            logger.error(
                "Rate limit check failed, allowing request",
                extra={
                    "identifier": identifier,
                    "endpoint": endpoint,
                    "error": str(e),
                    "error_type": type(e).__name__,
                },
                exc_info=True,
            )
            limits = config or fallback
            return RateLimitResult(
                allowed=True,
                remaining=limits.max_requests,
                reset_time=utcnow() + timedelta(seconds=limits.window_seconds),
                limit=limits.max_requests,
            )

    async def _check_redis(
        self,
        identifier: str,
        endpoint: Optional[str],
        config: RateLimitConfig,
    ) -> tuple[RateLimitResult, int]:
        assert self.redis is not None
        key = build_key(identifier, endpoint)
        now = time.time()
        window = config.window_seconds

        async with self.redis.pipeline(transaction=True) as pipe:
            pipe.zremrangebyscore(key, 0, now - window)
            pipe.zcard(key)
            pipe.zadd(key, {f"{now}-{uuid.uuid4().hex[:8]}": now})
            pipe.expire(key, window + 1)
            results = await pipe.execute()

        count = int(results[1] or 0) + 1
        allowed = count <= config.max_requests
        result = RateLimitResult(
            allowed=allowed,
            remaining=max(0, config.max_requests - count),
            reset_time=from_epoch(now + window),
            limit=config.max_requests,
            retry_after=None if allowed else window,
        )
        return result, count

    def _check_memory(
        self,
        identifier: str,
        endpoint: Optional[str],
        config: RateLimitConfig,
    ) -> tuple[RateLimitResult, int]:
        key = build_key(identifier, endpoint)
        count, oldest = self.memory.hit(key, config.window_seconds)
        reset_at = oldest + config.window_seconds
        allowed = count <= config.max_requests
        retry_after = None
        if not allowed:
            retry_after = max(1, math.ceil(reset_at - self.memory.now()))
        result = RateLimitResult(
            allowed=allowed,
            remaining=max(0, config.max_requests - count),
            reset_time=from_epoch(reset_at),
            limit=config.max_requests,
            retry_after=retry_after,
        )
        return result, count

    async def _log_violation(
        self,
        identifier: str,
        endpoint: Optional[str],
        method: Optional[str],
        config: RateLimitConfig,
        request_count: int,
    ) -> None:
        try:
            with self.db.get_session() as session:
                session.add(
                    ApiRateLimitLog(
                        identifier=identifier,
                        endpoint=endpoint or "unknown",
                        method=method,
                        status_code=429,
                        blocked=True,
                        limit_type=config.mode,
                        request_count=request_count,
                        window_start=utcnow() - timedelta(seconds=config.window_seconds),
                    )
                )
        except Exception as e:
            logger.error(
                "Failed to log rate limit violation",
                extra={"identifier": identifier, "error": str(e), "error_type": type(e).__name__},
            )

        logger.warning(
            "Rate limit exceeded",
            extra={"identifier": identifier, "endpoint": endpoint, "limit": config.max_requests},
        )

    async def get_rate_limit_stats(self, seconds: int = 3600) -> RateLimitStats:
        """Summarize violations recorded over the last ``seconds``."""
        since = utcnow() - timedelta(seconds=seconds)
        try:
            with self.db.get_session() as session:
                rows = (
                    session.query(
                        ApiRateLimitLog.identifier,
                        ApiRateLimitLog.limit_type,
                        func.count(ApiRateLimitLog.id),
                    )
                    .filter(ApiRateLimitLog.blocked.is_(True), ApiRateLimitLog.created_at >= since)
                    .group_by(ApiRateLimitLog.identifier, ApiRateLimitLog.limit_type)
                    .all()
                )
        except Exception as e:
            logger.error(
                "Failed to get rate limit stats",
                extra={"error": str(e), "error_type": type(e).__name__},
            )
            return RateLimitStats()

        by_identifier: Dict[str, int] = {}
        by_limit_type: Dict[str, int] = {}
        for identifier, limit_type, count in rows:
            by_identifier[identifier] = by_identifier.get(identifier, 0) + count
            by_limit_type[limit_type] = by_limit_type.get(limit_type, 0) + count

        top = sorted(by_identifier.items(), key=lambda item: item[1], reverse=True)[:10]
        return RateLimitStats(
            total_violations=sum(by_identifier.values()),
            unique_identifiers=len(by_identifier),
            top_violators=[{"identifier": identifier, "count": count} for identifier, count in top],
            by_limit_type=by_limit_type,
        )

    async def clear_rate_limit_data(self, identifier: str) -> None:
        """
        Reset counters for an identifier.

        Violation logs for the identifier older than 24 hours are also removed.
        """
        try:
            if self.redis is not None:
                base = build_key(identifier)
                keys = [base]
                async for key in self.redis.scan_iter(match=f"{base}:*"):
                    keys.append(key)
                await self.redis.delete(*keys)
            else:
                self.memory.clear(identifier)

            cutoff = utcnow() - timedelta(hours=24)
            with self.db.get_session() as session:
                session.query(ApiRateLimitLog).filter(
                    ApiRateLimitLog.identifier == identifier,
                    ApiRateLimitLog.created_at < cutoff,
                ).delete(synchronize_session=False)
        except Exception as e:
            logger.error(
                "Failed to clear rate limit data",
                extra={"identifier": identifier, "error": str(e), "error_type": type(e).__name__},
            )
