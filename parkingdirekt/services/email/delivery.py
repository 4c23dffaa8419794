"""
Email delivery with provider selection, failover, a durable retry queue and
per-send delivery logs.
"""
import json
import logging
from datetime import timedelta
from typing import Any, Optional

from pydantic import BaseModel, Field

from parkingdirekt.config.app_config import AppSettings
from parkingdirekt.db.connection import DatabaseConnectionManager
from parkingdirekt.db.models import EmailDeliveryLog, EmailRetryItem
from parkingdirekt.services.email.providers import (
    EmailMessage,
    EmailProvider,
    EmailResult,
    LoggingProvider,
    SendGridProvider,
    SMTPProvider,
)
from parkingdirekt.services.system_config import SystemConfigService
from parkingdirekt.utils.clock import utcnow

logger = logging.getLogger(__name__)

MAX_RETRY_ATTEMPTS = 3
RETRY_BATCH_SIZE = 50
# Seconds a claimed retry may stay in processing before it is handed back
RETRY_LEASE_SECONDS = 300


def retry_delay_seconds(attempt: int) -> int:
    """Exponential backoff before retry number ``attempt``."""
    return 2 ** attempt


class EmailDeliveryStats(BaseModel):
    total: int = 0
    sent: int = 0
    failed: int = 0
    pending: int = 0
    by_provider: dict[str, int] = Field(default_factory=dict)
    average_delivery_time_ms: float = 0.0
    days: int = 7


class EmailDeliveryManager:
    """
    Sends email through registered providers.

    Every logical send gets one EmailDeliveryLog row. Failed sends are
    queued in the email_retry_queue table and picked up by
    ``process_retry_queue``.
    """

    def __init__(
        self,
        db: DatabaseConnectionManager,
        config_store: SystemConfigService,
        default_provider: str = "smtp",
    ):
        self.db = db
        self.config_store = config_store
        self.default_provider = default_provider
        self.providers: dict[str, EmailProvider] = {}

    def register_provider(self, provider: EmailProvider) -> None:
        self.providers[provider.name] = provider

    async def initialize_providers(self, settings: AppSettings) -> None:
        """
        Register providers from environment settings and integration secrets.

        SMTP is always registered; SendGrid only when its API key secret
        exists. Outside production the logging provider is also available.
        """
        default_from = await self.config_store.get_config_value("defaultFromEmail")

        host = await self.config_store.get_integration_secret("smtp", "host") or settings.smtp_host
        username = await self.config_store.get_integration_secret("smtp", "user") or settings.smtp_user
        password = await self.config_store.get_integration_secret("smtp", "pass") or settings.smtp_password
        self.register_provider(
            SMTPProvider(
                host=host,
                port=settings.smtp_port,
                username=username,
                password=password,
                default_from=default_from,
                timeout=settings.smtp_timeout_seconds,
            )
        )

        sendgrid_key = await self.config_store.get_integration_secret("sendgrid", "api_key")
        if sendgrid_key:
            self.register_provider(SendGridProvider(api_key=sendgrid_key, default_from=default_from))

        if not settings.is_production:
            self.register_provider(LoggingProvider())

        configured = await self.config_store.get_config_value("emailProvider")
        if configured in self.providers:
            self.default_provider = configured

        logger.info(
            "Email providers initialized",
            extra={"providers": sorted(self.providers), "default_provider": self.default_provider},
        )

    async def _retry_limit(self) -> int:
        value = await self.config_store.get_config_value("notificationRetryLimit")
        try:
            return min(int(value), MAX_RETRY_ATTEMPTS)
        except (TypeError, ValueError):
            return 0

    def _create_log(self, message: EmailMessage, provider: str) -> Optional[str]:
        """Insert the delivery log row. Returns None when the write fails."""
        try:
            with self.db.get_session() as session:
                row = EmailDeliveryLog(
                    recipients=json.dumps(message.to),
                    subject=message.subject,
                    provider=provider,
                    status="pending",
                    attempts=0,
                    metadata_json=json.dumps(message.metadata) if message.metadata else None,
                )
                session.add(row)
                session.flush()
                return row.id
        except Exception as e:
            logger.error(
                "Failed to create email delivery log",
                extra={"provider": provider, "error": str(e), "error_type": type(e).__name__},
            )
            return None

    def _record_attempt(self, log_id: Optional[str], result: EmailResult, status: Optional[str] = None) -> None:
        if log_id is None:
            return
        try:
            with self.db.get_session() as session:
                row = session.get(EmailDeliveryLog, log_id)
                if row is None:
                    return
                row.attempts = (row.attempts or 0) + 1
                row.provider = result.provider
                if result.success:
                    row.status = "sent"
                    row.message_id = result.message_id
                    row.error_message = None
                    row.sent_at = utcnow()
                else:
                    row.status = status or "failed"
                    row.error_message = result.error
        except Exception as e:
            logger.error(
                "Failed to update email delivery log",
                extra={"delivery_log_id": log_id, "error": str(e), "error_type": type(e).__name__},
            )

    async def _deliver(self, provider: EmailProvider, message: EmailMessage) -> EmailResult:
        try:
            return await provider.send(message)
        except Exception as e:
            logger.error(
                "Email provider raised",
                extra={"provider": provider.name, "error": str(e), "error_type": type(e).__name__},
                exc_info=True,
            )
            return EmailResult(success=False, provider=provider.name, error=str(e))

    async def send_email(
        self,
        message: EmailMessage,
        provider: Optional[str] = None,
        retry: bool = True,
    ) -> EmailResult:
        """
        Send a message through one provider.

        Args:
            message: Email to send
            provider: Provider name (defaults to the configured provider)
            retry: Queue a retry on failure

        Returns:
            Result of the first attempt. Failures are queued for retry when
            notificationRetryLimit is above zero.
        """
        name = provider or self.default_provider
        selected = self.providers.get(name)
        if selected is None:
            return EmailResult(success=False, provider=name, error=f"Email provider '{name}' not found")

        log_id = self._create_log(message, name)
        result = await self._deliver(selected, message)

        retry_limit = await self._retry_limit() if retry and not result.success else 0
        if not result.success and retry_limit > 0:
            self._record_attempt(log_id, result, status="retrying")
            self.enqueue_retry(message, name, log_id=log_id, attempt=1, max_attempts=retry_limit)
        else:
            self._record_attempt(log_id, result)

        logger.info(
            "Email send attempted",
            extra={
                "provider": name,
                "success": result.success,
                "recipients": message.recipient_hashes(),
                "delivery_log_id": log_id,
            },
        )
        return result

    async def send_email_with_failover(self, message: EmailMessage) -> EmailResult:
        """Try the default provider, then every other registered provider."""
        order = [self.default_provider] + [name for name in self.providers if name != self.default_provider]
        order = [name for name in order if name in self.providers]
        last = EmailResult(success=False, provider="none", error="No email providers registered")
        for index, name in enumerate(order):
            # Only the last provider queues a retry
            last = await self.send_email(message, name, retry=index == len(order) - 1)
            if last.success:
                return last
            logger.warning("Email provider failed, trying next", extra={"provider": name})
        return last

    def enqueue_retry(
        self,
        message: EmailMessage,
        provider: str,
        log_id: Optional[str] = None,
        attempt: int = 1,
        max_attempts: int = MAX_RETRY_ATTEMPTS,
    ) -> str:
        with self.db.get_session() as session:
            item = EmailRetryItem(
                delivery_log_id=log_id,
                payload=message.model_dump_json(by_alias=True),
                provider=provider,
                attempt=attempt,
                max_attempts=max_attempts,
                next_retry_at=utcnow() + timedelta(seconds=retry_delay_seconds(attempt)),
                status="pending",
            )
            session.add(item)
            session.flush()
            return item.id

    def reclaim_stale_retries(self, lease_seconds: int = RETRY_LEASE_SECONDS) -> int:
        """
        Return items stuck in ``processing`` past their lease to ``pending``.

        Covers a worker that died between claiming a batch and finishing it.

        Returns:
            Number of items reclaimed
        """
        cutoff = utcnow() - timedelta(seconds=lease_seconds)
        with self.db.get_session() as session:
            reclaimed = (
                session.query(EmailRetryItem)
                .filter(EmailRetryItem.status == "processing", EmailRetryItem.updated_at <= cutoff)
                .update(
                    {EmailRetryItem.status: "pending", EmailRetryItem.updated_at: utcnow()},
                    synchronize_session=False,
                )
            )
        if reclaimed:
            logger.warning("Reclaimed stale email retries", extra={"count": reclaimed})
        return reclaimed

    def _release_retry(self, item_id: str, attempt: int, max_attempts: int, error: str) -> None:
        """Hand a claimed item back to the queue after its processing failed."""
        try:
            with self.db.get_session() as session:
                item = session.get(EmailRetryItem, item_id)
                if item is None:
                    return
                item.last_error = error
                if attempt >= max_attempts:
                    item.status = "failed"
                else:
                    item.attempt = attempt + 1
                    item.next_retry_at = utcnow() + timedelta(seconds=retry_delay_seconds(attempt + 1))
                    item.status = "pending"
        except Exception as e:
            # Left in processing; reclaim_stale_retries picks it up after the lease
            logger.error(
                "Failed to release email retry",
                extra={"retry_id": item_id, "error": str(e), "error_type": type(e).__name__},
            )

    async def process_retry_queue(self) -> int:
        """
        Retry every due queue item once.

        Stale claims are reclaimed first. An item whose handling raises is
        released back to the queue with the error recorded.

        Returns:
            Number of items processed
        """
        self.reclaim_stale_retries()
        now = utcnow()
        with self.db.get_session() as session:
            due = (
                session.query(EmailRetryItem)
                .filter(EmailRetryItem.status == "pending", EmailRetryItem.next_retry_at <= now)
                .order_by(EmailRetryItem.next_retry_at)
                .limit(RETRY_BATCH_SIZE)
                .all()
            )
            for item in due:
                item.status = "processing"
            batch = [
                (item.id, item.delivery_log_id, item.payload, item.provider, item.attempt, item.max_attempts)
                for item in due
            ]

        for item_id, log_id, payload, provider_name, attempt, max_attempts in batch:
            try:
                await self._process_retry(item_id, log_id, payload, provider_name, attempt, max_attempts)
            except Exception as e:
                logger.error(
                    "Email retry processing failed",
                    extra={"retry_id": item_id, "error": str(e), "error_type": type(e).__name__},
                    exc_info=True,
                )
                self._release_retry(item_id, attempt, max_attempts, str(e))

        return len(batch)

    async def _process_retry(
        self,
        item_id: str,
        log_id: Optional[str],
        payload: str,
        provider_name: str,
        attempt: int,
        max_attempts: int,
    ) -> None:
        message = EmailMessage.model_validate_json(payload)
        provider = self.providers.get(provider_name)
        if provider is None:
            result = EmailResult(
                success=False,
                provider=provider_name,
                error=f"Email provider '{provider_name}' not found",
            )
        else:
            result = await self._deliver(provider, message)

        exhausted = attempt >= max_attempts
        with self.db.get_session() as session:
            item = session.get(EmailRetryItem, item_id)
            if result.success:
                item.status = "completed"
            elif exhausted:
                item.status = "failed"
                item.last_error = result.error
            else:
                item.attempt = attempt + 1
                item.next_retry_at = utcnow() + timedelta(seconds=retry_delay_seconds(attempt + 1))
                item.status = "pending"
                item.last_error = result.error

        status = None if result.success or exhausted else "retrying"
        self._record_attempt(log_id, result, status=status)

        logger.info(
            "Email retry processed",
            extra={
                "retry_id": item_id,
                "attempt": attempt,
                "success": result.success,
                "exhausted": exhausted and not result.success,
            },
        )

    async def test_connection(self, provider: Optional[str] = None) -> bool:
        name = provider or self.default_provider
        selected = self.providers.get(name)
        if selected is None:
            return False
        try:
            return await selected.test()
        except Exception as e:
            logger.warning(
                "Email provider test raised",
                extra={"provider": name, "error": str(e), "error_type": type(e).__name__},
            )
            return False

    async def get_delivery_stats(self, days: int = 7) -> EmailDeliveryStats:
        """Counts by status and provider, plus mean time from queueing to send."""
        since = utcnow() - timedelta(days=days)
        try:
            with self.db.get_session() as session:
                rows = (
                    session.query(
                        EmailDeliveryLog.status,
                        EmailDeliveryLog.provider,
                        EmailDeliveryLog.created_at,
                        EmailDeliveryLog.sent_at,
                    )
                    .filter(EmailDeliveryLog.created_at >= since)
                    .all()
                )
        except Exception as e:
            logger.error(
                "Failed to get email delivery stats",
                extra={"error": str(e), "error_type": type(e).__name__},
            )
            return EmailDeliveryStats(days=days)

        by_provider: dict[str, int] = {}
        delivery_times: list[float] = []
        counts: dict[str, Any] = {"sent": 0, "failed": 0, "pending": 0}
        for status, provider, created_at, sent_at in rows:
            by_provider[provider] = by_provider.get(provider, 0) + 1
            if status in ("sent", "delivered"):
                counts["sent"] += 1
                if sent_at is not None and created_at is not None:
                    delivery_times.append((sent_at - created_at).total_seconds() * 1000)
            elif status == "failed":
                counts["failed"] += 1
            elif status in ("pending", "retrying"):
                counts["pending"] += 1

        average = sum(delivery_times) / len(delivery_times) if delivery_times else 0.0
        return EmailDeliveryStats(
            total=len(rows),
            by_provider=by_provider,
            average_delivery_time_ms=round(average, 1),
            days=days,
            **counts,
        )
