"""Background job that drains the email retry queue."""
import logging
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from parkingdirekt.services.email.delivery import EmailDeliveryManager

logger = logging.getLogger(__name__)

RETRY_JOB_ID = "email_retry_queue"


class EmailRetryWorker:
    """Runs ``process_retry_queue`` on a fixed interval."""

    def __init__(self, manager: EmailDeliveryManager, interval_seconds: int = 30):
        self.manager = manager
        self.interval_seconds = interval_seconds
        self._scheduler: Optional[AsyncIOScheduler] = None

    @property
    def running(self) -> bool:
        return self._scheduler is not None

    async def start(self) -> None:
        self._scheduler = AsyncIOScheduler()
        self._scheduler.add_job(
            self.run_once,
            "interval",
            seconds=self.interval_seconds,
            id=RETRY_JOB_ID,
            name="Email Retry Queue",
            max_instances=1,
            coalesce=True,
        )
        self._scheduler.start()
        logger.info("Email retry worker started", extra={"interval_seconds": self.interval_seconds})

    async def stop(self) -> None:
        if self._scheduler:
            self._scheduler.shutdown(wait=False)
            self._scheduler = None
            logger.info("Email retry worker stopped")

    async def run_once(self) -> int:
        try:
            processed = await self.manager.process_retry_queue()
        except Exception as e:
            logger.error(
                "Email retry run failed",
                extra={"error": str(e), "error_type": type(e).__name__},
                exc_info=True,
            )
            return 0
        if processed:
            logger.info("Email retries processed", extra={"count": processed})
        return processed
