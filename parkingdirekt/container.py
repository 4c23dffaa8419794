"""Explicitly wired application services, built once per process."""
import logging
from typing import Optional

from redis.asyncio import Redis

from parkingdirekt.config.app_config import AppSettings
from parkingdirekt.db.connection import DatabaseConnectionManager, init_db
from parkingdirekt.features.service import FeatureFlagService
from parkingdirekt.services.bookings import BookingService
from parkingdirekt.services.commission import CommissionService
from parkingdirekt.services.control_center import ControlCenterService
from parkingdirekt.services.email import EmailDeliveryManager, EmailRetryWorker
from parkingdirekt.services.encryption import EncryptionService
from parkingdirekt.services.notifications import NotificationService
from parkingdirekt.services.parking_spaces import ParkingSpaceService
from parkingdirekt.services.qr_verification import QRVerificationService
from parkingdirekt.services.rate_limiter import RateLimiter
from parkingdirekt.services.reviews import ReviewService
from parkingdirekt.services.system_config import SystemConfigService

logger = logging.getLogger(__name__)


class ServiceContainer:
    """Holds every shared service; stored on ``app.state.container``."""

    def __init__(
        self,
        settings: AppSettings,
        db: DatabaseConnectionManager,
        redis_client: Optional[Redis] = None,
    ):
        self.settings = settings
        self.db = db
        self.redis = redis_client

        self.encryption = EncryptionService(settings.encryption_key)
        self.config_store = SystemConfigService(db, self.encryption)
        self.feature_flags = FeatureFlagService(db)
        self.rate_limiter = RateLimiter(db, self.config_store, redis_client=redis_client)
        self.commission = CommissionService(db, self.config_store)
        self.email = EmailDeliveryManager(db, self.config_store)
        self.email_worker = EmailRetryWorker(
            self.email, interval_seconds=settings.email_retry_interval_seconds
        )

        self.parking_spaces = ParkingSpaceService(db)
        self.bookings = BookingService(db, self.commission)
        self.reviews = ReviewService(db)
        self.notifications = NotificationService(db)
        self.qr_verification = QRVerificationService(db)
        self.control_center = ControlCenterService(
            db,
            self.config_store,
            self.feature_flags,
            self.commission,
            self.email,
            self.rate_limiter,
        )

    @classmethod
    def from_settings(cls, settings: AppSettings) -> "ServiceContainer":
        """Build the database engine and optional Redis client from settings."""
        db = init_db(settings.database_url)
        redis_client = None
        if settings.redis_url:
            redis_client = Redis.from_url(settings.redis_url, decode_responses=True)
        return cls(settings, db, redis_client)

    async def startup(self) -> None:
        await self.config_store.warmup_cache()
        await self.email.initialize_providers(self.settings)
        if self.settings.email_scheduler_enabled:
            await self.email_worker.start()

    async def shutdown(self) -> None:
        await self.email_worker.stop()
        if self.redis is not None:
            await self.redis.aclose()
        self.db.dispose()
        logger.info("Services shut down")
