"""
FastAPI application factory.

Run with:
    uvicorn parkingdirekt.main:create_app --factory
"""
import logging
import sys
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from parkingdirekt.api.routes import (
    bookings,
    health,
    notifications,
    parking_spaces,
    reviews,
    verify_qr,
)
from parkingdirekt.api.routes.admin import config as admin_config
from parkingdirekt.api.routes.admin import email as admin_email
from parkingdirekt.api.routes.admin import features as admin_features
from parkingdirekt.api.routes.admin import rate_limits as admin_rate_limits
from parkingdirekt.auth.middleware import AuthMiddleware
from parkingdirekt.config.app_config import AppSettings, get_app_settings
from parkingdirekt.container import ServiceContainer
from parkingdirekt.middleware import (
    ErrorHandlerMiddleware,
    RateLimitMiddleware,
    RequestIDMiddleware,
    register_exception_handlers,
)

logger = logging.getLogger(__name__)


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    container: ServiceContainer = app.state.container
    await container.startup()
    logger.info(
        "Application started",
        extra={"app_env": container.settings.app_env, "redis_enabled": container.redis is not None},
    )
    try:
        yield
    finally:
        logger.info("Application shutdown initiated")
        await container.shutdown()


def create_app(
    settings: Optional[AppSettings] = None,
    container: Optional[ServiceContainer] = None,
) -> FastAPI:
    """
    Build the application.

    Args:
        settings: Runtime settings (read from the environment when omitted)
        container: Pre-built services (tests pass one backed by SQLite)

    Raises:
        RuntimeError: If the settings fail environment validation
    """
    settings = settings or (container.settings if container else get_app_settings())
    configure_logging(settings.log_level)

    errors = settings.validate_environment()
    if errors:
        logger.error(
            "Environment variable validation failed",
            extra={"error_count": len(errors), "errors": errors},
        )
        raise RuntimeError("Invalid configuration: " + "; ".join(errors))

    app = FastAPI(title="ParkingDirekt API", version="1.0.0", lifespan=lifespan)
    app.state.container = container or ServiceContainer.from_settings(settings)

    # Middleware order (last added = outermost, executes first):
    # ErrorHandler -> CORS -> RequestID -> Auth -> RateLimit -> routes
    app.add_middleware(RateLimitMiddleware)
    app.add_middleware(AuthMiddleware, session_secret=settings.session_secret)
    app.add_middleware(RequestIDMiddleware)
    if settings.cors_origin_list:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=settings.cors_origin_list,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )
    app.add_middleware(ErrorHandlerMiddleware)

    register_exception_handlers(app)

    app.include_router(health.router)
    app.include_router(parking_spaces.router)
    app.include_router(bookings.router)
    app.include_router(reviews.router)
    app.include_router(notifications.router)
    app.include_router(verify_qr.router)
    app.include_router(admin_config.router)
    app.include_router(admin_features.router)
    app.include_router(admin_email.router)
    app.include_router(admin_rate_limits.router)

    return app
