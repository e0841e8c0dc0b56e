"""
Heartbeat Watcher Server

Provides:
1. Signed heartbeat ingestion ({API_PREFIX}/heartbeat)
2. Background downtime monitoring with notifications
3. Health monitoring (/health endpoint)
"""

import asyncio
from contextlib import asynccontextmanager

import uvicorn
from dotenv import load_dotenv

# Load environment variables FIRST before importing config
load_dotenv()

from fastapi import FastAPI

from api.dependencies import register_error_handlers
from api.health_endpoints import router as health_router
from api.heartbeat_endpoints import router as heartbeat_router
from config import Settings, settings
from database.database import db_manager
from services.downtime_monitor import DowntimeMonitor
from services.downtime_service import downtime_service
from services.heartbeat_ingest import HeartbeatIngestService
from services.heartbeat_service import heartbeat_service
from services.notification_service import create_notification_sink, notify_safely
from services.request_authenticator import NonceCache, RequestAuthenticator, nonce_ttl
from utils.logging import RequestLoggingMiddleware, configure_logging, get_logger

configure_logging(
    service_name="heartbeat-watcher",
    log_level=settings.LOG_LEVEL,
    enable_json=settings.LOG_JSON,
    enable_file_logging=settings.LOG_FILE_ENABLED,
    log_file_path=settings.LOG_FILE_PATH,
    max_file_size=settings.LOG_FILE_MAX_SIZE_MB * 1024 * 1024,  # Convert MB to bytes
    backup_count=settings.LOG_FILE_BACKUP_COUNT
)

logger = get_logger("main")


def init_services(app: FastAPI, config: Settings = settings) -> None:
    """Wire the authenticator, notification sink, monitor and ingest service onto app.state."""
    sink = create_notification_sink(config)
    monitor = DowntimeMonitor(
        heartbeat_store=heartbeat_service,
        downtime_store=downtime_service,
        notification_sink=sink,
        heartbeat_timeout_ms=config.HEARTBEAT_TIMEOUT,
        check_interval_ms=config.DOWNTIME_CHECK_INTERVAL,
        confirmation_delay_ms=config.DOWNTIME_CONFIRMATION_DELAY,
    )

    app.state.notification_sink = sink
    app.state.downtime_monitor = monitor
    app.state.authenticator = RequestAuthenticator(
        secret=config.api_secret_value,
        api_prefix=config.API_PREFIX,
        max_age=config.SIGNATURE_MAX_AGE,
        max_future_skew=config.SIGNATURE_MAX_FUTURE_SKEW,
        nonce_cache=NonceCache(
            ttl=nonce_ttl(config.SIGNATURE_MAX_AGE, config.SIGNATURE_MAX_FUTURE_SKEW),
            max_size=config.NONCE_CACHE_SIZE,
        ),
    )
    app.state.ingest_service = HeartbeatIngestService(
        heartbeat_store=heartbeat_service,
        downtime_store=downtime_service,
        monitor=monitor,
        notification_sink=sink,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    logger.info("Starting heartbeat watcher...")

    if not settings.api_secret_value:
        # Requests fail closed with a configuration error until this is fixed
        logger.error("API_SECRET is not configured; heartbeat writes will be refused")

    if settings.CREATE_TABLES:
        try:
            await db_manager.create_tables()
            logger.info("Database tables created/verified")
        except Exception as e:
            logger.error(f"Failed to create database tables: {e}")
            raise

    init_services(app)
    app.state.downtime_monitor.start()
    await notify_safely(app.state.notification_sink.startup(), "startup")

    yield

    logger.info("Shutting down heartbeat watcher...")
    await app.state.downtime_monitor.stop()
    await db_manager.close()
    logger.info("Heartbeat watcher shutdown complete")


def create_app() -> FastAPI:
    app = FastAPI(
        title="Heartbeat Watcher",
        description="Signed heartbeat ingestion and downtime detection",
        version="1.0.0",
        lifespan=lifespan
    )
    app.add_middleware(RequestLoggingMiddleware, service_name="heartbeat-watcher")
    register_error_handlers(app)

    app.include_router(heartbeat_router, prefix=settings.API_PREFIX)
    app.include_router(health_router)
    return app


app = create_app()


async def main():
    """Run the server."""
    config = uvicorn.Config(
        app,
        host=settings.HOST,
        port=settings.PORT,
        log_config=None  # Use our custom logging
    )
    server = uvicorn.Server(config)

    logger.info("Starting uvicorn server", extra={"data": {"host": settings.HOST, "port": settings.PORT}})

    await server.serve()


if __name__ == "__main__":
    asyncio.run(main())
