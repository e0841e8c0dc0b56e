"""
Structured logging for the heartbeat watcher.

structlog renders every event (JSON in production, coloured console output
during development) and hands the result to stdlib logging, which owns the
output handlers: stdout always, plus a size-rotated file when enabled.

Loggers are obtained per component with get_logger("downtime-monitor") and
carry structured fields in extra={"data": {...}}.
"""

import logging
import sys
import time
import uuid
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, List, Optional

import orjson
import structlog
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

REQUEST_ID_HEADER = "X-Request-ID"


def _orjson_dumps(obj: Any, **kwargs: Any) -> str:
    return orjson.dumps(obj, default=kwargs.get("default")).decode("utf-8")


def _build_handlers(
    service_name: str,
    enable_file_logging: bool,
    log_file_path: Optional[str],
    max_file_size: int,
    backup_count: int,
) -> List[logging.Handler]:
    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if not enable_file_logging:
        return handlers

    path = Path(log_file_path) if log_file_path else Path("logs") / f"{service_name}.log"
    path.parent.mkdir(parents=True, exist_ok=True)
    handlers.append(RotatingFileHandler(path, maxBytes=max_file_size, backupCount=backup_count, encoding="utf-8"))
    return handlers


def _event_processors(enable_json: bool) -> list:
    return [
        # Drop filtered events before any rendering work
        structlog.stdlib.filter_by_level,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        # service, request_id, method, path bound per request
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer(serializer=_orjson_dumps)
        if enable_json
        else structlog.dev.ConsoleRenderer(colors=True),
    ]


def configure_logging(
    service_name: str = "heartbeat-watcher",
    log_level: str = "INFO",
    enable_json: bool = True,
    enable_file_logging: bool = False,
    log_file_path: Optional[str] = None,
    max_file_size: int = 10 * 1024 * 1024,
    backup_count: int = 5,
) -> None:
    """
    Configure structlog and the stdlib handlers behind it.

    Safe to call more than once; the last call wins.

    Args:
        service_name: Bound as `service` on every event
        log_level: DEBUG, INFO, WARNING, ERROR or CRITICAL
        enable_json: JSON lines (True) or console rendering (False)
        enable_file_logging: Also write to a size-rotated file
        log_file_path: Log file location (defaults to ./logs/{service_name}.log)
        max_file_size: Bytes before the log file is rotated
        backup_count: Rotated files to keep
    """
    logging.basicConfig(
        format="%(message)s",
        handlers=_build_handlers(service_name, enable_file_logging, log_file_path, max_file_size, backup_count),
        level=getattr(logging, log_level.upper(), logging.INFO),
        force=True,
    )

    structlog.configure(
        processors=_event_processors(enable_json),
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    structlog.contextvars.bind_contextvars(service=service_name)


def get_logger(name: Optional[str] = None) -> structlog.stdlib.BoundLogger:
    """Logger for one component, e.g. get_logger("auth")."""
    return structlog.get_logger(name)


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Binds a correlation id to every log line of a request and logs its outcome."""

    def __init__(self, app, service_name: str = "heartbeat-watcher"):
        super().__init__(app)
        self.service_name = service_name
        self.logger = get_logger("request")

    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())
        started = time.perf_counter()

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            service=self.service_name,
            request_id=request_id,
            method=request.method,
            path=request.url.path,
            client_ip=request.client.host if request.client else "unknown",
        )

        try:
            response = await call_next(request)
        except Exception as exc:
            self.logger.error(
                f"Request failed: {type(exc).__name__}",
                exc_info=True,
                extra={"data": {"duration_ms": _elapsed_ms(started)}}
            )
            raise

        self.logger.info(
            "Request completed",
            extra={"data": {"status_code": response.status_code, "duration_ms": _elapsed_ms(started)}}
        )
        response.headers[REQUEST_ID_HEADER] = request_id
        return response


def _elapsed_ms(started: float) -> float:
    return round((time.perf_counter() - started) * 1000, 2)


def log_state_transition(
    logger: structlog.stdlib.BoundLogger,
    state: str,
    event_id: int,
    **fields: Any
) -> None:
    """Log a downtime state change in one consistent shape."""
    logger.info(
        f"Downtime event {event_id} is now {state}",
        extra={"data": {"downtime_id": event_id, "new_state": state, **fields}}
    )
