"""
Structured Logging Setup
========================
structlog configuration and request-scoped context for the auth service.

Usage (FastAPI):
    from skiadmin_core.logging_setup import setup_logging, RequestLoggingMiddleware

    setup_logging(service_name="skiadmin-auth")
    app.add_middleware(RequestLoggingMiddleware)
"""

import logging
import sys
import time
import uuid
from typing import Optional

import structlog
from structlog.contextvars import bind_contextvars, clear_contextvars

# Keys that must never reach a log line
REDACTED_KEYS = frozenset({"password", "token", "otp", "secret", "password_hash"})

_service_name = "unknown"


def redact_secrets(logger, method_name, event_dict):
    """structlog processor that masks secret-bearing keys."""
    for key in REDACTED_KEYS.intersection(event_dict):
        event_dict[key] = "[REDACTED]"
    return event_dict


def setup_logging(
    service_name: str,
    level: str = "INFO",
    json_output: bool = True,
) -> None:
    """
    Configure structlog and the stdlib root logger for a service.

    Args:
        service_name: Name of the service (e.g., "skiadmin-auth")
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_output: Whether to output JSON (for production)
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers.clear()
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter("%(message)s"))
    root_logger.addHandler(handler)

    renderer = (
        structlog.processors.JSONRenderer()
        if json_output
        else structlog.dev.ConsoleRenderer()
    )

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            redact_secrets,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    global _service_name
    _service_name = service_name
    bind_contextvars(service=service_name)
    structlog.get_logger(__name__).info("Logging configured", service=service_name)


def bind_request_context(request_id: Optional[str] = None, user_id: Optional[str] = None) -> str:
    """Bind request-scoped fields onto every subsequent log line."""
    request_id = request_id or str(uuid.uuid4())[:8]
    bind_contextvars(service=_service_name, request_id=request_id)
    if user_id:
        bind_contextvars(user_id=user_id)
    return request_id


class RequestLoggingMiddleware:
    """
    ASGI middleware logging each request with a request id.
    """

    def __init__(self, app):
        self.app = app
        self.logger = structlog.get_logger("http")

    async def __call__(self, scope, receive, send):
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        headers = dict(scope.get("headers", []))
        clear_contextvars()
        request_id = bind_request_context(headers.get(b"x-request-id", b"").decode() or None)

        method = scope.get("method", "")
        path = scope.get("path", "")
        start_time = time.time()
        status_code = 500

        async def send_wrapper(message):
            nonlocal status_code
            if message["type"] == "http.response.start":
                status_code = message.get("status", 500)
                message["headers"] = list(message.get("headers", [])) + [(b"x-request-id", request_id.encode())]
            await send(message)

        try:
            await self.app(scope, receive, send_wrapper)
        except Exception:
            self.logger.exception("Request failed", method=method, path=path)
            raise
        finally:
            self.logger.info(
                "Request completed",
                method=method,
                path=path,
                status_code=status_code,
                duration_ms=int((time.time() - start_time) * 1000),
            )
