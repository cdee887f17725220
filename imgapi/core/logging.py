"""Structured JSON logging configuration for the application."""

import logging
from contextvars import ContextVar

from pythonjsonlogger.json import JsonFormatter as _JsonFormatter

from imgapi.config import Settings, settings as default_settings

# Per-request correlation ID, set by RequestIdMiddleware, read by _RequestIdFilter
request_id_var: ContextVar[str] = ContextVar("request_id", default="-")


class _RequestIdFilter(logging.Filter):
    """Injects the current request_id into every log record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = request_id_var.get()
        return True


class _AppJsonFormatter(_JsonFormatter):
    """Extends the standard JSON formatter with service-level metadata."""

    def __init__(self, *args: object, service_settings: Settings, **kwargs: object) -> None:
        super().__init__(*args, **kwargs)
        self._settings = service_settings

    def add_fields(
        self,
        log_record: dict[str, object],
        record: logging.LogRecord,
        message_dict: dict[str, object],
    ) -> None:
        super().add_fields(log_record, record, message_dict)
        log_record.setdefault("service", self._settings.app_name)
        log_record.setdefault("version", self._settings.app_version)
        log_record.setdefault("env", self._settings.env)


def configure_logging(settings: Settings = default_settings) -> None:
    """Set up structured JSON logging for the entire application.

    Call once at application startup (inside create_app) before any other
    module creates a logger so that all handlers are consistently configured.

    Records go to ``settings.log_file`` (appended) when it is set, otherwise
    to stderr.

    Log levels:
        DEBUG: manifest reads and listings (enabled when settings.debug=True)
        INFO: every mutating pool operation, request start/end, startup/shutdown
        WARNING: rejected lifecycle transitions, client errors
        ERROR: failed saves, filesystem faults, unhandled exceptions
        CRITICAL: unreadable manifest collection at startup
    """
    log_level = logging.DEBUG if settings.debug else logging.INFO

    handler: logging.Handler
    if settings.log_file:
        handler = logging.FileHandler(settings.log_file, mode="a", encoding="utf-8")
    else:
        handler = logging.StreamHandler()
    handler.setFormatter(
        _AppJsonFormatter(
            fmt="%(asctime)s %(name)s %(levelname)s %(message)s %(request_id)s",
            datefmt="%Y-%m-%dT%H:%M:%SZ",
            service_settings=settings,
        )
    )
    handler.addFilter(_RequestIdFilter())

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(log_level)

    # Suppress noisy third-party loggers
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("multipart").setLevel(logging.WARNING)
