"""Logging and tracing setup for the helpdesk service.

Committed audit entries are written to the ``helpdesk.tickets.audit`` logger,
which gets its own level so the trail stays visible when the rest of the
application is quieter.
"""

from __future__ import annotations

import logging
from logging.config import dictConfig
from typing import Any

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor

from helpdesk.core.config import Settings, parse_pairs

AUDIT_LOGGER = "helpdesk.tickets.audit"

_active_provider: TracerProvider | None = None


def _level(name: str, default: int = logging.INFO) -> int:
    return getattr(logging, name.upper(), default)


def logging_config(settings: Settings) -> dict[str, Any]:
    """Build the ``dictConfig`` mapping for the service loggers."""

    level = _level(settings.log_level)
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "default": {"format": settings.log_format},
            "audit": {"format": settings.audit_log_format},
        },
        "handlers": {
            "default": {"class": "logging.StreamHandler", "formatter": "default"},
            "audit": {"class": "logging.StreamHandler", "formatter": "audit"},
        },
        "loggers": {
            "helpdesk": {"level": level},
            AUDIT_LOGGER: {
                "level": _level(settings.audit_log_level),
                "handlers": ["audit"],
                "propagate": False,
            },
            "sqlalchemy.engine": {"level": logging.WARNING},
        },
        "root": {"handlers": ["default"], "level": level},
    }


def configure_logging(settings: Settings) -> logging.Logger:
    """Apply the logging configuration and return the application logger."""

    dictConfig(logging_config(settings))
    logger = logging.getLogger(settings.app_name)
    logger.setLevel(_level(settings.log_level))
    return logger


def init_tracer(settings: Settings) -> TracerProvider | None:
    """Install an OTLP span exporter for the ``tickets.*`` spans when enabled."""

    global _active_provider

    if _active_provider is not None or not settings.otel_enabled:
        return None

    resource = Resource(
        attributes={
            "service.name": settings.otel_service_name,
            "deployment.environment": settings.environment,
        }
    )
    provider = TracerProvider(resource=resource)

    exporter_kwargs: dict[str, object] = {}
    if settings.otel_exporter_otlp_endpoint:
        exporter_kwargs["endpoint"] = settings.otel_exporter_otlp_endpoint
    headers = parse_pairs(settings.otel_exporter_otlp_headers)
    if headers:
        exporter_kwargs["headers"] = headers
    provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(**exporter_kwargs)))

    trace.set_tracer_provider(provider)
    _active_provider = provider
    return provider


def shutdown_tracer(provider: TracerProvider | None) -> None:
    """Flush and stop ``provider`` if it is the one installed by :func:`init_tracer`."""

    global _active_provider

    if provider is None:
        return
    provider.shutdown()
    if provider is _active_provider:
        _active_provider = None
