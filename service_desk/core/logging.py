"""Logging and tracing setup for the service desk API."""

from __future__ import annotations

import logging
from logging.config import dictConfig
from typing import Any
from urllib.parse import unquote

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor

from service_desk import __version__
from service_desk.core.config import Settings

APP_LOGGER = "service_desk"

_installed_provider: TracerProvider | None = None


def parse_otlp_headers(header_string: str | None) -> dict[str, str]:
    """Parse ``OTEL_EXPORTER_OTLP_HEADERS`` style lists (``k=v,k2=v2``).

    Values are percent-decoded; entries without a key or ``=`` are ignored.
    """

    pairs = (item.partition("=") for item in (header_string or "").split(","))
    return {key.strip(): unquote(value.strip()) for key, sep, value in pairs if sep and key.strip()}


def _level(name: str) -> int:
    level = logging.getLevelName(name.upper())
    return level if isinstance(level, int) else logging.INFO


def build_logging_config(settings: Settings) -> dict[str, Any]:
    level = _level(settings.log_level)
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {"plain": {"format": settings.log_format}},
        "handlers": {
            "console": {"class": "logging.StreamHandler", "formatter": "plain", "level": level},
        },
        "loggers": {
            APP_LOGGER: {"level": level},
            # statement echo goes through the engine's own logger
            "sqlalchemy.engine": {"level": logging.INFO if settings.sql_echo else logging.WARNING},
        },
        "root": {"handlers": ["console"], "level": level},
    }


def configure_logging(settings: Settings) -> logging.Logger:
    """Install the console handler and return the ``service_desk`` logger."""

    dictConfig(build_logging_config(settings))
    return logging.getLogger(APP_LOGGER)


def init_tracer(settings: Settings) -> TracerProvider | None:
    """Install an OTLP/HTTP tracer provider when tracing is enabled.

    Returns ``None`` when tracing is off or a provider is already installed.
    Spans opened by the lifecycle service go to the no-op tracer otherwise.
    """

    global _installed_provider

    if _installed_provider is not None or not settings.otel_enabled:
        return None

    provider = TracerProvider(
        resource=Resource(
            attributes={
                "service.name": settings.otel_service_name,
                "service.version": __version__,
                "deployment.environment": settings.environment,
            }
        )
    )
    exporter = OTLPSpanExporter(
        endpoint=settings.otel_exporter_otlp_endpoint,
        headers=parse_otlp_headers(settings.otel_exporter_otlp_headers) or None,
    )
    provider.add_span_processor(BatchSpanProcessor(exporter))
    trace.set_tracer_provider(provider)
    _installed_provider = provider
    return provider


def shutdown_tracer(provider: TracerProvider | None) -> None:
    global _installed_provider

    if provider is None:
        return
    provider.shutdown()
    if provider is _installed_provider:
        _installed_provider = None
