"""
Logging and tracing setup backed by OpenTelemetry OTLP exporters.
"""

from __future__ import annotations

import logging
import os
from logging.handlers import RotatingFileHandler
from typing import Optional

from opentelemetry import _logs, trace
from opentelemetry.exporter.otlp.proto.grpc._log_exporter import (
    OTLPLogExporter as GrpcOTLPLogExporter,
)
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import (
    OTLPSpanExporter as GrpcOTLPSpanExporter,
)
from opentelemetry.exporter.otlp.proto.http._log_exporter import (
    OTLPLogExporter as HttpOTLPLogExporter,
)
from opentelemetry.exporter.otlp.proto.http.trace_exporter import (
    OTLPSpanExporter as HttpOTLPSpanExporter,
)
from opentelemetry.instrumentation.logging import LoggingInstrumentor
from opentelemetry.sdk._logs import LoggerProvider, LoggingHandler
from opentelemetry.sdk._logs.export import BatchLogRecordProcessor
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor

from solrbridge.config import settings

DEFAULT_LOG_DIR = "./"
DEFAULT_LOG_FILE = "solrbridge.log"
DEFAULT_LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
TRACER_NAME = "solrbridge"

_initialized = False


def get_root_logger() -> logging.Logger:
    return logging.getLogger("")


def get_tracer() -> trace.Tracer:
    """Tracer used around remote executions; a no-op until setup_logging installs a provider."""
    return trace.get_tracer(TRACER_NAME)


def _build_formatter() -> logging.Formatter:
    return logging.Formatter(
        fmt="%(asctime)s %(levelname)s [%(name)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def _build_file_handler(log_dir: str, log_file: str, *, formatter: logging.Formatter) -> RotatingFileHandler:
    os.makedirs(log_dir, exist_ok=True)
    handler = RotatingFileHandler(
        os.path.join(log_dir, log_file),
        maxBytes=10 * 1024 * 1024,
        backupCount=5,
        encoding="utf-8",
    )
    handler.setFormatter(formatter)
    return handler


def _ensure_handlers(logger: logging.Logger, handlers: list[logging.Handler]) -> None:
    existing = set(logger.handlers)
    for handler in handlers:
        if handler not in existing:
            logger.addHandler(handler)


def _bool_env(name: str) -> bool:
    return os.getenv(name, "").strip().lower() in {"1", "true", "yes", "on"}


def _exporter_enabled(env_key: str) -> bool:
    return os.getenv(env_key, "otlp").strip().lower() not in {"none", "disabled"}


def _protocol(env_key: str) -> str:
    value = os.getenv(env_key) or os.getenv("OTEL_EXPORTER_OTLP_PROTOCOL", "grpc")
    return value.strip().lower()


def _build_log_exporter() -> Optional[object]:
    if not _exporter_enabled("OTEL_LOGS_EXPORTER"):
        return None
    if _protocol("OTEL_EXPORTER_OTLP_LOGS_PROTOCOL") in {"http/protobuf", "http"}:
        return HttpOTLPLogExporter()
    return GrpcOTLPLogExporter()


def _build_span_exporter() -> Optional[object]:
    if not _exporter_enabled("OTEL_TRACES_EXPORTER"):
        return None
    if _protocol("OTEL_EXPORTER_OTLP_TRACES_PROTOCOL") in {"http/protobuf", "http"}:
        return HttpOTLPSpanExporter()
    return GrpcOTLPSpanExporter()


def setup_logging(
    *,
    service_name: Optional[str] = None,
    level: str | int = DEFAULT_LOG_LEVEL,
    log_dir: str = DEFAULT_LOG_DIR,
    log_file: str = DEFAULT_LOG_FILE,
    with_console: bool = True,
) -> logging.Logger:
    """
    Configure root logging and, unless OTEL_SDK_DISABLED is set, OTLP log and span export.
    Safe to call more than once; handlers and providers are only installed on the first call.
    """
    global _initialized

    root = get_root_logger()
    root.setLevel(level)
    if _initialized:
        return root
    _initialized = True

    formatter = _build_formatter()
    handlers: list[logging.Handler] = []
    if with_console:
        console = logging.StreamHandler()
        console.setFormatter(formatter)
        handlers.append(console)

    if _bool_env("OTEL_SDK_DISABLED"):
        handlers.insert(0, _build_file_handler(log_dir, log_file, formatter=formatter))
        _ensure_handlers(root, handlers)
        root.debug("Logging initialised without OpenTelemetry (level=%s).", level)
        return root

    resource = Resource.create({"service.name": service_name or settings.SOLRBRIDGE_SERVICE_NAME})

    tracer_provider = TracerProvider(resource=resource)
    trace.set_tracer_provider(tracer_provider)
    span_exporter = _build_span_exporter()
    if span_exporter is not None:
        tracer_provider.add_span_processor(BatchSpanProcessor(span_exporter))

    logger_provider = LoggerProvider(resource=resource)
    _logs.set_logger_provider(logger_provider)
    log_exporter = _build_log_exporter()
    if log_exporter is not None:
        logger_provider.add_log_record_processor(BatchLogRecordProcessor(log_exporter))
        handlers.insert(0, LoggingHandler(level=level, logger_provider=logger_provider))

    LoggingInstrumentor().instrument(set_logging_format=False)
    _ensure_handlers(root, handlers)
    root.propagate = True
    return root
