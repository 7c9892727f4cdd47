# SPDX-License-Identifier: Apache-2.0

"""
OpenTelemetry Configuration

Sets up distributed tracing and structured logging for the Civil Registry
API. Sampling and exporters depend on the deployment environment.
"""

import json
import logging
import os
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from opentelemetry import trace
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.sampling import TraceIdRatioBased
from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter
from opentelemetry.sdk.resources import Resource
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter

SERVICE_NAME = 'civil-registry-api'

SAMPLING_RATIOS = {
    'production': 0.1,
    'staging': 0.5,
}

# LogRecord attributes that are not structured extra fields
_RESERVED_ATTRS = frozenset((
    "name", "msg", "args", "created", "levelname", "levelno", "pathname",
    "filename", "module", "lineno", "funcName", "exc_info", "exc_text",
    "stack_info", "message", "msecs", "relativeCreated", "thread",
    "threadName", "processName", "process", "taskName"
))

_configured = False


def setup_observability(config: Optional[Dict[str, Any]] = None) -> Optional[TracerProvider]:
    """
    Initialize tracing and logging based on the environment.

    Args:
        config: Application settings; read from the environment when omitted

    Returns:
        The installed tracer provider, None when tracing is disabled
    """
    global _configured
    config = config or {}
    environment = config.get('ENVIRONMENT', os.getenv('ENVIRONMENT', 'development'))
    otel_enabled = config.get('OTEL_ENABLED', os.getenv('OTEL_ENABLED', 'true').lower() == 'true')
    service_version = config.get('SERVICE_VERSION', os.getenv('SERVICE_VERSION', '1.0.0'))

    setup_structured_logging(environment)

    if not otel_enabled or _configured:
        return None

    resource = Resource.create({
        "service.name": SERVICE_NAME,
        "service.version": service_version,
        "deployment.environment": environment
    })
    tracer_provider = TracerProvider(
        sampler=TraceIdRatioBased(SAMPLING_RATIOS.get(environment, 1.0)),
        resource=resource
    )

    if environment == 'development':
        tracer_provider.add_span_processor(BatchSpanProcessor(ConsoleSpanExporter()))
    else:
        otlp_endpoint = os.getenv('OTEL_EXPORTER_OTLP_ENDPOINT', 'http://localhost:4317')
        api_key = os.getenv('OTEL_API_KEY')
        headers = {"authorization": f"Bearer {api_key}"} if api_key else None
        tracer_provider.add_span_processor(
            BatchSpanProcessor(
                OTLPSpanExporter(endpoint=otlp_endpoint, headers=headers),
                max_export_batch_size=512
            )
        )

    trace.set_tracer_provider(tracer_provider)
    _configured = True
    return tracer_provider


class StructuredFormatter(logging.Formatter):
    """
    JSON formatter carrying the active trace and span ids.

    Output format:
    {
        "timestamp": "2024-01-15T10:30:00+00:00",
        "level": "INFO",
        "logger": "registry_api.services.registrations",
        "message": "Registration approve completed",
        "trace_id": "...",
        "span_id": "...",
        ...extra fields...
    }
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        span_context = trace.get_current_span().get_span_context()
        if span_context.is_valid:
            log_data["trace_id"] = format(span_context.trace_id, "032x")
            log_data["span_id"] = format(span_context.span_id, "016x")

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        for key, value in record.__dict__.items():
            if key in _RESERVED_ATTRS or key.startswith("_"):
                continue
            try:
                json.dumps(value)
                log_data[key] = value
            except (TypeError, ValueError):
                log_data[key] = str(value)

        return json.dumps(log_data)


def setup_structured_logging(environment: str) -> None:
    """Configure structured JSON logging with trace correlation."""
    log_level = {
        'production': logging.WARNING,
        'staging': logging.INFO,
        'development': logging.DEBUG,
        'test': logging.WARNING
    }.get(environment, logging.INFO)

    handler = logging.StreamHandler()
    handler.setFormatter(StructuredFormatter())

    root = logging.getLogger()
    root.setLevel(log_level)
    for existing in list(root.handlers):
        if isinstance(existing.formatter, StructuredFormatter):
            root.removeHandler(existing)
    root.addHandler(handler)

    if environment == 'production':
        logging.getLogger('pika').setLevel(logging.ERROR)
        logging.getLogger('pymongo').setLevel(logging.WARNING)
    elif environment == 'development':
        logging.getLogger('registry_api').setLevel(logging.DEBUG)
        logging.getLogger('pika').setLevel(logging.WARNING)
