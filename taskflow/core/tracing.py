# taskflow/core/tracing.py - Trace-aware structured logging with optional OpenTelemetry

import os
import socket
import traceback
import sys
import json
import random
from datetime import datetime, timezone
from typing import Optional
from loguru import logger
from contextvars import ContextVar

from opentelemetry import trace
from opentelemetry.sdk.resources import SERVICE_NAME, Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.sqlalchemy import SQLAlchemyInstrumentor

from taskflow.core.config import settings

SERVICE = "taskflow-api"
VERSION = "1.0.0"

# Context variables for manual trace propagation
_trace_id_context: ContextVar[str] = ContextVar('trace_id', default='no-trace')
_span_id_context: ContextVar[str] = ContextVar('span_id', default='no-span')

_tracer_provider: Optional[TracerProvider] = None


def generate_trace_id() -> str:
    """Generate a 128-bit trace ID as 32-character hex string"""
    return f"{random.getrandbits(128):032x}"


def generate_span_id() -> str:
    """Generate a 64-bit span ID as 16-character hex string"""
    return f"{random.getrandbits(64):016x}"


class TracingMiddleware:
    """Binds a trace context to every HTTP request and echoes it as X-Trace-ID"""

    def __init__(self, app):
        self.app = app

    async def __call__(self, scope, receive, send):
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        trace_id, span_id = None, None

        # Prefer the span opened by the FastAPI instrumentation
        span_context = trace.get_current_span().get_span_context()
        if span_context.is_valid:
            trace_id = f"{span_context.trace_id:032x}"
            span_id = f"{span_context.span_id:016x}"

        if not trace_id:
            trace_id = generate_trace_id()
            span_id = generate_span_id()

        _trace_id_context.set(trace_id)
        _span_id_context.set(span_id)

        async def send_with_trace(message):
            if message["type"] == "http.response.start":
                headers = list(message.get("headers", []))
                headers.append((b"x-trace-id", trace_id.encode("latin-1")))
                message["headers"] = headers
            await send(message)

        await self.app(scope, receive, send_with_trace)


def setup_tracing(app, db_engine=None) -> bool:
    """Install the trace middleware, logging sinks and (if enabled) OpenTelemetry"""
    global _tracer_provider

    app.add_middleware(TracingMiddleware)
    setup_structured_logging(enable_json=settings.should_use_json_logging)

    setup_logger = logger.bind(trace_id=generate_trace_id(), span_id=generate_span_id())

    if not settings.ENABLE_OTEL_EXPORTER:
        setup_logger.info("OpenTelemetry disabled in config - using local trace IDs only")
        return True

    try:
        resource = Resource.create({
            SERVICE_NAME: SERVICE,
            "service.version": VERSION,
            "service.environment": settings.ENVIRONMENT,
        })
        _tracer_provider = TracerProvider(resource=resource)
        trace.set_tracer_provider(_tracer_provider)

        if settings.ENABLE_OTEL_CONSOLE_EXPORT:
            _tracer_provider.add_span_processor(BatchSpanProcessor(ConsoleSpanExporter()))
            setup_logger.info("Console span exporter enabled")

        FastAPIInstrumentor.instrument_app(
            app,
            tracer_provider=_tracer_provider,
            excluded_urls="/health,/metrics,/docs,/redoc,/openapi.json"
        )
        setup_logger.info("FastAPI instrumented")

        if db_engine is not None:
            instrument_database(db_engine)

        return True

    except Exception as e:
        setup_logger.exception(f"OpenTelemetry setup failed, falling back to local trace IDs: {e}")
        return False


def instrument_database(db_engine) -> bool:
    """Add SQLAlchemy instrumentation to the (sync side of the) async engine"""
    if not _tracer_provider:
        return False

    try:
        SQLAlchemyInstrumentor().instrument(
            engine=getattr(db_engine, 'sync_engine', db_engine),
            tracer_provider=_tracer_provider,
            enable_commenter=True
        )
        info("SQLAlchemy instrumented")
        return True
    except Exception as e:
        warning(f"SQLAlchemy instrumentation failed: {e}")
        return False


def format_stack_trace(exception_info) -> Optional[str]:
    """Format a loguru exception record for the JSON sink"""
    if not exception_info:
        return None
    if exception_info.traceback:
        return ''.join(traceback.format_exception(
            exception_info.type,
            exception_info.value,
            exception_info.traceback
        ))
    return str(exception_info.value)


def _inject_trace_context(record):
    record["extra"].setdefault("trace_id", _trace_id_context.get())
    record["extra"].setdefault("span_id", _span_id_context.get())


def setup_structured_logging(enable_json: bool = None):
    """Replace loguru's default sink with a trace-aware JSON or console sink"""
    if enable_json is None:
        enable_json = settings.should_use_json_logging

    logger.remove()
    # Plain loguru calls pick up the request trace as well
    logger.configure(patcher=_inject_trace_context)

    hostname = socket.gethostname()
    pid = os.getpid()
    environment = settings.ENVIRONMENT

    if enable_json:
        def json_sink(message):
            record = message.record
            extra = record["extra"]
            trace_id = extra.get("trace_id")
            span_id = extra.get("span_id")

            log_entry = {
                "@timestamp": datetime.now(timezone.utc).isoformat(),
                "level": record["level"].name,
                "message": record["message"],
                "service": {"name": SERVICE, "version": VERSION, "environment": environment},
                "host": {"hostname": hostname},
                "process": {"pid": pid},
                "log": {
                    "logger": record["name"],
                    "function": record["function"],
                    "line": record["line"],
                },
                "trace": {"id": trace_id, "span_id": span_id},
            }

            custom = {k: v for k, v in extra.items() if k not in ("trace_id", "span_id")}
            if custom:
                log_entry["custom"] = custom

            if record["exception"]:
                log_entry["error"] = {
                    "type": record["exception"].type.__name__ if record["exception"].type else "UnknownError",
                    "message": str(record["exception"].value),
                    "stack_trace": format_stack_trace(record["exception"]),
                }

            sys.stderr.write(json.dumps(log_entry, ensure_ascii=False, default=str) + "\n")
            sys.stderr.flush()

        logger.add(json_sink, level=settings.LOG_LEVEL, enqueue=True, catch=True)
    else:
        def format_with_trace(record):
            trace_id = record["extra"].get("trace_id", "no-trace")
            trace_info = f" [trace:{trace_id[:8]}]" if trace_id != "no-trace" else ""
            return (
                "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | <level>{level: <8}</level> | "
                "<cyan>{name}:{function}:{line}</cyan>" + trace_info + " - <level>{message}</level>\n{exception}"
            )

        logger.add(
            sys.stderr,
            format=format_with_trace,
            level=settings.LOG_LEVEL,
            colorize=True,
            enqueue=True,
            catch=True
        )


def get_current_trace_span_ids() -> tuple[str, str]:
    """Current trace_id/span_id; generates and caches a pair outside a request"""
    trace_id = _trace_id_context.get()
    span_id = _span_id_context.get()
    if trace_id != "no-trace" and span_id != "no-span":
        return trace_id, span_id

    trace_id, span_id = generate_trace_id(), generate_span_id()
    set_trace_context(trace_id, span_id)
    return trace_id, span_id


def set_trace_context(trace_id: str, span_id: str):
    """Manually set trace context - useful for scripts and background work"""
    _trace_id_context.set(trace_id)
    _span_id_context.set(span_id)


def get_current_trace_id() -> str:
    trace_id, _ = get_current_trace_span_ids()
    return trace_id


def log_with_trace(level: str, message: str, **kwargs):
    """Log through loguru with the current trace context bound"""
    trace_id, span_id = get_current_trace_span_ids()
    log_func = getattr(logger.bind(trace_id=trace_id, span_id=span_id, **kwargs), level.lower())
    log_func(message)


# Convenience functions
def info(message: str, **kwargs):
    log_with_trace("info", message, **kwargs)


def debug(message: str, **kwargs):
    log_with_trace("debug", message, **kwargs)


def warning(message: str, **kwargs):
    log_with_trace("warning", message, **kwargs)


def error(message: str, **kwargs):
    log_with_trace("error", message, **kwargs)


__all__ = [
    'setup_tracing', 'get_current_trace_span_ids', 'get_current_trace_id',
    'set_trace_context', 'log_with_trace',
    'info', 'debug', 'warning', 'error'
]
