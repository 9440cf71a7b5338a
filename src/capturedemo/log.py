"""log.py - logger and tracer.

stdout belongs to the demos. every log line goes to stderr, prefixed
with the time and the subsystem, and is recorded as an event on the
current span. a registered sink sees every line, whatever the level.
"""

import sys
from contextlib import contextmanager
from datetime import datetime

from opentelemetry import trace
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import (
    SimpleSpanProcessor,
    ConsoleSpanExporter,
)

# ============================================================
# TRACER SETUP
# ============================================================

_provider = TracerProvider()
_tracer = _provider.get_tracer("capturedemo", "0.1.0")
_console_export = False


def enable_console_export():
    """turn on span export to stderr."""
    global _console_export
    if not _console_export:
        _provider.add_span_processor(
            SimpleSpanProcessor(ConsoleSpanExporter(out=sys.stderr))
        )
        _console_export = True


def add_exporter(exporter):
    """add a custom span exporter (OTLP, in-memory for tests, etc)."""
    _provider.add_span_processor(SimpleSpanProcessor(exporter))


# ============================================================
# LOGGER
# ============================================================

LEVELS = {"debug": 10, "info": 20, "warn": 30, "error": 40}

_level = LEVELS["info"]
_sink = None
_flush = None


def set_level(level: str):
    """only lines at or above this level reach stderr."""
    global _level
    if level not in LEVELS:
        raise ValueError(f"unknown log level: {level!r} (one of {', '.join(LEVELS)})")
    _level = LEVELS[level]


def get_level() -> str:
    for name, value in LEVELS.items():
        if value == _level:
            return name
    return "info"


def set_sink(fn, flush_fn=None):
    """register where logs go besides the console. fn(subsystem, level, message, attrs).
    optional flush_fn is called by flush_sink()."""
    global _sink, _flush
    _sink = fn
    _flush = flush_fn


def flush_sink():
    if _flush is not None:
        try:
            _flush()
        except Exception:
            pass


def log(subsystem: str, level: str, message: str, **attrs):
    """log to stderr, record as span event, forward to sink."""
    if LEVELS.get(level, LEVELS["info"]) >= _level:
        ts = datetime.now().strftime("%H:%M:%S")
        print(f"[{ts} capturedemo:{subsystem}] {message}", file=sys.stderr)

    span = trace.get_current_span()
    if span and span.is_recording():
        span.add_event(
            f"capturedemo.{subsystem}.{level}",
            attributes={"message": message, "subsystem": subsystem,
                        **{k: str(v) for k, v in attrs.items()}},
        )

    if _sink is not None:
        try:
            _sink(subsystem, level, message, attrs if attrs else None)
        except Exception:
            pass  # sink errors never block the caller


def debug(subsystem: str, message: str, **attrs):
    log(subsystem, "debug", message, **attrs)


def info(subsystem: str, message: str, **attrs):
    log(subsystem, "info", message, **attrs)


def warn(subsystem: str, message: str, **attrs):
    log(subsystem, "warn", message, **attrs)


def error(subsystem: str, message: str, **attrs):
    log(subsystem, "error", message, **attrs)


# ============================================================
# SPANS
# ============================================================

@contextmanager
def span(name: str, subsystem: str = "capturedemo", **attrs):
    """Create a traced span. Logs inside it become span events.

    Usage:
        with span("classify", subsystem="closure", closure="inc"):
            ...
    """
    with _tracer.start_as_current_span(
        f"capturedemo.{subsystem}.{name}",
        attributes={f"capturedemo.{k}": str(v) for k, v in attrs.items()},
    ) as s:
        s.set_attribute("capturedemo.subsystem", subsystem)
        yield s


@contextmanager
def demo_span(demo: str, **attrs):
    """Span around one demonstration routine."""
    with span("run", subsystem="demo", demo=demo, **attrs) as s:
        yield s
