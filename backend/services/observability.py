"""
Module: observability.py
Description: Logging, metrics and timing helpers for the PiggyBank API.

Features:
    - Structured logging with per-request context
    - Rotating file logs (combined + errors) configured from Settings
    - Timing decorators for performance monitoring
    - In-process metrics for the /metrics endpoint

Usage:
    from services.observability import logger, metrics, timed

    @timed("ledger.transfer")
    def transfer(...):
        logger.info("Transfer completed", amount=str(amount))
        ...
"""

import os
import time
import logging
import functools
import asyncio
from contextvars import ContextVar
from datetime import datetime
from logging.handlers import RotatingFileHandler
from typing import Dict, Any, Optional, Callable
from collections import defaultdict
from contextlib import contextmanager


LOGGER_NAME = "piggybank"
LOG_FORMAT = '%(asctime)s | %(levelname)s | %(message)s'
LOG_DATEFMT = '%Y-%m-%d %H:%M:%S'
LOG_FILE_MAX_BYTES = 5 * 1024 * 1024
LOG_FILE_BACKUPS = 5

_log_context: ContextVar[Dict[str, Any]] = ContextVar("log_context", default={})


# =============================================================================
# Structured Logger
# =============================================================================

class StructuredLogger:
    """
    Structured logger that appends key=value fields to every message.

    Context set with set_context() is stored in a ContextVar, so each
    request handled by the event loop sees only its own fields.
    """

    def __init__(self, name: str = LOGGER_NAME):
        """Initialize logger with given name."""
        self.logger = logging.getLogger(name)
        self.logger.setLevel(logging.INFO)

        if not self.logger.handlers:
            handler = logging.StreamHandler()
            handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=LOG_DATEFMT))
            self.logger.addHandler(handler)

    def set_context(self, **kwargs) -> None:
        """Set context fields that will be included in all logs of this request."""
        _log_context.set({**_log_context.get(), **kwargs})

    def clear_context(self) -> None:
        """Clear all context fields."""
        _log_context.set({})

    def _format_message(self, message: str, **kwargs) -> str:
        """Format message with context and additional fields."""
        fields = {**_log_context.get(), **kwargs}
        if fields:
            field_str = " | ".join(f"{k}={v}" for k, v in fields.items())
            return f"{message} | {field_str}"
        return message

    def info(self, message: str, **kwargs) -> None:
        self.logger.info(self._format_message(message, **kwargs))

    def warning(self, message: str, **kwargs) -> None:
        self.logger.warning(self._format_message(message, **kwargs))

    def error(self, message: str, **kwargs) -> None:
        self.logger.error(self._format_message(message, **kwargs))

    def debug(self, message: str, **kwargs) -> None:
        self.logger.debug(self._format_message(message, **kwargs))

    def exception(self, message: str, **kwargs) -> None:
        """Log exception with traceback."""
        self.logger.exception(self._format_message(message, **kwargs))


def configure_logging(level: str = "info", log_dir: Optional[str] = None) -> None:
    """
    Apply the configured level and attach rotating file handlers.

    Args:
        level: One of error|warning|info|debug.
        log_dir: Directory for combined.log and error.log. None keeps console only.
    """
    base = logging.getLogger(LOGGER_NAME)
    base.setLevel(getattr(logging, level.upper(), logging.INFO))

    if not log_dir:
        return

    os.makedirs(log_dir, exist_ok=True)
    formatter = logging.Formatter(LOG_FORMAT, datefmt=LOG_DATEFMT)
    existing = {getattr(h, "baseFilename", None) for h in base.handlers}

    for filename, handler_level in (("combined.log", logging.DEBUG), ("error.log", logging.ERROR)):
        path = os.path.abspath(os.path.join(log_dir, filename))
        if path in existing:
            continue
        handler = RotatingFileHandler(
            path, maxBytes=LOG_FILE_MAX_BYTES, backupCount=LOG_FILE_BACKUPS
        )
        handler.setLevel(handler_level)
        handler.setFormatter(formatter)
        base.addHandler(handler)


# =============================================================================
# Metrics Collector
# =============================================================================

class MetricsCollector:
    """
    Simple in-memory metrics collection for monitoring and debugging.

    Collects:
        - Counters (requests, errors, ledger operations)
        - Gauges (current values)
        - Histograms (timing distributions)

    Note: Per process only. Swap for a Prometheus client when running several workers.
    """

    def __init__(self):
        """Initialize metrics storage."""
        self.counters: Dict[str, int] = defaultdict(int)
        self.gauges: Dict[str, float] = {}
        self.timings: Dict[str, list] = defaultdict(list)
        self._start_time = datetime.utcnow()

    def increment(self, name: str, value: int = 1, tags: Dict[str, str] = None) -> None:
        """Increment a counter."""
        key = self._make_key(name, tags)
        self.counters[key] += value

    def gauge(self, name: str, value: float, tags: Dict[str, str] = None) -> None:
        """Set a gauge value."""
        key = self._make_key(name, tags)
        self.gauges[key] = value

    def timing(self, name: str, duration_ms: float, tags: Dict[str, str] = None) -> None:
        """Record a timing measurement."""
        key = self._make_key(name, tags)
        self.timings[key].append(duration_ms)
        # Keep only last 1000 measurements
        if len(self.timings[key]) > 1000:
            self.timings[key] = self.timings[key][-1000:]

    def _make_key(self, name: str, tags: Optional[Dict[str, str]] = None) -> str:
        if tags:
            tag_str = ",".join(f"{k}={v}" for k, v in sorted(tags.items()))
            return f"{name}:{tag_str}"
        return name

    def get_summary(self) -> Dict[str, Any]:
        """Get summary of all metrics."""
        summary = {
            "uptime_seconds": (datetime.utcnow() - self._start_time).total_seconds(),
            "counters": dict(self.counters),
            "gauges": dict(self.gauges),
            "timings": {},
        }

        for name, values in self.timings.items():
            if values:
                ordered = sorted(values)
                summary["timings"][name] = {
                    "count": len(values),
                    "avg_ms": sum(values) / len(values),
                    "min_ms": ordered[0],
                    "max_ms": ordered[-1],
                    "p50_ms": ordered[len(values) // 2],
                    "p95_ms": ordered[int(len(values) * 0.95)] if len(values) >= 20 else None,
                }

        return summary

    def reset(self) -> None:
        self.counters.clear()
        self.gauges.clear()
        self.timings.clear()


# =============================================================================
# Timing Decorators
# =============================================================================

def timed(name: str = None):
    """
    Decorator to time function execution and record metrics.

    Args:
        name: Metric name (defaults to function name).

    Example:
        @timed("ledger.deposit")
        def deposit(...):
            ...
    """
    def decorator(func: Callable) -> Callable:
        metric_name = name or func.__name__

        @functools.wraps(func)
        def sync_wrapper(*args, **kwargs):
            start = time.perf_counter()
            try:
                result = func(*args, **kwargs)
                metrics.increment(f"{metric_name}.success")
                return result
            except Exception:
                metrics.increment(f"{metric_name}.error")
                raise
            finally:
                duration_ms = (time.perf_counter() - start) * 1000
                metrics.timing(metric_name, duration_ms)
                logger.debug(f"{metric_name} completed", duration_ms=f"{duration_ms:.2f}")

        @functools.wraps(func)
        async def async_wrapper(*args, **kwargs):
            start = time.perf_counter()
            try:
                result = await func(*args, **kwargs)
                metrics.increment(f"{metric_name}.success")
                return result
            except Exception:
                metrics.increment(f"{metric_name}.error")
                raise
            finally:
                duration_ms = (time.perf_counter() - start) * 1000
                metrics.timing(metric_name, duration_ms)
                logger.debug(f"{metric_name} completed", duration_ms=f"{duration_ms:.2f}")

        if asyncio.iscoroutinefunction(func):
            return async_wrapper
        return sync_wrapper

    return decorator


@contextmanager
def timed_block(name: str):
    """
    Context manager for timing code blocks.

    Example:
        with timed_block("dashboard.analytics"):
            build_analytics()
    """
    start = time.perf_counter()
    try:
        yield
        metrics.increment(f"{name}.success")
    except Exception:
        metrics.increment(f"{name}.error")
        raise
    finally:
        duration_ms = (time.perf_counter() - start) * 1000
        metrics.timing(name, duration_ms)


# =============================================================================
# Global Instances
# =============================================================================

logger = StructuredLogger()

metrics = MetricsCollector()


# =============================================================================
# Convenience Functions
# =============================================================================

def log_request(method: str, path: str, status_code: int, duration_ms: float, **fields) -> None:
    """Log a finished HTTP request at a level matching its status."""
    fields = {"method": method, "path": path, "status": status_code,
              "duration_ms": f"{duration_ms:.1f}", **fields}
    if status_code >= 500:
        logger.error("Request failed", **fields)
    elif status_code >= 400:
        logger.warning("Request error", **fields)
    else:
        logger.info("Request completed", **fields)
    metrics.increment("http.requests", tags={"status": str(status_code // 100) + "xx"})
    metrics.timing("http.latency", duration_ms)


def log_ledger_rejected(operation: str, kind: str, user_id: str) -> None:
    """Log a ledger operation refused by a business rule."""
    logger.info("Ledger operation rejected", operation=operation, kind=kind, user=user_id[:8])
    metrics.increment("ledger.rejected", tags={"operation": operation, "kind": kind})


def log_chat_request(user_id: str, message_length: int) -> None:
    logger.info("Chat request", user=user_id[:8], msg_length=message_length)
    metrics.increment("chat.requests")


def log_openai_call(endpoint: str, tokens: int, duration_ms: float) -> None:
    """Log an OpenAI API call."""
    logger.debug("OpenAI API call", endpoint=endpoint, tokens=tokens, duration_ms=f"{duration_ms:.2f}")
    metrics.increment("openai.calls")
    metrics.increment("openai.tokens", tokens)
    metrics.timing("openai.latency", duration_ms)
