"""
Observability Infrastructure

Structured logging and Prometheus metrics for the production core.
"""

import contextvars
import functools
import inspect
import logging
import sys
import time
import uuid
from collections.abc import Callable
from typing import Any, TypeVar

import structlog
from prometheus_client import Counter, Gauge, Histogram, start_http_server

from .config import Settings, settings

# Context variables for correlation tracking
correlation_id_var: contextvars.ContextVar[str] = contextvars.ContextVar(
    "correlation_id", default=""
)

F = TypeVar("F", bound=Callable[..., Any])

# Prometheus metrics
PRODUCTION_OPERATIONS = Counter(
    "bakery_production_operations_total",
    "Total production engine operations",
    ["operation_type", "status"],
)

PRODUCTION_OPERATION_DURATION = Histogram(
    "bakery_production_operation_duration_seconds",
    "Production engine operation duration",
    ["operation_type"],
)

ACTIVE_BATCHES = Gauge("bakery_active_batches", "Number of monitored batches")

ISSUES_REPORTED = Counter(
    "bakery_issues_reported_total", "Production issues reported", ["severity"]
)

QUALITY_CHECKS = Counter(
    "bakery_quality_checks_total", "Quality checks performed", ["result"]
)

PLANNING_CONFLICTS = Counter(
    "bakery_planning_conflicts_total", "Planning conflicts recorded", ["conflict_type"]
)


class CorrelationIdProcessor:
    """Structlog processor to add correlation ID to all log entries."""

    def __call__(
        self, logger: Any, name: str, event_dict: dict[str, Any]
    ) -> dict[str, Any]:
        correlation_id = correlation_id_var.get("")
        if correlation_id:
            event_dict["correlation_id"] = correlation_id

        return event_dict


def setup_structured_logging(config: Settings | None = None) -> None:
    """Configure structured logging with JSON or console output."""
    config = config or settings
    log_level = getattr(logging, config.LOG_LEVEL.upper(), logging.INFO)

    processors = [
        structlog.contextvars.merge_contextvars,
        CorrelationIdProcessor(),
        structlog.processors.TimeStamper(fmt="ISO"),
        structlog.processors.add_log_level,
        structlog.stdlib.add_logger_name,
    ]

    if config.LOG_FORMAT == "json" or config.is_production:
        processors.extend(
            [
                structlog.processors.format_exc_info,
                structlog.processors.JSONRenderer(),
            ]
        )
    else:
        processors.append(
            structlog.dev.ConsoleRenderer(colors=config.ENVIRONMENT == "local")
        )

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    # Standard library logging for infrastructure adapters
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=log_level,
    )


def setup_metrics(config: Settings | None = None) -> None:
    """Expose Prometheus metrics over HTTP when enabled."""
    config = config or settings
    if not config.ENABLE_METRICS:
        return
    start_http_server(config.METRICS_PORT)


def get_logger(name: str) -> structlog.BoundLogger:
    """Get a structured logger instance."""
    return structlog.get_logger(name)


def set_correlation_id(correlation_id: str | None = None) -> str:
    """Set correlation ID for operation tracking."""
    if correlation_id is None:
        correlation_id = str(uuid.uuid4())

    correlation_id_var.set(correlation_id)
    return correlation_id


def get_correlation_id() -> str:
    """Get current correlation ID."""
    return correlation_id_var.get("")


def log_error_with_context(
    error: Exception,
    operation: str,
    context: dict[str, Any] | None = None,
    severity: str = "error",
    include_traceback: bool = True,
) -> None:
    """Log errors with structured context."""
    logger = get_logger("error_tracking")

    error_data = {
        "operation": operation,
        "error_type": type(error).__name__,
        "error_message": str(error),
        "severity": severity,
        "correlation_id": get_correlation_id(),
    }

    if getattr(error, "details", None):
        error_data["error_details"] = error.details

    if context:
        error_data.update(context)

    if severity == "critical":
        logger.critical(
            "Critical error occurred", **error_data, exc_info=include_traceback
        )
    elif severity == "error":
        logger.error("Error occurred", **error_data, exc_info=include_traceback)
    elif severity == "warning":
        logger.warning("Warning occurred", **error_data)
    else:
        logger.info("Issue occurred", **error_data)


def monitor_performance(operation_type: str):
    """Decorator recording duration and outcome of an operation."""

    def decorator(func: F) -> F:
        def _record(status: str, start_time: float) -> float:
            duration = time.perf_counter() - start_time
            PRODUCTION_OPERATIONS.labels(
                operation_type=operation_type, status=status
            ).inc()
            PRODUCTION_OPERATION_DURATION.labels(operation_type=operation_type).observe(
                duration
            )
            return duration

        @functools.wraps(func)
        async def async_wrapper(*args, **kwargs):
            logger = get_logger(func.__module__)
            start_time = time.perf_counter()
            try:
                result = await func(*args, **kwargs)
            except Exception as e:
                duration = _record("error", start_time)
                logger.debug(
                    "Operation failed",
                    operation=operation_type,
                    duration_seconds=duration,
                    error_type=type(e).__name__,
                )
                raise
            _record("success", start_time)
            return result

        @functools.wraps(func)
        def sync_wrapper(*args, **kwargs):
            logger = get_logger(func.__module__)
            start_time = time.perf_counter()
            try:
                result = func(*args, **kwargs)
            except Exception as e:
                duration = _record("error", start_time)
                logger.debug(
                    "Operation failed",
                    operation=operation_type,
                    duration_seconds=duration,
                    error_type=type(e).__name__,
                )
                raise
            _record("success", start_time)
            return result

        if inspect.iscoroutinefunction(func):
            return async_wrapper  # type: ignore[return-value]
        return sync_wrapper  # type: ignore[return-value]

    return decorator


def initialize_observability(config: Settings | None = None) -> None:
    """Initialize logging and metrics."""
    setup_structured_logging(config)
    setup_metrics(config)

    logger = get_logger(__name__)
    logger.info(
        "Observability initialized",
        log_level=(config or settings).LOG_LEVEL,
        metrics_enabled=(config or settings).ENABLE_METRICS,
    )
