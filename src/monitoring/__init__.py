"""
Monitoring infrastructure for RSS Settlement.

This package provides:
- Settlement metrics collection (counters, gauges, timings)
- Structured logging with JSON output and job context

Usage:
    from monitoring import metrics, get_logger

    # Record a metric
    metrics.increment("settlement_tasks_submitted")
    metrics.timing("settlement_task_duration_ms", 42.5)

    # Get a logger
    logger = get_logger(__name__)
    logger.info("Something happened", extra={"report_id": 12})
"""

from monitoring.logging import LoggingContext, configure_logging, get_logger
from monitoring.metrics import MetricsCollector, metrics

__all__ = [
    "LoggingContext",
    "MetricsCollector",
    "configure_logging",
    "get_logger",
    "metrics",
]
