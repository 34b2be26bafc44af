"""Monitoring module for structured logging and cache metrics."""

from fpl_sync.monitoring.logging import (
    bind_correlation_id,
    configure_logging,
    get_logger,
    unbind_correlation_id,
)
from fpl_sync.monitoring.metrics import CacheMetrics

__all__ = [
    "configure_logging",
    "get_logger",
    "bind_correlation_id",
    "unbind_correlation_id",
    "CacheMetrics",
]
