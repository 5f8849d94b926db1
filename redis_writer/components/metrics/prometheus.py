"""
Prometheus Metrics Export for the Redis Writer.

Formats RedisWriter.get_stats() in Prometheus exposition format.
No external dependencies required.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from enum import Enum
from typing import Any


# =============================================================================
# Metric Types
# =============================================================================


class MetricType(str, Enum):
    """Prometheus metric types."""

    COUNTER = "counter"
    GAUGE = "gauge"


@dataclass(frozen=True)
class MetricDefinition:
    """Definition of a metric for Prometheus output."""

    name: str
    help_text: str
    metric_type: MetricType
    source: str  # Key in the "metrics" section of the stats dict


# =============================================================================
# Metric Definitions
# =============================================================================

COUNTER_DEFINITIONS: list[MetricDefinition] = [
    MetricDefinition(
        name="redis_writer_events_received_total",
        help_text="Events received from the monitoring event bus",
        metric_type=MetricType.COUNTER,
        source="events_received",
    ),
    MetricDefinition(
        name="redis_writer_events_published_total",
        help_text="Events stored in Redis with their TTL set",
        metric_type=MetricType.COUNTER,
        source="events_published",
    ),
    MetricDefinition(
        name="redis_writer_events_dropped_total",
        help_text="Events dropped because a store command failed or the store was down",
        metric_type=MetricType.COUNTER,
        source="events_dropped",
    ),
    MetricDefinition(
        name="redis_writer_fanout_pushes_total",
        help_text="Event indices pushed onto subscriber lists",
        metric_type=MetricType.COUNTER,
        source="fanout_pushes",
    ),
    MetricDefinition(
        name="redis_writer_fanout_aborted_total",
        help_text="Fan-outs aborted part way by a failed push",
        metric_type=MetricType.COUNTER,
        source="fanout_aborted",
    ),
    MetricDefinition(
        name="redis_writer_reconnect_attempts_total",
        help_text="Connection attempts made while disconnected",
        metric_type=MetricType.COUNTER,
        source="reconnect_attempts",
    ),
    MetricDefinition(
        name="redis_writer_reconnect_failures_total",
        help_text="Connection attempts that failed",
        metric_type=MetricType.COUNTER,
        source="reconnect_failures",
    ),
    MetricDefinition(
        name="redis_writer_subscription_refreshes_total",
        help_text="Successful subscription table refreshes",
        metric_type=MetricType.COUNTER,
        source="subscription_refreshes",
    ),
    MetricDefinition(
        name="redis_writer_subscription_decode_errors_total",
        help_text="Subscriber records skipped because they could not be decoded",
        metric_type=MetricType.COUNTER,
        source="subscription_decode_errors",
    ),
]


# =============================================================================
# Prometheus Formatter
# =============================================================================


class PrometheusFormatter:
    """
    Formats metrics in Prometheus text exposition format.

    Reference: https://prometheus.io/docs/instrumenting/exposition_formats/

    Usage:
        formatter = PrometheusFormatter()
        output = formatter.format_all_metrics(writer.get_stats())
    """

    def format_metric(
        self,
        name: str,
        value: float | int,
        help_text: str,
        metric_type: MetricType,
        labels: dict[str, str] | None = None,
    ) -> str:
        lines = [
            f"# HELP {name} {help_text}",
            f"# TYPE {name} {metric_type.value}",
        ]
        if labels:
            label_str = ",".join(f'{k}="{v}"' for k, v in labels.items())
            lines.append(f"{name}{{{label_str}}} {value}")
        else:
            lines.append(f"{name} {value}")
        return "\n".join(lines)

    def format_all_metrics(self, stats: dict[str, Any]) -> str:
        """
        Format all metrics from RedisWriter stats.

        Args:
            stats: Stats dictionary from RedisWriter.get_stats().

        Returns:
            Complete Prometheus exposition format string.
        """
        lines: list[str] = []
        metrics = stats.get("metrics", {})
        connection = stats.get("connection", {})
        work_queue = stats.get("work_queue", {})
        subscriptions = stats.get("subscriptions", {})

        lines.append(self.format_metric(
            "redis_writer_connected",
            1 if connection.get("state") == "connected" else 0,
            "Whether the store connection is up",
            MetricType.GAUGE,
        ))

        lines.append(self.format_metric(
            "redis_writer_work_queue_pending",
            work_queue.get("pending", 0),
            "Work items waiting for the store worker",
            MetricType.GAUGE,
        ))

        lines.append(self.format_metric(
            "redis_writer_work_items_failed_total",
            work_queue.get("failed", 0),
            "Work items that raised an unexpected exception",
            MetricType.COUNTER,
        ))

        lines.append(self.format_metric(
            "redis_writer_subscribers",
            subscriptions.get("subscribers", 0),
            "Subscribers in the current subscription table",
            MetricType.GAUGE,
        ))

        for definition in COUNTER_DEFINITIONS:
            lines.append(self.format_metric(
                definition.name,
                metrics.get(definition.source, 0),
                definition.help_text,
                definition.metric_type,
            ))

        lines.append(self.format_metric(
            "redis_writer_scrape_timestamp",
            int(time.time()),
            "Timestamp of metrics scrape",
            MetricType.GAUGE,
        ))

        return "\n".join(lines) + "\n"


# =============================================================================
# Singleton formatter
# =============================================================================

_formatter: PrometheusFormatter | None = None


def get_prometheus_formatter() -> PrometheusFormatter:
    """Get singleton Prometheus formatter."""
    global _formatter
    if _formatter is None:
        _formatter = PrometheusFormatter()
    return _formatter


def generate_prometheus_metrics(stats: dict[str, Any]) -> str:
    """Render a RedisWriter stats snapshot as Prometheus text."""
    return get_prometheus_formatter().format_all_metrics(stats)
