"""
Metrics and observability components.

Writer counters and Prometheus exposition.
"""

from redis_writer.components.metrics.collector import WriterMetrics
from redis_writer.components.metrics.prometheus import (
    PrometheusFormatter,
    generate_prometheus_metrics,
)

__all__ = [
    "WriterMetrics",
    "PrometheusFormatter",
    "generate_prometheus_metrics",
]
