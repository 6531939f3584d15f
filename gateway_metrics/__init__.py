"""Usage telemetry pipeline and dashboard API for LLM gateways."""

from gateway_metrics.runtime import MetricsRuntime
from gateway_metrics.server import DashboardServer
from gateway_metrics.services.collector import UsageCollector
from gateway_metrics.services.store import MetricsStore

__all__ = ["DashboardServer", "MetricsRuntime", "MetricsStore", "UsageCollector"]
