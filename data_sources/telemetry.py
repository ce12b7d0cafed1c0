"""
Telemetry and Analytics System
Tracks request volume, latency, result counts and errors per endpoint
"""

import statistics
import time
import threading
from typing import Dict, List, Optional, Any
from collections import Counter
from dataclasses import dataclass, field, asdict

from logging_config import get_logger

logger = get_logger(__name__)


@dataclass
class RequestMetrics:
    """Metrics for a single API request."""
    timestamp: float
    endpoint: str
    response_time: float
    result_count: int = 0
    transport_type: Optional[str] = None
    activity: Optional[str] = None
    success: bool = True
    error_type: Optional[str] = None


@dataclass
class EndpointStats:
    """Aggregated statistics for one endpoint."""
    endpoint: str
    request_count: int = 0
    error_count: int = 0
    avg_response_time: float = 0.0
    avg_result_count: float = 0.0
    error_types: Dict[str, int] = field(default_factory=dict)


class TelemetryCollector:
    """Collects and analyzes telemetry data for AroundUs."""

    def __init__(self, max_requests: int = 10000):
        self.max_requests = max_requests
        self.requests: List[RequestMetrics] = []
        self.lock = threading.Lock()
        self.start_time = time.time()

        self.total_requests = 0
        self.error_count = 0
        self.endpoint_stats: Dict[str, EndpointStats] = {}

    def record_request(self, metrics: RequestMetrics) -> None:
        """Record metrics for a single request."""
        with self.lock:
            self.requests.append(metrics)
            self.total_requests += 1
            if not metrics.success:
                self.error_count += 1

            # Maintain max size
            if len(self.requests) > self.max_requests:
                self.requests = self.requests[-self.max_requests:]

            self._update_endpoint_stats(metrics)

    def _update_endpoint_stats(self, metrics: RequestMetrics) -> None:
        stats = self.endpoint_stats.get(metrics.endpoint)
        if stats is None:
            stats = EndpointStats(endpoint=metrics.endpoint)
            self.endpoint_stats[metrics.endpoint] = stats

        stats.request_count += 1
        n = stats.request_count
        stats.avg_response_time = (stats.avg_response_time * (n - 1) + metrics.response_time) / n
        stats.avg_result_count = (stats.avg_result_count * (n - 1) + metrics.result_count) / n

        if not metrics.success:
            stats.error_count += 1
            key = metrics.error_type or "unknown"
            stats.error_types[key] = stats.error_types.get(key, 0) + 1

    def get_overall_stats(self) -> Dict[str, Any]:
        """Get overall system statistics."""
        with self.lock:
            if not self.requests:
                return {"error": "No data available"}

            response_times = [r.response_time for r in self.requests]
            uptime_hours = (time.time() - self.start_time) / 3600
            error_rate = (self.error_count / self.total_requests) * 100 if self.total_requests > 0 else 0

            transport_dist = dict(Counter(r.transport_type for r in self.requests if r.transport_type))
            activity_dist = dict(Counter(r.activity for r in self.requests if r.activity))

            return {
                "system_metrics": {
                    "total_requests": self.total_requests,
                    "uptime_hours": round(uptime_hours, 2),
                    "requests_per_hour": round(self.total_requests / max(uptime_hours, 0.1), 2),
                    "error_rate": round(error_rate, 2),
                },
                "performance_metrics": {
                    "average_response_time": round(statistics.mean(response_times), 3),
                    "median_response_time": round(statistics.median(response_times), 3),
                    "max_response_time": round(max(response_times), 3),
                },
                "distribution_metrics": {
                    "transport_types": transport_dist,
                    "activities": activity_dist,
                },
                "endpoint_stats": {k: asdict(v) for k, v in self.endpoint_stats.items()},
            }

    def get_endpoint_analysis(self, endpoint: str) -> Dict[str, Any]:
        """Get latency and result-count analysis for one endpoint."""
        with self.lock:
            filtered = [r for r in self.requests if r.endpoint == endpoint]
            if not filtered:
                return {"error": "No data for specified endpoint"}

            response_times = [r.response_time for r in filtered]
            result_counts = [r.result_count for r in filtered]

            return {
                "endpoint": endpoint,
                "sample_size": len(filtered),
                "performance_analysis": {
                    "mean_response_time": round(statistics.mean(response_times), 3),
                    "median_response_time": round(statistics.median(response_times), 3),
                    "std_dev": round(statistics.stdev(response_times) if len(response_times) > 1 else 0, 3),
                    "max_response_time": round(max(response_times), 3),
                },
                "result_analysis": {
                    "mean": round(statistics.mean(result_counts), 2),
                    "empty_result_rate": round(
                        sum(1 for c in result_counts if c == 0) / len(result_counts) * 100, 1),
                },
            }


# Global telemetry collector instance
telemetry_collector = TelemetryCollector()


def record_request_metrics(endpoint: str, response_time: float, result_count: int = 0,
                           transport_type: Optional[str] = None, activity: Optional[str] = None) -> None:
    """Record metrics for a successful API request."""
    telemetry_collector.record_request(RequestMetrics(
        timestamp=time.time(),
        endpoint=endpoint,
        response_time=response_time,
        result_count=result_count,
        transport_type=transport_type,
        activity=activity,
    ))


def record_error(endpoint: str, error_type: str, response_time: float = 0.0) -> None:
    """Record a failed request."""
    logger.debug(f"Recording error for {endpoint}", extra={"endpoint": endpoint, "error_type": error_type})
    telemetry_collector.record_request(RequestMetrics(
        timestamp=time.time(),
        endpoint=endpoint,
        response_time=response_time,
        success=False,
        error_type=error_type,
    ))


def get_telemetry_stats() -> Dict[str, Any]:
    """Get current telemetry statistics."""
    return telemetry_collector.get_overall_stats()


def get_endpoint_analysis(endpoint: str) -> Dict[str, Any]:
    return telemetry_collector.get_endpoint_analysis(endpoint)
