import time

from data_sources.telemetry import RequestMetrics, TelemetryCollector


def test_empty_collector():
    collector = TelemetryCollector()
    assert collector.get_overall_stats() == {"error": "No data available"}
    assert collector.get_endpoint_analysis("/search") == {"error": "No data for specified endpoint"}


def test_overall_and_endpoint_stats():
    collector = TelemetryCollector()
    now = time.time()
    collector.record_request(RequestMetrics(now, "/search", 0.2, result_count=5, transport_type="car"))
    collector.record_request(RequestMetrics(now, "/search", 0.4, result_count=0, transport_type="car"))
    collector.record_request(RequestMetrics(now, "/discover", 1.0, result_count=4, activity="hiking"))
    collector.record_request(RequestMetrics(now, "/discover", 0.5, success=False, error_type="ai_error"))

    stats = collector.get_overall_stats()
    assert stats["system_metrics"]["total_requests"] == 4
    assert stats["system_metrics"]["error_rate"] == 25.0
    assert stats["distribution_metrics"]["transport_types"] == {"car": 2}
    assert stats["endpoint_stats"]["/discover"]["error_types"] == {"ai_error": 1}
    assert stats["endpoint_stats"]["/search"]["avg_result_count"] == 2.5

    analysis = collector.get_endpoint_analysis("/search")
    assert analysis["sample_size"] == 2
    assert analysis["performance_analysis"]["mean_response_time"] == 0.3
    assert analysis["result_analysis"]["empty_result_rate"] == 50.0


def test_max_requests_keeps_latest():
    collector = TelemetryCollector(max_requests=2)
    now = time.time()
    for response_time in (0.1, 0.2, 0.3):
        collector.record_request(RequestMetrics(now, "/search", response_time))

    assert [r.response_time for r in collector.requests] == [0.2, 0.3]
    assert collector.total_requests == 3
    assert collector.endpoint_stats["/search"].request_count == 3
