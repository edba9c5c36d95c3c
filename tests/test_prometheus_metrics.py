"""
Tests for service self-metrics
"""

from prometheus_client import CollectorRegistry

from cronmetrics import __version__
from cronmetrics.services.prometheus_metrics import ServiceMetrics


class TestServiceMetrics:

    def test_instances_do_not_share_a_registry(self):
        first = ServiceMetrics()
        second = ServiceMetrics()
        first.record_ingest("success")
        assert first.registry is not second.registry
        assert second.registry.get_sample_value("cronmetrics_results_ingested_total", {"status": "success"}) is None

    def test_explicit_registry(self):
        registry = CollectorRegistry()
        metrics = ServiceMetrics(registry)
        assert metrics.registry is registry

    def test_build_info(self):
        metrics = ServiceMetrics()
        assert metrics.registry.get_sample_value("cronmetrics_build_info", {"version": __version__}) == 1

    def test_increment_requests_groups_paths(self):
        metrics = ServiceMetrics()
        metrics.increment_requests(200, "/api/job/17")
        metrics.increment_requests(404, "/api/job/18/results")
        metrics.increment_requests(201, "/api/job-result")
        metrics.increment_requests(200, "/favicon.ico")

        get = metrics.registry.get_sample_value
        assert get("cronmetrics_http_requests_total", {"status_class": "2xx", "path_group": "/api/job"}) == 1
        assert get("cronmetrics_http_requests_total", {"status_class": "4xx", "path_group": "/api/job"}) == 1
        assert get("cronmetrics_http_requests_total", {"status_class": "2xx", "path_group": "/api/job-result"}) == 1
        assert get("cronmetrics_http_requests_total", {"status_class": "2xx", "path_group": "other"}) == 1

    def test_ingest_counters(self):
        metrics = ServiceMetrics()
        metrics.record_ingest("success")
        metrics.record_ingest("failure")
        metrics.record_ingest("success")
        metrics.record_rejection("Forbidden")

        get = metrics.registry.get_sample_value
        assert get("cronmetrics_results_ingested_total", {"status": "success"}) == 2
        assert get("cronmetrics_results_ingested_total", {"status": "failure"}) == 1
        assert get("cronmetrics_results_rejected_total", {"reason": "Forbidden"}) == 1

    def test_observe_scrape(self):
        metrics = ServiceMetrics()
        metrics.observe_scrape(0.02, 42)
        metrics.increment_scrape_errors()

        get = metrics.registry.get_sample_value
        assert get("cronmetrics_scraped_jobs") == 42
        assert get("cronmetrics_scrape_duration_seconds_count") == 1
        assert get("cronmetrics_scrape_errors_total") == 1

    def test_get_metrics(self):
        metrics = ServiceMetrics()
        text = metrics.get_metrics().decode("utf-8")
        assert "# HELP" in text
        assert "# TYPE" in text
        assert "cronjob_status" not in text

    def test_get_content_type(self):
        assert "text/plain" in ServiceMetrics().get_content_type()
