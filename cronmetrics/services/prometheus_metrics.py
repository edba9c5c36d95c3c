"""
Prometheus self-metrics for the cronmetrics service

These describe the service itself (ingest traffic, scrape cost, HTTP
requests) and live in their own registry, served apart from the job
exposition so that /metrics stays byte-stable.
"""

from prometheus_client import (
    CONTENT_TYPE_LATEST, CollectorRegistry, Counter, Gauge, Histogram, generate_latest,
)

from .. import __version__


class ServiceMetrics:
    """Service self-metrics bound to a private CollectorRegistry"""

    def __init__(self, registry: CollectorRegistry = None):
        self.registry = registry or CollectorRegistry()

        self.build_info = Gauge(
            'cronmetrics_build_info',
            'Build information',
            ['version'],
            registry=self.registry,
        )
        self.build_info.labels(version=__version__).set(1)

        # Request counters
        self.requests_total = Counter(
            'cronmetrics_http_requests_total',
            'Total number of HTTP requests',
            ['status_class', 'path_group'],
            registry=self.registry,
        )

        # Ingest metrics
        self.results_ingested_total = Counter(
            'cronmetrics_results_ingested_total',
            'Total number of job results recorded',
            ['status'],
            registry=self.registry,
        )
        self.results_rejected_total = Counter(
            'cronmetrics_results_rejected_total',
            'Total number of job result submissions rejected',
            ['reason'],
            registry=self.registry,
        )

        # Scrape metrics
        self.scrape_duration_seconds = Histogram(
            'cronmetrics_scrape_duration_seconds',
            'Time spent building the job metrics exposition',
            buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.3, 0.5, 1.0, 2.5, 5.0],
            registry=self.registry,
        )
        self.scrape_errors_total = Counter(
            'cronmetrics_scrape_errors_total',
            'Total number of failed job metrics scrapes',
            registry=self.registry,
        )
        self.scraped_jobs = Gauge(
            'cronmetrics_scraped_jobs',
            'Number of jobs in the most recent job metrics exposition',
            registry=self.registry,
        )

    def increment_requests(self, status_code: int, path: str = "/"):
        """Increment request counter by status class and path group."""
        status_class = f"{status_code // 100}xx" if 100 <= status_code < 600 else "other"
        self.requests_total.labels(status_class=status_class, path_group=_path_group(path)).inc()

    def record_ingest(self, status: str):
        self.results_ingested_total.labels(status=status).inc()

    def record_rejection(self, reason: str):
        self.results_rejected_total.labels(reason=reason).inc()

    def observe_scrape(self, seconds: float, job_count: int):
        self.scrape_duration_seconds.observe(seconds)
        self.scraped_jobs.set(job_count)

    def increment_scrape_errors(self):
        self.scrape_errors_total.inc()

    def get_metrics(self) -> bytes:
        """Get self-metrics in Prometheus text format."""
        return generate_latest(self.registry)

    def get_content_type(self) -> str:
        return CONTENT_TYPE_LATEST


def _path_group(path: str) -> str:
    # keep label cardinality bounded: ids collapse into the route prefix
    if path.startswith("/api/job-result"):
        return "/api/job-result"
    if path.startswith("/api/job"):
        return "/api/job"
    if path in ("/health", "/metrics", "/internal/metrics"):
        return path
    return "other"
