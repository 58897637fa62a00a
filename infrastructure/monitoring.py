"""
Monitoring Infrastructure: Structured Logging with Structlog + Prometheus

Provides JSON-based structured logging for the HTTP layer and the
Prometheus metrics the generation pipeline reports into.
"""

import logging
import sys
from typing import Dict, Optional

import structlog
from prometheus_client import (
    CONTENT_TYPE_LATEST,
    REGISTRY,
    CollectorRegistry,
    Counter,
    Histogram,
    generate_latest,
)


def configure_structlog(log_level: str = "INFO") -> None:
    """
    Configure structlog for JSON-based production logging.

    Sets up processors for:
    - Timestamping (ISO 8601)
    - Log level formatting
    - Exception formatting with stack traces
    - JSON rendering
    """
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.getLevelName(log_level.upper())
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stdout),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.BoundLogger:
    """
    Get a structlog logger instance bound with a name context.

    Args:
        name: Logger name (typically module __name__)

    Returns:
        Configured structlog BoundLogger
    """
    return structlog.get_logger(name)


class MetricsCollector:
    """
    Prometheus metrics collector for the generation pipeline.

    Tracks:
    - Generations by provider and result source (provider vs fallback)
    - Admission decisions by outcome and denial reason
    - LLM provider latency and status
    - Media augmentation failures
    - Content persistence failures

    Pass a fresh CollectorRegistry to get isolated metrics (tests, multiple
    apps in one process); the default is the global registry.
    """

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        self.registry = registry if registry is not None else REGISTRY

        self.generations_total = Counter(
            "content_generations_total",
            "Completed generations",
            labelnames=["provider", "source"],
            registry=self.registry,
        )

        self.generation_duration_seconds = Histogram(
            "content_generation_duration_seconds",
            "End-to-end orchestration time after admission",
            buckets=[0.5, 1, 2, 5, 10, 20, 45, 90, 180],
            labelnames=["provider"],
            registry=self.registry,
        )

        self.admission_decisions_total = Counter(
            "admission_decisions_total",
            "Usage gate decisions",
            labelnames=["outcome", "reason"],
            registry=self.registry,
        )

        self.llm_api_requests_total = Counter(
            "llm_api_requests_total",
            "Total LLM API requests",
            labelnames=["model", "provider", "status"],
            registry=self.registry,
        )

        self.llm_api_latency_seconds = Histogram(
            "llm_api_latency_seconds",
            "LLM API request latency",
            buckets=[0.1, 0.5, 1.0, 2.0, 5.0, 10.0, 30.0, 60.0],
            labelnames=["model", "provider"],
            registry=self.registry,
        )

        self.media_requests_total = Counter(
            "media_requests_total",
            "Media augmentation attempts",
            labelnames=["kind", "status"],
            registry=self.registry,
        )

        self.persistence_failures_total = Counter(
            "content_persistence_failures_total",
            "Failed writes of generated content",
            registry=self.registry,
        )

        log = get_logger(__name__)
        log.info("metrics_collector_initialized", metrics_type="prometheus")

    def record_generation(self, provider: str, source: str, duration_seconds: float) -> None:
        self.generations_total.labels(provider=provider, source=source).inc()
        self.generation_duration_seconds.labels(provider=provider).observe(duration_seconds)

    def record_admission(self, allowed: bool, reason: Optional[str] = None) -> None:
        """Record one usage gate decision."""
        self.admission_decisions_total.labels(
            outcome="allow" if allowed else "deny",
            reason=reason or "none",
        ).inc()

    def record_llm_api_call(
        self,
        model: str,
        provider: str,
        status: str,
        latency_seconds: float,
    ) -> None:
        """
        Record LLM API call metrics.

        Args:
            model: Model identifier (e.g., "gpt-4o")
            provider: Provider name (e.g., "openai")
            status: Request status ("success", "error", "timeout", "rate_limited")
            latency_seconds: Request latency
        """
        self.llm_api_requests_total.labels(model=model, provider=provider, status=status).inc()
        self.llm_api_latency_seconds.labels(model=model, provider=provider).observe(latency_seconds)

    def record_media(self, kind: str, success: bool) -> None:
        self.media_requests_total.labels(
            kind=kind, status="success" if success else "failure"
        ).inc()

    def record_persistence_failure(self) -> None:
        self.persistence_failures_total.inc()

    def export_metrics(self) -> bytes:
        """
        Export metrics in Prometheus format.

        Returns:
            Prometheus-formatted metrics payload
        """
        return generate_latest(self.registry)

    def get_content_type(self) -> str:
        """Get content type for metrics endpoint."""
        return CONTENT_TYPE_LATEST

    def sample(self, name: str, labels: Optional[Dict[str, str]] = None) -> float:
        """Current value of one sample, 0.0 when it was never recorded."""
        value = self.registry.get_sample_value(name, labels or {})
        return value if value is not None else 0.0
