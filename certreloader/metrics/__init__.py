"""
Prometheus metrics for certificate reloading.

This module provides:
- Reload attempt counters by outcome
- Reload duration histogram
- Timestamps of the last successful reload and of the active certificate's expiry
- An optional standalone exposition server
"""

import time
from typing import Optional

from prometheus_client import (
    REGISTRY,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    start_http_server,
)

from ..keypair import KeyPair
from ..logger import get_logger

logger = get_logger(__name__)


class ReloadMetrics:
    """Metrics collector for one reloader, using the Prometheus client."""

    def __init__(
        self,
        registry: CollectorRegistry = REGISTRY,
        namespace: str = "certreloader",
    ):
        self.registry = registry

        self.reload_attempts_total = Counter(
            "reload_attempts_total",
            "Total certificate reload attempts",
            ["outcome"],
            namespace=namespace,
            registry=registry,
        )

        self.reload_duration_seconds = Histogram(
            "reload_duration_seconds",
            "Certificate reload attempt duration in seconds",
            namespace=namespace,
            registry=registry,
            buckets=[0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0],
        )

        self.last_successful_reload_timestamp_seconds = Gauge(
            "last_successful_reload_timestamp_seconds",
            "Unix time of the last reload that published new key material",
            namespace=namespace,
            registry=registry,
        )

        self.certificate_not_after_timestamp_seconds = Gauge(
            "certificate_not_after_timestamp_seconds",
            "Expiry (notAfter) of the active certificate as Unix time",
            namespace=namespace,
            registry=registry,
        )

        logger.debug("Reload metrics initialized", namespace=namespace)

    def record_attempt(self, outcome: str, duration: Optional[float] = None) -> None:
        """Record a reload attempt."""
        self.reload_attempts_total.labels(outcome=outcome).inc()
        if duration is not None:
            self.reload_duration_seconds.observe(duration)

    def record_published(self, key_pair: KeyPair) -> None:
        """Record that ``key_pair`` became the active certificate."""
        self.last_successful_reload_timestamp_seconds.set(time.time())
        self.certificate_not_after_timestamp_seconds.set(key_pair.not_after.timestamp())


def start_metrics_server(port: int, addr: str = "0.0.0.0", registry: CollectorRegistry = REGISTRY) -> None:
    """Expose metrics over HTTP on a background thread."""
    start_http_server(port, addr=addr, registry=registry)
    logger.info("Metrics server started", port=port, addr=addr)
