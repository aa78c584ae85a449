"""
Metrics instrumentation for askguard.

Prometheus counters and histograms for token refreshes and quota admission.
Each GuardMetrics instance owns its collectors; get_metrics() returns a
process-wide instance registered on the default Prometheus registry.

Usage:
    from askguard.metrics import get_metrics

    metrics = get_metrics()
    metrics.refresh_attempts.labels(outcome='success').inc()
    metrics.admission_decisions.labels(tier='free', model='gemini-2.5-flash', decision='denied',
                                       reason='rpm_exceeded').inc()
"""

import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Iterator, Optional

from prometheus_client import REGISTRY, CollectorRegistry, Counter, Histogram, generate_latest

# Refresh round-trips: 10ms to 30s
REFRESH_BUCKETS = (0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0)


@dataclass
class MetricsConfig:
    """Configuration for metrics collection.

    Attributes:
        enabled: Whether metrics collection is enabled
        namespace: Prefix for all metric names (default: 'askguard')
    """

    enabled: bool = True
    namespace: str = 'askguard'


class NullMetric:
    """No-op metric used when metrics are disabled."""

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        pass

    def labels(self, *args: Any, **kwargs: Any) -> 'NullMetric':
        return self

    def inc(self, amount: float = 1) -> None:
        pass

    def observe(self, value: float) -> None:
        pass


class GuardMetrics:
    """Metrics for the token lifecycle and quota governor.

    - refresh_attempts: refresh calls by outcome (success, fatal, transient)
    - refresh_latency: time spent talking to the refresh endpoint
    - admission_decisions: admission checks by tier, model, decision and reason
    - tokens_recorded: estimated tokens accounted after counted requests
    """

    def __init__(self, config: Optional[MetricsConfig] = None, registry: Optional[CollectorRegistry] = None):
        self._config = config or MetricsConfig()
        self.registry = registry if registry is not None else CollectorRegistry()

        if not self._config.enabled:
            self.refresh_attempts = NullMetric()
            self.refresh_latency = NullMetric()
            self.admission_decisions = NullMetric()
            self.tokens_recorded = NullMetric()
            return

        ns = self._config.namespace

        self.refresh_attempts = Counter(
            'refresh_attempts_total',
            'Access token refresh attempts',
            labelnames=['outcome'],
            namespace=ns,
            registry=self.registry,
        )
        self.refresh_latency = Histogram(
            'refresh_latency_seconds',
            'Time spent calling the refresh endpoint',
            namespace=ns,
            registry=self.registry,
            buckets=REFRESH_BUCKETS,
        )
        self.admission_decisions = Counter(
            'admission_decisions_total',
            'Local quota admission checks',
            labelnames=['tier', 'model', 'decision', 'reason'],
            namespace=ns,
            registry=self.registry,
        )
        self.tokens_recorded = Counter(
            'tokens_recorded_total',
            'Estimated tokens recorded against the local usage window',
            namespace=ns,
            registry=self.registry,
        )

    @property
    def enabled(self) -> bool:
        return self._config.enabled

    @contextmanager
    def time_refresh(self) -> Iterator[None]:
        """Observe refresh latency, including failed attempts."""
        start = time.perf_counter()
        try:
            yield
        finally:
            self.refresh_latency.observe(time.perf_counter() - start)

    def sample(self, name: str, labels: Optional[dict] = None) -> Optional[float]:
        """Current value of a sample, or None when disabled or never recorded."""
        if not self.enabled:
            return None
        return self.registry.get_sample_value(name, labels or {})

    def exposition(self) -> bytes:
        """Prometheus text exposition of this instance's collectors."""
        return generate_latest(self.registry)


_default_metrics: Optional[GuardMetrics] = None
_default_lock = threading.Lock()


def get_metrics() -> GuardMetrics:
    """Process-wide metrics instance registered on the default Prometheus registry."""
    global _default_metrics
    if _default_metrics is None:
        with _default_lock:
            if _default_metrics is None:
                _default_metrics = GuardMetrics(registry=REGISTRY)
    return _default_metrics
