"""
Prometheus counters for comparison runs.

Counters live on a private CollectorRegistry so several PrometheusHooks (one
per test, one per CLI run) never collide on the process default registry.
"""

from __future__ import annotations

from typing import Any, List, Optional

from prometheus_client import CollectorRegistry, Counter, Histogram, generate_latest, write_to_textfile

from contracts.spec_types import Result
from engine.hooks import RunHooks


class PrometheusHooks(RunHooks):
    def __init__(self, registry: Optional[CollectorRegistry] = None) -> None:
        self.registry = registry or CollectorRegistry()

        # Comparisons by outcome (ok, error)
        self.comparisons = Counter(
            "specgate_comparisons_total",
            "Spec comparisons finished",
            ["outcome"],
            registry=self.registry,
        )

        # Loading / validation failures
        self.load_errors = Counter(
            "specgate_load_errors_total",
            "Comparisons that failed to load or validate a document",
            registry=self.registry,
        )

        # Failed checks by severity (must, should)
        self.failed_checks = Counter(
            "specgate_failed_checks_total",
            "Rule assertions that did not pass",
            ["severity"],
            registry=self.registry,
        )

        self.results_per_run = Histogram(
            "specgate_results_per_run",
            "Number of results produced by one rule run",
            buckets=[0, 1, 5, 10, 25, 50, 100, 250, 500, 1000],
            registry=self.registry,
        )

    def after_rules(self, context: Any, results: List[Result]) -> None:
        self.results_per_run.observe(len(results))
        for result in results:
            if not result.passed:
                self.failed_checks.labels(severity="must" if result.is_must else "should").inc()

    def after_comparison(self, from_ref, to_ref, results, error=None) -> None:
        if error is not None:
            self.comparisons.labels(outcome="error").inc()
            self.load_errors.inc()
        else:
            self.comparisons.labels(outcome="ok").inc()

    def render(self) -> bytes:
        return generate_latest(self.registry)

    def write_textfile(self, path: str) -> None:
        """Atomically write the text exposition format (node-exporter textfile collector)."""
        write_to_textfile(str(path), self.registry)
