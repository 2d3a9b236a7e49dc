"""
vestflow - Metrics

Prometheus counters and gauges for release, sale and pool activity:
- Units released, split by variant (schedule, sale, pool)
- Purchases and TGE units delivered
- Rejected operations by error kind
- Units committed to beneficiaries but not yet released
"""

from __future__ import annotations

import threading
from typing import Optional

from prometheus_client import (
    Counter,
    Gauge,
    CollectorRegistry,
    generate_latest,
)


class VestingMetrics:
    """
    Metrics collector for vestflow.

    Each instance owns its CollectorRegistry unless one is supplied, so
    several services (or tests) can coexist in one process.
    """

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        self.registry = registry or CollectorRegistry()
        self._lock = threading.Lock()

        self.units_released = Counter(
            "vestflow_units_released_total",
            "Units transferred out of custody to beneficiaries",
            ["variant"],
            registry=self.registry,
        )
        self.releases = Counter(
            "vestflow_releases_total",
            "Successful release, claim and withdrawal operations",
            ["variant"],
            registry=self.registry,
        )
        self.purchases = Counter(
            "vestflow_purchases_total",
            "Successful staged-sale purchases",
            ["stage"],
            registry=self.registry,
        )
        self.units_sold = Counter(
            "vestflow_units_sold_total",
            "Units sold across all stages",
            ["stage"],
            registry=self.registry,
        )
        self.rejections = Counter(
            "vestflow_rejected_operations_total",
            "Operations rejected before any state change",
            ["operation", "error"],
            registry=self.registry,
        )
        self.revocations = Counter(
            "vestflow_revocations_total",
            "Vesting schedules revoked",
            registry=self.registry,
        )
        self.committed_units = Gauge(
            "vestflow_committed_units",
            "Units allocated to vesting schedules and not yet released",
            registry=self.registry,
        )

    def record_release(self, variant: str, amount: int) -> None:
        with self._lock:
            self.releases.labels(variant=variant).inc()
            self.units_released.labels(variant=variant).inc(amount)

    def record_purchase(self, stage: int, units: int) -> None:
        with self._lock:
            self.purchases.labels(stage=str(stage)).inc()
            self.units_sold.labels(stage=str(stage)).inc(units)

    def record_rejection(self, operation: str, exc: Exception) -> None:
        self.rejections.labels(operation=operation, error=type(exc).__name__).inc()

    def record_revocation(self) -> None:
        self.revocations.inc()

    def set_committed(self, amount: int) -> None:
        self.committed_units.set(amount)

    def export(self) -> bytes:
        """Render metrics in the Prometheus text exposition format."""
        return generate_latest(self.registry)
