"""
JSON snapshot persistence for a DistributionService.

A snapshot holds the owner, every schedule and purchase, the sale stages
(including whitelists and activation times), the reward pool's claimed
amount and, for an InMemoryLedger, the balances and transfer log.
"""

from __future__ import annotations

import json
import logging
import os
from typing import Any

from vestflow.core.clock import TimeProvider
from vestflow.core.distribution_service import DistributionService
from vestflow.core.exceptions import StateStoreError
from vestflow.core.ledger import AssetLedger, InMemoryLedger
from vestflow.core.metrics import VestingMetrics
from vestflow.core.schedule_registry import ScheduleRegistry
from vestflow.core.stage_manager import SaleStage

logger = logging.getLogger("vestflow.state")

SNAPSHOT_VERSION = 1


def snapshot(service: DistributionService) -> dict[str, Any]:
    with service.registry.lock:
        data = {
            "version": SNAPSHOT_VERSION,
            "owner": service.owner,
            "custody_account": service.custody_account,
            "registry": service.registry.to_dict(),
            "sale": service.sale.to_dict(),
            "pool": service.pool.to_dict(),
            "ledger": None,
        }
        if isinstance(service.ledger, InMemoryLedger):
            data["ledger"] = service.ledger.to_dict()
    return data


def restore(
    data: dict[str, Any],
    time_provider: TimeProvider,
    ledger: AssetLedger | None = None,
    metrics: VestingMetrics | None = None,
) -> DistributionService:
    """Rebuild a service from a snapshot; ``ledger`` overrides the stored one."""
    if data.get("version") != SNAPSHOT_VERSION:
        raise StateStoreError(
            f"Unsupported snapshot version {data.get('version')!r}",
            details={"expected": SNAPSHOT_VERSION},
        )
    try:
        if ledger is None:
            ledger = InMemoryLedger.from_dict(data.get("ledger") or {})
        return DistributionService(
            ledger=ledger,
            owner=data["owner"],
            custody_account=data["custody_account"],
            stages=[SaleStage.from_dict(item) for item in data["sale"]["stages"]],
            pool_settings=dict(data["pool"]),
            time_provider=time_provider,
            metrics=metrics,
            registry=ScheduleRegistry.from_dict(data["registry"]),
        )
    except (KeyError, TypeError, ValueError) as exc:
        raise StateStoreError(f"Malformed snapshot: {exc}") from exc


class StateStore:
    """Reads and writes service snapshots at ``storage_path``."""

    def __init__(self, storage_path: str):
        if not storage_path:
            raise ValueError("A storage path is required.")
        self.storage_path = storage_path

    def exists(self) -> bool:
        return os.path.exists(self.storage_path)

    def save(self, service: DistributionService) -> None:
        data = snapshot(service)
        tmp_path = f"{self.storage_path}.tmp"
        try:
            directory = os.path.dirname(self.storage_path)
            if directory:
                os.makedirs(directory, exist_ok=True)
            with open(tmp_path, "w", encoding="utf-8") as handle:
                json.dump(data, handle, indent=2)
            os.replace(tmp_path, self.storage_path)
        except OSError as exc:
            logger.error("Failed to persist state to %s: %s", self.storage_path, exc)
            raise StateStoreError(
                f"Could not write state file {self.storage_path}",
                details={"path": self.storage_path},
            ) from exc
        logger.debug("State saved to %s", self.storage_path, extra={"event": "state.saved"})

    def load(
        self,
        time_provider: TimeProvider,
        ledger: AssetLedger | None = None,
        metrics: VestingMetrics | None = None,
    ) -> DistributionService:
        try:
            with open(self.storage_path, "r", encoding="utf-8") as handle:
                data = json.load(handle)
        except (OSError, json.JSONDecodeError) as exc:
            logger.error("Failed to load state from %s: %s", self.storage_path, exc)
            raise StateStoreError(
                f"Could not read state file {self.storage_path}",
                details={"path": self.storage_path},
            ) from exc
        service = restore(data, time_provider, ledger=ledger, metrics=metrics)
        logger.debug("State loaded from %s", self.storage_path, extra={"event": "state.loaded"})
        return service

    def load_or_create(
        self,
        config: Any,
        time_provider: TimeProvider,
        metrics: VestingMetrics | None = None,
    ) -> DistributionService:
        """Load the snapshot if present, else build a fresh service from config."""
        if self.exists():
            return self.load(time_provider, metrics=metrics)
        logger.info("No state at %s, starting fresh", self.storage_path)
        return DistributionService.from_config(config, InMemoryLedger(), time_provider, metrics)
