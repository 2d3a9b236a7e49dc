"""
Registry of vesting schedules and sale purchases.

Owns every VestingSchedule and Purchase record, indexes schedules by
identifier and beneficiary, and enforces uniqueness and existence.
Records are never deleted: schedules are only marked revoked or exhausted.
"""

from __future__ import annotations

import hashlib
import logging
import threading
from dataclasses import dataclass, asdict
from typing import Any

from vestflow.core.exceptions import NotFoundError, ValidationError
from vestflow.core.release_calculator import ReleaseWindow, releasable_amount

logger = logging.getLogger("vestflow.registry")


def compute_schedule_id(beneficiary: str, index: int) -> str:
    """Deterministic schedule id for the index-th schedule of a beneficiary."""
    return hashlib.sha256(f"{beneficiary}:{index}".encode("utf-8")).hexdigest()


def _require_int(name: str, value: Any, minimum: int = 0) -> None:
    if isinstance(value, bool) or not isinstance(value, int) or value < minimum:
        raise ValueError(f"{name} must be an integer >= {minimum}.")


@dataclass
class VestingSchedule:
    schedule_id: str
    beneficiary: str
    start: int
    cliff: int
    duration: int
    slice_period: int
    revocable: bool
    total_amount: int
    released: int = 0
    revoked: bool = False
    revoked_at: int | None = None

    def window(self) -> ReleaseWindow:
        return ReleaseWindow.for_schedule(
            self.start, self.cliff, self.duration, self.slice_period, revoked_at=self.revoked_at
        )

    def releasable(self, now: int) -> int:
        return releasable_amount(self.window(), self.total_amount, self.released, now)

    @property
    def exhausted(self) -> bool:
        return self.released == self.total_amount

    @property
    def outstanding(self) -> int:
        """Units still owed to the beneficiary from custody."""
        if self.revoked:
            return 0
        return self.total_amount - self.released

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class Purchase:
    """A buyer's accumulated purchases in one sale stage."""

    stage_id: int
    buyer: str
    total_amount: int = 0
    tge_amount: int = 0
    claimed_amount: int = 0
    paid_amount: int = 0
    completed: bool = False

    @property
    def vesting_total(self) -> int:
        """Units that vest after the cliff (purchase net of the TGE release)."""
        return self.total_amount - self.tge_amount

    @property
    def outstanding(self) -> int:
        return self.vesting_total - self.claimed_amount

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class ScheduleRegistry:
    """
    Storage and lookup for schedules and purchases.

    ``lock`` serializes every read-modify-write against the records held
    here; ClaimProcessor and StageManager take it around each operation.
    """

    def __init__(self):
        self.schedules: dict[str, VestingSchedule] = {}
        self.schedule_ids: list[str] = []
        self._by_beneficiary: dict[str, list[str]] = {}
        self.purchases: dict[tuple[int, str], Purchase] = {}
        self.lock = threading.RLock()

    # ==================== Vesting schedules ====================

    def add_schedule(
        self,
        beneficiary: str,
        start: int,
        cliff: int,
        duration: int,
        slice_period: int,
        revocable: bool,
        total_amount: int,
    ) -> VestingSchedule:
        """Validate and store a new schedule; returns the stored record."""
        if not beneficiary:
            raise ValueError("Beneficiary address cannot be empty.")
        _require_int("Start time", start)
        _require_int("Cliff duration", cliff)
        _require_int("Duration", duration, minimum=1)
        _require_int("Slice period", slice_period, minimum=1)
        _require_int("Total amount", total_amount, minimum=1)
        if cliff > duration:
            raise ValueError("Cliff duration cannot exceed the vesting duration.")

        with self.lock:
            index = len(self._by_beneficiary.get(beneficiary, []))
            schedule_id = compute_schedule_id(beneficiary, index)
            if schedule_id in self.schedules:
                raise ValidationError(
                    f"Vesting schedule {schedule_id} already exists.",
                    details={"schedule_id": schedule_id},
                )
            schedule = VestingSchedule(
                schedule_id=schedule_id,
                beneficiary=beneficiary,
                start=start,
                cliff=cliff,
                duration=duration,
                slice_period=slice_period,
                revocable=bool(revocable),
                total_amount=total_amount,
            )
            self.schedules[schedule_id] = schedule
            self.schedule_ids.append(schedule_id)
            self._by_beneficiary.setdefault(beneficiary, []).append(schedule_id)

        logger.info(
            "Vesting schedule %s created for %s",
            schedule_id,
            beneficiary,
            extra={"event": "schedule.created", "schedule_id": schedule_id, "total_amount": total_amount},
        )
        return schedule

    def get_schedule(self, schedule_id: str) -> VestingSchedule:
        schedule = self.schedules.get(schedule_id)
        if schedule is None:
            raise NotFoundError(
                f"Vesting schedule {schedule_id} not found.",
                details={"schedule_id": schedule_id},
            )
        return schedule

    def get_schedules_count(self) -> int:
        return len(self.schedule_ids)

    def get_schedule_id_at_index(self, index: int) -> str:
        if not 0 <= index < len(self.schedule_ids):
            raise NotFoundError(f"No vesting schedule at index {index}.", details={"index": index})
        return self.schedule_ids[index]

    def get_schedules_count_by_beneficiary(self, beneficiary: str) -> int:
        return len(self._by_beneficiary.get(beneficiary, []))

    def get_schedule_by_address_and_index(self, beneficiary: str, index: int) -> VestingSchedule:
        return self.get_schedule(compute_schedule_id(beneficiary, index))

    def get_last_schedule_for_holder(self, beneficiary: str) -> VestingSchedule:
        ids = self._by_beneficiary.get(beneficiary)
        if not ids:
            raise NotFoundError(
                f"No vesting schedules for {beneficiary}.", details={"beneficiary": beneficiary}
            )
        return self.schedules[ids[-1]]

    def schedules_for(self, beneficiary: str) -> list[VestingSchedule]:
        return [self.schedules[sid] for sid in self._by_beneficiary.get(beneficiary, [])]

    @property
    def total_committed(self) -> int:
        """Units allocated to live schedules and not yet released."""
        return sum(schedule.outstanding for schedule in self.schedules.values())

    # ==================== Sale purchases ====================

    def get_purchase(self, stage_id: int, buyer: str) -> Purchase:
        purchase = self.purchases.get((stage_id, buyer))
        if purchase is None:
            raise NotFoundError(
                f"No purchase by {buyer} in stage {stage_id}.",
                details={"stage_id": stage_id, "buyer": buyer},
            )
        return purchase

    def find_purchase(self, stage_id: int, buyer: str) -> Purchase | None:
        return self.purchases.get((stage_id, buyer))

    def store_purchase(self, purchase: Purchase) -> None:
        self.purchases[(purchase.stage_id, purchase.buyer)] = purchase

    def purchases_for_stage(self, stage_id: int) -> list[Purchase]:
        return [p for (sid, _), p in self.purchases.items() if sid == stage_id]

    def purchases_for(self, buyer: str) -> list[Purchase]:
        return [p for (_, b), p in self.purchases.items() if b == buyer]

    @property
    def purchase_obligations(self) -> int:
        """Vesting units sold but not yet claimed."""
        return sum(purchase.outstanding for purchase in self.purchases.values())

    # ==================== Snapshots ====================

    def to_dict(self) -> dict[str, Any]:
        return {
            "schedules": [self.schedules[sid].to_dict() for sid in self.schedule_ids],
            "purchases": [purchase.to_dict() for purchase in self.purchases.values()],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ScheduleRegistry":
        registry = cls()
        for item in data.get("schedules", []):
            schedule = VestingSchedule(**item)
            registry.schedules[schedule.schedule_id] = schedule
            registry.schedule_ids.append(schedule.schedule_id)
            registry._by_beneficiary.setdefault(schedule.beneficiary, []).append(schedule.schedule_id)
        for item in data.get("purchases", []):
            registry.store_purchase(Purchase(**item))
        return registry
