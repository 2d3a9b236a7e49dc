"""
Staged token sale.

Pre-declared stages (seed, strategic, public by default) are activated one
at a time by the owner. Buyers purchase at the active stage's rate: a TGE
fraction is transferred immediately and the remainder vests in whole
intervals counted from the end of the stage's cliff, the stage's first
activation time being the vesting start.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Iterable

from vestflow.core.access_control import OwnershipGuard
from vestflow.core.clock import TimeProvider, TimedComponent
from vestflow.core.exceptions import (
    CapExceededError,
    InsufficientFundsError,
    InsufficientVestedError,
    NotFoundError,
    NotWhitelistedError,
    StageNotActiveError,
    VestingError,
)
from vestflow.core.ledger import AssetLedger, instruct_transfer
from vestflow.core.metrics import VestingMetrics
from vestflow.core.release_calculator import ReleaseWindow, releasable_amount
from vestflow.core.schedule_registry import Purchase, ScheduleRegistry

logger = logging.getLogger("vestflow.sale")


class StageStatus(Enum):
    NO_STAGE_ACTIVE = "no_stage_active"
    ACTIVE_STAGE = "active_stage"


@dataclass(frozen=True)
class StageState:
    """Which stage, if any, currently accepts purchases."""

    status: StageStatus = StageStatus.NO_STAGE_ACTIVE
    stage_id: int | None = None

    @classmethod
    def active(cls, stage_id: int) -> "StageState":
        return cls(StageStatus.ACTIVE_STAGE, stage_id)

    def is_active(self, stage_id: int) -> bool:
        return self.status is StageStatus.ACTIVE_STAGE and self.stage_id == stage_id


@dataclass
class SaleStage:
    stage_id: int
    name: str
    rate: int
    tge_percentage: int
    cliff: int
    interval: int
    vesting_duration: int
    cap: int
    requires_whitelist: bool = False
    sold: int = 0
    active: bool = False
    activated_at: int | None = None
    whitelist: set[str] = field(default_factory=set)

    def __post_init__(self):
        if not 0 <= self.tge_percentage <= 100:
            raise ValueError("TGE percentage must be between 0 and 100.")
        if self.interval <= 0 or self.vesting_duration <= 0:
            raise ValueError("Interval and vesting duration must be positive.")
        if self.cap < 0:
            raise ValueError("Stage cap cannot be negative.")

    @property
    def remaining(self) -> int:
        return self.cap - self.sold

    def window(self) -> ReleaseWindow | None:
        if self.activated_at is None:
            return None
        return ReleaseWindow.for_sale(self.activated_at, self.cliff, self.interval, self.vesting_duration)

    def to_dict(self) -> dict[str, Any]:
        return {
            "stage_id": self.stage_id,
            "name": self.name,
            "rate": self.rate,
            "tge_percentage": self.tge_percentage,
            "cliff": self.cliff,
            "interval": self.interval,
            "vesting_duration": self.vesting_duration,
            "cap": self.cap,
            "requires_whitelist": self.requires_whitelist,
            "sold": self.sold,
            "active": self.active,
            "activated_at": self.activated_at,
            "whitelist": sorted(self.whitelist),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SaleStage":
        values = dict(data)
        values["whitelist"] = set(values.get("whitelist", []))
        return cls(**values)


class StageManager(TimedComponent):
    def __init__(
        self,
        registry: ScheduleRegistry,
        ledger: AssetLedger,
        guard: OwnershipGuard,
        custody_account: str,
        stages: Iterable[SaleStage],
        time_provider: TimeProvider,
        metrics: VestingMetrics | None = None,
        funds_available: Callable[[], int] | None = None,
    ):
        super().__init__(time_provider, metrics, logger)
        self.registry = registry
        self.funds_available = funds_available
        self.ledger = ledger
        self.guard = guard
        self.custody_account = custody_account
        self.stages: dict[int, SaleStage] = {}
        for stage in stages:
            if stage.stage_id in self.stages:
                raise ValueError(f"Duplicate stage id {stage.stage_id}.")
            self.stages[stage.stage_id] = stage
        self.state = StageState()
        for stage in self.stages.values():
            if stage.active:
                self.state = StageState.active(stage.stage_id)

    def get_stage(self, stage_id: int) -> SaleStage:
        stage = self.stages.get(stage_id)
        if stage is None:
            raise NotFoundError(f"Sale stage {stage_id} not found.", details={"stage_id": stage_id})
        return stage

    def current_stage(self) -> SaleStage | None:
        if self.state.status is StageStatus.NO_STAGE_ACTIVE:
            return None
        return self.stages[self.state.stage_id]

    def remaining_cap(self, stage_id: int) -> int:
        return self.get_stage(stage_id).remaining

    # ==================== Owner operations ====================

    def activate_stage(self, stage_id: int, rate: int, caller: str,
                       current_time: int | None = None) -> None:
        """Make ``stage_id`` the only active stage, selling at ``rate`` units per payment unit."""
        if isinstance(rate, bool) or not isinstance(rate, int) or rate <= 0:
            raise ValueError("Rate must be a positive integer.")
        now = self._now(current_time)

        with self.registry.lock:
            try:
                self.guard.require_owner(caller, "activate_stage")
                stage = self.get_stage(stage_id)
            except VestingError as exc:
                raise self._reject("activate_stage", exc)

            previous = self.current_stage()
            if previous is not None:
                previous.active = False
            stage.active = True
            stage.rate = rate
            if stage.activated_at is None:
                stage.activated_at = now
            self.state = StageState.active(stage_id)

        logger.info(
            "Stage %s (%d) activated at rate %d",
            stage.name,
            stage_id,
            rate,
            extra={
                "event": "sale.stage_activated",
                "stage_id": stage_id,
                "previous_stage": previous.stage_id if previous else None,
            },
        )

    def add_to_whitelist(self, stage_id: int, account: str, caller: str) -> None:
        if not account:
            raise ValueError("Whitelisted account cannot be empty.")
        with self.registry.lock:
            try:
                self.guard.require_owner(caller, "whitelist")
                stage = self.get_stage(stage_id)
            except VestingError as exc:
                raise self._reject("whitelist", exc)
            stage.whitelist.add(account)
        logger.info("Whitelisted %s for stage %d", account, stage_id)

    def remove_from_whitelist(self, stage_id: int, account: str, caller: str) -> None:
        with self.registry.lock:
            try:
                self.guard.require_owner(caller, "whitelist")
                stage = self.get_stage(stage_id)
            except VestingError as exc:
                raise self._reject("whitelist", exc)
            stage.whitelist.discard(account)
        logger.info("Removed %s from stage %d whitelist", account, stage_id)

    def is_whitelisted(self, stage_id: int, account: str) -> bool:
        return account in self.get_stage(stage_id).whitelist

    # ==================== Buyer operations ====================

    def purchase(self, stage_id: int, buyer: str, payment_amount: int) -> Purchase:
        """
        Buy ``payment_amount * rate`` units in the active stage.

        The TGE fraction is transferred to the buyer at once; the rest is
        added to the buyer's vesting total for this stage.

        Raises:
            NotFoundError: unknown stage
            StageNotActiveError: stage is not the active one
            NotWhitelistedError: gated stage and buyer not whitelisted
            CapExceededError: purchase would exceed the stage cap
            InsufficientFundsError: uncommitted custody cannot cover the units
            LedgerTransferFailedError: TGE transfer failed
        """
        if not buyer:
            raise ValueError("Buyer address cannot be empty.")
        if isinstance(payment_amount, bool) or not isinstance(payment_amount, int) or payment_amount <= 0:
            raise ValueError("Payment amount must be a positive integer.")

        with self.registry.lock:
            try:
                stage = self.get_stage(stage_id)
                if not self.state.is_active(stage_id):
                    raise StageNotActiveError(
                        f"Sale stage {stage_id} is not active",
                        details={"stage_id": stage_id, "active_stage": self.state.stage_id},
                    )
                if stage.requires_whitelist and buyer not in stage.whitelist:
                    raise NotWhitelistedError(
                        f"{buyer} is not whitelisted for stage {stage.name}",
                        details={"stage_id": stage_id, "buyer": buyer},
                    )
                units = payment_amount * stage.rate
                if stage.sold + units > stage.cap:
                    raise CapExceededError(
                        f"Purchase exceeds the {stage.name} sale cap",
                        details={"stage_id": stage_id, "requested": units, "remaining": stage.remaining},
                    )
                if self.funds_available is not None:
                    available = self.funds_available()
                    if units > available:
                        raise InsufficientFundsError(
                            "not enough uncommitted tokens for this purchase",
                            details={"stage_id": stage_id, "requested": units, "withdrawable": available},
                        )
                purchase = self.registry.find_purchase(stage_id, buyer) or Purchase(stage_id, buyer)
                # TGE is floored on the buyer's running total, not per purchase
                tge_units = (
                    (purchase.total_amount + units) * stage.tge_percentage // 100 - purchase.tge_amount
                )
                if tge_units > 0:
                    instruct_transfer(self.ledger, self.custody_account, buyer, tge_units)
            except VestingError as exc:
                raise self._reject("purchase", exc)

            purchase.total_amount += units
            purchase.tge_amount += tge_units
            purchase.paid_amount += payment_amount
            purchase.completed = purchase.claimed_amount == purchase.vesting_total
            self.registry.store_purchase(purchase)
            stage.sold += units

        self.metrics.record_purchase(stage_id, units)
        if tge_units:
            self.metrics.record_release("sale", tge_units)
        logger.info(
            "%s bought %d units in stage %d (%d released at TGE)",
            buyer,
            units,
            stage_id,
            tge_units,
            extra={"event": "sale.purchased", "stage_id": stage_id, "units": units, "tge_units": tge_units},
        )
        return purchase

    def compute_claimable_amount(self, stage_id: int, buyer: str,
                                 current_time: int | None = None) -> int:
        now = self._now(current_time)
        with self.registry.lock:
            stage = self.get_stage(stage_id)
            purchase = self.registry.get_purchase(stage_id, buyer)
            return self._claimable(stage, purchase, now)

    def claim_purchase(self, stage_id: int, buyer: str, current_time: int | None = None) -> int:
        """Transfer everything vested and unclaimed from the buyer's purchase; returns the amount."""
        now = self._now(current_time)

        with self.registry.lock:
            try:
                stage = self.get_stage(stage_id)
                purchase = self.registry.get_purchase(stage_id, buyer)
                claimable = self._claimable(stage, purchase, now)
                if claimable == 0:
                    raise InsufficientVestedError(
                        "no vested tokens to claim",
                        details={"stage_id": stage_id, "buyer": buyer, "claimed": purchase.claimed_amount},
                    )
                instruct_transfer(self.ledger, self.custody_account, buyer, claimable)
            except VestingError as exc:
                raise self._reject("claim_purchase", exc)

            purchase.claimed_amount += claimable
            purchase.completed = purchase.claimed_amount == purchase.vesting_total

        self.metrics.record_release("sale", claimable)
        logger.info(
            "%s claimed %d from stage %d",
            buyer,
            claimable,
            stage_id,
            extra={"event": "sale.claimed", "stage_id": stage_id, "amount": claimable},
        )
        return claimable

    @staticmethod
    def _claimable(stage: SaleStage, purchase: Purchase, now: int) -> int:
        window = stage.window()
        if window is None:
            return 0
        return releasable_amount(window, purchase.vesting_total, purchase.claimed_amount, now)

    # ==================== Snapshots ====================

    def to_dict(self) -> dict[str, Any]:
        return {"stages": [stage.to_dict() for stage in self.stages.values()]}
