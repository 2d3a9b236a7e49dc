"""
DistributionService - single entry point over the vestflow components.

Wires one ScheduleRegistry, ClaimProcessor, StageManager and
RewardPoolScheduler to a shared ledger, ownership guard, clock and metrics
collector, and adds the allocation accounting that spans all three
variants: custody funds are either committed (schedules, unclaimed sale
vesting, unwithdrawn pool) or withdrawable by the owner.
"""

from __future__ import annotations

import logging
from typing import Any, Iterable

from vestflow.core.access_control import OwnershipGuard
from vestflow.core.claim_processor import ClaimProcessor
from vestflow.core.clock import TimeProvider, TimedComponent
from vestflow.core.exceptions import InsufficientFundsError, VestingError
from vestflow.core.ledger import AssetLedger, instruct_transfer
from vestflow.core.metrics import VestingMetrics
from vestflow.core.reward_pool import RewardPoolScheduler
from vestflow.core.schedule_registry import Purchase, ScheduleRegistry, VestingSchedule
from vestflow.core.stage_manager import SaleStage, StageManager

logger = logging.getLogger("vestflow.service")


def stages_from_config(stage_configs: Iterable[Any]) -> list[SaleStage]:
    """Build fresh SaleStage records from StageConfig entries."""
    return [
        SaleStage(
            stage_id=cfg.stage_id,
            name=cfg.name,
            rate=cfg.rate,
            tge_percentage=cfg.tge_percentage,
            cliff=cfg.cliff,
            interval=cfg.interval,
            vesting_duration=cfg.vesting_duration,
            cap=cfg.cap,
            requires_whitelist=cfg.requires_whitelist,
        )
        for cfg in stage_configs
    ]


class DistributionService(TimedComponent):
    """
    Facade exposing schedule, sale and pool operations.

    All components share ``registry.lock``, so operations that span
    components (allocation checks, pool withdrawals) see a consistent view.
    """

    def __init__(
        self,
        ledger: AssetLedger,
        owner: str,
        custody_account: str,
        stages: Iterable[SaleStage],
        pool_settings: dict[str, Any],
        time_provider: TimeProvider,
        metrics: VestingMetrics | None = None,
        registry: ScheduleRegistry | None = None,
    ):
        super().__init__(time_provider, metrics, logger)
        self.ledger = ledger
        self.custody_account = custody_account
        self.guard = OwnershipGuard(owner)
        self.registry = registry or ScheduleRegistry()

        self.claims = ClaimProcessor(
            self.registry, ledger, self.guard, custody_account, time_provider, self.metrics
        )
        self.sale = StageManager(
            self.registry, ledger, self.guard, custody_account, stages, time_provider, self.metrics,
            funds_available=self.get_withdrawable_amount,
        )
        self.pool = RewardPoolScheduler(
            ledger,
            self.guard,
            custody_account,
            time_provider=time_provider,
            metrics=self.metrics,
            **pool_settings,
        )
        self.metrics.set_committed(self.registry.total_committed)

    @classmethod
    def from_config(
        cls,
        config: Any,
        ledger: AssetLedger,
        time_provider: TimeProvider,
        metrics: VestingMetrics | None = None,
    ) -> "DistributionService":
        """Build a fresh service from a ConfigManager (or anything with the same sections)."""
        return cls(
            ledger=ledger,
            owner=config.ledger.owner,
            custody_account=config.ledger.custody_account,
            stages=stages_from_config(config.sale.stages),
            pool_settings={
                "recipient": config.pool.recipient,
                "total_amount": config.pool.total_amount,
                "launch_time": config.pool.launch_time,
                "interval": config.pool.interval,
                "total_duration": config.pool.total_duration,
            },
            time_provider=time_provider,
            metrics=metrics,
        )

    @property
    def owner(self) -> str:
        return self.guard.owner

    # ==================== Allocation accounting ====================

    @property
    def total_obligations(self) -> int:
        """Custody units owed to schedules, sale buyers and the pool recipient."""
        return (
            self.registry.total_committed
            + self.registry.purchase_obligations
            + self.pool.outstanding
        )

    def get_withdrawable_amount(self) -> int:
        """Custody balance not committed to any beneficiary."""
        with self.registry.lock:
            balance = self.ledger.balance_of(self.custody_account)
            return max(0, balance - self.total_obligations)

    def withdraw_unallocated(self, amount: int, caller: str) -> None:
        """Move ``amount`` of uncommitted custody funds to the owner."""
        if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
            raise ValueError("Withdrawal amount must be a positive integer.")

        with self.registry.lock:
            try:
                self.guard.require_owner(caller, "withdraw_unallocated")
                available = self.get_withdrawable_amount()
                if amount > available:
                    raise InsufficientFundsError(
                        "not enough withdrawable funds",
                        details={"requested": amount, "withdrawable": available},
                    )
                instruct_transfer(self.ledger, self.custody_account, self.owner, amount)
            except VestingError as exc:
                raise self._reject("withdraw_unallocated", exc)

        logger.info(
            "Owner withdrew %d unallocated units",
            amount,
            extra={"event": "service.unallocated_withdrawn", "amount": amount},
        )

    # ==================== Vesting schedules ====================

    def create_schedule(
        self,
        beneficiary: str,
        start: int,
        cliff: int,
        duration: int,
        slice_period: int,
        revocable: bool,
        total_amount: int,
        caller: str,
    ) -> str:
        """
        Allocate ``total_amount`` from custody to a new schedule.

        Returns:
            The deterministic schedule id

        Raises:
            UnauthorizedError: caller is not the owner
            InsufficientFundsError: custody cannot cover the allocation
            ValueError: invalid timing or amount parameters
        """
        with self.registry.lock:
            try:
                self.guard.require_owner(caller, "create_schedule")
                available = self.get_withdrawable_amount()
                if isinstance(total_amount, int) and total_amount > available:
                    raise InsufficientFundsError(
                        "cannot create vesting schedule because not sufficient tokens",
                        details={"requested": total_amount, "withdrawable": available},
                    )
            except VestingError as exc:
                raise self._reject("create_schedule", exc)

            schedule = self.registry.add_schedule(
                beneficiary, start, cliff, duration, slice_period, revocable, total_amount
            )
            self.metrics.set_committed(self.registry.total_committed)
        return schedule.schedule_id

    def get_schedule(self, schedule_id: str) -> VestingSchedule:
        return self.registry.get_schedule(schedule_id)

    def compute_releasable(self, schedule_id: str, current_time: int | None = None) -> int:
        return self.claims.compute_releasable(schedule_id, current_time)

    def release(self, schedule_id: str, amount: int, caller: str,
                current_time: int | None = None) -> None:
        self.claims.release(schedule_id, amount, caller, current_time)

    def release_all(self, schedule_id: str, caller: str, current_time: int | None = None) -> int:
        return self.claims.release_all(schedule_id, caller, current_time)

    def revoke(self, schedule_id: str, caller: str, current_time: int | None = None) -> int:
        return self.claims.revoke(schedule_id, caller, current_time)

    # ==================== Staged sale ====================

    def activate_stage(self, stage_id: int, rate: int, caller: str,
                       current_time: int | None = None) -> None:
        self.sale.activate_stage(stage_id, rate, caller, current_time)

    def add_to_whitelist(self, stage_id: int, account: str, caller: str) -> None:
        self.sale.add_to_whitelist(stage_id, account, caller)

    def remove_from_whitelist(self, stage_id: int, account: str, caller: str) -> None:
        self.sale.remove_from_whitelist(stage_id, account, caller)

    def is_whitelisted(self, stage_id: int, account: str) -> bool:
        return self.sale.is_whitelisted(stage_id, account)

    def purchase(self, stage_id: int, buyer: str, payment_amount: int) -> Purchase:
        return self.sale.purchase(stage_id, buyer, payment_amount)

    def get_purchase(self, stage_id: int, buyer: str) -> Purchase:
        return self.registry.get_purchase(stage_id, buyer)

    def compute_claimable_amount(self, stage_id: int, buyer: str,
                                 current_time: int | None = None) -> int:
        return self.sale.compute_claimable_amount(stage_id, buyer, current_time)

    def claim_purchase(self, stage_id: int, buyer: str, current_time: int | None = None) -> int:
        return self.sale.claim_purchase(stage_id, buyer, current_time)

    # ==================== Reward pool ====================

    def withdraw_pool(self, caller: str, current_time: int | None = None) -> int:
        with self.registry.lock:
            return self.pool.withdraw(caller, current_time)

    # ==================== Ownership ====================

    def transfer_ownership(self, new_owner: str, caller: str) -> None:
        self.guard.transfer_ownership(new_owner, caller)

    def summary(self, current_time: int | None = None) -> dict[str, Any]:
        """Point-in-time overview used by the CLI status commands."""
        with self.registry.lock:
            current = self.sale.current_stage()
            return {
                "owner": self.owner,
                "custody_account": self.custody_account,
                "custody_balance": self.ledger.balance_of(self.custody_account),
                "committed": self.registry.total_committed,
                "purchase_obligations": self.registry.purchase_obligations,
                "pool_outstanding": self.pool.outstanding,
                "withdrawable": self.get_withdrawable_amount(),
                "schedules": self.registry.get_schedules_count(),
                "active_stage": current.stage_id if current else None,
                "pool_state": self.pool.state(current_time).value,
            }
