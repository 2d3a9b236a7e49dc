"""
Release and revocation of vesting schedules.

ClaimProcessor is the only component that changes a schedule's released
total. Each operation validates first, then issues the ledger transfer,
then updates the record, all under the registry lock.
"""

from __future__ import annotations

import logging

from vestflow.core.access_control import OwnershipGuard
from vestflow.core.clock import TimeProvider, TimedComponent
from vestflow.core.exceptions import (
    InsufficientVestedError,
    NotRevocableError,
    VestingError,
)
from vestflow.core.ledger import AssetLedger, instruct_transfer
from vestflow.core.metrics import VestingMetrics
from vestflow.core.schedule_registry import ScheduleRegistry

logger = logging.getLogger("vestflow.claims")


class ClaimProcessor(TimedComponent):
    def __init__(
        self,
        registry: ScheduleRegistry,
        ledger: AssetLedger,
        guard: OwnershipGuard,
        custody_account: str,
        time_provider: TimeProvider,
        metrics: VestingMetrics | None = None,
    ):
        super().__init__(time_provider, metrics, logger)
        self.registry = registry
        self.ledger = ledger
        self.guard = guard
        self.custody_account = custody_account

    def compute_releasable(self, schedule_id: str, current_time: int | None = None) -> int:
        """Amount the beneficiary could release at the given time."""
        now = self._now(current_time)
        with self.registry.lock:
            return self.registry.get_schedule(schedule_id).releasable(now)

    def release(self, schedule_id: str, amount: int, caller: str,
                current_time: int | None = None) -> None:
        """
        Release ``amount`` vested units to the schedule's beneficiary.

        Raises:
            NotFoundError: unknown schedule
            UnauthorizedError: caller is neither beneficiary nor owner
            InsufficientVestedError: amount exceeds the releasable amount
            LedgerTransferFailedError: custody transfer failed
        """
        if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
            raise ValueError("Release amount must be a positive integer.")
        now = self._now(current_time)

        with self.registry.lock:
            try:
                schedule = self.registry.get_schedule(schedule_id)
                self.guard.require_owner_or(caller, schedule.beneficiary, "release")
                releasable = schedule.releasable(now)
                if amount > releasable:
                    raise InsufficientVestedError(
                        "cannot release tokens, not enough vested tokens",
                        details={"schedule_id": schedule_id, "requested": amount, "releasable": releasable},
                    )
                instruct_transfer(self.ledger, self.custody_account, schedule.beneficiary, amount)
            except VestingError as exc:
                raise self._reject("release", exc)

            schedule.released += amount

        self.metrics.record_release("schedule", amount)
        self.metrics.set_committed(self.registry.total_committed)
        logger.info(
            "Released %d from schedule %s to %s",
            amount,
            schedule_id,
            schedule.beneficiary,
            extra={"event": "schedule.released", "schedule_id": schedule_id, "amount": amount},
        )

    def release_all(self, schedule_id: str, caller: str, current_time: int | None = None) -> int:
        """Release everything currently releasable; returns the amount."""
        now = self._now(current_time)
        with self.registry.lock:
            try:
                schedule = self.registry.get_schedule(schedule_id)
                self.guard.require_owner_or(caller, schedule.beneficiary, "release")
                releasable = schedule.releasable(now)
                if releasable == 0:
                    raise InsufficientVestedError(
                        "cannot release tokens, not enough vested tokens",
                        details={"schedule_id": schedule_id, "releasable": 0},
                    )
            except VestingError as exc:
                raise self._reject("release", exc)
            self.release(schedule_id, releasable, caller, current_time=now)
        return releasable

    def revoke(self, schedule_id: str, caller: str, current_time: int | None = None) -> int:
        """
        Revoke a schedule, first paying out what has vested so far.

        The schedule is frozen at the revocation instant: later evaluations
        never see further growth. The unvested remainder stops counting as
        committed and becomes withdrawable by the owner.

        Returns:
            The amount paid out to the beneficiary at revocation.
        """
        now = self._now(current_time)

        with self.registry.lock:
            try:
                self.guard.require_owner(caller, "revoke")
                schedule = self.registry.get_schedule(schedule_id)
                if not schedule.revocable:
                    raise NotRevocableError(
                        "vesting is not revocable", details={"schedule_id": schedule_id}
                    )
                if schedule.revoked:
                    raise NotRevocableError(
                        "vesting schedule already revoked",
                        details={"schedule_id": schedule_id, "revoked_at": schedule.revoked_at},
                    )
                vested_unreleased = schedule.releasable(now)
                if vested_unreleased > 0:
                    instruct_transfer(
                        self.ledger, self.custody_account, schedule.beneficiary, vested_unreleased
                    )
            except VestingError as exc:
                raise self._reject("revoke", exc)

            schedule.released += vested_unreleased
            schedule.revoked = True
            schedule.revoked_at = now

        if vested_unreleased:
            self.metrics.record_release("schedule", vested_unreleased)
        self.metrics.record_revocation()
        self.metrics.set_committed(self.registry.total_committed)
        logger.info(
            "Revoked schedule %s at %d, released %d to %s",
            schedule_id,
            now,
            vested_unreleased,
            schedule.beneficiary,
            extra={"event": "schedule.revoked", "schedule_id": schedule_id, "amount": vested_unreleased},
        )
        return vested_unreleased
