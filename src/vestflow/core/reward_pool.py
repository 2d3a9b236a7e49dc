"""
Fixed-phase reward pool for a single recipient.

The pool unlocks ``total / total_phases`` per phase, where a phase is one
``interval`` and ``total_phases = total_duration // interval``. The launch
instant already completes phase one, so the first withdrawal is possible
at launch. Only the owner may trigger a withdrawal; funds always go to the
designated recipient.
"""

from __future__ import annotations

import logging
import threading
from enum import Enum
from typing import Any

from vestflow.core.access_control import OwnershipGuard
from vestflow.core.clock import TimeProvider, TimedComponent
from vestflow.core.exceptions import (
    FullyWithdrawnError,
    NothingToWithdrawError,
    TooEarlyError,
    VestingError,
)
from vestflow.core.ledger import AssetLedger, instruct_transfer
from vestflow.core.metrics import VestingMetrics
from vestflow.core.release_calculator import ReleaseWindow, elapsed_slices, vested_amount

logger = logging.getLogger("vestflow.pool")


class PoolState(Enum):
    NOT_LAUNCHED = "not_launched"
    ACTIVE = "active"
    EXHAUSTED = "exhausted"


class RewardPoolScheduler(TimedComponent):
    def __init__(
        self,
        ledger: AssetLedger,
        guard: OwnershipGuard,
        custody_account: str,
        recipient: str,
        total_amount: int,
        launch_time: int,
        interval: int,
        total_duration: int,
        time_provider: TimeProvider,
        metrics: VestingMetrics | None = None,
        claimed_amount: int = 0,
    ):
        super().__init__(time_provider, metrics, logger)
        if not recipient:
            raise ValueError("Pool recipient cannot be empty.")
        if not isinstance(total_amount, int) or total_amount < 0:
            raise ValueError("Pool total must be a non-negative integer.")
        if not isinstance(interval, int) or interval <= 0:
            raise ValueError("Pool interval must be a positive integer.")
        if not isinstance(total_duration, int) or total_duration < interval:
            raise ValueError("Pool duration must cover at least one interval.")
        if not 0 <= claimed_amount <= total_amount:
            raise ValueError("Claimed amount must be between 0 and the pool total.")

        self.ledger = ledger
        self.guard = guard
        self.custody_account = custody_account
        self.recipient = recipient
        self.total_amount = total_amount
        self.launch_time = launch_time
        self.interval = interval
        self.total_duration = total_duration
        self.claimed_amount = claimed_amount
        self._lock = threading.Lock()

    @property
    def total_phases(self) -> int:
        return self.total_duration // self.interval

    @property
    def outstanding(self) -> int:
        return self.total_amount - self.claimed_amount

    def window(self) -> ReleaseWindow:
        return ReleaseWindow.for_pool(self.launch_time, self.interval, self.total_phases)

    def state(self, current_time: int | None = None) -> PoolState:
        now = self._now(current_time)
        if now < self.launch_time:
            return PoolState.NOT_LAUNCHED
        if self.claimed_amount == self.total_amount:
            return PoolState.EXHAUSTED
        return PoolState.ACTIVE

    def elapsed_phases(self, current_time: int | None = None) -> int:
        return min(elapsed_slices(self.window(), self._now(current_time)), self.total_phases)

    def entitled_amount(self, current_time: int | None = None) -> int:
        """Cumulative amount unlocked at the given time."""
        return vested_amount(self.window(), self.total_amount, self._now(current_time))

    def withdrawable_amount(self, current_time: int | None = None) -> int:
        return max(0, self.entitled_amount(current_time) - self.claimed_amount)

    def withdraw(self, caller: str, current_time: int | None = None) -> int:
        """
        Transfer every newly unlocked phase to the recipient.

        Raises:
            UnauthorizedError: caller is not the owner
            TooEarlyError: before launch
            FullyWithdrawnError: the whole pool was already withdrawn
            NothingToWithdrawError: no new phase since the last withdrawal
            LedgerTransferFailedError: custody transfer failed
        """
        now = self._now(current_time)

        with self._lock:
            try:
                self.guard.require_owner(caller, "withdraw_pool")
                if now < self.launch_time:
                    raise TooEarlyError(
                        "Game is not Launch yet.",
                        details={"launch_time": self.launch_time, "now": now},
                    )
                if self.claimed_amount == self.total_amount:
                    raise FullyWithdrawnError(
                        "You have withdraw all amount.",
                        details={"claimed": self.claimed_amount},
                    )
                entitled = vested_amount(self.window(), self.total_amount, now)
                if entitled <= self.claimed_amount:
                    raise NothingToWithdrawError(
                        "There is no amount for withdrawal in current phase.",
                        details={"claimed": self.claimed_amount, "entitled": entitled},
                    )
                amount = entitled - self.claimed_amount
                instruct_transfer(self.ledger, self.custody_account, self.recipient, amount)
            except VestingError as exc:
                raise self._reject("withdraw_pool", exc)

            self.claimed_amount = entitled
            exhausted = self.claimed_amount == self.total_amount

        self.metrics.record_release("pool", amount)
        logger.info(
            "Withdrew %d from reward pool to %s (claimed %d of %d)",
            amount,
            self.recipient,
            entitled,
            self.total_amount,
            extra={"event": "pool.withdrawn", "amount": amount, "exhausted": exhausted},
        )
        return amount

    def to_dict(self) -> dict[str, Any]:
        return {
            "recipient": self.recipient,
            "total_amount": self.total_amount,
            "launch_time": self.launch_time,
            "interval": self.interval,
            "total_duration": self.total_duration,
            "claimed_amount": self.claimed_amount,
        }
