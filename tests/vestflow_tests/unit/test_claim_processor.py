"""
Tests for ClaimProcessor release, release_all and revoke.

Every rejected operation must leave the schedule and the ledger untouched.
"""

import pytest

from vestflow.core.access_control import OwnershipGuard
from vestflow.core.claim_processor import ClaimProcessor
from vestflow.core.exceptions import (
    InsufficientBalanceError,
    InsufficientVestedError,
    LedgerTransferFailedError,
    NotFoundError,
    NotRevocableError,
    UnauthorizedError,
)
from vestflow.core.metrics import VestingMetrics
from vestflow.core.schedule_registry import ScheduleRegistry

CUSTODY = "custody"
OWNER = "owner"


@pytest.fixture
def registry():
    return ScheduleRegistry()


@pytest.fixture
def metrics():
    return VestingMetrics()


@pytest.fixture
def processor(registry, ledger, clock, metrics):
    ledger.deposit(CUSTODY, 10_000)
    return ClaimProcessor(registry, ledger, OwnershipGuard(OWNER), CUSTODY, clock.now, metrics)


@pytest.fixture
def schedule(registry):
    return registry.add_schedule(
        "alice", start=1000, cliff=60, duration=144, slice_period=36, revocable=True, total_amount=10_000
    )


class TestRelease:

    def test_compute_releasable_uses_injected_clock(self, processor, schedule, clock):
        assert processor.compute_releasable(schedule.schedule_id) == 0
        clock.set(1060)
        assert processor.compute_releasable(schedule.schedule_id) == 2500

    def test_explicit_time_overrides_clock(self, processor, schedule):
        assert processor.compute_releasable(schedule.schedule_id, current_time=1144) == 10_000

    @pytest.mark.parametrize("current_time", [1072.9, -3, True, "1100"])
    def test_explicit_time_must_be_non_negative_integer(self, processor, schedule, ledger, current_time):
        with pytest.raises(ValueError):
            processor.compute_releasable(schedule.schedule_id, current_time=current_time)
        with pytest.raises(ValueError):
            processor.release_all(schedule.schedule_id, "alice", current_time=current_time)
        assert schedule.released == 0
        assert ledger.balance_of("alice") == 0

    def test_beneficiary_releases_vested_amount(self, processor, schedule, ledger, clock):
        clock.set(1060)
        processor.release(schedule.schedule_id, 2500, "alice")
        assert schedule.released == 2500
        assert ledger.balance_of("alice") == 2500
        assert ledger.balance_of(CUSTODY) == 7500
        assert processor.compute_releasable(schedule.schedule_id) == 0

    def test_owner_may_release_to_beneficiary(self, processor, schedule, ledger, clock):
        clock.set(1072)
        processor.release(schedule.schedule_id, 1000, OWNER)
        assert ledger.balance_of("alice") == 1000
        assert ledger.balance_of(OWNER) == 0

    def test_partial_releases_accumulate(self, processor, schedule, clock):
        clock.set(1072)
        processor.release(schedule.schedule_id, 1000, "alice")
        processor.release(schedule.schedule_id, 4000, "alice")
        assert schedule.released == 5000

    def test_stranger_cannot_release(self, processor, schedule, ledger, clock, metrics):
        clock.set(1144)
        with pytest.raises(UnauthorizedError) as exc_info:
            processor.release(schedule.schedule_id, 100, "mallory")
        assert exc_info.value.message == "only beneficiary and owner can release vested tokens"
        assert schedule.released == 0
        assert ledger.transfers == []
        assert ledger.balance_of(CUSTODY) == 10_000
        assert metrics.registry.get_sample_value(
            "vestflow_rejected_operations_total",
            {"operation": "release", "error": "UnauthorizedError"},
        ) == 1.0

    def test_cannot_release_more_than_vested(self, processor, schedule, ledger, clock):
        clock.set(1060)
        with pytest.raises(InsufficientVestedError) as exc_info:
            processor.release(schedule.schedule_id, 2501, "alice")
        assert exc_info.value.message == "cannot release tokens, not enough vested tokens"
        assert schedule.released == 0
        assert ledger.balance_of("alice") == 0

    def test_before_cliff_nothing_is_releasable(self, processor, schedule, clock):
        clock.set(1059)
        with pytest.raises(InsufficientVestedError):
            processor.release(schedule.schedule_id, 1, "alice")

    @pytest.mark.parametrize("amount", [0, -5, 1.5, True])
    def test_rejects_non_positive_or_non_integer_amounts(self, processor, schedule, amount):
        with pytest.raises(ValueError):
            processor.release(schedule.schedule_id, amount, "alice")

    def test_unknown_schedule(self, processor):
        with pytest.raises(NotFoundError):
            processor.release("missing", 1, OWNER)

    def test_ledger_failure_leaves_schedule_unchanged(self, registry, ledger, clock, schedule):
        processor = ClaimProcessor(registry, ledger, OwnershipGuard(OWNER), CUSTODY, clock.now)
        ledger.deposit(CUSTODY, 100)
        clock.set(1060)
        with pytest.raises(LedgerTransferFailedError) as exc_info:
            processor.release(schedule.schedule_id, 2500, "alice")
        assert isinstance(exc_info.value.__cause__, InsufficientBalanceError)
        assert exc_info.value.amount == 2500
        assert exc_info.value.destination == "alice"
        assert schedule.released == 0
        assert ledger.balance_of(CUSTODY) == 100


class TestReleaseAll:

    def test_releases_everything_releasable(self, processor, schedule, ledger, clock):
        clock.set(1060)
        assert processor.release_all(schedule.schedule_id, "alice") == 2500
        clock.set(1144)
        assert processor.release_all(schedule.schedule_id, "alice") == 7500
        assert schedule.exhausted
        assert ledger.balance_of("alice") == 10_000

    def test_exhausted_schedule_never_pays_again(self, processor, schedule, ledger, clock):
        clock.set(2000)
        processor.release_all(schedule.schedule_id, "alice")
        with pytest.raises(InsufficientVestedError):
            processor.release_all(schedule.schedule_id, "alice")
        with pytest.raises(InsufficientVestedError):
            processor.release(schedule.schedule_id, 1, "alice")
        assert ledger.balance_of("alice") == 10_000

    def test_authorization_checked_before_amount(self, processor, schedule):
        with pytest.raises(UnauthorizedError):
            processor.release_all(schedule.schedule_id, "mallory")


class TestRevoke:

    def test_revoke_pays_vested_and_freezes(self, processor, schedule, ledger, clock):
        clock.set(1080)
        paid = processor.revoke(schedule.schedule_id, OWNER)
        assert paid == 5000
        assert ledger.balance_of("alice") == 5000
        assert schedule.revoked
        assert schedule.revoked_at == 1080
        assert schedule.released == 5000

        clock.set(5000)
        assert processor.compute_releasable(schedule.schedule_id) == 0
        with pytest.raises(InsufficientVestedError):
            processor.release(schedule.schedule_id, 1, "alice")

    def test_revoke_after_partial_release(self, processor, schedule, ledger, clock):
        clock.set(1060)
        processor.release(schedule.schedule_id, 1000, "alice")
        clock.set(1080)
        assert processor.revoke(schedule.schedule_id, OWNER) == 4000
        assert ledger.balance_of("alice") == 5000

    def test_revoke_before_cliff_pays_nothing(self, processor, schedule, ledger, clock):
        clock.set(1010)
        assert processor.revoke(schedule.schedule_id, OWNER) == 0
        assert ledger.transfers == []
        assert schedule.revoked

    def test_only_owner_may_revoke(self, processor, schedule, clock):
        clock.set(1080)
        with pytest.raises(UnauthorizedError):
            processor.revoke(schedule.schedule_id, "alice")
        assert not schedule.revoked
        assert schedule.released == 0

    def test_cannot_revoke_twice(self, processor, schedule):
        processor.revoke(schedule.schedule_id, OWNER)
        with pytest.raises(NotRevocableError):
            processor.revoke(schedule.schedule_id, OWNER)

    def test_non_revocable_schedule(self, processor, registry):
        schedule = registry.add_schedule(
            "bob", start=1000, cliff=0, duration=100, slice_period=1, revocable=False, total_amount=100
        )
        with pytest.raises(NotRevocableError):
            processor.revoke(schedule.schedule_id, OWNER)
        assert not schedule.revoked

    def test_revocation_releases_commitment(self, processor, schedule, registry, clock, metrics):
        assert registry.total_committed == 10_000
        clock.set(1080)
        processor.revoke(schedule.schedule_id, OWNER)
        assert registry.total_committed == 0
        assert metrics.registry.get_sample_value("vestflow_revocations_total") == 1.0
