"""
Tests for the DistributionService facade and allocation accounting.
"""

import pytest

from vestflow.core.config_manager import ConfigManager
from vestflow.core.distribution_service import DistributionService
from vestflow.core.exceptions import InsufficientFundsError, UnauthorizedError
from vestflow.core.ledger import InMemoryLedger
from vestflow.core.stage_manager import SaleStage

CUSTODY = "custody"
OWNER = "owner"


def _service(ledger, clock):
    return DistributionService(
        ledger=ledger,
        owner=OWNER,
        custody_account=CUSTODY,
        stages=[
            SaleStage(0, "public", rate=10, tge_percentage=10, cliff=0, interval=10,
                      vesting_duration=100, cap=10_000),
        ],
        pool_settings={
            "recipient": "game",
            "total_amount": 1000,
            "launch_time": 0,
            "interval": 10,
            "total_duration": 100,
        },
        time_provider=clock.now,
    )


@pytest.fixture
def service(ledger, clock):
    clock.set(0)
    ledger.deposit(CUSTODY, 6000)
    return _service(ledger, clock)


class TestAllocation:

    def test_pool_total_is_committed(self, service):
        assert service.total_obligations == 1000
        assert service.get_withdrawable_amount() == 5000

    def test_create_schedule_within_funds(self, service):
        schedule_id = service.create_schedule("alice", 0, 0, 100, 10, True, 5000, caller=OWNER)
        assert service.get_schedule(schedule_id).total_amount == 5000
        assert service.get_withdrawable_amount() == 0

    def test_create_schedule_beyond_funds(self, service):
        service.create_schedule("alice", 0, 0, 100, 10, True, 5000, caller=OWNER)
        with pytest.raises(InsufficientFundsError):
            service.create_schedule("bob", 0, 0, 100, 10, True, 1, caller=OWNER)
        assert service.registry.get_schedules_count() == 1

    def test_only_owner_creates_schedules(self, service):
        with pytest.raises(UnauthorizedError):
            service.create_schedule("alice", 0, 0, 100, 10, True, 100, caller="alice")
        assert service.registry.get_schedules_count() == 0

    def test_invalid_schedule_parameters(self, service):
        with pytest.raises(ValueError):
            service.create_schedule("alice", 0, 200, 100, 10, True, 100, caller=OWNER)

    def test_revocation_frees_unvested_remainder(self, service, ledger, clock):
        schedule_id = service.create_schedule("alice", 0, 0, 100, 10, True, 5000, caller=OWNER)
        clock.set(50)
        assert service.revoke(schedule_id, OWNER) == 2500
        assert service.get_withdrawable_amount() == 2500

        service.withdraw_unallocated(2500, OWNER)
        assert ledger.balance_of(OWNER) == 2500
        with pytest.raises(InsufficientFundsError):
            service.withdraw_unallocated(1, OWNER)

    def test_withdraw_unallocated_requires_owner(self, service, ledger):
        with pytest.raises(UnauthorizedError):
            service.withdraw_unallocated(10, "alice")
        assert ledger.balance_of(CUSTODY) == 6000

    def test_sale_vesting_is_committed(self, service, ledger):
        service.activate_stage(0, 10, OWNER)
        service.purchase(0, "bob", 10)  # 100 units, 10 at TGE
        assert ledger.balance_of(CUSTODY) == 5990
        assert service.registry.purchase_obligations == 90
        assert service.get_withdrawable_amount() == 5990 - 1000 - 90

    def test_purchase_cannot_spend_committed_funds(self, service, ledger, clock):
        schedule_id = service.create_schedule("alice", 0, 0, 100, 10, False, 5000, caller=OWNER)
        service.activate_stage(0, 10, OWNER)
        with pytest.raises(InsufficientFundsError):
            service.purchase(0, "bob", 1)
        assert ledger.balance_of("bob") == 0
        assert service.registry.find_purchase(0, "bob") is None
        assert service.sale.get_stage(0).sold == 0

        clock.set(100)
        service.release(schedule_id, 5000, "alice")
        assert ledger.balance_of("alice") == 5000

    def test_purchase_within_uncommitted_funds(self, service):
        service.create_schedule("alice", 0, 0, 100, 10, False, 4000, caller=OWNER)
        service.activate_stage(0, 10, OWNER)
        service.purchase(0, "bob", 100)  # 1000 units, exactly the remainder
        assert service.get_withdrawable_amount() == 0
        with pytest.raises(InsufficientFundsError):
            service.purchase(0, "bob", 1)

    def test_pool_withdrawal_reduces_obligation(self, service):
        assert service.withdraw_pool(OWNER) == 100
        assert service.pool.outstanding == 900
        assert service.get_withdrawable_amount() == 5000


class TestOperations:

    def test_release_flow(self, service, ledger, clock):
        schedule_id = service.create_schedule("alice", 0, 20, 100, 10, True, 1000, caller=OWNER)
        clock.set(30)
        assert service.compute_releasable(schedule_id) == 300
        service.release(schedule_id, 100, "alice")
        assert service.release_all(schedule_id, "alice") == 200
        assert ledger.balance_of("alice") == 300

    def test_sale_claim_flow(self, service, ledger, clock):
        service.activate_stage(0, 10, OWNER)
        service.purchase(0, "bob", 10)
        clock.set(20)
        assert service.compute_claimable_amount(0, "bob") == 18
        assert service.claim_purchase(0, "bob") == 18
        assert service.get_purchase(0, "bob").claimed_amount == 18

    def test_whitelist_passthrough(self, service):
        service.add_to_whitelist(0, "bob", OWNER)
        assert service.is_whitelisted(0, "bob")
        service.remove_from_whitelist(0, "bob", OWNER)
        assert not service.is_whitelisted(0, "bob")

    def test_transfer_ownership(self, service):
        service.transfer_ownership("treasury", OWNER)
        assert service.owner == "treasury"
        with pytest.raises(UnauthorizedError):
            service.create_schedule("alice", 0, 0, 100, 10, True, 100, caller=OWNER)
        service.create_schedule("alice", 0, 0, 100, 10, True, 100, caller="treasury")

    def test_summary(self, service):
        summary = service.summary()
        assert summary["custody_balance"] == 6000
        assert summary["pool_outstanding"] == 1000
        assert summary["withdrawable"] == 5000
        assert summary["active_stage"] is None
        assert summary["pool_state"] == "active"


class TestFromConfig:

    def test_builds_components_from_default_config(self, clock):
        config = ConfigManager(environment="development")
        service = DistributionService.from_config(config, InMemoryLedger(), clock.now)
        assert service.owner == config.ledger.owner
        assert service.custody_account == config.ledger.custody_account
        assert sorted(service.sale.stages) == [0, 1, 2]
        assert service.sale.get_stage(0).requires_whitelist
        assert not service.sale.get_stage(2).requires_whitelist
        assert service.pool.total_phases == 23
