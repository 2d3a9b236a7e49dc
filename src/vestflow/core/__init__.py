"""
vestflow core.

This module provides the release computation and bookkeeping for:
- Release math: one ReleaseWindow abstraction for every variant
- Registry: vesting schedules and sale purchases
- Claims: release, release-all and revocation of schedules
- Staged sale: stage activation, whitelists, purchases and claims
- Reward pool: phase-based withdrawals to a single recipient
- Service: the facade that wires them to a ledger and persistence
"""

from .access_control import OwnershipGuard, Role
from .claim_processor import ClaimProcessor
from .clock import ManualClock, TimedComponent, system_time
from .distribution_service import DistributionService
from .ledger import AssetLedger, InMemoryLedger, TransferRecord
from .release_calculator import (
    ReleaseWindow,
    elapsed_slices,
    releasable_amount,
    vested_amount,
)
from .reward_pool import PoolState, RewardPoolScheduler
from .schedule_registry import (
    Purchase,
    ScheduleRegistry,
    VestingSchedule,
    compute_schedule_id,
)
from .stage_manager import SaleStage, StageManager, StageState, StageStatus
from .state_store import StateStore

__all__ = [
    # Release math
    "ReleaseWindow",
    "elapsed_slices",
    "vested_amount",
    "releasable_amount",
    # Registry
    "ScheduleRegistry",
    "VestingSchedule",
    "Purchase",
    "compute_schedule_id",
    # Components
    "ClaimProcessor",
    "StageManager",
    "SaleStage",
    "StageState",
    "StageStatus",
    "RewardPoolScheduler",
    "PoolState",
    "DistributionService",
    "StateStore",
    # Collaborators
    "AssetLedger",
    "InMemoryLedger",
    "TransferRecord",
    "OwnershipGuard",
    "Role",
    # Time
    "ManualClock",
    "TimedComponent",
    "system_time",
]
