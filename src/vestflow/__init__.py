"""
vestflow - Time-gated release of fungible asset units

Main Components:
- Vesting schedules: per-beneficiary cliffs, slice periods and revocation
- Staged sale: TGE release plus linear vesting after a per-stage cliff
- Reward pool: fixed-phase unlocks for a single recipient
"""

__version__ = "0.1.0"
__author__ = "vestflow Development Team"

__all__ = []
