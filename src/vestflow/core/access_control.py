"""
Role checks for privileged vestflow operations.

The registry owner creates and revokes schedules, activates sale stages,
manages whitelists and withdraws from the reward pool. Beneficiaries may
release their own schedules.
"""

from __future__ import annotations

import logging
import threading
from enum import Enum

from vestflow.core.exceptions import UnauthorizedError

logger = logging.getLogger("vestflow.access")


class Role(Enum):
    """Roles recognised by vestflow operations."""
    OWNER = "owner"
    BENEFICIARY = "beneficiary"


class OwnershipGuard:
    """Holds the registry owner and enforces owner-only operations."""

    def __init__(self, owner: str):
        if not owner:
            raise ValueError("Owner address cannot be empty.")
        self._owner = owner
        self._lock = threading.Lock()

    @property
    def owner(self) -> str:
        return self._owner

    def is_owner(self, caller: str) -> bool:
        return caller == self._owner

    def require_owner(self, caller: str, operation: str) -> None:
        """Raise UnauthorizedError unless caller is the owner."""
        if not self.is_owner(caller):
            logger.warning(
                "Rejected %s from non-owner %s",
                operation,
                caller,
                extra={"event": "access.denied", "operation": operation, "caller": caller},
            )
            raise UnauthorizedError(
                "caller is not the owner",
                details={"operation": operation, "caller": caller, "required_role": Role.OWNER.value},
            )

    def require_owner_or(self, caller: str, beneficiary: str, operation: str) -> None:
        """Raise UnauthorizedError unless caller is the owner or the beneficiary."""
        if caller == beneficiary or self.is_owner(caller):
            return
        logger.warning(
            "Rejected %s from %s (beneficiary %s)",
            operation,
            caller,
            beneficiary,
            extra={"event": "access.denied", "operation": operation, "caller": caller},
        )
        raise UnauthorizedError(
            "only beneficiary and owner can release vested tokens",
            details={"operation": operation, "caller": caller, "beneficiary": beneficiary},
        )

    def transfer_ownership(self, new_owner: str, caller: str) -> None:
        if not new_owner:
            raise ValueError("New owner address cannot be empty.")
        with self._lock:
            self.require_owner(caller, "transfer_ownership")
            previous = self._owner
            self._owner = new_owner
        logger.info(
            "Ownership transferred from %s to %s",
            previous,
            new_owner,
            extra={"event": "access.ownership_transferred", "previous": previous, "owner": new_owner},
        )
