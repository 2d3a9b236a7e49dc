"""
Asset ledger collaborator.

The core only instructs transfers out of the custody account it controls;
balances and ownership live in an external ledger behind AssetLedger.
InMemoryLedger is the reference implementation used by the CLI and tests.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, asdict
from typing import Any, Protocol, runtime_checkable

from vestflow.core.exceptions import (
    InsufficientBalanceError,
    LedgerError,
    LedgerTransferFailedError,
)

logger = logging.getLogger("vestflow.ledger")


@runtime_checkable
class AssetLedger(Protocol):
    def transfer(self, source: str, destination: str, amount: int) -> None:
        """Move amount from source to destination or raise InsufficientBalanceError."""
        ...

    def balance_of(self, account: str) -> int:
        ...


@dataclass(frozen=True)
class TransferRecord:
    source: str
    destination: str
    amount: int

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class InMemoryLedger:
    """
    Dict-backed ledger of integer balances.

    Keeps an append-only log of completed transfers.
    """

    def __init__(self, balances: dict[str, int] | None = None):
        self.balances: dict[str, int] = dict(balances or {})
        self.transfers: list[TransferRecord] = []
        self._lock = threading.Lock()

    def deposit(self, account: str, amount: int) -> None:
        """Credit an account from outside the ledger (funding custody, tests)."""
        if not isinstance(amount, int) or amount <= 0:
            raise ValueError("Deposit amount must be a positive integer.")
        with self._lock:
            self.balances[account] = self.balances.get(account, 0) + amount
        logger.info("Deposited %d to %s", amount, account)

    def transfer(self, source: str, destination: str, amount: int) -> None:
        if not isinstance(amount, int) or amount <= 0:
            raise ValueError("Transfer amount must be a positive integer.")
        with self._lock:
            available = self.balances.get(source, 0)
            if available < amount:
                raise InsufficientBalanceError(
                    f"Insufficient balance for transfer from {source}",
                    details={"source": source, "available": available, "requested": amount},
                )
            self.balances[source] = available - amount
            self.balances[destination] = self.balances.get(destination, 0) + amount
            self.transfers.append(TransferRecord(source, destination, amount))
        logger.debug("Transferred %d from %s to %s", amount, source, destination)

    def balance_of(self, account: str) -> int:
        return self.balances.get(account, 0)

    def to_dict(self) -> dict[str, Any]:
        return {
            "balances": dict(self.balances),
            "transfers": [record.to_dict() for record in self.transfers],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "InMemoryLedger":
        ledger = cls({account: int(amount) for account, amount in data.get("balances", {}).items()})
        ledger.transfers = [TransferRecord(**record) for record in data.get("transfers", [])]
        return ledger


def instruct_transfer(ledger: AssetLedger, source: str, destination: str, amount: int) -> None:
    """
    Issue one transfer instruction on behalf of a core operation.

    Callers invoke this after validation and before mutating any record, so
    a failed transfer leaves bookkeeping untouched.
    """
    try:
        ledger.transfer(source, destination, amount)
    except LedgerError as exc:
        logger.error(
            "Transfer of %d from %s to %s failed: %s",
            amount,
            source,
            destination,
            exc,
            extra={"event": "ledger.transfer_failed", "source": source, "destination": destination},
        )
        raise LedgerTransferFailedError(
            f"Ledger transfer failed: {exc}",
            source=source,
            destination=destination,
            amount=amount,
            details=getattr(exc, "details", {}),
        ) from exc
