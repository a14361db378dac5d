"""
In-process ledger simulator.

Stands in for the chain that hosts wallet contracts:
- Native-asset balances and transfers
- A block clock that only moves forward
- Call dispatch into registered contracts
- All-or-nothing call semantics: a reverted call leaves no trace

Every state-mutating contract call made through ``Ledger.call`` runs to
completion before the next one starts; there is no internal concurrency.
"""

from __future__ import annotations

import copy
import logging
import time
from contextlib import contextmanager
from dataclasses import dataclass, field, fields
from typing import Any, Dict, Iterator, Optional, Protocol

from eth_utils import is_address, to_checksum_address

from . import config
from .blockchain_exceptions import (
    ClockError,
    ContractError,
    InsufficientBalanceError,
    ValidationError,
)

logger = logging.getLogger(__name__)

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"


class Contract(Protocol):
    """Anything the ledger can route call data into."""

    address: str

    def dispatch(self, caller: str, value: int, data: bytes) -> Any:
        ...


def normalize_address(address: str) -> str:
    """Return the checksummed form of ``address``; raises ValueError if invalid."""
    if not isinstance(address, str) or not is_address(address):
        raise ValueError(f"Invalid address: {address!r}")
    return to_checksum_address(address)


def same_address(a: Optional[str], b: Optional[str]) -> bool:
    if not a or not b:
        return False
    return a.lower() == b.lower()


@dataclass
class Ledger:
    """
    Native-asset ledger with a monotonic clock.

    Balances are keyed by lowercase address. Contracts register themselves
    so that ``call`` can hand them call data and so that their state can be
    snapshotted for rollback.
    """

    chain_id: int = config.CHAIN_ID
    timestamp: int = field(default_factory=lambda: int(time.time()))
    balances: Dict[str, int] = field(default_factory=dict)
    contracts: Dict[str, Any] = field(default_factory=dict)

    # ==================== Clock ====================

    def latest(self) -> int:
        return self.timestamp

    def increase_time(self, seconds: int) -> int:
        """Advance the clock by ``seconds`` and return the new timestamp."""
        if seconds < 0:
            raise ClockError("Cannot move the clock backwards")
        self.timestamp += int(seconds)
        return self.timestamp

    def increase_to(self, timestamp: int) -> int:
        """Advance the clock to ``timestamp``; it must not be in the past."""
        if timestamp < self.timestamp:
            raise ClockError(
                f"Timestamp {timestamp} is lower than current timestamp {self.timestamp}"
            )
        self.timestamp = int(timestamp)
        return self.timestamp

    # ==================== Balances ====================

    def balance_of(self, address: str) -> int:
        return self.balances.get(address.lower(), 0)

    def mint(self, address: str, amount: int) -> None:
        """Credit ``amount`` out of thin air (genesis allocation / faucet)."""
        if amount < 0:
            raise ValueError("Mint amount cannot be negative")
        key = address.lower()
        self.balances[key] = self.balances.get(key, 0) + amount

    def transfer(self, sender: str, to: str, amount: int) -> None:
        """
        Move ``amount`` from ``sender`` to ``to``.

        Raises:
            ValidationError: If ``to`` is not a valid address
            InsufficientBalanceError: If ``sender`` cannot cover ``amount``
        """
        if amount < 0:
            raise ValueError("Transfer amount cannot be negative")
        self._require_address(to)
        if amount == 0:
            return
        sender_key = sender.lower()
        available = self.balances.get(sender_key, 0)
        if available < amount:
            raise InsufficientBalanceError(
                "Insufficient balance for transfer",
                details={"sender": sender, "balance": available, "amount": amount},
            )
        self.balances[sender_key] = available - amount
        to_key = to.lower()
        self.balances[to_key] = self.balances.get(to_key, 0) + amount

    @staticmethod
    def _require_address(address: str) -> None:
        if not isinstance(address, str) or not is_address(address):
            raise ValidationError(
                f"Invalid target address: {address!r}",
                details={"address": address},
            )

    # ==================== Contracts ====================

    def register_contract(self, contract: Contract) -> None:
        self.contracts[contract.address.lower()] = contract
        logger.debug(
            "Contract registered",
            extra={
                "event": "ledger.contract_registered",
                "address": contract.address[:10],
                "kind": type(contract).__name__,
            },
        )

    def get_contract(self, address: str) -> Optional[Any]:
        return self.contracts.get(address.lower())

    def is_contract(self, address: str) -> bool:
        return address.lower() in self.contracts

    def call(self, caller: str, target: str, value: int = 0, data: bytes = b"") -> Any:
        """
        Send ``value`` and ``data`` from ``caller`` to ``target``.

        Plain addresses just receive the value. Registered contracts receive
        the value and get ``data`` dispatched to them. Any failure
        rolls back every balance and contract state change made by the call.

        Returns:
            Whatever the target contract's dispatch returns (None for plain
            transfers)
        """
        self._require_address(target)
        with self.atomic():
            self.transfer(caller, target, value)
            contract = self.get_contract(target)
            if contract is None:
                return None
            if not data:
                receive = getattr(contract, "receive", None)
                if receive is not None:
                    return receive(caller, value)
                if value > 0:
                    return None
                raise ContractError(f"Empty call data for contract {target}")
            return contract.dispatch(caller, value, data)

    # ==================== Atomicity ====================

    def _snapshot(self) -> Dict[str, Any]:
        states = {}
        for key, contract in self.contracts.items():
            states[key] = {
                f.name: copy.copy(getattr(contract, f.name))
                for f in fields(contract)
                if f.name != "ledger"
            }
        return {
            "balances": dict(self.balances),
            "contracts": dict(self.contracts),
            "states": states,
        }

    def _restore(self, snapshot: Dict[str, Any]) -> None:
        self.balances = snapshot["balances"]
        self.contracts = snapshot["contracts"]
        for key, state in snapshot["states"].items():
            contract = self.contracts[key]
            for name, value in state.items():
                setattr(contract, name, value)

    @contextmanager
    def atomic(self) -> Iterator[None]:
        """
        Run a block as a single all-or-nothing unit.

        Nested blocks are allowed; an inner failure that the caller handles
        only rolls back the inner block. Any exception rolls back, not only
        reverts, so a bad argument can never leave half-applied state.
        """
        snapshot = self._snapshot()
        try:
            yield
        except Exception as e:
            self._restore(snapshot)
            logger.debug(
                "Call reverted, state rolled back",
                extra={
                    "event": "ledger.rollback",
                    "error": str(e),
                    "error_type": type(e).__name__,
                },
            )
            raise
