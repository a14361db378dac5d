"""
Factory for deploying smart accounts at deterministic addresses.

Addresses follow the CREATE2 scheme, so a wallet's address is known (and can
be funded) before it is deployed:

    keccak256(0xff ++ factory ++ salt ++ keccak256(kind ++ owner))[12:]
"""

from __future__ import annotations

import logging
import secrets
import time
from dataclasses import dataclass, field
from typing import Dict, Optional, Type

from eth_utils import keccak, to_canonical_address

from .. import config
from ..ledger import Ledger, ZERO_ADDRESS, normalize_address
from .account_abstraction import SmartAccount
from .guarded_account import GuardedAccount
from .social_recovery import SocialRecoveryAccount
from .spend_limit import SpendLimitAccount

logger = logging.getLogger(__name__)

ACCOUNT_KINDS: Dict[str, Type[SmartAccount]] = {
    "SimpleAccount": SmartAccount,
    "SocialRecovery": SocialRecoveryAccount,
    "SpendLimit": SpendLimitAccount,
    "GuardedAccount": GuardedAccount,
}


@dataclass
class AccountFactory:
    """
    Deploys accounts bound to one EntryPoint.

    Creating an account that already exists returns the deployed instance
    unchanged, so bundlers can call the factory blindly.
    """

    address: str = ""
    entry_point: str = config.ENTRY_POINT_ADDRESS
    ledger: Ledger = field(default_factory=Ledger, repr=False, compare=False)

    def __post_init__(self) -> None:
        """Initialize factory."""
        if not self.address:
            addr_hash = keccak(
                f"account_factory:{time.time_ns()}:{secrets.token_hex(8)}".encode()
            )
            self.address = "0x" + addr_hash[-20:].hex()
        self.address = normalize_address(self.address)
        self.entry_point = normalize_address(self.entry_point)

    def get_address(self, owner: str, salt: int, kind: str = "SimpleAccount") -> str:
        """
        Compute the counterfactual address of an account.

        Args:
            owner: Account owner address
            salt: Salt for deterministic address (uint256)
            kind: One of ``ACCOUNT_KINDS``

        Returns:
            Checksummed address the account will be deployed at
        """
        if kind not in ACCOUNT_KINDS:
            raise ValueError(f"Unknown account kind: {kind}")
        if not 0 <= salt < 2 ** 256:
            raise ValueError("Salt must fit in 32 bytes")

        init_code_hash = keccak(kind.encode() + to_canonical_address(owner))
        digest = keccak(
            b"\xff"
            + to_canonical_address(self.address)
            + salt.to_bytes(32, "big")
            + init_code_hash
        )
        return normalize_address("0x" + digest[12:].hex())

    def create_account(self, owner: str, salt: int) -> SmartAccount:
        """Create a simple owner-authenticated account."""
        return self._deploy("SimpleAccount", owner, salt)

    def create_social_recovery_account(
        self,
        owner: str,
        salt: int,
        guardian: Optional[str] = None,
    ) -> SocialRecoveryAccount:
        """Create a social recovery account, optionally with its first guardian."""
        return self._deploy("SocialRecovery", owner, salt, guardian=guardian or ZERO_ADDRESS)

    def create_spend_limit_account(self, owner: str, salt: int) -> SpendLimitAccount:
        """Create an account with a (disabled) daily spend limit."""
        return self._deploy("SpendLimit", owner, salt)

    def create_guarded_account(
        self,
        owner: str,
        salt: int,
        guardian: Optional[str] = None,
    ) -> GuardedAccount:
        """Create an account with both social recovery and a spend limit."""
        return self._deploy("GuardedAccount", owner, salt, guardian=guardian or ZERO_ADDRESS)

    def _deploy(self, kind: str, owner: str, salt: int, **kwargs) -> SmartAccount:
        address = self.get_address(owner, salt, kind)

        existing = self.ledger.get_contract(address)
        if existing is not None:
            return existing

        account = ACCOUNT_KINDS[kind](
            address=address,
            owner=owner,
            entry_point=self.entry_point,
            ledger=self.ledger,
            **kwargs,
        )

        logger.info(
            "Account created",
            extra={
                "event": "factory.account_created",
                "kind": kind,
                "owner": account.owner[:10],
                "address": address[:10],
            }
        )
        return account
