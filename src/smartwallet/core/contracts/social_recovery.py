"""
Guardian-based social recovery for smart accounts.

A single guardian chosen by the owner may start a recovery that hands the
account to a new owner. The change only takes effect after the
confirmation delay, giving the current owner time to cancel.

Recovery lifecycle:
    NONE -> PENDING (guardian: init_recovery)
    PENDING -> NONE (owner: cancel_recovery)
    PENDING -> NONE with new owner (owner or guardian: execute_recovery,
                                    once the delay has passed)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from .. import config
from ..ledger import ZERO_ADDRESS, normalize_address, same_address
from ..vm.exceptions import VMExecutionError
from .account_abstraction import SmartAccount, abi_function

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RecoveryRequest:
    """Pending ownership change; the zero value means no request."""
    new_owner: str = ZERO_ADDRESS
    execute_after: int = 0

    @property
    def is_pending(self) -> bool:
        return not same_address(self.new_owner, ZERO_ADDRESS)


@dataclass
class SocialRecoveryAccount(SmartAccount):
    """
    Smart account whose owner can be replaced by a guardian after a delay.

    Nonce, balances and deposits are untouched by recovery; only ``owner``
    changes.
    """

    guardian: str = ZERO_ADDRESS
    recovery_request: RecoveryRequest = field(default_factory=RecoveryRequest)
    recovery_confirmation_time: int = config.DEFAULT_RECOVERY_CONFIRMATION_TIME

    def __post_init__(self) -> None:
        super().__post_init__()
        self.guardian = normalize_address(self.guardian)

    # ==================== Guardian Management ====================

    @abi_function("setGuardian(address)")
    def set_guardian(self, caller: str, guardian: str) -> None:
        """Set or replace the guardian (owner only)."""
        self._only_owner(caller)
        self.guardian = normalize_address(guardian)
        logger.info(
            "Guardian set",
            extra={
                "event": "recovery.guardian_set",
                "account": self.address[:10],
                "guardian": self.guardian[:10],
            }
        )

    @abi_function("setRecoveryConfirmationTime(uint256)")
    def set_recovery_confirmation_time(self, caller: str, seconds: int) -> None:
        """Set the delay between initiating and executing a recovery (owner only)."""
        self._only_owner(caller)
        if seconds < 0:
            raise VMExecutionError("SocialRecovery: invalid confirmation time")
        self.recovery_confirmation_time = seconds
        logger.info(
            "Recovery confirmation time set",
            extra={
                "event": "recovery.confirmation_time_set",
                "account": self.address[:10],
                "seconds": seconds,
            }
        )

    # ==================== Recovery Process ====================

    @abi_function("initRecovery(address)")
    def init_recovery(self, caller: str, new_owner: str) -> None:
        """
        Start a recovery to ``new_owner`` (guardian only).

        A request already pending is replaced, restarting the delay.
        """
        if self._is_unset(self.guardian) or not same_address(caller, self.guardian):
            raise VMExecutionError("SocialRecovery: msg sender invalid")
        new_owner = normalize_address(new_owner)
        if same_address(new_owner, ZERO_ADDRESS):
            raise VMExecutionError("SocialRecovery: invalid new owner")

        self.recovery_request = RecoveryRequest(
            new_owner=new_owner,
            execute_after=self.ledger.latest() + self.recovery_confirmation_time,
        )
        logger.warning(
            "Recovery initiated",
            extra={
                "event": "recovery.initiated",
                "account": self.address[:10],
                "new_owner": new_owner[:10],
                "execute_after": self.recovery_request.execute_after,
            }
        )

    @abi_function("cancelRecovery()")
    def cancel_recovery(self, caller: str) -> None:
        """Cancel the pending recovery (owner only)."""
        if not self._is_owner_or_self(caller):
            raise VMExecutionError("SocialRecovery: msg sender invalid")
        if not self.recovery_request.is_pending:
            raise VMExecutionError("SocialRecovery: request invalid")

        self.recovery_request = RecoveryRequest()
        logger.info(
            "Recovery cancelled",
            extra={"event": "recovery.cancelled", "account": self.address[:10]}
        )

    @abi_function("executeRecovery()")
    def execute_recovery(self, caller: str) -> None:
        """Complete the pending recovery once the delay has passed (owner or guardian)."""
        is_guardian = not self._is_unset(self.guardian) and same_address(caller, self.guardian)
        if not (self._is_owner_or_self(caller) or is_guardian):
            raise VMExecutionError("SocialRecovery: msg sender invalid")
        request = self.recovery_request
        if not request.is_pending:
            raise VMExecutionError("SocialRecovery: request invalid")
        if self.ledger.latest() < request.execute_after:
            raise VMExecutionError("SocialRecovery: recovery confirmation time not passed")

        old_owner = self.owner
        self.owner = request.new_owner
        self.recovery_request = RecoveryRequest()
        logger.warning(
            "Recovery executed: owner changed",
            extra={
                "event": "recovery.executed",
                "account": self.address[:10],
                "old_owner": old_owner[:10],
                "new_owner": self.owner[:10],
            }
        )

    @staticmethod
    def _is_unset(address: str) -> bool:
        return same_address(address, ZERO_ADDRESS)
