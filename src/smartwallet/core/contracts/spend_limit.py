"""
Rolling daily spend allowance for smart accounts.

The allowance replenishes lazily: nothing happens when the period ends, but
the next read or spend after ``reset_time`` sees a full allowance and a new
window. ``effective_limit`` is the only place that rule lives.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace

from .. import config
from ..vm.exceptions import VMExecutionError
from .account_abstraction import SmartAccount, abi_function

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SpendLimitState:
    """Allowance snapshot; ``available <= limit`` while enabled."""
    limit: int = 0
    available: int = 0
    reset_time: int = 0
    is_enabled: bool = False


def effective_limit(state: SpendLimitState, now: int, period: int) -> SpendLimitState:
    """
    Apply the lazy reset to ``state`` as seen at ``now``.

    An enabled limit whose window has elapsed gets ``available`` refilled
    to ``limit`` and a new window ending at ``now + period``. Anything else
    is returned unchanged.
    """
    if state.is_enabled and now >= state.reset_time:
        return replace(state, available=state.limit, reset_time=now + period)
    return state


@dataclass
class SpendLimitAccount(SmartAccount):
    """
    Smart account that caps the native value leaving it per period.

    Only value transfers made through ``execute`` are gated; a disabled
    limit is not enforced at all.
    """

    spend_limit: SpendLimitState = field(default_factory=SpendLimitState)
    spend_limit_period: int = config.SPEND_LIMIT_PERIOD_SECONDS

    @abi_function("enableSpendLimit()")
    def enable_spend_limit(self, caller: str) -> None:
        self._only_owner(caller)
        self.spend_limit = replace(self.spend_limit, is_enabled=True)
        logger.info(
            "Spend limit enabled",
            extra={"event": "spend_limit.enabled", "account": self.address[:10]}
        )

    @abi_function("setSpendingLimit(uint256)")
    def set_spending_limit(self, caller: str, amount: int) -> None:
        """
        Set the allowance per period and start a fresh window (owner only).

        Does not enable enforcement on its own.
        """
        self._only_owner(caller)
        if amount <= 0:
            raise VMExecutionError("Invalid amount")

        self.spend_limit = replace(
            self.spend_limit,
            limit=amount,
            available=amount,
            reset_time=self.ledger.latest() + self.spend_limit_period,
        )
        logger.info(
            "Spending limit set",
            extra={
                "event": "spend_limit.set",
                "account": self.address[:10],
                "limit": amount,
                "reset_time": self.spend_limit.reset_time,
            }
        )

    @abi_function("removeSpendingLimit()")
    def remove_spending_limit(self, caller: str) -> None:
        self._only_owner(caller)
        self.spend_limit = SpendLimitState()
        logger.info(
            "Spending limit removed",
            extra={"event": "spend_limit.removed", "account": self.address[:10]}
        )

    def get_limit_info(self) -> SpendLimitState:
        """Allowance as of the ledger's current time; does not write state."""
        return effective_limit(self.spend_limit, self.ledger.latest(), self.spend_limit_period)

    def _before_value_transfer(self, value: int) -> None:
        super()._before_value_transfer(value)
        if value <= 0 or not self.spend_limit.is_enabled:
            return

        state = self.get_limit_info()
        if value > state.available:
            logger.warning(
                "Transfer exceeds spend limit",
                extra={
                    "event": "spend_limit.exceeded",
                    "account": self.address[:10],
                    "value": value,
                    "available": state.available,
                }
            )
            raise VMExecutionError("Exceed daily limit")

        self.spend_limit = replace(state, available=state.available - value)
