"""Contract execution errors raised by wallet contracts and the entry point."""

from __future__ import annotations

from typing import Any

from ..blockchain_exceptions import VMError


class VMExecutionError(VMError):
    """
    Raised when a contract call reverts.

    The message is the revert reason string (e.g. ``"only owner"``); the
    ledger discards every state change made by the reverted call.
    """

    @property
    def reason(self) -> str:
        return self.message


class FailedOp(VMExecutionError):
    """
    Raised by the EntryPoint when a UserOperation fails validation.

    Mirrors ERC-4337 ``FailedOp(opIndex, reason)``: the whole ``handle_ops``
    batch is aborted and rolled back.
    """

    def __init__(self, op_index: int, reason: str, **kwargs: Any) -> None:
        super().__init__(f"FailedOp({op_index}, {reason})", **kwargs)
        self.op_index = op_index
        self.op_reason = reason
