"""
Wallet-core exception hierarchy.

Provides typed exceptions for ledger and contract operations so callers can
tell a reverted call (hard failure, all effects discarded) apart from an
environment problem such as a missing balance.
"""

from __future__ import annotations
from typing import Optional, Any, Dict


class BlockchainError(Exception):
    """Base exception for all ledger-related errors.

    Attributes:
        message: Human-readable error description
        details: Additional context about the error
        recoverable: Whether the operation can be retried
    """

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        recoverable: bool = False,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.recoverable = recoverable


# ==================== Validation Errors ====================


class ValidationError(BlockchainError):
    """Raised when ledger data fails validation rules."""
    pass


class InsufficientBalanceError(ValidationError):
    """Raised when account lacks sufficient balance for an operation."""
    pass


class ClockError(ValidationError):
    """Raised when the ledger clock would move backwards."""
    pass


# ==================== Smart Contract & VM Errors ====================


class VMError(BlockchainError):
    """Raised when virtual machine execution fails."""
    pass


class ContractError(VMError):
    """Raised when a call targets a missing contract or function."""
    pass


# ==================== Configuration Errors ====================


class ConfigurationError(BlockchainError):
    """Raised when wallet configuration is invalid."""
    recoverable = False
