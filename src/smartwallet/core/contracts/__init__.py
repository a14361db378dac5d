"""
Smart wallet contracts.

This module provides:
- Account Abstraction: ERC-4337 smart accounts and the EntryPoint
- Social Recovery: guardian-mediated owner replacement
- Spend Limit: rolling daily allowance on value transfers
- Factory contracts for deterministic account deployment
"""

from .account_abstraction import (
    EntryPoint,
    Erc1271Result,
    ExecutionResult,
    SmartAccount,
    UserOperation,
    ValidationResult,
)
from .account_factory import ACCOUNT_KINDS, AccountFactory
from .guarded_account import GuardedAccount
from .social_recovery import RecoveryRequest, SocialRecoveryAccount
from .spend_limit import SpendLimitAccount, SpendLimitState, effective_limit

__all__ = [
    # Account abstraction
    "EntryPoint",
    "Erc1271Result",
    "ExecutionResult",
    "SmartAccount",
    "UserOperation",
    "ValidationResult",
    # Policies
    "GuardedAccount",
    "RecoveryRequest",
    "SocialRecoveryAccount",
    "SpendLimitAccount",
    "SpendLimitState",
    "effective_limit",
    # Factory
    "ACCOUNT_KINDS",
    "AccountFactory",
]
