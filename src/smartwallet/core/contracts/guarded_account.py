"""Smart account combining guardian recovery with a daily spend limit."""

from __future__ import annotations

from dataclasses import dataclass

from .social_recovery import SocialRecoveryAccount
from .spend_limit import SpendLimitAccount


@dataclass
class GuardedAccount(SocialRecoveryAccount, SpendLimitAccount):
    """
    Owner-authenticated account with both policies active.

    The spend limit keeps applying across a recovery: the new owner inherits
    the current allowance and window.
    """
