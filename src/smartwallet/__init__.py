"""
smartwallet - Account-abstraction wallet core

Validation and security-policy core for ERC-4337 style smart wallets.

Main Components:
- Validation: owner signatures with nonce-based replay protection
- Recovery: guardian-initiated, time-delayed ownership change
- Spend limits: rolling daily allowance on outgoing value
- EntryPoint: relays signed user operations and settles gas deposits
"""

__version__ = "0.1.0"
__author__ = "smartwallet developers"

__all__ = []
