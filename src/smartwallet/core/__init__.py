"""
smartwallet Core Module

Building blocks shared by the wallet contracts:
- Ledger simulator (balances, clock, atomic calls)
- Signature recovery helpers
- Configuration and structured logging
"""

__all__ = []
