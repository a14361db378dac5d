"""
smartwallet CLI

Command-line tools for deploying wallets and inspecting user operations.
"""

from .main import cli

__all__ = ["cli"]
