#!/usr/bin/env python3
"""
smartwallet CLI - wallet deployment and operation tooling

Commands:
- deploy: deploy a social recovery wallet and print its address
- user-op-hash: compute the digest an owner signs for a user operation
- recover: recover the signer of a hash/signature pair
"""

from __future__ import annotations

import json
import logging
import sys

import click
from rich import box
from rich.console import Console
from rich.table import Table
from eth_utils import to_bytes

from ..core import config
from ..core.contracts import AccountFactory, EntryPoint, UserOperation
from ..core.crypto_utils import recover_hash_signer, recover_signer
from ..core.ledger import Ledger, normalize_address
from ..core.logging_config import setup_logging

logger = logging.getLogger(__name__)
console = Console()


def _parse_address(value: str, name: str) -> str:
    try:
        return normalize_address(value)
    except ValueError:
        raise click.BadParameter(f"invalid address {value!r}", param_hint=name)


def _parse_hex(value: str, name: str) -> bytes:
    try:
        return to_bytes(hexstr=value)
    except ValueError:
        raise click.BadParameter(f"invalid hex string {value!r}", param_hint=name)


@click.group()
@click.option("--log-level", default=config.LOG_LEVEL, show_default=True,
              type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"], case_sensitive=False),
              help="Logging verbosity (JSON records on stderr)")
@click.pass_context
def cli(ctx: click.Context, log_level: str):
    """Smart wallet tooling."""
    ctx.ensure_object(dict)
    setup_logging(name="smartwallet", log_file=config.LOG_FILE, level=log_level)


@cli.command("deploy")
@click.option("--owner", required=True, help="Wallet owner address")
@click.option("--guardian", default=None, help="Initial guardian address")
@click.option("--entry-point", default=config.ENTRY_POINT_ADDRESS, show_default=True,
              help="Trusted EntryPoint address")
@click.option("--salt", default=0, type=int, show_default=True, help="CREATE2 salt")
@click.option("--chain-id", default=config.CHAIN_ID, type=int, show_default=True)
def deploy(owner: str, guardian: str | None, entry_point: str, salt: int, chain_id: int):
    """
    Deploy a social recovery wallet on a fresh ledger.

    Example:
        smartwallet deploy --owner 0xf39F... --guardian 0x7099...
    """
    owner = _parse_address(owner, "--owner")
    entry_point = _parse_address(entry_point, "--entry-point")
    if guardian:
        guardian = _parse_address(guardian, "--guardian")

    ledger = Ledger(chain_id=chain_id)
    EntryPoint(address=entry_point, ledger=ledger)
    factory = AccountFactory(entry_point=entry_point, ledger=ledger)
    account = factory.create_social_recovery_account(owner, salt, guardian=guardian)

    table = Table(title="SocialRecovery deployed", box=box.ROUNDED)
    table.add_column("Field", style="cyan")
    table.add_column("Value")
    table.add_row("Owner", account.owner)
    table.add_row("Guardian", account.guardian)
    table.add_row("EntryPoint", account.entry_point)
    table.add_row("Confirmation time", f"{account.recovery_confirmation_time}s")
    console.print(table)
    console.print(f"SocialRecovery deployed to: {account.address}", soft_wrap=True)


@cli.command("user-op-hash")
@click.argument("op_file", type=click.File("r"))
@click.option("--entry-point", default=config.ENTRY_POINT_ADDRESS, show_default=True)
@click.option("--chain-id", default=config.CHAIN_ID, type=int, show_default=True)
def user_op_hash(op_file, entry_point: str, chain_id: int):
    """
    Print the hash an owner signs for the user operation in OP_FILE (JSON).

    Field names follow the ERC-4337 JSON-RPC form (sender, nonce, callData, ...).
    """
    entry_point = _parse_address(entry_point, "--entry-point")
    try:
        op = UserOperation.from_dict(json.load(op_file))
    except (json.JSONDecodeError, TypeError, ValueError) as e:
        raise click.ClickException(f"Invalid user operation: {e}")

    digest = op.hash(entry_point, chain_id)
    logger.debug(
        "UserOp hash computed",
        extra={"event": "cli.user_op_hash", "sender": op.sender[:10], "nonce": op.nonce}
    )
    console.print("0x" + digest.hex(), soft_wrap=True, highlight=False)


@cli.command("recover")
@click.argument("message_hash")
@click.argument("signature")
@click.option("--raw", is_flag=True, help="Recover against the raw hash (no personal-message prefix)")
def recover(message_hash: str, signature: str, raw: bool):
    """Recover the signer of MESSAGE_HASH from a 65-byte SIGNATURE."""
    digest = _parse_hex(message_hash, "MESSAGE_HASH")
    sig = _parse_hex(signature, "SIGNATURE")

    signer = recover_hash_signer(digest, sig) if raw else recover_signer(digest, sig)
    if signer is None:
        console.print("invalid", highlight=False)
        sys.exit(1)
    console.print(signer, soft_wrap=True, highlight=False)


def main() -> None:
    cli(obj={})


if __name__ == "__main__":
    main()
