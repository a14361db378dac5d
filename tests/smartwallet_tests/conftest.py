"""
Test configuration and fixtures
"""
import sys
from pathlib import Path

# Ensure the src directory is importable before collection runs.
project_root = Path(__file__).resolve().parents[2]
src_path = project_root / "src"
sys.path.insert(0, str(src_path))

import pytest
from eth_account import Account

from smartwallet.core.contracts import (
    AccountFactory,
    EntryPoint,
    SmartAccount,
    SocialRecoveryAccount,
    SpendLimitAccount,
    UserOperation,
)
from smartwallet.core.crypto_utils import sign_message_hash
from smartwallet.core.ledger import Ledger

GENESIS_TIMESTAMP = 1_700_000_000


@pytest.fixture
def ledger():
    """Fresh ledger with a fixed clock"""
    return Ledger(chain_id=31337, timestamp=GENESIS_TIMESTAMP)


@pytest.fixture
def owner():
    return Account.create()


@pytest.fixture
def guardian():
    return Account.create()


@pytest.fixture
def new_owner():
    return Account.create()


@pytest.fixture
def stranger():
    return Account.create()


@pytest.fixture
def recipient():
    return Account.create().address


@pytest.fixture
def entry_point(ledger):
    """EntryPoint contract deployed on the shared ledger"""
    return EntryPoint(ledger=ledger)


@pytest.fixture
def eoa_entry_point():
    """A plain address acting as the EntryPoint caller"""
    return Account.create()


@pytest.fixture
def factory(ledger, entry_point):
    return AccountFactory(entry_point=entry_point.address, ledger=ledger)


@pytest.fixture
def simple_account(ledger, owner, eoa_entry_point):
    """Simple account whose EntryPoint is a plain address"""
    return SmartAccount(owner=owner.address, entry_point=eoa_entry_point.address, ledger=ledger)


@pytest.fixture
def recovery_account(ledger, owner, eoa_entry_point):
    return SocialRecoveryAccount(
        owner=owner.address,
        entry_point=eoa_entry_point.address,
        ledger=ledger,
    )


@pytest.fixture
def spend_limit_account(ledger, owner, eoa_entry_point):
    return SpendLimitAccount(
        owner=owner.address,
        entry_point=eoa_entry_point.address,
        ledger=ledger,
    )


@pytest.fixture
def sign_op():
    """Sign a UserOperation for a given EntryPoint address and chain id"""
    def _sign(op: UserOperation, private_key, entry_point: str, chain_id: int = 31337):
        digest = op.hash(entry_point, chain_id)
        return op.with_signature(sign_message_hash(private_key, digest))
    return _sign
