"""
Tests for the ledger simulator: balances, clock and atomic calls.
"""

from dataclasses import dataclass, field

import pytest
from eth_account import Account

from smartwallet.core.blockchain_exceptions import (
    ClockError,
    ContractError,
    InsufficientBalanceError,
    ValidationError,
)
from smartwallet.core.ledger import Ledger, ZERO_ADDRESS, normalize_address, same_address
from smartwallet.core.vm.exceptions import VMExecutionError


@dataclass
class Counter:
    """Tiny contract used to observe dispatch and rollback"""
    address: str
    count: int = 0
    history: list = field(default_factory=list)
    ledger: Ledger = None

    def dispatch(self, caller, value, data):
        self.count += 1
        self.history.append(data)
        if data == b"revert":
            raise VMExecutionError("counter: revert requested")
        if data == b"crash":
            raise RuntimeError("counter: crashed")
        return self.count


@pytest.fixture
def alice():
    return Account.create().address


@pytest.fixture
def bob():
    return Account.create().address


@pytest.fixture
def counter(ledger):
    contract = Counter(address=Account.create().address, ledger=ledger)
    ledger.register_contract(contract)
    return contract


class TestAddresses:
    def test_normalize_checksums(self, alice):
        assert normalize_address(alice.lower()) == alice

    def test_normalize_rejects_garbage(self):
        with pytest.raises(ValueError):
            normalize_address("0xowner")

    def test_same_address_ignores_case(self, alice):
        assert same_address(alice, alice.lower())
        assert not same_address(alice, ZERO_ADDRESS)
        assert not same_address(None, alice)


class TestBalances:
    def test_mint_and_transfer(self, ledger, alice, bob):
        ledger.mint(alice, 100)
        ledger.transfer(alice, bob, 40)
        assert ledger.balance_of(alice) == 60
        assert ledger.balance_of(bob.lower()) == 40

    def test_transfer_insufficient_balance(self, ledger, alice, bob):
        ledger.mint(alice, 10)
        with pytest.raises(InsufficientBalanceError):
            ledger.transfer(alice, bob, 11)
        assert ledger.balance_of(alice) == 10

    def test_negative_amounts_rejected(self, ledger, alice, bob):
        with pytest.raises(ValueError):
            ledger.mint(alice, -1)
        with pytest.raises(ValueError):
            ledger.transfer(alice, bob, -1)

    def test_transfer_to_invalid_address_rejected(self, ledger, alice):
        ledger.mint(alice, 10)
        with pytest.raises(ValidationError, match="Invalid target address"):
            ledger.transfer(alice, "garbage", 10)
        assert ledger.balance_of(alice) == 10
        assert ledger.balance_of("garbage") == 0


class TestClock:
    def test_increase_time(self, ledger):
        start = ledger.latest()
        assert ledger.increase_time(61) == start + 61

    def test_increase_to(self, ledger):
        target = ledger.latest() + 100
        assert ledger.increase_to(target) == target

    def test_clock_never_goes_backwards(self, ledger):
        with pytest.raises(ClockError):
            ledger.increase_to(ledger.latest() - 1)
        with pytest.raises(ClockError):
            ledger.increase_time(-5)


class TestCall:
    def test_plain_transfer(self, ledger, alice, bob):
        ledger.mint(alice, 5)
        assert ledger.call(alice, bob, 5) is None
        assert ledger.balance_of(bob) == 5

    def test_dispatch_into_contract(self, ledger, alice, counter):
        assert ledger.call(alice, counter.address, 0, b"ping") == 1
        assert counter.history == [b"ping"]

    def test_empty_call_to_contract_without_receive(self, ledger, alice, counter):
        with pytest.raises(ContractError):
            ledger.call(alice, counter.address, 0, b"")

    def test_revert_rolls_back_value_and_state(self, ledger, alice, counter):
        ledger.mint(alice, 50)
        ledger.call(alice, counter.address, 0, b"ping")

        with pytest.raises(VMExecutionError, match="revert requested"):
            ledger.call(alice, counter.address, 20, b"revert")

        assert ledger.balance_of(alice) == 50
        assert ledger.balance_of(counter.address) == 0
        assert counter.count == 1
        assert counter.history == [b"ping"]

    def test_non_chain_error_also_rolls_back(self, ledger, alice, counter):
        ledger.mint(alice, 50)

        with pytest.raises(RuntimeError, match="crashed"):
            ledger.call(alice, counter.address, 20, b"crash")

        assert ledger.balance_of(alice) == 50
        assert ledger.balance_of(counter.address) == 0
        assert counter.count == 0
        assert counter.history == []

    def test_call_to_invalid_address_rejected(self, ledger, alice):
        ledger.mint(alice, 5)
        with pytest.raises(ValidationError):
            ledger.call(alice, "0x1234", 5)
        assert ledger.balance_of(alice) == 5

    def test_nested_atomic_inner_failure_handled(self, ledger, alice, bob):
        ledger.mint(alice, 10)
        with ledger.atomic():
            ledger.transfer(alice, bob, 3)
            with pytest.raises(InsufficientBalanceError):
                with ledger.atomic():
                    ledger.transfer(alice, bob, 5)
                    ledger.transfer(alice, bob, 5)
        assert ledger.balance_of(alice) == 7
        assert ledger.balance_of(bob) == 3
