"""
Tests for the rolling daily spend limit and the transfer gate.
"""

import pytest

from smartwallet.core.blockchain_exceptions import InsufficientBalanceError
from smartwallet.core.contracts import SpendLimitState, effective_limit
from smartwallet.core.vm.abi import encode_call
from smartwallet.core.vm.exceptions import VMExecutionError

ONE_DAY = 86400


class TestEffectiveLimit:
    """The lazy reset rule"""

    def test_disabled_state_unchanged(self):
        state = SpendLimitState(limit=10, available=3, reset_time=100, is_enabled=False)
        assert effective_limit(state, 10_000, ONE_DAY) == state

    def test_window_not_elapsed(self):
        state = SpendLimitState(limit=10, available=3, reset_time=100, is_enabled=True)
        assert effective_limit(state, 99, ONE_DAY) == state

    def test_window_elapsed_replenishes(self):
        state = SpendLimitState(limit=10, available=3, reset_time=100, is_enabled=True)
        refreshed = effective_limit(state, 100, ONE_DAY)
        assert refreshed.available == 10
        assert refreshed.reset_time == 100 + ONE_DAY
        assert refreshed.limit == 10
        assert refreshed.is_enabled


class TestLimitManagement:
    def test_set_and_update_limit(self, ledger, spend_limit_account, owner):
        spend_limit_account.enable_spend_limit(owner.address)
        spend_limit_account.set_spending_limit(owner.address, 1000)

        info = spend_limit_account.get_limit_info()
        assert info.limit == 1000
        assert info.available == 1000
        assert info.reset_time >= ledger.latest()
        assert info.is_enabled is True

        ledger.increase_to(ledger.latest() + 61)
        assert spend_limit_account.get_limit_info().available == 1000

        spend_limit_account.set_spending_limit(owner.address, 500)
        updated = spend_limit_account.get_limit_info()
        assert updated.limit == 500
        assert updated.available == 500
        assert updated.reset_time == ledger.latest() + ONE_DAY
        assert updated.is_enabled is True

    def test_remove_limit(self, spend_limit_account, owner):
        spend_limit_account.enable_spend_limit(owner.address)
        spend_limit_account.set_spending_limit(owner.address, 1000)

        spend_limit_account.remove_spending_limit(owner.address)

        assert spend_limit_account.get_limit_info() == SpendLimitState(0, 0, 0, False)

    def test_zero_amount_rejected(self, spend_limit_account, owner):
        spend_limit_account.enable_spend_limit(owner.address)
        with pytest.raises(VMExecutionError, match="Invalid amount"):
            spend_limit_account.set_spending_limit(owner.address, 0)

    def test_set_limit_does_not_enable(self, spend_limit_account, owner):
        spend_limit_account.set_spending_limit(owner.address, 1000)
        assert spend_limit_account.get_limit_info().is_enabled is False

    @pytest.mark.parametrize("method,args", [
        ("enable_spend_limit", ()),
        ("set_spending_limit", (1000,)),
        ("remove_spending_limit", ()),
    ])
    def test_owner_only(self, spend_limit_account, stranger, method, args):
        with pytest.raises(VMExecutionError, match="only owner"):
            getattr(spend_limit_account, method)(stranger.address, *args)

    def test_get_limit_info_does_not_write(self, ledger, spend_limit_account, owner):
        spend_limit_account.enable_spend_limit(owner.address)
        spend_limit_account.set_spending_limit(owner.address, 1000)
        stored = spend_limit_account.spend_limit
        ledger.increase_time(2 * ONE_DAY)

        spend_limit_account.get_limit_info()

        assert spend_limit_account.spend_limit == stored


class TestTransferGate:
    @pytest.fixture
    def funded(self, ledger, spend_limit_account):
        ledger.mint(spend_limit_account.address, 2 * 10 ** 18)
        return spend_limit_account

    def test_transfer_when_limit_not_enabled(self, ledger, funded, owner, recipient):
        funded.execute(owner.address, recipient, 10 ** 18, b"")
        assert ledger.balance_of(recipient) == 10 ** 18

    def test_stranger_cannot_transfer(self, funded, stranger, recipient):
        with pytest.raises(VMExecutionError, match="account: not Owner or EntryPoint"):
            funded.execute(stranger.address, recipient, 10 ** 18, b"")

    def test_transfer_within_limit(self, ledger, funded, owner, recipient):
        funded.enable_spend_limit(owner.address)
        funded.set_spending_limit(owner.address, 2 * 10 ** 17)

        funded.execute(owner.address, recipient, 2 * 10 ** 17, b"")

        assert ledger.balance_of(recipient) == 2 * 10 ** 17
        assert funded.get_limit_info().available == 0

    def test_transfer_exceeding_limit(self, ledger, funded, owner, recipient):
        funded.enable_spend_limit(owner.address)
        funded.set_spending_limit(owner.address, 2 * 10 ** 17)

        funded.execute(owner.address, recipient, 15 * 10 ** 16, b"")
        with pytest.raises(VMExecutionError, match="Exceed daily limit"):
            funded.execute(owner.address, recipient, 10 ** 17, b"")

        assert ledger.balance_of(recipient) == 15 * 10 ** 16
        assert funded.get_limit_info().available == 5 * 10 ** 16

    def test_allowance_replenishes_after_period(self, ledger, funded, owner, recipient):
        funded.enable_spend_limit(owner.address)
        funded.set_spending_limit(owner.address, 100)
        funded.execute(owner.address, recipient, 100, b"")

        ledger.increase_time(ONE_DAY)
        funded.execute(owner.address, recipient, 100, b"")

        info = funded.get_limit_info()
        assert info.available == 0
        assert info.reset_time == ledger.latest() + ONE_DAY

    def test_failed_transfer_restores_allowance(self, ledger, spend_limit_account, owner, recipient):
        spend_limit_account.enable_spend_limit(owner.address)
        spend_limit_account.set_spending_limit(owner.address, 1000)

        with pytest.raises(InsufficientBalanceError):
            spend_limit_account.execute(owner.address, recipient, 500, b"")

        assert spend_limit_account.get_limit_info().available == 1000

    def test_zero_value_call_not_gated(self, ledger, funded, owner):
        funded.enable_spend_limit(owner.address)
        funded.set_spending_limit(owner.address, 1)
        funded.execute(owner.address, funded.address, 0, encode_call("removeSpendingLimit()"))
        assert funded.get_limit_info().is_enabled is False

    def test_enabled_without_limit_blocks_value(self, funded, owner, recipient):
        funded.enable_spend_limit(owner.address)
        with pytest.raises(VMExecutionError, match="Exceed daily limit"):
            funded.execute(owner.address, recipient, 1, b"")

    def test_disable_bypasses_enforcement(self, ledger, funded, owner, recipient):
        funded.enable_spend_limit(owner.address)
        funded.set_spending_limit(owner.address, 1)
        funded.remove_spending_limit(owner.address)

        funded.execute(owner.address, recipient, 10 ** 18, b"")
        assert ledger.balance_of(recipient) == 10 ** 18
