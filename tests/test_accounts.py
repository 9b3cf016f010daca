"""
Test suite for the account model and account manager

Covers the withdrawal rule of each variant, the balance invariant at
construction, and account opening/queries through the manager.
"""

import pytest
from dataclasses import replace

from banking_core.accounts import Account, AccountKind, AccountManager
from banking_core.errors import InsufficientFundsError, InvalidAmountError
from banking_core.storage import InMemoryStorage


class TestAccountModel:
    """Test deposit/withdraw rules on the in-memory model"""

    def test_savings_account_defaults(self):
        account = Account.savings("Alice", 1000, 2.0)

        assert account.kind == AccountKind.SAVINGS
        assert account.balance == 1000
        assert account.overdraft_limit == 0
        assert account.interest_rate == 2.0
        assert account.available_funds == 1000
        assert not account.supports_overdraft
        assert account.id is None

    def test_checking_account_available_funds_include_overdraft(self):
        account = Account.checking("Bob", 500, 200)

        assert account.kind == AccountKind.CHECKING
        assert account.available_funds == 700
        assert account.supports_overdraft

    def test_deposit_increases_balance(self):
        account = Account.savings("Alice", 1000, 2.0)
        account.deposit(250)
        assert account.balance == 1250

    @pytest.mark.parametrize("amount", [0, -5, 2.5, "10", True, None])
    def test_deposit_rejects_invalid_amounts(self, amount):
        account = Account.savings("Alice", 1000, 2.0)

        with pytest.raises(InvalidAmountError):
            account.deposit(amount)

        assert account.balance == 1000

    @pytest.mark.parametrize("amount", [0, -1])
    def test_withdraw_rejects_non_positive_amounts(self, amount):
        account = Account.checking("Bob", 500, 200)

        with pytest.raises(InvalidAmountError):
            account.withdraw(amount)

        assert account.balance == 500

    def test_savings_cannot_go_negative(self):
        account = Account.savings("Alice", 1000, 2.0)

        with pytest.raises(InsufficientFundsError):
            account.withdraw(1001)

        assert account.balance == 1000
        account.withdraw(1000)
        assert account.balance == 0

    def test_checking_may_use_overdraft_down_to_floor(self):
        account = Account.checking("Bob", 500, 200)

        account.withdraw(650)
        assert account.balance == -150

        with pytest.raises(InsufficientFundsError, match="overdraft"):
            account.withdraw(100)
        assert account.balance == -150

        account.withdraw(50)
        assert account.balance == -200
        assert account.balance >= -account.overdraft_limit

    def test_deposit_then_withdraw_restores_balance(self):
        account = Account.checking("Bob", 500, 200)

        account.deposit(75)
        account.withdraw(75)

        assert account.balance == 500

    def test_construction_enforces_invariant(self):
        with pytest.raises(InvalidAmountError):
            Account.savings("Alice", -1, 2.0)

        with pytest.raises(InvalidAmountError):
            Account.checking("Bob", -300, 200)

        with pytest.raises(InvalidAmountError):
            Account.checking("Bob", 0, -10)

        with pytest.raises(InvalidAmountError):
            Account("Alice", 100, AccountKind.SAVINGS, overdraft_limit=50)

        with pytest.raises(InvalidAmountError):
            Account.savings("Alice", 10.5, 2.0)

        # Exactly at the floor is allowed
        assert Account.checking("Bob", -200, 200).balance == -200

    def test_copy_is_independent(self):
        account = replace(Account.savings("Alice", 1000, 2.0), id=1)
        clone = account.copy()

        clone.deposit(1)

        assert clone == replace(account, balance=1001)
        assert account.balance == 1000

    def test_describe(self):
        savings = replace(Account.savings("Alice", 1000, 2.0), id=1)
        checking = replace(Account.checking("Bob", 500, 200), id=2)

        assert savings.describe() == "1: Savings - Alice (balance=1000) rate=2.00"
        assert checking.describe() == "2: Checking - Bob (balance=500) overdraft=200"

    def test_dict_conversion_keeps_variant_fields(self):
        account = replace(Account.checking("Bob", -150, 200), id=2)

        data = account.to_dict()
        assert data["kind"] == "checking"
        assert data["overdraft_limit"] == 200

        assert Account.from_dict(data) == account


class TestAccountManager:
    """Test account opening and queries"""

    def setup_method(self):
        self.storage = InMemoryStorage()
        self.manager = AccountManager(
            self.storage, default_savings_rate=1.5, default_checking_overdraft=300
        )

    def test_open_accounts_assigns_ids(self):
        savings = self.manager.open_savings("Alice", 1000)
        checking = self.manager.open_checking("Bob", 500)

        assert savings.id == 1
        assert checking.id == 2
        assert savings.interest_rate == 1.5
        assert checking.overdraft_limit == 300

        assert self.manager.get_account(1) == savings
        assert self.manager.get_account(2) == checking

    def test_explicit_terms_override_defaults(self):
        savings = self.manager.open_savings("Alice", 10, interest_rate=3.25)
        checking = self.manager.open_checking("Bob", 10, overdraft_limit=0)

        assert savings.interest_rate == 3.25
        assert checking.overdraft_limit == 0

    def test_checking_may_open_in_overdraft(self):
        account = self.manager.open_checking("Bob", -100, overdraft_limit=200)
        assert account.balance == -100

    def test_invalid_opening_is_not_stored(self):
        with pytest.raises(InvalidAmountError):
            self.manager.open_savings("Alice", -5)

        with pytest.raises(ValueError, match="owner"):
            self.manager.open_checking("   ", 100)

        assert self.manager.list_accounts() == []

    def test_owner_is_trimmed(self):
        account = self.manager.open_savings("  Alice ", 10)
        assert account.owner == "Alice"

    def test_get_unknown_account(self):
        assert self.manager.get_account(42) is None

    def test_list_accounts_for_owner_ignores_case(self):
        self.manager.open_savings("Alice", 1000)
        self.manager.open_checking("Bob", 500)
        self.manager.open_checking("ALICE", 20)

        owned = self.manager.list_accounts_for_owner("alice")

        assert [a.id for a in owned] == [1, 3]
        assert len(self.manager.list_accounts()) == 3

    def test_returned_accounts_are_copies(self):
        opened = self.manager.open_savings("Alice", 1000)
        opened.deposit(500)

        loaded = self.manager.get_account(opened.id)
        loaded.deposit(1)

        assert self.manager.get_account(opened.id).balance == 1000

    def test_transaction_history_empty(self):
        self.manager.open_savings("Alice", 1000)

        assert self.manager.transaction_history() == []
        assert self.manager.transaction_history(owner="Alice") == []
