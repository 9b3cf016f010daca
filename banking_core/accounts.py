"""
Account Management Module

Account model with whole-unit balances and the variant-specific withdrawal
rule (plain Savings vs. overdraft-permitting Checking), plus the manager that
opens accounts and answers account and history queries.
"""

from dataclasses import dataclass, replace
from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from .errors import InsufficientFundsError, InvalidAmountError
from .logging_config import get_logger, log_action

if TYPE_CHECKING:
    from .storage import StorageBackend
    from .transactions import TransactionRecord


class AccountKind(Enum):
    """Account variants"""
    SAVINGS = "savings"    # Interest-bearing, never negative
    CHECKING = "checking"  # May go negative down to its overdraft limit

    @property
    def label(self) -> str:
        return self.value.capitalize()


def require_positive_amount(amount: Any) -> int:
    """Return ``amount`` if it is a positive whole number, else raise InvalidAmountError"""
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise InvalidAmountError(f"Amount must be a whole number, got {amount!r}")
    if amount <= 0:
        raise InvalidAmountError(f"Amount must be > 0, got {amount}")
    return amount


@dataclass
class Account:
    """
    Monetary account holding a signed balance of whole currency units

    The invariant ``balance >= -overdraft_limit`` holds before and after
    every mutation; ``overdraft_limit`` is always 0 for Savings.
    """
    owner: str
    balance: int
    kind: AccountKind
    interest_rate: float = 0.0   # Informational only, never applied here
    overdraft_limit: int = 0
    id: Optional[int] = None     # Assigned by the store on first save

    def __post_init__(self):
        if isinstance(self.balance, bool) or not isinstance(self.balance, int):
            raise InvalidAmountError(f"Balance must be a whole number, got {self.balance!r}")
        if isinstance(self.overdraft_limit, bool) or not isinstance(self.overdraft_limit, int):
            raise InvalidAmountError(f"Overdraft limit must be a whole number, got {self.overdraft_limit!r}")
        if self.overdraft_limit < 0:
            raise InvalidAmountError("Overdraft limit cannot be negative")
        if self.kind == AccountKind.SAVINGS and self.overdraft_limit != 0:
            raise InvalidAmountError("Savings accounts do not support overdraft")
        if self.balance < -self.overdraft_limit:
            raise InvalidAmountError(
                f"Balance {self.balance} is below the overdraft floor {-self.overdraft_limit}"
            )

    @classmethod
    def savings(cls, owner: str, balance: int, interest_rate: float) -> 'Account':
        return cls(owner=owner, balance=balance, kind=AccountKind.SAVINGS,
                   interest_rate=float(interest_rate))

    @classmethod
    def checking(cls, owner: str, balance: int, overdraft_limit: int) -> 'Account':
        return cls(owner=owner, balance=balance, kind=AccountKind.CHECKING,
                   overdraft_limit=overdraft_limit)

    @property
    def available_funds(self) -> int:
        """Largest amount that can be withdrawn right now"""
        return self.balance + self.overdraft_limit

    @property
    def supports_overdraft(self) -> bool:
        return self.overdraft_limit > 0

    def deposit(self, amount: int) -> None:
        require_positive_amount(amount)
        self.balance += amount

    def withdraw(self, amount: int) -> None:
        require_positive_amount(amount)
        if self.available_funds < amount:
            if self.supports_overdraft:
                raise InsufficientFundsError("Insufficient funds (including overdraft)")
            raise InsufficientFundsError("Insufficient funds")
        self.balance -= amount

    def copy(self) -> 'Account':
        return replace(self)

    def describe(self) -> str:
        if self.kind == AccountKind.SAVINGS:
            detail = f"rate={self.interest_rate:.2f}"
        else:
            detail = f"overdraft={self.overdraft_limit}"
        return f"{self.id}: {self.kind.label} - {self.owner} (balance={self.balance}) {detail}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "owner": self.owner,
            "balance": self.balance,
            "kind": self.kind.value,
            "interest_rate": self.interest_rate,
            "overdraft_limit": self.overdraft_limit,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Account':
        return cls(
            id=data["id"],
            owner=data["owner"],
            balance=int(data["balance"]),
            kind=AccountKind(data["kind"]),
            interest_rate=float(data.get("interest_rate") or 0.0),
            overdraft_limit=int(data.get("overdraft_limit") or 0),
        )


class AccountManager:
    """
    Opens accounts and serves read-only account and history queries

    Balance changes never go through here; they belong to
    ``AccountMutationService``.
    """

    def __init__(
        self,
        storage: 'StorageBackend',
        default_savings_rate: float = 2.0,
        default_checking_overdraft: int = 500
    ):
        self.storage = storage
        self.default_savings_rate = default_savings_rate
        self.default_checking_overdraft = default_checking_overdraft
        self.logger = get_logger("banking_core.accounts")

    def open_savings(
        self,
        owner: str,
        initial_balance: int,
        interest_rate: Optional[float] = None
    ) -> Account:
        """
        Open a Savings account

        Args:
            owner: Display name of the account holder
            initial_balance: Opening balance in whole units (>= 0)
            interest_rate: Annual rate, defaults to the configured savings rate

        Returns:
            The stored Account with its assigned id
        """
        if interest_rate is None:
            interest_rate = self.default_savings_rate
        account = Account.savings(self._clean_owner(owner), initial_balance, interest_rate)
        return self._open(account)

    def open_checking(
        self,
        owner: str,
        initial_balance: int,
        overdraft_limit: Optional[int] = None
    ) -> Account:
        """
        Open a Checking account

        Args:
            owner: Display name of the account holder
            initial_balance: Opening balance in whole units (>= -overdraft_limit)
            overdraft_limit: Overdraft floor magnitude, defaults to the configured value

        Returns:
            The stored Account with its assigned id
        """
        if overdraft_limit is None:
            overdraft_limit = self.default_checking_overdraft
        account = Account.checking(self._clean_owner(owner), initial_balance, overdraft_limit)
        return self._open(account)

    def get_account(self, account_id: int) -> Optional[Account]:
        return self.storage.accounts.find_by_id(account_id)

    def list_accounts(self) -> List[Account]:
        return self.storage.accounts.list_all()

    def list_accounts_for_owner(self, owner: str) -> List[Account]:
        """Accounts whose owner matches ``owner`` ignoring case"""
        wanted = owner.casefold()
        return [a for a in self.list_accounts() if a.owner.casefold() == wanted]

    def transaction_history(self, owner: Optional[str] = None) -> List['TransactionRecord']:
        """All transaction records newest-first, or only those of ``owner``'s accounts"""
        if owner is None:
            return self.storage.transactions.list_all()
        return self.storage.transactions.list_for_owner(owner)

    def _open(self, account: Account) -> Account:
        saved = self.storage.accounts.save(account)
        log_action(
            self.logger, "info", f"Account opened: {saved.kind.value}",
            action="open_account", resource=f"account:{saved.id}",
            extra={
                "account_id": saved.id,
                "owner": saved.owner,
                "kind": saved.kind.value,
                "balance": saved.balance,
                "overdraft_limit": saved.overdraft_limit,
            }
        )
        return saved

    @staticmethod
    def _clean_owner(owner: str) -> str:
        owner = (owner or "").strip()
        if not owner:
            raise ValueError("Account owner is required")
        return owner
