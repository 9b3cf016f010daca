"""
Error Taxonomy Module

Domain exceptions raised inside the library and the typed result values the
mutation service hands back to its callers. Callers branch on ``ErrorKind``;
the exception classes never cross the service boundary.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Optional, Tuple

if TYPE_CHECKING:
    from .accounts import Account
    from .transactions import TransactionRecord


class ErrorCategory(Enum):
    """Who is expected to act on an error"""
    CALLER = "caller"                  # Fixable by correcting the request
    BUSINESS = "business"              # Rejected by a business rule
    INFRASTRUCTURE = "infrastructure"  # Storage could not complete


class ErrorKind(Enum):
    """Distinguishable failure outcomes of an operation"""
    INVALID_AMOUNT = ("invalid_amount", ErrorCategory.CALLER)
    ACCOUNT_NOT_FOUND = ("account_not_found", ErrorCategory.CALLER)
    SAME_ACCOUNT = ("same_account", ErrorCategory.CALLER)
    INVALID_ACTOR = ("invalid_actor", ErrorCategory.CALLER)
    INSUFFICIENT_FUNDS = ("insufficient_funds", ErrorCategory.BUSINESS)
    STORAGE_FAILURE = ("storage_failure", ErrorCategory.INFRASTRUCTURE)

    def __init__(self, code: str, category: ErrorCategory):
        self.code = code
        self.category = category


class BankingError(Exception):
    """Base class for all banking core errors"""
    kind: ErrorKind = ErrorKind.STORAGE_FAILURE


class InvalidAmountError(BankingError):
    """Raised when an amount is zero, negative or violates an opening rule"""
    kind = ErrorKind.INVALID_AMOUNT


class AccountNotFoundError(BankingError):
    """Raised when an account id is missing from the store"""
    kind = ErrorKind.ACCOUNT_NOT_FOUND

    def __init__(self, account_id: int):
        super().__init__(f"Account {account_id} not found")
        self.account_id = account_id


class SameAccountTransferError(BankingError):
    """Raised when a transfer names the same account on both sides"""
    kind = ErrorKind.SAME_ACCOUNT

    def __init__(self, account_id: int):
        super().__init__(f"Cannot transfer from account {account_id} to itself")
        self.account_id = account_id


class InvalidActorError(BankingError):
    """Raised when the acting principal id is not a whole number"""
    kind = ErrorKind.INVALID_ACTOR

    def __init__(self, actor_id):
        super().__init__(f"Actor id must be a whole number, got {actor_id!r}")
        self.actor_id = actor_id


class InsufficientFundsError(BankingError):
    """Raised when a withdrawal or transfer exceeds the available funds"""
    kind = ErrorKind.INSUFFICIENT_FUNDS


class StorageError(BankingError):
    """Raised when a storage backend cannot complete a read or write"""
    kind = ErrorKind.STORAGE_FAILURE


@dataclass(frozen=True)
class MutationError:
    """
    Typed failure of a single operation call

    ``kind`` alone tells input errors, business-rule rejections and
    infrastructure failures apart; ``message`` is meant for display.
    """
    kind: ErrorKind
    message: str

    @property
    def category(self) -> ErrorCategory:
        return self.kind.category

    @classmethod
    def from_exception(cls, error: BankingError) -> 'MutationError':
        return cls(kind=error.kind, message=str(error))


@dataclass(frozen=True)
class MutationResult:
    """
    Outcome of a deposit, withdrawal or transfer

    On success ``records`` holds the transaction records created (one per
    leg) and ``accounts`` the committed state of every account touched.
    On failure ``error`` is set and both tuples are empty.
    """
    error: Optional[MutationError] = None
    records: Tuple['TransactionRecord', ...] = field(default_factory=tuple)
    accounts: Tuple['Account', ...] = field(default_factory=tuple)

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def error_kind(self) -> Optional[ErrorKind]:
        return self.error.kind if self.error else None

    @classmethod
    def success(cls, records, accounts) -> 'MutationResult':
        return cls(records=tuple(records), accounts=tuple(accounts))

    @classmethod
    def failure(cls, error: BankingError) -> 'MutationResult':
        return cls(error=MutationError.from_exception(error))
