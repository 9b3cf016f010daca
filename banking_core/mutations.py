"""
Account Mutation Module

The core of the library: deposits, withdrawals and atomic transfers.

Every operation validates its input before taking any lock, serializes on
the accounts it touches, loads fresh state inside one unit of work, applies
the account-model mutation to that private copy and writes it back together
with its transaction record(s). Any failure after the lock is taken rolls
the unit of work back, so no partial effect is ever visible.

Operations never raise for domain failures; they return a ``MutationResult``
whose ``error.kind`` tells the caller what went wrong.
"""

from contextlib import contextmanager
from typing import Any, Dict, List, Optional, Tuple
import threading

from .accounts import Account, require_positive_amount
from .errors import (
    AccountNotFoundError, BankingError, ErrorKind, InsufficientFundsError,
    MutationResult, SameAccountTransferError
)
from .logging_config import get_logger, log_action
from .storage import StorageBackend
from .transactions import TransactionKind, TransactionRecord, require_actor_id


class AccountLockRegistry:
    """
    Per-account mutual exclusion

    Locks are created on first reference and reused while any thread holds
    or waits on them. Creation and user counting happen under a guard so two
    threads asking for the same new id always get the same lock, and
    ``discard`` never drops a lock somebody is still using.
    """

    def __init__(self):
        self._locks: Dict[int, threading.Lock] = {}
        self._users: Dict[int, int] = {}
        self._guard = threading.Lock()

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)

    def lock_for(self, account_id: int) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(account_id)
            if lock is None:
                lock = threading.Lock()
                self._locks[account_id] = lock
            return lock

    @contextmanager
    def hold(self, *account_ids: int):
        """
        Hold the locks of all ``account_ids`` for the duration of the block

        Locks are always taken in ascending id order, whatever order the
        caller names them in, so two operations over the same pair of
        accounts cannot deadlock.
        """
        ordered = sorted(set(account_ids))
        with self._guard:
            locks = []
            for account_id in ordered:
                locks.append(self._locks.setdefault(account_id, threading.Lock()))
                self._users[account_id] = self._users.get(account_id, 0) + 1

        acquired: List[threading.Lock] = []
        try:
            for lock in locks:
                lock.acquire()
                acquired.append(lock)
            yield
        finally:
            for lock in reversed(acquired):
                lock.release()
            with self._guard:
                for account_id in ordered:
                    self._users[account_id] -= 1
                    if not self._users[account_id]:
                        del self._users[account_id]

    def discard(self, *account_ids: int) -> None:
        """Forget the locks of ``account_ids`` that no thread holds or waits on"""
        with self._guard:
            for account_id in account_ids:
                if account_id not in self._users:
                    self._locks.pop(account_id, None)


def _require_account_id(account_id: Any) -> int:
    if isinstance(account_id, bool) or not isinstance(account_id, int):
        raise AccountNotFoundError(account_id)
    return account_id


class AccountMutationService:
    """
    Applies deposits, withdrawals and transfers to stored accounts

    The service keeps no account state between calls; its only long-lived
    state is the lock registry.
    """

    def __init__(self, storage: StorageBackend):
        self.storage = storage
        self.locks = AccountLockRegistry()
        self.logger = get_logger("banking_core.mutations")

    def deposit(self, account_id: int, amount: int, actor_id: int, note: str = "") -> MutationResult:
        """
        Add ``amount`` to an account

        Errors: INVALID_AMOUNT, ACCOUNT_NOT_FOUND, INVALID_ACTOR, STORAGE_FAILURE.
        """
        return self._apply_single(TransactionKind.DEPOSIT, account_id, amount, actor_id, note)

    def withdraw(self, account_id: int, amount: int, actor_id: int, note: str = "") -> MutationResult:
        """
        Remove ``amount`` from an account, honouring its overdraft limit

        Errors: INVALID_AMOUNT, ACCOUNT_NOT_FOUND, INVALID_ACTOR,
        INSUFFICIENT_FUNDS, STORAGE_FAILURE.
        """
        return self._apply_single(TransactionKind.WITHDRAW, account_id, amount, actor_id, note)

    def transfer(
        self,
        from_id: int,
        to_id: int,
        amount: int,
        actor_id: int,
        note: str = ""
    ) -> MutationResult:
        """
        Move ``amount`` from one account to another atomically

        Both balance updates and both records (TRANSFER_OUT on the source,
        TRANSFER_IN on the destination) commit together or not at all. The
        source must cover the amount from its own balance; its overdraft is
        not drawn on.

        Errors: INVALID_AMOUNT, INVALID_ACTOR, SAME_ACCOUNT, ACCOUNT_NOT_FOUND,
        INSUFFICIENT_FUNDS, STORAGE_FAILURE.
        """
        context = {"from_account": from_id, "to_account": to_id, "amount": amount}
        try:
            require_positive_amount(amount)
            _require_account_id(from_id)
            _require_account_id(to_id)
            require_actor_id(actor_id)
            if from_id == to_id:
                raise SameAccountTransferError(from_id)
        except BankingError as e:
            return self._reject("transfer", e, actor_id, context)

        try:
            with self.locks.hold(from_id, to_id):
                with self.storage.atomic():
                    source = self._load(from_id)
                    target = self._load(to_id)

                    if source.balance < amount:
                        raise InsufficientFundsError("Insufficient funds in source account")

                    source.withdraw(amount)
                    target.deposit(amount)

                    self.storage.accounts.update(source)
                    self.storage.accounts.update(target)

                    records = [
                        self.storage.transactions.save(TransactionRecord(
                            account_id=from_id,
                            kind=TransactionKind.TRANSFER_OUT,
                            amount=amount,
                            performed_by=actor_id,
                            note=f"{note} -> to:{to_id}",
                        )),
                        self.storage.transactions.save(TransactionRecord(
                            account_id=to_id,
                            kind=TransactionKind.TRANSFER_IN,
                            amount=amount,
                            performed_by=actor_id,
                            note=f"{note} <- from:{from_id}",
                        )),
                    ]
        except BankingError as e:
            return self._reject("transfer", e, actor_id, context, (from_id, to_id))

        log_action(
            self.logger, "info", "Transfer committed",
            actor_id=actor_id, action="transfer",
            resource=f"account:{from_id}->account:{to_id}",
            extra={
                **context,
                "from_balance": source.balance,
                "to_balance": target.balance,
                "record_ids": [record.id for record in records],
            }
        )
        return MutationResult.success(records, [source, target])

    def _apply_single(
        self,
        kind: TransactionKind,
        account_id: int,
        amount: int,
        actor_id: int,
        note: str
    ) -> MutationResult:
        operation = kind.value.lower()
        context = {"account_id": account_id, "amount": amount}
        try:
            require_positive_amount(amount)
            _require_account_id(account_id)
            require_actor_id(actor_id)
        except BankingError as e:
            return self._reject(operation, e, actor_id, context)

        try:
            with self.locks.hold(account_id):
                with self.storage.atomic():
                    account = self._load(account_id)
                    if kind == TransactionKind.DEPOSIT:
                        account.deposit(amount)
                    else:
                        account.withdraw(amount)
                    self.storage.accounts.update(account)
                    record = self.storage.transactions.save(TransactionRecord(
                        account_id=account_id,
                        kind=kind,
                        amount=amount,
                        performed_by=actor_id,
                        note=note,
                    ))
        except BankingError as e:
            return self._reject(operation, e, actor_id, context, (account_id,))

        log_action(
            self.logger, "info", f"{kind.value.capitalize()} committed",
            actor_id=actor_id, action=operation, resource=f"account:{account_id}",
            extra={**context, "balance": account.balance, "record_id": record.id}
        )
        return MutationResult.success([record], [account])

    def _load(self, account_id: int) -> Account:
        account = self.storage.accounts.find_by_id(account_id)
        if account is None:
            raise AccountNotFoundError(account_id)
        return account

    def _reject(
        self,
        operation: str,
        error: BankingError,
        actor_id: int,
        context: Optional[Dict[str, Any]] = None,
        locked_ids: Tuple[int, ...] = ()
    ) -> MutationResult:
        if error.kind == ErrorKind.ACCOUNT_NOT_FOUND:
            # Unknown ids must not leave locks behind
            self.locks.discard(*locked_ids)
        failed = error.kind == ErrorKind.STORAGE_FAILURE
        log_action(
            self.logger, "error" if failed else "warning",
            f"{operation.capitalize()} rejected: {error}",
            actor_id=actor_id, action=operation,
            extra={**(context or {}), "error_kind": error.kind.code},
            exc_info=error if failed else None
        )
        return MutationResult.failure(error)
