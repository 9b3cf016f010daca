"""
Storage Backend Module

Persistence contract consumed by the mutation core (account store,
transaction store, unit of work) and its two implementations: in-memory
(volatile, for tests and demos) and SQLite (durable). Stores hand out copies,
never references to the objects they hold.
"""

from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Union
import sqlite3
import threading

from .accounts import Account
from .errors import StorageError
from .transactions import TransactionRecord


class AccountStore(ABC):
    """Abstract account persistence"""

    @abstractmethod
    def save(self, account: Account) -> Account:
        """Insert a new account and return a copy carrying its assigned id"""
        pass

    @abstractmethod
    def update(self, account: Account) -> None:
        """Overwrite the stored account with the same id"""
        pass

    @abstractmethod
    def find_by_id(self, account_id: int) -> Optional[Account]:
        """Load an account, or None if the id is unknown"""
        pass

    @abstractmethod
    def list_all(self) -> List[Account]:
        """All accounts ordered by id"""
        pass


class TransactionStore(ABC):
    """Abstract transaction record persistence (append-only)"""

    @abstractmethod
    def save(self, record: TransactionRecord) -> TransactionRecord:
        """Append a record and return a copy carrying its assigned id"""
        pass

    @abstractmethod
    def list_all(self) -> List[TransactionRecord]:
        """All records, newest first"""
        pass

    @abstractmethod
    def list_for_owner(self, owner: str) -> List[TransactionRecord]:
        """Records of every account owned by ``owner`` (case-insensitive), newest first"""
        pass


class StorageBackend(ABC):
    """
    A pair of stores sharing one unit-of-work boundary

    Everything written inside ``atomic()`` becomes visible to other threads
    together on commit, or not at all.
    """

    accounts: AccountStore
    transactions: TransactionStore

    @abstractmethod
    def begin_transaction(self) -> None:
        """Open a unit of work (joins the current one when nested)"""
        pass

    @abstractmethod
    def commit(self) -> None:
        """Commit the current unit of work"""
        pass

    @abstractmethod
    def rollback(self) -> None:
        """Discard the current unit of work"""
        pass

    @abstractmethod
    def close(self) -> None:
        """Release backend resources"""
        pass

    @contextmanager
    def atomic(self):
        """Context manager for atomic operations"""
        self.begin_transaction()
        try:
            yield self
        except BaseException:
            self.rollback()
            raise
        self.commit()


def _newest_first(records: List[TransactionRecord]) -> List[TransactionRecord]:
    return sorted(records, key=lambda r: (r.timestamp, r.id), reverse=True)


# ---------------------------------------------------------------------------
# In-memory backend
# ---------------------------------------------------------------------------

@dataclass
class _StagedWork:
    """Writes of one thread's open unit of work"""
    accounts: Dict[int, Dict[str, Any]] = field(default_factory=dict)
    transactions: Dict[int, Dict[str, Any]] = field(default_factory=dict)
    depth: int = 1
    rollback_only: bool = False


class InMemoryStorage(StorageBackend):
    """
    In-memory storage implementation

    Outside a unit of work every write applies immediately. Inside one, writes
    are staged per thread and applied in a single critical section on commit,
    so readers see either none or all of them. Reads made by the owning thread
    see its own staged writes.
    """

    def __init__(self):
        self._accounts: Dict[int, Dict[str, Any]] = {}
        self._transactions: Dict[int, Dict[str, Any]] = {}
        self._next_account_id = 1
        self._next_transaction_id = 1
        self._lock = threading.RLock()
        self._local = threading.local()
        self.accounts = _InMemoryAccountStore(self)
        self.transactions = _InMemoryTransactionStore(self)

    def _staged(self) -> Optional[_StagedWork]:
        return getattr(self._local, "work", None)

    def begin_transaction(self) -> None:
        work = self._staged()
        if work is not None:
            work.depth += 1
        else:
            self._local.work = _StagedWork()

    def commit(self) -> None:
        work = self._staged()
        if work is None:
            raise StorageError("No unit of work to commit")
        work.depth -= 1
        if work.depth > 0:
            return
        self._local.work = None
        if work.rollback_only:
            raise StorageError("Unit of work was rolled back by a nested failure")
        with self._lock:
            self._accounts.update(work.accounts)
            self._transactions.update(work.transactions)

    def rollback(self) -> None:
        work = self._staged()
        if work is None:
            return
        work.depth -= 1
        if work.depth > 0:
            work.rollback_only = True
            return
        self._local.work = None

    def close(self) -> None:
        pass

    def _allocate_account_id(self) -> int:
        with self._lock:
            account_id = self._next_account_id
            self._next_account_id += 1
            return account_id

    def _allocate_transaction_id(self) -> int:
        with self._lock:
            record_id = self._next_transaction_id
            self._next_transaction_id += 1
            return record_id

    def _write(self, table: str, key: int, data: Dict[str, Any]) -> None:
        work = self._staged()
        if work is not None:
            getattr(work, table)[key] = data
        else:
            with self._lock:
                getattr(self, f"_{table}")[key] = data

    def _snapshot(self, table: str) -> Dict[int, Dict[str, Any]]:
        with self._lock:
            rows = dict(getattr(self, f"_{table}"))
        work = self._staged()
        if work is not None:
            rows.update(getattr(work, table))
        return rows


class _InMemoryAccountStore(AccountStore):

    def __init__(self, backend: InMemoryStorage):
        self._backend = backend

    def save(self, account: Account) -> Account:
        account_id = self._backend._allocate_account_id()
        stored = replace(account, id=account_id)
        self._backend._write("accounts", account_id, stored.to_dict())
        return stored.copy()

    def update(self, account: Account) -> None:
        if account.id is None or account.id not in self._backend._snapshot("accounts"):
            raise StorageError(f"Cannot update unknown account {account.id}")
        self._backend._write("accounts", account.id, account.to_dict())

    def find_by_id(self, account_id: int) -> Optional[Account]:
        data = self._backend._snapshot("accounts").get(account_id)
        if data is None:
            return None
        return Account.from_dict(data)

    def list_all(self) -> List[Account]:
        rows = self._backend._snapshot("accounts")
        return [Account.from_dict(rows[key]) for key in sorted(rows)]


class _InMemoryTransactionStore(TransactionStore):

    def __init__(self, backend: InMemoryStorage):
        self._backend = backend

    def save(self, record: TransactionRecord) -> TransactionRecord:
        stored = record.with_id(self._backend._allocate_transaction_id())
        self._backend._write("transactions", stored.id, stored.to_dict())
        return stored

    def list_all(self) -> List[TransactionRecord]:
        rows = self._backend._snapshot("transactions")
        return _newest_first([TransactionRecord.from_dict(data) for data in rows.values()])

    def list_for_owner(self, owner: str) -> List[TransactionRecord]:
        wanted = owner.casefold()
        owned = {
            data["id"] for data in self._backend._snapshot("accounts").values()
            if data["owner"].casefold() == wanted
        }
        return [record for record in self.list_all() if record.account_id in owned]


# ---------------------------------------------------------------------------
# SQLite backend
# ---------------------------------------------------------------------------

SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS accounts (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        owner TEXT NOT NULL,
        balance INTEGER NOT NULL,
        kind TEXT NOT NULL,
        overdraft_limit INTEGER NOT NULL DEFAULT 0,
        interest_rate REAL NOT NULL DEFAULT 0,
        CHECK (balance >= -overdraft_limit)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS transactions (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        account_id INTEGER NOT NULL REFERENCES accounts(id),
        kind TEXT NOT NULL,
        amount INTEGER NOT NULL,
        ts TEXT NOT NULL,
        performed_by INTEGER NOT NULL,
        note TEXT NOT NULL DEFAULT ''
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_transactions_account_id ON transactions(account_id)",
    "CREATE INDEX IF NOT EXISTS idx_transactions_ts ON transactions(ts)",
)


# Range of SQLite's INTEGER storage class
SQLITE_MIN_INTEGER = -2 ** 63
SQLITE_MAX_INTEGER = 2 ** 63 - 1


def _casefold(value: Optional[str]) -> Optional[str]:
    return value.casefold() if value is not None else None


class SQLiteStorage(StorageBackend):
    """
    SQLite storage implementation for persistence

    One connection guarded by a re-entrant lock. A unit of work holds that
    lock from BEGIN to COMMIT/ROLLBACK, so statements of other threads never
    interleave with an open transaction.
    """

    def __init__(self, db_path: Union[str, Path] = ":memory:"):
        self.db_path = str(db_path)
        self._lock = threading.RLock()
        self._depth = 0
        self._rollback_only = False
        try:
            # isolation_level=None: transactions are opened explicitly with BEGIN
            self._connection = sqlite3.connect(
                self.db_path, check_same_thread=False, isolation_level=None
            )
            self._connection.row_factory = sqlite3.Row
            self._connection.create_function("casefold", 1, _casefold, deterministic=True)
            self._connection.execute("PRAGMA foreign_keys = ON")
            if self.db_path != ":memory:":
                self._connection.execute("PRAGMA journal_mode = WAL")
                self._connection.execute("PRAGMA synchronous = NORMAL")
            for statement in SCHEMA:
                self._connection.execute(statement)
        except sqlite3.Error as e:
            raise StorageError(f"Failed to open SQLite database {self.db_path}: {e}") from e
        self.accounts = _SQLiteAccountStore(self)
        self.transactions = _SQLiteTransactionStore(self)

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        """Yield the connection under the lock, translating driver errors"""
        with self._lock:
            if self._connection is None:
                raise StorageError("SQLite storage is closed")
            try:
                yield self._connection
            except (sqlite3.Error, OverflowError) as e:
                # OverflowError: an int outside the 64-bit INTEGER range
                raise StorageError(f"SQLite operation failed: {e}") from e

    def begin_transaction(self) -> None:
        self._lock.acquire()
        if self._depth > 0:
            self._depth += 1
            return
        try:
            with self._connect() as conn:
                conn.execute("BEGIN IMMEDIATE")
        except BaseException:
            self._lock.release()
            raise
        self._depth = 1
        self._rollback_only = False

    def commit(self) -> None:
        if self._depth == 0:
            raise StorageError("No unit of work to commit")
        try:
            if self._depth > 1:
                return
            with self._connect() as conn:
                if self._rollback_only:
                    conn.execute("ROLLBACK")
                    raise StorageError("Unit of work was rolled back by a nested failure")
                try:
                    conn.execute("COMMIT")
                except sqlite3.Error:
                    conn.execute("ROLLBACK")
                    raise
        finally:
            self._depth -= 1
            self._lock.release()

    def rollback(self) -> None:
        if self._depth == 0:
            return
        try:
            if self._depth > 1:
                self._rollback_only = True
                return
            with self._connect() as conn:
                conn.execute("ROLLBACK")
        finally:
            self._depth -= 1
            self._lock.release()

    def close(self) -> None:
        """Close SQLite connection"""
        with self._lock:
            if self._connection:
                self._connection.close()
                self._connection = None


def _account_from_row(row: sqlite3.Row) -> Account:
    return Account.from_dict(dict(row))


def _record_from_row(row: sqlite3.Row) -> TransactionRecord:
    data = dict(row)
    data["timestamp"] = data.pop("ts")
    return TransactionRecord.from_dict(data)


class _SQLiteAccountStore(AccountStore):

    def __init__(self, backend: SQLiteStorage):
        self._backend = backend

    def save(self, account: Account) -> Account:
        with self._backend._connect() as conn:
            cursor = conn.execute(
                """
                INSERT INTO accounts (owner, balance, kind, overdraft_limit, interest_rate)
                VALUES (?, ?, ?, ?, ?)
                """,
                (account.owner, account.balance, account.kind.value,
                 account.overdraft_limit, account.interest_rate)
            )
            return replace(account, id=cursor.lastrowid)

    def update(self, account: Account) -> None:
        with self._backend._connect() as conn:
            cursor = conn.execute(
                """
                UPDATE accounts
                SET owner = ?, balance = ?, kind = ?, overdraft_limit = ?, interest_rate = ?
                WHERE id = ?
                """,
                (account.owner, account.balance, account.kind.value,
                 account.overdraft_limit, account.interest_rate, account.id)
            )
            if cursor.rowcount == 0:
                raise StorageError(f"Cannot update unknown account {account.id}")

    def find_by_id(self, account_id: int) -> Optional[Account]:
        if not SQLITE_MIN_INTEGER <= account_id <= SQLITE_MAX_INTEGER:
            return None
        with self._backend._connect() as conn:
            row = conn.execute(
                "SELECT * FROM accounts WHERE id = ?", (account_id,)
            ).fetchone()
            return _account_from_row(row) if row else None

    def list_all(self) -> List[Account]:
        with self._backend._connect() as conn:
            rows = conn.execute("SELECT * FROM accounts ORDER BY id").fetchall()
            return [_account_from_row(row) for row in rows]


class _SQLiteTransactionStore(TransactionStore):

    def __init__(self, backend: SQLiteStorage):
        self._backend = backend

    def save(self, record: TransactionRecord) -> TransactionRecord:
        data = record.to_dict()
        with self._backend._connect() as conn:
            cursor = conn.execute(
                """
                INSERT INTO transactions (account_id, kind, amount, ts, performed_by, note)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (data["account_id"], data["kind"], data["amount"], data["timestamp"],
                 data["performed_by"], data["note"])
            )
            return record.with_id(cursor.lastrowid)

    def list_all(self) -> List[TransactionRecord]:
        with self._backend._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM transactions ORDER BY ts DESC, id DESC"
            ).fetchall()
            return [_record_from_row(row) for row in rows]

    def list_for_owner(self, owner: str) -> List[TransactionRecord]:
        with self._backend._connect() as conn:
            rows = conn.execute(
                """
                SELECT t.* FROM transactions t
                JOIN accounts a ON a.id = t.account_id
                WHERE casefold(a.owner) = ?
                ORDER BY t.ts DESC, t.id DESC
                """,
                (owner.casefold(),)
            ).fetchall()
            return [_record_from_row(row) for row in rows]
