"""
Transaction Record Module

Immutable audit entries. Every successful mutation appends exactly one
record per account leg: deposits and withdrawals one, transfers two.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from .errors import InvalidActorError


class TransactionKind(Enum):
    """Kinds of ledger entries"""
    DEPOSIT = "DEPOSIT"
    WITHDRAW = "WITHDRAW"
    TRANSFER_OUT = "TRANSFER_OUT"
    TRANSFER_IN = "TRANSFER_IN"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def require_actor_id(actor_id: Any) -> int:
    """Return ``actor_id`` if it is a whole number, else raise InvalidActorError"""
    if isinstance(actor_id, bool) or not isinstance(actor_id, int):
        raise InvalidActorError(actor_id)
    return actor_id


@dataclass(frozen=True)
class TransactionRecord:
    """
    One effect of one mutation on one account

    ``amount`` is the positive magnitude moved; the direction follows
    from ``kind``.
    """
    account_id: int
    kind: TransactionKind
    amount: int
    performed_by: int
    note: str = ""
    timestamp: datetime = field(default_factory=_utcnow)
    id: Optional[int] = None

    def __post_init__(self):
        require_actor_id(self.performed_by)

    @property
    def signed_amount(self) -> int:
        """Balance delta of this entry on its account"""
        if self.kind in (TransactionKind.WITHDRAW, TransactionKind.TRANSFER_OUT):
            return -self.amount
        return self.amount

    def with_id(self, record_id: int) -> 'TransactionRecord':
        return replace(self, id=record_id)

    def describe(self) -> str:
        ts = self.timestamp.strftime("%Y-%m-%d %H:%M:%S")
        return (f"{self.id} | acc:{self.account_id} | {ts} | {self.amount} | "
                f"by:{self.performed_by} | {self.kind.value} - {self.note}")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "account_id": self.account_id,
            "kind": self.kind.value,
            "amount": self.amount,
            "timestamp": self.timestamp.isoformat(timespec="microseconds"),
            "performed_by": self.performed_by,
            "note": self.note,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'TransactionRecord':
        timestamp = data["timestamp"]
        if isinstance(timestamp, str):
            timestamp = datetime.fromisoformat(timestamp)
        return cls(
            id=data["id"],
            account_id=int(data["account_id"]),
            kind=TransactionKind(data["kind"]),
            amount=int(data["amount"]),
            timestamp=timestamp,
            performed_by=int(data["performed_by"]),
            note=data.get("note") or "",
        )
