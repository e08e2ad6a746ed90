"""
Single-slot durable record of an expense submission the server has not yet
confirmed, plus the stored sign-in session.

A pending submission belongs to the account that started it. Loading it for
any other account (or when the slot can't be decoded) purges the slot, so a
stale record can never be replayed against the wrong owner.
"""

import json
from dataclasses import dataclass
from datetime import date
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Optional

from expense_tracker.frontend.storage import FileSlotStorage
from expense_tracker.logging_setup import get_logger

logger = get_logger("expense_tracker.frontend.pending")

PENDING_SLOT = "pending_expense"
AUTH_SLOT = "auth"


def _required_text(record: dict[str, Any], field: str) -> str:
    value = record[field]
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"{field} must be a non-empty string")
    return value


@dataclass(frozen=True)
class SubmissionPayload:
    amount: Decimal
    category: str
    description: str
    date: date

    def to_dict(self) -> dict[str, str]:
        return {
            "amount": str(self.amount),
            "category": self.category,
            "description": self.description,
            "date": self.date.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SubmissionPayload":
        amount = data["amount"]
        if isinstance(amount, bool) or not isinstance(amount, (str, int, float)):
            raise TypeError("amount must be a number or numeric string")
        return cls(
            amount=Decimal(str(amount)),
            category=_required_text(data, "category"),
            description=_required_text(data, "description"),
            date=date.fromisoformat(_required_text(data, "date")),
        )


@dataclass(frozen=True)
class PendingSubmission:
    payload: SubmissionPayload
    idempotency_key: str
    owner_scope: str

    def request_body(self) -> dict[str, str]:
        """JSON body for POST /expenses."""
        return {**self.payload.to_dict(), "idempotency_key": self.idempotency_key}


class PendingOperationStore:
    def __init__(self, storage: FileSlotStorage, slot: str = PENDING_SLOT):
        self._storage = storage
        self._slot = slot

    def save(self, owner_scope: str, payload: SubmissionPayload, key: str) -> PendingSubmission:
        """Record a submission, superseding any earlier unconfirmed one."""
        pending = PendingSubmission(payload=payload, idempotency_key=key, owner_scope=owner_scope)
        record = {**payload.to_dict(), "idempotency_key": key, "owner_scope": owner_scope}
        self._storage.set(self._slot, json.dumps(record))
        return pending

    def load(self, owner_scope: str) -> Optional[PendingSubmission]:
        raw = self._storage.get(self._slot)
        if raw is None:
            return None

        try:
            record = json.loads(raw)
            pending = PendingSubmission(
                payload=SubmissionPayload.from_dict(record),
                idempotency_key=_required_text(record, "idempotency_key"),
                owner_scope=_required_text(record, "owner_scope"),
            )
            amount = pending.payload.amount
            if not amount.is_finite() or amount.quantize(Decimal("0.01"), ROUND_HALF_UP) <= 0:
                raise ValueError("pending submission fails validation")
        except (ValueError, TypeError, KeyError, AttributeError, InvalidOperation):
            logger.warning("Discarding unreadable pending submission")
            self.clear()
            return None

        if pending.owner_scope != owner_scope:
            logger.info("Discarding pending submission that belongs to another account")
            self.clear()
            return None
        return pending

    def clear(self) -> None:
        self._storage.remove(self._slot)


class AuthSessionStore:
    """The signed-in account ({id, name, email, token}) kept across restarts."""

    def __init__(self, storage: FileSlotStorage, slot: str = AUTH_SLOT):
        self._storage = storage
        self._slot = slot

    def save(self, session: dict[str, Any]) -> None:
        self._storage.set(self._slot, json.dumps(session))

    def load(self) -> Optional[dict[str, Any]]:
        raw = self._storage.get(self._slot)
        if raw is None:
            return None
        try:
            session = json.loads(raw)
        except ValueError:
            session = None
        if not isinstance(session, dict) or not session.get("token"):
            self.clear()
            return None
        return session

    def clear(self) -> None:
        self._storage.remove(self._slot)
