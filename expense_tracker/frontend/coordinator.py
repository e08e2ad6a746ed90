"""
Client side of the idempotent expense write.

    submit(fields) -> validate -> new key -> save pending -> POST -> clear pending

A failed POST leaves the pending record in place. It is replayed once per
account activation (Streamlit reruns inside one activation don't count) and
after that only when the user asks for it. Replays reuse the stored key, so
the server returns the record it already has instead of creating another.
"""

from dataclasses import dataclass
from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from enum import Enum
from typing import Any, Callable, Optional, Union

from expense_tracker.frontend.errors import ApiError, TransientError, ValidationError
from expense_tracker.frontend.keys import new_key
from expense_tracker.frontend.pending import (
    PendingOperationStore,
    PendingSubmission,
    SubmissionPayload,
)
from expense_tracker.logging_setup import get_logger

logger = get_logger("expense_tracker.frontend.coordinator")

SAFE_RETRY_HINT = "You can retry safely because this submission is idempotent."

TWO_PLACES = Decimal("0.01")
MAX_AMOUNT = Decimal("100000000")


class SubmissionState(str, Enum):
    IDLE = "idle"
    SUBMITTING = "submitting"
    CONFIRMED = "confirmed"
    FAILED = "failed"


@dataclass
class SubmissionResult:
    state: SubmissionState
    message: str
    outcome: Optional[str] = None
    record: Optional[dict[str, Any]] = None
    is_replay: bool = False

    @property
    def ok(self) -> bool:
        return self.state is SubmissionState.CONFIRMED


def validate_payload(
    amount: Union[str, int, float, Decimal, None],
    category: Optional[str],
    description: Optional[str],
    expense_date: Union[date, str, None],
) -> SubmissionPayload:
    """Check the form fields; raise ValidationError listing every problem."""
    errors = []

    amount_val = None
    try:
        amount_val = Decimal(str(amount).strip())
        if not amount_val.is_finite():
            errors.append("Amount must be greater than zero.")
        elif amount_val >= MAX_AMOUNT:
            errors.append("Amount must be less than 100,000,000.")
        else:
            # The server keeps two decimal places
            amount_val = amount_val.quantize(TWO_PLACES, rounding=ROUND_HALF_UP)
            if amount_val <= 0:
                errors.append("Amount must be greater than zero.")
            elif amount_val >= MAX_AMOUNT:
                errors.append("Amount must be less than 100,000,000.")
    except (InvalidOperation, ValueError):
        errors.append("Amount must be a valid positive number (e.g. 250 or 99.99).")

    category = (category or "").strip()
    if not category:
        errors.append("Category is required.")

    description = (description or "").strip()
    if not description:
        errors.append("Description is required.")

    parsed_date = None
    if isinstance(expense_date, datetime):
        parsed_date = expense_date.date()
    elif isinstance(expense_date, date):
        parsed_date = expense_date
    elif isinstance(expense_date, str) and expense_date.strip():
        try:
            parsed_date = date.fromisoformat(expense_date.strip())
        except ValueError:
            errors.append("Date must be a valid calendar date (YYYY-MM-DD).")
    else:
        errors.append("Date is required.")

    if errors:
        raise ValidationError(errors)
    return SubmissionPayload(
        amount=amount_val, category=category, description=description, date=parsed_date
    )


class SubmissionCoordinator:
    def __init__(
        self,
        api,
        store: PendingOperationStore,
        key_factory: Callable[[], str] = new_key,
    ):
        self.api = api
        self.store = store
        self._key_factory = key_factory
        self.owner_scope: Optional[str] = None
        self.state = SubmissionState.IDLE
        self._replay_attempted = False

    # ── Account lifecycle ─────────────────────────────────────────────────────

    def activate(self, owner_scope: Optional[str]) -> None:
        """
        Mark `owner_scope` as the active account. Repeating the call for the
        account that is already active changes nothing.
        """
        if owner_scope == self.owner_scope:
            return
        logger.info("Account activation changed")
        self.owner_scope = owner_scope
        self.state = SubmissionState.IDLE
        self._replay_attempted = False
        if owner_scope is not None:
            # Purges a pending record left behind by another account
            self.store.load(owner_scope)

    def pending(self) -> Optional[PendingSubmission]:
        if self.owner_scope is None:
            return None
        return self.store.load(self.owner_scope)

    # ── Submission ────────────────────────────────────────────────────────────

    def submit(self, amount, category, description, expense_date) -> SubmissionResult:
        """Validate and send a new expense. Raises ValidationError on bad input."""
        if self.owner_scope is None:
            raise RuntimeError("No active account; sign in before submitting")

        payload = validate_payload(amount, category, description, expense_date)
        pending = self.store.save(self.owner_scope, payload, self._key_factory())
        return self._send(pending, is_replay=False)

    def replay_pending(self) -> Optional[SubmissionResult]:
        """Resubmit a leftover pending record, at most once per activation."""
        if self.owner_scope is None or self._replay_attempted:
            return None
        self._replay_attempted = True

        pending = self.store.load(self.owner_scope)
        if pending is None:
            return None
        logger.info("Replaying pending submission %s", pending.idempotency_key)
        return self._send(pending, is_replay=True)

    def retry_pending(self) -> Optional[SubmissionResult]:
        """User-initiated resubmission of the pending record."""
        pending = self.pending()
        if pending is None:
            return None
        return self._send(pending, is_replay=True)

    def _send(self, pending: PendingSubmission, is_replay: bool) -> SubmissionResult:
        self.state = SubmissionState.SUBMITTING
        try:
            response = self.api.create_expense(pending.request_body())
        except (TransientError, ApiError) as e:
            self.state = SubmissionState.FAILED
            logger.warning("Expense submission %s failed: %s", pending.idempotency_key, e)
            return SubmissionResult(
                state=self.state,
                message=f"Expense save failed: {e} {SAFE_RETRY_HINT}",
                is_replay=is_replay,
            )

        self.store.clear()
        self.state = SubmissionState.CONFIRMED
        outcome = response.get("outcome")
        if outcome == "existing":
            message = "Retrieved existing entry (idempotent)."
        else:
            message = "Expense saved successfully."
        return SubmissionResult(
            state=self.state,
            message=message,
            outcome=outcome,
            record=response.get("record"),
            is_replay=is_replay,
        )
