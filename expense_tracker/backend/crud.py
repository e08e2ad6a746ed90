import time
import uuid
from dataclasses import dataclass
from decimal import ROUND_HALF_UP
from enum import Enum
from typing import Optional

from sqlalchemy.exc import DatabaseError, DataError, IntegrityError, OperationalError
from sqlalchemy.orm import Session

from expense_tracker.backend.models import Expense, User
from expense_tracker.backend.schemas import TWO_PLACES, ExpenseCreate
from expense_tracker.logging_setup import get_logger

logger = get_logger("expense_tracker.backend.crud")

MAX_DB_RETRIES = 3
# Lookups after losing a uniqueness race, waiting for the winner to be visible
MAX_CONFLICT_LOOKUPS = 3
CONFLICT_LOOKUP_DELAY = 0.05


class UniquenessViolation(Exception):
    """The (owner_id, idempotency_key) pair is already taken."""


class WriteOutcome(str, Enum):
    CREATED = "created"
    EXISTING = "existing"
    TRANSIENT = "transient"


class DeleteOutcome(str, Enum):
    DELETED = "deleted"
    NOT_FOUND = "not_found"


@dataclass
class WriteResult:
    outcome: WriteOutcome
    record: Optional[Expense] = None


@dataclass
class DeleteResult:
    outcome: DeleteOutcome
    record: Optional[Expense] = None


# ── Storage boundary ──────────────────────────────────────────────────────────

def find_by_owner_and_key(db: Session, owner_id: str, idempotency_key: str) -> Optional[Expense]:
    return (
        db.query(Expense)
        .filter(Expense.owner_id == owner_id, Expense.idempotency_key == idempotency_key)
        .first()
    )


def create_unique(db: Session, expense: Expense) -> Expense:
    """
    Insert `expense`, retrying transient DB errors with exponential backoff.
    Raises UniquenessViolation when the (owner_id, idempotency_key) constraint
    rejects the row.
    """
    for attempt in range(MAX_DB_RETRIES):
        try:
            db.add(expense)
            db.commit()
            db.refresh(expense)
            return expense
        except IntegrityError as e:
            db.rollback()
            raise UniquenessViolation(expense.idempotency_key) from e
        except DataError:
            # Value rejected by a column type; retrying cannot help
            db.rollback()
            raise
        except (OperationalError, DatabaseError):
            db.rollback()
            if attempt < MAX_DB_RETRIES - 1:
                # Exponential backoff: 1, 2 seconds
                logger.warning("Transient DB error saving expense, attempt %d", attempt + 1)
                time.sleep(2 ** attempt)
            else:
                raise


def delete_by_owner_and_id(db: Session, owner_id: str, expense_id: str) -> Optional[Expense]:
    expense = (
        db.query(Expense)
        .filter(Expense.id == expense_id, Expense.owner_id == owner_id)
        .first()
    )
    if expense is None:
        return None
    db.delete(expense)
    db.commit()
    return expense


# ── Idempotent write ──────────────────────────────────────────────────────────

def write_expense(db: Session, owner_id: str, expense_in: ExpenseCreate) -> WriteResult:
    """
    Return the single expense recorded for (owner_id, idempotency_key),
    creating it only if absent.

    The unique constraint is the real guard: a concurrent request carrying the
    same key can pass the first lookup too, in which case one insert loses and
    falls back to reading the winner's row.
    """
    key = expense_in.idempotency_key

    existing = find_by_owner_and_key(db, owner_id, key)
    if existing is not None:
        logger.info("Idempotent replay for key %s, returning expense %s", key, existing.id)
        return WriteResult(WriteOutcome.EXISTING, existing)

    new_expense = Expense(
        id=str(uuid.uuid4()),
        owner_id=owner_id,
        idempotency_key=key,
        amount=expense_in.amount.quantize(TWO_PLACES, rounding=ROUND_HALF_UP),
        category=expense_in.category.strip(),
        description=expense_in.description.strip(),
        date=expense_in.date,
    )

    try:
        saved = create_unique(db, new_expense)
    except UniquenessViolation:
        logger.info("Lost creation race for key %s, reading the winner", key)
        return _resolve_conflict(db, owner_id, key)

    logger.info("Created expense %s for key %s", saved.id, key)
    return WriteResult(WriteOutcome.CREATED, saved)


def _resolve_conflict(db: Session, owner_id: str, key: str) -> WriteResult:
    for attempt in range(1, MAX_CONFLICT_LOOKUPS + 1):
        existing = find_by_owner_and_key(db, owner_id, key)
        if existing is not None:
            return WriteResult(WriteOutcome.EXISTING, existing)
        if attempt < MAX_CONFLICT_LOOKUPS:
            time.sleep(CONFLICT_LOOKUP_DELAY * attempt)
            # Start a fresh transaction so the winner's commit becomes visible
            db.rollback()

    logger.warning("Winning write for key %s still not visible", key)
    return WriteResult(WriteOutcome.TRANSIENT)


def delete_expense(db: Session, owner_id: str, expense_id: str) -> DeleteResult:
    """Delete an expense owned by `owner_id`; missing or foreign ids are NOT_FOUND."""
    deleted = delete_by_owner_and_id(db, owner_id, expense_id)
    if deleted is None:
        logger.info("Delete of expense %s: not found for owner", expense_id)
        return DeleteResult(DeleteOutcome.NOT_FOUND)
    logger.info("Deleted expense %s", expense_id)
    return DeleteResult(DeleteOutcome.DELETED, deleted)


# ── Reads ─────────────────────────────────────────────────────────────────────

def get_expenses(
    db: Session,
    owner_id: str,
    category: Optional[str] = None,
    sort_desc: bool = True,
) -> list[Expense]:
    """
    Fetch the owner's expenses with optional exact category filter, sorted by date.
    sort_desc=True means newest first.
    """
    query = db.query(Expense).filter(Expense.owner_id == owner_id)

    if category and category.strip():
        query = query.filter(Expense.category == category.strip())

    if sort_desc:
        query = query.order_by(Expense.date.desc(), Expense.created_at.desc())
    else:
        query = query.order_by(Expense.date.asc(), Expense.created_at.asc())

    return query.all()


def get_all_categories(db: Session, owner_id: str) -> list[str]:
    """Return the owner's distinct categories for the filter dropdown."""
    rows = (
        db.query(Expense.category)
        .filter(Expense.owner_id == owner_id)
        .distinct()
        .order_by(Expense.category)
        .all()
    )
    return [r[0] for r in rows]


# ── Users ─────────────────────────────────────────────────────────────────────

def get_user_by_email(db: Session, email: str) -> Optional[User]:
    return db.query(User).filter(User.email == email).first()


def get_user(db: Session, user_id: str) -> Optional[User]:
    return db.query(User).filter(User.id == user_id).first()


def create_user(db: Session, name: str, email: str, password_hash: str) -> Optional[User]:
    """Create a user; returns None if the email is already registered."""
    user = User(id=str(uuid.uuid4()), name=name, email=email, password_hash=password_hash)
    try:
        db.add(user)
        db.commit()
        db.refresh(user)
        return user
    except IntegrityError:
        db.rollback()
        return None
