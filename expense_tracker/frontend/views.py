"""Pure projections over already-fetched expense rows (dicts from the API)."""

from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Any, Iterable, Optional

ALL_CATEGORIES = "All"


def _amount(expense: dict[str, Any]) -> Decimal:
    try:
        return Decimal(str(expense.get("amount", "0")))
    except InvalidOperation:
        return Decimal("0")


def distinct_categories(expenses: Iterable[dict[str, Any]]) -> list[str]:
    return sorted({e["category"] for e in expenses if e.get("category")}, key=str.lower)


def filter_and_sort(
    expenses: Iterable[dict[str, Any]],
    category: Optional[str] = None,
    sort: str = "date_desc",
) -> list[dict[str, Any]]:
    """Exact category filter ("All"/None keeps everything), then sort by date."""
    rows = [
        e for e in expenses
        if not category or category == ALL_CATEGORIES or e.get("category") == category
    ]
    # created_at breaks ties the same way the API orders them
    rows.sort(
        key=lambda e: (str(e.get("date", "")), str(e.get("created_at", ""))),
        reverse=sort != "date_asc",
    )
    return rows


def visible_total(expenses: Iterable[dict[str, Any]]) -> Decimal:
    return sum((_amount(e) for e in expenses), Decimal("0.00"))


def category_totals(expenses: Iterable[dict[str, Any]]) -> list[tuple[str, Decimal]]:
    """Per-category totals, largest first."""
    totals: dict[str, Decimal] = {}
    for e in expenses:
        cat = e.get("category", "")
        totals[cat] = totals.get(cat, Decimal("0")) + _amount(e)
    return sorted(totals.items(), key=lambda x: (-x[1], x[0]))


def format_inr(amount) -> str:
    try:
        return f"₹{Decimal(str(amount)):,.2f}"
    except (InvalidOperation, TypeError, ValueError):
        return f"₹{amount}"


def format_date(value) -> str:
    try:
        parsed = value if isinstance(value, date) else date.fromisoformat(str(value)[:10])
    except ValueError:
        return "-"
    return parsed.strftime("%d %b %Y")
