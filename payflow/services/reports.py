"""
Bill summary reports.

Pure functions over a user's bills; the router does the loading.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable, Optional

from payflow.services.storage.base import BillRecord, CategoryRecord, as_utc, utcnow

UNCATEGORIZED = "Uncategorized"


@dataclass
class CategoryTotal:
    category_id: Optional[str]
    name: str
    count: int = 0
    amount: int = 0


@dataclass
class BillSummary:
    """Counts and amounts (minor units) for one user's bills."""
    generated_at: datetime
    total_count: int = 0
    total_amount: int = 0
    paid_count: int = 0
    paid_amount: int = 0
    unpaid_count: int = 0
    unpaid_amount: int = 0
    overdue_count: int = 0
    overdue_amount: int = 0
    upcoming_count: int = 0
    upcoming_amount: int = 0
    by_category: list[CategoryTotal] = field(default_factory=list)


def summarize_bills(
    bills: Iterable[BillRecord],
    categories: Iterable[CategoryRecord] = (),
    now: Optional[datetime] = None,
) -> BillSummary:
    """
    Unpaid bills are either overdue (due at or before ``now``) or upcoming.
    Bills pointing at an unknown category are reported as uncategorized.
    """
    now = as_utc(now) if now else utcnow()
    names = {c.id: c.name for c in categories}
    summary = BillSummary(generated_at=now)
    totals: dict[Optional[str], CategoryTotal] = {}

    for bill in bills:
        summary.total_count += 1
        summary.total_amount += bill.amount

        if bill.is_paid:
            summary.paid_count += 1
            summary.paid_amount += bill.amount
        else:
            summary.unpaid_count += 1
            summary.unpaid_amount += bill.amount
            if as_utc(bill.due_date) > now:
                summary.upcoming_count += 1
                summary.upcoming_amount += bill.amount
            else:
                summary.overdue_count += 1
                summary.overdue_amount += bill.amount

        key = bill.category_id if bill.category_id in names else None
        total = totals.get(key)
        if total is None:
            total = CategoryTotal(category_id=key, name=names.get(key, UNCATEGORIZED))
            totals[key] = total
        total.count += 1
        total.amount += bill.amount

    summary.by_category = sorted(totals.values(), key=lambda t: (-t.amount, t.name))
    return summary
