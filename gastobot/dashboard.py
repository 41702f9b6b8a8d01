"""Spending summary: overall total, today's total, per-category totals and the
full movement list."""

from __future__ import annotations

import math
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date

from .models import Expense


@dataclass(frozen=True, slots=True)
class DashboardSummary:
    total: float
    today_total: float
    # (category, amount) pairs, largest first
    by_category: tuple[tuple[str, float], ...]
    count: int
    # every record in list order (newest first)
    expenses: tuple[Expense, ...] = ()


def summarize(expenses: Iterable[Expense], today: date) -> DashboardSummary:
    items = list(expenses)
    today_iso = today.isoformat()
    groups: dict[str, list[float]] = {}
    for e in items:
        groups.setdefault(e.category, []).append(e.amount)
    by_category = sorted(
        ((cat, math.fsum(amounts)) for cat, amounts in groups.items()),
        key=lambda pair: pair[1],
        reverse=True,
    )
    return DashboardSummary(
        total=math.fsum(e.amount for e in items),
        today_total=math.fsum(e.amount for e in items if e.expense_date == today_iso),
        by_category=tuple(by_category),
        count=len(items),
        expenses=tuple(items),
    )
