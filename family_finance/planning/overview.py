from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Dict, List, Mapping, Sequence, Tuple

from family_finance.planning.projection import ExpenseRecord


@dataclass
class IncomeRecord:
    source: str
    amount: float
    received_date: datetime


def month_bounds(now: datetime) -> Tuple[datetime, datetime]:
    """First instant of the month and 23:59:59 on its last day."""
    start = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    next_month = (start + timedelta(days=32)).replace(day=1)
    end = next_month - timedelta(seconds=1)
    return start, end


def build_overview(
    now: datetime,
    incomes: Sequence[IncomeRecord],
    expenses: Sequence[ExpenseRecord],
    income_defaults: Mapping[str, float],
    category_order: List[str],
) -> Dict:
    """
    Monthly summary for the dashboard:
    - income by source, with ``income_defaults`` filling sources that are
      missing or zero
    - total spending and spending per category in ``category_order``
    - net savings
    """
    by_source: Dict[str, float] = {}
    for inc in incomes:
        by_source[inc.source] = by_source.get(inc.source, 0) + inc.amount

    for source, amount in income_defaults.items():
        if not by_source.get(source):
            by_source[source] = float(amount)

    income = sum(by_source.values())
    spending = sum(e.amount for e in expenses)

    by_category = {c: 0.0 for c in category_order}
    for e in expenses:
        if e.category in by_category:
            by_category[e.category] += e.amount

    return {
        "month": now.strftime("%B %Y"),
        "monthly_income": round(income, 2),
        "income_by_source": {s: round(a, 2) for s, a in by_source.items()},
        "total_spending": round(spending, 2),
        "net_savings": round(income - spending, 2),
        "spending_by_category": {c: round(a, 2) for c, a in by_category.items()},
    }
