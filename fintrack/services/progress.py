from dataclasses import dataclass
from datetime import date
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, Iterable, Optional

import pandas as pd

CENTS = Decimal("0.01")


def to_money(value) -> Decimal:
    """Decimal rounded half-up to two places."""
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(CENTS, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class BudgetProgress:
    limit: Decimal
    spent: Decimal
    remaining: Decimal
    progress_percent: Decimal
    is_over_budget: bool

    def as_stats(self) -> Dict:
        """Wire form merged into a budget representation."""
        return {
            "spent": float(self.spent),
            "remaining": float(self.remaining),
            "progress_percent": float(self.progress_percent),
            "over": self.is_over_budget,
        }


def _transactions_frame(transactions: Iterable) -> pd.DataFrame:
    data = [
        {
            "date": t.date,
            "category_id": t.category_id,
            "amount": to_money(t.amount),
        }
        for t in transactions
    ]
    df = pd.DataFrame(data, columns=["date", "category_id", "amount"])
    # Calendar dates only: naive timestamps at midnight, no zone conversion
    df["date"] = pd.to_datetime(df["date"])
    return df


def compute_progress(budget, transactions: Iterable) -> BudgetProgress:
    """
    Spending stats of a budget against its owner's transactions.

    ``budget`` needs ``limit``, ``category_id``, ``start_date`` and ``end_date``;
    each transaction needs ``amount``, ``date`` and ``category_id``. The caller
    passes transactions already scoped to the budget owner.

    - only transactions dated within [start_date, end_date] count
    - a budget with a category only counts that category's transactions,
      an overall budget (category_id None) counts everything
    - remaining is not floored at zero
    - spending exactly at the limit is not over budget
    """
    limit = to_money(budget.limit)
    start: date = budget.start_date
    end: Optional[date] = budget.end_date

    df = _transactions_frame(transactions)

    mask = df["date"] >= pd.Timestamp(start)
    if end is not None:
        mask &= df["date"] <= pd.Timestamp(end)
    if budget.category_id is not None:
        mask &= df["category_id"] == budget.category_id

    spent = to_money(sum(df.loc[mask, "amount"].tolist(), Decimal("0")))
    remaining = limit - spent

    if limit > 0:
        progress_percent = to_money(spent / limit * 100)
    else:
        progress_percent = Decimal("0.00")

    return BudgetProgress(
        limit=limit,
        spent=spent,
        remaining=remaining,
        progress_percent=progress_percent,
        is_over_budget=spent > limit,
    )
