from datetime import date
from decimal import Decimal
from types import SimpleNamespace

import pytest

from fintrack.services.progress import compute_progress, to_money

FOOD = 1
TRAVEL = 2


def _budget(limit="1000.00", category_id=FOOD, start=date(2025, 11, 1), end=date(2025, 11, 30)):
    return SimpleNamespace(
        limit=Decimal(limit),
        category_id=category_id,
        start_date=start,
        end_date=end,
    )


def _tx(amount, day, category_id=FOOD):
    return SimpleNamespace(amount=Decimal(amount), date=day, category_id=category_id)


def test_spending_within_limit():
    progress = compute_progress(
        _budget(),
        [_tx("250.00", date(2025, 11, 5)), _tx("150.50", date(2025, 11, 20))],
    )

    assert progress.limit == Decimal("1000.00")
    assert progress.spent == Decimal("400.50")
    assert progress.remaining == Decimal("599.50")
    assert progress.progress_percent == Decimal("40.05")
    assert progress.is_over_budget is False


def test_over_budget_keeps_negative_remaining():
    progress = compute_progress(
        _budget(limit="500.00"),
        [_tx("300.00", date(2025, 11, 3)), _tx("250.00", date(2025, 11, 18))],
    )

    assert progress.spent == Decimal("550.00")
    assert progress.remaining == Decimal("-50.00")
    assert progress.progress_percent == Decimal("110.00")
    assert progress.is_over_budget is True


def test_spending_exactly_at_limit_is_not_over():
    progress = compute_progress(_budget(limit="100.00"), [_tx("100.00", date(2025, 11, 10))])

    assert progress.remaining == Decimal("0.00")
    assert progress.progress_percent == Decimal("100.00")
    assert progress.is_over_budget is False


def test_no_transactions():
    progress = compute_progress(_budget(), [])

    assert progress.spent == Decimal("0.00")
    assert progress.remaining == Decimal("1000.00")
    assert progress.progress_percent == Decimal("0.00")
    assert progress.is_over_budget is False


def test_range_boundaries_are_inclusive():
    progress = compute_progress(
        _budget(),
        [
            _tx("10.00", date(2025, 10, 30)),
            _tx("20.00", date(2025, 10, 31)),
            _tx("1.00", date(2025, 11, 1)),
            _tx("100.00", date(2025, 11, 15)),
            _tx("2.00", date(2025, 11, 30)),
            _tx("40.00", date(2025, 12, 1)),
        ],
    )

    assert progress.spent == Decimal("103.00")


def test_only_in_range_transaction_counts():
    progress = compute_progress(
        _budget(),
        [
            _tx("55.00", date(2025, 10, 30)),
            _tx("100.00", date(2025, 11, 15)),
            _tx("75.00", date(2025, 12, 1)),
        ],
    )

    assert progress.spent == Decimal("100.00")


def test_category_budget_ignores_other_categories():
    progress = compute_progress(
        _budget(category_id=FOOD),
        [
            _tx("40.00", date(2025, 11, 2), FOOD),
            _tx("60.00", date(2025, 11, 2), TRAVEL),
            _tx("5.00", date(2025, 11, 2), None),
        ],
    )

    assert progress.spent == Decimal("40.00")


def test_overall_budget_sums_every_category():
    progress = compute_progress(
        _budget(category_id=None),
        [
            _tx("40.00", date(2025, 11, 2), FOOD),
            _tx("60.00", date(2025, 11, 2), TRAVEL),
            _tx("5.00", date(2025, 11, 2), None),
        ],
    )

    assert progress.spent == Decimal("105.00")
    assert progress.progress_percent == Decimal("10.50")


def test_progress_percent_rounds_half_up():
    # 33.333.. -> 33.33 and 0.125 -> 0.13
    progress = compute_progress(_budget(limit="3.00"), [_tx("1.00", date(2025, 11, 2))])
    assert progress.progress_percent == Decimal("33.33")

    progress = compute_progress(_budget(limit="8.00"), [_tx("0.01", date(2025, 11, 2))])
    assert progress.progress_percent == Decimal("0.13")


def test_zero_limit_does_not_divide_by_zero():
    progress = compute_progress(_budget(limit="0"), [_tx("10.00", date(2025, 11, 2))])

    assert progress.progress_percent == Decimal("0.00")
    assert progress.is_over_budget is True


def test_as_stats_wire_shape():
    stats = compute_progress(_budget(), [_tx("250.00", date(2025, 11, 5))]).as_stats()

    assert stats == {
        "spent": 250.0,
        "remaining": 750.0,
        "progress_percent": 25.0,
        "over": False,
    }


@pytest.mark.parametrize(
    "value, expected",
    [("12.345", "12.35"), ("99.9", "99.90"), (100, "100.00"), (0.1, "0.10"), ("2.675", "2.68")],
)
def test_to_money(value, expected):
    assert to_money(value) == Decimal(expected)
