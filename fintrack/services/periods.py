import calendar
import enum
from datetime import date, timedelta


class Period(str, enum.Enum):
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"


def _add_months(d: date, n: int) -> tuple[date, bool]:
    """
    Add n calendar months to d, clamping the day to the target month end.

    Returns the new date and whether clamping happened.
    """
    month = d.month - 1 + n
    year = d.year + month // 12
    month = month % 12 + 1
    last_day = calendar.monthrange(year, month)[1]
    return d.replace(year=year, month=month, day=min(d.day, last_day)), d.day > last_day


def compute_end_date(start_date: date, period) -> date:
    """
    Inclusive last day of the budget period that begins on start_date.

    weekly  -> start + 6 days
    monthly -> start + 1 month - 1 day
    yearly  -> start + 1 year - 1 day

    When the start day does not exist in the target month (Jan 31 -> February,
    Feb 29 -> next year) the period runs through the end of that month.
    """
    period = Period(period)

    if period is Period.WEEKLY:
        return start_date + timedelta(days=6)

    months = 1 if period is Period.MONTHLY else 12
    shifted, clamped = _add_months(start_date, months)
    if clamped:
        return shifted
    return shifted - timedelta(days=1)
