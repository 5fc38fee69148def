import logging
from typing import List, Tuple

from sqlalchemy.orm import Session

from .. import models, schemas
from ..errors import ValidationFailedError
from .periods import compute_end_date
from .progress import BudgetProgress, compute_progress
from .records import require_active_category

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = ("limit", "period", "start_date", "end_date")


def _check_range(start_date, end_date):
    if end_date < start_date:
        raise ValidationFailedError.field(
            "end_date", "The end date must be a date after or equal to the start date."
        )


def create_budget(db: Session, user: models.User, payload: schemas.BudgetCreate) -> models.Budget:
    """Create a budget; a missing end date is derived from start date + period."""
    category = require_active_category(db, user, payload.category_id)

    end_date = payload.end_date
    if end_date is None:
        end_date = compute_end_date(payload.start_date, payload.period)
    _check_range(payload.start_date, end_date)

    budget = models.Budget(
        user_id=user.id,
        category_id=category.id if category else None,
        limit=payload.limit,
        period=payload.period.value,
        start_date=payload.start_date,
        end_date=end_date,
    )
    db.add(budget)
    db.commit()
    db.refresh(budget)
    logger.info("Created budget %s for user %s", budget.id, user.id)
    return budget


def update_budget(db: Session, budget: models.Budget, payload: schemas.BudgetUpdate) -> models.Budget:
    """
    Apply a partial update.

    The category of a budget can never change. When the start date or the
    period changes without an explicit end date, the end date is recomputed.
    """
    sent = payload.model_fields_set
    if "category_id" in sent:
        raise ValidationFailedError.field(
            "category_id", "The category of a budget cannot be changed."
        )
    if not sent & set(UPDATABLE_FIELDS):
        raise ValidationFailedError.field(
            "payload", "At least one updatable field must be provided."
        )

    start_date = payload.start_date if "start_date" in sent else budget.start_date
    period = payload.period.value if "period" in sent else budget.period

    if payload.end_date is not None:
        end_date = payload.end_date
    elif "start_date" in sent or "period" in sent or "end_date" in sent:
        end_date = compute_end_date(start_date, period)
    else:
        end_date = budget.end_date
    _check_range(start_date, end_date)

    if "limit" in sent:
        budget.limit = payload.limit
    budget.period = period
    budget.start_date = start_date
    budget.end_date = end_date

    db.commit()
    db.refresh(budget)
    return budget


def delete_budget(db: Session, budget: models.Budget):
    db.delete(budget)
    db.commit()
    logger.info("Deleted budget %s", budget.id)


def _owner_transactions(db: Session, user_id: int, start_date=None, end_date=None) -> List[models.Transaction]:
    # Soft-deleted transactions are left out of budget totals
    query = (
        db.query(models.Transaction)
        .filter(models.Transaction.user_id == user_id)
        .filter(models.Transaction.deleted_at.is_(None))
    )
    if start_date is not None:
        query = query.filter(models.Transaction.date >= start_date)
    if end_date is not None:
        query = query.filter(models.Transaction.date <= end_date)
    return query.all()


def get_budget_progress(db: Session, budget: models.Budget) -> BudgetProgress:
    transactions = _owner_transactions(db, budget.user_id, budget.start_date, budget.end_date)
    return compute_progress(budget, transactions)


def list_budgets_with_progress(db: Session, user: models.User) -> List[Tuple[models.Budget, BudgetProgress]]:
    budgets = (
        db.query(models.Budget)
        .filter(models.Budget.user_id == user.id)
        .order_by(models.Budget.id.desc())
        .all()
    )
    if not budgets:
        return []

    # One load of the owner's transactions covers every budget
    transactions = _owner_transactions(
        db,
        user.id,
        min(b.start_date for b in budgets),
        max(b.end_date for b in budgets),
    )
    return [(b, compute_progress(b, transactions)) for b in budgets]
