import logging
from dataclasses import dataclass, field
from datetime import date, timedelta
from decimal import Decimal
from typing import Dict, List, Optional

from sqlalchemy.orm import Session

from .. import models
from .auth import hash_password
from .periods import Period, compute_end_date

logger = logging.getLogger(__name__)


def cleanup_expired_tokens(db: Session) -> int:
    """Delete personal access tokens whose expiry has passed."""
    count = (
        db.query(models.PersonalAccessToken)
        .filter(models.PersonalAccessToken.expires_at.isnot(None))
        .filter(models.PersonalAccessToken.expires_at < models.utcnow())
        .delete(synchronize_session=False)
    )
    db.commit()
    logger.info("Deleted %d expired tokens", count)
    return count


@dataclass
class OrphanReport:
    categories: List[int] = field(default_factory=list)
    transactions: List[int] = field(default_factory=list)
    budgets: List[int] = field(default_factory=list)
    # budgets pointing at a category that no longer exists; detached, not deleted
    detached_budgets: List[int] = field(default_factory=list)
    # informational: transactions whose category row is gone for good
    dangling_transactions: List[int] = field(default_factory=list)

    @property
    def total(self) -> int:
        return (
            len(self.categories)
            + len(self.transactions)
            + len(self.budgets)
            + len(self.detached_budgets)
        )

    def as_dict(self) -> Dict[str, List[int]]:
        return {
            "categories": self.categories,
            "transactions": self.transactions,
            "budgets": self.budgets,
            "detached_budgets": self.detached_budgets,
            "dangling_transactions": self.dangling_transactions,
        }


def _ids_without_user(db: Session, model) -> List[int]:
    rows = (
        db.query(model.id)
        .outerjoin(models.User, model.user_id == models.User.id)
        .filter(models.User.id.is_(None))
        .all()
    )
    return [r[0] for r in rows]


def _ids_without_category(db: Session, model) -> List[int]:
    rows = (
        db.query(model.id)
        .outerjoin(models.Category, model.category_id == models.Category.id)
        .filter(model.category_id.isnot(None))
        .filter(models.Category.id.is_(None))
        .all()
    )
    return [r[0] for r in rows]


def cleanup_orphans(db: Session, dry_run: bool = False) -> OrphanReport:
    """
    Find rows left behind by hard-deleted users or categories.

    Categories, transactions and budgets without a user are deleted. Budgets
    whose category row is gone become overall budgets. Transactions pointing
    at a missing category are only reported. Soft-deleted users and
    categories still exist, so nothing referencing them is touched.
    """
    report = OrphanReport(
        categories=_ids_without_user(db, models.Category),
        transactions=_ids_without_user(db, models.Transaction),
        budgets=_ids_without_user(db, models.Budget),
        detached_budgets=_ids_without_category(db, models.Budget),
        dangling_transactions=_ids_without_category(db, models.Transaction),
    )
    # A budget already removed for its user needs no detaching
    report.detached_budgets = [b for b in report.detached_budgets if b not in report.budgets]

    if dry_run:
        logger.info("Dry run: %d orphaned records found", report.total)
        return report

    if report.budgets:
        db.query(models.Budget).filter(models.Budget.id.in_(report.budgets)).delete(
            synchronize_session=False
        )
    if report.detached_budgets:
        db.query(models.Budget).filter(models.Budget.id.in_(report.detached_budgets)).update(
            {models.Budget.category_id: None}, synchronize_session=False
        )
    if report.transactions:
        db.query(models.Transaction).filter(models.Transaction.id.in_(report.transactions)).delete(
            synchronize_session=False
        )
    if report.categories:
        db.query(models.Category).filter(models.Category.id.in_(report.categories)).delete(
            synchronize_session=False
        )
    db.commit()
    logger.info("Cleaned up %d orphaned records", report.total)
    return report


def seed_demo_data(db: Session, today: Optional[date] = None) -> models.User:
    """Create a demo user with a few categories, transactions and budgets."""
    today = today or date.today()

    demo = db.query(models.User).filter(models.User.email == "demo@example.com").first()
    if demo is None:
        demo = models.User(
            name="Demo User",
            email="demo@example.com",
            password_hash=hash_password("password"),
            timezone="UTC",
        )
        db.add(demo)
        db.commit()
        db.refresh(demo)

    if db.query(models.Category).filter(models.Category.user_id == demo.id).count() == 0:
        defaults = [
            ("Food", "utensils"),
            ("Transport", "car"),
            ("Subscriptions", "repeat"),
            ("Shopping", "bag"),
        ]
        for name, icon in defaults:
            db.add(models.Category(user_id=demo.id, name=name, icon=icon))
        db.commit()

    categories = {
        c.name: c
        for c in db.query(models.Category).filter(models.Category.user_id == demo.id).all()
    }

    if db.query(models.Transaction).filter(models.Transaction.user_id == demo.id).count() == 0:
        samples = [
            ("Food", "42.50", "Groceries", 1),
            ("Food", "18.20", "Lunch", 3),
            ("Transport", "60.00", "Fuel", 5),
            ("Subscriptions", "12.99", "Music streaming", 7),
            ("Shopping", "89.90", "Shoes", 10),
        ]
        for cat, amount, description, days_ago in samples:
            db.add(
                models.Transaction(
                    user_id=demo.id,
                    category_id=categories[cat].id if cat in categories else None,
                    amount=Decimal(amount),
                    description=description,
                    date=today - timedelta(days=days_ago),
                )
            )
        db.commit()

    if db.query(models.Budget).filter(models.Budget.user_id == demo.id).count() == 0:
        start = today.replace(day=1)
        budgets = [
            ("Food", "400.00", Period.MONTHLY),
            ("Transport", "150.00", Period.MONTHLY),
            (None, "1500.00", Period.MONTHLY),
        ]
        for cat, limit, period in budgets:
            db.add(
                models.Budget(
                    user_id=demo.id,
                    category_id=categories[cat].id if cat in categories else None,
                    limit=Decimal(limit),
                    period=period.value,
                    start_date=start,
                    end_date=compute_end_date(start, period),
                )
            )
        db.commit()

    logger.info("Seeded demo data for user %s", demo.id)
    return demo
