"""Owner-scoped record lookups shared by the resource routes."""

from typing import Optional, Type

from sqlalchemy.orm import Session

from .. import models
from ..errors import ResourceNotFoundError, UnauthorizedAccessError, ValidationFailedError


def get_owned(
    db: Session,
    model: Type,
    record_id: int,
    user: models.User,
    resource_type: Optional[str] = None,
):
    """
    Load a record the user owns.

    Missing (or soft-deleted) rows are a 404, rows owned by someone else a 403.
    """
    resource_type = resource_type or model.__name__
    record = db.get(model, record_id)

    if record is None or getattr(record, "deleted_at", None) is not None:
        raise ResourceNotFoundError.make(resource_type, record_id)
    if record.user_id != user.id:
        raise UnauthorizedAccessError.make(resource_type, record_id)
    return record


def require_active_category(
    db: Session, user: models.User, category_id: Optional[int]
) -> Optional[models.Category]:
    """
    Resolve a category id sent by the client for a new reference.

    It must exist, belong to the user and not be soft-deleted.
    """
    if category_id is None:
        return None

    category = (
        db.query(models.Category)
        .filter(models.Category.id == category_id)
        .filter(models.Category.user_id == user.id)
        .filter(models.Category.deleted_at.is_(None))
        .first()
    )
    if category is None:
        raise ValidationFailedError.field("category_id", "The selected category is invalid.")
    return category
