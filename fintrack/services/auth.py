import hashlib
import logging
import secrets
from datetime import timedelta
from typing import Optional, Tuple

import bcrypt
from sqlalchemy.orm import Session

from .. import config, models

logger = logging.getLogger(__name__)


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(password: str, hashed_password: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8"), hashed_password.encode("utf-8"))
    except ValueError:
        # Malformed stored hash
        return False


def _hash_token(plain: str) -> str:
    return hashlib.sha256(plain.encode("utf-8")).hexdigest()


def issue_token(
    db: Session, user: models.User, name: str = "api-token"
) -> Tuple[str, models.PersonalAccessToken]:
    """
    Create a new personal access token for the user.

    Only the sha256 of the secret is stored; the plain value is returned once.
    """
    plain = secrets.token_hex(20)
    expires_at = None
    if config.TOKEN_TTL_MINUTES > 0:
        expires_at = models.utcnow() + timedelta(minutes=config.TOKEN_TTL_MINUTES)

    token = models.PersonalAccessToken(
        user_id=user.id,
        name=name,
        token_hash=_hash_token(plain),
        expires_at=expires_at,
    )
    db.add(token)
    db.commit()
    db.refresh(token)
    logger.info("Issued token %s for user %s", token.id, user.id)
    return plain, token


def revoke_all_tokens(db: Session, user: models.User) -> int:
    count = (
        db.query(models.PersonalAccessToken)
        .filter(models.PersonalAccessToken.user_id == user.id)
        .delete(synchronize_session=False)
    )
    db.commit()
    return count


def revoke_token(db: Session, token: models.PersonalAccessToken):
    db.delete(token)
    db.commit()


def authenticate_token(db: Session, plain: Optional[str]) -> Optional[models.PersonalAccessToken]:
    """Return the live token row for a bearer secret, or None."""
    if not plain:
        return None

    token = (
        db.query(models.PersonalAccessToken)
        .filter(models.PersonalAccessToken.token_hash == _hash_token(plain))
        .first()
    )
    if token is None:
        return None

    now = models.utcnow()
    if token.expires_at is not None and token.expires_at <= now:
        logger.info("Rejected expired token %s", token.id)
        return None
    if token.user is None or token.user.is_deleted:
        return None

    token.last_used_at = now
    db.commit()
    return token


def authenticate_user(db: Session, email: str, password: str) -> Optional[models.User]:
    user = (
        db.query(models.User)
        .filter(models.User.email == email.strip().lower())
        .filter(models.User.deleted_at.is_(None))
        .first()
    )
    if user is None or not verify_password(password, user.password_hash):
        return None
    return user
