import logging
import math
from typing import List, Optional

from fastapi import Depends, FastAPI, Header, Query, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from . import config, models, schemas
from .database import SessionLocal, engine
from .errors import AuthenticationError, FinTrackError, ValidationFailedError
from .middleware import RequestLoggingMiddleware
from .services import auth
from .services.budgets import (
    create_budget,
    delete_budget,
    get_budget_progress,
    list_budgets_with_progress,
    update_budget,
)
from .services.clock import resolve_effective_date
from .services.records import get_owned, require_active_category

logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

# Create tables (no migration tooling; schema changes need a fresh database)
models.Base.metadata.create_all(bind=engine)

app = FastAPI(title="FinTrack")
app.add_middleware(RequestLoggingMiddleware)

bearer_scheme = HTTPBearer(auto_error=False)


def get_db():
    """Dependency that provides a SQLAlchemy session to routes."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_current_token(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: Session = Depends(get_db),
) -> models.PersonalAccessToken:
    token = auth.authenticate_token(db, credentials.credentials if credentials else None)
    if token is None:
        raise AuthenticationError()
    request.state.user_id = token.user_id
    return token


def get_current_user(
    token: models.PersonalAccessToken = Depends(get_current_token),
) -> models.User:
    return token.user


# ---- Error handling ----

@app.exception_handler(FinTrackError)
async def fintrack_error_handler(request: Request, exc: FinTrackError):
    exc.report()
    return exc.to_response()


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    """Reshape pydantic errors into {"message", "errors": {field: [messages]}}."""
    errors = {}
    for err in exc.errors():
        loc = [str(part) for part in err.get("loc", ()) if part not in ("body", "query", "path", "header")]
        field = ".".join(loc) or "payload"
        errors.setdefault(field, []).append(err.get("msg", "Invalid value."))

    logger.info("Validation failed on %s %s", request.method, request.url.path, extra={"errors": errors})
    return JSONResponse(
        status_code=422,
        content={"message": "The given data was invalid.", "errors": errors},
    )


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content={"message": "Server Error", "error_code": "SERVER_ERROR", "status": 500},
    )


@app.get("/health", tags=["system"])
def health_check():
    return {"status": "ok"}


# ---- Auth APIs ----

def _check_password_confirmation(password: Optional[str], confirmation: Optional[str]):
    if password is not None and password != confirmation:
        raise ValidationFailedError.field("password", "The password field confirmation does not match.")


def _check_email_available(db: Session, email: str, exclude_user_id: Optional[int] = None):
    query = db.query(models.User).filter(models.User.email == email)
    if exclude_user_id is not None:
        query = query.filter(models.User.id != exclude_user_id)
    if query.first() is not None:
        raise ValidationFailedError.field("email", "The email has already been taken.")


@app.post(
    "/api/register",
    response_model=schemas.TokenResponse,
    status_code=201,
    tags=["auth"],
)
def register(payload: schemas.RegisterRequest, db: Session = Depends(get_db)):
    """Register a new user and return a token."""
    email = payload.email.lower()
    _check_password_confirmation(payload.password, payload.password_confirmation)
    _check_email_available(db, email)

    user = models.User(
        name=payload.name,
        email=email,
        password_hash=auth.hash_password(payload.password),
        timezone=payload.timezone,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    logger.info("Registered user %s", user.id)

    plain, token = auth.issue_token(db, user)
    return {"user": user, "token": plain, "expires_at": token.expires_at}


@app.post("/api/login", response_model=schemas.TokenResponse, tags=["auth"])
def login(payload: schemas.LoginRequest, db: Session = Depends(get_db)):
    """Log in; any earlier tokens of the user are revoked."""
    user = auth.authenticate_user(db, payload.email, payload.password)
    if user is None:
        raise ValidationFailedError.field("email", "The provided credentials are incorrect.")

    auth.revoke_all_tokens(db, user)
    plain, token = auth.issue_token(db, user)
    return {"user": user, "token": plain, "expires_at": token.expires_at}


@app.post("/api/logout", response_model=schemas.MessageResponse, tags=["auth"])
def logout(
    token: models.PersonalAccessToken = Depends(get_current_token),
    db: Session = Depends(get_db),
):
    auth.revoke_token(db, token)
    return {"message": "Logged out successfully"}


@app.post("/api/refresh", response_model=schemas.TokenResponse, tags=["auth"])
def refresh(
    token: models.PersonalAccessToken = Depends(get_current_token),
    db: Session = Depends(get_db),
):
    """Swap the current token for a new one with a fresh expiry."""
    user = token.user
    auth.revoke_token(db, token)
    plain, new_token = auth.issue_token(db, user)
    return {"user": user, "token": plain, "expires_at": new_token.expires_at}


@app.get("/api/user", response_model=schemas.User, tags=["auth"])
def current_user_profile(user: models.User = Depends(get_current_user)):
    return user


@app.put("/api/user", response_model=schemas.User, tags=["auth"])
@app.patch("/api/user", response_model=schemas.User, tags=["auth"])
def update_profile(
    payload: schemas.UserUpdateRequest,
    user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    sent = payload.model_fields_set
    if not sent & {"name", "email", "timezone", "password"}:
        raise ValidationFailedError.field("payload", "At least one updatable field must be provided.")

    if "password" in sent:
        _check_password_confirmation(payload.password, payload.password_confirmation)
        user.password_hash = auth.hash_password(payload.password)
    if "email" in sent:
        email = payload.email.lower()
        _check_email_available(db, email, exclude_user_id=user.id)
        user.email = email
    if "name" in sent:
        user.name = payload.name
    if "timezone" in sent:
        user.timezone = payload.timezone

    db.commit()
    db.refresh(user)
    return user


@app.delete("/api/user", response_model=schemas.MessageResponse, tags=["auth"])
def delete_account(
    user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Soft-delete the account; owned records stay for history."""
    auth.revoke_all_tokens(db, user)
    user.soft_delete()
    db.commit()
    logger.info("Soft-deleted user %s", user.id)
    return {"message": "Account deleted successfully"}


# ---- Category APIs ----

def _check_category_name_available(
    db: Session, user: models.User, name: str, exclude_id: Optional[int] = None
):
    query = (
        db.query(models.Category)
        .filter(models.Category.user_id == user.id)
        .filter(models.Category.name == name)
        .filter(models.Category.deleted_at.is_(None))
    )
    if exclude_id is not None:
        query = query.filter(models.Category.id != exclude_id)
    if query.first() is not None:
        raise ValidationFailedError.field("name", "The name has already been taken.")


@app.get(
    "/api/categories",
    response_model=schemas.DataEnvelope[List[schemas.Category]],
    tags=["categories"],
)
def list_categories(
    user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    categories = (
        db.query(models.Category)
        .filter(models.Category.user_id == user.id)
        .filter(models.Category.deleted_at.is_(None))
        .order_by(models.Category.name)
        .all()
    )
    return {"data": categories}


@app.post(
    "/api/categories",
    response_model=schemas.DataEnvelope[schemas.Category],
    status_code=201,
    tags=["categories"],
)
def create_category(
    payload: schemas.CategoryCreate,
    user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    _check_category_name_available(db, user, payload.name)
    category = models.Category(user_id=user.id, name=payload.name, icon=payload.icon)
    db.add(category)
    db.commit()
    db.refresh(category)
    return {"data": category}


@app.get(
    "/api/categories/{category_id}",
    response_model=schemas.DataEnvelope[schemas.Category],
    tags=["categories"],
)
def show_category(
    category_id: int,
    user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return {"data": get_owned(db, models.Category, category_id, user)}


@app.put(
    "/api/categories/{category_id}",
    response_model=schemas.DataEnvelope[schemas.Category],
    tags=["categories"],
)
@app.patch(
    "/api/categories/{category_id}",
    response_model=schemas.DataEnvelope[schemas.Category],
    tags=["categories"],
)
def update_category(
    category_id: int,
    payload: schemas.CategoryUpdate,
    user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    category = get_owned(db, models.Category, category_id, user)

    sent = payload.model_fields_set
    if not sent & {"name", "icon"}:
        raise ValidationFailedError.field("payload", "At least one updatable field must be provided.")

    if "name" in sent:
        _check_category_name_available(db, user, payload.name, exclude_id=category.id)
        category.name = payload.name
    if "icon" in sent:
        category.icon = payload.icon

    db.commit()
    db.refresh(category)
    return {"data": category}


@app.delete("/api/categories/{category_id}", status_code=204, tags=["categories"])
def delete_category(
    category_id: int,
    user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Soft delete; transactions and budgets keep pointing at the category."""
    category = get_owned(db, models.Category, category_id, user)
    category.soft_delete()
    db.commit()
    return Response(status_code=204)


# ---- Transaction APIs ----

@app.get(
    "/api/transactions",
    response_model=schemas.TransactionPage,
    tags=["transactions"],
)
def list_transactions(
    page: int = Query(1, ge=1),
    per_page: int = Query(config.PAGE_SIZE, ge=1, le=100),
    user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """List the user's transactions (latest first), paginated."""
    query = (
        db.query(models.Transaction)
        .filter(models.Transaction.user_id == user.id)
        .filter(models.Transaction.deleted_at.is_(None))
    )
    total = query.count()
    transactions = (
        query.order_by(models.Transaction.created_at.desc(), models.Transaction.id.desc())
        .offset((page - 1) * per_page)
        .limit(per_page)
        .all()
    )
    return {
        "data": transactions,
        "meta": {
            "current_page": page,
            "per_page": per_page,
            "total": total,
            "last_page": max(1, math.ceil(total / per_page)),
        },
    }


@app.post(
    "/api/transactions",
    response_model=schemas.DataEnvelope[schemas.Transaction],
    status_code=201,
    tags=["transactions"],
)
def create_transaction(
    payload: schemas.TransactionCreate,
    x_timezone: Optional[str] = Header(None),
    user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Create a transaction for the logged-in user.

    Without an explicit date the transaction lands on "today" as seen in the
    user's timezone, else the X-Timezone header, else the configured default.
    """
    category = require_active_category(db, user, payload.category_id)

    tx_date = payload.date
    if tx_date is None:
        tx_date = resolve_effective_date(user.timezone, x_timezone, config.DEFAULT_TIMEZONE)

    db_tx = models.Transaction(
        user_id=user.id,
        category_id=category.id if category else None,
        amount=payload.amount,
        description=payload.description,
        date=tx_date,
    )
    db.add(db_tx)
    db.commit()
    db.refresh(db_tx)
    return {"data": db_tx}


@app.get(
    "/api/transactions/{transaction_id}",
    response_model=schemas.DataEnvelope[schemas.Transaction],
    tags=["transactions"],
)
def show_transaction(
    transaction_id: int,
    user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return {"data": get_owned(db, models.Transaction, transaction_id, user)}


@app.put(
    "/api/transactions/{transaction_id}",
    response_model=schemas.DataEnvelope[schemas.Transaction],
    tags=["transactions"],
)
@app.patch(
    "/api/transactions/{transaction_id}",
    response_model=schemas.DataEnvelope[schemas.Transaction],
    tags=["transactions"],
)
def update_transaction(
    transaction_id: int,
    payload: schemas.TransactionUpdate,
    user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    db_tx = get_owned(db, models.Transaction, transaction_id, user)
    sent = payload.model_fields_set

    if "category_id" in sent and payload.category_id != db_tx.category_id:
        category = require_active_category(db, user, payload.category_id)
        db_tx.category_id = category.id if category else None
    if "amount" in sent:
        db_tx.amount = payload.amount
    if "date" in sent:
        db_tx.date = payload.date
    if "description" in sent:
        db_tx.description = payload.description

    db.commit()
    db.refresh(db_tx)
    return {"data": db_tx}


@app.delete("/api/transactions/{transaction_id}", status_code=204, tags=["transactions"])
def delete_transaction(
    transaction_id: int,
    user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    db_tx = get_owned(db, models.Transaction, transaction_id, user)
    db_tx.soft_delete()
    db.commit()
    return Response(status_code=204)


# ---- Budget APIs ----

@app.get(
    "/api/budgets",
    response_model=schemas.DataEnvelope[List[schemas.Budget]],
    tags=["budgets"],
)
def list_budgets(
    user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """List the user's budgets (newest first), each with its spending stats."""
    return {
        "data": [
            schemas.Budget.from_record(budget, progress)
            for budget, progress in list_budgets_with_progress(db, user)
        ]
    }


@app.post(
    "/api/budgets",
    response_model=schemas.DataEnvelope[schemas.Budget],
    status_code=201,
    tags=["budgets"],
)
def store_budget(
    payload: schemas.BudgetCreate,
    user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    budget = create_budget(db, user, payload)
    return {"data": schemas.Budget.from_record(budget, get_budget_progress(db, budget))}


@app.get(
    "/api/budgets/{budget_id}",
    response_model=schemas.DataEnvelope[schemas.Budget],
    tags=["budgets"],
)
def show_budget(
    budget_id: int,
    user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    budget = get_owned(db, models.Budget, budget_id, user)
    return {"data": schemas.Budget.from_record(budget, get_budget_progress(db, budget))}


@app.put(
    "/api/budgets/{budget_id}",
    response_model=schemas.DataEnvelope[schemas.Budget],
    tags=["budgets"],
)
@app.patch(
    "/api/budgets/{budget_id}",
    response_model=schemas.DataEnvelope[schemas.Budget],
    tags=["budgets"],
)
def change_budget(
    budget_id: int,
    payload: schemas.BudgetUpdate,
    user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    budget = get_owned(db, models.Budget, budget_id, user)
    budget = update_budget(db, budget, payload)
    return {"data": schemas.Budget.from_record(budget, get_budget_progress(db, budget))}


@app.delete("/api/budgets/{budget_id}", status_code=204, tags=["budgets"])
def destroy_budget(
    budget_id: int,
    user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    budget = get_owned(db, models.Budget, budget_id, user)
    delete_budget(db, budget)
    return Response(status_code=204)
