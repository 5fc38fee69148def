import os
from decimal import Decimal

# In-memory database before fintrack.config is imported
os.environ["DATABASE_URL"] = "sqlite://"

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from fintrack import models
from fintrack.main import app, get_db
from fintrack.services import auth

engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db():
    models.Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        models.Base.metadata.drop_all(bind=engine)


@pytest.fixture
def client(db):
    def override_get_db():
        session = TestingSessionLocal()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def make_user(db):
    """Factory: create a user and return (user, auth headers)."""
    counter = {"n": 0}

    def _make(name="Test User", email=None, password="secret-password", timezone=None):
        counter["n"] += 1
        user = models.User(
            name=name,
            email=email or f"user{counter['n']}@example.com",
            password_hash=auth.hash_password(password),
            timezone=timezone,
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        plain, _ = auth.issue_token(db, user)
        return user, {"Authorization": f"Bearer {plain}"}

    return _make


@pytest.fixture
def make_category(db):
    def _make(user, name="Food", icon=None, deleted=False):
        category = models.Category(user_id=user.id, name=name, icon=icon)
        if deleted:
            category.soft_delete()
        db.add(category)
        db.commit()
        db.refresh(category)
        return category

    return _make


@pytest.fixture
def make_transaction(db):
    def _make(user, amount, day, category=None, description=None, deleted=False):
        tx = models.Transaction(
            user_id=user.id,
            category_id=category.id if category else None,
            amount=Decimal(str(amount)),
            description=description,
            date=day,
        )
        if deleted:
            tx.soft_delete()
        db.add(tx)
        db.commit()
        db.refresh(tx)
        return tx

    return _make
