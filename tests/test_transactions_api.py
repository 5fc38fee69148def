from datetime import date, datetime
from decimal import Decimal
from zoneinfo import ZoneInfo

import pytest

from fintrack import models


def _today_in(zone: str) -> str:
    return datetime.now(ZoneInfo(zone)).date().isoformat()


def test_create_transaction(client, db, make_user, make_category):
    user, headers = make_user()
    category = make_category(user)

    response = client.post(
        "/api/transactions",
        json={
            "amount": 123.45,
            "description": "Grocery shopping",
            "date": "2025-11-10",
            "category_id": category.id,
        },
        headers=headers,
    )

    assert response.status_code == 201
    data = response.json()["data"]
    assert data["amount"] == "123.45"
    assert data["description"] == "Grocery shopping"
    assert data["date"] == "2025-11-10"
    assert data["category_id"] == category.id
    assert data["user_id"] == user.id
    assert data["category"] == {
        "id": category.id,
        "name": category.name,
        "icon": None,
        "is_deleted": False,
    }

    stored = db.query(models.Transaction).one()
    assert stored.amount == Decimal("123.45")
    assert stored.date == date(2025, 11, 10)


def test_create_without_category(client, make_user):
    _, headers = make_user()

    response = client.post(
        "/api/transactions", json={"amount": 5, "date": "2025-11-10"}, headers=headers
    )

    assert response.status_code == 201
    assert response.json()["data"]["category"] is None
    assert response.json()["data"]["description"] is None


@pytest.mark.parametrize(
    "amount, expected",
    [(100, "100.00"), (99.9, "99.90"), (12.345, "12.35"), (0.01, "0.01")],
)
def test_amount_is_stored_with_two_decimals(client, make_user, amount, expected):
    _, headers = make_user()

    response = client.post(
        "/api/transactions", json={"amount": amount, "date": "2025-11-10"}, headers=headers
    )

    assert response.status_code == 201
    assert response.json()["data"]["amount"] == expected


@pytest.mark.parametrize("amount", [0, -5, 0.001, 100000000])
def test_invalid_amounts_are_rejected(client, make_user, amount):
    _, headers = make_user()

    response = client.post(
        "/api/transactions", json={"amount": amount, "date": "2025-11-10"}, headers=headers
    )

    assert response.status_code == 422
    assert "amount" in response.json()["errors"]


def test_missing_amount(client, make_user):
    _, headers = make_user()

    response = client.post("/api/transactions", json={"description": "No amount"}, headers=headers)

    assert response.status_code == 422
    assert "amount" in response.json()["errors"]


def test_default_date_uses_user_timezone(client, db, make_user):
    user, headers = make_user(timezone="America/New_York")

    response = client.post(
        "/api/transactions",
        json={"amount": 50},
        headers={**headers, "X-Timezone": "Asia/Tokyo"},
    )

    assert response.status_code == 201
    assert response.json()["data"]["date"] == _today_in("America/New_York")


def test_default_date_uses_request_header_without_user_timezone(client, make_user):
    _, headers = make_user(timezone=None)

    response = client.post(
        "/api/transactions",
        json={"amount": 25.5},
        headers={**headers, "X-Timezone": "Pacific/Kiritimati"},
    )

    assert response.status_code == 201
    assert response.json()["data"]["date"] == _today_in("Pacific/Kiritimati")


def test_default_date_ignores_bad_header(client, make_user):
    _, headers = make_user(timezone=None)

    response = client.post(
        "/api/transactions",
        json={"amount": 25.5},
        headers={**headers, "X-Timezone": "Nowhere/Special"},
    )

    assert response.status_code == 201
    assert response.json()["data"]["date"] == _today_in("UTC")


def test_explicit_date_wins(client, make_user):
    _, headers = make_user(timezone="Asia/Tokyo")

    response = client.post(
        "/api/transactions", json={"amount": 10, "date": "2024-02-29"}, headers=headers
    )

    assert response.json()["data"]["date"] == "2024-02-29"


def test_rejects_foreign_category(client, make_user, make_category):
    _, headers = make_user()
    other, _ = make_user()
    foreign = make_category(other)

    response = client.post(
        "/api/transactions",
        json={"amount": 10, "date": "2025-11-10", "category_id": foreign.id},
        headers=headers,
    )

    assert response.status_code == 422
    assert "category_id" in response.json()["errors"]


def test_rejects_deleted_category(client, make_user, make_category):
    user, headers = make_user()
    deleted = make_category(user, deleted=True)

    response = client.post(
        "/api/transactions",
        json={"amount": 10, "date": "2025-11-10", "category_id": deleted.id},
        headers=headers,
    )

    assert response.status_code == 422
    assert "category_id" in response.json()["errors"]


def test_list_is_scoped_paginated_and_skips_deleted(client, make_user, make_transaction):
    user, headers = make_user()
    other, _ = make_user()
    mine = [make_transaction(user, 10 + i, date(2025, 11, 1 + i)) for i in range(3)]
    make_transaction(user, 99, date(2025, 11, 9), deleted=True)
    foreign = make_transaction(other, 5, date(2025, 11, 1))

    response = client.get("/api/transactions", params={"per_page": 2}, headers=headers)

    assert response.status_code == 200
    body = response.json()
    assert body["meta"] == {"current_page": 1, "per_page": 2, "total": 3, "last_page": 2}
    # newest first
    assert [t["id"] for t in body["data"]] == [mine[2].id, mine[1].id]

    second = client.get("/api/transactions", params={"page": 2, "per_page": 2}, headers=headers).json()
    ids = [t["id"] for t in second["data"]]
    assert ids == [mine[0].id]
    assert foreign.id not in ids


def test_list_empty(client, make_user):
    _, headers = make_user()

    body = client.get("/api/transactions", headers=headers).json()

    assert body["data"] == []
    assert body["meta"]["total"] == 0
    assert body["meta"]["last_page"] == 1


def test_deleted_category_still_renders(client, make_user, make_category, make_transaction):
    user, headers = make_user()
    category = make_category(user, "Deleted Category", icon="trash", deleted=True)
    make_transaction(user, 10, date(2025, 11, 1), category=category)

    response = client.get("/api/transactions", headers=headers)

    data = response.json()["data"][0]
    assert data["category"]["name"] == "Deleted Category"
    assert data["category"]["is_deleted"] is True


def test_show_foreign_transaction_is_forbidden(client, make_user, make_transaction):
    _, headers = make_user()
    other, _ = make_user()
    tx = make_transaction(other, 10, date(2025, 11, 1))

    assert client.get(f"/api/transactions/{tx.id}", headers=headers).status_code == 403


def test_update_transaction(client, make_user, make_category, make_transaction):
    user, headers = make_user()
    category = make_category(user)
    tx = make_transaction(user, 10, date(2025, 11, 1), description="Lunch")

    response = client.patch(
        f"/api/transactions/{tx.id}",
        json={"amount": 12.5, "category_id": category.id, "description": None},
        headers=headers,
    )

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["amount"] == "12.50"
    assert data["category_id"] == category.id
    assert data["description"] is None
    assert data["date"] == "2025-11-01"


def test_update_keeps_reference_to_deleted_category(client, make_user, make_category, make_transaction):
    user, headers = make_user()
    category = make_category(user, deleted=True)
    tx = make_transaction(user, 10, date(2025, 11, 1), category=category)

    response = client.put(
        f"/api/transactions/{tx.id}",
        json={"amount": 11, "category_id": category.id},
        headers=headers,
    )

    assert response.status_code == 200


def test_update_rejects_null_amount(client, make_user, make_transaction):
    user, headers = make_user()
    tx = make_transaction(user, 10, date(2025, 11, 1))

    response = client.patch(f"/api/transactions/{tx.id}", json={"amount": None}, headers=headers)

    assert response.status_code == 422
    assert "amount" in response.json()["errors"]


def test_delete_transaction_is_soft(client, db, make_user, make_transaction):
    user, headers = make_user()
    tx = make_transaction(user, 10, date(2025, 11, 1))

    response = client.delete(f"/api/transactions/{tx.id}", headers=headers)

    assert response.status_code == 204
    assert client.get(f"/api/transactions/{tx.id}", headers=headers).status_code == 404
    db.expire_all()
    assert db.get(models.Transaction, tx.id).deleted_at is not None
