"""
tests/integration/conftest.py — Fixtures and helpers for all integration tests.

Design:
  - The app is created once per session using create_app("testing").
    TestingConfig points at TEST_DATABASE_URL, defaulting to in-memory
    SQLite. Set TEST_DATABASE_URL to a PostgreSQL URL to exercise the
    SELECT ... FOR UPDATE locking path for real.
  - All tables are created once via db.create_all() at session start.
  - Between tests, all rows are deleted in FK-safe order so tests are isolated.
  - Callers are authenticated with bearer tokens minted here with PyJWT;
    the API itself only verifies them.

Helper functions (not fixtures) are provided for common operations:
  - create_user(client, ...)    → user dict
  - auth_headers(user_id)       → {"Authorization": "Bearer <token>"}
  - make_group(client, ...)     → group dict
  - add_member(...)             → HTTP response
  - make_expense(...)           → HTTP response
  - get_balances(...)           → {user_id: Decimal}
  - preview(...) / execute(...) → HTTP response
  - count_rows(app, Model)      → number of rows in Model's table

These are plain functions (not pytest fixtures) so they can be called with
arbitrary arguments in any test.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import jwt
import pytest
from sqlalchemy import func, select, text

from groupledger.app import create_app
from groupledger.app.extensions import db as _db
from groupledger.config import TestingConfig


# ═══════════════════════════════════════════════════════════════════════════
# Session-scoped app fixture
# ═══════════════════════════════════════════════════════════════════════════

@pytest.fixture(scope="session")
def app():
    """Creates the Flask application in 'testing' mode once per session."""
    flask_app = create_app("testing")

    with flask_app.app_context():
        _db.create_all()

    yield flask_app

    with flask_app.app_context():
        _db.drop_all()


# ═══════════════════════════════════════════════════════════════════════════
# Function-scoped test isolation
# ═══════════════════════════════════════════════════════════════════════════

@pytest.fixture(autouse=True)
def clean_tables(app):
    """Deletes all rows after every test, children before parents."""
    yield

    with app.app_context():
        _db.session.rollback()  # discard any uncommitted state from a failed test

        with _db.engine.connect() as conn:
            for table in (
                "expense_splits",
                "settlements",
                "shared_expenses",
                "group_balances",
                "memberships",
                "groups",
                "users",
            ):
                conn.execute(text(f"DELETE FROM {table}"))
            conn.commit()


@pytest.fixture
def client(app):
    """Flask test client. Each test gets a fresh client (function-scoped)."""
    return app.test_client()


# ═══════════════════════════════════════════════════════════════════════════
# Shared helper functions (not fixtures)
# ═══════════════════════════════════════════════════════════════════════════

def make_token(user_id: int, expires_in: timedelta = timedelta(minutes=15)) -> str:
    """Mints a bearer token the way the external identity service would."""
    now = datetime.now(timezone.utc)
    return jwt.encode(
        {"sub": str(user_id), "iat": now, "exp": now + expires_in},
        TestingConfig.JWT_SECRET_KEY,
        algorithm=TestingConfig.JWT_ALGORITHM,
    )


def auth_headers(user_id: int) -> dict:
    """Returns the Authorization header dict for use in test requests."""
    return {"Authorization": f"Bearer {make_token(user_id)}"}


def create_user(client, username: str = "alice", email: str | None = None) -> dict:
    """Registers a user and returns the user dict."""
    if email is None:
        email = f"{username}@test.com"
    resp = client.post("/api/v1/users/", json={"username": username, "email": email})
    assert resp.status_code == 201, f"create_user failed: {resp.get_json()}"
    return resp.get_json()["data"]


def make_group(client, user_id: int, name: str = "Test Group") -> dict:
    """Creates a group; the caller becomes its owner and first admin."""
    resp = client.post(
        "/api/v1/groups/",
        json={"name": name},
        headers=auth_headers(user_id),
    )
    assert resp.status_code == 201, f"make_group failed: {resp.get_json()}"
    return resp.get_json()["data"]


def add_member(client, caller_id: int, group_id: int, user_id: int, role: str | None = None):
    """Adds a user to a group (admin caller required). Returns the HTTP response."""
    payload: dict = {"user_id": user_id}
    if role is not None:
        payload["role"] = role
    return client.post(
        f"/api/v1/groups/{group_id}/members",
        json=payload,
        headers=auth_headers(caller_id),
    )


def make_group_with_members(client, usernames: list[str]) -> tuple[dict, list[dict]]:
    """
    Creates one user per name; the first creates the group (admin) and adds
    the rest as plain members. Returns (group, users) with users in creation
    order, i.e. ascending id.
    """
    users = [create_user(client, name) for name in usernames]
    group = make_group(client, users[0]["id"])
    for u in users[1:]:
        resp = add_member(client, users[0]["id"], group["id"], u["id"])
        assert resp.status_code == 201, f"add_member failed: {resp.get_json()}"
    return group, users


def make_expense(
    client,
    caller_id: int,
    group_id: int,
    paid_by_user_id: int,
    amount: str,
    participants: list[dict],
    split_type: str = "equal",
    description: str = "Test Expense",
    date: str = "2024-03-01",
):
    """
    Records a shared expense and returns the HTTP response.
    Equal splits: participants are [{"user_id": ...}].
    Custom splits: participants are [{"user_id": ..., "amount": "..."}].
    """
    return client.post(
        f"/api/v1/groups/{group_id}/expenses",
        json={
            "paid_by_user_id": paid_by_user_id,
            "description": description,
            "amount": amount,
            "date": date,
            "split_type": split_type,
            "participants": participants,
        },
        headers=auth_headers(caller_id),
    )


def get_balances(client, caller_id: int, group_id: int) -> dict[int, Decimal]:
    """GET /balances and return {user_id: Decimal(balance)}."""
    resp = client.get(
        f"/api/v1/groups/{group_id}/balances",
        headers=auth_headers(caller_id),
    )
    assert resp.status_code == 200, f"get_balances failed: {resp.get_json()}"
    data = resp.get_json()["data"]
    assert data["balance_sum"] == "0.00"
    return {b["user_id"]: Decimal(b["balance"]) for b in data["balances"]}


def preview(client, caller_id: int, group_id: int, user_ids: list[int] | None = None):
    payload = {} if user_ids is None else {"user_ids": user_ids}
    return client.post(
        f"/api/v1/groups/{group_id}/settlements/preview",
        json=payload,
        headers=auth_headers(caller_id),
    )


def execute(
    client,
    caller_id: int,
    group_id: int,
    user_ids: list[int] | None = None,
    confirmed=True,
):
    payload: dict = {"confirmed": confirmed}
    if user_ids is not None:
        payload["user_ids"] = user_ids
    return client.post(
        f"/api/v1/groups/{group_id}/settlements/execute",
        json=payload,
        headers=auth_headers(caller_id),
    )


def count_rows(app, model) -> int:
    """Counts committed rows through a fresh session, bypassing the API."""
    with app.app_context():
        return _db.session.scalar(select(func.count()).select_from(model))
