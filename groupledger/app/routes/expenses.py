"""
routes/expenses.py — Shared expense route handlers.

Registered at url_prefix=/api/v1 (not /api/v1/expenses) because this blueprint
owns BOTH the group-scoped paths (/groups/:id/expenses) and the
expense-ID path (/expenses/:id).

Layer rules:
  - Parse, validate, call ONE service, return envelope.
  - Mutations run inside unit_of_work; a failure anywhere rolls back the
    expense, its splits and the ledger deltas together.
  - _serialize_expense() is a pure data-shape helper — not business logic.

Endpoints:
  POST   /groups/:id/expenses   → 201  record a shared expense
  GET    /groups/:id/expenses   → 200  list shared expenses
  GET    /expenses/:id          → 200  get shared expense + splits
"""

from __future__ import annotations

from flask import Blueprint, g, jsonify, request

from groupledger.app.extensions import db
from groupledger.app.middleware.auth_middleware import require_auth
from groupledger.app.models.shared_expense import SharedExpense
from groupledger.app.schemas.expense_schema import CreateSharedExpenseSchema
from groupledger.app.services import expense_service
from groupledger.app.services.unit_of_work import unit_of_work
from groupledger.app.timestamps import isoformat_utc

expenses_bp = Blueprint("expenses", __name__)


# ── Serialization helper ───────────────────────────────────────────────────
# Pure data-shaping — no logic. Amounts as strings.

def _serialize_expense(expense: SharedExpense) -> dict:
    """Converts a SharedExpense ORM object to a plain dict for JSON output."""
    return {
        "id": expense.id,
        "group_id": expense.group_id,
        "paid_by_user_id": expense.payer_id,
        "paid_by_username": expense.payer.username,
        "description": expense.description,
        "amount": str(expense.amount),                  # Decimal → string
        "date": expense.expense_date.isoformat(),
        "split_type": expense.split_type.value,
        "created_at": isoformat_utc(expense.created_at),
        "splits": [
            {
                "user_id": s.user_id,
                "username": s.user.username,
                "amount": str(s.amount),                # Decimal → string
            }
            for s in expense.splits
        ],
    }


# ── Group-scoped expense routes ────────────────────────────────────────────

@expenses_bp.route("/groups/<int:group_id>/expenses", methods=["POST"])
@require_auth
def create_shared_expense(group_id: int):
    """
    POST /groups/:id/expenses — Record a shared expense.
    Handles both 'equal' (server computes shares) and 'custom' splits.
    """
    data = CreateSharedExpenseSchema().load(request.get_json(force=True) or {})
    with unit_of_work(db.session):
        expense = expense_service.create_shared_expense(
            group_id=group_id,
            caller_id=g.user_id,
            data=data,
            session=db.session,
        )
    return jsonify({"data": _serialize_expense(expense), "warnings": []}), 201


@expenses_bp.route("/groups/<int:group_id>/expenses", methods=["GET"])
@require_auth
def list_shared_expenses(group_id: int):
    """GET /groups/:id/expenses — List a group's shared expenses, newest first."""
    expenses = expense_service.list_shared_expenses(
        group_id=group_id,
        caller_id=g.user_id,
        session=db.session,
    )
    return jsonify({
        "data": [_serialize_expense(e) for e in expenses],
        "warnings": [],
    }), 200


# ── Expense-ID routes ──────────────────────────────────────────────────────

@expenses_bp.route("/expenses/<int:expense_id>", methods=["GET"])
@require_auth
def get_shared_expense(expense_id: int):
    """GET /expenses/:id — Get a shared expense including its splits."""
    expense = expense_service.get_shared_expense(
        expense_id=expense_id,
        caller_id=g.user_id,
        session=db.session,
    )
    return jsonify({"data": _serialize_expense(expense), "warnings": []}), 200
