"""
routes/balances.py — Balance route handlers.

Endpoints (base url_prefix=/api/v1/groups):
  GET /groups/:id/balances  → 200  every member's running balance

The read may lazily create zero rows for members that have none yet, so it
runs inside a unit of work like any other ledger write.
"""

from __future__ import annotations

from flask import Blueprint, g, jsonify

from groupledger.app.extensions import db
from groupledger.app.middleware.auth_middleware import require_auth
from groupledger.app.services import ledger_service
from groupledger.app.services.unit_of_work import unit_of_work

balances_bp = Blueprint("balances", __name__)


@balances_bp.route("/<int:group_id>/balances", methods=["GET"])
@require_auth
def get_balances(group_id: int):
    """
    GET /groups/:id/balances

    Membership is enforced inside ledger_service.get_group_balances(). The
    service asserts that the balances sum to zero and raises INTERNAL_ERROR
    (500) if they do not.
    """
    with unit_of_work(db.session):
        result = ledger_service.get_group_balances(
            group_id=group_id,
            caller_id=g.user_id,
            session=db.session,
        )
    return jsonify({"data": result, "warnings": []}), 200
