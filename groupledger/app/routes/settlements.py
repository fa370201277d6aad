"""
routes/settlements.py — Settlement route handlers.

Layer rules:
  - Parse, validate, call ONE service, return envelope.
  - No business logic. No DB queries. No bare SQL.

Two-phase settlement: the client previews (read-only), shows the result to
an admin, then executes with confirmed=true. Execution recomputes from
fresh balances; nothing from the preview is trusted.

Endpoints (base url_prefix=/api/v1/groups):
  POST   /groups/:id/settlements/preview        → 200  equal-share preview
  POST   /groups/:id/settlements/execute        → 201  confirmed settlement
  POST   /groups/:id/settlements/split-equally  → 201  one-step settlement
  GET    /groups/:id/settlements                → 200  settlement history
"""

from __future__ import annotations

from flask import Blueprint, g, jsonify, request

from groupledger.app.extensions import db
from groupledger.app.middleware.auth_middleware import require_auth
from groupledger.app.schemas.settlement_schema import (
    ExecuteSettlementSchema,
    SettlementParticipantsSchema,
)
from groupledger.app.services import settlement_service
from groupledger.app.services.unit_of_work import unit_of_work

settlements_bp = Blueprint("settlements", __name__)


@settlements_bp.route("/<int:group_id>/settlements/preview", methods=["POST"])
@require_auth
def preview_settlement(group_id: int):
    """POST /groups/:id/settlements/preview — What an equal-share settlement would do."""
    data = SettlementParticipantsSchema().load(request.get_json(silent=True) or {})
    result = settlement_service.preview_settlement(
        group_id=group_id,
        caller_id=g.user_id,
        user_ids=data["user_ids"],
        session=db.session,
    )
    return jsonify({"data": result, "warnings": []}), 200


@settlements_bp.route("/<int:group_id>/settlements/execute", methods=["POST"])
@require_auth
def execute_settlement(group_id: int):
    """POST /groups/:id/settlements/execute — Level balances and record transfers."""
    data = ExecuteSettlementSchema().load(request.get_json(force=True) or {})
    with unit_of_work(db.session):
        result = settlement_service.execute_settlement(
            group_id=group_id,
            caller_id=g.user_id,
            data=data,
            session=db.session,
        )
    return jsonify({"data": result, "warnings": []}), 201


@settlements_bp.route("/<int:group_id>/settlements/split-equally", methods=["POST"])
@require_auth
def split_equally(group_id: int):
    """POST /groups/:id/settlements/split-equally — Execute without a separate confirm step."""
    data = SettlementParticipantsSchema().load(request.get_json(silent=True) or {})
    with unit_of_work(db.session):
        result = settlement_service.split_equally(
            group_id=group_id,
            caller_id=g.user_id,
            user_ids=data["user_ids"],
            session=db.session,
        )
    return jsonify({"data": result, "warnings": []}), 201


@settlements_bp.route("/<int:group_id>/settlements", methods=["GET"])
@require_auth
def list_settlements(group_id: int):
    """GET /groups/:id/settlements — Settlement history, newest first."""
    result = settlement_service.list_settlements(
        group_id=group_id,
        caller_id=g.user_id,
        session=db.session,
    )
    return jsonify({"data": result, "warnings": []}), 200
