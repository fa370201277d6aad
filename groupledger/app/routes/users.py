"""
routes/users.py — User registry route handlers.

Endpoints (base url_prefix=/api/v1/users):
  POST   /users        → 201  register a user (no auth required)
  GET    /users/:id    → 200  read a user's public profile
"""

from __future__ import annotations

from flask import Blueprint, jsonify, request

from groupledger.app.extensions import db
from groupledger.app.middleware.auth_middleware import require_auth
from groupledger.app.schemas.user_schema import CreateUserSchema
from groupledger.app.services import user_service
from groupledger.app.services.unit_of_work import unit_of_work

users_bp = Blueprint("users", __name__)


@users_bp.route("/", methods=["POST"])
def create_user():
    """POST /users — Register a user. Credentials are issued elsewhere."""
    data = CreateUserSchema().load(request.get_json(force=True) or {})
    with unit_of_work(db.session):
        result = user_service.create_user(
            username=data["username"],
            email=data["email"],
            session=db.session,
        )
    return jsonify({"data": result, "warnings": []}), 201


@users_bp.route("/<int:user_id>", methods=["GET"])
@require_auth
def get_user(user_id: int):
    """GET /users/:id — Public profile of any registered user."""
    result = user_service.get_user(user_id=user_id, session=db.session)
    return jsonify({"data": result, "warnings": []}), 200
