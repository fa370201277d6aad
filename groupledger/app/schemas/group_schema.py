"""
schemas/group_schema.py — Marshmallow schemas for group and membership endpoints.

Validation responsibility:
  - This file: field types, string lengths, non-empty checks (including
    trim), role values (INVALID_ROLE, 400).
  - services/group_service.py:
      - FORBIDDEN / NOT_GROUP_ADMIN (403)  — requires DB role lookup
      - USER_NOT_FOUND (404)               — requires DB lookup
      - ALREADY_MEMBER (409)               — requires DB lookup
      - LAST_ADMIN (422)                   — requires counting admins

IMPORTANT: Inherits from marshmallow.Schema directly — never ma.Schema.
           See extensions.py for the full explanation.
"""

from __future__ import annotations

from marshmallow import Schema, ValidationError, fields, validate

from groupledger.app.errors import ErrorCode
from groupledger.app.models.membership import MemberRole


def _validate_non_empty_after_trim(value: str) -> None:
    """
    Raises ValidationError if the string is blank or contains only whitespace.
    validate.Length(min=1) alone accepts "   "; this mirrors the DB
    CHECK(LENGTH(TRIM(name)) > 0) at the API layer.
    """
    if not value.strip():
        raise ValidationError("This field must not be blank or contain only whitespace.")


class CreateGroupSchema(Schema):
    """
    POST /groups

    name: non-empty after trim, max 100 chars. The DB carries the same
    CHECK; this schema rejects bad input before the service is called.
    """

    name = fields.Str(
        required=True,
        validate=[
            validate.Length(
                min=1,
                max=100,
                error="Group name must be between 1 and 100 characters.",
            ),
            _validate_non_empty_after_trim,
        ],
    )


class AddMemberSchema(Schema):
    """
    POST /groups/:id/members

    Adds a user (admins only). role defaults to 'member'; admin rights and
    existence are checked in the service.
    """

    # Must be a positive integer. Whether the user exists is a DB concern
    # (USER_NOT_FOUND, 404) — checked in group_service.py.
    user_id = fields.Int(
        required=True,
        strict=True,  # reject floats like 1.0 — integers only
        validate=validate.Range(
            min=1,
            error="user_id must be a positive integer.",
        ),
    )

    role = fields.Enum(
        MemberRole,
        load_default=MemberRole.MEMBER,
        by_value=True,
        error_messages={"unknown": ErrorCode.INVALID_ROLE},
    )


class UpdateMemberRoleSchema(Schema):
    """
    PATCH /groups/:id/members/:user_id

    Demoting the only admin is a state rule (LAST_ADMIN, 422) checked in
    group_service.py.
    """

    role = fields.Enum(
        MemberRole,
        required=True,
        by_value=True,
        error_messages={"unknown": ErrorCode.INVALID_ROLE},
    )