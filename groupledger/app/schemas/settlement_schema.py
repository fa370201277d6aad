"""
schemas/settlement_schema.py — Marshmallow schemas for settlement endpoints.

Validation responsibility:
  - This file: field types, DUPLICATE_PARTICIPANT (400), presence and type
    of the confirmed flag.
  - services/settlement_service.py:
      - SETTLEMENT_NOT_CONFIRMED (400)  — confirmed must be exactly true
      - NOT_GROUP_ADMIN (403)           — requires DB role lookup
      - PARTICIPANT_NOT_MEMBER (422)    — requires DB membership lookup
      - GROUP_NOT_FOUND (404)           — requires DB lookup

IMPORTANT: Inherits from marshmallow.Schema directly — never ma.Schema.
           See extensions.py for the full explanation.
"""

from __future__ import annotations

from marshmallow import Schema, ValidationError, fields, validate, validates

from groupledger.app.errors import ErrorCode


class SettlementParticipantsSchema(Schema):
    """
    POST /groups/:id/settlements/preview
    POST /groups/:id/settlements/split-equally

    user_ids selects the participants. Omitted, null or [] means every
    current member of the group.
    """

    user_ids = fields.List(
        fields.Int(
            strict=True,  # reject floats like 1.0 — integers only
            validate=validate.Range(min=1, error="user_ids must be positive integers."),
        ),
        load_default=None,
        allow_none=True,
    )

    @validates("user_ids")
    def validate_unique_user_ids(self, value: list[int] | None, **kwargs) -> None:
        if value and len(value) != len(set(value)):
            raise ValidationError(ErrorCode.DUPLICATE_PARTICIPANT)


class ExecuteSettlementSchema(SettlementParticipantsSchema):
    """
    POST /groups/:id/settlements/execute

    The client must echo confirmed=true after reviewing a preview. A false
    value passes the schema and is rejected by the service with
    SETTLEMENT_NOT_CONFIRMED, before any balance is read.
    """

    confirmed = fields.Bool(
        required=True,
        error_messages={"required": ErrorCode.SETTLEMENT_NOT_CONFIRMED},
    )
