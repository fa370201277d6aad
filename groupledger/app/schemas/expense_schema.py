"""
schemas/expense_schema.py — Marshmallow schemas for shared expense endpoints.

Validation responsibility:
  - This file:
      - Field types, lengths, enum values, decimal precision
      - At least one participant                       (INVALID_FIELD, 400)
      - DUPLICATE_PARTICIPANT        (400) — request shape rule
      - AMOUNT_SENT_FOR_EQUAL_SPLIT  (400) — request shape rule
      - MISSING_SPLIT_AMOUNT         (400) — request shape rule
      - Non-empty-after-trim enforcement for description
  - services/expense_service.py:
      - SPLIT_SUM_MISMATCH (422)     — requires Decimal arithmetic over all shares
      - PAYER_NOT_MEMBER (422)       — requires DB membership lookup
      - SPLIT_USER_NOT_MEMBER (422)  — requires DB membership lookup

IMPORTANT: Inherits from marshmallow.Schema directly — never ma.Schema.
           See extensions.py for the full explanation.
"""

from __future__ import annotations

from decimal import Decimal

from marshmallow import (
    Schema,
    ValidationError,
    fields,
    validate,
    validates_schema,
)

from groupledger.app.errors import ErrorCode
from groupledger.app.models.shared_expense import SplitType


# ── Shared monetary amount validators ─────────────────────────────────────
#
# Input with more than 2 decimal places is REJECTED with
# INVALID_AMOUNT_PRECISION, never rounded or truncated. The columns are
# NUMERIC(12, 2).
# ──────────────────────────────────────────────────────────────────────────

def _validate_precision(value: Decimal) -> None:
    # Decimal.as_tuple().exponent is the negated number of decimal places:
    #   Decimal("10.123").as_tuple().exponent == -3  → 3 dp → REJECT
    #   Decimal("10.12").as_tuple().exponent  == -2  → 2 dp → accept
    if value.as_tuple().exponent < -2:
        raise ValidationError(ErrorCode.INVALID_AMOUNT_PRECISION)


def _validate_monetary_amount(value: Decimal) -> None:
    """Expense totals: strictly positive, at most 2 decimal places."""
    if value <= Decimal("0"):
        raise ValidationError("Amount must be greater than zero.")
    _validate_precision(value)


def _validate_share_amount(value: Decimal) -> None:
    """Participant shares: zero allowed, never negative, at most 2 decimal places."""
    if value < Decimal("0"):
        raise ValidationError("Share amount must not be negative.")
    _validate_precision(value)


def _validate_non_empty_after_trim(value: str) -> None:
    """
    Raises ValidationError if the string is blank or contains only whitespace.
    Mirrors the DB CHECK(LENGTH(TRIM(...)) > 0) constraint at the API layer.
    """
    if not value.strip():
        raise ValidationError("This field must not be blank or contain only whitespace.")


# ── Sub-schema: one entry in the `participants` array ─────────────────────

class ParticipantSchema(Schema):
    """
    One participant of a shared expense.

    amount is only meaningful for custom splits; whether it may or must be
    present is decided by CreateSharedExpenseSchema from the split_type.
    """

    user_id = fields.Int(
        required=True,
        strict=True,   # reject floats like 1.0
        validate=validate.Range(min=1, error="user_id must be a positive integer."),
    )

    amount = fields.Decimal(
        load_default=None,
        allow_none=True,
        validate=_validate_share_amount,
    )


# ── Create shared expense ─────────────────────────────────────────────────

class CreateSharedExpenseSchema(Schema):
    """
    POST /groups/:id/expenses

    Split type behaviour:
      - split_type='equal'  → participants carry user_id only. The server
                              divides the amount (expense_service.py).
      - split_type='custom' → every participant carries its share. The
                              shares must sum to amount (service, 422).
    """

    paid_by_user_id = fields.Int(
        required=True,
        strict=True,
        validate=validate.Range(min=1, error="paid_by_user_id must be a positive integer."),
    )

    description = fields.Str(
        required=True,
        validate=[
            validate.Length(
                min=1,
                max=255,
                error="Description must be between 1 and 255 characters.",
            ),
            _validate_non_empty_after_trim,
        ],
    )

    amount = fields.Decimal(
        required=True,
        validate=_validate_monetary_amount,
    )

    # ISO 8601 calendar date, e.g. "2024-03-31".
    date = fields.Date(required=True)

    split_type = fields.Enum(
        SplitType,
        load_default=SplitType.EQUAL,
        by_value=True,
        error_messages={"unknown": ErrorCode.INVALID_SPLIT_TYPE},
    )

    participants = fields.List(
        fields.Nested(ParticipantSchema),
        required=True,
    )

    @validates_schema
    def validate_participants_shape(self, data: dict, **kwargs) -> None:
        """
        Request-shape checks across the participants array (all 400):

        1. At least one participant.
        2. DUPLICATE_PARTICIPANT: a user_id appears more than once.
        3. AMOUNT_SENT_FOR_EQUAL_SPLIT: an equal split entry carries an amount.
        4. MISSING_SPLIT_AMOUNT: a custom split entry has no amount.

        Membership and the sum check need the database and Decimal totals;
        they run in expense_service.py.
        """
        participants = data.get("participants")
        if participants is None:
            return  # field-level "required" error already reported

        if not participants:
            raise ValidationError(
                {"participants": ["At least one participant is required."]}
            )

        user_ids = [p["user_id"] for p in participants]
        if len(user_ids) != len(set(user_ids)):
            raise ValidationError({"participants": [ErrorCode.DUPLICATE_PARTICIPANT]})

        split_type = data.get("split_type", SplitType.EQUAL)
        if split_type == SplitType.EQUAL:
            if any(p.get("amount") is not None for p in participants):
                raise ValidationError(
                    {"participants": [ErrorCode.AMOUNT_SENT_FOR_EQUAL_SPLIT]}
                )
        elif any(p.get("amount") is None for p in participants):
            raise ValidationError({"participants": [ErrorCode.MISSING_SPLIT_AMOUNT]})
