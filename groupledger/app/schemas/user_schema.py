"""
schemas/user_schema.py — Marshmallow schema for the user registry.

Validation responsibility:
  - This file: field types, lengths, formats, regex patterns.
  - services/user_service.py: DUPLICATE_EMAIL / DUPLICATE_USERNAME checks
    (cross-entity: require a DB lookup — not a schema concern).

IMPORTANT: Inherits from marshmallow.Schema directly — never ma.Schema.
           See extensions.py for the full explanation.
"""

from __future__ import annotations

from marshmallow import Schema, fields, validate


class CreateUserSchema(Schema):
    """
    POST /users

    Field rules:
      username : 3–50 chars, alphanumeric + underscore only
      email    : valid email format
    """

    username = fields.Str(
        required=True,
        validate=[
            validate.Length(
                min=3,
                max=50,
                error="Username must be between 3 and 50 characters.",
            ),
            validate.Regexp(
                r"^[a-zA-Z0-9_]+$",
                error="Username may only contain letters, numbers, and underscores.",
            ),
        ],
    )

    # marshmallow's Email field applies RFC-5322-compatible validation.
    email = fields.Email(
        required=True,
        validate=validate.Length(max=255),
    )
