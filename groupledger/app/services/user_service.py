"""
services/user_service.py — User registry.

Users are created here and referenced by every ledger table. Credentials are
issued elsewhere; this service only records identity (username, email) and
answers lookups.

Rules enforced here:
  DUPLICATE_EMAIL (409)     — email already registered
  DUPLICATE_USERNAME (409)  — username already taken
  USER_NOT_FOUND (404)      — lookup of an unknown id

Layer rules:
  - No Flask imports. Pure Python with a SQLAlchemy session parameter.
  - Flush only; the unit of work commits.
"""

from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.orm import Session

from groupledger.app.errors import AppError, ErrorCode
from groupledger.app.models.user import User
from groupledger.app.timestamps import isoformat_utc

logger = logging.getLogger(__name__)


def _build_user_dict(user: User) -> dict:
    """Serialises a User to a plain dict. No business logic."""
    return {
        "id": user.id,
        "username": user.username,
        "email": user.email,
        "created_at": isoformat_utc(user.created_at),
    }


def create_user(username: str, email: str, session: Session) -> dict:
    """
    Registers a new user.

    Raises:
      AppError(DUPLICATE_EMAIL, 409)    — email already registered
      AppError(DUPLICATE_USERNAME, 409) — username already taken
    """
    # Cross-entity uniqueness checks (cannot be done in schema — require DB).
    existing_email = session.execute(
        select(User).where(User.email == email)
    ).scalar_one_or_none()
    if existing_email is not None:
        raise AppError(
            ErrorCode.DUPLICATE_EMAIL,
            f"The email address '{email}' is already registered.",
            409,
            field="email",
        )

    existing_username = session.execute(
        select(User).where(User.username == username)
    ).scalar_one_or_none()
    if existing_username is not None:
        raise AppError(
            ErrorCode.DUPLICATE_USERNAME,
            f"The username '{username}' is already taken.",
            409,
            field="username",
        )

    user = User(username=username, email=email)
    session.add(user)
    session.flush()

    logger.info("User %s registered as %r", user.id, username)
    return _build_user_dict(user)


def get_user(user_id: int, session: Session) -> dict:
    """Returns the user's public profile or raises USER_NOT_FOUND (404)."""
    user = session.get(User, user_id)
    if user is None:
        raise AppError(
            ErrorCode.USER_NOT_FOUND,
            f"User {user_id} does not exist.",
            404,
        )
    return _build_user_dict(user)
