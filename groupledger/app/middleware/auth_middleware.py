"""
middleware/auth_middleware.py — Bearer token authentication decorator.

Tokens are issued by an external identity service; this API only verifies
them. The @require_auth decorator:
  1. Reads the Authorization header (expected: "Bearer <token>")
  2. Decodes and verifies the JWT signature (JWT_ALGORITHM, default HS256)
  3. Checks token expiry
  4. Attaches user_id (int, from the "sub" claim) to flask.g
  5. Raises the appropriate 401 AppError if any step fails

Responsibility boundary:
  - Middleware = authentication (401). Group membership and admin rights
    are authorization (403) and live in the service layer.
  - Services receive user_id as a plain integer argument, with no knowledge
    of JWT or HTTP headers.

Error codes:
  TOKEN_MISSING  (401) — no Authorization header
  TOKEN_INVALID  (401) — malformed header, invalid signature, or bad payload
  TOKEN_EXPIRED  (401) — valid token but exp claim is in the past
"""

from __future__ import annotations

import functools
from typing import Callable

import jwt
from flask import current_app, g, request

from groupledger.app.errors import AppError, ErrorCode


def require_auth(f: Callable) -> Callable:
    """
    Route decorator that enforces JWT authentication.

    Attaches the authenticated user's ID to flask.g.user_id.
    Raises AppError for all auth failures; the global error handler converts
    these to the correct JSON response. Routes never catch AppError.

    Usage:
        @app.route("/api/v1/groups")
        @require_auth
        def list_groups():
            user_id = g.user_id  # always an int when this runs
            ...
    """
    @functools.wraps(f)
    def decorated(*args, **kwargs):
        _authenticate_request()
        return f(*args, **kwargs)

    return decorated


def _bearer_token() -> str:
    """Returns the raw token from "Authorization: Bearer <token>"."""
    auth_header = request.headers.get("Authorization", "")
    if not auth_header:
        raise AppError(
            ErrorCode.TOKEN_MISSING,
            "Authentication required. Provide a Bearer token in the Authorization header.",
            401,
        )

    scheme, _, token = auth_header.partition(" ")
    token = token.strip()
    if scheme.lower() != "bearer" or not token or " " in token:
        raise AppError(
            ErrorCode.TOKEN_INVALID,
            "Authorization header must be in the format: Bearer <token>.",
            401,
        )
    return token


def _authenticate_request() -> None:
    """
    Verifies the bearer token and sets flask.g.user_id.

    Separated from the decorator wrapper so tests can call it inside a
    request context without wrapping a real view function.
    """
    raw_token = _bearer_token()

    try:
        payload = jwt.decode(
            raw_token,
            current_app.config["JWT_SECRET_KEY"],
            algorithms=[current_app.config.get("JWT_ALGORITHM", "HS256")],
            options={"require": ["sub"]},
        )
    except jwt.ExpiredSignatureError:
        raise AppError(
            ErrorCode.TOKEN_EXPIRED,
            "The access token has expired. Obtain a new one and retry.",
            401,
        )
    except jwt.InvalidTokenError:
        # Bad signature, malformed token, missing "sub", ...
        raise AppError(
            ErrorCode.TOKEN_INVALID,
            "The access token is invalid or has been tampered with.",
            401,
        )

    try:
        user_id = int(payload["sub"])
    except (TypeError, ValueError):
        raise AppError(
            ErrorCode.TOKEN_INVALID,
            "The 'sub' claim in the access token is not a valid user ID.",
            401,
        )

    g.user_id = user_id
