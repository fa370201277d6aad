"""
errors.py — AppError base class and error code registry.

Every error returned by the GroupLedger API uses a code defined here.
Services and routes never raise strings or bare exceptions for expected
failures.

  - Error codes are a versioned contract. They do not change once published.
  - Error messages are human-readable prose and may be improved at any time.
  - 401 (unauthenticated) is never conflated with 403 (unauthorized).
"""

from __future__ import annotations


class AppError(Exception):

    def __init__(
            self,
            code: str,
            message: str,
            http_status: int,
            field: str | None = None,
    ) -> None:
        super().__init__(message)
        self.code        = code
        self.message     = message
        self.http_status = http_status
        self.field       = field  # which request field caused the error

    def to_dict(self) -> dict:
        payload = {
            "code":    self.code,
            "message": self.message,
        }
        if self.field is not None:
            payload["field"] = self.field
        return {"error": payload}

    def __repr__(self) -> str:
        return (
            f"AppError(code={self.code!r}, "
            f"http_status={self.http_status}, "
            f"message={self.message!r})"
        )


# ── Error Code Registry ────────────────────────────────────────────────────
#
# Organised by category. HTTP status is indicated in the comment.
# These are the string values sent in the API response.
# ──────────────────────────────────────────────────────────────────────────

class ErrorCode:

    # ── Schema / Input Errors (400) ────────────────────────────────────────
    MISSING_FIELD               = "MISSING_FIELD"
    INVALID_FIELD               = "INVALID_FIELD"
    INVALID_AMOUNT_PRECISION    = "INVALID_AMOUNT_PRECISION"
    INVALID_SPLIT_TYPE          = "INVALID_SPLIT_TYPE"
    INVALID_ROLE                = "INVALID_ROLE"
    DUPLICATE_PARTICIPANT       = "DUPLICATE_PARTICIPANT"
    MISSING_SPLIT_AMOUNT        = "MISSING_SPLIT_AMOUNT"
    AMOUNT_SENT_FOR_EQUAL_SPLIT = "AMOUNT_SENT_FOR_EQUAL_SPLIT"
    SETTLEMENT_NOT_CONFIRMED    = "SETTLEMENT_NOT_CONFIRMED"

    # ── Conflict Errors (409) ──────────────────────────────────────────────
    DUPLICATE_EMAIL             = "DUPLICATE_EMAIL"
    DUPLICATE_USERNAME          = "DUPLICATE_USERNAME"
    ALREADY_MEMBER              = "ALREADY_MEMBER"

    # ── Not Found Errors (404) ─────────────────────────────────────────────
    USER_NOT_FOUND              = "USER_NOT_FOUND"
    GROUP_NOT_FOUND             = "GROUP_NOT_FOUND"
    EXPENSE_NOT_FOUND           = "EXPENSE_NOT_FOUND"

    # ── Business Rule Violations (422) ────────────────────────────────────
    PAYER_NOT_MEMBER            = "PAYER_NOT_MEMBER"
    SPLIT_USER_NOT_MEMBER       = "SPLIT_USER_NOT_MEMBER"
    PARTICIPANT_NOT_MEMBER      = "PARTICIPANT_NOT_MEMBER"
    SPLIT_SUM_MISMATCH          = "SPLIT_SUM_MISMATCH"
    LAST_ADMIN                  = "LAST_ADMIN"
    OUTSTANDING_BALANCE         = "OUTSTANDING_BALANCE"

    # ── Auth Errors ────────────────────────────────────────────────────────
    # 401 = we do not know who you are (unauthenticated)
    # 403 = we know who you are, but you are not allowed (unauthorized)
    TOKEN_MISSING               = "TOKEN_MISSING"          # 401
    TOKEN_INVALID               = "TOKEN_INVALID"          # 401
    TOKEN_EXPIRED               = "TOKEN_EXPIRED"          # 401
    FORBIDDEN                   = "FORBIDDEN"              # 403 — not a member
    NOT_GROUP_ADMIN             = "NOT_GROUP_ADMIN"        # 403 — member, not admin

    # ── System Errors (500) ────────────────────────────────────────────────
    # Also used for ledger consistency failures (sum of balances != 0, etc.).
    INTERNAL_ERROR              = "INTERNAL_ERROR"
