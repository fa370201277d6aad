"""
services/ledger_service.py — Ledger Store: per-user-per-group balances.

This module is the only writer of GroupBalance rows. The expense splitter
and the settlement executor call apply_deltas() / set_balances(); nothing
outside the ledger core does.

Conservation law:
  For every group, sum(balance) == 0 at every committed state.
  - apply_deltas() rejects a batch whose deltas do not net to zero.
  - set_balances() rejects an overwrite that changes the affected rows' sum.
  - get_group_balances() asserts the law before answering.
  A violation is a programming error and surfaces as INTERNAL_ERROR (500),
  raised inside the unit of work so the transaction rolls back.

Locking:
  Mutating callers take lock_group() first, then read the rows they touch
  with for_update=True. The group row is the single-writer point; the row
  locks cover balance rows read for update. Reads take no locks.

Layer rules:
  - No Flask imports. Receives group_id (int) and a SQLAlchemy Session.
  - Flush only; the unit of work commits.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Iterable

from sqlalchemy import select
from sqlalchemy.orm import Session

from groupledger.app.errors import AppError, ErrorCode
from groupledger.app.models.group import Group
from groupledger.app.models.group_balance import GroupBalance
from groupledger.app.models.user import User
from groupledger.app.services import membership_service

logger = logging.getLogger(__name__)

ZERO = Decimal("0.00")


# ── Private helpers ────────────────────────────────────────────────────────

def _consistency_error(message: str) -> AppError:
    logger.warning("Ledger consistency failure: %s", message)
    return AppError(ErrorCode.INTERNAL_ERROR, message, 500)


def _select_rows(
        group_id: int,
        user_ids: Iterable[int] | None,
        session: Session,
        for_update: bool = False,
) -> dict[int, GroupBalance]:
    stmt = select(GroupBalance).where(GroupBalance.group_id == group_id)
    if user_ids is not None:
        stmt = stmt.where(GroupBalance.user_id.in_(list(user_ids)))
    if for_update:
        stmt = stmt.with_for_update()
    rows = session.execute(stmt.order_by(GroupBalance.user_id)).scalars().all()
    return {row.user_id: row for row in rows}


def _touch(row: GroupBalance) -> None:
    row.updated_at = datetime.now(timezone.utc)


# ── Locking ────────────────────────────────────────────────────────────────

def lock_group(group_id: int, session: Session) -> Group:
    """
    Takes the per-group write lock (SELECT ... FOR UPDATE on the group row).

    Every mutating ledger operation calls this before reading balances, so
    splits and settlements on the same group are serialised.
    Raises GROUP_NOT_FOUND (404) if the group does not exist.
    """
    group = session.execute(
        select(Group).where(Group.id == group_id).with_for_update()
    ).scalar_one_or_none()
    if group is None:
        raise AppError(
            ErrorCode.GROUP_NOT_FOUND,
            f"Group {group_id} does not exist.",
            404,
        )
    return group


# ── Reads ──────────────────────────────────────────────────────────────────

def ensure_balance_rows(
        group_id: int,
        user_ids: Iterable[int],
        session: Session,
        for_update: bool = False,
) -> dict[int, GroupBalance]:
    """
    Returns {user_id: GroupBalance} for user_ids, creating a zero row for
    every user that has none yet.
    """
    wanted = list(dict.fromkeys(user_ids))
    rows = _select_rows(group_id, wanted, session, for_update=for_update)

    missing = [uid for uid in wanted if uid not in rows]
    for user_id in missing:
        row = GroupBalance(group_id=group_id, user_id=user_id, balance=ZERO)
        session.add(row)
        rows[user_id] = row
    if missing:
        session.flush()
        logger.debug("Initialised %d balance rows in group %s", len(missing), group_id)

    return rows


def get_balances(
        group_id: int,
        session: Session,
        user_ids: list[int] | None = None,
        for_update: bool = False,
) -> dict[int, Decimal]:
    """
    Returns {user_id: balance} for the given users (every current member
    when user_ids is None), lazily creating zero rows for members lacking one.
    """
    if user_ids is None:
        user_ids = membership_service.list_member_ids(group_id, session)
    rows = ensure_balance_rows(group_id, user_ids, session, for_update=for_update)
    return {uid: rows[uid].balance for uid in sorted(rows)}


def read_balances(
        group_id: int,
        user_ids: list[int],
        session: Session,
) -> dict[int, Decimal]:
    """
    Side-effect-free read: {user_id: balance}, with missing rows read as 0.00.
    Used by the settlement preview, which must never write.
    """
    rows = _select_rows(group_id, user_ids, session)
    return {
        uid: (rows[uid].balance if uid in rows else ZERO)
        for uid in sorted(set(user_ids))
    }


def group_total(group_id: int, session: Session) -> Decimal:
    """Sum of every balance row in the group."""
    rows = _select_rows(group_id, None, session)
    return sum((row.balance for row in rows.values()), ZERO)


def assert_conserved(group_id: int, session: Session) -> None:
    """Raises INTERNAL_ERROR (500) if the group's balances do not sum to zero."""
    total = group_total(group_id, session)
    if total != ZERO:
        raise _consistency_error(
            f"Balance integrity check failed: sum was {total} (expected 0.00). "
            f"Group {group_id} has inconsistent ledger data."
        )


# ── Writes ─────────────────────────────────────────────────────────────────

def apply_deltas(
        group_id: int,
        deltas: dict[int, Decimal],
        session: Session,
) -> dict[int, GroupBalance]:
    """
    Adjusts balances by signed amounts as one batch.

    The batch must net to zero: money moves between members, it is never
    created or destroyed. The check runs before any row is touched.
    """
    net = sum(deltas.values(), ZERO)
    if net != ZERO:
        raise _consistency_error(
            f"Ledger delta batch for group {group_id} nets to {net}, expected 0.00."
        )

    rows = ensure_balance_rows(group_id, deltas.keys(), session, for_update=True)
    for user_id, delta in deltas.items():
        if delta == ZERO:
            continue
        row = rows[user_id]
        row.balance = row.balance + delta
        _touch(row)

    session.flush()
    return rows


def set_balances(
        group_id: int,
        targets: dict[int, Decimal],
        session: Session,
) -> dict[int, GroupBalance]:
    """
    Overwrites the given users' balances with target values.

    The overwrite must preserve the sum of the affected rows, so the group
    total (and with it the conservation law) is unchanged.
    """
    rows = ensure_balance_rows(group_id, targets.keys(), session, for_update=True)

    before = sum((rows[uid].balance for uid in targets), ZERO)
    after = sum(targets.values(), ZERO)
    if before != after:
        raise _consistency_error(
            f"Balance overwrite for group {group_id} changes the sum "
            f"from {before} to {after}."
        )

    for user_id, target in targets.items():
        row = rows[user_id]
        if row.balance != target:
            row.balance = target
            _touch(row)

    session.flush()
    return rows


def drop_balance_row(group_id: int, user_id: int, session: Session) -> None:
    """
    Deletes a departing member's balance row.

    Only a zero balance may be dropped; anything else would break the
    conservation law for the members who stay (OUTSTANDING_BALANCE, 422).
    """
    row = _select_rows(group_id, [user_id], session, for_update=True).get(user_id)
    if row is None:
        return
    if row.balance != ZERO:
        raise AppError(
            ErrorCode.OUTSTANDING_BALANCE,
            f"User {user_id} has a balance of {row.balance} in group {group_id}; "
            f"settle it before leaving.",
            422,
        )
    session.delete(row)
    session.flush()


# ── Public read operation ──────────────────────────────────────────────────

def get_group_balances(
        group_id: int,
        caller_id: int,
        session: Session,
) -> dict:
    """
    Builds the payload for GET /groups/:id/balances.

    Creates zero rows for members that have none (under the group lock),
    asserts the conservation law, and returns balances ordered by user id.

    Raises:
        AppError(GROUP_NOT_FOUND, 404)  -- group does not exist.
        AppError(FORBIDDEN, 403)        -- caller not a group member.
        AppError(INTERNAL_ERROR, 500)   -- balances do not sum to zero.
    """
    membership_service.get_group_or_404(group_id, session)
    membership_service.require_member(group_id, caller_id, session)

    member_ids = membership_service.list_member_ids(group_id, session)
    existing = _select_rows(group_id, member_ids, session)
    if len(existing) < len(member_ids):
        lock_group(group_id, session)
        ensure_balance_rows(group_id, member_ids, session)

    assert_conserved(group_id, session)

    stmt = (
        select(GroupBalance, User.username)
        .join(User, User.id == GroupBalance.user_id)
        .where(
            GroupBalance.group_id == group_id,
            GroupBalance.user_id.in_(member_ids),
        )
        .order_by(GroupBalance.user_id)
    )
    rows = session.execute(stmt).all()

    balances = [
        {
            "user_id": row.user_id,
            "username": username,
            "balance": str(row.balance),
        }
        for row, username in rows
    ]
    balance_sum = sum((row.balance for row, _ in rows), ZERO)

    return {
        "group_id": group_id,
        "balances": balances,
        "balance_sum": str(balance_sum),
    }
