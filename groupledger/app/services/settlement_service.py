"""
services/settlement_service.py — Settlement preview, execution and history.

Operations:
  preview_settlement   admin only; read-only equal-share preview
  execute_settlement   admin only; requires confirmed=True; levels every
                       participant to the equal share and records transfers
  split_equally        legacy shortcut: an already-confirmed execution
  list_settlements     members; transfer history, newest first

Rules enforced here:
  SETTLEMENT_NOT_CONFIRMED (400)  — execute without confirmed=True (checked first)
  GROUP_NOT_FOUND (404)           — group must exist
  NOT_GROUP_ADMIN (403)           — preview/execute need an admin caller
  FORBIDDEN (403)                 — history needs a member caller
  PARTICIPANT_NOT_MEMBER (422)    — every requested user must be a member
  INTERNAL_ERROR (500)            — computed transfers fail their own checks

Execution is two-phase by contract: a client previews, then confirms. The
executor never reuses a preview; it locks the group, re-reads the
participants' balances FOR UPDATE and recomputes everything.

Layer rules:
  - No Flask imports. Pure Python with a SQLAlchemy session parameter.
  - Flush only; the unit of work commits (or rolls back on any error).
"""

from __future__ import annotations

import logging
from collections import defaultdict
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from groupledger.app.errors import AppError, ErrorCode
from groupledger.app.models.settlement import Settlement
from groupledger.app.models.user import User
from groupledger.app.services import ledger_service, membership_service
from groupledger.app.services.settlement_calculator import (
    build_preview,
    compute_targets,
    match_transfers,
)
from groupledger.app.timestamps import isoformat_utc

logger = logging.getLogger(__name__)

ZERO = Decimal("0.00")


# ── Private helpers ────────────────────────────────────────────────────────

def _usernames(user_ids: list[int], session: Session) -> dict[int, str]:
    rows = session.execute(
        select(User.id, User.username).where(User.id.in_(user_ids))
    ).all()
    return {uid: username for uid, username in rows}


def _settlement_dict(settlement: Settlement, usernames: dict[int, str]) -> dict:
    return {
        "id": settlement.id,
        "group_id": settlement.group_id,
        "from_user_id": settlement.from_user_id,
        "from_username": usernames.get(settlement.from_user_id),
        "to_user_id": settlement.to_user_id,
        "to_username": usernames.get(settlement.to_user_id),
        "amount": str(settlement.amount),  # Decimal → string
        "created_at": isoformat_utc(settlement.created_at),
    }


def _verify_transfers(
        balances: dict[int, Decimal],
        targets: dict[int, Decimal],
        transfers: list[dict],
) -> None:
    """
    Checks the matcher's output before anything is written.

      - transfers out of each debtor == its excess over target
      - transfers into each creditor == its deficit under target
      - at most n - 1 transfers
    """
    sent: dict[int, Decimal] = defaultdict(lambda: ZERO)
    received: dict[int, Decimal] = defaultdict(lambda: ZERO)
    for t in transfers:
        sent[t["from_user_id"]] += t["amount"]
        received[t["to_user_id"]] += t["amount"]

    for user_id, balance in balances.items():
        difference = balance - targets[user_id]
        expected_sent = difference if difference > ZERO else ZERO
        expected_received = -difference if difference < ZERO else ZERO
        if sent[user_id] != expected_sent or received[user_id] != expected_received:
            raise AppError(
                ErrorCode.INTERNAL_ERROR,
                f"Settlement transfers for user {user_id} do not match the "
                f"difference {difference} from the equal share.",
                500,
            )

    if balances and len(transfers) > len(balances) - 1:
        raise AppError(
            ErrorCode.INTERNAL_ERROR,
            f"Settlement produced {len(transfers)} transfers for "
            f"{len(balances)} participants.",
            500,
        )


# ── Public service functions ───────────────────────────────────────────────

def preview_settlement(
        group_id: int,
        caller_id: int,
        user_ids: list[int] | None,
        session: Session,
) -> dict:
    """
    Computes what a settlement over the selected participants would do.

    Read-only: no balance rows are created or changed and no settlement is
    recorded, so repeated calls over unchanged balances return the same
    result. Missing balance rows read as 0.00.

    Args:
        user_ids: Participants; None or [] means every current member.
    """
    membership_service.get_group_or_404(group_id, session)
    membership_service.require_admin(group_id, caller_id, session)

    participant_ids = membership_service.resolve_participants(group_id, user_ids, session)
    balances = ledger_service.read_balances(group_id, participant_ids, session)
    preview = build_preview(balances)
    usernames = _usernames(participant_ids, session)

    return {
        "group_id": group_id,
        "total_balance": str(preview["total_balance"]),
        "equal_share": str(preview["equal_share"]),
        "participant_count": preview["participant_count"],
        "per_user": [
            {
                "user_id": p["user_id"],
                "username": usernames.get(p["user_id"]),
                "current_balance": str(p["current_balance"]),
                "target_balance": str(p["target_balance"]),
                "will_owe": str(p["will_owe"]),
                "will_receive": str(p["will_receive"]),
            }
            for p in preview["per_user"]
        ],
        "total_owed": str(preview["total_owed"]),
        "total_to_receive": str(preview["total_to_receive"]),
    }


def execute_settlement(
        group_id: int,
        caller_id: int,
        data: dict,
        session: Session,
) -> dict:
    """
    Levels every participant's balance to the equal share and records the
    transfers that achieve it.

    Args:
        data: Validated dict from ExecuteSettlementSchema.
              Keys: confirmed (bool), user_ids (list[int] | None).

    Returns:
        {"settlements": [...], "updated_balances": [...], "summary": {...}}
    """
    if data.get("confirmed") is not True:
        raise AppError(
            ErrorCode.SETTLEMENT_NOT_CONFIRMED,
            "Settlement must be confirmed to proceed.",
            400,
            field="confirmed",
        )

    membership_service.get_group_or_404(group_id, session)
    membership_service.require_admin(group_id, caller_id, session)

    ledger_service.lock_group(group_id, session)
    participant_ids = membership_service.resolve_participants(
        group_id, data.get("user_ids"), session,
    )

    # Fresh read under lock, never a stale preview.
    balances = ledger_service.get_balances(
        group_id, session, participant_ids, for_update=True,
    )

    total, equal_share, targets = compute_targets(balances)
    transfers = match_transfers(balances, targets)
    _verify_transfers(balances, targets, transfers)

    # ── Writes ─────────────────────────────────────────────────────────────
    settlements = [
        Settlement(
            group_id=group_id,
            from_user_id=t["from_user_id"],
            to_user_id=t["to_user_id"],
            amount=t["amount"],
        )
        for t in transfers
    ]
    session.add_all(settlements)
    session.flush()

    # Balances are set from the targets, not derived from the transfers.
    ledger_service.set_balances(group_id, targets, session)

    usernames = _usernames(participant_ids, session)

    logger.info(
        "Settlement executed in group %s by user %s: %d participants, "
        "equal share %s, %d transfers",
        group_id, caller_id, len(participant_ids), equal_share, len(settlements),
    )

    return {
        "settlements": [_settlement_dict(s, usernames) for s in settlements],
        "updated_balances": [
            {
                "user_id": uid,
                "username": usernames.get(uid),
                "balance": str(targets[uid]),
            }
            for uid in participant_ids
        ],
        "summary": {
            "total_balance": str(total),
            "equal_share": str(equal_share),
            "participant_count": len(participant_ids),
            "settlements_created": len(settlements),
        },
    }


def split_equally(
        group_id: int,
        caller_id: int,
        user_ids: list[int] | None,
        session: Session,
) -> dict:
    """
    Older one-step form of execute_settlement: confirmation is implied.
    Returns only the transfers and the equal share.
    """
    result = execute_settlement(
        group_id,
        caller_id,
        {"confirmed": True, "user_ids": user_ids},
        session,
    )
    return {
        "settlements": result["settlements"],
        "equal_share": result["summary"]["equal_share"],
    }


def list_settlements(
        group_id: int,
        caller_id: int,
        session: Session,
) -> list[dict]:
    """
    Returns all settlements for a group, newest first.
    Caller must be a group member (FORBIDDEN, 403).
    """
    membership_service.get_group_or_404(group_id, session)
    membership_service.require_member(group_id, caller_id, session)

    stmt = (
        select(Settlement)
        .where(Settlement.group_id == group_id)
        .order_by(Settlement.created_at.desc(), Settlement.id.desc())
    )
    settlements = list(session.execute(stmt).scalars().all())

    user_ids = sorted(
        {s.from_user_id for s in settlements} | {s.to_user_id for s in settlements}
    )
    usernames = _usernames(user_ids, session) if user_ids else {}
    return [_settlement_dict(s, usernames) for s in settlements]
