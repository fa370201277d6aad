"""
services/expense_service.py — Expense Splitter.

Records a shared expense, computes each participant's share and applies the
result to the ledger, all inside the caller's unit of work.

Rules enforced here:
  GROUP_NOT_FOUND (404)              — group must exist
  FORBIDDEN (403)                    — caller must be a group member
  DUPLICATE_PARTICIPANT (400)        — a user appears twice in participants
  MISSING_SPLIT_AMOUNT (400)         — custom split entry without an amount
  AMOUNT_SENT_FOR_EQUAL_SPLIT (400)  — equal split entry carrying an amount
  PAYER_NOT_MEMBER (422)             — payer must be a group member
  SPLIT_USER_NOT_MEMBER (422)        — every participant must be a member
  SPLIT_SUM_MISMATCH (422)           — custom shares must sum to the amount exactly

Equal split computation:
  - amount / n rounded down to the cent for every participant.
  - The leftover cents go to the payer's split when the payer participates,
    otherwise to the first participant in request order.
  - sum(splits) == amount always holds; an even division gives every
    participant exactly amount / n.

Ledger effect (one zero-sum delta batch):
  participant.balance -= share      for each participant
  payer.balance       += amount

Layer rules:
  - No Flask imports. Receives plain ints and dicts; returns ORM objects or
    raises AppError.
  - Validation completes before the first write. Flush only; the unit of
    work commits.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass
from decimal import ROUND_DOWN, Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from groupledger.app.errors import AppError, ErrorCode
from groupledger.app.models.expense_split import ExpenseSplit
from groupledger.app.models.shared_expense import SharedExpense, SplitType
from groupledger.app.services import ledger_service, membership_service

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")


# ── Split request variants ─────────────────────────────────────────────────
# The raw participants list is converted into exactly one of these at the
# boundary. Each variant carries only the fields valid for it.

@dataclass(frozen=True)
class EqualSplit:
    user_ids: tuple[int, ...]


@dataclass(frozen=True)
class CustomSplit:
    shares: tuple[tuple[int, Decimal], ...]

    @property
    def user_ids(self) -> tuple[int, ...]:
        return tuple(uid for uid, _ in self.shares)


def parse_split_request(
        split_type: SplitType,
        participants: list[dict],
) -> EqualSplit | CustomSplit:
    """
    Converts the participants list into an EqualSplit or CustomSplit.

    Raises:
        INVALID_FIELD (400)                — no participants
        DUPLICATE_PARTICIPANT (400)        — same user_id twice
        MISSING_SPLIT_AMOUNT (400)         — custom entry without amount
        AMOUNT_SENT_FOR_EQUAL_SPLIT (400)  — equal entry with amount
    """
    if not participants:
        raise AppError(
            ErrorCode.INVALID_FIELD,
            "At least one participant is required.",
            400,
            field="participants",
        )

    user_ids = [p["user_id"] for p in participants]
    if len(user_ids) != len(set(user_ids)):
        raise AppError(
            ErrorCode.DUPLICATE_PARTICIPANT,
            "The same user_id appears more than once in participants.",
            400,
            field="participants",
        )

    if split_type == SplitType.EQUAL:
        if any(p.get("amount") is not None for p in participants):
            raise AppError(
                ErrorCode.AMOUNT_SENT_FOR_EQUAL_SPLIT,
                "Do not send participant amounts when split_type is 'equal'.",
                400,
                field="participants",
            )
        return EqualSplit(user_ids=tuple(user_ids))

    for p in participants:
        if p.get("amount") is None:
            raise AppError(
                ErrorCode.MISSING_SPLIT_AMOUNT,
                f"Participant {p['user_id']} has no amount; every participant "
                f"needs one when split_type is 'custom'.",
                400,
                field="participants",
            )
    return CustomSplit(shares=tuple((p["user_id"], p["amount"]) for p in participants))


# ── Private helpers ────────────────────────────────────────────────────────

def _get_expense_or_404(expense_id: int, session: Session) -> SharedExpense:
    """Returns the SharedExpense or raises EXPENSE_NOT_FOUND (404)."""
    expense = session.get(SharedExpense, expense_id)
    if expense is None:
        raise AppError(
            ErrorCode.EXPENSE_NOT_FOUND,
            f"Shared expense {expense_id} does not exist.",
            404,
        )
    return expense


def _validate_payer_is_member(
        payer_id: int,
        group_id: int,
        member_ids: list[int],
) -> None:
    """Raises PAYER_NOT_MEMBER (422) if payer_id is not in the group."""
    if payer_id not in member_ids:
        raise AppError(
            ErrorCode.PAYER_NOT_MEMBER,
            f"User {payer_id} is not a member of group {group_id}.",
            422,
            field="paid_by_user_id",
        )


def _validate_split_users_are_members(
        user_ids: tuple[int, ...],
        group_id: int,
        member_ids: list[int],
) -> None:
    """Raises SPLIT_USER_NOT_MEMBER (422) for the first participant not in the group."""
    member_set = set(member_ids)
    for user_id in user_ids:
        if user_id not in member_set:
            raise AppError(
                ErrorCode.SPLIT_USER_NOT_MEMBER,
                f"User {user_id} is not a member of group {group_id}.",
                422,
                field="participants",
            )


def _validate_split_sum(
        shares: tuple[tuple[int, Decimal], ...],
        expected_amount: Decimal,
) -> None:
    """
    Raises SPLIT_SUM_MISMATCH (422) if the custom shares do not add up to
    expected_amount. Decimal equality, no tolerance.
    """
    total = sum((amount for _, amount in shares), Decimal("0"))
    if total != expected_amount:
        raise AppError(
            ErrorCode.SPLIT_SUM_MISMATCH,
            f"Split amounts ({total}) do not equal expense amount ({expected_amount}).",
            422,
            field="participants",
        )


def _compute_equal_splits(
        amount: Decimal,
        participant_ids: list[int],
        payer_id: int,
) -> list[dict]:
    """
    Divides amount evenly among participants using ROUND_DOWN to the cent.

    The leftover cents are added to the payer's split, or to the first
    participant when the payer is not among them.

    Returns:
        List of {"user_id": int, "amount": Decimal} dicts, in participant order.
    """
    n = len(participant_ids)
    base = (amount / Decimal(n)).quantize(CENT, rounding=ROUND_DOWN)
    remainder = amount - (base * n)

    splits = [{"user_id": uid, "amount": base} for uid in participant_ids]

    if remainder > Decimal("0"):
        payer_split = next(
            (s for s in splits if s["user_id"] == payer_id),
            splits[0],
        )
        payer_split["amount"] += remainder

    # Must always hold; a failure here is a programming error.
    computed_sum = sum(s["amount"] for s in splits)
    if computed_sum != amount:
        raise AppError(
            ErrorCode.INTERNAL_ERROR,
            f"Equal split computation produced sum {computed_sum} for amount {amount}.",
            500,
        )

    return splits


def _ledger_deltas(
        payer_id: int,
        amount: Decimal,
        splits_data: list[dict],
) -> dict[int, Decimal]:
    """participant -= share, payer += amount, merged per user."""
    deltas: dict[int, Decimal] = defaultdict(lambda: Decimal("0.00"))
    for s in splits_data:
        deltas[s["user_id"]] -= s["amount"]
    deltas[payer_id] += amount
    return dict(deltas)


# ── Public service functions ───────────────────────────────────────────────

def create_shared_expense(
        group_id: int,
        caller_id: int,
        data: dict,
        session: Session,
) -> SharedExpense:
    """
    Records a shared expense and applies its splits to the group ledger.

    Args:
        group_id:  The group the expense belongs to.
        caller_id: The authenticated user recording the expense.
        data:      Validated dict from CreateSharedExpenseSchema. Keys:
                   paid_by_user_id, amount, description, date, split_type,
                   participants [{user_id, amount?}].

    Returns:
        The new SharedExpense with its splits.
    """
    membership_service.get_group_or_404(group_id, session)
    membership_service.require_member(group_id, caller_id, session)

    payer_id: int = data["paid_by_user_id"]
    amount: Decimal = data["amount"].quantize(CENT)
    split_type: SplitType = data.get("split_type", SplitType.EQUAL)

    request = parse_split_request(split_type, data.get("participants") or [])

    # Serialise with other ledger writers on this group before reading members.
    ledger_service.lock_group(group_id, session)
    member_ids = membership_service.list_member_ids(group_id, session)

    _validate_payer_is_member(payer_id, group_id, member_ids)
    _validate_split_users_are_members(request.user_ids, group_id, member_ids)

    if isinstance(request, EqualSplit):
        splits_data = _compute_equal_splits(amount, list(request.user_ids), payer_id)
    else:
        _validate_split_sum(request.shares, amount)
        splits_data = [
            {"user_id": uid, "amount": share.quantize(CENT)}
            for uid, share in request.shares
        ]

    # ── Writes ─────────────────────────────────────────────────────────────
    expense = SharedExpense(
        group_id=group_id,
        payer_id=payer_id,
        description=data["description"],
        amount=amount,
        expense_date=data["date"],
        split_type=split_type,
        splits=[
            ExpenseSplit(user_id=s["user_id"], amount=s["amount"])
            for s in splits_data
        ],
    )
    session.add(expense)
    session.flush()

    ledger_service.apply_deltas(
        group_id,
        _ledger_deltas(payer_id, amount, splits_data),
        session,
    )

    logger.info(
        "Shared expense %s recorded in group %s: %s paid by user %s, %s split over %d",
        expense.id, group_id, amount, payer_id, split_type.value, len(splits_data),
    )
    return expense


def list_shared_expenses(
        group_id: int,
        caller_id: int,
        session: Session,
) -> list[SharedExpense]:
    """
    Returns all shared expenses for a group, newest expense_date first.
    Caller must be a group member (FORBIDDEN, 403).
    """
    membership_service.get_group_or_404(group_id, session)
    membership_service.require_member(group_id, caller_id, session)

    stmt = (
        select(SharedExpense)
        .where(SharedExpense.group_id == group_id)
        .order_by(SharedExpense.expense_date.desc(), SharedExpense.id.desc())
    )
    return list(session.execute(stmt).scalars().all())


def get_shared_expense(
        expense_id: int,
        caller_id: int,
        session: Session,
) -> SharedExpense:
    """
    Returns a single shared expense including its splits.
    Caller must be a member of the expense's group (FORBIDDEN, 403).
    """
    expense = _get_expense_or_404(expense_id, session)
    membership_service.require_member(expense.group_id, caller_id, session)
    return expense
