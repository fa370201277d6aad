"""
Unit tests for expense_service: split request parsing, the sum check, ledger
deltas, and the order of guards in create_shared_expense.

No database; sessions are MagicMocks and collaborators are patched.
"""

from __future__ import annotations

import datetime
from decimal import Decimal
from unittest.mock import MagicMock, patch

import pytest

from groupledger.app.errors import AppError, ErrorCode
from groupledger.app.models.shared_expense import SplitType
from groupledger.app.services import expense_service
from groupledger.app.services.expense_service import CustomSplit, EqualSplit

D = Decimal


# ── parse_split_request ────────────────────────────────────────────────────

def test_parse_equal_split():
    request = expense_service.parse_split_request(
        SplitType.EQUAL,
        [{"user_id": 1, "amount": None}, {"user_id": 2}],
    )
    assert request == EqualSplit(user_ids=(1, 2))


def test_parse_custom_split():
    request = expense_service.parse_split_request(
        SplitType.CUSTOM,
        [{"user_id": 1, "amount": D("7.00")}, {"user_id": 2, "amount": D("3.00")}],
    )
    assert isinstance(request, CustomSplit)
    assert request.user_ids == (1, 2)
    assert request.shares == ((1, D("7.00")), (2, D("3.00")))


@pytest.mark.parametrize(
    "split_type, participants, code",
    [
        (SplitType.EQUAL, [], ErrorCode.INVALID_FIELD),
        (SplitType.EQUAL, [{"user_id": 1}, {"user_id": 1}], ErrorCode.DUPLICATE_PARTICIPANT),
        (SplitType.EQUAL, [{"user_id": 1, "amount": D("1.00")}], ErrorCode.AMOUNT_SENT_FOR_EQUAL_SPLIT),
        (SplitType.CUSTOM, [{"user_id": 1, "amount": None}], ErrorCode.MISSING_SPLIT_AMOUNT),
    ],
)
def test_parse_rejects_bad_shapes(split_type, participants, code):
    with pytest.raises(AppError) as exc_info:
        expense_service.parse_split_request(split_type, participants)

    assert exc_info.value.code == code
    assert exc_info.value.http_status == 400


# ── Sum check and deltas ───────────────────────────────────────────────────

def test_split_sum_mismatch():
    with pytest.raises(AppError) as exc_info:
        expense_service._validate_split_sum(((1, D("50.00")), (2, D("40.00"))), D("100.00"))

    assert exc_info.value.code == ErrorCode.SPLIT_SUM_MISMATCH
    assert exc_info.value.http_status == 422


def test_split_sum_exact_passes():
    expense_service._validate_split_sum(((1, D("60.00")), (2, D("40.00"))), D("100.00"))


def test_ledger_deltas_payer_participates():
    deltas = expense_service._ledger_deltas(
        payer_id=1,
        amount=D("100.00"),
        splits_data=[{"user_id": 1, "amount": D("60.00")}, {"user_id": 2, "amount": D("40.00")}],
    )
    assert deltas == {1: D("40.00"), 2: D("-40.00")}
    assert sum(deltas.values()) == 0


def test_ledger_deltas_payer_outside_split():
    deltas = expense_service._ledger_deltas(
        payer_id=3,
        amount=D("30.00"),
        splits_data=[{"user_id": 1, "amount": D("15.00")}, {"user_id": 2, "amount": D("15.00")}],
    )
    assert deltas == {1: D("-15.00"), 2: D("-15.00"), 3: D("30.00")}


# ── create_shared_expense guard order ──────────────────────────────────────

def _data(**overrides) -> dict:
    data = {
        "paid_by_user_id": 1,
        "description": "Taxi",
        "amount": D("100.00"),
        "date": datetime.date(2024, 3, 1),
        "split_type": SplitType.CUSTOM,
        "participants": [
            {"user_id": 1, "amount": D("50.00")},
            {"user_id": 2, "amount": D("40.00")},
        ],
    }
    data.update(overrides)
    return data


@pytest.fixture
def patched_membership():
    with patch.object(expense_service.membership_service, "get_group_or_404"), \
            patch.object(expense_service.membership_service, "require_member"), \
            patch.object(expense_service.membership_service, "list_member_ids", return_value=[1, 2]), \
            patch.object(expense_service.ledger_service, "lock_group"), \
            patch.object(expense_service.ledger_service, "apply_deltas") as apply_deltas:
        yield apply_deltas


def test_sum_mismatch_writes_nothing(patched_membership):
    session = MagicMock()

    with pytest.raises(AppError) as exc_info:
        expense_service.create_shared_expense(group_id=1, caller_id=1, data=_data(), session=session)

    assert exc_info.value.code == ErrorCode.SPLIT_SUM_MISMATCH
    session.add.assert_not_called()
    patched_membership.assert_not_called()


def test_payer_checked_before_participants(patched_membership):
    session = MagicMock()

    with pytest.raises(AppError) as exc_info:
        expense_service.create_shared_expense(
            group_id=1,
            caller_id=1,
            data=_data(paid_by_user_id=9, participants=[{"user_id": 8, "amount": D("100.00")}]),
            session=session,
        )

    assert exc_info.value.code == ErrorCode.PAYER_NOT_MEMBER
    session.add.assert_not_called()


def test_non_member_participant(patched_membership):
    session = MagicMock()

    with pytest.raises(AppError) as exc_info:
        expense_service.create_shared_expense(
            group_id=1,
            caller_id=1,
            data=_data(
                split_type=SplitType.EQUAL,
                participants=[{"user_id": 1}, {"user_id": 5}],
            ),
            session=session,
        )

    assert exc_info.value.code == ErrorCode.SPLIT_USER_NOT_MEMBER
    assert exc_info.value.http_status == 422
    session.add.assert_not_called()


def test_valid_expense_applies_zero_sum_deltas(patched_membership):
    session = MagicMock()

    expense = expense_service.create_shared_expense(
        group_id=1,
        caller_id=2,
        data=_data(
            split_type=SplitType.EQUAL,
            amount=D("10.00"),
            participants=[{"user_id": 1}, {"user_id": 2}],
        ),
        session=session,
    )

    session.add.assert_called_once_with(expense)
    assert [s.amount for s in expense.splits] == [D("5.00"), D("5.00")]
    patched_membership.assert_called_once_with(
        1, {1: D("5.00"), 2: D("-5.00")}, session,
    )


def test_get_shared_expense_not_found():
    session = MagicMock()
    session.get.return_value = None

    with pytest.raises(AppError) as exc_info:
        expense_service.get_shared_expense(expense_id=42, caller_id=1, session=session)

    assert exc_info.value.code == ErrorCode.EXPENSE_NOT_FOUND
    assert exc_info.value.http_status == 404
