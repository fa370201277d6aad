"""
tests/unit/test_equal_split.py — expense_service._compute_equal_splits.

Pure Decimal arithmetic; no database, no Flask.

  - sum(splits) == amount for every amount and participant count
  - base share is rounded DOWN to the cent
  - leftover cents go to the payer, or to the first participant when the
    payer does not take part
"""

from __future__ import annotations

from decimal import Decimal

import pytest

from groupledger.app.services.expense_service import _compute_equal_splits


def _total(splits: list[dict]) -> Decimal:
    return sum((s["amount"] for s in splits), Decimal("0"))


def _by_user(splits: list[dict]) -> dict[int, Decimal]:
    return {s["user_id"]: s["amount"] for s in splits}


def test_even_division_has_no_remainder():
    result = _compute_equal_splits(Decimal("100.00"), [1, 2], payer_id=1)
    assert _by_user(result) == {1: Decimal("50.00"), 2: Decimal("50.00")}


def test_leftover_cent_goes_to_payer():
    """10.00 / 3 → 3.33 each, payer (user 2) gets 3.34."""
    result = _compute_equal_splits(Decimal("10.00"), [1, 2, 3], payer_id=2)
    assert _by_user(result) == {1: Decimal("3.33"), 2: Decimal("3.34"), 3: Decimal("3.33")}


def test_several_leftover_cents_all_go_to_payer():
    """0.05 / 3 → 0.01 each, remainder 0.02 on top of the payer's share."""
    result = _compute_equal_splits(Decimal("0.05"), [1, 2, 3], payer_id=3)
    assert _by_user(result) == {1: Decimal("0.01"), 2: Decimal("0.01"), 3: Decimal("0.03")}


def test_first_participant_takes_remainder_when_payer_absent():
    result = _compute_equal_splits(Decimal("10.00"), [4, 2, 3], payer_id=1)
    assert _by_user(result) == {4: Decimal("3.34"), 2: Decimal("3.33"), 3: Decimal("3.33")}


def test_rounds_down_not_half_up():
    """2.00 / 3 = 0.666…; every non-payer share is 0.66, never 0.67."""
    result = _compute_equal_splits(Decimal("2.00"), [1, 2, 3], payer_id=1)
    assert _by_user(result)[2] == _by_user(result)[3] == Decimal("0.66")
    assert _by_user(result)[1] == Decimal("0.68")


def test_single_participant_gets_full_amount():
    result = _compute_equal_splits(Decimal("57.89"), [7], payer_id=7)
    assert result == [{"user_id": 7, "amount": Decimal("57.89")}]


def test_order_follows_participants():
    result = _compute_equal_splits(Decimal("80.00"), [40, 10, 30, 20], payer_id=10)
    assert [s["user_id"] for s in result] == [40, 10, 30, 20]


@pytest.mark.parametrize(
    "amount, participants",
    [
        ("0.01", [1]),
        ("0.10", [1, 2]),
        ("1.00", [1, 2, 3]),
        ("99.99", [1, 2, 3, 4]),
        ("7.77", [1, 2, 3]),
        ("0.11", list(range(1, 11))),
        ("1000.00", [1, 2, 3, 4, 5, 6, 7]),
    ],
)
def test_sum_always_equals_amount(amount, participants):
    amount = Decimal(amount)
    result = _compute_equal_splits(amount, participants, payer_id=participants[0])

    assert _total(result) == amount
    assert all(isinstance(s["amount"], Decimal) for s in result)
