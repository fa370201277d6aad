"""
Unit tests for ledger_service guards that must fire before any row is written.

DB-free: the session is a MagicMock and row selection is patched.
"""

from __future__ import annotations

from decimal import Decimal
from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest

from groupledger.app.errors import AppError, ErrorCode
from groupledger.app.services import ledger_service


def _row(user_id: int, balance: str) -> SimpleNamespace:
    return SimpleNamespace(user_id=user_id, balance=Decimal(balance), updated_at=None)


def test_apply_deltas_rejects_non_zero_net_before_touching_rows():
    session = MagicMock()

    with patch.object(ledger_service, "ensure_balance_rows") as ensure_rows:
        with pytest.raises(AppError) as exc_info:
            ledger_service.apply_deltas(
                group_id=1,
                deltas={1: Decimal("10.00"), 2: Decimal("-9.99")},
                session=session,
            )

    assert exc_info.value.code == ErrorCode.INTERNAL_ERROR
    assert exc_info.value.http_status == 500
    ensure_rows.assert_not_called()
    session.flush.assert_not_called()


def test_apply_deltas_adds_signed_amounts():
    session = MagicMock()
    rows = {1: _row(1, "5.00"), 2: _row(2, "-5.00")}

    with patch.object(ledger_service, "ensure_balance_rows", return_value=rows):
        ledger_service.apply_deltas(
            group_id=1,
            deltas={1: Decimal("20.00"), 2: Decimal("-20.00")},
            session=session,
        )

    assert rows[1].balance == Decimal("25.00")
    assert rows[2].balance == Decimal("-25.00")
    assert rows[1].updated_at is not None
    session.flush.assert_called_once()


def test_set_balances_rejects_changed_sum():
    session = MagicMock()
    rows = {1: _row(1, "60.00"), 2: _row(2, "0.00")}

    with patch.object(ledger_service, "ensure_balance_rows", return_value=rows):
        with pytest.raises(AppError) as exc_info:
            ledger_service.set_balances(
                group_id=1,
                targets={1: Decimal("30.00"), 2: Decimal("20.00")},
                session=session,
            )

    assert exc_info.value.code == ErrorCode.INTERNAL_ERROR
    assert rows[1].balance == Decimal("60.00")
    session.flush.assert_not_called()


def test_set_balances_overwrites_to_targets():
    session = MagicMock()
    rows = {1: _row(1, "60.00"), 2: _row(2, "0.00")}

    with patch.object(ledger_service, "ensure_balance_rows", return_value=rows):
        ledger_service.set_balances(
            group_id=1,
            targets={1: Decimal("30.00"), 2: Decimal("30.00")},
            session=session,
        )

    assert rows[1].balance == rows[2].balance == Decimal("30.00")


def test_read_balances_defaults_missing_rows_to_zero():
    session = MagicMock()

    with patch.object(ledger_service, "_select_rows", return_value={2: _row(2, "-4.50")}):
        result = ledger_service.read_balances(group_id=1, user_ids=[3, 2], session=session)

    assert result == {2: Decimal("-4.50"), 3: Decimal("0.00")}
    session.add.assert_not_called()
    session.flush.assert_not_called()


def test_drop_balance_row_refuses_outstanding_balance():
    session = MagicMock()

    with patch.object(ledger_service, "_select_rows", return_value={7: _row(7, "12.00")}):
        with pytest.raises(AppError) as exc_info:
            ledger_service.drop_balance_row(group_id=1, user_id=7, session=session)

    assert exc_info.value.code == ErrorCode.OUTSTANDING_BALANCE
    assert exc_info.value.http_status == 422
    session.delete.assert_not_called()


def test_drop_balance_row_deletes_zero_row():
    session = MagicMock()
    row = _row(7, "0.00")

    with patch.object(ledger_service, "_select_rows", return_value={7: row}):
        ledger_service.drop_balance_row(group_id=1, user_id=7, session=session)

    session.delete.assert_called_once_with(row)


def test_assert_conserved_raises_on_non_zero_total():
    session = MagicMock()

    with patch.object(ledger_service, "group_total", return_value=Decimal("0.01")):
        with pytest.raises(AppError) as exc_info:
            ledger_service.assert_conserved(group_id=1, session=session)

    assert exc_info.value.code == ErrorCode.INTERNAL_ERROR


def test_lock_group_raises_when_group_missing():
    session = MagicMock()
    session.execute.return_value.scalar_one_or_none.return_value = None

    with pytest.raises(AppError) as exc_info:
        ledger_service.lock_group(group_id=404, session=session)

    assert exc_info.value.code == ErrorCode.GROUP_NOT_FOUND


def test_get_balances_defaults_to_all_members_and_creates_missing_rows():
    session = MagicMock()

    with patch.object(ledger_service.membership_service, "list_member_ids", return_value=[3, 1, 2]), \
            patch.object(ledger_service, "_select_rows", return_value={2: _row(2, "-4.50")}) as select_rows:
        result = ledger_service.get_balances(group_id=1, session=session)

    assert result == {1: Decimal("0.00"), 2: Decimal("-4.50"), 3: Decimal("0.00")}
    assert list(result) == [1, 2, 3]
    select_rows.assert_called_once_with(1, [3, 1, 2], session, for_update=False)
    created = [c.args[0] for c in session.add.call_args_list]
    assert sorted(row.user_id for row in created) == [1, 3]
    assert all(row.balance == Decimal("0.00") for row in created)
    session.flush.assert_called_once()


def test_get_balances_with_explicit_users_skips_member_lookup():
    session = MagicMock()
    rows = {4: _row(4, "10.00"), 5: _row(5, "-10.00")}

    with patch.object(ledger_service.membership_service, "list_member_ids") as member_ids, \
            patch.object(ledger_service, "_select_rows", return_value=rows) as select_rows:
        result = ledger_service.get_balances(1, session, [5, 4], for_update=True)

    assert result == {4: Decimal("10.00"), 5: Decimal("-10.00")}
    member_ids.assert_not_called()
    select_rows.assert_called_once_with(1, [5, 4], session, for_update=True)
    session.add.assert_not_called()
    session.flush.assert_not_called()
