"""
models/expense_split.py — ExpenseSplit table definition.

No business logic. No imports from services or routes.

Key design points:
  - `amount` uses Numeric(12, 2) — never Float. A share may be zero (a
    participant can be listed with nothing to pay in a custom split).
  - expense_id is ON DELETE CASCADE — splits are owned by their expense.
  - UNIQUE(expense_id, user_id) backs DUPLICATE_PARTICIPANT at the DB level.

sum(splits.amount) == expense.amount is enforced in expense_service.py
before the rows are written.
"""

from __future__ import annotations

from decimal import Decimal

from sqlalchemy import CheckConstraint, ForeignKey, Numeric, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from groupledger.app.extensions import db


class ExpenseSplit(db.Model):
    __tablename__ = "expense_splits"

    __table_args__ = (
        UniqueConstraint("expense_id", "user_id", name="uq_expense_splits_expense_user"),
        CheckConstraint("amount >= 0", name="ck_expense_splits_amount_nonnegative"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)

    expense_id: Mapped[int] = mapped_column(
        ForeignKey("shared_expenses.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
    )

    amount: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
    )

    # ── Relationships ──────────────────────────────────────────────────────

    expense: Mapped["SharedExpense"] = relationship(  # noqa: F821
        "SharedExpense",
        back_populates="splits",
    )

    user: Mapped["User"] = relationship(  # noqa: F821
        "User",
    )

    def __repr__(self) -> str:  # pragma: no cover
        return (
            f"<ExpenseSplit id={self.id} "
            f"expense_id={self.expense_id} "
            f"user_id={self.user_id} "
            f"amount={self.amount}>"
        )
