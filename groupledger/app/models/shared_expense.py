"""
models/shared_expense.py — SharedExpense table definition.

No business logic. No imports from services or routes.

Key design points:
  - `amount` uses Numeric(12, 2) — never Float.
  - Shared expenses are immutable once written; there is no updated_at and
    no soft-delete column.
  - SplitType is a Python enum so schemas and services import it rather than
    repeating string literals.
"""

from __future__ import annotations

import enum
from datetime import date, datetime, timezone
from decimal import Decimal

from sqlalchemy import (
    CheckConstraint,
    Date,
    DateTime,
    Enum,
    ForeignKey,
    Numeric,
    String,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from groupledger.app.extensions import db


class SplitType(str, enum.Enum):
    EQUAL  = "equal"
    CUSTOM = "custom"


def _enum_values(enum_cls: type[enum.Enum]) -> list[str]:
    """Ensure SQLAlchemy stores enum values (e.g., 'custom'), not names ('CUSTOM')."""
    return [member.value for member in enum_cls]


class SharedExpense(db.Model):
    __tablename__ = "shared_expenses"

    __table_args__ = (
        # Also enforced by the marshmallow schema.
        CheckConstraint("amount > 0", name="ck_shared_expenses_amount_positive"),
        CheckConstraint(
            "LENGTH(TRIM(description)) > 0",
            name="ck_shared_expenses_description_nonempty",
        ),
    )

    id: Mapped[int] = mapped_column(primary_key=True)

    group_id: Mapped[int] = mapped_column(
        ForeignKey("groups.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )

    # Must be a group member at creation time (checked in expense_service.py).
    payer_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
    )

    description: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )

    amount: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
    )

    # The day the money was spent, as supplied by the client.
    expense_date: Mapped[date] = mapped_column(
        Date,
        nullable=False,
    )

    split_type: Mapped[SplitType] = mapped_column(
        Enum(
            SplitType,
            name="split_type_enum",
            native_enum=False,
            length=16,
            values_callable=_enum_values,
        ),
        nullable=False,
        default=SplitType.EQUAL,
        server_default=SplitType.EQUAL.value,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        server_default=func.now(),
    )

    # ── Relationships ──────────────────────────────────────────────────────

    group: Mapped["Group"] = relationship(  # noqa: F821
        "Group",
        back_populates="shared_expenses",
    )

    payer: Mapped["User"] = relationship(  # noqa: F821
        "User",
        back_populates="expenses_paid",
        foreign_keys=[payer_id],
    )

    # ON DELETE CASCADE — splits are owned by their expense.
    splits: Mapped[list["ExpenseSplit"]] = relationship(  # noqa: F821
        "ExpenseSplit",
        back_populates="expense",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="ExpenseSplit.id",
    )

    def __repr__(self) -> str:  # pragma: no cover
        return (
            f"<SharedExpense id={self.id} "
            f"group_id={self.group_id} "
            f"amount={self.amount}>"
        )
