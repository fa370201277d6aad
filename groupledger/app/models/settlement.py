"""
models/settlement.py — Settlement table definition.

No business logic. No imports from services or routes.

Key design points:
  - A settlement is one transfer produced by the settlement executor.
    Rows are append-only; nothing updates or deletes them.
  - `amount` uses Numeric(12, 2) — never Float, always > 0.
  - CHECK(from_user_id <> to_user_id) is the last guard against a
    self-transfer; the greedy matcher never produces one.
"""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Numeric, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from groupledger.app.extensions import db


class Settlement(db.Model):
    __tablename__ = "settlements"

    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_settlements_amount_positive"),
        CheckConstraint(
            "from_user_id <> to_user_id",
            name="ck_settlements_no_self_settlement",
        ),
    )

    id: Mapped[int] = mapped_column(primary_key=True)

    group_id: Mapped[int] = mapped_column(
        ForeignKey("groups.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )

    # Debtor — held more than the equal share and pays the excess.
    from_user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
    )

    # Creditor — held less than the equal share and receives the deficit.
    to_user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
    )

    amount: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
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
        back_populates="settlements",
    )

    payer: Mapped["User"] = relationship(  # noqa: F821
        "User",
        back_populates="settlements_made",
        foreign_keys=[from_user_id],
    )

    recipient: Mapped["User"] = relationship(  # noqa: F821
        "User",
        back_populates="settlements_received",
        foreign_keys=[to_user_id],
    )

    def __repr__(self) -> str:  # pragma: no cover
        return (
            f"<Settlement id={self.id} "
            f"group_id={self.group_id} "
            f"from={self.from_user_id} "
            f"to={self.to_user_id} "
            f"amount={self.amount}>"
        )
