"""
models/group_balance.py — GroupBalance table definition.

One row per (user, group). No business logic here; every mutation goes
through services/ledger_service.py.

Sign convention:
  balance > 0  the group owes this user (they have paid in excess)
  balance < 0  this user owes the group

Conservation: the sum of balance over a group's rows is zero at every
committed state. It may diverge only inside an open unit of work.
"""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import DateTime, ForeignKey, Numeric, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from groupledger.app.extensions import db


class GroupBalance(db.Model):
    __tablename__ = "group_balances"

    __table_args__ = (
        UniqueConstraint("user_id", "group_id", name="uq_group_balances_user_group"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)

    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
    )

    group_id: Mapped[int] = mapped_column(
        ForeignKey("groups.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )

    # NUMERIC(12, 2). Never Float. Signed.
    balance: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
        default=Decimal("0.00"),
        server_default="0",
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        server_default=func.now(),
    )

    # ── Relationships ──────────────────────────────────────────────────────

    user: Mapped["User"] = relationship(  # noqa: F821
        "User",
        back_populates="balances",
    )

    group: Mapped["Group"] = relationship(  # noqa: F821
        "Group",
        back_populates="balances",
    )

    def __repr__(self) -> str:  # pragma: no cover
        return (
            f"<GroupBalance user_id={self.user_id} "
            f"group_id={self.group_id} "
            f"balance={self.balance}>"
        )
