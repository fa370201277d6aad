"""
models/user.py — User table definition.

No business logic. No imports from services or routes.
Users are referenced by every ledger table; their credentials live outside
this service, so the row carries identity fields only.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import CheckConstraint, DateTime, String, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from groupledger.app.extensions import db


class User(db.Model):
    __tablename__ = "users"

    __table_args__ = (
        # Also enforced by the marshmallow schema.
        CheckConstraint(
            "LENGTH(TRIM(username)) > 0",
            name="ck_users_username_nonempty",
        ),
        CheckConstraint(
            "email LIKE '%@%'",
            name="ck_users_email_format",
        ),
    )

    id: Mapped[int] = mapped_column(primary_key=True)

    username: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        unique=True,
    )

    email: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        unique=True,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        server_default=func.now(),
    )

    # ── Relationships ──────────────────────────────────────────────────────
    # Read-only navigation — no logic here.

    memberships: Mapped[list["Membership"]] = relationship(  # noqa: F821
        "Membership",
        back_populates="user",
    )

    balances: Mapped[list["GroupBalance"]] = relationship(  # noqa: F821
        "GroupBalance",
        back_populates="user",
    )

    # Shared expenses this user fronted (payer_id FK)
    expenses_paid: Mapped[list["SharedExpense"]] = relationship(  # noqa: F821
        "SharedExpense",
        back_populates="payer",
        foreign_keys="[SharedExpense.payer_id]",
    )

    # Settlements where this user is the debtor
    settlements_made: Mapped[list["Settlement"]] = relationship(  # noqa: F821
        "Settlement",
        back_populates="payer",
        foreign_keys="[Settlement.from_user_id]",
    )

    # Settlements where this user is the creditor
    settlements_received: Mapped[list["Settlement"]] = relationship(  # noqa: F821
        "Settlement",
        back_populates="recipient",
        foreign_keys="[Settlement.to_user_id]",
    )

    def __repr__(self) -> str:  # pragma: no cover
        return f"<User id={self.id} username={self.username!r}>"
