"""
models/group.py — Group table definition.

No business logic. No imports from services or routes.

FK policy: owner_user_id ON DELETE RESTRICT — the user who created a group
cannot be deleted while the group exists.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, String, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from groupledger.app.extensions import db


class Group(db.Model):
    # 'groups' is a reserved word in some SQL dialects; SQLAlchemy quotes it.
    __tablename__ = "groups"

    __table_args__ = (
        # Also enforced by the marshmallow schema; the schema is the primary gate.
        CheckConstraint(
            "LENGTH(TRIM(name)) > 0",
            name="ck_groups_name_nonempty",
        ),
    )

    id: Mapped[int] = mapped_column(primary_key=True)

    name: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
    )

    owner_user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        server_default=func.now(),
    )

    # ── Relationships ──────────────────────────────────────────────────────

    owner: Mapped["User"] = relationship(  # noqa: F821
        "User",
        foreign_keys=[owner_user_id],
    )

    memberships: Mapped[list["Membership"]] = relationship(  # noqa: F821
        "Membership",
        back_populates="group",
    )

    balances: Mapped[list["GroupBalance"]] = relationship(  # noqa: F821
        "GroupBalance",
        back_populates="group",
    )

    shared_expenses: Mapped[list["SharedExpense"]] = relationship(  # noqa: F821
        "SharedExpense",
        back_populates="group",
    )

    settlements: Mapped[list["Settlement"]] = relationship(  # noqa: F821
        "Settlement",
        back_populates="group",
    )

    def __repr__(self) -> str:  # pragma: no cover
        return f"<Group id={self.id} name={self.name!r}>"
