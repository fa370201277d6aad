"""Initial schema — all tables, constraints, and indexes.

Revision: 001_initial_schema

Append-only: this file must never be edited after it has been applied to a
database. Schema changes go in a NEW migration file.

Creation order (FK dependencies):
  users → groups → memberships → group_balances
        → shared_expenses → expense_splits → settlements

Role and split type columns are VARCHAR(16) (the models use
Enum(native_enum=False)), so no database enum types are created.

ON DELETE policies:
  expense_splits.expense_id  → CASCADE   (splits owned by the expense)
  everything else            → RESTRICT  (ledger rows pin their users/groups)
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op

# ── Alembic revision identifiers ──────────────────────────────────────────
revision: str = "001_initial_schema"
down_revision: str | None = None      # first migration — no parent
branch_labels: tuple | None = None
depends_on: tuple | None = None


def _created_at() -> sa.Column:
    return sa.Column(
        "created_at",
        sa.DateTime(timezone=True),
        nullable=False,
        server_default=sa.func.now(),
    )


def upgrade() -> None:

    # ── users ──────────────────────────────────────────────────────────────
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("username", sa.String(50), nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        _created_at(),
        sa.PrimaryKeyConstraint("id", name="pk_users"),
        sa.UniqueConstraint("username", name="uq_users_username"),
        sa.UniqueConstraint("email", name="uq_users_email"),
        sa.CheckConstraint(
            "LENGTH(TRIM(username)) > 0",
            name="ck_users_username_nonempty",
        ),
        sa.CheckConstraint(
            "email LIKE '%@%'",
            name="ck_users_email_format",
        ),
    )

    # ── groups ─────────────────────────────────────────────────────────────
    op.create_table(
        "groups",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column(
            "owner_user_id",
            sa.Integer(),
            sa.ForeignKey("users.id", ondelete="RESTRICT", name="fk_groups_owner"),
            nullable=False,
        ),
        _created_at(),
        sa.PrimaryKeyConstraint("id", name="pk_groups"),
        sa.CheckConstraint(
            "LENGTH(TRIM(name)) > 0",
            name="ck_groups_name_nonempty",
        ),
    )

    # ── memberships ────────────────────────────────────────────────────────
    op.create_table(
        "memberships",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column(
            "user_id",
            sa.Integer(),
            sa.ForeignKey("users.id", ondelete="RESTRICT", name="fk_memberships_user"),
            nullable=False,
        ),
        sa.Column(
            "group_id",
            sa.Integer(),
            sa.ForeignKey("groups.id", ondelete="RESTRICT", name="fk_memberships_group"),
            nullable=False,
        ),
        sa.Column(
            "role",
            sa.String(16),
            nullable=False,
            server_default="member",
        ),
        sa.Column(
            "joined_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.PrimaryKeyConstraint("id", name="pk_memberships"),
        sa.UniqueConstraint("user_id", "group_id", name="uq_memberships_user_group"),
        sa.CheckConstraint("role IN ('admin', 'member')", name="ck_memberships_role"),
    )

    # ── group_balances ─────────────────────────────────────────────────────
    # One signed running balance per (user, group). Sum per group is zero.
    op.create_table(
        "group_balances",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column(
            "user_id",
            sa.Integer(),
            sa.ForeignKey("users.id", ondelete="RESTRICT", name="fk_group_balances_user"),
            nullable=False,
        ),
        sa.Column(
            "group_id",
            sa.Integer(),
            sa.ForeignKey("groups.id", ondelete="RESTRICT", name="fk_group_balances_group"),
            nullable=False,
        ),
        sa.Column(
            "balance",
            sa.Numeric(12, 2),
            nullable=False,
            server_default="0",
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.PrimaryKeyConstraint("id", name="pk_group_balances"),
        sa.UniqueConstraint("user_id", "group_id", name="uq_group_balances_user_group"),
    )

    # ── shared_expenses ────────────────────────────────────────────────────
    op.create_table(
        "shared_expenses",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column(
            "group_id",
            sa.Integer(),
            sa.ForeignKey("groups.id", ondelete="RESTRICT", name="fk_shared_expenses_group"),
            nullable=False,
        ),
        sa.Column(
            "payer_id",
            sa.Integer(),
            sa.ForeignKey("users.id", ondelete="RESTRICT", name="fk_shared_expenses_payer"),
            nullable=False,
        ),
        sa.Column("description", sa.String(255), nullable=False),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("expense_date", sa.Date(), nullable=False),
        sa.Column(
            "split_type",
            sa.String(16),
            nullable=False,
            server_default="equal",
        ),
        _created_at(),
        sa.PrimaryKeyConstraint("id", name="pk_shared_expenses"),
        sa.CheckConstraint("amount > 0", name="ck_shared_expenses_amount_positive"),
        sa.CheckConstraint(
            "LENGTH(TRIM(description)) > 0",
            name="ck_shared_expenses_description_nonempty",
        ),
        sa.CheckConstraint(
            "split_type IN ('equal', 'custom')",
            name="ck_shared_expenses_split_type",
        ),
    )

    # ── expense_splits ─────────────────────────────────────────────────────
    op.create_table(
        "expense_splits",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column(
            "expense_id",
            sa.Integer(),
            sa.ForeignKey(
                "shared_expenses.id",
                ondelete="CASCADE",
                name="fk_expense_splits_expense",
            ),
            nullable=False,
        ),
        sa.Column(
            "user_id",
            sa.Integer(),
            sa.ForeignKey("users.id", ondelete="RESTRICT", name="fk_expense_splits_user"),
            nullable=False,
        ),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.PrimaryKeyConstraint("id", name="pk_expense_splits"),
        sa.UniqueConstraint("expense_id", "user_id", name="uq_expense_splits_expense_user"),
        sa.CheckConstraint("amount >= 0", name="ck_expense_splits_amount_nonnegative"),
    )

    # ── settlements ────────────────────────────────────────────────────────
    # Append-only transfer records written by the settlement executor.
    op.create_table(
        "settlements",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column(
            "group_id",
            sa.Integer(),
            sa.ForeignKey("groups.id", ondelete="RESTRICT", name="fk_settlements_group"),
            nullable=False,
        ),
        sa.Column(
            "from_user_id",
            sa.Integer(),
            sa.ForeignKey("users.id", ondelete="RESTRICT", name="fk_settlements_from_user"),
            nullable=False,
        ),
        sa.Column(
            "to_user_id",
            sa.Integer(),
            sa.ForeignKey("users.id", ondelete="RESTRICT", name="fk_settlements_to_user"),
            nullable=False,
        ),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        _created_at(),
        sa.PrimaryKeyConstraint("id", name="pk_settlements"),
        sa.CheckConstraint("amount > 0", name="ck_settlements_amount_positive"),
        sa.CheckConstraint(
            "from_user_id <> to_user_id",
            name="ck_settlements_no_self_settlement",
        ),
    )

    # ── Indexes ────────────────────────────────────────────────────────────
    op.create_index("ix_memberships_user_id", "memberships", ["user_id"])
    op.create_index("ix_memberships_group_id", "memberships", ["group_id"])
    op.create_index("ix_group_balances_group_id", "group_balances", ["group_id"])
    op.create_index("ix_shared_expenses_group_id", "shared_expenses", ["group_id"])
    op.create_index("ix_expense_splits_expense_id", "expense_splits", ["expense_id"])
    op.create_index("ix_settlements_group_id", "settlements", ["group_id"])


def downgrade() -> None:
    """Drop everything created in upgrade(), in reverse dependency order."""

    op.drop_index("ix_settlements_group_id", table_name="settlements")
    op.drop_index("ix_expense_splits_expense_id", table_name="expense_splits")
    op.drop_index("ix_shared_expenses_group_id", table_name="shared_expenses")
    op.drop_index("ix_group_balances_group_id", table_name="group_balances")
    op.drop_index("ix_memberships_group_id", table_name="memberships")
    op.drop_index("ix_memberships_user_id", table_name="memberships")

    op.drop_table("settlements")
    op.drop_table("expense_splits")
    op.drop_table("shared_expenses")
    op.drop_table("group_balances")
    op.drop_table("memberships")
    op.drop_table("groups")
    op.drop_table("users")
