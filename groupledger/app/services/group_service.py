"""
services/group_service.py — Group and membership management.

Authorization rules:
  - Creating a group:    any authenticated user; the creator joins as admin
  - Reading a group:     members only (FORBIDDEN, 403)
  - Adding a member:     admins only (NOT_GROUP_ADMIN, 403)
  - Changing a role:     admins only
  - Removing a member:   admins may remove anyone; a member may remove self

A group always keeps at least one admin (LAST_ADMIN, 422), and a member
leaves only with a zero balance (OUTSTANDING_BALANCE, 422).

Layer rules:
  - No Flask imports. Pure Python with a SQLAlchemy session parameter.
  - Flush only; the unit of work commits.
"""

from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.orm import Session

from groupledger.app.errors import AppError, ErrorCode
from groupledger.app.models.group import Group
from groupledger.app.models.membership import MemberRole, Membership
from groupledger.app.models.user import User
from groupledger.app.services import ledger_service, membership_service
from groupledger.app.timestamps import isoformat_utc

logger = logging.getLogger(__name__)


# ── Private helpers ────────────────────────────────────────────────────────

def _get_user_or_404(user_id: int, session: Session) -> User:
    user = session.get(User, user_id)
    if user is None:
        raise AppError(
            ErrorCode.USER_NOT_FOUND,
            f"User {user_id} does not exist.",
            404,
        )
    return user


def _get_target_membership_or_404(
        group_id: int,
        user_id: int,
        session: Session,
) -> Membership:
    membership = membership_service.get_membership(group_id, user_id, session)
    if membership is None:
        raise AppError(
            ErrorCode.USER_NOT_FOUND,
            f"User {user_id} is not a member of group {group_id}.",
            404,
        )
    return membership


def _member_dict(user: User, membership: Membership) -> dict:
    return {
        "id": user.id,
        "username": user.username,
        "email": user.email,
        "role": membership.role.value,
        "joined_at": isoformat_utc(membership.joined_at),
    }


def _build_group_dict(group: Group, members: list[tuple[User, Membership]]) -> dict:
    """Serialises a Group with its member list to a plain dict."""
    return {
        "id": group.id,
        "name": group.name,
        "owner_user_id": group.owner_user_id,
        "created_at": isoformat_utc(group.created_at),
        "members": [_member_dict(user, membership) for user, membership in members],
    }


def _ensure_admin_remains(
        group_id: int,
        membership: Membership,
        session: Session,
) -> None:
    """Raises LAST_ADMIN (422) if membership is the group's only admin."""
    if membership.is_admin and membership_service.count_admins(group_id, session) <= 1:
        raise AppError(
            ErrorCode.LAST_ADMIN,
            "A group must keep at least one admin. Promote another member first.",
            422,
        )


# ── Public service functions ───────────────────────────────────────────────

def create_group(name: str, owner_id: int, session: Session) -> dict:
    """
    Creates a new group. The creator becomes the owner and its first admin.

    Args:
        name:     Group name (validated by schema, non-empty, max 100 chars).
        owner_id: The authenticated user creating the group.
    """
    owner = _get_user_or_404(owner_id, session)

    group = Group(name=name.strip(), owner_user_id=owner_id)
    session.add(group)
    session.flush()  # populate group.id before creating membership

    membership = Membership(user_id=owner_id, group_id=group.id, role=MemberRole.ADMIN)
    session.add(membership)
    session.flush()

    logger.info("Group %s created by user %s", group.id, owner_id)
    return _build_group_dict(group, [(owner, membership)])


def list_groups(user_id: int, session: Session) -> list[dict]:
    """
    Returns all groups the user belongs to, oldest first, with the caller's
    role in each. The member list is available via get_group().
    """
    stmt = (
        select(Group, Membership.role)
        .join(Membership, Group.id == Membership.group_id)
        .where(Membership.user_id == user_id)
        .order_by(Group.created_at.asc(), Group.id.asc())
    )
    rows = session.execute(stmt).all()

    return [
        {
            "id": g.id,
            "name": g.name,
            "owner_user_id": g.owner_user_id,
            "role": role.value,
            "created_at": isoformat_utc(g.created_at),
        }
        for g, role in rows
    ]


def get_group(group_id: int, caller_id: int, session: Session) -> dict:
    """Returns group details with the current member list (members only)."""
    group = membership_service.get_group_or_404(group_id, session)
    membership_service.require_member(group_id, caller_id, session)

    stmt = (
        select(User, Membership)
        .join(Membership, User.id == Membership.user_id)
        .where(Membership.group_id == group_id)
        .order_by(Membership.joined_at.asc(), User.id.asc())
    )
    members = [(user, membership) for user, membership in session.execute(stmt).all()]

    return _build_group_dict(group, members)


def add_member(
        group_id: int,
        caller_id: int,
        target_user_id: int,
        session: Session,
        role: MemberRole = MemberRole.MEMBER,
) -> dict:
    """
    Adds a user to a group. Admins only.

    Raises:
      AppError(GROUP_NOT_FOUND, 404)  — group does not exist
      AppError(NOT_GROUP_ADMIN, 403)  — caller is not an admin
      AppError(USER_NOT_FOUND, 404)   — target user does not exist
      AppError(ALREADY_MEMBER, 409)   — user is already in the group
    """
    membership_service.get_group_or_404(group_id, session)
    membership_service.require_admin(group_id, caller_id, session)

    target_user = _get_user_or_404(target_user_id, session)

    # Membership changes alter who a default settlement covers.
    ledger_service.lock_group(group_id, session)

    if membership_service.is_member(group_id, target_user_id, session):
        raise AppError(
            ErrorCode.ALREADY_MEMBER,
            f"User {target_user_id} is already a member of group {group_id}.",
            409,
        )

    membership = Membership(user_id=target_user_id, group_id=group_id, role=role)
    session.add(membership)
    session.flush()

    logger.info(
        "User %s added to group %s as %s by user %s",
        target_user_id, group_id, role.value, caller_id,
    )
    return {"group_id": group_id, **_member_dict(target_user, membership)}


def update_member_role(
        group_id: int,
        caller_id: int,
        target_user_id: int,
        role: MemberRole,
        session: Session,
) -> dict:
    """
    Promotes or demotes a member. Admins only.
    Demoting the only admin raises LAST_ADMIN (422).
    """
    membership_service.get_group_or_404(group_id, session)
    membership_service.require_admin(group_id, caller_id, session)

    ledger_service.lock_group(group_id, session)
    membership = _get_target_membership_or_404(group_id, target_user_id, session)

    if membership.role != role:
        if role != MemberRole.ADMIN:
            _ensure_admin_remains(group_id, membership, session)
        membership.role = role
        session.flush()
        logger.info(
            "User %s in group %s is now %s (changed by user %s)",
            target_user_id, group_id, role.value, caller_id,
        )

    user = session.get(User, target_user_id)
    return {"group_id": group_id, **_member_dict(user, membership)}


def remove_member(
        group_id: int,
        caller_id: int,
        target_user_id: int,
        session: Session,
) -> None:
    """
    Removes a user from a group.

    Authorization:
      - An admin may remove any member, including themselves.
      - Any member may remove themselves.
      - A non-admin may not remove another member (NOT_GROUP_ADMIN, 403).

    Raises:
      AppError(GROUP_NOT_FOUND, 404)      — group does not exist
      AppError(FORBIDDEN, 403)            — caller not a member
      AppError(NOT_GROUP_ADMIN, 403)      — caller removing someone else
      AppError(USER_NOT_FOUND, 404)       — target is not a member
      AppError(LAST_ADMIN, 422)           — target is the only admin
      AppError(OUTSTANDING_BALANCE, 422)  — target's balance is not zero
    """
    membership_service.get_group_or_404(group_id, session)
    membership_service.require_member(group_id, caller_id, session)

    if caller_id != target_user_id:
        membership_service.require_admin(group_id, caller_id, session)

    ledger_service.lock_group(group_id, session)
    membership = _get_target_membership_or_404(group_id, target_user_id, session)
    _ensure_admin_remains(group_id, membership, session)

    ledger_service.drop_balance_row(group_id, target_user_id, session)
    session.delete(membership)
    session.flush()

    logger.info(
        "User %s removed from group %s by user %s",
        target_user_id, group_id, caller_id,
    )
