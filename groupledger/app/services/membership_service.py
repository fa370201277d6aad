"""
services/membership_service.py — Group Membership Authority.

The ledger core consults this module, and only this module, to learn who
belongs to a group and who may administer it:

  is_member(group_id, user_id, session)   -> bool
  is_admin(group_id, user_id, session)    -> bool
  list_member_ids(group_id, session)      -> list[int]   (ascending user id)

plus the guards every service uses before touching group data:

  get_group_or_404   GROUP_NOT_FOUND (404)
  require_member     FORBIDDEN (403)        — caller not in the group
  require_admin      NOT_GROUP_ADMIN (403)  — caller in the group, not admin

Layer rules:
  - No Flask imports. Receives plain ints and a SQLAlchemy session.
  - Read-only. Membership changes live in group_service.py.
"""

from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.orm import Session

from groupledger.app.errors import AppError, ErrorCode
from groupledger.app.models.group import Group
from groupledger.app.models.membership import MemberRole, Membership


def get_membership(group_id: int, user_id: int, session: Session) -> Membership | None:
    return session.execute(
        select(Membership).where(
            Membership.group_id == group_id,
            Membership.user_id == user_id,
        )
    ).scalar_one_or_none()


def is_member(group_id: int, user_id: int, session: Session) -> bool:
    return get_membership(group_id, user_id, session) is not None


def is_admin(group_id: int, user_id: int, session: Session) -> bool:
    membership = get_membership(group_id, user_id, session)
    return membership is not None and membership.role == MemberRole.ADMIN


def list_member_ids(group_id: int, session: Session) -> list[int]:
    """Returns the user_ids of all current members, ascending."""
    stmt = (
        select(Membership.user_id)
        .where(Membership.group_id == group_id)
        .order_by(Membership.user_id.asc())
    )
    return list(session.execute(stmt).scalars().all())


def count_admins(group_id: int, session: Session) -> int:
    stmt = select(Membership.user_id).where(
        Membership.group_id == group_id,
        Membership.role == MemberRole.ADMIN,
    )
    return len(session.execute(stmt).scalars().all())


# ── Guards ─────────────────────────────────────────────────────────────────

def get_group_or_404(group_id: int, session: Session) -> Group:
    """Returns the Group or raises GROUP_NOT_FOUND (404)."""
    group = session.get(Group, group_id)
    if group is None:
        raise AppError(
            ErrorCode.GROUP_NOT_FOUND,
            f"Group {group_id} does not exist.",
            404,
        )
    return group


def require_member(group_id: int, user_id: int, session: Session) -> None:
    """
    Raises FORBIDDEN (403) if user_id is not a member of group_id.
    Non-members receive 403, not 404.
    """
    if not is_member(group_id, user_id, session):
        raise AppError(
            ErrorCode.FORBIDDEN,
            f"You are not a member of group {group_id}.",
            403,
        )


def require_admin(group_id: int, user_id: int, session: Session) -> None:
    """Raises NOT_GROUP_ADMIN (403) unless user_id is an admin of group_id."""
    if not is_admin(group_id, user_id, session):
        raise AppError(
            ErrorCode.NOT_GROUP_ADMIN,
            f"Only admins of group {group_id} may perform this action.",
            403,
        )


def resolve_participants(
        group_id: int,
        user_ids: list[int] | None,
        session: Session,
) -> list[int]:
    """
    Returns the participant ids for a settlement, ascending.

    An omitted or empty list means every current member. Otherwise each id
    must be a current member (PARTICIPANT_NOT_MEMBER, 422).
    """
    member_ids = list_member_ids(group_id, session)
    if not user_ids:
        return member_ids

    member_set = set(member_ids)
    for user_id in user_ids:
        if user_id not in member_set:
            raise AppError(
                ErrorCode.PARTICIPANT_NOT_MEMBER,
                f"User {user_id} is not a member of group {group_id}.",
                422,
                field="user_ids",
            )
    return sorted(set(user_ids))
