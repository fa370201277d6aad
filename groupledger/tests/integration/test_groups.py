"""
tests/integration/test_groups.py — Groups and membership administration.

Endpoints covered:
  POST   /groups                   → 201
  GET    /groups                   → 200
  GET    /groups/:id               → 200 / 403 / 404
  POST   /groups/:id/members       → 201 / 403 / 404 / 409
  PATCH  /groups/:id/members/:uid  → 200 / 422
  DELETE /groups/:id/members/:uid  → 200 / 403 / 422
"""

from __future__ import annotations

from .conftest import (
    add_member,
    auth_headers,
    create_user,
    make_expense,
    make_group,
    make_group_with_members,
)


def _members_by_id(client, caller_id: int, group_id: int) -> dict[int, dict]:
    resp = client.get(f"/api/v1/groups/{group_id}", headers=auth_headers(caller_id))
    assert resp.status_code == 200
    return {m["id"]: m for m in resp.get_json()["data"]["members"]}


def _set_role(client, caller_id: int, group_id: int, user_id: int, role: str):
    return client.patch(
        f"/api/v1/groups/{group_id}/members/{user_id}",
        json={"role": role},
        headers=auth_headers(caller_id),
    )


def _remove(client, caller_id: int, group_id: int, user_id: int):
    return client.delete(
        f"/api/v1/groups/{group_id}/members/{user_id}",
        headers=auth_headers(caller_id),
    )


# ── Creation and listing ───────────────────────────────────────────────────

def test_creator_is_owner_and_admin(client):
    alice = create_user(client, "alice")
    group = make_group(client, alice["id"], name="Flatmates")

    assert group["name"] == "Flatmates"
    assert group["owner_user_id"] == alice["id"]
    assert [(m["id"], m["role"]) for m in group["members"]] == [(alice["id"], "admin")]


def test_blank_group_name_is_400(client):
    alice = create_user(client, "alice")
    resp = client.post("/api/v1/groups/", json={"name": "   "}, headers=auth_headers(alice["id"]))
    assert resp.status_code == 400
    assert resp.get_json()["error"]["field"] == "name"


def test_list_groups_shows_callers_role(client):
    group, (alice, bob) = make_group_with_members(client, ["alice", "bob"])
    other = make_group(client, bob["id"], name="Bob's trip")

    resp = client.get("/api/v1/groups/", headers=auth_headers(bob["id"]))
    assert resp.status_code == 200
    roles = {g["id"]: g["role"] for g in resp.get_json()["data"]}
    assert roles == {group["id"]: "member", other["id"]: "admin"}


def test_get_group_requires_membership(client):
    group, _ = make_group_with_members(client, ["alice", "bob"])
    outsider = create_user(client, "mallory")

    resp = client.get(f"/api/v1/groups/{group['id']}", headers=auth_headers(outsider["id"]))
    assert resp.status_code == 403
    assert resp.get_json()["error"]["code"] == "FORBIDDEN"

    resp = client.get("/api/v1/groups/9999", headers=auth_headers(outsider["id"]))
    assert resp.status_code == 404
    assert resp.get_json()["error"]["code"] == "GROUP_NOT_FOUND"


# ── Adding members ─────────────────────────────────────────────────────────

def test_add_member_with_role(client):
    alice = create_user(client, "alice")
    bob = create_user(client, "bob")
    group = make_group(client, alice["id"])

    resp = add_member(client, alice["id"], group["id"], bob["id"], role="admin")
    assert resp.status_code == 201
    data = resp.get_json()["data"]
    assert data["group_id"] == group["id"]
    assert data["id"] == bob["id"]
    assert data["role"] == "admin"


def test_non_admin_cannot_add_members(client):
    group, (alice, bob) = make_group_with_members(client, ["alice", "bob"])
    carol = create_user(client, "carol")

    resp = add_member(client, bob["id"], group["id"], carol["id"])
    assert resp.status_code == 403
    assert resp.get_json()["error"]["code"] == "NOT_GROUP_ADMIN"


def test_add_existing_member_is_409(client):
    group, (alice, bob) = make_group_with_members(client, ["alice", "bob"])

    resp = add_member(client, alice["id"], group["id"], bob["id"])
    assert resp.status_code == 409
    assert resp.get_json()["error"]["code"] == "ALREADY_MEMBER"


def test_add_unknown_user_is_404(client):
    alice = create_user(client, "alice")
    group = make_group(client, alice["id"])

    resp = add_member(client, alice["id"], group["id"], 9999)
    assert resp.status_code == 404
    assert resp.get_json()["error"]["code"] == "USER_NOT_FOUND"


def test_add_member_invalid_role_is_400(client):
    alice = create_user(client, "alice")
    bob = create_user(client, "bob")
    group = make_group(client, alice["id"])

    resp = add_member(client, alice["id"], group["id"], bob["id"], role="owner")
    assert resp.status_code == 400
    assert resp.get_json()["error"]["code"] == "INVALID_ROLE"


# ── Roles ──────────────────────────────────────────────────────────────────

def test_promote_then_demote(client):
    group, (alice, bob) = make_group_with_members(client, ["alice", "bob"])

    resp = _set_role(client, alice["id"], group["id"], bob["id"], "admin")
    assert resp.status_code == 200
    assert resp.get_json()["data"]["role"] == "admin"

    # With two admins, alice may step down.
    resp = _set_role(client, bob["id"], group["id"], alice["id"], "member")
    assert resp.status_code == 200
    assert _members_by_id(client, bob["id"], group["id"])[alice["id"]]["role"] == "member"


def test_demoting_last_admin_is_422(client):
    group, (alice, bob) = make_group_with_members(client, ["alice", "bob"])

    resp = _set_role(client, alice["id"], group["id"], alice["id"], "member")
    assert resp.status_code == 422
    assert resp.get_json()["error"]["code"] == "LAST_ADMIN"
    assert _members_by_id(client, alice["id"], group["id"])[alice["id"]]["role"] == "admin"


def test_role_change_for_non_member_is_404(client):
    alice = create_user(client, "alice")
    bob = create_user(client, "bob")
    group = make_group(client, alice["id"])

    resp = _set_role(client, alice["id"], group["id"], bob["id"], "admin")
    assert resp.status_code == 404
    assert resp.get_json()["error"]["code"] == "USER_NOT_FOUND"


# ── Removal ────────────────────────────────────────────────────────────────

def test_admin_removes_member(client):
    group, (alice, bob) = make_group_with_members(client, ["alice", "bob"])

    resp = _remove(client, alice["id"], group["id"], bob["id"])
    assert resp.status_code == 200
    assert resp.get_json()["data"] == {"removed": True, "group_id": group["id"], "user_id": bob["id"]}
    assert bob["id"] not in _members_by_id(client, alice["id"], group["id"])


def test_member_may_leave_but_not_remove_others(client):
    group, (alice, bob, carol) = make_group_with_members(client, ["alice", "bob", "carol"])

    resp = _remove(client, bob["id"], group["id"], carol["id"])
    assert resp.status_code == 403
    assert resp.get_json()["error"]["code"] == "NOT_GROUP_ADMIN"

    resp = _remove(client, bob["id"], group["id"], bob["id"])
    assert resp.status_code == 200
    assert set(_members_by_id(client, alice["id"], group["id"])) == {alice["id"], carol["id"]}


def test_removing_last_admin_is_422(client):
    group, (alice, bob) = make_group_with_members(client, ["alice", "bob"])

    resp = _remove(client, alice["id"], group["id"], alice["id"])
    assert resp.status_code == 422
    assert resp.get_json()["error"]["code"] == "LAST_ADMIN"


def test_member_with_balance_cannot_leave(client):
    group, (alice, bob) = make_group_with_members(client, ["alice", "bob"])
    resp = make_expense(
        client, alice["id"], group["id"], alice["id"], "20.00",
        [{"user_id": alice["id"]}, {"user_id": bob["id"]}],
    )
    assert resp.status_code == 201

    resp = _remove(client, alice["id"], group["id"], bob["id"])
    assert resp.status_code == 422
    assert resp.get_json()["error"]["code"] == "OUTSTANDING_BALANCE"
    assert bob["id"] in _members_by_id(client, alice["id"], group["id"])
