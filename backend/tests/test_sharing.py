# tests/test_sharing.py — User and team shares on lists and namespaces
import pytest

import access
import link_sharing
import lists as list_service
import namespaces as namespace_service
import sharing
import teams as team_service
from errors import (
    InvalidRight, UserAlreadyHasAccess, UserAlreadyHasNamespaceAccess,
    UserDoesNotExist, UserDoesNotHaveAccessToList, NeedToHaveListReadAccess,
)
from rights import Right
from tests.conftest import (
    as_principal, get_auth_headers, get_link_share_headers,
)


async def _namespace_with_list(db, owner):
    ns = await namespace_service.create_namespace(db, "Home", owner.id)
    lst = await list_service.create_list(db, ns.id, "Groceries", owner.id)
    await db.commit()
    return ns, lst


# ============================================================
# SERVICE
# ============================================================

@pytest.mark.asyncio
async def test_share_list_with_user_grants_right(db_session, test_user, other_user):
    _, lst = await _namespace_with_list(db_session, test_user)
    row, resolved = await sharing.list_users.create(
        db_session, lst.id, "bob", Right.READ_WRITE, as_principal(test_user),
    )
    await db_session.commit()
    assert resolved.id == other_user.id
    assert row.right == Right.READ_WRITE
    assert await access.list_right(db_session, lst.id, as_principal(other_user)) == Right.READ_WRITE


@pytest.mark.asyncio
async def test_share_list_with_owner_is_rejected(db_session, test_user):
    _, lst = await _namespace_with_list(db_session, test_user)
    with pytest.raises(UserAlreadyHasAccess) as exc:
        await sharing.list_users.create(db_session, lst.id, "alice", Right.READ, as_principal(test_user))
    assert exc.value.code == 7002


@pytest.mark.asyncio
async def test_share_namespace_with_owner_is_rejected(db_session, test_user):
    ns, _ = await _namespace_with_list(db_session, test_user)
    with pytest.raises(UserAlreadyHasNamespaceAccess) as exc:
        await sharing.namespace_users.create(db_session, ns.id, "alice", Right.READ, as_principal(test_user))
    assert exc.value.code == 5011


@pytest.mark.asyncio
async def test_duplicate_share_is_rejected(db_session, test_user, other_user):
    _, lst = await _namespace_with_list(db_session, test_user)
    doer = as_principal(test_user)
    await sharing.list_users.create(db_session, lst.id, "bob", Right.READ, doer)
    with pytest.raises(UserAlreadyHasAccess):
        await sharing.list_users.create(db_session, lst.id, "bob", Right.ADMIN, doer)


@pytest.mark.asyncio
async def test_share_with_unknown_user(db_session, test_user):
    _, lst = await _namespace_with_list(db_session, test_user)
    with pytest.raises(UserDoesNotExist):
        await sharing.list_users.create(db_session, lst.id, "nobody", Right.READ, as_principal(test_user))


@pytest.mark.asyncio
async def test_invalid_right_is_rejected_before_lookup(db_session, test_user):
    _, lst = await _namespace_with_list(db_session, test_user)
    with pytest.raises(InvalidRight):
        await sharing.list_users.create(db_session, lst.id, "nobody", 7, as_principal(test_user))


@pytest.mark.asyncio
async def test_update_and_delete_share(db_session, test_user, other_user):
    _, lst = await _namespace_with_list(db_session, test_user)
    doer = as_principal(test_user)
    await sharing.list_users.create(db_session, lst.id, "bob", Right.READ, doer)

    row, _ = await sharing.list_users.update(db_session, lst.id, "bob", Right.ADMIN, doer)
    assert row.right == Right.ADMIN
    assert await access.is_list_admin(db_session, lst.id, as_principal(other_user))

    await sharing.list_users.delete(db_session, lst.id, "bob", doer)
    assert await access.list_right(db_session, lst.id, as_principal(other_user)) is None
    with pytest.raises(UserDoesNotHaveAccessToList):
        await sharing.list_users.delete(db_session, lst.id, "bob", doer)


@pytest.mark.asyncio
async def test_team_share_reaches_members(db_session, test_user, other_user, third_user):
    ns, lst = await _namespace_with_list(db_session, test_user)
    team = await team_service.create_team(db_session, "Flatmates", other_user.id)
    await team_service.add_member(db_session, team, "carol")
    await sharing.namespace_teams.create(db_session, ns.id, team.id, Right.READ, as_principal(test_user))
    await db_session.commit()

    assert await access.list_right(db_session, lst.id, as_principal(third_user)) == Right.READ
    assert lst.id in await access.readable_list_ids(db_session, as_principal(third_user))


@pytest.mark.asyncio
async def test_read_all_needs_read_access(db_session, test_user, other_user):
    _, lst = await _namespace_with_list(db_session, test_user)
    with pytest.raises(NeedToHaveListReadAccess):
        await sharing.list_users.read_all(db_session, lst.id, as_principal(other_user))


@pytest.mark.asyncio
async def test_read_all_searches_and_counts(db_session, test_user, other_user, third_user):
    _, lst = await _namespace_with_list(db_session, test_user)
    doer = as_principal(test_user)
    await sharing.list_users.create(db_session, lst.id, "bob", Right.READ, doer)
    await sharing.list_users.create(db_session, lst.id, "carol", Right.READ_WRITE, doer)

    items, total = await sharing.list_users.read_all(db_session, lst.id, doer)
    assert total == 2
    assert [i["username"] for i in items] == ["bob", "carol"]

    items, total = await sharing.list_users.read_all(db_session, lst.id, doer, search="car")
    assert total == 1
    assert items[0]["right"] == Right.READ_WRITE


# ============================================================
# HTTP
# ============================================================

@pytest.mark.asyncio
async def test_share_list_over_http(client, db_session, test_user, other_user):
    _, lst = await _namespace_with_list(db_session, test_user)
    response = await client.post(
        f"/api/v1/lists/{lst.id}/users",
        json={"user_id": "bob", "right": 1},
        headers=get_auth_headers(test_user),
    )
    assert response.status_code == 201
    data = response.json()
    assert data["user_id"] == "bob"
    assert data["right"] == 1

    response = await client.get(f"/api/v1/lists/{lst.id}", headers=get_auth_headers(other_user))
    assert response.status_code == 200
    assert response.json()["max_right"] == 1


@pytest.mark.asyncio
async def test_share_with_invalid_right_over_http(client, db_session, test_user, other_user):
    _, lst = await _namespace_with_list(db_session, test_user)
    response = await client.post(
        f"/api/v1/lists/{lst.id}/users",
        json={"user_id": "bob", "right": 3},
        headers=get_auth_headers(test_user),
    )
    assert response.status_code == 400
    assert response.json()["code"] == 9001


@pytest.mark.asyncio
async def test_duplicate_share_over_http(client, db_session, test_user, other_user):
    _, lst = await _namespace_with_list(db_session, test_user)
    headers = get_auth_headers(test_user)
    first = await client.post(f"/api/v1/lists/{lst.id}/users", json={"user_id": "bob"}, headers=headers)
    second = await client.post(f"/api/v1/lists/{lst.id}/users", json={"user_id": "bob"}, headers=headers)
    assert first.status_code == 201
    assert second.status_code == 409
    assert second.json()["code"] == 7002


@pytest.mark.asyncio
async def test_write_right_cannot_share(client, db_session, test_user, other_user, third_user):
    _, lst = await _namespace_with_list(db_session, test_user)
    await sharing.list_users.create(db_session, lst.id, "bob", Right.READ_WRITE, as_principal(test_user))
    await db_session.commit()

    response = await client.post(
        f"/api/v1/lists/{lst.id}/users",
        json={"user_id": "carol", "right": 0},
        headers=get_auth_headers(other_user),
    )
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_only_admin_removes_a_write_share(client, db_session, test_user, other_user):
    _, lst = await _namespace_with_list(db_session, test_user)
    await sharing.list_users.create(db_session, lst.id, "bob", Right.READ_WRITE, as_principal(test_user))
    await db_session.commit()
    bob = get_auth_headers(other_user)

    response = await client.delete(f"/api/v1/lists/{lst.id}/users/bob", headers=bob)
    assert response.status_code == 403

    response = await client.delete(f"/api/v1/lists/{lst.id}/users/bob", headers=get_auth_headers(test_user))
    assert response.status_code == 200

    response = await client.get(f"/api/v1/lists/{lst.id}", headers=bob)
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_link_share_cannot_manage_shares(client, db_session, test_user, other_user):
    _, lst = await _namespace_with_list(db_session, test_user)
    share = await link_sharing.create_link_share(db_session, lst.id, Right.READ_WRITE, as_principal(test_user))
    await db_session.commit()
    headers = get_link_share_headers(share)

    response = await client.post(f"/api/v1/lists/{lst.id}/users", json={"user_id": "bob"}, headers=headers)
    assert response.status_code == 403
    assert response.json()["code"] == 1

    response = await client.post(f"/api/v1/lists/{lst.id}/shares", json={"right": 0}, headers=headers)
    assert response.status_code == 403

    response = await client.get(f"/api/v1/lists/{lst.id}/shares", headers=headers)
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_share_creates_notification(client, db_session, test_user, other_user):
    _, lst = await _namespace_with_list(db_session, test_user)
    await client.post(
        f"/api/v1/lists/{lst.id}/users",
        json={"user_id": "bob", "right": 0},
        headers=get_auth_headers(test_user),
    )

    response = await client.get("/api/v1/notifications", headers=get_auth_headers(other_user))
    assert response.status_code == 200
    notifications = response.json()
    assert len(notifications) == 1
    assert notifications[0]["name"] == "list.shared.user"
    assert "Groceries" in notifications[0]["subject"]

    response = await client.get("/api/v1/notifications", headers=get_auth_headers(test_user))
    assert response.json() == []


@pytest.mark.asyncio
async def test_read_shares_is_paginated(client, db_session, test_user, other_user, third_user):
    _, lst = await _namespace_with_list(db_session, test_user)
    doer = as_principal(test_user)
    await sharing.list_users.create(db_session, lst.id, "bob", Right.READ, doer)
    await sharing.list_users.create(db_session, lst.id, "carol", Right.READ, doer)
    await db_session.commit()

    response = await client.get(
        f"/api/v1/lists/{lst.id}/users?per_page=1&page=2",
        headers=get_auth_headers(test_user),
    )
    assert response.status_code == 200
    assert [u["username"] for u in response.json()] == ["carol"]
    assert response.headers["x-pagination-total-pages"] == "2"
    assert response.headers["x-pagination-result-count"] == "1"
