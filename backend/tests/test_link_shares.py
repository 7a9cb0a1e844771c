# tests/test_link_shares.py — Link shares, password protection and link-share tokens
import pytest

import access
import link_sharing
import lists as list_service
import namespaces as namespace_service
from errors import (
    InvalidRight, LinkSharePasswordRequired, LinkSharePasswordInvalid, ListShareDoesNotExist,
)
from rights import Right
from tests.conftest import as_principal, get_auth_headers, get_link_share_headers, link_share_principal


async def _list_for(db, owner, title="Shared"):
    ns = await namespace_service.create_namespace(db, "Work", owner.id)
    lst = await list_service.create_list(db, ns.id, title, owner.id)
    await db.commit()
    return lst


# ============================================================
# SERVICE
# ============================================================

@pytest.mark.asyncio
async def test_create_link_share_generates_hash(db_session, test_user):
    lst = await _list_for(db_session, test_user)
    share = await link_sharing.create_link_share(db_session, lst.id, Right.READ, as_principal(test_user))
    assert len(share.hash) == link_sharing.HASH_LENGTH
    assert share.hash.isalnum()
    assert share.shared_by_id == test_user.id
    assert share.password is None


@pytest.mark.asyncio
async def test_create_link_share_rejects_invalid_right(db_session, test_user):
    lst = await _list_for(db_session, test_user)
    with pytest.raises(InvalidRight):
        await link_sharing.create_link_share(db_session, lst.id, 5, as_principal(test_user))


@pytest.mark.asyncio
async def test_password_share_requires_password(db_session, test_user):
    lst = await _list_for(db_session, test_user)
    share = await link_sharing.create_link_share(
        db_session, lst.id, Right.READ, as_principal(test_user), password="opensesame",
    )
    await db_session.commit()
    assert share.password != "opensesame"

    with pytest.raises(LinkSharePasswordRequired) as exc:
        await link_sharing.authenticate_link_share(db_session, share.hash, None)
    assert exc.value.code == 13001

    with pytest.raises(LinkSharePasswordInvalid) as exc:
        await link_sharing.authenticate_link_share(db_session, share.hash, "wrong")
    assert exc.value.code == 13002

    token, authed = await link_sharing.authenticate_link_share(db_session, share.hash, "opensesame")
    assert token
    assert authed.id == share.id


@pytest.mark.asyncio
async def test_unknown_hash(db_session):
    with pytest.raises(ListShareDoesNotExist):
        await link_sharing.authenticate_link_share(db_session, "x" * 40)


@pytest.mark.asyncio
async def test_link_share_principal_rights(db_session, test_user):
    lst = await _list_for(db_session, test_user)
    other = await _list_for(db_session, test_user, "Private")
    share = await link_sharing.create_link_share(db_session, lst.id, Right.ADMIN, as_principal(test_user))
    await db_session.commit()
    principal = link_share_principal(share)

    assert await access.list_right(db_session, lst.id, principal) == Right.READ_WRITE
    assert not await access.is_list_admin(db_session, lst.id, principal)
    assert await access.list_right(db_session, other.id, principal) is None
    assert await access.readable_list_ids(db_session, principal) == {lst.id}
    assert not await access.can_read_namespace(db_session, lst.namespace_id, principal)


# ============================================================
# HTTP
# ============================================================

@pytest.mark.asyncio
async def test_share_and_authenticate_over_http(client, db_session, test_user, other_user):
    lst = await _list_for(db_session, test_user)

    response = await client.post(
        f"/api/v1/lists/{lst.id}/shares",
        json={"right": 0, "name": "for bob", "password": "letmein1"},
        headers=get_auth_headers(test_user),
    )
    assert response.status_code == 201
    share = response.json()
    assert share["password"] == ""
    assert share["shared_by"]["username"] == "alice"
    share_hash = share["hash"]

    response = await client.post(f"/api/v1/shares/{share_hash}/auth")
    assert response.status_code == 412
    assert response.json()["code"] == 13001

    response = await client.post(f"/api/v1/shares/{share_hash}/auth", json={"password": "nope"})
    assert response.status_code == 403
    assert response.json()["code"] == 13002

    response = await client.post(f"/api/v1/shares/{share_hash}/auth", json={"password": "letmein1"})
    assert response.status_code == 200
    body = response.json()
    assert body["list_id"] == lst.id
    assert body["right"] == 0
    headers = {"Authorization": f"Bearer {body['token']}"}

    response = await client.get(f"/api/v1/lists/{lst.id}", headers=headers)
    assert response.status_code == 200
    assert response.json()["title"] == "Shared"

    response = await client.post(f"/api/v1/lists/{lst.id}/tasks", json={"title": "Nope"}, headers=headers)
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_write_share_can_create_tasks(client, db_session, test_user):
    lst = await _list_for(db_session, test_user)
    share = await link_sharing.create_link_share(db_session, lst.id, Right.READ_WRITE, as_principal(test_user))
    await db_session.commit()

    response = await client.post(
        f"/api/v1/lists/{lst.id}/tasks", json={"title": "From the link"}, headers=get_link_share_headers(share),
    )
    assert response.status_code == 201
    assert response.json()["created_by_id"] is None


@pytest.mark.asyncio
async def test_link_share_cannot_use_user_endpoints(client, db_session, test_user):
    lst = await _list_for(db_session, test_user)
    share = await link_sharing.create_link_share(db_session, lst.id, Right.READ, as_principal(test_user))
    await db_session.commit()
    headers = get_link_share_headers(share)

    response = await client.post("/api/v1/namespaces", json={"title": "Mine"}, headers=headers)
    assert response.status_code == 403
    response = await client.get("/api/v1/teams", headers=headers)
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_reading_shares_needs_list_access(client, db_session, test_user, other_user):
    lst = await _list_for(db_session, test_user)
    await link_sharing.create_link_share(db_session, lst.id, Right.READ, as_principal(test_user))
    await db_session.commit()

    response = await client.get(f"/api/v1/lists/{lst.id}/shares", headers=get_auth_headers(other_user))
    assert response.status_code == 403
    assert response.json()["code"] == 3004

    response = await client.get(f"/api/v1/lists/{lst.id}/shares", headers=get_auth_headers(test_user))
    assert response.status_code == 200
    assert len(response.json()) == 1
    assert response.headers["x-pagination-result-count"] == "1"


@pytest.mark.asyncio
async def test_delete_link_share(client, db_session, test_user):
    lst = await _list_for(db_session, test_user)
    share = await link_sharing.create_link_share(db_session, lst.id, Right.READ, as_principal(test_user))
    await db_session.commit()
    headers = get_auth_headers(test_user)

    response = await client.delete(f"/api/v1/lists/{lst.id}/shares/{share.id}", headers=headers)
    assert response.status_code == 200
    response = await client.get(f"/api/v1/lists/{lst.id}/shares/{share.id}", headers=headers)
    assert response.status_code == 404
    assert response.json()["code"] == 3006
