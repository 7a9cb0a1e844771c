# tests/test_migration.py — Importing a whole namespace/list/task structure
import base64

import pytest
from sqlalchemy import select, func

import buckets as bucket_service
from errors import OnlyOneDoneBucketPerList
from migration import NamespaceStructure, insert_from_structure, get_migration_status, STRUCTURE_MIGRATOR
from models import File, Label, LabelTask, Namespace, Task, TaskList, TaskRelation
from tests.conftest import as_principal, get_auth_headers


def _b64(data: bytes) -> str:
    return base64.b64encode(data).decode()


def _structure():
    return [{
        "title": "Imported",
        "lists": [{
            "title": "Inbox",
            "background": _b64(b"not really a png"),
            "buckets": [
                {"id": 1, "title": "Todo"},
                {"id": 2, "title": "Done", "is_done_bucket": True},
            ],
            "tasks": [
                {
                    "id": 10,
                    "title": "First",
                    "bucket_id": 1,
                    "labels": [{"title": "red", "hex_color": "ff0000"}],
                    "attachments": [{"file": {"name": "a.txt", "size": 3, "content": _b64(b"abc")}}],
                    "related_tasks": {"subtask": [{"id": 11, "title": "Second"}]},
                },
                {
                    "id": 11,
                    "title": "Second",
                    "bucket_id": 2,
                    "done": True,
                    "labels": [{"title": "red", "hex_color": "ff0000"}],
                    "related_tasks": {"parenttask": [{"id": 10, "title": "First"}]},
                },
            ],
        }],
    }]


async def _count(db, column, *conditions) -> int:
    return (await db.execute(select(func.count(column)).where(*conditions))).scalar()


@pytest.mark.asyncio
async def test_import_creates_full_structure(db_session, test_user, file_storage):
    user = as_principal(test_user)
    structure = [NamespaceStructure.model_validate(n) for n in _structure()]
    await insert_from_structure(db_session, structure, user, file_storage)

    lst = (await db_session.execute(select(TaskList).where(TaskList.title == "Inbox"))).scalar_one()
    assert lst.owner_id == user.id
    assert lst.background_file_id is not None

    # Every task had a bucket, so the default bucket was dropped
    buckets = await bucket_service.get_buckets(db_session, lst.id)
    assert [b.title for b in buckets] == ["Todo", "Done"]

    tasks = (await db_session.execute(select(Task).where(Task.list_id == lst.id).order_by(Task.id))).scalars().all()
    assert [t.title for t in tasks] == ["First", "Second"]
    assert tasks[0].bucket_id == buckets[0].id
    assert tasks[1].bucket_id == buckets[1].id
    assert tasks[1].done is True

    assert await _count(db_session, TaskRelation.id) == 2
    assert await _count(db_session, Label.id) == 1
    assert await _count(db_session, LabelTask.id) == 2

    attachment_file = (await db_session.execute(select(File).where(File.name == "a.txt"))).scalar_one()
    assert file_storage.read(attachment_file) == b"abc"

    status = await get_migration_status(db_session, user.id, STRUCTURE_MIGRATOR)
    assert status is not None


@pytest.mark.asyncio
async def test_import_keeps_default_bucket_when_needed(db_session, test_user, file_storage):
    user = as_principal(test_user)
    structure = [NamespaceStructure.model_validate({
        "title": "Loose",
        "lists": [{
            "title": "Mixed",
            "buckets": [{"id": 1, "title": "Todo"}],
            "tasks": [{"title": "No bucket"}, {"title": "Has bucket", "bucket_id": 1}],
        }],
    })]
    await insert_from_structure(db_session, structure, user, file_storage)

    lst = (await db_session.execute(select(TaskList).where(TaskList.title == "Mixed"))).scalar_one()
    buckets = await bucket_service.get_buckets(db_session, lst.id)
    assert [b.title for b in buckets] == [bucket_service.DEFAULT_BUCKET_TITLE, "Todo"]


@pytest.mark.asyncio
async def test_related_task_without_id_is_created(db_session, test_user, file_storage):
    user = as_principal(test_user)
    structure = [NamespaceStructure.model_validate({
        "title": "Rel",
        "lists": [{
            "title": "Only",
            "tasks": [{"id": 1, "title": "Main", "related_tasks": {"related": [{"title": "Sidekick"}]}}],
        }],
    })]
    await insert_from_structure(db_session, structure, user, file_storage)

    titles = (await db_session.execute(select(Task.title).order_by(Task.id))).scalars().all()
    assert titles == ["Main", "Sidekick"]
    assert await _count(db_session, TaskRelation.id) == 2


@pytest.mark.asyncio
async def test_migrate_over_http(client, test_user):
    headers = get_auth_headers(test_user)

    response = await client.get("/api/v1/migration/structure/status", headers=headers)
    assert response.status_code == 200
    assert response.json()["id"] == 0

    response = await client.post("/api/v1/migration/structure/migrate", json=_structure(), headers=headers)
    assert response.status_code == 200

    response = await client.get("/api/v1/namespaces", headers=headers)
    namespaces = response.json()
    assert [n["title"] for n in namespaces] == ["Imported"]
    assert [entry["title"] for entry in namespaces[0]["lists"]] == ["Inbox"]

    response = await client.get("/api/v1/migration/structure/status", headers=headers)
    status = response.json()
    assert status["migrator_name"] == STRUCTURE_MIGRATOR
    assert status["time"] is not None


@pytest.mark.asyncio
async def test_failed_import_removes_stored_files(db_session, test_user, file_storage):
    structure = _structure()
    structure[0]["lists"][0]["buckets"].append({"id": 3, "title": "Also done", "is_done_bucket": True})

    with pytest.raises(OnlyOneDoneBucketPerList):
        await insert_from_structure(
            db_session, [NamespaceStructure.model_validate(n) for n in structure], as_principal(test_user), file_storage,
        )
    assert list(file_storage.root.glob("*")) == []


@pytest.mark.asyncio
async def test_failed_import_rolls_back_everything(client, db_session, test_user):
    structure = _structure()
    structure[0]["lists"][0]["buckets"].append({"id": 3, "title": "Also done", "is_done_bucket": True})
    headers = get_auth_headers(test_user)

    response = await client.post("/api/v1/migration/structure/migrate", json=structure, headers=headers)
    assert response.status_code == 412
    assert response.json()["code"] == 10005

    assert await _count(db_session, Namespace.id) == 0
    assert await _count(db_session, TaskList.id) == 0

    response = await client.get("/api/v1/migration/structure/status", headers=headers)
    assert response.json()["id"] == 0


@pytest.mark.asyncio
async def test_import_over_bucket_limit_fails(client, db_session, test_user):
    structure = [{
        "title": "Full",
        "lists": [{
            "title": "Tight",
            "buckets": [{"id": 1, "title": "One slot", "limit": 1}],
            "tasks": [{"title": "A", "bucket_id": 1}, {"title": "B", "bucket_id": 1}],
        }],
    }]
    response = await client.post(
        "/api/v1/migration/structure/migrate", json=structure, headers=get_auth_headers(test_user),
    )
    assert response.status_code == 412
    assert response.json()["code"] == 10004
    assert await _count(db_session, Task.id) == 0
