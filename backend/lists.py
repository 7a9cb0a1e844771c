# lists.py — Lists: creation with a default bucket, updates, cascading delete
import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import select, delete
from sqlalchemy.ext.asyncio import AsyncSession

import buckets as bucket_service
from errors import (
    ListTitleCannotBeEmpty, ListMustBelongToANamespace, ListCannotBelongToAPseudoNamespace,
)
from models import (
    TaskList, Task, Bucket, ListUser, ListTeam, LinkSharing, File,
    TaskAssignee, TaskReminder, TaskRelation, TaskAttachment, LabelTask, utcnow,
)

logger = logging.getLogger("donelist.lists")


def _ts(dt) -> Optional[str]:
    return dt.isoformat() if dt else None


def list_to_dict(lst: TaskList) -> Dict[str, Any]:
    return {
        "id": lst.id,
        "title": lst.title,
        "description": lst.description or "",
        "identifier": lst.identifier or "",
        "hex_color": lst.hex_color or "",
        "owner_id": lst.owner_id,
        "namespace_id": lst.namespace_id,
        "is_archived": bool(lst.is_archived),
        "background_file_id": lst.background_file_id,
        "position": lst.position,
        "created": _ts(lst.created),
        "updated": _ts(lst.updated),
    }


def validate_namespace_id(namespace_id: Optional[int]) -> None:
    if not namespace_id:
        raise ListMustBelongToANamespace()
    if namespace_id < 0:
        raise ListCannotBelongToAPseudoNamespace(namespace_id=namespace_id)


async def create_list(
    db: AsyncSession,
    namespace_id: int,
    title: str,
    owner_id: int,
    description: str = "",
    identifier: str = "",
    hex_color: str = "",
    is_archived: bool = False,
    position: Optional[float] = None,
) -> TaskList:
    """Create a list and its default bucket. Access is checked by the caller."""
    validate_namespace_id(namespace_id)
    if not title or not title.strip():
        raise ListTitleCannotBeEmpty()

    lst = TaskList(
        title=title,
        description=description or "",
        identifier=identifier or "",
        hex_color=(hex_color or "").lstrip("#"),
        owner_id=owner_id,
        namespace_id=namespace_id,
        is_archived=is_archived,
        position=position or 0,
    )
    db.add(lst)
    await db.flush()
    if position is None:
        lst.position = float(lst.id) * 2 ** 16
        await db.flush()

    await bucket_service.create_bucket(db, lst.id, bucket_service.DEFAULT_BUCKET_TITLE, owner_id)
    logger.info(f"Created list {lst.id} in namespace {namespace_id}")
    return lst


async def update_list(db: AsyncSession, lst: TaskList, changes: Dict[str, Any]) -> TaskList:
    if "title" in changes:
        if not changes["title"] or not changes["title"].strip():
            raise ListTitleCannotBeEmpty()
        lst.title = changes["title"]
    for field in ("description", "identifier", "position"):
        if changes.get(field) is not None:
            setattr(lst, field, changes[field])
    if changes.get("hex_color") is not None:
        lst.hex_color = changes["hex_color"].lstrip("#")
    if changes.get("is_archived") is not None:
        lst.is_archived = bool(changes["is_archived"])
    lst.updated = utcnow()
    db.add(lst)
    await db.flush()
    return lst


async def set_list_background(db: AsyncSession, lst: TaskList, file: File) -> TaskList:
    lst.background_file_id = file.id
    lst.updated = utcnow()
    db.add(lst)
    await db.flush()
    return lst


async def delete_list(db: AsyncSession, lst: TaskList) -> None:
    """Delete a list and everything owned by it."""
    task_ids = select(Task.id).where(Task.list_id == lst.id)
    for model in (TaskAssignee, TaskReminder, TaskAttachment, LabelTask):
        await db.execute(delete(model).where(model.task_id.in_(task_ids)))
    await db.execute(delete(TaskRelation).where(
        TaskRelation.task_id.in_(task_ids) | TaskRelation.other_task_id.in_(task_ids)
    ))
    await db.execute(delete(Task).where(Task.list_id == lst.id))
    for model in (Bucket, ListUser, ListTeam, LinkSharing):
        await db.execute(delete(model).where(model.list_id == lst.id))
    await db.delete(lst)
    await db.flush()
    logger.info(f"Deleted list {lst.id}")


async def get_lists_by_ids(db: AsyncSession, list_ids, include_archived: bool = False, search: str = "") -> List[TaskList]:
    if not list_ids:
        return []
    query = select(TaskList).where(TaskList.id.in_(list_ids))
    if not include_archived:
        query = query.where(TaskList.is_archived.is_(False))
    if search:
        query = query.where(TaskList.title.ilike(f"%{search}%"))
    result = await db.execute(query.order_by(TaskList.position, TaskList.id))
    return list(result.scalars().all())
