# labels.py — Labels and their attachment to tasks
import logging
from typing import Any, Dict, List, Tuple

from sqlalchemy import select, func, or_, delete
from sqlalchemy.ext.asyncio import AsyncSession

import access
from errors import LabelIsAlreadyOnTask, LabelDoesNotExist
from models import Label, LabelTask, Task, utcnow
from pagination import get_limit_and_offset

logger = logging.getLogger("donelist.labels")


def label_to_dict(label: Label) -> Dict[str, Any]:
    return {
        "id": label.id,
        "title": label.title,
        "description": label.description or "",
        "hex_color": label.hex_color or "",
        "created_by_id": label.created_by_id,
        "created": label.created.isoformat() if label.created else None,
        "updated": label.updated.isoformat() if label.updated else None,
    }


async def create_label(
    db: AsyncSession, title: str, created_by_id: int, description: str = "", hex_color: str = "",
) -> Label:
    label = Label(
        title=title,
        description=description or "",
        hex_color=(hex_color or "").lstrip("#"),
        created_by_id=created_by_id,
    )
    db.add(label)
    await db.flush()
    return label


async def update_label(db: AsyncSession, label: Label, changes: Dict[str, Any]) -> Label:
    if changes.get("title"):
        label.title = changes["title"]
    if changes.get("description") is not None:
        label.description = changes["description"]
    if changes.get("hex_color") is not None:
        label.hex_color = changes["hex_color"].lstrip("#")
    label.updated = utcnow()
    db.add(label)
    await db.flush()
    return label


async def delete_label(db: AsyncSession, label: Label) -> None:
    await db.execute(delete(LabelTask).where(LabelTask.label_id == label.id))
    await db.delete(label)
    await db.flush()


async def list_labels(
    db: AsyncSession, principal, search: str = "", page: int = 1, per_page: int = 0,
) -> Tuple[List[Label], int]:
    """Labels the principal created plus labels on tasks it can read."""
    list_ids = await access.readable_list_ids(db, principal)
    conditions = []
    if principal.kind == "user":
        conditions.append(Label.created_by_id == principal.id)
    if list_ids:
        conditions.append(Label.id.in_(
            select(LabelTask.label_id).join(Task, Task.id == LabelTask.task_id).where(Task.list_id.in_(list_ids))
        ))
    if not conditions:
        return [], 0

    query = select(Label).where(or_(*conditions))
    if search:
        query = query.where(Label.title.ilike(f"%{search}%"))
    total = (await db.execute(select(func.count()).select_from(query.subquery()))).scalar() or 0
    limit, offset = get_limit_and_offset(page, per_page)
    result = await db.execute(query.order_by(Label.id).limit(limit).offset(offset))
    return list(result.scalars().all()), total


async def add_label_to_task(db: AsyncSession, task: Task, label: Label) -> LabelTask:
    existing = await db.execute(
        select(LabelTask).where(LabelTask.task_id == task.id, LabelTask.label_id == label.id)
    )
    if existing.scalar_one_or_none() is not None:
        raise LabelIsAlreadyOnTask(task_id=task.id, label_id=label.id)
    label_task = LabelTask(task_id=task.id, label_id=label.id)
    db.add(label_task)
    await db.flush()
    return label_task


async def remove_label_from_task(db: AsyncSession, task: Task, label_id: int) -> None:
    existing = await db.execute(
        select(LabelTask).where(LabelTask.task_id == task.id, LabelTask.label_id == label_id)
    )
    label_task = existing.scalar_one_or_none()
    if label_task is None:
        raise LabelDoesNotExist(label_id=label_id)
    await db.delete(label_task)
    await db.flush()


async def labels_of_task(db: AsyncSession, task_id: int) -> List[Label]:
    result = await db.execute(
        select(Label).join(LabelTask, LabelTask.label_id == Label.id)
        .where(LabelTask.task_id == task_id).order_by(Label.id)
    )
    return list(result.scalars().all())


async def replace_task_labels(db: AsyncSession, task: Task, wanted: List[Label]) -> List[Label]:
    """Make ``wanted`` the exact label set of the task.

    Labels already on the task and in ``wanted`` are left as they are.
    """
    wanted_ids = {label.id for label in wanted}
    result = await db.execute(select(LabelTask).where(LabelTask.task_id == task.id))
    current = {lt.label_id: lt for lt in result.scalars().all()}

    for label_id, label_task in current.items():
        if label_id not in wanted_ids:
            await db.delete(label_task)
    for label_id in sorted(wanted_ids - set(current)):
        db.add(LabelTask(task_id=task.id, label_id=label_id))
    await db.flush()

    logger.debug(
        f"Task {task.id} labels: +{len(wanted_ids - set(current))} -{len(set(current) - wanted_ids)}"
    )
    return await labels_of_task(db, task.id)
