# tasks.py — Tasks: creation, updates, repeating tasks, bucket moves and
# the task sub-resources (assignees, reminders, relations, attachments).
import calendar
import logging
import secrets
from collections import defaultdict
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional, Tuple

from sqlalchemy import select, func, delete, or_, asc, desc
from sqlalchemy.ext.asyncio import AsyncSession

import buckets as bucket_service
from access import get_task_by_id
from errors import (
    TaskCannotBeEmpty, InvalidSortParam, InvalidSortOrder, InvalidRelationKind,
    RelationAlreadyExists, RelationTasksCannotBeTheSame, UserDoesNotExist,
)
from file_storage import FileStorage
from models import (
    Task, TaskList, TaskAssignee, TaskReminder, TaskRelation, TaskAttachment,
    Label, LabelTask, User, File, RepeatMode, RelationKind, utcnow, as_utc,
)
from pagination import get_limit_and_offset

logger = logging.getLogger("donelist.tasks")

SORTABLE_FIELDS = (
    "id", "title", "description", "done", "done_at", "due_date", "created_by_id",
    "list_id", "repeat_after", "priority", "start_date", "end_date", "hex_color",
    "percent_done", "uid", "created", "updated", "position", "index", "bucket_id",
)
SORT_ORDERS = ("asc", "desc")

UPDATABLE_FIELDS = (
    "description", "due_date", "start_date", "end_date", "repeat_after", "repeat_mode",
    "priority", "percent_done", "hex_color", "position",
)

INVERSE_RELATIONS = {
    RelationKind.SUBTASK: RelationKind.PARENTTASK,
    RelationKind.PARENTTASK: RelationKind.SUBTASK,
    RelationKind.RELATED: RelationKind.RELATED,
    RelationKind.DUPLICATEOF: RelationKind.DUPLICATES,
    RelationKind.DUPLICATES: RelationKind.DUPLICATEOF,
    RelationKind.BLOCKING: RelationKind.BLOCKED,
    RelationKind.BLOCKED: RelationKind.BLOCKING,
    RelationKind.PRECEDES: RelationKind.FOLLOWS,
    RelationKind.FOLLOWS: RelationKind.PRECEDES,
    RelationKind.COPIEDFROM: RelationKind.COPIEDTO,
    RelationKind.COPIEDTO: RelationKind.COPIEDFROM,
}


def generate_uid() -> str:
    return secrets.token_hex(20)


def _ts(dt) -> Optional[str]:
    return as_utc(dt).isoformat() if dt else None


# ============================================================
# REPEATING TASKS
# ============================================================

def add_months(dt: datetime, months: int) -> datetime:
    month_index = dt.month - 1 + months
    year = dt.year + month_index // 12
    month = month_index % 12 + 1
    day = min(dt.day, calendar.monthrange(year, month)[1])
    return dt.replace(year=year, month=month, day=day)


def update_done(
    task: Task,
    done: bool,
    reminders: List[datetime],
    now: Optional[datetime] = None,
) -> List[datetime]:
    """Apply a change of the done flag and return the (possibly shifted) reminders.

    Marking a repeating task done advances every date by one interval and
    leaves the task undone. Monthly tasks advance by one calendar month;
    "from current date" tasks restart from now.
    """
    now = as_utc(now or utcnow())

    if task.done and not done:
        task.done = False
        task.done_at = None
        return reminders

    if task.done or not done:
        return reminders

    mode = RepeatMode(task.repeat_mode or 0)
    repeat_after = task.repeat_after or 0
    shift = None

    if mode == RepeatMode.MONTH:
        shift = lambda d: add_months(as_utc(d), 1)
    elif repeat_after > 0 and mode == RepeatMode.FROM_CURRENT_DATE:
        anchor = task.due_date or task.start_date or task.end_date
        delta = (now + timedelta(seconds=repeat_after)) - (as_utc(anchor) if anchor else now)
        shift = lambda d: as_utc(d) + delta
    elif repeat_after > 0:
        interval = timedelta(seconds=repeat_after)
        shift = lambda d: as_utc(d) + interval

    task.done_at = now
    if shift is None:
        task.done = True
        return reminders

    for field in ("due_date", "start_date", "end_date"):
        value = getattr(task, field)
        if value is not None:
            setattr(task, field, shift(value))
    task.done = False
    return [shift(r) for r in reminders]


# ============================================================
# DETAILS
# ============================================================

async def load_details(db: AsyncSession, tasks: List[Task]) -> Dict[int, Dict[str, Any]]:
    """Fetch assignees, reminders, labels, relations and attachments in bulk."""
    ids = [t.id for t in tasks]
    details: Dict[int, Dict[str, Any]] = {
        t.id: {"assignees": [], "reminders": [], "labels": [], "related_tasks": defaultdict(list), "attachments": []}
        for t in tasks
    }
    if not ids:
        return details

    rows = await db.execute(
        select(TaskAssignee.task_id, User).join(User, User.id == TaskAssignee.user_id)
        .where(TaskAssignee.task_id.in_(ids))
    )
    for task_id, user in rows.all():
        details[task_id]["assignees"].append({"id": user.id, "username": user.username, "name": user.name or ""})

    rows = await db.execute(
        select(TaskReminder).where(TaskReminder.task_id.in_(ids)).order_by(TaskReminder.reminder)
    )
    for r in rows.scalars().all():
        details[r.task_id]["reminders"].append(_ts(r.reminder))

    rows = await db.execute(
        select(LabelTask.task_id, Label).join(Label, Label.id == LabelTask.label_id)
        .where(LabelTask.task_id.in_(ids))
    )
    for task_id, label in rows.all():
        details[task_id]["labels"].append({"id": label.id, "title": label.title, "hex_color": label.hex_color or ""})

    rows = await db.execute(select(TaskRelation).where(TaskRelation.task_id.in_(ids)))
    for rel in rows.scalars().all():
        details[rel.task_id]["related_tasks"][rel.relation_kind].append(rel.other_task_id)

    rows = await db.execute(
        select(TaskAttachment, File).join(File, File.id == TaskAttachment.file_id)
        .where(TaskAttachment.task_id.in_(ids))
    )
    for attachment, file in rows.all():
        details[attachment.task_id]["attachments"].append(
            {"id": attachment.id, "file": {"id": file.id, "name": file.name, "size": file.size, "mime": file.mime}}
        )
    return details


def task_to_dict(task: Task, details: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    details = details or {}
    return {
        "id": task.id,
        "title": task.title,
        "description": task.description or "",
        "done": bool(task.done),
        "done_at": _ts(task.done_at),
        "due_date": _ts(task.due_date),
        "start_date": _ts(task.start_date),
        "end_date": _ts(task.end_date),
        "repeat_after": task.repeat_after or 0,
        "repeat_mode": task.repeat_mode or 0,
        "priority": task.priority or 0,
        "percent_done": task.percent_done or 0,
        "hex_color": task.hex_color or "",
        "list_id": task.list_id,
        "bucket_id": task.bucket_id,
        "position": task.position,
        "index": task.index,
        "uid": task.uid,
        "created_by_id": task.created_by_id,
        "assignees": details.get("assignees", []),
        "reminders": details.get("reminders", []),
        "labels": details.get("labels", []),
        "related_tasks": dict(details.get("related_tasks", {})),
        "attachments": details.get("attachments", []),
        "created": _ts(task.created),
        "updated": _ts(task.updated),
    }


async def get_reminders(db: AsyncSession, task_id: int) -> List[datetime]:
    result = await db.execute(
        select(TaskReminder.reminder).where(TaskReminder.task_id == task_id).order_by(TaskReminder.reminder)
    )
    return [as_utc(r) for r in result.scalars().all()]


async def set_reminders(db: AsyncSession, task: Task, reminders: Iterable[datetime]) -> None:
    await db.execute(delete(TaskReminder).where(TaskReminder.task_id == task.id))
    for reminder in reminders:
        db.add(TaskReminder(task_id=task.id, reminder=as_utc(reminder)))
    await db.flush()


async def set_assignees(db: AsyncSession, task: Task, usernames: Iterable[str]) -> None:
    await db.execute(delete(TaskAssignee).where(TaskAssignee.task_id == task.id))
    for username in dict.fromkeys(usernames):
        result = await db.execute(select(User.id).where(User.username == username))
        user_id = result.scalar_one_or_none()
        if user_id is None:
            raise UserDoesNotExist(username=username)
        db.add(TaskAssignee(task_id=task.id, user_id=user_id))
    await db.flush()


# ============================================================
# CREATE / UPDATE / DELETE
# ============================================================

async def _next_index(db: AsyncSession, list_id: int) -> int:
    current = (await db.execute(select(func.max(Task.index)).where(Task.list_id == list_id))).scalar()
    return (current or 0) + 1


async def _target_bucket(db: AsyncSession, list_id: int, bucket_id: Optional[int], done: bool):
    if bucket_id:
        return await bucket_service.get_bucket_for_list(db, bucket_id, list_id)
    if done:
        done_bucket = await bucket_service.get_done_bucket(db, list_id)
        if done_bucket is not None:
            return done_bucket
    return await bucket_service.get_default_bucket(db, list_id)


async def create_task(db: AsyncSession, lst: TaskList, data: Dict[str, Any], created_by_id: Optional[int]) -> Task:
    """Create a task in lst. Access is checked by the caller."""
    title = data.get("title")
    if not title or not title.strip():
        raise TaskCannotBeEmpty()

    done = bool(data.get("done", False))
    bucket = await _target_bucket(db, lst.id, data.get("bucket_id"), done)
    if bucket is not None:
        await bucket_service.check_bucket_limit(db, bucket)
        if bucket.is_done_bucket:
            done = True

    task = Task(
        title=title,
        description=data.get("description") or "",
        done=done,
        done_at=as_utc(data.get("done_at")) or (utcnow() if done else None),
        due_date=as_utc(data.get("due_date")),
        start_date=as_utc(data.get("start_date")),
        end_date=as_utc(data.get("end_date")),
        repeat_after=data.get("repeat_after") or 0,
        repeat_mode=int(data.get("repeat_mode") or 0),
        priority=data.get("priority") or 0,
        percent_done=data.get("percent_done") or 0,
        hex_color=(data.get("hex_color") or "").lstrip("#"),
        list_id=lst.id,
        bucket_id=bucket.id if bucket is not None else None,
        position=data.get("position") or 0,
        index=await _next_index(db, lst.id),
        uid=data.get("uid") or generate_uid(),
        created_by_id=created_by_id if created_by_id and created_by_id > 0 else None,
    )
    if data.get("created"):
        task.created = as_utc(data["created"])
    if data.get("updated"):
        task.updated = as_utc(data["updated"])
    db.add(task)
    await db.flush()

    if not data.get("position"):
        task.position = float(task.id) * 2 ** 16
    if data.get("reminders"):
        await set_reminders(db, task, data["reminders"])
    if data.get("assignees"):
        await set_assignees(db, task, data["assignees"])
    await db.flush()
    logger.debug(f"Created task {task.id} in list {lst.id}")
    return task


async def update_task(db: AsyncSession, task: Task, changes: Dict[str, Any]) -> Task:
    """Apply a partial update. Access (including on a destination list) is checked by the caller."""
    old_bucket_id = task.bucket_id

    if "title" in changes:
        if not changes["title"] or not changes["title"].strip():
            raise TaskCannotBeEmpty()
        task.title = changes["title"]

    new_list_id = changes.get("list_id")
    if new_list_id and new_list_id != task.list_id:
        bucket = await _target_bucket(db, new_list_id, changes.get("bucket_id"), bool(changes.get("done", task.done)))
        if bucket is not None:
            await bucket_service.check_bucket_limit(db, bucket)
            if bucket.is_done_bucket and "done" not in changes:
                changes["done"] = True
        task.bucket_id = bucket.id if bucket is not None else None
        task.list_id = new_list_id
        task.index = await _next_index(db, new_list_id)
    elif changes.get("bucket_id") and changes["bucket_id"] != task.bucket_id:
        bucket = await bucket_service.get_bucket_for_list(db, changes["bucket_id"], task.list_id)
        await bucket_service.check_bucket_limit(db, bucket)
        task.bucket_id = bucket.id
        if bucket.is_done_bucket and "done" not in changes:
            changes["done"] = True

    for field in UPDATABLE_FIELDS:
        if field not in changes:
            continue
        value = changes[field]
        if field.endswith("_date"):
            value = as_utc(value)
        elif field == "hex_color":
            value = (value or "").lstrip("#")
        elif field == "repeat_mode":
            value = int(value or 0)
        setattr(task, field, value)

    reminders = changes.get("reminders")
    if "done" in changes and changes["done"] is not None:
        current = await get_reminders(db, task.id) if reminders is None else [as_utc(r) for r in reminders]
        shifted = update_done(task, bool(changes["done"]), current)
        if shifted is not current:
            reminders = shifted
        await _sync_done_bucket(db, task, bool(changes["done"]), old_bucket_id)

    if reminders is not None:
        await set_reminders(db, task, reminders)
    if changes.get("assignees") is not None:
        await set_assignees(db, task, changes["assignees"])

    task.updated = utcnow()
    db.add(task)
    await db.flush()
    return task


async def _sync_done_bucket(db: AsyncSession, task: Task, requested_done: bool, old_bucket_id) -> None:
    """Keep task.done and membership of the done bucket in step."""
    done_bucket = await bucket_service.get_done_bucket(db, task.list_id)
    if done_bucket is None:
        return
    if task.done and task.bucket_id != done_bucket.id:
        task.bucket_id = done_bucket.id
    elif not task.done and task.bucket_id == done_bucket.id:
        if requested_done and old_bucket_id and old_bucket_id != done_bucket.id:
            # A repeating task was completed: it goes back where it came from
            task.bucket_id = old_bucket_id
        else:
            buckets = [b for b in await bucket_service.get_buckets(db, task.list_id) if not b.is_done_bucket]
            if buckets:
                task.bucket_id = buckets[0].id


async def delete_task(db: AsyncSession, task: Task) -> None:
    for model in (TaskAssignee, TaskReminder, TaskAttachment, LabelTask):
        await db.execute(delete(model).where(model.task_id == task.id))
    await db.execute(delete(TaskRelation).where(
        or_(TaskRelation.task_id == task.id, TaskRelation.other_task_id == task.id)
    ))
    await db.delete(task)
    await db.flush()
    logger.debug(f"Deleted task {task.id}")


# ============================================================
# QUERIES
# ============================================================

def parse_sort(sort_by: List[str], order_by: List[str]) -> List[Tuple[str, str]]:
    sort_by = sort_by or ["id"]
    order_by = order_by or []
    result = []
    for i, field in enumerate(sort_by):
        if field not in SORTABLE_FIELDS:
            raise InvalidSortParam(sort_by=field)
        order = order_by[i] if i < len(order_by) else "asc"
        if order not in SORT_ORDERS:
            raise InvalidSortOrder(order_by=order)
        result.append((field, order))
    return result


async def list_tasks(
    db: AsyncSession,
    list_ids: Iterable[int],
    search: str = "",
    sort: Optional[List[Tuple[str, str]]] = None,
    done: Optional[bool] = None,
    page: int = 1,
    per_page: int = 0,
) -> Tuple[List[Task], int]:
    list_ids = list(list_ids)
    if not list_ids:
        return [], 0
    conditions = [Task.list_id.in_(list_ids)]
    if search:
        conditions.append(Task.title.ilike(f"%{search}%"))
    if done is not None:
        conditions.append(Task.done == done)

    total = (await db.execute(select(func.count(Task.id)).where(*conditions))).scalar() or 0

    query = select(Task).where(*conditions)
    for field, order in sort or [("id", "asc")]:
        column = getattr(Task, field)
        query = query.order_by(desc(column) if order == "desc" else asc(column))
    limit, offset = get_limit_and_offset(page, per_page)
    result = await db.execute(query.limit(limit).offset(offset))
    return list(result.scalars().all()), total


async def get_task_by_uid(db: AsyncSession, list_id: int, uid: str) -> Optional[Task]:
    result = await db.execute(select(Task).where(Task.list_id == list_id, Task.uid == uid))
    return result.scalars().first()


# ============================================================
# RELATIONS & ATTACHMENTS
# ============================================================

async def create_relation(
    db: AsyncSession, task: Task, other_task_id: int, kind: str, created_by_id: Optional[int],
) -> TaskRelation:
    try:
        kind = RelationKind(kind)
    except ValueError:
        raise InvalidRelationKind(relation_kind=kind)
    if other_task_id == task.id:
        raise RelationTasksCannotBeTheSame()
    other = await get_task_by_id(db, other_task_id)

    existing = await db.execute(
        select(TaskRelation).where(
            TaskRelation.task_id == task.id,
            TaskRelation.other_task_id == other.id,
            TaskRelation.relation_kind == kind.value,
        )
    )
    if existing.scalars().first() is not None:
        raise RelationAlreadyExists(task_id=task.id, other_task_id=other.id, kind=kind.value)

    creator = created_by_id if created_by_id and created_by_id > 0 else None
    relation = TaskRelation(task_id=task.id, other_task_id=other.id, relation_kind=kind.value, created_by_id=creator)
    db.add(relation)
    db.add(TaskRelation(
        task_id=other.id, other_task_id=task.id,
        relation_kind=INVERSE_RELATIONS[kind].value, created_by_id=creator,
    ))
    await db.flush()
    return relation


async def delete_relation(db: AsyncSession, task: Task, other_task_id: int, kind: str) -> None:
    try:
        kind = RelationKind(kind)
    except ValueError:
        raise InvalidRelationKind(relation_kind=kind)
    await db.execute(delete(TaskRelation).where(
        TaskRelation.task_id == task.id,
        TaskRelation.other_task_id == other_task_id,
        TaskRelation.relation_kind == kind.value,
    ))
    await db.execute(delete(TaskRelation).where(
        TaskRelation.task_id == other_task_id,
        TaskRelation.other_task_id == task.id,
        TaskRelation.relation_kind == INVERSE_RELATIONS[kind].value,
    ))
    await db.flush()


async def add_attachment(
    db: AsyncSession,
    storage: FileStorage,
    task: Task,
    content: bytes,
    name: str,
    size: int,
    created_by_id: Optional[int],
) -> TaskAttachment:
    file = await storage.create(db, content, name, size, created_by_id)
    attachment = TaskAttachment(
        task_id=task.id,
        file_id=file.id,
        created_by_id=created_by_id if created_by_id and created_by_id > 0 else None,
    )
    db.add(attachment)
    await db.flush()
    return attachment
