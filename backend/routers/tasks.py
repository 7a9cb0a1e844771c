# routers/tasks.py — Tasks and their labels, relations and attachments
from datetime import datetime
from typing import Optional, List

from fastapi import APIRouter, Depends, Query, Response
from pydantic import BaseModel, Base64Bytes, Field
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

import access
import labels as label_service
import tasks as task_service
from auth import get_current_auth, Principal
from database import get_db_session
from errors import (
    GenericForbidden, NeedToHaveListReadAccess, NoRightToSeeTask, TaskDoesNotExist,
    UserHasNoAccessToLabel,
)
from file_storage import FileStorage, get_file_storage
from models import File, TaskAttachment
from pagination import set_pagination_headers

router = APIRouter(prefix="/api/v1", tags=["Tasks"])


# ============================================================
# SCHEMAS
# ============================================================

class TaskCreate(BaseModel):
    title: str = Field(..., max_length=250)
    description: str = ""
    done: bool = False
    due_date: Optional[datetime] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    repeat_after: int = Field(default=0, ge=0)
    repeat_mode: int = Field(default=0, ge=0, le=2)
    priority: int = Field(default=0, ge=0, le=9)
    percent_done: float = Field(default=0, ge=0, le=1)
    hex_color: str = Field(default="", max_length=7)
    bucket_id: Optional[int] = None
    position: Optional[float] = None
    reminders: List[datetime] = Field(default_factory=list)
    assignees: List[str] = Field(default_factory=list)


class TaskUpdate(BaseModel):
    title: Optional[str] = Field(None, max_length=250)
    description: Optional[str] = None
    done: Optional[bool] = None
    due_date: Optional[datetime] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    repeat_after: Optional[int] = Field(None, ge=0)
    repeat_mode: Optional[int] = Field(None, ge=0, le=2)
    priority: Optional[int] = Field(None, ge=0, le=9)
    percent_done: Optional[float] = Field(None, ge=0, le=1)
    hex_color: Optional[str] = Field(None, max_length=7)
    list_id: Optional[int] = None
    bucket_id: Optional[int] = None
    position: Optional[float] = None
    reminders: Optional[List[datetime]] = None
    assignees: Optional[List[str]] = None


class LabelTaskCreate(BaseModel):
    label_id: int


class LabelRef(BaseModel):
    id: int


class LabelTaskBulk(BaseModel):
    labels: List[LabelRef] = Field(default_factory=list)


class RelationCreate(BaseModel):
    other_task_id: int
    relation_kind: str


class AttachmentCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=250)
    content: Base64Bytes


# ============================================================
# HELPERS
# ============================================================

async def _readable_task(db: AsyncSession, task_id: int, principal):
    task = await access.get_task_by_id(db, task_id)
    if not await access.can_read_task(db, task, principal):
        raise NoRightToSeeTask(task_id=task_id)
    return task


async def _writable_task(db: AsyncSession, task_id: int, principal):
    task = await access.get_task_by_id(db, task_id)
    if not await access.can_write_task(db, task, principal):
        raise GenericForbidden()
    return task


async def _task_out(db: AsyncSession, task) -> dict:
    details = await task_service.load_details(db, [task])
    return task_service.task_to_dict(task, details[task.id])


async def _tasks_page(db: AsyncSession, response: Response, list_ids, s, sort_by, order_by, done, page, per_page):
    sort = task_service.parse_sort(sort_by, order_by)
    items, total = await task_service.list_tasks(db, list_ids, s, sort, done, page, per_page)
    details = await task_service.load_details(db, items)
    set_pagination_headers(response, total, len(items), per_page)
    return [task_service.task_to_dict(t, details[t.id]) for t in items]


# ============================================================
# TASKS
# ============================================================

@router.get("/lists/{list_id}/tasks")
async def list_tasks(
    list_id: int,
    response: Response,
    s: str = Query(default=""),
    sort_by: List[str] = Query(default=[]),
    order_by: List[str] = Query(default=[]),
    done: Optional[bool] = Query(default=None),
    page: int = Query(default=1, ge=1),
    per_page: int = Query(default=0, ge=0),
    db: AsyncSession = Depends(get_db_session),
    principal: Principal = Depends(get_current_auth),
):
    lst = await access.get_list_by_id(db, list_id)
    if not await access.can_read_list(db, lst, principal):
        raise NeedToHaveListReadAccess(list_id=list_id)
    return await _tasks_page(db, response, [lst.id], s, sort_by, order_by, done, page, per_page)


@router.get("/tasks/all")
async def list_all_tasks(
    response: Response,
    s: str = Query(default=""),
    sort_by: List[str] = Query(default=[]),
    order_by: List[str] = Query(default=[]),
    done: Optional[bool] = Query(default=None),
    page: int = Query(default=1, ge=1),
    per_page: int = Query(default=0, ge=0),
    db: AsyncSession = Depends(get_db_session),
    principal: Principal = Depends(get_current_auth),
):
    """Tasks across every list the caller can read."""
    list_ids = await access.readable_list_ids(db, principal)
    return await _tasks_page(db, response, list_ids, s, sort_by, order_by, done, page, per_page)


@router.post("/lists/{list_id}/tasks", status_code=201)
async def create_task(
    list_id: int,
    data: TaskCreate,
    db: AsyncSession = Depends(get_db_session),
    principal: Principal = Depends(get_current_auth),
):
    lst = await access.get_list_by_id(db, list_id)
    if not await access.can_create_task(db, lst, principal):
        raise GenericForbidden()
    task = await task_service.create_task(db, lst, data.model_dump(), principal.get_id())
    await db.commit()
    return await _task_out(db, task)


@router.get("/tasks/{task_id}")
async def get_task(
    task_id: int,
    db: AsyncSession = Depends(get_db_session),
    principal: Principal = Depends(get_current_auth),
):
    task = await _readable_task(db, task_id, principal)
    return await _task_out(db, task)


@router.post("/tasks/{task_id}")
async def update_task(
    task_id: int,
    data: TaskUpdate,
    db: AsyncSession = Depends(get_db_session),
    principal: Principal = Depends(get_current_auth),
):
    task = await _writable_task(db, task_id, principal)
    changes = data.model_dump(exclude_unset=True)
    if changes.get("list_id") and changes["list_id"] != task.list_id:
        destination = await access.get_list_by_id(db, changes["list_id"])
        if not await access.can_write_list(db, destination, principal):
            raise GenericForbidden()
    task = await task_service.update_task(db, task, changes)
    await db.commit()
    return await _task_out(db, task)


@router.delete("/tasks/{task_id}")
async def delete_task(
    task_id: int,
    db: AsyncSession = Depends(get_db_session),
    principal: Principal = Depends(get_current_auth),
):
    task = await access.get_task_by_id(db, task_id)
    if not await access.can_delete_task(db, task, principal):
        raise GenericForbidden()
    await task_service.delete_task(db, task)
    await db.commit()
    return {"message": "Successfully deleted."}


# ============================================================
# LABELS ON TASKS
# ============================================================

@router.get("/tasks/{task_id}/labels")
async def get_task_labels(
    task_id: int,
    db: AsyncSession = Depends(get_db_session),
    principal: Principal = Depends(get_current_auth),
):
    task = await _readable_task(db, task_id, principal)
    return [label_service.label_to_dict(lb) for lb in await label_service.labels_of_task(db, task.id)]


@router.post("/tasks/{task_id}/labels", status_code=201)
async def add_task_label(
    task_id: int,
    data: LabelTaskCreate,
    db: AsyncSession = Depends(get_db_session),
    principal: Principal = Depends(get_current_auth),
):
    task = await access.get_task_by_id(db, task_id)
    label = await access.get_label_by_id(db, data.label_id)
    if not await access.can_create_label_task(db, task, label, principal):
        raise GenericForbidden()
    await label_service.add_label_to_task(db, task, label)
    await db.commit()
    return {"task_id": task.id, "label_id": label.id}


@router.post("/tasks/{task_id}/labels/bulk")
async def replace_task_labels(
    task_id: int,
    data: LabelTaskBulk,
    db: AsyncSession = Depends(get_db_session),
    principal: Principal = Depends(get_current_auth),
):
    """Replace every label on the task with the given ones."""
    task = await access.get_task_by_id(db, task_id)
    if not await access.can_write_task(db, task, principal):
        raise GenericForbidden()
    wanted = []
    for ref in data.labels:
        label = await access.get_label_by_id(db, ref.id)
        if not await access.can_read_label(db, label, principal):
            raise UserHasNoAccessToLabel(label_id=label.id)
        wanted.append(label)
    labels = await label_service.replace_task_labels(db, task, wanted)
    await db.commit()
    return [label_service.label_to_dict(lb) for lb in labels]


@router.delete("/tasks/{task_id}/labels/{label_id}")
async def remove_task_label(
    task_id: int,
    label_id: int,
    db: AsyncSession = Depends(get_db_session),
    principal: Principal = Depends(get_current_auth),
):
    task = await access.get_task_by_id(db, task_id)
    label = await access.get_label_by_id(db, label_id)
    if not await access.can_delete_label_task(db, task, label, principal):
        raise GenericForbidden()
    await label_service.remove_label_from_task(db, task, label.id)
    await db.commit()
    return {"message": "The label was successfully removed."}


# ============================================================
# RELATIONS
# ============================================================

@router.post("/tasks/{task_id}/relations", status_code=201)
async def create_relation(
    task_id: int,
    data: RelationCreate,
    db: AsyncSession = Depends(get_db_session),
    principal: Principal = Depends(get_current_auth),
):
    task = await _writable_task(db, task_id, principal)
    if data.other_task_id != task.id:
        await _readable_task(db, data.other_task_id, principal)
    relation = await task_service.create_relation(
        db, task, data.other_task_id, data.relation_kind, principal.get_id(),
    )
    await db.commit()
    return {
        "task_id": relation.task_id,
        "other_task_id": relation.other_task_id,
        "relation_kind": relation.relation_kind,
    }


@router.delete("/tasks/{task_id}/relations/{relation_kind}/{other_task_id}")
async def delete_relation(
    task_id: int,
    relation_kind: str,
    other_task_id: int,
    db: AsyncSession = Depends(get_db_session),
    principal: Principal = Depends(get_current_auth),
):
    task = await _writable_task(db, task_id, principal)
    await task_service.delete_relation(db, task, other_task_id, relation_kind)
    await db.commit()
    return {"message": "The task relation was successfully deleted."}


# ============================================================
# ATTACHMENTS
# ============================================================

@router.post("/tasks/{task_id}/attachments", status_code=201)
async def add_attachment(
    task_id: int,
    data: AttachmentCreate,
    db: AsyncSession = Depends(get_db_session),
    principal: Principal = Depends(get_current_auth),
    storage: FileStorage = Depends(get_file_storage),
):
    task = await _writable_task(db, task_id, principal)
    attachment = await task_service.add_attachment(
        db, storage, task, data.content, data.name, len(data.content), principal.get_id(),
    )
    await db.commit()
    return {"id": attachment.id, "task_id": task.id, "file_id": attachment.file_id}


@router.get("/tasks/{task_id}/attachments/{attachment_id}")
async def download_attachment(
    task_id: int,
    attachment_id: int,
    db: AsyncSession = Depends(get_db_session),
    principal: Principal = Depends(get_current_auth),
    storage: FileStorage = Depends(get_file_storage),
):
    task = await _readable_task(db, task_id, principal)
    result = await db.execute(
        select(TaskAttachment, File).join(File, File.id == TaskAttachment.file_id)
        .where(TaskAttachment.id == attachment_id, TaskAttachment.task_id == task.id)
    )
    row = result.first()
    if row is None:
        raise TaskDoesNotExist("The task attachment does not exist.", attachment_id=attachment_id)
    _, file = row
    return Response(
        content=storage.read(file),
        media_type=file.mime or "application/octet-stream",
        headers={"Content-Disposition": f'attachment; filename="{file.name}"'},
    )
