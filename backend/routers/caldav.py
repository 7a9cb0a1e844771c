# routers/caldav.py — Minimal CalDAV surface: a list is a calendar, a task is a VTODO
from fastapi import APIRouter, Depends, Request, Response
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

import access
import caldav_codec
import tasks as task_service
from auth import get_current_auth, Principal
from database import get_db_session
from errors import GenericForbidden, InvalidData, NeedToHaveListReadAccess, TaskDoesNotExist
from models import Task

router = APIRouter(prefix="/dav/lists", tags=["CalDAV"])

CALENDAR_MEDIA_TYPE = "text/calendar; charset=utf-8"

# Fields a VTODO can carry, copied onto the stored task
VTODO_FIELDS = (
    "title", "description", "done", "done_at", "due_date", "start_date", "end_date",
    "repeat_after", "repeat_mode", "priority",
)


def _changes_from_vtodo(parsed: Task) -> dict:
    return {field: getattr(parsed, field) for field in VTODO_FIELDS}


async def _task_by_uid(db: AsyncSession, list_id: int, uid: str) -> Task:
    task = await task_service.get_task_by_uid(db, list_id, uid)
    if task is None:
        raise TaskDoesNotExist(uid=uid)
    return task


@router.get("/{list_id}")
async def get_calendar(
    list_id: int,
    db: AsyncSession = Depends(get_db_session),
    principal: Principal = Depends(get_current_auth),
):
    lst = await access.get_list_by_id(db, list_id)
    if not await access.can_read_list(db, lst, principal):
        raise NeedToHaveListReadAccess(list_id=list_id)
    result = await db.execute(select(Task).where(Task.list_id == lst.id).order_by(Task.id))
    body = caldav_codec.calendar_for_tasks(lst.title, list(result.scalars().all()), lst.hex_color or "")
    return Response(content=body, media_type=CALENDAR_MEDIA_TYPE)


@router.get("/{list_id}/{uid}.ics")
async def get_todo(
    list_id: int,
    uid: str,
    db: AsyncSession = Depends(get_db_session),
    principal: Principal = Depends(get_current_auth),
):
    lst = await access.get_list_by_id(db, list_id)
    if not await access.can_read_list(db, lst, principal):
        raise NeedToHaveListReadAccess(list_id=list_id)
    task = await _task_by_uid(db, lst.id, uid)
    body = caldav_codec.calendar_for_tasks(lst.title, [task], lst.hex_color or "")
    return Response(content=body, media_type=CALENDAR_MEDIA_TYPE)


@router.put("/{list_id}/{uid}.ics")
async def put_todo(
    list_id: int,
    uid: str,
    request: Request,
    db: AsyncSession = Depends(get_db_session),
    principal: Principal = Depends(get_current_auth),
):
    """Create the task, or update the one with this uid."""
    lst = await access.get_list_by_id(db, list_id)
    if not await access.can_write_list(db, lst, principal):
        raise GenericForbidden()

    try:
        text = (await request.body()).decode("utf-8")
    except UnicodeDecodeError:
        raise InvalidData("The calendar data is not valid UTF-8")
    parsed = caldav_codec.parse_task_from_vtodo(text)
    uid = parsed.uid or uid
    changes = _changes_from_vtodo(parsed)

    existing = await task_service.get_task_by_uid(db, lst.id, uid)
    if existing is None:
        changes.update(uid=uid, created=parsed.created, updated=parsed.updated)
        await task_service.create_task(db, lst, changes, principal.get_id())
        status_code = 201
    else:
        await task_service.update_task(db, existing, changes)
        status_code = 204
    await db.commit()
    return Response(status_code=status_code)


@router.delete("/{list_id}/{uid}.ics", status_code=204)
async def delete_todo(
    list_id: int,
    uid: str,
    db: AsyncSession = Depends(get_db_session),
    principal: Principal = Depends(get_current_auth),
):
    lst = await access.get_list_by_id(db, list_id)
    if not await access.can_write_list(db, lst, principal):
        raise GenericForbidden()
    task = await _task_by_uid(db, lst.id, uid)
    await task_service.delete_task(db, task)
    await db.commit()
    return Response(status_code=204)
