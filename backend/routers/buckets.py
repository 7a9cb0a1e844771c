# routers/buckets.py — Kanban buckets of a list
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

import access
import buckets as bucket_service
import tasks as task_service
from auth import get_current_auth, Principal
from database import get_db_session
from errors import GenericForbidden, NeedToHaveListReadAccess
from models import Task

router = APIRouter(prefix="/api/v1/lists/{list_id}/buckets", tags=["Buckets"])


# ============================================================
# SCHEMAS
# ============================================================

class BucketCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=250)
    limit: int = Field(default=0, ge=0)
    position: Optional[float] = None
    is_done_bucket: bool = False


class BucketUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=250)
    limit: Optional[int] = Field(None, ge=0)
    position: Optional[float] = None
    is_done_bucket: Optional[bool] = None


def _bucket_out(bucket, tasks=None) -> dict:
    out = {
        "id": bucket.id,
        "title": bucket.title,
        "list_id": bucket.list_id,
        "limit": bucket.limit,
        "position": bucket.position,
        "is_done_bucket": bool(bucket.is_done_bucket),
        "created_by_id": bucket.created_by_id,
        "created": bucket.created.isoformat() if bucket.created else None,
        "updated": bucket.updated.isoformat() if bucket.updated else None,
    }
    if tasks is not None:
        out["tasks"] = tasks
    return out


# ============================================================
# ENDPOINTS
# ============================================================

@router.get("")
async def list_buckets(
    list_id: int,
    db: AsyncSession = Depends(get_db_session),
    principal: Principal = Depends(get_current_auth),
):
    """Buckets in position order, each with its tasks."""
    lst = await access.get_list_by_id(db, list_id)
    if not await access.can_read_list(db, lst, principal):
        raise NeedToHaveListReadAccess(list_id=list_id)

    buckets = await bucket_service.get_buckets(db, lst.id)
    result = await db.execute(select(Task).where(Task.list_id == lst.id).order_by(Task.position, Task.id))
    tasks = list(result.scalars().all())
    details = await task_service.load_details(db, tasks)

    by_bucket = {b.id: [] for b in buckets}
    for t in tasks:
        if t.bucket_id in by_bucket:
            by_bucket[t.bucket_id].append(task_service.task_to_dict(t, details[t.id]))
    return [_bucket_out(b, by_bucket[b.id]) for b in buckets]


@router.post("", status_code=201)
async def create_bucket(
    list_id: int,
    data: BucketCreate,
    db: AsyncSession = Depends(get_db_session),
    principal: Principal = Depends(get_current_auth),
):
    lst = await access.get_list_by_id(db, list_id)
    if not await access.can_write_bucket(db, lst, principal):
        raise GenericForbidden()
    bucket = await bucket_service.create_bucket(
        db, lst.id, data.title, principal.get_id(),
        limit=data.limit, position=data.position, is_done_bucket=data.is_done_bucket,
    )
    await db.commit()
    return _bucket_out(bucket)


@router.post("/{bucket_id}")
async def update_bucket(
    list_id: int,
    bucket_id: int,
    data: BucketUpdate,
    db: AsyncSession = Depends(get_db_session),
    principal: Principal = Depends(get_current_auth),
):
    lst = await access.get_list_by_id(db, list_id)
    if not await access.can_write_bucket(db, lst, principal):
        raise GenericForbidden()
    bucket = await bucket_service.get_bucket_for_list(db, bucket_id, lst.id)
    bucket = await bucket_service.update_bucket(db, bucket, **data.model_dump(exclude_unset=True))
    await db.commit()
    return _bucket_out(bucket)


@router.delete("/{bucket_id}")
async def delete_bucket(
    list_id: int,
    bucket_id: int,
    db: AsyncSession = Depends(get_db_session),
    principal: Principal = Depends(get_current_auth),
):
    lst = await access.get_list_by_id(db, list_id)
    if not await access.can_write_bucket(db, lst, principal):
        raise GenericForbidden()
    bucket = await bucket_service.get_bucket_for_list(db, bucket_id, lst.id)
    await bucket_service.delete_bucket(db, bucket)
    await db.commit()
    return {"message": "Successfully deleted."}
