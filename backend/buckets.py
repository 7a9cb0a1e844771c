# buckets.py — Kanban buckets of a list
# Rules: a list always keeps at least one bucket, a bucket with a limit
# refuses tasks beyond it, and a list has at most one done bucket.
import logging
from typing import List, Optional

from sqlalchemy import select, func, update
from sqlalchemy.ext.asyncio import AsyncSession

from access import get_bucket_by_id
from errors import (
    BucketDoesNotBelongToList, BucketLimitExceeded, CannotRemoveLastBucket,
    OnlyOneDoneBucketPerList,
)
from models import Bucket, Task, utcnow

logger = logging.getLogger("donelist.buckets")

DEFAULT_BUCKET_TITLE = "Backlog"


async def get_buckets(db: AsyncSession, list_id: int) -> List[Bucket]:
    result = await db.execute(
        select(Bucket).where(Bucket.list_id == list_id).order_by(Bucket.position, Bucket.id)
    )
    return list(result.scalars().all())


async def get_default_bucket(db: AsyncSession, list_id: int) -> Optional[Bucket]:
    """The list's lowest-positioned bucket."""
    result = await db.execute(
        select(Bucket).where(Bucket.list_id == list_id).order_by(Bucket.position, Bucket.id).limit(1)
    )
    return result.scalar_one_or_none()


async def get_done_bucket(db: AsyncSession, list_id: int) -> Optional[Bucket]:
    result = await db.execute(
        select(Bucket).where(Bucket.list_id == list_id, Bucket.is_done_bucket.is_(True))
    )
    return result.scalars().first()


async def get_bucket_for_list(db: AsyncSession, bucket_id: int, list_id: int) -> Bucket:
    bucket = await get_bucket_by_id(db, bucket_id)
    if bucket.list_id != list_id:
        raise BucketDoesNotBelongToList(bucket_id=bucket_id, list_id=list_id)
    return bucket


async def count_tasks(db: AsyncSession, bucket_id: int) -> int:
    return (await db.execute(
        select(func.count(Task.id)).where(Task.bucket_id == bucket_id)
    )).scalar() or 0


async def check_bucket_limit(db: AsyncSession, bucket: Bucket) -> None:
    if bucket.limit and bucket.limit > 0:
        if await count_tasks(db, bucket.id) >= bucket.limit:
            raise BucketLimitExceeded(bucket_id=bucket.id, limit=bucket.limit)


async def _check_single_done_bucket(db: AsyncSession, list_id: int, bucket_id: Optional[int] = None) -> None:
    existing = await get_done_bucket(db, list_id)
    if existing is not None and existing.id != bucket_id:
        raise OnlyOneDoneBucketPerList(list_id=list_id)


async def create_bucket(
    db: AsyncSession,
    list_id: int,
    title: str,
    created_by_id: Optional[int],
    limit: int = 0,
    position: Optional[float] = None,
    is_done_bucket: bool = False,
) -> Bucket:
    if is_done_bucket:
        await _check_single_done_bucket(db, list_id)
    if position is None:
        max_position = (await db.execute(
            select(func.max(Bucket.position)).where(Bucket.list_id == list_id)
        )).scalar()
        position = max_position + 1 if max_position is not None else 0

    bucket = Bucket(
        title=title,
        list_id=list_id,
        limit=limit or 0,
        position=position,
        is_done_bucket=is_done_bucket,
        created_by_id=created_by_id if created_by_id and created_by_id > 0 else None,
    )
    db.add(bucket)
    await db.flush()
    return bucket


async def update_bucket(
    db: AsyncSession,
    bucket: Bucket,
    title: Optional[str] = None,
    limit: Optional[int] = None,
    position: Optional[float] = None,
    is_done_bucket: Optional[bool] = None,
) -> Bucket:
    if title is not None:
        bucket.title = title
    if limit is not None:
        bucket.limit = limit
    if position is not None:
        bucket.position = position
    if is_done_bucket is not None:
        if is_done_bucket and not bucket.is_done_bucket:
            await _check_single_done_bucket(db, bucket.list_id, bucket.id)
        bucket.is_done_bucket = is_done_bucket
    bucket.updated = utcnow()
    db.add(bucket)
    await db.flush()
    return bucket


async def delete_bucket(db: AsyncSession, bucket: Bucket) -> None:
    """Delete a bucket, moving its tasks to the first remaining bucket."""
    remaining = [b for b in await get_buckets(db, bucket.list_id) if b.id != bucket.id]
    if not remaining:
        raise CannotRemoveLastBucket(bucket_id=bucket.id, list_id=bucket.list_id)

    await db.execute(
        update(Task).where(Task.bucket_id == bucket.id).values(bucket_id=remaining[0].id)
    )
    await db.delete(bucket)
    await db.flush()
    logger.info(f"Deleted bucket {bucket.id}, tasks moved to bucket {remaining[0].id}")
