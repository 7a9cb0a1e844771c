# migration.py — Bulk import of a nested namespace/list/task structure
"""
insert_from_structure creates everything for one user in a single
transaction: namespaces, lists (with backgrounds), buckets, tasks,
relations, attachments and labels. Any failure rolls the whole import
back. On success a MigrationStatus row records the run.
"""
import logging
from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, Base64Bytes, Field
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

import buckets as bucket_service
import labels as label_service
import lists as list_service
import namespaces as namespace_service
import tasks as task_service
from auth import CurrentUser
from errors import RelationAlreadyExists
from file_storage import FileStorage
from models import Bucket, Label, MigrationStatus, Task, TaskList

logger = logging.getLogger("donelist.migration")

STRUCTURE_MIGRATOR = "donelist-file"


# ============================================================
# SCHEMAS
# ============================================================

class LabelStructure(BaseModel):
    title: str
    description: str = ""
    hex_color: str = ""


class FileStructure(BaseModel):
    name: str = ""
    size: int = 0
    content: Optional[Base64Bytes] = None


class AttachmentStructure(BaseModel):
    file: FileStructure


class TaskStructure(BaseModel):
    id: int = 0
    title: str
    description: str = ""
    done: bool = False
    done_at: Optional[datetime] = None
    due_date: Optional[datetime] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    repeat_after: int = 0
    repeat_mode: int = 0
    priority: int = 0
    percent_done: float = 0
    hex_color: str = ""
    bucket_id: int = 0
    position: Optional[float] = None
    uid: str = ""
    created: Optional[datetime] = None
    updated: Optional[datetime] = None
    reminders: List[datetime] = Field(default_factory=list)
    labels: List[LabelStructure] = Field(default_factory=list)
    attachments: List[AttachmentStructure] = Field(default_factory=list)
    related_tasks: Dict[str, List["TaskStructure"]] = Field(default_factory=dict)


class BucketStructure(BaseModel):
    id: int
    title: str
    limit: int = 0
    position: Optional[float] = None
    is_done_bucket: bool = False


class ListStructure(BaseModel):
    title: str
    description: str = ""
    identifier: str = ""
    hex_color: str = ""
    is_archived: bool = False
    position: Optional[float] = None
    background: Optional[Base64Bytes] = None
    buckets: List[BucketStructure] = Field(default_factory=list)
    tasks: List[TaskStructure] = Field(default_factory=list)


class NamespaceStructure(BaseModel):
    title: str
    description: str = ""
    hex_color: str = ""
    is_archived: bool = False
    lists: List[ListStructure] = Field(default_factory=list)


TaskStructure.model_rebuild()


# ============================================================
# IMPORT
# ============================================================

def _task_data(t: TaskStructure, bucket_id: int) -> dict:
    data = t.model_dump(exclude={"id", "labels", "attachments", "related_tasks", "bucket_id"})
    data["bucket_id"] = bucket_id
    return data


class _ListImport:
    """Imports the contents of one freshly created list."""

    def __init__(self, db: AsyncSession, user: CurrentUser, storage: FileStorage, labels: Dict[str, Label]):
        self.db = db
        self.user = user
        self.storage = storage
        self.labels = labels

    async def run(self, lst: TaskList, structure: ListStructure) -> None:
        db, user = self.db, self.user
        default_bucket = await bucket_service.get_default_bucket(db, lst.id)

        if structure.background:
            logger.debug(f"[creating structure] Creating a background file for list {lst.id}")
            file = await self.storage.create(db, structure.background, "", len(structure.background), user.id)
            await list_service.set_list_background(db, lst, file)

        buckets: Dict[int, Bucket] = {}
        for b in structure.buckets:
            buckets[b.id] = await bucket_service.create_bucket(
                db, lst.id, b.title, user.id,
                limit=b.limit, position=b.position, is_done_bucket=b.is_done_bucket,
            )
            logger.debug(f"[creating structure] Created bucket {buckets[b.id].id}, old ID was {b.id}")

        needs_default_bucket = False
        created: Dict[int, Task] = {}
        pending = []
        for t in structure.tasks:
            bucket = buckets.get(t.bucket_id)
            if bucket is None:
                if t.bucket_id:
                    logger.debug(f"[creating structure] No bucket created for original bucket id {t.bucket_id}")
                needs_default_bucket = True
            task = await task_service.create_task(db, lst, _task_data(t, bucket.id if bucket else 0), user.id)
            if t.id:
                created[t.id] = task
            pending.append((t, task))
            logger.debug(f"[creating structure] Created task {task.id}")

        for t, task in pending:
            await self._relations(lst, t, task, created)
            await self._attachments(t, task)
            await self._labels(t, task)

        # Every task brought its own bucket, so the default bucket is just extra space
        if not needs_default_bucket and default_bucket is not None and structure.buckets:
            await bucket_service.delete_bucket(db, default_bucket)
            logger.debug(f"[creating structure] Removed unused default bucket {default_bucket.id}")

    async def _relations(self, lst: TaskList, t: TaskStructure, task: Task, created: Dict[int, Task]) -> None:
        for kind, related in t.related_tasks.items():
            for rt in related:
                other = created.get(rt.id) if rt.id else None
                if other is None:
                    other = await task_service.create_task(self.db, lst, _task_data(rt, 0), self.user.id)
                    if rt.id:
                        created[rt.id] = other
                    logger.debug(f"[creating structure] Created related task {other.id}")
                try:
                    await task_service.create_relation(self.db, task, other.id, kind, self.user.id)
                except RelationAlreadyExists:
                    # Already created as the inverse of the other side
                    continue

    async def _attachments(self, t: TaskStructure, task: Task) -> None:
        for a in t.attachments:
            if not a.file.content:
                continue
            attachment = await task_service.add_attachment(
                self.db, self.storage, task, a.file.content, a.file.name,
                a.file.size or len(a.file.content), self.user.id,
            )
            logger.debug(f"[creating structure] Created new attachment {attachment.id}")

    async def _labels(self, t: TaskStructure, task: Task) -> None:
        for lb in t.labels:
            key = lb.title + lb.hex_color
            label = self.labels.get(key)
            if label is None:
                label = await label_service.create_label(
                    self.db, lb.title, self.user.id, lb.description, lb.hex_color,
                )
                self.labels[key] = label
            await label_service.add_label_to_task(self.db, task, label)


async def insert_from_structure(
    db: AsyncSession,
    structure: List[NamespaceStructure],
    user: CurrentUser,
    storage: FileStorage,
    migrator_name: str = STRUCTURE_MIGRATOR,
) -> None:
    logger.debug(f"[creating structure] Creating {len(structure)} namespaces")
    labels: Dict[str, Label] = {}
    try:
        with storage.batch():
            for n in structure:
                ns = await namespace_service.create_namespace(
                    db, n.title, user.id, n.description, n.hex_color, n.is_archived,
                )
                logger.debug(f"[creating structure] Created namespace {ns.id} with {len(n.lists)} lists")
                for ls in n.lists:
                    lst = await list_service.create_list(
                        db, ns.id, ls.title, user.id,
                        description=ls.description, identifier=ls.identifier, hex_color=ls.hex_color,
                        is_archived=ls.is_archived, position=ls.position,
                    )
                    logger.debug(f"[creating structure] Created list {lst.id}")
                    await _ListImport(db, user, storage, labels).run(lst, ls)

            await record_migration_status(db, user.id, migrator_name)
            await db.commit()
    except Exception:
        await db.rollback()
        raise
    logger.debug("[creating structure] Done inserting new task structure")


# ============================================================
# STATUS
# ============================================================

async def record_migration_status(db: AsyncSession, user_id: int, migrator_name: str) -> MigrationStatus:
    status = MigrationStatus(user_id=user_id, migrator_name=migrator_name)
    db.add(status)
    await db.flush()
    return status


async def get_migration_status(db: AsyncSession, user_id: int, migrator_name: str) -> Optional[MigrationStatus]:
    result = await db.execute(
        select(MigrationStatus)
        .where(MigrationStatus.user_id == user_id, MigrationStatus.migrator_name == migrator_name)
        .order_by(MigrationStatus.id.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()
