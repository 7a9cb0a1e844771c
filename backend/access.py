# access.py — Database-backed access predicates for namespaces, lists,
# tasks, buckets, labels and link shares.
#
# Each predicate loads the grant sources for the principal and hands them to
# the pure resolver in rights.py. Missing entities raise their NotFound
# error; a missing grant returns False. Write-class checks on archived
# entities raise ListIsArchived / NamespaceIsArchived, even for admins.

import logging
from typing import List, Optional, Set, Union

from sqlalchemy import select, or_
from sqlalchemy.ext.asyncio import AsyncSession

from errors import (
    NamespaceDoesNotExist, ListDoesNotExist, TaskDoesNotExist,
    BucketDoesNotExist, LabelDoesNotExist, NamespaceIsArchived, ListIsArchived,
)
from models import (
    Namespace, TaskList, Task, Bucket, Label, LabelTask, TeamMember,
    NamespaceUser, NamespaceTeam, ListUser, ListTeam,
)
from rights import (
    Right, ListGrantSources, NamespaceGrantSources,
    list_grants, namespace_grants, resolve_right, has_right,
)

logger = logging.getLogger("donelist.access")


# ============================================================
# LOADERS
# ============================================================

async def get_namespace_by_id(db: AsyncSession, namespace_id: int) -> Namespace:
    if namespace_id is None or namespace_id <= 0:
        raise NamespaceDoesNotExist(namespace_id=namespace_id)
    result = await db.execute(select(Namespace).where(Namespace.id == namespace_id))
    namespace = result.scalar_one_or_none()
    if not namespace:
        raise NamespaceDoesNotExist(namespace_id=namespace_id)
    return namespace


async def get_list_by_id(db: AsyncSession, list_id: int) -> TaskList:
    result = await db.execute(select(TaskList).where(TaskList.id == list_id))
    lst = result.scalar_one_or_none()
    if not lst:
        raise ListDoesNotExist(list_id=list_id)
    return lst


async def get_task_by_id(db: AsyncSession, task_id: int) -> Task:
    result = await db.execute(select(Task).where(Task.id == task_id))
    task = result.scalar_one_or_none()
    if not task:
        raise TaskDoesNotExist(task_id=task_id)
    return task


async def get_bucket_by_id(db: AsyncSession, bucket_id: int) -> Bucket:
    result = await db.execute(select(Bucket).where(Bucket.id == bucket_id))
    bucket = result.scalar_one_or_none()
    if not bucket:
        raise BucketDoesNotExist(bucket_id=bucket_id)
    return bucket


async def get_label_by_id(db: AsyncSession, label_id: int) -> Label:
    result = await db.execute(select(Label).where(Label.id == label_id))
    label = result.scalar_one_or_none()
    if not label:
        raise LabelDoesNotExist(label_id=label_id)
    return label


async def _as_namespace(db: AsyncSession, namespace: Union[Namespace, int]) -> Namespace:
    if isinstance(namespace, Namespace):
        return namespace
    return await get_namespace_by_id(db, namespace)


async def _as_list(db: AsyncSession, lst: Union[TaskList, int]) -> TaskList:
    if isinstance(lst, TaskList):
        return lst
    return await get_list_by_id(db, lst)


async def team_ids_for_user(db: AsyncSession, user_id: int) -> List[int]:
    result = await db.execute(select(TeamMember.team_id).where(TeamMember.user_id == user_id))
    return list(result.scalars().all())


# ============================================================
# GRANT SOURCES
# ============================================================

async def _namespace_sources(db: AsyncSession, namespace: Namespace, principal) -> NamespaceGrantSources:
    sources = NamespaceGrantSources(namespace_id=namespace.id, owner_id=namespace.owner_id)
    if principal.kind != "user" or principal.id == namespace.owner_id:
        return sources

    result = await db.execute(
        select(NamespaceUser.right).where(
            NamespaceUser.namespace_id == namespace.id,
            NamespaceUser.user_id == principal.id,
        )
    )
    user_right = result.scalar_one_or_none()
    sources.user_right = Right(user_right) if user_right is not None else None

    team_ids = await team_ids_for_user(db, principal.id)
    if team_ids:
        result = await db.execute(
            select(NamespaceTeam.right).where(
                NamespaceTeam.namespace_id == namespace.id,
                NamespaceTeam.team_id.in_(team_ids),
            )
        )
        sources.team_rights = [Right(r) for r in result.scalars().all()]
    return sources


async def _list_sources(db: AsyncSession, lst: TaskList, namespace: Namespace, principal) -> ListGrantSources:
    sources = ListGrantSources(
        list_id=lst.id,
        list_owner_id=lst.owner_id,
        namespace_owner_id=namespace.owner_id,
    )
    if principal.kind != "user" or principal.id in (lst.owner_id, namespace.owner_id):
        return sources

    result = await db.execute(
        select(ListUser.right).where(ListUser.list_id == lst.id, ListUser.user_id == principal.id)
    )
    user_right = result.scalar_one_or_none()
    sources.user_right = Right(user_right) if user_right is not None else None

    team_ids = await team_ids_for_user(db, principal.id)
    if team_ids:
        result = await db.execute(
            select(ListTeam.right).where(ListTeam.list_id == lst.id, ListTeam.team_id.in_(team_ids))
        )
        sources.team_rights = [Right(r) for r in result.scalars().all()]

    ns_sources = await _namespace_sources(db, namespace, principal)
    sources.namespace_user_right = ns_sources.user_right
    sources.namespace_team_rights = ns_sources.team_rights
    return sources


async def namespace_right(db: AsyncSession, namespace: Union[Namespace, int], principal) -> Optional[Right]:
    namespace = await _as_namespace(db, namespace)
    sources = await _namespace_sources(db, namespace, principal)
    return resolve_right(namespace_grants(sources, principal))


async def list_right(db: AsyncSession, lst: Union[TaskList, int], principal) -> Optional[Right]:
    lst = await _as_list(db, lst)
    namespace = await get_namespace_by_id(db, lst.namespace_id)
    sources = await _list_sources(db, lst, namespace, principal)
    return resolve_right(list_grants(sources, principal))


# ============================================================
# ARCHIVE GATE
# ============================================================

async def check_list_not_archived(db: AsyncSession, lst: TaskList, unarchiving: bool = False) -> None:
    namespace = await get_namespace_by_id(db, lst.namespace_id)
    if namespace.is_archived:
        raise NamespaceIsArchived(namespace_id=namespace.id)
    if lst.is_archived and not unarchiving:
        raise ListIsArchived(list_id=lst.id)


def check_namespace_not_archived(namespace: Namespace, unarchiving: bool = False) -> None:
    if namespace.is_archived and not unarchiving:
        raise NamespaceIsArchived(namespace_id=namespace.id)


# ============================================================
# NAMESPACE PREDICATES
# ============================================================

async def can_read_namespace(db: AsyncSession, namespace, principal) -> bool:
    return has_right(await namespace_right(db, namespace, principal), Right.READ)


async def can_write_namespace(db: AsyncSession, namespace, principal) -> bool:
    namespace = await _as_namespace(db, namespace)
    check_namespace_not_archived(namespace)
    return has_right(await namespace_right(db, namespace, principal), Right.READ_WRITE)


async def is_namespace_admin(db: AsyncSession, namespace, principal) -> bool:
    return has_right(await namespace_right(db, namespace, principal), Right.ADMIN)


def can_create_namespace(principal) -> bool:
    return principal.kind == "user"


async def can_update_namespace(db: AsyncSession, namespace, principal, unarchiving: bool = False) -> bool:
    namespace = await _as_namespace(db, namespace)
    check_namespace_not_archived(namespace, unarchiving)
    return await is_namespace_admin(db, namespace, principal)


async def can_delete_namespace(db: AsyncSession, namespace, principal) -> bool:
    return await is_namespace_admin(db, namespace, principal)


# ============================================================
# LIST PREDICATES
# ============================================================

async def can_read_list(db: AsyncSession, lst, principal) -> bool:
    return has_right(await list_right(db, lst, principal), Right.READ)


async def can_write_list(db: AsyncSession, lst, principal) -> bool:
    lst = await _as_list(db, lst)
    await check_list_not_archived(db, lst)
    return has_right(await list_right(db, lst, principal), Right.READ_WRITE)


async def is_list_admin(db: AsyncSession, lst, principal) -> bool:
    return has_right(await list_right(db, lst, principal), Right.ADMIN)


async def can_create_list(db: AsyncSession, namespace, principal) -> bool:
    if principal.kind != "user":
        return False
    return await can_write_namespace(db, namespace, principal)


async def can_update_list(db: AsyncSession, lst, principal, unarchiving: bool = False) -> bool:
    lst = await _as_list(db, lst)
    await check_list_not_archived(db, lst, unarchiving)
    return has_right(await list_right(db, lst, principal), Right.READ_WRITE)


async def can_delete_list(db: AsyncSession, lst, principal) -> bool:
    return await is_list_admin(db, lst, principal)


# ============================================================
# TASK & BUCKET PREDICATES
# ============================================================

async def can_read_task(db: AsyncSession, task: Task, principal) -> bool:
    return await can_read_list(db, task.list_id, principal)


async def can_write_task(db: AsyncSession, task: Task, principal) -> bool:
    return await can_write_list(db, task.list_id, principal)


async def can_create_task(db: AsyncSession, lst, principal) -> bool:
    return await can_write_list(db, lst, principal)


can_update_task = can_write_task
can_delete_task = can_write_task


async def can_write_bucket(db: AsyncSession, lst, principal) -> bool:
    return await can_write_list(db, lst, principal)


# ============================================================
# LABEL PREDICATES
# ============================================================

def can_create_label(principal) -> bool:
    return principal.kind == "user"


async def can_read_label(db: AsyncSession, label: Label, principal) -> bool:
    if principal.kind == "user" and label.created_by_id == principal.id:
        return True
    result = await db.execute(
        select(Task.list_id)
        .join(LabelTask, LabelTask.task_id == Task.id)
        .where(LabelTask.label_id == label.id)
        .distinct()
    )
    for list_id in result.scalars().all():
        if await can_read_list(db, list_id, principal):
            return True
    return False


async def can_update_label(db: AsyncSession, label: Label, principal) -> bool:
    return principal.kind == "user" and label.created_by_id == principal.id


can_delete_label = can_update_label


async def can_create_label_task(db: AsyncSession, task: Task, label: Label, principal) -> bool:
    if not await can_write_task(db, task, principal):
        return False
    return await can_read_label(db, label, principal)


can_delete_label_task = can_create_label_task


# ============================================================
# LINK SHARE PREDICATES
# ============================================================

async def can_create_link_share(db: AsyncSession, lst, principal) -> bool:
    if principal.kind != "user":
        return False
    return await can_write_list(db, lst, principal)


async def can_read_link_shares(db: AsyncSession, lst, principal) -> bool:
    if principal.kind != "user":
        return False
    return await can_read_list(db, lst, principal)


async def can_delete_link_share(db: AsyncSession, lst, principal) -> bool:
    if principal.kind != "user":
        return False
    return await can_write_list(db, lst, principal)


# ============================================================
# VISIBILITY
# ============================================================

async def readable_namespace_ids(db: AsyncSession, principal) -> Set[int]:
    if principal.kind != "user":
        return set()
    team_ids = await team_ids_for_user(db, principal.id)
    conditions = [
        Namespace.owner_id == principal.id,
        Namespace.id.in_(
            select(NamespaceUser.namespace_id).where(NamespaceUser.user_id == principal.id)
        ),
    ]
    if team_ids:
        conditions.append(Namespace.id.in_(
            select(NamespaceTeam.namespace_id).where(NamespaceTeam.team_id.in_(team_ids))
        ))
    result = await db.execute(select(Namespace.id).where(or_(*conditions)))
    return set(result.scalars().all())


async def directly_shared_list_ids(db: AsyncSession, principal) -> Set[int]:
    """Lists shared with the principal (or one of its teams) without their namespace."""
    if principal.kind != "user":
        return set()
    team_ids = await team_ids_for_user(db, principal.id)
    result = await db.execute(select(ListUser.list_id).where(ListUser.user_id == principal.id))
    ids = set(result.scalars().all())
    if team_ids:
        result = await db.execute(select(ListTeam.list_id).where(ListTeam.team_id.in_(team_ids)))
        ids.update(result.scalars().all())
    return ids


async def readable_list_ids(db: AsyncSession, principal) -> Set[int]:
    if principal.kind == "link_share":
        return {principal.list_id}
    namespace_ids = await readable_namespace_ids(db, principal)
    conditions = [TaskList.owner_id == principal.id]
    if namespace_ids:
        conditions.append(TaskList.namespace_id.in_(namespace_ids))
    result = await db.execute(select(TaskList.id).where(or_(*conditions)))
    ids = set(result.scalars().all())
    ids.update(await directly_shared_list_ids(db, principal))
    return ids
