# namespaces.py — Namespaces and the "Shared Lists" pseudo namespace
import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

import access
import lists as list_service
from errors import NamespaceNameCannotBeEmpty
from models import Namespace, TaskList, NamespaceUser, NamespaceTeam, utcnow

logger = logging.getLogger("donelist.namespaces")

# Pseudo namespaces use negative ids and are never persisted
SHARED_LISTS_PSEUDO_ID = -1
SHARED_LISTS_TITLE = "Shared Lists"


def _ts(dt) -> Optional[str]:
    return dt.isoformat() if dt else None


def namespace_to_dict(ns: Namespace) -> Dict[str, Any]:
    return {
        "id": ns.id,
        "title": ns.title,
        "description": ns.description or "",
        "owner_id": ns.owner_id,
        "is_archived": bool(ns.is_archived),
        "hex_color": ns.hex_color or "",
        "created": _ts(ns.created),
        "updated": _ts(ns.updated),
    }


def shared_lists_pseudo_namespace(owner_id: int) -> Dict[str, Any]:
    return {
        "id": SHARED_LISTS_PSEUDO_ID,
        "title": SHARED_LISTS_TITLE,
        "description": "Lists of other users shared with you via teams or directly.",
        "owner_id": owner_id,
        "is_archived": False,
        "hex_color": "",
        "created": None,
        "updated": None,
    }


async def create_namespace(
    db: AsyncSession,
    title: str,
    owner_id: int,
    description: str = "",
    hex_color: str = "",
    is_archived: bool = False,
) -> Namespace:
    if not title or not title.strip():
        raise NamespaceNameCannotBeEmpty()
    ns = Namespace(
        title=title,
        description=description or "",
        hex_color=(hex_color or "").lstrip("#"),
        owner_id=owner_id,
        is_archived=is_archived,
    )
    db.add(ns)
    await db.flush()
    logger.info(f"Created namespace {ns.id} for user {owner_id}")
    return ns


async def update_namespace(db: AsyncSession, ns: Namespace, changes: Dict[str, Any]) -> Namespace:
    if "title" in changes:
        if not changes["title"] or not changes["title"].strip():
            raise NamespaceNameCannotBeEmpty()
        ns.title = changes["title"]
    if "description" in changes and changes["description"] is not None:
        ns.description = changes["description"]
    if "hex_color" in changes and changes["hex_color"] is not None:
        ns.hex_color = changes["hex_color"].lstrip("#")
    if "is_archived" in changes and changes["is_archived"] is not None:
        ns.is_archived = bool(changes["is_archived"])
    ns.updated = utcnow()
    db.add(ns)
    await db.flush()
    return ns


async def delete_namespace(db: AsyncSession, ns: Namespace) -> None:
    result = await db.execute(select(TaskList).where(TaskList.namespace_id == ns.id))
    for lst in result.scalars().all():
        await list_service.delete_list(db, lst)

    for model in (NamespaceUser, NamespaceTeam):
        rows = await db.execute(select(model).where(model.namespace_id == ns.id))
        for row in rows.scalars().all():
            await db.delete(row)

    await db.delete(ns)
    await db.flush()
    logger.info(f"Deleted namespace {ns.id}")


async def _shared_only_list_ids(db: AsyncSession, principal) -> List[int]:
    """Lists shared directly with the principal whose namespace they cannot see."""
    shared_ids = await access.directly_shared_list_ids(db, principal)
    if not shared_ids:
        return []
    namespace_ids = await access.readable_namespace_ids(db, principal)
    result = await db.execute(
        select(TaskList.id).where(TaskList.id.in_(shared_ids), TaskList.owner_id != principal.id)
    )
    candidates = set(result.scalars().all())
    if namespace_ids:
        in_namespaces = await db.execute(
            select(TaskList.id).where(TaskList.id.in_(candidates), TaskList.namespace_id.in_(namespace_ids))
        )
        candidates -= set(in_namespaces.scalars().all())
    return sorted(candidates)


async def list_namespaces(
    db: AsyncSession,
    principal,
    search: str = "",
    include_archived: bool = False,
) -> List[Dict[str, Any]]:
    namespace_ids = await access.readable_namespace_ids(db, principal)
    out: List[Dict[str, Any]] = []

    if await _shared_only_list_ids(db, principal):
        out.append(shared_lists_pseudo_namespace(principal.id))

    if namespace_ids:
        query = select(Namespace).where(Namespace.id.in_(namespace_ids))
        if search:
            query = query.where(Namespace.title.ilike(f"%{search}%"))
        if not include_archived:
            query = query.where(Namespace.is_archived.is_(False))
        result = await db.execute(query.order_by(Namespace.id))
        out.extend(namespace_to_dict(ns) for ns in result.scalars().all())
    return out


async def lists_of_namespace(db: AsyncSession, namespace_id: int, principal) -> List[TaskList]:
    if namespace_id == SHARED_LISTS_PSEUDO_ID:
        ids = await _shared_only_list_ids(db, principal)
        if not ids:
            return []
        result = await db.execute(select(TaskList).where(TaskList.id.in_(ids)).order_by(TaskList.position, TaskList.id))
        return list(result.scalars().all())

    result = await db.execute(
        select(TaskList).where(TaskList.namespace_id == namespace_id).order_by(TaskList.position, TaskList.id)
    )
    return list(result.scalars().all())
