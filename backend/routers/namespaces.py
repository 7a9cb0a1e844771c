# routers/namespaces.py — Namespace CRUD and the lists inside a namespace
from typing import Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

import access
import lists as list_service
import namespaces as namespace_service
from auth import get_current_auth, get_current_user, CurrentUser, Principal
from database import get_db_session
from errors import GenericForbidden, NeedToHaveNamespaceReadAccess

router = APIRouter(prefix="/api/v1/namespaces", tags=["Namespaces"])


# ============================================================
# SCHEMAS
# ============================================================

class NamespaceCreate(BaseModel):
    title: str = Field(..., max_length=250)
    description: str = ""
    hex_color: str = Field(default="", max_length=7)


class NamespaceUpdate(BaseModel):
    title: Optional[str] = Field(None, max_length=250)
    description: Optional[str] = None
    hex_color: Optional[str] = Field(None, max_length=7)
    is_archived: Optional[bool] = None


# ============================================================
# ENDPOINTS
# ============================================================

@router.get("")
async def list_namespaces(
    s: str = Query(default=""),
    is_archived: bool = Query(default=False),
    db: AsyncSession = Depends(get_db_session),
    principal: Principal = Depends(get_current_auth),
):
    """All namespaces the caller can read, plus "Shared Lists" when lists were shared directly."""
    namespaces = await namespace_service.list_namespaces(db, principal, s, is_archived)
    for ns in namespaces:
        lists = await namespace_service.lists_of_namespace(db, ns["id"], principal)
        ns["lists"] = [list_service.list_to_dict(lst) for lst in lists if is_archived or not lst.is_archived]
    return namespaces


@router.post("", status_code=201)
async def create_namespace(
    data: NamespaceCreate,
    db: AsyncSession = Depends(get_db_session),
    user: CurrentUser = Depends(get_current_user),
):
    if not access.can_create_namespace(user):
        raise GenericForbidden()
    ns = await namespace_service.create_namespace(db, data.title, user.id, data.description, data.hex_color)
    await db.commit()
    return namespace_service.namespace_to_dict(ns)


@router.get("/{namespace_id}")
async def get_namespace(
    namespace_id: int,
    db: AsyncSession = Depends(get_db_session),
    principal: Principal = Depends(get_current_auth),
):
    ns = await access.get_namespace_by_id(db, namespace_id)
    if not await access.can_read_namespace(db, ns, principal):
        raise NeedToHaveNamespaceReadAccess(namespace_id=namespace_id)
    return namespace_service.namespace_to_dict(ns)


@router.post("/{namespace_id}")
async def update_namespace(
    namespace_id: int,
    data: NamespaceUpdate,
    db: AsyncSession = Depends(get_db_session),
    principal: Principal = Depends(get_current_auth),
):
    ns = await access.get_namespace_by_id(db, namespace_id)
    unarchiving = data.is_archived is False
    if not await access.can_update_namespace(db, ns, principal, unarchiving):
        raise GenericForbidden()
    ns = await namespace_service.update_namespace(db, ns, data.model_dump(exclude_unset=True))
    await db.commit()
    return namespace_service.namespace_to_dict(ns)


@router.delete("/{namespace_id}")
async def delete_namespace(
    namespace_id: int,
    db: AsyncSession = Depends(get_db_session),
    principal: Principal = Depends(get_current_auth),
):
    ns = await access.get_namespace_by_id(db, namespace_id)
    if not await access.can_delete_namespace(db, ns, principal):
        raise GenericForbidden()
    await namespace_service.delete_namespace(db, ns)
    await db.commit()
    return {"message": "Successfully deleted."}


@router.get("/{namespace_id}/lists")
async def get_namespace_lists(
    namespace_id: int,
    db: AsyncSession = Depends(get_db_session),
    principal: Principal = Depends(get_current_auth),
):
    if namespace_id != namespace_service.SHARED_LISTS_PSEUDO_ID:
        ns = await access.get_namespace_by_id(db, namespace_id)
        if not await access.can_read_namespace(db, ns, principal):
            raise NeedToHaveNamespaceReadAccess(namespace_id=namespace_id)
    lists = await namespace_service.lists_of_namespace(db, namespace_id, principal)
    return [list_service.list_to_dict(lst) for lst in lists]
