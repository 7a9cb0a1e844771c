# routers/lists.py — List CRUD and list backgrounds
from typing import Optional

from fastapi import APIRouter, Depends, Query, Response
from pydantic import BaseModel, Field
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

import access
import lists as list_service
from auth import get_current_auth, Principal
from database import get_db_session
from errors import GenericForbidden, NeedToHaveListReadAccess, ListDoesNotExist
from file_storage import FileStorage, get_file_storage
from models import File
from pagination import get_limit_and_offset, set_pagination_headers

router = APIRouter(prefix="/api/v1", tags=["Lists"])


# ============================================================
# SCHEMAS
# ============================================================

class ListCreate(BaseModel):
    title: str = Field(..., max_length=250)
    description: str = ""
    identifier: str = Field(default="", max_length=10)
    hex_color: str = Field(default="", max_length=7)


class ListUpdate(BaseModel):
    title: Optional[str] = Field(None, max_length=250)
    description: Optional[str] = None
    identifier: Optional[str] = Field(None, max_length=10)
    hex_color: Optional[str] = Field(None, max_length=7)
    is_archived: Optional[bool] = None
    position: Optional[float] = None


# ============================================================
# ENDPOINTS
# ============================================================

@router.get("/lists")
async def list_lists(
    response: Response,
    s: str = Query(default=""),
    is_archived: bool = Query(default=False),
    page: int = Query(default=1, ge=1),
    per_page: int = Query(default=0, ge=0),
    db: AsyncSession = Depends(get_db_session),
    principal: Principal = Depends(get_current_auth),
):
    ids = await access.readable_list_ids(db, principal)
    lists = await list_service.get_lists_by_ids(db, ids, include_archived=is_archived, search=s)
    limit, offset = get_limit_and_offset(page, per_page)
    page_items = lists[offset:offset + limit]
    set_pagination_headers(response, len(lists), len(page_items), per_page)
    return [list_service.list_to_dict(lst) for lst in page_items]


@router.post("/namespaces/{namespace_id}/lists", status_code=201)
async def create_list(
    namespace_id: int,
    data: ListCreate,
    db: AsyncSession = Depends(get_db_session),
    principal: Principal = Depends(get_current_auth),
):
    list_service.validate_namespace_id(namespace_id)
    ns = await access.get_namespace_by_id(db, namespace_id)
    if not await access.can_create_list(db, ns, principal):
        raise GenericForbidden()
    lst = await list_service.create_list(
        db, ns.id, data.title, principal.id,
        description=data.description, identifier=data.identifier, hex_color=data.hex_color,
    )
    await db.commit()
    return list_service.list_to_dict(lst)


@router.get("/lists/{list_id}")
async def get_list(
    list_id: int,
    db: AsyncSession = Depends(get_db_session),
    principal: Principal = Depends(get_current_auth),
):
    lst = await access.get_list_by_id(db, list_id)
    right = await access.list_right(db, lst, principal)
    if right is None:
        raise NeedToHaveListReadAccess(list_id=list_id)
    out = list_service.list_to_dict(lst)
    out["max_right"] = int(right)
    return out


@router.post("/lists/{list_id}")
async def update_list(
    list_id: int,
    data: ListUpdate,
    db: AsyncSession = Depends(get_db_session),
    principal: Principal = Depends(get_current_auth),
):
    lst = await access.get_list_by_id(db, list_id)
    unarchiving = data.is_archived is False
    if not await access.can_update_list(db, lst, principal, unarchiving):
        raise GenericForbidden()
    lst = await list_service.update_list(db, lst, data.model_dump(exclude_unset=True))
    await db.commit()
    return list_service.list_to_dict(lst)


@router.delete("/lists/{list_id}")
async def delete_list(
    list_id: int,
    db: AsyncSession = Depends(get_db_session),
    principal: Principal = Depends(get_current_auth),
):
    lst = await access.get_list_by_id(db, list_id)
    if not await access.can_delete_list(db, lst, principal):
        raise GenericForbidden()
    await list_service.delete_list(db, lst)
    await db.commit()
    return {"message": "Successfully deleted."}


@router.get("/lists/{list_id}/background")
async def get_list_background(
    list_id: int,
    db: AsyncSession = Depends(get_db_session),
    principal: Principal = Depends(get_current_auth),
    storage: FileStorage = Depends(get_file_storage),
):
    lst = await access.get_list_by_id(db, list_id)
    if not await access.can_read_list(db, lst, principal):
        raise NeedToHaveListReadAccess(list_id=list_id)
    if not lst.background_file_id:
        raise ListDoesNotExist("This list has no background.", list_id=list_id)
    file = (await db.execute(select(File).where(File.id == lst.background_file_id))).scalar_one()
    return Response(content=storage.read(file), media_type=file.mime or "application/octet-stream")
