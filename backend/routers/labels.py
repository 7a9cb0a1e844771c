# routers/labels.py — Label CRUD
from typing import Optional

from fastapi import APIRouter, Depends, Query, Response
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

import access
import labels as label_service
from auth import get_current_auth, get_current_user, CurrentUser, Principal
from database import get_db_session
from errors import GenericForbidden, UserHasNoAccessToLabel
from pagination import set_pagination_headers

router = APIRouter(prefix="/api/v1/labels", tags=["Labels"])


class LabelCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=250)
    description: str = ""
    hex_color: str = Field(default="", max_length=7)


class LabelUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=250)
    description: Optional[str] = None
    hex_color: Optional[str] = Field(None, max_length=7)


@router.get("")
async def list_labels(
    response: Response,
    s: str = Query(default=""),
    page: int = Query(default=1, ge=1),
    per_page: int = Query(default=0, ge=0),
    db: AsyncSession = Depends(get_db_session),
    principal: Principal = Depends(get_current_auth),
):
    items, total = await label_service.list_labels(db, principal, s, page, per_page)
    set_pagination_headers(response, total, len(items), per_page)
    return [label_service.label_to_dict(lb) for lb in items]


@router.post("", status_code=201)
async def create_label(
    data: LabelCreate,
    db: AsyncSession = Depends(get_db_session),
    user: CurrentUser = Depends(get_current_user),
):
    if not access.can_create_label(user):
        raise GenericForbidden()
    label = await label_service.create_label(db, data.title, user.id, data.description, data.hex_color)
    await db.commit()
    return label_service.label_to_dict(label)


@router.get("/{label_id}")
async def get_label(
    label_id: int,
    db: AsyncSession = Depends(get_db_session),
    principal: Principal = Depends(get_current_auth),
):
    label = await access.get_label_by_id(db, label_id)
    if not await access.can_read_label(db, label, principal):
        raise UserHasNoAccessToLabel(label_id=label_id)
    return label_service.label_to_dict(label)


@router.post("/{label_id}")
async def update_label(
    label_id: int,
    data: LabelUpdate,
    db: AsyncSession = Depends(get_db_session),
    principal: Principal = Depends(get_current_auth),
):
    label = await access.get_label_by_id(db, label_id)
    if not await access.can_update_label(db, label, principal):
        raise GenericForbidden()
    label = await label_service.update_label(db, label, data.model_dump(exclude_unset=True))
    await db.commit()
    return label_service.label_to_dict(label)


@router.delete("/{label_id}")
async def delete_label(
    label_id: int,
    db: AsyncSession = Depends(get_db_session),
    principal: Principal = Depends(get_current_auth),
):
    label = await access.get_label_by_id(db, label_id)
    if not await access.can_delete_label(db, label, principal):
        raise GenericForbidden()
    await label_service.delete_label(db, label)
    await db.commit()
    return {"message": "Successfully deleted."}
