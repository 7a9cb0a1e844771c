# routers/link_shares.py — Link shares on lists and link-share authentication
from typing import Optional

from fastapi import APIRouter, Depends, Query, Response
from pydantic import BaseModel, Field
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

import access
import link_sharing
from auth import get_current_auth, Principal, LINK_SHARE_TOKEN_EXPIRE_HOURS
from database import get_db_session
from errors import GenericForbidden, NeedToHaveListReadAccess
from models import User
from pagination import set_pagination_headers

router = APIRouter(prefix="/api/v1", tags=["Link Shares"])


# ============================================================
# SCHEMAS
# ============================================================

class LinkShareCreate(BaseModel):
    right: int = 0
    name: str = Field(default="", max_length=250)
    password: Optional[str] = None


class LinkShareAuthRequest(BaseModel):
    password: Optional[str] = None


# ============================================================
# HELPERS
# ============================================================

async def _shared_by(db: AsyncSession, user_id: int) -> Optional[User]:
    result = await db.execute(select(User).where(User.id == user_id))
    return result.scalar_one_or_none()


# ============================================================
# ENDPOINTS
# ============================================================

@router.post("/lists/{list_id}/shares", status_code=201)
async def create_link_share(
    list_id: int,
    data: LinkShareCreate,
    db: AsyncSession = Depends(get_db_session),
    principal: Principal = Depends(get_current_auth),
):
    lst = await access.get_list_by_id(db, list_id)
    if not await access.can_create_link_share(db, lst, principal):
        raise GenericForbidden()
    share = await link_sharing.create_link_share(db, lst.id, data.right, principal, data.name, data.password)
    await db.commit()
    return link_sharing.share_to_dict(share, await _shared_by(db, share.shared_by_id))


@router.get("/lists/{list_id}/shares")
async def list_link_shares(
    list_id: int,
    response: Response,
    s: str = Query(default=""),
    page: int = Query(default=1, ge=1),
    per_page: int = Query(default=0, ge=0),
    db: AsyncSession = Depends(get_db_session),
    principal: Principal = Depends(get_current_auth),
):
    lst = await access.get_list_by_id(db, list_id)
    if not await access.can_read_link_shares(db, lst, principal):
        if principal.kind == "link_share":
            raise GenericForbidden()
        raise NeedToHaveListReadAccess(list_id=list_id)
    items, total = await link_sharing.read_all(db, lst.id, s, page, per_page)
    set_pagination_headers(response, total, len(items), per_page)
    return items


@router.get("/lists/{list_id}/shares/{share_id}")
async def get_link_share(
    list_id: int,
    share_id: int,
    db: AsyncSession = Depends(get_db_session),
    principal: Principal = Depends(get_current_auth),
):
    lst = await access.get_list_by_id(db, list_id)
    if not await access.can_read_link_shares(db, lst, principal):
        raise GenericForbidden()
    share = await link_sharing.read_one(db, lst.id, share_id)
    return link_sharing.share_to_dict(share, await _shared_by(db, share.shared_by_id))


@router.delete("/lists/{list_id}/shares/{share_id}")
async def delete_link_share(
    list_id: int,
    share_id: int,
    db: AsyncSession = Depends(get_db_session),
    principal: Principal = Depends(get_current_auth),
):
    lst = await access.get_list_by_id(db, list_id)
    if not await access.can_delete_link_share(db, lst, principal):
        raise GenericForbidden()
    await link_sharing.delete(db, lst.id, share_id)
    await db.commit()
    return {"message": "The link share was successfully deleted."}


@router.post("/shares/{share_hash}/auth")
async def authenticate_link_share(
    share_hash: str,
    data: Optional[LinkShareAuthRequest] = None,
    db: AsyncSession = Depends(get_db_session),
):
    """Exchange a share hash (and its password, if it has one) for a bearer token."""
    password = data.password if data else None
    token, share = await link_sharing.authenticate_link_share(db, share_hash, password)
    return {
        "token": token,
        "token_type": "bearer",
        "expires_in": LINK_SHARE_TOKEN_EXPIRE_HOURS * 3600,
        "list_id": share.list_id,
        "right": share.right,
    }
