# routers/sharing.py — Share lists and namespaces with users and teams
"""
Users are addressed by username, teams by id. Each of the four relations
gets the same four endpoints:

    GET    /api/v1/{lists|namespaces}/{id}/{users|teams}
    POST   /api/v1/{lists|namespaces}/{id}/{users|teams}
    POST   /api/v1/{lists|namespaces}/{id}/{users|teams}/{target}
    DELETE /api/v1/{lists|namespaces}/{id}/{users|teams}/{target}
"""

from fastapi import APIRouter, Depends, Query, Response
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

import sharing
from auth import get_current_auth, Principal
from database import get_db_session
from errors import GenericForbidden
from pagination import set_pagination_headers

router = APIRouter(prefix="/api/v1", tags=["Sharing"])


# ============================================================
# SCHEMAS
# ============================================================

class UserShareCreate(BaseModel):
    user_id: str
    right: int = 0


class TeamShareCreate(BaseModel):
    team_id: int
    right: int = 0


class ShareUpdate(BaseModel):
    right: int


def _relation_out(row, manager: sharing.RelationManager, resolved) -> dict:
    target_key = f"{manager.target}_id"
    return {
        "id": row.id,
        target_key: resolved.username if manager.target == "user" else resolved.id,
        "right": row.right,
        "created": row.created.isoformat() if row.created else None,
        "updated": row.updated.isoformat() if row.updated else None,
    }


# ============================================================
# ROUTE FACTORY
# ============================================================

def _register(path: str, manager: sharing.RelationManager, create_schema):
    target_param = "{target}"

    @router.get(path, name=f"read_{path}")
    async def read_all(
        parent_id: int,
        response: Response,
        s: str = Query(default=""),
        page: int = Query(default=1, ge=1),
        per_page: int = Query(default=0, ge=0),
        db: AsyncSession = Depends(get_db_session),
        principal: Principal = Depends(get_current_auth),
    ):
        items, total = await manager.read_all(db, parent_id, principal, s, page, per_page)
        set_pagination_headers(response, total, len(items), per_page)
        return items

    @router.post(path, status_code=201, name=f"create_{path}")
    async def create(
        parent_id: int,
        data: create_schema,
        db: AsyncSession = Depends(get_db_session),
        principal: Principal = Depends(get_current_auth),
    ):
        if not await manager.can_create(db, parent_id, principal):
            raise GenericForbidden()
        target = data.user_id if manager.target == "user" else data.team_id
        row, resolved = await manager.create(db, parent_id, target, data.right, principal)
        await db.commit()
        return _relation_out(row, manager, resolved)

    @router.post(f"{path}/{target_param}", name=f"update_{path}")
    async def update(
        parent_id: int,
        target: str,
        data: ShareUpdate,
        db: AsyncSession = Depends(get_db_session),
        principal: Principal = Depends(get_current_auth),
    ):
        if not await manager.can_update(db, parent_id, principal):
            raise GenericForbidden()
        row, resolved = await manager.update(db, parent_id, target, data.right, principal)
        await db.commit()
        return _relation_out(row, manager, resolved)

    @router.delete(f"{path}/{target_param}", name=f"delete_{path}")
    async def delete(
        parent_id: int,
        target: str,
        db: AsyncSession = Depends(get_db_session),
        principal: Principal = Depends(get_current_auth),
    ):
        if not await manager.can_delete(db, parent_id, principal):
            raise GenericForbidden()
        await manager.delete(db, parent_id, target, principal)
        await db.commit()
        return {"message": "Successfully deleted."}


_register("/lists/{parent_id}/users", sharing.list_users, UserShareCreate)
_register("/lists/{parent_id}/teams", sharing.list_teams, TeamShareCreate)
_register("/namespaces/{parent_id}/users", sharing.namespace_users, UserShareCreate)
_register("/namespaces/{parent_id}/teams", sharing.namespace_teams, TeamShareCreate)
