# routers/teams.py — Teams and team members
from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

import teams as team_service
from auth import get_current_user, CurrentUser
from database import get_db_session
from errors import GenericForbidden

router = APIRouter(prefix="/api/v1/teams", tags=["Teams"])


class TeamCreate(BaseModel):
    name: str = Field(..., max_length=250)
    description: str = ""


class MemberAdd(BaseModel):
    username: str
    admin: bool = False


def _team_out(team, members=None) -> dict:
    out = {
        "id": team.id,
        "name": team.name,
        "description": team.description or "",
        "created_by_id": team.created_by_id,
        "created": team.created.isoformat() if team.created else None,
        "updated": team.updated.isoformat() if team.updated else None,
    }
    if members is not None:
        out["members"] = members
    return out


@router.post("", status_code=201)
async def create_team(
    data: TeamCreate,
    db: AsyncSession = Depends(get_db_session),
    user: CurrentUser = Depends(get_current_user),
):
    team = await team_service.create_team(db, data.name, user.id, data.description)
    await db.commit()
    return _team_out(team, await team_service.members_of_team(db, team.id))


@router.get("")
async def list_teams(
    db: AsyncSession = Depends(get_db_session),
    user: CurrentUser = Depends(get_current_user),
):
    return [_team_out(t) for t in await team_service.teams_of_user(db, user.id)]


@router.get("/{team_id}")
async def get_team(
    team_id: int,
    db: AsyncSession = Depends(get_db_session),
    user: CurrentUser = Depends(get_current_user),
):
    team = await team_service.get_team_by_id(db, team_id)
    if not await team_service.is_team_member(db, team.id, user):
        raise GenericForbidden()
    return _team_out(team, await team_service.members_of_team(db, team.id))


@router.delete("/{team_id}")
async def delete_team(
    team_id: int,
    db: AsyncSession = Depends(get_db_session),
    user: CurrentUser = Depends(get_current_user),
):
    team = await team_service.get_team_by_id(db, team_id)
    if not await team_service.is_team_admin(db, team.id, user):
        raise GenericForbidden()
    await team_service.delete_team(db, team)
    await db.commit()
    return {"message": "Successfully deleted."}


@router.post("/{team_id}/members", status_code=201)
async def add_member(
    team_id: int,
    data: MemberAdd,
    db: AsyncSession = Depends(get_db_session),
    user: CurrentUser = Depends(get_current_user),
):
    team = await team_service.get_team_by_id(db, team_id)
    if not await team_service.is_team_admin(db, team.id, user):
        raise GenericForbidden()
    await team_service.add_member(db, team, data.username, data.admin)
    await db.commit()
    return _team_out(team, await team_service.members_of_team(db, team.id))


@router.delete("/{team_id}/members/{username}")
async def remove_member(
    team_id: int,
    username: str,
    db: AsyncSession = Depends(get_db_session),
    user: CurrentUser = Depends(get_current_user),
):
    team = await team_service.get_team_by_id(db, team_id)
    if not await team_service.is_team_admin(db, team.id, user):
        raise GenericForbidden()
    await team_service.remove_member(db, team, username)
    await db.commit()
    return {"message": "Successfully removed."}
