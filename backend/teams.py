# teams.py — Teams and team membership
import logging
from typing import Any, Dict, List

from sqlalchemy import select, func, delete
from sqlalchemy.ext.asyncio import AsyncSession

from errors import (
    TeamNameCannotBeEmpty, TeamDoesNotExist, UserDoesNotExist, UserIsMemberOfTeam,
    CannotDeleteLastTeamMember,
)
from models import Team, TeamMember, User, ListTeam, NamespaceTeam

logger = logging.getLogger("donelist.teams")


async def get_team_by_id(db: AsyncSession, team_id: int) -> Team:
    result = await db.execute(select(Team).where(Team.id == team_id))
    team = result.scalar_one_or_none()
    if not team:
        raise TeamDoesNotExist(team_id=team_id)
    return team


async def get_membership(db: AsyncSession, team_id: int, user_id: int):
    result = await db.execute(
        select(TeamMember).where(TeamMember.team_id == team_id, TeamMember.user_id == user_id)
    )
    return result.scalar_one_or_none()


async def is_team_admin(db: AsyncSession, team_id: int, principal) -> bool:
    if principal.kind != "user":
        return False
    membership = await get_membership(db, team_id, principal.id)
    return membership is not None and membership.admin


async def is_team_member(db: AsyncSession, team_id: int, principal) -> bool:
    if principal.kind != "user":
        return False
    return await get_membership(db, team_id, principal.id) is not None


async def create_team(db: AsyncSession, name: str, creator_id: int, description: str = "") -> Team:
    if not name or not name.strip():
        raise TeamNameCannotBeEmpty()
    team = Team(name=name, description=description or "", created_by_id=creator_id)
    db.add(team)
    await db.flush()
    db.add(TeamMember(team_id=team.id, user_id=creator_id, admin=True))
    await db.flush()
    logger.info(f"Created team {team.id} by user {creator_id}")
    return team


async def teams_of_user(db: AsyncSession, user_id: int) -> List[Team]:
    result = await db.execute(
        select(Team).join(TeamMember, TeamMember.team_id == Team.id)
        .where(TeamMember.user_id == user_id).order_by(Team.id)
    )
    return list(result.scalars().all())


async def members_of_team(db: AsyncSession, team_id: int) -> List[Dict[str, Any]]:
    result = await db.execute(
        select(User, TeamMember.admin).join(TeamMember, TeamMember.user_id == User.id)
        .where(TeamMember.team_id == team_id).order_by(User.id)
    )
    return [
        {"id": u.id, "username": u.username, "name": u.name or "", "admin": bool(admin)}
        for u, admin in result.all()
    ]


async def add_member(db: AsyncSession, team: Team, username: str, admin: bool = False) -> TeamMember:
    result = await db.execute(select(User).where(User.username == username))
    user = result.scalar_one_or_none()
    if not user:
        raise UserDoesNotExist(username=username)
    if await get_membership(db, team.id, user.id) is not None:
        raise UserIsMemberOfTeam(team_id=team.id, username=username)
    member = TeamMember(team_id=team.id, user_id=user.id, admin=admin)
    db.add(member)
    await db.flush()
    return member


async def remove_member(db: AsyncSession, team: Team, username: str) -> None:
    count = (await db.execute(
        select(func.count(TeamMember.id)).where(TeamMember.team_id == team.id)
    )).scalar() or 0
    if count <= 1:
        raise CannotDeleteLastTeamMember(team_id=team.id)

    result = await db.execute(select(User).where(User.username == username))
    user = result.scalar_one_or_none()
    if not user:
        raise UserDoesNotExist(username=username)
    membership = await get_membership(db, team.id, user.id)
    if membership is None:
        raise UserDoesNotExist(username=username)
    await db.delete(membership)
    await db.flush()


async def delete_team(db: AsyncSession, team: Team) -> None:
    for model in (TeamMember, ListTeam, NamespaceTeam):
        await db.execute(delete(model).where(model.team_id == team.id))
    await db.delete(team)
    await db.flush()
    logger.info(f"Deleted team {team.id}")
