# sharing.py — User and team sharing relations on lists and namespaces
"""
One RelationManager covers each of the four relations:

    list_users, list_teams, namespace_users, namespace_teams

They share the same contract. create validates the right, resolves the
parent and the target, rejects owners and duplicates, inserts, dispatches
the sharing event and touches the parent's `updated`. delete and update
need an existing row. read_all needs read access to the parent.

The duplicate check is check-then-insert. A unique constraint backs it, and
a concurrent duplicate that slips through is reported as the same
AlreadyHasAccess error.
"""
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple, Type

from sqlalchemy import select, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

import access
from errors import (
    AppError, UserDoesNotExist, TeamDoesNotExist,
    UserAlreadyHasAccess, UserAlreadyHasNamespaceAccess, TeamAlreadyHasAccess,
    UserDoesNotHaveAccessToList, UserDoesNotHaveAccessToNamespace,
    TeamDoesNotHaveAccessToList, TeamDoesNotHaveAccessToNamespace,
    NeedToHaveListReadAccess, NeedToHaveNamespaceReadAccess,
)
from events import (
    dispatcher, ListSharedWithUserEvent, ListSharedWithTeamEvent,
    NamespaceSharedWithUserEvent, NamespaceSharedWithTeamEvent,
)
from models import (
    User, Team, ListUser, ListTeam, NamespaceUser, NamespaceTeam, utcnow,
)
from pagination import get_limit_and_offset
from rights import validate_right

logger = logging.getLogger("donelist.sharing")


@dataclass(frozen=True)
class _ParentKind:
    name: str
    fk: str
    load: Callable[[AsyncSession, int], Awaitable[Any]]
    can_read: Callable[..., Awaitable[bool]]
    is_admin: Callable[..., Awaitable[bool]]
    need_read_access: Type[AppError]


LIST = _ParentKind(
    name="list",
    fk="list_id",
    load=access.get_list_by_id,
    can_read=access.can_read_list,
    is_admin=access.is_list_admin,
    need_read_access=NeedToHaveListReadAccess,
)

NAMESPACE = _ParentKind(
    name="namespace",
    fk="namespace_id",
    load=access.get_namespace_by_id,
    can_read=access.can_read_namespace,
    is_admin=access.is_namespace_admin,
    need_read_access=NeedToHaveNamespaceReadAccess,
)


class RelationManager:
    """CRUD for one sharing relation between a parent and a user or team."""

    def __init__(
        self,
        parent: _ParentKind,
        model,
        target: str,
        already_has_access: Type[AppError],
        does_not_have_access: Type[AppError],
        event_type,
    ):
        self.parent = parent
        self.model = model
        self.target = target
        self.already_has_access = already_has_access
        self.does_not_have_access = does_not_have_access
        self.event_type = event_type

    # --- helpers ---

    @property
    def _target_column(self):
        return self.model.user_id if self.target == "user" else self.model.team_id

    @property
    def _parent_column(self):
        return getattr(self.model, self.parent.fk)

    async def _resolve_target(self, db: AsyncSession, target: Any):
        """Users are addressed by username, teams by id."""
        if self.target == "user":
            result = await db.execute(select(User).where(User.username == str(target)))
            user = result.scalar_one_or_none()
            if not user:
                raise UserDoesNotExist(username=target)
            return user
        try:
            team_id = int(target)
        except (TypeError, ValueError):
            raise TeamDoesNotExist(team_id=target)
        result = await db.execute(select(Team).where(Team.id == team_id))
        team = result.scalar_one_or_none()
        if not team:
            raise TeamDoesNotExist(team_id=team_id)
        return team

    async def _get_row(self, db: AsyncSession, parent_id: int, target_id: int):
        result = await db.execute(
            select(self.model).where(
                self._parent_column == parent_id,
                self._target_column == target_id,
            )
        )
        return result.scalar_one_or_none()

    def _make_event(self, parent, target, doer):
        return self.event_type(parent.id, parent.title, target.id, doer.get_id())

    @staticmethod
    async def _touch(db: AsyncSession, parent) -> None:
        parent.updated = utcnow()
        db.add(parent)
        await db.flush()

    # --- rights ---

    async def can_manage(self, db: AsyncSession, parent_id: int, doer) -> bool:
        """Create, update and delete all need admin on the parent."""
        if doer.kind == "link_share":
            return False
        return await self.parent.is_admin(db, parent_id, doer)

    can_create = can_manage
    can_update = can_manage
    can_delete = can_manage

    # --- operations ---

    async def create(self, db: AsyncSession, parent_id: int, target: Any, right: Any, doer):
        right = validate_right(right)
        parent = await self.parent.load(db, parent_id)
        resolved = await self._resolve_target(db, target)

        if self.target == "user" and resolved.id == parent.owner_id:
            raise self.already_has_access()

        if await self._get_row(db, parent.id, resolved.id) is not None:
            raise self.already_has_access()

        row = self.model(**{self.parent.fk: parent.id, f"{self.target}_id": resolved.id, "right": int(right)})
        db.add(row)
        try:
            await db.flush()
        except IntegrityError:
            await db.rollback()
            raise self.already_has_access()

        await dispatcher.dispatch(db, self._make_event(parent, resolved, doer))
        await self._touch(db, parent)

        logger.info(
            f"Shared {self.parent.name} {parent.id} with {self.target} {resolved.id} "
            f"(right={right.name}) by {doer.get_id()}"
        )
        return row, resolved

    async def delete(self, db: AsyncSession, parent_id: int, target: Any, doer) -> None:
        parent = await self.parent.load(db, parent_id)
        resolved = await self._resolve_target(db, target)
        row = await self._get_row(db, parent.id, resolved.id)
        if row is None:
            raise self.does_not_have_access()
        await db.delete(row)
        await db.flush()
        await self._touch(db, parent)
        logger.info(f"Removed {self.target} {resolved.id} from {self.parent.name} {parent.id}")

    async def update(self, db: AsyncSession, parent_id: int, target: Any, right: Any, doer):
        right = validate_right(right)
        parent = await self.parent.load(db, parent_id)
        resolved = await self._resolve_target(db, target)
        row = await self._get_row(db, parent.id, resolved.id)
        if row is None:
            raise self.does_not_have_access()
        row.right = int(right)
        row.updated = utcnow()
        db.add(row)
        await db.flush()
        await self._touch(db, parent)
        return row, resolved

    async def read_all(
        self,
        db: AsyncSession,
        parent_id: int,
        doer,
        search: str = "",
        page: int = 1,
        per_page: int = 0,
    ) -> Tuple[List[Dict[str, Any]], int]:
        parent = await self.parent.load(db, parent_id)
        if not await self.parent.can_read(db, parent, doer):
            raise self.parent.need_read_access()

        if self.target == "user":
            entity, name_column = User, User.username
            join_on = self.model.user_id == User.id
        else:
            entity, name_column = Team, Team.name
            join_on = self.model.team_id == Team.id

        conditions = [self._parent_column == parent.id]
        if search:
            conditions.append(name_column.ilike(f"%{search}%"))

        total = (await db.execute(
            select(func.count(self.model.id)).join(entity, join_on).where(*conditions)
        )).scalar() or 0

        limit, offset = get_limit_and_offset(page, per_page)
        result = await db.execute(
            select(entity, self.model)
            .join(self.model, join_on)
            .where(*conditions)
            .order_by(self.model.id)
            .limit(limit)
            .offset(offset)
        )
        items = [self._entity_with_right(e, row) for e, row in result.all()]
        return items, total

    def _entity_with_right(self, entity, row) -> Dict[str, Any]:
        if self.target == "user":
            out = {
                "id": entity.id,
                "username": entity.username,
                "name": entity.name or "",
                "email": "",
            }
        else:
            out = {
                "id": entity.id,
                "name": entity.name,
                "description": entity.description or "",
            }
        out.update({
            "right": row.right,
            "created": row.created.isoformat() if row.created else None,
            "updated": row.updated.isoformat() if row.updated else None,
        })
        return out


list_users = RelationManager(
    LIST, ListUser, "user",
    already_has_access=UserAlreadyHasAccess,
    does_not_have_access=UserDoesNotHaveAccessToList,
    event_type=ListSharedWithUserEvent,
)

list_teams = RelationManager(
    LIST, ListTeam, "team",
    already_has_access=TeamAlreadyHasAccess,
    does_not_have_access=TeamDoesNotHaveAccessToList,
    event_type=ListSharedWithTeamEvent,
)

namespace_users = RelationManager(
    NAMESPACE, NamespaceUser, "user",
    already_has_access=UserAlreadyHasNamespaceAccess,
    does_not_have_access=UserDoesNotHaveAccessToNamespace,
    event_type=NamespaceSharedWithUserEvent,
)

namespace_teams = RelationManager(
    NAMESPACE, NamespaceTeam, "team",
    already_has_access=TeamAlreadyHasAccess,
    does_not_have_access=TeamDoesNotHaveAccessToNamespace,
    event_type=NamespaceSharedWithTeamEvent,
)
