# events.py — In-process event dispatch for sharing events
"""
Services dispatch typed events inside the caller's database session.
Listeners run in registration order. A failing listener propagates its
exception so the surrounding transaction is rolled back.

The default listener turns every sharing event into Notification rows for
the user (or each member of the team) who received access.
"""
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, List, Type

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from models import Notification, TeamMember

logger = logging.getLogger("donelist.events")


@dataclass
class ListSharedWithUserEvent:
    list_id: int
    list_title: str
    user_id: int
    doer_id: int
    name = "list.shared.user"


@dataclass
class ListSharedWithTeamEvent:
    list_id: int
    list_title: str
    team_id: int
    doer_id: int
    name = "list.shared.team"


@dataclass
class NamespaceSharedWithUserEvent:
    namespace_id: int
    namespace_title: str
    user_id: int
    doer_id: int
    name = "namespace.shared.user"


@dataclass
class NamespaceSharedWithTeamEvent:
    namespace_id: int
    namespace_title: str
    team_id: int
    doer_id: int
    name = "namespace.shared.team"


Listener = Callable[[AsyncSession, object], Awaitable[None]]


class EventDispatcher:
    def __init__(self):
        self._listeners: Dict[Type, List[Listener]] = {}

    def subscribe(self, event_type: Type, listener: Listener) -> None:
        self._listeners.setdefault(event_type, []).append(listener)

    def unsubscribe(self, event_type: Type, listener: Listener) -> None:
        listeners = self._listeners.get(event_type, [])
        if listener in listeners:
            listeners.remove(listener)

    async def dispatch(self, db: AsyncSession, event) -> None:
        listeners = self._listeners.get(type(event), [])
        logger.debug(f"Dispatching {event.name} to {len(listeners)} listener(s)")
        for listener in listeners:
            await listener(db, event)


dispatcher = EventDispatcher()


# ============================================================
# NOTIFICATION LISTENER
# ============================================================

async def _notify_users(db: AsyncSession, user_ids: List[int], event, subject: str) -> None:
    for user_id in user_ids:
        if user_id == event.doer_id:
            continue
        db.add(Notification(user_id=user_id, name=event.name, subject=subject, body=subject))
    await db.flush()


async def notify_on_share(db: AsyncSession, event) -> None:
    if isinstance(event, (ListSharedWithUserEvent, ListSharedWithTeamEvent)):
        subject = f'The list "{event.list_title}" was shared with you'
    else:
        subject = f'The namespace "{event.namespace_title}" was shared with you'

    if hasattr(event, "team_id"):
        result = await db.execute(select(TeamMember.user_id).where(TeamMember.team_id == event.team_id))
        user_ids = list(result.scalars().all())
    else:
        user_ids = [event.user_id]
    await _notify_users(db, user_ids, event, subject)


for _event_type in (
    ListSharedWithUserEvent, ListSharedWithTeamEvent,
    NamespaceSharedWithUserEvent, NamespaceSharedWithTeamEvent,
):
    dispatcher.subscribe(_event_type, notify_on_share)
