# rights.py — Right levels and the pure right resolver
"""
A principal's effective right on a list or namespace is the maximum of
every grant that applies to it. Grants are produced in a fixed order
(ownership first, then direct shares, then inherited shares) so the
resolver can stop as soon as it sees ADMIN.

Nothing in here touches the database: access.py loads the grant sources
and hands them to these functions.
"""
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any, Iterable, Iterator, List, Optional

from errors import InvalidRight


class Right(IntEnum):
    READ = 0
    READ_WRITE = 1
    ADMIN = 2


# Link shares can never administer the list they point at
LINK_SHARE_MAX_RIGHT = Right.READ_WRITE


def validate_right(value: Any) -> Right:
    """Return value as a Right or raise InvalidRight."""
    if isinstance(value, bool):
        raise InvalidRight()
    try:
        return Right(int(value))
    except (TypeError, ValueError):
        raise InvalidRight()


def resolve_right(grants: Iterable[Optional[Right]]) -> Optional[Right]:
    best: Optional[Right] = None
    for grant in grants:
        if grant is None:
            continue
        grant = Right(grant)
        if best is None or grant > best:
            best = grant
        if best == Right.ADMIN:
            break
    return best


@dataclass
class NamespaceGrantSources:
    namespace_id: int
    owner_id: int
    user_right: Optional[Right] = None
    team_rights: List[Right] = field(default_factory=list)


@dataclass
class ListGrantSources:
    list_id: int
    list_owner_id: int
    namespace_owner_id: int
    user_right: Optional[Right] = None
    team_rights: List[Right] = field(default_factory=list)
    namespace_user_right: Optional[Right] = None
    namespace_team_rights: List[Right] = field(default_factory=list)


def namespace_grants(sources: NamespaceGrantSources, principal) -> Iterator[Optional[Right]]:
    if principal.kind == "link_share":
        return
    if principal.id == sources.owner_id:
        yield Right.ADMIN
    yield sources.user_right
    yield from sources.team_rights


def list_grants(sources: ListGrantSources, principal) -> Iterator[Optional[Right]]:
    if principal.kind == "link_share":
        if principal.list_id == sources.list_id:
            yield min(Right(principal.right), LINK_SHARE_MAX_RIGHT)
        return
    if principal.id == sources.namespace_owner_id:
        yield Right.ADMIN
    if principal.id == sources.list_owner_id:
        yield Right.ADMIN
    yield sources.user_right
    yield from sources.team_rights
    yield sources.namespace_user_right
    yield from sources.namespace_team_rights


def has_right(effective: Optional[Right], needed: Right) -> bool:
    return effective is not None and effective >= needed
