# link_sharing.py — Hash-addressed, optionally password-protected list shares
import logging
import secrets
import string
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from auth import AuthService
from errors import (
    ListShareDoesNotExist, LinkSharePasswordRequired, LinkSharePasswordInvalid,
)
from models import LinkSharing, SharingType, User
from pagination import get_limit_and_offset
from rights import validate_right

logger = logging.getLogger("donelist.link_sharing")

HASH_LENGTH = 40
_HASH_ALPHABET = string.ascii_letters + string.digits


def generate_hash(length: int = HASH_LENGTH) -> str:
    return "".join(secrets.choice(_HASH_ALPHABET) for _ in range(length))


async def create_link_share(
    db: AsyncSession,
    list_id: int,
    right: Any,
    doer,
    name: str = "",
    password: Optional[str] = None,
) -> LinkSharing:
    """Create a share for list_id. The caller has already checked write access."""
    right = validate_right(right)
    share = LinkSharing(
        hash=generate_hash(),
        name=name or "",
        list_id=list_id,
        right=int(right),
        shared_by_id=doer.get_id(),
    )
    if password:
        share.password = AuthService.hash_password(password)
        share.sharing_type = SharingType.WITH_PASSWORD.value
    else:
        share.sharing_type = SharingType.WITHOUT_PASSWORD.value

    db.add(share)
    await db.flush()
    logger.info(f"Created link share {share.id} for list {list_id} (right={right.name})")
    return share


async def get_share_by_hash(db: AsyncSession, share_hash: str) -> LinkSharing:
    result = await db.execute(select(LinkSharing).where(LinkSharing.hash == share_hash))
    share = result.scalar_one_or_none()
    if not share:
        raise ListShareDoesNotExist(hash=share_hash)
    return share


def verify_link_share_password(share: LinkSharing, password: Optional[str]) -> None:
    if share.sharing_type != SharingType.WITH_PASSWORD.value:
        return
    if not password:
        raise LinkSharePasswordRequired(share_id=share.id)
    if not share.password or not AuthService.verify_password(password, share.password):
        raise LinkSharePasswordInvalid(share_id=share.id)


async def authenticate_link_share(
    db: AsyncSession, share_hash: str, password: Optional[str] = None,
) -> Tuple[str, LinkSharing]:
    """Exchange a share hash (and password, if required) for a link-share token."""
    share = await get_share_by_hash(db, share_hash)
    verify_link_share_password(share, password)
    token = AuthService.create_link_share_token(share)
    return token, share


async def read_one(db: AsyncSession, list_id: int, share_id: int) -> LinkSharing:
    result = await db.execute(
        select(LinkSharing).where(LinkSharing.id == share_id, LinkSharing.list_id == list_id)
    )
    share = result.scalar_one_or_none()
    if not share:
        raise ListShareDoesNotExist(share_id=share_id)
    return share


async def read_all(
    db: AsyncSession,
    list_id: int,
    search: str = "",
    page: int = 1,
    per_page: int = 0,
) -> Tuple[List[Dict[str, Any]], int]:
    conditions = [LinkSharing.list_id == list_id]
    if search:
        conditions.append(LinkSharing.hash.like(f"%{search}%"))

    total = (await db.execute(
        select(func.count(LinkSharing.id)).where(*conditions)
    )).scalar() or 0

    limit, offset = get_limit_and_offset(page, per_page)
    result = await db.execute(
        select(LinkSharing).where(*conditions).order_by(LinkSharing.id).limit(limit).offset(offset)
    )
    shares = list(result.scalars().all())

    sharer_ids = {s.shared_by_id for s in shares}
    sharers: Dict[int, User] = {}
    if sharer_ids:
        users = await db.execute(select(User).where(User.id.in_(sharer_ids)))
        sharers = {u.id: u for u in users.scalars().all()}

    return [share_to_dict(s, sharers.get(s.shared_by_id)) for s in shares], total


async def delete(db: AsyncSession, list_id: int, share_id: int) -> None:
    share = await read_one(db, list_id, share_id)
    await db.delete(share)
    await db.flush()
    logger.info(f"Deleted link share {share_id} of list {list_id}")


def share_to_dict(share: LinkSharing, shared_by: Optional[User] = None) -> Dict[str, Any]:
    """Serialize a share. The password hash never leaves the server."""
    return {
        "id": share.id,
        "hash": share.hash,
        "name": share.name or "",
        "list_id": share.list_id,
        "right": share.right,
        "sharing_type": share.sharing_type,
        "password": "",
        "shared_by": {
            "id": shared_by.id,
            "username": shared_by.username,
            "name": shared_by.name or "",
        } if shared_by else None,
        "created": share.created.isoformat() if share.created else None,
        "updated": share.updated.isoformat() if share.updated else None,
    }
