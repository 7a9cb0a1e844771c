# routers/notifications.py — In-app notifications created by sharing events
from fastapi import APIRouter, Depends, HTTPException, Query, Response
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from auth import get_current_user, CurrentUser
from database import get_db_session
from models import Notification, utcnow
from pagination import get_limit_and_offset, set_pagination_headers

router = APIRouter(prefix="/api/v1/notifications", tags=["Notifications"])


def _notif_out(n: Notification) -> dict:
    return {
        "id": n.id,
        "name": n.name,
        "subject": n.subject,
        "body": n.body,
        "read_at": n.read_at.isoformat() if n.read_at else None,
        "is_read": n.read_at is not None,
        "created": n.created.isoformat() if n.created else None,
    }


# ============================================================
# LIST
# ============================================================

@router.get("")
async def list_notifications(
    response: Response,
    unread_only: bool = Query(default=False),
    page: int = Query(default=1, ge=1),
    per_page: int = Query(default=0, ge=0),
    db: AsyncSession = Depends(get_db_session),
    user: CurrentUser = Depends(get_current_user),
):
    conditions = [Notification.user_id == user.id]
    if unread_only:
        conditions.append(Notification.read_at.is_(None))

    total = (await db.execute(select(func.count(Notification.id)).where(*conditions))).scalar() or 0
    limit, offset = get_limit_and_offset(page, per_page)
    result = await db.execute(
        select(Notification).where(*conditions)
        .order_by(Notification.created.desc(), Notification.id.desc())
        .limit(limit).offset(offset)
    )
    items = [_notif_out(n) for n in result.scalars().all()]
    set_pagination_headers(response, total, len(items), per_page)
    return items


# ============================================================
# MARK READ
# ============================================================

@router.post("/{notification_id}/read")
async def mark_read(
    notification_id: int,
    db: AsyncSession = Depends(get_db_session),
    user: CurrentUser = Depends(get_current_user),
):
    result = await db.execute(
        select(Notification).where(
            Notification.id == notification_id,
            Notification.user_id == user.id,
        )
    )
    notif = result.scalar_one_or_none()
    if not notif:
        raise HTTPException(404, "Notification not found")
    notif.read_at = utcnow()
    await db.commit()
    return _notif_out(notif)
