"""
Notification service — durable per-user inbox.

Every notification created here is also staged as a "notification" frame
for the recipient's user topic.
"""
import logging

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from db_models import Notification
from domain.constants import user_topic
from domain.enums import NotificationType
from domain.errors import NotFoundError, PermissionDeniedError
from services import outbox_service
from utils.clock import utcnow

logger = logging.getLogger(__name__)


async def create_notification(
    db: AsyncSession,
    *,
    user_id: str,
    type: NotificationType,
    title: str,
    message: str,
    related_id: str | None = None,
    action_url: str | None = None,
) -> Notification:
    """
    Insert a notification for user_id.

    related_id lands in order_id for "order" notifications and in
    delivery_id for "delivery" notifications; other types ignore it.
    """
    notification = Notification(
        user_id=user_id,
        type=NotificationType(type).value,
        title=title,
        message=message,
        order_id=related_id if type == NotificationType.ORDER else None,
        delivery_id=related_id if type == NotificationType.DELIVERY else None,
        action_url=action_url,
        read=False,
        created_at=utcnow(),
    )
    db.add(notification)
    await db.flush()

    outbox_service.enqueue(
        db,
        user_topic(user_id),
        outbox_service.frame(
            "notification",
            {
                "id": notification.id,
                "type": notification.type,
                "title": notification.title,
                "message": notification.message,
                "orderId": notification.order_id,
                "deliveryId": notification.delivery_id,
                "createdAt": notification.created_at.isoformat(),
            },
        ),
    )
    return notification


async def list_notifications(
    db: AsyncSession,
    *,
    user_id: str,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[Notification], int, int]:
    """Newest first. Returns (page, total, unread_count)."""
    res = await db.execute(
        select(Notification)
        .where(Notification.user_id == user_id)
        .order_by(Notification.created_at.desc(), Notification.id.desc())
        .limit(limit)
        .offset(offset)
    )
    page = res.scalars().all()

    total = (
        await db.execute(
            select(func.count()).select_from(Notification).where(Notification.user_id == user_id)
        )
    ).scalar_one()
    unread = (
        await db.execute(
            select(func.count())
            .select_from(Notification)
            .where(Notification.user_id == user_id, Notification.read.is_(False))
        )
    ).scalar_one()
    return page, total, unread


async def mark_all_read(db: AsyncSession, *, user_id: str) -> int:
    """Mark every unread notification of user_id as read. Returns rows changed."""
    result = await db.execute(
        update(Notification)
        .where(Notification.user_id == user_id, Notification.read.is_(False))
        .values(read=True, read_at=utcnow())
    )
    return result.rowcount or 0


async def mark_read(db: AsyncSession, *, notification_id: str, user_id: str) -> Notification:
    """Mark one notification read. Only its recipient may do so."""
    notification = await db.get(Notification, notification_id)
    if not notification:
        raise NotFoundError("Notification", notification_id)
    if notification.user_id != user_id:
        raise PermissionDeniedError("Only the recipient can update this notification.")

    if not notification.read:
        notification.read = True
        notification.read_at = utcnow()
        await db.flush()
    return notification
