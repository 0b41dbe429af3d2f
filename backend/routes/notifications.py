"""
Notification endpoints — the caller's inbox.
"""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from deps import Pagination, get_db, pagination_params
from domain.errors import ValidationError
from domain.responses import paginated_response, success_response
from middleware.auth import AuthClaims, require_claims
from models import NotificationResponse, NotificationsUpdateRequest
from services import notification_service

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/notifications", tags=["notifications"])


@router.get("")
async def list_notifications(
    claims: AuthClaims = Depends(require_claims),
    page: Pagination = Depends(pagination_params),
    db: AsyncSession = Depends(get_db),
):
    notifications, total, unread = await notification_service.list_notifications(
        db, user_id=claims.user_id, limit=page["limit"], offset=page["offset"]
    )
    return paginated_response(
        "notifications",
        [NotificationResponse.model_validate(n).to_wire() for n in notifications],
        limit=page["limit"],
        offset=page["offset"],
        total=total,
        unreadCount=unread,
    )


@router.put("")
async def update_notifications(
    request: NotificationsUpdateRequest,
    claims: AuthClaims = Depends(require_claims),
    db: AsyncSession = Depends(get_db),
):
    if not request.mark_all_as_read:
        raise ValidationError("Invalid action")

    updated = await notification_service.mark_all_read(db, user_id=claims.user_id)
    await db.commit()
    return success_response(message="All notifications marked as read", updated=updated)


@router.put("/{notification_id}/read")
async def mark_notification_read(
    notification_id: str,
    claims: AuthClaims = Depends(require_claims),
    db: AsyncSession = Depends(get_db),
):
    notification = await notification_service.mark_read(
        db, notification_id=notification_id, user_id=claims.user_id
    )
    await db.commit()
    return success_response(notification=NotificationResponse.model_validate(notification).to_wire())
