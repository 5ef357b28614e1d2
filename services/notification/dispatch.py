"""
services/notification/dispatch.py
In-app notification sink. Rows are added to the caller's session and
commit or roll back with the caller's unit of work.
"""

import uuid
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from shared.models.models import Notification, NotificationType
from shared.utils.time_utils import utcnow

DEFAULT_LINK = "/profile"


def create_notification(
    db: AsyncSession,
    user_id: uuid.UUID,
    type: NotificationType,
    title: str,
    message: str,
    link: Optional[str] = DEFAULT_LINK,
    booking_id: Optional[uuid.UUID] = None,
    created_at=None,
) -> Notification:
    notif = Notification(
        user_id=user_id,
        booking_id=booking_id,
        type=type,
        title=title,
        message=message,
        link=link,
        created_at=created_at or utcnow(),
    )
    db.add(notif)
    return notif
