"""
tests/test_notifications.py
Tests for in-app notification management: listing, marking as read, unread count.
"""

import uuid
from datetime import timedelta

import pytest
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from services.notification.dispatch import create_notification
from shared.models.models import NotificationType, User
from tests.helpers import NOW, user_headers


async def _notify(db: AsyncSession, user: User, title: str, minutes_ago: int = 0):
    notif = create_notification(
        db,
        user_id=user.id,
        type=NotificationType.BOOKING_WARNING,
        title=title,
        message=f"{title} message",
        created_at=NOW - timedelta(minutes=minutes_ago),
    )
    await db.commit()
    return notif


@pytest.mark.asyncio
async def test_get_notifications_empty(client: AsyncClient, user: User):
    """User with no notifications gets empty list."""
    response = await client.get("/notifications", headers=user_headers(user))
    assert response.status_code == 200
    assert response.json() == []


@pytest.mark.asyncio
async def test_get_notifications_returns_own_newest_first(
    client: AsyncClient, db: AsyncSession, user: User, other_user: User
):
    """User sees their own notifications only."""
    await _notify(db, user, "Older", minutes_ago=30)
    await _notify(db, user, "Newer")
    await _notify(db, other_user, "Not yours")

    response = await client.get("/notifications", headers=user_headers(user))

    assert [n["title"] for n in response.json()] == ["Newer", "Older"]
    assert response.json()[0]["link"] == "/profile"


@pytest.mark.asyncio
async def test_mark_read_and_unread_count(client: AsyncClient, db: AsyncSession, user: User):
    first = await _notify(db, user, "First")
    await _notify(db, user, "Second")

    count = await client.get("/notifications/unread-count", headers=user_headers(user))
    assert count.json() == {"count": 2}

    response = await client.post(f"/notifications/{first.id}/read", headers=user_headers(user))
    assert response.status_code == 200
    assert response.json()["is_read"] is True
    assert response.json()["read_at"] is not None

    count = await client.get("/notifications/unread-count", headers=user_headers(user))
    assert count.json() == {"count": 1}

    unread = await client.get(
        "/notifications", headers=user_headers(user), params={"unread_only": True}
    )
    assert [n["title"] for n in unread.json()] == ["Second"]


@pytest.mark.asyncio
async def test_mark_all_read(client: AsyncClient, db: AsyncSession, user: User):
    await _notify(db, user, "First")
    await _notify(db, user, "Second")

    response = await client.post("/notifications/read-all", headers=user_headers(user))

    assert response.status_code == 200
    assert response.json()["message"] == "2 notification(s) marked as read"
    count = await client.get("/notifications/unread-count", headers=user_headers(user))
    assert count.json() == {"count": 0}


@pytest.mark.asyncio
async def test_cannot_read_someone_elses_notification(
    client: AsyncClient, db: AsyncSession, user: User, other_user: User
):
    notif = await _notify(db, other_user, "Private")
    response = await client.post(f"/notifications/{notif.id}/read", headers=user_headers(user))
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_missing_notification_404(client: AsyncClient, user: User):
    response = await client.post(f"/notifications/{uuid.uuid4()}/read", headers=user_headers(user))
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_notifications_require_identity(client: AsyncClient):
    response = await client.get("/notifications")
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_unknown_user_rejected(client: AsyncClient):
    response = await client.get("/notifications", headers={"X-User-Id": str(uuid.uuid4())})
    assert response.status_code == 401
