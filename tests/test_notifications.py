"""
PayDesk - Notification Tests
"""

import pytest

from paydesk.models.notification import NotificationCategory
from paydesk.services.notification_service import NotificationService


API = "/api/v1"


async def notify(client, headers, user_id, **overrides) -> dict:
    payload = {"user_id": str(user_id), "title": "Reminder", "message": "Submit your timesheet"}
    payload.update(overrides)
    response = await client.post(f"{API}/notifications", json=payload, headers=headers)
    assert response.status_code == 201, response.text
    return response.json()


class TestNotificationFeed:
    """Per-account feed and read state."""

    @pytest.mark.asyncio
    async def test_admin_creates_notification(self, client, admin_headers, employee_user, employee_headers):
        created = await notify(client, admin_headers, employee_user.id, category="reminder")

        response = await client.get(f"{API}/notifications", headers=employee_headers)

        data = response.json()
        assert data["unread_count"] == 1
        assert data["pagination"]["total"] == 1
        assert data["items"][0]["id"] == created["id"]
        assert data["items"][0]["category"] == "reminder"
        assert data["items"][0]["is_read"] is False

    @pytest.mark.asyncio
    async def test_notification_for_unknown_user(self, client, admin_headers):
        response = await client.post(
            f"{API}/notifications",
            json={
                "user_id": "5f0c8f65-1d6e-4f1e-8b69-000000000000",
                "title": "Hello",
                "message": "Nobody home",
            },
            headers=admin_headers,
        )

        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_employee_cannot_create(self, client, employee_user, employee_headers):
        response = await client.post(
            f"{API}/notifications",
            json={"user_id": str(employee_user.id), "title": "Hi", "message": "Self note"},
            headers=employee_headers,
        )

        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_read_and_unread(self, client, admin_headers, employee_user, employee_headers):
        created = await notify(client, admin_headers, employee_user.id)

        read = await client.put(f"{API}/notifications/{created['id']}/read", headers=employee_headers)
        assert read.json()["is_read"] is True
        assert read.json()["read_at"] is not None

        count = await client.get(f"{API}/notifications/unread-count", headers=employee_headers)
        assert count.json()["unread_count"] == 0

        unread = await client.put(f"{API}/notifications/{created['id']}/unread", headers=employee_headers)
        assert unread.json()["is_read"] is False
        assert unread.json()["read_at"] is None

    @pytest.mark.asyncio
    async def test_mark_all_and_clear_read(self, client, admin_headers, employee_user, employee_headers):
        for title in ("One", "Two", "Three"):
            await notify(client, admin_headers, employee_user.id, title=title)

        marked = await client.put(f"{API}/notifications/mark-all-read", headers=employee_headers)
        assert marked.json()["count"] == 3

        await notify(client, admin_headers, employee_user.id, title="Four")
        cleared = await client.delete(f"{API}/notifications/clear-read", headers=employee_headers)
        assert cleared.json()["count"] == 3

        remaining = await client.get(f"{API}/notifications", headers=employee_headers)
        assert [n["title"] for n in remaining.json()["items"]] == ["Four"]

    @pytest.mark.asyncio
    async def test_filters(self, client, admin_headers, employee_user, employee_headers):
        await notify(client, admin_headers, employee_user.id, category="reminder")
        created = await notify(client, admin_headers, employee_user.id, category="other")
        await client.put(f"{API}/notifications/{created['id']}/read", headers=employee_headers)

        reminders = await client.get(
            f"{API}/notifications", params={"category": "reminder"}, headers=employee_headers
        )
        unread = await client.get(
            f"{API}/notifications", params={"is_read": "false"}, headers=employee_headers
        )

        assert reminders.json()["pagination"]["total"] == 1
        assert [n["category"] for n in unread.json()["items"]] == ["reminder"]

    @pytest.mark.asyncio
    async def test_expired_notifications_hidden(self, client, admin_headers, employee_user, employee_headers):
        await notify(client, admin_headers, employee_user.id, expires_at="2020-01-01T00:00:00")

        response = await client.get(f"{API}/notifications", headers=employee_headers)

        assert response.json()["items"] == []
        assert response.json()["unread_count"] == 0

    @pytest.mark.asyncio
    async def test_other_accounts_notifications_are_invisible(
        self, client, admin_headers, employee_user, other_employee_headers
    ):
        created = await notify(client, admin_headers, employee_user.id)

        get = await client.get(f"{API}/notifications/{created['id']}", headers=other_employee_headers)
        delete = await client.delete(f"{API}/notifications/{created['id']}", headers=other_employee_headers)

        assert get.status_code == 404
        assert get.json()["detail"]["code"] == "NOTIFICATION_NOT_FOUND"
        assert delete.status_code == 404

    @pytest.mark.asyncio
    async def test_delete(self, client, admin_headers, employee_user, employee_headers):
        created = await notify(client, admin_headers, employee_user.id)

        response = await client.delete(f"{API}/notifications/{created['id']}", headers=employee_headers)
        again = await client.get(f"{API}/notifications/{created['id']}", headers=employee_headers)

        assert response.status_code == 200
        assert again.status_code == 404


class TestBroadcast:

    @pytest.mark.asyncio
    async def test_broadcast_to_active_accounts(
        self, client, admin_headers, employee_user, other_employee, employee_headers
    ):
        await client.delete(f"{API}/users/{other_employee.id}", headers=admin_headers)

        response = await client.post(
            f"{API}/notifications/broadcast",
            json={"title": "Office closed", "message": "Closed on Friday for maintenance"},
            headers=admin_headers,
        )

        # admin and one active employee
        assert response.status_code == 201
        assert response.json()["count"] == 2

        feed = await client.get(f"{API}/notifications", headers=employee_headers)
        assert feed.json()["items"][0]["category"] == "system_update"

    @pytest.mark.asyncio
    async def test_broadcast_to_role(self, client, admin_headers, employee_user, other_employee):
        response = await client.post(
            f"{API}/notifications/broadcast",
            json={"title": "Payday", "message": "Salaries go out today", "target_role": "employee"},
            headers=admin_headers,
        )

        assert response.json()["count"] == 2

    @pytest.mark.asyncio
    async def test_stats(self, client, admin_headers, employee_user):
        await notify(client, admin_headers, employee_user.id)

        response = await client.get(f"{API}/notifications/stats", headers=admin_headers)

        assert response.status_code == 200
        assert response.json()["total"] == 1
        assert response.json()["unread"] == 1


class TestNotifySafely:
    """Workflow notifications never fail the triggering operation."""

    @pytest.mark.asyncio
    async def test_failure_is_swallowed_and_rolled_back(self, db_session, employee_user):
        service = NotificationService(db_session)

        recorded = await service.notify_safely([
            {"user_id": employee_user.id, "title": "ok", "message": "fine"},
            {"user_id": employee_user.id, "title": None, "message": "title is required"},
        ])

        assert recorded == 0
        items, total = await service.get_user_notifications(employee_user.id)
        assert total == 0

    @pytest.mark.asyncio
    async def test_records_all(self, db_session, employee_user):
        service = NotificationService(db_session)

        recorded = await service.notify_safely([
            {"user_id": employee_user.id, "title": "a", "message": "one",
             "category": NotificationCategory.REMINDER},
            {"user_id": employee_user.id, "title": "b", "message": "two"},
        ])

        assert recorded == 2
        assert await service.get_unread_count(employee_user.id) == 2
