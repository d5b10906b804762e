"""Integration tests: manager inbox, user profiles and points history."""

from __future__ import annotations

import pytest

from questhub.auth.principal import Principal, Role
from questhub.enrollments.service import join_task
from questhub.errors import NotificationNotFound, UserNotFound, ValidationFailed
from questhub.notifications import service as notifications
from questhub.points import ledger
from questhub.points.ledger import AdjustOperation
from questhub.submissions import service as submissions
from questhub.users import service as users

pytestmark = pytest.mark.asyncio

MANAGER = Principal(user_id="manager-1", role=Role.MANAGER)


async def _submit_all(db, quest, user_id: str = "alice") -> None:
    task, steps = quest
    await join_task(db, task.task_id, user_id)
    for step in steps:
        await submissions.submit_step(db, step.step_id, user_id)
    await db.commit()


class TestNotifications:
    """The manager's inbox."""

    async def test_listing_is_newest_first_and_paginated(self, db_session, quest):
        await _submit_all(db_session, quest)
        _, steps = quest

        page, total = await notifications.get_notifications(db_session, "manager-1", page=1, per_page=1)
        assert total == 2
        assert [n.step_id for n in page] == [steps[1].step_id]

        page, _ = await notifications.get_notifications(db_session, "manager-1", page=2, per_page=1)
        assert [n.step_id for n in page] == [steps[0].step_id]

    async def test_scoped_to_recipient(self, db_session, quest):
        await _submit_all(db_session, quest)
        items, total = await notifications.get_notifications(db_session, "alice")
        assert items == [] and total == 0

    async def test_mark_read(self, db_session, quest):
        await _submit_all(db_session, quest)
        items, _ = await notifications.get_notifications(db_session, "manager-1")
        assert await notifications.get_unread_count(db_session, "manager-1") == 2

        await notifications.mark_as_read(db_session, "manager-1", items[0].notification_id)
        await notifications.mark_as_read(db_session, "manager-1", items[0].notification_id)
        assert await notifications.get_unread_count(db_session, "manager-1") == 1

        assert await notifications.mark_all_as_read(db_session, "manager-1") == 1
        assert await notifications.get_unread_count(db_session, "manager-1") == 0

    async def test_cannot_touch_someone_elses(self, db_session, quest):
        await _submit_all(db_session, quest)
        items, _ = await notifications.get_notifications(db_session, "manager-1")
        with pytest.raises(NotificationNotFound):
            await notifications.mark_as_read(db_session, "alice", items[0].notification_id)
        with pytest.raises(NotificationNotFound):
            await notifications.delete_notification(db_session, "alice", items[0].notification_id)

    async def test_delete_read(self, db_session, quest):
        await _submit_all(db_session, quest)
        items, _ = await notifications.get_notifications(db_session, "manager-1")
        await notifications.mark_as_read(db_session, "manager-1", items[0].notification_id)

        assert await notifications.delete_read(db_session, "manager-1") == 1
        remaining, total = await notifications.get_notifications(db_session, "manager-1")
        assert total == 1
        assert remaining[0].is_read is False

    async def test_invalid_type(self, db_session, people):
        with pytest.raises(ValidationFailed):
            await notifications.create_notification(db_session, "manager-1", "carrier_pigeon", "Hi")

    async def test_system_notification(self, db_session, people):
        created = await notifications.create_notification(
            db_session, "manager-1", notifications.SYSTEM, "Maintenance", "Tonight at 22:00"
        )
        assert created.task_id is None
        assert await notifications.get_unread_count(db_session, "manager-1") == 1


class TestUsers:
    """Profiles, roles and history."""

    async def test_sync_creates_then_refreshes(self, db_session, people):
        user, created = await users.sync_user(db_session, {"sub": "carol", "email": "c@example.com"}, "Carol")
        assert created
        assert user.role == "user"
        assert user.total_points == 0

        user, created = await users.sync_user(db_session, {"sub": "carol", "role": "admin"}, avatar_url="https://a/c.png")
        assert not created
        assert user.role == "user"
        assert user.name == "Carol"
        assert user.avatar_url == "https://a/c.png"

    async def test_read_model_includes_rank(self, db_session, people):
        await ledger.adjust_points(db_session, "alice", AdjustOperation.SET, 100_001, "admin-1")
        view = await users.user_read_model(db_session, "alice")
        assert view.total_points == 100_001
        assert view.rank.name == "Silver"

    async def test_unknown_user(self, db_session, people):
        with pytest.raises(UserNotFound):
            await users.get_user(db_session, "ghost")

    async def test_list_by_role(self, db_session, people):
        managers = await users.list_users(db_session, Role.MANAGER)
        assert [u.user_id for u in managers] == ["manager-1"]
        assert len(await users.list_users(db_session)) == 4

    async def test_change_role(self, db_session, people):
        user = await users.change_role(db_session, "admin-1", "alice", Role.MANAGER)
        assert user.role == "manager"

    async def test_admin_cannot_demote_self(self, db_session, people):
        with pytest.raises(ValidationFailed):
            await users.change_role(db_session, "admin-1", "admin-1", Role.USER)

    async def test_point_history(self, db_session, quest):
        task, steps = quest
        await join_task(db_session, task.task_id, "alice")
        sub = await submissions.submit_step(db_session, steps[0].step_id, "alice")
        await submissions.approve_submission(db_session, sub.submission_id, MANAGER)
        await ledger.adjust_points(db_session, "alice", AdjustOperation.INCREASE, 5, "admin-1")
        await db_session.commit()

        history = await users.get_point_history(db_session, "alice")
        assert history.total_points == 105
        assert sum(e.points_earned for e in history.entries) == 105
        manual = [e for e in history.entries if e.step_id is None]
        assert manual[0].reason == "manual:increase"
        earned = [e for e in history.entries if e.step_id == steps[0].step_id]
        assert earned[0].task_title == "Onboarding"
        assert [(t.task_id, t.earned_points, t.total_points) for t in history.tasks] == [(task.task_id, 100, 150)]
