"""Integration tests: joining and leaving tasks."""

from __future__ import annotations

from datetime import timedelta

import pytest
from sqlalchemy import func, select

from questhub.auth.principal import Principal, Role
from questhub.clock import utcnow
from questhub.db.models import Notification, StepSubmission, TaskEnrollment, User, UserPointHistory
from questhub.enrollments import service
from questhub.errors import (
    AlreadyJoined,
    NotEnrolled,
    SubmissionNotFound,
    TaskExpired,
    TaskInactive,
    TaskNotFound,
)
from questhub.points import ledger
from questhub.submissions import service as submissions
from questhub.tasks.service import get_task_progress

pytestmark = pytest.mark.asyncio

MANAGER = Principal(user_id="manager-1", role=Role.MANAGER)


async def _count(db, model, *where) -> int:
    result = await db.execute(select(func.count()).select_from(model).where(*where))
    return result.scalar_one()


async def _total(db, user_id: str) -> int:
    result = await db.execute(select(User.total_points).where(User.user_id == user_id))
    return result.scalar_one()


class TestJoin:
    """Enrolling in tasks."""

    async def test_join(self, db_session, quest):
        task, _ = quest
        enrollment = await service.join_task(db_session, task.task_id, "alice")
        await db_session.commit()
        assert enrollment.task_id == task.task_id
        assert enrollment.user_id == "alice"
        assert enrollment.joined_at is not None

    async def test_join_twice(self, db_session, quest):
        task, _ = quest
        await service.join_task(db_session, task.task_id, "alice")
        with pytest.raises(AlreadyJoined):
            await service.join_task(db_session, task.task_id, "alice")

    async def test_concurrent_join_hits_unique_constraint(self, db_session, quest, monkeypatch):
        """Both joiners pass the pre-check; the unique constraint rejects the second insert."""
        task, _ = quest
        await service.join_task(db_session, task.task_id, "alice")
        await db_session.commit()

        async def stale_read(*args, **kwargs):
            return None

        monkeypatch.setattr(service, "find_enrollment", stale_read)
        with pytest.raises(AlreadyJoined):
            await service.join_task(db_session, task.task_id, "alice")
        await db_session.rollback()
        assert await _count(db_session, TaskEnrollment, TaskEnrollment.user_id == "alice") == 1

    async def test_unknown_task(self, db_session, people):
        with pytest.raises(TaskNotFound):
            await service.join_task(db_session, 31337, "alice")

    async def test_inactive_task(self, db_session, make, people):
        task, _ = await make.task(is_active=False)
        with pytest.raises(TaskInactive):
            await service.join_task(db_session, task.task_id, "alice")

    async def test_past_deadline(self, db_session, make, people):
        task, _ = await make.task(deadline=utcnow() - timedelta(hours=1))
        with pytest.raises(TaskExpired):
            await service.join_task(db_session, task.task_id, "alice")

    async def test_future_deadline(self, db_session, make, people):
        task, _ = await make.task(deadline=utcnow() + timedelta(days=3))
        await service.join_task(db_session, task.task_id, "alice")

    async def test_list_enrollments(self, db_session, make, quest):
        task, _ = quest
        other, _ = await make.task("Second")
        await service.join_task(db_session, task.task_id, "alice")
        await service.join_task(db_session, other.task_id, "alice")
        enrollments = await service.list_user_enrollments(db_session, "alice")
        assert {e.task_id for e in enrollments} == {task.task_id, other.task_id}


class TestLeave:
    """Leaving a task undoes the user's progress on it."""

    async def test_leave_without_joining(self, db_session, quest):
        task, _ = quest
        with pytest.raises(NotEnrolled):
            await service.leave_task(db_session, task.task_id, "alice")

    async def test_leave_reverses_points_and_clears_progress(self, db_session, quest):
        task, steps = quest
        await service.join_task(db_session, task.task_id, "alice")
        first = await submissions.submit_step(db_session, steps[0].step_id, "alice")
        await submissions.approve_submission(db_session, first.submission_id, MANAGER)
        await submissions.submit_step(db_session, steps[1].step_id, "alice")
        await db_session.commit()
        assert await _total(db_session, "alice") == 100

        outcome = await service.leave_task(db_session, task.task_id, "alice")
        await db_session.commit()

        assert outcome == {
            "task_id": task.task_id,
            "user_id": "alice",
            "points_removed": 100,
            "submissions_deleted": 2,
        }
        assert await _total(db_session, "alice") == 0
        assert await ledger.ledger_sum(db_session, "alice") == 0
        assert await _count(db_session, StepSubmission, StepSubmission.user_id == "alice") == 0
        assert await _count(db_session, Notification, Notification.user_id == "alice") == 0
        assert await _count(db_session, TaskEnrollment, TaskEnrollment.user_id == "alice") == 0

    async def test_leave_keeps_points_from_other_tasks(self, db_session, make, quest):
        task, steps = quest
        other, other_steps = await make.task("Side quest", rewards=(25,), manager_id="manager-1")
        for t in (task, other):
            await service.join_task(db_session, t.task_id, "alice")
        for step in (steps[0], other_steps[0]):
            sub = await submissions.submit_step(db_session, step.step_id, "alice")
            await submissions.approve_submission(db_session, sub.submission_id, MANAGER)
        await db_session.commit()
        assert await _total(db_session, "alice") == 125

        await service.leave_task(db_session, task.task_id, "alice")
        await db_session.commit()
        assert await _total(db_session, "alice") == 25
        assert (await ledger.reconcile(db_session, "alice")).consistent

    async def test_leave_leaves_other_participants_alone(self, db_session, quest):
        task, steps = quest
        for user_id in ("alice", "bob"):
            await service.join_task(db_session, task.task_id, user_id)
            sub = await submissions.submit_step(db_session, steps[0].step_id, user_id)
            await submissions.approve_submission(db_session, sub.submission_id, MANAGER)
        await db_session.commit()

        await service.leave_task(db_session, task.task_id, "alice")
        await db_session.commit()
        assert await _total(db_session, "bob") == 100
        assert await _count(db_session, StepSubmission, StepSubmission.user_id == "bob") == 1

    async def test_rejoin_starts_fresh(self, db_session, quest):
        task, steps = quest
        await service.join_task(db_session, task.task_id, "alice")
        sub = await submissions.submit_step(db_session, steps[0].step_id, "alice")
        await submissions.approve_submission(db_session, sub.submission_id, MANAGER)
        await service.leave_task(db_session, task.task_id, "alice")
        await db_session.commit()

        await service.join_task(db_session, task.task_id, "alice")
        await db_session.commit()
        progress = await get_task_progress(db_session, task.task_id, "alice")
        assert progress.enrolled
        assert [s.status for s in progress.steps] == ["NOT_STARTED", "NOT_STARTED"]
        assert progress.earned_points == 0

        # the same step can be earned again after rejoining
        again = await submissions.submit_step(db_session, steps[0].step_id, "alice")
        await submissions.approve_submission(db_session, again.submission_id, MANAGER)
        await db_session.commit()
        assert await _total(db_session, "alice") == 100

    async def test_leave_after_deadline_is_allowed(self, db_session, make, people):
        task, _ = await make.task(deadline=utcnow() + timedelta(seconds=1))
        await service.join_task(db_session, task.task_id, "alice")
        task.deadline = utcnow() - timedelta(days=1)
        await db_session.commit()
        outcome = await service.leave_task(db_session, task.task_id, "alice")
        assert outcome["points_removed"] == 0


class TestLeaveRacingApproval:
    """An approval that commits while a leave is in flight never survives the leave."""

    async def _rejoin_and_earn(self, db, task, step) -> None:
        await service.join_task(db, task.task_id, "alice")
        again = await submissions.submit_step(db, step.step_id, "alice")
        await submissions.approve_submission(db, again.submission_id, MANAGER)
        await db.commit()
        assert await _total(db, "alice") == 100

    async def test_approval_landing_before_deletions_is_reversed(self, db_session, quest, monkeypatch):
        task, steps = quest
        await service.join_task(db_session, task.task_id, "alice")
        sub = await submissions.submit_step(db_session, steps[0].step_id, "alice")
        await db_session.commit()

        find_enrollment = service.find_enrollment

        async def find_then_approve(db, task_id, user_id):
            enrollment = await find_enrollment(db, task_id, user_id)
            await submissions.approve_submission(db, sub.submission_id, MANAGER)
            return enrollment

        monkeypatch.setattr(service, "find_enrollment", find_then_approve)
        outcome = await service.leave_task(db_session, task.task_id, "alice")
        await db_session.commit()
        monkeypatch.undo()

        assert outcome["points_removed"] == 100
        assert await _total(db_session, "alice") == 0
        assert await _count(db_session, UserPointHistory, UserPointHistory.user_id == "alice") == 0
        await self._rejoin_and_earn(db_session, task, steps[0])

    async def test_approval_after_deletions_finds_nothing(self, db_session, quest, monkeypatch):
        task, steps = quest
        await service.join_task(db_session, task.task_id, "alice")
        sub = await submissions.submit_step(db_session, steps[0].step_id, "alice")
        await db_session.commit()

        debit = ledger.debit

        async def approve_then_debit(db, user_id, step_ids, reason):
            with pytest.raises(SubmissionNotFound):
                await submissions.approve_submission(db, sub.submission_id, MANAGER)
            return await debit(db, user_id, step_ids, reason)

        monkeypatch.setattr(ledger, "debit", approve_then_debit)
        outcome = await service.leave_task(db_session, task.task_id, "alice")
        await db_session.commit()
        monkeypatch.undo()

        assert outcome == {
            "task_id": task.task_id,
            "user_id": "alice",
            "points_removed": 0,
            "submissions_deleted": 1,
        }
        assert await _total(db_session, "alice") == 0
        assert await _count(db_session, UserPointHistory, UserPointHistory.user_id == "alice") == 0
        await self._rejoin_and_earn(db_session, task, steps[0])
