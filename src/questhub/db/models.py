"""ORM models for the QuestHub ledger store.

Foreign keys carry no ON DELETE CASCADE. Dependent rows are removed
explicitly by questhub.cascade.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Integer,
    SmallInteger,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column

from questhub.clock import utcnow
from questhub.db.base import Base, BigIntPK


# ---------------------------------------------------------------------------
# Users & companies
# ---------------------------------------------------------------------------


class User(Base):
    """A principal known to the identity provider, keyed by its subject."""

    __tablename__ = "users"
    __table_args__ = (
        CheckConstraint("role IN ('admin', 'manager', 'user')", name="role_valid"),
    )

    user_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    email: Mapped[str | None] = mapped_column(String(320), nullable=True)
    name: Mapped[str | None] = mapped_column(String(128), nullable=True)
    avatar_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    role: Mapped[str] = mapped_column(String(16), nullable=False, default="user", server_default="user")
    total_points: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, server_default=func.now())


class Company(Base):
    __tablename__ = "companies"

    company_id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_by: Mapped[str | None] = mapped_column(String(128), ForeignKey("users.user_id"), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, server_default=func.now())


class UserCompany(Base):
    """Many-to-many membership between users and companies."""

    __tablename__ = "user_companies"
    __table_args__ = (
        UniqueConstraint("user_id", "company_id", name="uq_user_companies_user_company"),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(128), ForeignKey("users.user_id"), nullable=False, index=True)
    company_id: Mapped[int] = mapped_column(BigIntPK, ForeignKey("companies.company_id"), nullable=False, index=True)
    assigned_by: Mapped[str | None] = mapped_column(String(128), ForeignKey("users.user_id"), nullable=True)
    assigned_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, server_default=func.now())


# ---------------------------------------------------------------------------
# Tasks & steps
# ---------------------------------------------------------------------------


class Task(Base):
    __tablename__ = "tasks"
    __table_args__ = (
        CheckConstraint("level BETWEEN 1 AND 5", name="level_range"),
    )

    task_id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_by: Mapped[str | None] = mapped_column(String(128), ForeignKey("users.user_id"), nullable=True)
    assigned_manager_id: Mapped[str | None] = mapped_column(
        String(128), ForeignKey("users.user_id"), nullable=True, index=True
    )
    company_id: Mapped[int | None] = mapped_column(BigIntPK, ForeignKey("companies.company_id"), nullable=True)
    deadline: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    level: Mapped[int] = mapped_column(SmallInteger, nullable=False, default=1, server_default="1")
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default="true")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, server_default=func.now())


class TaskStep(Base):
    __tablename__ = "task_steps"
    __table_args__ = (
        CheckConstraint("points_reward >= 0", name="points_reward_non_negative"),
    )

    step_id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    task_id: Mapped[int] = mapped_column(BigIntPK, ForeignKey("tasks.task_id"), nullable=False, index=True)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    points_reward: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, server_default=func.now())


# ---------------------------------------------------------------------------
# Participation
# ---------------------------------------------------------------------------


class TaskEnrollment(Base):
    __tablename__ = "task_enrollments"
    __table_args__ = (
        UniqueConstraint("task_id", "user_id", name="uq_task_enrollments_task_user"),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    task_id: Mapped[int] = mapped_column(BigIntPK, ForeignKey("tasks.task_id"), nullable=False)
    user_id: Mapped[str] = mapped_column(String(128), ForeignKey("users.user_id"), nullable=False, index=True)
    joined_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class StepSubmission(Base):
    """At most one row per (step, user); absence of a row means NOT_STARTED."""

    __tablename__ = "step_submissions"
    __table_args__ = (
        UniqueConstraint("step_id", "user_id", name="uq_step_submissions_step_user"),
        CheckConstraint("status IN ('PENDING', 'APPROVED', 'REJECTED')", name="status_valid"),
    )

    submission_id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    step_id: Mapped[int] = mapped_column(BigIntPK, ForeignKey("task_steps.step_id"), nullable=False)
    user_id: Mapped[str] = mapped_column(String(128), ForeignKey("users.user_id"), nullable=False, index=True)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="PENDING", index=True)
    submitted_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    reviewed_by: Mapped[str | None] = mapped_column(String(128), ForeignKey("users.user_id"), nullable=True)
    reviewed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    feedback: Mapped[str | None] = mapped_column(Text, nullable=True)


class UserPointHistory(Base):
    """Append-only points ledger. step_id is NULL for manual adjustments."""

    __tablename__ = "user_point_history"
    __table_args__ = (
        UniqueConstraint("user_id", "step_id", name="uq_user_point_history_user_step"),
    )

    history_id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(128), ForeignKey("users.user_id"), nullable=False, index=True)
    step_id: Mapped[int | None] = mapped_column(BigIntPK, ForeignKey("task_steps.step_id"), nullable=True)
    points_earned: Mapped[int] = mapped_column(Integer, nullable=False)
    reason: Mapped[str | None] = mapped_column(String(64), nullable=True)
    created_by: Mapped[str | None] = mapped_column(String(128), ForeignKey("users.user_id"), nullable=True)
    earned_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


# ---------------------------------------------------------------------------
# Notifications & invites
# ---------------------------------------------------------------------------


class Notification(Base):
    __tablename__ = "notifications"

    notification_id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    manager_id: Mapped[str] = mapped_column(String(128), ForeignKey("users.user_id"), nullable=False, index=True)
    task_id: Mapped[int | None] = mapped_column(BigIntPK, ForeignKey("tasks.task_id"), nullable=True)
    user_id: Mapped[str | None] = mapped_column(String(128), ForeignKey("users.user_id"), nullable=True)
    step_id: Mapped[int | None] = mapped_column(BigIntPK, ForeignKey("task_steps.step_id"), nullable=True)
    submission_id: Mapped[int | None] = mapped_column(
        BigIntPK, ForeignKey("step_submissions.submission_id"), nullable=True
    )
    type: Mapped[str] = mapped_column(String(32), nullable=False)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    message: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default="false")
    read_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class Invite(Base):
    __tablename__ = "invites"

    code: Mapped[str] = mapped_column(String(64), primary_key=True)
    is_used: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default="false")
    used_by: Mapped[str | None] = mapped_column(String(128), ForeignKey("users.user_id"), nullable=True)
    used_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_by: Mapped[str | None] = mapped_column(String(128), ForeignKey("users.user_id"), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
