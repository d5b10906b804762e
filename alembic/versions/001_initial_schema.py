"""Initial QuestHub schema.

Users, companies, tasks, steps, enrollments, submissions, the points ledger,
notifications and invites. Foreign keys carry no ON DELETE
CASCADE. The application removes dependent rows in order.

Revision ID: 001_initial_schema
Revises:
Create Date: 2026-10-19
"""

from collections.abc import Sequence

from alembic import op

revision: str = "001_initial_schema"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    # --- Users & companies ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS users (
            user_id VARCHAR(128) PRIMARY KEY,
            email VARCHAR(320),
            name VARCHAR(128),
            avatar_url TEXT,
            role VARCHAR(16) NOT NULL DEFAULT 'user',
            total_points INTEGER NOT NULL DEFAULT 0,
            created_at TIMESTAMPTZ DEFAULT NOW(),
            CONSTRAINT ck_users_role_valid CHECK (role IN ('admin', 'manager', 'user'))
        )
    """)

    op.execute("""
        CREATE TABLE IF NOT EXISTS companies (
            company_id BIGSERIAL PRIMARY KEY,
            name VARCHAR(128) NOT NULL,
            description TEXT,
            created_by VARCHAR(128) REFERENCES users(user_id),
            created_at TIMESTAMPTZ DEFAULT NOW()
        )
    """)

    op.execute("""
        CREATE TABLE IF NOT EXISTS user_companies (
            id BIGSERIAL PRIMARY KEY,
            user_id VARCHAR(128) NOT NULL REFERENCES users(user_id),
            company_id BIGINT NOT NULL REFERENCES companies(company_id),
            assigned_by VARCHAR(128) REFERENCES users(user_id),
            assigned_at TIMESTAMPTZ DEFAULT NOW(),
            CONSTRAINT uq_user_companies_user_company UNIQUE (user_id, company_id)
        )
    """)
    op.execute("CREATE INDEX IF NOT EXISTS ix_user_companies_user_id ON user_companies(user_id)")
    op.execute("CREATE INDEX IF NOT EXISTS ix_user_companies_company_id ON user_companies(company_id)")

    # --- Tasks & steps ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS tasks (
            task_id BIGSERIAL PRIMARY KEY,
            title VARCHAR(200) NOT NULL,
            description TEXT,
            created_by VARCHAR(128) REFERENCES users(user_id),
            assigned_manager_id VARCHAR(128) REFERENCES users(user_id),
            company_id BIGINT REFERENCES companies(company_id),
            deadline TIMESTAMPTZ,
            level SMALLINT NOT NULL DEFAULT 1,
            is_active BOOLEAN NOT NULL DEFAULT true,
            created_at TIMESTAMPTZ DEFAULT NOW(),
            CONSTRAINT ck_tasks_level_range CHECK (level BETWEEN 1 AND 5)
        )
    """)
    op.execute("CREATE INDEX IF NOT EXISTS ix_tasks_assigned_manager_id ON tasks(assigned_manager_id)")

    op.execute("""
        CREATE TABLE IF NOT EXISTS task_steps (
            step_id BIGSERIAL PRIMARY KEY,
            task_id BIGINT NOT NULL REFERENCES tasks(task_id),
            title VARCHAR(200) NOT NULL,
            description TEXT,
            points_reward INTEGER NOT NULL DEFAULT 0,
            created_at TIMESTAMPTZ DEFAULT NOW(),
            CONSTRAINT ck_task_steps_points_reward_non_negative CHECK (points_reward >= 0)
        )
    """)
    op.execute("CREATE INDEX IF NOT EXISTS ix_task_steps_task_id ON task_steps(task_id)")

    # --- Participation ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS task_enrollments (
            id BIGSERIAL PRIMARY KEY,
            task_id BIGINT NOT NULL REFERENCES tasks(task_id),
            user_id VARCHAR(128) NOT NULL REFERENCES users(user_id),
            joined_at TIMESTAMPTZ NOT NULL,
            CONSTRAINT uq_task_enrollments_task_user UNIQUE (task_id, user_id)
        )
    """)
    op.execute("CREATE INDEX IF NOT EXISTS ix_task_enrollments_user_id ON task_enrollments(user_id)")

    op.execute("""
        CREATE TABLE IF NOT EXISTS step_submissions (
            submission_id BIGSERIAL PRIMARY KEY,
            step_id BIGINT NOT NULL REFERENCES task_steps(step_id),
            user_id VARCHAR(128) NOT NULL REFERENCES users(user_id),
            status VARCHAR(16) NOT NULL DEFAULT 'PENDING',
            submitted_at TIMESTAMPTZ NOT NULL,
            reviewed_by VARCHAR(128) REFERENCES users(user_id),
            reviewed_at TIMESTAMPTZ,
            feedback TEXT,
            CONSTRAINT uq_step_submissions_step_user UNIQUE (step_id, user_id),
            CONSTRAINT ck_step_submissions_status_valid CHECK (status IN ('PENDING', 'APPROVED', 'REJECTED'))
        )
    """)
    op.execute("CREATE INDEX IF NOT EXISTS ix_step_submissions_user_id ON step_submissions(user_id)")
    op.execute("CREATE INDEX IF NOT EXISTS ix_step_submissions_status ON step_submissions(status)")

    # --- Points ledger ---
    # step_id is NULL for manual adjustments; NULLs never collide in the unique constraint
    op.execute("""
        CREATE TABLE IF NOT EXISTS user_point_history (
            history_id BIGSERIAL PRIMARY KEY,
            user_id VARCHAR(128) NOT NULL REFERENCES users(user_id),
            step_id BIGINT REFERENCES task_steps(step_id),
            points_earned INTEGER NOT NULL,
            reason VARCHAR(64),
            created_by VARCHAR(128) REFERENCES users(user_id),
            earned_at TIMESTAMPTZ NOT NULL,
            CONSTRAINT uq_user_point_history_user_step UNIQUE (user_id, step_id)
        )
    """)
    op.execute("CREATE INDEX IF NOT EXISTS ix_user_point_history_user_id ON user_point_history(user_id)")

    # --- Notifications & invites ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS notifications (
            notification_id BIGSERIAL PRIMARY KEY,
            manager_id VARCHAR(128) NOT NULL REFERENCES users(user_id),
            task_id BIGINT REFERENCES tasks(task_id),
            user_id VARCHAR(128) REFERENCES users(user_id),
            step_id BIGINT REFERENCES task_steps(step_id),
            submission_id BIGINT REFERENCES step_submissions(submission_id),
            type VARCHAR(32) NOT NULL,
            title VARCHAR(200) NOT NULL,
            message TEXT,
            is_read BOOLEAN NOT NULL DEFAULT false,
            read_at TIMESTAMPTZ,
            created_at TIMESTAMPTZ NOT NULL
        )
    """)
    op.execute("CREATE INDEX IF NOT EXISTS ix_notifications_manager_id ON notifications(manager_id)")

    op.execute("""
        CREATE TABLE IF NOT EXISTS invites (
            code VARCHAR(64) PRIMARY KEY,
            is_used BOOLEAN NOT NULL DEFAULT false,
            used_by VARCHAR(128) REFERENCES users(user_id),
            used_at TIMESTAMPTZ,
            created_by VARCHAR(128) REFERENCES users(user_id),
            created_at TIMESTAMPTZ NOT NULL
        )
    """)


def downgrade() -> None:
    for table in (
        "invites",
        "notifications",
        "user_point_history",
        "step_submissions",
        "task_enrollments",
        "task_steps",
        "tasks",
        "user_companies",
        "companies",
        "users",
    ):
        op.execute(f"DROP TABLE IF EXISTS {table}")
