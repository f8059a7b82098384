from __future__ import annotations
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers
revision = "20261018_0001"
down_revision = None
branch_labels = None
depends_on = None

UUID = postgresql.UUID(as_uuid=True)
JSONB = postgresql.JSONB(astext_type=sa.Text())

def upgrade() -> None:
    op.create_table(
        "tasks",
        sa.Column("id", UUID, primary_key=True, nullable=False),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=False, server_default=""),
        sa.Column("category", sa.String(length=16), nullable=False),
        sa.Column("creator_id", UUID, nullable=True),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="OPEN"),
        sa.Column("requirements_json", JSONB, server_default=sa.text("'{}'::jsonb"), nullable=False),
        sa.Column("rewards_json", JSONB, server_default=sa.text("'{}'::jsonb"), nullable=False),
        sa.Column("deadline", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.TIMESTAMP(timezone=True), server_default=sa.text("now()"), nullable=False),
    )
    op.create_index("ix_tasks_category", "tasks", ["category"])
    op.create_index("ix_tasks_status", "tasks", ["status"])

    op.create_table(
        "task_submissions",
        sa.Column("id", UUID, primary_key=True, nullable=False),
        sa.Column("task_id", UUID, sa.ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False),
        sa.Column("user_id", UUID, nullable=False),
        sa.Column("submission_text", sa.Text(), nullable=True),
        sa.Column("file_attachments", JSONB, server_default=sa.text("'[]'::jsonb"), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="PENDING"),
        sa.Column("ai_verification_result", JSONB, nullable=True),
        sa.Column("manual_review_required", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("reviewer_id", UUID, nullable=True),
        sa.Column("feedback", sa.Text(), nullable=True),
        sa.Column("revision_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("submitted_at", sa.TIMESTAMP(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("reviewed_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.UniqueConstraint("task_id", "user_id", name="uq_submission_one_per_task_user"),
    )
    op.create_index("ix_task_submissions_task_id", "task_submissions", ["task_id"])
    op.create_index("ix_task_submissions_user_id", "task_submissions", ["user_id"])
    op.create_index("ix_task_submissions_status", "task_submissions", ["status"])
    op.create_index("ix_task_submissions_submitted_at", "task_submissions", ["submitted_at"])

    op.create_table(
        "verification_queue",
        sa.Column("id", UUID, primary_key=True, nullable=False),
        sa.Column("submission_id", UUID, sa.ForeignKey("task_submissions.id", ondelete="CASCADE"), nullable=False),
        sa.Column("priority", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("assigned_reviewer_id", UUID, nullable=True),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("assigned_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("completed_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("outcome", sa.String(length=16), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
    )
    op.create_index("ix_verification_queue_submission_id", "verification_queue", ["submission_id"])
    op.create_index("ix_verification_queue_assigned_reviewer_id", "verification_queue", ["assigned_reviewer_id"])
    op.create_index(
        "uq_verification_queue_open_submission", "verification_queue", ["submission_id"],
        unique=True, postgresql_where=sa.text("completed_at IS NULL"),
    )
    # backlog scan: open items by priority DESC, created_at ASC
    op.create_index(
        "ix_verification_queue_backlog", "verification_queue", ["priority", "created_at"],
        postgresql_where=sa.text("completed_at IS NULL"),
    )

    op.create_table(
        "task_feedback",
        sa.Column("id", UUID, primary_key=True, nullable=False),
        sa.Column("submission_id", UUID, sa.ForeignKey("task_submissions.id", ondelete="CASCADE"), nullable=False),
        sa.Column("from_user_id", UUID, nullable=False),
        sa.Column("to_user_id", UUID, nullable=False),
        sa.Column("rating", sa.SmallInteger(), nullable=False),
        sa.Column("feedback_text", sa.Text(), nullable=False),
        sa.Column("feedback_type", sa.String(length=16), nullable=False, server_default="OVERALL"),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.CheckConstraint("rating BETWEEN 1 AND 5", name="ck_task_feedback_rating_range"),
    )
    op.create_index("ix_task_feedback_submission_id", "task_feedback", ["submission_id"])
    op.create_index("ix_task_feedback_to_user_id", "task_feedback", ["to_user_id"])

    op.create_table(
        "user_stats",
        sa.Column("user_id", UUID, primary_key=True, nullable=False),
        sa.Column("trust_score", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("rwis_score", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("xp_points", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("current_level", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("unlocked_zones", JSONB, server_default=sa.text("'[]'::jsonb"), nullable=False),
        sa.Column("category_stats", JSONB, server_default=sa.text("'{}'::jsonb"), nullable=False),
        sa.CheckConstraint("trust_score >= 0", name="ck_user_stats_trust_nonneg"),
        sa.CheckConstraint("rwis_score >= 0", name="ck_user_stats_rwis_nonneg"),
        sa.CheckConstraint("xp_points >= 0", name="ck_user_stats_xp_nonneg"),
        sa.CheckConstraint("current_level >= 1", name="ck_user_stats_level_min"),
    )

    op.create_table(
        "reward_distributions",
        sa.Column("id", UUID, primary_key=True, nullable=False),
        sa.Column("submission_id", UUID, sa.ForeignKey("task_submissions.id", ondelete="CASCADE"), nullable=False),
        sa.Column("user_id", UUID, nullable=False),
        sa.Column("xp_awarded", sa.Integer(), nullable=False),
        sa.Column("trust_score_change", sa.Integer(), nullable=False),
        sa.Column("rwis_awarded", sa.Integer(), nullable=False),
        sa.Column("quality_score", sa.Integer(), nullable=False),
        sa.Column("badges_awarded", JSONB, server_default=sa.text("'[]'::jsonb"), nullable=False),
        sa.Column("payment_amount", sa.Numeric(12, 2), nullable=True),
        sa.Column("payment_status", sa.String(length=16), nullable=True),
        sa.Column("distributed_at", sa.TIMESTAMP(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.UniqueConstraint("submission_id", name="uq_reward_distribution_submission"),
    )
    op.create_index("ix_reward_distributions_submission_id", "reward_distributions", ["submission_id"])
    op.create_index("ix_reward_distributions_user_id", "reward_distributions", ["user_id"])
    op.create_index("ix_reward_distributions_payment_status", "reward_distributions", ["payment_status"])

    op.create_table(
        "work_history",
        sa.Column("id", UUID, primary_key=True, nullable=False),
        sa.Column("user_id", UUID, nullable=False),
        sa.Column("task_id", UUID, sa.ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False),
        sa.Column("category", sa.String(length=16), nullable=False),
        sa.Column("completion_date", sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column("quality_score", sa.Integer(), nullable=False),
        sa.Column("client_feedback", sa.Text(), nullable=True),
        sa.Column("xp_earned", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("trust_score_change", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("rwis_earned", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), server_default=sa.text("now()"), nullable=False),
    )
    op.create_index("ix_work_history_user_id", "work_history", ["user_id"])
    op.create_index("ix_work_history_task_id", "work_history", ["task_id"])

    op.create_table(
        "badges",
        sa.Column("id", UUID, primary_key=True, nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False, unique=True),
        sa.Column("description", sa.Text(), nullable=False, server_default=""),
        sa.Column("category", sa.String(length=16), nullable=False, server_default="ACHIEVEMENT"),
        sa.Column("rarity", sa.String(length=16), nullable=False, server_default="COMMON"),
        sa.Column("icon_url", sa.String(length=255), nullable=True),
        sa.Column("unlock_criteria", JSONB, server_default=sa.text("'{}'::jsonb"), nullable=False),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), server_default=sa.text("now()"), nullable=False),
    )

    op.create_table(
        "user_badges",
        sa.Column("id", UUID, primary_key=True, nullable=False),
        sa.Column("user_id", UUID, nullable=False),
        sa.Column("badge_id", UUID, sa.ForeignKey("badges.id", ondelete="CASCADE"), nullable=False),
        sa.Column("task_id", UUID, sa.ForeignKey("tasks.id", ondelete="SET NULL"), nullable=True),
        sa.Column("earned_at", sa.TIMESTAMP(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.UniqueConstraint("user_id", "badge_id", name="uq_user_badge_once"),
    )
    op.create_index("ix_user_badges_user_id", "user_badges", ["user_id"])

    op.create_table(
        "zones",
        sa.Column("id", UUID, primary_key=True, nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("terrain_type", sa.String(length=32), nullable=True),
        sa.Column("difficulty", sa.String(length=16), nullable=True),
        sa.Column("unlock_requirements", JSONB, server_default=sa.text("'{}'::jsonb"), nullable=False),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), server_default=sa.text("now()"), nullable=False),
    )

def downgrade() -> None:
    op.drop_table("zones")
    op.drop_index("ix_user_badges_user_id", table_name="user_badges")
    op.drop_table("user_badges")
    op.drop_table("badges")
    op.drop_index("ix_work_history_task_id", table_name="work_history")
    op.drop_index("ix_work_history_user_id", table_name="work_history")
    op.drop_table("work_history")
    op.drop_index("ix_reward_distributions_payment_status", table_name="reward_distributions")
    op.drop_index("ix_reward_distributions_user_id", table_name="reward_distributions")
    op.drop_index("ix_reward_distributions_submission_id", table_name="reward_distributions")
    op.drop_table("reward_distributions")
    op.drop_table("user_stats")
    op.drop_index("ix_task_feedback_to_user_id", table_name="task_feedback")
    op.drop_index("ix_task_feedback_submission_id", table_name="task_feedback")
    op.drop_table("task_feedback")
    op.drop_index("ix_verification_queue_backlog", table_name="verification_queue")
    op.drop_index("uq_verification_queue_open_submission", table_name="verification_queue")
    op.drop_index("ix_verification_queue_assigned_reviewer_id", table_name="verification_queue")
    op.drop_index("ix_verification_queue_submission_id", table_name="verification_queue")
    op.drop_table("verification_queue")
    op.drop_index("ix_task_submissions_submitted_at", table_name="task_submissions")
    op.drop_index("ix_task_submissions_status", table_name="task_submissions")
    op.drop_index("ix_task_submissions_user_id", table_name="task_submissions")
    op.drop_index("ix_task_submissions_task_id", table_name="task_submissions")
    op.drop_table("task_submissions")
    op.drop_index("ix_tasks_status", table_name="tasks")
    op.drop_index("ix_tasks_category", table_name="tasks")
    op.drop_table("tasks")
