"""init

Revision ID: 0001_init
Revises:
Create Date: 2026-10-18 00:00:00.000000

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = "0001_init"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    giveaway_status = postgresql.ENUM(
        "draft",
        "upcoming",
        "active",
        "ended",
        "winner_selected",
        name="giveaway_status",
        create_type=False,
    )
    participant_status = postgresql.ENUM(
        "joined",
        "eligible",
        "winner",
        "not_selected",
        name="participant_status",
        create_type=False,
    )
    selection_mode = postgresql.ENUM(
        "SYSTEM_RANDOM", "ADMIN_RANDOM", name="selection_mode", create_type=False
    )

    giveaway_status.create(op.get_bind(), checkfirst=True)
    participant_status.create(op.get_bind(), checkfirst=True)
    selection_mode.create(op.get_bind(), checkfirst=True)

    op.create_table(
        "users",
        sa.Column("user_id", sa.BigInteger(), primary_key=True, autoincrement=False),
        sa.Column("username", sa.String(length=64), nullable=True),
        sa.Column("display_name", sa.Text(), nullable=True),
        sa.Column("first_seen_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("last_seen_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_users_username", "users", ["username"], unique=False)

    op.create_table(
        "giveaways",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("slug", sa.Text(), nullable=False, unique=True),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("image_url", sa.Text(), nullable=True),
        sa.Column("prize_details", sa.Text(), nullable=False),
        sa.Column("status", giveaway_status, nullable=False),
        sa.Column("start_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("end_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("max_extensions", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("extensions_used", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column(
            "invites_enabled", sa.Boolean(), nullable=False, server_default=sa.text("true")
        ),
        sa.Column("invite_cap", sa.Integer(), nullable=False),
        sa.Column("invite_points_per_referral", sa.Integer(), nullable=False),
        sa.Column("invite_points_for_invitee", sa.Integer(), nullable=False),
        sa.Column("winner_id", sa.BigInteger(), nullable=True),
        sa.Column("winner_selection_mode", selection_mode, nullable=True),
        sa.Column("created_by", sa.BigInteger(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index(
        "ix_giveaways_status_start_date", "giveaways", ["status", "start_date"], unique=False
    )
    op.create_index("ix_giveaways_end_date", "giveaways", ["end_date"], unique=False)

    op.create_table(
        "participants",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("giveaway_id", sa.Integer(), sa.ForeignKey("giveaways.id"), nullable=False),
        sa.Column("user_id", sa.BigInteger(), nullable=False),
        sa.Column("status", participant_status, nullable=False),
        sa.Column("points", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("invite_code", sa.String(length=32), nullable=False, unique=True),
        sa.Column("invite_count", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("joined_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("giveaway_id", "user_id", name="uq_participants_giveaway_user"),
    )
    op.create_index(
        "ix_participants_giveaway_status", "participants", ["giveaway_id", "status"], unique=False
    )
    op.create_index("ix_participants_user_id", "participants", ["user_id"], unique=False)

    op.create_table(
        "tasks",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("giveaway_id", sa.Integer(), sa.ForeignKey("giveaways.id"), nullable=False),
        sa.Column("type", sa.String(length=32), nullable=False),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("points", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.Column("required", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("min_duration_seconds", sa.Integer(), nullable=True),
        sa.Column("is_retired", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_tasks_giveaway_id", "tasks", ["giveaway_id"], unique=False)

    op.create_table(
        "task_completions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "participant_id", sa.Integer(), sa.ForeignKey("participants.id"), nullable=False
        ),
        sa.Column("task_id", sa.Integer(), sa.ForeignKey("tasks.id"), nullable=False),
        sa.Column("points_awarded", sa.Integer(), nullable=False),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint(
            "participant_id", "task_id", name="uq_task_completions_participant_task"
        ),
    )
    op.create_index(
        "ix_task_completions_task_id", "task_completions", ["task_id"], unique=False
    )

    op.create_table(
        "task_starts",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("giveaway_id", sa.Integer(), nullable=False),
        sa.Column("task_id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.BigInteger(), nullable=False),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint(
            "user_id", "task_id", "giveaway_id", name="uq_task_starts_user_task_giveaway"
        ),
    )

    op.create_table(
        "invite_uses",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("giveaway_id", sa.Integer(), sa.ForeignKey("giveaways.id"), nullable=False),
        sa.Column(
            "referrer_participant_id",
            sa.Integer(),
            sa.ForeignKey("participants.id"),
            nullable=False,
        ),
        sa.Column("invitee_user_id", sa.BigInteger(), nullable=False),
        sa.Column("referrer_points", sa.Integer(), nullable=False),
        sa.Column("invitee_points", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint(
            "giveaway_id", "invitee_user_id", name="uq_invite_uses_giveaway_invitee"
        ),
    )
    op.create_index(
        "ix_invite_uses_referrer", "invite_uses", ["referrer_participant_id"], unique=False
    )

    op.create_table(
        "supports",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("giveaway_id", sa.Integer(), sa.ForeignKey("giveaways.id"), nullable=False),
        sa.Column("user_id", sa.BigInteger(), nullable=False),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("donor_name", sa.Text(), nullable=False, server_default=""),
        sa.Column("donor_email", sa.Text(), nullable=False, server_default=""),
        sa.Column("is_anonymous", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint("amount > 0", name="ck_supports_amount_positive"),
    )
    op.create_index("ix_supports_giveaway_id", "supports", ["giveaway_id"], unique=False)
    op.create_index(
        "ix_supports_giveaway_user", "supports", ["giveaway_id", "user_id"], unique=False
    )

    op.create_table(
        "shipping_records",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("giveaway_id", sa.Integer(), sa.ForeignKey("giveaways.id"), nullable=False),
        sa.Column("user_id", sa.BigInteger(), nullable=False),
        sa.Column("full_name", sa.Text(), nullable=False),
        sa.Column("address", sa.Text(), nullable=False),
        sa.Column("city", sa.Text(), nullable=False),
        sa.Column("state", sa.Text(), nullable=False),
        sa.Column("pincode", sa.Text(), nullable=False),
        sa.Column("country", sa.Text(), nullable=False),
        sa.Column("phone", sa.Text(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("giveaway_id", "user_id", name="uq_shipping_records_giveaway_user"),
    )

    op.create_table(
        "winner_logs",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("giveaway_id", sa.Integer(), sa.ForeignKey("giveaways.id"), nullable=False),
        sa.Column("winner_user_id", sa.BigInteger(), nullable=False),
        sa.Column("selection_mode", selection_mode, nullable=False),
        sa.Column("selected_by", sa.BigInteger(), nullable=True),
        sa.Column("reason", sa.Text(), nullable=False),
        sa.Column("pool_size", sa.Integer(), nullable=False),
        sa.Column("selected_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_winner_logs_giveaway_id", "winner_logs", ["giveaway_id"], unique=False)

    op.create_table(
        "interests",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("giveaway_id", sa.Integer(), sa.ForeignKey("giveaways.id"), nullable=False),
        sa.Column("user_id", sa.BigInteger(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("giveaway_id", "user_id", name="uq_interests_giveaway_user"),
    )

    op.create_table(
        "audit_log",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("actor_id", sa.BigInteger(), nullable=True),
        sa.Column("action", sa.Text(), nullable=False),
        sa.Column("payload", postgresql.JSONB(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )


def downgrade() -> None:
    op.drop_table("audit_log")
    op.drop_table("interests")
    op.drop_index("ix_winner_logs_giveaway_id", table_name="winner_logs")
    op.drop_table("winner_logs")
    op.drop_table("shipping_records")
    op.drop_index("ix_supports_giveaway_user", table_name="supports")
    op.drop_index("ix_supports_giveaway_id", table_name="supports")
    op.drop_table("supports")
    op.drop_index("ix_invite_uses_referrer", table_name="invite_uses")
    op.drop_table("invite_uses")
    op.drop_table("task_starts")
    op.drop_index("ix_task_completions_task_id", table_name="task_completions")
    op.drop_table("task_completions")
    op.drop_index("ix_tasks_giveaway_id", table_name="tasks")
    op.drop_table("tasks")
    op.drop_index("ix_participants_user_id", table_name="participants")
    op.drop_index("ix_participants_giveaway_status", table_name="participants")
    op.drop_table("participants")
    op.drop_index("ix_giveaways_end_date", table_name="giveaways")
    op.drop_index("ix_giveaways_status_start_date", table_name="giveaways")
    op.drop_table("giveaways")
    op.drop_index("ix_users_username", table_name="users")
    op.drop_table("users")

    op.execute("DROP TYPE IF EXISTS selection_mode")
    op.execute("DROP TYPE IF EXISTS participant_status")
    op.execute("DROP TYPE IF EXISTS giveaway_status")
