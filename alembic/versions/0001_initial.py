"""initial rota schema

Revision ID: 0001_initial
Revises: 
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa

revision = "0001_initial"
down_revision = None
branch_labels = None
depends_on = None

DAY_NAMES = ("sunday", "monday", "tuesday", "wednesday", "thursday", "friday", "saturday")


def day_columns() -> list[sa.Column]:
    published = [sa.Column(day, sa.String(length=64), nullable=True) for day in DAY_NAMES]
    draft = [sa.Column(f"draft_{day}", sa.String(length=64), nullable=True) for day in DAY_NAMES]
    return published + draft


def upgrade() -> None:
    op.create_table(
        "profiles",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("password_hash", sa.String(length=255), nullable=False),
        sa.Column("role", sa.String(length=20), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint("role IN ('manager', 'staff')", name="ck_profiles_role"),
        sa.UniqueConstraint("email"),
    )
    op.create_index("ix_profiles_email", "profiles", ["email"], unique=True)

    op.create_table(
        "sessions",
        sa.Column("session_id", sa.String(length=128), primary_key=True),
        sa.Column("profile_id", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["profile_id"], ["profiles.id"], ondelete="CASCADE"),
    )
    op.create_index("ix_sessions_profile_id", "sessions", ["profile_id"], unique=False)
    op.create_index("ix_sessions_expires_at", "sessions", ["expires_at"], unique=False)

    op.create_table(
        "staff",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("role", sa.String(length=120), nullable=True),
        sa.Column("terminal", sa.Integer(), nullable=False),
        sa.Column("display_order", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        *day_columns(),
    )
    op.create_index("ix_staff_terminal", "staff", ["terminal"], unique=False)

    op.create_table(
        "weekly_schedules",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("staff_id", sa.Integer(), nullable=False),
        sa.Column("week_starting_date", sa.Date(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        *day_columns(),
        sa.UniqueConstraint("staff_id", "week_starting_date", name="uq_weekly_schedules_staff_week"),
    )
    op.create_index("ix_weekly_schedules_staff_id", "weekly_schedules", ["staff_id"], unique=False)
    op.create_index("ix_weekly_schedules_week_starting_date", "weekly_schedules", ["week_starting_date"], unique=False)

    op.create_table(
        "migration_runs",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("current_week_start", sa.Date(), nullable=False),
        sa.Column("next_week_start", sa.Date(), nullable=False),
        sa.Column("staff_count", sa.Integer(), nullable=False),
        sa.Column("next_week_data_count", sa.Integer(), nullable=False),
        sa.Column("row_errors", sa.Integer(), nullable=False),
        sa.Column("message", sa.Text(), nullable=True),
    )
    op.create_index("ix_migration_runs_created_at", "migration_runs", ["created_at"], unique=False)
    op.create_index("ix_migration_runs_current_week_start", "migration_runs", ["current_week_start"], unique=True)


def downgrade() -> None:
    op.drop_index("ix_migration_runs_current_week_start", table_name="migration_runs")
    op.drop_index("ix_migration_runs_created_at", table_name="migration_runs")
    op.drop_table("migration_runs")
    op.drop_index("ix_weekly_schedules_week_starting_date", table_name="weekly_schedules")
    op.drop_index("ix_weekly_schedules_staff_id", table_name="weekly_schedules")
    op.drop_table("weekly_schedules")
    op.drop_index("ix_staff_terminal", table_name="staff")
    op.drop_table("staff")
    op.drop_index("ix_sessions_expires_at", table_name="sessions")
    op.drop_index("ix_sessions_profile_id", table_name="sessions")
    op.drop_table("sessions")
    op.drop_index("ix_profiles_email", table_name="profiles")
    op.drop_table("profiles")
