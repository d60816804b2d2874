"""Time tracking core schema

Revision ID: 20260301_time_tracking_core
Revises:
Create Date: 2026-03-01
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20260301_time_tracking_core"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "time_models",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("monday_minutes", sa.Integer(), nullable=True),
        sa.Column("tuesday_minutes", sa.Integer(), nullable=True),
        sa.Column("wednesday_minutes", sa.Integer(), nullable=True),
        sa.Column("thursday_minutes", sa.Integer(), nullable=True),
        sa.Column("friday_minutes", sa.Integer(), nullable=True),
        sa.Column("saturday_minutes", sa.Integer(), nullable=True),
        sa.Column("sunday_minutes", sa.Integer(), nullable=True),
        sa.Column("default_break_minutes", sa.Integer(), nullable=False, server_default=sa.text("30")),
        sa.Column("min_break_minutes", sa.Integer(), nullable=False, server_default=sa.text("30")),
        sa.Column("break_threshold_minutes", sa.Integer(), nullable=False, server_default=sa.text("360")),
        sa.Column("break_tolerance_minutes", sa.Integer(), nullable=False, server_default=sa.text("5")),
        sa.Column("break_threshold_buffer_minutes", sa.Integer(), nullable=False, server_default=sa.text("30")),
        sa.Column("is_default", sa.Boolean(), nullable=False, server_default=sa.text("0")),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("1")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )

    with op.batch_alter_table("time_models", schema=None) as batch_op:
        batch_op.create_index("ix_time_models_is_default", ["is_default"], unique=False)

    op.create_table(
        "employees",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("email", sa.String(255), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("1")),
        sa.Column("time_tracking_enabled", sa.Boolean(), nullable=False, server_default=sa.text("0")),
        sa.Column("time_model_id", sa.Integer(), nullable=True),
        sa.Column("timezone", sa.String(64), nullable=True),
        sa.Column("region", sa.String(16), nullable=True),
        sa.Column("initial_balance_minutes", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.ForeignKeyConstraint(["time_model_id"], ["time_models.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("email"),
        sqlite_autoincrement=True,
    )

    with op.batch_alter_table("employees", schema=None) as batch_op:
        batch_op.create_index("ix_employees_time_model_id", ["time_model_id"], unique=False)
        batch_op.create_index("ix_employees_tracking_active", ["time_tracking_enabled", "is_active"], unique=False)

    op.create_table(
        "time_entries",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("employee_id", sa.Integer(), nullable=False),
        sa.Column("entry_type", sa.String(20), nullable=False),
        sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False),
        sa.Column("source", sa.String(20), nullable=False, server_default="web"),
        sa.Column("terminal_id", sa.String(64), nullable=True),
        sa.Column("is_correction", sa.Boolean(), nullable=False, server_default=sa.text("0")),
        sa.Column("correction_reason", sa.Text(), nullable=True),
        sa.Column("corrected_by", sa.Integer(), nullable=True),
        sa.Column("original_entry_type", sa.String(20), nullable=True),
        sa.Column("original_timestamp", sa.DateTime(timezone=True), nullable=True),
        sa.Column("is_deleted", sa.Boolean(), nullable=False, server_default=sa.text("0")),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("deleted_by", sa.Integer(), nullable=True),
        sa.Column("deletion_reason", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.CheckConstraint(
            "entry_type IN ('clock_in', 'clock_out', 'break_start', 'break_end')",
            name="ck_time_entries_entry_type",
        ),
        sa.ForeignKeyConstraint(["employee_id"], ["employees.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["corrected_by"], ["employees.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["deleted_by"], ["employees.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )

    with op.batch_alter_table("time_entries", schema=None) as batch_op:
        batch_op.create_index("ix_time_entries_employee_id", ["employee_id"], unique=False)
        batch_op.create_index("ix_time_entries_employee_timestamp", ["employee_id", "timestamp"], unique=False)
        batch_op.create_index("ix_time_entries_timestamp", ["timestamp"], unique=False)
        batch_op.create_index("ix_time_entries_is_deleted", ["is_deleted"], unique=False)

    op.create_table(
        "time_daily_summaries",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("employee_id", sa.Integer(), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("target_minutes", sa.Integer(), nullable=True),
        sa.Column("target_override_minutes", sa.Integer(), nullable=True),
        sa.Column("worked_minutes", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("break_minutes", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("overtime_minutes", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("credited_minutes", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("status", sa.String(20), nullable=False, server_default="open"),
        sa.Column("first_clock_in", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_clock_out", sa.DateTime(timezone=True), nullable=True),
        sa.Column("has_missing_entries", sa.Boolean(), nullable=False, server_default=sa.text("0")),
        sa.Column("missing_entry_types", sa.JSON(), nullable=True),
        sa.Column("warnings", sa.JSON(), nullable=True),
        sa.Column("holiday_name", sa.String(200), nullable=True),
        sa.Column("needs_review", sa.Boolean(), nullable=False, server_default=sa.text("0")),
        sa.Column("review_note", sa.Text(), nullable=True),
        sa.Column("note", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.ForeignKeyConstraint(["employee_id"], ["employees.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("employee_id", "date", name="uq_time_daily_employee_date"),
        sqlite_autoincrement=True,
    )

    with op.batch_alter_table("time_daily_summaries", schema=None) as batch_op:
        batch_op.create_index("ix_time_daily_summaries_employee_id", ["employee_id"], unique=False)
        batch_op.create_index("ix_time_daily_summaries_date", ["date"], unique=False)
        batch_op.create_index("ix_time_daily_needs_review", ["needs_review"], unique=False)
        batch_op.create_index("ix_time_daily_missing", ["has_missing_entries"], unique=False)

    op.create_table(
        "time_monthly_balances",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("employee_id", sa.Integer(), nullable=False),
        sa.Column("year", sa.Integer(), nullable=False),
        sa.Column("month", sa.Integer(), nullable=False),
        sa.Column("carryover_minutes", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("overtime_minutes", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("adjustment_minutes", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("adjustment_log", sa.Text(), nullable=True),
        sa.Column("payout_minutes", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("payout_date", sa.Date(), nullable=True),
        sa.Column("balance_minutes", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("target_minutes", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("worked_minutes", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.ForeignKeyConstraint(["employee_id"], ["employees.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("employee_id", "year", "month", name="uq_time_balance_employee_month"),
        sqlite_autoincrement=True,
    )

    with op.batch_alter_table("time_monthly_balances", schema=None) as batch_op:
        batch_op.create_index("ix_time_monthly_balances_employee_id", ["employee_id"], unique=False)
        batch_op.create_index("ix_time_balance_employee_period", ["employee_id", "year", "month"], unique=False)

    op.create_table(
        "time_pending_recomputes",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("employee_id", sa.Integer(), nullable=False),
        sa.Column("kind", sa.String(16), nullable=False, server_default="month"),
        sa.Column("year", sa.Integer(), nullable=False),
        sa.Column("month", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.ForeignKeyConstraint(["employee_id"], ["employees.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("employee_id", "kind", name="uq_time_pending_employee_kind"),
        sqlite_autoincrement=True,
    )

    with op.batch_alter_table("time_pending_recomputes", schema=None) as batch_op:
        batch_op.create_index("ix_time_pending_recomputes_employee_id", ["employee_id"], unique=False)

    op.create_table(
        "holidays",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("region", sa.String(16), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("date", "region", name="uq_holidays_date_region"),
        sqlite_autoincrement=True,
    )

    with op.batch_alter_table("holidays", schema=None) as batch_op:
        batch_op.create_index("ix_holidays_date", ["date"], unique=False)

    op.create_table(
        "time_settings",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("key", sa.String(128), nullable=False),
        sa.Column("value", sa.Text(), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("updated_by", sa.Integer(), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.ForeignKeyConstraint(["updated_by"], ["employees.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )

    with op.batch_alter_table("time_settings", schema=None) as batch_op:
        batch_op.create_index("ix_time_settings_key", ["key"], unique=True)

    op.create_table(
        "time_audit_events",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("employee_id", sa.Integer(), nullable=False),
        sa.Column("event_type", sa.String(64), nullable=False),
        sa.Column("entity_type", sa.String(64), nullable=False),
        sa.Column("entity_id", sa.Integer(), nullable=True),
        sa.Column("actor_id", sa.Integer(), nullable=True),
        sa.Column("occurred_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.Column("note", sa.Text(), nullable=True),
        sa.Column("payload", sa.Text(), nullable=True),
        sa.ForeignKeyConstraint(["employee_id"], ["employees.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["actor_id"], ["employees.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )

    with op.batch_alter_table("time_audit_events", schema=None) as batch_op:
        batch_op.create_index("ix_time_audit_events_employee_id", ["employee_id"], unique=False)
        batch_op.create_index("ix_time_audit_events_event_type", ["event_type"], unique=False)
        batch_op.create_index("ix_time_audit_events_actor_id", ["actor_id"], unique=False)
        batch_op.create_index("ix_time_audit_events_occurred_at", ["occurred_at"], unique=False)
        batch_op.create_index("ix_time_audit_employee_occurred", ["employee_id", "occurred_at"], unique=False)


def downgrade():
    for table, indexes in (
        ("time_audit_events", (
            "ix_time_audit_employee_occurred",
            "ix_time_audit_events_occurred_at",
            "ix_time_audit_events_actor_id",
            "ix_time_audit_events_event_type",
            "ix_time_audit_events_employee_id",
        )),
        ("time_settings", ("ix_time_settings_key",)),
        ("holidays", ("ix_holidays_date",)),
        ("time_pending_recomputes", ("ix_time_pending_recomputes_employee_id",)),
        ("time_monthly_balances", ("ix_time_balance_employee_period", "ix_time_monthly_balances_employee_id")),
        ("time_daily_summaries", (
            "ix_time_daily_missing",
            "ix_time_daily_needs_review",
            "ix_time_daily_summaries_date",
            "ix_time_daily_summaries_employee_id",
        )),
        ("time_entries", (
            "ix_time_entries_is_deleted",
            "ix_time_entries_timestamp",
            "ix_time_entries_employee_timestamp",
            "ix_time_entries_employee_id",
        )),
        ("employees", ("ix_employees_tracking_active", "ix_employees_time_model_id")),
        ("time_models", ("ix_time_models_is_default",)),
    ):
        with op.batch_alter_table(table, schema=None) as batch_op:
            for index in indexes:
                batch_op.drop_index(index)
        op.drop_table(table)
