"""Cash desk schema: branches, users, denominations, registers, sessions, ledger, audit, alerts

Revision ID: 20261018_cash_desk
Revises:
Create Date: 2026-10-18
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20261018_cash_desk"
down_revision = None
branch_labels = None
depends_on = None

ACTIVE_STATUS_SQL = "status IN ('OPEN', 'REOPENED')"


def _timestamps():
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    ]


def upgrade():
    op.create_table(
        "branches",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=120), nullable=False),
        sa.Column("code", sa.String(length=32), nullable=False),
        sa.Column("timezone", sa.String(length=64), nullable=True),
        sa.Column("petty_cash_amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("weekday_opening_time", sa.Time(), nullable=False),
        sa.Column("weekday_closing_time", sa.Time(), nullable=False),
        sa.Column("has_shift_change", sa.Boolean(), nullable=False),
        sa.Column("midday_closing_time", sa.Time(), nullable=True),
        sa.Column("afternoon_opening_time", sa.Time(), nullable=True),
        sa.Column("sunday_opening_time", sa.Time(), nullable=True),
        sa.Column("sunday_closing_time", sa.Time(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        *_timestamps(),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_branches_code", "branches", ["code"], unique=True)
    op.create_index("ix_branches_is_active", "branches", ["is_active"])

    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("branch_id", sa.Integer(), sa.ForeignKey("branches.id"), nullable=True),
        sa.Column("username", sa.String(length=64), nullable=False),
        sa.Column("full_name", sa.String(length=128), nullable=True),
        sa.Column("role", sa.String(length=16), nullable=False),
        sa.Column("pin_hash", sa.String(length=255), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_users_branch_id", "users", ["branch_id"])
    op.create_index("ix_users_username", "users", ["username"], unique=True)
    op.create_index("ix_users_role", "users", ["role"])

    op.create_table(
        "denominations",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("value", sa.Numeric(12, 2), nullable=False),
        sa.Column("label", sa.String(length=50), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("display_order", sa.Integer(), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint("value", name="uq_denominations_value"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_denominations_is_active", "denominations", ["is_active"])
    op.create_index("ix_denominations_display_order", "denominations", ["display_order"])

    op.create_table(
        "registers",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("branch_id", sa.Integer(), sa.ForeignKey("branches.id"), nullable=False),
        sa.Column("register_number", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=128), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("current_session_id", sa.Integer(), nullable=True),
        sa.Column("version_id", sa.Integer(), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint("branch_id", "register_number", name="uq_registers_branch_number"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_registers_branch_id", "registers", ["branch_id"])
    op.create_index("ix_registers_is_active", "registers", ["is_active"])

    op.create_table(
        "register_sessions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("register_id", sa.Integer(), sa.ForeignKey("registers.id"), nullable=False),
        sa.Column("branch_id", sa.Integer(), sa.ForeignKey("branches.id"), nullable=False),
        sa.Column("session_number", sa.String(length=32), nullable=False),
        sa.Column("business_date", sa.Date(), nullable=False),
        sa.Column("shift_type", sa.String(length=16), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False),
        sa.Column("opener_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("closer_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("opened_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("closed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("opening_cash", sa.Numeric(12, 2), nullable=False),
        sa.Column("opening_denominations", sa.JSON(), nullable=True),
        sa.Column("opening_notes", sa.Text(), nullable=True),
        sa.Column("declared_cash", sa.Numeric(12, 2), nullable=True),
        sa.Column("declared_card", sa.Numeric(12, 2), nullable=True),
        sa.Column("declared_qr", sa.Numeric(12, 2), nullable=True),
        sa.Column("declared_transfer", sa.Numeric(12, 2), nullable=True),
        sa.Column("closing_denominations", sa.JSON(), nullable=True),
        sa.Column("closing_notes", sa.Text(), nullable=True),
        sa.Column("expected_cash", sa.Numeric(12, 2), nullable=True),
        sa.Column("expected_card", sa.Numeric(12, 2), nullable=True),
        sa.Column("expected_qr", sa.Numeric(12, 2), nullable=True),
        sa.Column("expected_transfer", sa.Numeric(12, 2), nullable=True),
        sa.Column("discrepancy_cash", sa.Numeric(12, 2), nullable=True),
        sa.Column("discrepancy_card", sa.Numeric(12, 2), nullable=True),
        sa.Column("discrepancy_qr", sa.Numeric(12, 2), nullable=True),
        sa.Column("discrepancy_transfer", sa.Numeric(12, 2), nullable=True),
        sa.Column("force_close_reason", sa.Text(), nullable=True),
        sa.Column("reopened_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("reopen_reason", sa.Text(), nullable=True),
        sa.Column("reopened_by", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("reopen_authorized_by", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("version_id", sa.Integer(), nullable=False),
        sa.UniqueConstraint("branch_id", "session_number", name="uq_register_sessions_branch_number"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_register_sessions_register_id", "register_sessions", ["register_id"])
    op.create_index("ix_register_sessions_branch_id", "register_sessions", ["branch_id"])
    op.create_index("ix_register_sessions_business_date", "register_sessions", ["business_date"])
    op.create_index("ix_register_sessions_status", "register_sessions", ["status"])
    op.create_index("ix_register_sessions_opener_id", "register_sessions", ["opener_id"])
    op.create_index("ix_register_sessions_opened_at", "register_sessions", ["opened_at"])
    op.create_index("ix_register_sessions_branch_opened", "register_sessions", ["branch_id", "opened_at"])
    op.create_index(
        "uq_register_sessions_active_register",
        "register_sessions",
        ["register_id"],
        unique=True,
        sqlite_where=sa.text(ACTIVE_STATUS_SQL),
        postgresql_where=sa.text(ACTIVE_STATUS_SQL),
    )

    op.create_table(
        "sales",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("branch_id", sa.Integer(), sa.ForeignKey("branches.id"), nullable=False),
        sa.Column("register_session_id", sa.Integer(), sa.ForeignKey("register_sessions.id"), nullable=False),
        sa.Column("sale_number", sa.String(length=64), nullable=False),
        sa.Column("total_amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False),
        sa.Column("created_by", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("voided_by", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("voided_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("void_reason", sa.String(length=255), nullable=True),
        sa.Column("void_approved_by", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("void_approved_at", sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint("branch_id", "sale_number", name="uq_sales_branch_number"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_sales_branch_id", "sales", ["branch_id"])
    op.create_index("ix_sales_register_session_id", "sales", ["register_session_id"])
    op.create_index("ix_sales_status", "sales", ["status"])
    op.create_index("ix_sales_session_status", "sales", ["register_session_id", "status"])

    op.create_table(
        "sale_payments",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("sale_id", sa.Integer(), sa.ForeignKey("sales.id"), nullable=False),
        sa.Column("method", sa.String(length=16), nullable=False),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_sale_payments_sale_id", "sale_payments", ["sale_id"])
    op.create_index("ix_sale_payments_method", "sale_payments", ["method"])

    op.create_table(
        "cash_movements",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("register_session_id", sa.Integer(), sa.ForeignKey("register_sessions.id"), nullable=False),
        sa.Column("movement_type", sa.String(length=16), nullable=False),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("reason", sa.String(length=255), nullable=True),
        sa.Column("performed_by", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_cash_movements_register_session_id", "cash_movements", ["register_session_id"])

    op.create_table(
        "audit_events",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("event_type", sa.String(length=64), nullable=False),
        sa.Column("entity_type", sa.String(length=64), nullable=False),
        sa.Column("entity_id", sa.Integer(), nullable=False),
        sa.Column("branch_id", sa.Integer(), sa.ForeignKey("branches.id"), nullable=True),
        sa.Column("register_id", sa.Integer(), sa.ForeignKey("registers.id"), nullable=True),
        sa.Column("register_session_id", sa.Integer(), sa.ForeignKey("register_sessions.id"), nullable=True),
        sa.Column("actor_user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("supervisor_user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("occurred_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("before_state", sa.JSON(), nullable=True),
        sa.Column("after_state", sa.JSON(), nullable=True),
        sa.Column("note", sa.Text(), nullable=True),
        sa.Column("idempotency_key", sa.String(length=128), nullable=True, unique=True),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_audit_events_event_type", "audit_events", ["event_type"])
    op.create_index("ix_audit_events_entity_id", "audit_events", ["entity_id"])
    op.create_index("ix_audit_events_branch_id", "audit_events", ["branch_id"])
    op.create_index("ix_audit_events_register_id", "audit_events", ["register_id"])
    op.create_index("ix_audit_events_actor_user_id", "audit_events", ["actor_user_id"])
    op.create_index("ix_audit_events_occurred_at", "audit_events", ["occurred_at"])
    op.create_index("ix_audit_events_session_occurred", "audit_events", ["register_session_id", "occurred_at"])

    op.create_table(
        "alerts",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("alert_type", sa.String(length=32), nullable=False),
        sa.Column("priority", sa.String(length=16), nullable=False),
        sa.Column("branch_id", sa.Integer(), sa.ForeignKey("branches.id"), nullable=True),
        sa.Column("register_session_id", sa.Integer(), sa.ForeignKey("register_sessions.id"), nullable=True),
        sa.Column("target_roles", sa.JSON(), nullable=False),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("details", sa.JSON(), nullable=True),
        sa.Column("is_read", sa.Boolean(), nullable=False),
        sa.Column("idempotency_key", sa.String(length=128), nullable=False, unique=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_alerts_alert_type", "alerts", ["alert_type"])
    op.create_index("ix_alerts_branch_id", "alerts", ["branch_id"])
    op.create_index("ix_alerts_register_session_id", "alerts", ["register_session_id"])


def downgrade():
    op.drop_table("alerts")
    op.drop_table("audit_events")
    op.drop_table("cash_movements")
    op.drop_table("sale_payments")
    op.drop_table("sales")
    op.drop_index("uq_register_sessions_active_register", table_name="register_sessions")
    op.drop_table("register_sessions")
    op.drop_table("registers")
    op.drop_table("denominations")
    op.drop_table("users")
    op.drop_table("branches")
