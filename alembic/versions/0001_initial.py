"""initial

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


def _money(name, nullable=False, default="0"):
    kw = {"server_default": default} if default is not None else {}
    return sa.Column(name, sa.Numeric(10, 2), nullable=nullable, **kw)


def upgrade() -> None:
    op.create_table(
        "bookings",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("booking_ref", sa.String(length=20), nullable=False),
        sa.Column("user_id", sa.String(length=36), nullable=False),
        sa.Column("location", sa.String(length=120), nullable=False),
        sa.Column("booked_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("start_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("end_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("seat_numbers", sa.JSON(), nullable=False),
        sa.Column("pax", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("members", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("students", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("tutors", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("member_type", sa.String(length=12), nullable=False, server_default="MEMBER"),
        sa.Column("contact_email", sa.String(length=320), nullable=True),
        sa.Column("booked_for_emails", sa.JSON(), nullable=False),
        sa.Column("special_requests", sa.Text(), nullable=True),
        _money("total_cost", default=None),
        _money("total_amount", default=None),
        _money("processing_fee"),
        sa.Column("payment_method", sa.String(length=30), nullable=True),
        sa.Column("promo_code_id", sa.String(length=36), nullable=True),
        _money("promo_discount_amount"),
        _money("credit_amount"),
        sa.Column("pass_id", sa.String(length=36), nullable=True),
        sa.Column("pass_pending", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        _money("pass_discount_amount"),
        sa.Column("payment_id", sa.String(length=36), nullable=True),
        sa.Column("confirmed_payment", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("status", sa.String(length=30), nullable=False, server_default="PENDING_PAYMENT"),
        sa.Column("confirmed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("reschedule_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("rescheduled_at", sa.DateTime(timezone=True), nullable=True),
        _money("reschedule_cost"),
        _money("reschedule_credit_amount"),
        _money("reschedule_fee"),
        _money("reschedule_amount"),
        sa.Column("reschedule_payment_id", sa.String(length=36), nullable=True),
        sa.Column("reschedule_payment_confirmed", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("extension_amounts", sa.JSON(), nullable=False),
        _money("extension_credit_amount"),
        _money("total_actual_cost", nullable=True, default=None),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint("reschedule_count <= 1", name="ck_bookings_reschedule_once"),
    )
    op.create_index("ix_bookings_booking_ref", "bookings", ["booking_ref"], unique=True)
    op.create_index("ix_bookings_user_id", "bookings", ["user_id"])
    op.create_index("ix_bookings_location", "bookings", ["location"])
    op.create_index("ix_bookings_start_at", "bookings", ["start_at"])
    op.create_index("ix_bookings_end_at", "bookings", ["end_at"])
    op.create_index("ix_bookings_status", "bookings", ["status"])
    op.create_index("ix_bookings_promo_code_id", "bookings", ["promo_code_id"])
    op.create_index("ix_bookings_pass_id", "bookings", ["pass_id"])

    op.create_table(
        "payments",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("booking_id", sa.String(length=36), nullable=False),
        sa.Column("purpose", sa.String(length=20), nullable=False, server_default="BOOKING"),
        sa.Column("method", sa.String(length=30), nullable=False, server_default="paynow"),
        _money("amount", default=None),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="pending"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_payments_booking_id", "payments", ["booking_id"])

    op.create_table(
        "settings",
        sa.Column("key", sa.String(length=80), primary_key=True),
        sa.Column("str_value", sa.String(length=255), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    )

    op.create_table(
        "email_logs",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("to_email", sa.String(length=320), nullable=False),
        sa.Column("subject", sa.String(length=200), nullable=False),
        sa.Column("body", sa.Text(), nullable=True),
        sa.Column("status", sa.String(length=30), nullable=False, server_default="queued"),
        sa.Column("related_booking_ref", sa.String(length=20), nullable=False, server_default=""),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("sent_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_email_logs_to_email", "email_logs", ["to_email"])

    op.create_table(
        "booking_activity_logs",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("booking_id", sa.String(length=36), nullable=False),
        sa.Column("booking_ref", sa.String(length=20), nullable=False),
        sa.Column("activity_type", sa.String(length=40), nullable=False),
        sa.Column("title", sa.String(length=120), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("actor", sa.String(length=36), nullable=True),
        _money("amount", nullable=True, default=None),
        sa.Column("old_value", sa.String(length=255), nullable=True),
        sa.Column("new_value", sa.String(length=255), nullable=True),
        sa.Column("details_json", sa.JSON(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_booking_activity_logs_booking_id", "booking_activity_logs", ["booking_id"])
    op.create_index("ix_booking_activity_logs_booking_ref", "booking_activity_logs", ["booking_ref"])
    op.create_index("ix_booking_activity_logs_activity_type", "booking_activity_logs", ["activity_type"])
    op.create_index("ix_booking_activity_logs_created_at", "booking_activity_logs", ["created_at"])

    op.create_table(
        "user_credits",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("user_id", sa.String(length=36), nullable=False),
        _money("amount", default=None),
        _money("original_amount", default=None),
        sa.Column("status", sa.String(length=12), nullable=False, server_default="ACTIVE"),
        sa.Column("source", sa.String(length=40), nullable=False, server_default="REFUND"),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint("amount >= 0", name="ck_user_credits_amount_non_negative"),
    )
    op.create_index("ix_user_credits_user_id", "user_credits", ["user_id"])
    op.create_index("ix_user_credits_status", "user_credits", ["status"])
    op.create_index("ix_user_credits_expires_at", "user_credits", ["expires_at"])

    op.create_table(
        "credit_usages",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("user_id", sa.String(length=36), nullable=False),
        sa.Column("credit_id", sa.String(length=36), nullable=False),
        sa.Column("booking_id", sa.String(length=36), nullable=False),
        sa.Column("action_type", sa.String(length=20), nullable=False),
        _money("amount_used", default=None),
        sa.Column("status", sa.String(length=12), nullable=False, server_default="APPLIED"),
        sa.Column("used_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_credit_usages_user_id", "credit_usages", ["user_id"])
    op.create_index("ix_credit_usages_credit_id", "credit_usages", ["credit_id"])
    op.create_index("ix_credit_usages_booking_id", "credit_usages", ["booking_id"])

    op.create_table(
        "user_passes",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("user_id", sa.String(length=36), nullable=False),
        sa.Column("purchase_id", sa.String(length=36), nullable=False),
        sa.Column("pass_type", sa.String(length=30), nullable=False),
        sa.Column("package_name", sa.String(length=120), nullable=False, server_default=""),
        sa.Column("total_count", sa.Integer(), nullable=False),
        sa.Column("remaining_count", sa.Integer(), nullable=False),
        sa.Column("total_minutes", sa.Integer(), nullable=True),
        sa.Column("remaining_minutes", sa.Integer(), nullable=True),
        sa.Column("active_from", sa.DateTime(timezone=True), nullable=False),
        sa.Column("active_to", sa.DateTime(timezone=True), nullable=False),
        sa.Column("status", sa.String(length=12), nullable=False, server_default="ACTIVE"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint("remaining_count >= 0", name="ck_user_passes_remaining_non_negative"),
        sa.CheckConstraint(
            "remaining_minutes IS NULL OR remaining_minutes >= 0", name="ck_user_passes_minutes_non_negative"
        ),
    )
    op.create_index("ix_user_passes_user_id", "user_passes", ["user_id"])
    op.create_index("ix_user_passes_purchase_id", "user_passes", ["purchase_id"])
    op.create_index("ix_user_passes_pass_type", "user_passes", ["pass_type"])
    op.create_index("ix_user_passes_active_to", "user_passes", ["active_to"])
    op.create_index("ix_user_passes_status", "user_passes", ["status"])

    op.create_table(
        "pass_usages",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("booking_id", sa.String(length=36), nullable=False),
        sa.Column("user_pass_id", sa.String(length=36), nullable=False),
        sa.Column("action_type", sa.String(length=20), nullable=False),
        sa.Column("minutes_applied", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("status", sa.String(length=12), nullable=False, server_default="APPLIED"),
        sa.Column("used_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_pass_usages_booking_id", "pass_usages", ["booking_id"])
    op.create_index("ix_pass_usages_user_pass_id", "pass_usages", ["user_pass_id"])

    op.create_table(
        "promo_codes",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("code", sa.String(length=40), nullable=False),
        sa.Column("name", sa.String(length=120), nullable=False, server_default=""),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("discount_type", sa.String(length=12), nullable=False),
        _money("discount_value", default=None),
        _money("maximum_discount", nullable=True, default=None),
        _money("minimum_amount", nullable=True, default=None),
        sa.Column("minimum_hours", sa.Numeric(5, 2), nullable=True),
        sa.Column("active_from", sa.DateTime(timezone=True), nullable=True),
        sa.Column("active_to", sa.DateTime(timezone=True), nullable=True),
        sa.Column("max_usage_per_user", sa.Integer(), nullable=True),
        sa.Column("max_total_usage", sa.Integer(), nullable=True),
        sa.Column("usage_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_promo_codes_code", "promo_codes", ["code"], unique=True)

    op.create_table(
        "promo_code_usages",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("promo_code_id", sa.String(length=36), nullable=False),
        sa.Column("user_id", sa.String(length=36), nullable=False),
        sa.Column("booking_id", sa.String(length=36), nullable=False),
        _money("discount_amount", default=None),
        sa.Column("used_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_promo_code_usages_promo_code_id", "promo_code_usages", ["promo_code_id"])
    op.create_index("ix_promo_code_usages_user_id", "promo_code_usages", ["user_id"])
    op.create_index("ix_promo_code_usages_booking_id", "promo_code_usages", ["booking_id"], unique=True)

    op.create_table(
        "booking_discount_history",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("booking_id", sa.String(length=36), nullable=False),
        sa.Column("user_id", sa.String(length=36), nullable=True),
        sa.Column("discount_type", sa.String(length=12), nullable=False),
        sa.Column("action_type", sa.String(length=20), nullable=False),
        _money("discount_amount", default=None),
        sa.Column("promo_code_id", sa.String(length=36), nullable=True),
        sa.Column("user_pass_id", sa.String(length=36), nullable=True),
        sa.Column("credit_id", sa.String(length=36), nullable=True),
        sa.Column("reverses_entry_id", sa.String(length=36), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("applied_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_booking_discount_history_booking_id", "booking_discount_history", ["booking_id"])
    op.create_index("ix_booking_discount_history_user_id", "booking_discount_history", ["user_id"])
    op.create_index("ix_booking_discount_history_applied_at", "booking_discount_history", ["applied_at"])


def downgrade() -> None:
    for table in (
        "booking_discount_history",
        "promo_code_usages",
        "promo_codes",
        "pass_usages",
        "user_passes",
        "credit_usages",
        "user_credits",
        "booking_activity_logs",
        "email_logs",
        "settings",
        "payments",
        "bookings",
    ):
        op.drop_table(table)
