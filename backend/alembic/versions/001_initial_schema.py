"""Initial schema: users, classes, events, bookings, payments, waitlist, webhook ledger.

Revision ID: 001
Revises: None
Create Date: 2026-10-19
"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    ]


def _venue() -> list:
    return [
        sa.Column("venue_name", sa.String(255), nullable=True),
        sa.Column("venue_address", sa.String(255), nullable=True),
        sa.Column("venue_city", sa.String(100), nullable=True),
    ]


def upgrade() -> None:
    # Users (read only for this service)
    op.create_table(
        "users",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("full_name", sa.String(255), nullable=False),
        *_timestamps(),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    # Classes
    op.create_table(
        "classes",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("image_url", sa.String(500), nullable=True),
        sa.Column("price", sa.Numeric(10, 2), nullable=False),
        sa.Column("start_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("end_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("max_students", sa.Integer(), nullable=False),
        sa.Column("current_students", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        *_venue(),
        sa.Column("instructor_name", sa.String(255), nullable=True),
        *_timestamps(),
        sa.CheckConstraint("current_students >= 0", name="check_class_students_non_negative"),
        sa.CheckConstraint("current_students <= max_students", name="check_class_students_lte_max"),
        sa.CheckConstraint("max_students > 0", name="check_class_max_students_positive"),
    )
    op.create_index("ix_classes_start_date", "classes", ["start_date"])

    # Events
    op.create_table(
        "events",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("image_url", sa.String(500), nullable=True),
        sa.Column("price", sa.Numeric(10, 2), nullable=False),
        sa.Column("start_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("end_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("max_attendees", sa.Integer(), nullable=False),
        sa.Column("current_attendees", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("status", sa.String(20), nullable=False, server_default=sa.text("'DRAFT'")),
        *_venue(),
        sa.Column("organizer_name", sa.String(255), nullable=True),
        *_timestamps(),
        sa.CheckConstraint("current_attendees >= 0", name="check_event_attendees_non_negative"),
        sa.CheckConstraint("current_attendees <= max_attendees", name="check_event_attendees_lte_max"),
        sa.CheckConstraint("max_attendees > 0", name="check_event_max_attendees_positive"),
    )
    op.create_index("ix_events_status_start_date", "events", ["status", "start_date"])

    # Bookings
    op.create_table(
        "bookings",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("user_id", sa.String(36), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("class_id", sa.String(36), sa.ForeignKey("classes.id"), nullable=True),
        sa.Column("event_id", sa.String(36), sa.ForeignKey("events.id"), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default=sa.text("'PENDING'")),
        sa.Column("payment_status", sa.String(30), nullable=False, server_default=sa.text("'pending'")),
        sa.Column("total_amount", sa.Numeric(10, 2), nullable=False),
        sa.Column("amount_paid", sa.Numeric(10, 2), nullable=False, server_default=sa.text("0")),
        sa.Column("discount_amount", sa.Numeric(10, 2), nullable=False, server_default=sa.text("0")),
        sa.Column("tax_amount", sa.Numeric(10, 2), nullable=False, server_default=sa.text("0")),
        sa.Column("confirmation_code", sa.String(64), nullable=False),
        sa.Column("payment_method", sa.String(50), nullable=True),
        sa.Column("stripe_session_id", sa.String(255), nullable=True),
        sa.Column("cancellation_reason", sa.Text(), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("rescheduled_from_class_id", sa.String(36), sa.ForeignKey("classes.id"), nullable=True),
        sa.Column("reschedule_reason", sa.Text(), nullable=True),
        sa.Column("rescheduled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_from", sa.String(20), nullable=False, server_default=sa.text("'CHECKOUT'")),
        *_timestamps(),
        sa.UniqueConstraint("confirmation_code", name="uq_bookings_confirmation_code"),
        sa.UniqueConstraint("stripe_session_id", name="uq_bookings_stripe_session_id"),
        sa.CheckConstraint("(class_id IS NULL) <> (event_id IS NULL)", name="check_booking_exactly_one_item"),
        sa.CheckConstraint("amount_paid >= 0", name="check_booking_amount_paid_non_negative"),
        sa.CheckConstraint(
            "discount_amount >= 0 AND tax_amount >= 0", name="check_booking_adjustments_non_negative"
        ),
    )
    op.create_index("ix_bookings_user_id", "bookings", ["user_id"])
    op.create_index("ix_bookings_class_id", "bookings", ["class_id"])
    op.create_index("ix_bookings_event_id", "bookings", ["event_id"])
    # Counting CONFIRMED bookings per item (capacity reconciliation)
    op.create_index("ix_bookings_class_status", "bookings", ["class_id", "status"])
    op.create_index("ix_bookings_event_status", "bookings", ["event_id", "status"])

    # Transactions
    op.create_table(
        "transactions",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("booking_id", sa.String(36), sa.ForeignKey("bookings.id", ondelete="CASCADE"), nullable=False),
        sa.Column("user_id", sa.String(36), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("provider", sa.String(20), nullable=False),
        sa.Column("provider_payment_id", sa.String(255), nullable=True),
        sa.Column("stripe_session_id", sa.String(255), nullable=True),
        sa.Column("type", sa.String(20), nullable=False, server_default=sa.text("'PAYMENT'")),
        sa.Column("status", sa.String(20), nullable=False, server_default=sa.text("'CREATED'")),
        sa.Column("amount", sa.Numeric(10, 2), nullable=False),
        sa.Column("currency", sa.String(3), nullable=False, server_default=sa.text("'USD'")),
        sa.Column("failure_reason", sa.Text(), nullable=True),
        sa.Column("payment_method_type", sa.String(50), nullable=True),
        sa.Column("payload", sa.Text(), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_transactions_booking_id", "transactions", ["booking_id"])
    op.create_index("ix_transactions_user_id", "transactions", ["user_id"])
    # Webhook lookups: by session id (checkout) and by payment/transfer id
    op.create_index("ix_transactions_provider_payment", "transactions", ["provider", "provider_payment_id"])
    op.create_index("ix_transactions_provider_session", "transactions", ["provider", "stripe_session_id"])

    # Waitlist
    op.create_table(
        "waitlist_entries",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("user_id", sa.String(36), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("class_id", sa.String(36), sa.ForeignKey("classes.id"), nullable=True),
        sa.Column("event_id", sa.String(36), sa.ForeignKey("events.id"), nullable=True),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column("priority", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("status", sa.String(20), nullable=False, server_default=sa.text("'ACTIVE'")),
        *_timestamps(),
        sa.CheckConstraint("(class_id IS NULL) <> (event_id IS NULL)", name="check_waitlist_exactly_one_item"),
    )
    op.create_index("ix_waitlist_entries_user_id", "waitlist_entries", ["user_id"])
    # Promotion picks ACTIVE entries by priority DESC, position ASC
    op.create_index(
        "ix_waitlist_class_promotion", "waitlist_entries", ["class_id", "status", "priority", "position"]
    )
    op.create_index(
        "ix_waitlist_event_promotion", "waitlist_entries", ["event_id", "status", "priority", "position"]
    )

    # Refunds (settled outside this service)
    op.create_table(
        "refunds",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("booking_id", sa.String(36), sa.ForeignKey("bookings.id"), nullable=False),
        sa.Column("user_id", sa.String(36), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("amount", sa.Numeric(10, 2), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default=sa.text("'PENDING'")),
        sa.Column("reason", sa.Text(), nullable=False),
        sa.Column("requested_at", sa.DateTime(timezone=True), nullable=False),
        *_timestamps(),
    )
    op.create_index("ix_refunds_booking_id", "refunds", ["booking_id"])

    # Audit log
    op.create_table(
        "audit_logs",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("user_id", sa.String(36), nullable=True),
        sa.Column("action", sa.String(50), nullable=False),
        sa.Column("table_name", sa.String(50), nullable=False),
        sa.Column("record_id", sa.String(36), nullable=False),
        sa.Column("new_values", sa.Text(), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_audit_logs_user_id", "audit_logs", ["user_id"])

    # Webhook ledger: one row per (provider, event_id)
    op.create_table(
        "processed_webhook_events",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("provider", sa.String(20), nullable=False),
        sa.Column("event_id", sa.String(255), nullable=False),
        sa.Column("event_type", sa.String(100), nullable=False),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("booking_id", sa.String(36), nullable=True),
        sa.Column("error", sa.Text(), nullable=True),
        sa.Column("received_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("processed_at", sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint("provider", "event_id", name="uq_webhook_events_provider_event_id"),
    )
    op.create_index("ix_processed_webhook_events_booking_id", "processed_webhook_events", ["booking_id"])


def downgrade() -> None:
    op.drop_table("processed_webhook_events")
    op.drop_table("audit_logs")
    op.drop_table("refunds")
    op.drop_table("waitlist_entries")
    op.drop_table("transactions")
    op.drop_table("bookings")
    op.drop_table("events")
    op.drop_table("classes")
    op.drop_table("users")
