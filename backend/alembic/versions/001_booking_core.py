# backend/alembic/versions/001_booking_core.py
"""Booking core: directory, bookings, payment saga

Revision ID: 001_booking_core
Revises:
Create Date: 2025-01-06 00:00:00.000000
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "001_booking_core"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _is_postgres() -> bool:
    bind = op.get_bind()
    return bind is not None and bind.dialect.name == "postgresql"


def upgrade() -> None:
    op.create_table(
        "businesses",
        sa.Column("id", sa.String(26), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("owner_id", sa.String(26), nullable=False),
        sa.Column("timezone", sa.String(64), nullable=False, server_default="UTC"),
        sa.Column("requires_prepayment", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_businesses_owner_id", "businesses", ["owner_id"], unique=True)

    op.create_table(
        "users",
        sa.Column("id", sa.String(26), nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("name", sa.String(255), nullable=True),
        sa.Column("role", sa.String(20), nullable=False, server_default="CLIENT"),
        sa.Column("business_id", sa.String(26), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.ForeignKeyConstraint(["business_id"], ["businesses.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint(
            "role IN ('ADMIN', 'BUSINESS_OWNER', 'WORKER', 'CLIENT')", name="ck_users_role"
        ),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)
    op.create_index("ix_users_business_id", "users", ["business_id"])

    op.create_table(
        "services",
        sa.Column("id", sa.String(26), nullable=False),
        sa.Column("business_id", sa.String(26), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("duration_minutes", sa.Integer(), nullable=False),
        sa.Column("price", sa.Numeric(10, 2), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.ForeignKeyConstraint(["business_id"], ["businesses.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint("duration_minutes >= 5", name="check_service_duration_min"),
        sa.CheckConstraint("price >= 0", name="check_service_price_non_negative"),
    )
    op.create_index("ix_services_business_id", "services", ["business_id"])

    op.create_table(
        "bookings",
        sa.Column("id", sa.String(26), nullable=False),
        sa.Column("business_id", sa.String(26), nullable=False),
        sa.Column("service_id", sa.String(26), nullable=False),
        sa.Column("client_id", sa.String(26), nullable=False),
        sa.Column("worker_id", sa.String(26), nullable=True),
        sa.Column("start_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("end_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="SCHEDULED"),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("payment_intent_id", sa.String(255), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancelled_by_id", sa.String(26), nullable=True),
        sa.ForeignKeyConstraint(["business_id"], ["businesses.id"]),
        sa.ForeignKeyConstraint(["service_id"], ["services.id"]),
        sa.ForeignKeyConstraint(["client_id"], ["users.id"]),
        sa.ForeignKeyConstraint(["worker_id"], ["users.id"]),
        sa.ForeignKeyConstraint(["cancelled_by_id"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("payment_intent_id", name="uq_bookings_payment_intent_id"),
        sa.CheckConstraint(
            "status IN ('SCHEDULED', 'CONFIRMED', 'COMPLETED', 'CANCELLED', 'NO_SHOW')",
            name="ck_bookings_status",
        ),
        sa.CheckConstraint("start_time < end_time", name="check_time_order"),
    )
    op.create_index("ix_bookings_business_id", "bookings", ["business_id"])
    op.create_index("ix_bookings_client_id", "bookings", ["client_id"])
    op.create_index("ix_bookings_status", "bookings", ["status"])
    op.create_index("ix_bookings_worker_start", "bookings", ["worker_id", "start_time"])

    if _is_postgres():
        # Backstop for the per-worker calendar lock: the database itself refuses
        # two non-cancelled overlapping intervals for one worker.
        op.execute("CREATE EXTENSION IF NOT EXISTS btree_gist")
        op.execute(
            """
            ALTER TABLE bookings
              ADD CONSTRAINT bookings_no_overlap_per_worker
              EXCLUDE USING gist (
                worker_id WITH =,
                tstzrange(start_time, end_time, '[)') WITH &&
              )
              WHERE (status <> 'CANCELLED')
            """
        )

    op.create_table(
        "booking_payment_intents",
        sa.Column("id", sa.String(26), nullable=False),
        sa.Column("gateway_handle", sa.String(255), nullable=False),
        sa.Column("client_secret", sa.String(255), nullable=True),
        sa.Column("business_id", sa.String(26), nullable=False),
        sa.Column("service_id", sa.String(26), nullable=False),
        sa.Column("client_id", sa.String(26), nullable=False),
        sa.Column("worker_id", sa.String(26), nullable=False),
        sa.Column("start_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("end_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("amount_cents", sa.Integer(), nullable=False),
        sa.Column("currency", sa.String(3), nullable=False, server_default="usd"),
        sa.Column("platform_fee_cents", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("processor_fee_cents", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("business_amount_cents", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("status", sa.String(20), nullable=False, server_default="quoted"),
        sa.Column("booking_id", sa.String(26), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["business_id"], ["businesses.id"]),
        sa.ForeignKeyConstraint(["service_id"], ["services.id"]),
        sa.ForeignKeyConstraint(["client_id"], ["users.id"]),
        sa.ForeignKeyConstraint(["worker_id"], ["users.id"]),
        sa.ForeignKeyConstraint(["booking_id"], ["bookings.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint("amount_cents >= 0", name="check_intent_amount_non_negative"),
        sa.CheckConstraint(
            "status IN ('quoted', 'committed', 'slot_lost', 'failed', 'captured_unbooked')",
            name="ck_booking_payment_intents_status",
        ),
    )
    op.create_index(
        "ix_booking_payment_intents_gateway_handle",
        "booking_payment_intents",
        ["gateway_handle"],
        unique=True,
    )
    op.create_index("ix_booking_payment_intents_client_id", "booking_payment_intents", ["client_id"])
    op.create_index("ix_booking_payment_intents_status", "booking_payment_intents", ["status"])

    op.create_table(
        "payment_escalations",
        sa.Column("id", sa.String(26), nullable=False),
        sa.Column("payment_intent_record_id", sa.String(26), nullable=False),
        sa.Column("payment_reference", sa.String(255), nullable=False),
        sa.Column("reason", sa.Text(), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="open"),
        sa.Column("resolution_note", sa.Text(), nullable=True),
        sa.Column("resolved_by_id", sa.String(26), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("resolved_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["payment_intent_record_id"], ["booking_payment_intents.id"]),
        sa.ForeignKeyConstraint(["resolved_by_id"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "payment_intent_record_id", name="uq_payment_escalations_intent_record"
        ),
        sa.CheckConstraint(
            "status IN ('open', 'refunded', 'rebooked', 'dismissed')",
            name="ck_payment_escalations_status",
        ),
    )
    op.create_index(
        "ix_payment_escalations_payment_reference", "payment_escalations", ["payment_reference"]
    )
    op.create_index("ix_payment_escalations_status", "payment_escalations", ["status"])


def downgrade() -> None:
    op.drop_table("payment_escalations")
    op.drop_table("booking_payment_intents")
    if _is_postgres():
        op.execute("ALTER TABLE bookings DROP CONSTRAINT IF EXISTS bookings_no_overlap_per_worker")
    op.drop_table("bookings")
    op.drop_table("services")
    op.drop_table("users")
    op.drop_table("businesses")
