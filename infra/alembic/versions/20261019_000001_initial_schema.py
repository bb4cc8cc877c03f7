"""Initial ticketing schema."""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op

revision = "20261019_000001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "events",
        sa.Column("id", sa.String(length=64), primary_key=True, nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("location", sa.String(length=255), nullable=False),
        sa.Column("starts_at", sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column("venue_id", sa.String(length=64), nullable=True),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), nullable=False),
    )

    op.create_table(
        "ticket_types",
        sa.Column("id", sa.String(length=64), primary_key=True, nullable=False),
        sa.Column("event_id", sa.String(length=64), sa.ForeignKey("events.id", ondelete="CASCADE"), nullable=False),
        sa.Column("name", sa.String(length=120), nullable=False),
        sa.Column("unit_price", sa.BigInteger(), nullable=False),
        sa.Column("is_available", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("max_per_order", sa.Integer(), nullable=True),
        sa.Column("position", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.CheckConstraint("unit_price >= 0", name="ck_ticket_types_unit_price_non_negative"),
    )
    op.create_index("ix_ticket_types_event_id", "ticket_types", ["event_id"])

    op.create_table(
        "tickets",
        sa.Column("id", sa.String(length=128), primary_key=True, nullable=False),
        sa.Column("event_id", sa.String(length=64), sa.ForeignKey("events.id"), nullable=False),
        sa.Column("buyer_id", sa.String(length=64), nullable=False),
        sa.Column("buyer_name", sa.String(length=255), nullable=False),
        sa.Column("buyer_phone", sa.String(length=32), nullable=True),
        sa.Column("ticket_type_id", sa.String(length=64), nullable=False),
        sa.Column("unit_price", sa.BigInteger(), nullable=False),
        sa.Column("commission_amount", sa.BigInteger(), nullable=False),
        sa.Column("payment_transaction_id", sa.String(length=128), nullable=False),
        sa.Column("qr_payload", sa.Text(), nullable=False),
        sa.Column("purchased_at", sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column("is_used", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("used_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.CheckConstraint("NOT is_used OR used_at IS NOT NULL", name="ck_tickets_used_at_when_used"),
    )
    op.create_index("ix_tickets_event_id", "tickets", ["event_id"])
    op.create_index("ix_tickets_buyer_id", "tickets", ["buyer_id"])
    op.create_index("ix_tickets_payment_transaction_id", "tickets", ["payment_transaction_id"])

    op.create_table(
        "event_revenue",
        sa.Column("event_id", sa.String(length=64), primary_key=True, nullable=False),
        sa.Column("gross_amount", sa.BigInteger(), nullable=False, server_default=sa.text("0")),
        sa.Column("commission_amount", sa.BigInteger(), nullable=False, server_default=sa.text("0")),
        sa.Column("net_to_venue", sa.BigInteger(), nullable=False, server_default=sa.text("0")),
        sa.Column("ticket_count", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("updated_at", sa.TIMESTAMP(timezone=True), nullable=False),
    )

    op.create_table(
        "ticket_scans",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("ticket_id", sa.String(length=128), nullable=True),
        sa.Column("event_id", sa.String(length=64), nullable=False),
        sa.Column("gate", sa.String(length=64), nullable=True),
        sa.Column("validator_id", sa.String(length=64), nullable=True),
        sa.Column("admitted", sa.Boolean(), nullable=False),
        sa.Column("reason", sa.String(length=32), nullable=True),
        sa.Column("scanned_at", sa.TIMESTAMP(timezone=True), nullable=False),
    )
    op.create_index("ix_ticket_scans_ticket_id", "ticket_scans", ["ticket_id"])
    op.create_index("ix_ticket_scans_event_id", "ticket_scans", ["event_id"])


def downgrade() -> None:
    op.drop_index("ix_ticket_scans_event_id", table_name="ticket_scans")
    op.drop_index("ix_ticket_scans_ticket_id", table_name="ticket_scans")
    op.drop_table("ticket_scans")
    op.drop_table("event_revenue")
    op.drop_index("ix_tickets_payment_transaction_id", table_name="tickets")
    op.drop_index("ix_tickets_buyer_id", table_name="tickets")
    op.drop_index("ix_tickets_event_id", table_name="tickets")
    op.drop_table("tickets")
    op.drop_index("ix_ticket_types_event_id", table_name="ticket_types")
    op.drop_table("ticket_types")
    op.drop_table("events")
