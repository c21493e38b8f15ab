"""Create registration tables

Revision ID: 3f9a2c71d0b4
Revises:
Create Date: 2026-10-19 10:12:44.318207

"""

from typing import Sequence, Union

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "3f9a2c71d0b4"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

registration_status = sa.Enum(
    "draft",
    "submitted",
    "under_review",
    "approved",
    "rejected",
    "withdrawn",
    name="registration_status",
)
payment_status = sa.Enum(
    "none", "pending", "paid", "failed", name="registration_payment_status"
)


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        "events",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("vendor_id", sa.VARCHAR(), nullable=False),
        sa.Column("title", sa.VARCHAR(), nullable=False),
        sa.Column("starts_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("price", sa.Float(), nullable=False),
        sa.Column("currency", sa.VARCHAR(length=3), nullable=False),
        sa.Column("contact_email", sa.VARCHAR(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_events_vendor_id"), "events", ["vendor_id"])

    op.create_table(
        "registration_configs",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("event_id", sa.Uuid(), nullable=False),
        sa.Column("enabled", sa.BOOLEAN(), nullable=False),
        sa.Column("fields", sa.JSON(), nullable=False),
        sa.Column("requires_approval", sa.BOOLEAN(), nullable=False),
        sa.Column("email_notifications", sa.JSON(), nullable=False),
        sa.Column("max_registrations", sa.INTEGER(), nullable=True),
        sa.Column("registration_deadline", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(["event_id"], ["events.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        op.f("ix_registration_configs_event_id"),
        "registration_configs",
        ["event_id"],
        unique=True,
    )

    op.create_table(
        "registrations",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("event_id", sa.Uuid(), nullable=False),
        sa.Column("participant_id", sa.VARCHAR(), nullable=False),
        sa.Column("participant_name", sa.VARCHAR(), nullable=True),
        sa.Column("participant_email", sa.VARCHAR(), nullable=True),
        sa.Column("status", registration_status, nullable=False, server_default="draft"),
        sa.Column("answers", sa.JSON(), nullable=False),
        sa.Column("files", sa.JSON(), nullable=False),
        sa.Column("field_snapshot", sa.JSON(), nullable=True),
        sa.Column("payment_required", sa.BOOLEAN(), nullable=False),
        sa.Column("payment_status", payment_status, nullable=False, server_default="none"),
        sa.Column("payment_amount", sa.Float(), nullable=False),
        sa.Column("payment_currency", sa.VARCHAR(), nullable=True),
        sa.Column("payment_intent_id", sa.VARCHAR(), nullable=True),
        sa.Column("paid_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("confirmation_number", sa.VARCHAR(), nullable=True),
        sa.Column("review_remarks", sa.VARCHAR(), nullable=True),
        sa.Column("reviewed_by", sa.VARCHAR(), nullable=True),
        sa.Column("withdrawal_reason", sa.VARCHAR(), nullable=True),
        sa.Column("submitted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("reviewed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(["event_id"], ["events.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("confirmation_number"),
    )
    op.create_index(op.f("ix_registrations_event_id"), "registrations", ["event_id"])
    op.create_index(
        op.f("ix_registrations_participant_id"), "registrations", ["participant_id"]
    )
    op.create_index(
        op.f("ix_registrations_payment_intent_id"), "registrations", ["payment_intent_id"]
    )
    op.create_index(
        "idx_registrations_event_status", "registrations", ["event_id", "status"]
    )
    op.create_index(
        "idx_registrations_participant_event",
        "registrations",
        ["participant_id", "event_id"],
    )


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_index("idx_registrations_participant_event", table_name="registrations")
    op.drop_index("idx_registrations_event_status", table_name="registrations")
    op.drop_index(op.f("ix_registrations_payment_intent_id"), table_name="registrations")
    op.drop_index(op.f("ix_registrations_participant_id"), table_name="registrations")
    op.drop_index(op.f("ix_registrations_event_id"), table_name="registrations")
    op.drop_table("registrations")
    op.drop_index(op.f("ix_registration_configs_event_id"), table_name="registration_configs")
    op.drop_table("registration_configs")
    op.drop_index(op.f("ix_events_vendor_id"), table_name="events")
    op.drop_table("events")

    bind = op.get_bind()
    payment_status.drop(bind, checkfirst=True)
    registration_status.drop(bind, checkfirst=True)
