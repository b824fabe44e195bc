"""Ride request table with the one-active-request partial unique indexes.

Revision ID: 001
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa


revision = "001"
down_revision = None
branch_labels = None
depends_on = None

ACTIVE = "status IN ('PENDING', 'ACCEPTED', 'EN_ROUTE')"
ASSIGNED = "status IN ('ACCEPTED', 'EN_ROUTE')"


def upgrade() -> None:
    # ── ride_requests ─────────────────────────────────────────────────
    op.create_table(
        "ride_requests",
        sa.Column("id", sa.String(32), primary_key=True),
        sa.Column("requester_id", sa.String(64), nullable=False),
        sa.Column("responder_id", sa.String(64), nullable=True),
        sa.Column(
            "status",
            sa.Enum(
                "PENDING",
                "ACCEPTED",
                "EN_ROUTE",
                "CANCELLED",
                "DECLINED",
                "COMPLETED",
                name="ridestatus",
            ),
            nullable=False,
        ),
        sa.Column("pickup_lat", sa.Float, nullable=False),
        sa.Column("pickup_lng", sa.Float, nullable=False),
        sa.Column("pickup_address", sa.String(255), nullable=False),
        sa.Column("dropoff_lat", sa.Float, nullable=False),
        sa.Column("dropoff_lng", sa.Float, nullable=False),
        sa.Column("dropoff_address", sa.String(255), nullable=False),
        sa.Column("service_area_id", sa.String(64), nullable=True),
        sa.Column("note", sa.Text, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    )

    # I1 / I2 enforced by the database under concurrent writers
    op.create_index(
        "uq_ride_requests_active_requester",
        "ride_requests",
        ["requester_id"],
        unique=True,
        postgresql_where=sa.text(ACTIVE),
    )
    op.create_index(
        "uq_ride_requests_assigned_responder",
        "ride_requests",
        ["responder_id"],
        unique=True,
        postgresql_where=sa.text(ASSIGNED),
    )

    op.create_index(
        "idx_ride_requests_status_created",
        "ride_requests",
        ["status", "created_at"],
    )
    op.create_index("idx_ride_requests_requester", "ride_requests", ["requester_id"])
    op.create_index("idx_ride_requests_responder", "ride_requests", ["responder_id"])


def downgrade() -> None:
    op.drop_table("ride_requests")
    op.execute("DROP TYPE IF EXISTS ridestatus")
