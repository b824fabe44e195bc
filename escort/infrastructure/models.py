"""
SQLAlchemy ORM models.

Tables
------
* ``ride_requests`` -- one row per escort request, never deleted

Indexes
-------
* **Partial unique** on ``requester_id`` over active rows and on
  ``responder_id`` over assigned rows.  These hold the one-active-request
  rules (I1 / I2) when two writers race past the read-side checks.
* **B-Tree** on ``(status, created_at)`` for the FIFO waiting-number count.
"""

from sqlalchemy import Column, DateTime, Enum, Float, Index, String, Text, text

from .database import Base
from escort.domain.enums import RideStatus

_ACTIVE = "status IN ('PENDING', 'ACCEPTED', 'EN_ROUTE')"
_ASSIGNED = "status IN ('ACCEPTED', 'EN_ROUTE')"


class RideRequestModel(Base):
    __tablename__ = "ride_requests"

    id = Column(String(32), primary_key=True)
    requester_id = Column(String(64), nullable=False)
    responder_id = Column(String(64), nullable=True)
    status = Column(
        Enum(RideStatus, name="ridestatus"),
        default=RideStatus.PENDING,
        nullable=False,
    )

    pickup_lat = Column(Float, nullable=False)
    pickup_lng = Column(Float, nullable=False)
    pickup_address = Column(String(255), nullable=False, default="")
    dropoff_lat = Column(Float, nullable=False)
    dropoff_lng = Column(Float, nullable=False)
    dropoff_address = Column(String(255), nullable=False, default="")
    service_area_id = Column(String(64), nullable=True)
    note = Column(Text, nullable=True)

    # Set by the engine's clock (microsecond precision) rather than the
    # server so FIFO order is stable within one second.
    created_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        Index(
            "uq_ride_requests_active_requester",
            "requester_id",
            unique=True,
            postgresql_where=text(_ACTIVE),
            sqlite_where=text(_ACTIVE),
        ),
        Index(
            "uq_ride_requests_assigned_responder",
            "responder_id",
            unique=True,
            postgresql_where=text(_ASSIGNED),
            sqlite_where=text(_ASSIGNED),
        ),
        Index("idx_ride_requests_status_created", "status", "created_at"),
        Index("idx_ride_requests_requester", "requester_id"),
        Index("idx_ride_requests_responder", "responder_id"),
    )
