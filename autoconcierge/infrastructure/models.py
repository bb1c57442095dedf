"""
SQLAlchemy ORM models  (PostgreSQL in production, SQLite in tests).

Tables
------
* ``users``                   -- customers, jockeys, workshop staff, admins
* ``vehicles``                -- customer vehicles with current odometer
* ``price_matrix``            -- rate table by brand / model / year range
* ``bookings``                -- aggregate root, optimistic ``version``
* ``booking_extensions``      -- workshop-proposed extra work
* ``jockey_assignments``      -- one row per pickup / return leg
* ``booking_status_changes``  -- audit trail of applied transitions

Money columns are ``NUMERIC(10, 2)`` and surface as ``Decimal``.
Timestamps are set Python-side so they are available right after flush.
"""

from datetime import datetime, timezone

from sqlalchemy import (
    JSON,
    Column,
    Date,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)

from .database import Base
from autoconcierge.domain.enums import (
    ActorRole,
    AssignmentStatus,
    AssignmentType,
    BookingStatus,
    ExtensionStatus,
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def Money(**kwargs) -> Column:
    return Column(Numeric(10, 2, asdecimal=True), **kwargs)


class UserModel(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(120), nullable=False)
    email = Column(String(255), unique=True, nullable=False)
    role = Column(Enum(ActorRole), default=ActorRole.CUSTOMER, nullable=False)
    created_at = Column(DateTime(timezone=True), default=_utcnow)


class VehicleModel(Base):
    __tablename__ = "vehicles"

    id = Column(Integer, primary_key=True, autoincrement=True)
    customer_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    brand = Column(String(80), nullable=False)
    model = Column(String(80), nullable=False)
    year = Column(Integer, nullable=False)
    mileage = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    __table_args__ = (
        Index("idx_vehicles_owner", "customer_id", "brand", "model", "year"),
    )


class PriceMatrixModel(Base):
    __tablename__ = "price_matrix"

    id = Column(Integer, primary_key=True, autoincrement=True)
    brand = Column(String(80), nullable=False)
    model = Column(String(80), nullable=False)
    year_from = Column(Integer, nullable=False)
    year_to = Column(Integer, nullable=False)

    # Inspection, tiered by mileage
    inspection_30k = Money(nullable=True)
    inspection_60k = Money(nullable=True)
    inspection_90k = Money(nullable=True)
    inspection_120k = Money(nullable=True)

    # Flat-rate services
    oil_service = Money(nullable=True)
    brake_service_front = Money(nullable=True)
    brake_service_rear = Money(nullable=True)
    tuv = Money(nullable=True)
    climate_service = Money(nullable=True)

    created_at = Column(DateTime(timezone=True), default=_utcnow)

    __table_args__ = (
        UniqueConstraint("brand", "model", "year_from", name="uq_price_matrix_range"),
        Index("idx_price_matrix_lookup", "brand", "model", "year_from", "year_to"),
    )


class BookingModel(Base):
    __tablename__ = "bookings"

    id = Column(Integer, primary_key=True, autoincrement=True)
    booking_number = Column(String(16), unique=True, nullable=False)
    customer_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    vehicle_id = Column(Integer, ForeignKey("vehicles.id"), nullable=False)

    # [{"serviceType": ..., "basePrice": ..., "finalPrice": ...}, ...]
    services = Column(JSON, nullable=False, default=list)
    mileage_at_booking = Column(Integer, nullable=False)
    total_price = Money(nullable=False)
    status = Column(
        Enum(BookingStatus), default=BookingStatus.PENDING_PAYMENT, nullable=False
    )

    pickup_date = Column(Date, nullable=False)
    pickup_time_slot = Column(String(16), nullable=False)
    pickup_address = Column(String(255), nullable=False)
    pickup_city = Column(String(120), nullable=False)
    pickup_postal_code = Column(String(16), nullable=False)
    delivery_date = Column(Date, nullable=True)
    delivery_time_slot = Column(String(16), nullable=True)

    jockey_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    customer_notes = Column(Text, nullable=True)
    internal_notes = Column(Text, nullable=True)
    paid_at = Column(DateTime(timezone=True), nullable=True)

    version = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        Index("idx_bookings_status", "status"),
        Index("idx_bookings_customer", "customer_id"),
        Index("idx_bookings_slot", "pickup_date", "pickup_time_slot"),
    )


class ExtensionModel(Base):
    __tablename__ = "booking_extensions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    booking_id = Column(Integer, ForeignKey("bookings.id"), nullable=False)
    description = Column(Text, nullable=False)
    total_amount = Money(nullable=False)
    status = Column(Enum(ExtensionStatus), default=ExtensionStatus.PENDING, nullable=False)
    decline_reason = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow)
    approved_at = Column(DateTime(timezone=True), nullable=True)
    declined_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index("idx_extensions_booking_status", "booking_id", "status"),
    )


class JockeyAssignmentModel(Base):
    __tablename__ = "jockey_assignments"

    id = Column(Integer, primary_key=True, autoincrement=True)
    booking_id = Column(Integer, ForeignKey("bookings.id"), nullable=False)
    type = Column(Enum(AssignmentType), nullable=False)
    status = Column(Enum(AssignmentStatus), default=AssignmentStatus.ASSIGNED, nullable=False)
    jockey_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    scheduled_time = Column(DateTime(timezone=True), nullable=True)
    departed_at = Column(DateTime(timezone=True), nullable=True)
    arrived_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    handover = Column(JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow)

    __table_args__ = (
        Index("idx_assignments_booking", "booking_id", "type"),
        Index("idx_assignments_jockey", "jockey_id"),
    )


class BookingStatusChangeModel(Base):
    __tablename__ = "booking_status_changes"

    id = Column(Integer, primary_key=True, autoincrement=True)
    booking_id = Column(Integer, ForeignKey("bookings.id"), nullable=False)
    from_status = Column(Enum(BookingStatus), nullable=True)  # NULL on creation
    to_status = Column(Enum(BookingStatus), nullable=False)
    event = Column(String(40), nullable=False)
    actor = Column(Enum(ActorRole), nullable=False)
    created_at = Column(DateTime(timezone=True), default=_utcnow)

    __table_args__ = (
        Index("idx_status_changes_booking", "booking_id"),
    )
