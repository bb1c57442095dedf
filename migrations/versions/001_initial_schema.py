"""Initial schema: users, vehicles, price matrix, bookings and their audit tables.

Revision ID: 001
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


revision = "001"
down_revision = None
branch_labels = None
depends_on = None

# Enum types are shared between tables, so they are created once up front
booking_status = postgresql.ENUM(
    "PENDING_PAYMENT", "CONFIRMED", "PICKUP_ASSIGNED", "PICKED_UP",
    "AT_WORKSHOP", "IN_SERVICE", "READY_FOR_RETURN", "RETURN_ASSIGNED",
    "RETURNED", "COMPLETED", "CANCELLED",
    name="bookingstatus", create_type=False,
)
actor_role = postgresql.ENUM(
    "CUSTOMER", "JOCKEY", "WORKSHOP", "ADMIN", "SYSTEM",
    name="actorrole", create_type=False,
)
extension_status = postgresql.ENUM(
    "PENDING", "APPROVED", "DECLINED", name="extensionstatus", create_type=False
)
assignment_type = postgresql.ENUM(
    "PICKUP", "RETURN", name="assignmenttype", create_type=False
)
assignment_status = postgresql.ENUM(
    "ASSIGNED", "EN_ROUTE", "AT_LOCATION", "COMPLETED", "CANCELLED",
    name="assignmentstatus", create_type=False,
)

ENUMS = (booking_status, actor_role, extension_status, assignment_type, assignment_status)


def money(name: str, nullable: bool = True) -> sa.Column:
    return sa.Column(name, sa.Numeric(10, 2), nullable=nullable)


def timestamp(name: str, **kwargs) -> sa.Column:
    return sa.Column(name, sa.DateTime(timezone=True), **kwargs)


def upgrade() -> None:
    bind = op.get_bind()
    for enum_type in ENUMS:
        enum_type.create(bind, checkfirst=True)

    # ── users ─────────────────────────────────────────────────────────
    op.create_table(
        "users",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(120), nullable=False),
        sa.Column("email", sa.String(255), unique=True, nullable=False),
        sa.Column("role", actor_role, nullable=False, server_default="CUSTOMER"),
        timestamp("created_at", server_default=sa.func.now()),
    )

    # ── vehicles ──────────────────────────────────────────────────────
    op.create_table(
        "vehicles",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("customer_id", sa.Integer, sa.ForeignKey("users.id"), nullable=False),
        sa.Column("brand", sa.String(80), nullable=False),
        sa.Column("model", sa.String(80), nullable=False),
        sa.Column("year", sa.Integer, nullable=False),
        sa.Column("mileage", sa.Integer, nullable=False),
        timestamp("created_at", server_default=sa.func.now()),
        timestamp("updated_at", server_default=sa.func.now()),
    )
    op.create_index(
        "idx_vehicles_owner", "vehicles", ["customer_id", "brand", "model", "year"]
    )

    # ── price_matrix ──────────────────────────────────────────────────
    op.create_table(
        "price_matrix",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("brand", sa.String(80), nullable=False),
        sa.Column("model", sa.String(80), nullable=False),
        sa.Column("year_from", sa.Integer, nullable=False),
        sa.Column("year_to", sa.Integer, nullable=False),
        money("inspection_30k"),
        money("inspection_60k"),
        money("inspection_90k"),
        money("inspection_120k"),
        money("oil_service"),
        money("brake_service_front"),
        money("brake_service_rear"),
        money("tuv"),
        money("climate_service"),
        timestamp("created_at", server_default=sa.func.now()),
        sa.UniqueConstraint("brand", "model", "year_from", name="uq_price_matrix_range"),
        sa.CheckConstraint("year_from <= year_to", name="ck_price_matrix_years"),
    )
    op.create_index(
        "idx_price_matrix_lookup",
        "price_matrix",
        ["brand", "model", "year_from", "year_to"],
    )

    # ── bookings ──────────────────────────────────────────────────────
    op.create_table(
        "bookings",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("booking_number", sa.String(16), unique=True, nullable=False),
        sa.Column("customer_id", sa.Integer, sa.ForeignKey("users.id"), nullable=False),
        sa.Column("vehicle_id", sa.Integer, sa.ForeignKey("vehicles.id"), nullable=False),
        sa.Column("services", sa.JSON, nullable=False),
        sa.Column("mileage_at_booking", sa.Integer, nullable=False),
        money("total_price", nullable=False),
        sa.Column(
            "status", booking_status, nullable=False, server_default="PENDING_PAYMENT"
        ),
        sa.Column("pickup_date", sa.Date, nullable=False),
        sa.Column("pickup_time_slot", sa.String(16), nullable=False),
        sa.Column("pickup_address", sa.String(255), nullable=False),
        sa.Column("pickup_city", sa.String(120), nullable=False),
        sa.Column("pickup_postal_code", sa.String(16), nullable=False),
        sa.Column("delivery_date", sa.Date, nullable=True),
        sa.Column("delivery_time_slot", sa.String(16), nullable=True),
        sa.Column("jockey_id", sa.Integer, sa.ForeignKey("users.id"), nullable=True),
        sa.Column("customer_notes", sa.Text, nullable=True),
        sa.Column("internal_notes", sa.Text, nullable=True),
        timestamp("paid_at", nullable=True),
        sa.Column("version", sa.Integer, nullable=False, server_default="1"),
        timestamp("created_at", server_default=sa.func.now()),
        timestamp("updated_at", server_default=sa.func.now()),
        sa.CheckConstraint("total_price >= 0", name="ck_bookings_total"),
    )
    op.create_index("idx_bookings_status", "bookings", ["status"])
    op.create_index("idx_bookings_customer", "bookings", ["customer_id"])
    op.create_index("idx_bookings_slot", "bookings", ["pickup_date", "pickup_time_slot"])

    # ── booking_extensions ────────────────────────────────────────────
    op.create_table(
        "booking_extensions",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("booking_id", sa.Integer, sa.ForeignKey("bookings.id"), nullable=False),
        sa.Column("description", sa.Text, nullable=False),
        money("total_amount", nullable=False),
        sa.Column("status", extension_status, nullable=False, server_default="PENDING"),
        sa.Column("decline_reason", sa.Text, nullable=True),
        timestamp("created_at", server_default=sa.func.now()),
        timestamp("approved_at", nullable=True),
        timestamp("declined_at", nullable=True),
        sa.CheckConstraint("total_amount > 0", name="ck_extensions_amount"),
    )
    op.create_index(
        "idx_extensions_booking_status", "booking_extensions", ["booking_id", "status"]
    )
    # At most one PENDING extension per booking
    op.create_index(
        "uq_extensions_one_pending",
        "booking_extensions",
        ["booking_id"],
        unique=True,
        postgresql_where=sa.text("status = 'PENDING'"),
    )

    # ── jockey_assignments ────────────────────────────────────────────
    op.create_table(
        "jockey_assignments",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("booking_id", sa.Integer, sa.ForeignKey("bookings.id"), nullable=False),
        sa.Column("type", assignment_type, nullable=False),
        sa.Column("status", assignment_status, nullable=False, server_default="ASSIGNED"),
        sa.Column("jockey_id", sa.Integer, sa.ForeignKey("users.id"), nullable=False),
        timestamp("scheduled_time", nullable=True),
        timestamp("departed_at", nullable=True),
        timestamp("arrived_at", nullable=True),
        timestamp("completed_at", nullable=True),
        sa.Column("handover", sa.JSON, nullable=True),
        timestamp("created_at", server_default=sa.func.now()),
    )
    op.create_index("idx_assignments_booking", "jockey_assignments", ["booking_id", "type"])
    op.create_index("idx_assignments_jockey", "jockey_assignments", ["jockey_id"])

    # ── booking_status_changes ────────────────────────────────────────
    op.create_table(
        "booking_status_changes",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("booking_id", sa.Integer, sa.ForeignKey("bookings.id"), nullable=False),
        sa.Column("from_status", booking_status, nullable=True),
        sa.Column("to_status", booking_status, nullable=False),
        sa.Column("event", sa.String(40), nullable=False),
        sa.Column("actor", actor_role, nullable=False),
        timestamp("created_at", server_default=sa.func.now()),
    )
    op.create_index("idx_status_changes_booking", "booking_status_changes", ["booking_id"])


def downgrade() -> None:
    op.drop_table("booking_status_changes")
    op.drop_table("jockey_assignments")
    op.drop_table("booking_extensions")
    op.drop_table("bookings")
    op.drop_table("price_matrix")
    op.drop_table("vehicles")
    op.drop_table("users")
    bind = op.get_bind()
    for enum_type in reversed(ENUMS):
        enum_type.drop(bind, checkfirst=True)
