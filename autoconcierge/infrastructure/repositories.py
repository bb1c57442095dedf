"""
Repository Pattern -- abstracts DB access so domain logic stays DB-agnostic.

Each repository receives an ``AsyncSession`` (unit-of-work) and exposes
domain-relevant queries only.  ``PriceMatrixRepository`` converts rows to
``PriceMatrixEntry`` value objects so the pricing engine never sees ORM
instances.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Optional

from sqlalchemy import Integer, cast, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.attributes import flag_modified
from sqlalchemy.orm.exc import StaleDataError

from .models import (
    BookingModel,
    BookingStatusChangeModel,
    ExtensionModel,
    JockeyAssignmentModel,
    PriceMatrixModel,
    UserModel,
    VehicleModel,
)
from autoconcierge.domain.entities import PriceMatrixEntry, Vehicle
from autoconcierge.domain.enums import (
    ActorRole,
    AssignmentStatus,
    AssignmentType,
    BookingStatus,
    ExtensionStatus,
)
from autoconcierge.domain.errors import ConflictError, StaleStateError

BOOKING_NUMBER_PREFIX = "BK"

_PRICE_COLUMNS = (
    "inspection_30k",
    "inspection_60k",
    "inspection_90k",
    "inspection_120k",
    "oil_service",
    "brake_service_front",
    "brake_service_rear",
    "tuv",
    "climate_service",
)


class PriceMatrixRepository:
    """Read side of the rate table; ``add_entry`` is for seeding / admin tools."""

    def __init__(self, session: AsyncSession):
        self.session = session

    @staticmethod
    def _to_entry(row: PriceMatrixModel) -> PriceMatrixEntry:
        return PriceMatrixEntry(
            brand=row.brand,
            model=row.model,
            year_from=row.year_from,
            year_to=row.year_to,
            **{col: getattr(row, col) for col in _PRICE_COLUMNS},
        )

    async def find_exact(
        self, brand: str, model: str, year: int
    ) -> Optional[PriceMatrixEntry]:
        result = await self.session.execute(
            select(PriceMatrixModel)
            .where(
                PriceMatrixModel.brand == brand,
                PriceMatrixModel.model == model,
                PriceMatrixModel.year_from <= year,
                PriceMatrixModel.year_to >= year,
            )
            .order_by(PriceMatrixModel.year_from)
            .limit(1)
        )
        row = result.scalar_one_or_none()
        return self._to_entry(row) if row else None

    async def find_by_brand(self, brand: str) -> list[PriceMatrixEntry]:
        result = await self.session.execute(
            select(PriceMatrixModel)
            .where(PriceMatrixModel.brand == brand)
            .order_by(PriceMatrixModel.model, PriceMatrixModel.year_from)
        )
        return [self._to_entry(row) for row in result.scalars().all()]

    async def list_brands(self) -> list[str]:
        result = await self.session.execute(
            select(PriceMatrixModel.brand).distinct().order_by(PriceMatrixModel.brand)
        )
        return list(result.scalars().all())

    async def add_entry(self, entry: PriceMatrixEntry) -> PriceMatrixModel:
        """Insert *entry*; overlapping year ranges for one model are rejected."""
        if entry.year_from > entry.year_to:
            raise ConflictError(
                f"Invalid year range {entry.year_from}-{entry.year_to}"
            )
        existing = await self.session.execute(
            select(PriceMatrixModel).where(
                PriceMatrixModel.brand == entry.brand,
                PriceMatrixModel.model == entry.model,
                PriceMatrixModel.year_from <= entry.year_to,
                PriceMatrixModel.year_to >= entry.year_from,
            )
        )
        clash = existing.scalars().first()
        if clash is not None:
            raise ConflictError(
                f"{entry.brand} {entry.model} {entry.year_from}-{entry.year_to} "
                f"overlaps existing range {clash.year_from}-{clash.year_to}"
            )
        row = PriceMatrixModel(
            brand=entry.brand,
            model=entry.model,
            year_from=entry.year_from,
            year_to=entry.year_to,
            **{col: getattr(entry, col) for col in _PRICE_COLUMNS},
        )
        self.session.add(row)
        await self.session.flush()
        return row


class UserRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(
        self, *, name: str, email: str, role: ActorRole = ActorRole.CUSTOMER
    ) -> UserModel:
        user = UserModel(name=name, email=email, role=role)
        self.session.add(user)
        await self.session.flush()
        return user

    async def get_by_id(self, user_id: int) -> Optional[UserModel]:
        return await self.session.get(UserModel, user_id)


class VehicleRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_id(self, vehicle_id: int) -> Optional[VehicleModel]:
        return await self.session.get(VehicleModel, vehicle_id)

    async def find_or_create(self, customer_id: int, vehicle: Vehicle) -> VehicleModel:
        """Return the customer's matching vehicle, refreshing its odometer."""
        result = await self.session.execute(
            select(VehicleModel).where(
                VehicleModel.customer_id == customer_id,
                VehicleModel.brand == vehicle.brand,
                VehicleModel.model == vehicle.model,
                VehicleModel.year == vehicle.year,
            )
        )
        row = result.scalars().first()
        if row is None:
            row = VehicleModel(
                customer_id=customer_id,
                brand=vehicle.brand,
                model=vehicle.model,
                year=vehicle.year,
                mileage=vehicle.mileage,
            )
            self.session.add(row)
        else:
            row.mileage = vehicle.mileage
        await self.session.flush()
        return row


class BookingRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def next_booking_number(self, today: date) -> str:
        """``BK`` + YY + MM + 4-digit sequence restarting every month."""
        prefix = f"{BOOKING_NUMBER_PREFIX}{today:%y%m}"
        # numeric max: "...10000" sorts before "...9999" as text
        sequence = cast(func.substr(BookingModel.booking_number, len(prefix) + 1), Integer)
        result = await self.session.execute(
            select(func.max(sequence)).where(
                BookingModel.booking_number.like(f"{prefix}%")
            )
        )
        last = result.scalar()
        return f"{prefix}{(last or 0) + 1:04d}"

    async def create(self, booking: BookingModel) -> BookingModel:
        """Insert *booking*; a booking number taken by a concurrent insert is stale state."""
        self.session.add(booking)
        try:
            await self.session.flush()
        except IntegrityError:
            raise StaleStateError(
                f"Booking number {booking.booking_number} was taken concurrently; retry"
            ) from None
        return booking

    @staticmethod
    def touch(booking: BookingModel, now: datetime) -> None:
        """Mark *booking* changed so the next flush bumps ``version``."""
        booking.updated_at = now
        flag_modified(booking, "updated_at")

    async def get_by_id(self, booking_id: int) -> Optional[BookingModel]:
        return await self.session.get(BookingModel, booking_id)

    async def get_by_number(self, booking_number: str) -> Optional[BookingModel]:
        result = await self.session.execute(
            select(BookingModel).where(BookingModel.booking_number == booking_number)
        )
        return result.scalar_one_or_none()

    async def count_in_slot(self, pickup_date: date, time_slot: str) -> int:
        result = await self.session.execute(
            select(func.count())
            .select_from(BookingModel)
            .where(
                BookingModel.pickup_date == pickup_date,
                BookingModel.pickup_time_slot == time_slot,
                BookingModel.status != BookingStatus.CANCELLED,
            )
        )
        return result.scalar() or 0

    async def save(self, booking: BookingModel) -> BookingModel:
        """Flush pending changes; a moved ``version`` means another writer won."""
        try:
            await self.session.flush()
        except StaleDataError:
            raise StaleStateError(
                f"Booking {booking.id} was modified concurrently; re-read and retry"
            ) from None
        return booking


class ExtensionRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, extension: ExtensionModel) -> ExtensionModel:
        self.session.add(extension)
        await self.session.flush()
        return extension

    async def get_by_id(self, extension_id: int) -> Optional[ExtensionModel]:
        return await self.session.get(ExtensionModel, extension_id)

    async def get_pending(self, booking_id: int) -> Optional[ExtensionModel]:
        result = await self.session.execute(
            select(ExtensionModel).where(
                ExtensionModel.booking_id == booking_id,
                ExtensionModel.status == ExtensionStatus.PENDING,
            )
        )
        return result.scalars().first()

    async def list_for_booking(self, booking_id: int) -> list[ExtensionModel]:
        result = await self.session.execute(
            select(ExtensionModel)
            .where(ExtensionModel.booking_id == booking_id)
            .order_by(ExtensionModel.created_at.desc(), ExtensionModel.id.desc())
        )
        return list(result.scalars().all())


class JockeyAssignmentRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, assignment: JockeyAssignmentModel) -> JockeyAssignmentModel:
        self.session.add(assignment)
        await self.session.flush()
        return assignment

    async def get_active(
        self, booking_id: int, assignment_type: AssignmentType
    ) -> Optional[JockeyAssignmentModel]:
        result = await self.session.execute(
            select(JockeyAssignmentModel).where(
                JockeyAssignmentModel.booking_id == booking_id,
                JockeyAssignmentModel.type == assignment_type,
                JockeyAssignmentModel.status.not_in(
                    [AssignmentStatus.COMPLETED, AssignmentStatus.CANCELLED]
                ),
            )
        )
        return result.scalars().first()

    async def list_for_booking(self, booking_id: int) -> list[JockeyAssignmentModel]:
        result = await self.session.execute(
            select(JockeyAssignmentModel)
            .where(JockeyAssignmentModel.booking_id == booking_id)
            .order_by(JockeyAssignmentModel.id)
        )
        return list(result.scalars().all())


class StatusHistoryRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def record(
        self,
        *,
        booking_id: int,
        from_status: Optional[BookingStatus],
        to_status: BookingStatus,
        event: str,
        actor: ActorRole,
    ) -> BookingStatusChangeModel:
        change = BookingStatusChangeModel(
            booking_id=booking_id,
            from_status=from_status,
            to_status=to_status,
            event=event,
            actor=actor,
        )
        self.session.add(change)
        await self.session.flush()
        return change

    async def list_for_booking(self, booking_id: int) -> list[BookingStatusChangeModel]:
        result = await self.session.execute(
            select(BookingStatusChangeModel)
            .where(BookingStatusChangeModel.booking_id == booking_id)
            .order_by(BookingStatusChangeModel.id)
        )
        return list(result.scalars().all())
