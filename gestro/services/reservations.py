"""
Reservation Repository

Reservation CRUD and the table availability query.

A table is offered for a slot only if
    1. its own status is 'available', and
    2. no pending/confirmed reservation for that date overlaps the slot.

Overlap is inclusive by default (windows that merely touch collide);
RESERVATION_OVERLAP_INCLUSIVE=false switches to a strict test so that
back-to-back bookings are allowed.

Author: Khalil Bannouri
Version: 1.0.0
"""

import logging
from datetime import date, time
from typing import Optional

from sqlalchemy import and_, select, update
from sqlalchemy.exc import SQLAlchemyError

from gestro.exceptions import ConflictError, GestroError, NotFoundError
from gestro.models import (
    BLOCKING_RESERVATION_STATUSES,
    Reservation,
    ReservationStatus,
    Table,
    TableStatus,
    row_to_dict,
    utcnow,
)
from gestro.schemas import ReservationCreate, ReservationUpdate
from gestro.services.context import ServiceContext
from gestro.services.realtime import ChangeType

logger = logging.getLogger(__name__)

SLOT_FIELDS = {"table_id", "reservation_date", "start_time", "end_time", "party_size"}


class ReservationRepository:

    def __init__(self, ctx: ServiceContext):
        self.ctx = ctx
        self.db = ctx.session
        self.inclusive = ctx.settings.reservation_overlap_inclusive

    def _overlaps(self, start_time: time, end_time: time):
        if self.inclusive:
            return and_(Reservation.start_time <= end_time, Reservation.end_time >= start_time)
        return and_(Reservation.start_time < end_time, Reservation.end_time > start_time)

    # =========================================================================
    # AVAILABILITY
    # =========================================================================

    async def get_available_tables(
        self,
        reservation_date: date,
        start_time: time,
        end_time: time,
        party_size: Optional[int] = None,
    ) -> list[Table]:
        """
        Tables free for the requested window, ordered by table number.

        Args:
            reservation_date: Day of the booking
            start_time / end_time: Requested window
            party_size: Optional minimum capacity

        Returns:
            Available tables (empty list on query failure)
        """
        tables_query = (
            select(Table)
            .where(Table.status == TableStatus.AVAILABLE)
            .order_by(Table.table_number.asc())
        )
        if party_size:
            tables_query = tables_query.where(Table.capacity >= party_size)

        conflicts_query = select(Reservation.table_id).where(
            Reservation.reservation_date == reservation_date,
            Reservation.status.in_(BLOCKING_RESERVATION_STATUSES),
            self._overlaps(start_time, end_time),
        )

        try:
            tables = list((await self.db.execute(tables_query)).scalars().all())
            booked = set((await self.db.execute(conflicts_query)).scalars().all())
        except SQLAlchemyError:
            logger.exception(f"Availability query failed for {reservation_date} {start_time}-{end_time}")
            return []

        available = [table for table in tables if table.id not in booked]
        logger.debug(
            f"Availability {reservation_date} {start_time}-{end_time}: "
            f"{len(available)}/{len(tables)} tables free"
        )
        return available

    async def find_conflicts(
        self,
        table_id: str,
        reservation_date: date,
        start_time: time,
        end_time: time,
        exclude_id: Optional[str] = None,
    ) -> list[Reservation]:
        query = select(Reservation).where(
            Reservation.table_id == table_id,
            Reservation.reservation_date == reservation_date,
            Reservation.status.in_(BLOCKING_RESERVATION_STATUSES),
            self._overlaps(start_time, end_time),
        )
        if exclude_id:
            query = query.where(Reservation.id != exclude_id)
        try:
            return list((await self.db.execute(query)).scalars().all())
        except SQLAlchemyError:
            logger.exception(f"Conflict lookup failed for table {table_id}")
            return []

    async def ensure_bookable(
        self,
        table_id: str,
        reservation_date: date,
        start_time: time,
        end_time: time,
        party_size: int,
        exclude_id: Optional[str] = None,
    ) -> Table:
        """
        Check a table can take a booking for the given window.

        Raises:
            NotFoundError: Unknown table
            ConflictError: Table out of service, or already booked in that window
            GestroError: Party larger than the table
        """
        table = await self.db.get(Table, table_id)
        if table is None:
            raise NotFoundError(f"Table {table_id} not found")
        if table.status != TableStatus.AVAILABLE:
            raise ConflictError("Table is not available")
        if party_size > table.capacity:
            raise GestroError(f"Table #{table.table_number} seats {table.capacity}")
        if await self.find_conflicts(table_id, reservation_date, start_time, end_time, exclude_id=exclude_id):
            raise ConflictError("Table already booked for that time")
        return table

    # =========================================================================
    # READS
    # =========================================================================

    async def get_reservation_by_id(self, reservation_id: str) -> Optional[Reservation]:
        try:
            result = await self.db.execute(
                select(Reservation)
                .where(Reservation.id == reservation_id)
                .execution_options(populate_existing=True)
            )
            return result.scalar_one_or_none()
        except SQLAlchemyError:
            logger.exception(f"Failed to load reservation {reservation_id}")
            return None

    async def get_user_reservations(self, user_id: str) -> list[Reservation]:
        try:
            result = await self.db.execute(
                select(Reservation)
                .where(Reservation.customer_id == user_id)
                .order_by(Reservation.reservation_date.desc(), Reservation.start_time.desc())
            )
            return list(result.scalars().all())
        except SQLAlchemyError:
            logger.exception(f"Failed to load reservations for user {user_id}")
            return []

    async def get_reservations_by_date(
        self,
        reservation_date: date,
        status: Optional[ReservationStatus] = None,
    ) -> list[Reservation]:
        query = (
            select(Reservation)
            .where(Reservation.reservation_date == reservation_date)
            .order_by(Reservation.start_time.asc())
        )
        if status is not None:
            query = query.where(Reservation.status == status)
        try:
            return list((await self.db.execute(query)).scalars().all())
        except SQLAlchemyError:
            logger.exception(f"Failed to load reservations for {reservation_date}")
            return []

    # =========================================================================
    # WRITES
    # =========================================================================

    async def create_reservation(
        self,
        data: ReservationCreate,
        customer_id: Optional[str] = None,
        status: ReservationStatus = ReservationStatus.PENDING,
    ) -> Optional[Reservation]:
        reservation = Reservation(customer_id=customer_id, status=status, **data.model_dump())
        try:
            self.db.add(reservation)
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Failed to create reservation: {e}")
            return None

        created = await self.get_reservation_by_id(reservation.id)
        if created is not None:
            logger.info(
                f"Reservation {created.id} for table {created.table_id} on "
                f"{created.reservation_date} {created.start_time}-{created.end_time}"
            )
            await self.ctx.publish("reservations", ChangeType.INSERT, row_to_dict(created))
        return created

    async def update_reservation(
        self,
        reservation_id: str,
        data: ReservationUpdate,
    ) -> Optional[Reservation]:
        """
        Apply a partial update.

        Moving the booking (table, date, window or party size) runs the
        same checks as a new booking, ignoring the reservation itself.

        Raises:
            GestroError: The resulting window ends before it starts, or the
                party does not fit the table
            NotFoundError: The new table does not exist
            ConflictError: The new table is out of service or already booked
        """
        reservation = await self.get_reservation_by_id(reservation_id)
        if reservation is None:
            return None

        # Only notes may be cleared; a null slot field means "unchanged"
        changes = {
            field: value
            for field, value in data.model_dump(exclude_unset=True).items()
            if value is not None or field == "notes"
        }
        start = changes.get("start_time", reservation.start_time)
        end = changes.get("end_time", reservation.end_time)
        if end <= start:
            raise GestroError("end_time must be after start_time")

        if SLOT_FIELDS & changes.keys():
            await self.ensure_bookable(
                changes.get("table_id", reservation.table_id),
                changes.get("reservation_date", reservation.reservation_date),
                start,
                end,
                changes.get("party_size", reservation.party_size),
                exclude_id=reservation_id,
            )

        previous = row_to_dict(reservation)
        for field, value in changes.items():
            setattr(reservation, field, value)
        try:
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Failed to update reservation {reservation_id}: {e}")
            return None

        updated = await self.get_reservation_by_id(reservation_id)
        await self.ctx.publish("reservations", ChangeType.UPDATE, row_to_dict(updated), old=previous)
        return updated

    async def update_reservation_status(
        self,
        reservation_id: str,
        status: ReservationStatus,
    ) -> Optional[Reservation]:
        reservation = await self.get_reservation_by_id(reservation_id)
        if reservation is None:
            return None

        previous = row_to_dict(reservation)
        try:
            reservation.status = status
            await self.db.commit()
        except SQLAlchemyError:
            await self.db.rollback()
            logger.exception(f"Failed to set reservation {reservation_id} to {status.value}")
            return None

        await self.ctx.publish("reservations", ChangeType.UPDATE, row_to_dict(reservation), old=previous)
        return reservation

    async def cancel_reservation(self, reservation_id: str) -> Optional[Reservation]:
        """
        Cancel a pending or confirmed reservation.

        Returns None when the reservation does not exist or is already
        cancelled/completed.
        """
        try:
            result = await self.db.execute(
                update(Reservation)
                .where(
                    Reservation.id == reservation_id,
                    Reservation.status.in_(BLOCKING_RESERVATION_STATUSES),
                )
                .values(status=ReservationStatus.CANCELLED, updated_at=utcnow())
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                await self.db.rollback()
                return None
            await self.db.commit()
        except SQLAlchemyError:
            await self.db.rollback()
            logger.exception(f"Failed to cancel reservation {reservation_id}")
            return None

        reservation = await self.get_reservation_by_id(reservation_id)
        logger.info(f"Reservation {reservation_id} cancelled")
        if reservation is not None:
            await self.ctx.publish("reservations", ChangeType.UPDATE, row_to_dict(reservation))
        return reservation
