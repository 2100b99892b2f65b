from datetime import date, time

import pytest

from gestro.core.config import get_settings
from gestro.exceptions import ConflictError, GestroError, NotFoundError
from gestro.models import ReservationStatus, TableStatus
from gestro.schemas import ReservationCreate, ReservationUpdate
from gestro.services.context import ServiceContext
from gestro.services.realtime import ChangeType
from gestro.services.reservations import ReservationRepository

DAY = date(2026, 11, 20)


async def book(ctx, table, start, end, party_size=2, customer_id=None, status=ReservationStatus.PENDING):
    return await ReservationRepository(ctx).create_reservation(
        ReservationCreate(
            table_id=table.id,
            reservation_date=DAY,
            start_time=start,
            end_time=end,
            party_size=party_size,
        ),
        customer_id=customer_id,
        status=status,
    )


def numbers(tables):
    return [t.table_number for t in tables]


# =============================================================================
# AVAILABILITY
# =============================================================================

async def test_free_tables_exclude_maintenance(ctx, tables):
    available = await ReservationRepository(ctx).get_available_tables(DAY, time(19), time(21))
    assert numbers(available) == [1, 2]


async def test_party_size_filters_small_tables(ctx, tables):
    available = await ReservationRepository(ctx).get_available_tables(DAY, time(19), time(21), party_size=3)
    assert numbers(available) == [2]


async def test_overlapping_booking_blocks_table(ctx, tables, customer):
    await book(ctx, tables[0], time(19), time(21), customer_id=customer.id)

    repo = ReservationRepository(ctx)
    assert numbers(await repo.get_available_tables(DAY, time(20), time(22))) == [2]
    assert numbers(await repo.get_available_tables(DAY, time(18), time(19, 30))) == [2]
    # A booking on another day does not matter
    assert numbers(await repo.get_available_tables(date(2026, 11, 21), time(20), time(22))) == [1, 2]


async def test_touching_windows_collide_by_default(ctx, tables):
    await book(ctx, tables[0], time(19), time(21))

    repo = ReservationRepository(ctx)
    assert repo.inclusive is True
    assert numbers(await repo.get_available_tables(DAY, time(21), time(23))) == [2]
    assert numbers(await repo.get_available_tables(DAY, time(17), time(19))) == [2]


async def test_strict_overlap_allows_back_to_back(session, feed, tables):
    strict = ServiceContext(
        session=session,
        feed=feed,
        settings=get_settings().model_copy(update={"reservation_overlap_inclusive": False}),
    )
    await book(strict, tables[0], time(19), time(21))

    repo = ReservationRepository(strict)
    assert numbers(await repo.get_available_tables(DAY, time(21), time(23))) == [1, 2]
    assert numbers(await repo.get_available_tables(DAY, time(20, 59), time(23))) == [2]


async def test_cancelled_and_completed_bookings_do_not_block(ctx, tables):
    await book(ctx, tables[0], time(19), time(21), status=ReservationStatus.CANCELLED)
    await book(ctx, tables[1], time(19), time(21), status=ReservationStatus.COMPLETED)

    available = await ReservationRepository(ctx).get_available_tables(DAY, time(19), time(21))
    assert numbers(available) == [1, 2]


async def test_confirmed_booking_blocks(ctx, tables):
    await book(ctx, tables[1], time(12), time(14), status=ReservationStatus.CONFIRMED)
    available = await ReservationRepository(ctx).get_available_tables(DAY, time(13), time(15))
    assert numbers(available) == [1]


async def test_find_conflicts_can_exclude_a_reservation(ctx, tables):
    existing = await book(ctx, tables[0], time(19), time(21))
    repo = ReservationRepository(ctx)

    conflicts = await repo.find_conflicts(tables[0].id, DAY, time(20), time(22))
    assert [r.id for r in conflicts] == [existing.id]
    assert await repo.find_conflicts(tables[0].id, DAY, time(20), time(22), exclude_id=existing.id) == []
    assert await repo.find_conflicts(tables[1].id, DAY, time(20), time(22)) == []


# =============================================================================
# WRITES
# =============================================================================

async def test_create_reservation_publishes_insert(ctx, feed, tables, customer):
    events = []
    feed.subscribe("reservations", ChangeType.INSERT, events.append)

    reservation = await book(ctx, tables[1], time(19), time(21), party_size=4, customer_id=customer.id)

    assert reservation.status == ReservationStatus.PENDING
    assert reservation.table.table_number == 2
    assert len(events) == 1
    assert events[0].new["id"] == reservation.id
    assert events[0].new["status"] == "pending"


async def test_update_reservation_window(ctx, tables):
    reservation = await book(ctx, tables[0], time(19), time(21))
    repo = ReservationRepository(ctx)

    updated = await repo.update_reservation(reservation.id, ReservationUpdate(start_time=time(20), party_size=1))
    assert updated.start_time == time(20)
    assert updated.end_time == time(21)
    assert updated.party_size == 1


async def test_update_reservation_rejects_inverted_window(ctx, tables):
    reservation = await book(ctx, tables[0], time(19), time(21))

    with pytest.raises(GestroError):
        await ReservationRepository(ctx).update_reservation(reservation.id, ReservationUpdate(start_time=time(21)))


async def test_update_cannot_move_onto_a_booked_slot(ctx, tables):
    await book(ctx, tables[1], time(19), time(21), party_size=4)
    lunch = await book(ctx, tables[1], time(12), time(14))
    repo = ReservationRepository(ctx)

    with pytest.raises(ConflictError):
        await repo.update_reservation(lunch.id, ReservationUpdate(start_time=time(19, 30), end_time=time(20, 30)))

    unchanged = await repo.get_reservation_by_id(lunch.id)
    assert unchanged.start_time == time(12)


async def test_update_checks_the_new_table(ctx, tables):
    reservation = await book(ctx, tables[1], time(19), time(21))
    repo = ReservationRepository(ctx)

    with pytest.raises(ConflictError, match="not available"):
        await repo.update_reservation(reservation.id, ReservationUpdate(table_id=tables[2].id))
    with pytest.raises(GestroError, match="seats 2"):
        await repo.update_reservation(reservation.id, ReservationUpdate(table_id=tables[0].id, party_size=3))
    with pytest.raises(NotFoundError):
        await repo.update_reservation(reservation.id, ReservationUpdate(table_id="missing"))
    with pytest.raises(GestroError, match="seats 4"):
        await repo.update_reservation(reservation.id, ReservationUpdate(party_size=40))


async def test_notes_update_skips_slot_checks(ctx, tables):
    reservation = await book(ctx, tables[0], time(19), time(21))
    tables[0].status = TableStatus.MAINTENANCE
    await ctx.session.commit()

    updated = await ReservationRepository(ctx).update_reservation(reservation.id, ReservationUpdate(notes="Window seat"))
    assert updated.notes == "Window seat"


async def test_update_missing_reservation_returns_none(ctx):
    assert await ReservationRepository(ctx).update_reservation("missing", ReservationUpdate(party_size=2)) is None


async def test_cancel_reservation_once(ctx, tables):
    reservation = await book(ctx, tables[0], time(19), time(21))
    repo = ReservationRepository(ctx)

    cancelled = await repo.cancel_reservation(reservation.id)
    assert cancelled.status == ReservationStatus.CANCELLED
    assert await repo.cancel_reservation(reservation.id) is None
    assert await repo.cancel_reservation("missing") is None


async def test_status_update(ctx, tables):
    reservation = await book(ctx, tables[0], time(19), time(21))
    updated = await ReservationRepository(ctx).update_reservation_status(reservation.id, ReservationStatus.CONFIRMED)
    assert updated.status == ReservationStatus.CONFIRMED


# =============================================================================
# READS
# =============================================================================

async def test_reservations_by_date_and_user(ctx, tables, customer):
    late = await book(ctx, tables[0], time(21), time(22), customer_id=customer.id)
    early = await book(ctx, tables[1], time(12), time(13), status=ReservationStatus.CONFIRMED)
    repo = ReservationRepository(ctx)

    assert [r.id for r in await repo.get_reservations_by_date(DAY)] == [early.id, late.id]
    assert [r.id for r in await repo.get_reservations_by_date(DAY, ReservationStatus.CONFIRMED)] == [early.id]
    assert await repo.get_reservations_by_date(date(2026, 1, 1)) == []
    assert [r.id for r in await repo.get_user_reservations(customer.id)] == [late.id]


def test_reservation_schema_rejects_inverted_window():
    with pytest.raises(ValueError):
        ReservationCreate(
            table_id="t",
            reservation_date=DAY,
            start_time=time(21),
            end_time=time(19),
            party_size=2,
        )
