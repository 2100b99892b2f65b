"""
Table availability and customer reservations.
"""

import logging
from datetime import date, time
from typing import List, Optional

from celery.exceptions import OperationalError
from fastapi import APIRouter, Depends, HTTPException, Query, status

from gestro.api.deps import get_context, require_user
from gestro.models import Profile, Reservation
from gestro.schemas import (
    ErrorResponse,
    ReservationCreate,
    ReservationResponse,
    ReservationUpdate,
    TableResponse,
)
from gestro.services.context import ServiceContext
from gestro.services.reservations import ReservationRepository
from gestro.tasks import export_reservation_to_excel

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Reservations"])


def queue_reservation_export(ctx: ServiceContext, reservation: Reservation, customer: Profile) -> None:
    if not ctx.settings.export_to_excel:
        return
    try:
        export_reservation_to_excel.delay({
            "reservation_id": reservation.id,
            "reservation_date": reservation.reservation_date.isoformat(),
            "start_time": reservation.start_time.strftime("%H:%M"),
            "end_time": reservation.end_time.strftime("%H:%M"),
            "table_number": reservation.table.table_number if reservation.table else None,
            "party_size": reservation.party_size,
            "customer_name": customer.name,
            "status": reservation.status.value,
            "notes": reservation.notes,
        })
    except OperationalError as e:
        logger.error(f"Could not queue Excel export for reservation {reservation.id}: {e}")


async def load_own_reservation(ctx: ServiceContext, reservation_id: str, user: Profile) -> Reservation:
    reservation = await ReservationRepository(ctx).get_reservation_by_id(reservation_id)
    if reservation is None:
        raise HTTPException(status_code=404, detail=f"Reservation {reservation_id} not found")
    if reservation.customer_id != user.id and not user.is_staff:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not your reservation")
    return reservation


@router.get("/tables/available", response_model=List[TableResponse])
async def available_tables(
    reservation_date: date = Query(..., alias="date"),
    start_time: time = Query(..., alias="startTime"),
    end_time: time = Query(..., alias="endTime"),
    party_size: Optional[int] = Query(None, alias="partySize", ge=1),
    ctx: ServiceContext = Depends(get_context),
):
    """Tables that are in service and free for the whole requested window."""
    if end_time <= start_time:
        raise HTTPException(status_code=400, detail="endTime must be after startTime")
    return await ReservationRepository(ctx).get_available_tables(
        reservation_date, start_time, end_time, party_size=party_size
    )


@router.post(
    "/reservations",
    response_model=ReservationResponse,
    status_code=status.HTTP_201_CREATED,
    responses={409: {"model": ErrorResponse}},
)
async def create_reservation(
    data: ReservationCreate,
    ctx: ServiceContext = Depends(get_context),
    user: Profile = Depends(require_user),
):
    """Book a table; 404 unknown table, 409 out of service or taken, 400 too small."""
    repo = ReservationRepository(ctx)
    await repo.ensure_bookable(
        data.table_id, data.reservation_date, data.start_time, data.end_time, data.party_size
    )

    reservation = await repo.create_reservation(data, customer_id=user.id)
    if reservation is None:
        raise HTTPException(status_code=500, detail="Could not create reservation")

    queue_reservation_export(ctx, reservation, user)
    return reservation


@router.get("/reservations", response_model=List[ReservationResponse])
async def list_my_reservations(
    ctx: ServiceContext = Depends(get_context),
    user: Profile = Depends(require_user),
):
    return await ReservationRepository(ctx).get_user_reservations(user.id)


@router.get("/reservations/{reservation_id}", response_model=ReservationResponse)
async def get_reservation(
    reservation_id: str,
    ctx: ServiceContext = Depends(get_context),
    user: Profile = Depends(require_user),
):
    return await load_own_reservation(ctx, reservation_id, user)


@router.patch(
    "/reservations/{reservation_id}",
    response_model=ReservationResponse,
    responses={409: {"model": ErrorResponse}},
)
async def update_reservation(
    reservation_id: str,
    data: ReservationUpdate,
    ctx: ServiceContext = Depends(get_context),
    user: Profile = Depends(require_user),
):
    await load_own_reservation(ctx, reservation_id, user)
    updated = await ReservationRepository(ctx).update_reservation(reservation_id, data)
    if updated is None:
        raise HTTPException(status_code=500, detail="Could not update reservation")
    return updated


@router.post(
    "/reservations/{reservation_id}/cancel",
    response_model=ReservationResponse,
    responses={409: {"model": ErrorResponse}},
)
async def cancel_reservation(
    reservation_id: str,
    ctx: ServiceContext = Depends(get_context),
    user: Profile = Depends(require_user),
):
    await load_own_reservation(ctx, reservation_id, user)
    cancelled = await ReservationRepository(ctx).cancel_reservation(reservation_id)
    if cancelled is None:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Reservation can no longer be cancelled")
    return cancelled
