# Booking endpoints: create/confirm/cancel and payment recording.
# Thin adapter over BookingOrchestrator; domain errors are mapped to HTTP responses by the app's exception handler.
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request, status

from .. import schemas
from ..orchestrator import BookingOrchestrator

router = APIRouter()


def get_orchestrator(request: Request) -> BookingOrchestrator:
    return request.app.state.orchestrator


@router.post("/bookings", response_model=schemas.BookingRead, status_code=status.HTTP_201_CREATED)
def create_booking(
    payload: schemas.BookingRequest,
    orchestrator: BookingOrchestrator = Depends(get_orchestrator),
) -> schemas.BookingRead:
    return orchestrator.create_booking(payload.property_id, payload.guest_id, payload.start_date, payload.end_date)


@router.post("/bookings/{booking_id}/confirm", response_model=schemas.BookingRead)
def confirm_booking(
    booking_id: int,
    orchestrator: BookingOrchestrator = Depends(get_orchestrator),
) -> schemas.BookingRead:
    return orchestrator.confirm_booking(booking_id)


@router.delete("/bookings/{booking_id}", response_model=schemas.BookingRead)
def cancel_booking(
    booking_id: int,
    actor_id: int = Query(..., ge=1),
    reason: Optional[str] = Query(None, max_length=255),
    orchestrator: BookingOrchestrator = Depends(get_orchestrator),
) -> schemas.BookingRead:
    # Idempotent: repeating the call on a canceled booking returns it unchanged
    return orchestrator.cancel_booking(booking_id, actor_id, reason=reason)


@router.post(
    "/bookings/{booking_id}/payment",
    response_model=schemas.PaymentRead,
    status_code=status.HTTP_201_CREATED,
)
def record_payment(
    booking_id: int,
    payload: schemas.PaymentRequest,
    orchestrator: BookingOrchestrator = Depends(get_orchestrator),
) -> schemas.PaymentRead:
    return orchestrator.record_payment(booking_id, payload.amount_cents, payload.method)
