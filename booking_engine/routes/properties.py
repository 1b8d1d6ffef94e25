# Property calendar endpoints: point availability checks and free-range listing within a window.
from datetime import date
from typing import List

from fastapi import APIRouter, Depends, Query, Request

from .. import schemas
from ..availability import AvailabilityService

# Router namespace for property calendar APIs
router = APIRouter()


def get_availability(request: Request) -> AvailabilityService:
    return request.app.state.orchestrator.availability


@router.get("/properties/{property_id}/availability", response_model=schemas.AvailabilityResponse)
def check_availability(
    property_id: int,
    start_date: date = Query(...),
    end_date: date = Query(...),
    availability: AvailabilityService = Depends(get_availability),
) -> schemas.AvailabilityResponse:
    """
    Answer whether [start_date, end_date) is free.

    Pending bookings count as taken unless their hold has expired.
    """
    available = availability.is_available(property_id, start_date, end_date)
    return schemas.AvailabilityResponse(
        property_id=property_id, start_date=start_date, end_date=end_date, available=available
    )


@router.get("/properties/{property_id}/free-ranges", response_model=List[schemas.FreeRange])
def list_free_ranges(
    property_id: int,
    window_start: date = Query(...),
    window_end: date = Query(...),
    availability: AvailabilityService = Depends(get_availability),
) -> List[schemas.FreeRange]:
    ranges = availability.list_free_ranges(property_id, window_start, window_end)
    return [schemas.FreeRange(start_date=s, end_date=e) for s, e in ranges]
