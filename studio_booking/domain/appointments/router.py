"""Appointment router - FastAPI endpoints for the booking wizard and the dashboard"""

import logging
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ...database import get_db
from ...dependencies import get_calendar_sync_service
from ...models import AdminConfig
from ...security import require_admin_token
from ...services.calendar_sync import CalendarSyncService
from .schemas import (
    AppointmentCreate,
    AppointmentDeleteResponse,
    AppointmentResponse,
    BookedDatesResponse,
    BookingOptionsResponse,
    BookingResponse,
)
from .service import AppointmentService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/appointments", tags=["Appointments"])


def get_appointment_service(db: Session = Depends(get_db)) -> AppointmentService:
    """Dependency injection for AppointmentService"""
    return AppointmentService(db)


# ============================================================================
# PUBLIC BOOKING WIZARD
# ============================================================================


@router.get("/public/options", response_model=BookingOptionsResponse)
async def get_booking_options(service: AppointmentService = Depends(get_appointment_service)):
    """Service types and time slots offered by the wizard"""
    return service.get_booking_options()


@router.get("/public/booked-dates", response_model=BookedDatesResponse)
async def get_booked_dates(
    from_date: Optional[date] = Query(None),
    service: AppointmentService = Depends(get_appointment_service),
):
    """Dates that already have a scheduled appointment"""
    return {"dates": service.get_booked_dates(from_date)}


@router.post("/public/book", response_model=BookingResponse, status_code=201)
async def book_appointment(
    data: AppointmentCreate,
    service: AppointmentService = Depends(get_appointment_service),
    sync: CalendarSyncService = Depends(get_calendar_sync_service),
):
    """Create a booking and push it to Google Calendar (sync failures don't fail the booking)"""
    appointment, synced, calendar_error = await service.book(data, sync)
    return BookingResponse(
        appointment=AppointmentResponse.model_validate(appointment),
        calendar_synced=synced,
        calendar_error=calendar_error,
    )


# ============================================================================
# DASHBOARD (admin token required)
# ============================================================================


@router.get("", response_model=list[AppointmentResponse])
async def get_appointments(
    _: AdminConfig = Depends(require_admin_token),
    service: AppointmentService = Depends(get_appointment_service),
):
    """Scheduled appointments, earliest first"""
    return [AppointmentResponse.model_validate(a) for a in service.get_scheduled_appointments()]


@router.get("/{appointment_id}", response_model=AppointmentResponse)
async def get_appointment(
    appointment_id: str,
    _: AdminConfig = Depends(require_admin_token),
    service: AppointmentService = Depends(get_appointment_service),
):
    return AppointmentResponse.model_validate(service.get_appointment(appointment_id))


@router.delete("/{appointment_id}", response_model=AppointmentDeleteResponse)
async def delete_appointment(
    appointment_id: str,
    _: AdminConfig = Depends(require_admin_token),
    service: AppointmentService = Depends(get_appointment_service),
    sync: CalendarSyncService = Depends(get_calendar_sync_service),
):
    """Cancel an appointment: remove its calendar event, then delete it locally"""
    calendar_error = await service.delete_appointment(appointment_id, sync)
    return AppointmentDeleteResponse(message="Appointment cancelled", calendar_error=calendar_error)
