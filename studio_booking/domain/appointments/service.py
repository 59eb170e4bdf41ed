"""Appointment service - Business logic for bookings and the dashboard"""

import logging
from datetime import date
from typing import Optional

from fastapi import HTTPException
from sqlalchemy.orm import Session

from ...errors import CalendarSyncError, NotConfiguredError
from ...models import STATUS_SCHEDULED, Appointment
from ...services.calendar_sync import CalendarSyncService
from ...services.event_mapper import SERVICE_LABELS
from .repository import AppointmentRepository
from .schemas import AVAILABLE_TIMES, AppointmentCreate

logger = logging.getLogger(__name__)


class AppointmentService:
    """Service layer for appointment business logic"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = AppointmentRepository()

    def get_booking_options(self) -> dict:
        return {
            "service_types": [{"value": code, "label": label} for code, label in SERVICE_LABELS.items()],
            "available_times": list(AVAILABLE_TIMES),
        }

    def get_booked_dates(self, from_date: Optional[date] = None) -> list[date]:
        return self.repo.get_booked_dates(self.db, from_date)

    def get_scheduled_appointments(self) -> list[Appointment]:
        return self.repo.get_scheduled(self.db)

    def get_appointment(self, appointment_id: str) -> Appointment:
        appointment = self.repo.get_by_id(self.db, appointment_id)
        if not appointment:
            raise HTTPException(status_code=404, detail="Appointment not found")
        return appointment

    async def book(
        self, data: AppointmentCreate, sync: CalendarSyncService
    ) -> tuple[Appointment, bool, Optional[str]]:
        """
        Create a booking and push it to Google Calendar.
        Returns (appointment, calendar_synced, calendar_error); the booking
        stands even when the push fails.
        """
        logger.info(f"📥 Creating appointment for {data.client_name} on {data.appointment_date}")
        appointment = self.repo.create(
            self.db,
            appointment_date=data.appointment_date,
            appointment_time=data.appointment_time,
            service_type=data.service_type,
            client_name=data.client_name,
            client_email=data.client_email,
            client_phone=data.client_phone,
            client_company=data.client_company,
            notes=data.notes,
            status=STATUS_SCHEDULED,
        )
        appointment_id = appointment.id

        try:
            result = await sync.push_one(appointment_id)
        except NotConfiguredError as e:
            logger.info(f"ℹ️ Calendar sync skipped for {appointment_id}: {e.message}")
            return self.get_appointment(appointment_id), False, e.message
        except CalendarSyncError as e:
            logger.error(f"❌ Failed to create calendar event for {appointment_id}: {e.message}")
            return self.get_appointment(appointment_id), False, e.message

        return self.get_appointment(appointment_id), result.success, None

    async def delete_appointment(self, appointment_id: str, sync: CalendarSyncService) -> Optional[str]:
        """
        Delete the remote event, then the appointment.
        Local deletion proceeds even if the remote delete fails; the error is returned.
        """
        appointment = self.get_appointment(appointment_id)

        calendar_error = None
        try:
            await sync.delete_one(appointment_id)
        except NotConfiguredError as e:
            logger.info(f"ℹ️ Calendar delete skipped for {appointment_id}: {e.message}")
        except CalendarSyncError as e:
            logger.error(f"❌ Failed to delete calendar event for {appointment_id}: {e.message}")
            calendar_error = e.message

        self.repo.delete(self.db, appointment)
        logger.info(f"✅ Appointment {appointment_id} deleted")
        return calendar_error
