"""
Calendar Sync Service
Best-effort mirror between local appointments and Google Calendar events.

Each operation refreshes the access token, stores it through the config store
and runs on its own; there is no transaction spanning the database and
Google. A failed push leaves the appointment without an external event id so
a later push_all can pick it up.
"""
import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from ..config import CALENDAR_TIMEZONE
from ..domain.appointments.repository import AppointmentRepository
from ..errors import CalendarSyncError, EventDecodeError, NotConfiguredError, NotFoundError
from ..models import STATUS_CANCELLED, STATUS_SCHEDULED, Appointment
from .calendar_config import CalendarConfigStore, CalendarSettings
from .event_mapper import appointment_to_event, event_to_appointment_fields, is_managed_event
from .google_calendar_service import GoogleCalendarClient

logger = logging.getLogger(__name__)


@dataclass
class PushResult:
    appointment_id: str
    success: bool
    event_id: Optional[str] = None
    already_synced: bool = False
    error: Optional[str] = None


@dataclass
class PushAllReport:
    synced: int = 0
    failed: int = 0
    results: list[PushResult] = field(default_factory=list)
    success: bool = True

    def add(self, result: PushResult) -> None:
        self.results.append(result)
        if result.success:
            self.synced += 1
        else:
            self.failed += 1

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class DeleteResult:
    appointment_id: str
    success: bool = True
    event_id: Optional[str] = None
    # False when there was nothing to delete or Google no longer had the event
    deleted: bool = False
    message: Optional[str] = None


@dataclass
class PullReport:
    fetched: int = 0
    imported: int = 0
    skipped: int = 0
    cancelled: int = 0
    failed: int = 0
    errors: list[dict[str, str]] = field(default_factory=list)
    success: bool = True

    def record_failure(self, ref: str, message: str) -> None:
        self.failed += 1
        self.errors.append({"ref": ref, "error": message})

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class CalendarSyncService:
    """Push, push-all, delete and pull-and-merge against one Google calendar"""

    def __init__(
        self,
        db: Session,
        client: GoogleCalendarClient,
        config_store: Optional[CalendarConfigStore] = None,
        tz_name: str = CALENDAR_TIMEZONE,
    ):
        self.db = db
        self.client = client
        self.config_store = config_store or CalendarConfigStore(db)
        self.tz_name = tz_name
        self.repo = AppointmentRepository()

    # ------------------------------------------------------------------
    # helpers
    # ------------------------------------------------------------------

    def _get_appointment(self, appointment_id: str) -> Appointment:
        appointment = self.repo.get_by_id(self.db, appointment_id)
        if not appointment:
            raise NotFoundError("Appointment not found")
        return appointment

    def _require_settings(self) -> CalendarSettings:
        settings = self.config_store.load()
        if settings is None:
            raise NotConfiguredError("Google Calendar not connected")
        if not settings.refresh_token:
            raise NotConfiguredError("No refresh token available")
        return settings

    async def _fresh_access_token(self, settings: CalendarSettings) -> str:
        access_token = await self.client.refresh_access_token(settings.refresh_token)
        self.config_store.save_access_token(access_token)
        return access_token

    async def _push(self, appointment: Appointment, access_token: str, calendar_id: str) -> PushResult:
        appointment_id = appointment.id
        event = await self.client.create_event(
            access_token, calendar_id, appointment_to_event(appointment, self.tz_name)
        )
        event_id = event["id"]

        if self.repo.claim_external_event_id(self.db, appointment_id, event_id):
            logger.info(f"✅ Synced appointment {appointment_id} -> {event_id}")
            return PushResult(appointment_id=appointment_id, success=True, event_id=event_id)

        # Another pass stored an id (or the row vanished) while we were creating ours
        current = self.repo.get_by_id(self.db, appointment_id)
        logger.warning(f"⚠️ Appointment {appointment_id} was synced concurrently, removing duplicate {event_id}")
        try:
            await self.client.delete_event(access_token, calendar_id, event_id)
        except CalendarSyncError as e:
            logger.error(f"❌ Duplicate event {event_id} could not be removed: {e.message}")

        if current is None:
            raise NotFoundError("Appointment not found")
        return PushResult(
            appointment_id=appointment_id,
            success=True,
            event_id=current.external_event_id,
            already_synced=True,
        )

    # ------------------------------------------------------------------
    # operations
    # ------------------------------------------------------------------

    async def push_one(self, appointment_id: str) -> PushResult:
        """Create the remote event for one appointment unless it already has one"""
        appointment = self._get_appointment(appointment_id)

        if appointment.external_event_id:
            logger.info(f"ℹ️ Event already synced: {appointment.external_event_id}")
            return PushResult(
                appointment_id=appointment.id,
                success=True,
                event_id=appointment.external_event_id,
                already_synced=True,
            )

        settings = self._require_settings()
        access_token = await self._fresh_access_token(settings)
        return await self._push(appointment, access_token, settings.calendar_id)

    async def push_all(self) -> PushAllReport:
        """Push every scheduled appointment; one item failing never stops the batch"""
        settings = self._require_settings()
        access_token = await self._fresh_access_token(settings)

        appointments = self.repo.get_scheduled(self.db)
        logger.info(f"📋 Found {len(appointments)} scheduled appointments")

        report = PushAllReport()
        for appointment in appointments:
            appointment_id = appointment.id
            if appointment.external_event_id:
                report.add(
                    PushResult(
                        appointment_id=appointment_id,
                        success=True,
                        event_id=appointment.external_event_id,
                        already_synced=True,
                    )
                )
                continue

            try:
                report.add(await self._push(appointment, access_token, settings.calendar_id))
            except CalendarSyncError as e:
                logger.error(f"❌ Failed to sync appointment {appointment_id}: {e.message}")
                report.add(PushResult(appointment_id=appointment_id, success=False, error=e.message))
            except SQLAlchemyError as e:
                self.db.rollback()
                logger.error(f"❌ Failed to store event id for appointment {appointment_id}: {e}")
                report.add(PushResult(appointment_id=appointment_id, success=False, error=str(e)))

        logger.info(f"✅ Push sync finished: {report.synced} synced, {report.failed} failed")
        return report

    async def delete_one(self, appointment_id: str) -> DeleteResult:
        """Remove the remote event of an appointment; a missing remote event counts as deleted"""
        appointment = self._get_appointment(appointment_id)

        if not appointment.external_event_id:
            logger.info("ℹ️ No calendar event to delete")
            return DeleteResult(appointment_id=appointment.id, message="No calendar event to delete")

        event_id = appointment.external_event_id
        settings = self._require_settings()
        access_token = await self._fresh_access_token(settings)

        deleted = await self.client.delete_event(access_token, settings.calendar_id, event_id)
        return DeleteResult(
            appointment_id=appointment_id,
            event_id=event_id,
            deleted=deleted,
            message="Calendar event deleted" if deleted else "Calendar event was already removed",
        )

    async def pull_and_merge(self, resource_state: Optional[str] = None) -> PullReport:
        """
        Import future managed events that are not known locally, then cancel
        scheduled appointments whose event no longer exists remotely.
        Every call re-fetches and re-scans all future events.
        """
        if resource_state:
            logger.info(f"📥 Received Google Calendar notification: {resource_state}")

        settings = self._require_settings()
        access_token = await self._fresh_access_token(settings)

        events = await self.client.list_events(
            access_token, settings.calendar_id, time_min=datetime.now(timezone.utc)
        )
        logger.info(f"📅 Found {len(events)} events in Google Calendar")

        local = self.repo.get_all(self.db)
        known_ids = {a.external_event_id for a in local if a.external_event_id}
        cancel_candidates = [
            (a.id, a.external_event_id)
            for a in local
            if a.status == STATUS_SCHEDULED and a.external_event_id
        ]
        fetched_ids = {event.get("id") for event in events if event.get("id")}

        report = PullReport(fetched=len(events))

        for event in events:
            event_id = event.get("id")
            if not is_managed_event(event) or not event_id or event_id in known_ids:
                report.skipped += 1
                continue

            try:
                fields = event_to_appointment_fields(event, self.tz_name)
                self.repo.create(
                    self.db, status=STATUS_SCHEDULED, external_event_id=event_id, **fields
                )
            except EventDecodeError as e:
                logger.error(f"❌ Could not decode event {event_id}: {e.message}")
                report.record_failure(event_id, e.message)
            except IntegrityError:
                # Imported by a concurrent pull
                self.db.rollback()
                logger.info(f"ℹ️ Event {event_id} was imported concurrently")
                report.skipped += 1
            except SQLAlchemyError as e:
                self.db.rollback()
                logger.error(f"❌ Failed to insert appointment for event {event_id}: {e}")
                report.record_failure(event_id, str(e))
            else:
                known_ids.add(event_id)
                report.imported += 1
                logger.info(f"✅ Synced event {event_id} to database")

        for appointment_id, event_id in cancel_candidates:
            if event_id in fetched_ids:
                continue
            try:
                appointment = self.repo.get_by_id(self.db, appointment_id)
                if appointment is None or appointment.status != STATUS_SCHEDULED:
                    continue
                self.repo.set_status(self.db, appointment, STATUS_CANCELLED)
            except SQLAlchemyError as e:
                self.db.rollback()
                logger.error(f"❌ Failed to cancel appointment {appointment_id}: {e}")
                report.record_failure(appointment_id, str(e))
            else:
                report.cancelled += 1
                logger.info(f"🗑️ Cancelled appointment {appointment_id} - event deleted from Google Calendar")

        logger.info(
            f"✅ Pull sync finished: {report.imported} imported, {report.cancelled} cancelled, "
            f"{report.skipped} skipped, {report.failed} failed"
        )
        return report
