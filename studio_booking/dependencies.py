"""FastAPI dependencies shared by the calendar and appointment routers"""

from fastapi import Depends
from sqlalchemy.orm import Session

from .database import get_db
from .services.calendar_sync import CalendarSyncService
from .services.google_calendar_service import GoogleCalendarClient


async def get_calendar_client():
    """One HTTP client per request, closed when the response is sent"""
    async with GoogleCalendarClient() as client:
        yield client


def get_calendar_sync_service(
    db: Session = Depends(get_db),
    client: GoogleCalendarClient = Depends(get_calendar_client),
) -> CalendarSyncService:
    return CalendarSyncService(db, client)
