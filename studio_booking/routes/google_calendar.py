"""
Google Calendar Integration Routes
Handles OAuth connection, calendar settings and the sync triggers
"""

import logging
from dataclasses import asdict
from typing import Optional

import httpx
from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel
from sqlalchemy.orm import Session

from ..config import GOOGLE_CLIENT_ID, GOOGLE_CLIENT_SECRET
from ..database import get_db
from ..dependencies import get_calendar_client, get_calendar_sync_service
from ..errors import CalendarSyncError
from ..models import AdminConfig
from ..security import require_admin_token
from ..services.calendar_config import CalendarConfigStore
from ..services.calendar_sync import CalendarSyncService
from ..services.google_calendar_service import GoogleCalendarClient, build_authorization_url

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/google-calendar", tags=["google-calendar"])


# Pydantic Models
class AppointmentRef(BaseModel):
    appointmentId: str


class OAuthCallbackRequest(BaseModel):
    code: str


class CalendarSettingsUpdate(BaseModel):
    calendar_id: Optional[str] = None


# ============================================================================
# CONNECTION & SETTINGS (admin token required)
# ============================================================================


@router.get("/status")
async def get_google_calendar_status(
    _: AdminConfig = Depends(require_admin_token), db: Session = Depends(get_db)
):
    """Get Google Calendar connection status"""
    settings = CalendarConfigStore(db).load()
    if not settings or not settings.connected:
        return {"connected": False, "user_email": None, "calendar_id": None}

    return {
        "connected": True,
        "user_email": settings.google_user_email,
        "calendar_id": settings.calendar_id,
    }


@router.get("/connect")
async def initiate_google_calendar_oauth(_: AdminConfig = Depends(require_admin_token)):
    """Initiate Google Calendar OAuth flow"""
    if not GOOGLE_CLIENT_ID or not GOOGLE_CLIENT_SECRET:
        raise HTTPException(status_code=500, detail="Google Calendar not configured")

    logger.info("Google Calendar OAuth initiated")
    return {"authorization_url": build_authorization_url()}


@router.post("/callback")
async def handle_google_calendar_callback(
    body: OAuthCallbackRequest,
    _: AdminConfig = Depends(require_admin_token),
    db: Session = Depends(get_db),
    client: GoogleCalendarClient = Depends(get_calendar_client),
):
    """Exchange the authorization code and store the tokens"""
    if not body.code.strip():
        raise HTTPException(status_code=400, detail="No authorization code provided")

    tokens = await client.exchange_code(body.code.strip())
    google_email = await client.get_user_email(tokens["access_token"])

    CalendarConfigStore(db).save_connection(
        access_token=tokens["access_token"],
        refresh_token=tokens["refresh_token"],
        google_user_email=google_email,
    )
    return {
        "success": True,
        "message": "Google Calendar connected successfully",
        "user_email": google_email,
    }


@router.post("/disconnect")
async def disconnect_google_calendar(
    _: AdminConfig = Depends(require_admin_token),
    db: Session = Depends(get_db),
    client: GoogleCalendarClient = Depends(get_calendar_client),
):
    """Disconnect Google Calendar integration"""
    store = CalendarConfigStore(db)
    settings = store.load()
    if not settings or not settings.connected:
        raise HTTPException(status_code=404, detail="Google Calendar not connected")

    # Revoking also invalidates the access tokens issued from it
    try:
        await client.revoke_token(settings.refresh_token)
    except httpx.HTTPError as e:
        logger.warning(f"Failed to revoke Google tokens: {str(e)}")

    store.clear_connection()
    logger.info("✅ Google Calendar disconnected")
    return {"success": True, "message": "Google Calendar disconnected"}


@router.get("/settings")
async def get_calendar_settings(_: AdminConfig = Depends(require_admin_token), db: Session = Depends(get_db)):
    settings = CalendarConfigStore(db).load()
    return {"calendar_id": settings.calendar_id if settings else "primary"}


@router.put("/settings")
async def update_calendar_settings(
    body: CalendarSettingsUpdate,
    _: AdminConfig = Depends(require_admin_token),
    db: Session = Depends(get_db),
):
    """Select which Google calendar receives the events (blank means primary)"""
    calendar_id = CalendarConfigStore(db).set_calendar_id(body.calendar_id)
    logger.info(f"✅ Calendar id set to {calendar_id}")
    return {"success": True, "calendar_id": calendar_id}


# ============================================================================
# SYNC TRIGGERS
# ============================================================================


@router.post("/events")
async def create_calendar_event(
    body: AppointmentRef, sync: CalendarSyncService = Depends(get_calendar_sync_service)
):
    """Push one appointment (called right after a booking is created)"""
    logger.info(f"Creating calendar event for appointment: {body.appointmentId}")
    result = await sync.push_one(body.appointmentId)
    return asdict(result)


@router.post("/events/delete")
async def delete_calendar_event(
    body: AppointmentRef,
    _: AdminConfig = Depends(require_admin_token),
    sync: CalendarSyncService = Depends(get_calendar_sync_service),
):
    """Remove the calendar event of one appointment"""
    logger.info(f"Deleting calendar event for appointment: {body.appointmentId}")
    result = await sync.delete_one(body.appointmentId)
    return asdict(result)


@router.post("/sync")
async def sync_google_calendar(
    _: AdminConfig = Depends(require_admin_token),
    sync: CalendarSyncService = Depends(get_calendar_sync_service),
):
    """Push every scheduled appointment"""
    report = await sync.push_all()
    return report.to_dict()


@router.post("/webhook")
async def google_calendar_webhook(
    request: Request, sync: CalendarSyncService = Depends(get_calendar_sync_service)
):
    """
    Google push notification endpoint.
    The resource state header is logged only; every notification triggers a full pull.
    """
    resource_state = request.headers.get("x-goog-resource-state")
    try:
        report = await sync.pull_and_merge(resource_state=resource_state)
    except CalendarSyncError as e:
        logger.error(f"❌ Error in google-calendar-webhook: {e.message}")
        raise
    return {"message": "Sync completed", **report.to_dict()}
