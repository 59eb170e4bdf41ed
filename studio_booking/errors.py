"""
Calendar sync errors

Raised by the Google Calendar client, the event mapper and the sync service.
main.py turns them into ``{"success": false, "error": ...}`` responses.
"""

from typing import Optional


class CalendarSyncError(Exception):
    """Base error for calendar synchronization"""

    status_code = 500

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class AuthRefreshError(CalendarSyncError):
    """Token endpoint rejected the refresh token or returned no access token"""

    status_code = 502


class ProviderRequestError(CalendarSyncError):
    """Google Calendar API returned a non-2xx response"""

    status_code = 502

    def __init__(self, message: str, provider_status: Optional[int] = None):
        self.provider_status = provider_status
        super().__init__(message)


class NotConfiguredError(CalendarSyncError):
    """No refresh token on file"""

    status_code = 409


class NotFoundError(CalendarSyncError):
    """Appointment id absent locally"""

    status_code = 404


class EventDecodeError(CalendarSyncError):
    """Remote event could not be mapped to an appointment"""

    status_code = 422
