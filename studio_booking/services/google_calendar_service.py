"""
Google Calendar Service
Thin client over the Google OAuth token endpoint and the Calendar v3 events API
"""
import logging
from datetime import datetime, timezone
from typing import Any, Optional
from urllib.parse import quote, urlencode

import httpx

from ..config import GOOGLE_CLIENT_ID, GOOGLE_CLIENT_SECRET, GOOGLE_HTTP_TIMEOUT, GOOGLE_REDIRECT_URI
from ..errors import AuthRefreshError, ProviderRequestError

logger = logging.getLogger(__name__)

GOOGLE_AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"  # noqa: S105 - OAuth endpoint URL
GOOGLE_REVOKE_URL = "https://oauth2.googleapis.com/revoke"
GOOGLE_USERINFO_URL = "https://www.googleapis.com/oauth2/v2/userinfo"
GOOGLE_CALENDAR_API = "https://www.googleapis.com/calendar/v3"
GOOGLE_CALENDAR_SCOPES = [
    "https://www.googleapis.com/auth/calendar",
    "https://www.googleapis.com/auth/calendar.events",
    "https://www.googleapis.com/auth/userinfo.email",
]


def _safe_error_message(response: httpx.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        payload = None

    if isinstance(payload, dict):
        error_payload = payload.get("error")
        if isinstance(error_payload, dict):
            message = error_payload.get("message")
            if isinstance(message, str) and message.strip():
                return " ".join(message.split())[:200]
        if isinstance(error_payload, str) and error_payload.strip():
            return " ".join(error_payload.split())[:200]

    raw_text = response.text.strip()
    if raw_text:
        return " ".join(raw_text.split())[:200]
    return "Request failed without an error payload"


def _events_path(calendar_id: str, event_id: Optional[str] = None) -> str:
    path = f"{GOOGLE_CALENDAR_API}/calendars/{quote(calendar_id, safe='')}/events"
    if event_id is not None:
        path += f"/{quote(event_id, safe='')}"
    return path


def build_authorization_url(state: Optional[str] = None) -> str:
    """Consent URL that yields a refresh token (offline access, forced prompt)"""
    params = {
        "client_id": GOOGLE_CLIENT_ID or "",
        "redirect_uri": GOOGLE_REDIRECT_URI,
        "response_type": "code",
        "scope": " ".join(GOOGLE_CALENDAR_SCOPES),
        "access_type": "offline",
        "prompt": "consent",
    }
    if state:
        params["state"] = state
    return f"{GOOGLE_AUTH_URL}?{urlencode(params)}"


class GoogleCalendarClient:
    """Single-attempt Google API calls; every failure is raised to the caller"""

    def __init__(
        self,
        http_client: Optional[httpx.AsyncClient] = None,
        client_id: Optional[str] = None,
        client_secret: Optional[str] = None,
    ):
        self._owns_http_client = http_client is None
        self._http = http_client or httpx.AsyncClient(timeout=GOOGLE_HTTP_TIMEOUT)
        self.client_id = client_id if client_id is not None else GOOGLE_CLIENT_ID
        self.client_secret = client_secret if client_secret is not None else GOOGLE_CLIENT_SECRET

    async def __aenter__(self) -> "GoogleCalendarClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_http_client:
            await self._http.aclose()

    # ------------------------------------------------------------------
    # OAuth
    # ------------------------------------------------------------------

    async def refresh_access_token(self, refresh_token: str) -> str:
        """Exchange a refresh token for a new short-lived access token"""
        logger.info("🔄 Refreshing Google Calendar access token...")
        try:
            response = await self._http.post(
                GOOGLE_TOKEN_URL,
                data={
                    "client_id": self.client_id or "",
                    "client_secret": self.client_secret or "",
                    "refresh_token": refresh_token,
                    "grant_type": "refresh_token",
                },
                headers={"Accept": "application/json"},
            )
        except httpx.HTTPError as e:
            raise AuthRefreshError(f"Token refresh request failed: {e}") from e

        if not response.is_success:
            logger.error(f"❌ Token refresh failed ({response.status_code}): {_safe_error_message(response)}")
            raise AuthRefreshError("Failed to refresh access token")

        try:
            payload = response.json()
        except ValueError as e:
            raise AuthRefreshError("Token endpoint returned invalid JSON") from e

        access_token = payload.get("access_token") if isinstance(payload, dict) else None
        if not isinstance(access_token, str) or not access_token.strip():
            raise AuthRefreshError("No access token in refresh response")

        return access_token.strip()

    async def exchange_code(self, code: str) -> dict[str, Any]:
        """Exchange an authorization code for access and refresh tokens"""
        try:
            response = await self._http.post(
                GOOGLE_TOKEN_URL,
                data={
                    "code": code,
                    "client_id": self.client_id or "",
                    "client_secret": self.client_secret or "",
                    "redirect_uri": GOOGLE_REDIRECT_URI,
                    "grant_type": "authorization_code",
                },
            )
        except httpx.HTTPError as e:
            raise AuthRefreshError(f"Authorization code exchange failed: {e}") from e

        if not response.is_success:
            logger.error(f"❌ Token exchange failed: {_safe_error_message(response)}")
            raise AuthRefreshError("Failed to exchange authorization code")

        try:
            tokens = response.json()
        except ValueError as e:
            raise AuthRefreshError("Token endpoint returned invalid JSON") from e
        if not isinstance(tokens, dict) or not tokens.get("access_token") or not tokens.get("refresh_token"):
            raise AuthRefreshError("Invalid token response")
        return tokens

    async def get_user_email(self, access_token: str) -> Optional[str]:
        """Email of the connected Google account, or None when it can't be fetched"""
        try:
            response = await self._http.get(
                GOOGLE_USERINFO_URL, headers={"Authorization": f"Bearer {access_token}"}
            )
        except httpx.HTTPError as e:
            logger.warning(f"⚠️ Failed to get Google user info: {e}")
            return None
        if not response.is_success:
            logger.warning(f"⚠️ Failed to get Google user info: {_safe_error_message(response)}")
            return None
        try:
            payload = response.json()
        except ValueError:
            logger.warning("⚠️ Google user info returned invalid JSON")
            return None
        return payload.get("email") if isinstance(payload, dict) else None

    async def revoke_token(self, token: str) -> None:
        response = await self._http.post(GOOGLE_REVOKE_URL, params={"token": token})
        if not response.is_success:
            logger.warning(f"⚠️ Token revoke returned {response.status_code}")

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    async def _request(self, method: str, url: str, access_token: str, **kwargs) -> httpx.Response:
        try:
            return await self._http.request(
                method, url, headers={"Authorization": f"Bearer {access_token}"}, **kwargs
            )
        except httpx.HTTPError as e:
            raise ProviderRequestError(f"Google Calendar request failed: {e}") from e

    @staticmethod
    def _json_object(response: httpx.Response, action: str) -> dict[str, Any]:
        try:
            payload = response.json()
        except ValueError as e:
            raise ProviderRequestError(
                f"Google Calendar returned invalid JSON ({action})", provider_status=response.status_code
            ) from e
        if not isinstance(payload, dict):
            raise ProviderRequestError(
                f"Google Calendar returned an unexpected response ({action})", provider_status=response.status_code
            )
        return payload

    async def create_event(self, access_token: str, calendar_id: str, event: dict[str, Any]) -> dict[str, Any]:
        """Create an event and return Google's representation (including its id)"""
        response = await self._request("POST", _events_path(calendar_id), access_token, json=event)

        if not response.is_success:
            message = _safe_error_message(response)
            logger.error(f"❌ Failed to create calendar event: {message}")
            raise ProviderRequestError(
                f"Failed to create calendar event: {message}", provider_status=response.status_code
            )

        created = self._json_object(response, "create event")
        if not created.get("id"):
            raise ProviderRequestError("Google Calendar returned an event without an id")
        logger.info(f"✅ Google Calendar event created: {created['id']}")
        return created

    async def delete_event(self, access_token: str, calendar_id: str, event_id: str) -> bool:
        """
        Delete an event.
        Returns True when Google deleted it, False when it was already gone (404).
        """
        response = await self._request("DELETE", _events_path(calendar_id, event_id), access_token)

        if response.status_code == 404:
            logger.info(f"ℹ️ Google Calendar event already gone: {event_id}")
            return False

        if not response.is_success:
            message = _safe_error_message(response)
            logger.error(f"❌ Failed to delete calendar event: {message}")
            raise ProviderRequestError(
                f"Failed to delete calendar event: {message}", provider_status=response.status_code
            )

        logger.info(f"✅ Google Calendar event deleted: {event_id}")
        return True

    async def list_events(
        self,
        access_token: str,
        calendar_id: str,
        time_min: Optional[datetime] = None,
    ) -> list[dict[str, Any]]:
        """List events starting from ``time_min`` (now by default), following every page"""
        time_min = time_min or datetime.now(timezone.utc)
        params: dict[str, Any] = {
            "timeMin": time_min.astimezone(timezone.utc).isoformat().replace("+00:00", "Z"),
            "orderBy": "startTime",
            "singleEvents": "true",
            "maxResults": 250,
        }

        events: list[dict[str, Any]] = []
        while True:
            response = await self._request("GET", _events_path(calendar_id), access_token, params=params)
            if not response.is_success:
                message = _safe_error_message(response)
                logger.error(f"❌ Failed to fetch Google Calendar events: {message}")
                raise ProviderRequestError(
                    f"Failed to fetch Google Calendar events: {message}",
                    provider_status=response.status_code,
                )

            payload = self._json_object(response, "list events")
            events.extend(item for item in payload.get("items") or [] if isinstance(item, dict))

            page_token = payload.get("nextPageToken")
            if not page_token:
                break
            params["pageToken"] = page_token

        return events
