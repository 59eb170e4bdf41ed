"""Shared fixtures: in-memory database, fake Google endpoints, config stores."""

from __future__ import annotations

import json
import os
from datetime import date, time
from typing import Callable, Optional
from urllib.parse import parse_qs

# Settings are read at import time
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("GOOGLE_CLIENT_ID", "client-id")
os.environ.setdefault("GOOGLE_CLIENT_SECRET", "client-secret")
os.environ.setdefault("CALENDAR_TIMEZONE", "America/Sao_Paulo")
os.environ.setdefault("DB_LOG_SLOW_QUERIES", "false")

import httpx
import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from studio_booking.database import Base
from studio_booking.models import STATUS_SCHEDULED, Appointment
from studio_booking.services.calendar_config import CalendarSettings
from studio_booking.services.google_calendar_service import GoogleCalendarClient


class FakeGoogle:
    """Records requests and answers like the Google OAuth and Calendar APIs."""

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.token_status = 200
        self.create_responses: list[httpx.Response | Callable[[httpx.Request], httpx.Response]] = []
        self.delete_status = 204
        self.list_status = 200
        self.events: list[dict] = []
        self.user_email = "studio@example.com"
        self.userinfo_down = False
        self._created = 0

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        url = request.url

        if url.host == "oauth2.googleapis.com" and url.path == "/token":
            if self.token_status != 200:
                return httpx.Response(self.token_status, json={"error": "invalid_grant"})
            form = parse_qs(request.content.decode())
            if form.get("grant_type") == ["authorization_code"]:
                return httpx.Response(
                    200, json={"access_token": "access-new", "refresh_token": "refresh-new"}
                )
            return httpx.Response(200, json={"access_token": "access-1", "expires_in": 3600})

        if url.host == "oauth2.googleapis.com" and url.path == "/revoke":
            return httpx.Response(200)

        if url.path == "/oauth2/v2/userinfo":
            if self.userinfo_down:
                raise httpx.ConnectError("userinfo unreachable", request=request)
            return httpx.Response(200, json={"email": self.user_email})

        if url.path.startswith("/calendar/v3/calendars/"):
            if request.method == "POST" and url.path.endswith("/events"):
                if self.create_responses:
                    response = self.create_responses.pop(0)
                    return response(request) if callable(response) else response
                self._created += 1
                body = json.loads(request.content)
                return httpx.Response(200, json={**body, "id": f"evt-{self._created}"})
            if request.method == "DELETE":
                return httpx.Response(self.delete_status)
            if request.method == "GET" and url.path.endswith("/events"):
                if self.list_status != 200:
                    return httpx.Response(self.list_status, json={"error": {"message": "boom"}})
                return httpx.Response(200, json={"items": self.events})

        return httpx.Response(500, json={"error": {"message": "unexpected request"}})

    def calendar_requests(self, method: Optional[str] = None) -> list[httpx.Request]:
        return [
            r
            for r in self.requests
            if r.url.path.startswith("/calendar/v3/") and (method is None or r.method == method)
        ]


class FakeConfigStore:
    """In-memory stand-in for CalendarConfigStore."""

    def __init__(self, refresh_token: Optional[str] = "refresh-1", calendar_id: str = "primary") -> None:
        self.settings: Optional[CalendarSettings] = CalendarSettings(
            refresh_token=refresh_token, access_token=None, calendar_id=calendar_id
        )
        self.saved_tokens: list[str] = []

    def load(self) -> Optional[CalendarSettings]:
        return self.settings

    def save_access_token(self, access_token: str) -> None:
        self.saved_tokens.append(access_token)


@pytest.fixture
def db_session():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    session = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    try:
        yield session
    finally:
        session.close()
        engine.dispose()


@pytest.fixture
def google() -> FakeGoogle:
    return FakeGoogle()


@pytest.fixture
def calendar_client(google: FakeGoogle) -> GoogleCalendarClient:
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(google.handler))
    return GoogleCalendarClient(http_client=http_client, client_id="client-id", client_secret="client-secret")


@pytest.fixture
def config_store() -> FakeConfigStore:
    return FakeConfigStore()


@pytest.fixture
def make_appointment(db_session):
    def _make(**overrides) -> Appointment:
        data = {
            "appointment_date": date(2030, 5, 20),
            "appointment_time": time(10, 0),
            "service_type": "video",
            "client_name": "Habbibs",
            "client_email": "contato@habbibs.com",
            "client_phone": "+55 11 99999-0000",
            "client_company": "Habbibs",
            "notes": None,
            "status": STATUS_SCHEDULED,
        }
        data.update(overrides)
        appointment = Appointment(**data)
        db_session.add(appointment)
        db_session.commit()
        db_session.refresh(appointment)
        return appointment

    return _make
