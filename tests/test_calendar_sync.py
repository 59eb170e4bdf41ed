"""Tests for CalendarSyncService: push, push-all, delete and pull-and-merge."""

from __future__ import annotations

from datetime import date, time

import httpx
import pytest

from studio_booking.errors import AuthRefreshError, NotConfiguredError, NotFoundError, ProviderRequestError
from studio_booking.models import STATUS_CANCELLED, STATUS_SCHEDULED, Appointment
from studio_booking.services.calendar_sync import CalendarSyncService


@pytest.fixture
def sync(db_session, calendar_client, config_store) -> CalendarSyncService:
    return CalendarSyncService(db_session, calendar_client, config_store=config_store)


def _managed_event(event_id: str, name: str = "Tiragostin", **extra) -> dict:
    event = {
        "id": event_id,
        "summary": f"Captação - {name}",
        "description": "Empresa: Tiragostin\nEmail: oi@tiragostin.com\nTelefone: N/A\nServiço: Captação de Fotografia",
        "start": {"dateTime": "2030-06-01T13:00:00Z"},
        "end": {"dateTime": "2030-06-01T14:00:00Z"},
    }
    event.update(extra)
    return event


class TestPushOne:
    async def test_already_synced_is_a_no_op(self, sync, google, config_store, make_appointment):
        appointment = make_appointment(external_event_id="evt-existing")

        result = await sync.push_one(appointment.id)

        assert result.success
        assert result.already_synced
        assert result.event_id == "evt-existing"
        assert google.requests == []
        assert config_store.saved_tokens == []

    async def test_stores_returned_event_id(self, sync, google, config_store, db_session, make_appointment):
        google.create_responses.append(httpx.Response(200, json={"id": "evt1"}))
        appointment = make_appointment()

        result = await sync.push_one(appointment.id)

        assert result.event_id == "evt1"
        assert not result.already_synced
        db_session.expire_all()
        assert db_session.get(Appointment, appointment.id).external_event_id == "evt1"
        assert config_store.saved_tokens == ["access-1"]
        created = google.calendar_requests("POST")[0]
        assert created.headers["Authorization"] == "Bearer access-1"

    async def test_unknown_appointment(self, sync, google):
        with pytest.raises(NotFoundError):
            await sync.push_one("missing")
        assert google.requests == []

    async def test_requires_refresh_token(self, sync, google, config_store, make_appointment):
        config_store.settings = None
        appointment = make_appointment()

        with pytest.raises(NotConfiguredError):
            await sync.push_one(appointment.id)
        assert google.requests == []

    async def test_auth_failure_surfaces(self, sync, google, make_appointment):
        google.token_status = 400
        appointment = make_appointment()

        with pytest.raises(AuthRefreshError):
            await sync.push_one(appointment.id)
        assert google.calendar_requests() == []

    async def test_provider_failure_keeps_appointment_unsynced(self, sync, google, db_session, make_appointment):
        google.create_responses.append(httpx.Response(500, json={"error": {"message": "backend"}}))
        appointment = make_appointment()

        with pytest.raises(ProviderRequestError):
            await sync.push_one(appointment.id)

        db_session.expire_all()
        stored = db_session.get(Appointment, appointment.id)
        assert stored is not None
        assert stored.external_event_id is None

    async def test_concurrent_push_removes_duplicate_event(self, sync, google, db_session, make_appointment):
        appointment = make_appointment()
        appointment_id = appointment.id

        def create_while_other_pass_wins(request: httpx.Request) -> httpx.Response:
            db_session.query(Appointment).filter(Appointment.id == appointment_id).update(
                {Appointment.external_event_id: "evt-other"}, synchronize_session=False
            )
            db_session.commit()
            return httpx.Response(200, json={"id": "evt-mine"})

        google.create_responses.append(create_while_other_pass_wins)

        result = await sync.push_one(appointment_id)

        assert result.already_synced
        assert result.event_id == "evt-other"
        deletes = google.calendar_requests("DELETE")
        assert len(deletes) == 1
        assert deletes[0].url.path.endswith("/events/evt-mine")


class TestPushAll:
    async def test_one_failure_does_not_stop_the_batch(self, sync, google, make_appointment):
        first = make_appointment(appointment_date=date(2030, 5, 1))
        second = make_appointment(appointment_date=date(2030, 5, 2))
        third = make_appointment(appointment_date=date(2030, 5, 3))
        google.create_responses.extend(
            [
                httpx.Response(200, json={"id": "evt-a"}),
                httpx.Response(500, json={"error": {"message": "backend"}}),
                httpx.Response(200, json={"id": "evt-c"}),
            ]
        )

        report = await sync.push_all()

        assert report.synced == 2
        assert report.failed == 1
        assert [r.appointment_id for r in report.results] == [first.id, second.id, third.id]
        assert [r.success for r in report.results] == [True, False, True]
        assert report.results[2].event_id == "evt-c"
        assert len(google.calendar_requests("POST")) == 3

    async def test_refreshes_once_and_skips_synced(self, sync, google, config_store, make_appointment):
        make_appointment(external_event_id="evt-old")
        make_appointment(appointment_date=date(2030, 6, 1))
        make_appointment(status=STATUS_CANCELLED)

        report = await sync.push_all()

        assert report.synced == 2
        assert report.failed == 0
        assert sum(r.already_synced for r in report.results) == 1
        assert len(google.calendar_requests("POST")) == 1
        assert config_store.saved_tokens == ["access-1"]

    async def test_report_serializes(self, sync, make_appointment):
        make_appointment()
        payload = (await sync.push_all()).to_dict()
        assert payload["success"] is True
        assert payload["synced"] == 1
        assert payload["results"][0]["event_id"] == "evt-1"

    async def test_non_json_success_body_fails_only_that_item(self, sync, google, make_appointment):
        first = make_appointment(appointment_date=date(2030, 5, 1))
        second = make_appointment(appointment_date=date(2030, 5, 2))
        google.create_responses.append(httpx.Response(200, text="<html>oops</html>"))

        report = await sync.push_all()

        assert report.synced == 1
        assert report.failed == 1
        assert [r.appointment_id for r in report.results] == [first.id, second.id]
        assert report.results[0].error
        assert report.results[1].event_id == "evt-1"


class TestDeleteOne:
    async def test_without_event_id_nothing_to_do(self, sync, google, make_appointment):
        appointment = make_appointment()

        result = await sync.delete_one(appointment.id)

        assert result.success
        assert not result.deleted
        assert google.requests == []

    async def test_remote_404_is_success(self, sync, google, make_appointment):
        google.delete_status = 404
        appointment = make_appointment(external_event_id="evt-gone")

        result = await sync.delete_one(appointment.id)

        assert result.success
        assert result.event_id == "evt-gone"
        assert not result.deleted

    async def test_deletes_remote_event(self, sync, google, make_appointment):
        appointment = make_appointment(external_event_id="evt-9")

        result = await sync.delete_one(appointment.id)

        assert result.deleted
        assert google.calendar_requests("DELETE")[0].url.path == "/calendar/v3/calendars/primary/events/evt-9"

    async def test_other_failures_surface(self, sync, google, make_appointment):
        google.delete_status = 500
        appointment = make_appointment(external_event_id="evt-9")

        with pytest.raises(ProviderRequestError):
            await sync.delete_one(appointment.id)


class TestPullAndMerge:
    async def test_foreign_event_imports_nothing(self, sync, google, db_session):
        google.events = [{"id": "evt-x", "summary": "Dentist", "start": {"dateTime": "2030-06-01T13:00:00Z"}}]

        report = await sync.pull_and_merge()

        assert report.imported == 0
        assert report.skipped == 1
        assert db_session.query(Appointment).count() == 0

    async def test_imports_new_managed_event(self, sync, google, db_session):
        google.events = [_managed_event("evt-new")]

        report = await sync.pull_and_merge()

        assert report.imported == 1
        imported = db_session.query(Appointment).one()
        assert imported.external_event_id == "evt-new"
        assert imported.status == STATUS_SCHEDULED
        assert imported.client_name == "Tiragostin"
        assert imported.client_email == "oi@tiragostin.com"
        assert imported.client_phone is None
        assert imported.service_type == "photo"
        assert imported.appointment_date == date(2030, 6, 1)
        assert imported.appointment_time == time(10, 0)

    async def test_known_event_is_not_reimported(self, sync, google, db_session, make_appointment):
        make_appointment(external_event_id="evt-known", client_name="Local name")
        google.events = [_managed_event("evt-known", name="Renamed remotely")]

        report = await sync.pull_and_merge()

        assert report.imported == 0
        assert report.cancelled == 0
        assert db_session.query(Appointment).one().client_name == "Local name"

    async def test_missing_remote_event_cancels_appointment(self, sync, google, db_session, make_appointment):
        appointment = make_appointment(external_event_id="evt2")
        unsynced = make_appointment()
        google.events = []

        report = await sync.pull_and_merge()

        assert report.cancelled == 1
        db_session.expire_all()
        assert db_session.get(Appointment, appointment.id).status == STATUS_CANCELLED
        assert db_session.get(Appointment, unsynced.id).status == STATUS_SCHEDULED

    async def test_undecodable_event_is_reported_and_batch_continues(self, sync, google, db_session):
        bad = _managed_event("evt-bad", description="Serviço: Drone aéreo")
        google.events = [bad, _managed_event("evt-good")]

        report = await sync.pull_and_merge(resource_state="exists")

        assert report.failed == 1
        assert report.errors[0]["ref"] == "evt-bad"
        assert report.imported == 1
        assert db_session.query(Appointment).one().external_event_id == "evt-good"

    async def test_duplicate_ids_in_one_fetch_import_once(self, sync, google, db_session):
        google.events = [_managed_event("evt-dup"), _managed_event("evt-dup")]

        report = await sync.pull_and_merge()

        assert report.imported == 1
        assert report.skipped == 1
        assert db_session.query(Appointment).count() == 1

    async def test_list_failure_propagates(self, sync, google):
        google.list_status = 500
        with pytest.raises(ProviderRequestError):
            await sync.pull_and_merge()

    async def test_event_in_unknown_zone_does_not_stop_the_pass(self, sync, google, db_session, make_appointment):
        stale = make_appointment(external_event_id="evt-stale")
        odd_zone = _managed_event("evt-odd", start={"dateTime": "2030-06-01T10:00:00", "timeZone": "Not/AZone"})
        google.events = [odd_zone, _managed_event("evt-good")]

        report = await sync.pull_and_merge()

        assert report.failed == 1
        assert report.errors[0]["ref"] == "evt-odd"
        assert report.imported == 1
        assert report.cancelled == 1
        db_session.expire_all()
        assert db_session.get(Appointment, stale.id).status == STATUS_CANCELLED
