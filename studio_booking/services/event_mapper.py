"""
Event Mapper
Translates appointments to Google Calendar events and back.

The description's labeled lines are the legacy wire format: events created
before the structured payload existed can only be decoded from them, so the
labels and their order must not change. New events also carry a versioned
key-value block in ``extendedProperties.private`` which takes precedence when
decoding.
"""
import logging
import re
from datetime import date, datetime, time, timedelta
from typing import Any, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from ..config import CALENDAR_TIMEZONE, EVENT_DURATION_MINUTES
from ..errors import EventDecodeError
from ..models import SERVICE_BOTH, SERVICE_PHOTO, SERVICE_TYPES, SERVICE_VIDEO

logger = logging.getLogger(__name__)

SUMMARY_PREFIX = "Captação - "
NOT_APPLICABLE = "N/A"
PLACEHOLDER_EMAIL = "email@exemplo.com"

STRUCTURED_SCHEMA_KEY = "booking_schema"
STRUCTURED_SCHEMA_VERSION = "1"
STRUCTURED_FIELDS = ("client_email", "client_phone", "client_company", "service_type")

SERVICE_LABELS = {
    SERVICE_VIDEO: "Captação de Vídeo",
    SERVICE_PHOTO: "Captação de Fotografia",
    SERVICE_BOTH: "Vídeo + Fotografia",
}
_LABEL_TO_SERVICE = {label.casefold(): code for code, label in SERVICE_LABELS.items()}

LABEL_COMPANY = "Empresa"
LABEL_EMAIL = "Email"
LABEL_PHONE = "Telefone"
LABEL_SERVICE = "Serviço"
LABEL_NOTES = "Notas"


def _line_pattern(label: str) -> re.Pattern:
    return re.compile(rf"^{re.escape(label)}:[ \t]*(.*?)[ \t]*$", re.MULTILINE)


_COMPANY_RE = _line_pattern(LABEL_COMPANY)
_EMAIL_RE = _line_pattern(LABEL_EMAIL)
_PHONE_RE = _line_pattern(LABEL_PHONE)
_SERVICE_RE = _line_pattern(LABEL_SERVICE)
# Notes are always last and may span several lines
_NOTES_RE = re.compile(rf"^{LABEL_NOTES}:[ \t]*(.*)\Z", re.MULTILINE | re.DOTALL)


# ----------------------------------------------------------------------
# Appointment -> Event
# ----------------------------------------------------------------------


def build_summary(client_name: str) -> str:
    return f"{SUMMARY_PREFIX}{client_name}"


def build_description(appointment) -> str:
    service_label = SERVICE_LABELS.get(appointment.service_type, appointment.service_type)
    lines = [
        f"{LABEL_COMPANY}: {appointment.client_company or NOT_APPLICABLE}",
        f"{LABEL_EMAIL}: {appointment.client_email or NOT_APPLICABLE}",
        f"{LABEL_PHONE}: {appointment.client_phone or NOT_APPLICABLE}",
        f"{LABEL_SERVICE}: {service_label}",
    ]
    if appointment.notes:
        lines.extend(["", f"{LABEL_NOTES}: {appointment.notes}"])
    return "\n".join(lines)


def build_structured_payload(appointment) -> dict[str, str]:
    payload = {STRUCTURED_SCHEMA_KEY: STRUCTURED_SCHEMA_VERSION}
    for field in STRUCTURED_FIELDS:
        value = getattr(appointment, field)
        if value:
            payload[field] = str(value)
    return payload


def appointment_to_event(
    appointment,
    tz_name: str = CALENDAR_TIMEZONE,
    duration_minutes: int = EVENT_DURATION_MINUTES,
) -> dict[str, Any]:
    """Build the Google Calendar event body for an appointment (fixed duration)"""
    start = datetime.combine(appointment.appointment_date, appointment.appointment_time.replace(second=0, microsecond=0))
    end = start + timedelta(minutes=duration_minutes)

    event: dict[str, Any] = {
        "summary": build_summary(appointment.client_name),
        "description": build_description(appointment),
        "start": {"dateTime": start.isoformat(), "timeZone": tz_name},
        "end": {"dateTime": end.isoformat(), "timeZone": tz_name},
        "extendedProperties": {"private": build_structured_payload(appointment)},
    }
    if appointment.client_email:
        event["attendees"] = [{"email": appointment.client_email}]
    return event


# ----------------------------------------------------------------------
# Event -> Appointment
# ----------------------------------------------------------------------


def is_managed_event(event: dict[str, Any]) -> bool:
    summary = event.get("summary")
    return isinstance(summary, str) and summary.startswith(SUMMARY_PREFIX)


def _clean(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    if not value or value == NOT_APPLICABLE:
        return None
    return value


def _match(pattern: re.Pattern, description: str) -> Optional[str]:
    match = pattern.search(description)
    return _clean(match.group(1)) if match else None


def decode_service_type(text: Optional[str]) -> str:
    """
    Map a service label (or raw code) back to its code.
    A missing value defaults to video so hand-made calendar entries still import;
    an unrecognized value is an error.
    """
    if text is None:
        return SERVICE_VIDEO
    normalized = text.strip()
    if normalized in SERVICE_TYPES:
        return normalized
    code = _LABEL_TO_SERVICE.get(normalized.casefold())
    if code is None:
        raise EventDecodeError(f"Unknown service type label: {normalized!r}")
    return code


def _zone(name: str) -> ZoneInfo:
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise EventDecodeError(f"Unknown time zone: {name!r}") from e


def parse_event_start(event: dict[str, Any], tz_name: str = CALENDAR_TIMEZONE) -> tuple[date, time]:
    """Start of an event as local date and minute-precision time in ``tz_name``"""
    start = event.get("start") or {}
    tz = _zone(tz_name)

    if start.get("dateTime"):
        raw = start["dateTime"]
        try:
            moment = datetime.fromisoformat(raw.replace("Z", "+00:00"))
        except ValueError as e:
            raise EventDecodeError(f"Invalid event start: {raw!r}") from e
        if moment.tzinfo is None:
            moment = moment.replace(tzinfo=_zone(start.get("timeZone") or tz_name))
        local = moment.astimezone(tz)
        return local.date(), local.time().replace(second=0, microsecond=0, tzinfo=None)

    if start.get("date"):
        try:
            return date.fromisoformat(start["date"]), time(0, 0)
        except ValueError as e:
            raise EventDecodeError(f"Invalid event start date: {start['date']!r}") from e

    raise EventDecodeError("Event has no start")


def _structured_payload(event: dict[str, Any]) -> Optional[dict[str, str]]:
    private = (event.get("extendedProperties") or {}).get("private") or {}
    if private.get(STRUCTURED_SCHEMA_KEY) != STRUCTURED_SCHEMA_VERSION:
        return None
    return private


def event_to_appointment_fields(event: dict[str, Any], tz_name: str = CALENDAR_TIMEZONE) -> dict[str, Any]:
    """
    Decode a managed event into appointment column values.
    Raises EventDecodeError if the event is not ours or cannot be decoded.
    """
    if not is_managed_event(event):
        raise EventDecodeError("Event summary does not carry the booking prefix")

    description = event.get("description") or ""
    structured = _structured_payload(event)

    if structured is not None:
        email = _clean(structured.get("client_email"))
        phone = _clean(structured.get("client_phone"))
        company = _clean(structured.get("client_company"))
        service_type = structured.get("service_type")
        if service_type not in SERVICE_TYPES:
            raise EventDecodeError(f"Unknown service type in structured payload: {service_type!r}")
    else:
        email = _match(_EMAIL_RE, description)
        phone = _match(_PHONE_RE, description)
        company = _match(_COMPANY_RE, description)
        service_type = decode_service_type(_match(_SERVICE_RE, description))

    appointment_date, appointment_time = parse_event_start(event, tz_name)

    return {
        "client_name": event["summary"][len(SUMMARY_PREFIX):].strip(),
        "client_email": email or PLACEHOLDER_EMAIL,
        "client_phone": phone,
        "client_company": company,
        "service_type": service_type,
        "notes": _match(_NOTES_RE, description),
        "appointment_date": appointment_date,
        "appointment_time": appointment_time,
    }
