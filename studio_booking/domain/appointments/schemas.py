"""Appointment domain schemas - Pydantic models for validation"""

from datetime import date, datetime, time
from typing import Literal, Optional

from pydantic import BaseModel, field_validator

AVAILABLE_TIMES = [
    "08:00", "09:00", "10:00", "11:00", "12:00",
    "13:00", "14:00", "15:00", "16:00", "17:00",
]

ServiceType = Literal["video", "photo", "both"]


def _blank_to_none(v):
    if isinstance(v, str) and not v.strip():
        return None
    return v.strip() if isinstance(v, str) else v


class AppointmentCreate(BaseModel):
    """Schema for a booking submitted through the public wizard"""

    appointment_date: date
    appointment_time: time
    service_type: ServiceType
    client_name: str
    client_email: str = ""
    client_phone: Optional[str] = None
    client_company: Optional[str] = None
    notes: Optional[str] = None

    @field_validator("client_name")
    @classmethod
    def validate_client_name(cls, v):
        if not v or not v.strip():
            raise ValueError("client_name is required")
        return v.strip()

    @field_validator("appointment_time")
    @classmethod
    def validate_time_slot(cls, v):
        v = v.replace(second=0, microsecond=0)
        if v.strftime("%H:%M") not in AVAILABLE_TIMES:
            raise ValueError(f"appointment_time must be one of {', '.join(AVAILABLE_TIMES)}")
        return v

    @field_validator("client_email")
    @classmethod
    def normalize_email(cls, v):
        return (v or "").strip()

    @field_validator("client_phone", "client_company", "notes")
    @classmethod
    def normalize_optional(cls, v):
        return _blank_to_none(v)


class AppointmentResponse(BaseModel):
    """Schema for appointment response"""

    id: str
    appointment_date: date
    appointment_time: time
    service_type: str
    status: str
    client_name: str
    client_email: str
    client_phone: Optional[str] = None
    client_company: Optional[str] = None
    notes: Optional[str] = None
    external_event_id: Optional[str] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class BookingResponse(BaseModel):
    success: bool = True
    appointment: AppointmentResponse
    calendar_synced: bool = False
    calendar_error: Optional[str] = None


class ServiceOption(BaseModel):
    value: str
    label: str


class BookingOptionsResponse(BaseModel):
    service_types: list[ServiceOption]
    available_times: list[str]


class BookedDatesResponse(BaseModel):
    dates: list[date]


class AppointmentDeleteResponse(BaseModel):
    success: bool = True
    message: str
    calendar_error: Optional[str] = None
